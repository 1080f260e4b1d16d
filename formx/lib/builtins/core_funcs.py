"""
Null-safe lookups and predicates over form data.

Form data is sparse: any `data.*` path may be missing, so these helpers
treat None as "no answer" rather than failing.
"""

from typing import Any


def _text_predicate(test):
    def predicate(haystack, needle) -> bool:
        if haystack is None:
            return False
        return test(str(haystack), str(needle))
    predicate.__name__ = test.__name__
    return predicate


def _get(obj: Any, key: Any, default: Any = None) -> Any:
    """
    Field lookup on a record or a row list.

    get(data.address, "city", "") returns "" when the address, the
    key or the stored value is missing.
    """
    if isinstance(obj, dict):
        found = obj.get(key)
    elif isinstance(obj, list) and isinstance(key, int) and -len(obj) <= key < len(obj):
        found = obj[key]
    else:
        found = None
    return default if found is None else found


def _between(value, low, high) -> bool:
    # inclusive; incomparable inputs are simply out of range
    try:
        return bool(low <= value <= high)
    except TypeError:
        return False


def _one_of(value, options) -> bool:
    if not isinstance(options, (list, tuple, set)):
        raise TypeError("oneOf() expects a list of options")
    return value in options


def _coalesce(*values):
    return next((v for v in values if v is not None), None)


def _if_null(value, fallback):
    return fallback if value is None else value


def _is_empty(value) -> bool:
    """Emptiness as a form sees it: 0 and False are answers, "  " is not."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return not value
    return False


CORE_FUNCS = {
    "get":        (_get,        (2, 3)),
    "contains":   (_text_predicate(lambda s, sub: sub in s),                  (2, 2)),
    "icontains":  (_text_predicate(lambda s, sub: sub.lower() in s.lower()),  (2, 2)),
    "startswith": (_text_predicate(str.startswith), (2, 2)),
    "endswith":   (_text_predicate(str.endswith),   (2, 2)),
    "between":    (_between,    (3, 3)),
    "oneOf":      (_one_of,     (2, 2)),
    "coalesce":   (_coalesce,   (1, None)),
    "ifNull":     (_if_null,    (2, 2)),
    "isEmpty":    (_is_empty,   (1, 1)),
    "notEmpty":   (lambda value: not _is_empty(value), (1, 1)),
    "isNull":     (lambda value: value is None,        (1, 1)),
}

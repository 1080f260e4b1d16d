"""
Text helpers for labels, templates and computed values.

Values are rendered the way a browser would show them: None as "",
booleans as true/false and whole floats without the trailing ".0".
"""

import re


def to_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _required(name, value) -> str:
    if value is None:
        raise TypeError(f"{name}() received null")
    return str(value)


def _length(value) -> int:
    return 0 if value is None else len(value)


def _join(items, sep=","):
    if items is None:
        raise TypeError("join() received null")
    return str(sep).join(map(to_text, items))


def _matches(value, pattern) -> bool:
    return value is not None and re.search(pattern, str(value)) is not None


def _pad_left(value, width, fill=" ") -> str:
    """padLeft("42", 5, "0") gives "00042"."""
    if len(fill) != 1:
        raise ValueError("padLeft() fill must be a single character")
    return to_text(value).rjust(int(width), fill)


def _truncate(value, width, suffix="...") -> str:
    text = to_text(value)
    if len(text) > width:
        text = text[:width - len(suffix)] + suffix
    return text


def _format(template, *args) -> str:
    """Replace `{0}`, `{1}`, ... with the positional arguments."""
    return re.sub(
        r"\{(\d+)\}",
        lambda m: to_text(args[int(m.group(1))]) if int(m.group(1)) < len(args) else m.group(0),
        str(template),
    )


STRING_FUNCS = {
    "toString":   (to_text, (1, 1)),
    "lower":      (lambda s: _required("lower", s).lower(), (1, 1)),
    "upper":      (lambda s: _required("upper", s).upper(), (1, 1)),
    "len":        (_length, (1, 1)),
    "split":      (lambda s, sep: _required("split", s).split(sep), (2, 2)),
    "join":       (_join, (1, 2)),
    "trim":       (lambda s: to_text(s).strip(), (1, 1)),
    "replace":    (lambda s, old, new: _required("replace", s).replace(old, new), (3, 3)),
    "match":      (_matches, (2, 2)),
    "padLeft":    (_pad_left, (2, 3)),
    "truncate":   (_truncate, (2, 3)),
    "capitalize": (lambda s: to_text(s).capitalize(), (1, 1)),
    "format":     (_format, (1, None)),
}

from typing import Callable, Iterable

def _map(xs: Iterable, fn: Callable):
    if xs is None:
        return []
    return [fn(x) for x in xs]

def _filter(xs: Iterable, fn: Callable):
    if xs is None:
        return []
    return [x for x in xs if fn(x)]

def _find(xs: Iterable, fn: Callable):
    if xs is None:
        return None
    for x in xs:
        if fn(x):
            return x
    return None

def _pluck(xs: Iterable, key: str):
    """
    Pull one field out of each row, e.g. the ids of a repeater's rows.

    Example: pluck([{"id": 1}, {"id": 2}], "id") => [1, 2]
    """
    if xs is None:
        return []
    return [x.get(key) if isinstance(x, dict) else None for x in xs]

def _toOptions(xs: Iterable, value_key: str = "value", label_key: str = "label"):
    """
    Normalize rows or scalars into {value, label} option records.

    Example: toOptions(["a", "b"]) => [{"value": "a", "label": "a"}, ...]
    """
    options = []
    for x in xs or []:
        if isinstance(x, dict):
            options.append({"value": x.get(value_key), "label": x.get(label_key, x.get(value_key))})
        else:
            options.append({"value": x, "label": x})
    return options

def _flatten(xs: Iterable):
    if xs is None:
        return []
    result = []
    for x in xs:
        if isinstance(x, (list, tuple)):
            result.extend(x)
        else:
            result.append(x)
    return result

def _unique(xs: Iterable):
    seen = []
    for x in xs or []:
        if x not in seen:
            seen.append(x)
    return seen


DSL_COLLECTION_FUNCS = {
    "map":       (_map,       (2, 2)),
    "filter":    (_filter,    (2, 2)),
    "find":      (_find,      (2, 2)),
    "pluck":     (_pluck,     (2, 2)),
    "toOptions": (_toOptions, (1, 3)),
    "flatten":   (_flatten,   (1, 1)),
    "unique":    (_unique,    (1, 1)),
}

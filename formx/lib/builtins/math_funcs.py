from typing import Optional
import math


def _avg(xs) -> Optional[float]:
    xs = [x for x in (xs or []) if x is not None]
    return (sum(xs) / len(xs)) if xs else None

def _sum(xs):
    return sum(x for x in (xs or []) if x is not None)

def _tofloat(x) -> Optional[float]:
    if x is None:
        return None
    try:
        return float(x)
    except (TypeError, ValueError):
        return None

def _round(x, decimals: int = 0):
    """
    Round half away from zero, the way form totals are usually displayed.

    Example: round(2.5) => 3, round(1.005, 2) => 1.01
    """
    if x is None:
        return None
    factor = 10 ** int(decimals)
    value = math.floor(abs(float(x)) * factor + 0.5) / factor
    value = math.copysign(value, float(x))
    return int(value) if int(decimals) == 0 else value

def _floor(x) -> int:
    return math.floor(x)

def _ceil(x) -> int:
    return math.ceil(x)

def _clamp(value, min_val, max_val):
    return max(min_val, min(max_val, value))


DSL_MATH_FUNCS = {
    "avg":   (_avg,     (1, 1)),
    "sum":   (_sum,     (1, 1)),
    "min":   (min,      (1, None)),
    "max":   (max,      (1, None)),
    "abs":   (abs,      (1, 1)),
    "float": (_tofloat, (1, 1)),
    "round": (_round,   (1, 2)),
    "floor": (_floor,   (1, 1)),
    "ceil":  (_ceil,    (1, 1)),
    "clamp": (_clamp,   (3, 3)),
}

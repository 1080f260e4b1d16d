"""
Runtime helpers for compiled form scripts.

Generated code never applies Python operators or attribute access to user
values directly. Every operation is a call into this module, which applies
the JavaScript semantics form authors expect:

    - missing keys read as undefined (None)
    - `+` concatenates as soon as one side is a string
    - `==` coerces, `===` does not
    - `[]` and `{}` are truthy, `0`, `""` and `NaN` are falsy
    - relational operators compare numerically and are false on NaN

Only the names in `__all__` are reachable from generated code.
"""
from __future__ import annotations

import inspect
import json
import math
import random
import re
from decimal import Decimal, ROUND_HALF_UP
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from formx.core.errors import ExpressionRuntimeError, ScriptError
from formx.core.logging import get_logger
from formx.lib.builtins.registry import DSL_FUNCTION_REGISTRY

logger = get_logger(__name__)

NAN = float("nan")
INF = float("inf")
MAX_STRING_LENGTH = 1_000_000

_NUMERIC_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_INT_PREFIX_RE = re.compile(r"^\s*([+-]?)(0[xX][0-9a-fA-F]+|\d+)")
_FLOAT_PREFIX_RE = re.compile(r"^\s*([+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?|[+-]?Infinity)")


# ---------------- Coercions ----------------

def is_number(x) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool)


def _norm(n):
    """Integral floats come back as ints so they print like JS numbers."""
    if isinstance(n, float) and math.isfinite(n) and n.is_integer() and abs(n) < 2 ** 53:
        return int(n)
    return n


def to_number(x):
    if x is None:
        return NAN
    if isinstance(x, bool):
        return 1 if x else 0
    if is_number(x):
        return x
    if isinstance(x, str):
        s = x.strip()
        if s == "":
            return 0
        if s in ("Infinity", "+Infinity"):
            return INF
        if s == "-Infinity":
            return -INF
        if not _NUMERIC_RE.match(s):
            return NAN
        return _norm(float(s)) if any(c in s for c in ".eE") else int(s)
    if isinstance(x, list):
        if not x:
            return 0
        if len(x) == 1:
            return to_number(to_str(x[0]))
    return NAN


def _num_str(n) -> str:
    if isinstance(n, float):
        if math.isnan(n):
            return "NaN"
        if math.isinf(n):
            return "Infinity" if n > 0 else "-Infinity"
        n = _norm(n)
    return str(n) if isinstance(n, int) else repr(n)


def to_str(x) -> str:
    if x is None:
        return "undefined"
    if isinstance(x, bool):
        return "true" if x else "false"
    if is_number(x):
        return _num_str(x)
    if isinstance(x, str):
        return x
    if isinstance(x, list):
        return ",".join("" if v is None else to_str(v) for v in x)
    if isinstance(x, dict):
        return "[object Object]"
    return str(x)


def truthy(x) -> bool:
    if x is None or x is False:
        return False
    if x is True:
        return True
    if is_number(x):
        return not (x == 0 or (isinstance(x, float) and math.isnan(x)))
    if isinstance(x, str):
        return x != ""
    return True


def is_nullish(x) -> bool:
    return x is None


def typeof(x) -> str:
    if x is None:
        return "undefined"
    if isinstance(x, bool):
        return "boolean"
    if is_number(x):
        return "number"
    if isinstance(x, str):
        return "string"
    if callable(x):
        return "function"
    return "object"


def prop_key(x) -> str:
    return x if isinstance(x, str) else to_str(x)


# ---------------- Operators ----------------

def _is_primitive(x) -> bool:
    return x is None or isinstance(x, (bool, int, float, str))


def add(a, b):
    if isinstance(a, str) or isinstance(b, str) or not _is_primitive(a) or not _is_primitive(b):
        return to_str(a) + to_str(b)
    return _norm(to_number(a) + to_number(b))


def sub(a, b):
    return _norm(to_number(a) - to_number(b))


def mul(a, b):
    x, y = to_number(a), to_number(b)
    if (x == 0 and isinstance(y, float) and math.isinf(y)) or (y == 0 and isinstance(x, float) and math.isinf(x)):
        return NAN
    return _norm(x * y)


def div(a, b):
    x, y = to_number(a), to_number(b)
    if y == 0:
        if x == 0 or math.isnan(x):
            return NAN
        return INF if x > 0 else -INF
    return _norm(x / y)


def mod(a, b):
    x, y = to_number(a), to_number(b)
    if y == 0 or math.isnan(x) or math.isnan(y) or math.isinf(x):
        return NAN
    if math.isinf(y):
        return x
    return _norm(math.fmod(x, y))


def pow(a, b):
    x, y = to_number(a), to_number(b)
    try:
        return _norm(math.pow(x, y))
    except OverflowError:
        return INF
    except ValueError:
        return NAN


def neg(a):
    return _norm(-to_number(a))


def pos(a):
    return to_number(a)


def not_(a) -> bool:
    return not truthy(a)


def strict_eq(a, b) -> bool:
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if is_number(a) and is_number(b):
        return a == b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    return a is b


def strict_ne(a, b) -> bool:
    return not strict_eq(a, b)


def loose_eq(a, b) -> bool:
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, bool):
        return loose_eq(to_number(a), b)
    if isinstance(b, bool):
        return loose_eq(a, to_number(b))
    if is_number(a) and isinstance(b, str):
        return a == to_number(b)
    if isinstance(a, str) and is_number(b):
        return to_number(a) == b
    if not _is_primitive(a) and _is_primitive(b):
        return loose_eq(to_str(a), b)
    if _is_primitive(a) and not _is_primitive(b):
        return loose_eq(a, to_str(b))
    return strict_eq(a, b)


def loose_ne(a, b) -> bool:
    return not loose_eq(a, b)


def _compare(a, b, op: Callable[[Any, Any], bool]) -> bool:
    if isinstance(a, str) and isinstance(b, str):
        return op(a, b)
    x, y = to_number(a), to_number(b)
    if math.isnan(x) or math.isnan(y):
        return False
    return op(x, y)


def lt(a, b) -> bool:
    return _compare(a, b, lambda x, y: x < y)


def le(a, b) -> bool:
    return _compare(a, b, lambda x, y: x <= y)


def gt(a, b) -> bool:
    return _compare(a, b, lambda x, y: x > y)


def ge(a, b) -> bool:
    return _compare(a, b, lambda x, y: x >= y)


def template(*parts) -> str:
    return "".join(p if isinstance(p, str) else to_str(p) for p in parts)


# ---------------- Member access ----------------

def _index(key) -> Optional[int]:
    if isinstance(key, bool):
        return None
    if isinstance(key, int):
        return key
    if isinstance(key, float) and key.is_integer():
        return int(key)
    if isinstance(key, str) and key.isdigit():
        return int(key)
    return None


def _undefined_access(key):
    return ExpressionRuntimeError(f"Cannot read properties of undefined (reading '{to_str(key)}')")


def member(obj, key, optional=False):
    if obj is None:
        if optional:
            return None
        raise _undefined_access(key)
    if isinstance(obj, dict):
        return obj.get(prop_key(key))
    if isinstance(obj, (list, str)):
        if key == "length":
            return len(obj)
        idx = _index(key)
        if idx is not None:
            return obj[idx] if 0 <= idx < len(obj) else None
        methods = ARRAY_METHODS if isinstance(obj, list) else STRING_METHODS
        if key in methods:
            return partial(methods[key], obj)
        return None
    if is_number(obj) or isinstance(obj, bool):
        if key in NUMBER_METHODS:
            return partial(NUMBER_METHODS[key], obj)
        return None
    return _foreign_member(obj, key)


def _foreign_member(obj, key):
    if not isinstance(key, str) or key.startswith("_"):
        return None
    if key not in getattr(obj, "__script_members__", ()):
        logger.debug(f"[EVAL] Blocked member '{key}' on {type(obj).__name__}")
        return None
    return getattr(obj, key, None)


def set_member(obj, key, value):
    if isinstance(obj, dict):
        obj[prop_key(key)] = value
        return value
    if isinstance(obj, list):
        idx = _index(key)
        if idx is None or idx < 0:
            raise ExpressionRuntimeError(f"Invalid array index '{to_str(key)}'")
        while len(obj) <= idx:
            obj.append(None)
        obj[idx] = value
        return value
    if obj is None:
        raise ExpressionRuntimeError(f"Cannot set properties of undefined (setting '{to_str(key)}')")
    raise ExpressionRuntimeError(f"Cannot set property '{to_str(key)}' on {typeof(obj)}")


def call(fn, *args):
    if not callable(fn):
        raise ExpressionRuntimeError(f"{to_str(fn)} is not a function")
    return fn(*args)


def call_optional(fn, *args):
    if fn is None:
        return None
    return call(fn, *args)


def invoke(obj, name, optional, *args):
    if obj is None:
        if optional:
            return None
        raise _undefined_access(name)
    fn = member(obj, name)
    if fn is None and isinstance(obj, dict) and name in OBJECT_METHODS:
        fn = partial(OBJECT_METHODS[name], obj)
    if not callable(fn):
        raise ExpressionRuntimeError(f"{to_str(name)} is not a function")
    return fn(*args)


async def resolve(x):
    """`await` on a plain value yields the value."""
    if inspect.isawaitable(x):
        return await x
    return x


def iterate(x) -> List[Any]:
    if isinstance(x, list):
        return list(x)
    if isinstance(x, str):
        return list(x)
    raise ExpressionRuntimeError(f"{typeof(x)} is not iterable")


def keys_of(x) -> List[str]:
    if isinstance(x, dict):
        return list(x.keys())
    if isinstance(x, (list, str)):
        return [str(i) for i in range(len(x))]
    return []


# ---------------- Errors ----------------

class JSError:
    __script_members__ = ("name", "message")

    def __init__(self, name: str = "Error", message: Any = ""):
        self.name = name
        self.message = "" if message is None else to_str(message)

    def __str__(self):
        return f"{self.name}: {self.message}" if self.message else self.name

    def __repr__(self):
        return f"JSError({self.name!r}, {self.message!r})"


ERROR_TYPES = ("Error", "TypeError", "RangeError", "SyntaxError", "ReferenceError")


def new_error(name, *args):
    return JSError(name, args[0] if args else "")


def throw(value):
    if isinstance(value, BaseException):
        return value
    return ScriptError(value)


# ---------------- String / array / number methods ----------------

def _int_arg(x, default=0) -> int:
    if x is None:
        return default
    n = to_number(x)
    if isinstance(n, float):
        if math.isnan(n):
            return 0
        if math.isinf(n):
            return MAX_STRING_LENGTH if n > 0 else -MAX_STRING_LENGTH
        return int(n)
    return n


def _bounded(n: int) -> int:
    if n > MAX_STRING_LENGTH:
        raise ExpressionRuntimeError(f"String length {n} exceeds limit")
    return n


def _pad(s: str, length, fill, left: bool) -> str:
    target = _bounded(_int_arg(length))
    fill = " " if fill is None else to_str(fill)
    if target <= len(s) or not fill:
        return s
    pad = (fill * (target // len(fill) + 1))[: target - len(s)]
    return pad + s if left else s + pad


def _substring(s: str, start, end=None) -> str:
    a = max(0, min(_int_arg(start), len(s)))
    b = len(s) if end is None else max(0, min(_int_arg(end), len(s)))
    if a > b:
        a, b = b, a
    return s[a:b]


def _split(s: str, sep=None, limit=None):
    if sep is None:
        parts = [s]
    elif sep == "":
        parts = list(s)
    else:
        parts = s.split(to_str(sep))
    return parts if limit is None else parts[: _int_arg(limit)]


def _repeat(s: str, n) -> str:
    count = _int_arg(n)
    if count < 0:
        raise ExpressionRuntimeError(f"Invalid count value: {count}")
    _bounded(len(s) * count)
    return s * count


STRING_METHODS: Dict[str, Callable] = {
    "includes":    lambda s, sub, start=0: to_str(sub) in s[_int_arg(start):],
    "startsWith":  lambda s, sub, start=0: s.startswith(to_str(sub), _int_arg(start)),
    "endsWith":    lambda s, sub, end=None: s[: len(s) if end is None else _int_arg(end)].endswith(to_str(sub)),
    "toUpperCase": lambda s: s.upper(),
    "toLowerCase": lambda s: s.lower(),
    "trim":        lambda s: s.strip(),
    "trimStart":   lambda s: s.lstrip(),
    "trimEnd":     lambda s: s.rstrip(),
    "split":       _split,
    "indexOf":     lambda s, sub, start=0: s.find(to_str(sub), _int_arg(start)),
    "slice":       lambda s, start=0, end=None: s[_int_arg(start): None if end is None else _int_arg(end)],
    "substring":   _substring,
    "replace":     lambda s, old, new: s.replace(to_str(old), to_str(new), 1),
    "replaceAll":  lambda s, old, new: s.replace(to_str(old), to_str(new)),
    "padStart":    lambda s, n, fill=None: _pad(s, n, fill, True),
    "padEnd":      lambda s, n, fill=None: _pad(s, n, fill, False),
    "charAt":      lambda s, i=0: s[_int_arg(i)] if 0 <= _int_arg(i) < len(s) else "",
    "concat":      lambda s, *xs: s + "".join(to_str(x) for x in xs),
    "repeat":      lambda s, n: _repeat(s, n),
    "toString":    lambda s: s,
}


def _same_value_zero(a, b) -> bool:
    if isinstance(a, float) and isinstance(b, float) and math.isnan(a) and math.isnan(b):
        return True
    return strict_eq(a, b)


def _arr_index_of(arr, value, start=0) -> int:
    for i in range(_int_arg(start), len(arr)):
        if strict_eq(arr[i], value):
            return i
    return -1


def _arr_find_index(arr, fn) -> int:
    for i, x in enumerate(arr):
        if truthy(call(fn, x, i, arr)):
            return i
    return -1


def _arr_concat(arr, *others):
    out = list(arr)
    for o in others:
        if isinstance(o, list):
            out.extend(o)
        else:
            out.append(o)
    return out


def _arr_reduce(arr, fn, *initial):
    items = list(arr)
    if initial:
        acc = initial[0]
    elif items:
        acc = items.pop(0)
    else:
        raise ExpressionRuntimeError("Reduce of empty array with no initial value")
    for i, x in enumerate(items):
        acc = call(fn, acc, x, i, arr)
    return acc


def _arr_push(arr, *items) -> int:
    arr.extend(items)
    return len(arr)


def _arr_for_each(arr, fn):
    for i, x in enumerate(list(arr)):
        call(fn, x, i, arr)


ARRAY_METHODS: Dict[str, Callable] = {
    "includes":  lambda arr, v: any(_same_value_zero(x, v) for x in arr),
    "indexOf":   _arr_index_of,
    "join":      lambda arr, sep=",": to_str(sep).join("" if x is None else to_str(x) for x in arr),
    "slice":     lambda arr, start=0, end=None: arr[_int_arg(start): None if end is None else _int_arg(end)],
    "map":       lambda arr, fn: [call(fn, x, i, arr) for i, x in enumerate(arr)],
    "filter":    lambda arr, fn: [x for i, x in enumerate(arr) if truthy(call(fn, x, i, arr))],
    "find":      lambda arr, fn: next((x for i, x in enumerate(arr) if truthy(call(fn, x, i, arr))), None),
    "findIndex": _arr_find_index,
    "some":      lambda arr, fn: any(truthy(call(fn, x, i, arr)) for i, x in enumerate(arr)),
    "every":     lambda arr, fn: all(truthy(call(fn, x, i, arr)) for i, x in enumerate(arr)),
    "concat":    _arr_concat,
    "reduce":    _arr_reduce,
    "forEach":   _arr_for_each,
    "push":      _arr_push,
    "pop":       lambda arr: arr.pop() if arr else None,
    "reverse":   lambda arr: arr.reverse() or arr,
    "toString":  lambda arr: to_str(arr),
}


def _to_fixed(x, digits=0) -> str:
    n = to_number(x)
    d = _int_arg(digits)
    if isinstance(n, float) and not math.isfinite(n):
        return _num_str(n)
    quantum = Decimal(1).scaleb(-d)
    return str(Decimal(n).quantize(quantum, rounding=ROUND_HALF_UP))


NUMBER_METHODS: Dict[str, Callable] = {
    "toFixed":  _to_fixed,
    "toString": lambda n, radix=None: to_str(n),
}


def _has_own(obj, key) -> bool:
    return prop_key(key) in obj


OBJECT_METHODS: Dict[str, Callable] = {
    "hasOwnProperty": _has_own,
    "toString":       lambda obj: "[object Object]",
}


# ---------------- Globals ----------------

class _Math:
    __script_members__ = (
        "PI", "E", "abs", "ceil", "floor", "round", "max", "min",
        "pow", "sqrt", "trunc", "sign", "random", "log",
    )
    PI = math.pi
    E = math.e

    def abs(self, x):
        return abs(to_number(x))

    def ceil(self, x):
        n = to_number(x)
        return n if isinstance(n, float) and not math.isfinite(n) else math.ceil(n)

    def floor(self, x):
        n = to_number(x)
        return n if isinstance(n, float) and not math.isfinite(n) else math.floor(n)

    def round(self, x):
        n = to_number(x)
        return n if isinstance(n, float) and not math.isfinite(n) else math.floor(n + 0.5)

    def trunc(self, x):
        n = to_number(x)
        return n if isinstance(n, float) and not math.isfinite(n) else math.trunc(n)

    def max(self, *xs):
        nums = [to_number(x) for x in xs]
        if any(isinstance(n, float) and math.isnan(n) for n in nums):
            return NAN
        return max(nums) if nums else -INF

    def min(self, *xs):
        nums = [to_number(x) for x in xs]
        if any(isinstance(n, float) and math.isnan(n) for n in nums):
            return NAN
        return min(nums) if nums else INF

    def pow(self, x, y):
        return pow(x, y)

    def sqrt(self, x):
        n = to_number(x)
        return NAN if math.isnan(n) or n < 0 else _norm(math.sqrt(n))

    def sign(self, x):
        n = to_number(x)
        if math.isnan(n):
            return NAN
        return (n > 0) - (n < 0)

    def log(self, x):
        n = to_number(x)
        if math.isnan(n) or n < 0:
            return NAN
        return -INF if n == 0 else math.log(n)

    def random(self):
        return random.random()


def _json_ready(x):
    if isinstance(x, float) and not math.isfinite(x):
        return None
    if isinstance(x, float):
        return _norm(x)
    if isinstance(x, dict):
        return {k: _json_ready(v) for k, v in x.items()}
    if isinstance(x, list):
        return [_json_ready(v) for v in x]
    if isinstance(x, (str, int, bool)) or x is None:
        return x
    return to_str(x)


class _JSON:
    __script_members__ = ("stringify", "parse")

    def stringify(self, value, replacer=None, indent=None):
        if indent is None:
            return json.dumps(_json_ready(value), separators=(",", ":"), ensure_ascii=False)
        return json.dumps(_json_ready(value), indent=_int_arg(indent), ensure_ascii=False)

    def parse(self, text):
        try:
            return json.loads(to_str(text))
        except json.JSONDecodeError as e:
            raise ExpressionRuntimeError(f"JSON.parse: {e.msg}") from e


class _Console:
    __script_members__ = ("log", "info", "warn", "error", "debug")

    def _emit(self, level: str, args):
        getattr(logger, level)(f"[EVAL] console: {' '.join(to_str(a) for a in args)}")

    def log(self, *args):
        self._emit("info", args)

    def info(self, *args):
        self._emit("info", args)

    def warn(self, *args):
        self._emit("warning", args)

    def error(self, *args):
        self._emit("error", args)

    def debug(self, *args):
        self._emit("debug", args)


class _Object:
    __script_members__ = ("keys", "values", "entries", "assign", "fromEntries")

    def keys(self, obj):
        return keys_of(obj)

    def values(self, obj):
        if isinstance(obj, dict):
            return list(obj.values())
        return list(obj) if isinstance(obj, (list, str)) else []

    def entries(self, obj):
        if isinstance(obj, dict):
            return [[k, v] for k, v in obj.items()]
        return [[str(i), v] for i, v in enumerate(obj)] if isinstance(obj, (list, str)) else []

    def assign(self, target, *sources):
        for src in sources:
            if isinstance(src, dict):
                target.update(src)
        return target

    def fromEntries(self, entries):
        return {prop_key(e[0]): (e[1] if len(e) > 1 else None) for e in entries}


class _Array:
    __script_members__ = ("isArray", "of")

    def isArray(self, x):
        return isinstance(x, list)

    def of(self, *xs):
        return list(xs)


def parse_int(x, radix=None):
    s = to_str(x)
    m = _INT_PREFIX_RE.match(s)
    if not m:
        return NAN
    sign, digits = m.groups()
    base = _int_arg(radix, 10) or 10
    if digits[:2].lower() == "0x":
        digits, base = digits[2:], 16
    try:
        value = int(digits, base)
    except ValueError:
        return NAN
    return -value if sign == "-" else value


def parse_float(x):
    m = _FLOAT_PREFIX_RE.match(to_str(x))
    if not m:
        return NAN
    return to_number(m.group(1))


def is_nan(x) -> bool:
    n = to_number(x)
    return isinstance(n, float) and math.isnan(n)


def is_finite(x) -> bool:
    n = to_number(x)
    return not (isinstance(n, float) and not math.isfinite(n))


class _Number:
    __script_members__ = ("isInteger", "isNaN", "isFinite", "parseFloat", "parseInt", "MAX_SAFE_INTEGER")
    MAX_SAFE_INTEGER = 2 ** 53 - 1

    def __call__(self, x=0):
        return to_number(x)

    def isInteger(self, x):
        return is_number(x) and math.isfinite(x) and float(x).is_integer()

    def isNaN(self, x):
        return isinstance(x, float) and math.isnan(x)

    def isFinite(self, x):
        return is_number(x) and math.isfinite(x)

    def parseFloat(self, x):
        return parse_float(x)

    def parseInt(self, x, radix=None):
        return parse_int(x, radix)


class _String:
    __script_members__ = ()
    _EMPTY = object()

    def __call__(self, x=_EMPTY):
        return "" if x is self._EMPTY else to_str(x)


class _Boolean:
    __script_members__ = ()

    def __call__(self, x=None):
        return truthy(x)


GLOBALS: Dict[str, Any] = {
    "Math": _Math(),
    "JSON": _JSON(),
    "console": _Console(),
    "Object": _Object(),
    "Array": _Array(),
    "Number": _Number(),
    "String": _String(),
    "Boolean": _Boolean(),
    "parseInt": parse_int,
    "parseFloat": parse_float,
    "isNaN": is_nan,
    "isFinite": is_finite,
    "NaN": NAN,
    "Infinity": INF,
}


def glob(name, strict=True):
    if name in GLOBALS:
        return GLOBALS[name]
    if name in DSL_FUNCTION_REGISTRY:
        return DSL_FUNCTION_REGISTRY[name]
    if strict:
        raise ExpressionRuntimeError(f"{name} is not defined")
    return None


__all__ = [
    "to_number", "to_str", "truthy", "is_nullish", "typeof", "prop_key",
    "add", "sub", "mul", "div", "mod", "pow", "neg", "pos", "not_",
    "strict_eq", "strict_ne", "loose_eq", "loose_ne", "lt", "le", "gt", "ge",
    "template", "member", "set_member", "call", "call_optional", "invoke",
    "iterate", "keys_of", "new_error", "throw", "glob", "resolve",
]

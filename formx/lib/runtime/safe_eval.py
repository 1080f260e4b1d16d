import ast
import inspect
from functools import lru_cache
from typing import Any, Sequence, Tuple

from formx.core.config import settings
from formx.core.errors import ExpressionError, ExpressionRuntimeError, FormxError
from formx.lib.builtins.registry import DSL_FUNCTION_REGISTRY
from formx.lib.compiler.expr_compiler import (
    FUNCS_NAME,
    RUNTIME_NAME,
    SCRIPT_FUNCTION_NAME,
    compile_script_to_python,
)
from formx.lib.runtime import script_runtime

# ---------------- AST safety ----------------

_ALLOWED_AST = {
    ast.Module, ast.FunctionDef, ast.AsyncFunctionDef, ast.arguments, ast.arg,
    ast.Return, ast.Assign, ast.If, ast.For, ast.Break, ast.Continue, ast.Pass,
    ast.Raise, ast.Expr, ast.Await,
    ast.Call, ast.Name, ast.Load, ast.Store, ast.Constant, ast.List, ast.Dict,
    ast.Lambda, ast.IfExp, ast.NamedExpr, ast.Attribute, ast.Subscript,
}

_RUNTIME_EXPORTS = frozenset(script_runtime.__all__)


def _assert_safe_ast(tree: ast.AST):
    """
    Validate generated code.

    Besides the node whitelist: names are script variables (`v_*`),
    compiler temporaries (`t_*`) or the two injected globals; attributes
    are only read from the runtime module; subscripts only index the
    builtin function registry by a constant name.
    """
    for n in ast.walk(tree):
        if type(n) not in _ALLOWED_AST:
            raise ValueError(f"Disallowed AST node: {type(n).__name__}")
        if isinstance(n, ast.Name):
            if not (n.id.startswith(("v_", "t_")) or (isinstance(n.ctx, ast.Load) and n.id in (RUNTIME_NAME, FUNCS_NAME))):
                raise ValueError(f"Disallowed name: {n.id}")
        elif isinstance(n, ast.Attribute):
            if not (isinstance(n.value, ast.Name) and n.value.id == RUNTIME_NAME and n.attr in _RUNTIME_EXPORTS):
                raise ValueError(f"Disallowed attribute access: .{n.attr}")
        elif isinstance(n, ast.Subscript):
            if not (
                isinstance(n.value, ast.Name)
                and n.value.id == FUNCS_NAME
                and isinstance(n.slice, ast.Constant)
                and n.slice.value in DSL_FUNCTION_REGISTRY
            ):
                raise ValueError("Disallowed subscript")
        elif isinstance(n, ast.Call):
            if not isinstance(n.func, (ast.Attribute, ast.Subscript)):
                raise ValueError("Disallowed call target")
        elif isinstance(n, (ast.FunctionDef, ast.AsyncFunctionDef)):
            if n.name != SCRIPT_FUNCTION_NAME or n.decorator_list:
                raise ValueError(f"Disallowed function definition: {n.name}")


def compile_safe(py_source: str):
    """Compile generated python source after validating its AST."""
    tree = ast.parse(py_source, mode="exec")
    _assert_safe_ast(tree)
    return compile(tree, "<formx_script>", "exec")


safe_globals = {
    "__builtins__": {},
    RUNTIME_NAME: script_runtime,
    FUNCS_NAME: DSL_FUNCTION_REGISTRY,
}


class CompiledScript:
    """A loaded form script. Call `run` / `run_async` with keyword bindings."""

    __slots__ = ("source", "params", "python_source", "is_async", "_fn")

    def __init__(self, source: str, params: Tuple[str, ...], python_source: str, is_async: bool, fn):
        self.source = source
        self.params = params
        self.python_source = python_source
        self.is_async = is_async
        self._fn = fn

    def _args(self, bindings):
        return [bindings.get(p) for p in self.params]

    def run(self, **bindings) -> Any:
        if self.is_async:
            raise ExpressionRuntimeError("Async script cannot be run synchronously", self.source)
        try:
            return self._fn(*self._args(bindings))
        except FormxError:
            raise
        except Exception as exc:
            raise ExpressionRuntimeError(f"{type(exc).__name__}: {exc}", self.source) from exc

    async def run_async(self, **bindings) -> Any:
        try:
            result = self._fn(*self._args(bindings))
            if inspect.isawaitable(result):
                result = await result
            return result
        except FormxError:
            raise
        except Exception as exc:
            raise ExpressionRuntimeError(f"{type(exc).__name__}: {exc}", self.source) from exc

    def __repr__(self):
        return f"CompiledScript({self.source!r}, params={self.params})"


@lru_cache(maxsize=settings.EXPRESSION_CACHE_SIZE)
def _load(source: str, params: Tuple[str, ...], mode: str, allow_await: bool) -> CompiledScript:
    py_source, is_async = compile_script_to_python(source, params, mode, allow_await)
    try:
        code = compile_safe(py_source)
    except (ValueError, SyntaxError) as exc:
        raise ExpressionError(f"Generated code rejected: {exc}", source) from exc
    namespace = dict(safe_globals)
    exec(code, namespace)
    return CompiledScript(source, params, py_source, is_async, namespace[SCRIPT_FUNCTION_NAME])


def load_expression(source: str, params: Sequence[str], allow_await: bool = False) -> CompiledScript:
    return _load(source, tuple(params), "expression", allow_await)


def load_function(source: str, params: Sequence[str], allow_await: bool = False) -> CompiledScript:
    return _load(source, tuple(params), "body", allow_await)


def clear_script_cache():
    _load.cache_clear()

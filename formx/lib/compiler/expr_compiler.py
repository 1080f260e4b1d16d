"""
Compiler for form scripts.

Form authors write a small JavaScript subset: single expressions (conditions,
`renderWhen`, `validateWhen`) and function bodies (`fnSource`, action bodies,
filter transforms). Scripts are compiled to Python source, never executed as
host code directly:

    source text -> tokens -> Python AST -> python source string

Every operator, member access and call in the generated code is routed
through `formx.lib.runtime.script_runtime` (imported as `rt` by the loader),
so JavaScript semantics are applied and the generated tree stays small enough
to audit against the allow-list in `formx.lib.runtime.safe_eval`.

Script parameters and local variables become Python names prefixed `v_`,
compiler temporaries are prefixed `t_`, anything else is a global lookup.
"""
from __future__ import annotations

import ast
import re
from collections import namedtuple
from typing import Iterable, List, Optional, Sequence

from formx.core.errors import ExpressionSyntaxError
from formx.lib.builtins.registry import DSL_FUNCTION_REGISTRY, DSL_FUNCTION_SIG
from formx.lib.runtime.script_runtime import ERROR_TYPES, GLOBALS

SCRIPT_FUNCTION_NAME = "formx_script"
RUNTIME_NAME = "rt"
FUNCS_NAME = "dsl_funcs"

# ---------------- Tokenizer ----------------

Token = namedtuple("Token", "kind value pos nl_before")

_NUMBER_RE = re.compile(r"0[xX][0-9a-fA-F]+|(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
_IDENT_RE = re.compile(r"[^\W\d][\w$]*|\$[\w$]*")

PUNCTUATORS = [
    "===", "!==",
    "**", "?.", "??", "=>", "==", "!=", "<=", ">=", "&&", "||", "+=", "-=", "++", "--",
    "+", "-", "*", "/", "%", "<", ">", "=", "!", "?", ":", ".", ",", ";",
    "(", ")", "[", "]", "{", "}",
]

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}

KEYWORDS = {
    "const", "let", "var", "if", "else", "for", "in", "return", "throw", "new",
    "typeof", "true", "false", "null", "undefined", "await", "break", "continue",
}
UNSUPPORTED = {
    "function", "while", "do", "switch", "case", "default", "try", "catch",
    "finally", "class", "delete", "void", "instanceof", "this", "async", "yield",
}


def _read_escape(source: str, i: int):
    """`i` points just past the backslash; returns (text, next_index)."""
    ch = source[i]
    if ch in _ESCAPES:
        return _ESCAPES[ch], i + 1
    if ch == "u" and re.match(r"[0-9a-fA-F]{4}", source[i + 1:i + 5]):
        return chr(int(source[i + 1:i + 5], 16)), i + 5
    if ch == "x" and re.match(r"[0-9a-fA-F]{2}", source[i + 1:i + 3]):
        return chr(int(source[i + 1:i + 3], 16)), i + 3
    if ch == "\n":
        return "", i + 1
    return ch, i + 1


def _read_string(source: str, start: int, offset: int):
    quote = source[start]
    buf = []
    i = start + 1
    while i < len(source):
        ch = source[i]
        if ch == quote:
            return "".join(buf), i + 1
        if ch == "\n":
            break
        if ch == "\\" and i + 1 < len(source):
            text, i = _read_escape(source, i + 1)
            buf.append(text)
            continue
        buf.append(ch)
        i += 1
    raise ExpressionSyntaxError("Unterminated string literal", source, start + offset)


def _skip_embedded(source: str, start: int, offset: int) -> int:
    """Return the index of the `}` closing a `${` that opened before `start`."""
    depth = 1
    i = start
    while i < len(source):
        ch = source[i]
        if ch in "'\"":
            _, i = _read_string(source, i, offset)
            continue
        if ch == "`":
            _, i = _read_template(source, i, offset)
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    raise ExpressionSyntaxError("Unterminated template expression", source, start + offset)


def _read_template(source: str, start: int, offset: int):
    parts = []
    buf = []
    i = start + 1
    while i < len(source):
        ch = source[i]
        if ch == "`":
            if buf:
                parts.append(("str", "".join(buf), None))
            return parts, i + 1
        if ch == "\\" and i + 1 < len(source):
            text, i = _read_escape(source, i + 1)
            buf.append(text)
            continue
        if source.startswith("${", i):
            if buf:
                parts.append(("str", "".join(buf), None))
                buf = []
            end = _skip_embedded(source, i + 2, offset)
            parts.append(("expr", source[i + 2:end], i + 2 + offset))
            i = end + 1
            continue
        buf.append(ch)
        i += 1
    raise ExpressionSyntaxError("Unterminated template literal", source, start + offset)


def tokenize(source: str, offset: int = 0) -> List[Token]:
    tokens: List[Token] = []
    i, n = 0, len(source)
    nl = False
    while i < n:
        c = source[i]
        if c in " \t\r\ufeff":
            i += 1
            continue
        if c == "\n":
            nl = True
            i += 1
            continue
        if source.startswith("//", i):
            j = source.find("\n", i)
            i = n if j < 0 else j
            continue
        if source.startswith("/*", i):
            j = source.find("*/", i + 2)
            if j < 0:
                raise ExpressionSyntaxError("Unterminated comment", source, i + offset)
            nl = nl or "\n" in source[i:j]
            i = j + 2
            continue

        pos = i + offset
        if c.isdigit() or (c == "." and i + 1 < n and source[i + 1].isdigit()):
            text = _NUMBER_RE.match(source, i).group()
            if text[:2].lower() == "0x":
                value = int(text, 16)
            elif any(ch in text for ch in ".eE"):
                value = float(text)
                value = int(value) if value.is_integer() and abs(value) < 2 ** 53 else value
            else:
                value = int(text)
            tokens.append(Token("NUM", value, pos, nl))
            i += len(text)
        elif c in "'\"":
            value, i = _read_string(source, i, offset)
            tokens.append(Token("STR", value, pos, nl))
        elif c == "`":
            parts, i = _read_template(source, i, offset)
            tokens.append(Token("TEMPLATE", parts, pos, nl))
        elif c.isalpha() or c in "_$":
            text = _IDENT_RE.match(source, i).group()
            tokens.append(Token("IDENT", text, pos, nl))
            i += len(text)
        else:
            for p in PUNCTUATORS:
                if source.startswith(p, i):
                    # `a?.5:b` is a conditional, not optional chaining
                    if p == "?." and i + 2 < n and source[i + 2].isdigit():
                        p = "?"
                    tokens.append(Token("PUNCT", p, pos, nl))
                    i += len(p)
                    break
            else:
                raise ExpressionSyntaxError(f"Unexpected character {c!r}", source, pos)
        nl = False
    tokens.append(Token("EOF", None, n + offset, nl))
    return tokens


# ---------------- AST helpers ----------------

def _const(value) -> ast.AST:
    return ast.Constant(value=value)


def _load(name: str) -> ast.AST:
    return ast.Name(id=name, ctx=ast.Load())


def _store(name: str) -> ast.AST:
    return ast.Name(id=name, ctx=ast.Store())


def _rt(fn: str, *args: ast.AST) -> ast.AST:
    return ast.Call(
        func=ast.Attribute(value=_load(RUNTIME_NAME), attr=fn, ctx=ast.Load()),
        args=list(args),
        keywords=[],
    )


def _is_rt_call(node: ast.AST, fn: str) -> bool:
    return (
        isinstance(node, ast.Call)
        and isinstance(node.func, ast.Attribute)
        and isinstance(node.func.value, ast.Name)
        and node.func.value.id == RUNTIME_NAME
        and node.func.attr == fn
    )


def py_name(name: str) -> str:
    """Python name for a script variable."""
    return "v_" + name.replace("$", "_S")


# ---------------- Parser / code generator ----------------

class _Parser:
    def __init__(self, source: str, params: Sequence[str], allow_await: bool):
        self.source = source
        self.tokens = tokenize(source)
        self.i = 0
        self.scopes: List[set] = [set(params)]
        self.allow_await = allow_await
        self.uses_await = False
        self.arrow_depth = 0
        self.loop_depth = 0
        self.temp_count = 0

    # ----- token helpers -----

    def _peek(self, k: int = 0) -> Token:
        return self.tokens[min(self.i + k, len(self.tokens) - 1)]

    def _next(self) -> Token:
        tok = self.tokens[self.i]
        if tok.kind != "EOF":
            self.i += 1
        return tok

    def _is(self, value: str, k: int = 0) -> bool:
        tok = self._peek(k)
        return tok.kind in ("PUNCT", "IDENT") and tok.value == value

    def _accept(self, value: str) -> bool:
        if self._is(value):
            self._next()
            return True
        return False

    def _expect(self, value: str) -> Token:
        if not self._is(value):
            tok = self._peek()
            found = "end of input" if tok.kind == "EOF" else repr(tok.value)
            raise self._error(f"Expected '{value}' but found {found}", tok)
        return self._next()

    def _error(self, message: str, tok: Optional[Token] = None) -> ExpressionSyntaxError:
        tok = tok or self._peek()
        return ExpressionSyntaxError(message, self.source, tok.pos)

    def _temp(self) -> str:
        self.temp_count += 1
        return f"t_{self.temp_count}"

    def _is_local(self, name: str) -> bool:
        return any(name in scope for scope in self.scopes)

    def _declare(self, name: str) -> ast.AST:
        self.scopes[-1].add(name)
        return _store(py_name(name))

    def _expect_ident(self) -> str:
        tok = self._next()
        if tok.kind != "IDENT" or tok.value in KEYWORDS or tok.value in UNSUPPORTED:
            raise self._error("Expected identifier", tok)
        return tok.value

    # ----- entry points -----

    def parse_expression_script(self) -> List[ast.AST]:
        expr = self.parse_expr()
        self._accept(";")
        if self._peek().kind != "EOF":
            raise self._error(f"Unexpected token {self._peek().value!r}")
        return [ast.Return(value=expr)]

    def parse_body_script(self) -> List[ast.AST]:
        body: List[ast.AST] = []
        while self._peek().kind != "EOF":
            body.extend(self.parse_statement())
        return body

    # ----- statements -----

    def _block_or_statement(self) -> List[ast.AST]:
        body = self.parse_statement()
        return body or [ast.Pass()]

    def _end_statement(self):
        if self._accept(";"):
            return
        tok = self._peek()
        if tok.kind == "EOF" or self._is("}") or tok.nl_before:
            return
        raise self._error(f"Unexpected token {tok.value!r}", tok)

    def parse_statement(self) -> List[ast.AST]:
        tok = self._peek()
        if tok.kind == "IDENT" and tok.value in UNSUPPORTED:
            raise self._error(f"Unsupported syntax '{tok.value}'", tok)

        if self._accept("{"):
            body: List[ast.AST] = []
            while not self._is("}"):
                if self._peek().kind == "EOF":
                    raise self._error("Expected '}' but found end of input")
                body.extend(self.parse_statement())
            self._next()
            return body

        if self._accept(";"):
            return []

        if tok.kind == "IDENT" and tok.value in ("const", "let", "var"):
            return self._parse_declaration()

        if self._accept("if"):
            self._expect("(")
            test = self.parse_expr()
            self._expect(")")
            body = self._block_or_statement()
            orelse = self._block_or_statement() if self._accept("else") else []
            return [ast.If(test=_rt("truthy", test), body=body, orelse=orelse)]

        if self._accept("for"):
            return self._parse_for()

        if self._accept("return"):
            nxt = self._peek()
            if nxt.kind == "EOF" or self._is(";") or self._is("}") or nxt.nl_before:
                value = _const(None)
            else:
                value = self.parse_expr()
            self._end_statement()
            return [ast.Return(value=value)]

        if self._accept("throw"):
            value = self.parse_expr()
            self._end_statement()
            return [ast.Raise(exc=_rt("throw", value), cause=None)]

        if tok.kind == "IDENT" and tok.value in ("break", "continue"):
            self._next()
            if self.loop_depth == 0:
                raise self._error(f"Illegal '{tok.value}' outside a loop", tok)
            self._end_statement()
            return [ast.Break() if tok.value == "break" else ast.Continue()]

        return self._parse_expression_statement()

    def _parse_declaration(self) -> List[ast.AST]:
        kind = self._next().value
        out: List[ast.AST] = []
        while True:
            name_tok = self._peek()
            name = self._expect_ident()
            if self._accept("="):
                value = self.parse_expr()
            elif kind == "const":
                raise self._error("Missing initializer in const declaration", name_tok)
            else:
                value = _const(None)
            out.append(ast.Assign(targets=[self._declare(name)], value=value))
            if not self._accept(","):
                break
        self._end_statement()
        return out

    def _parse_for(self) -> List[ast.AST]:
        self._expect("(")
        if self._peek().kind == "IDENT" and self._peek().value in ("const", "let", "var"):
            self._next()
        name = self._expect_ident()
        if self._accept("in"):
            iterator = "keys_of"
        elif self._is("of"):
            self._next()
            iterator = "iterate"
        else:
            raise self._error("Only 'for (x of items)' and 'for (k in obj)' loops are supported")
        source = self.parse_expr()
        self._expect(")")
        target = self._declare(name)
        self.loop_depth += 1
        try:
            body = self._block_or_statement()
        finally:
            self.loop_depth -= 1
        return [ast.For(target=target, iter=_rt(iterator, source), body=body, orelse=[])]

    def _parse_expression_statement(self) -> List[ast.AST]:
        start = self._peek()
        expr = self.parse_expr()
        tok = self._peek()
        if tok.kind == "PUNCT" and tok.value in ("=", "+=", "-="):
            self._next()
            value = self.parse_expr()
            stmt = self._assignment(expr, tok.value, value, start)
        elif tok.kind == "PUNCT" and tok.value in ("++", "--") and not tok.nl_before:
            self._next()
            stmt = self._assignment(expr, "+=" if tok.value == "++" else "-=", _const(1), start)
        else:
            stmt = ast.Expr(value=expr)
        self._end_statement()
        return [stmt]

    def _assignment(self, target: ast.AST, op: str, value: ast.AST, tok: Token) -> ast.AST:
        combine = {"+=": "add", "-=": "sub"}.get(op)

        if _is_rt_call(target, "glob") and isinstance(target.args[0], ast.Constant):
            # assignment to an undeclared name declares it
            name = target.args[0].value
            if combine:
                raise self._error(f"{name} is not defined", tok)
            return ast.Assign(targets=[self._declare(name)], value=value)

        if isinstance(target, ast.Name) and target.id.startswith("v_"):
            if combine:
                value = _rt(combine, _load(target.id), value)
            return ast.Assign(targets=[_store(target.id)], value=value)

        if _is_rt_call(target, "member"):
            obj, key = target.args[0], target.args[1]
            if combine:
                t_obj, t_key = self._temp(), self._temp()
                obj = ast.NamedExpr(target=_store(t_obj), value=obj)
                key = ast.NamedExpr(target=_store(t_key), value=key)
                value = _rt(combine, _rt("member", _load(t_obj), _load(t_key)), value)
            return ast.Expr(value=_rt("set_member", obj, key, value))

        raise self._error("Invalid assignment target", tok)

    # ----- expressions -----

    def parse_expr(self) -> ast.AST:
        return self._parse_conditional()

    def _parse_conditional(self) -> ast.AST:
        test = self._parse_nullish()
        if self._accept("?"):
            body = self.parse_expr()
            self._expect(":")
            orelse = self.parse_expr()
            return ast.IfExp(test=_rt("truthy", test), body=body, orelse=orelse)
        return test

    def _short_circuit(self, left: ast.AST, right: ast.AST, test_fn: str, keep_left_when: bool) -> ast.AST:
        tmp = self._temp()
        test = _rt(test_fn, ast.NamedExpr(target=_store(tmp), value=left))
        if keep_left_when:
            return ast.IfExp(test=test, body=_load(tmp), orelse=right)
        return ast.IfExp(test=test, body=right, orelse=_load(tmp))

    def _parse_nullish(self) -> ast.AST:
        left = self._parse_or()
        while self._accept("??"):
            right = self._parse_or()
            left = self._short_circuit(left, right, "is_nullish", keep_left_when=False)
        return left

    def _parse_or(self) -> ast.AST:
        left = self._parse_and()
        while self._accept("||"):
            right = self._parse_and()
            left = self._short_circuit(left, right, "truthy", keep_left_when=True)
        return left

    def _parse_and(self) -> ast.AST:
        left = self._parse_equality()
        while self._accept("&&"):
            right = self._parse_equality()
            left = self._short_circuit(left, right, "truthy", keep_left_when=False)
        return left

    _EQUALITY = {"==": "loose_eq", "!=": "loose_ne", "===": "strict_eq", "!==": "strict_ne"}
    _RELATIONAL = {"<": "lt", "<=": "le", ">": "gt", ">=": "ge"}
    _ADDITIVE = {"+": "add", "-": "sub"}
    _MULTIPLICATIVE = {"*": "mul", "/": "div", "%": "mod"}

    def _binary(self, ops: dict, operand) -> ast.AST:
        left = operand()
        while self._peek().kind == "PUNCT" and self._peek().value in ops:
            fn = ops[self._next().value]
            left = _rt(fn, left, operand())
        return left

    def _parse_equality(self) -> ast.AST:
        return self._binary(self._EQUALITY, self._parse_relational)

    def _parse_relational(self) -> ast.AST:
        return self._binary(self._RELATIONAL, self._parse_additive)

    def _parse_additive(self) -> ast.AST:
        return self._binary(self._ADDITIVE, self._parse_multiplicative)

    def _parse_multiplicative(self) -> ast.AST:
        return self._binary(self._MULTIPLICATIVE, self._parse_exponent)

    def _parse_exponent(self) -> ast.AST:
        base = self._parse_unary()
        if self._accept("**"):
            return _rt("pow", base, self._parse_exponent())
        return base

    def _parse_unary(self) -> ast.AST:
        tok = self._peek()
        if self._accept("!"):
            return _rt("not_", self._parse_unary())
        if self._accept("-"):
            return _rt("neg", self._parse_unary())
        if self._accept("+"):
            return _rt("pos", self._parse_unary())
        if self._accept("typeof"):
            operand = self._parse_unary()
            if _is_rt_call(operand, "glob"):
                operand.args.append(_const(False))
            return _rt("typeof", operand)
        if self._accept("await"):
            if not self.allow_await:
                raise self._error("'await' is only valid in action and validation scripts", tok)
            if self.arrow_depth:
                raise self._error("'await' is not allowed inside arrow functions", tok)
            self.uses_await = True
            return ast.Await(value=_rt("resolve", self._parse_unary()))
        return self._parse_postfix()

    def _parse_args(self) -> List[ast.AST]:
        self._expect("(")
        args: List[ast.AST] = []
        while not self._is(")"):
            args.append(self.parse_expr())
            if not self._accept(","):
                break
        self._expect(")")
        return args

    def _property_name(self) -> str:
        tok = self._next()
        if tok.kind != "IDENT":
            raise self._error("Expected property name", tok)
        return tok.value

    def _parse_postfix(self) -> ast.AST:
        if self._is("new"):
            node = self._parse_new()
        else:
            node = self._parse_primary()
        optional = False
        while True:
            if self._accept("."):
                node = self._member_or_invoke(node, _const(self._property_name()), optional)
            elif self._accept("?."):
                optional = True
                if self._is("("):
                    node = _rt("call_optional", node, *self._parse_args())
                elif self._accept("["):
                    key = self.parse_expr()
                    self._expect("]")
                    node = self._member_or_invoke(node, key, optional)
                else:
                    node = self._member_or_invoke(node, _const(self._property_name()), optional)
            elif self._is("[") and not self._peek().nl_before:
                self._next()
                key = self.parse_expr()
                self._expect("]")
                node = self._member_or_invoke(node, key, optional)
            elif self._is("(") and not self._peek().nl_before:
                node = _rt("call", node, *self._parse_args())
            else:
                return node

    def _member_or_invoke(self, obj: ast.AST, key: ast.AST, optional: bool) -> ast.AST:
        if self._is("("):
            return _rt("invoke", obj, key, _const(optional), *self._parse_args())
        return _rt("member", obj, key, _const(optional))

    def _parse_new(self) -> ast.AST:
        self._expect("new")
        tok = self._peek()
        name = self._expect_ident()
        if name not in ERROR_TYPES:
            raise self._error(f"Unsupported constructor '{name}'", tok)
        args = self._parse_args() if self._is("(") else []
        return _rt("new_error", _const(name), *args)

    def _arrow_params_ahead(self) -> bool:
        """True when the `(` at the cursor opens an arrow function parameter list."""
        depth = 0
        k = 0
        while True:
            tok = self._peek(k)
            if tok.kind == "EOF":
                return False
            if tok.kind == "PUNCT" and tok.value in "([{":
                depth += 1
            elif tok.kind == "PUNCT" and tok.value in ")]}":
                depth -= 1
                if depth == 0:
                    return self._is("=>", k + 1)
            k += 1

    def _parse_arrow(self, params: List[str]) -> ast.AST:
        tok = self._expect("=>")
        if self._is("{"):
            raise self._error("Arrow functions must have an expression body", tok)
        self.scopes.append(set(params))
        self.arrow_depth += 1
        try:
            body = self.parse_expr()
        finally:
            self.arrow_depth -= 1
            self.scopes.pop()
        args = ast.arguments(
            posonlyargs=[],
            args=[ast.arg(arg=py_name(p), annotation=None) for p in params],
            vararg=ast.arg(arg="t_rest", annotation=None),
            kwonlyargs=[],
            kw_defaults=[],
            kwarg=None,
            defaults=[_const(None) for _ in params],
        )
        return ast.Lambda(args=args, body=body)

    def _parse_primary(self) -> ast.AST:
        tok = self._next()

        if tok.kind == "NUM":
            return _const(tok.value)
        if tok.kind == "STR":
            return _const(tok.value)
        if tok.kind == "TEMPLATE":
            return self._template(tok.value)

        if tok.kind == "IDENT":
            name = tok.value
            if name == "true":
                return _const(True)
            if name == "false":
                return _const(False)
            if name in ("null", "undefined"):
                return _const(None)
            if name in KEYWORDS or name in UNSUPPORTED:
                raise self._error(f"Unexpected keyword '{name}'", tok)
            if self._is("=>"):
                return self._parse_arrow([name])
            if self._is_local(name):
                return _load(py_name(name))
            if name in DSL_FUNCTION_REGISTRY and name not in GLOBALS and self._is("("):
                return self._builtin_call(name, tok)
            return _rt("glob", _const(name))

        if tok.kind == "PUNCT":
            if tok.value == "(":
                self.i -= 1
                if self._arrow_params_ahead():
                    self._next()
                    params: List[str] = []
                    while not self._is(")"):
                        params.append(self._expect_ident())
                        if not self._accept(","):
                            break
                    self._expect(")")
                    return self._parse_arrow(params)
                self._next()
                expr = self.parse_expr()
                self._expect(")")
                return expr
            if tok.value == "[":
                items: List[ast.AST] = []
                while not self._is("]"):
                    items.append(self.parse_expr())
                    if not self._accept(","):
                        break
                self._expect("]")
                return ast.List(elts=items, ctx=ast.Load())
            if tok.value == "{":
                return self._object_literal()

        found = "end of input" if tok.kind == "EOF" else repr(tok.value)
        raise self._error(f"Unexpected {found}", tok)

    def _builtin_call(self, name: str, tok: Token) -> ast.AST:
        args = self._parse_args()
        min_args, max_args = DSL_FUNCTION_SIG[name]
        if len(args) < min_args or (max_args is not None and len(args) > max_args):
            expected = f"{min_args}" if min_args == max_args else f"{min_args}..{max_args or 'n'}"
            raise self._error(f"{name}() takes {expected} arguments, got {len(args)}", tok)
        return ast.Call(
            func=ast.Subscript(value=_load(FUNCS_NAME), slice=_const(name), ctx=ast.Load()),
            args=args,
            keywords=[],
        )

    def _object_literal(self) -> ast.AST:
        keys: List[ast.AST] = []
        values: List[ast.AST] = []
        while not self._is("}"):
            tok = self._next()
            if tok.kind == "IDENT":
                key = _const(tok.value)
                if not self._is(":"):
                    # shorthand {name}
                    self.i -= 1
                    keys.append(key)
                    values.append(self._parse_primary())
                    if not self._accept(","):
                        break
                    continue
            elif tok.kind == "STR":
                key = _const(tok.value)
            elif tok.kind == "NUM":
                key = _const(str(tok.value))
            elif tok.kind == "PUNCT" and tok.value == "[":
                key = _rt("prop_key", self.parse_expr())
                self._expect("]")
            else:
                raise self._error("Expected property name", tok)
            self._expect(":")
            keys.append(key)
            values.append(self.parse_expr())
            if not self._accept(","):
                break
        self._expect("}")
        return ast.Dict(keys=keys, values=values)

    def _template(self, parts) -> ast.AST:
        args: List[ast.AST] = []
        for kind, text, offset in parts:
            if kind == "str":
                args.append(_const(text))
            else:
                args.append(self._parse_embedded(text, offset))
        return _rt("template", *args)

    def _parse_embedded(self, text: str, offset: int) -> ast.AST:
        saved = (self.tokens, self.i)
        self.tokens, self.i = tokenize(text, offset), 0
        try:
            expr = self.parse_expr()
            if self._peek().kind != "EOF":
                raise self._error(f"Unexpected token {self._peek().value!r}")
        finally:
            self.tokens, self.i = saved
        return expr


# ---------------- Public API ----------------

def _build_module(body: List[ast.AST], params: Iterable[str], is_async: bool) -> str:
    signature = ", ".join(f"{py_name(p)}=None" for p in params)
    prefix = "async def" if is_async else "def"
    module = ast.parse(f"{prefix} {SCRIPT_FUNCTION_NAME}({signature}):\n    pass\n")
    module.body[0].body = body or [ast.Pass()]
    ast.fix_missing_locations(module)
    return ast.unparse(module)


def compile_script_to_python(
    source: str,
    params: Sequence[str],
    mode: str = "expression",
    allow_await: bool = False,
):
    """
    Compile a form script to python source defining `formx_script(...)`.

    Args:
        source: script text
        params: names bound as function parameters (e.g. "data", "parentData")
        mode: "expression" for a single expression, "body" for a function body
        allow_await: permit `await` (the generated function becomes async)

    Returns:
        (python_source, is_async)
    """
    if not isinstance(source, str) or not source.strip():
        raise ExpressionSyntaxError("Empty script", source if isinstance(source, str) else None)
    for p in params:
        if not _IDENT_RE.fullmatch(p):
            raise ValueError(f"Invalid script parameter name: {p!r}")

    parser = _Parser(source, params, allow_await)
    if mode == "expression":
        body = parser.parse_expression_script()
    elif mode == "body":
        body = parser.parse_body_script()
    else:
        raise ValueError(f"Unknown script mode: {mode!r}")

    return _build_module(body, params, parser.uses_await), parser.uses_await

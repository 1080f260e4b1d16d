"""
Declarative field validation.

A component's `schema` prop lists rules (`{key, args, message, validateWhen}`).
`build_schema` turns the rules that apply to a value type into an ordered list
of pydantic `TypeAdapter` checks; `validate` runs all of them and collects
every failing message.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, Callable, List, Mapping, Optional, Sequence, Union
from uuid import UUID

from pydantic import (
    AfterValidator,
    AllowInfNan,
    AnyUrl,
    EmailStr,
    Field,
    IPvAnyAddress,
    Strict,
    TypeAdapter,
    ValidationError,
)

from formx.core.errors import FormxError
from formx.core.logging import get_logger
from formx.lib.computed import EVAL_PARAMS, eval_bindings
from formx.lib.dependencies import UNSET, DependencyContext, DependencyEvaluator
from formx.lib.runtime import script_runtime as rt
from formx.lib.runtime.safe_eval import load_expression, load_function
from formx.lib.schemas import ValidationResult, ValidationRule, ValidationSchema
from formx.validation.messages import default_message

logger = get_logger(__name__)

DATA_TYPES = ("string", "number", "boolean", "date", "array", "object")

CUSTOM_RULE_PARAMS = ("value", "data")

_DateLike = Union[datetime, date]

_BASE_TYPES = {
    "string": Annotated[str, Strict()],
    "number": Annotated[float, Strict(), AllowInfNan(False)],
    "boolean": Annotated[bool, Strict()],
    "date": _DateLike,
    "array": Annotated[list, Strict()],
    "object": Annotated[dict, Strict()],
}


# ---------------- Helpers ----------------

def _as_datetime(value: Any) -> datetime:
    """Naive UTC datetime for ordering mixed date / aware / naive values."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    return datetime(value.year, value.month, value.day)


_date_adapter = TypeAdapter(_DateLike)


def _parse_date(raw: Any) -> datetime:
    return _as_datetime(_date_adapter.validate_python(raw))


def _number_arg(args: Mapping[str, Any], name: str, default=None):
    raw = args.get(name)
    if not raw:
        return default
    n = rt.to_number(raw)
    return default if n != n else n


def _fmt(value: Any) -> str:
    return rt.to_str(value)


def _predicate(fn: Callable[[Any], bool]):
    def check(v):
        if not fn(v):
            raise ValueError("rule failed")
        return v
    return AfterValidator(check)


def _is_multiple(value: float, step: float) -> bool:
    try:
        return Decimal(str(value)) % Decimal(str(step)) == 0
    except (InvalidOperation, ArithmeticError):
        return False


def _is_iso_datetime(s: str) -> bool:
    if "T" not in s:
        return False
    try:
        datetime.fromisoformat(s.replace("Z", "+00:00"))
        return True
    except ValueError:
        return False


# ---------------- Schema ----------------

@dataclass
class RuleCheck:
    key: str
    adapter: TypeAdapter
    message: str

    def run(self, value: Any) -> Optional[str]:
        try:
            self.adapter.validate_python(value)
        except ValidationError:
            return self.message
        return None


@dataclass
class CustomRule:
    body: str
    message: Optional[str] = None

    async def run(self, value: Any, data: Mapping[str, Any]) -> Optional[str]:
        try:
            result = await load_function(self.body, CUSTOM_RULE_PARAMS, allow_await=True).run_async(value=value, data=data)
        except FormxError as e:
            logger.warning(f"[VALIDATE] Custom rule failed: {e}")
            return self.message or str(e)
        if result is None or result is True:
            return None
        if isinstance(result, str):
            return self.message or result
        if not rt.truthy(result):
            return self.message or default_message("custom", "")
        return None


@dataclass
class ValidatorSchema:
    data_type: str
    base: TypeAdapter
    required_message: Optional[str] = None
    checks: List[RuleCheck] = field(default_factory=list)
    custom: List[CustomRule] = field(default_factory=list)

    @property
    def required(self) -> bool:
        return self.required_message is not None


def _rule_type(key: str, data_type: str, args: Mapping[str, Any]):
    """(annotated type, message args) for a rule, or None when it does not apply to `data_type`."""
    if key in ("min", "max") and data_type == "date":
        try:
            bound = _parse_date(args["limit"]) if args.get("limit") else _as_datetime(datetime.now(timezone.utc))
        except ValidationError:
            logger.warning(f"[VALIDATE] Ignoring date rule with invalid limit {args.get('limit')!r}")
            return None
        op = (lambda v: _as_datetime(v) >= bound) if key == "min" else (lambda v: _as_datetime(v) <= bound)
        return Annotated[_DateLike, _predicate(op)], {"limit": bound.isoformat()}

    if key == "min":
        limit = _number_arg(args, "limit", 0)
        if data_type == "string":
            return Annotated[str, Field(min_length=int(limit))], {"limit": _fmt(args.get("limit"))}
        if data_type == "number":
            return Annotated[float, Field(ge=limit)], {"limit": _fmt(args.get("limit"))}
        if data_type == "array":
            return Annotated[list, Field(min_length=int(limit))], {"limit": _fmt(args.get("limit"))}
        return None

    if key == "max":
        limit = _number_arg(args, "limit")
        if limit is None or data_type not in ("string", "number", "array"):
            return None
        if data_type == "number":
            return Annotated[float, Field(le=limit)], {"limit": _fmt(args.get("limit"))}
        tp = str if data_type == "string" else list
        return Annotated[tp, Field(max_length=int(limit))], {"limit": _fmt(args.get("limit"))}

    if key == "length" and data_type in ("string", "array"):
        n = int(_number_arg(args, "limit", 0))
        tp = str if data_type == "string" else list
        return Annotated[tp, Field(min_length=n, max_length=n)], {"limit": _fmt(args.get("limit"))}

    if data_type == "string":
        value = args.get("value") or ""
        if key == "regex":
            try:
                pattern = re.compile(args.get("pattern") or "")
            except re.error:
                logger.warning(f"[VALIDATE] Ignoring invalid regex {args.get('pattern')!r}")
                return None
            return Annotated[str, _predicate(lambda s: pattern.search(s) is not None)], {}
        if key == "email":
            return EmailStr, {}
        if key == "url":
            return AnyUrl, {}
        if key == "uuid":
            return UUID, {}
        if key == "ip":
            return IPvAnyAddress, {}
        if key == "datetime":
            return Annotated[str, _predicate(_is_iso_datetime)], {}
        if key == "includes":
            return Annotated[str, _predicate(lambda s: value in s)], {"value": value}
        if key == "startsWith":
            return Annotated[str, _predicate(lambda s: s.startswith(value))], {"value": value}
        if key == "endsWith":
            return Annotated[str, _predicate(lambda s: s.endswith(value))], {"value": value}

    if data_type == "number":
        if key == "lessThan":
            return Annotated[float, Field(lt=_number_arg(args, "limit", 0))], {"limit": _fmt(args.get("limit"))}
        if key == "moreThan":
            return Annotated[float, Field(gt=_number_arg(args, "limit", 0))], {"limit": _fmt(args.get("limit"))}
        if key == "integer":
            return Annotated[float, _predicate(lambda v: float(v).is_integer())], {}
        if key == "multipleOf":
            step = _number_arg(args, "value", 1)
            return Annotated[float, _predicate(lambda v: _is_multiple(v, step))], {"value": _fmt(args.get("value"))}

    return None


def build_schema(rules: Sequence[Union[ValidationRule, Mapping, str]], data_type: str = "string") -> ValidatorSchema:
    """Compile rules into checks for `data_type`; rules that do not apply to the type are skipped."""
    if data_type not in DATA_TYPES:
        data_type = "string"
    schema = ValidatorSchema(data_type=data_type, base=TypeAdapter(_BASE_TYPES[data_type]))

    for raw in rules:
        rule = raw if isinstance(raw, ValidationRule) else ValidationRule.model_validate(raw)
        if rule.key == "required":
            schema.required_message = rule.message or default_message("required", data_type)
            continue
        if rule.key == "custom":
            body = rule.args.get("body") or rule.args.get("fnSource")
            if body:
                schema.custom.append(CustomRule(body, rule.message))
            continue

        built = _rule_type(rule.key, data_type, rule.args)
        if built is None:
            logger.debug(f"[VALIDATE] Rule '{rule.key}' does not apply to {data_type}")
            continue
        tp, message_args = built
        message = rule.message or default_message(rule.key, data_type, **message_args)
        schema.checks.append(RuleCheck(rule.key, TypeAdapter(tp), message))

    return schema


# ---------------- Validation ----------------

def parse_validation_schema(raw: Any) -> ValidationSchema:
    if isinstance(raw, ValidationSchema):
        return raw
    if isinstance(raw, dict) and set(raw) == {"value"}:
        raw = raw["value"]
    return ValidationSchema.model_validate(raw)


def rule_applies(rule: ValidationRule, form_data: Optional[Mapping[str, Any]]) -> bool:
    """Evaluate a rule's `validateWhen` gate. A gate that cannot be evaluated keeps the rule."""
    gate = rule.validate_when
    if gate is None or gate == "":
        return True
    if isinstance(gate, str):
        try:
            return rt.truthy(load_expression(gate, EVAL_PARAMS).run(**eval_bindings(form_data)))
        except FormxError as e:
            logger.warning(f"[VALIDATE] validateWhen failed, keeping rule '{rule.key}': {e}")
            return True
    raw = DependencyEvaluator(form_mode=True).evaluate_condition(gate, DependencyContext(dict(form_data or {})))
    return True if raw is UNSET else rt.truthy(raw)


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, (list, dict)) and not value)


async def validate(
    value: Any,
    schema: Any,
    data_type: str = "string",
    form_data: Optional[Mapping[str, Any]] = None,
) -> ValidationResult:
    """
    Validate `value` against a rule list.

    All failing messages are returned. None fails only the `required`
    rule and skips the rest, as does a blank value of the wrong base type
    (`""` for a number). A blank value of the right type (`""` for a
    string, `[]` for an array) runs every rule after the required message.
    Any other value of the wrong base type reports a single type error.
    """
    rules = [r for r in parse_validation_schema(schema).validations if rule_applies(r, form_data)]
    built = build_schema(rules, data_type)

    blank = _is_blank(value)
    try:
        built.base.validate_python(value)
        base_ok = True
    except ValidationError:
        base_ok = False

    if value is None or (blank and not base_ok):
        if built.required:
            return ValidationResult(success=False, errors=[built.required_message])
        return ValidationResult(success=True)
    if not base_ok:
        message = default_message("type", built.data_type, expected=built.data_type, received=rt.typeof(value))
        return ValidationResult(success=False, errors=[message])

    errors = [built.required_message] if (blank and built.required) else []
    errors += [m for m in (check.run(value) for check in built.checks) if m]
    for custom in built.custom:
        message = await custom.run(value, form_data or {})
        if message:
            errors.append(message)

    if errors:
        logger.debug(f"[VALIDATE] {len(errors)} error(s) for value {value!r}")
    return ValidationResult(success=not errors, errors=errors)


async def get_validation_errors(
    value: Any,
    schema: Any,
    data_type: str = "string",
    form_data: Optional[Mapping[str, Any]] = None,
) -> List[str]:
    if schema is None:
        return []
    result = await validate(value, schema, data_type, form_data)
    return [] if result.success else result.errors

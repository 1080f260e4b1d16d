"""
Per-component dependency evaluation.

A component's `props.dependencies` block ties its derived state (enablement,
visibility, required flag, label/placeholder/value/options, cascading filter
parameters) to other fields of the form data. Evaluation is a pure function
of the data context; write-backs (computed values, resetOn clears) are
returned to the caller rather than applied here.
"""
from __future__ import annotations

import copy
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from formx.core.config import settings
from formx.core.errors import FormxError
from formx.core.logging import get_logger
from formx.lib.computed import EVAL_PARAMS, eval_bindings, extract_field_refs, run_function_body
from formx.lib.runtime import script_runtime as rt
from formx.lib.runtime.safe_eval import load_expression, load_function
from formx.lib.schemas import (
    ComponentDependencies,
    ComputedPropertySpec,
    DependencyCondition,
    DependencyResult,
    FilterDependency,
)

logger = get_logger(__name__)

TRANSFORM_PARAMS = ("value", "data")

CONDITION_KEYS = ("disabled", "enabled", "visible", "required")
COMPUTED_KEYS = ("label", "placeholder", "value", "options")

_TEMPLATE_RE = re.compile(r"\{([^}]+)\}")
_TEMPLATE_FIELD_RE = re.compile(r"\{(?:data\.)?(\w+)")

# Marks a condition whose evaluation failed and that has no default
UNSET = object()


def get_nested_value(obj: Any, path: str) -> Any:
    """`address.city` -> obj["address"]["city"]; None when any step is missing."""
    if not path:
        return None
    value = obj
    for key in path.split("."):
        if value is None:
            return None
        if isinstance(value, Mapping):
            value = value.get(key)
        elif isinstance(value, list):
            try:
                value = value[int(key)]
            except (ValueError, IndexError):
                return None
        else:
            return None
    return value


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and value.strip() == "":
        return True
    if isinstance(value, list) and not value:
        return True
    return False


def _contains(container: Any, item: Any) -> Optional[bool]:
    if isinstance(container, list):
        return any(rt.strict_eq(x, item) for x in container)
    if isinstance(container, str):
        return rt.to_str(item) in container
    return None


def _compare_field(field_value: Any, operator: Optional[str], compare: Any) -> bool:
    if operator == "equals":
        return rt.strict_eq(field_value, compare)
    if operator == "notEquals":
        return rt.strict_ne(field_value, compare)
    if operator == "contains":
        return bool(_contains(field_value, compare))
    if operator == "notContains":
        found = _contains(field_value, compare)
        return True if found is None else not found
    if operator == "gt":
        return rt.gt(rt.to_number(field_value), rt.to_number(compare))
    if operator == "gte":
        return rt.ge(rt.to_number(field_value), rt.to_number(compare))
    if operator == "lt":
        return rt.lt(rt.to_number(field_value), rt.to_number(compare))
    if operator == "lte":
        return rt.le(rt.to_number(field_value), rt.to_number(compare))
    if operator == "empty":
        return is_empty(field_value)
    if operator == "notEmpty":
        return not is_empty(field_value)
    if operator == "in":
        return isinstance(compare, list) and bool(_contains(compare, field_value))
    if operator == "notIn":
        return not (isinstance(compare, list) and _contains(compare, field_value))
    # no operator: the field just has to hold something
    return not is_empty(field_value)


@dataclass
class DependencyContext:
    data: Dict[str, Any]
    parent_data: Optional[Dict[str, Any]] = None
    root_data: Optional[Dict[str, Any]] = None
    current_data_key: Optional[str] = None

    def bindings(self) -> Dict[str, Any]:
        return eval_bindings(self.data, self.parent_data, self.root_data)


_BLOCK_KEYS = set(CONDITION_KEYS) | set(COMPUTED_KEYS) | {"filterBy", "resetOn"}


def _is_wrapped_block(inner: Any) -> bool:
    # `{value: {...}}` is also a block holding only a computed `value` spec
    return isinstance(inner, dict) and bool(inner) and set(inner) <= _BLOCK_KEYS


def parse_dependencies(raw: Any) -> Optional[ComponentDependencies]:
    """Coerce a `dependencies` prop into its model; malformed blocks are dropped with a warning."""
    if raw is None or isinstance(raw, ComponentDependencies):
        return raw
    if isinstance(raw, dict) and len(raw) == 1 and _is_wrapped_block(raw.get("value")):
        raw = raw["value"]
    if not raw:
        return None
    try:
        return ComponentDependencies.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"[DEPENDENCY] Ignoring malformed dependencies block: {e.error_count()} error(s)")
        return None


class DependencyEvaluator:
    def __init__(self, form_mode: Optional[bool] = None):
        self.form_mode = settings.FORM_MODE if form_mode is None else form_mode

    # ---------------- Conditions ----------------

    def evaluate_condition(self, condition: Union[DependencyCondition, Mapping, None], context: DependencyContext) -> Any:
        """
        Evaluate one condition to its raw result.

        Returns the condition's `default` when evaluation fails, or `UNSET`
        when it fails and has no default.
        """
        if condition is None:
            return UNSET
        if not isinstance(condition, DependencyCondition):
            condition = DependencyCondition.model_validate(condition)

        fallback = condition.default if condition.has_default else UNSET
        try:
            if condition.type == "expression":
                if not condition.expression:
                    return None
                return load_expression(condition.expression, EVAL_PARAMS).run(**context.bindings())
            if condition.type == "fieldValue":
                field_value = get_nested_value(context.data, condition.field or "")
                return _compare_field(field_value, condition.operator, condition.value)
            if condition.type == "function":
                if not condition.fn_source:
                    return None
                return run_function_body(condition.fn_source, context.bindings())
        except FormxError as e:
            logger.warning(
                f"[DEPENDENCY] Condition '{condition.type}' failed: {e} | source={getattr(e, 'source', None)!r}"
            )
            return fallback
        return fallback

    # ---------------- Computed specs ----------------

    def evaluate_computed(self, spec: Union[ComputedPropertySpec, Mapping, None], context: DependencyContext) -> Any:
        if spec is None:
            return None
        if not isinstance(spec, ComputedPropertySpec):
            spec = ComputedPropertySpec.model_validate(spec)

        try:
            if spec.type == "expression":
                if not spec.expression:
                    return None
                return load_expression(spec.expression, EVAL_PARAMS).run(**context.bindings())
            if spec.type == "function":
                if not spec.fn_source:
                    return None
                return run_function_body(spec.fn_source, context.bindings())
            if spec.type == "template":
                return self.render_template(spec.template or "", context.data)
        except FormxError as e:
            logger.warning(f"[DEPENDENCY] Computed '{spec.type}' failed: {e}")
            return spec.default
        return spec.default

    @staticmethod
    def render_template(template: str, data: Mapping[str, Any]) -> str:
        """Fill `{data.path}` placeholders; missing values render empty."""
        def _sub(m):
            path = re.sub(r"^data\.", "", m.group(1).strip())
            value = get_nested_value(data, path)
            return "" if value is None else rt.to_str(value)

        return _TEMPLATE_RE.sub(_sub, template)

    # ---------------- Filters ----------------

    def build_filter_params(self, filters: Iterable[FilterDependency], data: Mapping[str, Any]) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        for f in filters:
            source_value = get_nested_value(data, f.source_field)
            if source_value is None or source_value == "":
                continue
            final_value = source_value
            if f.transform:
                try:
                    final_value = load_function(f.transform, TRANSFORM_PARAMS).run(value=source_value, data=data)
                except FormxError as e:
                    logger.warning(f"[DEPENDENCY] Filter transform for '{f.target_param}' failed: {e}")
                    final_value = source_value
            params[f.target_param] = final_value
        return params

    # ---------------- Whole block ----------------

    def evaluate_all_dependencies(
        self,
        dependencies: Union[ComponentDependencies, Mapping, None],
        context: DependencyContext,
    ) -> DependencyResult:
        """
        Evaluate every entry of a dependencies block.

        Keys whose condition failed without a default stay None. When both
        `disabled` and `enabled` are present, `disabled` decides.
        """
        deps = parse_dependencies(dependencies)
        result = DependencyResult()
        if deps is None or not self.form_mode:
            return result

        for key in CONDITION_KEYS:
            condition = getattr(deps, key)
            if condition is None:
                continue
            raw = self.evaluate_condition(condition, context)
            if raw is not UNSET:
                setattr(result, key, rt.truthy(raw))

        if deps.disabled is None and result.enabled is not None:
            result.disabled = not result.enabled

        for key in COMPUTED_KEYS:
            spec = getattr(deps, key)
            if spec is not None:
                setattr(result, key, self.evaluate_computed(spec, context))

        if deps.filter_by is not None:
            result.filter_params = self.build_filter_params(deps.filters, context.data)

        return result

    @staticmethod
    def extract_dependent_fields(dependencies: Union[ComponentDependencies, Mapping, None]) -> List[str]:
        """Every top-level field name the block reads, in first-seen order."""
        deps = parse_dependencies(dependencies)
        if deps is None:
            return []

        fields: List[str] = []

        def add(*names):
            for name in names:
                if name and name not in fields:
                    fields.append(name)

        for key in CONDITION_KEYS:
            condition = getattr(deps, key)
            if condition is None:
                continue
            if condition.field:
                add(condition.field.split(".")[0])
            add(*extract_field_refs(condition.expression or ""))
            add(*extract_field_refs(condition.fn_source or ""))

        for key in COMPUTED_KEYS:
            spec = getattr(deps, key)
            if spec is None:
                continue
            add(*extract_field_refs(spec.expression or ""))
            add(*extract_field_refs(spec.fn_source or ""))
            add(*_TEMPLATE_FIELD_RE.findall(spec.template or ""))

        add(*deps.reset_on)
        add(*(f.source_field.split(".")[0] for f in deps.filters))
        return fields


@dataclass
class ResetCheck:
    """Outcome of comparing the watched fields against the last snapshot."""

    reset: bool
    changed: List[str]
    snapshot: Dict[str, Any]


def _watched_value_changed(before: Any, after: Any) -> bool:
    # snapshots are deep copies, so containers compare by content
    if isinstance(before, (list, dict)) and isinstance(after, (list, dict)):
        return before != after
    return rt.strict_ne(before, after)


class ResetTracker:
    """
    Watches the fields a component lists in `resetOn`.

    `check(data)` compares the watched values against the previous
    snapshot without touching it; `advance(snapshot)` records a snapshot
    once the caller has applied the outcome. `should_reset(data)` does
    both. The first check only yields a snapshot. The component's own key
    is never watched, so the clear it causes cannot re-trigger it.
    """

    def __init__(self, data_key: Optional[str], reset_on: Iterable[str]):
        self.data_key = data_key
        self.watched = [f for f in reset_on if f and f != data_key]
        self._previous: Optional[Dict[str, Any]] = None
        self.last_changed: List[str] = []

    def _snapshot(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        return {f: copy.deepcopy(data.get(f)) for f in self.watched}

    def check(self, data: Mapping[str, Any]) -> ResetCheck:
        current = self._snapshot(data)
        previous = self._previous
        if previous is None or not self.data_key:
            return ResetCheck(False, [], current)

        changed = [f for f in self.watched if _watched_value_changed(previous.get(f), current.get(f))]
        bound = data.get(self.data_key)
        return ResetCheck(bool(changed) and bound is not None and bound != "", changed, current)

    def advance(self, snapshot: Dict[str, Any], changed: Optional[List[str]] = None):
        self._previous = snapshot
        self.last_changed = list(changed or [])

    def should_reset(self, data: Mapping[str, Any]) -> bool:
        outcome = self.check(data)
        self.advance(outcome.snapshot, outcome.changed)
        return outcome.reset

    def reset(self):
        self._previous = None
        self.last_changed = []

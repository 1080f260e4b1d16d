from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional

from formx.core.config import settings
from formx.core.errors import FormxError
from formx.core.logging import get_logger
from formx.lib.localization import Localizer
from formx.lib.runtime.safe_eval import load_function

logger = get_logger(__name__)

# Bindings every data-context script receives, in parameter order
EVAL_PARAMS = ("formData", "data", "parentData", "rootData")

# Advisory only: `data[expr]` and aliased references are not detected
_DEPENDENCY_RE = re.compile(r"formData\.(\w+)|data\.(\w+)")

STATIC, FUNCTION, LOCALIZATION = "static", "function", "localization"


def is_computed_property(value: Any) -> bool:
    """
    True for a `{computeType, fnSource, value}` record or a bare `{value}`
    static wrapper. Any other dict, even one with a `value` key, is a
    literal prop value.
    """
    if not isinstance(value, dict):
        return False
    return "computeType" in value or "fnSource" in value or set(value) == {"value"}


def property_kind(prop: Mapping[str, Any]) -> str:
    compute_type = prop.get("computeType")
    if not compute_type:
        return STATIC
    compute_type = str(compute_type).lower()
    if compute_type == FUNCTION:
        return FUNCTION
    if compute_type == LOCALIZATION:
        return LOCALIZATION
    return STATIC


def eval_bindings(data: Optional[Mapping[str, Any]], parent_data=None, root_data=None) -> Dict[str, Any]:
    data = data if data is not None else {}
    return {
        "formData": data,
        "data": data,
        "parentData": parent_data if parent_data is not None else {},
        "rootData": root_data if root_data is not None else data,
    }


def run_function_body(fn_source: str, bindings: Mapping[str, Any], params=EVAL_PARAMS) -> Any:
    """Run a function body; raises FormxError subclasses on failure."""
    return load_function(fn_source, params).run(**bindings)


class ComputedPropertyEvaluator:
    def __init__(self, localizer: Optional[Localizer] = None):
        self.localizer = localizer

    def evaluate(
        self,
        prop: Any,
        data: Optional[Mapping[str, Any]] = None,
        parent_data: Optional[Mapping[str, Any]] = None,
        root_data: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """
        Resolve a single property against a data context.

        Literal (unwrapped) values pass through. Function failures are logged
        and yield None.
        """
        if prop is None:
            return None
        if not is_computed_property(prop):
            return prop

        kind = property_kind(prop)
        if kind == FUNCTION and prop.get("fnSource"):
            return self._evaluate_function(prop["fnSource"], eval_bindings(data, parent_data, root_data))
        if kind == LOCALIZATION:
            return self._evaluate_localization(prop, data or {})
        return prop.get("value")

    def _evaluate_function(self, fn_source: str, bindings: Mapping[str, Any]) -> Any:
        try:
            return run_function_body(fn_source, bindings)
        except FormxError as e:
            logger.warning(f"[EVAL] Computed property failed: {e} | source={fn_source!r}")
            return None

    def _evaluate_localization(self, prop: Mapping[str, Any], data: Mapping[str, Any]) -> str:
        key = prop.get("value")
        if not key:
            return ""
        locale = data.get("_locale") or settings.DEFAULT_LOCALE
        if self.localizer is None:
            return str(key)
        return self.localizer.resolve(str(key), locale)

    def evaluate_props(
        self,
        props: Mapping[str, Any],
        data: Optional[Mapping[str, Any]] = None,
        parent_data: Optional[Mapping[str, Any]] = None,
        root_data: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        return {k: self.evaluate(v, data, parent_data, root_data) for k, v in (props or {}).items()}

    @staticmethod
    def get_dependencies(prop: Any) -> List[str]:
        """Field names a Function property reads via `data.x` / `formData.x`."""
        if not isinstance(prop, dict) or property_kind(prop) != FUNCTION or not prop.get("fnSource"):
            return []
        return extract_field_refs(prop["fnSource"])


def extract_field_refs(source: str) -> List[str]:
    seen: List[str] = []
    for m in _DEPENDENCY_RE.finditer(source or ""):
        name = m.group(1) or m.group(2)
        if name not in seen:
            seen.append(name)
    return seen

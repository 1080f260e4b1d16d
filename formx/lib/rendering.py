from typing import Any, Mapping, Optional

from formx.core.errors import FormxError
from formx.core.logging import get_logger
from formx.lib.computed import (
    EVAL_PARAMS,
    FUNCTION,
    ComputedPropertyEvaluator,
    eval_bindings,
    is_computed_property,
    property_kind,
    run_function_body,
)
from formx.lib.runtime import script_runtime as rt
from formx.lib.runtime.safe_eval import load_expression

logger = get_logger(__name__)


def _condition_expression(value: Any) -> Optional[str]:
    """Expression text of a `{"type": "expression", "expression": ...}` condition, if `value` is one."""
    if isinstance(value, Mapping) and value.get("type", "expression") == "expression":
        expr = value.get("expression", value.get("expr"))
        if isinstance(expr, str):
            return expr
    return None


class ConditionalRenderer:
    """
    Decides whether a component subtree renders from its `renderWhen` prop.

    Evaluation failures render the component (fail-open) so an authoring
    mistake never hides content silently.
    """

    def __init__(self, evaluator: Optional[ComputedPropertyEvaluator] = None):
        self.evaluator = evaluator or ComputedPropertyEvaluator()

    def should_render(
        self,
        render_when: Any,
        data: Optional[Mapping[str, Any]] = None,
        parent_data: Optional[Mapping[str, Any]] = None,
        root_data: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        if render_when is None:
            return True
        data = data if data is not None else {}

        if is_computed_property(render_when):
            if property_kind(render_when) == FUNCTION and render_when.get("fnSource"):
                return self._run_function(render_when["fnSource"], data, parent_data, root_data)
            if "computeType" in render_when:
                result = self.evaluator.evaluate(render_when, data, parent_data, root_data)
                return rt.truthy(result)
            render_when = render_when.get("value")
            if render_when is None:
                return True

        if isinstance(render_when, bool):
            return render_when
        if isinstance(render_when, str):
            return self.evaluate_expression(render_when, data, parent_data, root_data)
        expr = _condition_expression(render_when)
        if expr is not None:
            return self.evaluate_expression(expr, data, parent_data, root_data) if expr else True
        return rt.truthy(render_when)

    def evaluate_expression(
        self,
        expression: str,
        data: Optional[Mapping[str, Any]] = None,
        parent_data: Optional[Mapping[str, Any]] = None,
        root_data: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        try:
            compiled = load_expression(expression, EVAL_PARAMS)
            return rt.truthy(compiled.run(**eval_bindings(data, parent_data, root_data)))
        except FormxError as e:
            logger.warning(f"[RENDER] renderWhen expression failed, rendering anyway: {e} | expr={expression!r}")
            return True

    def _run_function(self, fn_source, data, parent_data, root_data) -> bool:
        try:
            return rt.truthy(run_function_body(fn_source, eval_bindings(data, parent_data, root_data)))
        except FormxError as e:
            logger.warning(f"[RENDER] renderWhen function failed, rendering anyway: {e}")
            return True

    def should_render_item(self, item_render_when: Any, item: Any, index: int, data: Mapping[str, Any]) -> bool:
        """Per-row gate for repeaters: the row is exposed as `data.item` with its `data.index`."""
        if item_render_when is None:
            return True
        row = item.get("data", item) if isinstance(item, Mapping) else item
        scope = {**data, "item": row, "index": index, "parentData": data}
        return self.should_render(item_render_when, scope)

"""
Form session runtime.

Evaluation is two-phase: `evaluate()` is a pure pass over the component tree
against a snapshot of the store and returns per-component state plus the
writes the pass wants to make (computed values, resetOn clears);
`commit()` applies those writes afterwards. `refresh()` alternates the two
until the form settles.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from formx.core.config import settings
from formx.core.logging import get_logger
from formx.lib.actions import ActionEventArgs, ActionHandler, actions_for_event
from formx.lib.component_types import data_type_for, get_component_type
from formx.lib.computed import ComputedPropertyEvaluator
from formx.lib.dependencies import DependencyContext, DependencyEvaluator, ResetCheck, ResetTracker, parse_dependencies
from formx.lib.localization import LocalizationManager, Localizer
from formx.lib.rendering import ConditionalRenderer
from formx.lib.runtime import script_runtime as rt
from formx.lib.schemas import ComponentNode, ComponentState, ValidationResult, ValidationRule
from formx.lib.store import FormDataStore
from formx.validation.rule_validators import parse_validation_schema, validate

logger = get_logger(__name__)

# props that are not plain display values
STRUCTURAL_PROPS = frozenset({
    "dependencies", "events", "schema", "renderWhen", "itemRenderWhen", "modal",
    "dataKey", "disableDataBinding",
})


@dataclass
class Patch:
    key: str
    value: Any
    reason: str  # "value" | "reset"
    component_id: str


@dataclass
class EvaluationResult:
    states: Dict[str, ComponentState] = field(default_factory=dict)
    patches: List[Patch] = field(default_factory=list)
    # resetOn outcomes per component id; trackers move on only in commit()
    reset_checks: Dict[str, ResetCheck] = field(default_factory=dict)

    def __getitem__(self, state_key: str) -> ComponentState:
        return self.states[state_key]


def _literal_bool(value: Any) -> bool:
    return rt.truthy(value)


class FormRuntime:
    def __init__(
        self,
        components: Iterable[Any],
        store: Optional[FormDataStore] = None,
        *,
        form_mode: Optional[bool] = None,
        actions: Optional[Mapping[str, Any]] = None,
        localizer: Optional[Localizer] = None,
        action_handler: Optional[ActionHandler] = None,
    ):
        self.components: List[ComponentNode] = [
            c if isinstance(c, ComponentNode) else ComponentNode.model_validate(c) for c in components
        ]
        self.form_mode = settings.FORM_MODE if form_mode is None else form_mode
        self.evaluator = ComputedPropertyEvaluator(localizer)
        self.store = store if store is not None else FormDataStore(evaluator=self.evaluator)
        self.renderer = ConditionalRenderer(self.evaluator)
        self.dependencies = DependencyEvaluator(form_mode=self.form_mode)
        self.action_handler = action_handler or ActionHandler()
        self.action_definitions: Dict[str, Any] = dict(actions or {})

        self._nodes: Dict[str, ComponentNode] = {}
        self._trackers: Dict[str, ResetTracker] = {}
        for root in self.components:
            for node in root.walk():
                if node.id in self._nodes:
                    raise ValueError(f"Duplicate component id '{node.id}'")
                self._nodes[node.id] = node
        self._last: Optional[EvaluationResult] = None
        self._committed = False

    @classmethod
    def from_persisted(cls, persisted: Mapping[str, Any], store: Optional[FormDataStore] = None, **kw) -> "FormRuntime":
        from formx.serialization.conversion import FormConverter

        components = FormConverter().from_persisted_form(persisted)
        kw.setdefault("actions", persisted.get("actions"))
        kw.setdefault("localizer", LocalizationManager.from_persisted(persisted))
        return cls(components, store, **kw)

    def node(self, component_id: str) -> ComponentNode:
        try:
            return self._nodes[component_id]
        except KeyError:
            raise KeyError(f"Unknown component '{component_id}'") from None

    # ---------------- Evaluation ----------------

    def evaluate(self) -> EvaluationResult:
        """One pass over the tree against the current store snapshot."""
        data = self.store.get_all()
        result = EvaluationResult()
        self._evaluate_nodes(self.components, data, None, True, "", result)
        self._last = result
        return result

    def _evaluate_nodes(self, nodes, data, parent_data, parent_rendered, suffix, result):
        for node in nodes:
            self._evaluate_node(node, data, parent_data, parent_rendered, suffix, result)

    def _evaluate_node(self, node: ComponentNode, data, parent_data, parent_rendered: bool, suffix: str, result: EvaluationResult):
        props = node.props
        data_key = node.data_key
        in_row = parent_data is not None
        comp_type = get_component_type(node.type)

        deps = parse_dependencies(props.get("dependencies"))
        context = DependencyContext(data, parent_data, data, data_key)
        dep = self.dependencies.evaluate_all_dependencies(deps, context)
        evaluated = self.evaluator.evaluate_props(
            {k: v for k, v in props.items() if k not in STRUCTURAL_PROPS}, data, parent_data, data
        )

        disabled = dep.disabled if dep.disabled is not None else _literal_bool(evaluated.get("disabled"))
        required = dep.required if dep.required is not None else _literal_bool(evaluated.get("required"))
        visible = dep.visible if (self.form_mode and dep.visible is not None) else True
        rendered = parent_rendered and visible and self.renderer.should_render(props.get("renderWhen"), data, parent_data, data)

        bound_source = parent_data if in_row else data
        bound = bound_source.get(data_key) if (data_key and isinstance(bound_source, Mapping)) else None
        if dep.value is not None:
            value = dep.value
        elif bound is not None:
            value = bound
        elif evaluated.get("value") is not None:
            value = evaluated["value"]
        else:
            value = comp_type.default_value() if comp_type else None

        state = ComponentState(
            id=node.id,
            type=node.type,
            data_key=data_key,
            rendered=rendered,
            visible=visible,
            disabled=disabled,
            required=required,
            label=dep.label if dep.label is not None else evaluated.get("label"),
            placeholder=dep.placeholder if dep.placeholder is not None else evaluated.get("placeholder"),
            value=value,
            options=dep.options if dep.options is not None else evaluated.get("options"),
            props=evaluated,
            filter_params=dep.filter_params,
            dependent_fields=DependencyEvaluator.extract_dependent_fields(deps),
        )
        result.states[node.id + suffix] = state

        binding_off = _literal_bool(self.evaluator.evaluate(props.get("disableDataBinding"), data))
        if self.form_mode and data_key and not in_row and not binding_off:
            self._collect_patches(node, deps, data, data_key, dep.value, result)

        if comp_type is not None and comp_type.repeats_children:
            rows = value if isinstance(value, list) else []
            item_gate = props.get("itemRenderWhen")
            for i, row in enumerate(rows):
                row_rendered = rendered and self.renderer.should_render_item(item_gate, row, i, data)
                row_data = row if isinstance(row, Mapping) else {"value": row}
                self._evaluate_nodes(node.children, data, row_data, row_rendered, f"{suffix}[{i}]", result)
        else:
            self._evaluate_nodes(node.children, data, parent_data, rendered, suffix, result)

    def _collect_patches(self, node, deps, data, data_key, dep_value, result: EvaluationResult):
        if deps is not None and deps.reset_on:
            tracker = self._trackers.get(node.id)
            if tracker is None:
                tracker = self._trackers[node.id] = ResetTracker(data_key, deps.reset_on)
            outcome = tracker.check(data)
            result.reset_checks[node.id] = outcome
            if outcome.reset:
                result.patches.append(Patch(data_key, None, "reset", node.id))

        if dep_value is not None and data.get(data_key) != dep_value:
            result.patches.append(Patch(data_key, dep_value, "value", node.id))

    def commit(self, result: EvaluationResult) -> List[str]:
        """
        Apply a pass's writes and move the resetOn snapshots it saw
        forward; returns the keys that actually changed.
        """
        changed = []
        for patch in result.patches:
            if patch.reason == "reset":
                outcome = result.reset_checks[patch.component_id]
                logger.info(f"[DEPENDENCY] Resetting '{patch.key}' because {', '.join(outcome.changed)} changed")
            if self.store.set(patch.key, patch.value):
                changed.append(patch.key)
        for component_id, outcome in result.reset_checks.items():
            self._trackers[component_id].advance(outcome.snapshot, outcome.changed)
        self._committed = True
        return changed

    def refresh(self) -> EvaluationResult:
        """Evaluate and commit until no pass produces a change."""
        result = self.evaluate()
        for _ in range(settings.MAX_EVALUATION_PASSES):
            if not self.commit(result):
                return result
            result = self.evaluate()
        logger.warning(f"[DEPENDENCY] Form did not settle after {settings.MAX_EVALUATION_PASSES} passes")
        return result

    @property
    def states(self) -> Dict[str, ComponentState]:
        return (self._last or self.refresh()).states

    # ---------------- Events ----------------

    def handle_change(self, component_id: str, value: Any) -> EvaluationResult:
        """Write a user edit to the component's bound key and re-evaluate."""
        node = self.node(component_id)
        if not self._committed:
            # reset trackers need a baseline before the first edit
            self.refresh()
        data_key = node.data_key
        binding_disabled = _literal_bool(self.evaluator.evaluate(node.props.get("disableDataBinding")))
        if self.form_mode and data_key and not binding_disabled:
            self.store.set(data_key, value)
        return self.refresh()

    async def handle_event(
        self,
        component_id: str,
        event_type: str,
        *,
        value: Any = None,
        event: Any = None,
        parent_data: Optional[Dict[str, Any]] = None,
    ) -> List[Any]:
        """Run the actions bound to `event_type` on a component, then re-evaluate."""
        if not self.form_mode:
            return []
        node = self.node(component_id)
        actions = actions_for_event(node.props.get("events"), event_type)
        if not actions:
            return []
        if not self._committed:
            self.refresh()

        event_args = ActionEventArgs(
            type=event_type,
            sender=node,
            store=self.store,
            rendered_props=node.props,
            value=value,
            event=event,
            data=self.store.data,
            parent_data=parent_data,
            root_data=self.store.data,
        )
        results = await self.action_handler.execute_actions(actions, event_args, self.action_definitions)
        self.refresh()
        return results

    # ---------------- Validation ----------------

    async def validate_component(self, component_id: str) -> ValidationResult:
        node = self.node(component_id)
        state = self.states.get(component_id)
        raw_schema = node.props.get("schema")
        rules = list(parse_validation_schema(raw_schema).validations) if raw_schema else []
        if state is not None and state.required and not any(r.key == "required" for r in rules):
            rules.insert(0, ValidationRule(key="required"))
        if not rules:
            return ValidationResult(success=True)

        value = self.store.get(node.data_key) if node.data_key else (state.value if state else None)
        return await validate(value, rules, data_type_for(node.type), self.store.data)

    async def validate_all(self) -> Dict[str, ValidationResult]:
        """Validate every rendered, enabled component; keyed by component id."""
        results: Dict[str, ValidationResult] = {}
        states = self.refresh().states
        for component_id, node in self._nodes.items():
            state = states.get(component_id)
            if state is None or not state.rendered or state.disabled:
                continue
            if not node.props.get("schema") and not state.required:
                continue
            results[component_id] = await self.validate_component(component_id)
        return results

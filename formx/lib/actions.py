"""
Event actions.

Component events (`props.events = {"onClick": [...]}`) carry ordered lists
of actions. Built-in ("common") actions act on the data store or signal the
modal host; custom actions run a user-authored body from the form's
`actions` table.

Error handling has two tiers: `execute` lets a failing action raise, while
`execute_actions` logs the failure, records None for it and keeps going.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from formx.core.logging import get_logger
from formx.core.signals import ModalSignal, get_bus
from formx.lib.component_types import data_type_for
from formx.lib.runtime.safe_eval import load_function
from formx.lib.schemas import ActionData, ActionDefinition, ComponentNode
from formx.lib.store import FormDataStore
from formx.validation.rule_validators import validate

logger = get_logger(__name__)

# Names a custom action body sees, in parameter order
ACTION_PARAMS = (
    "type", "sender", "store", "args", "renderedProps", "event", "value",
    "data", "parentData", "rootData", "formData",
)

BUILTIN_ACTIONS = ("validate", "clear", "reset", "log", "addRow", "removeRow", "openModal", "closeModal")

MODAL_BUS = "modal"


def _unwrap(value: Any) -> Any:
    if isinstance(value, dict) and set(value) == {"value"}:
        return value["value"]
    return value


@dataclass
class ActionEventArgs:
    type: str
    sender: ComponentNode
    store: FormDataStore
    args: Dict[str, Any] = field(default_factory=dict)
    rendered_props: Dict[str, Any] = field(default_factory=dict)
    value: Any = None
    event: Any = None
    data: Optional[Dict[str, Any]] = None
    parent_data: Optional[Dict[str, Any]] = None
    root_data: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not isinstance(self.sender, ComponentNode):
            self.sender = ComponentNode.model_validate(self.sender)
        if self.data is None:
            self.data = self.store.data

    def script_bindings(self, args: Mapping[str, Any]) -> Dict[str, Any]:
        """Bindings for a custom body; the sender is exposed as a plain record."""
        sender = {
            "id": self.sender.id,
            "key": self.sender.id,
            "type": self.sender.type,
            "name": self.sender.name,
            "dataKey": self.sender.data_key,
            "props": self.sender.props,
        }
        return {
            "type": self.type,
            "sender": sender,
            "store": self.store,
            "args": dict(args),
            "renderedProps": self.rendered_props,
            "event": self.event,
            "value": self.value,
            "data": self.data,
            "parentData": self.parent_data or {},
            "rootData": self.root_data if self.root_data is not None else self.data,
            "formData": self.data,
        }


def parse_actions(raw: Any) -> List[ActionData]:
    """Normalise one event's action list: a name, one action, or a list of either."""
    raw = _unwrap(raw)
    if raw is None:
        return []
    if not isinstance(raw, list):
        raw = [raw]
    return [a if isinstance(a, ActionData) else ActionData.model_validate(a) for a in raw]


def actions_for_event(events: Any, event_type: str) -> List[ActionData]:
    events = _unwrap(events) or {}
    if not isinstance(events, Mapping):
        return []
    return parse_actions(events.get(event_type))


class ActionHandler:
    def __init__(self, validator: Optional[Callable[..., Awaitable]] = None):
        self.validator = validator or validate
        self._common = {
            "validate": self._validate,
            "clear": self._clear,
            "reset": self._reset,
            "log": self._log,
            "addRow": self._add_row,
            "removeRow": self._remove_row,
            "openModal": self._open_modal,
            "closeModal": self._close_modal,
        }

    async def execute(
        self,
        action: Union[ActionData, Mapping, str],
        event_args: ActionEventArgs,
        definitions: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Run one action. Failures raise."""
        if not isinstance(action, ActionData):
            action = ActionData.model_validate(action)
        definitions = definitions or {}

        if action.type == "common" and action.name in self._common:
            logger.debug(f"[ACTION] {action.name} on '{event_args.sender.id}'")
            return await self._common[action.name](event_args, action.args)
        if action.type == "custom" or action.name in definitions:
            return await self._execute_custom(action, event_args, definitions.get(action.name))

        logger.warning(f"[ACTION] Unknown {action.type} action '{action.name}'")
        return None

    async def execute_actions(
        self,
        actions: List[Union[ActionData, Mapping, str]],
        event_args: ActionEventArgs,
        definitions: Optional[Mapping[str, Any]] = None,
    ) -> List[Any]:
        """Run actions in order; one failure does not stop the rest."""
        results: List[Any] = []
        for action in actions:
            try:
                results.append(await self.execute(action, event_args, definitions))
            except Exception:
                name = action.name if isinstance(action, ActionData) else action
                logger.exception(f"[ACTION] Action {name!r} failed")
                results.append(None)
        return results

    async def _execute_custom(self, action: ActionData, event_args: ActionEventArgs, definition: Any) -> Any:
        if definition is not None and not isinstance(definition, ActionDefinition):
            definition = ActionDefinition.model_validate(definition)
        if definition is None or not definition.body:
            logger.warning(f"[ACTION] Custom action '{action.name}' not found or has no body")
            return None

        script = load_function(definition.body, ACTION_PARAMS, allow_await=True)
        logger.debug(f"[ACTION] Running custom action '{action.name}'")
        return await script.run_async(**event_args.script_bindings(action.args))

    # ---------------- Built-ins ----------------

    def _target_key(self, event_args: ActionEventArgs, args: Mapping[str, Any]) -> Optional[str]:
        return args.get("dataKey") or event_args.sender.data_key

    async def _validate(self, event_args: ActionEventArgs, args: Mapping[str, Any]) -> bool:
        sender = event_args.sender
        schema = sender.props.get("schema")
        if not schema:
            return True
        key = sender.data_key
        value = event_args.store.get(key) if key else event_args.value
        result = await self.validator(value, schema, data_type_for(sender.type), event_args.data)
        if not result.success:
            logger.info(f"[ACTION] Validation failed for '{sender.id}': {result.errors}")
        return result.success

    async def _clear(self, event_args: ActionEventArgs, args: Mapping[str, Any]) -> None:
        key = self._target_key(event_args, args)
        if key:
            event_args.store.set(key, "")

    async def _reset(self, event_args: ActionEventArgs, args: Mapping[str, Any]) -> None:
        key = self._target_key(event_args, args)
        if key:
            initial = event_args.sender.props.get("value")
            event_args.store.set(key, copy.deepcopy(_unwrap(initial)))

    async def _log(self, event_args: ActionEventArgs, args: Mapping[str, Any]) -> Dict[str, Any]:
        message = args.get("message") or "Action logged"
        data = (event_args.data or {}).get(args["data"]) if args.get("data") else event_args.value
        logger.info(f"[ACTION] {message} {data!r}")
        return {"message": message, "data": data}

    async def _add_row(self, event_args: ActionEventArgs, args: Mapping[str, Any]) -> int:
        key = self._target_key(event_args, args)
        if not key:
            return 0
        rows = list(event_args.store.get(key) or [])
        max_items = args.get("maxItems")
        if max_items is not None and len(rows) >= max_items:
            logger.info(f"[ACTION] '{key}' already has {len(rows)} rows (max {max_items})")
            return len(rows)
        rows.append(copy.deepcopy(args.get("row", {})))
        event_args.store.set(key, rows)
        return len(rows)

    async def _remove_row(self, event_args: ActionEventArgs, args: Mapping[str, Any]) -> Any:
        key = self._target_key(event_args, args)
        rows = list(event_args.store.get(key) or []) if key else []
        if not rows:
            return None
        index = args.get("index", len(rows) - 1)
        if not isinstance(index, int) or not -len(rows) <= index < len(rows):
            logger.warning(f"[ACTION] removeRow index {index!r} out of range for '{key}'")
            return None
        removed = rows.pop(index)
        event_args.store.set(key, rows)
        return removed

    async def _publish_modal(self, action: str, event_args: ActionEventArgs, args: Mapping[str, Any]) -> ModalSignal:
        modal = _unwrap(event_args.sender.props.get("modal")) or {}
        signal = ModalSignal(
            action=action,
            modal_id=args.get("modalId") or args.get("componentId") or event_args.sender.id,
            modal_type=args.get("modalType") or (modal.get("type") if isinstance(modal, Mapping) else None),
            args=dict(args),
        )
        await get_bus(MODAL_BUS).publish(signal)
        return signal

    async def _open_modal(self, event_args: ActionEventArgs, args: Mapping[str, Any]) -> ModalSignal:
        return await self._publish_modal("openModal", event_args, args)

    async def _close_modal(self, event_args: ActionEventArgs, args: Mapping[str, Any]) -> ModalSignal:
        return await self._publish_modal("closeModal", event_args, args)

"""
Conversion between the in-memory component tree and a persisted form.

In memory a component is `{id, type, props, children}` with plain prop
values. In a persisted form every node is `{key, type, props, ...}` and each
prop is a computed-property record: literal values are wrapped as
`{"value": v}`, computed properties pass through untouched. The fields in
HOISTED_FIELDS live beside `props` on the persisted node instead of inside it.
"""
from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ConfigDict, Field

from formx.core.config import settings
from formx.core.errors import ConversionError
from formx.core.logging import get_logger
from formx.lib.component_types import LEGACY_TYPE_NAMES
from formx.lib.schemas import DEFAULT_LANGUAGES, ComponentNode, FormxModel, PersistedForm

logger = get_logger(__name__)

ROOT_KEY = "root"
ROOT_TYPE = "Form"

HOISTED_FIELDS = (
    "dataKey", "css", "wrapperCss", "style", "wrapperStyle", "events", "schema",
    "htmlAttributes", "tooltipProps", "modal", "slot", "slotCondition",
    "renderWhen", "disableDataBinding",
)

# hoisted fields that are themselves stored as computed-property records
_PROPERTY_FIELDS = ("renderWhen", "disableDataBinding")

# component keys with a dedicated place on the persisted node
_COMPONENT_KEYS = frozenset({"id", "type", "props", "children", "parentId"})
_NODE_KEYS = frozenset({"key", "id", "type", "props", "children"}) | frozenset(HOISTED_FIELDS)


def is_computed_shape(value: Any) -> bool:
    return isinstance(value, Mapping) and ("computeType" in value or "fnSource" in value)


def wrap_property(value: Any) -> Dict[str, Any]:
    if is_computed_shape(value):
        return copy.deepcopy(dict(value))
    return {"value": copy.deepcopy(value)}


def unwrap_property(prop: Any) -> Any:
    """`{"value": v}` with no other key becomes `v`; anything else is kept as is."""
    if isinstance(prop, Mapping) and set(prop) == {"value"}:
        return copy.deepcopy(prop["value"])
    return copy.deepcopy(prop)


def wrap_props(props: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: wrap_property(v) for k, v in props.items()}


def unwrap_props(props: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: unwrap_property(v) for k, v in props.items()}


def convert_events(events: Any) -> Dict[str, List[Dict[str, Any]]]:
    """Normalise `{eventType: actions}` to lists of `{name, type, args}` records."""
    events = unwrap_property(events)
    if not isinstance(events, Mapping):
        return {}

    def action(raw):
        if isinstance(raw, str):
            return {"name": raw, "type": "common", "args": {}}
        out = copy.deepcopy(dict(raw))
        out["type"] = out.get("type") or "common"
        out["args"] = out.get("args") or {}
        return out

    converted = {}
    for event_type, actions in events.items():
        if isinstance(actions, (str, Mapping)):
            actions = [actions]
        if isinstance(actions, list):
            converted[event_type] = [action(a) for a in actions]
    return converted


def convert_validation_schema(schema: Any) -> Dict[str, Any]:
    """`{"validations": [...]}` for a rule list or an existing schema record."""
    schema = unwrap_property(schema)
    if isinstance(schema, Mapping) and isinstance(schema.get("validations"), list):
        return copy.deepcopy(dict(schema))
    if not isinstance(schema, list):
        return {"validations": []}

    rules = []
    for raw in schema:
        if isinstance(raw, str):
            rules.append({"key": raw, "args": {}})
            continue
        rule = {"key": raw.get("key"), "args": copy.deepcopy(raw.get("args") or {})}
        for optional in ("message", "validateWhen"):
            if raw.get(optional) is not None:
                rule[optional] = copy.deepcopy(raw[optional])
        rules.append(rule)
    return {"validations": rules}


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ExportOptions(FormxModel):
    """Envelope of a persisted form, everything except the component tree."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: str = Field(default_factory=lambda: settings.SCHEMA_VERSION)
    id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    default_language: str = Field(default_factory=lambda: settings.DEFAULT_LOCALE, alias="defaultLanguage")
    languages: Optional[List[Dict[str, str]]] = None
    localization: Dict[str, Dict[str, str]] = Field(default_factory=dict)
    actions: Optional[Dict[str, Any]] = None
    form_validator: Optional[str] = Field(None, alias="formValidator")

    @classmethod
    def from_persisted(cls, persisted: Union[PersistedForm, Mapping[str, Any]]) -> "ExportOptions":
        if isinstance(persisted, PersistedForm):
            persisted = persisted.dump()
        return cls.model_validate({k: copy.deepcopy(v) for k, v in persisted.items() if k != "form"})


class FormConverter:
    # ---------------- Export ----------------

    def to_persisted_form(
        self,
        components: Iterable[Union[ComponentNode, Mapping[str, Any]]],
        options: Union[ExportOptions, Mapping[str, Any], None] = None,
    ) -> Dict[str, Any]:
        if options is None:
            options = ExportOptions()
        elif not isinstance(options, ExportOptions):
            options = ExportOptions.model_validate(options)

        children = [self.to_node(c) for c in components]
        self._check_unique_keys(children)

        persisted: Dict[str, Any] = {"version": options.version}
        if options.id is not None:
            persisted["id"] = options.id
        if options.metadata is not None:
            metadata = copy.deepcopy(options.metadata)
            now = _timestamp()
            metadata.setdefault("createdAt", now)
            metadata["updatedAt"] = now
            persisted["metadata"] = metadata
        persisted["form"] = {"key": ROOT_KEY, "type": ROOT_TYPE, "props": {}, "children": children}
        persisted["defaultLanguage"] = options.default_language
        persisted["languages"] = copy.deepcopy(options.languages or DEFAULT_LANGUAGES)
        persisted["localization"] = copy.deepcopy(options.localization)
        if options.actions is not None:
            persisted["actions"] = copy.deepcopy(options.actions)
        if options.form_validator is not None:
            persisted["formValidator"] = options.form_validator

        logger.debug(f"[CONVERT] Exported {len(children)} root component(s) as version {options.version}")
        return persisted

    def to_node(self, component: Union[ComponentNode, Mapping[str, Any]]) -> Dict[str, Any]:
        """One component (and its subtree) as a persisted node."""
        component = component_dict(component)
        if not component.get("id") or not component.get("type"):
            raise ConversionError(f"Component needs an id and a type: {dict(component)!r}")

        props = dict(component.get("props") or {})
        legacy_schema = props.pop("validation", None)
        if legacy_schema is not None and "schema" not in props:
            props["schema"] = legacy_schema

        node: Dict[str, Any] = {"key": component["id"], "type": component["type"]}
        for key, value in component.items():
            if key not in _COMPONENT_KEYS and value is not None:
                node[key] = copy.deepcopy(value)
        for name in HOISTED_FIELDS:
            if name in props:
                node[name] = self._export_field(name, props.pop(name))
        node["props"] = wrap_props(props)

        children = component.get("children") or []
        if children:
            node["children"] = [self.to_node(c) for c in children]
        return node

    def _export_field(self, name: str, value: Any) -> Any:
        if name in _PROPERTY_FIELDS:
            return wrap_property(value)
        if name == "events":
            return convert_events(value)
        if name == "schema":
            return convert_validation_schema(value)
        if name == "htmlAttributes":
            return copy.deepcopy(value if isinstance(value, list) else [value])
        if name == "tooltipProps" and isinstance(value, Mapping):
            return wrap_props(value)
        if name == "modal" and isinstance(value, Mapping):
            modal = copy.deepcopy(dict(value))
            if isinstance(value.get("props"), Mapping):
                modal["props"] = wrap_props(value["props"])
            if isinstance(value.get("children"), list):
                modal["children"] = [self.to_node(c) for c in value["children"]]
            return modal
        return copy.deepcopy(value)

    @staticmethod
    def _check_unique_keys(nodes: List[Dict[str, Any]]):
        seen = set()
        stack = list(nodes)
        while stack:
            node = stack.pop()
            if node["key"] in seen:
                raise ConversionError(f"Duplicate component id '{node['key']}'")
            seen.add(node["key"])
            stack.extend(node.get("children") or [])

    # ---------------- Import ----------------

    def from_persisted_form(self, persisted: Union[PersistedForm, Mapping[str, Any]]) -> List[Dict[str, Any]]:
        """The root form's children as in-memory components."""
        if isinstance(persisted, PersistedForm):
            persisted = persisted.dump()
        form = persisted.get("form") if isinstance(persisted, Mapping) else None
        if not isinstance(form, Mapping):
            raise ConversionError("Persisted form has no 'form' node")

        components = [self.to_component(child) for child in form.get("children") or []]
        logger.debug(f"[CONVERT] Imported {len(components)} root component(s)")
        return components

    def to_component(self, node: Mapping[str, Any]) -> Dict[str, Any]:
        key = node.get("key") or node.get("id")
        if not key or not node.get("type"):
            raise ConversionError(f"Persisted node needs a key and a type: {dict(node)!r}")

        props = unwrap_props(node.get("props") or {})
        # older saves duplicated hoisted fields inside props; the node-level value wins
        for name in HOISTED_FIELDS:
            if name in node:
                props[name] = self._import_field(name, node[name])
        if "validation" in props:
            legacy = props.pop("validation")
            props.setdefault("schema", legacy)

        component: Dict[str, Any] = {
            "id": key,
            "type": LEGACY_TYPE_NAMES.get(node["type"], node["type"]),
            "props": props,
            "children": [self.to_component(c) for c in node.get("children") or []],
        }
        for k, value in node.items():
            if k not in _NODE_KEYS:
                component[k] = copy.deepcopy(value)
        return component

    def _import_field(self, name: str, value: Any) -> Any:
        if name in _PROPERTY_FIELDS:
            return unwrap_property(value)
        if name == "tooltipProps" and isinstance(value, Mapping):
            return unwrap_props(value)
        if name == "modal" and isinstance(value, Mapping):
            modal = copy.deepcopy(dict(value))
            if isinstance(value.get("props"), Mapping):
                modal["props"] = unwrap_props(value["props"])
            if isinstance(value.get("children"), list):
                modal["children"] = [self.to_component(c) for c in value["children"]]
            return modal
        return copy.deepcopy(value)


def component_dict(component: Union[ComponentNode, Mapping[str, Any]]) -> Mapping[str, Any]:
    if isinstance(component, ComponentNode):
        dumped = component.model_dump()
        return {k: v for k, v in dumped.items() if not (k in ("guid", "name") and v is None)}
    return component

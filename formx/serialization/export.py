"""
Export and import helpers around the persisted format.

Besides the persisted form itself, a component tree can be exported as the
legacy builder structure (`{"version": "1.0.0", "metadata", "structure"}`),
a flat node list, a simple field schema or a JSON Schema document. Imports
always go through migration first and refuse input that fails it.
"""
from __future__ import annotations

import copy
import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from formx.core.errors import ConversionError
from formx.core.logging import get_logger
from formx.lib.schemas import ComponentNode
from formx.serialization.conversion import (
    ExportOptions,
    FormConverter,
    component_dict,
    unwrap_property,
)
from formx.serialization.migration import LEGACY_EXPORT_VERSION, ensure_loadable

logger = get_logger(__name__)

Component = Union[ComponentNode, Mapping[str, Any]]

# props only the builder canvas uses
BUILDER_PROPS = ("isCmp", "isWa", "isNotWa", "data-triggers")
BUILDER_CLASSES = ("selected-component", "default-component", "active-container")

_TEMPLATE_DEP_KEYS = ("label", "placeholder", "value", "options")
_BARE_DATA_REF_RE = re.compile(r"data\.(\w+)")

_SELECT_TYPES = ("Select", "DropDown", "RadioGroup")
_DATE_TYPES = ("DateTime", "DateTimeCb")
_LAYOUT_TYPES = ("Container", "Form", "Header", "Footer")

JSON_SCHEMA_TYPES = {
    "CheckBox": "boolean",
    "Toggle": "boolean",
    "CheckBoxGroup": "array",
    "MultiUpload": "array",
    "Amount": "number",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _fix_template(spec: Any):
    if isinstance(spec, dict) and spec.get("type") == "template" and isinstance(spec.get("template"), str):
        if "{" not in spec["template"]:
            spec["template"] = _BARE_DATA_REF_RE.sub(r"{data.\1}", spec["template"])


def clean_component_for_export(component: Component) -> Dict[str, Any]:
    """Plain props, no builder-only keys, templates with braces."""
    component = component_dict(component)
    cleaned: Dict[str, Any] = {"id": component["id"]}
    for key in ("guid", "name"):
        if component.get(key) is not None:
            cleaned[key] = component[key]
    cleaned["type"] = component["type"]
    cleaned["props"] = {
        k: unwrap_property(v) for k, v in (component.get("props") or {}).items() if k not in BUILDER_PROPS
    }
    deps = cleaned["props"].get("dependencies")
    if isinstance(deps, dict):
        for key in _TEMPLATE_DEP_KEYS:
            _fix_template(deps.get(key))
    children = component.get("children") or []
    if children:
        cleaned["children"] = [clean_component_for_export(c) for c in children]
    return cleaned


def export_form_structure(components: Iterable[Component], metadata: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    now = _now()
    return {
        "version": LEGACY_EXPORT_VERSION,
        "metadata": {**copy.deepcopy(dict(metadata or {})), "createdAt": now, "updatedAt": now},
        "structure": [clean_component_for_export(c) for c in components],
    }


def export_form_flat(components: Iterable[Component]) -> List[Dict[str, Any]]:
    """Pre-order list of `{id, type, props, parentId}`."""
    flat: List[Dict[str, Any]] = []

    def walk(nodes, parent_id):
        for node in nodes:
            node = component_dict(node)
            flat.append({
                "id": node["id"],
                "type": node["type"],
                "props": copy.deepcopy(dict(node.get("props") or {})),
                "parentId": parent_id,
            })
            walk(node.get("children") or [], node["id"])

    walk(components, None)
    return flat


def export_form_schema(components: Iterable[Component]) -> Dict[str, Any]:
    def fields(nodes):
        out = []
        for node in nodes:
            node = component_dict(node)
            props = node.get("props") or {}
            field = {
                "id": node["id"],
                "type": node["type"],
                "label": props.get("label") or props.get("text") or "",
                "required": props.get("required") or False,
                "placeholder": props.get("placeholder") or "",
                "value": props.get("value") or "",
            }
            if node["type"] in _SELECT_TYPES:
                field["options"] = props.get("options") or []
            if node["type"] == "TextArea":
                field["rows"] = props.get("rows") or 4
            if node["type"] in _DATE_TYPES:
                field["dateType"] = props.get("type") or "datetime-local"
            if node.get("children"):
                field["children"] = fields(node["children"])
            out.append(field)
        return out

    return {"fields": fields(components)}


def export_form_json_schema(components: Iterable[Component]) -> Dict[str, Any]:
    """JSON Schema object for the top-level fields; layout components are skipped."""
    properties: Dict[str, Any] = {}
    required: List[str] = []
    for node in components:
        node = component_dict(node)
        if node["type"] in _LAYOUT_TYPES:
            continue
        props = node.get("props") or {}
        name = props.get("name") or node["id"]
        schema: Dict[str, Any] = {"type": JSON_SCHEMA_TYPES.get(node["type"], "string")}
        if props.get("label"):
            schema["title"] = props["label"]
        if props.get("required"):
            required.append(name)
        if node["type"] in _SELECT_TYPES:
            schema["enum"] = [o if isinstance(o, str) else o.get("value") for o in props.get("options") or []]
        constraints = {"TextArea": ("maxLength", "minLength"), "TextInput": ("pattern", "min", "max"), "Amount": ("pattern", "min", "max")}
        for key in constraints.get(node["type"], ()):
            if props.get(key) is not None:
                schema[key] = props[key]
        properties[name] = schema

    doc: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        doc["required"] = required
    return doc


def clean_form_structure(components: Iterable[Component]) -> List[Dict[str, Any]]:
    """Drop builder-only props and canvas classes, keeping prop values as they are."""
    cleaned = []
    for node in components:
        node = component_dict(node)
        props = {k: copy.deepcopy(v) for k, v in (node.get("props") or {}).items() if k not in BUILDER_PROPS and k != "guid"}
        if isinstance(props.get("classes"), list):
            props["classes"] = [c for c in props["classes"] if not any(b in str(c) for b in BUILDER_CLASSES)]
        out = {"id": node["id"], "type": node["type"], "props": props}
        if node.get("children"):
            out["children"] = clean_form_structure(node["children"])
        cleaned.append(out)
    return cleaned


def export_as_persisted_form(components: Iterable[Component], options: Union[ExportOptions, Mapping[str, Any], None] = None) -> Dict[str, Any]:
    return FormConverter().to_persisted_form(components, options)


def import_from_persisted_form(persisted: Mapping[str, Any]) -> List[Dict[str, Any]]:
    return FormConverter().from_persisted_form(persisted)


def load_form(data: Any) -> List[Dict[str, Any]]:
    """Components of any recognised saved form; raises MigrationError when it cannot be loaded."""
    return import_from_persisted_form(ensure_loadable(data))


def import_form_from_json(text: str) -> List[Dict[str, Any]]:
    try:
        data = json.loads(text)
    except ValueError as e:
        raise ConversionError(f"Invalid JSON format: {e}") from e
    return load_form(data)


def read_form_from_file(path: Union[str, Path]) -> List[Dict[str, Any]]:
    path = Path(path)
    logger.info(f"[CONVERT] Reading form from {path}")
    return import_form_from_json(path.read_text(encoding="utf-8"))


def write_persisted_form(
    path: Union[str, Path],
    components: Iterable[Component],
    options: Union[ExportOptions, Mapping[str, Any], None] = None,
) -> Dict[str, Any]:
    persisted = export_as_persisted_form(components, options)
    Path(path).write_text(json.dumps(persisted, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info(f"[CONVERT] Wrote persisted form to {path}")
    return persisted

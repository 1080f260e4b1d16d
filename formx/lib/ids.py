"""
Identifiers for forms and components.

- component id: short, type-prefixed, unique within one tree (`sele-3k9d0a1b`)
- guid: UUID4 that survives saves and edits
- form id: readable slug of the form name plus a version suffix
- name: reference name other components use in dependencies
"""
import re
import secrets
import uuid
from typing import AbstractSet, Dict, Optional

_SHORT_ID_CHARS = "abcdefghijklmnopqrstuvwxyz0123456789"
_GUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE)
_COMPONENT_ID_RE = re.compile(r"^[a-z]+-[a-z0-9]+$", re.IGNORECASE)
_TYPE_PREFIX_RE = re.compile(r"^([a-z]+)-", re.IGNORECASE)


def generate_guid() -> str:
    return str(uuid.uuid4())


def generate_short_id(length: int = 8) -> str:
    return "".join(secrets.choice(_SHORT_ID_CHARS) for _ in range(length))


def generate_component_id(component_type: Optional[str] = None) -> str:
    prefix = component_type.lower()[:4] if component_type else "comp"
    return f"{prefix}-{generate_short_id(8)}"


def generate_form_id(form_name: str, version: str = "v1") -> str:
    slug = re.sub(r"[^a-z0-9\s]", "", form_name.lower().strip())
    slug = re.sub(r"_+", "_", re.sub(r"\s+", "_", slug))[:50]
    return f"{slug}_{version}"


def generate_component_name(
    data_key: Optional[str] = None,
    component_type: Optional[str] = None,
    existing_names: Optional[AbstractSet[str]] = None,
) -> str:
    base = data_key or (component_type.lower() if component_type else None) or "component"
    base = re.sub(r"_+", "_", re.sub(r"[^a-z0-9_]", "_", base.lower()))
    if not existing_names or base not in existing_names:
        return base
    counter = 1
    while f"{base}_{counter}" in existing_names:
        counter += 1
    return f"{base}_{counter}"


def is_valid_guid(value: str) -> bool:
    return bool(_GUID_RE.match(value or ""))


def is_valid_component_id(value: str) -> bool:
    return bool(_COMPONENT_ID_RE.match(value or ""))


def get_type_from_component_id(value: str) -> Optional[str]:
    m = _TYPE_PREFIX_RE.match(value or "")
    return m.group(1) if m else None


def generate_component_ids(
    component_type: str,
    data_key: Optional[str] = None,
    existing_names: Optional[AbstractSet[str]] = None,
) -> Dict[str, str]:
    return {
        "id": generate_component_id(component_type),
        "guid": generate_guid(),
        "name": generate_component_name(data_key, component_type, existing_names),
    }


def generate_form_ids(form_name: str) -> Dict[str, str]:
    return {"formId": generate_form_id(form_name), "guid": generate_guid()}

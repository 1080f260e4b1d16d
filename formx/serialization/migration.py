"""
Forward migration of saved forms to the current persisted schema.

Three input shapes are recognised:
- persisted: `{"form": {...}, "version": ...}`
- export:    legacy builder export, `{"version": "1.0.0", "structure": [...]}`
- array:     a bare list of `{id, type, ...}` components

Persisted forms move through MIGRATIONS one step at a time. Steps are
append-only: a new schema version adds a step, it never edits an old one.
Anything that cannot be recognised or migrated fails closed with
`success=False`; the input is never returned as if it were loadable.
"""
from __future__ import annotations

import copy
from typing import Any, Callable, Dict, List, Tuple

from pydantic import ValidationError

from formx.core.config import settings
from formx.core.errors import FormxError, MigrationError
from formx.core.logging import get_logger
from formx.lib.schemas import DEFAULT_LANGUAGES, MigrationResult, PersistedForm
from formx.serialization.conversion import ExportOptions, FormConverter

logger = get_logger(__name__)

FORMAT_PERSISTED = "persisted"
FORMAT_EXPORT = "export"
FORMAT_ARRAY = "array"
FORMAT_UNKNOWN = "unknown"

LEGACY_EXPORT_VERSION = "1.0.0"


def _backfill_envelope(form: Dict[str, Any]) -> Dict[str, Any]:
    if not form.get("defaultLanguage"):
        form["defaultLanguage"] = settings.DEFAULT_LOCALE
    if not form.get("languages"):
        form["languages"] = copy.deepcopy(DEFAULT_LANGUAGES)
    if form.get("localization") is None:
        form["localization"] = {}
    return form


# (from_version, to_version, step); each step receives a private copy
MIGRATIONS: List[Tuple[str, str, Callable[[Dict[str, Any]], Dict[str, Any]]]] = [
    ("0", "1", _backfill_envelope),
]


def detect_format(data: Any) -> Tuple[str, str]:
    """(format, version) of a saved form; ("unknown", "unknown") when unrecognised."""
    if isinstance(data, dict):
        if isinstance(data.get("form"), dict) and "version" in data:
            version = data["version"]
            return FORMAT_PERSISTED, str(version) if version not in (None, "") else "0"
        if isinstance(data.get("structure"), list):
            return FORMAT_EXPORT, str(data.get("version") or LEGACY_EXPORT_VERSION)
    if isinstance(data, list) and data:
        first = data[0]
        if isinstance(first, dict) and first.get("id") and first.get("type"):
            return FORMAT_ARRAY, LEGACY_EXPORT_VERSION
    return FORMAT_UNKNOWN, FORMAT_UNKNOWN


def migrate_persisted_form(form: Dict[str, Any], from_version: str) -> Dict[str, Any]:
    """Run the migration chain from `from_version` up to the current schema version."""
    target = settings.SCHEMA_VERSION
    migrated = copy.deepcopy(form)
    version = from_version
    steps = {src: (dst, step) for src, dst, step in MIGRATIONS}
    while version != target:
        if version not in steps:
            raise FormxError(f"No migration path from version '{from_version}' to '{target}'")
        next_version, step = steps[version]
        logger.info(f"[MIGRATE] Persisted form {version} -> {next_version}")
        migrated = step(migrated)
        migrated["version"] = next_version
        version = next_version
    return migrated


def _failure(version: str, errors: List[str]) -> MigrationResult:
    for e in errors:
        logger.warning(f"[MIGRATE] {e}")
    return MigrationResult(success=False, migrated=False, version=version, data=None, errors=errors)


def migrate_form(data: Any) -> MigrationResult:
    """
    Bring any recognised saved form to the current persisted schema.

    `data` of the result is the loadable persisted form on success and None
    on failure. Migrating an already-current form returns an equal, detached
    copy with `migrated=False`.
    """
    fmt, version = detect_format(data)
    if fmt == FORMAT_UNKNOWN:
        return _failure(FORMAT_UNKNOWN, ["Unable to detect form format"])

    target = settings.SCHEMA_VERSION
    warnings: List[str] = []
    try:
        if fmt == FORMAT_PERSISTED:
            if version == target and data["version"] == target:
                migrated, changed = copy.deepcopy(data), False
            elif version == target:
                migrated, changed = {**copy.deepcopy(data), "version": target}, True
            else:
                migrated, changed = migrate_persisted_form(data, version), True
        else:
            components = data["structure"] if fmt == FORMAT_EXPORT else data
            migrated = FormConverter().to_persisted_form(components, ExportOptions(version=target))
            changed = True
            if fmt == FORMAT_EXPORT and data.get("metadata"):
                warnings.append("Metadata from FormExport format cannot be fully preserved in PersistedForm")
        PersistedForm.model_validate(migrated)
    except ValidationError as e:
        errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        return _failure(version, [f"Migrated form is invalid: {errors[0]}", *errors[1:]])
    except (FormxError, KeyError, TypeError, AttributeError) as e:
        return _failure(version, [f"Migration failed: {e}"])

    if changed:
        logger.info(f"[MIGRATE] Migrated {fmt} form (version {version}) to persisted version {target}")
    for w in warnings:
        logger.warning(f"[MIGRATE] {w}")
    return MigrationResult(success=True, migrated=changed, version=target, data=migrated, warnings=warnings)


def needs_migration(data: Any) -> bool:
    fmt, version = detect_format(data)
    if fmt == FORMAT_UNKNOWN:
        return False
    return fmt != FORMAT_PERSISTED or version != settings.SCHEMA_VERSION


def get_migration_info(data: Any) -> Dict[str, Any]:
    fmt, version = detect_format(data)
    return {
        "needsMigration": needs_migration(data),
        "fromFormat": fmt,
        "fromVersion": version,
        "toFormat": FORMAT_PERSISTED,
        "toVersion": settings.SCHEMA_VERSION,
    }


def ensure_loadable(data: Any) -> Dict[str, Any]:
    """Migrated persisted form, or MigrationError when it cannot be loaded."""
    result = migrate_form(data)
    if not result.success:
        raise MigrationError(f"Form migration failed: {'; '.join(result.errors)}", result.errors)
    return result.data

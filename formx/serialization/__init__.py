"""Persisted form conversion, migration and export."""

from .conversion import ExportOptions, FormConverter, wrap_property, unwrap_property
from .migration import (
    detect_format,
    ensure_loadable,
    get_migration_info,
    migrate_form,
    needs_migration,
)
from .export import (
    clean_form_structure,
    export_as_persisted_form,
    export_form_flat,
    export_form_json_schema,
    export_form_schema,
    export_form_structure,
    import_form_from_json,
    import_from_persisted_form,
    load_form,
    read_form_from_file,
    write_persisted_form,
)

__all__ = [
    "ExportOptions",
    "FormConverter",
    "wrap_property",
    "unwrap_property",
    "detect_format",
    "ensure_loadable",
    "get_migration_info",
    "migrate_form",
    "needs_migration",
    "clean_form_structure",
    "export_as_persisted_form",
    "export_form_flat",
    "export_form_json_schema",
    "export_form_schema",
    "export_form_structure",
    "import_form_from_json",
    "import_from_persisted_form",
    "load_form",
    "read_form_from_file",
    "write_persisted_form",
]

import asyncio
import json
from datetime import date
from pathlib import Path

import click
from rich import pretty
from rich.console import Console
from rich.table import Table

from formx.core.config import settings
from formx.core.logging import configure_logging, set_session_id
from formx.lib.component_types import data_type_for
from formx.lib.ids import generate_short_id
from formx.lib.runtime.form_runtime import FormRuntime
from formx.lib.store import FormDataStore
from formx.serialization.conversion import FormConverter
from formx.serialization.export import (
    clean_form_structure,
    export_form_flat,
    export_form_json_schema,
    export_form_schema,
    export_form_structure,
)
from formx.serialization.migration import ensure_loadable, get_migration_info, migrate_form
from formx.validation.form_validators import validate_persisted_form, validate_round_trip
from formx.validation.rule_validators import validate as validate_value

pretty.install()
# status goes to stderr so JSON on stdout stays pipeable
console = Console(stderr=True)

EXPORT_FORMATS = {
    "structure": lambda components, meta: export_form_structure(components, meta),
    "flat": lambda components, meta: export_form_flat(components),
    "schema": lambda components, meta: export_form_schema(components),
    "json-schema": lambda components, meta: export_form_json_schema(components),
    "clean": lambda components, meta: clean_form_structure(components),
}


def _stamp() -> str:
    return f"[{date.today().strftime('%Y-%m-%d')}]"


def _read_json(path: str):
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _parse_json_arg(raw: str):
    """Inline JSON, or the path of a JSON file."""
    if raw is None:
        return None
    candidate = Path(raw)
    if candidate.suffix == ".json" and candidate.exists():
        return _read_json(raw)
    return json.loads(raw)


def _emit(payload, out_path):
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if out_path:
        Path(out_path).write_text(text, encoding="utf-8")
        console.print(f"{_stamp()} Written to: {out_path}", style="green")
    else:
        click.echo(text)


@click.group()
@click.option("--log-level", default=None, help="Log level (default: FORMX_LOG_LEVEL or INFO)")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(context, log_level, verbose):
    context.ensure_object(dict)
    configure_logging(log_level or settings.LOG_LEVEL, verbose=verbose)


@cli.command("migrate", help="Migrate a saved form to the current persisted schema.")
@click.pass_context
@click.argument("form_path")
@click.option("--out", "-o", "out_path", default=None, help="Write the migrated form here (default: stdout)")
def migrate_cmd(context, form_path, out_path):
    try:
        data = _read_json(form_path)
        info = get_migration_info(data)
        console.print(
            f"{_stamp()} Detected {info['fromFormat']} form, version {info['fromVersion']}", style="blue"
        )
        result = migrate_form(data)
    except Exception as e:
        console.print(f"{_stamp()} Migration failed with error(s): {e}", style="red")
        context.exit(1)

    for warning in result.warnings:
        console.print(f"{_stamp()} {warning}", style="yellow")
    if not result.success:
        for error in result.errors:
            console.print(f"{_stamp()} {error}", style="red")
        context.exit(1)

    state = "migrated" if result.migrated else "already current"
    console.print(f"{_stamp()} Form {state} (version {result.version})", style="green")
    _emit(result.data, out_path)


@cli.command("check", help="Check a saved form loads and survives a save/load round trip.")
@click.pass_context
@click.argument("form_path")
def check_cmd(context, form_path):
    try:
        persisted = ensure_loadable(_read_json(form_path))
        envelope = validate_persisted_form(persisted)
        components = FormConverter().from_persisted_form(persisted)
        round_trip = validate_round_trip(components)
    except Exception as e:
        console.print(f"{_stamp()} Check failed with error(s): {e}", style="red")
        context.exit(1)

    table = Table(title="Form check")
    table.add_column("Check")
    table.add_column("Result")
    table.add_column("Details")
    for name, report in (("envelope", envelope), ("round trip", round_trip)):
        status = "[green]ok[/green]" if report.success else "[red]failed[/red]"
        details = "\n".join(report.errors + [f"warning: {w}" for w in report.warnings]) or "-"
        table.add_row(name, status, details)
    console.print(table)
    console.print(
        f"{_stamp()} {round_trip.component_count.get('original', 0)} component(s) checked",
        style="green" if envelope.success and round_trip.success else "red",
    )
    if not (envelope.success and round_trip.success):
        context.exit(1)


@cli.command("evaluate", help="Evaluate a form against some data and print each component's state.")
@click.pass_context
@click.argument("form_path")
@click.option("--data", "data_arg", default=None, help="Form data as inline JSON or a .json file")
@click.option("--all", "show_all", is_flag=True, help="Include components that are not rendered")
def evaluate_cmd(context, form_path, data_arg, show_all):
    set_session_id(generate_short_id())
    try:
        persisted = ensure_loadable(_read_json(form_path))
        store = FormDataStore(_parse_json_arg(data_arg) or {})
        runtime = FormRuntime.from_persisted(persisted, store)
        states = runtime.refresh().states
    except Exception as e:
        console.print(f"{_stamp()} Evaluation failed with error(s): {e}", style="red")
        context.exit(1)

    table = Table(title=f"Component states ({len(states)})")
    for column in ("id", "type", "rendered", "disabled", "required", "label", "value"):
        table.add_column(column)
    for key, state in states.items():
        if not (state.rendered or show_all):
            continue
        table.add_row(
            key,
            state.type,
            str(state.rendered),
            str(state.disabled),
            str(state.required),
            "" if state.label is None else str(state.label),
            json.dumps(state.value, default=str),
        )
    console.print(table)
    console.print(f"{_stamp()} Final data: {json.dumps(store.get_all(), default=str)}", style="green")


@cli.command("export", help="Export a saved form in another layout.")
@click.pass_context
@click.argument("form_path")
@click.option(
    "--format", "fmt",
    type=click.Choice(sorted(EXPORT_FORMATS)),
    default="structure",
    show_default=True,
    help="Export layout",
)
@click.option("--out", "-o", "out_path", default=None, help="Output file (default: stdout)")
def export_cmd(context, form_path, fmt, out_path):
    try:
        persisted = ensure_loadable(_read_json(form_path))
        components = FormConverter().from_persisted_form(persisted)
        payload = EXPORT_FORMATS[fmt](components, persisted.get("metadata"))
    except Exception as e:
        console.print(f"{_stamp()} Export failed with error(s): {e}", style="red")
        context.exit(1)
    _emit(payload, out_path)


@cli.command("validate-value", help="Validate one value against a rule list.")
@click.pass_context
@click.argument("value")
@click.option("--schema", "schema_arg", required=True, help="Rules as inline JSON or a .json file")
@click.option("--type", "data_type", default="string", show_default=True, help="Value type, or a component type name")
@click.option("--data", "data_arg", default=None, help="Form data for validateWhen gates")
def validate_value_cmd(context, value, schema_arg, data_type, data_arg):
    if data_type[:1].isupper():
        data_type = data_type_for(data_type)
    parsed = value
    if data_type != "string":
        try:
            parsed = json.loads(value)
        except ValueError:
            parsed = value
    try:
        result = asyncio.run(validate_value(parsed, _parse_json_arg(schema_arg), data_type, _parse_json_arg(data_arg) or {}))
    except Exception as e:
        console.print(f"{_stamp()} Validation failed with error(s): {e}", style="red")
        context.exit(1)

    if result.success:
        console.print(f"{_stamp()} Value is valid", style="green")
        return
    for error in result.errors:
        console.print(f"{_stamp()} {error}", style="red")
    context.exit(1)


def main():
    cli(prog_name="formx")

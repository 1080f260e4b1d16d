"""
Integration tests for the formx command line.
"""

import json

import pytest
from click.testing import CliRunner

from formx.cli.cli import cli

pytestmark = pytest.mark.integration


@pytest.fixture
def runner():
    return CliRunner()


class TestMigrateCommand:

    def test_migrates_legacy_form_to_file(self, runner, tmp_path, write_json, legacy_persisted_form):
        source = write_json("legacy.json", legacy_persisted_form)
        out = tmp_path / "migrated.json"
        result = runner.invoke(cli, ["migrate", str(source), "--out", str(out)])
        assert result.exit_code == 0, result.output
        migrated = json.loads(out.read_text(encoding="utf-8"))
        assert migrated["version"] == "1"
        assert migrated["defaultLanguage"] == "en-US"

    def test_current_form(self, runner, tmp_path, write_json, persisted_form):
        source = write_json("form.json", persisted_form)
        out = tmp_path / "same.json"
        result = runner.invoke(cli, ["migrate", str(source), "-o", str(out)])
        assert result.exit_code == 0
        assert json.loads(out.read_text(encoding="utf-8")) == persisted_form

    def test_unknown_format_fails(self, runner, write_json):
        source = write_json("bad.json", {"hello": "world"})
        result = runner.invoke(cli, ["migrate", str(source)])
        assert result.exit_code == 1

    def test_missing_file_fails(self, runner, tmp_path):
        result = runner.invoke(cli, ["migrate", str(tmp_path / "nope.json")])
        assert result.exit_code == 1


class TestCheckCommand:

    def test_valid_form(self, runner, write_json, persisted_form):
        result = runner.invoke(cli, ["check", str(write_json("form.json", persisted_form))])
        assert result.exit_code == 0, result.output

    def test_unloadable_form(self, runner, write_json):
        result = runner.invoke(cli, ["check", str(write_json("bad.json", [{"id": "a"}]))])
        assert result.exit_code == 1


class TestEvaluateCommand:

    def test_evaluates_with_inline_data(self, runner, write_json, persisted_form):
        source = write_json("form.json", persisted_form)
        result = runner.invoke(cli, ["evaluate", str(source), "--data", '{"age": 12}', "--all"])
        assert result.exit_code == 0, result.output
        assert "Final data" in result.output
        assert '"age": 12' in result.output

    def test_data_from_file(self, runner, write_json, persisted_form):
        source = write_json("form.json", persisted_form)
        data = write_json("data.json", {"age": 40})
        result = runner.invoke(cli, ["evaluate", str(source), "--data", str(data)])
        assert result.exit_code == 0, result.output

    def test_bad_data_fails(self, runner, write_json, persisted_form):
        source = write_json("form.json", persisted_form)
        result = runner.invoke(cli, ["evaluate", str(source), "--data", "{not json"])
        assert result.exit_code == 1


class TestExportCommand:

    @pytest.mark.parametrize("fmt", ["structure", "flat", "schema", "json-schema", "clean"])
    def test_formats(self, runner, tmp_path, write_json, persisted_form, fmt):
        source = write_json("form.json", persisted_form)
        out = tmp_path / f"{fmt}.json"
        result = runner.invoke(cli, ["export", str(source), "--format", fmt, "--out", str(out)])
        assert result.exit_code == 0, result.output
        assert json.loads(out.read_text(encoding="utf-8"))

    def test_flat_export_contents(self, runner, tmp_path, write_json, persisted_form):
        source = write_json("form.json", persisted_form)
        out = tmp_path / "flat.json"
        runner.invoke(cli, ["export", str(source), "--format", "flat", "--out", str(out)])
        flat = json.loads(out.read_text(encoding="utf-8"))
        assert [n["id"] for n in flat] == ["cont-main", "text-name", "amou-age", "text-guardian", "butt-submit"]

    def test_unknown_format_is_a_usage_error(self, runner, write_json, persisted_form):
        source = write_json("form.json", persisted_form)
        result = runner.invoke(cli, ["export", str(source), "--format", "xml"])
        assert result.exit_code == 2


class TestValidateValueCommand:

    def test_valid_value(self, runner):
        result = runner.invoke(cli, ["validate-value", "ada@lovelace.org", "--schema", '[{"key": "email"}]'])
        assert result.exit_code == 0, result.output

    def test_invalid_number(self, runner):
        schema = '{"validations": [{"key": "min", "args": {"limit": 0}}, {"key": "integer"}]}'
        result = runner.invoke(cli, ["validate-value", "--schema", schema, "--type", "number", "--", "-1.5"])
        assert result.exit_code == 1
        assert "Must be an integer" in result.output

    def test_component_type_maps_to_data_type(self, runner):
        result = runner.invoke(cli, ["validate-value", "5", "--schema", '[{"key": "max", "args": {"limit": 3}}]', "--type", "Amount"])
        assert result.exit_code == 1
        assert "Maximum value is 3" in result.output

    def test_string_values_are_not_json_parsed(self, runner):
        result = runner.invoke(cli, ["validate-value", "123", "--schema", '[{"key": "min", "args": {"limit": 3}}]'])
        assert result.exit_code == 0, result.output

    def test_validate_when_uses_data(self, runner):
        schema = '[{"key": "required", "validateWhen": "data.country === \'US\'"}]'
        ok = runner.invoke(cli, ["validate-value", "", "--schema", schema, "--data", '{"country": "NO"}'])
        failed = runner.invoke(cli, ["validate-value", "", "--schema", schema, "--data", '{"country": "US"}'])
        assert ok.exit_code == 0
        assert failed.exit_code == 1

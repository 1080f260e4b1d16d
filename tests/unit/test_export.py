"""
Unit tests for export formats, imports and whole-form checks.
"""

import json

import pytest

from formx.core.errors import ConversionError, MigrationError
from formx.serialization import (
    clean_form_structure,
    export_form_flat,
    export_form_json_schema,
    export_form_schema,
    export_form_structure,
    import_form_from_json,
    load_form,
    read_form_from_file,
    write_persisted_form,
)
from formx.validation import count_components, quick_validate, validate_persisted_form, validate_round_trip


class TestExportFormats:

    def test_structure_cleans_builder_props(self):
        components = [{
            "id": "text-a",
            "type": "TextInput",
            "guid": "g-1",
            "props": {
                "label": {"value": "A"},
                "isCmp": True,
                "dependencies": {"label": {"type": "template", "template": "Hello data.name"}},
            },
        }]
        exported = export_form_structure(components, {"formName": "F"})
        assert exported["version"] == "1.0.0"
        assert exported["metadata"]["formName"] == "F"
        node = exported["structure"][0]
        assert node["guid"] == "g-1"
        assert node["props"]["label"] == "A"
        assert "isCmp" not in node["props"]
        assert node["props"]["dependencies"]["label"]["template"] == "Hello {data.name}"

    def test_flat_list(self, registration_components):
        flat = export_form_flat(registration_components)
        assert [(n["id"], n["parentId"]) for n in flat] == [
            ("cont-main", None),
            ("text-name", "cont-main"),
            ("amou-age", "cont-main"),
            ("text-guardian", "cont-main"),
            ("butt-submit", None),
        ]

    def test_field_schema(self):
        components = [
            {"id": "sele-c", "type": "Select", "props": {"label": "Country", "options": ["NO"]}},
            {"id": "area-n", "type": "TextArea", "props": {}},
        ]
        fields = export_form_schema(components)["fields"]
        assert fields[0]["options"] == ["NO"]
        assert fields[0]["label"] == "Country"
        assert fields[1]["rows"] == 4
        assert fields[1]["required"] is False

    def test_json_schema(self):
        components = [
            {"id": "cont-x", "type": "Container", "props": {}},
            {"id": "amou-p", "type": "Amount", "props": {"name": "price", "label": "Price", "required": True, "min": 0}},
            {"id": "sele-c", "type": "Select", "props": {"options": [{"value": "NO", "label": "Norway"}, "SE"]}},
            {"id": "chec-t", "type": "CheckBox", "props": {}},
        ]
        doc = export_form_json_schema(components)
        assert doc["required"] == ["price"]
        assert doc["properties"]["price"] == {"type": "number", "title": "Price", "min": 0}
        assert doc["properties"]["sele-c"]["enum"] == ["NO", "SE"]
        assert doc["properties"]["chec-t"]["type"] == "boolean"
        assert "cont-x" not in doc["properties"]

    def test_clean_form_structure(self):
        components = [{"id": "a", "type": "Container", "props": {"guid": "x", "isWa": 1, "classes": ["selected-component", "main"]}}]
        assert clean_form_structure(components) == [{"id": "a", "type": "Container", "props": {"classes": ["main"]}}]


class TestImports:

    def test_load_form_migrates_first(self, legacy_persisted_form):
        components = load_form(legacy_persisted_form)
        assert components[0]["id"] == "cont-main"

    def test_load_form_refuses_unknown_input(self):
        with pytest.raises(MigrationError):
            load_form({"something": "else"})

    def test_import_from_json_text(self, persisted_form):
        assert len(import_form_from_json(json.dumps(persisted_form))) == 2

    def test_invalid_json(self):
        with pytest.raises(ConversionError, match="Invalid JSON"):
            import_form_from_json("{nope")

    def test_write_and_read_file(self, tmp_path, registration_components):
        path = tmp_path / "form.json"
        write_persisted_form(path, registration_components, {"id": "reg_v1"})
        on_disk = json.loads(path.read_text(encoding="utf-8"))
        assert on_disk["id"] == "reg_v1"
        restored = read_form_from_file(path)
        assert [c["id"] for c in restored] == ["cont-main", "butt-submit"]


class TestFormValidators:

    def test_round_trip_of_fixture(self, registration_components):
        report = validate_round_trip(registration_components)
        assert report.success is True
        assert report.errors == []
        assert report.component_count == {"original": 5, "afterConversion": 5}

    def test_round_trip_reports_conversion_failure(self):
        components = [{"id": "a", "type": "Text"}, {"id": "a", "type": "Text"}]
        report = validate_round_trip(components)
        assert report.success is False
        assert report.errors[0].startswith("Validation failed")
        assert report.component_count["afterConversion"] == 0

    def test_nested_value_records_survive(self):
        components = [{"id": "a", "type": "Text", "props": {"meta": {"value": {"value": 1}}}}]
        report = validate_round_trip(components)
        assert report.success is True

    def test_validate_persisted_form(self, persisted_form):
        report = validate_persisted_form(persisted_form)
        assert report.success is True
        assert report.component_count["afterConversion"] == 2

    def test_validate_persisted_form_problems(self):
        report = validate_persisted_form({"form": {"type": "Form"}})
        assert report.success is False
        assert report.errors == ["Missing version field", "Missing form.key"]
        assert len(report.warnings) == 2

    def test_count_and_quick_validate(self, registration_components):
        assert count_components(registration_components) == 5
        assert quick_validate(registration_components) is True
        assert quick_validate([{"id": "a"}]) is False
        assert quick_validate({"id": "a", "type": "Text"}) is False
        assert quick_validate([{"id": "a", "type": "Text", "children": "x"}]) is False

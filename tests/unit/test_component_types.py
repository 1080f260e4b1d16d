"""
Unit tests for the widget type registry.
"""

from formx.lib.component_types import (
    COMPONENT_TYPES,
    LEGACY_TYPE_NAMES,
    data_type_for,
    get_component_type,
    is_container,
)


class TestRegistry:

    def test_every_widget_kind_is_registered(self):
        assert len(COMPONENT_TYPES) == 45
        assert "TextInput" in COMPONENT_TYPES
        assert "RepeaterEx" in COMPONENT_TYPES

    def test_containers(self):
        assert is_container("Container") is True
        assert is_container("Repeater") is True
        assert is_container("TextInput") is False
        assert is_container("Unknown") is False

    def test_data_types(self):
        assert data_type_for("Amount") == "number"
        assert data_type_for("CheckBox") == "boolean"
        assert data_type_for("DateTime") == "date"
        assert data_type_for("CheckBoxGroup") == "array"
        assert data_type_for("Button") == "string"
        assert data_type_for("Unknown") == "string"

    def test_defaults_are_fresh_copies(self):
        grid = get_component_type("DataGrid")
        first = grid.default_value()
        first.append(1)
        assert grid.default_value() == []
        assert get_component_type("Toggle").default_value() is False
        assert get_component_type("Amount").default_value() is None

    def test_repeaters_repeat_children(self):
        assert get_component_type("RepeaterEx").repeats_children is True
        assert get_component_type("Container").repeats_children is False

    def test_input_flag(self):
        assert get_component_type("TextArea").is_input is True
        assert get_component_type("Label").is_input is False

    def test_legacy_names_map_to_registered_kinds(self):
        for legacy, kind in LEGACY_TYPE_NAMES.items():
            assert kind in COMPONENT_TYPES, legacy

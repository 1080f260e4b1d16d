"""
Pytest configuration and shared fixtures for the formx test suite.
"""

import copy
import json
import logging

import pytest

from formx.core.signals import reset_buses
from formx.lib.runtime.safe_eval import clear_script_cache
from formx.lib.store import FormDataStore


@pytest.fixture(autouse=True)
def clean_runtime_state():
    """Fresh signal buses and script cache for every test."""
    reset_buses()
    clear_script_cache()
    yield
    reset_buses()


@pytest.fixture(autouse=True)
def propagating_formx_logger():
    """Undo configure_logging (CLI tests call it) so caplog sees formx records."""
    formx_logger = logging.getLogger("formx")
    handlers, level, propagate = list(formx_logger.handlers), formx_logger.level, formx_logger.propagate
    formx_logger.propagate = True
    yield
    formx_logger.handlers[:] = handlers
    formx_logger.setLevel(level)
    formx_logger.propagate = propagate


@pytest.fixture
def store():
    return FormDataStore()


@pytest.fixture
def registration_components():
    """A small registration form: plain inputs, a dependent field and a button."""
    return [
        {
            "id": "cont-main",
            "type": "Container",
            "props": {"css": "main"},
            "children": [
                {
                    "id": "text-name",
                    "type": "TextInput",
                    "props": {
                        "dataKey": "name",
                        "label": "Name",
                        "schema": {"validations": [{"key": "required", "args": {}}]},
                    },
                },
                {
                    "id": "amou-age",
                    "type": "Amount",
                    "props": {"dataKey": "age", "label": "Age"},
                },
                {
                    "id": "text-guardian",
                    "type": "TextInput",
                    "props": {
                        "dataKey": "guardian",
                        "label": {"computeType": "Function", "fnSource": "return data.age < 18 ? 'Guardian (required)' : 'Guardian';"},
                        "renderWhen": {"type": "expression", "expression": "data.age < 18"},
                    },
                },
            ],
        },
        {
            "id": "butt-submit",
            "type": "Button",
            "props": {
                "text": "Submit",
                "events": {"onClick": [{"name": "log", "type": "common", "args": {"message": "submitted"}}]},
            },
        },
    ]


@pytest.fixture
def persisted_form(registration_components):
    """The registration form saved in the current persisted format."""
    from formx.serialization.conversion import FormConverter

    return FormConverter().to_persisted_form(
        registration_components,
        {"id": "registration_v1", "metadata": {"formName": "Registration"}},
    )


@pytest.fixture
def legacy_persisted_form(persisted_form):
    """The same form as an unversioned save without language settings."""
    legacy = copy.deepcopy(persisted_form)
    legacy["version"] = None
    for key in ("defaultLanguage", "languages", "localization"):
        legacy.pop(key, None)
    return legacy


@pytest.fixture
def write_json(tmp_path):
    """Write a payload to a JSON file under tmp_path and return its path."""

    def _write(name, payload):
        path = tmp_path / name
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    return _write

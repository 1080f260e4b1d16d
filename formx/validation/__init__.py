"""
Validation for formx.

- rule_validators: per-field rule schemas (`validate`, `build_schema`)
- form_validators: whole-form checks (round trip, persisted envelope)
- messages: default error messages
"""

from formx.validation.rule_validators import (
    DATA_TYPES,
    build_schema,
    get_validation_errors,
    parse_validation_schema,
    rule_applies,
    validate,
)

from formx.validation.form_validators import (
    count_components,
    quick_validate,
    validate_persisted_form,
    validate_round_trip,
)

from formx.validation.messages import default_message

__all__ = [
    # Rule validators
    "DATA_TYPES",
    "build_schema",
    "get_validation_errors",
    "parse_validation_schema",
    "rule_applies",
    "validate",
    # Form validators
    "count_components",
    "quick_validate",
    "validate_persisted_form",
    "validate_round_trip",
    # Messages
    "default_message",
]

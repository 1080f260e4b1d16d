# Default messages per rule key; `(key, data_type)` entries take precedence over `key`.
# Placeholders are filled from the rule's args.

DEFAULT_MESSAGES = {
    "required": "This field is required",
    ("min", "string"): "Minimum length is {limit}",
    ("min", "number"): "Minimum value is {limit}",
    ("min", "array"): "Minimum items is {limit}",
    ("min", "date"): "Date must be after {limit}",
    ("max", "string"): "Maximum length is {limit}",
    ("max", "number"): "Maximum value is {limit}",
    ("max", "array"): "Maximum items is {limit}",
    ("max", "date"): "Date must be before {limit}",
    ("length", "string"): "Length must be {limit}",
    ("length", "array"): "Array length must be {limit}",
    "regex": "Invalid format",
    "email": "Invalid email address",
    "url": "Invalid URL",
    "uuid": "Invalid UUID",
    "ip": "Invalid IP address",
    "datetime": "Invalid datetime",
    "includes": 'Must include "{value}"',
    "startsWith": 'Must start with "{value}"',
    "endsWith": 'Must end with "{value}"',
    "lessThan": "Must be less than {limit}",
    "moreThan": "Must be greater than {limit}",
    "integer": "Must be an integer",
    "multipleOf": "Must be a multiple of {value}",
    "custom": "Invalid value",
    "type": "Expected {expected}, received {received}",
}


class _Args(dict):
    def __missing__(self, key):
        return "undefined"


def default_message(key: str, data_type: str, **args) -> str:
    template = DEFAULT_MESSAGES.get((key, data_type)) or DEFAULT_MESSAGES.get(key) or "Invalid value"
    return template.format_map(_Args(args))

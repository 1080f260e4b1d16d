# formx/core/errors.py
from __future__ import annotations

from typing import Any, List, Optional


class FormxError(Exception):
    """Base class for every error raised by the form engine."""


class ExpressionError(FormxError):
    """A user-authored expression or function body could not be evaluated."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class ExpressionSyntaxError(ExpressionError):
    def __init__(self, message: str, source: Optional[str] = None, position: Optional[int] = None):
        if position is not None:
            message = f"{message} (at offset {position})"
        super().__init__(message, source)
        self.position = position


class ExpressionRuntimeError(ExpressionError):
    pass


class ScriptError(FormxError):
    """Raised by a `throw` statement inside a user script."""

    def __init__(self, value: Any = None):
        self.value = value
        if isinstance(value, str):
            message = value
        else:
            message = getattr(value, "message", None) or repr(value)
        super().__init__(message)


class ActionError(FormxError):
    def __init__(self, action_name: str, message: str):
        super().__init__(f"Action '{action_name}': {message}")
        self.action_name = action_name


class MigrationError(FormxError):
    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class ConversionError(FormxError):
    pass


class DataSourceError(FormxError):
    def __init__(self, descriptor: Any, message: str):
        super().__init__(f"{message} (source={descriptor!r})")
        self.descriptor = descriptor

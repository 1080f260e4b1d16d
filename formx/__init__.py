"""Computed-property, dependency and serialization engine for visual form definitions."""

__version__ = "0.1.0"

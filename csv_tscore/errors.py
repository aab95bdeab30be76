from __future__ import annotations


class ParseError(ValueError):
    """Raised when raw input cannot be turned into a table."""


class ConfigurationError(ValueError):
    """Raised when an analysis configuration breaks one of its invariants."""

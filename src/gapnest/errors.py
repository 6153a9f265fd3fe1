"""
Gapnest — Exceptions.

All pipeline errors derive from :class:`GapnestError`, itself a
``ValueError`` so callers that only guard against bad input keep working.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence


class GapnestError(ValueError):
    """Base pipeline error."""


class ParseError(GapnestError):
    """Raised when a cell cannot be coerced to the expected numeric type."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        column: Optional[str] = None,
        values: Sequence[Any] = (),
    ):
        self.source = source
        self.column = column
        self.values = list(values)
        if values:
            message = f"{message} (sample: {self.values[:5]!r})"
        super().__init__(message)


class InsufficientDataError(GapnestError):
    """Raised when a group has too few distinct x values to fit a line."""

    def __init__(self, message: str, key: Any = None):
        self.key = key
        super().__init__(message)


class JoinKeyMismatch(GapnestError):
    """Raised when a table lacks one of the expected join columns."""

    def __init__(self, name: str, missing: Sequence[str]):
        self.name = name
        self.missing = sorted(missing)
        super().__init__(f"{name} missing join columns: {self.missing}")

"""Error types raised by the recurrence engine."""
from __future__ import annotations


class RecurrenceError(Exception):
    """Base class for recurrence engine failures."""


class RuleValidationError(RecurrenceError, ValueError):
    """A recurrence rule or adjustment condition is malformed."""


class UnboundedScanError(RecurrenceError, RuntimeError):
    """A directional date scan ran past its iteration cap."""

    def __init__(self, message: str, *, limit: int) -> None:
        super().__init__(message)
        self.limit = limit

"""Exception taxonomy for the detection engine."""
from __future__ import annotations

from typing import Optional


class ArbitrageError(Exception):
    """Base exception carrying an optional details mapping."""

    def __init__(self, message: str, details: Optional[dict] = None) -> None:
        super().__init__(message)
        self.details = details or {}


class DataError(ArbitrageError):
    """An individual rate or edge is invalid or outside sane bounds."""

    def __init__(self, message: str, reason: str = "invalid_rate", details: Optional[dict] = None) -> None:
        super().__init__(message, details)
        self.reason = reason


class FetchFailure(ArbitrageError):
    """A collaborator call failed or timed out."""

    def __init__(self, source: str, message: str, details: Optional[dict] = None) -> None:
        super().__init__(f"{source}: {message}", details)
        self.source = source


class ComputationError(ArbitrageError):
    """Unexpected fault while evaluating a single candidate."""

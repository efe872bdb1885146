"""Exceptions raised by the decision engine."""

from __future__ import annotations


class EngineError(RuntimeError):
    """Raised when an experiment cannot be evaluated."""


class InvalidCountsError(EngineError, ValueError):
    """Raised when outcome counts cannot form a valid Beta posterior."""

    error_code = "ADSPLIT_INVALID_COUNTS"

    def __init__(self, message: str) -> None:
        super().__init__(f"{self.error_code}: {message}")


class ComparisonConvergenceError(EngineError):
    """Raised when a posterior comparison does not produce a trustworthy value."""

    error_code = "ADSPLIT_COMPARISON_CONVERGENCE"

    def __init__(self, message: str) -> None:
        super().__init__(f"{self.error_code}: {message}")

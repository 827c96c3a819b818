# services/errors.py
from __future__ import annotations

from typing import Any, Optional

from pydantic import ValidationError


class PortfolioCoreError(Exception):
    """Base for every error the decision core raises on purpose."""


class InvalidInput(PortfolioCoreError, ValueError):
    """Malformed input. Raised before any computation; no partial results."""

    def __init__(self, field: str, constraint: str, value: Any = None) -> None:
        self.field = field
        self.constraint = constraint
        self.value = value
        super().__init__(f"{field}: {constraint}")

    def to_detail(self) -> dict:
        return {"field": self.field, "constraint": self.constraint}

    @classmethod
    def from_validation_error(cls, exc: ValidationError, prefix: Optional[str] = None) -> "InvalidInput":
        """Collapse a pydantic ValidationError into the first offending field."""
        errors = exc.errors()
        if not errors:
            return cls(prefix or "input", str(exc))
        first = errors[0]
        loc = ".".join(str(p) for p in first.get("loc", ()) if p != "__root__")
        field = ".".join(p for p in (prefix, loc) if p) or "input"
        return cls(field, first.get("msg", "invalid value"), first.get("input"))


class InsufficientData(PortfolioCoreError):
    """Too few questionnaire answers for a confident score (strict mode only)."""

    def __init__(self, answered: int, required: int) -> None:
        self.answered = answered
        self.required = required
        super().__init__(
            f"only {answered} questionnaire responses, at least {required} required"
        )


class SimulationAborted(PortfolioCoreError):
    """Simulation cancelled or timed out before any trial completed."""

    def __init__(self, trials_completed: int, trials_requested: int, reason: str = "cancelled") -> None:
        self.trials_completed = trials_completed
        self.trials_requested = trials_requested
        self.reason = reason
        super().__init__(
            f"simulation {reason} after {trials_completed}/{trials_requested} trials"
        )

from typing import Any, Dict, Optional


class OptimizationError(Exception):
    """Base for every error the engine reports to its caller."""

    kind = "optimization_error"

    def __init__(self, message: str, field: Optional[str] = None, constraint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.constraint = constraint

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "field": self.field,
            "constraint": self.constraint,
        }


class InvalidConstraint(OptimizationError):
    """Malformed request; names the first offending field."""

    kind = "invalid_constraint"

    def __init__(self, field: str, description: str):
        super().__init__(f"{field}: {description}", field=field)
        self.description = description


_HINTS = {
    "budget": "increase the budget or drop expensive required players",
    "quota": "require fewer players in that position or exclude fewer candidates",
    "group_cap": "raise the per-team limit or change the required/excluded players",
    "required": "check the required player ids against the current catalog",
}


class Infeasible(OptimizationError):
    """No roster satisfies the catalog and constraints together."""

    kind = "infeasible"

    def __init__(self, reason: str, constraint: Optional[str] = None):
        hint = _HINTS.get(constraint or "")
        message = f"{reason} ({hint})" if hint else reason
        super().__init__(message, constraint=constraint)
        self.reason = reason
        self.hint = hint


class InvalidFormation(OptimizationError):
    kind = "invalid_formation"

    def __init__(self, message: str):
        super().__init__(message, field="formation")


class InternalLimitExceeded(OptimizationError):
    """Exact search outgrew a configured resource budget."""

    kind = "internal_limit_exceeded"

    def __init__(self, message: str, limit: str):
        super().__init__(message, constraint=limit)
        self.limit = limit

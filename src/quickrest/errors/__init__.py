"""QuickREST error hierarchy."""

from quickrest.errors.base import (
    ConfigValidationError,
    ErrorCode,
    ErrorContext,
    InvalidReplayCase,
    InvocationTimeout,
    ObjectiveError,
    QuickRESTError,
    ReplayMismatch,
    ShrinkInvariantViolation,
    SpecError,
    TransportError,
    UnknownObjectiveError,
    UnresolvedDependency,
)

__all__ = [
    "ConfigValidationError",
    "ErrorCode",
    "ErrorContext",
    "InvalidReplayCase",
    "InvocationTimeout",
    "ObjectiveError",
    "QuickRESTError",
    "ReplayMismatch",
    "ShrinkInvariantViolation",
    "SpecError",
    "TransportError",
    "UnknownObjectiveError",
    "UnresolvedDependency",
]

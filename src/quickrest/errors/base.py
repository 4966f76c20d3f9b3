"""Exception hierarchy for QuickREST.

Every error raised by the engine inherits from QuickRESTError and carries:
- error_code: an ErrorCode for programmatic handling
- context: ErrorContext with operation/invocation/attempt details
- suggestions: actionable steps to resolve the issue
- recoverable: whether the search can continue past it

Only SpecError and ConfigValidationError are fatal to a search. The rest are
raised at a single seam and handled by the component one level up (the
Generator falls back on UnresolvedDependency, the Explorer discards an attempt
on TransportError, and so on).

Example:
    try:
        graph = OperationGraph(operations)
    except SpecError as e:
        print(f"Error [{e.error_code.value}]: {e.message}")
        for suggestion in e.suggestions:
            print(f"  - {suggestion}")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes.

    - E0xx: Transport errors
    - E1xx: Specification errors
    - E2xx: Configuration errors
    - E3xx: Resource state errors
    - E4xx: Objective errors
    - E5xx: Shrinking errors
    - E6xx: Replay errors
    - E999: anything else
    """

    TRANSPORT_FAILED = "E001"
    INVOCATION_TIMEOUT = "E002"

    SPEC_INVALID = "E101"
    UNKNOWN_OPERATION = "E102"
    UNSUPPORTED_SCHEMA = "E103"

    INVALID_CONFIG = "E201"

    UNRESOLVED_DEPENDENCY = "E301"

    OBJECTIVE_DATA_MISSING = "E401"
    UNKNOWN_OBJECTIVE = "E402"

    SHRINK_INVARIANT = "E501"

    REPLAY_MISMATCH = "E601"
    REPLAY_INVALID = "E602"

    UNKNOWN = "E999"

    @property
    def category(self) -> str:
        """Which part of the engine the code belongs to."""
        code_num = int(self.value[1:])
        if code_num < 100:
            return "transport"
        elif code_num < 200:
            return "spec"
        elif code_num < 300:
            return "config"
        elif code_num < 400:
            return "state"
        elif code_num < 500:
            return "objective"
        elif code_num < 600:
            return "shrink"
        elif code_num < 700:
            return "replay"
        else:
            return "unknown"


@dataclass
class ErrorContext:
    """Where an error happened.

    Attributes:
        operation_id: Operation being generated, executed or validated.
        invocation_index: Position of the invocation within its sequence.
        attempt: Explorer attempt number (1-based).
        request: Request details (method, url, arguments).
        extra: Additional context-specific information.
        timestamp: When the error occurred.
    """

    operation_id: str | None = None
    invocation_index: int | None = None
    attempt: int | None = None
    request: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly form; unset fields are left out."""
        result = {
            "operation_id": self.operation_id,
            "invocation_index": self.invocation_index,
            "attempt": self.attempt,
            "request": self.request,
            "extra": self.extra,
            "timestamp": self.timestamp.isoformat(),
        }
        return {k: v for k, v in result.items() if v is not None}

    def format_location(self) -> str:
        """Where the error happened, e.g. ``attempt=3 > invocation=1 > operation=get_item``."""
        parts = []
        if self.attempt is not None:
            parts.append(f"attempt={self.attempt}")
        if self.invocation_index is not None:
            parts.append(f"invocation={self.invocation_index}")
        if self.operation_id:
            parts.append(f"operation={self.operation_id}")
        return " > ".join(parts) if parts else "unknown location"


class QuickRESTError(Exception):
    """Base exception for all QuickREST errors.

    Attributes:
        error_code: ErrorCode identifying the failure
        message: What went wrong, for humans
        context: Where it went wrong
        suggestions: Steps that usually fix it
        recoverable: Whether the search can continue past the error
        cause: Exception this one wraps, if any
    """

    error_code: ErrorCode = ErrorCode.UNKNOWN
    default_message: str = "An unexpected error occurred"
    default_suggestions: list[str] = []
    default_recoverable: bool = True

    def __init__(
        self,
        message: str | None = None,
        error_code: ErrorCode | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
        recoverable: bool | None = None,
        suggestions: list[str] | None = None,
        **extra_context: Any,
    ) -> None:
        self.message = message or self.default_message
        self.error_code = error_code or self.error_code
        self.context = context or ErrorContext()
        self.cause = cause
        self.recoverable = self.default_recoverable if recoverable is None else recoverable
        self._suggestions = suggestions

        if extra_context:
            self.context.extra.update(extra_context)

        super().__init__(self.message)

    @property
    def suggestions(self) -> list[str]:
        """Explicit suggestions if given, otherwise the class defaults."""
        if self._suggestions is not None:
            return self._suggestions
        return self.default_suggestions.copy()

    def __str__(self) -> str:
        parts = [f"[{self.error_code.value}] {self.message}"]
        location = self.context.format_location()
        if location != "unknown location":
            parts.append(f"at {location}")
        return " | ".join(parts)

    def format_verbose(self) -> str:
        """Multi-line rendering for the command line."""
        lines = [f"Error [{self.error_code.value}]: {self.message}", ""]

        location = self.context.format_location()
        if location != "unknown location":
            lines.append(f"Location: {location}")

        if self.context.request:
            method = self.context.request.get("method", "?")
            url = self.context.request.get("url", "?")
            lines.append(f"Request: {method} {url}")

        if self.suggestions:
            lines.append("")
            lines.append("Suggestions:")
            for suggestion in self.suggestions:
                lines.append(f"  - {suggestion}")

        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly form for reports."""
        return {
            "error_code": self.error_code.value,
            "error_type": self.__class__.__name__,
            "message": self.message,
            "recoverable": self.recoverable,
            "suggestions": self.suggestions,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }


class SpecError(QuickRESTError):
    """Malformed or unsupported operation or schema.

    Raised while the Operation Graph is built, before any search starts.
    """

    error_code = ErrorCode.SPEC_INVALID
    default_message = "Invalid operation specification"
    default_suggestions = [
        "Validate the API description with an OpenAPI linter",
        "Check every {placeholder} in a path has a matching path parameter",
        "Make sure operation ids are unique",
    ]
    default_recoverable = False


class UnresolvedDependency(QuickRESTError):
    """A dependency handle has no value in the current Resource State.

    Never reported as a failure: callers fall back to a freshly synthesized value.
    """

    error_code = ErrorCode.UNRESOLVED_DEPENDENCY
    default_message = "Dependency could not be resolved"

    def __init__(self, handle: Any, message: str | None = None, **kwargs: Any) -> None:
        self.handle = handle
        super().__init__(message or f"No value observed for {handle}", **kwargs)


class TransportError(QuickRESTError):
    """The execution capability could not complete an invocation.

    The attempt is discarded as inconclusive and retried.
    """

    error_code = ErrorCode.TRANSPORT_FAILED
    default_message = "Invocation failed at the transport level"
    default_suggestions = [
        "Verify the service is running and base_url is correct",
        "Increase transport_retries if the service is flaky",
    ]


class InvocationTimeout(TransportError):
    """An invocation exceeded its configured timeout."""

    error_code = ErrorCode.INVOCATION_TIMEOUT
    default_message = "Invocation timed out"
    default_suggestions = [
        "Increase invocation_timeout",
        "Check whether the endpoint hangs for some inputs",
    ]


class ObjectiveError(QuickRESTError):
    """A predicate referenced trace data that is absent.

    Evaluates to inconclusive for the attempt; never aborts the search.
    """

    error_code = ErrorCode.OBJECTIVE_DATA_MISSING
    default_message = "Objective references data missing from the trace"


class UnknownObjectiveError(QuickRESTError):
    """No built-in behaviour is registered under the requested name."""

    error_code = ErrorCode.UNKNOWN_OBJECTIVE
    default_message = "Unknown objective"
    default_suggestions = ["Run 'quickrest behaviours' to list the available objectives"]
    default_recoverable = False


class ShrinkInvariantViolation(QuickRESTError):
    """A shrink candidate left an invocation bound to a value never produced.

    Only the offending candidate is discarded; shrinking continues.
    """

    error_code = ErrorCode.SHRINK_INVARIANT
    default_message = "Shrink candidate has a dangling dependency"


class ReplayMismatch(QuickRESTError):
    """Replaying a persisted sequence did not reproduce its verdict."""

    error_code = ErrorCode.REPLAY_MISMATCH
    default_message = "Replay did not reproduce the recorded verdict"
    default_suggestions = [
        "The API behaviour may have changed since the case was recorded",
        "Re-run 'quickrest explore' to record a fresh case",
    ]
    default_recoverable = False


class ConfigValidationError(QuickRESTError):
    """Exploration settings contain invalid values."""

    error_code = ErrorCode.INVALID_CONFIG
    default_message = "Invalid configuration"
    default_suggestions = [
        "Check quickrest.yaml syntax with a YAML linter",
        "Probabilities must lie in [0, 1] and min_length must not exceed max_length",
    ]
    default_recoverable = False


class InvalidReplayCase(QuickRESTError):
    """A persisted replay case could not be read."""

    error_code = ErrorCode.REPLAY_INVALID
    default_message = "Replay case is missing or malformed"
    default_suggestions = ["Replay files are written by 'quickrest explore --output DIR'"]
    default_recoverable = False

"""Report: the complete output of an exploration run."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from quickrest.core.invocation import Sequence, Trace
from quickrest.core.objective import Objective, Verdict


class ExplorerState(Enum):
    """Lifecycle of an Explorer run."""

    IDLE = "idle"
    SEARCHING = "searching"
    FOUND = "found"
    EXHAUSTED = "exhausted"
    ABORTED = "aborted"


@dataclass
class CandidateRecord:
    """One visited or rejected candidate, for visualizing the search and shrink."""

    phase: str  # "search" or "shrink"
    sequence: Sequence
    verdict: Verdict
    accepted: bool
    reason: str = ""
    attempt: int | None = None
    worker: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase,
            "attempt": self.attempt,
            "worker": self.worker,
            "operations": self.sequence.operation_ids(),
            "length": len(self.sequence),
            "verdict": self.verdict.value,
            "accepted": self.accepted,
            "reason": self.reason,
        }


@dataclass
class Report:
    """The complete output of an exploration run."""

    objective: Objective
    status: ExplorerState = ExplorerState.IDLE
    verdict: Verdict = Verdict.INCONCLUSIVE
    sequence: Sequence | None = None
    original_sequence: Sequence | None = None
    trace: Trace | None = None
    original_trace: Trace | None = None
    candidates: list[CandidateRecord] = field(default_factory=list)
    attempts: int = 0
    dispatched: int = 0
    transport_errors: int = 0
    operations: list[str] = field(default_factory=list)
    invoked: set[str] = field(default_factory=set)
    outcomes: dict[str, int] = field(default_factory=dict)
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None
    duration_ms: float = 0.0

    @property
    def found(self) -> bool:
        return self.status is ExplorerState.FOUND

    @property
    def covered_operations(self) -> list[str]:
        """Operations invoked at least once during the search."""
        return [op for op in self.operations if op in self.invoked]

    @property
    def uncovered_operations(self) -> list[str]:
        return [op for op in self.operations if op not in self.invoked]

    @property
    def coverage_percent(self) -> float:
        if not self.operations:
            return 100.0
        return len(self.covered_operations) / len(self.operations) * 100

    @property
    def shrink_steps(self) -> int:
        return sum(1 for c in self.candidates if c.phase == "shrink" and c.accepted)

    def finish(self) -> None:
        """Mark exploration as finished."""
        self.finished_at = datetime.now()
        self.duration_ms = (self.finished_at - self.started_at).total_seconds() * 1000

    def summary(self) -> dict[str, Any]:
        return {
            "objective": self.objective.name,
            "status": self.status.value,
            "verdict": self.verdict.value,
            "attempts": self.attempts,
            "dispatched": self.dispatched,
            "transport_errors": self.transport_errors,
            "outcomes": dict(self.outcomes),
            "original_length": len(self.original_sequence) if self.original_sequence else 0,
            "minimized_length": len(self.sequence) if self.sequence else 0,
            "shrink_steps": self.shrink_steps,
            "coverage_percent": round(self.coverage_percent, 2),
            "duration_ms": round(self.duration_ms, 2),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary(),
            "objective": self.objective.reference or {"name": self.objective.name},
            "sequence": self.sequence.to_dict() if self.sequence else None,
            "original_sequence": (
                self.original_sequence.to_dict() if self.original_sequence else None
            ),
            "trace": self.trace.to_dict() if self.trace else None,
            "candidates": [c.to_dict() for c in self.candidates],
            "coverage": {
                "covered": self.covered_operations,
                "uncovered": self.uncovered_operations,
            },
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }

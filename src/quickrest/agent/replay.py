"""Persisted replay cases and the replay check behind ``quickrest test``."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from quickrest.adapters.base import Executor
from quickrest.agent.runner import SequenceRunner
from quickrest.core.behaviours import resolve_objective
from quickrest.core.graph import OperationGraph
from quickrest.core.invocation import Sequence, Trace
from quickrest.core.objective import Objective, Verdict
from quickrest.core.operation import Operation
from quickrest.core.result import Report
from quickrest.errors import ErrorContext, InvalidReplayCase, ReplayMismatch

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


@dataclass
class ReplayCase:
    """A minimized sequence plus everything needed to check it again.

    ``objective`` is either a built-in behaviour reference such as
    ``{"behaviour": "server-error", "operation": null}`` or the full
    declarative objective. The operations the sequence touches are embedded
    so a case can be replayed without the original API description.
    """

    objective: dict[str, Any]
    expected: Verdict
    sequence: Sequence
    operations: list[Operation] = field(default_factory=list)
    target: Verdict | None = Verdict.SATISFIED
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_report(cls, report: Report, graph: OperationGraph) -> ReplayCase:
        if report.sequence is None:
            raise InvalidReplayCase(
                f"Report for '{report.objective.name}' has no sequence to persist"
            )
        objective = report.objective
        used = set(report.sequence.operation_ids())
        return cls(
            objective=dict(objective.reference) if objective.reference else objective.to_dict(),
            expected=report.verdict,
            sequence=report.sequence,
            operations=[op for op in graph.operations if op.id in used],
            target=objective.target,
        )

    @property
    def name(self) -> str:
        return self.objective.get("name") or self.objective.get("behaviour", "objective")

    def graph(self) -> OperationGraph:
        return OperationGraph(self.operations)

    def load_objective(
        self,
        customs: dict[str, Callable[[Trace, int], bool | None]] | None = None,
    ) -> Objective:
        if "behaviour" in self.objective:
            return resolve_objective(self.objective)
        return Objective.from_dict(self.objective, customs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": FORMAT_VERSION,
            "objective": self.objective,
            "target": self.target.value if self.target else None,
            "expected": self.expected.value,
            "sequence": self.sequence.to_dict(),
            "operations": [op.to_dict() for op in self.operations],
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReplayCase:
        try:
            target = data.get("target", Verdict.SATISFIED.value)
            return cls(
                objective=dict(data["objective"]),
                expected=Verdict(data["expected"]),
                sequence=Sequence.from_dict(data["sequence"]),
                operations=[Operation.from_dict(op) for op in data.get("operations", [])],
                target=Verdict(target) if target else None,
                created_at=(
                    datetime.fromisoformat(data["created_at"])
                    if data.get("created_at")
                    else datetime.now()
                ),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidReplayCase(f"Malformed replay case: {e}", cause=e) from e

    def save(self, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2, default=str))
        logger.info("Saved replay case to %s", path)
        return path

    @classmethod
    def load(cls, path: str | Path) -> ReplayCase:
        path = Path(path)
        try:
            data = json.loads(path.read_text())
        except FileNotFoundError as e:
            raise InvalidReplayCase(f"Replay case not found: {path}", cause=e) from e
        except json.JSONDecodeError as e:
            raise InvalidReplayCase(f"Replay case {path} is not valid JSON: {e}", cause=e) from e
        return cls.from_dict(data)


@dataclass
class ReplayOutcome:
    expected: Verdict
    verdict: Verdict
    trace: Trace

    @property
    def reproduced(self) -> bool:
        return self.verdict is self.expected


def replay(
    case: ReplayCase,
    executor: Executor,
    strict: bool = True,
    objective: Objective | None = None,
) -> ReplayOutcome:
    """Run a case's sequence once and compare the verdict with the recorded one.

    Raises ReplayMismatch when ``strict`` and the verdict differs. A transport
    error is raised as is: it says nothing about the behaviour.
    """
    objective = objective or case.load_objective()
    outcome = SequenceRunner(executor, objective).run(case.sequence)
    if outcome.transport_error is not None:
        raise outcome.transport_error

    result = ReplayOutcome(expected=case.expected, verdict=outcome.verdict, trace=outcome.trace)
    if result.reproduced:
        logger.info("Replay of '%s' reproduced %s", case.name, result.verdict.value)
    elif strict:
        raise ReplayMismatch(
            f"Expected {case.expected.value} for '{case.name}', got {result.verdict.value}",
            context=ErrorContext(extra={"operations": case.sequence.operation_ids()}),
        )
    else:
        logger.warning(
            "Replay of '%s' expected %s but got %s",
            case.name,
            case.expected.value,
            result.verdict.value,
        )
    return result

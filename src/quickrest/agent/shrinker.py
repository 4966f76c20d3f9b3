"""Shrinker: delta-debugging minimization that preserves a verdict."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any

from quickrest.adapters.base import Executor
from quickrest.agent.runner import RunOutcome, SequenceRunner
from quickrest.core.graph import OperationGraph
from quickrest.core.invocation import Sequence, Trace
from quickrest.core.objective import Objective, Verdict
from quickrest.core.operation import Schema
from quickrest.core.result import CandidateRecord
from quickrest.errors import ShrinkInvariantViolation
from quickrest.generators.values import shrink_candidates

logger = logging.getLogger(__name__)


@dataclass
class ShrinkResult:
    """Minimized sequence, its trace and every candidate tried on the way."""

    sequence: Sequence
    trace: Trace
    verdict: Verdict
    original_length: int
    candidates: list[CandidateRecord] = field(default_factory=list)
    executions: int = 0
    dispatched: int = 0
    passes: int = 0

    @property
    def accepted(self) -> int:
        return sum(1 for c in self.candidates if c.accepted)


def removal_order(length: int) -> list[int]:
    """Last index first, then the rest from the middle outwards.

    ``removal_order(5)`` is ``[4, 1, 0, 2, 3]``.
    """
    if length == 0:
        return []
    rest = length - 1
    order = [length - 1]
    if rest == 0:
        return order
    mid = (rest - 1) // 2
    order.append(mid)
    for offset in range(1, rest):
        for index in (mid - offset, mid + offset):
            if 0 <= index < rest:
                order.append(index)
    return order


class Shrinker:
    """Reduces a sequence to a local minimum that yields the same verdict.

    Each pass tries, in order:

    1. removing one invocation at a time (end first, then middle-out)
    2. dropping optional parameters and narrowing each fresh argument
       toward the canonical minimum of its schema

    A candidate is cascaded before it runs: invocations bound to an
    operation no longer earlier in the sequence are removed. After it runs,
    any binding that fell back to a fresh value triggers the same cascade
    and a re-run. A candidate is accepted only if its verdict matches and
    every remaining binding resolved. Passes repeat until one accepts
    nothing.

    Example:
        shrinker = Shrinker(graph, objective, executor)
        result = shrinker.shrink(found_sequence, found_trace)
        result.sequence  # minimized
    """

    def __init__(
        self,
        graph: OperationGraph,
        objective: Objective,
        executor: Executor,
        max_passes: int = 50,
        cancel: threading.Event | None = None,
    ) -> None:
        self.graph = graph
        self.objective = objective
        self.runner = SequenceRunner(executor, objective)
        self.max_passes = max_passes
        self.cancel = cancel

    def shrink(
        self,
        sequence: Sequence,
        trace: Trace,
        verdict: Verdict | None = None,
    ) -> ShrinkResult:
        target = verdict or self.objective.evaluate(trace)
        # Anything past the trace never ran and cannot matter
        current = self._settle(Sequence(sequence.invocations[: len(trace)]), trace)
        result = ShrinkResult(
            sequence=current,
            trace=trace,
            verdict=target,
            original_length=len(sequence),
        )
        logger.info("Shrinking %d invocations (verdict %s)", len(current), target.value)

        while result.passes < self.max_passes and not self._cancelled():
            result.passes += 1
            removed = self._removal_pass(result, target)
            narrowed = self._value_pass(result, target)
            if not (removed or narrowed):
                break

        logger.info(
            "Shrunk %d -> %d invocations in %d passes (%d executions)",
            result.original_length,
            len(result.sequence),
            result.passes,
            result.executions,
        )
        return result

    def _cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.is_set()

    def _removal_pass(self, result: ShrinkResult, target: Verdict) -> bool:
        changed = False
        progress = True
        while progress and not self._cancelled():
            progress = False
            for index in removal_order(len(result.sequence)):
                reason = f"remove #{index} {result.sequence[index].operation_id}"
                if self._attempt(result, result.sequence.without(index), target, reason):
                    changed = progress = True
                    break
        return changed

    def _value_pass(self, result: ShrinkResult, target: Verdict) -> bool:
        changed = False
        index = 0
        while index < len(result.sequence) and not self._cancelled():
            invocation = result.sequence[index]
            op = self.graph.require(invocation.operation_id)

            for name in list(invocation.arguments):
                param = op.parameter(name)
                if param is None or param.required:
                    continue
                candidate = result.sequence.replace(index, invocation.without_parameter(name))
                if self._attempt(result, candidate, target, f"drop #{index}.{name}"):
                    changed = True
                    break
            else:
                for name, value in invocation.fresh_arguments().items():
                    param = op.parameter(name)
                    if param is None:
                        continue
                    if self._narrow(result, target, index, name, value, param.schema):
                        changed = True
                        break
                else:
                    index += 1
                    continue
            # The sequence changed, look at the same position again
            if index >= len(result.sequence):
                break
        return changed

    def _narrow(
        self,
        result: ShrinkResult,
        target: Verdict,
        index: int,
        name: str,
        value: Any,
        schema: Schema,
    ) -> bool:
        for candidate_value in shrink_candidates(value, schema):
            invocation = result.sequence[index].with_argument(name, candidate_value)
            candidate = result.sequence.replace(index, invocation)
            if self._attempt(result, candidate, target, f"shrink #{index}.{name}={candidate_value!r}"):
                return True
        return False

    def _attempt(self, result: ShrinkResult, candidate: Sequence, target: Verdict, reason: str) -> bool:
        candidate = candidate.cascade(self.graph)
        try:
            candidate.validate()
        except ShrinkInvariantViolation as e:
            logger.warning("Discarding shrink candidate (%s): %s", reason, e)
            self._log(result, candidate, Verdict.INCONCLUSIVE, False, f"{reason}: {e.message}")
            return False

        outcome = self._execute(result, candidate)
        if outcome is None:
            self._log(result, candidate, Verdict.INCONCLUSIVE, False, f"{reason}: transport error")
            return False
        if outcome.verdict is not target:
            self._log(result, outcome.sequence, outcome.verdict, False, reason)
            return False

        accepted = outcome.executed
        if len(accepted) >= len(result.sequence) and accepted == result.sequence:
            # Nothing changed (e.g. the reduction was undone by cascading)
            return False
        result.sequence = accepted
        result.trace = outcome.trace
        self._log(result, accepted, outcome.verdict, True, reason)
        logger.debug("Accepted shrink step: %s (length %d)", reason, len(accepted))
        return True

    def _execute(self, result: ShrinkResult, candidate: Sequence) -> RunOutcome | None:
        """Run ``candidate``, cascading away bindings that fell back at run time."""
        while True:
            outcome = self.runner.run(candidate, cancel=self.cancel)
            result.executions += 1
            result.dispatched += outcome.dispatched
            if outcome.transport_error is not None or outcome.cancelled:
                return None
            stale = outcome.stale_bindings
            if not stale:
                return outcome
            reduced = _drop_stale(self.graph, candidate, stale)
            if reduced == candidate:
                return None
            candidate = reduced

    def _settle(self, sequence: Sequence, trace: Trace) -> Sequence:
        """Turn bindings that fell back at run time into the literal values sent."""
        for index, executed in enumerate(trace):
            for name in executed.unresolved:
                value = executed.invocation.arguments.get(name)
                sequence = sequence.replace(index, sequence[index].settle(name, value))
        return sequence

    def _log(
        self,
        result: ShrinkResult,
        sequence: Sequence,
        verdict: Verdict,
        accepted: bool,
        reason: str,
    ) -> None:
        result.candidates.append(
            CandidateRecord(
                phase="shrink",
                sequence=sequence,
                verdict=verdict,
                accepted=accepted,
                reason=reason,
            )
        )


def _drop_stale(graph: OperationGraph, sequence: Sequence, stale: list[tuple[int, str]]) -> Sequence:
    doomed: set[int] = set()
    for index, name in stale:
        param = graph.require(sequence[index].operation_id).parameter(name)
        if param is not None and not param.required:
            sequence = sequence.replace(index, sequence[index].without_parameter(name))
        else:
            doomed.add(index)
    return sequence.without_indices(doomed).cascade(graph)

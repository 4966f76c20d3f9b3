"""Execute one sequence against an executor and evaluate it."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from quickrest.adapters.base import Executor
from quickrest.core.invocation import Sequence, Trace
from quickrest.core.objective import Objective, Verdict
from quickrest.core.state import ResourceState
from quickrest.errors import TransportError

logger = logging.getLogger(__name__)


@dataclass
class RunOutcome:
    """What happened when a sequence ran."""

    sequence: Sequence
    trace: Trace
    verdict: Verdict
    state: ResourceState
    dispatched: int = 0
    short_circuited: bool = False
    cancelled: bool = False
    transport_error: TransportError | None = None

    @property
    def executed(self) -> Sequence:
        """The prefix of the sequence that actually ran."""
        return Sequence(self.sequence.invocations[: len(self.trace)])

    @property
    def stale_bindings(self) -> list[tuple[int, str]]:
        """(index, parameter) pairs that fell back to a fresh value at run time."""
        return [(i, name) for i, result in enumerate(self.trace) for name in result.unresolved]


class SequenceRunner:
    """Runs invocations strictly in order with a fresh ResourceState.

    Each invocation's bindings are resolved against the state built so far,
    the result is recorded, and, when the objective allows it, the verdict
    is checked after every step so execution stops as soon as it is decided.
    Cancellation is checked before every dispatch; a cancelled run leaves
    nothing behind since its state is private.
    """

    def __init__(self, executor: Executor, objective: Objective) -> None:
        self.executor = executor
        self.objective = objective

    def run(
        self,
        sequence: Sequence,
        cancel: threading.Event | None = None,
        short_circuit: bool = True,
    ) -> RunOutcome:
        state = ResourceState()
        trace = Trace()
        incremental = short_circuit and self.objective.incremental

        for index, invocation in enumerate(sequence):
            if cancel is not None and cancel.is_set():
                return RunOutcome(
                    sequence, trace, Verdict.INCONCLUSIVE, state, len(trace), cancelled=True
                )

            bound, unresolved = state.bind(invocation)
            try:
                result = self.executor.execute(bound)
            except TransportError as e:
                e.context.invocation_index = index
                logger.debug("Transport error at invocation %d: %s", index, e)
                # The failed dispatch still reached the executor
                return RunOutcome(
                    sequence,
                    trace,
                    Verdict.INCONCLUSIVE,
                    state,
                    len(trace) + 1,
                    transport_error=e,
                )

            result.unresolved = unresolved
            trace.append(result)
            state.record(result)

            if incremental and index < len(sequence) - 1:
                verdict = self.objective.evaluate(trace, complete=False)
                if verdict.terminal:
                    return RunOutcome(
                        sequence, trace, verdict, state, len(trace), short_circuited=True
                    )

        verdict = self.objective.evaluate(trace, complete=True)
        return RunOutcome(sequence, trace, verdict, state, len(trace))

"""Explorer: the generate-execute-evaluate search loop."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from quickrest.adapters.base import Executor
from quickrest.agent.runner import RunOutcome, SequenceRunner
from quickrest.agent.shrinker import Shrinker
from quickrest.config import ExplorationSettings
from quickrest.core.graph import OperationGraph
from quickrest.core.invocation import Sequence
from quickrest.core.objective import Objective, Verdict
from quickrest.core.result import CandidateRecord, ExplorerState, Report
from quickrest.errors import SpecError
from quickrest.generators.sequence import Generator
from quickrest.generators.values import RandomStream

logger = logging.getLogger(__name__)


@dataclass
class _WorkerResult:
    worker: int
    attempts: int = 0
    dispatched: int = 0
    transport_errors: int = 0
    invoked: set[str] = field(default_factory=set)
    outcomes: dict[str, int] = field(default_factory=dict)
    candidates: list[CandidateRecord] = field(default_factory=list)
    found: RunOutcome | None = None
    found_at: float = 0.0


class Explorer:
    """Searches for a call sequence that reaches the objective's target verdict.

    The search moves Idle -> Searching -> Found | Exhausted | Aborted:

    1. For attempt 1..max_attempts, build a sequence whose length bound
       grows every ``length_growth`` attempts.
    2. Run it against the executor with a fresh Resource State, checking
       the verdict after every step when the objective allows it.
    3. A transport error discards the run and retries the same sequence,
       up to ``transport_retries`` times, before the attempt is spent.
    4. The first attempt whose verdict is the objective's target is Found.
       Every worker stops at its next invocation boundary and the Shrinker
       then runs alone.

    With ``workers > 1`` attempts are split between threads: worker ``w``
    takes attempts ``w+1, w+1+workers, ...`` and draws from its own random
    stream forked from the seed. Workers share only the graph, the
    objective and the executor.

    Example:
        explorer = Explorer(graph, objective, StubExecutor(), ExplorationSettings(seed=7))
        report = explorer.explore()
        if report.found:
            print(report.sequence.operation_ids())
    """

    def __init__(
        self,
        graph: OperationGraph,
        objective: Objective,
        executor: Executor,
        settings: ExplorationSettings | None = None,
        generator: Generator | None = None,
        focus: str | None = None,
    ) -> None:
        self.graph = graph
        self.objective = objective
        self.executor = executor
        self.settings = settings or ExplorationSettings()
        self.generator = generator or Generator(
            graph,
            p_reuse=self.settings.p_reuse,
            p_drop_optional=self.settings.p_drop_optional,
            invocation_timeout=self.settings.invocation_timeout,
            focus=focus,
        )
        self._state = ExplorerState.IDLE
        self._stop = threading.Event()
        self._aborted = threading.Event()

    @property
    def state(self) -> ExplorerState:
        return self._state

    def abort(self) -> None:
        """Ask every worker and the Shrinker to stop at the next boundary."""
        logger.info("Abort requested")
        self._aborted.set()
        self._stop.set()

    def explore(self) -> Report:
        if not self.graph.operations:
            raise SpecError("Operation graph has no operations to explore")

        # A finished search leaves _stop set; only an abort carries over
        if not self._aborted.is_set():
            self._stop.clear()
        self._state = ExplorerState.IDLE

        settings = self.settings
        report = Report(
            objective=self.objective,
            operations=[op.id for op in self.graph.operations],
        )
        self._state = ExplorerState.SEARCHING
        logger.info(
            "Exploring %d operations for '%s' (max_attempts=%d, workers=%d, seed=%s)",
            len(self.graph.operations),
            self.objective.name,
            settings.max_attempts,
            settings.workers,
            settings.seed,
        )

        results = self._search() if settings.max_attempts > 0 else []
        for result in results:
            report.attempts += result.attempts
            report.dispatched += result.dispatched
            report.transport_errors += result.transport_errors
            report.invoked |= result.invoked
            for verdict, count in result.outcomes.items():
                report.outcomes[verdict] = report.outcomes.get(verdict, 0) + count
        candidates = [c for result in results for c in result.candidates]
        report.candidates.extend(sorted(candidates, key=lambda c: c.attempt or 0))

        winners = [r for r in results if r.found is not None]
        if winners:
            winner = min(winners, key=lambda r: r.found_at)
            self._found(report, winner.found)
        elif self._aborted.is_set():
            self._state = ExplorerState.ABORTED
        else:
            self._state = ExplorerState.EXHAUSTED
            logger.info("Search exhausted after %d attempts", report.attempts)

        report.status = self._state
        report.finish()
        return report

    def _search(self) -> list[_WorkerResult]:
        workers = min(self.settings.workers, self.settings.max_attempts)
        root = RandomStream(self.settings.seed)
        streams = [root.fork(w) for w in range(workers)]

        if workers == 1:
            return [self._work(0, 1, streams[0])]

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="quickrest-worker-") as pool:
            futures = [pool.submit(self._work, w, workers, streams[w]) for w in range(workers)]
            return [future.result() for future in futures]

    def _work(self, worker: int, stride: int, stream: RandomStream) -> _WorkerResult:
        result = _WorkerResult(worker=worker)
        runner = SequenceRunner(self.executor, self.objective)
        try:
            attempt = worker + 1
            while attempt <= self.settings.max_attempts and not self._stop.is_set():
                length = self._length_for(attempt, stream)
                sequence = self.generator.build(length, stream)
                outcome = self._attempt(runner, sequence, attempt, result)
                if outcome is not None and self.objective.is_finding(outcome.verdict):
                    result.found = outcome
                    result.found_at = time.monotonic()
                    logger.info(
                        "Worker %d found %s on attempt %d: %s",
                        worker,
                        outcome.verdict.value,
                        attempt,
                        " -> ".join(outcome.executed.operation_ids()),
                    )
                    self._stop.set()
                    break
                attempt += stride
        except Exception:
            # Unexpected failure: release the other workers before propagating
            self._stop.set()
            raise
        return result

    def _length_for(self, attempt: int, stream: RandomStream) -> int:
        low = self.settings.min_length
        high = min(self.settings.max_length, low + (attempt - 1) // self.settings.length_growth)
        return stream.randint(low, high)

    def _attempt(
        self,
        runner: SequenceRunner,
        sequence: Sequence,
        attempt: int,
        result: _WorkerResult,
    ) -> RunOutcome | None:
        """Run one attempt, retrying the same sequence on transport errors."""
        retries = self.settings.transport_retries
        for retry in range(retries + 1):
            outcome = runner.run(sequence, cancel=self._stop)
            result.dispatched += outcome.dispatched
            result.invoked.update(r.operation_id for r in outcome.trace)
            if outcome.cancelled:
                return None
            if outcome.transport_error is None:
                result.attempts += 1
                verdict = outcome.verdict.value
                result.outcomes[verdict] = result.outcomes.get(verdict, 0) + 1
                result.candidates.append(
                    CandidateRecord(
                        phase="search",
                        sequence=outcome.executed,
                        verdict=outcome.verdict,
                        accepted=self.objective.is_finding(outcome.verdict),
                        reason="short-circuited" if outcome.short_circuited else "",
                        attempt=attempt,
                        worker=result.worker,
                    )
                )
                return outcome
            result.transport_errors += 1
            logger.warning(
                "Attempt %d discarded (%d/%d retries): %s",
                attempt,
                retry,
                retries,
                outcome.transport_error,
            )

        result.attempts += 1
        result.candidates.append(
            CandidateRecord(
                phase="search",
                sequence=sequence,
                verdict=Verdict.INCONCLUSIVE,
                accepted=False,
                reason="transport error",
                attempt=attempt,
                worker=result.worker,
            )
        )
        return None

    def _found(self, report: Report, outcome: RunOutcome) -> None:
        self._state = ExplorerState.FOUND
        report.verdict = outcome.verdict
        report.original_sequence = outcome.executed
        report.original_trace = outcome.trace
        report.sequence = outcome.executed
        report.trace = outcome.trace

        if not self.settings.shrink:
            return
        shrinker = Shrinker(
            self.graph,
            self.objective,
            self.executor,
            max_passes=self.settings.max_shrink_passes,
            cancel=self._aborted,
        )
        shrunk = shrinker.shrink(outcome.executed, outcome.trace, outcome.verdict)
        report.sequence = shrunk.sequence
        report.trace = shrunk.trace
        report.dispatched += shrunk.dispatched
        report.candidates.extend(shrunk.candidates)

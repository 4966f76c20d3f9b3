"""Tests for the SequenceRunner."""

from __future__ import annotations

import threading

from quickrest.adapters import StubExecutor
from quickrest.agent import SequenceRunner
from quickrest.core import (
    Custom,
    Eventually,
    Handle,
    Invocation,
    Objective,
    OperationGraph,
    Sequence,
    StatusIs,
    Verdict,
)

ITEM_ID = Handle("create_item", "id")


def create_and_read(*extra: Invocation) -> Sequence:
    return Sequence(
        (
            Invocation("create_item", {"name": "box"}),
            Invocation("get_item", {"id": "zz"}, {"id": ITEM_ID}),
            *extra,
        )
    )


class TestSequenceRunner:
    def test_bindings_resolved_from_earlier_responses(
        self, stub: StubExecutor, objective: Objective
    ) -> None:
        outcome = SequenceRunner(stub, objective).run(create_and_read())
        assert outcome.verdict is Verdict.SATISFIED
        assert outcome.dispatched == 2
        assert outcome.trace[1].invocation.arguments == {"id": "42"}
        assert outcome.trace[1].request_line == "GET /items/42"
        assert outcome.stale_bindings == []
        assert outcome.state.resolve(ITEM_ID) == "42"

    def test_short_circuits_once_decided(self, stub: StubExecutor, objective: Objective) -> None:
        outcome = SequenceRunner(stub, objective).run(create_and_read(Invocation("health")))
        assert outcome.short_circuited
        assert len(outcome.trace) == 2
        assert outcome.executed.operation_ids() == ["create_item", "get_item"]
        assert stub.dispatch_count == 2

    def test_full_run_without_short_circuit(self, stub: StubExecutor, objective: Objective) -> None:
        runner = SequenceRunner(stub, objective)
        outcome = runner.run(create_and_read(Invocation("health")), short_circuit=False)
        assert not outcome.short_circuited
        assert len(outcome.trace) == 3
        assert outcome.verdict is Verdict.SATISFIED

    def test_custom_objective_runs_everything(self, stub: StubExecutor) -> None:
        objective = Objective("any", Custom("any", lambda trace, i: len(trace) > 0))
        outcome = SequenceRunner(stub, objective).run(create_and_read(Invocation("health")))
        assert len(outcome.trace) == 3

    def test_unresolved_binding_falls_back(self, stub: StubExecutor) -> None:
        objective = Objective("missing", Eventually(StatusIs((404,))))
        sequence = Sequence(
            (Invocation("health"), Invocation("get_item", {"id": "zz"}, {"id": ITEM_ID}))
        )
        outcome = SequenceRunner(stub, objective).run(sequence)
        assert outcome.stale_bindings == [(1, "id")]
        assert outcome.trace[1].invocation.arguments == {"id": "zz"}
        assert outcome.trace[1].unresolved == ("id",)
        assert outcome.verdict is Verdict.SATISFIED

    def test_transport_error_stops_run(self, graph: OperationGraph, objective: Objective) -> None:
        stub = StubExecutor(graph=graph, fail_on=[2])
        outcome = SequenceRunner(stub, objective).run(create_and_read())
        assert outcome.transport_error is not None
        assert outcome.transport_error.context.invocation_index == 1
        assert outcome.verdict is Verdict.INCONCLUSIVE
        assert outcome.dispatched == 2
        assert len(outcome.trace) == 1

    def test_cancelled_before_dispatch(self, stub: StubExecutor, objective: Objective) -> None:
        cancel = threading.Event()
        cancel.set()
        outcome = SequenceRunner(stub, objective).run(create_and_read(), cancel=cancel)
        assert outcome.cancelled
        assert outcome.dispatched == 0
        assert stub.dispatch_count == 0

    def test_fresh_state_per_run(self, stub: StubExecutor, objective: Objective) -> None:
        runner = SequenceRunner(stub, objective)
        runner.run(create_and_read())
        sequence = Sequence((Invocation("get_item", {"id": "zz"}, {"id": ITEM_ID}),))
        outcome = runner.run(sequence)
        assert outcome.stale_bindings == [(0, "id")]

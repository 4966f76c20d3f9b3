"""Tests for the built-in behaviours and objective selection."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from quickrest.core import ExecutionResult, Invocation, Trace, Verdict
from quickrest.core.behaviours import (
    BEHAVIOURS,
    get_behaviour,
    resolve_objective,
    server_error,
)
from quickrest.errors import UnknownObjectiveError


def call(op: str, status: int, body: Any = None, **arguments: Any) -> ExecutionResult:
    return ExecutionResult(invocation=Invocation(op, arguments), status=status, body=body)


class TestServerError:
    def test_any_operation(self) -> None:
        trace = Trace([call("a", 200), call("b", 500)])
        assert server_error().evaluate(trace) is Verdict.SATISFIED

    def test_restricted_to_operation(self) -> None:
        trace = Trace([call("a", 200), call("b", 500)])
        assert server_error("a").evaluate(trace) is Verdict.FALSIFIED
        assert server_error("b").evaluate(trace) is Verdict.SATISFIED

    def test_decided_on_prefix(self) -> None:
        objective = server_error()
        assert objective.incremental
        assert objective.evaluate(Trace([call("a", 500)]), complete=False) is Verdict.SATISFIED


class TestResponseBehaviours:
    def test_response_inequality(self) -> None:
        objective = get_behaviour("response-inequality")
        differs = Trace([call("count", 200, 1), call("count", 200, 2)])
        same = Trace([call("count", 200, 1), call("count", 200, 1)])
        assert objective.evaluate(differs) is Verdict.SATISFIED
        assert objective.evaluate(same) is Verdict.FALSIFIED

    def test_response_inequality_needs_adjacent_calls(self) -> None:
        objective = get_behaviour("response-inequality")
        trace = Trace([call("count", 200, 1), call("other", 200), call("count", 200, 2)])
        assert objective.evaluate(trace) is Verdict.FALSIFIED

    def test_response_equality(self) -> None:
        objective = get_behaviour("response-equality")
        trace = Trace([call("get", 404, {}, id="1"), call("get", 404, {}, id="2")])
        assert objective.evaluate(trace) is Verdict.SATISFIED
        distinct = Trace([call("get", 200, {"id": "1"}, id="1"), call("get", 200, {"id": "2"}, id="2")])
        assert objective.evaluate(distinct) is Verdict.FALSIFIED

    def test_custom_behaviours_wait_for_complete_trace(self) -> None:
        objective = get_behaviour("response-equality")
        assert not objective.incremental
        trace = Trace([call("get", 404, {}, id="1"), call("get", 404, {}, id="2")])
        assert objective.evaluate(trace, complete=False) is Verdict.INCONCLUSIVE


class TestStateBehaviours:
    def test_state_mutation(self) -> None:
        objective = get_behaviour("state-mutation")
        trace = Trace([call("list", 200, []), call("create", 201), call("list", 200, ["x"])])
        assert objective.evaluate(trace) is Verdict.SATISFIED

    def test_state_mutation_needs_other_operation(self) -> None:
        objective = get_behaviour("state-mutation")
        trace = Trace([call("list", 200, []), call("list", 200, ["x"])])
        assert objective.evaluate(trace) is Verdict.FALSIFIED

    def test_state_identity(self) -> None:
        objective = get_behaviour("state-identity")
        trace = Trace(
            [
                call("list", 200, []),
                call("create", 201),
                call("list", 200, ["x"]),
                call("delete", 204),
                call("list", 200, []),
            ]
        )
        assert objective.evaluate(trace) is Verdict.SATISFIED

    def test_state_identity_requires_a_change(self) -> None:
        objective = get_behaviour("state-identity")
        trace = Trace([call("list", 200, []), call("list", 200, []), call("list", 200, [])])
        assert objective.evaluate(trace) is Verdict.FALSIFIED


class TestResolveObjective:
    @pytest.mark.parametrize("name", sorted(BEHAVIOURS))
    def test_builtin_by_name(self, name: str) -> None:
        objective = resolve_objective(name)
        assert objective.name == name
        assert objective.reference == {"behaviour": name, "operation": None}

    def test_operation_focus(self) -> None:
        objective = resolve_objective("server-error", operation="get_item")
        assert objective.reference["operation"] == "get_item"

    def test_reference_dict(self) -> None:
        objective = resolve_objective({"behaviour": "server-error", "operation": "x"})
        assert objective.reference == {"behaviour": "server-error", "operation": "x"}

    def test_declarative_file(self, tmp_path: Path) -> None:
        path = tmp_path / "objective.json"
        path.write_text(
            json.dumps(
                {
                    "name": "created",
                    "predicate": {"kind": "eventually", "operand": {"kind": "status", "codes": [201]}},
                }
            )
        )
        objective = resolve_objective(str(path))
        assert objective.name == "created"
        assert objective.evaluate(Trace([call("create", 201)])) is Verdict.SATISFIED

    def test_unknown_name(self) -> None:
        with pytest.raises(UnknownObjectiveError) as exc_info:
            resolve_objective("no-such-behaviour")
        assert "server-error" in exc_info.value.suggestions[0]

    def test_malformed_file(self, tmp_path: Path) -> None:
        path = tmp_path / "objective.yaml"
        path.write_text("description: no name or predicate\n")
        with pytest.raises(UnknownObjectiveError, match="Invalid objective file"):
            resolve_objective(str(path))

    def test_unknown_predicate_kind(self, tmp_path: Path) -> None:
        path = tmp_path / "objective.yaml"
        path.write_text("name: odd\npredicate:\n  kind: sometimes\n")
        with pytest.raises(UnknownObjectiveError, match="Unknown predicate kind"):
            resolve_objective(str(path))

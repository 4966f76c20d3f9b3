"""Built-in behaviours, selectable by name from the command line.

Each factory returns an Objective whose SATISFIED verdict is a finding:

- server-error: some invocation answers with HTTP 500
- response-inequality: the same operation called twice in a row with the same
  arguments answers differently
- response-equality: the same operation called with different arguments
  answers identically
- state-mutation: a query observed twice with the same arguments answers
  differently after some other operation ran in between
- state-identity: a query observed three times with the same arguments
  changes and then returns to its first answer
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from quickrest.core.invocation import ExecutionResult, Trace
from quickrest.core.objective import (
    And,
    Custom,
    Eventually,
    Objective,
    OperationIs,
    Predicate,
    StatusIs,
)
from quickrest.errors import UnknownObjectiveError


def _observation(result: ExecutionResult) -> tuple[Any, Any]:
    return result.status, result.body


def _completed(trace: Trace, operation: str | None) -> list[tuple[int, ExecutionResult]]:
    return [
        (i, r)
        for i, r in enumerate(trace)
        if r.status is not None and (operation is None or r.operation_id == operation)
    ]


def server_error(operation: str | None = None) -> Objective:
    predicate: Predicate = StatusIs((500,))
    if operation is not None:
        predicate = And((OperationIs(operation), predicate))
    return Objective(
        name="server-error",
        predicate=Eventually(predicate),
        description="An invocation answers with HTTP 500",
        reference={"behaviour": "server-error", "operation": operation},
    )


def response_inequality(operation: str | None = None) -> Objective:
    def check(trace: Trace, position: int) -> bool:
        results = list(trace)
        for previous, current in zip(results, results[1:]):
            if previous.status is None or current.status is None:
                continue
            if operation is not None and current.operation_id != operation:
                continue
            if (
                previous.operation_id == current.operation_id
                and previous.invocation.arguments == current.invocation.arguments
                and _observation(previous) != _observation(current)
            ):
                return True
        return False

    return Objective(
        name="response-inequality",
        predicate=Custom("response-inequality", check),
        description="Repeating an identical call gives a different response",
        reference={"behaviour": "response-inequality", "operation": operation},
    )


def response_equality(operation: str | None = None) -> Objective:
    def check(trace: Trace, position: int) -> bool:
        completed = _completed(trace, operation)
        for n, (_, first) in enumerate(completed):
            for _, second in completed[n + 1 :]:
                if (
                    first.operation_id == second.operation_id
                    and first.invocation.arguments != second.invocation.arguments
                    and _observation(first) == _observation(second)
                ):
                    return True
        return False

    return Objective(
        name="response-equality",
        predicate=Custom("response-equality", check),
        description="Different arguments to the same operation give an identical response",
        reference={"behaviour": "response-equality", "operation": operation},
    )


def state_mutation(operation: str | None = None) -> Objective:
    def check(trace: Trace, position: int) -> bool:
        completed = _completed(trace, operation)
        for n, (i, first) in enumerate(completed):
            for j, second in completed[n + 1 :]:
                if first.operation_id != second.operation_id:
                    continue
                if first.invocation.arguments != second.invocation.arguments:
                    continue
                between = {trace[k].operation_id for k in range(i + 1, j)}
                if between - {first.operation_id} and _observation(first) != _observation(second):
                    return True
        return False

    return Objective(
        name="state-mutation",
        predicate=Custom("state-mutation", check),
        description="Another operation changes what a query observes",
        reference={"behaviour": "state-mutation", "operation": operation},
    )


def state_identity(operation: str | None = None) -> Objective:
    def check(trace: Trace, position: int) -> bool:
        completed = _completed(trace, operation)
        for a, (_, first) in enumerate(completed):
            same = [
                r
                for _, r in completed[a + 1 :]
                if r.operation_id == first.operation_id
                and r.invocation.arguments == first.invocation.arguments
            ]
            for b, middle in enumerate(same):
                if _observation(middle) == _observation(first):
                    continue
                if any(_observation(last) == _observation(first) for last in same[b + 1 :]):
                    return True
        return False

    return Objective(
        name="state-identity",
        predicate=Custom("state-identity", check),
        description="A query changes and later returns to its first observation",
        reference={"behaviour": "state-identity", "operation": operation},
    )


BEHAVIOURS: dict[str, Callable[[str | None], Objective]] = {
    "server-error": server_error,
    "response-equality": response_equality,
    "response-inequality": response_inequality,
    "state-mutation": state_mutation,
    "state-identity": state_identity,
}


def get_behaviour(name: str, operation: str | None = None) -> Objective:
    factory = BEHAVIOURS.get(name)
    if factory is None:
        raise UnknownObjectiveError(
            f"Unknown behaviour '{name}'",
            suggestions=[f"Available behaviours: {', '.join(BEHAVIOURS)}"],
        )
    return factory(operation)


def resolve_objective(selector: str | dict[str, Any], operation: str | None = None) -> Objective:
    """Turn an objective selector into an Objective.

    A selector is a built-in behaviour name, a path to a YAML/JSON file with
    a declarative objective, or an already-loaded reference/objective dict.
    """
    if isinstance(selector, dict):
        if "behaviour" in selector:
            return get_behaviour(selector["behaviour"], selector.get("operation", operation))
        return Objective.from_dict(selector)
    if selector in BEHAVIOURS:
        return get_behaviour(selector, operation)
    path = Path(selector)
    if path.suffix in (".yaml", ".yml", ".json") and path.exists():
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
            return Objective.from_dict(data)
        except (yaml.YAMLError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise UnknownObjectiveError(
                f"Invalid objective file {path}: {e}",
                cause=e,
                suggestions=["An objective file needs a name and a predicate with a known kind"],
            ) from e
    return get_behaviour(selector, operation)

"""Resource State: observed response values available for later invocations."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from quickrest.core.invocation import ExecutionResult, Handle, Invocation, Sequence, Trace
from quickrest.errors import UnresolvedDependency

if TYPE_CHECKING:
    from quickrest.core.graph import OperationGraph

logger = logging.getLogger(__name__)


def flatten(body: Any, prefix: str = "") -> dict[str, Any]:
    """Flatten a JSON value into {field path: scalar}.

    ``{"id": 1, "owner": {"id": 2}, "tags": [{"id": 3}]}`` becomes
    ``{"id": 1, "owner.id": 2, "tags.0.id": 3}``; a scalar body is stored
    under the empty path.
    """
    if isinstance(body, dict):
        flat: dict[str, Any] = {}
        for key, value in body.items():
            flat.update(flatten(value, f"{prefix}.{key}" if prefix else str(key)))
        return flat
    if isinstance(body, list):
        flat = {}
        for index, value in enumerate(body):
            flat.update(flatten(value, f"{prefix}.{index}" if prefix else str(index)))
        return flat
    if body is None:
        return {}
    return {prefix: body}


class ResourceState:
    """Mapping from Handle to the most recently observed value.

    Scoped to one sequence execution: create one per run and discard it
    afterwards. Only successful (2xx) responses are recorded.
    """

    def __init__(self) -> None:
        self._values: dict[Handle, Any] = {}

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, handle: object) -> bool:
        return handle in self._values

    def handles(self) -> list[Handle]:
        return list(self._values)

    def record(self, result: ExecutionResult) -> None:
        """Merge the fields of a successful response, overwriting older values."""
        if not result.success:
            return
        for path, value in flatten(result.body).items():
            self._values[Handle(result.operation_id, path)] = value

    def resolve(self, handle: Handle) -> Any:
        if handle not in self._values:
            raise UnresolvedDependency(handle)
        return self._values[handle]

    def bind(self, invocation: Invocation) -> tuple[Invocation, tuple[str, ...]]:
        """Resolve every binding of ``invocation`` into concrete arguments.

        Returns the dispatchable invocation and the names of the parameters
        that fell back to their fresh value.
        """
        arguments = dict(invocation.arguments)
        unresolved: list[str] = []
        for name, handle in invocation.bindings.items():
            try:
                arguments[name] = self.resolve(handle)
            except UnresolvedDependency:
                logger.debug(
                    "Unresolved dependency %s for %s.%s, using fresh value",
                    handle,
                    invocation.operation_id,
                    name,
                )
                unresolved.append(name)
        bound = Invocation(
            operation_id=invocation.operation_id,
            arguments=arguments,
            bindings=dict(invocation.bindings),
            timeout=invocation.timeout,
        )
        return bound, tuple(unresolved)

    @classmethod
    def replay(cls, trace: Trace | Iterable[ExecutionResult]) -> ResourceState:
        """Recompute the state a trace leaves behind."""
        state = cls()
        for result in trace:
            state.record(result)
        return state


class ProvisionalState:
    """Projection of the handles a not-yet-executed sequence will offer.

    Built from the declared response schemas of the operations already in
    the sequence, so a candidate can bind to an earlier invocation before
    anything runs. Values are unknown until execution; only availability is
    tracked.
    """

    def __init__(self, graph: OperationGraph, sequence: Sequence | None = None) -> None:
        self._graph = graph
        self._available: set[Handle] = set()
        for invocation in sequence or ():
            self.add(invocation.operation_id)

    def add(self, operation_id: str) -> None:
        op = self._graph.get(operation_id)
        if op is None:
            return
        for path, _ in op.produced_fields():
            self._available.add(Handle(operation_id, path))

    def available(self, handle: Handle) -> bool:
        return handle in self._available

    def resolve(self, handle: Handle) -> Handle:
        """The handle itself (values are symbolic until execution)."""
        if handle not in self._available:
            raise UnresolvedDependency(handle)
        return handle

    def __contains__(self, handle: object) -> bool:
        return handle in self._available

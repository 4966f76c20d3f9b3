"""Deterministic in-process executor for dry runs, replay and tests."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from typing import Any, Union

from quickrest.core.graph import OperationGraph
from quickrest.core.invocation import ExecutionResult, Invocation
from quickrest.errors import ErrorContext, InvocationTimeout, TransportError

StubResponse = tuple[int, Any]
Responder = Union[StubResponse, Callable[[Invocation], StubResponse]]

DRY_RUN_RESPONSE: StubResponse = (200, ["Fake result"])


class StubExecutor:
    """Answers invocations from a table of canned responses.

    ``responses`` maps an operation id to either a fixed ``(status, body)``
    pair or a callable computing one from the dispatched invocation.
    Operations missing from the table get ``default``. The same invocation
    always gets the same answer unless a responder keeps its own state.

    ``fail_on`` lists 1-based dispatch numbers that raise TransportError
    instead of answering, and ``timeout_on`` those that raise
    InvocationTimeout.

    Example:
        executor = StubExecutor(
            responses={
                "create_item": (201, {"id": "42"}),
                "get_item": lambda inv: (200, {"id": inv.arguments["id"]}),
            },
            fail_on=[1],
        )
    """

    def __init__(
        self,
        responses: dict[str, Responder] | None = None,
        default: StubResponse = DRY_RUN_RESPONSE,
        graph: OperationGraph | None = None,
        fail_on: Iterable[int] = (),
        timeout_on: Iterable[int] = (),
    ) -> None:
        self.responses = dict(responses or {})
        self.default = default
        self.graph = graph
        self.fail_on = set(fail_on)
        self.timeout_on = set(timeout_on)
        self.calls: list[Invocation] = []
        self._lock = threading.Lock()

    @property
    def dispatch_count(self) -> int:
        with self._lock:
            return len(self.calls)

    def execute(self, invocation: Invocation) -> ExecutionResult:
        with self._lock:
            self.calls.append(invocation)
            number = len(self.calls)

        request_line = self._request_line(invocation)
        context = ErrorContext(operation_id=invocation.operation_id)
        if number in self.timeout_on:
            raise InvocationTimeout(f"{request_line} timed out (injected)", context=context)
        if number in self.fail_on:
            raise TransportError(f"{request_line} failed (injected)", context=context)

        responder = self.responses.get(invocation.operation_id, self.default)
        status, body = responder(invocation) if callable(responder) else responder
        return ExecutionResult(
            invocation=invocation,
            status=status,
            body=body,
            request_line=request_line,
        )

    def _request_line(self, invocation: Invocation) -> str:
        if self.graph is not None:
            op = self.graph.get(invocation.operation_id)
            if op is not None:
                return op.describe(invocation.arguments)
        return invocation.operation_id

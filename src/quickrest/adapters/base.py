"""The execution capability injected into the Explorer and Shrinker."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from quickrest.core.invocation import ExecutionResult, Invocation


@runtime_checkable
class Executor(Protocol):
    """Dispatches one invocation whose bindings are already resolved.

    Implementations raise TransportError (or its InvocationTimeout subclass)
    when no response was obtained. An HTTP error status is a normal result.
    Executors are shared by all search workers and must be thread-safe.
    """

    def execute(self, invocation: Invocation) -> ExecutionResult: ...

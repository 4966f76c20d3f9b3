"""Invocation, Sequence, ExecutionResult and Trace."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any

from quickrest.errors import ErrorContext, ShrinkInvariantViolation

if TYPE_CHECKING:
    from quickrest.core.graph import OperationGraph


@dataclass(frozen=True)
class Handle:
    """Resource State key: producing operation id + response field path."""

    operation_id: str
    field: str = ""

    def __str__(self) -> str:
        return f"{self.operation_id}:{self.field or '<root>'}"

    def to_dict(self) -> dict[str, str]:
        return {"operation": self.operation_id, "field": self.field}

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> Handle:
        return cls(operation_id=data["operation"], field=data.get("field", ""))


@dataclass(frozen=True)
class Invocation:
    """One call of one operation.

    ``arguments`` holds a concrete value for every parameter that will be
    sent. A parameter listed in ``bindings`` is read from Resource State at
    dispatch time; its entry in ``arguments`` is the freshly synthesized
    fallback used when the handle turns out to be unresolved.
    """

    operation_id: str
    arguments: dict[str, Any] = field(default_factory=dict)
    bindings: dict[str, Handle] = field(default_factory=dict)
    timeout: float | None = None

    def with_argument(self, name: str, value: Any) -> Invocation:
        return replace(self, arguments={**self.arguments, name: value})

    def without_parameter(self, name: str) -> Invocation:
        return replace(
            self,
            arguments={k: v for k, v in self.arguments.items() if k != name},
            bindings={k: v for k, v in self.bindings.items() if k != name},
        )

    def settle(self, name: str, value: Any) -> Invocation:
        """Replace the binding for ``name`` with the literal ``value``."""
        return replace(
            self,
            arguments={**self.arguments, name: value},
            bindings={k: v for k, v in self.bindings.items() if k != name},
        )

    def fresh_arguments(self) -> dict[str, Any]:
        """Arguments that are not read from Resource State."""
        return {k: v for k, v in self.arguments.items() if k not in self.bindings}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "operation": self.operation_id,
            "arguments": dict(self.arguments),
            "bindings": {k: h.to_dict() for k, h in self.bindings.items()},
        }
        if self.timeout is not None:
            data["timeout"] = self.timeout
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Invocation:
        return cls(
            operation_id=data["operation"],
            arguments=dict(data.get("arguments") or {}),
            bindings={k: Handle.from_dict(h) for k, h in (data.get("bindings") or {}).items()},
            timeout=data.get("timeout"),
        )


@dataclass(frozen=True)
class Sequence:
    """An immutable ordered list of invocations."""

    invocations: tuple[Invocation, ...] = ()

    def __len__(self) -> int:
        return len(self.invocations)

    def __iter__(self) -> Iterator[Invocation]:
        return iter(self.invocations)

    def __getitem__(self, index: int) -> Invocation:
        return self.invocations[index]

    def append(self, invocation: Invocation) -> Sequence:
        return Sequence(self.invocations + (invocation,))

    def without(self, index: int) -> Sequence:
        return Sequence(self.invocations[:index] + self.invocations[index + 1 :])

    def without_indices(self, indices: set[int]) -> Sequence:
        return Sequence(tuple(inv for i, inv in enumerate(self.invocations) if i not in indices))

    def replace(self, index: int, invocation: Invocation) -> Sequence:
        items = list(self.invocations)
        items[index] = invocation
        return Sequence(tuple(items))

    def operation_ids(self) -> list[str]:
        return [inv.operation_id for inv in self.invocations]

    def dangling(self) -> list[tuple[int, str]]:
        """(index, parameter) pairs bound to an operation that does not run earlier."""
        seen: set[str] = set()
        found: list[tuple[int, str]] = []
        for index, inv in enumerate(self.invocations):
            for name, handle in inv.bindings.items():
                if handle.operation_id not in seen:
                    found.append((index, name))
            seen.add(inv.operation_id)
        return found

    def cascade(self, graph: OperationGraph | None = None) -> Sequence:
        """Remove invocations whose required bindings dangle, until none do.

        A dangling binding of an optional parameter (known only when
        ``graph`` is given) drops the parameter instead of the invocation.
        """
        current = self
        while True:
            dangling = current.dangling()
            if not dangling:
                return current
            doomed: set[int] = set()
            items = list(current.invocations)
            for index, name in dangling:
                op = graph.get(items[index].operation_id) if graph is not None else None
                param = op.parameter(name) if op is not None else None
                if param is not None and not param.required:
                    items[index] = items[index].without_parameter(name)
                else:
                    doomed.add(index)
            current = Sequence(tuple(items)).without_indices(doomed)

    def validate(self) -> None:
        """Raise ShrinkInvariantViolation when any binding dangles."""
        dangling = self.dangling()
        if dangling:
            index, name = dangling[0]
            raise ShrinkInvariantViolation(
                f"Parameter '{name}' is bound to {self.invocations[index].bindings[name]}, "
                "which is not produced earlier in the sequence",
                context=ErrorContext(
                    operation_id=self.invocations[index].operation_id,
                    invocation_index=index,
                    extra={"dangling": dangling},
                ),
            )

    def to_dict(self) -> list[dict[str, Any]]:
        return [inv.to_dict() for inv in self.invocations]

    @classmethod
    def from_dict(cls, data: list[dict[str, Any]]) -> Sequence:
        return cls(tuple(Invocation.from_dict(item) for item in data))


@dataclass
class ExecutionResult:
    """Outcome of dispatching one invocation.

    ``invocation`` is the invocation as dispatched: bindings resolved into
    ``arguments``. ``unresolved`` names the bound parameters that fell back
    to their fresh value.
    """

    invocation: Invocation
    status: int | None = None
    body: Any = None
    duration_ms: float = 0.0
    error: str | None = None
    request_line: str = ""
    unresolved: tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def success(self) -> bool:
        return self.error is None and self.status is not None and 200 <= self.status < 300

    @property
    def operation_id(self) -> str:
        return self.invocation.operation_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.invocation.operation_id,
            "request": self.request_line,
            "arguments": dict(self.invocation.arguments),
            "status": self.status,
            "body": self.body,
            "duration_ms": round(self.duration_ms, 3),
            "error": self.error,
            "unresolved": list(self.unresolved),
        }


@dataclass
class Trace:
    """Ordered execution results of one executed sequence."""

    results: list[ExecutionResult] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[ExecutionResult]:
        return iter(self.results)

    def __getitem__(self, index: int) -> ExecutionResult:
        return self.results[index]

    def append(self, result: ExecutionResult) -> None:
        self.results.append(result)

    def to_dict(self) -> list[dict[str, Any]]:
        return [r.to_dict() for r in self.results]

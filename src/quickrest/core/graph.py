"""Operation Graph: operations plus inferred data-dependency edges.

Dependency matching rule
------------------------
A response field ``f`` of operation A supplies parameter ``p`` of operation B
(edge A -> B) only when all of the following hold:

1. A is not B.
2. The types are compatible: identical scalar types, or an integer field
   feeding a number parameter.
3. The names match after normalization (lowercase, separators removed, so
   ``user_id``, ``userId`` and ``user-id`` all read ``userid``). A field is
   known by its leaf name, by its parent key joined with the leaf
   (``owner.id`` -> ``ownerid``) and, for top-level fields, by the singular
   resource of A joined with the leaf (``id`` of ``POST /users`` ->
   ``userid``).
4. A bare ``id`` parameter only matches a bare ``id`` field of the same
   resource: ``GET /items/{id}`` reads ``id`` from ``POST /items`` but not
   from ``POST /users``.

Anything else yields no edge. Edges are added in specification order
(producer, then consumer, then parameter); an edge that would close a cycle
is dropped and logged, so the graph is acyclic by construction.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass

from quickrest.core.operation import (
    HTTP_METHODS,
    SUPPORTED_TYPES,
    Operation,
    ParameterLocation,
    Schema,
)
from quickrest.errors import ErrorCode, ErrorContext, SpecError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DependencyEdge:
    """Operation ``producer`` supplies ``parameter`` of ``consumer`` via ``field``."""

    producer: str
    consumer: str
    field: str
    parameter: str

    def __str__(self) -> str:
        return f"{self.producer}.{self.field or '<root>'} -> {self.consumer}.{self.parameter}"


class OperationGraph:
    """Read-only model of the API shared by every search worker.

    Example:
        graph = OperationGraph([create_item, get_item])
        graph.dependencies("get_item")
        # [DependencyEdge(producer='create_item', consumer='get_item', field='id', parameter='id')]
    """

    def __init__(self, operations: Iterable[Operation]) -> None:
        self._operations: dict[str, Operation] = {}
        for op in operations:
            if op.id in self._operations:
                raise SpecError(
                    f"Duplicate operation id '{op.id}'",
                    context=ErrorContext(operation_id=op.id),
                )
            _validate_operation(op)
            self._operations[op.id] = op

        self._edges: list[DependencyEdge] = []
        self._dropped: list[DependencyEdge] = []
        self._successors: dict[str, set[str]] = {op_id: set() for op_id in self._operations}
        self._infer_edges()

    @property
    def operations(self) -> list[Operation]:
        return list(self._operations.values())

    @property
    def edges(self) -> list[DependencyEdge]:
        return list(self._edges)

    @property
    def dropped_edges(self) -> list[DependencyEdge]:
        """Edges that would have closed a cycle."""
        return list(self._dropped)

    def __len__(self) -> int:
        return len(self._operations)

    def __contains__(self, op_id: object) -> bool:
        return op_id in self._operations

    def get(self, op_id: str) -> Operation | None:
        return self._operations.get(op_id)

    def require(self, op_id: str) -> Operation:
        op = self._operations.get(op_id)
        if op is None:
            raise SpecError(
                f"Unknown operation '{op_id}'",
                error_code=ErrorCode.UNKNOWN_OPERATION,
                context=ErrorContext(operation_id=op_id),
                suggestions=[f"Known operations: {', '.join(self._operations)}"],
            )
        return op

    def dependencies(self, op_id: str, parameter: str | None = None) -> list[DependencyEdge]:
        """Edges feeding ``op_id`` (optionally only those for one parameter)."""
        return [
            e
            for e in self._edges
            if e.consumer == op_id and (parameter is None or e.parameter == parameter)
        ]

    def dependents(self, op_id: str) -> list[DependencyEdge]:
        """Edges leaving ``op_id``."""
        return [e for e in self._edges if e.producer == op_id]

    def producers_of(self, name: str) -> list[Operation]:
        """Operations whose responses carry a field known by ``name``."""
        wanted = normalize(name)
        return [
            op
            for op in self._operations.values()
            if any(wanted in _field_names(op, path) for path, _ in op.produced_fields())
        ]

    def consumers_of(self, name: str) -> list[Operation]:
        """Operations taking a parameter called ``name``."""
        wanted = normalize(name)
        return [
            op
            for op in self._operations.values()
            if any(normalize(p.name) == wanted for p in op.parameters)
        ]

    def topological_order(self) -> list[str]:
        """Operation ids with every producer before its consumers (spec order breaks ties)."""
        indegree = {op_id: 0 for op_id in self._operations}
        for successors in self._successors.values():
            for target in successors:
                indegree[target] += 1
        order: list[str] = []
        ready = deque(op_id for op_id, degree in indegree.items() if degree == 0)
        while ready:
            current = ready.popleft()
            order.append(current)
            for op_id in self._operations:
                if op_id in self._successors[current]:
                    indegree[op_id] -= 1
                    if indegree[op_id] == 0:
                        ready.append(op_id)
        return order

    def _infer_edges(self) -> None:
        ops = list(self._operations.values())
        for producer in ops:
            fields = producer.produced_fields()
            if not fields:
                continue
            for consumer in ops:
                if consumer.id == producer.id:
                    continue
                for param in consumer.parameters:
                    match = _match_field(producer, fields, consumer, param.name, param.schema)
                    if match is None:
                        continue
                    self._add_edge(DependencyEdge(producer.id, consumer.id, match, param.name))

    def _add_edge(self, edge: DependencyEdge) -> None:
        if self._reaches(edge.consumer, edge.producer):
            logger.warning("Dropping dependency %s: it would close a cycle", edge)
            self._dropped.append(edge)
            return
        self._edges.append(edge)
        self._successors[edge.producer].add(edge.consumer)

    def _reaches(self, start: str, goal: str) -> bool:
        seen = {start}
        queue = deque([start])
        while queue:
            current = queue.popleft()
            if current == goal:
                return True
            for nxt in self._successors[current]:
                if nxt not in seen:
                    seen.add(nxt)
                    queue.append(nxt)
        return False


def normalize(name: str) -> str:
    """``user_id``, ``userId``, ``User-ID`` -> ``userid``."""
    return re.sub(r"[^a-z0-9]", "", name.lower())


def singularize(name: str) -> str:
    """Convert plural resource name to singular. Simple heuristic."""
    if name.endswith("ies"):
        return name[:-3] + "y"
    if name.endswith(("ses", "xes", "ches", "shes")):
        return name[:-2]
    if name.endswith("s") and not name.endswith("ss"):
        return name[:-1]
    return name


def _field_names(op: Operation, path: str) -> set[str]:
    parts = [p for p in path.split(".") if p and not p.isdigit()]
    if not parts:
        return set()
    leaf = parts[-1]
    names = {normalize(leaf)}
    if len(parts) > 1:
        names.add(normalize(parts[-2] + leaf))
    else:
        names.add(normalize(singularize(op.resource) + leaf))
    return names


def _compatible(produced: Schema, consumed: Schema) -> bool:
    if produced.type == consumed.type:
        return True
    return produced.type == "integer" and consumed.type == "number"


def _match_field(
    producer: Operation,
    fields: list[tuple[str, Schema]],
    consumer: Operation,
    param_name: str,
    param_schema: Schema,
) -> str | None:
    if not param_schema.is_scalar:
        return None
    wanted = normalize(param_name)
    for path, schema in fields:
        if not _compatible(schema, param_schema):
            continue
        if wanted == "id":
            parts = [p for p in path.split(".") if p and not p.isdigit()]
            if len(parts) != 1 or normalize(parts[0]) != "id":
                continue
            producer_resource = singularize(producer.resource)
            consumer_resource = singularize(consumer.resource_for(param_name))
            if producer_resource and producer_resource == consumer_resource:
                return path
            continue
        if wanted in _field_names(producer, path):
            return path
    return None


def _validate_operation(op: Operation) -> None:
    context = ErrorContext(operation_id=op.id)
    if not op.id:
        raise SpecError("Operation without an id", context=context)
    if op.method not in HTTP_METHODS:
        raise SpecError(f"Unsupported HTTP method '{op.method}'", context=context)
    if not op.path.startswith("/"):
        raise SpecError(f"Path '{op.path}' must start with '/'", context=context)

    names = [p.name for p in op.parameters]
    duplicates = {n for n in names if names.count(n) > 1}
    if duplicates:
        raise SpecError(f"Duplicate parameters {sorted(duplicates)}", context=context)

    path_params = {p.name for p in op.parameters if p.location is ParameterLocation.PATH}
    placeholders = set(op.path_placeholders())
    if placeholders - path_params:
        raise SpecError(
            f"Path placeholders {sorted(placeholders - path_params)} have no path parameter",
            context=context,
        )
    if path_params - placeholders:
        raise SpecError(
            f"Path parameters {sorted(path_params - placeholders)} do not appear in '{op.path}'",
            context=context,
        )

    for param in op.parameters:
        _validate_schema(param.schema, context, param.name)
        if param.schema.minimum is not None and param.schema.maximum is not None:
            if param.schema.minimum > param.schema.maximum:
                raise SpecError(f"Parameter '{param.name}' has minimum > maximum", context=context)
        if param.schema.min_length is not None and param.schema.max_length is not None:
            if param.schema.min_length > param.schema.max_length:
                raise SpecError(
                    f"Parameter '{param.name}' has minLength > maxLength", context=context
                )
    for status, schema in op.responses.items():
        if not 100 <= status <= 599:
            raise SpecError(f"Invalid response status {status}", context=context)
        if schema is not None:
            _validate_schema(schema, context, f"response {status}")


def _validate_schema(schema: Schema, context: ErrorContext, where: str) -> None:
    if schema.type not in SUPPORTED_TYPES:
        raise SpecError(
            f"Unsupported schema type '{schema.type}' in {where}",
            error_code=ErrorCode.UNSUPPORTED_SCHEMA,
            context=context,
        )
    if schema.enum is not None and not schema.enum:
        raise SpecError(f"Empty enum in {where}", context=context)
    if schema.items is not None:
        _validate_schema(schema.items, context, where)
    for name, sub in schema.properties.items():
        _validate_schema(sub, context, f"{where}.{name}")

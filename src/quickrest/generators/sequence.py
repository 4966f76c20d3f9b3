"""Generator: candidate invocations and dependency-aware sequences."""

from __future__ import annotations

import logging
from typing import Protocol

from quickrest.core.graph import DependencyEdge, OperationGraph
from quickrest.core.invocation import Handle, Invocation, Sequence
from quickrest.core.operation import Operation
from quickrest.core.state import ProvisionalState
from quickrest.errors import UnresolvedDependency
from quickrest.generators.values import RandomStream, synthesize

logger = logging.getLogger(__name__)

# Weight multipliers for operation selection
RESOLVABLE_BOOST = 2.0
UNRESOLVABLE_PENALTY = 0.25
FOCUS_BOOST = 3.0


class Resolver(Protocol):
    def resolve(self, handle: Handle) -> object: ...


class Generator:
    """Builds candidate invocations from the Operation Graph.

    Every parameter that will be sent gets a freshly synthesized value.
    A required parameter is bound to a handle produced earlier in the
    sequence whenever one is available; an optional one only with
    probability ``p_reuse``. The fresh value stays in place as the fallback
    if the handle turns out to be unresolved at run time.

    Operation selection holds two kinds of operation back while anything
    else can run:

    - an operation with a required dependency whose producers exist in the
      graph but have not run yet;
    - the operation that just ran, when it produces handles for other
      operations, unless it is the focus operation.

    Example:
        generator = Generator(graph, p_reuse=0.8)
        stream = RandomStream(seed=1)
        sequence = generator.build(3, stream)
    """

    def __init__(
        self,
        graph: OperationGraph,
        p_reuse: float = 0.8,
        p_drop_optional: float = 0.5,
        invocation_timeout: float | None = None,
        focus: str | None = None,
    ) -> None:
        self.graph = graph
        self.p_reuse = p_reuse
        self.p_drop_optional = p_drop_optional
        self.invocation_timeout = invocation_timeout
        self.focus = focus
        if focus is not None:
            graph.require(focus)

    def weights(
        self, available: Resolver, sequence: Sequence | None = None
    ) -> list[tuple[Operation, float]]:
        """Selection weight per operation.

        Operations whose required dependencies are resolvable get boosted.
        Held-back operations weigh 0 unless every operation is held back, in
        which case they keep their weight and the unresolvable ones are
        damped by ``UNRESOLVABLE_PENALTY``.
        """
        pending = self.pending_producer(sequence) if sequence is not None else None
        weighted: list[tuple[Operation, float]] = []
        held: dict[str, bool] = {}
        for op in self.graph.operations:
            weight = 1.0
            starved = False
            for param in op.required_parameters:
                edges = self.graph.dependencies(op.id, param.name)
                if not edges:
                    continue
                if self._resolvable(edges, available):
                    weight *= RESOLVABLE_BOOST
                else:
                    starved = True
            if op.id == self.focus:
                weight *= FOCUS_BOOST
            if starved or op.id == pending:
                held[op.id] = starved
            weighted.append((op, weight))

        if len(held) < len(weighted):
            return [(op, 0.0 if op.id in held else w) for op, w in weighted]
        return [(op, w * UNRESOLVABLE_PENALTY if held[op.id] else w) for op, w in weighted]

    def pending_producer(self, sequence: Sequence) -> str | None:
        """The last operation of ``sequence`` when other operations consume its output."""
        if not sequence:
            return None
        last = sequence[-1].operation_id
        if last == self.focus or not self.graph.dependents(last):
            return None
        return last

    def next_candidate(
        self,
        sequence: Sequence,
        stream: RandomStream,
        available: Resolver | None = None,
    ) -> Invocation:
        """One invocation that may follow ``sequence``.

        ``available`` answers which handles can be bound; it defaults to the
        provisional projection of ``sequence``. A live ResourceState works too.
        """
        if available is None:
            available = ProvisionalState(self.graph, sequence)

        weighted = self.weights(available, sequence)
        op = stream.weighted_choice([op for op, _ in weighted], [w for _, w in weighted])

        arguments = {}
        bindings: dict[str, Handle] = {}
        for param in op.parameters:
            if not param.required and stream.chance(self.p_drop_optional):
                continue
            arguments[param.name] = synthesize(param.schema, stream)

            edges = self.graph.dependencies(op.id, param.name)
            if not edges:
                continue
            if not param.required and not stream.chance(self.p_reuse):
                continue
            handle = self._pick_binding(edges, available, stream)
            if handle is not None:
                bindings[param.name] = handle
            else:
                logger.debug(
                    "No resolvable producer for %s.%s, keeping fresh value", op.id, param.name
                )

        return Invocation(
            operation_id=op.id,
            arguments=arguments,
            bindings=bindings,
            timeout=self.invocation_timeout,
        )

    def extend_sequence(self, sequence: Sequence, stream: RandomStream) -> Sequence:
        """Append one candidate that may bind to anything earlier in ``sequence``."""
        return sequence.append(self.next_candidate(sequence, stream))

    def build(self, length: int, stream: RandomStream) -> Sequence:
        sequence = Sequence()
        provisional = ProvisionalState(self.graph)
        for _ in range(length):
            invocation = self.next_candidate(sequence, stream, provisional)
            sequence = sequence.append(invocation)
            provisional.add(invocation.operation_id)
        return sequence

    def _resolvable(self, edges: list[DependencyEdge], available: Resolver) -> bool:
        for edge in edges:
            try:
                available.resolve(Handle(edge.producer, edge.field))
            except UnresolvedDependency:
                continue
            return True
        return False

    def _pick_binding(
        self,
        edges: list[DependencyEdge],
        available: Resolver,
        stream: RandomStream,
    ) -> Handle | None:
        for edge in stream.shuffled(edges):
            handle = Handle(edge.producer, edge.field)
            try:
                available.resolve(handle)
            except UnresolvedDependency:
                continue
            return handle
        return None

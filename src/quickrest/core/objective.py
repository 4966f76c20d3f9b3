"""Objective Evaluator: declarative behaviour predicates over a Trace.

Predicates are a closed set of frozen dataclasses interpreted by a single
recursive evaluator. ``Custom`` is the escape hatch for behaviours the
built-in variants cannot express.

Evaluation is three-valued (True, False, unknown) with Kleene semantics for
AND/OR/NOT. State predicates hold at one trace position; ``Eventually`` and
``Always`` quantify over the positions from the current one to the end, in
the manner of linear temporal logic over finite traces. The top-level
predicate is evaluated at position 0.

With ``complete=False`` the trace may still grow. Anything that could still
change reads as unknown, so a determined value is final and the Explorer can
stop executing the rest of the sequence.

Example:
    created = StatusIs((201,))
    objective = Objective(
        name="create-then-read",
        predicate=And(
            Eventually(created),
            Eventually(
                And(
                    StatusIs((200,)),
                    CrossCompare(
                        FieldRef("response", "id"),
                        Comparison.EQ,
                        FieldRef("response", "id"),
                        where=created,
                    ),
                )
            ),
        ),
    )
    objective.evaluate(trace)  # Verdict.SATISFIED
"""

from __future__ import annotations

import logging
import operator
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from quickrest.core.invocation import ExecutionResult, Trace
from quickrest.errors import ErrorContext, ObjectiveError, UnknownObjectiveError

logger = logging.getLogger(__name__)


class Verdict(Enum):
    """Outcome of evaluating an objective against a trace."""

    SATISFIED = "satisfied"
    FALSIFIED = "falsified"
    INCONCLUSIVE = "inconclusive"

    @property
    def terminal(self) -> bool:
        return self is not Verdict.INCONCLUSIVE


class Comparison(Enum):
    EQ = "eq"
    NE = "ne"
    LT = "lt"
    LE = "le"
    GT = "gt"
    GE = "ge"
    CONTAINS = "contains"
    EXISTS = "exists"


_COMPARATORS: dict[Comparison, Callable[[Any, Any], bool]] = {
    Comparison.EQ: operator.eq,
    Comparison.NE: operator.ne,
    Comparison.LT: operator.lt,
    Comparison.LE: operator.le,
    Comparison.GT: operator.gt,
    Comparison.GE: operator.ge,
    Comparison.CONTAINS: lambda left, right: right in left,
}


@dataclass(frozen=True)
class FieldRef:
    """A value inside one execution result.

    ``source`` is "request" (the dispatched arguments) or "response" (the
    response body). ``path`` is dotted; list indices are numbers; the empty
    path means the whole request or body.
    """

    source: str
    path: str = ""

    def __post_init__(self) -> None:
        if self.source not in ("request", "response"):
            raise ValueError(f"FieldRef source must be 'request' or 'response', got {self.source!r}")

    def __str__(self) -> str:
        return f"{self.source}.{self.path}" if self.path else self.source


@dataclass(frozen=True)
class StatusIs:
    """The status code at the current position is one of ``codes``."""

    codes: tuple[int, ...]


@dataclass(frozen=True)
class OperationIs:
    """The invocation at the current position calls ``operation_id``."""

    operation_id: str


@dataclass(frozen=True)
class FieldCompare:
    """``ref <op> value`` at the current position."""

    ref: FieldRef
    op: Comparison
    value: Any = None


@dataclass(frozen=True)
class CrossCompare:
    """``ref`` here relates by ``op`` to ``other`` at some earlier position.

    ``where`` restricts the earlier positions considered.
    """

    ref: FieldRef
    op: Comparison
    other: FieldRef
    where: Predicate | None = None


@dataclass(frozen=True)
class And:
    operands: tuple[Predicate, ...]


@dataclass(frozen=True)
class Or:
    operands: tuple[Predicate, ...]


@dataclass(frozen=True)
class Not:
    operand: Predicate


@dataclass(frozen=True)
class Eventually:
    """Some position from here on satisfies ``operand``."""

    operand: Predicate


@dataclass(frozen=True)
class Always:
    """Every position from here on satisfies ``operand``."""

    operand: Predicate


@dataclass(frozen=True)
class Custom:
    """Opaque predicate ``fn(trace, position) -> bool | None``.

    ``None`` means unknown. Custom predicates may look anywhere in the trace,
    so they are only trusted on a complete trace unless ``incremental`` is set.
    """

    name: str
    fn: Callable[[Trace, int], bool | None] = field(compare=False)
    incremental: bool = False


Predicate = (
    StatusIs | OperationIs | FieldCompare | CrossCompare | And | Or | Not | Eventually | Always | Custom
)


def lookup(result: ExecutionResult, ref: FieldRef) -> Any:
    """Fetch the value ``ref`` points at, raising ObjectiveError when absent."""
    value: Any = result.invocation.arguments if ref.source == "request" else result.body
    if ref.source == "response" and result.status is None:
        raise _missing(result, ref, "no response")
    if not ref.path:
        return value
    for part in ref.path.split("."):
        if isinstance(value, dict) and part in value:
            value = value[part]
        elif isinstance(value, list) and part.isdigit() and int(part) < len(value):
            value = value[int(part)]
        else:
            raise _missing(result, ref, f"'{part}' not found")
    return value


def _missing(result: ExecutionResult, ref: FieldRef, reason: str) -> ObjectiveError:
    return ObjectiveError(
        f"{ref} is absent from {result.operation_id}: {reason}",
        context=ErrorContext(operation_id=result.operation_id),
    )


def _compare(op: Comparison, left: Any, right: Any) -> bool:
    if op is Comparison.EXISTS:
        return True
    try:
        return bool(_COMPARATORS[op](left, right))
    except TypeError as e:
        raise ObjectiveError(f"Cannot compare {left!r} {op.value} {right!r}", cause=e) from e


def _kleene_and(values: list[bool | None]) -> bool | None:
    if any(v is False for v in values):
        return False
    if all(v is True for v in values):
        return True
    return None


def _kleene_or(values: list[bool | None]) -> bool | None:
    if any(v is True for v in values):
        return True
    if all(v is False for v in values):
        return False
    return None


def evaluate_at(pred: Predicate, trace: Trace, position: int, complete: bool) -> bool | None:
    """Evaluate ``pred`` at ``position``. ``None`` is unknown."""
    if isinstance(pred, And):
        values: list[bool | None] = []
        for operand in pred.operands:
            value = evaluate_at(operand, trace, position, complete)
            if value is False:
                return False
            values.append(value)
        return _kleene_and(values)

    if isinstance(pred, Or):
        values = []
        for operand in pred.operands:
            value = evaluate_at(operand, trace, position, complete)
            if value is True:
                return True
            values.append(value)
        return _kleene_or(values)

    if isinstance(pred, Not):
        value = evaluate_at(pred.operand, trace, position, complete)
        return None if value is None else not value

    if isinstance(pred, Eventually):
        values = []
        for j in range(position, len(trace)):
            value = evaluate_at(pred.operand, trace, j, complete)
            if value is True:
                return True
            values.append(value)
        if not complete:
            return None
        return _kleene_or(values)

    if isinstance(pred, Always):
        values = []
        for j in range(position, len(trace)):
            value = evaluate_at(pred.operand, trace, j, complete)
            if value is False:
                return False
            values.append(value)
        if not complete:
            return None
        return _kleene_and(values)

    if isinstance(pred, Custom):
        if not complete and not pred.incremental:
            return None
        try:
            return pred.fn(trace, position)
        except (ObjectiveError, KeyError, IndexError, TypeError, AttributeError) as e:
            logger.debug("Custom predicate %s is unknown: %s", pred.name, e)
            return None

    # State predicates look at one position
    if position >= len(trace):
        return None if not complete else False
    try:
        return _evaluate_state(pred, trace, position, complete)
    except ObjectiveError as e:
        logger.debug("Predicate is unknown at position %d: %s", position, e)
        return None


def _evaluate_state(pred: Predicate, trace: Trace, position: int, complete: bool) -> bool | None:
    result = trace[position]

    if isinstance(pred, StatusIs):
        if result.status is None:
            raise ObjectiveError(f"No status for {result.operation_id}")
        return result.status in pred.codes

    if isinstance(pred, OperationIs):
        return result.operation_id == pred.operation_id

    if isinstance(pred, FieldCompare):
        if pred.op is Comparison.EXISTS:
            try:
                lookup(result, pred.ref)
            except ObjectiveError:
                return False
            return True
        return _compare(pred.op, lookup(result, pred.ref), pred.value)

    if isinstance(pred, CrossCompare):
        here = lookup(result, pred.ref)
        values: list[bool | None] = []
        for j in range(position):
            if pred.where is not None:
                eligible = evaluate_at(pred.where, trace, j, complete)
                if eligible is False:
                    continue
            else:
                eligible = True
            try:
                matched: bool | None = _compare(pred.op, here, lookup(trace[j], pred.other))
            except ObjectiveError:
                matched = None
            value = _kleene_and([eligible, matched])
            if value is True:
                return True
            values.append(value)
        return _kleene_or(values)

    raise TypeError(f"Unknown predicate variant: {type(pred).__name__}")


def requires_full_trace(pred: Predicate) -> bool:
    """Whether only a complete trace can decide ``pred``."""
    if isinstance(pred, Custom):
        return not pred.incremental
    if isinstance(pred, (And, Or)):
        return any(requires_full_trace(p) for p in pred.operands)
    if isinstance(pred, (Not, Eventually, Always)):
        return requires_full_trace(pred.operand)
    if isinstance(pred, CrossCompare) and pred.where is not None:
        return requires_full_trace(pred.where)
    return False


@dataclass(frozen=True)
class Objective:
    """A named behaviour to search for.

    ``target`` is the verdict that counts as a finding. ``None`` accepts
    either terminal verdict.
    """

    name: str
    predicate: Predicate
    target: Verdict | None = Verdict.SATISFIED
    description: str = ""
    # How to rebuild a built-in behaviour, e.g. {"behaviour": "server-error"}
    reference: dict[str, Any] | None = field(default=None, compare=False)

    @property
    def incremental(self) -> bool:
        return not requires_full_trace(self.predicate)

    def evaluate(self, trace: Trace, complete: bool = True) -> Verdict:
        value = evaluate_at(self.predicate, trace, 0, complete)
        if value is None:
            return Verdict.INCONCLUSIVE
        return Verdict.SATISFIED if value else Verdict.FALSIFIED

    def is_finding(self, verdict: Verdict) -> bool:
        if not verdict.terminal:
            return False
        return self.target is None or verdict is self.target

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "target": self.target.value if self.target else None,
            "predicate": predicate_to_dict(self.predicate),
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        customs: dict[str, Callable[[Trace, int], bool | None]] | None = None,
    ) -> Objective:
        target = data.get("target", Verdict.SATISFIED.value)
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            target=Verdict(target) if target else None,
            predicate=predicate_from_dict(data["predicate"], customs),
        )


def _ref_to_dict(ref: FieldRef) -> dict[str, str]:
    return {"source": ref.source, "path": ref.path}


def _ref_from_dict(data: dict[str, str]) -> FieldRef:
    return FieldRef(source=data["source"], path=data.get("path", ""))


def predicate_to_dict(pred: Predicate) -> dict[str, Any]:
    """Declarative form of a predicate, suitable for JSON or YAML."""
    if isinstance(pred, StatusIs):
        return {"kind": "status", "codes": list(pred.codes)}
    if isinstance(pred, OperationIs):
        return {"kind": "operation", "operation": pred.operation_id}
    if isinstance(pred, FieldCompare):
        return {
            "kind": "field",
            "ref": _ref_to_dict(pred.ref),
            "op": pred.op.value,
            "value": pred.value,
        }
    if isinstance(pred, CrossCompare):
        data: dict[str, Any] = {
            "kind": "cross",
            "ref": _ref_to_dict(pred.ref),
            "op": pred.op.value,
            "other": _ref_to_dict(pred.other),
        }
        if pred.where is not None:
            data["where"] = predicate_to_dict(pred.where)
        return data
    if isinstance(pred, And):
        return {"kind": "and", "operands": [predicate_to_dict(p) for p in pred.operands]}
    if isinstance(pred, Or):
        return {"kind": "or", "operands": [predicate_to_dict(p) for p in pred.operands]}
    if isinstance(pred, Not):
        return {"kind": "not", "operand": predicate_to_dict(pred.operand)}
    if isinstance(pred, Eventually):
        return {"kind": "eventually", "operand": predicate_to_dict(pred.operand)}
    if isinstance(pred, Always):
        return {"kind": "always", "operand": predicate_to_dict(pred.operand)}
    if isinstance(pred, Custom):
        return {"kind": "custom", "name": pred.name, "incremental": pred.incremental}
    raise TypeError(f"Unknown predicate variant: {type(pred).__name__}")


def predicate_from_dict(
    data: dict[str, Any],
    customs: dict[str, Callable[[Trace, int], bool | None]] | None = None,
) -> Predicate:
    kind = data.get("kind")
    if kind == "status":
        return StatusIs(tuple(int(c) for c in data["codes"]))
    if kind == "operation":
        return OperationIs(data["operation"])
    if kind == "field":
        return FieldCompare(_ref_from_dict(data["ref"]), Comparison(data["op"]), data.get("value"))
    if kind == "cross":
        where = data.get("where")
        return CrossCompare(
            _ref_from_dict(data["ref"]),
            Comparison(data["op"]),
            _ref_from_dict(data["other"]),
            where=predicate_from_dict(where, customs) if where else None,
        )
    if kind == "and":
        return And(tuple(predicate_from_dict(p, customs) for p in data["operands"]))
    if kind == "or":
        return Or(tuple(predicate_from_dict(p, customs) for p in data["operands"]))
    if kind == "not":
        return Not(predicate_from_dict(data["operand"], customs))
    if kind == "eventually":
        return Eventually(predicate_from_dict(data["operand"], customs))
    if kind == "always":
        return Always(predicate_from_dict(data["operand"], customs))
    if kind == "custom":
        name = data["name"]
        if not customs or name not in customs:
            raise UnknownObjectiveError(f"No custom predicate registered as '{name}'")
        return Custom(name, customs[name], incremental=bool(data.get("incremental", False)))
    raise UnknownObjectiveError(f"Unknown predicate kind {kind!r}")

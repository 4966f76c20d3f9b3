"""Core data model: operations, graph, invocations, state, objectives, reports."""

from quickrest.core.graph import DependencyEdge, OperationGraph
from quickrest.core.invocation import ExecutionResult, Handle, Invocation, Sequence, Trace
from quickrest.core.objective import (
    Always,
    And,
    Comparison,
    CrossCompare,
    Custom,
    Eventually,
    FieldCompare,
    FieldRef,
    Not,
    Objective,
    OperationIs,
    Or,
    Predicate,
    StatusIs,
    Verdict,
)
from quickrest.core.operation import Operation, Parameter, ParameterLocation, Schema
from quickrest.core.result import CandidateRecord, ExplorerState, Report
from quickrest.core.state import ProvisionalState, ResourceState

__all__ = [
    "Always",
    "And",
    "CandidateRecord",
    "Comparison",
    "CrossCompare",
    "Custom",
    "DependencyEdge",
    "Eventually",
    "ExecutionResult",
    "ExplorerState",
    "FieldCompare",
    "FieldRef",
    "Handle",
    "Invocation",
    "Not",
    "Objective",
    "Operation",
    "OperationGraph",
    "OperationIs",
    "Or",
    "Parameter",
    "ParameterLocation",
    "Predicate",
    "ProvisionalState",
    "Report",
    "ResourceState",
    "Schema",
    "Sequence",
    "StatusIs",
    "Trace",
    "Verdict",
]

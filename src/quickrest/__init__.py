"""QuickREST - property-based exploration of REST APIs.

Generates call sequences from an OpenAPI description, runs them against the
API, searches for one that exhibits a declared behaviour and shrinks what
it finds to a minimal reproduction.

Example:
    from quickrest import explore

    report = explore("openapi.yaml", "server-error", base_url="http://localhost:8000")
    if report.found:
        print(report.sequence.operation_ids())
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from quickrest.adapters import Executor, HttpExecutor, StubExecutor
from quickrest.agent import Explorer, ReplayCase, ReplayOutcome, Shrinker, replay
from quickrest.config import ExplorationSettings, load_config
from quickrest.core import (
    Always,
    And,
    Comparison,
    CrossCompare,
    Custom,
    Eventually,
    ExecutionResult,
    ExplorerState,
    FieldCompare,
    FieldRef,
    Handle,
    Invocation,
    Not,
    Objective,
    Operation,
    OperationGraph,
    OperationIs,
    Or,
    Parameter,
    ParameterLocation,
    Report,
    ResourceState,
    Schema,
    Sequence,
    StatusIs,
    Trace,
    Verdict,
)
from quickrest.core.behaviours import BEHAVIOURS, get_behaviour, resolve_objective
from quickrest.errors import QuickRESTError
from quickrest.generators import Generator, RandomStream, load_openapi_spec, parse_operations

__version__ = "0.3.0"


def load_graph(
    spec_path: str | Path,
    include_patterns: list[str] | None = None,
    exclude_patterns: list[str] | None = None,
) -> OperationGraph:
    """Build the Operation Graph of an OpenAPI file."""
    return OperationGraph(
        parse_operations(load_openapi_spec(spec_path), include_patterns, exclude_patterns)
    )


def explore(
    spec: str | Path | OperationGraph,
    objective: str | Objective,
    *,
    base_url: str | None = None,
    executor: Executor | None = None,
    operation: str | None = None,
    **settings: Any,
) -> Report:
    """Convenience function for running an exploration.

    ``spec`` is an OpenAPI file or a built graph; ``objective`` a behaviour
    name, objective file or Objective. Without ``executor`` calls go over
    HTTP to ``base_url``. Extra keyword arguments override
    ExplorationSettings fields.
    """
    graph = spec if isinstance(spec, OperationGraph) else load_graph(spec)
    if not isinstance(objective, Objective):
        objective = resolve_objective(objective, operation)
    config = load_config(base_url=base_url, **settings)

    if executor is not None:
        return Explorer(graph, objective, executor, config, focus=operation).explore()
    with HttpExecutor(graph, config.base_url, timeout=config.invocation_timeout) as http:
        return Explorer(graph, objective, http, config, focus=operation).explore()


__all__ = [
    "Always",
    "And",
    "BEHAVIOURS",
    "Comparison",
    "CrossCompare",
    "Custom",
    "Eventually",
    "ExecutionResult",
    "ExplorationSettings",
    "Executor",
    "Explorer",
    "ExplorerState",
    "FieldCompare",
    "FieldRef",
    "Generator",
    "Handle",
    "HttpExecutor",
    "Invocation",
    "Not",
    "Objective",
    "Operation",
    "OperationGraph",
    "OperationIs",
    "Or",
    "Parameter",
    "ParameterLocation",
    "QuickRESTError",
    "RandomStream",
    "ReplayCase",
    "ReplayOutcome",
    "Report",
    "ResourceState",
    "Schema",
    "Sequence",
    "Shrinker",
    "StatusIs",
    "StubExecutor",
    "Trace",
    "Verdict",
    "explore",
    "get_behaviour",
    "load_config",
    "load_graph",
    "load_openapi_spec",
    "parse_operations",
    "replay",
    "resolve_objective",
]

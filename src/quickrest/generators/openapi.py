"""Normalize OpenAPI 3 / Swagger 2 descriptions into Operations.

Supports JSON and YAML files, local ``#/...`` references, path-level
parameters, JSON request bodies (object properties become individual body
parameters) and JSON response schemas.
"""

from __future__ import annotations

import fnmatch
import logging
import re
from pathlib import Path
from typing import Any

import yaml

from quickrest.core.operation import RAW_BODY, Operation, Parameter, ParameterLocation, Schema
from quickrest.errors import ErrorContext, SpecError

logger = logging.getLogger(__name__)

_METHODS = ("get", "post", "put", "patch", "delete", "head", "options")
_LOCATIONS = {
    "path": ParameterLocation.PATH,
    "query": ParameterLocation.QUERY,
    "header": ParameterLocation.HEADER,
    "body": ParameterLocation.BODY,
    "formData": ParameterLocation.BODY,
}
MAX_REF_DEPTH = 8


def load_openapi_spec(spec_path: str | Path) -> dict[str, Any]:
    """Load an OpenAPI description from a JSON or YAML file."""
    path = Path(spec_path)
    if not path.exists():
        raise SpecError(f"Specification file not found: {path}")
    try:
        # YAML is a superset of JSON
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise SpecError(f"Cannot parse {path}: {e}", cause=e) from e
    if not isinstance(data, dict) or "paths" not in data:
        raise SpecError(f"{path} is not an OpenAPI description (no 'paths')")
    return data


def parse_operations(
    spec: dict[str, Any] | str | Path,
    include_patterns: list[str] | None = None,
    exclude_patterns: list[str] | None = None,
) -> list[Operation]:
    """Operations in specification order.

    Args:
        spec: OpenAPI dict, or path to a spec file.
        include_patterns: Only keep paths matching these glob patterns.
        exclude_patterns: Drop paths matching these glob patterns.
    """
    if isinstance(spec, (str, Path)):
        spec = load_openapi_spec(spec)

    operations: list[Operation] = []
    for path, path_item in (spec.get("paths") or {}).items():
        if include_patterns and not _matches_any(path, include_patterns):
            continue
        if exclude_patterns and _matches_any(path, exclude_patterns):
            continue
        path_item = _resolve(spec, path_item)
        shared = path_item.get("parameters") or []
        for method in _METHODS:
            if method in path_item:
                operations.append(_parse_operation(spec, path, method, path_item[method], shared))
    return operations


def _matches_any(path: str, patterns: list[str]) -> bool:
    return any(fnmatch.fnmatch(path, p) for p in patterns)


def _resolve(spec: dict[str, Any], node: Any, depth: int = 0) -> Any:
    """Inline local $refs, stopping at MAX_REF_DEPTH for recursive schemas."""
    if isinstance(node, list):
        return [_resolve(spec, item, depth) for item in node]
    if not isinstance(node, dict):
        return node
    if "$ref" in node:
        if depth >= MAX_REF_DEPTH:
            return {}
        return _resolve(spec, _follow(spec, node["$ref"]), depth + 1)
    return {key: _resolve(spec, value, depth) for key, value in node.items()}


def _follow(spec: dict[str, Any], ref: str) -> Any:
    if not ref.startswith("#/"):
        raise SpecError(f"Only local references are supported, got '{ref}'")
    node: Any = spec
    for part in ref[2:].split("/"):
        part = part.replace("~1", "/").replace("~0", "~")
        if not isinstance(node, dict) or part not in node:
            raise SpecError(f"Dangling reference '{ref}'")
        node = node[part]
    return node


def _operation_id(path: str, method: str, operation: dict[str, Any]) -> str:
    if operation.get("operationId"):
        return operation["operationId"]
    slug = re.sub(r"[^a-zA-Z0-9]+", "_", path).strip("_")
    return f"{method}_{slug}" if slug else method


def _parse_operation(
    spec: dict[str, Any],
    path: str,
    method: str,
    operation: dict[str, Any],
    shared: list[dict[str, Any]],
) -> Operation:
    operation = _resolve(spec, operation)
    op_id = _operation_id(path, method, operation)
    context = ErrorContext(operation_id=op_id)

    merged: dict[tuple[str, str], dict[str, Any]] = {}
    for raw in [*_resolve(spec, shared), *(operation.get("parameters") or [])]:
        if "name" not in raw or "in" not in raw:
            raise SpecError("Parameter without 'name' or 'in'", context=context)
        merged[(raw["name"], raw["in"])] = raw

    parameters: list[Parameter] = []
    for raw in merged.values():
        location = _LOCATIONS.get(raw["in"])
        if location is None:
            logger.debug("Skipping %s parameter '%s' of %s", raw["in"], raw["name"], op_id)
            continue
        if raw["in"] == "body":
            parameters.extend(_body_parameters(raw.get("schema"), bool(raw.get("required"))))
            continue
        # Swagger 2 keeps the schema inline on the parameter
        schema = raw.get("schema") or {
            k: v for k, v in raw.items() if k not in ("name", "in", "required")
        }
        parameters.append(
            Parameter(
                name=raw["name"],
                location=location,
                schema=Schema.from_dict(schema),
                required=bool(raw.get("required")) or location is ParameterLocation.PATH,
            )
        )

    body = operation.get("requestBody")
    if body:
        schema = _json_schema(body.get("content") or {})
        if schema is not None:
            parameters.extend(_body_parameters(schema, bool(body.get("required"))))

    names = set()
    unique: list[Parameter] = []
    for param in parameters:
        if param.name in names:
            logger.warning("Ignoring duplicate parameter '%s' of %s", param.name, op_id)
            continue
        names.add(param.name)
        unique.append(param)

    responses: dict[int, Schema | None] = {}
    for status, response in (operation.get("responses") or {}).items():
        if not str(status).isdigit():
            continue
        response = response or {}
        schema = response.get("schema")  # Swagger 2
        if schema is None:
            schema = _json_schema(response.get("content") or {})
        responses[int(status)] = Schema.from_dict(schema) if schema is not None else None

    return Operation(
        id=op_id,
        method=method.upper(),
        path=path,
        parameters=unique,
        responses=responses,
        summary=operation.get("summary") or "",
    )


def _json_schema(content: dict[str, Any]) -> dict[str, Any] | None:
    for media_type, media in content.items():
        if "json" in media_type and isinstance(media, dict):
            return media.get("schema")
    return None


def _body_parameters(raw_schema: dict[str, Any] | None, required: bool) -> list[Parameter]:
    schema = Schema.from_dict(raw_schema)
    if schema.type == "object" and schema.properties:
        return [
            Parameter(
                name=name,
                location=ParameterLocation.BODY,
                schema=sub,
                required=name in schema.required,
            )
            for name, sub in schema.properties.items()
        ]
    return [
        Parameter(name=RAW_BODY, location=ParameterLocation.BODY, schema=schema, required=required)
    ]


__all__ = ["load_openapi_spec", "parse_operations"]

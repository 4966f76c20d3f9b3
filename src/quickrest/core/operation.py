"""Operation, Parameter and Schema: the normalized API description."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import quote

SCALAR_TYPES = ("string", "integer", "number", "boolean")
SUPPORTED_TYPES = SCALAR_TYPES + ("array", "object")
HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")
# Parameter name for a request body that is not a JSON object
RAW_BODY = "$body"

_PLACEHOLDER = re.compile(r"\{([^}]+)\}")


@dataclass
class Schema:
    """Value constraints for a parameter or response field.

    A subset of JSON Schema: enough for constrained generation and for
    deriving the fields an operation produces.
    """

    type: str = "string"
    enum: list[Any] | None = None
    minimum: float | None = None
    maximum: float | None = None
    min_length: int | None = None
    max_length: int | None = None
    format: str | None = None
    items: Schema | None = None
    properties: dict[str, Schema] = field(default_factory=dict)
    required: list[str] = field(default_factory=list)
    nullable: bool = False

    @property
    def is_scalar(self) -> bool:
        return self.type in SCALAR_TYPES

    def leaves(self, prefix: str = "") -> list[tuple[str, Schema]]:
        """Flatten into (field path, scalar schema) pairs.

        Object properties join with ".", array items use index "0", and a
        scalar at the root has the empty path.
        """
        if self.type == "object":
            found: list[tuple[str, Schema]] = []
            for name, sub in self.properties.items():
                found.extend(sub.leaves(_join(prefix, name)))
            return found
        if self.type == "array":
            return self.items.leaves(_join(prefix, "0")) if self.items else []
        return [(prefix, self)]

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Schema:
        """Build from a JSON Schema dict whose $refs are already resolved."""
        if not data:
            return cls()

        schema_type = data.get("type")
        nullable = bool(data.get("nullable", False))
        if isinstance(schema_type, list):
            # OpenAPI 3.1 style: ["string", "null"]
            nullable = nullable or "null" in schema_type
            non_null = [t for t in schema_type if t != "null"]
            schema_type = non_null[0] if non_null else "string"
        if schema_type is None:
            if "properties" in data:
                schema_type = "object"
            elif "items" in data:
                schema_type = "array"
            elif data.get("enum"):
                schema_type = _type_of(data["enum"][0])
            else:
                schema_type = "string"

        items = data.get("items")
        return cls(
            type=schema_type,
            enum=list(data["enum"]) if data.get("enum") else None,
            minimum=data.get("minimum"),
            maximum=data.get("maximum"),
            min_length=data.get("minLength", data.get("min_length")),
            max_length=data.get("maxLength", data.get("max_length")),
            format=data.get("format"),
            items=cls.from_dict(items) if isinstance(items, dict) else None,
            properties={
                name: cls.from_dict(sub) for name, sub in (data.get("properties") or {}).items()
            },
            required=list(data["required"]) if isinstance(data.get("required"), list) else [],
            nullable=nullable,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": self.type}
        if self.enum is not None:
            result["enum"] = list(self.enum)
        for key, value in (
            ("minimum", self.minimum),
            ("maximum", self.maximum),
            ("minLength", self.min_length),
            ("maxLength", self.max_length),
            ("format", self.format),
        ):
            if value is not None:
                result[key] = value
        if self.items is not None:
            result["items"] = self.items.to_dict()
        if self.properties:
            result["properties"] = {k: v.to_dict() for k, v in self.properties.items()}
        if self.required:
            result["required"] = list(self.required)
        if self.nullable:
            result["nullable"] = True
        return result


class ParameterLocation(Enum):
    """Where a parameter travels in the request."""

    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    BODY = "body"


@dataclass
class Parameter:
    """One input of an operation."""

    name: str
    location: ParameterLocation
    schema: Schema = field(default_factory=Schema)
    required: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "in": self.location.value,
            "schema": self.schema.to_dict(),
            "required": self.required,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Parameter:
        location = ParameterLocation(data.get("in", "query"))
        return cls(
            name=data["name"],
            location=location,
            schema=Schema.from_dict(data.get("schema")),
            # Path parameters are always required
            required=bool(data.get("required", False)) or location is ParameterLocation.PATH,
        )


@dataclass
class Operation:
    """A single API operation: method + path template + parameters + responses.

    Example:
        Operation(
            id="create_item",
            method="POST",
            path="/items",
            responses={201: Schema(type="object", properties={"id": Schema()})},
        )
    """

    id: str
    method: str
    path: str
    parameters: list[Parameter] = field(default_factory=list)
    responses: dict[int, Schema | None] = field(default_factory=dict)
    summary: str = ""

    def __post_init__(self) -> None:
        self.method = self.method.upper()

    def parameter(self, name: str) -> Parameter | None:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    @property
    def required_parameters(self) -> list[Parameter]:
        return [p for p in self.parameters if p.required]

    def path_placeholders(self) -> list[str]:
        return _PLACEHOLDER.findall(self.path)

    @property
    def resource(self) -> str:
        """The last static path segment, e.g. "items" for /items/{id}."""
        statics = [s for s in self.path.split("/") if s and not s.startswith("{")]
        return statics[-1] if statics else ""

    def resource_for(self, param_name: str) -> str:
        """The static segment right before a path placeholder, else ``resource``."""
        parts = [s for s in self.path.split("/") if s]
        for i, part in enumerate(parts):
            if part == "{" + param_name + "}":
                for previous in reversed(parts[:i]):
                    if not previous.startswith("{"):
                        return previous
                return ""
        return self.resource

    def produced_fields(self) -> list[tuple[str, Schema]]:
        """Scalar field paths of every 2xx response schema, in declaration order."""
        seen: dict[str, Schema] = {}
        for status in sorted(self.responses):
            schema = self.responses[status]
            if not 200 <= status < 300 or schema is None:
                continue
            for path, leaf in schema.leaves():
                seen.setdefault(path, leaf)
        return list(seen.items())

    def url_for(self, arguments: dict[str, Any]) -> str:
        """Render the path template with path arguments substituted."""

        def substitute(match: re.Match[str]) -> str:
            name = match.group(1)
            if name not in arguments:
                return match.group(0)
            return quote(str(arguments[name]), safe="")

        return _PLACEHOLDER.sub(substitute, self.path)

    def describe(self, arguments: dict[str, Any] | None = None) -> str:
        path = self.url_for(arguments) if arguments is not None else self.path
        return f"{self.method} {path}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "method": self.method,
            "path": self.path,
            "summary": self.summary,
            "parameters": [p.to_dict() for p in self.parameters],
            "responses": {
                str(status): schema.to_dict() if schema else None
                for status, schema in self.responses.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Operation:
        return cls(
            id=data["id"],
            method=data["method"],
            path=data["path"],
            summary=data.get("summary", ""),
            parameters=[Parameter.from_dict(p) for p in data.get("parameters", [])],
            responses={
                int(status): Schema.from_dict(schema) if schema else None
                for status, schema in (data.get("responses") or {}).items()
            },
        )

    def __str__(self) -> str:
        return self.describe()


def _join(prefix: str, name: str) -> str:
    return f"{prefix}.{name}" if prefix else name


def _type_of(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    return "string"

"""Pytest fixtures for QuickREST tests."""

from __future__ import annotations

from typing import Any

import pytest

from quickrest.adapters import StubExecutor
from quickrest.core import (
    And,
    Comparison,
    CrossCompare,
    Eventually,
    FieldRef,
    Invocation,
    Objective,
    Operation,
    OperationGraph,
    Parameter,
    ParameterLocation,
    Schema,
    StatusIs,
)


def item_schema() -> Schema:
    return Schema(
        type="object",
        properties={"id": Schema(type="string"), "name": Schema(type="string")},
        required=["id"],
    )


def make_operations() -> list[Operation]:
    """A tiny item API: health check, create, read and an unrelated listing."""
    return [
        Operation(
            id="health",
            method="GET",
            path="/health",
            responses={200: Schema(type="object", properties={"status": Schema(type="string")})},
        ),
        Operation(
            id="create_item",
            method="POST",
            path="/items",
            parameters=[
                Parameter(
                    name="name",
                    location=ParameterLocation.BODY,
                    schema=Schema(type="string", max_length=8),
                ),
            ],
            responses={201: item_schema()},
        ),
        Operation(
            id="list_tags",
            method="GET",
            path="/tags",
            parameters=[
                Parameter(
                    name="limit",
                    location=ParameterLocation.QUERY,
                    schema=Schema(type="integer", minimum=0, maximum=50),
                ),
            ],
            responses={200: Schema(type="array", items=Schema(type="string"))},
        ),
        Operation(
            id="get_item",
            method="GET",
            path="/items/{id}",
            parameters=[
                Parameter(
                    name="id",
                    location=ParameterLocation.PATH,
                    schema=Schema(type="string"),
                    required=True,
                ),
            ],
            responses={200: item_schema(), 404: None},
        ),
    ]


def create_and_read_operations() -> list[Operation]:
    """Only POST /items and GET /items/{id}."""
    return [op for op in make_operations() if op.id in ("create_item", "get_item")]


def get_item_response(invocation: Invocation) -> tuple[int, Any]:
    if invocation.arguments.get("id") == "42":
        return 200, {"id": "42"}
    return 404, {"detail": "not found"}


def item_responses() -> dict[str, Any]:
    return {
        "health": (200, {"status": "ok"}),
        "create_item": (201, {"id": "42"}),
        "list_tags": (200, ["a", "b"]),
        "get_item": get_item_response,
    }


def create_then_read() -> Objective:
    """Created with 201, then read back with 200 and the same id."""
    created = StatusIs((201,))
    return Objective(
        name="create-then-read",
        predicate=And(
            (
                Eventually(created),
                Eventually(
                    And(
                        (
                            StatusIs((200,)),
                            CrossCompare(
                                FieldRef("response", "id"),
                                Comparison.EQ,
                                FieldRef("response", "id"),
                                where=created,
                            ),
                        )
                    )
                ),
            )
        ),
    )


@pytest.fixture
def operations() -> list[Operation]:
    return make_operations()


@pytest.fixture
def graph() -> OperationGraph:
    return OperationGraph(make_operations())


@pytest.fixture
def two_step_graph() -> OperationGraph:
    return OperationGraph(create_and_read_operations())


@pytest.fixture
def stub(graph: OperationGraph) -> StubExecutor:
    return StubExecutor(responses=item_responses(), graph=graph)


@pytest.fixture
def objective() -> Objective:
    return create_then_read()


@pytest.fixture
def openapi_spec() -> dict[str, Any]:
    return {
        "openapi": "3.0.0",
        "info": {"title": "Items", "version": "1.0"},
        "paths": {
            "/items": {
                "post": {
                    "operationId": "create_item",
                    "requestBody": {
                        "required": True,
                        "content": {
                            "application/json": {
                                "schema": {"$ref": "#/components/schemas/NewItem"}
                            }
                        },
                    },
                    "responses": {
                        "201": {
                            "description": "created",
                            "content": {
                                "application/json": {
                                    "schema": {"$ref": "#/components/schemas/Item"}
                                }
                            },
                        },
                        "400": {"description": "invalid"},
                    },
                },
                "get": {
                    "parameters": [
                        {
                            "name": "limit",
                            "in": "query",
                            "schema": {"type": "integer", "minimum": 1, "maximum": 100},
                        },
                        {"name": "X-Trace", "in": "header", "schema": {"type": "string"}},
                        {"name": "session", "in": "cookie", "schema": {"type": "string"}},
                    ],
                    "responses": {
                        "200": {
                            "description": "ok",
                            "content": {
                                "application/json": {
                                    "schema": {
                                        "type": "array",
                                        "items": {"$ref": "#/components/schemas/Item"},
                                    }
                                }
                            },
                        }
                    },
                },
            },
            "/items/{itemId}": {
                "parameters": [
                    {"name": "itemId", "in": "path", "required": True, "schema": {"type": "string"}}
                ],
                "get": {
                    "operationId": "get_item",
                    "responses": {
                        "200": {
                            "description": "ok",
                            "content": {
                                "application/json": {
                                    "schema": {"$ref": "#/components/schemas/Item"}
                                }
                            },
                        },
                        "404": {"description": "missing"},
                    },
                },
                "delete": {
                    "operationId": "delete_item",
                    "responses": {"204": {"description": "gone"}},
                },
            },
            "/admin/reset": {
                "post": {"operationId": "reset", "responses": {"200": {"description": "ok"}}}
            },
        },
        "components": {
            "schemas": {
                "NewItem": {
                    "type": "object",
                    "required": ["name"],
                    "properties": {
                        "name": {"type": "string", "minLength": 1, "maxLength": 20},
                        "kind": {"type": "string", "enum": ["book", "toy"]},
                    },
                },
                "Item": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "name": {"type": "string"},
                    },
                },
            }
        },
    }

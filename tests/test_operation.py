"""Tests for Schema, Parameter and Operation."""

from __future__ import annotations

from quickrest.core import Operation, Parameter, ParameterLocation, Schema
from quickrest.core.operation import RAW_BODY


class TestSchema:
    def test_from_dict_basic(self) -> None:
        schema = Schema.from_dict(
            {"type": "string", "minLength": 2, "maxLength": 5, "format": "email"}
        )
        assert schema.type == "string"
        assert schema.min_length == 2
        assert schema.max_length == 5
        assert schema.format == "email"

    def test_from_dict_type_list(self) -> None:
        schema = Schema.from_dict({"type": ["integer", "null"]})
        assert schema.type == "integer"
        assert schema.nullable is True

    def test_from_dict_infers_type(self) -> None:
        assert Schema.from_dict({"properties": {"a": {}}}).type == "object"
        assert Schema.from_dict({"items": {"type": "integer"}}).type == "array"
        assert Schema.from_dict({"enum": [1, 2]}).type == "integer"
        assert Schema.from_dict({}).type == "string"
        assert Schema.from_dict(None).type == "string"

    def test_required_only_from_list(self) -> None:
        # Swagger 2 parameters use a boolean "required"
        assert Schema.from_dict({"type": "string", "required": True}).required == []
        assert Schema.from_dict({"type": "object", "required": ["id"]}).required == ["id"]

    def test_leaves(self) -> None:
        schema = Schema.from_dict(
            {
                "type": "object",
                "properties": {
                    "id": {"type": "integer"},
                    "owner": {"type": "object", "properties": {"id": {"type": "string"}}},
                    "tags": {"type": "array", "items": {"type": "string"}},
                },
            }
        )
        paths = [path for path, _ in schema.leaves()]
        assert paths == ["id", "owner.id", "tags.0"]

    def test_scalar_root_leaf(self) -> None:
        assert Schema(type="integer").leaves() == [("", Schema(type="integer"))]

    def test_dict_round_trip(self) -> None:
        data = {
            "type": "object",
            "properties": {"kind": {"type": "string", "enum": ["a", "b"]}},
            "required": ["kind"],
        }
        assert Schema.from_dict(data).to_dict() == data


class TestParameter:
    def test_path_parameters_are_required(self) -> None:
        param = Parameter.from_dict({"name": "id", "in": "path", "schema": {"type": "string"}})
        assert param.required is True
        assert param.location is ParameterLocation.PATH

    def test_query_defaults_optional(self) -> None:
        param = Parameter.from_dict({"name": "q", "in": "query"})
        assert param.required is False


class TestOperation:
    def test_method_uppercased(self) -> None:
        assert Operation(id="x", method="post", path="/x").method == "POST"

    def test_resource(self) -> None:
        op = Operation(id="x", method="GET", path="/users/{userId}/orders/{orderId}")
        assert op.resource == "orders"
        assert op.resource_for("userId") == "users"
        assert op.resource_for("orderId") == "orders"
        assert op.resource_for("limit") == "orders"

    def test_url_for_quotes_values(self) -> None:
        op = Operation(id="x", method="GET", path="/items/{id}")
        assert op.url_for({"id": "a b/c"}) == "/items/a%20b%2Fc"
        assert op.url_for({}) == "/items/{id}"

    def test_describe(self) -> None:
        op = Operation(id="x", method="GET", path="/items/{id}")
        assert op.describe({"id": 42}) == "GET /items/42"
        assert str(op) == "GET /items/{id}"

    def test_produced_fields_only_2xx(self) -> None:
        op = Operation(
            id="x",
            method="POST",
            path="/items",
            responses={
                201: Schema(type="object", properties={"id": Schema(type="string")}),
                400: Schema(type="object", properties={"error": Schema(type="string")}),
                204: None,
            },
        )
        assert [path for path, _ in op.produced_fields()] == ["id"]

    def test_dict_round_trip(self) -> None:
        op = Operation(
            id="create",
            method="POST",
            path="/items",
            parameters=[
                Parameter(RAW_BODY, ParameterLocation.BODY, Schema(type="array"), required=True)
            ],
            responses={201: Schema(type="object"), 400: None},
            summary="Create",
        )
        assert Operation.from_dict(op.to_dict()) == op

"""Tests for the stub and HTTP executors."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock, Mock

import httpx
import pytest

from quickrest.adapters import DRY_RUN_RESPONSE, Executor, HttpExecutor, StubExecutor
from quickrest.core import Invocation, Operation, OperationGraph, Parameter, ParameterLocation, Schema
from quickrest.core.operation import RAW_BODY
from quickrest.errors import InvocationTimeout, TransportError


def mock_response(status: int, body: Any = None, content_type: str = "application/json") -> Mock:
    response = Mock()
    response.status_code = status
    response.headers = {"content-type": content_type}
    response.json.return_value = body
    response.text = str(body)
    return response


@pytest.fixture
def http(graph: OperationGraph) -> HttpExecutor:
    executor = HttpExecutor(graph, "http://api.test/", timeout=3.0)
    executor._client.close()
    executor._client = MagicMock()
    return executor


class TestStubExecutor:
    def test_fixed_and_callable_responses(self, stub: StubExecutor) -> None:
        created = stub.execute(Invocation("create_item"))
        assert (created.status, created.body) == (201, {"id": "42"})
        found = stub.execute(Invocation("get_item", {"id": "42"}))
        missing = stub.execute(Invocation("get_item", {"id": "7"}))
        assert found.status == 200
        assert missing.status == 404

    def test_default_response(self) -> None:
        result = StubExecutor().execute(Invocation("anything"))
        assert (result.status, result.body) == DRY_RUN_RESPONSE
        assert result.request_line == "anything"

    def test_request_line_from_graph(self, stub: StubExecutor) -> None:
        result = stub.execute(Invocation("get_item", {"id": "42"}))
        assert result.request_line == "GET /items/42"

    def test_injected_failures(self) -> None:
        stub = StubExecutor(fail_on=[2], timeout_on=[3])
        stub.execute(Invocation("a"))
        with pytest.raises(TransportError):
            stub.execute(Invocation("a"))
        with pytest.raises(InvocationTimeout):
            stub.execute(Invocation("a"))
        assert stub.execute(Invocation("a")).status == 200
        assert stub.dispatch_count == 4

    def test_records_calls(self, stub: StubExecutor) -> None:
        stub.execute(Invocation("health"))
        stub.execute(Invocation("list_tags", {"limit": 3}))
        assert [inv.operation_id for inv in stub.calls] == ["health", "list_tags"]

    def test_satisfies_protocol(self, stub: StubExecutor) -> None:
        assert isinstance(stub, Executor)


class TestBuildRequest:
    def test_locations(self) -> None:
        op = Operation(
            id="update",
            method="PUT",
            path="/items/{id}",
            parameters=[
                Parameter("id", ParameterLocation.PATH, Schema(), required=True),
                Parameter("verbose", ParameterLocation.QUERY, Schema(type="boolean")),
                Parameter("X-Request", ParameterLocation.HEADER, Schema(type="integer")),
                Parameter("name", ParameterLocation.BODY, Schema()),
            ],
        )
        executor = HttpExecutor(OperationGraph([op]), "http://api.test")
        request = executor.build_request(
            Invocation("update", {"id": "a b", "verbose": True, "X-Request": 5, "name": "x"})
        )
        executor.close()
        assert request == {
            "method": "PUT",
            "url": "/items/a%20b",
            "params": {"verbose": "true"},
            "headers": {"X-Request": "5"},
            "json": {"name": "x"},
        }

    def test_raw_body(self) -> None:
        op = Operation(
            id="batch",
            method="POST",
            path="/batch",
            parameters=[Parameter(RAW_BODY, ParameterLocation.BODY, Schema(type="array"), required=True)],
        )
        executor = HttpExecutor(OperationGraph([op]), "http://api.test")
        request = executor.build_request(Invocation("batch", {RAW_BODY: [1, 2]}))
        executor.close()
        assert request["json"] == [1, 2]

    def test_no_body_without_body_arguments(self, http: HttpExecutor) -> None:
        request = http.build_request(Invocation("list_tags", {"limit": 4}))
        assert "json" not in request
        assert request["params"] == {"limit": 4}


class TestHttpExecutor:
    def test_json_response(self, http: HttpExecutor) -> None:
        http._client.request.return_value = mock_response(201, {"id": "42"})
        result = http.execute(Invocation("create_item", {"name": "box"}))
        assert result.status == 201
        assert result.body == {"id": "42"}
        assert result.request_line == "POST /items"
        call = http._client.request.call_args
        assert call.kwargs["json"] == {"name": "box"}
        assert call.kwargs["timeout"] == 3.0

    def test_text_response(self, http: HttpExecutor) -> None:
        http._client.request.return_value = mock_response(200, "ok", content_type="text/plain")
        assert http.execute(Invocation("health")).body == "ok"

    def test_invocation_timeout_overrides_default(self, http: HttpExecutor) -> None:
        http._client.request.return_value = mock_response(200, {})
        http.execute(Invocation("health", timeout=0.5))
        assert http._client.request.call_args.kwargs["timeout"] == 0.5

    def test_error_status_is_a_result(self, http: HttpExecutor) -> None:
        http._client.request.return_value = mock_response(500, {"detail": "boom"})
        assert http.execute(Invocation("health")).status == 500

    def test_timeout_raises(self, http: HttpExecutor) -> None:
        http._client.request.side_effect = httpx.ReadTimeout("slow")
        with pytest.raises(InvocationTimeout) as exc_info:
            http.execute(Invocation("health"))
        assert exc_info.value.context.operation_id == "health"

    def test_connection_error_raises(self, http: HttpExecutor) -> None:
        http._client.request.side_effect = httpx.ConnectError("refused")
        with pytest.raises(TransportError, match="GET /health failed"):
            http.execute(Invocation("health"))

    def test_context_manager_closes(self, http: HttpExecutor) -> None:
        with http as executor:
            assert executor is http
        http._client.close.assert_called_once()

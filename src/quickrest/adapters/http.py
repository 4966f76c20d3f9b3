"""HTTP executor over httpx."""

from __future__ import annotations

import json
import logging
import time
from typing import Any

import httpx

from quickrest.core.graph import OperationGraph
from quickrest.core.invocation import ExecutionResult, Invocation
from quickrest.core.operation import RAW_BODY, ParameterLocation
from quickrest.errors import ErrorContext, InvocationTimeout, TransportError

logger = logging.getLogger(__name__)


class HttpExecutor:
    """Dispatches invocations to the API under test.

    The Operation decides where each argument travels: path placeholders,
    query string, headers or the JSON body.

    Example:
        with HttpExecutor(graph, "http://localhost:8000") as executor:
            result = executor.execute(invocation)
    """

    def __init__(
        self,
        graph: OperationGraph,
        base_url: str,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.graph = graph
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.default_headers = headers or {}
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers=self.default_headers,
        )

    def build_request(self, invocation: Invocation) -> dict[str, Any]:
        """Keyword arguments for ``httpx.Client.request``."""
        op = self.graph.require(invocation.operation_id)
        params: dict[str, Any] = {}
        headers: dict[str, str] = {}
        body: dict[str, Any] = {}
        raw_body: Any = None
        has_body = False

        for name, value in invocation.arguments.items():
            param = op.parameter(name)
            if param is None:
                continue
            if param.location is ParameterLocation.QUERY:
                params[name] = _query_value(value)
            elif param.location is ParameterLocation.HEADER:
                headers[name] = str(value)
            elif param.location is ParameterLocation.BODY:
                has_body = True
                if name == RAW_BODY:
                    raw_body = value
                else:
                    body[name] = value

        request: dict[str, Any] = {
            "method": op.method,
            "url": op.url_for(invocation.arguments),
            "params": params,
            "headers": headers,
        }
        if has_body:
            request["json"] = raw_body if RAW_BODY in invocation.arguments else body
        return request

    def execute(self, invocation: Invocation) -> ExecutionResult:
        request = self.build_request(invocation)
        request_line = f"{request['method']} {request['url']}"
        timeout = invocation.timeout if invocation.timeout is not None else self.timeout
        context = ErrorContext(
            operation_id=invocation.operation_id,
            request={"method": request["method"], "url": request["url"]},
        )

        start = time.perf_counter()
        try:
            resp = self._client.request(timeout=timeout, **request)
        except httpx.TimeoutException as e:
            raise InvocationTimeout(
                f"{request_line} timed out after {timeout}s", context=context, cause=e
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"{request_line} failed: {e}", context=context, cause=e) from e
        duration_ms = (time.perf_counter() - start) * 1000

        if resp.headers.get("content-type", "").startswith("application/json"):
            try:
                body: Any = resp.json()
            except ValueError:
                body = resp.text
        else:
            body = resp.text

        logger.debug("%s -> %d (%.1fms)", request_line, resp.status_code, duration_ms)
        return ExecutionResult(
            invocation=invocation,
            status=resp.status_code,
            body=body,
            duration_ms=duration_ms,
            request_line=request_line,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpExecutor:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def _query_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list) and all(isinstance(v, (str, int, float)) for v in value):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value

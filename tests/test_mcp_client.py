"""Tests for the JSON-RPC MCP tool client."""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from contextchat.chat.mcp_client import (
    MCPProtocolError,
    MCPToolClient,
    MCPTransportError,
)
from contextchat.schemas.mcp_servers import tool_input_schema

pytestmark = pytest.mark.anyio

SERVER_URL = "http://tools.example.com/mcp"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def make_client(
    handler: Callable[[httpx.Request], httpx.Response],
) -> tuple[MCPToolClient, list[dict[str, Any]]]:
    requests: list[dict[str, Any]] = []

    def _record(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        return handler(request)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(_record))
    return MCPToolClient(http_client=http_client), requests


def rpc_result(result: Any) -> Callable[[httpx.Request], httpx.Response]:
    def _handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    return _handler


class TestListTools:
    async def test_returns_advertised_tools(self) -> None:
        client, requests = make_client(
            rpc_result(
                {
                    "tools": [
                        {
                            "name": "get_weather",
                            "description": "Weather lookup",
                            "inputSchema": {
                                "type": "object",
                                "properties": {"city": {"type": "string"}},
                            },
                        },
                        {"name": "no_schema"},
                    ]
                }
            )
        )

        tools = await client.list_tools(SERVER_URL)

        assert [tool.name for tool in tools] == ["get_weather", "no_schema"]
        assert tool_input_schema(tools[1]) == {"type": "object", "properties": {}}
        assert requests[0]["jsonrpc"] == "2.0"
        assert requests[0]["method"] == "tools/list"
        assert "id" in requests[0]

    async def test_missing_tools_yields_empty_list(self) -> None:
        client, _ = make_client(rpc_result({}))

        assert await client.list_tools(SERVER_URL) == []

    async def test_skips_unnamed_entries(self) -> None:
        client, _ = make_client(
            rpc_result({"tools": [{"description": "anonymous"}, "junk", {"name": "ok"}]})
        )

        tools = await client.list_tools(SERVER_URL)

        assert [tool.name for tool in tools] == ["ok"]

    async def test_http_error_raises_transport_error(self) -> None:
        client, _ = make_client(lambda request: httpx.Response(503))

        with pytest.raises(MCPTransportError) as excinfo:
            await client.list_tools(SERVER_URL)

        assert excinfo.value.status_code == 503
        assert str(excinfo.value) == "HTTP 503 Error"

    async def test_network_failure_raises_transport_error(self) -> None:
        def _handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = make_client(_handler)

        with pytest.raises(MCPTransportError):
            await client.list_tools(SERVER_URL)

    async def test_rpc_error_raises_protocol_error(self) -> None:
        client, _ = make_client(
            lambda request: httpx.Response(
                200,
                json={
                    "jsonrpc": "2.0",
                    "id": 1,
                    "error": {"code": -32601, "message": "Method not found"},
                },
            )
        )

        with pytest.raises(MCPProtocolError) as excinfo:
            await client.list_tools(SERVER_URL)

        assert str(excinfo.value) == "Method not found"
        assert excinfo.value.code == -32601

    async def test_non_json_body_raises_protocol_error(self) -> None:
        client, _ = make_client(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(MCPProtocolError):
            await client.list_tools(SERVER_URL)


class TestCallTool:
    async def test_sends_name_and_arguments(self) -> None:
        client, requests = make_client(
            rpc_result({"content": [{"type": "text", "text": "Sunny"}]})
        )

        result = await client.call_tool(SERVER_URL, "get_weather", {"city": "Paris"})

        assert result == {"content": [{"type": "text", "text": "Sunny"}]}
        assert requests[0]["method"] == "tools/call"
        assert requests[0]["params"] == {
            "name": "get_weather",
            "arguments": {"city": "Paris"},
        }

    async def test_request_ids_increase(self) -> None:
        client, requests = make_client(rpc_result({}))

        await client.call_tool(SERVER_URL, "a", {})
        await client.call_tool(SERVER_URL, "b", {})

        assert requests[1]["id"] > requests[0]["id"]

    async def test_http_error_becomes_error_payload(self) -> None:
        client, _ = make_client(lambda request: httpx.Response(500))

        result = await client.call_tool(SERVER_URL, "get_weather", {})

        assert result == {"error": "HTTP 500 Error"}

    async def test_rpc_error_becomes_error_payload(self) -> None:
        client, _ = make_client(
            lambda request: httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": 1, "error": {"code": -1, "message": "boom"}},
            )
        )

        result = await client.call_tool(SERVER_URL, "get_weather", {})

        assert result == {"error": "boom"}

    async def test_network_failure_becomes_error_payload(self) -> None:
        def _handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = make_client(_handler)

        result = await client.call_tool(SERVER_URL, "get_weather", {})

        assert result == {"error": "connection refused"}

"""JSON-RPC 2.0 over HTTP POST client for MCP tool servers."""

from __future__ import annotations

import itertools
import json
import logging
from typing import Any

import httpx
from mcp.types import ErrorData, JSONRPCRequest, Tool
from pydantic import ValidationError

from ..schemas.mcp_servers import parse_tool_descriptor

logger = logging.getLogger(__name__)

# Default per-request timeout for MCP servers (seconds)
MCP_REQUEST_TIMEOUT = 30.0
UNKNOWN_TOOL_ERROR = "Unknown error executing tool"


class MCPError(Exception):
    """Base error for MCP server communication failures."""


class MCPTransportError(MCPError):
    """The server could not be reached or answered with a non-2xx status."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MCPProtocolError(MCPError):
    """The server answered with a JSON-RPC error or an undecodable body."""

    def __init__(self, message: str, *, code: int | None = None):
        super().__init__(message)
        self.code = code


def _decode_error(raw: Any) -> ErrorData:
    if isinstance(raw, dict):
        try:
            return ErrorData.model_validate(raw)
        except ValidationError:
            message = raw.get("message")
            if isinstance(message, str) and message:
                return ErrorData(code=-32603, message=message)
    return ErrorData(code=-32603, message=str(raw))


class MCPToolClient:
    """Issue `tools/list` and `tools/call` requests against MCP server URLs."""

    def __init__(
        self,
        *,
        timeout: float = MCP_REQUEST_TIMEOUT,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None
        self._request_ids = itertools.count(1)

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, connect=10.0),
            )
        return self._http_client

    def _build_request(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        request = JSONRPCRequest(
            jsonrpc="2.0",
            id=next(self._request_ids),
            method=method,
            params=params,
        )
        return request.model_dump(mode="json", by_alias=True, exclude_none=True)

    async def _post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        client = self._get_http_client()
        try:
            response = await client.post(
                url,
                json=payload,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as exc:
            raise MCPTransportError(str(exc) or type(exc).__name__) from exc

        if not response.is_success:
            raise MCPTransportError(
                f"HTTP {response.status_code} Error",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise MCPProtocolError(f"Invalid JSON-RPC response: {exc}") from exc
        if not isinstance(body, dict):
            raise MCPProtocolError("Invalid JSON-RPC response: expected an object")

        if body.get("error") is not None:
            error = _decode_error(body["error"])
            raise MCPProtocolError(error.message, code=error.code)
        return body

    async def list_tools(self, url: str) -> list[Tool]:
        """Return the tools advertised by the server at ``url``."""

        try:
            body = await self._post(url, self._build_request("tools/list"))
        except MCPError as exc:
            logger.error("Failed to connect to MCP server at %s: %s", url, exc)
            raise

        result = body.get("result")
        raw_tools = result.get("tools") if isinstance(result, dict) else None
        if not isinstance(raw_tools, list):
            logger.debug("MCP server %s returned no tool list", url)
            return []

        tools: list[Tool] = []
        for raw in raw_tools:
            try:
                tool = parse_tool_descriptor(raw)
            except ValidationError as exc:
                logger.warning("Skipping invalid tool from %s: %s", url, exc)
                continue
            if tool is None:
                logger.warning("Skipping unnamed tool entry from %s", url)
                continue
            tools.append(tool)
        return tools

    async def call_tool(
        self,
        url: str,
        name: str,
        arguments: dict[str, Any] | None = None,
    ) -> Any:
        """Execute ``name`` on the server; failures come back as ``{"error": ...}``."""

        payload = self._build_request(
            "tools/call",
            {"name": name, "arguments": arguments or {}},
        )
        logger.info("Calling MCP tool '%s' at %s with args=%s", name, url, arguments)
        try:
            body = await self._post(url, payload)
        except MCPError as exc:
            logger.warning("MCP tool '%s' failed: %s", name, exc)
            return {"error": str(exc) or UNKNOWN_TOOL_ERROR}
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error calling MCP tool '%s'", name)
            return {"error": str(exc) or UNKNOWN_TOOL_ERROR}
        return body.get("result")

    async def aclose(self) -> None:
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None


__all__ = [
    "MCPError",
    "MCPProtocolError",
    "MCPToolClient",
    "MCPTransportError",
    "MCP_REQUEST_TIMEOUT",
    "UNKNOWN_TOOL_ERROR",
]

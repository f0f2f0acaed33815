"""Registry of external MCP servers and the tool dispatch rule."""

from __future__ import annotations

import logging
from typing import Any, Sequence
from urllib.parse import urlparse

from pydantic import ValidationError

from ..schemas.mcp_servers import MCPServerConnection, ServerStatus
from ..services.storage import KeyValueStore
from .mcp_client import MCPError, MCPToolClient

logger = logging.getLogger(__name__)

SERVERS_STORAGE_KEY = "mcp_servers"


def resolve_tool_server(
    servers: Sequence[MCPServerConnection], tool_name: str
) -> MCPServerConnection | None:
    """Return the first connected server advertising ``tool_name``."""

    for server in servers:
        if server.is_connected and server.advertises(tool_name):
            return server
    return None


async def dispatch_tool_call(
    client: MCPToolClient,
    servers: Sequence[MCPServerConnection],
    name: str,
    arguments: dict[str, Any] | None,
) -> Any:
    server = resolve_tool_server(servers, name)
    if server is None:
        logger.warning("Tool %s not found in connected servers", name)
        return {"error": f"Tool {name} not found in connected servers."}
    return await client.call_tool(server.url, name, arguments)


def _validate_url(url: str) -> str:
    candidate = url.strip()
    parsed = urlparse(candidate)
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        raise ValueError(f"MCP server URL must be an http(s) URL: {url!r}")
    return candidate


def _host_name(url: str) -> str:
    return urlparse(url).hostname or url


class MCPServerRegistry:
    """Track server connections, persist them, and run connect transitions.

    Mutations replace entries instead of editing them, so snapshots handed to
    an in-flight turn stay stable; the last writer wins.
    """

    def __init__(
        self,
        client: MCPToolClient,
        store: KeyValueStore,
        *,
        storage_key: str = SERVERS_STORAGE_KEY,
    ) -> None:
        self._client = client
        self._store = store
        self._storage_key = storage_key
        self._servers: list[MCPServerConnection] = []

    @property
    def client(self) -> MCPToolClient:
        return self._client

    def load(self) -> list[MCPServerConnection]:
        raw = self._store.get(self._storage_key)
        servers: list[MCPServerConnection] = []
        if isinstance(raw, list):
            for item in raw:
                try:
                    servers.append(MCPServerConnection.model_validate(item))
                except ValidationError as exc:
                    logger.warning("Skipping unreadable MCP server entry: %s", exc)
        elif raw is not None:
            logger.warning("Ignoring stored MCP servers of type %s", type(raw).__name__)
        self._servers = servers
        return self.servers()

    def _save(self) -> None:
        self._store.set(
            self._storage_key, [server.to_storage() for server in self._servers]
        )

    def servers(self) -> list[MCPServerConnection]:
        return [server.model_copy(deep=True) for server in self._servers]

    def connected_servers(self) -> list[MCPServerConnection]:
        return [server for server in self.servers() if server.is_connected]

    def get_server(self, server_id: str) -> MCPServerConnection:
        for server in self._servers:
            if server.id == server_id:
                return server.model_copy(deep=True)
        raise KeyError(f"Unknown MCP server id: {server_id}")

    def _store_server(self, updated: MCPServerConnection) -> MCPServerConnection | None:
        for index, existing in enumerate(self._servers):
            if existing.id == updated.id:
                self._servers[index] = updated
                self._save()
                return updated.model_copy(deep=True)
        # Removed while the connect attempt was in flight.
        return None

    async def _connect(self, server: MCPServerConnection) -> MCPServerConnection:
        try:
            tools = await self._client.list_tools(server.url)
        except MCPError as exc:
            logger.error("MCP server %s (%s) failed to connect: %s", server.id, server.url, exc)
            updated = server.model_copy(update={"status": ServerStatus.ERROR, "tools": []})
        else:
            logger.info(
                "MCP server %s connected with %d tool(s)", server.url, len(tools)
            )
            updated = server.model_copy(
                update={
                    "status": ServerStatus.CONNECTED,
                    "tools": tools,
                    "name": _host_name(server.url),
                }
            )
        stored = self._store_server(updated)
        return stored if stored is not None else updated

    async def add_server(self, url: str) -> MCPServerConnection:
        resolved = _validate_url(url)
        placeholder = MCPServerConnection(url=resolved, name=resolved)
        self._servers.append(placeholder)
        self._save()
        return await self._connect(placeholder)

    async def refresh_server(self, server_id: str) -> MCPServerConnection:
        return await self._connect(self.get_server(server_id))

    def remove_server(self, server_id: str) -> None:
        remaining = [server for server in self._servers if server.id != server_id]
        if len(remaining) == len(self._servers):
            raise KeyError(f"Unknown MCP server id: {server_id}")
        self._servers = remaining
        self._save()

    async def refresh_all(self) -> list[MCPServerConnection]:
        for server in self.servers():
            await self._connect(server)
        return self.servers()

    def describe_servers(self) -> list[dict[str, Any]]:
        return [server.to_storage() for server in self._servers]


__all__ = [
    "MCPServerRegistry",
    "SERVERS_STORAGE_KEY",
    "dispatch_tool_call",
    "resolve_tool_server",
]

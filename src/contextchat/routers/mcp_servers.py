"""API routes for managing MCP server connections."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from ..chat.mcp_registry import MCPServerRegistry
from ..schemas.mcp_servers import MCPServerCreatePayload, MCPServerListResponse

router = APIRouter(prefix="/api/mcp/servers", tags=["mcp"])


def get_mcp_registry(request: Request) -> MCPServerRegistry:
    registry = getattr(request.app.state, "mcp_registry", None)
    if registry is None:
        raise HTTPException(status_code=500, detail="MCP server registry unavailable")
    return registry


@router.get("", response_model=MCPServerListResponse)
async def read_mcp_servers(
    registry: MCPServerRegistry = Depends(get_mcp_registry),
) -> MCPServerListResponse:
    return MCPServerListResponse(servers=registry.describe_servers())


@router.post("", status_code=201)
async def add_mcp_server(
    payload: MCPServerCreatePayload,
    registry: MCPServerRegistry = Depends(get_mcp_registry),
) -> dict[str, Any]:
    try:
        server = await registry.add_server(payload.url)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return server.to_storage()


@router.post("/{server_id}/refresh")
async def refresh_mcp_server(
    server_id: str,
    registry: MCPServerRegistry = Depends(get_mcp_registry),
) -> dict[str, Any]:
    try:
        server = await registry.refresh_server(server_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=404, detail=f"Server not found: {server_id}"
        ) from exc
    return server.to_storage()


@router.delete("/{server_id}", status_code=204)
async def remove_mcp_server(
    server_id: str,
    registry: MCPServerRegistry = Depends(get_mcp_registry),
) -> Response:
    try:
        registry.remove_server(server_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=404, detail=f"Server not found: {server_id}"
        ) from exc
    return Response(status_code=204)


__all__ = ["router", "get_mcp_registry"]

"""Schemas for MCP server connections and the server API."""

from __future__ import annotations

from enum import Enum
from typing import Any

from mcp.types import Tool
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .chat import generate_id

ToolDescriptor = Tool

_EMPTY_INPUT_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}


def parse_tool_descriptor(raw: Any) -> Tool | None:
    """Decode a tool entry leniently; return None when it has no usable name."""

    if isinstance(raw, Tool):
        return raw
    if not isinstance(raw, dict):
        return None
    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        return None
    data = dict(raw)
    if not isinstance(data.get("inputSchema"), dict):
        data["inputSchema"] = dict(_EMPTY_INPUT_SCHEMA)
    return Tool.model_validate(data)


def tool_input_schema(tool: Tool) -> dict[str, Any]:
    """Return the JSON schema of ``tool`` under its wire name, whatever the field is called."""

    schema = tool.model_dump(by_alias=True).get("inputSchema")
    if isinstance(schema, dict):
        return schema
    return dict(_EMPTY_INPUT_SCHEMA)


class ServerStatus(str, Enum):
    CONNECTED = "connected"
    ERROR = "error"
    DISCONNECTED = "disconnected"


class MCPServerConnection(BaseModel):
    """Runtime and persisted state of one external MCP server."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=generate_id)
    url: str = Field(..., min_length=1)
    name: str = ""
    status: ServerStatus = ServerStatus.DISCONNECTED
    tools: list[Tool] = Field(default_factory=list)

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value: Any) -> Any:
        if value is None:
            return ServerStatus.DISCONNECTED
        return value

    @field_validator("tools", mode="before")
    @classmethod
    def _normalize_tools(cls, value: Any) -> Any:
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            raise ValueError("tools must be a list of tool descriptors")
        tools: list[Tool] = []
        for item in value:
            tool = parse_tool_descriptor(item)
            if tool is not None:
                tools.append(tool)
        return tools

    @property
    def is_connected(self) -> bool:
        return self.status is ServerStatus.CONNECTED

    def advertises(self, tool_name: str) -> bool:
        return any(tool.name == tool_name for tool in self.tools)

    def to_storage(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", exclude={"tools"})
        data["tools"] = [
            tool.model_dump(mode="json", by_alias=True, exclude_none=True)
            for tool in self.tools
        ]
        return data


class MCPServerCreatePayload(BaseModel):
    url: str = Field(..., min_length=1)


class MCPServerListResponse(BaseModel):
    servers: list[dict[str, Any]]


__all__ = [
    "MCPServerConnection",
    "MCPServerCreatePayload",
    "MCPServerListResponse",
    "ServerStatus",
    "ToolDescriptor",
    "parse_tool_descriptor",
    "tool_input_schema",
]

"""Streaming Gemini chat backend with MCP tool support."""

__version__ = "0.1.0"

"""Application factory for the FastAPI service."""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager, suppress
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .chat.conversation import ConversationService
from .chat.mcp_client import MCPToolClient
from .chat.mcp_registry import MCPServerRegistry
from .chat.orchestrator import ToolOrchestrator
from .config import PROJECT_ROOT, Settings, get_settings
from .gemini import GeminiClient
from .routers.chat import router as chat_router
from .routers.mcp_servers import router as mcp_router
from .routers.sessions import router as sessions_router
from .routers.uploads import router as uploads_router
from .services.attachments import AttachmentCodec
from .services.sessions import ChatSessionService
from .services.storage import JsonFileStore, KeyValueStore


def _configure_logging() -> None:
    """Configure logging based on LOG_LEVEL environment variable."""
    # Load .env file first to ensure LOG_FILE is available
    load_dotenv()

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handlers: list[logging.Handler] = []
    log_file = os.getenv("LOG_FILE")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    logging.getLogger("contextchat").setLevel(log_level)
    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)

    # Request bodies carry base64 payloads; keep httpx quiet unless debugging
    if log_level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
    else:
        logging.getLogger("httpx").setLevel(log_level)
        logging.getLogger("httpcore").setLevel(log_level)


def _resolve_under(base: Path, p: Path) -> Path:
    # Allow absolute paths as-is (useful for tests and external mounts).
    if p.is_absolute():
        return p.resolve()
    resolved = (base / p).resolve()
    if not resolved.is_relative_to(base):
        raise ValueError(f"Configured path {resolved} escapes project root {base}")
    return resolved


def create_app(
    settings: Settings | None = None,
    *,
    store: KeyValueStore | None = None,
) -> FastAPI:
    # Configure logging first thing
    _configure_logging()

    settings = settings or get_settings()

    if store is None:
        storage_dir = _resolve_under(PROJECT_ROOT, settings.storage_dir)
        store = JsonFileStore(storage_dir, namespace=settings.storage_namespace)

    gemini_client = GeminiClient(settings)
    mcp_client = MCPToolClient(timeout=settings.mcp_request_timeout)
    registry = MCPServerRegistry(mcp_client, store)
    session_service = ChatSessionService(store)
    orchestrator = ToolOrchestrator(
        gemini_client,
        mcp_client,
        turn_limit=settings.tool_turn_limit,
    )
    conversation_service = ConversationService(session_service, registry, orchestrator)
    attachment_codec = AttachmentCodec(
        max_size_bytes=settings.attachments_max_size_bytes
    )

    refresh_task: asyncio.Task | None = None

    async def _refresh_servers() -> None:
        try:
            await registry.refresh_all()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logging.warning("Initial MCP server refresh failed: %s", exc)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal refresh_task
        session_service.load()
        if registry.load():
            refresh_task = asyncio.create_task(_refresh_servers())
        try:
            yield
        finally:
            if refresh_task is not None and not refresh_task.done():
                refresh_task.cancel()
                with suppress(asyncio.CancelledError):
                    await refresh_task
            try:
                await asyncio.wait_for(mcp_client.aclose(), timeout=10.0)
            except asyncio.TimeoutError:
                logging.warning("MCP client shutdown timed out after 10s")
            await gemini_client.aclose()

    app = FastAPI(
        title="Context Chat Backend",
        version="0.1.0",
        description="Streaming chat backend powered by Gemini and MCP.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.gemini_client = gemini_client
    app.state.mcp_registry = registry
    app.state.session_service = session_service
    app.state.conversation_service = conversation_service
    app.state.attachment_codec = attachment_codec

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat_router)
    app.include_router(sessions_router)
    app.include_router(mcp_router)
    app.include_router(uploads_router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str | int]:
        return {
            "status": "ok",
            "default_model": settings.default_model,
            "connected_servers": len(registry.connected_servers()),
        }

    return app


__all__ = ["create_app"]

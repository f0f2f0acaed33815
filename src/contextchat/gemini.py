"""Gemini streaming client utilities."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Callable, Iterable, Mapping, Optional, Sequence

import httpx
from fastapi import status

from .chat.tool_calls import FunctionCallTable
from .config import Settings
from .schemas.wire import FunctionDeclaration, Turn, TurnResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]

MISSING_API_KEY_MESSAGE = (
    "API Key is missing. Please add it in settings or provide it via "
    "environment variables."
)


class GeminiError(Exception):
    """Wrap transport or API failures when communicating with Gemini."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail


@dataclass
class ServerSentEvent:
    """Represents a parsed Server-Sent Event."""

    data: str
    event: str = "message"
    event_id: Optional[str] = None

    def asdict(self) -> dict[str, Optional[str]]:
        payload: dict[str, Optional[str]] = {"event": self.event, "data": self.data}
        if self.event_id is not None:
            payload["id"] = self.event_id
        return payload


def _candidate_parts(chunk: Mapping[str, Any]) -> list[Any]:
    candidates = chunk.get("candidates")
    if not isinstance(candidates, Sequence) or not candidates:
        return []
    first = candidates[0]
    if not isinstance(first, Mapping):
        return []
    content = first.get("content")
    if not isinstance(content, Mapping):
        return []
    parts = content.get("parts")
    if not isinstance(parts, list):
        return []
    return parts


def consume_chunk(chunk: Mapping[str, Any], calls: FunctionCallTable) -> str:
    """Record function calls from ``chunk`` and return its visible text."""

    fragments: list[str] = []
    for part in _candidate_parts(chunk):
        if not isinstance(part, Mapping):
            continue
        text = part.get("text")
        if isinstance(text, str) and text and not part.get("thought"):
            fragments.append(text)
        if "functionCall" in part and not calls.record_raw(part["functionCall"]):
            logger.debug("Skipping malformed function call fragment: %s", part)
    return "".join(fragments)


class GeminiClient:
    """Client responsible for streaming content generation from Gemini."""

    _client_lock: asyncio.Lock = asyncio.Lock()
    _client_pool: dict[tuple[str, float], httpx.AsyncClient] = {}

    def __init__(self, settings: Settings):
        self._settings = settings

    def _client_key(self) -> tuple[str, float]:
        return (self._base_url, float(self._settings.request_timeout))

    async def _get_http_client(self) -> httpx.AsyncClient:
        key = self._client_key()
        client = self.__class__._client_pool.get(key)
        if client is not None:
            return client

        async with self.__class__._client_lock:
            client = self.__class__._client_pool.get(key)
            if client is None:
                timeout = httpx.Timeout(self._settings.request_timeout, connect=10.0)
                limits = httpx.Limits(
                    max_connections=50,
                    max_keepalive_connections=20,
                )
                client = httpx.AsyncClient(
                    timeout=timeout,
                    limits=limits,
                    http2=True,
                )
                self.__class__._client_pool[key] = client
        return client

    @property
    def _headers(self) -> dict[str, str]:
        api_key = self._settings.gemini_api_key
        if api_key is None or not api_key.get_secret_value():
            raise GeminiError(status.HTTP_401_UNAUTHORIZED, MISSING_API_KEY_MESSAGE)
        return {
            "x-goog-api-key": api_key.get_secret_value(),
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }

    @property
    def _base_url(self) -> str:
        """Return the Gemini API base URL without a trailing slash."""

        return str(self._settings.gemini_base_url).rstrip("/")

    def _stream_url(self, model: str | None) -> str:
        model_id = (model or self._settings.default_model).strip()
        if model_id.startswith("models/"):
            model_id = model_id[len("models/") :]
        return f"{self._base_url}/models/{model_id}:streamGenerateContent"

    def build_payload(
        self,
        turns: Sequence[Turn],
        tool_declarations: Sequence[FunctionDeclaration] | None = None,
    ) -> dict[str, Any]:
        """Assemble the request body; tools are omitted when there are none."""

        payload: dict[str, Any] = {
            "contents": [turn.to_wire() for turn in turns],
            "systemInstruction": {
                "parts": [{"text": self._settings.system_instruction}]
            },
            "generationConfig": {
                "maxOutputTokens": self._settings.max_output_tokens,
            },
        }
        if tool_declarations:
            payload["tools"] = [
                {
                    "functionDeclarations": [
                        declaration.to_wire() for declaration in tool_declarations
                    ]
                }
            ]
        return payload

    async def stream(
        self,
        turns: Sequence[Turn],
        tool_declarations: Sequence[FunctionDeclaration] | None,
        on_progress: ProgressCallback | None = None,
        *,
        model: str | None = None,
    ) -> TurnResult:
        """Stream one model turn, reporting accumulated text as it grows."""

        payload = self.build_payload(turns, tool_declarations)
        text = ""
        calls = FunctionCallTable()

        async for event in self.stream_raw(payload, model=model):
            data = event.get("data")
            if not data or data == "[DONE]":
                continue
            try:
                chunk = json.loads(data)
            except json.JSONDecodeError:
                logger.debug("Skipping non-JSON SSE payload: %s", data)
                continue
            if not isinstance(chunk, dict):
                continue

            error = chunk.get("error")
            if error:
                raise GeminiError(
                    self._error_status(error), self._error_message(error)
                )

            fragment = consume_chunk(chunk, calls)
            if fragment:
                text += fragment
                if on_progress is not None:
                    on_progress(text)

        if calls:
            logger.debug(
                "Model requested %d tool call(s): %s",
                len(calls),
                [call.name for call in calls.calls()],
            )
        return TurnResult(text=text, tool_calls=calls.calls())

    async def stream_raw(
        self,
        payload: dict[str, Any],
        *,
        model: str | None = None,
    ) -> AsyncGenerator[dict[str, Optional[str]], None]:
        """Low-level streaming helper accepting a prebuilt payload."""

        url = self._stream_url(model)
        headers = self._headers

        client = await self._get_http_client()
        try:
            async with client.stream(
                "POST",
                url,
                params={"alt": "sse"},
                headers=headers,
                json=payload,
            ) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    detail = self._extract_error_detail(body)
                    raise GeminiError(response.status_code, detail)

                async for event in self._iter_events(response):
                    yield event.asdict()
        except httpx.HTTPError as exc:
            raise GeminiError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

    async def aclose(self) -> None:
        await self.__class__.aclose_shared()

    @classmethod
    async def aclose_shared(cls) -> None:
        async with cls._client_lock:
            clients = list(cls._client_pool.values())
            cls._client_pool.clear()
        for client in clients:
            try:
                await client.aclose()
            except Exception:  # pragma: no cover - best effort cleanup
                pass

    async def _iter_events(
        self, response: httpx.Response
    ) -> AsyncGenerator[ServerSentEvent, None]:
        buffer: list[str] = []
        async for line in response.aiter_lines():
            if not line:
                if buffer:
                    yield self._parse_event(buffer)
                    buffer.clear()
                continue
            if line.startswith(":"):
                continue
            buffer.append(line)
        if buffer:
            yield self._parse_event(buffer)

    def _parse_event(self, lines: Iterable[str]) -> ServerSentEvent:
        event_name: Optional[str] = None
        event_id: Optional[str] = None
        data_lines: list[str] = []

        for line in lines:
            field, _, value = line.partition(":")
            value = value.lstrip(" ")
            if field == "event":
                event_name = value or None
            elif field == "data":
                data_lines.append(value)
            elif field == "id":
                event_id = value or None

        data = "\n".join(data_lines)
        return ServerSentEvent(
            data=data, event=event_name or "message", event_id=event_id
        )

    @staticmethod
    def _error_status(error: Any) -> int:
        if isinstance(error, Mapping):
            code = error.get("code")
            if isinstance(code, int) and 400 <= code < 600:
                return code
        return status.HTTP_502_BAD_GATEWAY

    @staticmethod
    def _error_message(error: Any) -> Any:
        if isinstance(error, Mapping):
            message = error.get("message")
            if isinstance(message, str) and message:
                return message
        return error

    @classmethod
    def _extract_error_detail(cls, raw: bytes) -> Any:
        if not raw:
            return "Gemini returned an empty error response."
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            text = raw.decode("utf-8", errors="ignore")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            return text
        # Error bodies sometimes arrive wrapped in a single-element list.
        if isinstance(payload, list) and len(payload) == 1:
            payload = payload[0]
        if isinstance(payload, dict):
            error = payload.get("error")
            if error:
                return cls._error_message(error)
            return payload
        return payload


__all__ = [
    "GeminiClient",
    "GeminiError",
    "MISSING_API_KEY_MESSAGE",
    "ProgressCallback",
    "ServerSentEvent",
    "consume_chunk",
]

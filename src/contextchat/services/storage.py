"""Best-effort key-value persistence for sessions and server settings.

Stores never raise on I/O problems: a failed write is logged and dropped, a
failed read returns ``None``. Callers treat the store as a local cache.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

_SAFE_KEY_RE = re.compile(r"[^A-Za-z0-9_.-]+")


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any | None:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryStore:
    """Process-local store, mainly for tests and ephemeral deployments."""

    def __init__(self, namespace: str = "contextchat") -> None:
        self._namespace = namespace
        self._data: dict[str, Any] = {}

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def get(self, key: str) -> Any | None:
        value = self._data.get(self._key(key))
        return copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        self._data[self._key(key)] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self._data.pop(self._key(key), None)


class JsonFileStore:
    """Persist each key as a JSON document under ``directory``."""

    def __init__(self, directory: Path, namespace: str = "contextchat") -> None:
        self._directory = directory
        self._namespace = namespace

    def path_for(self, key: str) -> Path:
        safe_key = _SAFE_KEY_RE.sub("_", key)
        return self._directory / f"{self._namespace}.{safe_key}.json"

    def get(self, key: str) -> Any | None:
        path = self.path_for(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Failed to read %s: %s", path, exc)
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring corrupt store file %s: %s", path, exc)
            return None

    def set(self, key: str, value: Any) -> None:
        path = self.path_for(key)
        try:
            serialized = json.dumps(value, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            logger.error("Failed to serialise %s for storage: %s", key, exc)
            return
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(serialized + "\n", encoding="utf-8")
            tmp_path.replace(path)
        except OSError as exc:
            logger.error("Failed to save %s: %s", path, exc)

    def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Failed to delete %s: %s", path, exc)


__all__ = ["JsonFileStore", "KeyValueStore", "MemoryStore"]

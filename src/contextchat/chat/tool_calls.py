"""Accumulate streamed function calls."""

from __future__ import annotations

from typing import Any, Mapping

from ..schemas.wire import FunctionCall


class FunctionCallTable:
    """Map of tool name to the latest function call seen in a stream.

    A later fragment for the same name replaces the earlier one in full;
    argument fragments are never merged. Iteration follows first-seen order.
    """

    def __init__(self) -> None:
        self._calls: dict[str, FunctionCall] = {}

    def record(self, call: FunctionCall) -> None:
        self._calls[call.name] = call

    def record_raw(self, raw: Any) -> bool:
        """Record a wire ``functionCall`` object; return False when it is unusable."""

        if not isinstance(raw, Mapping):
            return False
        name = raw.get("name")
        if not isinstance(name, str) or not name.strip():
            return False
        args = raw.get("args")
        self.record(FunctionCall(name=name, args=dict(args) if isinstance(args, Mapping) else {}))
        return True

    def __len__(self) -> int:
        return len(self._calls)

    def __bool__(self) -> bool:
        return bool(self._calls)

    def calls(self) -> list[FunctionCall]:
        return list(self._calls.values())


__all__ = ["FunctionCallTable"]

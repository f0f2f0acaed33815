"""Wire-level request shapes for the model API.

A turn carries an ordered list of parts. ``Part`` is a closed union of four
models; each one serialises to the single-key object the API expects
(``{"text": ...}``, ``{"inlineData": ...}``, ``{"functionCall": ...}`` or
``{"functionResponse": ...}``) when dumped with ``by_alias=True``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class InlineData(_WireModel):
    mime_type: str = Field(alias="mimeType")
    data: str


class FunctionCall(_WireModel):
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class FunctionResponse(_WireModel):
    name: str
    response: dict[str, Any]


class TextPart(_WireModel):
    text: str


class InlineDataPart(_WireModel):
    inline_data: InlineData = Field(alias="inlineData")


class FunctionCallPart(_WireModel):
    function_call: FunctionCall = Field(alias="functionCall")


class FunctionResponsePart(_WireModel):
    function_response: FunctionResponse = Field(alias="functionResponse")


Part = Union[TextPart, InlineDataPart, FunctionCallPart, FunctionResponsePart]


class Turn(_WireModel):
    """One role-tagged entry in the wire conversation; never empty."""

    role: Literal["user", "model"]
    parts: list[Part] = Field(min_length=1)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class FunctionDeclaration(_WireModel):
    name: str
    description: str
    parameters: Optional[dict[str, Any]] = None

    def to_wire(self) -> dict[str, Any]:
        exclude = {"parameters"} if self.parameters is None else None
        return self.model_dump(by_alias=True, exclude=exclude)


def text_part(text: str) -> TextPart:
    return TextPart(text=text)


def inline_data_part(mime_type: str, data: str) -> InlineDataPart:
    return InlineDataPart(inline_data=InlineData(mime_type=mime_type, data=data))


def function_call_part(call: FunctionCall) -> FunctionCallPart:
    return FunctionCallPart(function_call=call)


def function_response_part(name: str, result: Any) -> FunctionResponsePart:
    """Wrap a raw tool outcome under the ``result`` key."""

    return FunctionResponsePart(
        function_response=FunctionResponse(name=name, response={"result": result})
    )


@dataclass
class TurnResult:
    """Outcome of one streamed model invocation."""

    text: str
    tool_calls: list[FunctionCall] = field(default_factory=list)

    @property
    def is_tool_call_turn(self) -> bool:
        return bool(self.tool_calls)


__all__ = [
    "FunctionCall",
    "FunctionCallPart",
    "FunctionDeclaration",
    "FunctionResponse",
    "FunctionResponsePart",
    "InlineData",
    "InlineDataPart",
    "Part",
    "TextPart",
    "Turn",
    "TurnResult",
    "function_call_part",
    "function_response_part",
    "inline_data_part",
    "text_part",
]

"""Project chat history, context documents, and tools into wire turns."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from ..schemas.chat import Attachment, Message, Role
from ..schemas.mcp_servers import MCPServerConnection, tool_input_schema
from ..schemas.wire import (
    FunctionCall,
    FunctionDeclaration,
    Part,
    Turn,
    function_call_part,
    function_response_part,
    inline_data_part,
    text_part,
)

CONTEXT_INTRO_TEXT = (
    "Here are the documents/context I want you to use for this conversation:"
)
CONTEXT_ACK_TEXT = "Understood. I have processed the provided documents."


@dataclass
class FormattedConversation:
    turns: list[Turn]
    tool_declarations: Optional[list[FunctionDeclaration]]


def format_context_turns(documents: Sequence[Attachment]) -> list[Turn]:
    """Return the user/model turn pair injecting ``documents``, or nothing."""

    if not documents:
        return []
    parts: list[Part] = [text_part(CONTEXT_INTRO_TEXT)]
    for document in documents:
        parts.append(inline_data_part(document.mime_type, document.base64_data))
        parts.append(text_part(f"\n[File: {document.name}]\n"))
    return [
        Turn(role="user", parts=parts),
        Turn(role="model", parts=[text_part(CONTEXT_ACK_TEXT)]),
    ]


def format_message(message: Message) -> Turn | None:
    parts: list[Part] = [
        inline_data_part(attachment.mime_type, attachment.base64_data)
        for attachment in message.attachments
    ]
    if message.text:
        parts.append(text_part(message.text))
    for call in message.tool_calls or []:
        parts.append(function_call_part(FunctionCall(name=call.name, args=call.args)))
    for result in message.tool_results or []:
        parts.append(function_response_part(result.name, result.result))

    # Placeholder messages created before any text streamed in have no parts.
    if not parts:
        return None
    role = "user" if message.role is Role.USER else "model"
    return Turn(role=role, parts=parts)


def format_history(
    messages: Sequence[Message],
    context_documents: Sequence[Attachment] = (),
) -> list[Turn]:
    turns = format_context_turns(context_documents)
    for message in messages:
        turn = format_message(message)
        if turn is not None:
            turns.append(turn)
    return turns


def format_tools(
    servers: Sequence[MCPServerConnection],
) -> Optional[list[FunctionDeclaration]]:
    """Flatten tools of connected servers; ``None`` when there are none."""

    declarations: list[FunctionDeclaration] = []
    for server in servers:
        if not server.is_connected:
            continue
        for tool in server.tools:
            declarations.append(
                FunctionDeclaration(
                    name=tool.name,
                    description=tool.description or f"Tool from {server.name}",
                    parameters=tool_input_schema(tool),
                )
            )
    return declarations or None


def format_conversation(
    messages: Sequence[Message],
    context_documents: Sequence[Attachment] = (),
    servers: Sequence[MCPServerConnection] = (),
) -> FormattedConversation:
    return FormattedConversation(
        turns=format_history(messages, context_documents),
        tool_declarations=format_tools(servers),
    )


__all__ = [
    "CONTEXT_ACK_TEXT",
    "CONTEXT_INTRO_TEXT",
    "FormattedConversation",
    "format_context_turns",
    "format_conversation",
    "format_history",
    "format_message",
    "format_tools",
]

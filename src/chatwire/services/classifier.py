"""Classify engine events into wire-protocol stream chunks."""

from __future__ import annotations

import json
from typing import Any

from ..models import StreamChunk, ToolCall
from .engine_events import (
    MESSAGES_MODE,
    EngineAIChunk,
    EngineEvent,
    EngineMessageKind,
    EngineToolMessage,
    adapt_event,
)

UNKNOWN_TOOL_NAME = "unknown"


def _classify_ai_chunk(message: EngineAIChunk) -> list[StreamChunk]:
    chunks: list[StreamChunk] = []
    content = message.content

    if isinstance(content, str):
        if content:
            chunks.append(StreamChunk.token(content, message.id))
    else:
        for index, item in enumerate(content):
            if isinstance(item, str):
                if item:
                    chunks.append(StreamChunk.token(item, message.id))
                continue
            if item.text:
                chunks.append(StreamChunk.token(item.text, message.id))
            if item.function_call:
                tool_call = ToolCall(
                    name=item.function_call.name,
                    args=item.function_call.args,
                    # Content-embedded calls carry no id of their own
                    id=f"{message.id or 'call'}-{index}",
                )
                chunks.append(StreamChunk.for_tool_call(tool_call, message.id))

    for tool_call in message.tool_calls:
        chunks.append(StreamChunk.for_tool_call(tool_call, message.id))
    return chunks


def _serialize_tool_content(content: Any) -> str:
    if isinstance(content, str):
        return content
    return json.dumps(content, ensure_ascii=False, separators=(",", ":"))


def _classify_tool_message(message: EngineToolMessage) -> list[StreamChunk]:
    return [
        StreamChunk.for_tool_result(
            name=message.name or UNKNOWN_TOOL_NAME,
            content=_serialize_tool_content(message.content),
            message_id=message.id,
        )
    ]


def classify(event: EngineEvent) -> list[StreamChunk]:
    """Map one typed engine event to zero or more stream chunks.

    Content-derived tokens and tool calls come first, followed by one tool call
    per entry of the message's ``tool_calls`` list. Modes other than
    ``messages`` produce nothing.
    """
    if event.mode != MESSAGES_MODE or event.message is None:
        return []
    message = event.message
    if message.kind is EngineMessageKind.AI_CHUNK:
        return _classify_ai_chunk(message)
    if message.kind is EngineMessageKind.TOOL:
        return _classify_tool_message(message)
    return []


def classify_event(raw: Any) -> list[StreamChunk]:
    """Adapt a raw ``(mode, payload)`` engine event and classify it."""
    event = adapt_event(raw)
    if event is None:
        return []
    return classify(event)

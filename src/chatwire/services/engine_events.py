"""Typed boundary between the agent engine and the chunk classifier.

Engines emit loosely shaped ``(mode, payload)`` tuples where ``payload`` is
``(message, metadata)``. Messages may be dicts, engine-native objects, or the
typed models below. ``adapt_event`` validates that shape once and resolves the
message kind into ``EngineMessageKind``; downstream code only sees typed data.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..models import ToolCall

logger = logging.getLogger(__name__)

MESSAGES_MODE = "messages"


class EngineMessageKind(str, Enum):
    AI_CHUNK = "AIMessageChunk"
    TOOL = "ToolMessage"


class FunctionCall(BaseModel):
    name: str = ""
    args: dict[str, Any] = Field(default_factory=dict)


class ContentItem(BaseModel):
    """One element of a structured assistant content list."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    text: str | None = None
    function_call: FunctionCall | None = Field(default=None, alias="functionCall")


class EngineAIChunk(BaseModel):
    kind: Literal[EngineMessageKind.AI_CHUNK] = EngineMessageKind.AI_CHUNK
    id: str | None = None
    content: str | list[str | ContentItem] = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)


class EngineToolMessage(BaseModel):
    kind: Literal[EngineMessageKind.TOOL] = EngineMessageKind.TOOL
    id: str | None = None
    name: str | None = None
    content: Any = ""
    tool_call_id: str | None = None


EngineMessage = Union[EngineAIChunk, EngineToolMessage]


class EngineEvent(BaseModel):
    mode: str
    message: EngineMessage | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


def _get(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def _resolve_kind(message: Any) -> EngineMessageKind | None:
    """Map an engine message onto its discriminant.

    Dicts carry a ``kind`` key; engine-native objects are recognized by their
    class name.
    """
    if isinstance(message, (EngineAIChunk, EngineToolMessage)):
        return message.kind
    if isinstance(message, Mapping):
        raw_kind = message.get("kind")
    else:
        raw_kind = getattr(message, "kind", None) or type(message).__name__
    if isinstance(raw_kind, EngineMessageKind):
        return raw_kind
    try:
        return EngineMessageKind(raw_kind)
    except ValueError:
        return None


def _normalize_content(content: Any) -> str | list[str | dict[str, Any]]:
    if isinstance(content, str):
        return content
    if not _is_sequence(content):
        return ""
    items: list[str | dict[str, Any]] = []
    for item in content:
        if isinstance(item, str):
            items.append(item)
        elif isinstance(item, Mapping):
            entry: dict[str, Any] = {}
            text = item.get("text")
            if isinstance(text, str):
                entry["text"] = text
            fc = item.get("functionCall")
            if isinstance(fc, Mapping) and fc:
                entry["functionCall"] = {
                    "name": str(fc.get("name") or ""),
                    "args": fc.get("args") if isinstance(fc.get("args"), Mapping) else {},
                }
            items.append(entry)
        else:
            # Keeps list positions, which content tool-call ids are derived from
            items.append({})
    return items


def _normalize_tool_calls(tool_calls: Any) -> list[dict[str, Any]]:
    if not _is_sequence(tool_calls):
        return []
    normalized = []
    for tc in tool_calls:
        args = _get(tc, "args")
        normalized.append(
            {
                "name": str(_get(tc, "name") or ""),
                "args": args if isinstance(args, Mapping) else {},
                "id": str(_get(tc, "id") or ""),
            }
        )
    return normalized


def _adapt_message(message: Any) -> EngineMessage | None:
    kind = _resolve_kind(message)
    if kind is None:
        return None
    if isinstance(message, (EngineAIChunk, EngineToolMessage)):
        return message
    if kind is EngineMessageKind.AI_CHUNK:
        return EngineAIChunk(
            id=_get(message, "id"),
            content=_normalize_content(_get(message, "content", "")),
            tool_calls=_normalize_tool_calls(_get(message, "tool_calls")),
        )
    return EngineToolMessage(
        id=_get(message, "id"),
        name=_get(message, "name"),
        content=_get(message, "content", ""),
        tool_call_id=_get(message, "tool_call_id"),
    )


def adapt_event(raw: Any) -> EngineEvent | None:
    """Validate one raw engine event into an ``EngineEvent``.

    Returns None for anything that is not a ``(mode, payload)`` pair. Events in
    modes other than ``messages``, or whose message is missing or of an unknown
    kind, come back with ``message=None``.
    """
    if isinstance(raw, EngineEvent):
        return raw
    if not _is_sequence(raw) or len(raw) != 2:
        return None
    mode, payload = raw
    if not isinstance(mode, str):
        return None
    if mode != MESSAGES_MODE:
        return EngineEvent(mode=mode)
    if not _is_sequence(payload) or len(payload) < 2 or payload[0] is None:
        return EngineEvent(mode=mode)

    metadata = payload[1] if isinstance(payload[1], Mapping) else {}
    try:
        message = _adapt_message(payload[0])
    except ValidationError as e:
        logger.debug("Ignoring malformed engine message: %s", e)
        message = None
    return EngineEvent(mode=mode, message=message, metadata=dict(metadata))

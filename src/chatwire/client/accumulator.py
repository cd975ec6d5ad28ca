"""Client-side reconstruction of conversation messages from stream chunks.

``apply_chunk`` is a pure transition over an immutable ``AccumulatorState``.
``MessageAccumulator`` holds the current state for one thread view and
publishes every new message list to its subscribers as a whole tuple, so
consumers never observe a list mid-transition.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, replace
from typing import Callable, Sequence

from ..models import (
    AIMessage,
    ConversationMessage,
    ErrorMessage,
    FileAttachment,
    HumanMessage,
    StreamChunk,
    ToolMessage,
)

logger = logging.getLogger(__name__)

ERROR_GLYPH = "⚠️"
DEFAULT_ERROR_TEXT = "An error occurred"

IdFactory = Callable[[str], str]
Listener = Callable[[tuple[ConversationMessage, ...]], None]


def generate_id(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


@dataclass(frozen=True)
class AccumulatorState:
    current_message_id: str | None = None
    accumulated_content: str = ""
    messages: tuple[ConversationMessage, ...] = ()


def reset(state: AccumulatorState) -> AccumulatorState:
    """Close the accumulation window, keeping the messages."""
    return replace(state, current_message_id=None, accumulated_content="")


def _find_ai(messages: Sequence[ConversationMessage], message_id: str) -> int:
    # Newest first; ids can repeat across accumulation windows
    for idx in range(len(messages) - 1, -1, -1):
        msg = messages[idx]
        if isinstance(msg, AIMessage) and msg.id == message_id:
            return idx
    return -1


def _replace_at(
    messages: tuple[ConversationMessage, ...], idx: int, msg: ConversationMessage
) -> tuple[ConversationMessage, ...]:
    return messages[:idx] + (msg,) + messages[idx + 1 :]


def _apply_token(state: AccumulatorState, chunk: StreamChunk, id_factory: IdFactory) -> AccumulatorState:
    content = state.accumulated_content + (chunk.content or "")

    if state.current_message_id is None:
        message_id = chunk.message_id or id_factory("ai")
        return AccumulatorState(
            current_message_id=message_id,
            accumulated_content=content,
            messages=state.messages + (AIMessage(id=message_id, content=content),),
        )

    idx = _find_ai(state.messages, state.current_message_id)
    if idx == -1:
        logger.debug("Dropping token for unknown message %s", state.current_message_id)
        return state
    updated = state.messages[idx].model_copy(update={"content": content})
    return replace(state, accumulated_content=content, messages=_replace_at(state.messages, idx, updated))


def _apply_tool_call(state: AccumulatorState, chunk: StreamChunk) -> AccumulatorState:
    if state.current_message_id is None or chunk.tool_call is None:
        return state
    idx = _find_ai(state.messages, state.current_message_id)
    if idx == -1:
        logger.debug("Dropping tool_call for unknown message %s", state.current_message_id)
        return state

    msg = state.messages[idx]
    if any(tc.id == chunk.tool_call.id for tc in msg.tool_calls):
        return state
    updated = msg.model_copy(update={"tool_calls": msg.tool_calls + (chunk.tool_call,)})
    return replace(state, messages=_replace_at(state.messages, idx, updated))


def apply_chunk(
    state: AccumulatorState,
    chunk: StreamChunk,
    id_factory: IdFactory = generate_id,
) -> AccumulatorState:
    """Return the state after applying one decoded chunk."""
    if chunk.type == "token":
        return _apply_token(state, chunk, id_factory)

    if chunk.type == "tool_call":
        return _apply_tool_call(state, chunk)

    if chunk.type == "tool_result":
        if chunk.tool_result is None:
            return state
        tool_msg = ToolMessage(
            id=chunk.message_id or id_factory("tool"),
            content=chunk.tool_result.content,
            name=chunk.tool_result.name,
            status="success",
            tool_call_id=chunk.message_id or "",
        )
        return reset(replace(state, messages=state.messages + (tool_msg,)))

    if chunk.type == "done":
        return reset(state)

    if chunk.type == "error":
        error_msg = ErrorMessage(id=id_factory("err"), content=f"{ERROR_GLYPH} {chunk.error or DEFAULT_ERROR_TEXT}")
        return reset(replace(state, messages=state.messages + (error_msg,)))

    return state


def add_user_message(
    state: AccumulatorState,
    content: str,
    attachments: Sequence[FileAttachment] = (),
    id_factory: IdFactory = generate_id,
) -> AccumulatorState:
    msg = HumanMessage(id=id_factory("temp"), content=content, attachments=tuple(attachments))
    return replace(state, messages=state.messages + (msg,))


def load_history(messages: Sequence[ConversationMessage]) -> AccumulatorState:
    return AccumulatorState(messages=tuple(messages))


class MessageAccumulator:
    """Owns the message list for one thread view."""

    def __init__(self, id_factory: IdFactory = generate_id) -> None:
        self._state = AccumulatorState()
        self._id_factory = id_factory
        self._listeners: list[Listener] = []

    @property
    def state(self) -> AccumulatorState:
        return self._state

    @property
    def messages(self) -> tuple[ConversationMessage, ...]:
        return self._state.messages

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener for message list snapshots; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def apply(self, chunk: StreamChunk) -> None:
        self._set(apply_chunk(self._state, chunk, self._id_factory))

    def add_user_message(self, content: str, attachments: Sequence[FileAttachment] = ()) -> None:
        self._set(add_user_message(self._state, content, attachments, self._id_factory))

    def load_history(self, messages: Sequence[ConversationMessage]) -> None:
        self._set(load_history(messages))

    def reset(self) -> None:
        self._set(reset(self._state))

    def _set(self, state: AccumulatorState) -> None:
        changed = state.messages is not self._state.messages
        self._state = state
        if changed:
            for listener in list(self._listeners):
                listener(state.messages)

"""Encode classified engine output as Server-Sent Event frames."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncGenerator, AsyncIterable

from sse_starlette.sse import ServerSentEvent

from ..models import StreamChunk
from .classifier import classify_event

logger = logging.getLogger(__name__)

SSE_HEADERS: dict[str, str] = {
    "Content-Type": "text/event-stream; charset=utf-8",
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

DEFAULT_ERROR_MESSAGE = "Stream error"


def _frame(**fields: Any) -> bytes:
    return ServerSentEvent(sep="\n", **fields).encode()


# Leading comment frame; defeats proxy buffering and carries no payload.
CONNECTED_FRAME = _frame(comment="connected")


def encode_chunk(chunk: StreamChunk) -> bytes:
    """Serialize one chunk as a ``data:`` frame."""
    return _frame(data=chunk.to_json())


def done_frames() -> list[bytes]:
    return [encode_chunk(StreamChunk.done()), _frame(event="done", data="{}")]


def error_frames(message: str, thread_id: str) -> list[bytes]:
    payload = json.dumps({"message": message, "threadId": thread_id}, ensure_ascii=False)
    return [encode_chunk(StreamChunk.failure(message)), _frame(event="error", data=payload)]


async def encode_stream(events: AsyncIterable[Any], thread_id: str) -> AsyncGenerator[bytes, None]:
    """Drain engine events through the classifier and yield SSE frames.

    The stream always ends with either the done pair or the error pair. A
    failure while draining is reported once and never retried.
    """
    yield CONNECTED_FRAME
    try:
        async for raw in events:
            for chunk in classify_event(raw):
                yield encode_chunk(chunk)
        for frame in done_frames():
            yield frame
    except Exception as e:
        logger.exception("Agent stream failed for thread %s", thread_id)
        for frame in error_frames(str(e) or DEFAULT_ERROR_MESSAGE, thread_id):
            yield frame
    finally:
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()

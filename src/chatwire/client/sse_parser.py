"""Incremental parser for the agent SSE stream.

Bytes arrive at arbitrary boundaries. They are decoded with an incremental
UTF-8 decoder and split on ``\\n``; only complete lines are classified, the
trailing partial line waits for the next ``feed`` call.
"""

from __future__ import annotations

import codecs
import enum
import json
import logging
from dataclasses import dataclass

from pydantic import ValidationError

from ..models import StreamChunk

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "


class FrameKind(enum.Enum):
    CHUNK = "chunk"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class Frame:
    kind: FrameKind
    chunk: StreamChunk | None = None


def decode_chunk(payload: str) -> StreamChunk | None:
    """Decode a ``data:`` payload; None for empty or malformed payloads."""
    if not payload or payload == "{}":
        return None
    try:
        data = json.loads(payload)
        if not isinstance(data, dict) or not data:
            return None
        return StreamChunk.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        logger.debug("Dropping malformed frame: %s", e)
        return None


class SSEFrameParser:
    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, data: bytes) -> list[Frame]:
        """Consume one buffer of bytes and return the frames it completed."""
        self._buffer += self._decoder.decode(data)
        *lines, self._buffer = self._buffer.split("\n")

        frames: list[Frame] = []
        for line in lines:
            frame = self._parse_line(line)
            if frame is not None:
                frames.append(frame)
        return frames

    @staticmethod
    def _parse_line(line: str) -> Frame | None:
        if not line or line.startswith(":"):
            return None
        if line.startswith(DATA_PREFIX):
            chunk = decode_chunk(line[len(DATA_PREFIX) :])
            return Frame(FrameKind.CHUNK, chunk) if chunk is not None else None
        if line.startswith("event: done"):
            return Frame(FrameKind.DONE)
        if line.startswith("event: error"):
            return Frame(FrameKind.ERROR)
        return None

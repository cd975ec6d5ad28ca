"""Client side of the agent stream: frame parsing, accumulation and sessions."""

from .accumulator import AccumulatorState, MessageAccumulator, apply_chunk
from .session import ChatThread, SessionState, StreamSession, StreamTransportError
from .sse_parser import Frame, FrameKind, SSEFrameParser

__all__ = [
    "AccumulatorState",
    "ChatThread",
    "Frame",
    "FrameKind",
    "MessageAccumulator",
    "SSEFrameParser",
    "SessionState",
    "StreamSession",
    "StreamTransportError",
    "apply_chunk",
]

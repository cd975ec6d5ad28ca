"""Agent streaming endpoint with SSE.

Query parameters:
  content          user message text
  threadId         conversation thread id
  model, provider  optional model override
  tools            optional comma-separated list of enabled tools
  allowTool        "allow" or "deny" to resume an interrupted tool call
  approveAllTools  "true" to skip tool approval
  attachments      optional JSON array of file attachments

Each classified chunk is sent as a ``data:`` frame; the stream ends with a
``done`` chunk plus ``event: done``, or an ``error`` chunk plus ``event: error``.
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Query, Request
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse

from ..models import FileAttachment, MessageOptions
from ..services.agent_service import StreamRequest, stream_events
from ..services.encoder import SSE_HEADERS, encode_stream

logger = logging.getLogger(__name__)

router = APIRouter(tags=["agent"])


def _parse_tools(raw: str) -> list[str] | None:
    tools = [t.strip() for t in raw.split(",") if t.strip()]
    return tools or None


def _parse_attachments(raw: str) -> list[FileAttachment]:
    if not raw:
        return []
    try:
        items = json.loads(raw)
        if not isinstance(items, list):
            raise ValueError("attachments must be a JSON array")
        return [FileAttachment.model_validate(item) for item in items]
    except (ValueError, ValidationError) as e:
        logger.warning("Failed to parse attachments: %s", e)
        return []


@router.get("/agent/stream")
async def stream_agent(
    request: Request,
    content: str = "",
    thread_id: str = Query("unknown", alias="threadId"),
    model: str | None = None,
    provider: str | None = None,
    tools: str = "",
    allow_tool: str | None = Query(None, alias="allowTool"),
    approve_all_tools: str | None = Query(None, alias="approveAllTools"),
    attachments: str = "",
) -> EventSourceResponse:
    options = MessageOptions(
        model=model or None,
        provider=provider or None,
        tools=_parse_tools(tools),
        allow_tool=allow_tool if allow_tool in ("allow", "deny") else None,
        approve_all_tools=None if approve_all_tools is None else approve_all_tools == "true",
        attachments=_parse_attachments(attachments),
    )
    stream_request = StreamRequest(thread_id=thread_id or "unknown", user_text=content, options=options)
    events = stream_events(
        stream_request,
        db=request.app.state.db,
        engine_factory=request.app.state.engine_factory,
    )
    return EventSourceResponse(encode_stream(events, stream_request.thread_id), headers=SSE_HEADERS, sep="\n")

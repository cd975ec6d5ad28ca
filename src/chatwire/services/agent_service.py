"""Entry point from the HTTP layer into the agent engine."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, AsyncIterator, Callable, Protocol

from ..config import PROVIDERS, AppConfig, resolve_provider
from ..db import ThreadSafeConnection
from ..models import FileAttachment, MessageOptions
from ..tools import ToolRegistry
from . import storage
from .agent import Agent, ResumeCommand
from .ai_service import AIService

logger = logging.getLogger(__name__)


class Engine(Protocol):
    def stream(self, inputs: dict[str, Any] | ResumeCommand, *, thread_id: str) -> AsyncIterator[Any]: ...


EngineFactory = Callable[[MessageOptions], Engine]


@dataclass
class StreamRequest:
    """One user turn (or approval decision) bound to a thread."""

    thread_id: str
    user_text: str = ""
    options: MessageOptions = field(default_factory=MessageOptions)


def attachment_parts(attachments: list[FileAttachment]) -> list[dict[str, Any]]:
    """Multimodal content parts for uploaded files: images inline, others as a named link."""
    parts: list[dict[str, Any]] = []
    for att in attachments:
        if att.type.startswith("image/"):
            parts.append({"type": "image_url", "image_url": {"url": att.url}})
        else:
            parts.append({"type": "text", "text": f"[Attached file: {att.name}]({att.url})"})
    return parts


def build_inputs(request: StreamRequest) -> dict[str, Any] | ResumeCommand:
    opts = request.options
    if opts.allow_tool:
        return ResumeCommand(action="continue" if opts.allow_tool == "allow" else "update")

    content: Any = request.user_text
    if opts.attachments:
        content = [{"type": "text", "text": request.user_text}, *attachment_parts(opts.attachments)]
    return {"messages": [{"role": "user", "content": content}]}


async def stream_events(
    request: StreamRequest,
    *,
    db: ThreadSafeConnection,
    engine_factory: EngineFactory,
) -> AsyncGenerator[Any, None]:
    """Ensure the thread exists, then yield the engine's raw events for this turn."""
    storage.ensure_thread(db, request.thread_id, request.user_text)
    inputs = build_inputs(request)
    engine = engine_factory(request.options)
    logger.debug("Streaming thread %s (resume=%s)", request.thread_id, isinstance(inputs, ResumeCommand))
    async for event in engine.stream(inputs, thread_id=request.thread_id):
        yield event


def build_engine_factory(config: AppConfig, db: ThreadSafeConnection, tools: ToolRegistry) -> EngineFactory:
    """Engine factory honoring per-request model, provider, tool and approval overrides."""

    def factory(opts: MessageOptions) -> Agent:
        ai_config = copy.copy(config.ai)
        if opts.provider and opts.provider != ai_config.provider:
            if opts.provider not in PROVIDERS:
                raise ValueError(f"Unknown AI provider: {opts.provider}")
            ai_config.provider = opts.provider
            ai_config.base_url, ai_config.api_key = resolve_provider(opts.provider)
        if opts.model:
            ai_config.model = opts.model
        approve_all = config.agent.approve_all_tools if opts.approve_all_tools is None else opts.approve_all_tools
        return Agent(
            AIService(ai_config),
            tools,
            db,
            enabled_tools=opts.tools,
            approve_all_tools=approve_all,
            max_iterations=config.agent.max_tool_iterations,
        )

    return factory

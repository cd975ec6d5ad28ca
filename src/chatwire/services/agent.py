"""Tool-calling agent with human-in-the-loop approval.

The agent streams ``("messages", (message, metadata))`` events. Without
``approve_all_tools`` it stops after the model requests tool calls and
checkpoints them as pending; a later ``ResumeCommand`` runs or refuses them and
continues the loop.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Literal

from ..db import ThreadSafeConnection
from ..models import ToolCall
from ..tools import ToolRegistry
from . import storage
from .ai_service import AIService
from .engine_events import MESSAGES_MODE, EngineAIChunk, EngineToolMessage

logger = logging.getLogger(__name__)

DENIED_RESULT = {"error": "Tool call denied by user"}

EngineOutput = tuple[str, tuple[Any, dict[str, Any]]]


class AgentError(Exception):
    """The model call failed or the loop could not make progress."""


@dataclass
class ResumeCommand:
    """Resume an interrupted run: ``continue`` runs the pending tool calls, ``update`` refuses them."""

    action: Literal["continue", "update"]


def _api_messages(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Strip the bookkeeping keys the completions API does not accept."""
    result = []
    for msg in messages:
        private = ("id", "name") if msg.get("role") == "tool" else ("id",)
        result.append({k: v for k, v in msg.items() if k not in private})
    return result


class Agent:
    def __init__(
        self,
        ai_service: AIService,
        tools: ToolRegistry,
        db: ThreadSafeConnection,
        *,
        enabled_tools: list[str] | None = None,
        approve_all_tools: bool = False,
        max_iterations: int = 50,
    ) -> None:
        self.ai_service = ai_service
        self.tools = tools
        self.db = db
        self.enabled_tools = enabled_tools
        self.approve_all_tools = approve_all_tools
        self.max_iterations = max_iterations

    async def stream(
        self, inputs: dict[str, Any] | ResumeCommand, *, thread_id: str
    ) -> AsyncGenerator[EngineOutput, None]:
        checkpoint = storage.load_checkpoint(self.db, thread_id)
        messages = checkpoint.messages
        metadata = {"thread_id": thread_id}

        if isinstance(inputs, ResumeCommand):
            if not checkpoint.pending_tool_calls:
                raise ValueError("No tool call is awaiting approval")
            approved = inputs.action == "continue"
            logger.info("Resuming thread %s (%s)", thread_id, "approved" if approved else "denied")
            async for event in self._run_tools(checkpoint.pending_tool_calls, messages, metadata, approved):
                yield event
        else:
            if checkpoint.pending_tool_calls:
                # A new message supersedes the pending approval
                async for event in self._run_tools(checkpoint.pending_tool_calls, messages, metadata, False):
                    yield event
            for msg in inputs.get("messages", []):
                messages.append({"id": f"human-{uuid.uuid4().hex[:12]}", **msg})
        storage.save_checkpoint(self.db, thread_id, messages)

        tools = self.tools.get_openai_tools(self.enabled_tools) or None
        for _ in range(self.max_iterations):
            message_id = f"run-{uuid.uuid4()}"
            content = ""
            tool_calls: list[ToolCall] = []

            async for event in self.ai_service.stream_chat(_api_messages(messages), tools=tools):
                etype = event["event"]
                data = event["data"]
                if etype == "token":
                    content += data["content"]
                    yield MESSAGES_MODE, (EngineAIChunk(id=message_id, content=data["content"]), metadata)
                elif etype == "tool_call":
                    tool_calls.append(ToolCall(name=data["function_name"], args=data["arguments"], id=data["id"]))
                elif etype == "error":
                    storage.save_checkpoint(self.db, thread_id, messages)
                    raise AgentError(data.get("message") or "AI request failed")
                elif etype == "done":
                    break

            assistant: dict[str, Any] = {"id": message_id, "role": "assistant", "content": content}
            if tool_calls:
                yield MESSAGES_MODE, (EngineAIChunk(id=message_id, content="", tool_calls=tool_calls), metadata)
                assistant["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.name, "arguments": json.dumps(tc.args)},
                    }
                    for tc in tool_calls
                ]
            messages.append(assistant)

            if not tool_calls:
                storage.save_checkpoint(self.db, thread_id, messages)
                return

            if not self.approve_all_tools:
                logger.info("Thread %s waiting for approval of %d tool call(s)", thread_id, len(tool_calls))
                storage.save_checkpoint(self.db, thread_id, messages, tool_calls)
                return

            async for event in self._run_tools(tool_calls, messages, metadata, True):
                yield event
            storage.save_checkpoint(self.db, thread_id, messages)

        raise AgentError(f"Max iterations ({self.max_iterations}) reached")

    async def _run_tools(
        self,
        tool_calls: list[ToolCall],
        messages: list[dict[str, Any]],
        metadata: dict[str, Any],
        approved: bool,
    ) -> AsyncGenerator[EngineOutput, None]:
        for tc in tool_calls:
            if not approved:
                result: Any = DENIED_RESULT
            else:
                try:
                    result = await self.tools.call_tool(tc.name, tc.args)
                except Exception as e:
                    logger.warning("Tool %s failed: %s", tc.name, e)
                    result = {"error": str(e)}
            message_id = f"tool-{uuid.uuid4().hex[:12]}"
            messages.append(
                {
                    "id": message_id,
                    "role": "tool",
                    "tool_call_id": tc.id,
                    "name": tc.name,
                    "content": result if isinstance(result, str) else json.dumps(result),
                }
            )
            yield MESSAGES_MODE, (
                EngineToolMessage(id=message_id, name=tc.name, content=result, tool_call_id=tc.id),
                metadata,
            )

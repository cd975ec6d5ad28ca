"""Interactive CLI chat against a running chatwire server."""

from __future__ import annotations

import asyncio
import logging
import platform
import signal
import uuid
from typing import Any

import httpx
from prompt_toolkit import PromptSession
from rich.markup import escape

from ..client import ChatThread
from ..config import AppConfig
from ..models import AIMessage, ConversationMessage, MessageOptions, ToolCall, ToolMessage
from . import renderer

logger = logging.getLogger(__name__)

_IS_WINDOWS = platform.system() == "Windows"


def _add_signal_handler(loop: asyncio.AbstractEventLoop, sig: int, callback: Any) -> bool:
    """Add a signal handler, returning False on Windows where it's unsupported."""
    if _IS_WINDOWS:
        return False
    try:
        loop.add_signal_handler(sig, callback)
        return True
    except NotImplementedError:
        return False


def _remove_signal_handler(loop: asyncio.AbstractEventLoop, sig: int) -> None:
    if _IS_WINDOWS:
        return
    try:
        loop.remove_signal_handler(sig)
    except NotImplementedError:
        pass


def pending_tool_calls(messages: tuple[ConversationMessage, ...]) -> list[ToolCall]:
    """Tool calls of the last assistant message that no tool result has followed yet."""
    for msg in reversed(messages):
        if isinstance(msg, ToolMessage):
            return []
        if isinstance(msg, AIMessage) and msg.tool_calls:
            return list(msg.tool_calls)
    return []


async def _ask_approval(session: PromptSession, tool_calls: list[ToolCall]) -> str:
    names = ", ".join(tc.name for tc in tool_calls)
    renderer.console.print(f"\n[yellow bold]Approval required:[/yellow bold] {escape(names)}")
    try:
        answer = await session.prompt_async("  [y] Allow  [n] Deny: ")
    except (EOFError, KeyboardInterrupt):
        return "deny"
    return "allow" if answer.strip().lower() in ("y", "yes") else "deny"


async def _run_turn(thread: ChatThread, prompt_session: PromptSession, text: str, options: MessageOptions) -> None:
    """Send one message and resolve any tool approvals it triggers."""
    loop = asyncio.get_running_loop()
    _add_signal_handler(loop, signal.SIGINT, thread.cancel)
    try:
        start = len(thread.messages) + 1
        renderer.start_thinking()
        await thread.send_message(text, options)
        while True:
            elapsed = renderer.stop_thinking()
            renderer.render_messages(thread.messages[start:])
            renderer.render_elapsed(elapsed)
            if thread.send_error:
                renderer.render_error(str(thread.send_error))
                return

            # Tool calls streamed before any text have no message to attach to;
            # the checkpointed history always carries them.
            try:
                await thread.refetch_messages()
            except httpx.HTTPError as e:
                renderer.render_error(f"Could not load history: {e}")
                return
            pending = pending_tool_calls(thread.messages)
            if not pending:
                return
            action = await _ask_approval(prompt_session, pending)
            start = len(thread.messages)
            renderer.start_thinking()
            await thread.approve_tool_execution(pending[0].id, action)
    finally:
        renderer.stop_thinking()
        _remove_signal_handler(loop, signal.SIGINT)


async def run_cli(
    config: AppConfig,
    prompt: str | None = None,
    thread_id: str | None = None,
    approve_all: bool = False,
) -> None:
    """Run a one-shot prompt, or a REPL when no prompt is given."""
    thread_id = thread_id or f"cli-{uuid.uuid4().hex[:12]}"
    options = MessageOptions(approve_all_tools=True) if approve_all else MessageOptions()
    prompt_session: PromptSession = PromptSession()

    async with ChatThread(thread_id, settings=config.client) as thread:
        unsubscribe = thread.accumulator.subscribe(renderer.update_thinking)
        try:
            if prompt:
                await _run_turn(thread, prompt_session, prompt, options)
                return

            renderer.render_welcome(config.ai.model, thread_id, config.client.stream_url)
            while True:
                try:
                    text = (await prompt_session.prompt_async("> ")).strip()
                except KeyboardInterrupt:
                    continue
                except EOFError:
                    break
                if not text:
                    continue
                if text in ("/quit", "/exit"):
                    break
                if text == "/help":
                    renderer.render_help()
                    continue
                if text == "/history":
                    try:
                        await thread.refetch_messages()
                    except httpx.HTTPError as e:
                        renderer.render_error(f"Could not load history: {e}")
                        continue
                    renderer.render_messages(thread.messages)
                    continue
                await _run_turn(thread, prompt_session, text, options)
        finally:
            unsubscribe()

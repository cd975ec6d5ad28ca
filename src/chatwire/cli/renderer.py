"""Rich-based terminal output for the CLI chat."""

from __future__ import annotations

import json
import time
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.padding import Padding
from rich.status import Status
from rich.text import Text

from ..models import AIMessage, ConversationMessage, ErrorMessage, HumanMessage, ToolCall, ToolMessage

console = Console(stderr=True)
# Separate console for stdout markdown rendering (not stderr)
_stdout_console = Console()

# Spinner state
_thinking_start: float = 0
_spinner: Status | None = None
_last_spinner_update: float = 0


def start_thinking() -> None:
    """Show a spinner with timer while the agent is streaming."""
    global _thinking_start, _spinner, _last_spinner_update
    _thinking_start = time.monotonic()
    _last_spinner_update = _thinking_start
    _spinner = Status("Thinking...", console=console, spinner="dots")
    _spinner.start()


def update_thinking(_messages: Any = None) -> None:
    """Update the spinner timer (throttled to once per second).

    Accepts and ignores a message snapshot so it can be used as an
    accumulator listener.
    """
    global _last_spinner_update
    if _spinner:
        now = time.monotonic()
        if now - _last_spinner_update >= 1.0:
            elapsed = now - _thinking_start
            _spinner.update(f"Thinking... ({elapsed:.0f}s)")
            _last_spinner_update = now


def stop_thinking() -> float:
    """Stop the spinner, return elapsed seconds."""
    global _spinner
    elapsed = 0.0
    if _spinner:
        elapsed = time.monotonic() - _thinking_start
        _spinner.stop()
        _spinner = None
    return elapsed


def _truncate(value: str, limit: int = 200) -> str:
    return value[:limit] + "..." if len(value) > limit else value


def render_tool_call(tool_call: ToolCall) -> None:
    args_str = _truncate(json.dumps(tool_call.args, indent=None, default=str))
    console.print(f"\n  [grey62]> {escape(tool_call.name)}({escape(args_str)})[/grey62]")


def render_tool_result(message: ToolMessage) -> None:
    style = "green" if message.status == "success" else "red"
    output = message.content
    try:
        parsed = json.loads(output)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict) and "error" in parsed:
        style = "red"
        output = str(parsed["error"])
    console.print(Text(f"  < {message.name}: {_truncate(output)}", style=style))


def render_ai_message(message: AIMessage) -> None:
    if message.content.strip():
        _stdout_console.print(Padding(Markdown(message.content), (0, 2, 0, 2)))
    for tc in message.tool_calls:
        render_tool_call(tc)


def render_message(message: ConversationMessage) -> None:
    if isinstance(message, AIMessage):
        render_ai_message(message)
    elif isinstance(message, ToolMessage):
        render_tool_result(message)
    elif isinstance(message, ErrorMessage):
        console.print(f"\n[red]{escape(message.content)}[/red]")
    elif isinstance(message, HumanMessage):
        console.print(f"\n[bold]>[/bold] {escape(message.content)}")


def render_messages(messages: tuple[ConversationMessage, ...] | list[ConversationMessage]) -> None:
    for message in messages:
        render_message(message)


def render_error(message: str) -> None:
    console.print(f"\n[red bold]Error:[/red bold] {escape(message)}")


def render_welcome(model: str, thread_id: str, server_url: str) -> None:
    console.print(f"\n[bold]Chatwire CLI[/bold] - {escape(server_url)}")
    console.print(f"  Model: {escape(model)} | Thread: {escape(thread_id)}")
    console.print("  Type [bold]/help[/bold] for commands, [bold]Ctrl+D[/bold] to exit\n")


def render_help() -> None:
    console.print("\n[bold]Commands:[/bold]")
    console.print("  /history    - Reload and show this thread's messages")
    console.print("  /quit       - Exit")
    console.print("  Ctrl+C      - Cancel current response")
    console.print("  Ctrl+D      - Exit\n")


def render_elapsed(elapsed: float) -> None:
    if elapsed > 0:
        console.print(f"[grey62]  {elapsed:.1f}s[/grey62]")

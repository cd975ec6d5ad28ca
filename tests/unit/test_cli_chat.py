"""Tests for the CLI chat loop: approval prompts and turn handling."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from chatwire.cli.chat import _ask_approval, _run_turn, pending_tool_calls
from chatwire.models import AIMessage, HumanMessage, MessageOptions, ToolCall, ToolMessage

_CALL = ToolCall(name="read_file", args={"path": "a"}, id="c1")


class TestPendingToolCalls:
    def test_last_ai_with_calls(self) -> None:
        messages = (HumanMessage(id="h", content="read a"), AIMessage(id="a", content="", tool_calls=(_CALL,)))
        assert pending_tool_calls(messages) == [_CALL]

    def test_answered_calls_not_pending(self) -> None:
        messages = (
            AIMessage(id="a", content="", tool_calls=(_CALL,)),
            ToolMessage(id="t", content="{}", name="read_file", tool_call_id="c1"),
            AIMessage(id="b", content="done"),
        )
        assert pending_tool_calls(messages) == []

    def test_empty(self) -> None:
        assert pending_tool_calls(()) == []


class TestAskApproval:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("answer, expected", [("y", "allow"), (" YES ", "allow"), ("n", "deny"), ("", "deny")])
    async def test_answers(self, answer: str, expected: str) -> None:
        session = MagicMock()
        session.prompt_async = AsyncMock(return_value=answer)
        with patch("chatwire.cli.chat.renderer"):
            assert await _ask_approval(session, [_CALL]) == expected

    @pytest.mark.asyncio
    async def test_ctrl_d_denies(self) -> None:
        session = MagicMock()
        session.prompt_async = AsyncMock(side_effect=EOFError)
        with patch("chatwire.cli.chat.renderer"):
            assert await _ask_approval(session, [_CALL]) == "deny"


class FakeThread:
    """Replays scripted message snapshots for each send/approve call."""

    def __init__(self, after_send: tuple[Any, ...], history: list[tuple[Any, ...]], after_approve: tuple[Any, ...] = ()) -> None:
        self.messages: tuple[Any, ...] = ()
        self.send_error: Exception | None = None
        self._after_send = after_send
        self._history = list(history)
        self._after_approve = after_approve
        self.approvals: list[tuple[str, str]] = []

    def cancel(self) -> None:
        pass

    async def send_message(self, text: str, options: MessageOptions | None = None) -> None:
        self.messages = self._after_send

    async def refetch_messages(self) -> None:
        self.messages = self._history.pop(0)

    async def approve_tool_execution(self, tool_call_id: str, action: str) -> None:
        self.approvals.append((tool_call_id, action))
        self.messages = self.messages + self._after_approve


class TestRunTurn:
    @pytest.mark.asyncio
    async def test_plain_reply_renders_new_messages(self) -> None:
        reply = (HumanMessage(id="h", content="hi"), AIMessage(id="a", content="hello"))
        thread = FakeThread(reply, [reply])
        with patch("chatwire.cli.chat.renderer") as mock_renderer:
            mock_renderer.stop_thinking.return_value = 0.0
            await _run_turn(thread, MagicMock(), "hi", MessageOptions())

        mock_renderer.render_messages.assert_called_once_with(reply[1:])
        assert thread.approvals == []

    @pytest.mark.asyncio
    async def test_pending_call_found_in_history_is_approved(self) -> None:
        human = HumanMessage(id="h", content="read a")
        checkpointed = (human, AIMessage(id="run-1", content="", tool_calls=(_CALL,)))
        result = (ToolMessage(id="tool-1", content="{}", name="read_file", tool_call_id="c1"), AIMessage(id="r", content="ok"))
        thread = FakeThread((human,), [checkpointed, checkpointed + result], after_approve=result)
        session = MagicMock()
        session.prompt_async = AsyncMock(return_value="y")

        with patch("chatwire.cli.chat.renderer") as mock_renderer:
            mock_renderer.stop_thinking.return_value = 0.0
            await _run_turn(thread, session, "read a", MessageOptions())

        assert thread.approvals == [("c1", "allow")]
        mock_renderer.render_messages.assert_any_call(result)

    @pytest.mark.asyncio
    async def test_send_error_reported(self) -> None:
        thread = FakeThread((HumanMessage(id="h", content="hi"),), [])
        thread.send_error = RuntimeError("Stream request failed with status 502")

        with patch("chatwire.cli.chat.renderer") as mock_renderer:
            mock_renderer.stop_thinking.return_value = 0.0
            await _run_turn(thread, MagicMock(), "hi", MessageOptions())

        mock_renderer.render_error.assert_called_once_with("Stream request failed with status 502")

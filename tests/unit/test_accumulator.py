"""Tests for the client-side message accumulator."""

from __future__ import annotations

import itertools
from typing import Callable

import pytest

from chatwire.client.accumulator import (
    AccumulatorState,
    MessageAccumulator,
    add_user_message,
    apply_chunk,
    load_history,
)
from chatwire.models import AIMessage, ErrorMessage, HumanMessage, StreamChunk, ToolCall, ToolMessage


def id_factory() -> Callable[[str], str]:
    counter = itertools.count(1)
    return lambda prefix: f"{prefix}-{next(counter)}"


def run(chunks: list[StreamChunk], state: AccumulatorState | None = None) -> AccumulatorState:
    ids = id_factory()
    state = state or AccumulatorState()
    for chunk in chunks:
        state = apply_chunk(state, chunk, ids)
    return state


SEARCH = ToolCall(name="search", args={"q": "x"}, id="c1")


class TestTokens:
    @pytest.mark.parametrize(
        "parts",
        [["He", "llo", " ", "World"], ["a"], ["", "x", ""], ["ü", "👋", "\n", "end"]],
    )
    def test_concatenation_in_arrival_order(self, parts: list[str]) -> None:
        state = run([StreamChunk.token(p, "m1") for p in parts])
        assert state.messages == (AIMessage(id="m1", content="".join(parts)),)

    def test_first_token_without_id_gets_generated_id(self) -> None:
        state = run([StreamChunk.token("a"), StreamChunk.token("b")])
        assert len(state.messages) == 1
        assert state.messages[0].id == "ai-1"
        assert state.messages[0].content == "ab"

    def test_window_keeps_first_id(self) -> None:
        state = run([StreamChunk.token("a", "m1"), StreamChunk.token("b", "m2")])
        assert state.messages == (AIMessage(id="m1", content="ab"),)
        assert state.current_message_id == "m1"

    def test_token_for_missing_message_is_dropped(self) -> None:
        state = AccumulatorState(current_message_id="gone", accumulated_content="x", messages=())
        assert apply_chunk(state, StreamChunk.token("y")) is state


class TestToolCalls:
    def test_attached_to_current_message(self) -> None:
        state = run([StreamChunk.token("Hi", "m1"), StreamChunk.for_tool_call(SEARCH, "m1")])
        assert state.messages == (AIMessage(id="m1", content="Hi", tool_calls=(SEARCH,)),)

    def test_duplicate_delivery_is_idempotent(self) -> None:
        state = run(
            [
                StreamChunk.token("Hi", "m1"),
                StreamChunk.for_tool_call(SEARCH, "m1"),
                StreamChunk.for_tool_call(SEARCH, "m1"),
            ]
        )
        assert state.messages[0].tool_calls == (SEARCH,)

    def test_arrival_order_preserved(self) -> None:
        other = ToolCall(name="fetch", args={}, id="c2")
        state = run(
            [StreamChunk.token("Hi", "m1"), StreamChunk.for_tool_call(other), StreamChunk.for_tool_call(SEARCH)]
        )
        assert [tc.id for tc in state.messages[0].tool_calls] == ["c2", "c1"]

    def test_without_open_message_is_noop(self) -> None:
        state = run([StreamChunk.for_tool_call(SEARCH, "m1")])
        assert state == AccumulatorState()


class TestResets:
    def test_tool_result_appends_and_resets(self) -> None:
        state = run([StreamChunk.token("Hi", "m1"), StreamChunk.for_tool_result("search", "result", "t1")])
        assert state.current_message_id is None
        assert state.accumulated_content == ""
        assert state.messages[-1] == ToolMessage(
            id="t1", content="result", name="search", status="success", tool_call_id="t1"
        )

    def test_tool_result_without_id(self) -> None:
        state = run([StreamChunk.for_tool_result("search", "r")])
        assert state.messages[-1].id == "tool-1"
        assert state.messages[-1].tool_call_id == ""

    def test_tool_result_splits_reused_id(self) -> None:
        state = run(
            [
                StreamChunk.token("one", "m1"),
                StreamChunk.token(" two", "m1"),
                StreamChunk.for_tool_result("search", "r"),
                StreamChunk.token("three", "m1"),
                StreamChunk.token(" four", "m1"),
                StreamChunk.token(" five", "m1"),
            ]
        )
        assert [(m.type, m.content) for m in state.messages] == [
            ("ai", "one two"),
            ("tool", "r"),
            ("ai", "three four five"),
        ]

    def test_tool_call_after_reused_id_goes_to_newest_message(self) -> None:
        state = run(
            [
                StreamChunk.token("first", "m1"),
                StreamChunk.for_tool_result("search", "r"),
                StreamChunk.token("second", "m1"),
                StreamChunk.for_tool_call(SEARCH, "m1"),
            ]
        )
        assert state.messages[0].tool_calls == ()
        assert state.messages[-1] == AIMessage(id="m1", content="second", tool_calls=(SEARCH,))

    def test_distinct_content_tool_calls_all_kept(self) -> None:
        first = ToolCall(name="a", id="m1-1")
        second = ToolCall(name="b", id="m1-2")
        state = run(
            [
                StreamChunk.token("go", "m1"),
                StreamChunk.for_tool_call(first, "m1"),
                StreamChunk.for_tool_call(second, "m1"),
            ]
        )
        assert state.messages[0].tool_calls == (first, second)

    def test_done_resets_without_appending(self) -> None:
        state = run([StreamChunk.token("Hi", "m1"), StreamChunk.done()])
        assert state == AccumulatorState(messages=(AIMessage(id="m1", content="Hi"),))

    def test_tokens_after_done_start_new_message(self) -> None:
        state = run([StreamChunk.token("a", "m1"), StreamChunk.done(), StreamChunk.token("b", "m2")])
        assert [m.content for m in state.messages] == ["a", "b"]

    def test_error_appends_warning_and_resets(self) -> None:
        state = run([StreamChunk.token("Hi", "m1"), StreamChunk.failure("quota exceeded")])
        assert state.messages[-1] == ErrorMessage(id="err-1", content="⚠️ quota exceeded")
        assert state.current_message_id is None

    def test_error_without_text_uses_fallback(self) -> None:
        state = run([StreamChunk(type="error")])
        assert state.messages[-1].content == "⚠️ An error occurred"


class TestScenario:
    def test_tool_round_trip_yields_three_messages(self) -> None:
        state = run(
            [
                StreamChunk.token("Hi", "m1"),
                StreamChunk.for_tool_call(SEARCH, "m1"),
                StreamChunk.for_tool_result("search", "result"),
                StreamChunk.token("Done", "m1"),
            ]
        )
        assert [m.type for m in state.messages] == ["ai", "tool", "ai"]
        assert state.messages[0].content == "Hi"
        assert state.messages[0].tool_calls == (SEARCH,)
        assert state.messages[1].content == "result"
        assert state.messages[2].content == "Done"

    def test_input_state_is_never_mutated(self) -> None:
        start = run([StreamChunk.token("a", "m1")])
        before = start.messages
        apply_chunk(start, StreamChunk.token("b"))
        assert start.messages is before
        assert start.messages[0].content == "a"


class TestUserMessagesAndHistory:
    def test_add_user_message(self) -> None:
        state = add_user_message(AccumulatorState(), "hello", id_factory=id_factory())
        assert state.messages == (HumanMessage(id="temp-1", content="hello"),)

    def test_load_history_replaces_state(self) -> None:
        history = [HumanMessage(id="h", content="q"), AIMessage(id="a", content="r")]
        state = load_history(history)
        assert state.messages == tuple(history)
        assert state.current_message_id is None


class TestMessageAccumulator:
    def test_publishes_whole_snapshots(self) -> None:
        acc = MessageAccumulator(id_factory=id_factory())
        snapshots = []
        acc.subscribe(snapshots.append)

        acc.add_user_message("hi")
        acc.apply(StreamChunk.token("a", "m1"))
        acc.apply(StreamChunk.token("b", "m1"))

        assert len(snapshots) == 3
        assert all(isinstance(s, tuple) for s in snapshots)
        assert snapshots[1][-1].content == "a"
        assert snapshots[2][-1].content == "ab"
        assert acc.messages is snapshots[-1]

    def test_reset_and_done_do_not_publish(self) -> None:
        acc = MessageAccumulator()
        snapshots = []
        acc.subscribe(snapshots.append)
        acc.apply(StreamChunk.done())
        acc.reset()
        assert snapshots == []

    def test_unsubscribe(self) -> None:
        acc = MessageAccumulator()
        snapshots = []
        unsubscribe = acc.subscribe(snapshots.append)
        unsubscribe()
        acc.add_user_message("x")
        assert snapshots == []

    def test_malformed_chunk_leaves_state_alone(self) -> None:
        acc = MessageAccumulator()
        before = acc.state
        acc.apply(StreamChunk(type="tool_result"))
        assert acc.state is before

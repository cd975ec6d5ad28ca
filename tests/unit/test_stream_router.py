"""Tests for the agent SSE stream endpoint."""

from __future__ import annotations

import json
from typing import Any

from fastapi.testclient import TestClient

from chatwire.client.sse_parser import FrameKind, SSEFrameParser
from chatwire.services import storage
from chatwire.services.agent import Agent
from chatwire.tools import ToolRegistry


def ai(content: Any, id: str = "run-1", tool_calls: list[dict[str, Any]] | None = None) -> tuple[str, Any]:
    return ("messages", ({"kind": "AIMessageChunk", "id": id, "content": content, "tool_calls": tool_calls or []}, {}))


def _frames(body: bytes) -> list:
    return SSEFrameParser().feed(body)


class TestStreamEndpoint:
    def test_streams_frames_in_order(self, make_app, fake_engine) -> None:
        app, db, _ = make_app(fake_engine([ai("Hel"), ai("lo")]))
        with TestClient(app) as client:
            resp = client.get("/api/agent/stream", params={"content": "hi", "threadId": "t1"})

        assert resp.status_code == 200
        assert resp.content.startswith(b": connected\n\n")
        assert resp.content.endswith(b'data: {"type":"done"}\n\nevent: done\ndata: {}\n\n')
        chunks = [f.chunk for f in _frames(resp.content) if f.kind is FrameKind.CHUNK]
        assert [(c.type, c.content) for c in chunks] == [("token", "Hel"), ("token", "lo"), ("done", None)]

    def test_sse_headers(self, make_app, fake_engine) -> None:
        app, _, _ = make_app(fake_engine([]))
        with TestClient(app) as client:
            resp = client.get("/api/agent/stream", params={"content": "hi", "threadId": "t1"})

        assert resp.headers["content-type"].startswith("text/event-stream")
        assert resp.headers["cache-control"] == "no-cache, no-transform"
        assert resp.headers["x-accel-buffering"] == "no"

    def test_engine_failure_becomes_error_frames(self, make_app, fake_engine) -> None:
        app, _, _ = make_app(fake_engine([ai("partial")], fail_with=RuntimeError("model unavailable")))
        with TestClient(app) as client:
            resp = client.get("/api/agent/stream", params={"content": "hi", "threadId": "t7"})

        assert resp.status_code == 200
        frames = _frames(resp.content)
        assert [f.kind for f in frames] == [FrameKind.CHUNK, FrameKind.CHUNK, FrameKind.ERROR]
        assert frames[1].chunk is not None and frames[1].chunk.error == "model unavailable"
        error_payload = resp.content.decode().split("event: error\ndata: ", 1)[1].strip()
        assert json.loads(error_payload) == {"message": "model unavailable", "threadId": "t7"}
        assert b"event: done" not in resp.content

    def test_thread_created_from_first_message(self, make_app, fake_engine) -> None:
        app, db, _ = make_app(fake_engine([]))
        with TestClient(app) as client:
            client.get("/api/agent/stream", params={"content": "Summarize the quarterly report", "threadId": "t1"})
            thread = storage.get_thread(db, "t1")
        assert thread is not None
        assert thread["title"] == "Summarize the quarterly report"

    def test_thread_id_defaults_to_unknown(self, make_app, fake_engine) -> None:
        engine = fake_engine([])
        app, db, _ = make_app(engine)
        with TestClient(app) as client:
            client.get("/api/agent/stream", params={"content": "hi"})
            assert storage.get_thread(db, "unknown") is not None
        assert engine.calls[0][1] == "unknown"


class TestQueryOptions:
    def test_options_parsed(self, make_app, fake_engine) -> None:
        app, _, seen = make_app(fake_engine([]))
        attachments = [{"url": "http://x/a.png", "name": "a.png", "type": "image/png", "size": 3}]
        with TestClient(app) as client:
            client.get(
                "/api/agent/stream",
                params={
                    "content": "hi",
                    "threadId": "t1",
                    "model": "gpt-4o",
                    "provider": "openai",
                    "tools": "read_file, search,",
                    "approveAllTools": "true",
                    "attachments": json.dumps(attachments),
                },
            )

        opts = seen[0]
        assert opts.model == "gpt-4o"
        assert opts.provider == "openai"
        assert opts.tools == ["read_file", "search"]
        assert opts.approve_all_tools is True
        assert opts.attachments[0].name == "a.png"
        assert opts.allow_tool is None

    def test_absent_options_are_none(self, make_app, fake_engine) -> None:
        app, _, seen = make_app(fake_engine([]))
        with TestClient(app) as client:
            client.get("/api/agent/stream", params={"content": "hi", "threadId": "t1"})

        opts = seen[0]
        assert opts.tools is None
        assert opts.approve_all_tools is None
        assert opts.attachments == []

    def test_invalid_attachments_ignored(self, make_app, fake_engine) -> None:
        app, _, seen = make_app(fake_engine([ai("ok")]))
        with TestClient(app) as client:
            resp = client.get("/api/agent/stream", params={"content": "hi", "threadId": "t1", "attachments": "{not json"})

        assert seen[0].attachments == []
        assert b"event: done" in resp.content

    def test_allow_tool_resumes(self, make_app, fake_engine) -> None:
        engine = fake_engine([])
        app, _, seen = make_app(engine)
        with TestClient(app) as client:
            client.get("/api/agent/stream", params={"threadId": "t1", "allowTool": "deny"})

        assert seen[0].allow_tool == "deny"
        assert engine.calls[0][0].action == "update"

    def test_unrecognized_allow_tool_is_a_new_message(self, make_app, fake_engine) -> None:
        engine = fake_engine([])
        app, _, seen = make_app(engine)
        with TestClient(app) as client:
            client.get("/api/agent/stream", params={"content": "hi", "threadId": "t1", "allowTool": "maybe"})

        assert seen[0].allow_tool is None
        assert engine.calls[0][0] == {"messages": [{"role": "user", "content": "hi"}]}


class TestApprovalWithoutPending:
    def test_resume_with_nothing_pending_is_an_error_frame(self, make_app, fake_engine) -> None:
        app, db, _ = make_app(fake_engine([]))
        app.state.engine_factory = lambda opts: Agent(None, ToolRegistry(), db)  # type: ignore[arg-type]
        with TestClient(app) as client:
            resp = client.get("/api/agent/stream", params={"threadId": "t1", "allowTool": "allow"})

        frames = _frames(resp.content)
        assert frames[-1].kind is FrameKind.ERROR
        assert frames[0].chunk is not None
        assert frames[0].chunk.error == "No tool call is awaiting approval"

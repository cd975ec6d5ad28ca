"""Shared fixtures for unit and integration tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any, AsyncGenerator, Callable

import pytest
from fastapi import FastAPI

from chatwire.app import create_app
from chatwire.config import AIConfig, AppConfig, AppSettings
from chatwire.db import ThreadSafeConnection, init_db
from chatwire.models import MessageOptions


@pytest.fixture(autouse=True)
def reset_sse_app_status() -> None:
    """sse-starlette keeps a process-wide exit event bound to the first event loop it saw."""
    from sse_starlette.sse import AppStatus

    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None


@pytest.fixture()
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        ai=AIConfig(base_url="http://ai.test/v1", api_key="test-key", provider="openai", model="gpt-test"),
        app=AppSettings(data_dir=tmp_path),
    )


class FakeEngine:
    """Replays raw engine events, optionally failing afterwards."""

    def __init__(self, events: list[Any], fail_with: Exception | None = None) -> None:
        self.events = events
        self.fail_with = fail_with
        self.calls: list[tuple[Any, str]] = []

    async def stream(self, inputs: Any, *, thread_id: str) -> AsyncGenerator[Any, None]:
        self.calls.append((inputs, thread_id))
        for event in self.events:
            yield event
        if self.fail_with is not None:
            raise self.fail_with


@pytest.fixture()
def make_app(app_config: AppConfig) -> Callable[..., tuple[FastAPI, ThreadSafeConnection, list[MessageOptions]]]:
    """Build an app wired to an in-memory database and a fake engine."""

    def _make(engine: Any) -> tuple[FastAPI, ThreadSafeConnection, list[MessageOptions]]:
        app = create_app(app_config)
        db = init_db(":memory:")
        seen: list[MessageOptions] = []

        def factory(opts: MessageOptions) -> Any:
            seen.append(opts)
            return engine

        app.state.db = db
        app.state.engine_factory = factory
        return app, db, seen

    return _make


@pytest.fixture()
def fake_engine() -> type[FakeEngine]:
    return FakeEngine

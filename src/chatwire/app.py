"""FastAPI application factory with lifespan management."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import AppConfig, load_config
from .db import init_db
from .services.agent_service import build_engine_factory
from .tools import ToolRegistry, register_default_tools

logger = logging.getLogger(__name__)

CORS_METHODS = ["GET", "POST", "PATCH", "DELETE", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Authorization", "X-Requested-With"]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    config: AppConfig = app.state.config
    if getattr(app.state, "db", None) is None:
        app.state.db = init_db(config.app.data_dir / "chat.db")

    if getattr(app.state, "engine_factory", None) is None:
        tools = ToolRegistry()
        if config.agent.builtin_tools:
            workspace = config.app.data_dir / "workspace"
            workspace.mkdir(parents=True, exist_ok=True)
            register_default_tools(tools, workspace)
        logger.info("Agent tools: %s", ", ".join(tools.list_tools()) or "none")
        app.state.engine_factory = build_engine_factory(config, app.state.db, tools)

    yield

    app.state.db.close()


def create_app(config: AppConfig | None = None) -> FastAPI:
    if config is None:
        config = load_config()

    app = FastAPI(title="Chatwire", version=__version__, lifespan=lifespan)
    app.state.config = config

    if config.app.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.app.cors_origins,
            allow_credentials=True,
            allow_methods=CORS_METHODS,
            allow_headers=CORS_HEADERS,
            max_age=86400,
        )

    from .routers import stream, threads

    app.include_router(stream.router, prefix="/api")
    app.include_router(threads.router, prefix="/api")

    return app

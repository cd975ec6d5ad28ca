"""Thread CRUD and message history endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request

from ..models import Thread, ThreadCreate, ThreadUpdate, conversation_messages_adapter
from ..services import storage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["threads"])


def _get_thread_or_404(request: Request, thread_id: str) -> dict[str, Any]:
    thread = storage.get_thread(request.app.state.db, thread_id)
    if not thread:
        raise HTTPException(status_code=404, detail="Thread not found")
    return thread


@router.get("/threads")
async def list_threads(request: Request, limit: int = 100) -> list[Thread]:
    return [Thread(**t) for t in storage.list_threads(request.app.state.db, limit=limit)]


@router.post("/threads", status_code=201)
async def create_thread(body: ThreadCreate, request: Request) -> Thread:
    db = request.app.state.db
    if body.id and storage.get_thread(db, body.id):
        raise HTTPException(status_code=409, detail="Thread already exists")
    thread = storage.create_thread(db, title=body.title or storage.DEFAULT_THREAD_TITLE, thread_id=body.id)
    return Thread(**thread)


@router.get("/threads/{thread_id}")
async def get_thread(thread_id: str, request: Request) -> Thread:
    return Thread(**_get_thread_or_404(request, thread_id))


@router.patch("/threads/{thread_id}")
async def update_thread(thread_id: str, body: ThreadUpdate, request: Request) -> Thread:
    _get_thread_or_404(request, thread_id)
    thread = storage.update_thread_title(request.app.state.db, thread_id, body.title)
    return Thread(**thread)


@router.delete("/threads/{thread_id}", status_code=204)
async def delete_thread(thread_id: str, request: Request) -> None:
    if not storage.delete_thread(request.app.state.db, thread_id):
        raise HTTPException(status_code=404, detail="Thread not found")


@router.get("/threads/{thread_id}/messages")
async def get_messages(thread_id: str, request: Request) -> list[dict[str, Any]]:
    """Conversation history; an unknown thread simply has no messages yet."""
    history = storage.get_history(request.app.state.db, thread_id)
    return conversation_messages_adapter.dump_python(history, mode="json")

"""SQLite data access layer for threads and agent checkpoints."""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..db import ThreadSafeConnection
from ..models import AIMessage, ConversationMessage, HumanMessage, ToolCall, ToolMessage

logger = logging.getLogger(__name__)

DEFAULT_THREAD_TITLE = "New Thread"
MAX_TITLE_LENGTH = 50


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _uuid() -> str:
    return str(uuid.uuid4())


# --- Threads ---


def create_thread(db: ThreadSafeConnection, title: str = DEFAULT_THREAD_TITLE, thread_id: str | None = None) -> dict[str, Any]:
    tid = thread_id or _uuid()
    now = _now()
    db.execute(
        "INSERT INTO threads (id, title, created_at, updated_at) VALUES (?, ?, ?, ?)",
        (tid, title, now, now),
    )
    db.commit()
    return {"id": tid, "title": title, "created_at": now, "updated_at": now}


def get_thread(db: ThreadSafeConnection, thread_id: str) -> dict[str, Any] | None:
    row = db.execute_fetchone("SELECT * FROM threads WHERE id = ?", (thread_id,))
    if not row:
        return None
    return dict(row)


def ensure_thread(db: ThreadSafeConnection, thread_id: str, user_text: str = "") -> dict[str, Any]:
    """Return the thread, creating it titled after the first user text if missing."""
    thread = get_thread(db, thread_id)
    if thread:
        return thread
    title = user_text.strip()[:MAX_TITLE_LENGTH] or DEFAULT_THREAD_TITLE
    logger.info("Creating thread %s", thread_id)
    return create_thread(db, title=title, thread_id=thread_id)


def list_threads(db: ThreadSafeConnection, limit: int = 100) -> list[dict[str, Any]]:
    rows = db.execute_fetchall("SELECT * FROM threads ORDER BY updated_at DESC LIMIT ?", (limit,))
    return [dict(r) for r in rows]


def update_thread_title(db: ThreadSafeConnection, thread_id: str, title: str) -> dict[str, Any] | None:
    if not get_thread(db, thread_id):
        return None
    db.execute("UPDATE threads SET title = ?, updated_at = ? WHERE id = ?", (title, _now(), thread_id))
    db.commit()
    return get_thread(db, thread_id)


def delete_thread(db: ThreadSafeConnection, thread_id: str) -> bool:
    if not get_thread(db, thread_id):
        return False
    db.execute("DELETE FROM threads WHERE id = ?", (thread_id,))
    db.commit()
    return True


# --- Checkpoints ---


@dataclass
class Checkpoint:
    """Agent state for one thread: chat-completion messages plus tool calls awaiting approval."""

    messages: list[dict[str, Any]] = field(default_factory=list)
    pending_tool_calls: list[ToolCall] = field(default_factory=list)


def load_checkpoint(db: ThreadSafeConnection, thread_id: str) -> Checkpoint:
    row = db.execute_fetchone(
        "SELECT messages_json, pending_tool_calls_json FROM checkpoints WHERE thread_id = ?",
        (thread_id,),
    )
    if not row:
        return Checkpoint()
    return Checkpoint(
        messages=json.loads(row["messages_json"]),
        pending_tool_calls=[ToolCall(**tc) for tc in json.loads(row["pending_tool_calls_json"])],
    )


def save_checkpoint(
    db: ThreadSafeConnection,
    thread_id: str,
    messages: list[dict[str, Any]],
    pending_tool_calls: list[ToolCall] | None = None,
) -> None:
    pending = [tc.model_dump() for tc in pending_tool_calls or []]
    now = _now()
    with db.transaction() as conn:
        conn.execute(
            "INSERT INTO checkpoints (thread_id, messages_json, pending_tool_calls_json, updated_at)"
            " VALUES (?, ?, ?, ?)"
            " ON CONFLICT(thread_id) DO UPDATE SET"
            " messages_json = excluded.messages_json,"
            " pending_tool_calls_json = excluded.pending_tool_calls_json,"
            " updated_at = excluded.updated_at",
            (thread_id, json.dumps(messages), json.dumps(pending), now),
        )
        conn.execute("UPDATE threads SET updated_at = ? WHERE id = ?", (now, thread_id))


# --- History ---


def _text_of(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "") for part in content if isinstance(part, dict) and part.get("type") == "text"
        )
    return ""


def _parse_arguments(arguments: Any) -> dict[str, Any]:
    if isinstance(arguments, dict):
        return arguments
    try:
        parsed = json.loads(arguments or "{}")
    except (TypeError, json.JSONDecodeError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def to_conversation_messages(messages: list[dict[str, Any]]) -> list[ConversationMessage]:
    """Convert checkpointed chat-completion messages into conversation messages."""
    result: list[ConversationMessage] = []
    tool_names: dict[str, str] = {}
    for index, msg in enumerate(messages):
        role = msg.get("role")
        msg_id = msg.get("id") or f"{role}-{index}"
        if role == "user":
            result.append(HumanMessage(id=msg_id, content=_text_of(msg.get("content"))))
        elif role == "assistant":
            tool_calls = []
            for tc in msg.get("tool_calls") or []:
                fn = tc.get("function", {})
                tool_names[tc.get("id", "")] = fn.get("name", "")
                tool_calls.append(
                    ToolCall(name=fn.get("name", ""), args=_parse_arguments(fn.get("arguments")), id=tc.get("id", ""))
                )
            result.append(AIMessage(id=msg_id, content=_text_of(msg.get("content")), tool_calls=tuple(tool_calls)))
        elif role == "tool":
            call_id = msg.get("tool_call_id", "")
            result.append(
                ToolMessage(
                    id=msg_id,
                    content=_text_of(msg.get("content")),
                    name=msg.get("name") or tool_names.get(call_id, "unknown"),
                    tool_call_id=call_id,
                )
            )
    return result


def get_history(db: ThreadSafeConnection, thread_id: str) -> list[ConversationMessage]:
    return to_conversation_messages(load_checkpoint(db, thread_id).messages)

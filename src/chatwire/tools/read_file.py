"""Built-in tool: read a text file under the configured root directory."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

_MAX_OUTPUT = 100_000

DEFINITION: dict[str, Any] = {
    "name": "read_file",
    "description": "Read a text file. Paths are relative to the assistant's workspace. Returns numbered lines.",
    "parameters": {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "File path relative to the workspace"},
            "offset": {"type": "integer", "description": "Line number to start reading from (1-based). Optional."},
            "limit": {"type": "integer", "description": "Maximum number of lines to read. Optional."},
        },
        "required": ["path"],
    },
}


def resolve_inside(root_dir: Path | str, path: str) -> Path | None:
    """Resolve ``path`` against ``root_dir``; None if it escapes the root."""
    if "\x00" in path:
        return None
    root = Path(os.path.realpath(root_dir))
    resolved = Path(os.path.realpath(root / path))
    if resolved != root and root not in resolved.parents:
        return None
    return resolved


def make_handler(root_dir: Path | str):
    async def handle(path: str, offset: int = 1, limit: int | None = None, **_: Any) -> dict[str, Any]:
        resolved = resolve_inside(root_dir, path)
        if resolved is None:
            return {"error": f"Access denied: {path}"}
        if not resolved.is_file():
            return {"error": f"File not found: {path}"}
        try:
            lines = resolved.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError as e:
            return {"error": str(e)}

        start = max(0, offset - 1)
        selected = lines[start : start + limit] if limit else lines[start:]
        content = "\n".join(f"{i:>6}\t{line}" for i, line in enumerate(selected, start=start + 1))
        if len(content) > _MAX_OUTPUT:
            content = content[:_MAX_OUTPUT] + "\n... (truncated)"
        return {"content": content, "total_lines": len(lines), "lines_shown": len(selected)}

    return handle

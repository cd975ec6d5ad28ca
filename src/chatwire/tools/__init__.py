"""Tool registry exposed to the agent in OpenAI function-call format."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Coroutine

logger = logging.getLogger(__name__)

ToolHandler = Callable[..., Coroutine[Any, Any, Any]]


class ToolRegistry:
    """Named async tool handlers plus their JSON-schema definitions."""

    def __init__(self) -> None:
        self._handlers: dict[str, ToolHandler] = {}
        self._definitions: dict[str, dict[str, Any]] = {}

    def register(self, name: str, handler: ToolHandler, definition: dict[str, Any]) -> None:
        self._handlers[name] = handler
        self._definitions[name] = definition

    def has_tool(self, name: str) -> bool:
        return name in self._handlers

    def list_tools(self) -> list[str]:
        return list(self._handlers.keys())

    def get_openai_tools(self, names: list[str] | None = None) -> list[dict[str, Any]]:
        """Definitions for every tool, or only ``names`` when given."""
        return [
            {
                "type": "function",
                "function": {
                    "name": name,
                    "description": defn.get("description", ""),
                    "parameters": defn.get("parameters", {}),
                },
            }
            for name, defn in self._definitions.items()
            if names is None or name in names
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        handler = self._handlers.get(name)
        if not handler:
            raise ValueError(f"Unknown tool: {name}")
        logger.debug("Calling tool %s", name)
        return await handler(**arguments)


def register_default_tools(registry: ToolRegistry, root_dir: Path | str) -> None:
    """Register the built-in tools, scoped to ``root_dir``."""
    from .read_file import DEFINITION, make_handler

    registry.register(DEFINITION["name"], make_handler(root_dir), DEFINITION)

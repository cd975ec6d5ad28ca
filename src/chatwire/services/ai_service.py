"""OpenAI SDK wrapper for streaming chat completions."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncGenerator

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    BadRequestError,
    RateLimitError,
)

from ..config import AIConfig

logger = logging.getLogger(__name__)


class AIService:
    def __init__(self, config: AIConfig) -> None:
        self.config = config
        self.client = AsyncOpenAI(
            base_url=config.base_url,
            api_key=config.api_key,
            http_client=httpx.AsyncClient(verify=config.verify_ssl),
        )

    async def validate_connection(self) -> tuple[bool, str, list[str]]:
        """Check the endpoint by listing models. Returns (ok, message, model ids)."""
        try:
            models = await self.client.models.list()
            model_ids = [m.id for m in models.data]
            return True, "Connected", model_ids
        except AuthenticationError:
            return False, "Authentication failed: check your API key", []
        except APIConnectionError as e:
            return False, f"Connection failed: {e}", []
        except Exception as e:
            return False, f"Error: {e}", []

    async def stream_chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Stream one completion as ``token``/``tool_call``/``done``/``error`` events.

        Tool-call argument fragments are accumulated per index and emitted as
        complete ``tool_call`` events when the model finishes with tool calls.
        """
        full_messages = [{"role": "system", "content": self.config.system_prompt}] + messages
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": full_messages,
            "temperature": self.config.temperature,
            "stream": True,
        }
        if tools:
            kwargs["tools"] = tools

        try:
            stream = await self.client.chat.completions.create(**kwargs)
            current_tool_calls: dict[int, dict[str, Any]] = {}
            finished = False
            try:
                async for chunk in stream:
                    choice = chunk.choices[0] if chunk.choices else None
                    if not choice:
                        continue

                    delta = choice.delta
                    if delta and delta.content:
                        yield {"event": "token", "data": {"content": delta.content}}

                    if delta and delta.tool_calls:
                        for tc in delta.tool_calls:
                            entry = current_tool_calls.setdefault(
                                tc.index, {"id": "", "function_name": "", "arguments": ""}
                            )
                            if tc.id:
                                entry["id"] = tc.id
                            if tc.function and tc.function.name:
                                entry["function_name"] = tc.function.name
                            if tc.function and tc.function.arguments:
                                entry["arguments"] += tc.function.arguments

                    if choice.finish_reason:
                        finished = True
                        break
            finally:
                close = getattr(stream, "close", None)
                if close is not None:
                    await close()

            # Some providers finish with "stop" even when tool calls were streamed
            for _idx, tc_data in sorted(current_tool_calls.items()):
                try:
                    args = json.loads(tc_data["arguments"] or "{}")
                except json.JSONDecodeError:
                    logger.warning("Malformed arguments for tool call %s", tc_data["function_name"])
                    args = {}
                yield {
                    "event": "tool_call",
                    "data": {"id": tc_data["id"], "function_name": tc_data["function_name"], "arguments": args},
                }
            if not finished:
                logger.debug("Completion stream ended without finish_reason")
            yield {"event": "done", "data": {}}

        except AuthenticationError:
            logger.error("Authentication failed for %s", self.config.base_url)
            yield {"event": "error", "data": {"message": "Authentication failed. Check your API key."}}
        except BadRequestError as e:
            if "context_length" in str(e).lower():
                logger.warning("Context length exceeded: %s", e)
                yield {"event": "error", "data": {"message": "Conversation too long for model context window."}}
            else:
                logger.exception("AI bad request error")
                yield {"event": "error", "data": {"message": "AI request error"}}
        except RateLimitError as e:
            logger.warning("Rate limited by AI provider: %s", e)
            yield {"event": "error", "data": {"message": "Rate limited by the AI provider. Try again shortly."}}
        except (APIConnectionError, APITimeoutError) as e:
            logger.warning("AI connection error: %s", e)
            yield {"event": "error", "data": {"message": "Could not reach the AI service."}}
        except APIStatusError as e:
            logger.exception("AI service returned an error status")
            yield {"event": "error", "data": {"message": f"AI service error ({e.status_code})"}}

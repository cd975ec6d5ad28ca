"""Send-and-receive cycles against the agent stream endpoint.

A ``StreamSession`` runs one request at a time: starting a new one cancels
the previous request, which stops at its next read boundary. Cancellation is
silent; transport failures raise ``StreamTransportError``.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from typing import Any, AsyncGenerator, AsyncIterator, Literal

import httpx

from ..config import ClientSettings
from ..models import MessageOptions, conversation_messages_adapter
from .accumulator import MessageAccumulator
from .sse_parser import FrameKind, SSEFrameParser

logger = logging.getLogger(__name__)


class StreamTransportError(RuntimeError):
    """The stream request failed for a reason other than cancellation."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SessionState(enum.Enum):
    IDLE = "idle"
    SENDING = "sending"
    ERROR = "error"


def build_stream_params(thread_id: str, text: str, options: MessageOptions | None = None) -> dict[str, str]:
    """Query parameters for one stream request."""
    params = {"content": text, "threadId": thread_id}
    if options is None:
        return params
    if options.model:
        params["model"] = options.model
    if options.provider:
        params["provider"] = options.provider
    if options.tools:
        params["tools"] = ",".join(options.tools)
    if options.allow_tool:
        params["allowTool"] = options.allow_tool
    if options.approve_all_tools is not None:
        params["approveAllTools"] = "true" if options.approve_all_tools else "false"
    if options.attachments:
        params["attachments"] = json.dumps([a.model_dump() for a in options.attachments])
    return params


async def _iter_cancellable(stream_iter: AsyncIterator[bytes], cancel_event: asyncio.Event) -> AsyncGenerator[bytes, None]:
    """Iterate byte buffers until the stream ends or cancel_event is set."""
    while True:
        if cancel_event.is_set():
            return

        next_chunk = asyncio.ensure_future(stream_iter.__anext__())
        cancel_wait = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _pending = await asyncio.wait([next_chunk, cancel_wait], return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            next_chunk.cancel()
            cancel_wait.cancel()
            raise

        if cancel_wait in done:
            next_chunk.cancel()
            try:
                await next_chunk
            except (asyncio.CancelledError, StopAsyncIteration, httpx.HTTPError):
                pass
            return

        cancel_wait.cancel()
        try:
            chunk = next_chunk.result()
        except StopAsyncIteration:
            return
        # Both may finish in the same tick; a cancelled session drops the read
        if cancel_event.is_set():
            return
        yield chunk


class StreamSession:
    """Drives transport bytes through the frame parser into an accumulator."""

    def __init__(self, http: httpx.AsyncClient, accumulator: MessageAccumulator, stream_url: str) -> None:
        self._http = http
        self._accumulator = accumulator
        self._stream_url = stream_url
        self._cancel_event: asyncio.Event | None = None
        self.state = SessionState.IDLE
        self.error: StreamTransportError | None = None

    @property
    def active(self) -> bool:
        return self._cancel_event is not None

    def cancel(self) -> None:
        if self._cancel_event is not None:
            self._cancel_event.set()
            self._cancel_event = None
            self.state = SessionState.IDLE

    async def run(self, thread_id: str, text: str = "", options: MessageOptions | None = None) -> None:
        """Stream one request into the accumulator.

        Returns on a terminal frame, when the server closes the stream, or when
        the request is cancelled. Raises StreamTransportError on network errors
        and non-2xx responses.
        """
        self.cancel()
        cancel_event = asyncio.Event()
        self._cancel_event = cancel_event
        self.state = SessionState.SENDING
        self.error = None
        self._accumulator.reset()

        params = build_stream_params(thread_id, text, options)
        parser = SSEFrameParser()
        try:
            async with self._http.stream("GET", self._stream_url, params=params, timeout=None) as response:
                if not response.is_success:
                    raise StreamTransportError(
                        f"Stream request failed: {response.status_code}", status_code=response.status_code
                    )
                buffers = _iter_cancellable(response.aiter_bytes(), cancel_event)
                try:
                    async for data in buffers:
                        if cancel_event.is_set():
                            break
                        if self._consume(parser.feed(data)):
                            break
                finally:
                    await buffers.aclose()
        except (httpx.HTTPError, StreamTransportError) as e:
            if cancel_event.is_set():
                return
            error = e if isinstance(e, StreamTransportError) else StreamTransportError(str(e) or type(e).__name__)
            logger.warning("Stream transport failure: %s", error)
            self._accumulator.reset()
            self.state = SessionState.ERROR
            self.error = error
            if error is e:
                raise
            raise error from e
        finally:
            if self._cancel_event is cancel_event:
                self._cancel_event = None
                if self.state is SessionState.SENDING:
                    self.state = SessionState.IDLE

    def _consume(self, frames: list[Any]) -> bool:
        """Apply parsed frames in order; True once a terminal frame is seen."""
        for frame in frames:
            if frame.kind is FrameKind.CHUNK:
                self._accumulator.apply(frame.chunk)
            else:
                self._accumulator.reset()
                return True
        return False


class ChatThread:
    """Client view of one conversation thread: history, sending and approvals."""

    def __init__(
        self,
        thread_id: str | None,
        *,
        settings: ClientSettings | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.thread_id = thread_id
        self._settings = settings or ClientSettings()
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient()
        self.accumulator = MessageAccumulator()
        self._session = StreamSession(self._http, self.accumulator, self._settings.stream_url)

    async def __aenter__(self) -> ChatThread:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def messages(self) -> tuple[Any, ...]:
        return self.accumulator.messages

    @property
    def is_sending(self) -> bool:
        return self._session.state is SessionState.SENDING

    @property
    def send_error(self) -> StreamTransportError | None:
        return self._session.error

    async def refetch_messages(self) -> None:
        if not self.thread_id:
            return
        url = f"{self._settings.api_root}/threads/{self.thread_id}/messages"
        resp = await self._http.get(url)
        resp.raise_for_status()
        self.accumulator.load_history(conversation_messages_adapter.validate_python(resp.json()))

    async def send_message(self, text: str, options: MessageOptions | None = None) -> None:
        """Append the user's message immediately, then stream the reply."""
        if not self.thread_id:
            return
        attachments = options.attachments if options else []
        self.accumulator.add_user_message(text, attachments)
        await self._stream(self.thread_id, text, options)

    async def approve_tool_execution(self, tool_call_id: str, action: Literal["allow", "deny"]) -> None:
        """Resume the interrupted run with the user's decision."""
        if not self.thread_id:
            return
        logger.debug("Tool %s: %s", tool_call_id, action)
        await self._stream(self.thread_id, "", MessageOptions(allow_tool=action))

    def cancel(self) -> None:
        self._session.cancel()

    async def close(self) -> None:
        self.cancel()
        if self._owns_http:
            await self._http.aclose()

    async def _stream(self, thread_id: str, text: str, options: MessageOptions | None) -> None:
        try:
            await self._session.run(thread_id, text, options)
        except StreamTransportError:
            # Recorded on the session as send_error
            return

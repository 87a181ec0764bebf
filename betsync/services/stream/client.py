from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx

from .config import StreamConfig
from .decoder import EventDecoder
from .exceptions import MalformedEventError, TransportError
from .models import ConnectionState, ServerSentEvent, StreamEvent

logger = logging.getLogger(__name__)

StateCallback = Callable[[ConnectionState], None]


async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[ServerSentEvent]:
    """Group text/event-stream lines into dispatched messages."""
    event_name = ""
    data_lines: list[str] = []
    event_id: str | None = None
    retry: int | None = None
    seen_field = False

    async for raw_line in lines:
        line = raw_line.rstrip("\r")

        if line == "":
            if seen_field and (data_lines or event_name):
                yield ServerSentEvent(
                    event=event_name or "message",
                    data="\n".join(data_lines),
                    id=event_id,
                    retry=retry,
                )
            event_name = ""
            data_lines = []
            retry = None
            seen_field = False
            continue

        if line.startswith(":"):
            continue

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        seen_field = True

        if field == "event":
            event_name = value
        elif field == "data":
            data_lines.append(value)
        elif field == "id":
            event_id = value or None
        elif field == "retry":
            if value.isdigit():
                retry = int(value)


class EventStreamClient:
    """Long-lived SSE subscription feeding decoded events into an in-order queue."""

    def __init__(
        self,
        config: StreamConfig | None = None,
        decoder: EventDecoder | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        on_state_change: StateCallback | None = None,
    ):
        self.config = config or StreamConfig()
        self.decoder = decoder or EventDecoder(self.config.accepted_shapes)
        self.events: asyncio.Queue[StreamEvent] = asyncio.Queue(
            maxsize=self.config.queue_size
        )
        self._transport = transport
        self.on_state_change = on_state_change
        self._state = ConnectionState.CONNECTING
        self._closed = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._last_event_id: str | None = None
        self._server_retry_seconds: float | None = None
        self._failures = 0

        self.events_received = 0
        self.malformed_count = 0
        self.reconnects = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state == ConnectionState.CLOSED

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        logger.debug(f"Stream state {self._state.value} -> {state.value}")
        self._state = state
        if self.on_state_change:
            self.on_state_change(state)

    def start(self) -> asyncio.Task[None]:
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name="betsync-event-stream")
        return self._task

    async def close(self) -> None:
        self._closed.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._set_state(ConnectionState.CLOSED)

    async def __aenter__(self) -> EventStreamClient:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    def _reconnect_delay(self) -> float:
        base = self._server_retry_seconds
        if base is None:
            base = self.config.reconnect_delay_seconds
        return min(base * self._failures, self.config.max_reconnect_delay_seconds)

    async def run(self) -> None:
        timeout = httpx.Timeout(
            self.config.read_timeout_seconds,
            connect=self.config.connect_timeout_seconds,
        )
        try:
            async with httpx.AsyncClient(
                timeout=timeout, transport=self._transport
            ) as client:
                while not self._closed.is_set():
                    try:
                        await self._consume(client)
                        error = TransportError("Stream ended by server")
                    except TransportError as e:
                        error = e
                    except httpx.HTTPError as e:
                        error = TransportError(f"Stream transport error: {e!r}")

                    if self._closed.is_set():
                        break

                    self._failures += 1
                    max_attempts = self.config.max_reconnect_attempts
                    if max_attempts is not None and self._failures > max_attempts:
                        logger.error(
                            f"{error}; giving up after {max_attempts} reconnect attempts"
                        )
                        break

                    self._set_state(ConnectionState.RECONNECTING)
                    delay = self._reconnect_delay()
                    logger.warning(
                        f"{error}; reconnecting in {delay:.1f}s "
                        f"(attempt {self._failures})"
                    )
                    await self._wait_or_close(delay)
                    if self._closed.is_set():
                        break
                    self.reconnects += 1
        finally:
            self._set_state(ConnectionState.CLOSED)
            logger.info("Event stream closed")

    async def _wait_or_close(self, delay: float) -> None:
        try:
            await asyncio.wait_for(self._closed.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def _consume(self, client: httpx.AsyncClient) -> None:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        if self._last_event_id is not None:
            headers["Last-Event-ID"] = self._last_event_id

        async with client.stream("GET", self.config.url, headers=headers) as response:
            if not response.is_success:
                raise TransportError(
                    f"Stream rejected with status {response.status_code}",
                    status_code=response.status_code,
                )
            content_type = response.headers.get("content-type", "")
            if "text/event-stream" not in content_type:
                raise TransportError(f"Unexpected stream content type: {content_type!r}")

            self._failures = 0
            self._set_state(ConnectionState.OPEN)
            logger.info(f"✓ Connected to event stream at {self.config.url}")

            async for message in iter_sse(response.aiter_lines()):
                if message.id is not None:
                    self._last_event_id = message.id
                if message.retry is not None:
                    self._server_retry_seconds = message.retry / 1000
                await self._dispatch(message)

    async def _dispatch(self, message: ServerSentEvent) -> None:
        try:
            event = self.decoder.decode(message)
        except MalformedEventError as e:
            self.malformed_count += 1
            logger.warning(f"Dropping malformed {message.event} event: {e}")
            return

        self.events_received += 1
        await self.events.put(event)

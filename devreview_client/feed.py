"""
Submission change feed.

Keeps one SSE connection to the server's submission stream with:
- Automatic reconnection with exponential backoff
- A mandatory resync (full re-fetch) on every connect, since the server
  does not replay missed events
- Predicate-filtered subscriptions with cancellable handles
"""

from __future__ import annotations

import asyncio
import itertools
import json
from typing import Any, Callable, Coroutine

import structlog

from devreview_shared.schemas.submissions import SubmissionEvent

from .api import ReviewApiClient

log = structlog.get_logger()

# Reconnection parameters
RECONNECT_BASE_SECONDS = 1.0
RECONNECT_MAX_SECONDS = 60.0
RECONNECT_MULTIPLIER = 2.0

STREAM_READY = "stream.ready"

Predicate = Callable[[SubmissionEvent], bool]
EventHandler = Callable[[SubmissionEvent], Coroutine[Any, Any, None]]
ResyncHandler = Callable[[], Coroutine[Any, Any, None]]


def accept_all(event: SubmissionEvent) -> bool:
    return True


class SubmissionFeed:
    """Persistent change stream with subscription management."""

    def __init__(
        self,
        api: ReviewApiClient,
        resync: ResyncHandler | None = None,
        *,
        reconnect_base: float = RECONNECT_BASE_SECONDS,
        reconnect_max: float = RECONNECT_MAX_SECONDS,
    ):
        self._api = api
        self._resync = resync
        self._reconnect_base = reconnect_base
        self._reconnect_max = reconnect_max

        self._listeners: dict[int, tuple[Predicate, EventHandler]] = {}
        self._ids = itertools.count(1)
        self._running = False
        self._connected = False
        self._reconnect_count = 0
        self._resync_count = 0
        self._task: asyncio.Task | None = None

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def reconnect_count(self) -> int:
        return self._reconnect_count

    @property
    def resync_count(self) -> int:
        return self._resync_count

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def set_resync(self, resync: ResyncHandler | None) -> None:
        self._resync = resync

    def subscribe(self, predicate: Predicate | None, on_event: EventHandler) -> Callable[[], None]:
        """Register a handler for events matching ``predicate``.

        Returns a function that removes the handler; calling it twice is harmless.
        """
        listener_id = next(self._ids)
        self._listeners[listener_id] = (predicate or accept_all, on_event)

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    async def start(self) -> None:
        """Start the listen loop in the background."""
        self._running = True
        self._task = asyncio.create_task(self._listen_loop())

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._connected = False
        log.info("feed.stopped")

    async def close(self) -> None:
        """Stop and drop every listener (view teardown)."""
        await self.stop()
        self._listeners.clear()

    async def _listen_loop(self) -> None:
        backoff = self._reconnect_base

        while self._running:
            try:
                await self.connect_once()
                backoff = self._reconnect_base  # Reset on clean disconnect
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                log.warning("feed.connection_lost", error=str(exc), backoff=backoff)

            self._connected = False
            if not self._running:
                break

            self._reconnect_count += 1
            log.info("feed.reconnecting", backoff=backoff, attempt=self._reconnect_count)
            await asyncio.sleep(backoff)
            backoff = min(backoff * RECONNECT_MULTIPLIER, self._reconnect_max)

    async def connect_once(self) -> None:
        """Open the stream and consume it until the server closes it."""
        async with self._api.stream() as response:
            response.raise_for_status()
            self._connected = True
            log.info("feed.connected")

            current_event_type: str | None = None
            current_data_lines: list[str] = []

            async for line in response.aiter_lines():
                line = line.rstrip("\r\n")

                if line.startswith("event:"):
                    current_event_type = line[6:].strip()
                elif line.startswith("data:"):
                    current_data_lines.append(line[5:].strip())
                elif line.startswith(":") or line.startswith("id:") or line.startswith("retry:"):
                    pass
                elif line == "":
                    if current_data_lines:
                        await self._dispatch(current_event_type, current_data_lines)
                    current_event_type = None
                    current_data_lines = []

    async def _dispatch(self, event_type: str | None, data_lines: list[str]) -> None:
        if event_type == STREAM_READY:
            await self._run_resync()
            return

        data_str = "\n".join(data_lines)
        try:
            event = SubmissionEvent.model_validate(json.loads(data_str))
        except ValueError as exc:  # bad JSON or a payload that fails validation
            log.warning("feed.parse_error", event_type=event_type, data=data_str[:200], error=str(exc))
            return

        for predicate, handler in list(self._listeners.values()):
            try:
                if predicate(event):
                    await handler(event)
            except Exception:
                log.exception("feed.handler_error", event_type=event.type, submission_id=str(event.submission_id))

    async def _run_resync(self) -> None:
        self._resync_count += 1
        if self._resync is None:
            return
        try:
            await self._resync()
            log.info("feed.resynced", count=self._resync_count)
        except Exception:
            log.exception("feed.resync_failed")

"""In-process pub/sub event bus for sync progress events."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

import structlog

Handler = Callable[["SyncEvent", dict[str, Any]], None | Awaitable[None]]


class SyncEvent(StrEnum):
    """All event types published by the sync engines.

    Typed payload definitions for each event live in
    :mod:`ccrecall.events.payloads`.

    **Payload schemas by event:**

    ``SYNC_STARTED``
        :class:`~ccrecall.events.payloads.SyncStartedPayload`:
        ``root: str``, ``files: int``

    ``FILE_SYNCED``
        :class:`~ccrecall.events.payloads.FileSyncedPayload`:
        ``file_path: str``, ``messages_added: int``, ``byte_offset: int``

    ``SYNC_PROGRESS``
        :class:`~ccrecall.events.payloads.SyncProgressPayload`:
        ``files_done: int``, ``files_total: int``, ``messages_added: int``.
        Published every ``SyncConfig.progress_interval`` files.

    ``SYNC_COMPLETED``
        All fields of :class:`~ccrecall.models.records.SyncResult`
        serialized via ``model_dump()``.

    ``TEAM_SYNC_COMPLETED``
        All fields of :class:`~ccrecall.models.records.TeamSyncResult`.
    """

    SYNC_STARTED = "sync.started"
    FILE_SYNCED = "sync.file_synced"
    SYNC_PROGRESS = "sync.progress"
    SYNC_COMPLETED = "sync.completed"
    TEAM_SYNC_COMPLETED = "teams.completed"


class EventBus:
    """
    Simple in-process pub/sub event bus.

    - Sync handlers are called inline within ``publish()``.
    - Async handlers are scheduled via ``asyncio.create_task()`` (fire-and-forget).
    - Handler exceptions are logged but never propagate to the publisher.

    Example::

        bus = EventBus()

        def on_progress(event, payload):
            print(f"{payload['files_done']}/{payload['files_total']} files")

        bus.subscribe(SyncEvent.SYNC_PROGRESS, on_progress)
    """

    def __init__(self, logger: structlog.BoundLogger | None = None) -> None:
        self._handlers: dict[SyncEvent, list[Handler]] = {}
        self._global_handlers: list[Handler] = []
        self._logger = logger or structlog.get_logger("ccrecall.events")

    def subscribe(self, event: SyncEvent, handler: Handler) -> None:
        """Register a handler for one event type. It may be sync or async."""
        self._handlers.setdefault(event, []).append(handler)

    def subscribe_all(self, handler: Handler) -> None:
        """Register a handler for every event type."""
        self._global_handlers.append(handler)

    def unsubscribe(self, event: SyncEvent, handler: Handler) -> None:
        """Remove a previously registered handler. No-op if not found."""
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: SyncEvent, payload: dict[str, Any]) -> None:
        """
        Deliver *payload* to the handlers of *event*, then to global handlers.

        Exceptions from any handler are logged and swallowed.
        """
        for handler in [*self._handlers.get(event, []), *self._global_handlers]:
            try:
                result = handler(event, payload)
                if asyncio.iscoroutine(result):
                    try:
                        loop = asyncio.get_running_loop()
                    except RuntimeError:
                        # No running loop: the coroutine can never be awaited.
                        result.close()
                        continue
                    loop.create_task(result)  # noqa: RUF006
            except Exception as exc:
                self._logger.error(
                    "event_handler_error",
                    event_type=str(event),
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(exc),
                )

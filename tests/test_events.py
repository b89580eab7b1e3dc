"""Tests for the in-process EventBus."""

from __future__ import annotations

import asyncio
from typing import Any

from structlog.testing import capture_logs

from ccrecall.events.bus import EventBus, SyncEvent


class TestEventBus:
    def test_subscribe_and_publish(self) -> None:
        bus = EventBus()
        seen: list[dict[str, Any]] = []
        bus.subscribe(SyncEvent.FILE_SYNCED, lambda e, p: seen.append(p))
        bus.publish(SyncEvent.FILE_SYNCED, {"file_path": "a"})
        bus.publish(SyncEvent.SYNC_STARTED, {"root": "/", "files": 0})
        assert seen == [{"file_path": "a"}]

    def test_subscribe_all_runs_after_specific(self) -> None:
        bus = EventBus()
        order: list[str] = []
        bus.subscribe_all(lambda e, p: order.append("all"))
        bus.subscribe(SyncEvent.SYNC_COMPLETED, lambda e, p: order.append("specific"))
        bus.publish(SyncEvent.SYNC_COMPLETED, {})
        assert order == ["specific", "all"]

    def test_unsubscribe(self) -> None:
        bus = EventBus()
        seen: list[SyncEvent] = []

        def handler(event: SyncEvent, payload: dict[str, Any]) -> None:
            seen.append(event)

        bus.subscribe(SyncEvent.SYNC_PROGRESS, handler)
        bus.unsubscribe(SyncEvent.SYNC_PROGRESS, handler)
        bus.unsubscribe(SyncEvent.SYNC_PROGRESS, handler)  # no-op
        bus.publish(SyncEvent.SYNC_PROGRESS, {})
        assert seen == []

    def test_handler_exception_is_swallowed(self) -> None:
        bus = EventBus()
        seen: list[str] = []

        def broken(event: SyncEvent, payload: dict[str, Any]) -> None:
            raise ValueError("nope")

        bus.subscribe(SyncEvent.SYNC_STARTED, broken)
        bus.subscribe(SyncEvent.SYNC_STARTED, lambda e, p: seen.append("after"))
        with capture_logs() as logs:
            bus.publish(SyncEvent.SYNC_STARTED, {})
        assert seen == ["after"]
        (entry,) = logs
        assert entry["event"] == "event_handler_error"
        assert entry["event_type"] == "sync.started"
        assert entry["error"] == "nope"

    async def test_async_handler_scheduled(self) -> None:
        bus = EventBus()
        done = asyncio.Event()

        async def handler(event: SyncEvent, payload: dict[str, Any]) -> None:
            done.set()

        bus.subscribe(SyncEvent.SYNC_COMPLETED, handler)
        bus.publish(SyncEvent.SYNC_COMPLETED, {})
        await asyncio.wait_for(done.wait(), timeout=1)

    def test_async_handler_without_loop_is_dropped(self) -> None:
        bus = EventBus()

        async def handler(event: SyncEvent, payload: dict[str, Any]) -> None:
            raise AssertionError("never awaited")

        bus.subscribe(SyncEvent.SYNC_COMPLETED, handler)
        bus.publish(SyncEvent.SYNC_COMPLETED, {})

    def test_event_values(self) -> None:
        assert str(SyncEvent.FILE_SYNCED) == "sync.file_synced"

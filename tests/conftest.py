"""Shared fixtures for ccrecall tests."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

from ccrecall.events.bus import EventBus, SyncEvent
from ccrecall.models.config import RecallConfig, StoreConfig, SyncConfig, TeamsConfig
from ccrecall.store.database import RecallStore
from ccrecall.store.pool import StorePool
from ccrecall.sync.engine import SyncEngine


@pytest.fixture
def config(tmp_path):
    """RecallConfig with every path inside tmp_path."""
    return RecallConfig(
        store=StoreConfig(db_path=str(tmp_path / "test.db")),
        sync=SyncConfig(projects_dir=tmp_path / "projects"),
        teams=TeamsConfig(teams_dir=tmp_path / "teams", tasks_dir=tmp_path / "tasks"),
    )


@pytest.fixture
def projects_dir(config) -> Path:
    path = Path(config.sync.projects_dir)
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest_asyncio.fixture
async def pool(config):
    """StorePool for the test database. Closed after each test."""
    p = StorePool()
    yield p
    await p.close_all()


@pytest_asyncio.fixture
async def store(config, pool):
    """Initialized RecallStore backed by a temp SQLite database (pool-managed)."""
    s = RecallStore(config.store, pool=pool)
    await s.initialize()
    yield s
    await s.close()  # no-op for pool-managed conn; pool fixture closes the connection


@pytest.fixture
def event_bus():
    """EventBus with a .collected list for asserting events."""
    bus = EventBus()
    collected: list[tuple[SyncEvent, dict[str, Any]]] = []

    def _collect(event: SyncEvent, payload: dict[str, Any]) -> None:
        collected.append((event, payload))

    bus.subscribe_all(_collect)
    bus.collected = collected  # type: ignore[attr-defined]
    return bus


@pytest.fixture
def engine(store, config, event_bus, projects_dir):
    return SyncEngine(store, config.sync, event_bus=event_bus)


def make_record(
    uuid: str,
    session_id: str = "sess-1",
    type: str = "user",
    content: Any = "hello",
    timestamp: Any = "2025-01-01T00:00:00Z",
    **extra: Any,
) -> dict[str, Any]:
    """Helper to create a transcript record as the producer writes it."""
    record: dict[str, Any] = {
        "uuid": uuid,
        "sessionId": session_id,
        "type": type,
        "timestamp": timestamp,
    }
    if type != "summary":
        record["message"] = {"role": type, "content": content}
    record.update(extra)
    return record


def assistant_record(
    uuid: str,
    session_id: str = "sess-1",
    blocks: list[dict[str, Any]] | None = None,
    usage: dict[str, int] | None = None,
    timestamp: Any = "2025-01-01T00:00:01Z",
    **extra: Any,
) -> dict[str, Any]:
    """Helper to create an assistant record with content blocks and usage."""
    record = make_record(
        uuid,
        session_id,
        type="assistant",
        content=blocks if blocks is not None else [{"type": "text", "text": "ok"}],
        timestamp=timestamp,
        **extra,
    )
    record["message"]["model"] = "claude-sonnet-4"
    if usage is not None:
        record["message"]["usage"] = usage
    return record


def tool_use(call_id: str, name: str, **tool_input: Any) -> dict[str, Any]:
    return {"type": "tool_use", "id": call_id, "name": name, "input": tool_input}


def write_transcript(
    path: Path,
    records: list[dict[str, Any] | str],
    *,
    append: bool = False,
    partial: str | None = None,
) -> None:
    """
    Write records as JSON lines. Strings are written verbatim as raw lines.

    ``partial`` is appended without a trailing newline, like a line the
    producer is still writing.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [r if isinstance(r, str) else json.dumps(r) for r in records]
    text = "".join(line + "\n" for line in lines)
    if partial is not None:
        text += partial
    with path.open("a" if append else "w", encoding="utf-8") as fh:
        fh.write(text)
    bump_mtime(path)


def bump_mtime(path: Path) -> None:
    """Move the file's mtime forward so the next sync treats it as changed."""
    stat = path.stat()
    bumped = max(stat.st_mtime_ns, bump_mtime.last_ns) + 2_000_000_000
    bump_mtime.last_ns = bumped
    os.utime(path, ns=(bumped, bumped))


bump_mtime.last_ns = 0  # type: ignore[attr-defined]

"""ccrecall command line: sync transcripts and query the archive."""

from __future__ import annotations

import argparse
import asyncio
import csv
import io
import json
import logging
import sys
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from ccrecall import __version__
from ccrecall.events.bus import EventBus, SyncEvent
from ccrecall.models.config import DEFAULT_DB_PATH, RecallConfig, StoreConfig
from ccrecall.store.database import RecallStore
from ccrecall.store.errors import RecallStoreError
from ccrecall.sync.engine import SyncEngine
from ccrecall.sync.teams import TeamSync

FORMATS = ("table", "json", "csv")
# Cell width cap for table output unless --wide is given.
MAX_CELL_WIDTH = 60


def configure_logging(verbose: bool = False) -> None:
    """Send structlog output to stderr; debug when *verbose*, warnings otherwise."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.WARNING
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


# ── Output Formatting ──────────────────────────────────────────────────────────


def _format_ms(value: int | None) -> str:
    if value is None:
        return ""
    return datetime.fromtimestamp(value / 1000, tz=UTC).strftime("%Y-%m-%d %H:%M")


def _cell(value: Any, wide: bool) -> str:
    text = "" if value is None else str(value).replace("\n", " ")
    if not wide and len(text) > MAX_CELL_WIDTH:
        return text[: MAX_CELL_WIDTH - 3] + "..."
    return text


def render(
    columns: Sequence[str], rows: Sequence[Sequence[Any]], fmt: str = "table", wide: bool = False
) -> str:
    """Render rows as an aligned text table, a JSON array of objects, or CSV."""
    if fmt == "json":
        return json.dumps([dict(zip(columns, row, strict=True)) for row in rows], indent=2)
    if fmt == "csv":
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        writer.writerow(columns)
        writer.writerows(rows)
        return buf.getvalue().rstrip("\n")

    cells = [[_cell(v, wide) for v in row] for row in rows]
    widths = [len(c) for c in columns]
    for row in cells:
        widths = [max(w, len(v)) for w, v in zip(widths, row, strict=True)]
    lines = [
        "  ".join(c.ljust(w) for c, w in zip(columns, widths, strict=True)).rstrip(),
        "  ".join("-" * w for w in widths),
    ]
    lines.extend(
        "  ".join(v.ljust(w) for v, w in zip(row, widths, strict=True)).rstrip() for row in cells
    )
    return "\n".join(lines)


# ── Commands ───────────────────────────────────────────────────────────────────


async def cmd_sync(args: argparse.Namespace, store: RecallStore) -> None:
    config = RecallConfig()
    bus = EventBus()
    if args.verbose:
        root = Path(config.sync.projects_dir)

        def on_file(event: SyncEvent, payload: dict[str, Any]) -> None:
            rel = Path(payload["file_path"]).relative_to(root)
            print(f"Processing: {rel} (+{payload['messages_added']})")

        bus.subscribe(SyncEvent.FILE_SYNCED, on_file)
    bus.subscribe(
        SyncEvent.SYNC_PROGRESS,
        lambda event, payload: print(
            f"  Progress: {payload['files_done']}/{payload['files_total']}", file=sys.stderr
        ),
    )

    print("Syncing transcripts...")
    result = await SyncEngine(store, config.sync, event_bus=bus).run()
    print("Syncing teams...")
    teams = await TeamSync(store, config.teams, event_bus=bus).run()
    print(
        "\nDone!\n"
        f"  Files scanned:    {result.files_scanned}\n"
        f"  Files processed:  {result.files_processed}\n"
        f"  Messages added:   {result.messages_added}\n"
        f"  Sessions found:   {result.sessions_added}\n"
        f"  Tool calls:       {result.tool_calls_added}\n"
        f"  Tool results:     {result.tool_results_added}\n"
        f"  Lines rejected:   {result.lines_rejected}\n"
        f"  Teams synced:     {teams.teams_synced}\n"
        f"  Team members:     {teams.members_synced}\n"
        f"  Team tasks:       {teams.tasks_synced}"
    )


async def cmd_stats(args: argparse.Namespace, store: RecallStore) -> None:
    s = await store.get_stats()
    print(
        f"Database: {store.db_path}\n"
        f"  Sessions:     {s.sessions:,}\n"
        f"  Messages:     {s.messages:,}\n"
        f"  Tool calls:   {s.tool_calls:,}\n"
        f"  Tool results: {s.tool_results:,}\n"
        f"  Teams:        {s.teams:,}\n"
        f"  Team members: {s.team_members:,}\n"
        f"  Team tasks:   {s.team_tasks:,}\n"
        "  Tokens:\n"
        f"    Input:          {s.tokens.input:,}\n"
        f"    Output:         {s.tokens.output:,}\n"
        f"    Cache read:     {s.tokens.cache_read:,}\n"
        f"    Cache creation: {s.tokens.cache_creation:,}"
    )


async def cmd_search(args: argparse.Namespace, store: RecallStore) -> None:
    if args.rebuild:
        await store.rebuild_index()
        print("Search index rebuilt.")
    if args.term is None:
        if not args.rebuild:
            raise SystemExit("search: a search term is required")
        return

    results = await store.search(args.term, project=args.project, limit=args.limit)
    if not results:
        print(f"No results for {args.term!r}")
        return
    for r in results:
        print(f"[{_format_ms(r.timestamp)}] {r.type} in {r.project_path} ({r.session_id})")
        print(f"  {r.snippet}")
        print()
    print(f"{len(results)} result(s)")


async def cmd_sessions(args: argparse.Namespace, store: RecallStore) -> None:
    sessions = await store.get_sessions(project=args.project, limit=args.limit)
    if args.format == "json":
        print(json.dumps([s.model_dump() for s in sessions], indent=2))
        return
    columns = ["id", "project", "branch", "last_active", "messages", "tokens", "summary"]
    rows = [
        [
            s.id,
            s.project_path,
            s.git_branch,
            _format_ms(s.last_timestamp),
            s.message_count,
            s.total_tokens,
            s.summary,
        ]
        for s in sessions
    ]
    print(render(columns, rows, args.format))


async def cmd_query(args: argparse.Namespace, store: RecallStore) -> None:
    result = await store.query(args.sql, limit=args.limit)
    print(render(result.columns, result.rows, args.format, wide=args.wide))


async def cmd_tools(args: argparse.Namespace, store: RecallStore) -> None:
    stats = await store.get_tool_stats(project=args.project, limit=args.top)
    rows = [[t.tool_name, t.count, t.percentage] for t in stats]
    print(render(["tool", "count", "percent"], rows, args.format))


async def cmd_schema(args: argparse.Namespace, store: RecallStore) -> None:
    tables = await store.get_schema(args.table)
    if args.format == "json":
        print(json.dumps([t.model_dump() for t in tables], indent=2))
        return
    if args.format == "csv":
        rows = [
            [t.name, c.name, c.type, c.not_null, c.default, c.primary_key]
            for t in tables
            for c in t.columns
        ]
        print(render(["table", "column", "type", "not_null", "default", "pk"], rows, "csv"))
        return

    blocks = []
    for t in tables:
        lines = [f"{t.name} ({t.row_count:,} rows)"]
        for c in t.columns:
            flags = [f for f, on in (("PK", c.primary_key), ("NOT NULL", c.not_null)) if on]
            if c.default is not None:
                flags.append(f"DEFAULT {c.default}")
            lines.append(f"  {c.name:<24} {c.type:<10} {' '.join(flags)}".rstrip())
        for fk in t.foreign_keys:
            lines.append(f"  FK {fk.column} -> {fk.references_table}({fk.references_column})")
        for ix in t.indexes:
            unique = "UNIQUE " if ix.unique else ""
            lines.append(f"  {unique}INDEX {ix.name} ({', '.join(ix.columns)})")
        blocks.append("\n".join(lines))
    print("\n\n".join(blocks))


# ── Parser ─────────────────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ccrecall",
        description="Sync agent transcripts to SQLite and recall context from past sessions.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-d", "--db", default=None, help=f"Database path (default: {DEFAULT_DB_PATH})"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_sync = sub.add_parser("sync", help="Sync transcripts and teams into the database.")
    p_sync.add_argument("-v", "--verbose", action="store_true", help="Show detailed output")
    p_sync.set_defaults(func=cmd_sync)

    p_stats = sub.add_parser("stats", help="Show database statistics.")
    p_stats.set_defaults(func=cmd_stats)

    p_search = sub.add_parser("search", help="Full-text search over message content.")
    p_search.add_argument("term", nargs="?", help="Words, \"phrases\", AND/OR/NOT, prefix*")
    p_search.add_argument("-l", "--limit", type=int, default=20, metavar="N")
    p_search.add_argument("-p", "--project", default=None, help="Project path substring")
    p_search.add_argument("--rebuild", action="store_true", help="Rebuild the index first")
    p_search.set_defaults(func=cmd_search)

    p_sessions = sub.add_parser("sessions", help="List recent sessions.")
    p_sessions.add_argument("-l", "--limit", type=int, default=20, metavar="N")
    p_sessions.add_argument("-p", "--project", default=None, help="Project path substring")
    p_sessions.add_argument("-f", "--format", choices=FORMATS, default="table")
    p_sessions.set_defaults(func=cmd_sessions)

    p_query = sub.add_parser("query", help="Run a read-only SQL query.")
    p_query.add_argument("sql", help="SQL statement")
    p_query.add_argument("-l", "--limit", type=int, default=None, metavar="N")
    p_query.add_argument("-f", "--format", choices=FORMATS, default="table")
    p_query.add_argument("-w", "--wide", action="store_true", help="Do not truncate cells")
    p_query.set_defaults(func=cmd_query)

    p_tools = sub.add_parser("tools", help="Show tool usage statistics.")
    p_tools.add_argument("-t", "--top", type=int, default=None, metavar="N")
    p_tools.add_argument("-p", "--project", default=None, help="Project path substring")
    p_tools.add_argument("-f", "--format", choices=FORMATS, default="table")
    p_tools.set_defaults(func=cmd_tools)

    p_schema = sub.add_parser("schema", help="Describe database tables.")
    p_schema.add_argument("table", nargs="?", default=None)
    p_schema.add_argument("-f", "--format", choices=FORMATS, default="table")
    p_schema.set_defaults(func=cmd_schema)

    return parser


async def _run(args: argparse.Namespace) -> None:
    config = StoreConfig(db_path=args.db) if args.db else StoreConfig()
    async with RecallStore(config) as store:
        await args.func(args, store)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(verbose=getattr(args, "verbose", False))
    try:
        asyncio.run(_run(args))
    except RecallStoreError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""Tests for the ccrecall command line."""

from __future__ import annotations

import csv
import io
import json
from pathlib import Path

import pytest
import structlog

from ccrecall.cli import build_parser, main, render
from tests.conftest import assistant_record, make_record, tool_use, write_transcript


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


@pytest.fixture
def home(tmp_path, monkeypatch) -> Path:
    """A fake home directory holding one project with two transcripts."""
    monkeypatch.setenv("HOME", str(tmp_path))
    projects = tmp_path / ".claude" / "projects"
    write_transcript(
        projects / "-home-user-alpha" / "one.jsonl",
        [
            make_record("u1", session_id="sa", content="Fix the authentication bug"),
            assistant_record(
                "a1",
                session_id="sa",
                blocks=[tool_use("t1", "Read", path="x"), tool_use("t2", "Read", path="y")],
            ),
        ],
    )
    write_transcript(
        projects / "-home-user-beta" / "two.jsonl",
        [assistant_record("a2", session_id="sb", blocks=[tool_use("t3", "Bash", cmd="ls")])],
    )
    return tmp_path


@pytest.fixture
def db(home) -> str:
    return str(home / "cli.db")


def run(capsys, *argv: str) -> tuple[int, str, str]:
    code = main(list(argv))
    captured = capsys.readouterr()
    return code, captured.out, captured.err


class TestParser:
    def test_global_db_flag(self) -> None:
        args = build_parser().parse_args(["-d", "/tmp/x.db", "stats"])
        assert args.db == "/tmp/x.db"
        assert args.command == "stats"

    def test_subcommand_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_format_choices(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["sessions", "-f", "xml"])


class TestRender:
    def test_table(self) -> None:
        out = render(["a", "bb"], [[1, None], ["long", "x"]])
        lines = out.splitlines()
        assert lines[0] == "a     bb"
        assert lines[2] == "1"
        assert lines[3] == "long  x"

    def test_table_truncates_unless_wide(self) -> None:
        value = "x" * 100
        assert "..." in render(["c"], [[value]])
        assert value in render(["c"], [[value]], wide=True)

    def test_json_and_csv(self) -> None:
        assert json.loads(render(["a"], [[1]], "json")) == [{"a": 1}]
        rows = list(csv.reader(io.StringIO(render(["a", "b"], [[1, "x,y"]], "csv"))))
        assert rows == [["a", "b"], ["1", "x,y"]]


class TestCommands:
    def test_sync_then_stats(self, capsys, db) -> None:
        code, out, _ = run(capsys, "--db", db, "sync")
        assert code == 0
        assert "Messages added:   3" in out
        assert "Sessions found:   2" in out
        assert "Tool calls:       3" in out

        code, out, _ = run(capsys, "--db", db, "stats")
        assert code == 0
        assert "Messages:     3" in out

    def test_sync_verbose_lists_files(self, capsys, db) -> None:
        code, out, _ = run(capsys, "-d", db, "sync", "-v")
        assert code == 0
        assert "Processing: -home-user-alpha/one.jsonl (+2)" in out

    def test_search(self, capsys, db) -> None:
        run(capsys, "--db", db, "sync")
        code, out, _ = run(capsys, "--db", db, "search", "authentication")
        assert code == 0
        assert ">>>authentication<<<" in out
        assert "1 result(s)" in out

        _, out, _ = run(capsys, "--db", db, "search", "authentication", "-p", "beta")
        assert "No results" in out

    def test_search_rebuild_only(self, capsys, db) -> None:
        code, out, _ = run(capsys, "--db", db, "search", "--rebuild")
        assert code == 0
        assert "rebuilt" in out

    def test_search_syntax_error_exits_1(self, capsys, db) -> None:
        code, _, err = run(capsys, "--db", db, "search", "auth AND")
        assert code == 1
        assert err.startswith("error:")

    def test_sessions_json(self, capsys, db) -> None:
        run(capsys, "--db", db, "sync")
        code, out, _ = run(capsys, "--db", db, "sessions", "-f", "json", "-p", "alpha")
        assert code == 0
        (session,) = json.loads(out)
        assert session["id"] == "sa"
        assert session["project_path"] == "/home/user/alpha"
        assert session["message_count"] == 2

    def test_tools_csv(self, capsys, db) -> None:
        run(capsys, "--db", db, "sync")
        code, out, _ = run(capsys, "--db", db, "tools", "-f", "csv")
        assert code == 0
        rows = list(csv.reader(io.StringIO(out)))
        assert rows[0] == ["tool", "count", "percent"]
        assert rows[1] == ["Read", "2", "66.7"]
        assert rows[2] == ["Bash", "1", "33.3"]

    def test_query(self, capsys, db) -> None:
        run(capsys, "--db", db, "sync")
        code, out, _ = run(
            capsys, "--db", db, "query", "SELECT uuid FROM messages ORDER BY uuid", "-f", "json"
        )
        assert code == 0
        assert json.loads(out) == [{"uuid": "a1"}, {"uuid": "a2"}, {"uuid": "u1"}]

    def test_query_write_rejected(self, capsys, db) -> None:
        code, _, err = run(capsys, "--db", db, "query", "DROP TABLE messages")
        assert code == 1
        assert "error:" in err

    def test_schema(self, capsys, db) -> None:
        code, out, _ = run(capsys, "--db", db, "schema", "tool_calls")
        assert code == 0
        assert out.startswith("tool_calls (0 rows)")
        assert "FK message_uuid -> messages(uuid)" in out

    def test_schema_unknown_table(self, capsys, db) -> None:
        code, _, err = run(capsys, "--db", db, "schema", "nope")
        assert code == 1
        assert "Table not found" in err

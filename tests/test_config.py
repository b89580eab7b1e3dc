"""Tests for configuration models."""

from __future__ import annotations

from importlib.metadata import version
from pathlib import Path

import pytest
from pydantic import ValidationError

import ccrecall
from ccrecall.models.config import RecallConfig, StoreConfig, SyncConfig, TeamsConfig


class TestVersion:
    def test_matches_installed_metadata(self) -> None:
        assert ccrecall.__version__ == version("ccrecall")


class TestStoreConfigDbPathExpansion:
    """db_path accepts str | Path, expands ~ eagerly."""

    def test_default_is_expanded(self) -> None:
        cfg = StoreConfig()
        assert "~" not in cfg.db_path
        assert cfg.db_path.endswith("/.claude/ccrecall.db")
        assert cfg.is_default_path

    def test_tilde_expanded(self) -> None:
        cfg = StoreConfig(db_path="~/.ccrecall/test.db")
        assert "~" not in cfg.db_path
        assert cfg.db_path.startswith("/")
        assert not cfg.is_default_path

    def test_path_object_accepted(self, tmp_path: Path) -> None:
        cfg = StoreConfig(db_path=tmp_path / "test.db")
        assert isinstance(cfg.db_path, str)
        assert str(tmp_path.resolve()) in cfg.db_path

    def test_relative_path_resolved(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        cfg = StoreConfig(db_path="relative/test.db")
        assert cfg.db_path.startswith("/")


class TestSyncConfig:
    def test_defaults(self) -> None:
        cfg = SyncConfig()
        assert cfg.projects_dir.endswith("/.claude/projects")
        assert cfg.pattern == "**/*.jsonl"
        assert cfg.progress_interval == 100

    def test_progress_interval_bounds(self) -> None:
        with pytest.raises(ValidationError):
            SyncConfig(progress_interval=0)


class TestTeamsConfig:
    def test_defaults_expanded(self) -> None:
        cfg = TeamsConfig()
        assert cfg.teams_dir.endswith("/.claude/teams")
        assert cfg.tasks_dir.endswith("/.claude/tasks")


class TestRecallConfig:
    def test_default(self) -> None:
        cfg = RecallConfig.default()
        assert cfg.store.wal_mode is True
        assert cfg.store.connection_timeout == 30.0

    def test_sub_configs_overridable(self, tmp_path: Path) -> None:
        cfg = RecallConfig(sync=SyncConfig(projects_dir=tmp_path))
        assert cfg.sync.projects_dir == str(tmp_path.resolve())
        assert cfg.store == StoreConfig()

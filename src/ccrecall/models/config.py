"""Configuration models for the ccrecall store and sync engines."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_DB_PATH = "~/.claude/ccrecall.db"
LEGACY_DB_PATH = "~/.claude/cclog.db"


def _expand(value: str | Path) -> str:
    return str(Path(value).expanduser().resolve())


class StoreConfig(BaseModel):
    """Configuration for the SQLite persistence layer."""

    model_config = ConfigDict(validate_default=True)

    db_path: str = Field(
        default=DEFAULT_DB_PATH,
        description="Path to the SQLite database file. ~ is expanded eagerly.",
    )

    wal_mode: bool = True
    """Use WAL journal mode for better concurrent read performance."""

    connection_timeout: float = 30.0
    """Seconds to wait on a locked database before raising."""

    migrate_legacy: bool = True
    """Rename ``~/.claude/cclog.db`` to the default path when only the former exists."""

    @field_validator("db_path", mode="before")
    @classmethod
    def expand_db_path(cls, value: str | Path) -> str:
        return _expand(value)

    @property
    def is_default_path(self) -> bool:
        return self.db_path == _expand(DEFAULT_DB_PATH)


class SyncConfig(BaseModel):
    """Configuration for transcript discovery and incremental scanning."""

    model_config = ConfigDict(validate_default=True)

    projects_dir: str = Field(
        default="~/.claude/projects",
        description="Root directory scanned recursively for transcript files.",
    )

    pattern: str = Field(
        default="**/*.jsonl",
        description="Glob pattern, relative to projects_dir, selecting transcript files.",
    )

    progress_interval: int = Field(
        default=100,
        ge=1,
        description="Publish a progress event every N discovered files.",
    )

    @field_validator("projects_dir", mode="before")
    @classmethod
    def expand_projects_dir(cls, value: str | Path) -> str:
        return _expand(value)


class TeamsConfig(BaseModel):
    """Locations of team configuration and task files."""

    model_config = ConfigDict(validate_default=True)

    teams_dir: str = "~/.claude/teams"
    tasks_dir: str = "~/.claude/tasks"

    @field_validator("teams_dir", "tasks_dir", mode="before")
    @classmethod
    def expand_dirs(cls, value: str | Path) -> str:
        return _expand(value)


class RecallConfig(BaseModel):
    """
    Top-level configuration.

    All sub-configs have sensible defaults and can be overridden individually.

    Example::

        config = RecallConfig(
            store=StoreConfig(db_path="/tmp/recall.db"),
            sync=SyncConfig(projects_dir="/data/transcripts"),
        )
    """

    store: StoreConfig = Field(default_factory=StoreConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    teams: TeamsConfig = Field(default_factory=TeamsConfig)

    @classmethod
    def default(cls) -> RecallConfig:
        """Return a config instance with all defaults."""
        return cls()

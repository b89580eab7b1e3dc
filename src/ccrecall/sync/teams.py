"""Ingestion of agent team configurations and their shared task lists.

Layout on disk::

    <teams_dir>/<team>/config.json     team metadata and members[]
    <tasks_dir>/<team>/<task>.json     one file per task

Each team is written in its own transaction. A file that cannot be read or
does not validate is logged and skipped; it never aborts the pass. An
invalid entry in ``members`` drops only that member.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ccrecall.events.bus import EventBus, SyncEvent
from ccrecall.models.config import TeamsConfig
from ccrecall.models.records import Team, TeamMember, TeamSyncResult, TeamTask
from ccrecall.models.transcript import to_epoch_ms
from ccrecall.store.database import RecallStore

ModelT = TypeVar("ModelT", bound=BaseModel)

_logger = structlog.get_logger("ccrecall.sync.teams")

# ── File Shapes ────────────────────────────────────────────────────────────────


def _optional_ms(value: Any) -> int | None:
    if value is None:
        return None
    return to_epoch_ms(value)


class _MemberFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    agent_id: str | None = Field(default=None, alias="agentId")
    name: str = Field(min_length=1)
    agent_type: str | None = Field(default=None, alias="agentType")
    model: str | None = None
    prompt: str | None = None
    color: str | None = None
    cwd: str | None = None
    joined_at: int | None = Field(default=None, alias="joinedAt")

    @field_validator("joined_at", mode="before")
    @classmethod
    def parse_joined_at(cls, value: Any) -> int | None:
        return _optional_ms(value)


class _TeamFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str | None = None
    description: str | None = None
    created_at: int | None = Field(default=None, alias="createdAt")
    lead_session_id: str | None = Field(default=None, alias="leadSessionId")
    members: list[_MemberFile] = Field(default_factory=list)

    @field_validator("created_at", mode="before")
    @classmethod
    def parse_created_at(cls, value: Any) -> int | None:
        return _optional_ms(value)

    @field_validator("members", mode="before")
    @classmethod
    def drop_invalid_members(cls, value: Any) -> list[_MemberFile]:
        if not isinstance(value, list):
            return []
        members = []
        for item in value:
            try:
                members.append(_MemberFile.model_validate(item))
            except ValidationError:
                _logger.debug("team_member_skipped", member=repr(item)[:80])
        return members


class _TaskFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | int
    subject: str = Field(min_length=1)
    description: str | None = None
    status: str = "pending"
    owner: str | None = None
    created_at: int | None = Field(default=None, alias="createdAt")
    completed_at: int | None = Field(default=None, alias="completedAt")

    @field_validator("created_at", "completed_at", mode="before")
    @classmethod
    def parse_times(cls, value: Any) -> int | None:
        return _optional_ms(value)


# ── TeamSync ───────────────────────────────────────────────────────────────────


class TeamSync:
    """
    Upserts every team found under ``teams_dir`` along with its members and tasks.

    Identifiers: a team is keyed by its directory name, a member by its
    ``agentId`` (or ``<team>:<name>`` when absent) and a task by
    ``<team>:<task id>``, since task ids are only unique within a team.
    """

    def __init__(
        self,
        store: RecallStore,
        config: TeamsConfig | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._store = store
        self._config = config or TeamsConfig()
        self._event_bus = event_bus or EventBus()
        self._teams_dir = Path(self._config.teams_dir)
        self._tasks_dir = Path(self._config.tasks_dir)
        self._logger = structlog.get_logger("ccrecall.sync.teams")

    def discover(self) -> list[Path]:
        """Return team directories that contain a ``config.json``, sorted by name."""
        if not self._teams_dir.is_dir():
            return []
        return sorted(p for p in self._teams_dir.iterdir() if (p / "config.json").is_file())

    async def run(self) -> TeamSyncResult:
        """Ingest all teams. Storage errors propagate; bad files are skipped."""
        result = TeamSyncResult()
        for team_dir in self.discover():
            team_file = self._load(team_dir / "config.json", _TeamFile)
            if team_file is None:
                continue
            team, members = self._build_team(team_dir, team_file)
            tasks = self._load_tasks(team.id)

            async with self._store.transaction():
                await self._store.upsert_team(team)
                for member in members:
                    await self._store.upsert_team_member(member)
                for task in tasks:
                    await self._store.upsert_team_task(task)

            result.teams_synced += 1
            result.members_synced += len(members)
            result.tasks_synced += len(tasks)
            self._logger.debug(
                "team_synced", team_id=team.id, members=len(members), tasks=len(tasks)
            )

        self._logger.info("team_sync_completed", **result.model_dump())
        self._event_bus.publish(SyncEvent.TEAM_SYNC_COMPLETED, result.model_dump())
        return result

    def _build_team(self, team_dir: Path, data: _TeamFile) -> tuple[Team, list[TeamMember]]:
        team_id = team_dir.name
        created_at = data.created_at
        if created_at is None:
            created_at = (team_dir / "config.json").stat().st_mtime_ns // 1_000_000
        team = Team(
            id=team_id,
            name=data.name or team_id,
            description=data.description,
            lead_session_id=data.lead_session_id,
            created_at=created_at,
        )
        members = [
            TeamMember(
                id=m.agent_id or f"{team_id}:{m.name}",
                team_id=team_id,
                name=m.name,
                agent_type=m.agent_type,
                model=m.model,
                prompt=m.prompt,
                color=m.color,
                cwd=m.cwd,
                joined_at=m.joined_at if m.joined_at is not None else created_at,
            )
            for m in data.members
        ]
        return team, members

    def _load_tasks(self, team_id: str) -> list[TeamTask]:
        task_dir = self._tasks_dir / team_id
        if not task_dir.is_dir():
            return []
        tasks: list[TeamTask] = []
        for path in sorted(task_dir.glob("*.json")):
            data = self._load(path, _TaskFile)
            if data is None:
                continue
            tasks.append(
                TeamTask(
                    id=f"{team_id}:{data.id}",
                    team_id=team_id,
                    owner_name=data.owner,
                    subject=data.subject,
                    description=data.description,
                    status=data.status,
                    created_at=data.created_at,
                    completed_at=data.completed_at,
                )
            )
        return tasks

    def _load(self, path: Path, model: type[ModelT]) -> ModelT | None:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return model.model_validate(raw)
        except (OSError, ValueError) as exc:
            # ValidationError and JSONDecodeError are both ValueErrors.
            self._logger.warning("team_file_skipped", path=str(path), error=str(exc))
            return None

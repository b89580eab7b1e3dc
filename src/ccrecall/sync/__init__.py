"""Transcript and team ingestion."""

from ccrecall.sync.engine import SyncEngine, derive_project_path
from ccrecall.sync.teams import TeamSync

__all__ = ["SyncEngine", "TeamSync", "derive_project_path"]

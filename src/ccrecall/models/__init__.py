"""ccrecall data models."""

from ccrecall.models.config import RecallConfig, StoreConfig, SyncConfig, TeamsConfig
from ccrecall.models.records import (
    ColumnInfo,
    ForeignKeyInfo,
    IndexInfo,
    QueryResult,
    SearchResult,
    SessionSummary,
    StoreStats,
    SyncResult,
    TableInfo,
    Team,
    TeamMember,
    TeamSyncResult,
    TeamTask,
    TokenTotals,
    ToolStat,
)
from ccrecall.models.transcript import (
    ContentBlock,
    MessageBody,
    OtherBlock,
    ParsedMessage,
    TextBlock,
    ThinkingBlock,
    TokenUsage,
    ToolCall,
    ToolResult,
    ToolResultBlock,
    ToolUseBlock,
    TranscriptRecord,
)

__all__ = [
    # Config
    "RecallConfig",
    "StoreConfig",
    "SyncConfig",
    "TeamsConfig",
    # Transcript
    "ContentBlock",
    "MessageBody",
    "OtherBlock",
    "TextBlock",
    "ThinkingBlock",
    "ToolResultBlock",
    "ToolUseBlock",
    "TranscriptRecord",
    "ParsedMessage",
    "TokenUsage",
    "ToolCall",
    "ToolResult",
    # Teams
    "Team",
    "TeamMember",
    "TeamTask",
    # Results
    "SyncResult",
    "TeamSyncResult",
    "StoreStats",
    "TokenTotals",
    "SessionSummary",
    "ToolStat",
    "SearchResult",
    "TableInfo",
    "ColumnInfo",
    "ForeignKeyInfo",
    "IndexInfo",
    "QueryResult",
]

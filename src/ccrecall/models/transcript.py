"""Transcript record and content block models."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    ValidationError,
    ValidatorFunctionWrapHandler,
    WrapValidator,
    field_validator,
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)


def _or_none(value: Any, handler: ValidatorFunctionWrapHandler) -> Any:
    """Degrade a malformed optional field to ``None`` instead of failing the record."""
    try:
        return handler(value)
    except ValidationError:
        return None


def _whole_number(value: Any) -> Any:
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return value


OptionalStr = Annotated[str | None, WrapValidator(_or_none)]
OptionalCount = Annotated[int | None, BeforeValidator(_whole_number), WrapValidator(_or_none)]


def to_epoch_ms(value: Any) -> int:
    """
    Convert a producer timestamp into Unix milliseconds.

    Accepts ISO-8601 strings (``Z`` suffix, explicit offset, or naive UTC)
    and numeric epoch milliseconds.

    Raises:
        ValueError: If the value cannot be interpreted as a point in time.
    """
    if isinstance(value, bool):
        raise ValueError("boolean is not a timestamp")
    if isinstance(value, int | float):
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError("non-finite timestamp")
        return int(value)
    if isinstance(value, str) and value.strip():
        parsed = datetime.fromisoformat(value.strip())
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return (parsed - _EPOCH) // _ONE_MS
    raise ValueError(f"unparseable timestamp: {value!r}")


# ── Content Blocks ─────────────────────────────────────────────────────────────


class TextBlock(BaseModel):
    """A plain text block."""

    type: Literal["text"] = "text"
    text: OptionalStr = None


class ThinkingBlock(BaseModel):
    """Extended-thinking text emitted before the visible answer."""

    type: Literal["thinking"] = "thinking"
    thinking: OptionalStr = None


class ToolUseBlock(BaseModel):
    """A tool invocation requested by the assistant."""

    type: Literal["tool_use"] = "tool_use"
    id: OptionalStr = None
    name: OptionalStr = None
    input: Any = None


class ToolResultBlock(BaseModel):
    """The outcome of a tool invocation, carried back in a user turn."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: OptionalStr = None
    content: Annotated[str | list[Any] | None, WrapValidator(_or_none)] = None
    is_error: Annotated[bool | None, WrapValidator(_or_none)] = None

    def text(self) -> str:
        """Return the string content, or the joined text of nested text blocks."""
        if isinstance(self.content, str):
            return self.content
        if isinstance(self.content, list):
            return "\n".join(
                item["text"]
                for item in self.content
                if isinstance(item, dict)
                and item.get("type") == "text"
                and isinstance(item.get("text"), str)
                and item["text"]
            )
        return ""


class OtherBlock(BaseModel):
    """Any block type this parser does not extract from (images, documents, ...)."""

    model_config = ConfigDict(extra="allow")

    type: Any = None


_KNOWN_BLOCKS = frozenset({"text", "thinking", "tool_use", "tool_result"})


def _block_tag(value: Any) -> str:
    kind = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    return kind if kind in _KNOWN_BLOCKS else "other"


# Tagged union keyed on ``type``; unknown tags fall through to OtherBlock.
ContentBlock = Annotated[
    Annotated[TextBlock, Tag("text")]
    | Annotated[ThinkingBlock, Tag("thinking")]
    | Annotated[ToolUseBlock, Tag("tool_use")]
    | Annotated[ToolResultBlock, Tag("tool_result")]
    | Annotated[OtherBlock, Tag("other")],
    Discriminator(_block_tag),
]


# ── Raw Record ─────────────────────────────────────────────────────────────────


class Usage(BaseModel):
    """Token usage block reported on assistant messages."""

    input_tokens: OptionalCount = None
    output_tokens: OptionalCount = None
    cache_read_input_tokens: OptionalCount = None
    cache_creation_input_tokens: OptionalCount = None


class MessageBody(BaseModel):
    """The ``message`` object of a transcript line."""

    role: OptionalStr = None
    model: OptionalStr = None
    content: Annotated[str | list[ContentBlock] | None, WrapValidator(_or_none)] = None
    usage: Annotated[Usage | None, WrapValidator(_or_none)] = None

    @field_validator("content", mode="before")
    @classmethod
    def drop_non_object_blocks(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [item for item in value if isinstance(item, dict)]
        return value if isinstance(value, str) else None

    def blocks(self) -> list[Any]:
        return self.content if isinstance(self.content, list) else []


class TranscriptRecord(BaseModel):
    """
    One line of a transcript file, validated.

    Only the fields this system extracts are declared; everything else the
    producer writes is ignored. The identifiers and the timestamp are
    required. Every other field degrades to ``None`` when its shape is
    unexpected, so a producer format change never loses the message.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    uuid: str = Field(min_length=1)
    session_id: str = Field(alias="sessionId", min_length=1)
    type: str = Field(min_length=1)
    timestamp: int
    parent_uuid: OptionalStr = Field(default=None, alias="parentUuid")
    cwd: OptionalStr = None
    git_branch: OptionalStr = Field(default=None, alias="gitBranch")
    message: Annotated[MessageBody | None, WrapValidator(_or_none)] = None
    summary: OptionalStr = None
    leaf_uuid: OptionalStr = Field(default=None, alias="leafUuid")

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_timestamp(cls, value: Any) -> int:
        return to_epoch_ms(value)


# ── Parsed Entities ────────────────────────────────────────────────────────────


class TokenUsage(BaseModel):
    """Token counters for a single message."""

    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_creation: int = 0

    def total(self) -> int:
        return self.input + self.output + self.cache_read + self.cache_creation


class ToolCall(BaseModel):
    """A tool invocation extracted from an assistant message."""

    id: str
    tool_name: str
    tool_input: str
    """JSON-encoded input; ``"{}"`` when the block carried none."""


class ToolResult(BaseModel):
    """A tool outcome extracted from a message."""

    tool_call_id: str
    content: str
    is_error: bool = False


class ParsedMessage(BaseModel):
    """
    A fully-typed transcript record ready for persistence.

    Produced by :func:`ccrecall.transcripts.parser.parse_line`. Instances are
    value objects: parsing the same line twice yields equal objects.
    """

    uuid: str
    session_id: str
    parent_uuid: str | None = None
    type: str
    """``"user"``, ``"assistant"`` or ``"summary"``; other producer types are kept verbatim."""
    model: str | None = None
    content_text: str | None = None
    content_json: str | None = None
    thinking: OptionalStr = None
    timestamp: int
    """Unix millisecond timestamp."""
    tokens: TokenUsage = Field(default_factory=TokenUsage)
    cwd: str | None = None
    git_branch: str | None = None
    summary: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_results: list[ToolResult] = Field(default_factory=list)

    @property
    def is_summary(self) -> bool:
        return self.type == "summary"

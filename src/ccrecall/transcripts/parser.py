"""Transcript line parsing and byte-accurate line reading."""

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from ccrecall.models.transcript import (
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

_logger = structlog.get_logger("ccrecall.transcripts")


def to_json(value: Any) -> str:
    """Serialize compactly, leaving non-ASCII text as-is."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


# ── Content Extraction ─────────────────────────────────────────────────────────


def extract_text(content: str | list[Any] | None) -> str | None:
    """
    Return the plain-text content of a message.

    A string is returned verbatim. A block list yields the text of every text
    block joined by newlines. ``None`` when there is no text at all.
    """
    if not content:
        return None
    if isinstance(content, str):
        return content
    texts = [b.text for b in content if isinstance(b, TextBlock) and isinstance(b.text, str)]
    return "\n".join(texts) if texts else None


def extract_thinking(content: str | list[Any] | None) -> str | None:
    """Return the text of the first non-empty thinking block, if any."""
    if not isinstance(content, list):
        return None
    for block in content:
        if isinstance(block, ThinkingBlock) and block.thinking:
            return block.thinking
    return None


def extract_tool_calls(content: str | list[Any] | None) -> list[ToolCall]:
    if not isinstance(content, list):
        return []
    return [
        ToolCall(
            id=block.id,
            tool_name=block.name,
            tool_input=to_json(block.input) if block.input else "{}",
        )
        for block in content
        if isinstance(block, ToolUseBlock) and block.id and block.name
    ]


def extract_tool_results(content: str | list[Any] | None) -> list[ToolResult]:
    if not isinstance(content, list):
        return []
    return [
        ToolResult(
            tool_call_id=block.tool_use_id,
            content=block.text(),
            is_error=bool(block.is_error),
        )
        for block in content
        if isinstance(block, ToolResultBlock) and block.tool_use_id
    ]


# ── Line Parsing ───────────────────────────────────────────────────────────────


def parse_record(data: Any) -> ParsedMessage | None:
    """
    Convert a decoded JSON value into a ParsedMessage.

    Returns ``None`` for anything that is not a valid transcript record:
    non-objects, missing ``uuid``/``sessionId``/``type``, or an unparseable
    timestamp. Optional fields of an unexpected shape are dropped, not fatal.
    """
    if not isinstance(data, dict):
        return None
    try:
        record = TranscriptRecord.model_validate(data)
    except ValidationError:
        return None

    body = record.message
    content = body.content if body is not None else None
    raw_message = data.get("message")
    raw_content = raw_message.get("content") if isinstance(raw_message, dict) else None
    usage = body.usage if body is not None else None

    return ParsedMessage(
        uuid=record.uuid,
        session_id=record.session_id,
        parent_uuid=record.parent_uuid,
        type=record.type,
        model=body.model if body is not None else None,
        content_text=record.summary if record.type == "summary" else extract_text(content),
        content_json=to_json(raw_content) if raw_content not in (None, "") else None,
        thinking=extract_thinking(content),
        timestamp=record.timestamp,
        tokens=TokenUsage(
            input=(usage.input_tokens or 0) if usage else 0,
            output=(usage.output_tokens or 0) if usage else 0,
            cache_read=(usage.cache_read_input_tokens or 0) if usage else 0,
            cache_creation=(usage.cache_creation_input_tokens or 0) if usage else 0,
        ),
        cwd=record.cwd,
        git_branch=record.git_branch,
        summary=record.summary,
        tool_calls=extract_tool_calls(content),
        tool_results=extract_tool_results(content),
    )


def parse_line(line: str) -> ParsedMessage | None:
    """
    Parse one transcript line.

    Never raises: malformed JSON and invalid records both yield ``None``.
    Identical input always yields an equal result.
    """
    if not line.strip():
        return None
    try:
        data = json.loads(line)
    except ValueError:
        return None
    return parse_record(data)


# ── File Reading ───────────────────────────────────────────────────────────────


def iter_new_lines(path: Path, offset: int, size: int) -> Iterator[tuple[int, str | None]]:
    """
    Yield ``(end_offset, text)`` for every complete line in ``[offset, size)``.

    ``end_offset`` is the byte position just past the line's ``\\n`` terminator;
    it is what a cursor should store once the line has been handled. A trailing
    line without a terminator is still being written by the producer and is
    not yielded. ``text`` is ``None`` for lines that are not valid UTF-8.

    Args:
        path: Transcript file to read.
        offset: Byte offset to resume from (always a line boundary).
        size: File length observed when the file was selected for scanning;
            bytes past it belong to the next run.
    """
    with path.open("rb") as fh:
        fh.seek(offset)
        for raw in fh:
            end = offset + len(raw)
            if not raw.endswith(b"\n") or end > size:
                break
            offset = end
            try:
                text: str | None = raw[:-1].decode("utf-8")
            except UnicodeDecodeError:
                _logger.debug("undecodable_line", path=str(path), end_offset=end)
                text = None
            yield end, text

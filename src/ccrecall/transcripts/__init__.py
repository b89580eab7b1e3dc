"""Transcript parsing."""

from ccrecall.transcripts.parser import (
    extract_text,
    extract_thinking,
    extract_tool_calls,
    extract_tool_results,
    iter_new_lines,
    parse_line,
    parse_record,
)

__all__ = [
    "extract_text",
    "extract_thinking",
    "extract_tool_calls",
    "extract_tool_results",
    "iter_new_lines",
    "parse_line",
    "parse_record",
]

"""Parser for the line-oriented response protocol used in the formatting stage.

A completion holds one or more messages separated by a ``---MESSAGE---`` line.
Each message names its type on a ``TYPE:`` line followed by ``FIELD: value``
lines; table rows follow a bare ``ROWS:`` line, one pipe-separated row per
line. Messages that cannot be interpreted are skipped rather than treated as
errors, since model output is routinely incomplete.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Sequence

from dataclerk.agent.models import ChartBlock, ChartKind, ContentBlock, TableBlock, TextBlock
from dataclerk.agent.prompts import MESSAGE_SEPARATOR
from dataclerk.core.logging import get_logger, log_structured

logger = get_logger(__name__)

FIELD_SEPARATOR = "|"

_CHART_KINDS: Dict[str, ChartKind] = {
    "CHART_BAR": ChartKind.BAR,
    "CHART_LINE": ChartKind.LINE,
    "CHART_PIE": ChartKind.PIE,
}


def extract_field(lines: Sequence[str], name: str) -> Optional[str]:
    """Return the value of the first ``NAME:`` line, or None when absent."""
    prefix = f"{name}:"
    for line in lines:
        if line.startswith(prefix):
            return line[len(prefix):].strip()
    return None


def extract_multiline_field(lines: Sequence[str], name: str) -> List[str]:
    """Return the lines following ``NAME:`` up to a blank line or another field."""
    prefix = f"{name}:"
    for index, line in enumerate(lines):
        if line.startswith(prefix):
            start = index + 1
            break
    else:
        return []

    collected: List[str] = []
    for line in lines[start:]:
        if not line or ":" in line:
            break
        collected.append(line)
    return collected


def _split(value: Optional[str]) -> List[str]:
    if value is None:
        return []
    return value.split(FIELD_SEPARATOR)


def _parse_values(value: Optional[str]) -> List[float]:
    values: List[float] = []
    for token in _split(value):
        try:
            values.append(float(token))
        except ValueError:
            logger.debug("Dropping non-numeric chart value %r", token)
    return values


def _parse_text(lines: Sequence[str], type_tag: str) -> Optional[ContentBlock]:
    content = extract_field(lines, "CONTENT")
    if content is None:
        return None
    return TextBlock(content=content)


def _parse_table(lines: Sequence[str], type_tag: str) -> Optional[ContentBlock]:
    return TableBlock(
        description=extract_field(lines, "CONTENT") or "",
        headers=_split(extract_field(lines, "HEADERS")),
        rows=[row.split(FIELD_SEPARATOR) for row in extract_multiline_field(lines, "ROWS")],
    )


def _parse_chart(lines: Sequence[str], type_tag: str) -> Optional[ContentBlock]:
    return ChartBlock(
        description=extract_field(lines, "CONTENT") or "",
        kind=_CHART_KINDS[type_tag],
        labels=_split(extract_field(lines, "LABELS")),
        values=_parse_values(extract_field(lines, "VALUES")),
    )


_HANDLERS: Dict[str, Callable[[Sequence[str], str], Optional[ContentBlock]]] = {
    "TEXT": _parse_text,
    "TABLE": _parse_table,
    **{tag: _parse_chart for tag in _CHART_KINDS},
}


def parse_message(text: str) -> Optional[ContentBlock]:
    """Parse one message; returns None when it carries no usable block."""
    lines = [line.strip() for line in text.splitlines()]
    type_tag = extract_field(lines, "TYPE")
    if type_tag is None:
        return None
    handler = _HANDLERS.get(type_tag)
    if handler is None:
        return None
    return handler(lines, type_tag)


def split_messages(raw: str) -> List[str]:
    segments = (segment.strip() for segment in raw.split(MESSAGE_SEPARATOR))
    return [segment for segment in segments if segment]


def parse_response(raw: str) -> List[ContentBlock]:
    """Parse a formatting completion into content blocks, in message order."""
    segments = split_messages(raw)
    blocks: List[ContentBlock] = []
    for segment in segments:
        block = parse_message(segment)
        if block is not None:
            blocks.append(block)
    dropped = len(segments) - len(blocks)
    if dropped:
        log_structured(
            logger,
            logging.INFO,
            "response_messages_dropped",
            segments=len(segments),
            dropped=dropped,
        )
    return blocks

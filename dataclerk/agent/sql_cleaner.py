"""Turn a raw SQL completion into an executable statement."""

from __future__ import annotations

import re

_SQL_FENCE = re.compile(r"```sql\n?")
_ANY_FENCE = re.compile(r"```\n?")
_SQL_LABEL = re.compile(r"^SQL Query:\s*", re.IGNORECASE)


def _clean_once(text: str) -> str:
    cleaned = text.strip()
    cleaned = _SQL_FENCE.sub("", cleaned)
    cleaned = _ANY_FENCE.sub("", cleaned)
    cleaned = _SQL_LABEL.sub("", cleaned)
    cleaned = cleaned.strip()
    if cleaned.endswith(";"):
        cleaned = cleaned[:-1].strip()
    return cleaned


def clean_sql(raw: str) -> str:
    """Strip markdown fences, a ``SQL Query:`` label and a trailing semicolon.

    Every step only removes characters, so repeating the pass until the text
    stops changing terminates and makes the function idempotent.
    """
    current = raw
    while True:
        cleaned = _clean_once(current)
        if cleaned == current:
            return cleaned
        current = cleaned

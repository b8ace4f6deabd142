"""Render grouped table schemas as plain text for prompt inclusion."""

from __future__ import annotations

from typing import Sequence

from dataclerk.agent.models import ColumnDefinition, TableSchema


def _format_column(column: ColumnDefinition) -> str:
    suffix = f"({column.constraints})" if column.constraints else ""
    return f"  - {column.name}: {column.data_type} {suffix}"


def format_table(table: TableSchema) -> str:
    lines = [f"Table: {table.table_name}", "Columns:"]
    lines.extend(_format_column(column) for column in table.columns)
    return "".join(f"{line}\n" for line in lines)


def format_schema(tables: Sequence[TableSchema]) -> str:
    """Render tables in input order, separated by a blank line."""
    return "\n".join(format_table(table) for table in tables)

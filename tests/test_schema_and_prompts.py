from __future__ import annotations

import json

from dataclerk.agent.models import ColumnDefinition, SchemaColumn, TableSchema, group_schema_columns
from dataclerk.agent.prompts import MESSAGE_SEPARATOR, build_formatting_prompt, build_sql_generation_prompt
from dataclerk.agent.schema_format import format_schema


def test_single_table_layout():
    tables = [TableSchema("t1", (ColumnDefinition("id", "int", ""),))]

    assert format_schema(tables) == "Table: t1\nColumns:\n  - id: int \n"


def test_constraints_suffix_and_blank_line_between_tables():
    tables = [
        TableSchema("a", (ColumnDefinition("id", "int", "PRIMARY KEY"),)),
        TableSchema("b", (ColumnDefinition("name", "text"),)),
    ]

    assert format_schema(tables) == (
        "Table: a\nColumns:\n  - id: int (PRIMARY KEY)\n"
        "\n"
        "Table: b\nColumns:\n  - name: text \n"
    )


def test_empty_schema_renders_empty_string():
    assert format_schema([]) == ""


def test_grouping_sorts_tables_and_keeps_column_order():
    rows = [
        SchemaColumn("orders", "id", "int"),
        SchemaColumn("customers", "name", "text"),
        SchemaColumn("orders", "total", "numeric"),
        SchemaColumn("customers", "id", "int"),
    ]

    tables = group_schema_columns(rows)

    assert [table.table_name for table in tables] == ["customers", "orders"]
    assert [column.name for column in tables[0].columns] == ["name", "id"]
    assert all(column.constraints == "" for table in tables for column in table.columns)


def test_sql_prompt_embeds_schema_and_question():
    prompt = build_sql_generation_prompt("how many orders?", "Table: orders\nColumns:\n  - id: int \n")

    assert "Table: orders" in prompt
    assert "User Question: how many orders?" in prompt
    assert "PostgreSQL" in prompt
    assert "NO markdown code blocks" in prompt
    assert prompt.rstrip().endswith("SQL Query:")


def test_formatting_prompt_serialises_rows_as_json():
    rows = [{"count": 5}, {"count": None}]

    prompt = build_formatting_prompt("how many orders?", "SELECT COUNT(*) FROM orders", rows)

    assert "User's Question: how many orders?" in prompt
    assert "SQL Query Executed: SELECT COUNT(*) FROM orders" in prompt
    assert json.dumps(rows) in prompt
    assert MESSAGE_SEPARATOR in prompt
    for tag in ("TYPE: TEXT", "TYPE: TABLE", "CHART_BAR", "CHART_LINE", "CHART_PIE", "HEADERS:", "LABELS:", "VALUES:"):
        assert tag in prompt


def test_formatting_prompt_handles_non_json_values():
    from datetime import date
    from decimal import Decimal

    prompt = build_formatting_prompt("q", "SELECT 1", [{"day": date(2024, 1, 2), "total": Decimal("9.50")}])

    assert '"2024-01-02"' in prompt
    assert '"9.50"' in prompt

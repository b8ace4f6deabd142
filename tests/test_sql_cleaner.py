from __future__ import annotations

import pytest

from dataclerk.agent.sql_cleaner import clean_sql


def test_strips_sql_fence_and_semicolon():
    assert clean_sql("```sql\nSELECT 1;\n```") == "SELECT 1"


def test_strips_query_label_case_insensitively():
    assert clean_sql("SQL Query: select 1") == "select 1"
    assert clean_sql("sql query:   SELECT name FROM users") == "SELECT name FROM users"


def test_plain_fence_and_surrounding_whitespace():
    assert clean_sql("\n  ```\nSELECT * FROM orders\n```  \n") == "SELECT * FROM orders"


def test_unrelated_text_passes_through():
    assert clean_sql("SELECT 'a;b' AS x") == "SELECT 'a;b' AS x"
    assert clean_sql("") == ""


@pytest.mark.parametrize(
    "raw",
    [
        "```sql\nSELECT 1;\n```",
        "SQL Query: SQL Query: SELECT 1",
        "SELECT 1;;",
        "  ```sql```sql\nSELECT 2 ;  ",
        "not sql at all",
        ";",
    ],
)
def test_cleaning_is_idempotent(raw):
    once = clean_sql(raw)
    assert clean_sql(once) == once

"""Prompt builders for SQL generation and result formatting."""

from __future__ import annotations

import json
from typing import Sequence

from dataclerk.agent.models import QueryRow

MESSAGE_SEPARATOR = "---MESSAGE---"

_SQL_GENERATION_TEMPLATE = """You are a PostgreSQL expert. Generate ONLY the SQL query without any explanation, markdown formatting, or additional text.

Database Schema:
{schema}

User Question: {question}

Requirements:
- Return ONLY the SQL query as plain text
- NO markdown code blocks (no ```sql or ```)
- NO explanations before or after the query
- NO comments in the query
- Use PostgreSQL syntax
- Ensure the query is safe and won't modify data unless explicitly asked
- Use appropriate JOINs, WHERE clauses, and aggregations as needed

SQL Query:"""

_FORMATTING_TEMPLATE = """You are a helpful data analyst. Format the query results in a user-friendly way.

User's Question: {question}

SQL Query Executed: {sql}

Query Results (JSON):
{results}

Instructions:
1. Analyze if the results need to be displayed as:
   - TEXT: Simple answer (for counts, single values, or short explanations)
   - TABLE: Tabular data (for multiple rows/columns)
   - CHART_BAR: Bar chart (for comparisons)
   - CHART_LINE: Line chart (for trends over time)
   - CHART_PIE: Pie chart (for distributions/percentages)

2. Format your response EXACTLY as follows:

For TEXT responses:
TYPE: TEXT
CONTENT: Your human-readable explanation here

For TABLE responses:
TYPE: TABLE
CONTENT: Your explanation here
HEADERS: Column1|Column2|Column3
ROWS:
Row1Value1|Row1Value2|Row1Value3
Row2Value1|Row2Value2|Row2Value3

For CHART responses:
TYPE: CHART_BAR (or CHART_LINE or CHART_PIE)
CONTENT: Brief explanation of the chart
LABELS: Label1|Label2|Label3
VALUES: Value1|Value2|Value3

3. Rules:
   - Keep explanations concise and clear
   - Use pipe (|) as separator for tables and charts
   - Table row values must not contain a colon (:)
   - For simple answers (like counts or single values), use TEXT
   - For complex data with multiple rows, use TABLE
   - For numerical comparisons, use CHART_BAR
   - For time-series data, use CHART_LINE
   - For percentage distributions, use CHART_PIE
   - If results are empty, explain that no data was found

4. You can return multiple messages if needed by separating them with:
{separator}

Example for multiple messages:
TYPE: TEXT
CONTENT: Here's what I found about your question.
{separator}
TYPE: TABLE
CONTENT: Detailed breakdown:
HEADERS: Product|Sales|Profit
ROWS:
Product A|1000|500
Product B|800|400

Now format the results:"""


def build_sql_generation_prompt(question: str, formatted_schema: str) -> str:
    """Render the prompt asking the model for a single PostgreSQL statement."""
    return _SQL_GENERATION_TEMPLATE.format(schema=formatted_schema.rstrip("\n"), question=question.strip())


def rows_to_json(rows: Sequence[QueryRow]) -> str:
    return json.dumps(list(rows), default=str, ensure_ascii=False)


def build_formatting_prompt(question: str, sql: str, rows: Sequence[QueryRow]) -> str:
    """Render the prompt asking the model to present results in the response protocol."""
    return _FORMATTING_TEMPLATE.format(
        question=question.strip(),
        sql=sql,
        results=rows_to_json(rows),
        separator=MESSAGE_SEPARATOR,
    )

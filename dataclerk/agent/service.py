"""Query pipeline: schema retrieval, SQL generation, execution, result formatting."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from time import perf_counter
from typing import Awaitable, Callable, List, Protocol, Sequence

from dataclerk.agent.data_gateway import DataGatewayError
from dataclerk.agent.llm import LLMError
from dataclerk.agent.models import ContentBlock, PipelineResult, QueryRow, TableSchema
from dataclerk.agent.prompts import build_formatting_prompt, build_sql_generation_prompt
from dataclerk.agent.response_parser import parse_response
from dataclerk.agent.schema_format import format_schema
from dataclerk.agent.sql_cleaner import clean_sql
from dataclerk.core.errors import DataClerkError, FailureReason
from dataclerk.core.logging import get_logger, log_structured

logger = get_logger(__name__)

SQL_TEMPERATURE = 0.2
FORMAT_TEMPERATURE = 0.7
MAX_OUTPUT_TOKENS = 2048
# Each question costs two completions back to back
POST_EXECUTION_DELAY_SECONDS = 2.0
RATE_LIMIT_BACKOFF_SECONDS = 3.0

Sleep = Callable[[float], Awaitable[None]]


class CompletionGateway(Protocol):
    async def complete(self, prompt: str, api_key: str, *, temperature: float, max_tokens: int) -> str: ...


class DataGateway(Protocol):
    async def schema(self, name: str) -> List[TableSchema]: ...

    async def execute(self, name: str, sql: str) -> List[QueryRow]: ...


class Stage(Enum):
    FETCHING_SCHEMA = "fetching_schema"
    GENERATING_SQL = "generating_sql"
    EXECUTING_SQL = "executing_sql"
    FORMATTING_RESULTS = "formatting_results"


class PipelineError(DataClerkError):
    """Terminal failure of one orchestration call."""

    def __init__(self, reason: FailureReason, message: str, *, stage: Stage, cause: DataClerkError) -> None:
        super().__init__(reason, message, status_code=cause.status_code)
        self.stage = stage
        self.cause = cause

    @property
    def root_reason(self) -> FailureReason:
        return self.cause.reason

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        payload.update({"stage": self.stage.value, "root_reason": self.root_reason.value})
        return payload


class QueryOrchestrator:
    """Runs one question through the four pipeline stages.

    The orchestrator keeps no state between calls; callers serialise
    questions within a conversation. Cancelling the surrounding task aborts
    the in-flight request and skips every later stage.
    """

    def __init__(
        self,
        llm: CompletionGateway,
        data: DataGateway,
        *,
        sleep: Sleep = asyncio.sleep,
        log_sql_text: bool = False,
    ) -> None:
        self._llm = llm
        self._data = data
        self._sleep = sleep
        self._log_sql_text = log_sql_text

    async def process_query(self, database: str, question: str, api_key: str) -> PipelineResult:
        started = perf_counter()
        log_structured(
            logger,
            logging.INFO,
            "pipeline_start",
            database=database,
            question_length=len(question),
        )

        tables = await self._fetch_schema(database)
        sql = await self._generate_sql(question, tables, api_key)
        rows = await self._execute(database, sql)

        await self._sleep(POST_EXECUTION_DELAY_SECONDS)
        blocks = await self._format_results(question, sql, rows, api_key)

        log_structured(
            logger,
            logging.INFO,
            "pipeline_complete",
            database=database,
            row_count=len(rows),
            block_count=len(blocks),
            elapsed_ms=round((perf_counter() - started) * 1000, 2),
        )
        return PipelineResult(sql_query=sql, rows=rows, content_blocks=blocks)

    async def _fetch_schema(self, database: str) -> List[TableSchema]:
        try:
            tables = await self._data.schema(database)
        except DataGatewayError as exc:
            raise self._fail(Stage.FETCHING_SCHEMA, FailureReason.SCHEMA_LOAD_ERROR, "Failed to load schema", exc)
        log_structured(logger, logging.INFO, "schema_loaded", database=database, table_count=len(tables))
        return tables

    async def _generate_sql(self, question: str, tables: Sequence[TableSchema], api_key: str) -> str:
        prompt = build_sql_generation_prompt(question, format_schema(tables))
        try:
            raw = await self._llm.complete(
                prompt,
                api_key,
                temperature=SQL_TEMPERATURE,
                max_tokens=MAX_OUTPUT_TOKENS,
            )
        except LLMError as exc:
            raise self._fail(Stage.GENERATING_SQL, FailureReason.SQL_GENERATION_ERROR, "Failed to generate SQL", exc)
        sql = clean_sql(raw)
        fields = {"sql_length": len(sql)}
        if self._log_sql_text:
            fields["sql"] = sql
        log_structured(logger, logging.INFO, "sql_generated", **fields)
        return sql

    async def _execute(self, database: str, sql: str) -> List[QueryRow]:
        try:
            rows = await self._data.execute(database, sql)
        except DataGatewayError as exc:
            raise self._fail(Stage.EXECUTING_SQL, FailureReason.QUERY_EXECUTION_ERROR, "Query execution failed", exc)
        log_structured(logger, logging.INFO, "sql_executed", database=database, row_count=len(rows))
        return rows

    async def _format_results(
        self, question: str, sql: str, rows: Sequence[QueryRow], api_key: str
    ) -> List[ContentBlock]:
        prompt = build_formatting_prompt(question, sql, rows)
        try:
            text = await self._complete_formatting(prompt, api_key)
        except LLMError as exc:
            raise self._fail(
                Stage.FORMATTING_RESULTS,
                FailureReason.RESULT_FORMATTING_ERROR,
                "Failed to format results",
                exc,
            )
        return parse_response(text)

    async def _complete_formatting(self, prompt: str, api_key: str) -> str:
        try:
            return await self._llm.complete(
                prompt,
                api_key,
                temperature=FORMAT_TEMPERATURE,
                max_tokens=MAX_OUTPUT_TOKENS,
            )
        except LLMError as exc:
            if exc.reason is not FailureReason.RATE_LIMITED:
                raise
            log_structured(
                logger,
                logging.WARNING,
                "formatting_rate_limited",
                backoff_seconds=RATE_LIMIT_BACKOFF_SECONDS,
            )

        await self._sleep(RATE_LIMIT_BACKOFF_SECONDS)
        return await self._llm.complete(
            prompt,
            api_key,
            temperature=FORMAT_TEMPERATURE,
            max_tokens=MAX_OUTPUT_TOKENS,
        )

    @staticmethod
    def _fail(stage: Stage, reason: FailureReason, prefix: str, cause: DataClerkError) -> PipelineError:
        log_structured(
            logger,
            logging.ERROR,
            "pipeline_failed",
            stage=stage.value,
            reason=reason.name,
            cause=cause.reason.name,
            error=cause.message,
        )
        return PipelineError(reason, f"{prefix}: {cause.message}", stage=stage, cause=cause)

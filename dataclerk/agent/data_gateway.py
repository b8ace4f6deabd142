"""Async client for the database proxy API (listing, health, schema, execute)."""

from __future__ import annotations

import logging
from time import perf_counter
from typing import Any, List, Sequence
from urllib.parse import quote

import httpx

from dataclerk.agent.llm import classify_transport_error
from dataclerk.agent.models import DatabaseHealth, DatabaseInfo, QueryRow, SchemaColumn, TableSchema, group_schema_columns
from dataclerk.core.config import DataProxySettings
from dataclerk.core.errors import DataClerkError, FailureReason
from dataclerk.core.logging import get_logger, log_structured

logger = get_logger(__name__)


class DataGatewayError(DataClerkError):
    """Raised when a database proxy call fails."""


def _backend_message(response: httpx.Response) -> str:
    """Pull the backend's own error text out of a failed response."""
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip()
    if isinstance(payload, dict):
        for key in ("detail", "error", "message"):
            value = payload.get(key)
            if value:
                return str(value)
    return response.text.strip()


class DataProxyClient:
    """One HTTP round-trip per operation; retries are the caller's decision."""

    def __init__(self, settings: DataProxySettings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.timeout_seconds,
            transport=transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        reason: FailureReason,
        action: str,
        json: Any = None,
    ) -> Any:
        started = perf_counter()
        try:
            response = await self._client.request(method, path, json=json)
        except (httpx.RequestError, OSError) as exc:
            _, detail = classify_transport_error(exc, service="database proxy")
            log_structured(logger, logging.WARNING, "data_proxy_transport_error", path=path, error=str(exc))
            raise DataGatewayError(reason, f"Failed to {action}: {detail}") from exc

        elapsed_ms = round((perf_counter() - started) * 1000, 2)
        if not response.is_success:
            backend_message = _backend_message(response)
            log_structured(
                logger,
                logging.WARNING,
                "data_proxy_http_error",
                path=path,
                status=response.status_code,
                elapsed_ms=elapsed_ms,
            )
            message = f"Failed to {action}: {response.status_code}"
            if backend_message:
                message = f"{message} {backend_message}"
            raise DataGatewayError(reason, message, status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            raise DataGatewayError(
                reason,
                f"Failed to {action}: invalid JSON response",
                status_code=response.status_code,
            ) from exc
        if payload is None:
            raise DataGatewayError(reason, f"Failed to {action}: empty response", status_code=response.status_code)
        log_structured(logger, logging.DEBUG, "data_proxy_response", path=path, elapsed_ms=elapsed_ms)
        return payload

    async def list_databases(self) -> List[str]:
        payload = await self._request(
            "GET", "databases", reason=FailureReason.DATABASE_LIST_ERROR, action="fetch databases"
        )
        if not isinstance(payload, list):
            raise DataGatewayError(FailureReason.DATABASE_LIST_ERROR, "Failed to fetch databases: unexpected payload")
        return [str(name) for name in payload]

    async def health(self, name: str) -> DatabaseHealth:
        payload = await self._request(
            "GET",
            f"database/{quote(name, safe='')}/health",
            reason=FailureReason.DATABASE_HEALTH_ERROR,
            action="fetch health",
        )
        if not isinstance(payload, dict):
            raise DataGatewayError(FailureReason.DATABASE_HEALTH_ERROR, "Failed to fetch health: unexpected payload")
        return DatabaseHealth.from_mapping(payload)

    async def schema(self, name: str) -> List[TableSchema]:
        """Fetch column rows and group them into tables sorted by name."""
        payload = await self._request(
            "GET",
            f"database/{quote(name, safe='')}/schema",
            reason=FailureReason.SCHEMA_LOAD_ERROR,
            action="fetch schema",
        )
        if not isinstance(payload, list):
            raise DataGatewayError(FailureReason.SCHEMA_LOAD_ERROR, "Failed to fetch schema: unexpected payload")
        try:
            columns = [SchemaColumn.from_mapping(item) for item in payload]
        except (TypeError, ValueError) as exc:
            raise DataGatewayError(FailureReason.SCHEMA_LOAD_ERROR, f"Failed to fetch schema: {exc}") from exc
        return group_schema_columns(columns)

    async def execute(self, name: str, sql: str) -> List[QueryRow]:
        payload = await self._request(
            "POST",
            "database/execute",
            reason=FailureReason.QUERY_EXECUTION_ERROR,
            action="execute query",
            json={"Database": name, "Query": sql},
        )
        if not isinstance(payload, list):
            raise DataGatewayError(FailureReason.QUERY_EXECUTION_ERROR, "Failed to execute query: unexpected payload")
        if not all(isinstance(row, dict) for row in payload):
            raise DataGatewayError(FailureReason.QUERY_EXECUTION_ERROR, "Failed to execute query: unexpected row payload")
        return [dict(row) for row in payload]

    async def database_info(self, name: str, schema: Sequence[TableSchema] | None = None) -> DatabaseInfo:
        """Summarise a database; an unreachable health endpoint yields UNKNOWN."""
        if schema is None:
            schema = await self.schema(name)
        try:
            health = await self.health(name)
        except DataGatewayError as exc:
            log_structured(logger, logging.INFO, "database_health_unknown", database=name, error=exc.message)
            health = None
        return DatabaseInfo.from_health(name, health, table_count=len(schema))

    async def aclose(self) -> None:
        await self._client.aclose()

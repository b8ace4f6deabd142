"""Failure taxonomy shared by the gateways and the query pipeline."""

from __future__ import annotations

from enum import Enum


class FailureReason(Enum):
    # Transport level, classified before any HTTP status exists
    DNS_RESOLUTION_FAILED = "dns_resolution_failed"
    CONNECTION_TIMED_OUT = "connection_timed_out"
    TLS_HANDSHAKE_FAILED = "tls_handshake_failed"
    TRANSPORT_IO_ERROR = "transport_io_error"
    # Completion endpoint statuses
    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    SERVICE_UNAVAILABLE = "service_unavailable"
    UNKNOWN_HTTP_STATUS = "unknown_http_status"
    EMPTY_COMPLETION = "empty_completion"
    # Database proxy
    DATABASE_LIST_ERROR = "database_list_error"
    DATABASE_HEALTH_ERROR = "database_health_error"
    SCHEMA_LOAD_ERROR = "schema_load_error"
    QUERY_EXECUTION_ERROR = "query_execution_error"
    # Pipeline stages
    SQL_GENERATION_ERROR = "sql_generation_error"
    RESULT_FORMATTING_ERROR = "result_formatting_error"


class DataClerkError(RuntimeError):
    """Base class for every failure surfaced to callers."""

    def __init__(self, reason: FailureReason, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.status_code = status_code

    def to_dict(self) -> dict[str, object]:
        return {
            "reason": self.reason.value,
            "message": self.message,
            "status_code": self.status_code,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.reason.name}, {self.message!r})"

"""Async HTTP client for the Gemini ``generateContent`` endpoint."""

from __future__ import annotations

import logging
import socket
import ssl
from time import perf_counter
from typing import Any, Iterator

import httpx

from dataclerk.core.config import GeminiSettings
from dataclerk.core.errors import DataClerkError, FailureReason
from dataclerk.core.logging import get_logger, log_structured

logger = get_logger(__name__)

API_KEY_HEADER = "x-goog-api-key"

_STATUS_REASONS: dict[int, tuple[FailureReason, str]] = {
    400: (FailureReason.BAD_REQUEST, "Bad request: Check your API key and request format"),
    401: (FailureReason.UNAUTHORIZED, "Unauthorized: Invalid API key"),
    403: (FailureReason.FORBIDDEN, "Forbidden: API key doesn't have permission for this model"),
    404: (FailureReason.NOT_FOUND, "Not found: Model may not be available with your API key"),
    429: (
        FailureReason.RATE_LIMITED,
        "Rate limit exceeded: Too many requests. Please wait a moment and try again",
    ),
    500: (FailureReason.SERVER_ERROR, "Gemini server error: Try again later"),
    503: (FailureReason.SERVICE_UNAVAILABLE, "Service unavailable: Gemini is temporarily down"),
}

_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo failed",
    "no address associated with hostname",
)


class LLMError(DataClerkError):
    """Raised when the completion endpoint interaction fails."""


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def classify_transport_error(exc: BaseException, service: str = "Gemini API") -> tuple[FailureReason, str]:
    """Map a transport exception to a failure reason and a readable message."""
    chain = list(_exception_chain(exc))
    text = " ".join(str(item) for item in chain).lower()

    if any(isinstance(item, socket.gaierror) for item in chain) or any(m in text for m in _DNS_MARKERS):
        return (
            FailureReason.DNS_RESOLUTION_FAILED,
            f"DNS error: Cannot resolve the {service} host. Check DNS settings.",
        )
    if any(isinstance(item, (httpx.TimeoutException, TimeoutError, socket.timeout)) for item in chain):
        return (
            FailureReason.CONNECTION_TIMED_OUT,
            f"Timeout: {service} is not responding. Check your internet connection.",
        )
    if any(isinstance(item, ssl.SSLError) for item in chain) or "certificate verify failed" in text:
        return FailureReason.TLS_HANDSHAKE_FAILED, f"SSL error: {exc}"
    return FailureReason.TRANSPORT_IO_ERROR, f"Network error: {exc}"


def error_for_status(response: httpx.Response) -> LLMError:
    status = response.status_code
    if status in _STATUS_REASONS:
        reason, message = _STATUS_REASONS[status]
    else:
        reason = FailureReason.UNKNOWN_HTTP_STATUS
        message = f"API error ({status}): {response.reason_phrase}"
    return LLMError(reason, message, status_code=status)


def build_request_body(prompt: str, *, temperature: float, max_tokens: int) -> dict[str, Any]:
    return {
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
    }


def extract_text(payload: Any) -> str | None:
    """Return the first candidate's first text part, if any."""
    if not isinstance(payload, dict):
        return None
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return None
    content = candidates[0].get("content")
    if not isinstance(content, dict):
        return None
    parts = content.get("parts")
    if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
        return None
    text = parts[0].get("text")
    return text if isinstance(text, str) else None


class GeminiClient:
    """Thin async wrapper around a single-turn completion endpoint."""

    def __init__(self, settings: GeminiSettings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._settings = settings
        self._path = f"v1beta/models/{settings.model}:generateContent"
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.timeout_seconds,
            transport=transport or httpx.AsyncHTTPTransport(retries=settings.transport_retries),
            headers={"Content-Type": "application/json"},
        )

    async def complete(
        self,
        prompt: str,
        api_key: str,
        *,
        temperature: float,
        max_tokens: int,
    ) -> str:
        """Send ``prompt`` and return the generated text."""
        if not api_key.isascii():
            raise LLMError(FailureReason.BAD_REQUEST, "Bad request: API key contains non-ASCII characters")
        started = perf_counter()
        try:
            response = await self._client.post(
                self._path,
                json=build_request_body(prompt, temperature=temperature, max_tokens=max_tokens),
                headers={API_KEY_HEADER: api_key},
            )
        except (httpx.RequestError, OSError) as exc:
            reason, message = classify_transport_error(exc)
            log_structured(logger, logging.WARNING, "llm_transport_error", reason=reason.name, error=str(exc))
            raise LLMError(reason, message) from exc

        elapsed_ms = round((perf_counter() - started) * 1000, 2)
        if not response.is_success:
            error = error_for_status(response)
            log_structured(
                logger,
                logging.WARNING,
                "llm_http_error",
                status=response.status_code,
                reason=error.reason.name,
                body=response.text[:500],
                elapsed_ms=elapsed_ms,
            )
            raise error

        try:
            payload = response.json()
        except ValueError as exc:
            raise LLMError(
                FailureReason.EMPTY_COMPLETION,
                "Gemini returned invalid JSON.",
                status_code=response.status_code,
            ) from exc

        text = extract_text(payload)
        if text is None or not text.strip():
            raise LLMError(
                FailureReason.EMPTY_COMPLETION,
                "No content in Gemini response",
                status_code=response.status_code,
            )
        log_structured(
            logger,
            logging.DEBUG,
            "llm_completion",
            prompt_length=len(prompt),
            completion_length=len(text),
            temperature=temperature,
            elapsed_ms=elapsed_ms,
        )
        return text

    async def aclose(self) -> None:
        await self._client.aclose()

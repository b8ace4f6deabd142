from __future__ import annotations

import asyncio
import json
import ssl

import httpx
import pytest

from dataclerk.agent import llm as llm_module
from dataclerk.agent.llm import GeminiClient, LLMError, classify_transport_error
from dataclerk.core.config import GeminiSettings
from dataclerk.core.errors import FailureReason


def _candidate(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": "STOP"}]}


def _complete(handler, *, prompt="hello", temperature=0.2, max_tokens=2048):
    async def run():
        client = GeminiClient(GeminiSettings(model="test-model"), transport=httpx.MockTransport(handler))
        try:
            return await client.complete(prompt, "secret-key", temperature=temperature, max_tokens=max_tokens)
        finally:
            await client.aclose()

    return asyncio.run(run())


def test_success_sends_expected_request_and_extracts_text():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_candidate("SELECT 1"))

    text = _complete(handler, prompt="make sql", temperature=0.7, max_tokens=512)

    assert text == "SELECT 1"
    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/v1beta/models/test-model:generateContent"
    assert request.headers["x-goog-api-key"] == "secret-key"
    body = json.loads(request.content)
    assert body == {
        "contents": [{"parts": [{"text": "make sql"}]}],
        "generationConfig": {"temperature": 0.7, "maxOutputTokens": 512},
    }
    assert "secret-key" not in request.content.decode()


@pytest.mark.parametrize(
    "status, reason",
    [
        (400, FailureReason.BAD_REQUEST),
        (401, FailureReason.UNAUTHORIZED),
        (403, FailureReason.FORBIDDEN),
        (404, FailureReason.NOT_FOUND),
        (429, FailureReason.RATE_LIMITED),
        (500, FailureReason.SERVER_ERROR),
        (503, FailureReason.SERVICE_UNAVAILABLE),
        (418, FailureReason.UNKNOWN_HTTP_STATUS),
    ],
)
def test_status_codes_map_to_reasons(status, reason):
    with pytest.raises(LLMError) as exc:
        _complete(lambda request: httpx.Response(status, json={"error": {"message": "nope"}}))

    assert exc.value.reason is reason
    assert exc.value.status_code == status
    assert exc.value.message


def test_unknown_status_message_includes_code():
    with pytest.raises(LLMError) as exc:
        _complete(lambda request: httpx.Response(418))

    assert "418" in exc.value.message


@pytest.mark.parametrize(
    "payload",
    [
        {"candidates": None},
        {"candidates": []},
        {"candidates": {"content": {"parts": [{"text": "SELECT 1"}]}}},
        {"candidates": "SELECT 1"},
        {"candidates": [{"content": {"parts": {"text": "SELECT 1"}}}]},
        {"candidates": [{"content": None, "finishReason": "SAFETY"}]},
        {"candidates": [{"content": {"parts": []}}]},
        _candidate("   \n"),
    ],
)
def test_missing_or_blank_text_is_empty_completion(payload):
    with pytest.raises(LLMError) as exc:
        _complete(lambda request: httpx.Response(200, json=payload))

    assert exc.value.reason is FailureReason.EMPTY_COMPLETION


def test_invalid_json_is_empty_completion():
    with pytest.raises(LLMError) as exc:
        _complete(lambda request: httpx.Response(200, text="<html>oops</html>"))

    assert exc.value.reason is FailureReason.EMPTY_COMPLETION


def _raise(error: Exception):
    def handler(request: httpx.Request) -> httpx.Response:
        raise error

    return handler


def test_dns_failure_is_classified():
    with pytest.raises(LLMError) as exc:
        _complete(_raise(httpx.ConnectError("[Errno -2] Name or service not known")))

    assert exc.value.reason is FailureReason.DNS_RESOLUTION_FAILED
    assert exc.value.status_code is None


def test_timeout_is_classified():
    with pytest.raises(LLMError) as exc:
        _complete(_raise(httpx.ReadTimeout("timed out")))

    assert exc.value.reason is FailureReason.CONNECTION_TIMED_OUT


def test_tls_failure_is_classified_from_cause():
    try:
        try:
            raise ssl.SSLError(1, "[SSL: WRONG_VERSION_NUMBER] wrong version number")
        except ssl.SSLError as inner:
            raise httpx.ConnectError("handshake failed") from inner
    except httpx.ConnectError as outer:
        reason, message = classify_transport_error(outer)

    assert reason is FailureReason.TLS_HANDSHAKE_FAILED
    assert message.startswith("SSL error")


def test_other_transport_errors_are_io_errors():
    with pytest.raises(LLMError) as exc:
        _complete(_raise(httpx.RemoteProtocolError("peer closed connection")))

    assert exc.value.reason is FailureReason.TRANSPORT_IO_ERROR
    assert "peer closed connection" in exc.value.message


def test_undecodable_body_is_io_error():
    with pytest.raises(LLMError) as exc:
        _complete(_raise(httpx.DecodingError("Error -3 while decompressing data: incorrect header check")))

    assert exc.value.reason is FailureReason.TRANSPORT_IO_ERROR
    assert exc.value.status_code is None


def test_unsupported_url_scheme_is_io_error():
    with pytest.raises(LLMError) as exc:
        _complete(_raise(httpx.UnsupportedProtocol("Request URL has an unsupported protocol 'ftp://'.")))

    assert exc.value.reason is FailureReason.TRANSPORT_IO_ERROR


def test_non_ascii_api_key_is_rejected_before_sending():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_candidate("SELECT 1"))

    async def run():
        client = GeminiClient(GeminiSettings(model="test-model"), transport=httpx.MockTransport(handler))
        try:
            return await client.complete("hello", "clé-secrète", temperature=0.2, max_tokens=2048)
        finally:
            await client.aclose()

    with pytest.raises(LLMError) as exc:
        asyncio.run(run())

    assert exc.value.reason is FailureReason.BAD_REQUEST
    assert seen == []


def test_default_transport_uses_configured_retries(monkeypatch):
    created: list[dict] = []

    class RecordingTransport(httpx.AsyncBaseTransport):
        def __init__(self, **kwargs):
            created.append(kwargs)

        async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_candidate("SELECT 1"), request=request)

    for name in ("HTTPS_PROXY", "https_proxy", "ALL_PROXY", "all_proxy"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(llm_module.httpx, "AsyncHTTPTransport", RecordingTransport)

    async def run():
        client = GeminiClient(GeminiSettings(model="test-model", transport_retries=3))
        try:
            return await client.complete("hello", "secret-key", temperature=0.2, max_tokens=2048)
        finally:
            await client.aclose()

    assert asyncio.run(run()) == "SELECT 1"
    assert created == [{"retries": 3}]

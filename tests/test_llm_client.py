from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from cvscan.errors import TransportError
from cvscan.llm_client import call_chat_completions
from cvscan.pipeline import HTTPModel, ModelRequest

MESSAGES = [{"role": "user", "content": "hi"}]


def _call(handler, api_url="http://llm.test/v1/chat/completions", api_key="secret"):
    return asyncio.run(call_chat_completions(
        MESSAGES,
        api_key=api_key,
        api_url=api_url,
        model_name="test-model",
        timeout_s=5,
        temperature=0.0,
        transport=httpx.MockTransport(handler),
    ))


def _completion(content, usage=None):
    return {"choices": [{"message": {"role": "assistant", "content": content}}], "usage": usage or {}}


def test_ok_response() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_completion("hello", {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}))

    result = _call(handler)

    assert result["status"] == "ok"
    assert result["response_text"] == "hello"
    assert result["http_status"] == 200
    assert result["usage"]["total_tokens"] == 5
    assert seen["auth"] == "Bearer secret"
    assert seen["body"] == {"model": "test-model", "messages": MESSAGES, "temperature": 0.0}


def test_openrouter_headers() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.headers)
        return httpx.Response(200, json=_completion("hello"))

    _call(handler, api_url="https://openrouter.ai/api/v1/chat/completions")
    assert seen["x-title"] == "cvscan"


def test_non_200_is_an_error() -> None:
    result = _call(lambda request: httpx.Response(429, text="rate limited"))
    assert result["status"] == "error"
    assert result["http_status"] == 429
    assert result["error_message"] == "rate limited"


def test_empty_content_is_an_error() -> None:
    result = _call(lambda request: httpx.Response(200, json=_completion("   ")))
    assert result["status"] == "error"
    assert result["error_message"] == "Empty response content"


def test_malformed_body_is_an_error() -> None:
    result = _call(lambda request: httpx.Response(200, text="<html>oops</html>"))
    assert result["status"] == "error"
    assert "Malformed response body" in result["error_message"]


def test_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    result = _call(handler)
    assert result["status"] == "timeout"


def test_connection_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = _call(handler)
    assert result["status"] == "error"
    assert "connection refused" in result["error_message"]


def test_missing_api_key_makes_no_request() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    result = _call(handler, api_key="")
    assert result["status"] == "error"
    assert "API key" in result["error_message"]


def test_http_model_raises_transport_error(model_settings) -> None:
    model = HTTPModel(model_settings, transport=httpx.MockTransport(lambda request: httpx.Response(503, text="busy")))
    with pytest.raises(TransportError) as exc_info:
        asyncio.run(model.respond(ModelRequest(messages=MESSAGES)))
    assert exc_info.value.http_status == 503
    assert str(exc_info.value) == "busy"


def test_http_model_returns_text_and_usage(model_settings) -> None:
    transport = httpx.MockTransport(
        lambda request: httpx.Response(200, json=_completion("{}", {"prompt_tokens": 1, "completion_tokens": 1, "total_tokens": 2}))
    )
    response = asyncio.run(HTTPModel(model_settings, transport=transport).respond(ModelRequest(messages=MESSAGES)))
    assert response.text == "{}"
    assert response.usage["total_tokens"] == 2
    assert not response.cached

from __future__ import annotations

import time
from typing import Optional

import httpx

OPENROUTER_HOST = "openrouter.ai"


def _empty_result(messages: list[dict], max_tokens: Optional[int], temperature: Optional[float]) -> dict:
    return {
        "status": "error",
        "response_text": None,
        "latency_ms": 0,
        "http_status": None,
        "error_message": None,
        "usage": None,
        "request": {"messages": messages, "max_tokens": max_tokens, "temperature": temperature},
        "response_json": None,
    }


def _build_headers(api_key: str, api_url: str) -> dict:
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    if OPENROUTER_HOST in api_url:
        headers["HTTP-Referer"] = "http://localhost"
        headers["X-Title"] = "cvscan"
    return headers


def _extract_usage(data: dict) -> dict:
    usage = data.get("usage") or {}
    return {
        "prompt_tokens": usage.get("prompt_tokens"),
        "completion_tokens": usage.get("completion_tokens"),
        "total_tokens": usage.get("total_tokens"),
        "cost_usd": usage.get("cost") or data.get("cost"),
    }


async def call_chat_completions(
    messages: list[dict],
    *,
    api_key: str,
    api_url: str,
    model_name: str,
    timeout_s: float,
    max_tokens: Optional[int] = None,
    temperature: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    """
    Call an OpenAI-format chat completions endpoint.

    Works against OpenAI itself, OpenRouter, or any server speaking the same
    wire format. Never raises for remote failures: the outcome is reported in
    the returned dict's "status" field ("ok", "error" or "timeout").
    """
    result = _empty_result(messages, max_tokens, temperature)
    if not api_key:
        result["error_message"] = "API key not set. Pass -k or set OPENAI_API_KEY"
        return result

    body = {
        "model": model_name,
        "messages": messages,
    }
    if max_tokens is not None:
        body["max_tokens"] = max_tokens
    if temperature is not None:
        body["temperature"] = temperature

    start_ms = time.perf_counter() * 1000
    try:
        async with httpx.AsyncClient(timeout=timeout_s, transport=transport) as client:
            resp = await client.post(api_url, headers=_build_headers(api_key, api_url), json=body)
        result["latency_ms"] = time.perf_counter() * 1000 - start_ms
        result["http_status"] = resp.status_code

        if resp.status_code != 200:
            result["error_message"] = resp.text
            return result

        data = resp.json()
        result["response_json"] = data

        choices = data.get("choices") or [{}]
        content = (choices[0].get("message") or {}).get("content") or ""
        if not content.strip():
            result["error_message"] = "Empty response content"
            return result

        result["status"] = "ok"
        result["response_text"] = content
        result["usage"] = _extract_usage(data)

    except httpx.TimeoutException:
        result["latency_ms"] = time.perf_counter() * 1000 - start_ms
        result["status"] = "timeout"
        result["error_message"] = f"Request timed out after {timeout_s}s"

    except httpx.RequestError as e:
        result["latency_ms"] = time.perf_counter() * 1000 - start_ms
        result["error_message"] = str(e)

    except ValueError as e:
        result["latency_ms"] = time.perf_counter() * 1000 - start_ms
        result["error_message"] = f"Malformed response body: {e}"

    return result

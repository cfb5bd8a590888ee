"""
Model call pipeline.

A model is anything with ``async respond(request) -> response``. Cross-cutting
behaviour is added by wrapping one model in another; ModelBuilder assembles
the chain in a fixed order, innermost first:

    HTTPModel -> LoggingModel -> RetryModel -> ConcurrencyLimitedModel
              -> CachedModel -> UsageCountingModel

Because the cache sits outside the limiter and the retry loop, a cache hit
never waits for a concurrency slot and is never retried.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import time
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx
from pydantic import BaseModel, Field

from .cache import ResponseCache, SQLiteResponseCache
from .config import ModelSettings, RunSettings
from .errors import RetriesExhaustedError, TransportError
from .llm_client import call_chat_completions
from .stats import UsageCounter


class ModelRequest(BaseModel):
    messages: list[dict]
    # Distinguishes otherwise identical requests in the cache (e.g. the repeat index).
    variant: Optional[int] = None
    # Observability only; not part of the fingerprint.
    labels: dict = Field(default_factory=dict)

    def fingerprint(self, namespace: str = "") -> str:
        payload = json.dumps(
            {"namespace": namespace, "messages": self.messages, "variant": self.variant},
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ModelResponse(BaseModel):
    text: str
    usage: Optional[dict] = None
    cached: bool = False


class Model:
    async def respond(self, request: ModelRequest) -> ModelResponse:
        raise NotImplementedError


class HTTPModel(Model):
    def __init__(self, settings: ModelSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    async def respond(self, request: ModelRequest) -> ModelResponse:
        result = await call_chat_completions(
            request.messages,
            api_key=self.settings.api_key,
            api_url=self.settings.api_url,
            model_name=self.settings.model_name,
            timeout_s=self.settings.timeout_s,
            max_tokens=self.settings.max_output_tokens,
            temperature=self.settings.temperature,
            transport=self.transport,
        )
        if result["status"] != "ok":
            raise TransportError(
                result["error_message"] or "request failed",
                status=result["status"],
                http_status=result["http_status"],
            )
        return ModelResponse(text=result["response_text"], usage=result["usage"])


class LoggingModel(Model):
    """Logs every call that reaches the wrapped model; optionally emits a call-log record."""

    def __init__(self, model: Model, logger, on_attempt: Optional[Callable[[dict], None]] = None):
        self.model = model
        self.logger = logger
        self.on_attempt = on_attempt

    async def respond(self, request: ModelRequest) -> ModelResponse:
        started_at = datetime.now(timezone.utc).isoformat()
        start = time.perf_counter()
        try:
            response = await self.model.respond(request)
        except TransportError as e:
            duration = time.perf_counter() - start
            self.logger.warning(
                "Model call failed", duration_s=round(duration, 2), status=e.status,
                http_status=e.http_status, err=str(e),
            )
            self._emit(request, started_at, duration, e.status, e.http_status, str(e), None)
            raise
        duration = time.perf_counter() - start
        self.logger.info("Model call finished", duration_s=round(duration, 2), status="ok")
        self._emit(request, started_at, duration, "ok", None, None, response.usage)
        return response

    def _emit(self, request, started_at, duration, status, http_status, error_message, usage) -> None:
        if not self.on_attempt:
            return
        self.on_attempt({
            **request.labels,
            "started_at": started_at,
            "ended_at": datetime.now(timezone.utc).isoformat(),
            "latency_ms": duration * 1000,
            "status": status,
            "http_status": http_status,
            "error_message": error_message,
            "usage": usage,
        })


class RetryModel(Model):
    """Retries transport failures. Malformed replies are re-asked by StructuredCall, which sits above the chain."""

    def __init__(self, model: Model, max_attempts: int, delay_s: float):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.model = model
        self.max_attempts = max_attempts
        self.delay_s = delay_s

    async def respond(self, request: ModelRequest) -> ModelResponse:
        last_error: Optional[Exception] = None
        for attempt in range(self.max_attempts):
            if attempt > 0:
                await asyncio.sleep(self.delay_s)
            try:
                return await self.model.respond(request)
            except TransportError as e:
                last_error = e
        raise RetriesExhaustedError(self.max_attempts, last_error)


class ConcurrencyLimiter:
    """Counting semaphore shared by every model chain of one run."""

    def __init__(self, max_concurrent: int):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self.in_flight = 0
        self.peak_in_flight = 0

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self._semaphore.acquire()
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.in_flight -= 1
        self._semaphore.release()


class ConcurrencyLimitedModel(Model):
    def __init__(self, model: Model, limiter: ConcurrencyLimiter):
        self.model = model
        self.limiter = limiter

    async def respond(self, request: ModelRequest) -> ModelResponse:
        async with self.limiter:
            return await self.model.respond(request)


class CachedModel(Model):
    """Cache reads and writes run in a worker thread, off the event loop."""

    def __init__(self, model: Model, cache: ResponseCache, namespace: str = ""):
        self.model = model
        self.cache = cache
        self.namespace = namespace

    async def respond(self, request: ModelRequest) -> ModelResponse:
        fingerprint = request.fingerprint(self.namespace)
        payload = await asyncio.to_thread(self.cache.get, fingerprint)
        if payload is not None:
            return ModelResponse.model_validate_json(payload).model_copy(update={"cached": True})
        response = await self.model.respond(request)
        await asyncio.to_thread(self.cache.set, fingerprint, response.model_dump_json(exclude={"cached"}))
        return response


class UsageCountingModel(Model):
    def __init__(self, model: Model, counter: UsageCounter):
        self.model = model
        self.counter = counter

    async def respond(self, request: ModelRequest) -> ModelResponse:
        response = await self.model.respond(request)
        self.counter.add(response.usage, cached=response.cached)
        return response


class ModelBuilder:
    """
    Builds model chains that share one limiter, one cache and one usage counter.

    Create one per run and close it when the run is over so the cache is released.
    """

    def __init__(
        self,
        settings: ModelSettings,
        cache: ResponseCache,
        max_concurrency: int = 3,
        retries: int = 8,
        retry_delay_s: float = 5.0,
        on_attempt: Optional[Callable[[dict], None]] = None,
        base_model: Optional[Model] = None,
    ):
        self.settings = settings
        self.cache = cache
        self.limiter = ConcurrencyLimiter(max_concurrency)
        self.usage_counter = UsageCounter()
        self.retries = retries
        self.retry_delay_s = retry_delay_s
        self.on_attempt = on_attempt
        self.base_model = base_model

    @classmethod
    def from_settings(
        cls,
        settings: ModelSettings,
        run: RunSettings,
        on_attempt: Optional[Callable[[dict], None]] = None,
    ) -> "ModelBuilder":
        return cls(
            settings,
            SQLiteResponseCache(run.cache_path),
            max_concurrency=run.max_concurrency,
            retries=run.retries,
            retry_delay_s=run.retry_delay_s,
            on_attempt=on_attempt,
        )

    @property
    def cache_namespace(self) -> str:
        s = self.settings
        return f"{s.api_url}|{s.model_name}|{s.temperature}|{s.max_output_tokens}"

    def build_candidate_review_model(self, logger) -> Model:
        model = self.base_model or HTTPModel(self.settings)
        model = LoggingModel(model, logger, self.on_attempt)
        model = RetryModel(model, self.retries, self.retry_delay_s)
        model = ConcurrencyLimitedModel(model, self.limiter)
        model = CachedModel(model, self.cache, self.cache_namespace)
        model = UsageCountingModel(model, self.usage_counter)
        return model

    def close(self) -> None:
        self.cache.close()

    def __enter__(self) -> "ModelBuilder":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

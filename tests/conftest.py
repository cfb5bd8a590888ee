from __future__ import annotations

import asyncio
import json
from typing import Callable

import fitz
import pytest
import structlog

from cvscan.cache import MemoryResponseCache
from cvscan.config import ModelSettings
from cvscan.errors import TransportError
from cvscan.pipeline import Model, ModelBuilder, ModelRequest, ModelResponse


def make_pdf(*pages: str) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def checklist_reply(answers: dict) -> str:
    return json.dumps({k: {"reasoning": "because", "answer": v} for k, v in answers.items()})


class ScriptedModel(Model):
    """Stands in for the HTTP link; replies with whatever the script returns for a request."""

    def __init__(self, script: Callable[[ModelRequest, int], str], delay_s: float = 0.0):
        self.script = script
        self.delay_s = delay_s
        self.requests: list[ModelRequest] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def respond(self, request: ModelRequest) -> ModelResponse:
        self.requests.append(request)
        n = len(self.requests)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        reply = self.script(request, n)
        if isinstance(reply, Exception):
            raise reply
        return ModelResponse(text=reply, usage={"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15})


class FailingModel(Model):
    def __init__(self, message: str = "boom"):
        self.message = message
        self.calls = 0

    async def respond(self, request: ModelRequest) -> ModelResponse:
        self.calls += 1
        raise TransportError(self.message, http_status=503)


@pytest.fixture
def model_settings() -> ModelSettings:
    return ModelSettings(api_key="test-key", api_url="http://llm.test/v1/chat/completions", model_name="test-model")


@pytest.fixture
def make_builder(model_settings):
    def _make(base_model: Model, max_concurrency: int = 3, retries: int = 8, cache=None) -> ModelBuilder:
        return ModelBuilder(
            model_settings,
            cache if cache is not None else MemoryResponseCache(),
            max_concurrency=max_concurrency,
            retries=retries,
            retry_delay_s=0.0,
            base_model=base_model,
        )
    return _make


@pytest.fixture
def logger():
    return structlog.get_logger("cvscan.tests")


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()

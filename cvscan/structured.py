"""
Typed LLM calls: render a request to a prompt, decode the JSON reply into
pydantic models, check that every requested key was answered, and feed
malformed replies back to the model until it gets them right or the attempt
budget runs out.
"""

from __future__ import annotations

from typing import Callable, Generic, Iterable, Optional, Type, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from .errors import ResponseValidationError, RetriesExhaustedError
from .pipeline import Model, ModelRequest

Req = TypeVar("Req")
A = TypeVar("A", bound=BaseModel)

FEEDBACK_TEMPLATE = (
    "Your previous response could not be used: {error}\n"
    "Reply again with a single JSON object that follows the instructions exactly."
)


class ChecklistAnswer(BaseModel):
    reasoning: str = ""
    answer: bool


class TextAnswer(BaseModel):
    reasoning: str = ""
    answer: str


def extract_json_object(text: str) -> str:
    """Cut the outermost {...} out of a reply that may be wrapped in prose or code fences."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1:
        start = 0
    if end == -1 or end <= start:
        end = len(text) - 1
    return text[start:end + 1]


class StructuredCall(Generic[Req, A]):
    def __init__(
        self,
        model: Model,
        render: Callable[[Req], str],
        answer_type: Type[A],
        expected_keys: Callable[[Req], Iterable[str]],
        max_attempts: int = 8,
        variant: Optional[Callable[[Req], Optional[int]]] = None,
        labels: Optional[dict] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.model = model
        self.render = render
        self.adapter = TypeAdapter(dict[str, answer_type])
        self.expected_keys = expected_keys
        self.max_attempts = max_attempts
        self.variant = variant
        self.labels = labels or {}

    def decode(self, request: Req, text: str) -> dict[str, A]:
        try:
            answers = self.adapter.validate_json(extract_json_object(text))
        except ValidationError as e:
            raise ResponseValidationError(f"response is not valid JSON of the expected shape: {e}", text) from e
        missing = sorted(k for k in self.expected_keys(request) if k not in answers)
        if missing:
            raise ResponseValidationError(f"missing the following question keys: {missing}", text)
        return answers

    async def call(self, request: Req) -> dict[str, A]:
        messages = [{"role": "user", "content": self.render(request)}]
        variant = self.variant(request) if self.variant else None
        last_error: Optional[ResponseValidationError] = None
        for attempt in range(self.max_attempts):
            response = await self.model.respond(
                ModelRequest(messages=messages, variant=variant, labels={**self.labels, "attempt": attempt})
            )
            try:
                return self.decode(request, response.text)
            except ResponseValidationError as e:
                last_error = e
                messages = messages + [
                    {"role": "assistant", "content": response.text},
                    {"role": "user", "content": FEEDBACK_TEMPLATE.format(error=e)},
                ]
        raise RetriesExhaustedError(self.max_attempts, last_error)

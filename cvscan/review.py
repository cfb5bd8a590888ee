"""
Consensus review of resumes against a yes/no checklist.

Each resume is reviewed ``repeats`` times in parallel; each repeat answers
the whole checklist in a single call. The share of repeats answering "true"
becomes the probability for that checklist key, and how evenly the repeats
split becomes its inconsistency.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from .parallel import par_map_range
from .pipeline import ModelBuilder
from .prompts import build_review_prompt
from .structured import ChecklistAnswer, StructuredCall


@dataclass(frozen=True)
class QuestionResult:
    probability: float

    def is_true(self) -> bool:
        return self.probability > 0.5

    def inconsistency(self) -> float:
        return min(self.probability, 1 - self.probability) * 2


@dataclass(frozen=True)
class CandidateReviewRequest:
    repeat_number: int
    checklist: Mapping[str, str]
    resume: str


def aggregate_judgments(judgments: Sequence[Mapping[str, bool]], keys) -> dict[str, QuestionResult]:
    """Average boolean votes per key. Every judgment must answer every key."""
    if not judgments:
        raise ValueError("at least one judgment is required")
    counts = {key: 0 for key in keys}
    for judgment in judgments:
        for key in counts:
            if judgment[key]:
                counts[key] += 1
    return {key: QuestionResult(count / len(judgments)) for key, count in counts.items()}


def mean_inconsistency(results: Mapping[str, QuestionResult]) -> float:
    if not results:
        return 0.0
    return sum(r.inconsistency() for r in results.values()) / len(results)


async def review_candidates(
    logger,
    model_builder: ModelBuilder,
    checklist: Mapping[str, str],
    resumes: Sequence[str],
    num_repeats: int,
    labels: Optional[dict] = None,
) -> list[dict[str, QuestionResult]]:
    """Review every resume against the checklist, raising FanOutError if any resume failed."""
    if num_repeats < 1:
        raise ValueError("num_repeats must be at least 1")
    if len(resumes) == 0:
        logger.info("No resumes provided for checklist, skipping")
        return []
    if len(checklist) == 0:
        logger.info("No questions provided for checklist, skipping")
        return [{} for _ in resumes]

    task = CandidateReviewTask(model_builder, logger, dict(checklist), list(resumes), num_repeats, labels)
    logger.info(
        "Reviewing resumes",
        num_resumes=len(resumes),
        num_checklist=len(checklist),
        num_repeats=num_repeats,
        estimated_llm_calls=len(resumes) * num_repeats,
    )
    return await task.execute()


class CandidateReviewTask:
    def __init__(self, model_builder: ModelBuilder, logger, checklist: dict[str, str],
                 resumes: list[str], repeats: int, labels: Optional[dict] = None):
        self.model_builder = model_builder
        self.logger = logger
        self.checklist = checklist
        self.resumes = resumes
        self.repeats = repeats
        self.labels = labels or {}

    async def execute(self) -> list[dict[str, QuestionResult]]:
        self.logger.info("Beginning candidate reviews", num_candidates=len(self.resumes))
        return await par_map_range(len(self.resumes), self._review_logged)

    async def _review_logged(self, index: int) -> dict[str, QuestionResult]:
        candidate_logger = self.logger.bind(resume=index)
        candidate_logger.info("Begun candidate review")
        try:
            result = await self.review_single_candidate(index)
        except Exception as e:
            candidate_logger.error("Failed to review candidate", err=str(e))
            raise
        candidate_logger.debug(
            "Completed candidate review",
            result={k: round(v.probability, 3) for k, v in result.items()},
        )
        candidate_logger.info(
            "Completed candidate review",
            inconsistency=round(mean_inconsistency(result), 2),
        )
        return result

    async def review_single_candidate(self, index: int) -> dict[str, QuestionResult]:
        judgments = await par_map_range(
            self.repeats,
            lambda repeat: self.review_candidate_once(index, repeat),
        )
        return aggregate_judgments(judgments, self.checklist)

    async def review_candidate_once(self, index: int, repeat: int) -> dict[str, bool]:
        logger = self.logger.bind(resume=index, repeat=repeat)
        call = build_candidate_review_call(
            self.model_builder, logger, self.model_builder.retries,
            labels={**self.labels, "stage": "review", "resume": index, "repeat": repeat},
        )
        request = CandidateReviewRequest(
            repeat_number=repeat,
            checklist=self.checklist,
            resume=self.resumes[index],
        )
        answers = await call.call(request)
        return {key: answers[key].answer for key in self.checklist}


def build_candidate_review_call(model_builder: ModelBuilder, logger, max_attempts: int,
                                labels: Optional[dict] = None) -> StructuredCall:
    return StructuredCall(
        model_builder.build_candidate_review_model(logger),
        render=lambda req: build_review_prompt(req.checklist, req.resume, req.repeat_number),
        answer_type=ChecklistAnswer,
        expected_keys=lambda req: req.checklist.keys(),
        max_attempts=max_attempts,
        variant=lambda req: req.repeat_number,
        labels=labels,
    )

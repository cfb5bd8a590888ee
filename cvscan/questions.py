"""Free-text questions: one call per resume, no repeats and no averaging."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from .parallel import par_map_range
from .pipeline import ModelBuilder
from .prompts import build_questions_prompt
from .structured import StructuredCall, TextAnswer


@dataclass(frozen=True)
class TextQuestionResult:
    reasoning: str
    answer: str


@dataclass(frozen=True)
class CandidateQuestionRequest:
    resume: str
    questions: Mapping[str, str]


async def answer_questions_for_candidates(
    logger,
    model_builder: ModelBuilder,
    questions: Mapping[str, str],
    resumes: Sequence[str],
    labels: Optional[dict] = None,
) -> list[dict[str, TextQuestionResult]]:
    if len(resumes) == 0:
        logger.info("No resumes provided for question answering, skipping")
        return []
    if len(questions) == 0:
        logger.info("No questions provided for question answering, skipping")
        return [{} for _ in resumes]

    logger.info(
        "Answering questions",
        num_resumes=len(resumes),
        num_questions=len(questions),
        estimated_llm_calls=len(resumes),
    )
    questions = dict(questions)
    labels = labels or {}

    async def answer_one(index: int) -> dict[str, TextQuestionResult]:
        candidate_logger = logger.bind(resume=index)
        candidate_logger.info("Begun question answering")
        call = StructuredCall(
            model_builder.build_candidate_review_model(candidate_logger),
            render=lambda req: build_questions_prompt(req.questions, req.resume),
            answer_type=TextAnswer,
            expected_keys=lambda req: req.questions.keys(),
            max_attempts=model_builder.retries,
            labels={**labels, "stage": "questions", "resume": index},
        )
        try:
            answers = await call.call(CandidateQuestionRequest(resume=resumes[index], questions=questions))
        except Exception as e:
            candidate_logger.error("Failed to answer questions for candidate", err=str(e))
            raise
        candidate_logger.info("Completed question answering")
        return {k: TextQuestionResult(reasoning=answers[k].reasoning, answer=answers[k].answer) for k in questions}

    logger.info("Beginning question answering", num_candidates=len(resumes))
    return await par_map_range(len(resumes), answer_one)

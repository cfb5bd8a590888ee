from typing import Mapping

CANDIDATE_REVIEW_TEMPLATE = """You are an expert candidate reviewer. Examine the resume carefully and evaluate every checklist item.

For each checklist entry, produce:
- "reasoning": your full internal reasoning and thought process leading to the answer
- "answer": true or false

Return a single JSON object where each key matches the exact checklist key.

Checklist:
{checklist}

Resume:
{resume}

Review pass: {repeat}"""

CANDIDATE_QUESTIONS_TEMPLATE = """You are an expert candidate reviewer. Examine the resume carefully and evaluate every question item.

For each question entry, produce:
- "reasoning": your full internal reasoning and thought process leading to the answer
- "answer": a string answer to the question (if not otherwise specified, this should be as concise as possible)

Return a single JSON object where each key matches the exact question key. Do not return extra keys, and make sure to answer all questions.

Questions:
{questions}

Resume:
{resume}"""


def build_item_block(items: Mapping[str, str]) -> str:
    return "\n".join(f"- {key}: {items[key]}" for key in sorted(items))


def build_review_prompt(checklist: Mapping[str, str], resume: str, repeat: int) -> str:
    return CANDIDATE_REVIEW_TEMPLATE.format(
        checklist=build_item_block(checklist),
        resume=resume,
        repeat=repeat,
    )


def build_questions_prompt(questions: Mapping[str, str], resume: str) -> str:
    return CANDIDATE_QUESTIONS_TEMPLATE.format(
        questions=build_item_block(questions),
        resume=resume,
    )

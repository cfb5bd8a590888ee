"""
cvscan - consensus review of resumes against natural-language checklists.

Every resume is checked against a checklist of yes/no questions by an LLM,
several times over, and the repeated answers are averaged:

1. Fan-out: resumes, repeats and views all run as parallel tasks that are
   joined in full (one failure never cancels its siblings)
2. Call pipeline: each LLM call goes through a response cache, a concurrency
   limiter and a fixed-delay retry loop, with usage counting and logging
3. Consensus: the share of "true" answers becomes a probability, and how
   evenly the repeats split becomes an inconsistency score
"""

from .config import ChecklistItem, Config, ModelSettings, RunSettings, ViewConfig, load_config
from .errors import (
    CacheError,
    CVScanError,
    FanOutError,
    ResponseValidationError,
    RetriesExhaustedError,
    TransportError,
)
from .parallel import par_map, par_map_do, par_map_range
from .pipeline import ModelBuilder, ModelRequest, ModelResponse
from .questions import TextQuestionResult, answer_questions_for_candidates
from .review import QuestionResult, review_candidates

__all__ = [
    # Config
    "ChecklistItem",
    "Config",
    "ModelSettings",
    "RunSettings",
    "ViewConfig",
    "load_config",
    # Errors
    "CacheError",
    "CVScanError",
    "FanOutError",
    "ResponseValidationError",
    "RetriesExhaustedError",
    "TransportError",
    # Fan-out
    "par_map",
    "par_map_do",
    "par_map_range",
    # Pipeline
    "ModelBuilder",
    "ModelRequest",
    "ModelResponse",
    # Review
    "QuestionResult",
    "review_candidates",
    "TextQuestionResult",
    "answer_questions_for_candidates",
]

from __future__ import annotations

import csv
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping, Sequence, TextIO

from .questions import TextQuestionResult
from .review import QuestionResult


class ReportMode(str, Enum):
    BOOLEAN = "boolean"
    PROBABILITY = "probability"
    INCONSISTENCY = "inconsistency"


@dataclass
class CandidateReport:
    file_name: str
    file_loc: str
    checklist: Mapping[str, QuestionResult]
    final_score: float
    answers: Mapping[str, TextQuestionResult] = field(default_factory=dict)


def score_candidate(results: Mapping[str, QuestionResult], weights: Mapping[str, float]) -> float:
    """Sum of the weights of every checklist key the candidate satisfies."""
    return sum(weights.get(key, 1.0) for key, result in results.items() if result.is_true())


def sort_reports(reports: Sequence[CandidateReport]) -> list[CandidateReport]:
    return sorted(reports, key=lambda r: (-r.final_score, r.file_name))


def build_reports(
    paths: Sequence[str],
    results: Sequence[Mapping[str, QuestionResult]],
    weights: Mapping[str, float],
    answers: Sequence[Mapping[str, TextQuestionResult]] = (),
) -> list[CandidateReport]:
    reports = []
    for i, path in enumerate(paths):
        reports.append(CandidateReport(
            file_name=Path(path).name,
            file_loc=str(path),
            checklist=results[i],
            final_score=score_candidate(results[i], weights),
            answers=answers[i] if i < len(answers) else {},
        ))
    return sort_reports(reports)


def _format_cell(result: QuestionResult, mode: ReportMode) -> str:
    if mode == ReportMode.BOOLEAN:
        return "true" if result.is_true() else "false"
    if mode == ReportMode.PROBABILITY:
        return f"{result.probability:.3f}"
    return f"{result.inconsistency():.3f}"


def _format_score(score: float) -> str:
    return str(int(score)) if score == int(score) else repr(score)


def write_candidate_reports_csv(f: TextIO, reports: Sequence[CandidateReport], mode: ReportMode) -> None:
    keys = sorted({k for r in reports for k in r.checklist})
    writer = csv.writer(f)
    writer.writerow(["FileName", "FileLoc", *keys, "FinalScore"])
    for r in reports:
        row = [r.file_name, r.file_loc]
        for k in keys:
            row.append(_format_cell(r.checklist.get(k, QuestionResult(0.0)), mode))
        row.append(_format_score(r.final_score))
        writer.writerow(row)


def write_candidate_reports_csv_file(filepath: Path, reports: Sequence[CandidateReport], mode: ReportMode) -> None:
    with open(filepath, "w", newline="") as f:
        write_candidate_reports_csv(f, reports, mode)


def write_answers_csv(f: TextIO, reports: Sequence[CandidateReport]) -> None:
    keys = sorted({k for r in reports for k in r.answers})
    writer = csv.writer(f)
    writer.writerow(["FileName", "FileLoc", *keys])
    for r in reports:
        writer.writerow([r.file_name, r.file_loc, *(r.answers[k].answer if k in r.answers else "" for k in keys)])


def write_answers_csv_file(filepath: Path, reports: Sequence[CandidateReport]) -> None:
    with open(filepath, "w", newline="") as f:
        write_answers_csv(f, reports)

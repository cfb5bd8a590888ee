from __future__ import annotations

import time
from pathlib import Path
from typing import Mapping, Optional, Sequence

from .config import ViewConfig
from .documents import SourceDocument
from .parallel import par_map_do
from .pipeline import ModelBuilder
from .questions import answer_questions_for_candidates
from .report import (
    CandidateReport, ReportMode, build_reports,
    write_answers_csv_file, write_candidate_reports_csv_file,
)
from .review import review_candidates

REPORT_FILES = {
    ReportMode.BOOLEAN: "report_{view}.csv",
    ReportMode.PROBABILITY: "probabilities_{view}.csv",
    ReportMode.INCONSISTENCY: "inconsistency_{view}.csv",
}
ANSWERS_FILE = "answers_{view}.csv"


class ViewRunner:
    """Runs every configured view over the same documents, each view as its own parallel task."""

    def __init__(
        self,
        logger,
        model_builder: ModelBuilder,
        views: Mapping[str, ViewConfig],
        documents: Sequence[SourceDocument],
        num_repeats: int,
        result_dir: Optional[str] = None,
    ):
        self.logger = logger
        self.model_builder = model_builder
        self.views = views
        self.documents = list(documents)
        self.num_repeats = num_repeats
        self.result_dir = result_dir
        self.reports: dict[str, list[CandidateReport]] = {}
        self.failed: dict[str, BaseException] = {}

    async def run_views(self) -> None:
        """Raises FanOutError naming every failed view after all views have finished."""
        await par_map_do(sorted(self.views), self._run_view_logged)

    async def _run_view_logged(self, view_name: str) -> None:
        try:
            await self.run_view(view_name)
        except Exception as e:
            self.failed[view_name] = e
            self.logger.bind(view_name=view_name).error("Failed to review candidates", err=str(e))
            raise

    async def run_view(self, view_name: str) -> list[CandidateReport]:
        view = self.views[view_name]
        tstart = time.perf_counter()
        view_logger = self.logger.bind(view_name=view_name)
        resumes = [d.text for d in self.documents]
        labels = {"view_name": view_name}

        results = await review_candidates(
            view_logger, self.model_builder, view.checklist(), resumes, self.num_repeats, labels,
        )
        answers = []
        if view.questions:
            answers = await answer_questions_for_candidates(
                view_logger, self.model_builder, view.questions, resumes, labels,
            )

        reports = build_reports([d.path for d in self.documents], results, view.weights(), answers)
        self.reports[view_name] = reports
        if self.result_dir is not None:
            self.write_reports(view_name, reports, bool(view.questions))
        view_logger.info("Finished review", time_taken=f"{time.perf_counter() - tstart:.1f}s")
        return reports

    def write_reports(self, view_name: str, reports: list[CandidateReport], with_answers: bool) -> None:
        out = Path(self.result_dir)
        out.mkdir(parents=True, exist_ok=True)
        for mode, pattern in REPORT_FILES.items():
            write_candidate_reports_csv_file(out / pattern.format(view=view_name), reports, mode)
        if with_answers:
            write_answers_csv_file(out / ANSWERS_FILE.format(view=view_name), reports)

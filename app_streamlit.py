import asyncio
import json
from pathlib import Path

import streamlit as st

from cvscan.config import DEFAULT_API_URL, DEFAULT_MODEL, ModelSettings, RunSettings, load_config, resolve_api_key
from cvscan.documents import SourceDocument
from cvscan.errors import CVScanError
from cvscan.io import append_call_log, generate_run_id, write_usage
from cvscan.logs import configure_logging, get_logger
from cvscan.pipeline import ModelBuilder
from cvscan.report import ReportMode
from cvscan.stats import compute_stats
from cvscan.storage import FileCVManager
from cvscan.views import ViewRunner

st.set_page_config(page_title="cvscan", layout="wide")

SETTINGS_PATH = Path(__file__).parent / "settings.json"


def load_settings():
    """Load UI defaults from settings.json."""
    if SETTINGS_PATH.exists():
        with open(SETTINGS_PATH) as f:
            return json.load(f)
    return {
        "config_path": "./config.json",
        "cv_storage": "./cv-storage",
        "model": {"api_url": DEFAULT_API_URL, "model_name": DEFAULT_MODEL, "temperature": 0.0},
        "run": {"repeats": 5, "max_concurrency": 3, "retries": 8, "retry_delay_s": 5.0},
        "ui": {"max_file_size_mb": 20},
    }


SETTINGS = load_settings()
MODEL_DEFAULTS = SETTINGS.get("model", {})
RUN_DEFAULTS = SETTINGS.get("run", {})
UI_SETTINGS = SETTINGS.get("ui", {})

MAX_FILE_SIZE_MB = UI_SETTINGS.get("max_file_size_mb", 20)
MAX_FILE_SIZE = MAX_FILE_SIZE_MB * 1024 * 1024


def init_session_state():
    for key in ("run_reports", "run_usage", "run_id", "run_error"):
        if key not in st.session_state:
            st.session_state[key] = None


def render_cv_manager(cvm: FileCVManager):
    st.subheader("CVs")
    uploaded_files = st.file_uploader(
        f"Upload PDF resumes (max {MAX_FILE_SIZE_MB}MB each)",
        type=["pdf"], accept_multiple_files=True, key="cv_uploader",
    )
    groups = cvm.list_groups()
    group = st.selectbox("Group for uploads", groups, key="upload_group")
    if uploaded_files and st.button("Import", key="import_btn"):
        for f in uploaded_files:
            if f.size > MAX_FILE_SIZE:
                st.error(f"{f.name} exceeds {MAX_FILE_SIZE_MB}MB, skipped")
                continue
            try:
                cvm.import_pdf(f.name, f.read(), group)
            except (RuntimeError, ValueError) as e:
                st.error(f"Could not read {f.name}: {e}")
        st.rerun()

    cvs = cvm.list_cvs()
    st.caption(f"{len(cvs)} stored")
    for cv in cvs:
        cols = st.columns([4, 2, 1])
        with cols[0]:
            st.text(cv.file_name)
        with cols[1]:
            st.caption(cv.group)
        with cols[2]:
            if st.button("✕", key=f"delete_{cv.uuid}"):
                cvm.delete_cv(cv.uuid)
                st.rerun()
    return cvs


def report_rows(reports, mode: ReportMode) -> list[dict]:
    rows = []
    for r in reports:
        row = {"FileName": r.file_name}
        for key in sorted(r.checklist):
            result = r.checklist[key]
            if mode == ReportMode.BOOLEAN:
                row[key] = result.is_true()
            elif mode == ReportMode.PROBABILITY:
                row[key] = round(result.probability, 3)
            else:
                row[key] = round(result.inconsistency(), 3)
        for key in sorted(r.answers):
            row[key] = r.answers[key].answer
        row["FinalScore"] = r.final_score
        rows.append(row)
    return rows


def run_view(view_name, view, cvs, model_settings, run_settings):
    run_id = generate_run_id()
    out_dir = Path("runs") / run_id
    logger = get_logger("cvscan", run_id=run_id)
    documents = [SourceDocument(path=cv.file_name, text=cv.text) for cv in cvs]
    attempts = []

    def on_attempt(record):
        attempts.append(record)
        append_call_log(str(out_dir), record)

    with ModelBuilder.from_settings(model_settings, run_settings, on_attempt) as builder:
        runner = ViewRunner(logger, builder, {view_name: view}, documents, run_settings.repeats, str(out_dir))
        try:
            asyncio.run(runner.run_views())
        finally:
            usage = builder.usage_counter.snapshot()
            write_usage(str(out_dir), usage, compute_stats(attempts))
    return run_id, runner.reports.get(view_name, []), usage


def main():
    configure_logging("INFO")
    init_session_state()
    st.title("cvscan")

    try:
        cfg = load_config(SETTINGS.get("config_path", "./config.json"))
    except CVScanError as e:
        st.error(str(e))
        return
    cvm = FileCVManager(SETTINGS.get("cv_storage", "./cv-storage"))

    col_left, col_right = st.columns([2, 1])

    with col_left:
        cvs = render_cv_manager(cvm)

    with col_right:
        st.subheader("Review")
        view_names = sorted(cfg.views)
        view_name = st.selectbox(
            "View", view_names, key="view_name",
            format_func=lambda name: cfg.views[name].pretty_name or name,
        )
        groups = ["All"] + cvm.list_groups()
        group = st.selectbox("CV group", groups, key="review_group")
        selected = [cv for cv in cvs if group == "All" or cv.group == group]

        api_key = st.text_input("API key", value=resolve_api_key() or "", type="password", key="api_key")
        api_url = st.text_input("API URL", value=MODEL_DEFAULTS.get("api_url", DEFAULT_API_URL), key="api_url")
        model_name = st.text_input("Model", value=MODEL_DEFAULTS.get("model_name", DEFAULT_MODEL), key="model_name")
        repeats = st.number_input("Repeats", value=RUN_DEFAULTS.get("repeats", 5), min_value=1, key="repeats")
        max_concurrency = st.number_input("Max concurrency", value=RUN_DEFAULTS.get("max_concurrency", 3),
                                          min_value=1, key="max_conc")
        retries = st.number_input("Attempts per call", value=RUN_DEFAULTS.get("retries", 8), min_value=1, key="retries")

        estimated = len(selected) * repeats if view_name else 0
        st.text(f"CVs = {len(selected)}, estimated LLM calls = {estimated}")

        can_run = bool(view_name) and bool(selected) and bool(api_key)
        if not api_key:
            st.warning("Enter an API key")
        run_clicked = st.button("Run", disabled=not can_run, key="run_btn", type="primary", use_container_width=True)

    if run_clicked and can_run:
        model_settings = ModelSettings(
            api_key=api_key, api_url=api_url, model_name=model_name,
            temperature=MODEL_DEFAULTS.get("temperature", 0.0),
        )
        run_settings = RunSettings(
            repeats=repeats, max_concurrency=max_concurrency, retries=retries,
            retry_delay_s=RUN_DEFAULTS.get("retry_delay_s", 5.0),
        )
        st.session_state.run_error = None
        with st.spinner(f"Reviewing {len(selected)} CVs..."):
            try:
                run_id, reports, usage = run_view(view_name, cfg.views[view_name], selected, model_settings, run_settings)
                st.session_state.run_id = run_id
                st.session_state.run_reports = reports
                st.session_state.run_usage = usage
            except CVScanError as e:
                st.session_state.run_error = str(e)

    if st.session_state.run_error:
        st.error(st.session_state.run_error)

    if st.session_state.run_reports:
        st.divider()
        st.header("Results")
        st.caption(f"Run {st.session_state.run_id}, reports saved to runs/{st.session_state.run_id}/")
        mode = st.radio("Show", [m.value for m in ReportMode], horizontal=True, key="report_mode")
        st.dataframe(report_rows(st.session_state.run_reports, ReportMode(mode)), use_container_width=True)
        with st.expander("Usage"):
            st.json(st.session_state.run_usage)


main()

import argparse
import asyncio
import sys
import time
from pathlib import Path

from .config import DEFAULT_API_URL, DEFAULT_MODEL, ModelSettings, RunSettings, load_config, resolve_api_key
from .documents import read_pdfs_from_dir
from .errors import CVNotFoundError, CVScanError, FanOutError
from .io import append_call_log, generate_run_id, write_text_dumps, write_usage
from .logs import configure_logging, get_logger
from .pipeline import ModelBuilder
from .stats import compute_stats
from .storage import DEFAULT_GROUP, FileCVManager
from .views import ViewRunner


def _run_settings(args) -> RunSettings:
    return RunSettings(
        repeats=args.repeats,
        max_concurrency=args.concurrency,
        retries=args.retries,
        retry_delay_s=args.retry_delay,
        cache_path=args.cache,
        pdf_dir=args.pdf_dir,
        result_dir=args.out,
        text_dir=args.text_dir,
    )


def cmd_review(args) -> int:
    t_all_start = time.perf_counter()
    logger = get_logger("cvscan", run_id=generate_run_id())

    api_key = resolve_api_key(args.api_key)
    if not api_key:
        logger.error("API key must be specified with -k or OPENAI_API_KEY")
        return 1

    try:
        run = _run_settings(args)
        model_settings = ModelSettings(
            api_key=api_key, api_url=args.api_url, model_name=args.model, temperature=args.temperature,
        )
        logger.info("Reading config", path=args.config)
        cfg = load_config(args.config)

        logger.info("Reading PDFs", directory=run.pdf_dir)
        documents = read_pdfs_from_dir(run.pdf_dir)
        for i, doc in enumerate(documents):
            logger.debug("Loaded PDF", index=i, path=doc.path)

        logger.info("Saving text files", directory=run.text_dir)
        write_text_dumps(run.text_dir, documents)
    except (CVScanError, OSError, ValueError) as e:
        logger.error("Failed to prepare run", err=str(e))
        return 1

    attempts = []

    def on_attempt(record):
        attempts.append(record)
        append_call_log(run.result_dir, record)

    logger.info("Creating model builder", model=model_settings.model_name, max_concurrency=run.max_concurrency)
    try:
        builder = ModelBuilder.from_settings(model_settings, run, on_attempt)
    except CVScanError as e:
        logger.error("Failed to create model builder", err=str(e))
        return 1

    with builder:
        runner = ViewRunner(logger, builder, cfg.views, documents, run.repeats, run.result_dir)
        failed = False
        try:
            asyncio.run(runner.run_views())
        except FanOutError as e:
            failed = True
            logger.error("Failed to review candidates", failed_views=sorted(runner.failed), err=str(e))

        usage = builder.usage_counter.snapshot()
        write_usage(run.result_dir, usage, compute_stats(attempts))

    logger.info("Everything finished", time_taken=f"{time.perf_counter() - t_all_start:.1f}s", **usage)
    return 1 if failed else 0


def cmd_cvs_add(args) -> int:
    cvm = FileCVManager(args.store)
    for path in args.files:
        cv = cvm.import_pdf(Path(path).name, Path(path).read_bytes(), args.group)
        print(f"{cv.uuid}  {cv.file_name}")
    return 0


def cmd_cvs_list(args) -> int:
    cvm = FileCVManager(args.store)
    for cv in cvm.list_cvs():
        print(f"{cv.uuid}  {cv.group:<16}  {cv.file_name}")
    return 0


def cmd_cvs_remove(args) -> int:
    cvm = FileCVManager(args.store)
    status = 0
    for cv_id in args.ids:
        try:
            cvm.delete_cv(cv_id)
        except CVNotFoundError as e:
            print(str(e), file=sys.stderr)
            status = 1
    return status


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cvscan")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--log-format", choices=["console", "json"], default="console")
    subparsers = parser.add_subparsers(dest="command", required=True)

    defaults = RunSettings()
    review = subparsers.add_parser("review", help="Review every PDF against every configured view")
    review.add_argument("-k", "--api-key", default=None, help="API key (falls back to OPENAI_API_KEY)")
    review.add_argument("-u", "--api-url", default=DEFAULT_API_URL,
                        help="OpenAI-format chat completions URL")
    review.add_argument("-m", "--model", default=DEFAULT_MODEL, help="Model name")
    review.add_argument("-t", "--temperature", type=float, default=0.0)
    review.add_argument("-r", "--repeats", type=int, default=defaults.repeats,
                        help="Repeats per resume; higher is more accurate but slower and costlier")
    review.add_argument("-c", "--concurrency", type=int, default=defaults.max_concurrency,
                        help="Maximum concurrent LLM calls; higher is faster but rate limits more easily")
    review.add_argument("--retries", type=int, default=defaults.retries, help="Attempts per call")
    review.add_argument("--retry-delay", type=float, default=defaults.retry_delay_s, help="Seconds between attempts")
    review.add_argument("--config", default="./config.json", help="Views config JSON file")
    review.add_argument("--pdf-dir", default=defaults.pdf_dir)
    review.add_argument("--text-dir", default=defaults.text_dir)
    review.add_argument("--out", default=defaults.result_dir, help="Report output directory")
    review.add_argument("--cache", default=defaults.cache_path, help="Response cache database")
    review.set_defaults(func=cmd_review)

    cvs = subparsers.add_parser("cvs", help="Manage the CV store")
    cvs.add_argument("--store", default="./cv-storage")
    cvs_sub = cvs.add_subparsers(dest="cvs_command", required=True)
    add = cvs_sub.add_parser("add", help="Import PDF files")
    add.add_argument("files", nargs="+")
    add.add_argument("--group", default=DEFAULT_GROUP)
    add.set_defaults(func=cmd_cvs_add)
    ls = cvs_sub.add_parser("list", help="List stored CVs")
    ls.set_defaults(func=cmd_cvs_list)
    rm = cvs_sub.add_parser("remove", help="Delete stored CVs")
    rm.add_argument("ids", nargs="+")
    rm.set_defaults(func=cmd_cvs_remove)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging("DEBUG" if args.verbose else "INFO", args.log_format)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

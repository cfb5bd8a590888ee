import json
import random
import string
from datetime import datetime
from pathlib import Path


def generate_run_id() -> str:
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    rand = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"{ts}_{rand}"


def ensure_dir(out_dir: str) -> Path:
    p = Path(out_dir)
    p.mkdir(parents=True, exist_ok=True)
    return p


def write_text_file(filepath: Path, content: str) -> None:
    with open(filepath, "w", encoding="utf-8") as f:
        f.write(content)


def write_text_dumps(text_dir: str, documents) -> None:
    """One <pdf name>.txt per document, so the extracted text can be inspected."""
    p = ensure_dir(text_dir)
    for doc in documents:
        write_text_file(p / f"{doc.name}.txt", doc.text)


def append_call_log(out_dir: str, attempt_record: dict) -> None:
    p = ensure_dir(out_dir)
    with open(p / "call_logs.jsonl", "a") as f:
        f.write(json.dumps(attempt_record, default=str) + "\n")


def write_usage(out_dir: str, usage: dict, stats: dict) -> None:
    p = ensure_dir(out_dir)
    with open(p / "usage.json", "w") as f:
        json.dump({"usage": usage, "stats": stats}, f, indent=2)

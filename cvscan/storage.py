"""File-backed store of imported CVs, one JSON document per CV."""

from __future__ import annotations

import base64
import uuid
from pathlib import Path

from pydantic import BaseModel

from .documents import extract_pdf_text
from .errors import CVNotFoundError

DEFAULT_GROUP = "Main group"


class CV(BaseModel):
    uuid: str
    file_name: str
    text: str
    raw_pdf: str = ""  # base64
    group: str = DEFAULT_GROUP


class FileCVManager:
    def __init__(self, folder: str):
        self.dir = Path(folder)
        self.dir.mkdir(parents=True, exist_ok=True)

    def _cv_path(self, cv_id: str) -> Path:
        return self.dir / f"{cv_id}.json"

    def list_cv_ids(self) -> list[str]:
        return sorted(p.stem for p in self.dir.iterdir() if p.is_file() and p.suffix == ".json")

    def get_cv(self, cv_id: str) -> CV:
        path = self._cv_path(cv_id)
        if not path.exists():
            raise CVNotFoundError(f"could not find cv {cv_id}")
        return CV.model_validate_json(path.read_text(encoding="utf-8"))

    def list_cvs(self) -> list[CV]:
        return [self.get_cv(cv_id) for cv_id in self.list_cv_ids()]

    def store_cv(self, cv: CV) -> None:
        self._cv_path(cv.uuid).write_text(cv.model_dump_json(indent=2), encoding="utf-8")

    def delete_cv(self, cv_id: str) -> None:
        path = self._cv_path(cv_id)
        if not path.exists():
            raise CVNotFoundError(f"could not find cv {cv_id}")
        path.unlink()

    def list_groups(self) -> list[str]:
        groups = {cv.group for cv in self.list_cvs()}
        groups.add(DEFAULT_GROUP)
        return sorted(groups)

    def import_pdf(self, file_name: str, data: bytes, group: str = DEFAULT_GROUP) -> CV:
        cv = CV(
            uuid=str(uuid.uuid4()),
            file_name=file_name,
            text=extract_pdf_text(data),
            raw_pdf=base64.b64encode(data).decode("ascii"),
            group=group,
        )
        self.store_cv(cv)
        return cv

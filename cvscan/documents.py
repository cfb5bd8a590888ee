from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Union

import fitz  # PyMuPDF


@dataclass(frozen=True)
class SourceDocument:
    path: str
    text: str

    @property
    def name(self) -> str:
        return Path(self.path).name


def list_pdfs(directory: str) -> list[str]:
    """All PDF files under directory (recursive), in a stable order."""
    root = Path(directory)
    if not root.is_dir():
        raise FileNotFoundError(f"PDF directory not found: {directory}")
    return sorted(str(p) for p in root.rglob("*") if p.is_file() and p.suffix.lower() == ".pdf")


def extract_pdf_text(source: Union[str, Path, bytes]) -> str:
    """Plain text of every page, pages separated by blank lines."""
    if isinstance(source, bytes):
        doc = fitz.open(stream=source, filetype="pdf")
    else:
        doc = fitz.open(str(source))
    try:
        return "\n\n".join(page.get_text() for page in doc)
    finally:
        doc.close()


def read_pdfs_from_dir(directory: str) -> list[SourceDocument]:
    return [SourceDocument(path=p, text=extract_pdf_text(p)) for p in list_pdfs(directory)]

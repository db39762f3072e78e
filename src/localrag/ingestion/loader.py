"""Text extraction for ingested files.

PDF text comes from PyMuPDF (fitz), Word documents from python-docx and
spreadsheets from openpyxl. Legacy binary Office formats are rejected and
everything else is read as UTF-8 text.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import docx
import fitz  # PyMuPDF
import openpyxl

from localrag.models import Document
from localrag.utils.text import normalize_whitespace

LOGGER = logging.getLogger(__name__)

LEGACY_EXTENSIONS = frozenset({".doc", ".xls", ".ppt"})


class UnsupportedDocument(ValueError):
    """Raised when no extractor exists for a file type."""


def iter_pdf_pages(path: Path) -> Iterator[str]:
    """Yield text content from a PDF file page by page."""
    doc = fitz.open(path)
    try:
        for index in range(len(doc)):
            text = doc[index].get_text() or ""
            normalized = normalize_whitespace(text.splitlines())
            if normalized:
                yield normalized
    finally:
        doc.close()


def read_pdf(path: Path) -> str:
    # Blank line between pages so each page starts a new section.
    return "\n\n".join(iter_pdf_pages(path))


def read_docx(path: Path) -> str:
    document = docx.Document(str(path))
    return "\n".join(paragraph.text for paragraph in document.paragraphs if paragraph.text)


def read_xlsx(path: Path) -> str:
    workbook = openpyxl.load_workbook(path, read_only=True, data_only=True)
    try:
        parts = []
        for sheet in workbook.worksheets:
            rows = []
            for row in sheet.iter_rows(values_only=True):
                cells = ["" if cell is None else str(cell) for cell in row]
                if any(cell.strip() for cell in cells):
                    rows.append("\t".join(cells).rstrip())
            if rows:
                parts.append(f"# {sheet.title}\n" + "\n".join(rows))
        return "\n\n".join(parts)
    finally:
        workbook.close()


def parse_file(path: Path) -> str:
    """Extract the text content of `path` based on its extension."""
    extension = path.suffix.lower()
    if extension == ".pdf":
        return read_pdf(path)
    if extension == ".docx":
        return read_docx(path)
    if extension == ".xlsx":
        return read_xlsx(path)
    if extension in LEGACY_EXTENSIONS:
        raise UnsupportedDocument(f"No extractor for legacy {extension} file {path}")
    return path.read_text(encoding="utf-8")


def load_document(path: Path, *, base_dir: Path | None = None) -> Document | None:
    """Parse `path` into a Document, or None when it holds no text."""
    content = parse_file(path)
    if not content.strip():
        LOGGER.debug("No text extracted from %s", path)
        return None

    source_path = str(path)
    if base_dir is not None:
        try:
            source_path = str(path.resolve().relative_to(base_dir.resolve()))
        except ValueError:
            pass
    return Document(title=path.name, content=content, source_path=source_path)

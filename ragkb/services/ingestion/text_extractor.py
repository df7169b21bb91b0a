"""Plain-text extraction for locally processed uploads.

Used only when no external processing API is configured.  Text and
Markdown are decoded as UTF-8, HTML is reduced to its visible text with
BeautifulSoup, and PDFs are read page by page with PyMuPDF.  DOCX needs
the external service.
"""

from __future__ import annotations

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog
from bs4 import BeautifulSoup

from ragkb.utils.errors import DocumentProcessingFailedError, InvalidInputError

logger = structlog.get_logger(logger_name=__name__)


def extract_text(data: bytes, extension: str) -> str:
    """Return the text content of a document given its file extension.

    Raises
    ------
    InvalidInputError
        If the extension is not a known document type.
    DocumentProcessingFailedError
        If the type needs external processing or the file cannot be read.
    """
    ext = extension.lower().lstrip(".")
    if ext in ("txt", "md", ""):
        return data.decode("utf-8", errors="replace")
    if ext in ("html", "htm"):
        return _html_text(data)
    if ext == "pdf":
        return _pdf_text(data)
    if ext == "docx":
        raise DocumentProcessingFailedError(
            message="DOCX text extraction requires the external processing service"
        )
    raise InvalidInputError(message=f"Unsupported file type: {ext}")


def _html_text(data: bytes) -> str:
    soup = BeautifulSoup(data, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return soup.get_text(" ", strip=True)


def _pdf_text(data: bytes) -> str:
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:
        logger.error("pdf_open_failed", error=str(exc))
        raise DocumentProcessingFailedError(message=f"Unreadable PDF: {exc}") from exc

    pages: list[str] = []
    try:
        for page in doc:
            text = page.get_text("text").strip()
            if text:
                pages.append(text)
    finally:
        doc.close()

    if not pages:
        logger.warning("pdf_no_text_extracted")
    return "\n\n".join(pages)

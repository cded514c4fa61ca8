"""Turn uploaded document bytes into statement text."""

from __future__ import annotations

import io
import logging

import pdfplumber

from cas_analyzer.errors import ParseFailure

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"


def is_pdf(document: bytes, file_name: str | None = None) -> bool:
    if document.lstrip()[:4] == PDF_MAGIC:
        return True
    return bool(file_name) and file_name.lower().endswith(".pdf")


def extract_pdf_text(document: bytes) -> str:
    """Concatenate the text layer of every page, one page per block."""

    try:
        with pdfplumber.open(io.BytesIO(document)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception as exc:  # pdfminer raises a wide range of parser errors
        raise ParseFailure(f"Failed to parse PDF: {exc}") from exc
    return "\n".join(pages)


def extract_text(document: bytes, file_name: str | None = None) -> str:
    """Return the text of a PDF or plain-text statement upload."""

    if not document:
        raise ParseFailure("Uploaded document is empty")
    if is_pdf(document, file_name):
        text = extract_pdf_text(document)
    else:
        text = document.decode("utf-8", errors="replace")
    logger.info("Extracted text length: %d chars from %s", len(text), file_name or "document")
    return text


__all__ = ["extract_text", "extract_pdf_text", "is_pdf"]

"""
Document Processing Service

Text extraction from uploaded documents (PyPDF2 for PDF, UTF-8 for plain
text), content cleanup, token estimation and truncation to a token budget.
"""

from io import BytesIO
from typing import Tuple
import logging
import re

import PyPDF2
from PyPDF2.errors import PdfReadError

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
TEXT_CONTENT_TYPES = ("text/plain", "text/markdown", "text/csv")
SUPPORTED_CONTENT_TYPES = (PDF_CONTENT_TYPE,) + TEXT_CONTENT_TYPES

CHARS_PER_TOKEN = 4
_PUNCTUATION = set(".,:;!?()[]{}\"'")

_EXCESS_NEWLINES = re.compile(r"(\r\n|\r|\n){3,}")
_PAGE_MARKER = re.compile(r"---\s*Page\s+\d+\s*---", re.IGNORECASE)
_RUNS_OF_SPACES = re.compile(r"[ \t]+")


class DocumentProcessingError(ValueError):
    """The uploaded document cannot be read"""


def is_supported_content_type(content_type: str) -> bool:
    return bool(content_type) and content_type.split(";")[0].strip().lower() in SUPPORTED_CONTENT_TYPES


def extract_text(data: bytes, content_type: str) -> Tuple[str, int]:
    """
    Extract text from an uploaded document.

    Args:
        data: Raw file bytes
        content_type: MIME type reported by the client

    Returns:
        (text, page_count); plain text counts as one page

    Raises:
        DocumentProcessingError: Unsupported type or unreadable file
    """
    kind = (content_type or "").split(";")[0].strip().lower()
    if kind not in SUPPORTED_CONTENT_TYPES:
        raise DocumentProcessingError(f"Unsupported document type: {content_type or 'unknown'}")

    if kind != PDF_CONTENT_TYPE:
        return data.decode("utf-8", errors="replace"), 1

    try:
        pdf_reader = PyPDF2.PdfReader(BytesIO(data))
        page_count = len(pdf_reader.pages)
        text_parts = []
        for page_num in range(page_count):
            page_text = pdf_reader.pages[page_num].extract_text() or ""
            text_parts.append(f"--- Page {page_num + 1} ---\n{page_text}\n")
    except PdfReadError as e:
        logger.error(f"Failed to extract text from PDF: {e}")
        raise DocumentProcessingError(f"Could not read PDF: {e}") from e

    text = "\n".join(text_parts)
    logger.info(f"Extracted {len(text)} characters from PDF ({page_count} pages)")
    return text, page_count


def clean_content(content: str) -> str:
    """Collapse blank lines, drop page markers and squeeze spaces"""
    cleaned = _EXCESS_NEWLINES.sub("\n\n", content)
    cleaned = _PAGE_MARKER.sub("", cleaned)
    cleaned = _RUNS_OF_SPACES.sub(" ", cleaned)
    return cleaned.strip()


def estimate_tokens(text: str) -> int:
    """
    Heuristic token count.

    words + punctuation / 2 + other symbols + 2 per non-ASCII character,
    plus a 10% margin.
    """
    if not text:
        return 0
    words = len(text.split())
    punctuation = sum(1 for c in text if c in _PUNCTUATION)
    special = sum(1 for c in text if not c.isalnum() and not c.isspace() and c not in _PUNCTUATION)
    non_ascii = sum(1 for c in text if ord(c) > 127)
    return int((words + punctuation // 2 + special + non_ascii * 2) * 1.1)


def prepare_content(content: str, max_tokens: int = 4000) -> str:
    """
    Clean content and truncate it to roughly `max_tokens`.

    Truncated content ends with a note giving the full length.
    """
    if not content:
        logger.warning("Empty content provided for preparation")
        return ""

    cleaned = clean_content(content)
    tokens = estimate_tokens(cleaned)
    if tokens <= max_tokens:
        return cleaned

    max_chars = max_tokens * CHARS_PER_TOKEN
    if len(cleaned) <= max_chars:
        return cleaned

    truncated = cleaned[:max_chars - 100]
    truncated += (
        f"\n\n[Note: This document has been truncated to fit within token limits. "
        f"The full document is {len(cleaned)} characters.]"
    )
    logger.info(f"Truncated document content from {len(cleaned)} to {len(truncated)} characters")
    return truncated

"""Tests for document text extraction and preparation."""
import pytest

from okr_assistant.services.document_processing import (
    DocumentProcessingError,
    clean_content,
    estimate_tokens,
    extract_text,
    is_supported_content_type,
    prepare_content,
)
from okr_assistant.services.pdf_renderer import PdfRenderer


def test_plain_text_counts_as_one_page():
    text, pages = extract_text("Grow revenue by 20%".encode("utf-8"), "text/plain; charset=utf-8")

    assert text == "Grow revenue by 20%"
    assert pages == 1


def test_unsupported_type_is_rejected():
    assert not is_supported_content_type("image/png")
    with pytest.raises(DocumentProcessingError):
        extract_text(b"\x89PNG", "image/png")


def test_corrupt_pdf_is_rejected():
    with pytest.raises(DocumentProcessingError):
        extract_text(b"definitely not a pdf", "application/pdf")


def test_rendered_pdf_can_be_read_back():
    data = PdfRenderer().generate_pdf("OKR Risk Analysis", "# Overview\n\n- Total Tasks: 12\n\nAll **good**.")

    text, pages = extract_text(data, "application/pdf")

    assert data.startswith(b"%PDF")
    assert pages >= 1
    assert "Total Tasks: 12" in text


def test_clean_content_collapses_whitespace_and_page_markers():
    raw = "--- Page 1 ---\nObjective:   Grow\n\n\n\n\nKey result:\tNPS 40"

    assert clean_content(raw) == "Objective: Grow\n\nKey result: NPS 40"


def test_token_estimate_grows_with_text():
    assert estimate_tokens("") == 0
    assert estimate_tokens("one two three") < estimate_tokens("one two three, four five six!")


def test_short_content_is_not_truncated():
    assert prepare_content("Grow revenue", max_tokens=100) == "Grow revenue"


def test_long_content_is_truncated_with_note():
    content = " ".join(["objective"] * 2000)

    prepared = prepare_content(content, max_tokens=100)

    assert len(prepared) < len(content)
    assert prepared.endswith(f"The full document is {len(content)} characters.]")


def test_whitespace_only_content_is_empty():
    assert prepare_content("  \n\n ") == ""

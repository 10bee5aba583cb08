"""
Unit Tests — Document Parser
═════════════════════════════
Tests for app/processing/parser.py

Coverage:
  ✅ PyMuPDF parse → one PageContent per page, pages tile the text
  ✅ Unreadable bytes → UnsupportedFormat ("Unreadable PDF")
  ✅ image/* → NotImplementedFormat; other types → UnsupportedFormat
  ✅ MIME parameters (";charset=...") are ignored
  ✅ Any MIME type naming pdf (application/x-pdf, ...) is parsed as PDF
  ✅ PyMuPDF failure falls back to pypdf with approximated pages
  ✅ split_pages_evenly: ceil division, empty trailing pages, page_count < 1
  ✅ to_dict / from_dict preserve page boundaries
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from app.core.exceptions import NotImplementedFormat, UnsupportedFormat
from app.processing.parser import (
    ParsedDocument,
    pages_from_texts,
    parse_document,
    split_pages_evenly,
)


def _assert_tiles(parsed: ParsedDocument) -> None:
    assert "".join(p.text for p in parsed.pages) == parsed.text
    for current, following in zip(parsed.pages, parsed.pages[1:]):
        assert current.char_end == following.char_start
    for page in parsed.pages:
        assert parsed.text[page.char_start:page.char_end] == page.text


# ─────────────────────────────────────────────────────────────────────────────
# parse_document
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestParseDocument:

    async def test_pdf_pages_tile_text(self, sample_pdf_bytes):
        parsed = await parse_document(sample_pdf_bytes, "application/pdf")

        assert parsed.page_count == 2
        assert parsed.metadata["parser"] == "pymupdf"
        assert parsed.metadata["page_count"] == 2
        assert [p.page_number for p in parsed.pages] == [1, 2]
        assert "CERTIFICATE OF LIABILITY INSURANCE" in parsed.pages[0].text
        assert "CERTIFICATE HOLDER" in parsed.pages[1].text
        _assert_tiles(parsed)

    async def test_mime_parameters_are_ignored(self, sample_pdf_bytes):
        parsed = await parse_document(sample_pdf_bytes, "Application/PDF; charset=binary")
        assert parsed.page_count == 2

    @pytest.mark.parametrize("mime", ["application/x-pdf", "application/acrobat-pdf", "text/pdf"])
    async def test_pdf_mime_variants_are_parsed(self, sample_pdf_bytes, mime):
        parsed = await parse_document(sample_pdf_bytes, mime)
        assert parsed.page_count == 2

    async def test_unreadable_pdf_raises(self):
        with pytest.raises(UnsupportedFormat, match="Unreadable PDF"):
            await parse_document(b"definitely not a pdf", "application/pdf")

    @pytest.mark.parametrize("mime", ["image/png", "image/jpeg", "image/tiff"])
    async def test_images_are_not_implemented(self, mime):
        with pytest.raises(NotImplementedFormat, match="OCR"):
            await parse_document(b"\x89PNG", mime)

    @pytest.mark.parametrize("mime", [
        "text/plain",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        None,
    ])
    async def test_other_types_unsupported(self, mime):
        with pytest.raises(UnsupportedFormat, match="Unsupported file type"):
            await parse_document(b"hello", mime)

    async def test_falls_back_to_pypdf(self, sample_pdf_bytes):
        with patch(
            "app.processing.parser._parse_with_pymupdf",
            side_effect=RuntimeError("cannot open broken document"),
        ):
            parsed = await parse_document(sample_pdf_bytes, "application/pdf")

        assert parsed.metadata["parser"] == "pypdf"
        assert parsed.page_count == 2
        assert "CERTIFICATE HOLDER" in parsed.text
        _assert_tiles(parsed)


# ─────────────────────────────────────────────────────────────────────────────
# Page helpers
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestPageHelpers:

    def test_pages_from_texts_exact_offsets(self):
        text, pages = pages_from_texts(["abc", "", "defgh"])

        assert text == "abcdefgh"
        assert [(p.char_start, p.char_end) for p in pages] == [(0, 3), (3, 3), (3, 8)]

    def test_split_evenly_uses_ceiling(self):
        pages = split_pages_evenly("abcdefghij", 3)

        assert [p.text for p in pages] == ["abcd", "efgh", "ij"]
        assert [(p.char_start, p.char_end) for p in pages] == [(0, 4), (4, 8), (8, 10)]

    def test_split_evenly_short_text_leaves_empty_pages(self):
        pages = split_pages_evenly("ab", 4)

        assert len(pages) == 4
        assert [p.text for p in pages] == ["a", "b", "", ""]
        assert pages[-1].char_start == pages[-1].char_end == 2

    def test_split_evenly_empty_text(self):
        pages = split_pages_evenly("", 2)
        assert [(p.char_start, p.char_end) for p in pages] == [(0, 0), (0, 0)]

    def test_split_evenly_zero_pages_treated_as_one(self):
        pages = split_pages_evenly("hello", 0)
        assert len(pages) == 1
        assert pages[0].text == "hello"

    def test_dict_roundtrip_keeps_boundaries(self):
        text, pages = pages_from_texts(["page one\n", "page two"])
        parsed = ParsedDocument(text=text, pages=pages, metadata={"parser": "pymupdf"})

        restored = ParsedDocument.from_dict(parsed.to_dict())

        assert restored == parsed

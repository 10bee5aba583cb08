"""
Document Parser  —  bytes → text + page boundaries
═══════════════════════════════════════════════════

Strategy cascade (PDF only):

  Strategy 1: PyMuPDF (fitz)
    - Page-aware: every page's text layer is read separately, so page
      boundaries in the concatenated text are exact.

  Strategy 2: pypdf
    - Fallback when PyMuPDF cannot open the file.
    - Only the concatenated text layer and the page count are used; page
      boundaries are APPROXIMATED by dividing the text evenly across the
      reported page count (split_pages_evenly).

Both strategies produce a ParsedDocument whose pages TILE the text:

    text == "".join(p.text for p in pages)
    pages[i].char_end == pages[i + 1].char_start

Downstream chunkers rely on that invariant, never on which strategy ran.

Formats:
  *pdf*           → parsed (application/pdf, application/x-pdf, ...)
  image/*         → NotImplementedFormat (OCR path intentionally unbuilt)
  anything else   → UnsupportedFormat
"""

from __future__ import annotations

import asyncio
import io
import logging
import math
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from app.core.exceptions import NotImplementedFormat, UnsupportedFormat

logger = logging.getLogger(__name__)

# application/pdf, application/x-pdf, application/acrobat ...
PDF_MIME_MARKER = "pdf"


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------

@dataclass
class PageContent:
    """
    One page's slice of the document text.

    page_number : 1-based page index
    char_start  : inclusive offset into ParsedDocument.text
    char_end    : exclusive offset into ParsedDocument.text
    """
    page_number: int
    text:        str
    char_start:  int
    char_end:    int


@dataclass
class ParsedDocument:
    text:     str
    pages:    list[PageContent]
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe form stored as the parse_document step output."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ParsedDocument":
        return cls(
            text=data["text"],
            pages=[PageContent(**p) for p in data.get("pages", [])],
            metadata=dict(data.get("metadata") or {}),
        )


# ---------------------------------------------------------------------------
# Page helpers
# ---------------------------------------------------------------------------

def pages_from_texts(page_texts: list[str]) -> tuple[str, list[PageContent]]:
    """Concatenate per-page texts and record exact boundaries."""
    pages: list[PageContent] = []
    offset = 0
    for number, page_text in enumerate(page_texts, start=1):
        pages.append(PageContent(
            page_number=number,
            text=page_text,
            char_start=offset,
            char_end=offset + len(page_text),
        ))
        offset += len(page_text)
    return "".join(page_texts), pages


def split_pages_evenly(text: str, page_count: int) -> list[PageContent]:
    """
    Approximate page boundaries: ceil(len(text) / page_count) chars per page.

    Trailing pages may be empty when the text is short; a page_count below
    1 is treated as a single page.
    """
    page_count = max(page_count, 1)
    per_page = math.ceil(len(text) / page_count) if text else 0

    pages: list[PageContent] = []
    for index in range(page_count):
        start = min(index * per_page, len(text))
        end = min(start + per_page, len(text))
        pages.append(PageContent(
            page_number=index + 1,
            text=text[start:end],
            char_start=start,
            char_end=end,
        ))
    return pages


# ---------------------------------------------------------------------------
# Strategies (blocking — run in a thread executor)
# ---------------------------------------------------------------------------

def _parse_with_pymupdf(data: bytes) -> ParsedDocument:
    import fitz  # PyMuPDF; imported here to avoid module-level import cost

    with fitz.open(stream=data, filetype="pdf") as doc:
        page_texts = [page.get_text("text") or "" for page in doc]
        meta = doc.metadata or {}

    text, pages = pages_from_texts(page_texts)
    return ParsedDocument(
        text=text,
        pages=pages,
        metadata={
            "page_count": len(pages),
            "author": meta.get("author") or None,
            "title": meta.get("title") or None,
            "parser": "pymupdf",
        },
    )


def _parse_with_pypdf(data: bytes) -> ParsedDocument:
    from pypdf import PdfReader

    reader = PdfReader(io.BytesIO(data))
    text = "\n\n".join(page.extract_text() or "" for page in reader.pages)
    info = reader.metadata

    pages = split_pages_evenly(text, len(reader.pages))
    return ParsedDocument(
        text=text,
        pages=pages,
        metadata={
            "page_count": len(reader.pages),
            "author": getattr(info, "author", None) if info else None,
            "title": getattr(info, "title", None) if info else None,
            "parser": "pypdf",
        },
    )


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

async def parse_document(data: bytes, mime_type: Optional[str]) -> ParsedDocument:
    """
    Parse raw document bytes.

    Raises:
        NotImplementedFormat — image/* input
        UnsupportedFormat    — any other non-PDF type, or an unreadable PDF
    """
    mime = (mime_type or "").split(";")[0].strip().lower()

    if mime.startswith("image/"):
        raise NotImplementedFormat(f"Image OCR not implemented ({mime})")
    if PDF_MIME_MARKER not in mime:
        raise UnsupportedFormat(f"Unsupported file type: {mime_type}")

    loop = asyncio.get_event_loop()
    t0 = time.monotonic()

    try:
        parsed = await loop.run_in_executor(None, _parse_with_pymupdf, data)
    except Exception as exc:
        logger.warning("PyMuPDF parse failed, falling back to pypdf: %s", exc)
        try:
            parsed = await loop.run_in_executor(None, _parse_with_pypdf, data)
        except Exception as fallback_exc:
            raise UnsupportedFormat("Unreadable PDF", original_error=fallback_exc) from fallback_exc

    logger.info(
        "Parser | parser=%s pages=%d chars=%d elapsed_ms=%.0f",
        parsed.metadata.get("parser"), parsed.page_count,
        len(parsed.text), (time.monotonic() - t0) * 1000,
    )
    return parsed

"""
Chunkers  —  ParsedDocument → bounded text units for extraction
════════════════════════════════════════════════════════════════

Three strategies, selected by ExtractionSettings.chunking_method:

  by_pages      (PageChunker)
    One chunk per parsed page, verbatim. Concatenating the chunk texts in
    order reproduces ParsedDocument.text exactly.

  fixed_tokens  (FixedTokenChunker)
    Token estimate is ceil(chars / 4), so boundaries are computed in
    character space:

        window = chunk_size * 4 chars
        step   = (chunk_size - overlap) * 4 chars     (must be > 0)

        |<------- window ------->|
        0                       2000
                        |<------- window ------->|
                       1800                     3800

    The final chunk always ends at len(text).

  headings      (HeadingChunker)
    Blank-line-delimited paragraphs. A paragraph whose first line looks
    like a heading (_HEADING_RE) opens a new section and the paragraphs
    after it join that section until the next heading or until the
    section would exceed the window. Text with no detectable headings
    yields one chunk per paragraph. Any section or paragraph still longer
    than the window is cut into window-sized pieces, so no chunk exceeds
    chunk_size * 4 chars.

Every chunk carries exact char_start / char_end offsets into the parsed
text plus the page span derived from the parser's page boundaries.
"""

from __future__ import annotations

import hashlib
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Optional

from app.core.exceptions import ChunkingConfigError
from app.llm.pricing import estimate_tokens
from app.processing.parser import PageContent, ParsedDocument
from app.schemas.settings import ChunkingMethod

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration constants
# ---------------------------------------------------------------------------

CHARS_PER_TOKEN = 4

DEFAULT_FIXED_CHUNK_SIZE = 500     # tokens
DEFAULT_FIXED_OVERLAP    = 50      # tokens

_PARAGRAPH_BREAK_RE = re.compile(r"\n[ \t]*\n\s*")

# Heading detection regex: lines that look like headings
#   - ALL CAPS line (5+ chars)
#   - Markdown headings: # Heading, ## Heading
#   - Numbered sections: "1.2.3 Overview", "SECTION 4:"
_HEADING_RE = re.compile(
    r"""
    ^(
        \#{1,6}\s+.+                             # Markdown heading
      | [A-Z][A-Z\s]{4,}\b                       # ALL CAPS (5+ chars)
      | (?:\d+\.)+\d*\s+[A-Z].{3,}              # Numbered: 1.2.3 Title
      | (?:Section|Chapter|Article|Appendix)\s+\S+  # Common doc headings
    )$
    """,
    re.VERBOSE,
)

# Minimum heading line length (avoids matching short ALL-CAPS words like "NOTE:")
MIN_HEADING_LEN = 8


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------

@dataclass
class Chunk:
    id:         str
    text:       str
    char_start: int
    char_end:   int
    start_page: Optional[int] = None
    end_page:   Optional[int] = None

    @property
    def token_est(self) -> int:
        return estimate_tokens(self.text)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Chunk":
        return cls(**data)


def _make_chunk_id(method: str, index: int, char_start: int, char_end: int) -> str:
    """Deterministic chunk ID — the same document always chunks to the same IDs."""
    raw = f"{method}:{index}:{char_start}:{char_end}"
    return hashlib.sha256(raw.encode()).hexdigest()[:16]


def _page_span(pages: list[PageContent], start: int, end: int) -> tuple[Optional[int], Optional[int]]:
    """Pages whose [char_start, char_end) range contains the chunk's start and end."""
    start_page = end_page = None
    for page in pages:
        if page.char_start == page.char_end:
            continue
        if start_page is None and page.char_start <= start < page.char_end:
            start_page = page.page_number
        if page.char_start < end <= page.char_end:
            end_page = page.page_number
            break
    return start_page, end_page


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

class BaseChunker(ABC):

    method: ChunkingMethod

    def __init__(self, chunk_size: int, overlap: int = 0) -> None:
        self.chunk_size = chunk_size
        self.overlap = overlap

    @abstractmethod
    def chunk(self, document: ParsedDocument) -> list[Chunk]:
        """Split the document into ordered chunks."""

    def _build(self, document: ParsedDocument, index: int, start: int, end: int) -> Chunk:
        start_page, end_page = _page_span(document.pages, start, end)
        return Chunk(
            id=_make_chunk_id(self.method.value, index, start, end),
            text=document.text[start:end],
            char_start=start,
            char_end=end,
            start_page=start_page,
            end_page=end_page,
        )


class PageChunker(BaseChunker):

    method = ChunkingMethod.BY_PAGES

    def chunk(self, document: ParsedDocument) -> list[Chunk]:
        return [
            Chunk(
                id=_make_chunk_id(self.method.value, i, page.char_start, page.char_end),
                text=page.text,
                char_start=page.char_start,
                char_end=page.char_end,
                start_page=page.page_number,
                end_page=page.page_number,
            )
            for i, page in enumerate(document.pages)
        ]


class FixedTokenChunker(BaseChunker):

    method = ChunkingMethod.FIXED_TOKENS

    def __init__(
        self,
        chunk_size: int = DEFAULT_FIXED_CHUNK_SIZE,
        overlap: int = DEFAULT_FIXED_OVERLAP,
    ) -> None:
        super().__init__(chunk_size, overlap)
        self.window = chunk_size * CHARS_PER_TOKEN
        self.step = (chunk_size - overlap) * CHARS_PER_TOKEN
        if self.window <= 0 or self.step <= 0:
            raise ChunkingConfigError(
                f"Invalid fixed-token chunking: chunk_size={chunk_size} overlap={overlap} "
                f"(chunk_size must exceed overlap)"
            )

    def chunk(self, document: ParsedDocument) -> list[Chunk]:
        length = len(document.text)
        chunks: list[Chunk] = []
        start = 0
        while start < length:
            end = min(start + self.window, length)
            chunks.append(self._build(document, len(chunks), start, end))
            if end == length:
                break
            start += self.step
        return chunks


class HeadingChunker(BaseChunker):

    method = ChunkingMethod.HEADINGS

    def chunk(self, document: ParsedDocument) -> list[Chunk]:
        window = self.chunk_size * CHARS_PER_TOKEN
        paragraphs = self._paragraph_spans(document.text)
        has_headings = any(is_heading(document.text[s:e]) for s, e in paragraphs)

        if has_headings:
            sections: list[list[int]] = []
            for start, end in paragraphs:
                opens = is_heading(document.text[start:end])
                too_big = bool(sections) and window > 0 and end - sections[-1][0] > window
                if not sections or opens or too_big:
                    sections.append([start, end])
                else:
                    sections[-1][1] = end
            spans = [(s, e) for s, e in sections]
        else:
            spans = paragraphs

        bounded = [piece for span in spans for piece in self._split_span(span, window)]
        return [self._build(document, i, s, e) for i, (s, e) in enumerate(bounded)]

    @staticmethod
    def _split_span(span: tuple[int, int], window: int) -> list[tuple[int, int]]:
        """Cut a span longer than the window into consecutive window-sized pieces."""
        start, end = span
        if window <= 0 or end - start <= window:
            return [span]
        return [(s, min(s + window, end)) for s in range(start, end, window)]

    @staticmethod
    def _paragraph_spans(text: str) -> list[tuple[int, int]]:
        """(start, end) of every non-blank paragraph, exact offsets."""
        spans: list[tuple[int, int]] = []
        cursor = 0
        for match in _PARAGRAPH_BREAK_RE.finditer(text):
            if text[cursor:match.start()].strip():
                spans.append((cursor, match.start()))
            cursor = match.end()
        if text[cursor:].strip():
            spans.append((cursor, len(text)))
        return spans


def is_heading(paragraph: str) -> bool:
    first_line = paragraph.strip().split("\n", 1)[0].strip()
    return len(first_line) >= MIN_HEADING_LEN and bool(_HEADING_RE.match(first_line))


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def get_chunker(method: ChunkingMethod | str, chunk_size: int, overlap: int) -> BaseChunker:
    """Build the chunker named by run settings (unknown values → by_pages)."""
    try:
        method = ChunkingMethod(method)
    except ValueError:
        logger.warning("Unknown chunking method %r, defaulting to by_pages", method)
        method = ChunkingMethod.BY_PAGES

    if method is ChunkingMethod.FIXED_TOKENS:
        return FixedTokenChunker(chunk_size=chunk_size, overlap=overlap)
    if method is ChunkingMethod.HEADINGS:
        return HeadingChunker(chunk_size=chunk_size, overlap=overlap)
    return PageChunker(chunk_size=chunk_size, overlap=overlap)

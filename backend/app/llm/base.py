"""
Extraction Provider capability.

    ExtractionParams ──► ExtractionProvider.extract() ──► ExtractionResult
      prompt, schema,                                       data, confidence,
      model, temperature,                                   evidence, usage,
      max_tokens                                            cost

Concrete backends subclass ExtractionProvider and register themselves in
app/llm/factory.py. Every backend failure surfaces as
ExtractionBackendError; a response that parses but carries no fields is a
SUCCESS with empty maps (downstream marks required fields MISSING).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class ExtractionParams:
    prompt:      str
    schema:      dict[str, Any] = field(default_factory=dict)
    model:       str = "gpt-4o-mini"
    temperature: float = 0.1
    max_tokens:  int = 4000


@dataclass(frozen=True)
class EvidenceSnippet:
    text:       str
    page:       Optional[int] = None
    char_start: Optional[int] = None
    char_end:   Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "page": self.page,
            "charStart": self.char_start,
            "charEnd": self.char_end,
        }

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["EvidenceSnippet"]:
        """Accepts {text, page, charStart, charEnd} or a bare string."""
        if raw is None or raw == "":
            return None
        if isinstance(raw, str):
            return cls(text=raw)
        if isinstance(raw, dict):
            return cls(
                text=str(raw.get("text", "")),
                page=_opt_int(raw.get("page")),
                char_start=_opt_int(raw.get("charStart", raw.get("char_start"))),
                char_end=_opt_int(raw.get("charEnd", raw.get("char_end"))),
            )
        return cls(text=str(raw))


def _opt_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class TokenUsage:
    input_tokens:  int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict[str, int]:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass
class ExtractionResult:
    data:       dict[str, Any] = field(default_factory=dict)
    confidence: dict[str, float] = field(default_factory=dict)
    evidence:   dict[str, list[EvidenceSnippet]] = field(default_factory=dict)
    usage:      TokenUsage = field(default_factory=TokenUsage)
    cost:       float = 0.0
    model:      str = ""

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe form stored as the llm_extraction step output."""
        return {
            "data": dict(self.data),
            "confidence": dict(self.confidence),
            "evidence": {k: [e.to_dict() for e in v] for k, v in self.evidence.items()},
            "usage": self.usage.to_dict(),
            "cost": self.cost,
            "model": self.model,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExtractionResult":
        usage = data.get("usage") or {}
        return cls(
            data=dict(data.get("data") or {}),
            confidence={k: float(v) for k, v in (data.get("confidence") or {}).items()},
            evidence={
                k: [s for s in (EvidenceSnippet.from_raw(e) for e in v) if s is not None]
                for k, v in (data.get("evidence") or {}).items()
            },
            usage=TokenUsage(usage.get("inputTokens", 0), usage.get("outputTokens", 0)),
            cost=float(data.get("cost", 0.0)),
            model=data.get("model", ""),
        )


class ExtractionProvider(ABC):
    """Provider-agnostic structured extraction."""

    name: str = "base"

    @abstractmethod
    async def extract(self, params: ExtractionParams) -> ExtractionResult:
        """Run one extraction call. Raises ExtractionBackendError on failure."""

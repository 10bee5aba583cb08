"""
Extraction Settings — Pydantic schemas for per-project pipeline tuning

Projects store their settings as JSON in one of two shapes:

  Advanced (flat, camelCase as written by the UI):
    {"chunkingMethod": "headings", "chunkSize": 3000, "model": "gpt-4o", ...}

  Simple (two sliders, expanded server-side):
    {"mode": "simple", "costVsAccuracy": 40, "speedVsThoroughness": false}

resolve_settings() accepts either shape (or nothing) and returns a fully
populated, immutable ExtractionSettings. The launcher snapshots the result
into Run.settings_snapshot; the orchestrator only ever reads the snapshot.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ChunkingMethod(str, Enum):
    BY_PAGES     = "by_pages"
    FIXED_TOKENS = "fixed_tokens"
    HEADINGS     = "headings"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Advanced settings — what the pipeline actually consumes
# ---------------------------------------------------------------------------

class ExtractionSettings(_CamelModel):
    # Chunking
    chunking_method: ChunkingMethod = ChunkingMethod.BY_PAGES
    chunk_size:      int = Field(4000, gt=0)
    overlap:         int = Field(200, ge=0)

    # Model
    provider:    str = "openai"
    model:       str = "gpt-4o-mini"
    temperature: float = Field(0.1, ge=0.0, le=2.0)
    max_tokens:  int = 4000

    # Confidence thresholds
    auto_accept_threshold:  float = Field(0.95, ge=0.0, le=1.0)   # PASS fields >= this are auto-approved
    needs_review_threshold: float = Field(0.7, ge=0.0, le=1.0)

    # Cost guardrail — None = no limit
    max_cost_per_run: Optional[float] = Field(None, ge=0.0)

    def to_snapshot(self) -> dict[str, Any]:
        """JSON-safe deep copy, camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Simple mode
# ---------------------------------------------------------------------------

class SimpleSettings(_CamelModel):
    cost_vs_accuracy:      int = Field(50, ge=0, le=100)   # low = cheap/fast
    speed_vs_thoroughness: bool = True                     # True = speed


def map_simple_to_advanced(simple: SimpleSettings) -> ExtractionSettings:
    """Expand the two simple-mode sliders into full extraction settings."""
    cva = simple.cost_vs_accuracy

    if cva <= 30:
        model, temperature, max_cost = "gpt-4o-mini", 0.1, 5.0
    elif cva <= 70:
        model, temperature, max_cost = "gpt-4o", 0.1, 15.0
    else:
        model, temperature, max_cost = "gpt-4-turbo", 0.05, None

    if simple.speed_vs_thoroughness:
        method, chunk_size, overlap = ChunkingMethod.BY_PAGES, 6000, 100
    else:
        method, chunk_size, overlap = ChunkingMethod.HEADINGS, 3000, 300

    strict = cva > 50
    return ExtractionSettings(
        chunking_method=method,
        chunk_size=chunk_size,
        overlap=overlap,
        provider="openai",
        model=model,
        temperature=temperature,
        auto_accept_threshold=0.92 if strict else 0.95,
        needs_review_threshold=0.65 if strict else 0.7,
        max_cost_per_run=max_cost,
    )


def resolve_settings(raw: Optional[dict[str, Any]]) -> ExtractionSettings:
    """
    Resolve a project's stored settings JSON into ExtractionSettings.

    Missing keys fall back to defaults; {"mode": "simple", ...} is expanded
    via map_simple_to_advanced().
    """
    raw = dict(raw or {})
    if raw.pop("mode", "advanced") == "simple":
        return map_simple_to_advanced(SimpleSettings.model_validate(raw))
    return ExtractionSettings.model_validate(raw)

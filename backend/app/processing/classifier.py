"""
Document Classifier — keyword-density scoring against a template profile

Guards extraction against mismatched uploads (an invoice dropped into a
COI project). Not a learned model: each configured keyword found anywhere
in the text (case-insensitive substring) adds its tier weight.

    high   = 0.15
    medium = 0.05
    low    = 0.02
    score  = min(sum, 1.0)

Thresholds (the orchestrator applies the skip gate):
    score >= 0.30  → "<SLUG>"        confident match
    score >= 0.10  → "MAYBE_<SLUG>"  ambiguous
    score <  0.10  → "NOT_<SLUG>"    rejected

Templates without a keyword profile accept everything: score 1.0, "GENERIC".
classify() is a pure function of (text, slug, keywords).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from app.core.exceptions import ClassificationAmbiguous
from app.schemas.templates import DetectionKeywords

logger = logging.getLogger(__name__)

WEIGHTS: dict[str, float] = {"high": 0.15, "medium": 0.05, "low": 0.02}

CONFIDENT_THRESHOLD = 0.3
AMBIGUOUS_THRESHOLD = 0.1


@dataclass(frozen=True)
class ClassificationResult:
    score:         float
    detected_type: str
    reason:        str
    keywords:      list[str] = field(default_factory=list)   # matched, in profile order

    @property
    def is_ambiguous(self) -> bool:
        return AMBIGUOUS_THRESHOLD <= self.score < CONFIDENT_THRESHOLD

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "detectedType": self.detected_type,
            "reason": self.reason,
            "keywords": list(self.keywords),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ClassificationResult":
        return cls(
            score=float(data["score"]),
            detected_type=data["detectedType"],
            reason=data.get("reason", ""),
            keywords=list(data.get("keywords") or []),
        )

    def raise_if_ambiguous(self) -> None:
        if self.is_ambiguous:
            raise ClassificationAmbiguous(self.reason, self.score, self.detected_type)


def classify(
    document_text: str,
    template_slug: str,
    detection_keywords: Optional[DetectionKeywords] = None,
) -> ClassificationResult:
    if detection_keywords is None or detection_keywords.is_empty:
        return ClassificationResult(
            score=1.0,
            detected_type="GENERIC",
            reason="No specific classification rules for this template type",
        )

    haystack = document_text.upper()
    label = template_slug.upper().replace("-", "_")

    score = 0.0
    matched: list[str] = []
    for tier in ("high", "medium", "low"):
        for keyword in getattr(detection_keywords, tier):
            if keyword.upper() in haystack:
                score += WEIGHTS[tier]
                matched.append(keyword)

    score = round(min(score, 1.0), 4)

    if score >= CONFIDENT_THRESHOLD:
        detected = label
        reason = f"Document appears to be {template_slug} (score: {score:.1%}). Found {len(matched)} relevant keywords."
    elif score >= AMBIGUOUS_THRESHOLD:
        detected = f"MAYBE_{label}"
        reason = f"Document may be related but not clearly {template_slug} (score: {score:.1%}). Consider manual review."
    else:
        detected = f"NOT_{label}"
        reason = f"Document does not appear to be {template_slug} (score: {score:.1%}). Found only {len(matched)} relevant keywords."

    logger.debug(
        "Classifier | slug=%s score=%.2f detected=%s matched=%d",
        template_slug, score, detected, len(matched),
    )
    return ClassificationResult(score=score, detected_type=detected, reason=reason, keywords=matched)

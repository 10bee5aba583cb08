"""
OpenAI extraction backend (via LangChain ChatOpenAI).

Request:
    [SystemMessage(EXTRACTION_SYSTEM_PROMPT), HumanMessage(rendered prompt)]
    response_format = {"type": "json_object"}

Expected response body:
    {"fields": [{"name": ..., "value": ..., "confidence": 0.93,
                 "evidence": {"text": ..., "page": 1, "charStart": 10, "charEnd": 42}}]}

Degradation:
    - body is not JSON / has no "fields" list → empty maps (logged), no error
    - a field entry without a name            → ignored
    - missing / non-numeric confidence        → 0.5
    - transport / API errors                  → ExtractionBackendError

Timeouts and transport retries are configured on the ChatOpenAI client
(settings.llm_request_timeout_seconds / llm_max_retries).
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from app.core.config import settings
from app.core.exceptions import ExtractionBackendError
from app.llm.base import (
    EvidenceSnippet,
    ExtractionParams,
    ExtractionProvider,
    ExtractionResult,
    TokenUsage,
)
from app.llm.pricing import compute_cost

logger = logging.getLogger(__name__)

DEFAULT_FIELD_CONFIDENCE = 0.5

EXTRACTION_SYSTEM_PROMPT = (
    "You are a precise document data extraction assistant. Extract structured data "
    "according to the provided schema. For each field, provide:\n"
    "1. The extracted value\n"
    "2. A confidence score (0.0 to 1.0)\n"
    "3. Evidence snippet from the document (exact text and location)\n\n"
    "Return JSON only. No additional commentary."
)


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def _confidence(raw: Any) -> float:
    if isinstance(raw, bool) or raw is None:
        return DEFAULT_FIELD_CONFIDENCE
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return DEFAULT_FIELD_CONFIDENCE
    return min(max(value, 0.0), 1.0)


def parse_fields_response(
    content: str,
) -> tuple[dict[str, Any], dict[str, float], dict[str, list[EvidenceSnippet]]]:
    """Split a `{"fields": [...]}` body into data / confidence / evidence maps."""
    data: dict[str, Any] = {}
    confidence: dict[str, float] = {}
    evidence: dict[str, list[EvidenceSnippet]] = {}

    try:
        parsed = json.loads(content or "{}")
    except json.JSONDecodeError as exc:
        logger.warning("OpenAI | malformed JSON response, no fields extracted: %s", exc)
        return data, confidence, evidence

    fields = parsed.get("fields") if isinstance(parsed, dict) else None
    if not isinstance(fields, list):
        logger.warning("OpenAI | response has no 'fields' list, no fields extracted")
        return data, confidence, evidence

    for entry in fields:
        if not isinstance(entry, dict) or not entry.get("name"):
            continue
        name = str(entry["name"])
        data[name] = entry.get("value")
        confidence[name] = _confidence(entry.get("confidence"))

        raw_evidence = entry.get("evidence")
        items = raw_evidence if isinstance(raw_evidence, list) else [raw_evidence]
        evidence[name] = [s for s in (EvidenceSnippet.from_raw(e) for e in items) if s is not None]

    return data, confidence, evidence


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------

class OpenAIExtractionProvider(ExtractionProvider):

    name = "openai"

    def __init__(self, api_key: str) -> None:
        self._api_key = api_key

    def _build_chat_model(self, params: ExtractionParams) -> BaseChatModel:
        from langchain_openai import ChatOpenAI
        return ChatOpenAI(
            model=params.model,
            api_key=self._api_key,
            temperature=params.temperature,
            max_tokens=params.max_tokens,
            timeout=settings.llm_request_timeout_seconds,
            max_retries=settings.llm_max_retries,
        )

    async def extract(self, params: ExtractionParams) -> ExtractionResult:
        messages = [
            SystemMessage(content=EXTRACTION_SYSTEM_PROMPT),
            HumanMessage(content=params.prompt),
        ]
        t0 = time.monotonic()
        logger.info("OpenAI | extraction start model=%s temperature=%s", params.model, params.temperature)

        try:
            llm = self._build_chat_model(params).bind(response_format={"type": "json_object"})
            response = await llm.ainvoke(messages)
        except Exception as exc:
            logger.error("OpenAI | extraction failed model=%s error=%s", params.model, exc)
            raise ExtractionBackendError(f"OpenAI extraction failed: {exc}", original_error=exc) from exc

        content = response.content if isinstance(response.content, str) else json.dumps(response.content)
        data, confidence, evidence = parse_fields_response(content)

        meta = getattr(response, "usage_metadata", None) or {}
        usage = TokenUsage(
            input_tokens=int(meta.get("input_tokens", 0)),
            output_tokens=int(meta.get("output_tokens", 0)),
        )
        cost = compute_cost(params.model, usage.input_tokens, usage.output_tokens)

        logger.info(
            "OpenAI | extraction done model=%s fields=%d tokens_in=%d tokens_out=%d cost=%.6f latency_ms=%.0f",
            params.model, len(data), usage.input_tokens, usage.output_tokens,
            cost, (time.monotonic() - t0) * 1000,
        )
        return ExtractionResult(
            data=data,
            confidence=confidence,
            evidence=evidence,
            usage=usage,
            cost=cost,
            model=params.model,
        )

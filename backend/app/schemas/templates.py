"""
Template Config — Pydantic schemas for extraction templates

A template tells the pipeline:
  - which fields to extract, with a declared type per field
  - which validator rules apply to which field
  - the extraction prompt (with a {{DOCUMENT_TEXT}} placeholder)
  - the keyword profile the classifier scores documents against

Run.template_snapshot stores {name, slug, version, **config} as JSON.
TemplateConfig.model_validate(snapshot) rebuilds it inside the worker.
"""

from __future__ import annotations

import copy
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

DOCUMENT_TEXT_PLACEHOLDER = "{{DOCUMENT_TEXT}}"
KEYWORD_TIERS = ("high", "medium", "low")


class FieldType(str, Enum):
    STRING  = "string"
    NUMBER  = "number"
    DATE    = "date"
    BOOLEAN = "boolean"
    ARRAY   = "array"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Fields and validator rules
# ---------------------------------------------------------------------------

class TemplateField(_CamelModel):
    name:        str
    type:        FieldType = FieldType.STRING
    description: str = ""
    required:    bool = False


class ValidatorRule(_CamelModel):
    """
    One rule bound to one field, e.g.
        {"field": "expiration_date", "rule": "date_after_today",
         "message": "Policy expiration date must be in the future"}
    """
    field:   str
    rule:    str
    params:  dict[str, Any] = Field(default_factory=dict)
    message: str = ""


# ---------------------------------------------------------------------------
# Classifier keyword profile
# ---------------------------------------------------------------------------

class DetectionKeywords(_CamelModel):
    """
    Tiered keyword lists. Also accepts the flat list form stored by the UI:
        [{"text": "ACORD", "weight": "high"}, {"text": "POLICY", "weight": "low"}]
    """
    high:   list[str] = Field(default_factory=list)
    medium: list[str] = Field(default_factory=list)
    low:    list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _from_weighted_list(cls, data: Any) -> Any:
        if not isinstance(data, list):
            return data
        tiers: dict[str, list[str]] = {tier: [] for tier in KEYWORD_TIERS}
        for item in data:
            if not isinstance(item, dict) or not item.get("text"):
                raise ValueError(f"keyword entry must be an object with \"text\": {item!r}")
            weight = str(item.get("weight", "low")).lower()
            if weight not in tiers:
                raise ValueError(
                    f"unknown keyword weight {weight!r} for {item['text']!r} "
                    f"(expected one of {', '.join(KEYWORD_TIERS)})"
                )
            tiers[weight].append(str(item["text"]))
        return tiers

    @property
    def is_empty(self) -> bool:
        return not (self.high or self.medium or self.low)


# ---------------------------------------------------------------------------
# Template config
# ---------------------------------------------------------------------------

class TemplateConfig(_CamelModel):
    name:               str = ""
    slug:               str
    version:            str = "1.0"
    description:        str = ""
    fields:             list[TemplateField] = Field(default_factory=list)
    validators:         list[ValidatorRule] = Field(default_factory=list)
    extraction_prompt:  str = DOCUMENT_TEXT_PLACEHOLDER
    detection_keywords: Optional[DetectionKeywords] = None

    def rules_for(self, field_name: str) -> list[ValidatorRule]:
        return [r for r in self.validators if r.field == field_name]

    def is_required(self, field_name: str) -> bool:
        """A field is required if declared so OR it carries a `required` rule."""
        declared = any(f.required for f in self.fields if f.name == field_name)
        return declared or any(r.rule == "required" for r in self.rules_for(field_name))

    def render_prompt(self, document_text: str) -> str:
        return self.extraction_prompt.replace(DOCUMENT_TEXT_PLACEHOLDER, document_text)

    def field_schema(self) -> dict[str, Any]:
        """Minimal JSON-schema-like description handed to the provider."""
        return {
            "fields": [
                {"name": f.name, "type": f.type.value, "description": f.description}
                for f in self.fields
            ]
        }


def snapshot_template(name: str, slug: str, version: str, config: dict[str, Any]) -> dict[str, Any]:
    """
    Freeze a template into a run-owned JSON value.

    The config is validated (so a broken template fails at launch, not
    mid-run) and deep-copied so later edits to the template row never
    reach the snapshot.
    """
    merged = {**copy.deepcopy(config or {}), "name": name, "slug": slug, "version": str(version)}
    TemplateConfig.model_validate(merged)
    return merged

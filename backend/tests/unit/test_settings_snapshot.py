"""
Unit Tests — Extraction Settings and Template Snapshots
═══════════════════════════════════════════════════════
Tests for app/schemas/settings.py and app/schemas/templates.py

Coverage:
  ✅ resolve_settings(None) → defaults (by_pages / 4000 / 200 / gpt-4o-mini)
  ✅ camelCase advanced settings are accepted; unknown keys ignored
  ✅ Simple mode: cost slider picks model + max cost, speed flag picks chunking
  ✅ Out-of-range values → ValidationError
  ✅ to_snapshot() is camelCase JSON and resolves back to the same settings
  ✅ snapshot_template deep-copies the config and validates it
  ✅ DetectionKeywords accepts the weighted-list form
  ✅ DetectionKeywords rejects unknown weights and non-object entries (ValidationError)
  ✅ is_required: declared OR `required` rule
  ✅ render_prompt substitutes {{DOCUMENT_TEXT}}
"""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from app.schemas.settings import ChunkingMethod, ExtractionSettings, resolve_settings
from app.schemas.templates import DetectionKeywords, TemplateConfig, snapshot_template
from app.templates.coi import COI_TEMPLATE, COI_TEMPLATE_CONFIG


@pytest.mark.unit
class TestResolveSettings:

    @pytest.mark.parametrize("raw", [None, {}])
    def test_defaults(self, raw):
        settings = resolve_settings(raw)

        assert settings.chunking_method is ChunkingMethod.BY_PAGES
        assert settings.chunk_size == 4000
        assert settings.overlap == 200
        assert settings.provider == "openai"
        assert settings.model == "gpt-4o-mini"
        assert settings.temperature == 0.1
        assert settings.max_cost_per_run is None

    def test_camel_case_advanced(self):
        settings = resolve_settings({
            "chunkingMethod": "fixed_tokens",
            "chunkSize": 500,
            "overlap": 50,
            "model": "gpt-4o",
            "autoAcceptThreshold": 0.9,
            "maxCostPerRun": 2.5,
            "somethingElse": True,
        })
        assert settings.chunking_method is ChunkingMethod.FIXED_TOKENS
        assert settings.chunk_size == 500
        assert settings.auto_accept_threshold == 0.9
        assert settings.max_cost_per_run == 2.5

    @pytest.mark.parametrize("slider,model,max_cost", [
        (0, "gpt-4o-mini", 5.0),
        (30, "gpt-4o-mini", 5.0),
        (31, "gpt-4o", 15.0),
        (70, "gpt-4o", 15.0),
        (71, "gpt-4-turbo", None),
    ])
    def test_simple_mode_cost_slider(self, slider, model, max_cost):
        settings = resolve_settings({"mode": "simple", "costVsAccuracy": slider})
        assert settings.model == model
        assert settings.max_cost_per_run == max_cost

    def test_simple_mode_thoroughness(self):
        fast = resolve_settings({"mode": "simple", "speedVsThoroughness": True})
        thorough = resolve_settings({"mode": "simple", "speedVsThoroughness": False})

        assert (fast.chunking_method, fast.chunk_size, fast.overlap) == (ChunkingMethod.BY_PAGES, 6000, 100)
        assert (thorough.chunking_method, thorough.chunk_size, thorough.overlap) == (
            ChunkingMethod.HEADINGS, 3000, 300,
        )

    def test_simple_mode_strictness(self):
        assert resolve_settings({"mode": "simple", "costVsAccuracy": 80}).auto_accept_threshold == 0.92
        assert resolve_settings({"mode": "simple", "costVsAccuracy": 50}).auto_accept_threshold == 0.95

    @pytest.mark.parametrize("raw", [
        {"chunkSize": 0},
        {"temperature": 3},
        {"autoAcceptThreshold": 1.5},
        {"chunkingMethod": "semantic"},
        {"mode": "simple", "costVsAccuracy": 101},
    ])
    def test_invalid_values(self, raw):
        with pytest.raises(ValidationError):
            resolve_settings(raw)

    def test_snapshot_roundtrip(self):
        settings = ExtractionSettings(chunking_method="headings", max_cost_per_run=1.0)
        snapshot = settings.to_snapshot()

        assert snapshot["chunkingMethod"] == "headings"
        assert snapshot["maxCostPerRun"] == 1.0
        assert json.loads(json.dumps(snapshot)) == snapshot
        assert resolve_settings(snapshot) == settings

    def test_snapshot_does_not_mutate_input(self):
        raw = {"mode": "simple", "costVsAccuracy": 10}
        resolve_settings(raw)
        assert raw == {"mode": "simple", "costVsAccuracy": 10}


@pytest.mark.unit
class TestTemplateSnapshot:

    def test_snapshot_is_deep_copy(self):
        config = {
            "fields": [{"name": "total", "type": "number", "required": True}],
            "validators": [],
        }
        snapshot = snapshot_template("Invoice", "invoice", 2, config)
        config["fields"][0]["name"] = "changed"

        assert snapshot["fields"][0]["name"] == "total"
        assert snapshot["version"] == "2"
        assert snapshot["slug"] == "invoice"

    def test_invalid_config_rejected(self):
        with pytest.raises(ValidationError):
            snapshot_template("Broken", "broken", "1", {"fields": [{"type": "number"}]})

    def test_coi_snapshot_rebuilds(self, coi_snapshot):
        template = TemplateConfig.model_validate(coi_snapshot)

        assert template == COI_TEMPLATE
        assert len(template.fields) == 9
        assert template.detection_keywords.high[0] == "CERTIFICATE OF LIABILITY INSURANCE"
        assert json.loads(json.dumps(coi_snapshot)) == coi_snapshot

    def test_is_required(self):
        assert COI_TEMPLATE.is_required("vendor_name")
        assert not COI_TEMPLATE.is_required("additional_insured_present")

        template = TemplateConfig.model_validate({
            "slug": "t",
            "fields": [{"name": "ref"}],
            "validators": [{"field": "ref", "rule": "required"}],
        })
        assert template.is_required("ref")

    def test_render_prompt(self):
        prompt = COI_TEMPLATE.render_prompt("ACORD 25 ...")
        assert "ACORD 25 ..." in prompt
        assert "{{DOCUMENT_TEXT}}" not in prompt
        assert COI_TEMPLATE_CONFIG["extractionPrompt"].count("{{DOCUMENT_TEXT}}") == 1

    def test_weighted_keyword_list(self):
        keywords = DetectionKeywords.model_validate([
            {"text": "INVOICE", "weight": "high"},
            {"text": "TOTAL", "weight": "medium"},
            {"text": "DUE"},
        ])
        assert keywords.high == ["INVOICE"]
        assert keywords.medium == ["TOTAL"]
        assert keywords.low == ["DUE"]
        assert not keywords.is_empty
        assert DetectionKeywords().is_empty

    @pytest.mark.parametrize("entries,match", [
        ([{"text": "INVOICE", "weight": "critical"}], "unknown keyword weight"),
        (["INVOICE"], "must be an object"),
        ([{"weight": "high"}], "must be an object"),
    ])
    def test_weighted_keyword_list_rejects_bad_entries(self, entries, match):
        with pytest.raises(ValidationError, match=match):
            DetectionKeywords.model_validate(entries)

"""
Unit Tests — Built-in Templates
════════════════════════════════
Tests for app/templates/*.py

All tests:
  • Seeding runs against a MagicMock session yielded by a fake scope

Coverage:
  ✅ Registry lists coi, trade-invoice and resume; every config validates
  ✅ Every prompt carries exactly one {{DOCUMENT_TEXT}} placeholder
  ✅ Trade invoice keywords classify a commercial invoice as TRADE_INVOICE
  ✅ Invoice extraction validates; line_items_sum_check is logged and ignored
  ✅ Resume email_format is logged and ignored; missing email still fails required
  ✅ seed_builtin_templates inserts missing rows and refreshes existing ones
  ✅ builtin_config returns a copy, {} for unknown slugs
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.models.documents import Template
from app.models.enums import FieldStatus
from app.processing.classifier import classify
from app.processing.validator import validate_extraction
from app.templates.coi import COI_TEMPLATE_CONFIG
from app.templates.registry import (
    BUILTIN_TEMPLATES,
    builtin_config,
    get_builtin_template,
    seed_builtin_templates,
)
from app.templates.resume import RESUME_TEMPLATE
from app.templates.trade_invoice import TRADE_INVOICE_TEMPLATE

COMMERCIAL_INVOICE_TEXT = (
    "COMMERCIAL INVOICE\n"
    "Invoice No: INV-88\n"
    "Shipper: Acme Exports Ltd\n"
    "Consignee: Globex Imports\n"
    "Incoterms: FOB Rotterdam\n"
)

INVOICE_VALUES = {
    "shipper": "Acme Exports Ltd, Rotterdam",
    "consignee": "Globex Imports, Newark",
    "invoice_number": "INV-88",
    "invoice_date": "2030-01-15",
    "total_value": "$1,250.00",
    "currency": "USD",
    "incoterms": "FOB",
    "line_items": [{"description": "Valves", "qty": 10, "unit_price": 125.0, "total": 1250.0}],
}


# ─────────────────────────────────────────────────────────────────────────────
# Registry
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestRegistry:

    def test_builtin_slugs(self):
        assert list(BUILTIN_TEMPLATES) == ["coi", "trade-invoice", "resume"]

    @pytest.mark.parametrize("slug", ["coi", "trade-invoice", "resume"])
    def test_configs_validate(self, slug):
        template = get_builtin_template(slug).to_config()

        assert template.slug == slug
        assert template.fields
        assert template.detection_keywords is not None and not template.detection_keywords.is_empty
        assert template.extraction_prompt.count("{{DOCUMENT_TEXT}}") == 1

    def test_builtin_config_is_a_copy(self):
        config = builtin_config("coi")
        config["fields"].clear()

        assert COI_TEMPLATE_CONFIG["fields"]
        assert builtin_config("unknown") == {}


# ─────────────────────────────────────────────────────────────────────────────
# Trade invoice / resume behaviour
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestBuiltinBehaviour:

    def test_invoice_keywords_classify(self):
        result = classify(
            COMMERCIAL_INVOICE_TEXT, "trade-invoice", TRADE_INVOICE_TEMPLATE.detection_keywords,
        )
        assert result.score == pytest.approx(0.5)
        assert result.detected_type == "TRADE_INVOICE"

    def test_invoice_extraction_ignores_unknown_rule(self, caplog):
        confidence = {name: 0.97 for name in INVOICE_VALUES}

        with caplog.at_level(logging.WARNING, logger="app.processing.validator"):
            results = {
                r.field_name: r
                for r in validate_extraction(TRADE_INVOICE_TEMPLATE, INVOICE_VALUES, confidence)
            }

        assert all(r.field_status is FieldStatus.PASS for r in results.values())
        assert results["total_value"].value == 1250
        assert results["line_items"].value == INVOICE_VALUES["line_items"]
        assert any(
            "unknown rule=line_items_sum_check" in r.getMessage() and r.levelno == logging.WARNING
            for r in caplog.records
        )

    def test_resume_email_rules(self, caplog):
        values = {
            "candidate_name": "Dana Reyes",
            "email": "dana@example.com",
            "skills": ["Python", "SQL"],
            "latest_company": "Initech",
            "latest_title": "Data Engineer",
        }
        confidence = {name: 0.95 for name in values}

        with caplog.at_level(logging.WARNING, logger="app.processing.validator"):
            results = {r.field_name: r for r in validate_extraction(RESUME_TEMPLATE, values, confidence)}

        assert results["email"].field_status is FieldStatus.PASS
        assert results["phone"].field_status is FieldStatus.MISSING
        assert any("unknown rule=email_format" in r.getMessage() for r in caplog.records)

        missing = {r.field_name: r for r in validate_extraction(RESUME_TEMPLATE, {}, {})}
        assert [f.rule for f in missing["email"].validation_errors] == ["required"]


# ─────────────────────────────────────────────────────────────────────────────
# Seeding
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestSeed:

    async def test_seed_inserts_and_refreshes(self):
        existing = Template(name="Old COI", slug="coi", version="1.0", config={})
        db = MagicMock()
        result = MagicMock()
        result.scalars.return_value.all.return_value = [existing]
        db.execute = AsyncMock(return_value=result)

        @asynccontextmanager
        async def scope():
            yield db

        slugs = await seed_builtin_templates(session_scope=scope)

        assert slugs == ["coi", "trade-invoice", "resume"]
        assert existing.name == "COI Vendor Compliance"
        assert existing.config == COI_TEMPLATE_CONFIG
        assert existing.config is not COI_TEMPLATE_CONFIG

        inserted = [call.args[0] for call in db.add.call_args_list]
        assert [(t.slug, t.version) for t in inserted] == [("trade-invoice", "1.0"), ("resume", "1.0")]

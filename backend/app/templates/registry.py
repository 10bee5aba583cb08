"""
Built-in template registry.

    slug             name                               module
    coi              COI Vendor Compliance              app/templates/coi.py
    trade-invoice    Trade Docs – Commercial Invoice    app/templates/trade_invoice.py
    resume           Resume → Candidate Dataset         app/templates/resume.py

seed_builtin_templates() upserts these rows into docextract.templates,
keyed by (slug, version). RunLauncher falls back to the built-in config
when a template row for one of these slugs carries an empty config.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import select

from app.db.session import get_admin_db
from app.models.documents import Template
from app.schemas.templates import TemplateConfig
from app.templates.coi import COI_TEMPLATE_CONFIG
from app.templates.resume import RESUME_TEMPLATE_CONFIG
from app.templates.trade_invoice import TRADE_INVOICE_TEMPLATE_CONFIG

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuiltinTemplate:
    name:    str
    slug:    str
    version: str
    config:  dict[str, Any]

    def to_config(self) -> TemplateConfig:
        return TemplateConfig.model_validate(
            {"name": self.name, "slug": self.slug, "version": self.version, **self.config}
        )


BUILTIN_TEMPLATES: dict[str, BuiltinTemplate] = {
    t.slug: t
    for t in (
        BuiltinTemplate("COI Vendor Compliance", "coi", "1.0", COI_TEMPLATE_CONFIG),
        BuiltinTemplate("Trade Docs – Commercial Invoice", "trade-invoice", "1.0", TRADE_INVOICE_TEMPLATE_CONFIG),
        BuiltinTemplate("Resume → Candidate Dataset", "resume", "1.0", RESUME_TEMPLATE_CONFIG),
    )
}


def get_builtin_template(slug: str) -> Optional[BuiltinTemplate]:
    return BUILTIN_TEMPLATES.get(slug)


def builtin_config(slug: str) -> dict[str, Any]:
    """Deep copy of the built-in config for `slug`, or {} when there is none."""
    template = get_builtin_template(slug)
    return copy.deepcopy(template.config) if template else {}


async def seed_builtin_templates(session_scope=get_admin_db) -> list[str]:
    """
    Insert or refresh every built-in template.

    Existing rows with the same (slug, version) get their name and config
    overwritten; missing rows are inserted. Returns the seeded slugs.
    """
    async with session_scope() as db:
        result = await db.execute(
            select(Template).where(Template.slug.in_(list(BUILTIN_TEMPLATES)))
        )
        existing = {(row.slug, row.version): row for row in result.scalars().all()}

        for builtin in BUILTIN_TEMPLATES.values():
            row = existing.get((builtin.slug, builtin.version))
            if row is None:
                db.add(Template(
                    name=builtin.name,
                    slug=builtin.slug,
                    version=builtin.version,
                    config=copy.deepcopy(builtin.config),
                ))
                logger.info("Template seed | inserted slug=%s version=%s", builtin.slug, builtin.version)
            else:
                row.name = builtin.name
                row.config = copy.deepcopy(builtin.config)
                logger.info("Template seed | refreshed slug=%s version=%s", builtin.slug, builtin.version)

    return list(BUILTIN_TEMPLATES)

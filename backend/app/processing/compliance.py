"""
Compliance Aggregator — field statuses → one RecordStatus

Two independent sources feed the verdict:

  1. compute_record_status()   generic reduction over field statuses
       any SKIPPED_WRONG_DOC_TYPE                     → SKIPPED
       any required MISSING or any FAIL_VALIDATION    → NON_COMPLIANT
       any NEEDS_REVIEW                               → NEEDS_REVIEW
       otherwise                                      → COMPLIANT

  2. Template checkers          domain rules over the raw extracted values
                                and the project requirements, registered
                                per template slug (COMPLIANCE_CHECKERS).

evaluate_record() runs both: checker violations are appended to
failed_rules and ANY violation forces NON_COMPLIANT, whatever the
field-status verdict was.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Mapping, Optional

from app.models.enums import FieldStatus, RecordStatus
from app.processing.values import parse_bool, parse_date, parse_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldStatusInfo:
    field_name:   str
    field_status: FieldStatus
    is_required:  bool = False


@dataclass
class ComplianceResult:
    record_status: RecordStatus
    failed_rules:  list[str] = field(default_factory=list)
    summary:       str = ""


# ---------------------------------------------------------------------------
# Generic field-status reduction
# ---------------------------------------------------------------------------

def compute_record_status(fields: list[FieldStatusInfo]) -> ComplianceResult:
    failed_rules: list[str] = []

    missing_required = [f.field_name for f in fields if f.is_required and f.field_status is FieldStatus.MISSING]
    if missing_required:
        failed_rules.append(f"Missing required fields: {', '.join(missing_required)}")

    failed_validation = [f.field_name for f in fields if f.field_status is FieldStatus.FAIL_VALIDATION]
    if failed_validation:
        failed_rules.append(f"Failed validation: {', '.join(failed_validation)}")

    needs_review = [f for f in fields if f.field_status is FieldStatus.NEEDS_REVIEW]
    was_skipped = any(f.field_status is FieldStatus.SKIPPED_WRONG_DOC_TYPE for f in fields)

    if was_skipped:
        status = RecordStatus.SKIPPED
        summary = "Document was skipped due to wrong document type"
    elif failed_rules:
        status = RecordStatus.NON_COMPLIANT
        summary = f"Document is non-compliant: {'; '.join(failed_rules)}"
    elif needs_review:
        status = RecordStatus.NEEDS_REVIEW
        summary = f"{len(needs_review)} field(s) need manual review"
    else:
        status = RecordStatus.COMPLIANT
        summary = "All required fields extracted and validated successfully"

    logger.debug(
        "Compliance | status=%s failed_rules=%d needs_review=%d",
        status.value, len(failed_rules), len(needs_review),
    )
    return ComplianceResult(record_status=status, failed_rules=failed_rules, summary=summary)


# ---------------------------------------------------------------------------
# Template-specific checkers
# ---------------------------------------------------------------------------

TemplateChecker = Callable[[Mapping[str, Any], Mapping[str, Any]], list[str]]

COMPLIANCE_CHECKERS: dict[str, TemplateChecker] = {}


def register_checker(*slugs: str) -> Callable[[TemplateChecker], TemplateChecker]:
    def _register(fn: TemplateChecker) -> TemplateChecker:
        for slug in slugs:
            COMPLIANCE_CHECKERS[slug] = fn
        return fn
    return _register


def _fmt_amount(value: Any) -> str:
    number = parse_number(value)
    if number is None:
        return str(value)
    return f"{number:,.0f}" if number.is_integer() else f"{number:,.2f}"


@register_checker("coi", "vendor-compliance")
def check_coi_compliance(data: Mapping[str, Any], requirements: Mapping[str, Any]) -> list[str]:
    """Certificate of Insurance rules: expiry, GL limits, endorsements."""
    violations: list[str] = []

    if requirements.get("expiration_must_be_future") is not False:
        expires = parse_date(data.get("expiration_date"))
        if expires is not None and expires < date.today():
            violations.append("Certificate has expired")

    limits = (
        ("min_gl_each_occurrence", "general_liability_each_occurrence", "General Liability Each Occurrence"),
        ("min_gl_aggregate",       "general_liability_aggregate",       "General Liability Aggregate"),
    )
    for requirement_key, field_name, label in limits:
        minimum = parse_number(requirements.get(requirement_key))
        if not minimum:
            continue
        limit = parse_number(data.get(field_name))
        if limit is not None and limit < minimum:
            violations.append(
                f"{label} (${_fmt_amount(limit)}) below minimum (${_fmt_amount(minimum)})"
            )

    endorsements = (
        ("require_additional_insured",    "additional_insured_present",    "Additional Insured"),
        ("require_waiver_of_subrogation", "waiver_of_subrogation_present", "Waiver of Subrogation"),
    )
    for requirement_key, field_name, label in endorsements:
        if requirements.get(requirement_key) and parse_bool(data.get(field_name)) is not True:
            violations.append(f"{label} is required but not present")

    return violations


def evaluate_record(
    fields: list[FieldStatusInfo],
    template_slug: str,
    data: Mapping[str, Any],
    requirements: Optional[Mapping[str, Any]] = None,
) -> ComplianceResult:
    """Field-status verdict combined with the template's domain rules."""
    result = compute_record_status(fields)

    checker = COMPLIANCE_CHECKERS.get(template_slug)
    if checker is None:
        return result

    violations = checker(data, requirements or {})
    if not violations:
        return result

    failed_rules = result.failed_rules + [v for v in violations if v not in result.failed_rules]
    logger.info(
        "Compliance | slug=%s template_violations=%d (forcing NON_COMPLIANT)",
        template_slug, len(violations),
    )
    return ComplianceResult(
        record_status=RecordStatus.NON_COMPLIANT,
        failed_rules=failed_rules,
        summary=f"Document is non-compliant: {'; '.join(failed_rules)}",
    )

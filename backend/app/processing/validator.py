"""
Field Validator — per-field rule evaluation and FieldStatus reduction

Evaluation order for one field:

  1. Missing check      None / "" / "N/A" / "NULL" / "NONE" (trimmed,
                        case-insensitive) → MISSING, confidence capped at
                        0.30. A `required` error is added only when the
                        field is required. No further rules run.
  2. Low confidence     confidence < 0.85 → warning `low_confidence`.
  3. Field rules        registered in RULES, keyed by rule name:
                          required          no-op (handled in step 1)
                          date_after_today  unparsable or past date → error
                          min_value         below params["value"] → error
                          min_threshold     below requirements[field] → error
                                            (skipped if no requirement)
                          boolean_required  requirements["require_<field>"]
                                            set and value not true → error
                        Unknown rule names are logged and ignored. A rule
                        that raises is downgraded to a warning and the
                        remaining rules still run.

Status reduction:
    any error              → FAIL_VALIDATION
    any warning / low conf → NEEDS_REVIEW
    otherwise              → PASS
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Iterable, Mapping, Optional

from app.core.exceptions import ValidationRuleError
from app.models.enums import FieldStatus, Severity
from app.processing.values import TypedValue, coerce, parse_number, to_stored
from app.schemas.templates import FieldType, TemplateConfig, ValidatorRule

logger = logging.getLogger(__name__)

REVIEW_THRESHOLD = 0.85
MISSING_CONFIDENCE_CAP = 0.30
DEFAULT_CONFIDENCE = 0.5


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ValidationFinding:
    rule:     str
    message:  str
    severity: Severity

    def to_dict(self) -> dict[str, str]:
        return {"rule": self.rule, "message": self.message, "severity": self.severity.value}


@dataclass
class FieldValidationResult:
    field_name:        str
    field_status:      FieldStatus
    confidence:        float
    validation_errors: list[ValidationFinding] = field(default_factory=list)
    value:             Any = None          # stored (JSON) form of the typed value
    field_type:        FieldType = FieldType.STRING
    required:          bool = False

    @property
    def has_errors(self) -> bool:
        return any(f.severity is Severity.ERROR for f in self.validation_errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fieldName": self.field_name,
            "fieldStatus": self.field_status.value,
            "confidence": self.confidence,
            "validationErrors": [f.to_dict() for f in self.validation_errors],
            "value": self.value,
            "fieldType": self.field_type.value,
            "required": self.required,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FieldValidationResult":
        return cls(
            field_name=data["fieldName"],
            field_status=FieldStatus(data["fieldStatus"]),
            confidence=data["confidence"],
            validation_errors=[
                ValidationFinding(e["rule"], e["message"], Severity(e["severity"]))
                for e in data.get("validationErrors", [])
            ],
            value=data.get("value"),
            field_type=FieldType(data.get("fieldType", FieldType.STRING.value)),
            required=data.get("required", False),
        )


# ---------------------------------------------------------------------------
# Rule implementations
# ---------------------------------------------------------------------------

RuleFn = Callable[[str, TypedValue, ValidatorRule, Mapping[str, Any]], Optional[ValidationFinding]]


def _error(rule: ValidatorRule, message: str) -> ValidationFinding:
    return ValidationFinding(rule.rule, message, Severity.ERROR)


def _rule_required(name, typed, rule, requirements):
    return None


def _rule_date_after_today(name, typed, rule, requirements):
    parsed = typed.as_date()
    if parsed is None:
        return _error(rule, f'{name} is not a valid date: "{typed.raw}"')
    if parsed < date.today():
        return _error(rule, rule.message or f"{name} must be after today (got {parsed.isoformat()})")
    return None


def _rule_min_value(name, typed, rule, requirements):
    minimum = parse_number(rule.params.get("value", 0))
    if minimum is None:
        raise ValidationRuleError(f"min_value param is not numeric: {rule.params.get('value')!r}")
    number = typed.as_number()
    if number is None:
        return _error(rule, f'{name} is not a valid number: "{typed.raw}"')
    if number < minimum:
        return _error(rule, rule.message or f"{name} must be at least {minimum:g} (got {number:g})")
    return None


def _rule_min_threshold(name, typed, rule, requirements):
    requirement = requirements.get(name)
    if requirement is None or requirement == "":
        return None
    threshold = parse_number(requirement)
    if threshold is None:
        raise ValidationRuleError(f"Requirement for {name} is not numeric: {requirement!r}")
    number = typed.as_number()
    if number is None:
        return _error(rule, f'{name} is not a valid number: "{typed.raw}"')
    if number < threshold:
        return _error(
            rule,
            rule.message or f"{name} ({number:g}) does not meet minimum requirement ({threshold:g})",
        )
    return None


def _rule_boolean_required(name, typed, rule, requirements):
    if requirements.get(f"require_{name}") and not typed.is_true():
        return _error(rule, rule.message or f"{name} is required to be true")
    return None


RULES: dict[str, RuleFn] = {
    "required":         _rule_required,
    "date_after_today": _rule_date_after_today,
    "min_value":        _rule_min_value,
    "min_threshold":    _rule_min_threshold,
    "boolean_required": _rule_boolean_required,
}


# ---------------------------------------------------------------------------
# Field validation
# ---------------------------------------------------------------------------

def _reduce_status(findings: list[ValidationFinding], confidence: float) -> FieldStatus:
    if any(f.severity is Severity.ERROR for f in findings):
        return FieldStatus.FAIL_VALIDATION
    if findings or confidence < REVIEW_THRESHOLD:
        return FieldStatus.NEEDS_REVIEW
    return FieldStatus.PASS


def validate_field(
    name: str,
    value: Any,
    confidence: float,
    rules: Iterable[ValidatorRule],
    requirements: Optional[Mapping[str, Any]] = None,
    *,
    field_type: FieldType | str = FieldType.STRING,
    required: Optional[bool] = None,
) -> FieldValidationResult:
    """
    Validate one extracted value.

    `required` defaults to "has a `required` rule"; template-driven callers
    pass the template's own notion of required.
    """
    field_rules = [r for r in rules if r.field == name]
    requirements = requirements or {}
    if required is None:
        required = any(r.rule == "required" for r in field_rules)

    typed = coerce(value, field_type)

    if typed.missing:
        missing_findings: list[ValidationFinding] = []
        if required:
            missing_findings.append(ValidationFinding(
                "required",
                f"{name} is required but was not found in the document",
                Severity.ERROR,
            ))
        return FieldValidationResult(
            field_name=name,
            field_status=FieldStatus.MISSING,
            confidence=min(confidence, MISSING_CONFIDENCE_CAP),
            validation_errors=missing_findings,
            value=None,
            field_type=typed.type,
            required=required,
        )

    findings: list[ValidationFinding] = []
    if confidence < REVIEW_THRESHOLD:
        findings.append(ValidationFinding(
            "low_confidence",
            f"Confidence ({confidence * 100:.1f}%) below review threshold ({REVIEW_THRESHOLD:.0%})",
            Severity.WARNING,
        ))

    for rule in field_rules:
        handler = RULES.get(rule.rule)
        if handler is None:
            logger.warning("Validator | unknown rule=%s field=%s (ignored)", rule.rule, name)
            continue
        try:
            finding = handler(name, typed, rule, requirements)
        except Exception as exc:
            logger.error("Validator | rule=%s field=%s error=%s", rule.rule, name, exc)
            finding = ValidationFinding(rule.rule, f"Validation error: {exc}", Severity.WARNING)
        if finding is not None:
            findings.append(finding)

    return FieldValidationResult(
        field_name=name,
        field_status=_reduce_status(findings, confidence),
        confidence=confidence,
        validation_errors=findings,
        value=to_stored(typed),
        field_type=typed.type,
        required=required,
    )


def validate_extraction(
    template: TemplateConfig,
    data: Mapping[str, Any],
    confidence: Mapping[str, float],
    requirements: Optional[Mapping[str, Any]] = None,
) -> list[FieldValidationResult]:
    """Validate every template field, in template order."""
    return [
        validate_field(
            f.name,
            data.get(f.name),
            confidence.get(f.name, DEFAULT_CONFIDENCE),
            template.validators,
            requirements,
            field_type=f.type,
            required=template.is_required(f.name),
        )
        for f in template.fields
    ]

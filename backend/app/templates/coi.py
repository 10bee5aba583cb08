"""
Built-in template: Certificate of Insurance (COI) vendor compliance.

Seeded into docextract.templates as slug "coi"; its compliance rules are
registered under the same slug in app/processing/compliance.py.
"""

from __future__ import annotations

from app.schemas.templates import TemplateConfig

COI_DETECTION_KEYWORDS: dict[str, list[str]] = {
    "high": [
        "CERTIFICATE OF LIABILITY INSURANCE",
        "ACORD",
        "CERTIFICATE HOLDER",
        "PRODUCER",
        "INSURED",
        "POLICY NUMBER",
        "EFFECTIVE DATE",
        "EXPIRATION DATE",
        "GENERAL LIABILITY",
        "COMMERCIAL GENERAL LIABILITY",
        "AUTOMOBILE LIABILITY",
        "WORKERS COMPENSATION",
        "UMBRELLA LIAB",
    ],
    "medium": [
        "INSURANCE",
        "COVERAGE",
        "LIMITS",
        "DEDUCTIBLE",
        "PREMIUM",
        "ENDORSEMENT",
        "AGGREGATE",
        "OCCURRENCE",
        "CLAIMS-MADE",
    ],
    "low": [
        "LIABILITY",
        "POLICY",
        "INSURER",
        "AGENT",
        "BROKER",
    ],
}

_COI_PROMPT = """Extract the following information from this Certificate of Insurance document:

Fields to extract:
1. vendor_name: Name of the vendor/organization
2. insured_name: Name of the insured party
3. policy_number: Insurance policy number
4. effective_date: Policy effective date (format: YYYY-MM-DD)
5. expiration_date: Policy expiration date (format: YYYY-MM-DD)
6. general_liability_each_occurrence: General liability coverage per occurrence (number)
7. general_liability_aggregate: General liability aggregate coverage (number)
8. additional_insured_present: Whether additional insured is present (true/false)
9. waiver_of_subrogation_present: Whether waiver of subrogation is present (true/false)

For EACH field, provide the extracted value, a confidence score between 0.0
and 1.0, and evidence: the exact text snippet, its page number and its
approximate character position.

Return your response in this JSON format:
{
  "fields": [
    {
      "name": "field_name",
      "value": extracted_value,
      "confidence": 0.95,
      "evidence": {"text": "exact text from document", "page": 1, "charStart": 100, "charEnd": 150}
    }
  ]
}

Document text:
{{DOCUMENT_TEXT}}"""

COI_TEMPLATE_CONFIG: dict = {
    "description": (
        "Extract and validate Certificate of Insurance data for vendor compliance. "
        "Checks policy numbers, coverage limits, and expiration dates."
    ),
    "fields": [
        {"name": "vendor_name", "type": "string", "description": "Name of the vendor/organization", "required": True},
        {"name": "insured_name", "type": "string", "description": "Name of the insured party", "required": True},
        {"name": "policy_number", "type": "string", "description": "Insurance policy number", "required": True},
        {"name": "effective_date", "type": "date", "description": "Policy effective date", "required": True},
        {"name": "expiration_date", "type": "date", "description": "Policy expiration date", "required": True},
        {"name": "general_liability_each_occurrence", "type": "number",
         "description": "General liability coverage per occurrence", "required": True},
        {"name": "general_liability_aggregate", "type": "number",
         "description": "General liability aggregate coverage", "required": True},
        {"name": "additional_insured_present", "type": "boolean",
         "description": "Whether additional insured is present", "required": False},
        {"name": "waiver_of_subrogation_present", "type": "boolean",
         "description": "Whether waiver of subrogation is present", "required": False},
    ],
    "validators": [
        {"field": "policy_number", "rule": "required", "message": "Policy number is required"},
        {"field": "expiration_date", "rule": "date_after_today",
         "message": "Policy expiration date must be in the future"},
        {"field": "general_liability_each_occurrence", "rule": "min_threshold",
         "message": "General liability per occurrence does not meet minimum requirement"},
        {"field": "general_liability_aggregate", "rule": "min_threshold",
         "message": "General liability aggregate does not meet minimum requirement"},
    ],
    "extractionPrompt": _COI_PROMPT,
    "detectionKeywords": COI_DETECTION_KEYWORDS,
}

COI_TEMPLATE = TemplateConfig.model_validate(
    {"name": "COI Vendor Compliance", "slug": "coi", "version": "1.0", **COI_TEMPLATE_CONFIG}
)

"""
Built-in template: resume / CV → candidate dataset.

Seeded as slug "resume". `email_format` is not an implemented validator
rule, so only the `required` check applies to email today.
"""

from __future__ import annotations

from app.schemas.templates import TemplateConfig

RESUME_DETECTION_KEYWORDS: dict[str, list[str]] = {
    "high": [
        "CURRICULUM VITAE",
        "RESUME",
        "PROFESSIONAL EXPERIENCE",
        "WORK EXPERIENCE",
        "EMPLOYMENT HISTORY",
    ],
    "medium": [
        "EDUCATION",
        "SKILLS",
        "EXPERIENCE",
        "CERTIFICATIONS",
        "PROJECTS",
        "OBJECTIVE",
        "SUMMARY",
        "REFERENCES",
        "ACHIEVEMENTS",
    ],
    "low": [
        "UNIVERSITY",
        "DEGREE",
        "BACHELOR",
        "MASTER",
        "GPA",
        "INTERNSHIP",
    ],
}

_RESUME_PROMPT = """Extract the following information from this resume/CV document:

Fields to extract:
1. candidate_name: Full name of the candidate
2. email: Email address
3. phone: Phone number (if available)
4. location: City/location (if available)
5. skills: List of technical and professional skills mentioned
6. latest_company: Most recent employer/company name
7. latest_title: Most recent job title/role

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

For skills, the value should be a JSON array of strings:
["Python", "JavaScript", "Project Management"]

Document text:
{{DOCUMENT_TEXT}}"""

RESUME_TEMPLATE_CONFIG: dict = {
    "description": (
        "Extract candidate data from resumes into a structured dataset. "
        "Validates email format and required fields."
    ),
    "fields": [
        {"name": "candidate_name", "type": "string", "description": "Full name of the candidate", "required": True},
        {"name": "email", "type": "string", "description": "Email address of the candidate", "required": True},
        {"name": "phone", "type": "string", "description": "Phone number of the candidate", "required": False},
        {"name": "location", "type": "string", "description": "Location/city of the candidate", "required": False},
        {"name": "skills", "type": "array",
         "description": "Array of skills mentioned in the resume", "required": True},
        {"name": "latest_company", "type": "string", "description": "Most recent employer/company", "required": True},
        {"name": "latest_title", "type": "string", "description": "Most recent job title/position", "required": True},
    ],
    "validators": [
        {"field": "candidate_name", "rule": "required",
         "message": "Candidate name is required and must not be empty"},
        {"field": "email", "rule": "required", "message": "Email address is required"},
        {"field": "email", "rule": "email_format",
         "message": "Email address must be in a valid format (e.g., user@example.com)"},
    ],
    "extractionPrompt": _RESUME_PROMPT,
    "detectionKeywords": RESUME_DETECTION_KEYWORDS,
}

RESUME_TEMPLATE = TemplateConfig.model_validate(
    {"name": "Resume → Candidate Dataset", "slug": "resume", "version": "1.0", **RESUME_TEMPLATE_CONFIG}
)

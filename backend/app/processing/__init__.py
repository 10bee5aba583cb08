"""
Document Processing Package
════════════════════════════

The per-document stages driven by app/services/orchestrator.py:

  Parse → Classify → Chunk → (LLM extraction) → Validate → Compliance

Modules
───────
  parser.py      PDF bytes → text + page boundaries (PyMuPDF, pypdf fallback)
  classifier.py  keyword-density document type scoring
  chunking.py    by-page / fixed-token / heading chunker strategies
  values.py      typed extracted values (number / date / boolean / ...)
  validator.py   per-field rules → FieldStatus
  compliance.py  field statuses + template checkers → RecordStatus
  guardrails.py  run cost guardrail

Design principles
─────────────────
  • Every component is stateless; the orchestrator owns all persistence.
  • Pure functions where possible (classify, validate, compliance) so
    re-running a stage on the same input yields the same output.
"""

from app.processing.chunking import Chunk, get_chunker
from app.processing.classifier import ClassificationResult, classify
from app.processing.compliance import ComplianceResult, compute_record_status, evaluate_record
from app.processing.parser import ParsedDocument, parse_document
from app.processing.validator import FieldValidationResult, validate_extraction, validate_field

__all__ = [
    "Chunk",
    "get_chunker",
    "ClassificationResult",
    "classify",
    "ComplianceResult",
    "compute_record_status",
    "evaluate_record",
    "ParsedDocument",
    "parse_document",
    "FieldValidationResult",
    "validate_extraction",
    "validate_field",
]

"""
Status vocabularies shared by the ORM models and the processing modules.

Values are stored verbatim in TEXT columns (guarded by CHECK constraints),
so renaming a member is a data migration.
"""

from __future__ import annotations

from enum import Enum


class RunStatus(str, Enum):
    PENDING    = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED  = "COMPLETED"
    FAILED     = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)


class StepName(str, Enum):
    PARSE_DOCUMENT    = "parse_document"
    CLASSIFY_DOCUMENT = "classify_document"
    CHUNK_DOCUMENT    = "chunk_document"
    LLM_EXTRACTION    = "llm_extraction"
    VALIDATION        = "validation"
    PERSIST_RESULTS   = "persist_results"


class StepStatus(str, Enum):
    PENDING   = "PENDING"
    RUNNING   = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED    = "FAILED"


class FieldStatus(str, Enum):
    PASS                   = "PASS"
    FAIL_VALIDATION        = "FAIL_VALIDATION"
    NEEDS_REVIEW           = "NEEDS_REVIEW"
    MISSING                = "MISSING"
    SKIPPED_WRONG_DOC_TYPE = "SKIPPED_WRONG_DOC_TYPE"


class RecordStatus(str, Enum):
    COMPLIANT     = "COMPLIANT"
    NON_COMPLIANT = "NON_COMPLIANT"
    NEEDS_REVIEW  = "NEEDS_REVIEW"
    SKIPPED       = "SKIPPED"


class SkipCategory(str, Enum):
    WRONG_DOC_TYPE = "WRONG_DOC_TYPE"
    COST_LIMIT     = "COST_LIMIT"


class Severity(str, Enum):
    ERROR   = "error"
    WARNING = "warning"


class ReviewAction(str, Enum):
    EDIT    = "EDIT"
    APPROVE = "APPROVE"
    REJECT  = "REJECT"


def check_values(enum_cls: type[Enum]) -> str:
    """Render an enum as the body of a SQL `IN (...)` CHECK constraint."""
    return ", ".join(f"'{member.value}'" for member in enum_cls)

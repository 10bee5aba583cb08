"""
SQLAlchemy ORM Models — Runs, Steps, Extraction Records & Review Events

    Run ──┬── RunStep          (one per document × stage attempt)
          └── ExtractionRecord (one per run × document)
                  └── ExtractionField (one per template field)
                          └── ReviewEvent (human edits, append-only)

Runs are never deleted; they are the audit record of what was extracted
with which settings. settings_snapshot / template_snapshot are deep copies
taken at launch, so later edits to the project or template never leak
into an in-flight or historical run.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.documents import Base, _created_at, _uuid_pk
from app.models.enums import (
    FieldStatus,
    RecordStatus,
    ReviewAction,
    RunStatus,
    StepName,
    StepStatus,
    check_values,
)


# ---------------------------------------------------------------------------
# Run model — docextract.runs
# ---------------------------------------------------------------------------

class Run(Base):
    """
    One execution of the pipeline over a project's documents.

    State machine (status column):
        PENDING    — created by the launcher, job enqueued
        PROCESSING — a worker owns the run
        COMPLETED  — every selected document attempted (some may be skipped)
        FAILED     — run setup or credential resolution failed

    Counters are only ever changed with `col = col + n` updates.
    """

    __tablename__ = "runs"
    __table_args__ = (
        CheckConstraint(f"status IN ({check_values(RunStatus)})", name="runs_status_check"),
        Index("idx_runs_project_id", "project_id"),
        {"schema": "docextract"},
    )

    id: Mapped[uuid.UUID] = _uuid_pk()
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("docextract.projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    triggered_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        Text, nullable=False,
        default=RunStatus.PENDING.value, server_default=RunStatus.PENDING.value,
    )

    settings_snapshot: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    template_snapshot: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    # Optional subset of project documents; NULL = every document in the project
    selected_document_ids: Mapped[Optional[list]] = mapped_column(JSONB, nullable=True)

    cost_estimate: Mapped[Decimal] = mapped_column(
        Numeric(12, 6), nullable=False, default=Decimal("0"), server_default="0",
    )
    processed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    skipped_count: Mapped[int]   = mapped_column(Integer, nullable=False, default=0, server_default="0")
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    started_at:  Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at:  Mapped[datetime] = _created_at()

    steps: Mapped[list["RunStep"]] = relationship(back_populates="run")

    def __repr__(self) -> str:
        return (
            f"<Run id={self.id} status={self.status} "
            f"processed={self.processed_count} skipped={self.skipped_count}>"
        )


# ---------------------------------------------------------------------------
# RunStep model — docextract.run_steps
# ---------------------------------------------------------------------------

class RunStep(Base):
    """
    One pipeline stage for one document within a run.

    Written three times per attempt: created PENDING, marked RUNNING with
    started_at, then COMPLETED (output) or FAILED (error) with finished_at.
    A COMPLETED row's output is reused when the run is re-executed.
    """

    __tablename__ = "run_steps"
    __table_args__ = (
        CheckConstraint(f"status IN ({check_values(StepStatus)})", name="run_steps_status_check"),
        CheckConstraint(f"step_name IN ({check_values(StepName)})", name="run_steps_name_check"),
        Index("idx_run_steps_lookup", "run_id", "document_id", "step_name", "status"),
        {"schema": "docextract"},
    )

    id: Mapped[uuid.UUID] = _uuid_pk()
    run_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("docextract.runs.id", ondelete="CASCADE"),
        nullable=False,
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("docextract.documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    step_name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        Text, nullable=False,
        default=StepStatus.PENDING.value, server_default=StepStatus.PENDING.value,
    )

    input:  Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    output: Mapped[Optional[Any]]  = mapped_column(JSONB, nullable=True)
    error:  Mapped[Optional[str]]  = mapped_column(Text, nullable=True)

    started_at:  Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at:  Mapped[datetime] = _created_at()

    run: Mapped[Run] = relationship(back_populates="steps")


# ---------------------------------------------------------------------------
# ExtractionRecord model — docextract.extraction_records
# ---------------------------------------------------------------------------

class ExtractionRecord(Base):
    """Extracted-data result for one (run, document) pair."""

    __tablename__ = "extraction_records"
    __table_args__ = (
        CheckConstraint(
            f"record_status IN ({check_values(RecordStatus)})",
            name="extraction_records_status_check",
        ),
        UniqueConstraint("run_id", "document_id", name="uq_extraction_records_run_document"),
        {"schema": "docextract"},
    )

    id: Mapped[uuid.UUID] = _uuid_pk()
    run_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("docextract.runs.id", ondelete="CASCADE"),
        nullable=False,
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("docextract.documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    record_status: Mapped[str] = mapped_column(
        Text, nullable=False,
        default=RecordStatus.NEEDS_REVIEW.value, server_default=RecordStatus.NEEDS_REVIEW.value,
    )
    failed_rules_json: Mapped[list] = mapped_column(
        JSONB, nullable=False, default=list, server_default="[]",
    )
    # Set once, when the record's final status is written and processed_count bumped
    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = _created_at()

    fields: Mapped[list["ExtractionField"]] = relationship(
        back_populates="record", cascade="all, delete-orphan",
    )


# ---------------------------------------------------------------------------
# ExtractionField model — docextract.extraction_fields
# ---------------------------------------------------------------------------

class ExtractionField(Base):
    """
    One extracted value within a record.

    extracted_value is the stored form of a TypedValue (see
    app/processing/values.py): str | float | bool | list | None.
    evidence_json          : [{text, page, charStart, charEnd}] or NULL
    validation_errors_json : [{rule, message, severity}]
    """

    __tablename__ = "extraction_fields"
    __table_args__ = (
        CheckConstraint(
            f"field_status IN ({check_values(FieldStatus)})",
            name="extraction_fields_status_check",
        ),
        UniqueConstraint("record_id", "field_name", name="uq_extraction_fields_record_name"),
        {"schema": "docextract"},
    )

    id: Mapped[uuid.UUID] = _uuid_pk()
    record_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("docextract.extraction_records.id", ondelete="CASCADE"),
        nullable=False,
    )
    field_name: Mapped[str] = mapped_column(Text, nullable=False)
    field_type: Mapped[str] = mapped_column(Text, nullable=False, default="string")

    extracted_value: Mapped[Optional[Any]] = mapped_column(JSONB, nullable=True)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    evidence_json: Mapped[Optional[list]] = mapped_column(JSONB, nullable=True)

    field_status: Mapped[str] = mapped_column(Text, nullable=False)
    validation_errors_json: Mapped[list] = mapped_column(
        JSONB, nullable=False, default=list, server_default="[]",
    )

    # Review state — mutated by the (external) review path
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = _created_at()

    record: Mapped[ExtractionRecord] = relationship(back_populates="fields")


# ---------------------------------------------------------------------------
# ReviewEvent model — docextract.review_events
# ---------------------------------------------------------------------------

class ReviewEvent(Base):
    """
    Append-only audit trail of human review actions on an ExtractionField.
    The pipeline never writes here; the shape exists so reviews keep the
    old and new value side by side.
    """

    __tablename__ = "review_events"
    __table_args__ = (
        CheckConstraint(f"action IN ({check_values(ReviewAction)})", name="review_events_action_check"),
        Index("idx_review_events_field_id", "field_id"),
        {"schema": "docextract"},
    )

    id: Mapped[uuid.UUID] = _uuid_pk()
    field_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("docextract.extraction_fields.id", ondelete="CASCADE"),
        nullable=False,
    )
    action: Mapped[str] = mapped_column(Text, nullable=False)
    old_value: Mapped[Optional[Any]] = mapped_column(JSONB, nullable=True)
    new_value: Mapped[Optional[Any]] = mapped_column(JSONB, nullable=True)
    actor_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()

"""
Run Repository — persistence gateway for the orchestrator

Every public method opens its own session + transaction (session_scope),
so each write is an independent atomic unit:

    step transition         one UPDATE
    document classification one UPDATE
    document skip           conditional UPDATE + counter bump, one txn
    run cost / counters     `col = col + :n` UPDATEs (never read-modify-write)
    record finalization     status UPDATE + processed_count bump, one txn,
                            guarded by finalized_at IS NULL

The orchestrator only sees the *View dataclasses below, never live ORM
instances, so nothing it holds is bound to a closed session.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.orm import selectinload

from app.db.session import get_admin_db
from app.models.documents import Document, Project
from app.models.enums import RunStatus, StepName, StepStatus
from app.models.runs import ExtractionField, ExtractionRecord, Run, RunStep

logger = logging.getLogger(__name__)

DOCUMENT_UPLOADED = "UPLOADED"


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RunView:
    id:                    uuid.UUID
    project_id:            uuid.UUID
    status:                RunStatus
    settings_snapshot:     dict[str, Any]
    template_snapshot:     dict[str, Any]
    selected_document_ids: Optional[list[str]] = None
    cost_estimate:         float = 0.0
    processed_count:       int = 0
    skipped_count:         int = 0


@dataclass(frozen=True)
class ProjectView:
    id:                      uuid.UUID
    workspace_id:            uuid.UUID
    requirements:            dict[str, Any] = field(default_factory=dict)
    project_key_encrypted:   Optional[str] = None
    workspace_key_encrypted: Optional[str] = None


@dataclass(frozen=True)
class DocumentView:
    id:         uuid.UUID
    project_id: uuid.UUID
    file_url:   str
    file_type:  str
    filename:   str = ""


@dataclass(frozen=True)
class FieldRow:
    """One ExtractionField insert."""
    field_name:             str
    field_type:             str
    extracted_value:        Any
    confidence:             float
    evidence_json:          Optional[list]
    field_status:           str
    validation_errors_json: list
    is_approved:            bool = False
    approved_at:            Optional[datetime] = None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------

class RunRepository:
    """
    Args:
        session_scope: async context manager factory yielding a session
                       inside an open transaction (see db/session.py).
    """

    def __init__(self, session_scope=get_admin_db) -> None:
        self._scope = session_scope

    # ------------------------------------------------------------------
    # Run setup reads
    # ------------------------------------------------------------------

    async def get_run(self, run_id: uuid.UUID) -> Optional[RunView]:
        async with self._scope() as db:
            run = await db.get(Run, run_id)
            if run is None:
                return None
            return RunView(
                id=run.id,
                project_id=run.project_id,
                status=RunStatus(run.status),
                settings_snapshot=dict(run.settings_snapshot or {}),
                template_snapshot=dict(run.template_snapshot or {}),
                selected_document_ids=run.selected_document_ids,
                cost_estimate=float(run.cost_estimate or 0),
                processed_count=run.processed_count,
                skipped_count=run.skipped_count,
            )

    async def get_project(self, project_id: uuid.UUID) -> Optional[ProjectView]:
        async with self._scope() as db:
            result = await db.execute(
                select(Project)
                .options(selectinload(Project.workspace))
                .where(Project.id == project_id)
            )
            project = result.scalars().first()
            if project is None:
                return None
            return ProjectView(
                id=project.id,
                workspace_id=project.workspace_id,
                requirements=dict(project.requirements or {}),
                project_key_encrypted=project.llm_api_key_encrypted,
                workspace_key_encrypted=project.workspace.llm_api_key_encrypted,
            )

    async def list_documents(
        self,
        project_id: uuid.UUID,
        document_ids: Optional[list[str]] = None,
    ) -> list[DocumentView]:
        stmt = select(Document).where(
            Document.project_id == project_id,
            Document.status == DOCUMENT_UPLOADED,
        )
        if document_ids:
            stmt = stmt.where(Document.id.in_([uuid.UUID(str(d)) for d in document_ids]))
        stmt = stmt.order_by(Document.created_at, Document.id)

        async with self._scope() as db:
            result = await db.execute(stmt)
            return [
                DocumentView(
                    id=doc.id,
                    project_id=doc.project_id,
                    file_url=doc.file_url,
                    file_type=doc.file_type,
                    filename=doc.filename,
                )
                for doc in result.scalars().all()
            ]

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    async def mark_run_processing(self, run_id: uuid.UUID) -> None:
        async with self._scope() as db:
            await db.execute(
                update(Run)
                .where(Run.id == run_id)
                .values(status=RunStatus.PROCESSING.value, started_at=_now())
            )

    async def complete_run(self, run_id: uuid.UUID, cost_estimate: float) -> None:
        async with self._scope() as db:
            await db.execute(
                update(Run)
                .where(Run.id == run_id)
                .values(
                    status=RunStatus.COMPLETED.value,
                    finished_at=_now(),
                    cost_estimate=Decimal(str(round(cost_estimate, 6))),
                )
            )

    async def fail_run(self, run_id: uuid.UUID, error_message: str) -> None:
        async with self._scope() as db:
            await db.execute(
                update(Run)
                .where(Run.id == run_id)
                .values(
                    status=RunStatus.FAILED.value,
                    finished_at=_now(),
                    error_message=error_message,
                )
            )

    async def add_run_cost(self, run_id: uuid.UUID, amount: float) -> None:
        async with self._scope() as db:
            await db.execute(
                update(Run)
                .where(Run.id == run_id)
                .values(cost_estimate=Run.cost_estimate + Decimal(str(round(amount, 9))))
            )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def create_step(
        self,
        run_id: uuid.UUID,
        document_id: uuid.UUID,
        step_name: StepName,
        step_input: Optional[dict] = None,
    ) -> uuid.UUID:
        step_id = uuid.uuid4()
        async with self._scope() as db:
            await db.execute(
                insert(RunStep).values(
                    id=step_id,
                    run_id=run_id,
                    document_id=document_id,
                    step_name=step_name.value,
                    status=StepStatus.PENDING.value,
                    input=step_input,
                )
            )
        return step_id

    async def mark_step_running(self, step_id: uuid.UUID) -> None:
        async with self._scope() as db:
            await db.execute(
                update(RunStep)
                .where(RunStep.id == step_id)
                .values(status=StepStatus.RUNNING.value, started_at=_now())
            )

    async def mark_step_completed(self, step_id: uuid.UUID, output: Any) -> None:
        async with self._scope() as db:
            await db.execute(
                update(RunStep)
                .where(RunStep.id == step_id)
                .values(status=StepStatus.COMPLETED.value, output=output, finished_at=_now())
            )

    async def mark_step_failed(self, step_id: uuid.UUID, error: str) -> None:
        async with self._scope() as db:
            await db.execute(
                update(RunStep)
                .where(RunStep.id == step_id)
                .values(status=StepStatus.FAILED.value, error=error, finished_at=_now())
            )

    async def get_completed_step(
        self,
        run_id: uuid.UUID,
        document_id: uuid.UUID,
        step_name: StepName,
    ) -> Optional[dict]:
        """Latest COMPLETED step for the triple, as {"output": ...}, or None."""
        async with self._scope() as db:
            result = await db.execute(
                select(RunStep.output)
                .where(
                    RunStep.run_id == run_id,
                    RunStep.document_id == document_id,
                    RunStep.step_name == step_name.value,
                    RunStep.status == StepStatus.COMPLETED.value,
                )
                .order_by(RunStep.finished_at.desc())
                .limit(1)
            )
            row = result.first()
            return None if row is None else {"output": row[0]}

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def update_document_classification(
        self,
        run_id: uuid.UUID,
        document_id: uuid.UUID,
        score: float,
        detected_type: str,
        reason: str,
    ) -> None:
        async with self._scope() as db:
            await db.execute(
                update(Document)
                .where(Document.id == document_id)
                .values(
                    doc_type_score=score,
                    doc_type_detected=detected_type,
                    doc_type_reason=reason,
                )
            )
            # A skip recorded by an earlier run no longer applies
            await db.execute(
                update(Document)
                .where(
                    Document.id == document_id,
                    Document.skipped_run_id.is_distinct_from(run_id),
                )
                .values(skip_reason=None, skip_category=None, skipped_run_id=None)
            )

    async def mark_document_skipped(
        self,
        run_id: uuid.UUID,
        document_id: uuid.UUID,
        reason: str,
        category: str,
    ) -> bool:
        """
        Record a skip and bump run.skipped_count, once per (run, document).
        Returns False when this run had already skipped the document.
        """
        async with self._scope() as db:
            result = await db.execute(
                update(Document)
                .where(
                    Document.id == document_id,
                    Document.skipped_run_id.is_distinct_from(run_id),
                )
                .values(skip_reason=reason, skip_category=category, skipped_run_id=run_id)
            )
            if result.rowcount == 0:
                return False
            await db.execute(
                update(Run)
                .where(Run.id == run_id)
                .values(skipped_count=Run.skipped_count + 1)
            )
            return True

    # ------------------------------------------------------------------
    # Records / fields
    # ------------------------------------------------------------------

    async def get_or_create_record(self, run_id: uuid.UUID, document_id: uuid.UUID) -> uuid.UUID:
        async with self._scope() as db:
            result = await db.execute(
                select(ExtractionRecord.id).where(
                    ExtractionRecord.run_id == run_id,
                    ExtractionRecord.document_id == document_id,
                )
            )
            existing = result.scalar_one_or_none()
            if existing is not None:
                return existing

            record_id = uuid.uuid4()
            await db.execute(
                insert(ExtractionRecord).values(id=record_id, run_id=run_id, document_id=document_id)
            )
            return record_id

    async def replace_fields(self, record_id: uuid.UUID, rows: list[FieldRow]) -> None:
        """Write the record's fields; a retried persist replaces a partial earlier write."""
        async with self._scope() as db:
            await db.execute(delete(ExtractionField).where(ExtractionField.record_id == record_id))
            if rows:
                await db.execute(
                    insert(ExtractionField),
                    [
                        {
                            "id": uuid.uuid4(),
                            "record_id": record_id,
                            "field_name": r.field_name,
                            "field_type": r.field_type,
                            "extracted_value": r.extracted_value,
                            "confidence": r.confidence,
                            "evidence_json": r.evidence_json,
                            "field_status": r.field_status,
                            "validation_errors_json": r.validation_errors_json,
                            "is_approved": r.is_approved,
                            "approved_at": r.approved_at,
                        }
                        for r in rows
                    ],
                )

    async def finalize_record(
        self,
        run_id: uuid.UUID,
        record_id: uuid.UUID,
        record_status: str,
        failed_rules: list[str],
    ) -> None:
        """Write the final status; processed_count moves only on the first finalization."""
        async with self._scope() as db:
            result = await db.execute(
                update(ExtractionRecord)
                .where(ExtractionRecord.id == record_id, ExtractionRecord.finalized_at.is_(None))
                .values(record_status=record_status, failed_rules_json=failed_rules, finalized_at=_now())
            )
            if result.rowcount == 0:
                await db.execute(
                    update(ExtractionRecord)
                    .where(ExtractionRecord.id == record_id)
                    .values(record_status=record_status, failed_rules_json=failed_rules)
                )
                return
            await db.execute(
                update(Run)
                .where(Run.id == run_id)
                .values(processed_count=Run.processed_count + 1)
            )

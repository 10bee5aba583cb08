"""
Processing Orchestrator — run state machine

Executes one Run end-to-end:

  Run:       PENDING ──► PROCESSING ──┬──► COMPLETED   (every document attempted)
                                      └──► FAILED      (setup / credentials)

  Per document (each stage is an audited RunStep):

    parse_document ─► classify_document ─► [skip gate] ─► chunk_document
        ─► [cost guardrail] ─► llm_extraction ─► validation ─► persist_results

    skip gate       score < 0.30  → skip_reason "Wrong document type: ...",
                                    category WRONG_DOC_TYPE, skipped_count + 1
    cost guardrail  run cost >= max_cost_per_run → this and every remaining
                                    document skipped with category COST_LIMIT

Step wrapper (_execute_step):
  1. A COMPLETED step for (run, document, stage) already exists
     → its stored output is decoded and reused, the stage body is not run.
  2. Otherwise: create PENDING → mark RUNNING → run body
     → COMPLETED + output, or FAILED + error and the exception re-raised.

Failure isolation:
  - Any exception inside one document's stages is logged and that
    document is abandoned; the run moves on to the next document.
  - Errors while loading the run / project / snapshots, resolving the API
    key, or building the provider fail the whole run with error_message.

Re-executing a run after a crash is safe: completed stages are reused,
records are unique per (run, document), and counters move at most once
per document. A run already in a terminal state is left untouched.

The orchestrator holds no state shared across runs; concurrent runs only
meet in the database, where every counter change is an atomic increment.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import ValidationError

from app.core.exceptions import AppError, ClassificationAmbiguous, RunSetupError
from app.llm.base import ExtractionParams, ExtractionProvider, ExtractionResult
from app.llm.credentials import resolve_api_key
from app.llm.factory import ProviderFactory, default_provider_factory
from app.models.enums import FieldStatus, SkipCategory, StepName
from app.processing.chunking import Chunk, get_chunker
from app.processing.classifier import CONFIDENT_THRESHOLD, ClassificationResult, classify
from app.processing.compliance import FieldStatusInfo, evaluate_record
from app.processing.guardrails import check_cost_guardrail
from app.processing.parser import ParsedDocument, parse_document
from app.processing.validator import FieldValidationResult, validate_extraction
from app.repositories.runs import DocumentView, FieldRow, ProjectView, RunRepository, RunView
from app.schemas.settings import ExtractionSettings, resolve_settings
from app.schemas.templates import TemplateConfig
from app.storage.s3 import S3StorageService

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DocumentOutcome(str, Enum):
    PROCESSED   = "processed"
    SKIPPED     = "skipped"
    COST_HALTED = "cost_halted"


@dataclass(frozen=True)
class RunContext:
    """Everything resolved once per run, before the first document."""
    run:      RunView
    project:  ProjectView
    settings: ExtractionSettings
    template: TemplateConfig
    provider: ExtractionProvider


class ProcessingOrchestrator:
    """
    One instance per run execution.

    Args:
        run_id:           the Run to execute.
        repository:       persistence gateway (RunRepository or a test fake).
        storage:          document bytes collaborator.
        provider_factory: extraction provider registry.
    """

    def __init__(
        self,
        run_id: uuid.UUID,
        repository: Optional[RunRepository] = None,
        storage: Optional[S3StorageService] = None,
        provider_factory: Optional[ProviderFactory] = None,
    ) -> None:
        self.run_id = run_id
        self._repo = repository or RunRepository()
        self._storage = storage or S3StorageService()
        self._providers = provider_factory or default_provider_factory()
        self._total_cost = 0.0
        self._guardrail_message = ""

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    async def execute(self) -> None:
        t0 = time.monotonic()

        # ---- Setup: any failure here fails the whole run ---------------
        try:
            ctx = await self._prepare()
        except Exception as exc:
            message = exc.message if isinstance(exc, AppError) else str(exc)
            logger.error("Run failed | run=%s error=%s", self.run_id, message, exc_info=True)
            await self._repo.fail_run(self.run_id, message)
            return
        if ctx is None:
            return

        documents = await self._repo.list_documents(ctx.run.project_id, ctx.run.selected_document_ids)
        logger.info(
            "Run start | run=%s project=%s documents=%d template=%s model=%s",
            self.run_id, ctx.run.project_id, len(documents), ctx.template.slug, ctx.settings.model,
        )

        # ---- Per-document loop -----------------------------------------
        processed = skipped = failed = 0
        for index, document in enumerate(documents):
            try:
                outcome = await self._process_document(ctx, document)
            except Exception as exc:
                failed += 1
                logger.error(
                    "Document failed | run=%s doc=%s error=%s",
                    self.run_id, document.id, exc, exc_info=True,
                )
                continue

            if outcome is DocumentOutcome.PROCESSED:
                processed += 1
            elif outcome is DocumentOutcome.SKIPPED:
                skipped += 1
            else:
                remaining = documents[index + 1:]
                await self._skip_for_cost(remaining)
                skipped += 1 + len(remaining)
                break

        # ---- Finalize ---------------------------------------------------
        await self._repo.complete_run(self.run_id, self._total_cost)
        logger.info(
            "Run completed | run=%s processed=%d skipped=%d failed=%d cost=%.6f elapsed_ms=%.0f",
            self.run_id, processed, skipped, failed, self._total_cost,
            (time.monotonic() - t0) * 1000,
        )

    # ------------------------------------------------------------------
    # Run setup
    # ------------------------------------------------------------------

    async def _prepare(self) -> Optional[RunContext]:
        run = await self._repo.get_run(self.run_id)
        if run is None:
            raise RunSetupError(f"Run not found: {self.run_id}")
        if run.status.is_terminal:
            logger.info("Run already %s | run=%s (nothing to do)", run.status.value, self.run_id)
            return None

        await self._repo.mark_run_processing(self.run_id)

        project = await self._repo.get_project(run.project_id)
        if project is None:
            raise RunSetupError(f"Project not found: {run.project_id}")
        if not run.template_snapshot:
            raise RunSetupError(f"Run {self.run_id} has no template snapshot")

        try:
            template = TemplateConfig.model_validate(run.template_snapshot)
            settings = resolve_settings(run.settings_snapshot)
        except ValidationError as exc:
            raise RunSetupError(f"Invalid run snapshot: {exc}", original_error=exc) from exc

        # Resolved once per run; CorruptCredential / NoCredentialsAvailable propagate
        credential = resolve_api_key(project.project_key_encrypted, project.workspace_key_encrypted)
        provider = self._providers.create(settings.provider, credential.api_key)

        return RunContext(run=run, project=project, settings=settings, template=template, provider=provider)

    # ------------------------------------------------------------------
    # One document
    # ------------------------------------------------------------------

    async def _process_document(self, ctx: RunContext, document: DocumentView) -> DocumentOutcome:
        doc_id = document.id

        # ---- Step 1: Fetch + parse -------------------------------------
        async def _parse() -> ParsedDocument:
            data = await self._storage.fetch_locator(document.file_url)
            return await parse_document(data, document.file_type)

        parsed = await self._execute_step(
            doc_id, StepName.PARSE_DOCUMENT, _parse,
            encode=ParsedDocument.to_dict, decode=ParsedDocument.from_dict,
        )

        # ---- Step 2: Classify ------------------------------------------
        async def _classify() -> ClassificationResult:
            result = classify(parsed.text, ctx.template.slug, ctx.template.detection_keywords)
            try:
                result.raise_if_ambiguous()
            except ClassificationAmbiguous as notice:
                logger.warning(
                    "Classification ambiguous | run=%s doc=%s score=%.2f detected=%s",
                    self.run_id, doc_id, notice.score, notice.detected_type,
                )
            return result

        classification = await self._execute_step(
            doc_id, StepName.CLASSIFY_DOCUMENT, _classify,
            encode=ClassificationResult.to_dict, decode=ClassificationResult.from_dict,
        )
        await self._repo.update_document_classification(
            self.run_id, doc_id, classification.score, classification.detected_type, classification.reason,
        )

        # ---- Skip gate --------------------------------------------------
        if classification.score < CONFIDENT_THRESHOLD:
            logger.info(
                "Document skipped | run=%s doc=%s score=%.2f detected=%s",
                self.run_id, doc_id, classification.score, classification.detected_type,
            )
            await self._repo.mark_document_skipped(
                self.run_id, doc_id,
                f"Wrong document type: {classification.reason}",
                SkipCategory.WRONG_DOC_TYPE.value,
            )
            return DocumentOutcome.SKIPPED

        # ---- Step 3: Chunk ---------------------------------------------
        async def _chunk() -> list[Chunk]:
            chunker = get_chunker(
                ctx.settings.chunking_method, ctx.settings.chunk_size, ctx.settings.overlap,
            )
            return chunker.chunk(parsed)

        chunks = await self._execute_step(
            doc_id, StepName.CHUNK_DOCUMENT, _chunk,
            encode=lambda cs: [c.to_dict() for c in cs],
            decode=lambda raw: [Chunk.from_dict(c) for c in raw],
        )

        # ---- Cost guardrail ---------------------------------------------
        guardrail = check_cost_guardrail(self._total_cost, ctx.settings.max_cost_per_run)
        if guardrail.exceeded:
            logger.warning(
                "Cost guardrail triggered | run=%s doc=%s cost=%.4f limit=%.2f",
                self.run_id, doc_id, guardrail.current_cost, guardrail.max_cost,
            )
            self._guardrail_message = guardrail.message
            await self._repo.mark_document_skipped(
                self.run_id, doc_id, guardrail.message, SkipCategory.COST_LIMIT.value,
            )
            return DocumentOutcome.COST_HALTED

        # ---- Step 4: LLM extraction --------------------------------------
        async def _extract() -> ExtractionResult:
            params = ExtractionParams(
                prompt=ctx.template.render_prompt("\n\n".join(c.text for c in chunks)),
                schema=ctx.template.field_schema(),
                model=ctx.settings.model,
                temperature=ctx.settings.temperature,
                max_tokens=ctx.settings.max_tokens,
            )
            result = await ctx.provider.extract(params)
            await self._repo.add_run_cost(self.run_id, result.cost)
            return result

        extraction = await self._execute_step(
            doc_id, StepName.LLM_EXTRACTION, _extract,
            encode=ExtractionResult.to_dict, decode=ExtractionResult.from_dict,
        )
        self._total_cost += extraction.cost

        # ---- Step 5: Validation -----------------------------------------
        async def _validate() -> list[FieldValidationResult]:
            return validate_extraction(
                ctx.template, extraction.data, extraction.confidence, ctx.project.requirements,
            )

        validations = await self._execute_step(
            doc_id, StepName.VALIDATION, _validate,
            encode=lambda vs: [v.to_dict() for v in vs],
            decode=lambda raw: [FieldValidationResult.from_dict(v) for v in raw],
        )

        # ---- Step 6: Persist --------------------------------------------
        async def _persist() -> dict[str, Any]:
            return await self._persist_results(ctx, doc_id, extraction, validations)

        await self._execute_step(doc_id, StepName.PERSIST_RESULTS, _persist)

        logger.info(
            "Document processed | run=%s doc=%s fields=%d cost=%.6f",
            self.run_id, doc_id, len(validations), extraction.cost,
        )
        return DocumentOutcome.PROCESSED

    async def _persist_results(
        self,
        ctx: RunContext,
        document_id: uuid.UUID,
        extraction: ExtractionResult,
        validations: list[FieldValidationResult],
    ) -> dict[str, Any]:
        record_id = await self._repo.get_or_create_record(self.run_id, document_id)
        now = datetime.now(timezone.utc)

        rows: list[FieldRow] = []
        for v in validations:
            evidence = extraction.evidence.get(v.field_name) or []
            auto_approved = (
                v.field_status is FieldStatus.PASS
                and v.confidence >= ctx.settings.auto_accept_threshold
            )
            rows.append(FieldRow(
                field_name=v.field_name,
                field_type=v.field_type.value,
                extracted_value=v.value,
                confidence=v.confidence,
                evidence_json=[e.to_dict() for e in evidence] or None,
                field_status=v.field_status.value,
                validation_errors_json=[f.to_dict() for f in v.validation_errors],
                is_approved=auto_approved,
                approved_at=now if auto_approved else None,
            ))
        await self._repo.replace_fields(record_id, rows)

        compliance = evaluate_record(
            [FieldStatusInfo(v.field_name, v.field_status, v.required) for v in validations],
            ctx.template.slug,
            extraction.data,
            ctx.project.requirements,
        )
        await self._repo.finalize_record(
            self.run_id, record_id, compliance.record_status.value, compliance.failed_rules,
        )

        return {
            "recordId": str(record_id),
            "recordStatus": compliance.record_status.value,
            "failedRules": compliance.failed_rules,
            "summary": compliance.summary,
        }

    async def _skip_for_cost(self, documents: list[DocumentView]) -> None:
        """Mark every not-yet-attempted document as skipped for cost."""
        for document in documents:
            try:
                await self._repo.mark_document_skipped(
                    self.run_id, document.id, self._guardrail_message, SkipCategory.COST_LIMIT.value,
                )
            except Exception as exc:
                logger.error(
                    "Cost skip failed | run=%s doc=%s error=%s",
                    self.run_id, document.id, exc, exc_info=True,
                )

    # ------------------------------------------------------------------
    # Step wrapper
    # ------------------------------------------------------------------

    async def _execute_step(
        self,
        document_id: uuid.UUID,
        step_name: StepName,
        fn: Callable[[], Awaitable[T]],
        *,
        encode: Optional[Callable[[T], Any]] = None,
        decode: Optional[Callable[[Any], T]] = None,
    ) -> T:
        completed = await self._repo.get_completed_step(self.run_id, document_id, step_name)
        if completed is not None:
            logger.debug(
                "Step reused | run=%s doc=%s step=%s", self.run_id, document_id, step_name.value,
            )
            output = completed["output"]
            return decode(output) if decode else output

        step_id = await self._repo.create_step(
            self.run_id, document_id, step_name, {"documentId": str(document_id)},
        )
        await self._repo.mark_step_running(step_id)
        logger.debug("Step running | run=%s doc=%s step=%s", self.run_id, document_id, step_name.value)

        try:
            result = await fn()
        except Exception as exc:
            await self._repo.mark_step_failed(step_id, str(exc))
            logger.debug("Step failed | run=%s doc=%s step=%s", self.run_id, document_id, step_name.value)
            raise

        await self._repo.mark_step_completed(step_id, encode(result) if encode else result)
        logger.debug("Step completed | run=%s doc=%s step=%s", self.run_id, document_id, step_name.value)
        return result

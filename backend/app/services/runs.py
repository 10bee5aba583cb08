"""
Run Launcher — create a PENDING run and hand it to the queue

    launch(project_id)
      1. Load project + template
      2. Freeze settings    resolve_settings(project.extraction_settings).to_snapshot()
      3. Freeze template    snapshot_template(name, slug, version, config)
                            (empty config → built-in config for the slug)
      4. INSERT run (status=PENDING, snapshots, selected_document_ids)
      5. Commit, then enqueue(run_id)  → Celery task id "run-<run_id>"

The run row is committed BEFORE the job is published, so a worker never
receives a run id it cannot load. Publishing the same run twice is a no-op
at the queue level (task id dedup).
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from app.core.exceptions import RunSetupError
from app.db.session import get_admin_db
from app.models.documents import Project
from app.models.enums import RunStatus
from app.models.runs import Run
from app.schemas.settings import resolve_settings
from app.schemas.templates import snapshot_template
from app.templates.registry import builtin_config

logger = logging.getLogger(__name__)


class RunLauncher:

    def __init__(
        self,
        enqueue: Callable[[uuid.UUID], object],
        session_scope=get_admin_db,
    ) -> None:
        self._enqueue = enqueue
        self._scope = session_scope

    async def launch(
        self,
        project_id: uuid.UUID,
        triggered_by: Optional[str] = None,
        document_ids: Optional[list[uuid.UUID]] = None,
    ) -> uuid.UUID:
        async with self._scope() as db:
            result = await db.execute(
                select(Project)
                .options(selectinload(Project.template))
                .where(Project.id == project_id)
            )
            project = result.scalars().first()
            if project is None:
                raise RunSetupError(f"Project not found: {project_id}")

            template = project.template
            run = Run(
                id=uuid.uuid4(),
                project_id=project.id,
                triggered_by=triggered_by,
                status=RunStatus.PENDING.value,
                settings_snapshot=resolve_settings(project.extraction_settings).to_snapshot(),
                template_snapshot=snapshot_template(
                    template.name, template.slug, template.version,
                    template.config or builtin_config(template.slug),
                ),
                selected_document_ids=[str(d) for d in document_ids] if document_ids else None,
            )
            db.add(run)

        self._enqueue(run.id)
        logger.info(
            "Run launched | run=%s project=%s template=%s@%s documents=%s",
            run.id, project_id, template.slug, template.version,
            len(document_ids) if document_ids else "all",
        )
        return run.id

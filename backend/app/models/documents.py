"""
SQLAlchemy ORM Models — Workspaces, Projects, Templates & Documents

Ownership:
    Workspace ─┬─ Project ─── Document
               │     │
               │     └── Template (shared, read-only to the pipeline)
               └── (BYO API key, workspace level)

The pipeline only READS workspaces, projects and templates. Documents are
created by the upload path; the orchestrator writes the classification
columns (doc_type_*) and the skip columns (skip_*).

Using SQLAlchemy mapped classes (2.x style) for full async support.
Schema: docextract (set via __table_args__)
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Declarative base — shared across all models
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


def _uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )


def _created_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


# ---------------------------------------------------------------------------
# Workspace model — docextract.workspaces
# ---------------------------------------------------------------------------

class Workspace(Base):
    """Top-level tenant. Holds the workspace-level BYO LLM key."""

    __tablename__ = "workspaces"
    __table_args__ = ({"schema": "docextract"},)

    id: Mapped[uuid.UUID] = _uuid_pk()
    name: Mapped[str] = mapped_column(Text, nullable=False)

    # AES-256-GCM "salt:iv:ciphertext:tag" (hex); see app/llm/credentials.py
    llm_api_key_encrypted: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = _created_at()

    projects: Mapped[list["Project"]] = relationship(back_populates="workspace")


# ---------------------------------------------------------------------------
# Template model — docextract.templates
# ---------------------------------------------------------------------------

class Template(Base):
    """
    Extraction template. `config` holds the TemplateConfig JSON:
    fields, validators, extractionPrompt, detectionKeywords.
    """

    __tablename__ = "templates"
    __table_args__ = (
        UniqueConstraint("slug", "version", name="uq_templates_slug_version"),
        {"schema": "docextract"},
    )

    id: Mapped[uuid.UUID] = _uuid_pk()
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, nullable=False)
    version: Mapped[str] = mapped_column(Text, nullable=False, default="1.0", server_default="1.0")
    config: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict, server_default="{}")

    created_at: Mapped[datetime] = _created_at()

    def __repr__(self) -> str:
        return f"<Template slug={self.slug!r} version={self.version!r}>"


# ---------------------------------------------------------------------------
# Project model — docextract.projects
# ---------------------------------------------------------------------------

class Project(Base):
    """
    A set of documents processed with one template.

    extraction_settings : ExtractionSettings JSON (camelCase keys accepted)
    requirements        : project thresholds consumed by validator rules and
                          template compliance checks, e.g.
                          {"min_gl_each_occurrence": 1000000,
                           "require_additional_insured": true}
    """

    __tablename__ = "projects"
    __table_args__ = (
        Index("idx_projects_workspace_id", "workspace_id"),
        {"schema": "docextract"},
    )

    id: Mapped[uuid.UUID] = _uuid_pk()
    workspace_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("docextract.workspaces.id", ondelete="CASCADE"),
        nullable=False,
    )
    template_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("docextract.templates.id", ondelete="RESTRICT"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)

    extraction_settings: Mapped[dict] = mapped_column(
        JSONB, nullable=False, default=dict, server_default="{}",
    )
    requirements: Mapped[dict] = mapped_column(
        JSONB, nullable=False, default=dict, server_default="{}",
    )

    # Project-level BYO key — highest priority in credential resolution
    llm_api_key_encrypted: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    workspace: Mapped[Workspace] = relationship(back_populates="projects")
    template: Mapped[Template] = relationship()


# ---------------------------------------------------------------------------
# Document model — docextract.documents
# ---------------------------------------------------------------------------

class Document(Base):
    """
    One uploaded file belonging to a project.

    Classification columns are (re)written by every run that classifies the
    document. skip_reason / skip_category / skipped_run_id are written when
    a run abandons the document:

        WRONG_DOC_TYPE — classification score below the skip gate
        COST_LIMIT     — run cost guardrail tripped before extraction
    """

    __tablename__ = "documents"
    __table_args__ = (
        Index("idx_documents_project_id", "project_id"),
        {"schema": "docextract"},
    )

    id: Mapped[uuid.UUID] = _uuid_pk()
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("docextract.projects.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Opaque storage locator: https://<bucket>.s3.<region>.amazonaws.com/<key>
    file_url: Mapped[str] = mapped_column(Text, nullable=False)
    file_type: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="MIME type recorded at upload",
    )
    filename: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default="UPLOADED", server_default="UPLOADED",
    )

    # Classification
    doc_type_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    doc_type_detected: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    doc_type_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Skip bookkeeping
    skip_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    skip_category: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    skipped_run_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    created_at: Mapped[datetime] = _created_at()

    def __repr__(self) -> str:
        return (
            f"<Document id={self.id} project={self.project_id} "
            f"type={self.file_type!r} score={self.doc_type_score}>"
        )

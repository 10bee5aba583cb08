"""
Error taxonomy for the extraction pipeline.

Where each error is handled:

    UnsupportedFormat / NotImplementedFormat   → document boundary (skip doc)
    ClassificationAmbiguous                    → logged, recorded on the step
    ExtractionBackendError                     → document boundary (skip doc)
    ValidationRuleError                        → per rule, downgraded to warning
    ChunkingConfigError                        → document boundary (skip doc)
    NoCredentialsAvailable / CorruptCredential → run boundary (run FAILED)
    RunSetupError / UnsupportedProviderError   → run boundary (run FAILED)
    StorageError                               → document boundary (skip doc)
"""

from __future__ import annotations

from typing import Optional


class AppError(Exception):
    """Base exception for application errors."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


# ---------------------------------------------------------------------------
# Parsing / classification
# ---------------------------------------------------------------------------

class UnsupportedFormat(AppError):
    """Raised when a document's MIME type has no parser."""


class NotImplementedFormat(AppError):
    """Raised for formats with a reserved but unbuilt path (image OCR)."""


class ClassificationAmbiguous(AppError):
    """Informational: score fell between the reject and accept thresholds."""

    def __init__(self, message: str, score: float, detected_type: str):
        super().__init__(message)
        self.score = score
        self.detected_type = detected_type


class ChunkingConfigError(AppError):
    """Raised when chunk size / overlap would not advance through the text."""


# ---------------------------------------------------------------------------
# Extraction backend
# ---------------------------------------------------------------------------

class ExtractionBackendError(AppError):
    """Wraps any transport or response failure from the LLM backend."""


class UnsupportedProviderError(AppError):
    """Raised when no extraction provider is registered under a name."""


class NoCredentialsAvailable(AppError):
    """No API key resolved at project, workspace, or platform level."""


class CorruptCredential(AppError):
    """A stored API key exists but cannot be decrypted."""


# ---------------------------------------------------------------------------
# Validation / run lifecycle / storage
# ---------------------------------------------------------------------------

class ValidationRuleError(AppError):
    """A single validator rule could not be evaluated."""


class RunSetupError(AppError):
    """Run, project, or template snapshot could not be loaded."""


class StorageError(AppError):
    """Object storage fetch or put failed."""

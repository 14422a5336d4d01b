"""
Exception hierarchy for the tutoring core.

Every error carries a human-readable message plus a details dict that ends
up in structured log records.
"""

from typing import Any, Dict, Optional

from coursetutor.config import THROTTLED_HINT


class CourseTutorError(Exception):
    """Base exception for all tutoring core errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


class UpstreamError(CourseTutorError):
    """An embedding or generation call failed for a non-throttling reason."""


class GenerationError(UpstreamError):
    """The chat-completion stream failed."""


class ThrottledError(UpstreamError):
    """
    Upstream kept rate-limiting us until the attempt ceiling was reached.

    The message is safe to show to students as-is.
    """

    def __init__(self, attempts: int, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        details["attempts"] = attempts
        self.attempts = attempts
        super().__init__(THROTTLED_HINT, details)


class NoTextExtractedError(CourseTutorError):
    """Document extraction produced no usable text."""

    suggestion = (
        "The document might be image-based or scanned. "
        "Try a text-based PDF or run OCR on it first."
    )

    def __init__(self, source: Optional[str] = None):
        label = source or "document"
        super().__init__(
            f"No text content found in {label}",
            {"source": source},
        )


class InvalidCorpusIdError(CourseTutorError, ValueError):
    """Corpus identifier is not usable as a storage key."""

    def __init__(self, corpus_id: str):
        super().__init__(
            f"Invalid corpus id: {corpus_id!r}",
            {"corpus_id": corpus_id},
        )


class EmbeddingDimensionError(CourseTutorError, ValueError):
    """A chunk's embedding length differs from the rest of its corpus."""

    def __init__(self, corpus_id: str, expected: int, actual: int):
        super().__init__(
            f"Embedding dimension mismatch for corpus {corpus_id}: "
            f"expected {expected}, got {actual}",
            {"corpus_id": corpus_id, "expected": expected, "actual": actual},
        )


class StoreCorruptedError(CourseTutorError):
    """A persisted corpus blob could not be parsed."""


class DocumentProcessingError(CourseTutorError):
    """Uploaded file could not be read (corrupt, encrypted, unsupported)."""

# coursetutor/observability/posthog_client.py

"""
PostHog product analytics for the tutoring service.

Contract:
- Does NOT replace logging
- Disabled (no-op) when POSTHOG_API_KEY is unset
- Never raises into request handling
- request_id is the distinct_id until the caller supplies a student id
"""

import os
import logging
from typing import Optional, Dict, Any

from posthog import Posthog


logger = logging.getLogger(__name__)


class PostHogClient:

    def __init__(self, client: Optional[Any] = None):

        self._enabled = False
        self._client: Optional[Posthog] = client

        if client is not None:
            self._enabled = True
            return

        api_key = os.getenv("POSTHOG_API_KEY")
        host = os.getenv("POSTHOG_HOST", "https://app.posthog.com")

        if not api_key:
            logger.info("PostHog disabled: POSTHOG_API_KEY not set")
            return

        try:

            self._client = Posthog(
                project_api_key=api_key,
                host=host,
                timeout=5,
                flush_interval=1,
            )

            self._enabled = True

            logger.info("PostHog client initialized", extra={"host": host})

        except Exception as e:

            logger.error(
                "PostHog initialization failed",
                extra={"error": str(e)}
            )

    @property
    def enabled(self) -> bool:
        return self._enabled

    # ==========================================================
    # INTERNAL SAFE TRACK
    # ==========================================================

    def _track(
        self,
        distinct_id: str,
        event: str,
        properties: Optional[Dict[str, Any]] = None,
    ):

        if not self._enabled or not self._client:
            return

        try:

            self._client.capture(
                distinct_id=distinct_id,
                event=event,
                properties=properties or {},
            )

        except Exception as e:

            logger.warning(
                "PostHog tracking failed",
                extra={"event": event, "error": str(e)}
            )

    # ==========================================================
    # STUDENT IDENTITY
    # ==========================================================

    def identify_student(self, student_id: str, properties: Dict[str, Any]):

        if not self._enabled or not self._client or not properties:
            return

        try:

            self._client.set(distinct_id=student_id, properties=properties)

        except Exception as e:

            logger.warning(
                "PostHog identify failed",
                extra={"student_id": student_id, "error": str(e)},
            )

    def shutdown(self):
        """Flush queued events; called when the app stops."""

        if not self._enabled or not self._client:
            return

        try:
            self._client.shutdown()
        except Exception as e:
            logger.warning("PostHog shutdown failed", extra={"error": str(e)})

    # ==========================================================
    # INGESTION
    # ==========================================================

    def track_ingestion(
        self,
        distinct_id: str,
        corpus_id: str,
        source: Optional[str],
        chunks: int,
        latency: float,
    ):

        self._track(
            distinct_id,
            "corpus_ingested",
            {
                "corpus_id": corpus_id,
                "source": source,
                "chunks": chunks,
                "latency_seconds": latency,
            },
        )

    # ==========================================================
    # RETRIEVAL
    # ==========================================================

    def track_retrieval(
        self,
        distinct_id: str,
        corpus_id: str,
        chunks_retrieved: int,
        min_similarity: float,
    ):

        self._track(
            distinct_id,
            "context_retrieved",
            {
                "corpus_id": corpus_id,
                "chunks_retrieved": chunks_retrieved,
                "min_similarity": min_similarity,
            },
        )

    # ==========================================================
    # CHAT
    # ==========================================================

    def track_chat(
        self,
        distinct_id: str,
        corpus_id: str,
        question: str,
    ):

        self._track(
            distinct_id,
            "tutor_chat_started",
            {
                "corpus_id": corpus_id,
                "question_length": len(question),
            },
        )

    # ==========================================================
    # STUDENT ACTIVITY
    # ==========================================================

    def track_activity(
        self,
        distinct_id: str,
        action: str,
        properties: Dict[str, Any],
    ):

        self._track(distinct_id, f"student_{action}", properties)

    # ==========================================================
    # ERRORS
    # ==========================================================

    def track_error(
        self,
        distinct_id: str,
        error_type: str,
        error_message: str,
        endpoint: str,
    ):

        self._track(
            distinct_id,
            "system_error",
            {
                "error_type": error_type,
                "error_message": error_message,
                "endpoint": endpoint,
            },
        )

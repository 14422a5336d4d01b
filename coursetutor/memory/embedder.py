# coursetutor/memory/embedder.py

"""
Async embedding client.

Pipeline contract:
chunker → embedder → store

Guarantees:
• One remote call per text
• Always returns a non-empty list of floats
• Throttling retried with full-jitter backoff
• Any other upstream failure surfaces as UpstreamError
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

from coursetutor.config import (
    EMBEDDING_MODEL,
    EMBEDDING_MAX_ATTEMPTS,
    BACKOFF_BASE_SECONDS,
    BACKOFF_MAX_SECONDS,
)
from coursetutor.errors import ThrottledError, UpstreamError
from coursetutor.llm.client import build_openai_client
from coursetutor.llm.retry import call_with_throttle_retry

logger = logging.getLogger(__name__)


class Embedder:
    """
    Text → vector via the OpenAI embeddings endpoint.

    The OpenAI client is injectable so tests and alternative deployments
    never need a live key.
    """

    # ============================================================
    # INITIALIZATION
    # ============================================================

    def __init__(
        self,
        client: Optional[Any] = None,
        model: str = EMBEDDING_MODEL,
        max_attempts: int = EMBEDDING_MAX_ATTEMPTS,
        base_delay: float = BACKOFF_BASE_SECONDS,
        max_delay: float = BACKOFF_MAX_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_throttle: Optional[Callable[[int, float], None]] = None,
    ):

        self._client = client if client is not None else build_openai_client()
        self._model = model
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._sleep = sleep
        self._on_throttle = on_throttle

        logger.info(
            "Embedding client initialized",
            extra={"model": model, "max_attempts": max_attempts},
        )

    # ============================================================
    # PUBLIC API
    # ============================================================

    async def embed(self, text: str) -> List[float]:

        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        async def _request():
            return await self._client.embeddings.create(
                model=self._model,
                input=text,
            )

        try:

            response = await call_with_throttle_retry(
                _request,
                operation="embedding",
                max_attempts=self._max_attempts,
                base_delay=self._base_delay,
                max_delay=self._max_delay,
                sleep=self._sleep,
                on_throttle=self._on_throttle,
                log_extra={"model": self._model, "text_length": len(text)},
            )

        except ThrottledError:
            raise

        except Exception as e:

            logger.error(
                "Embedding generation failed",
                extra={"model": self._model, "error": str(e)},
            )

            raise UpstreamError(
                f"Embedding generation failed: {e}",
                {"model": self._model},
            ) from e

        data = getattr(response, "data", None)

        if not data or not data[0].embedding:
            raise UpstreamError(
                "No embedding returned from embedding model",
                {"model": self._model},
            )

        return [float(x) for x in data[0].embedding]

    # ============================================================
    # HEALTH CHECK
    # ============================================================

    def health_check(self) -> dict:

        return {
            "model": self._model,
            "provider": "openai",
            "max_attempts": self._max_attempts,
            "status": "healthy",
        }

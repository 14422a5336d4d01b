# coursetutor/workflow/tutor_chat.py
"""
Answer orchestration for the tutoring chat.

Per request:  composing → streaming → completed | failed

The wire stream always ends with exactly one [DONE] frame, whether the
answer completed or failed.
"""

import logging
import time
import uuid
from typing import AsyncIterator, List, Optional

from coursetutor.config import (
    CHAT_TOP_K,
    LECTURE_MIN_SIMILARITY,
    LECTURE_QUERY,
    LECTURE_TOP_K,
    LLM_MAX_TOKENS,
    LLM_TEMPERATURE,
)
from coursetutor.errors import CourseTutorError, ThrottledError
from coursetutor.memory.retriever import retrieve
from coursetutor.models import ProblemContext
from coursetutor.prompts.prompt_builder import build_system_prompt
from coursetutor.streaming import StreamEvent, done_frame, encode_event

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An error occurred. Please try again."


class TutorChat:

    def __init__(self, embedder, store, generator, top_k: int = CHAT_TOP_K, metrics=None):
        self.embedder = embedder
        self.store = store
        self.generator = generator
        self.top_k = top_k
        self.metrics = metrics

    # ============================================================
    # COMPOSE
    # ============================================================

    async def gather_context(self, problem: ProblemContext, query: str) -> List[str]:
        """
        Retrieve grounding chunks for the problem's corpus.

        Retrieval trouble degrades to "no materials" rather than failing
        the chat turn.
        """
        try:
            chunks = await retrieve(
                question=query,
                embedder=self.embedder,
                store=self.store,
                corpus_id=problem.id,
                top_k=self.top_k,
            )
        except Exception as e:
            logger.error(
                "Context retrieval failed, continuing without materials",
                extra={"corpus_id": problem.id, "error": str(e), "error_type": type(e).__name__},
            )
            return []

        logger.info(
            "Context retrieved",
            extra={"corpus_id": problem.id, "chunks": len(chunks)},
        )
        return chunks

    # ============================================================
    # STREAM
    # ============================================================

    async def stream_events(
        self,
        problem: ProblemContext,
        query: str,
        context_chunks: Optional[List[str]] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Events for one answer. Ends with `finish` on success or a single
        `error` event on failure. The sentinel is added by stream_frames.
        """
        start = time.time()
        deltas = 0

        try:
            if not query or not query.strip():
                raise ValueError("No user message found")

            if context_chunks is None:
                context_chunks = await self.gather_context(problem, query)

            system_prompt = build_system_prompt(problem, context_chunks)

            message_id = str(uuid.uuid4())
            block_id = str(uuid.uuid4())

            yield StreamEvent.start(message_id)
            yield StreamEvent.text_start(block_id)

            async for delta in self.generator.stream_answer(
                prompt=query,
                system_prompt=system_prompt,
                max_tokens=LLM_MAX_TOKENS,
                temperature=LLM_TEMPERATURE,
            ):
                deltas += 1
                yield StreamEvent.text_delta(block_id, delta)

            yield StreamEvent.text_end(block_id)
            yield StreamEvent.finish()

            logger.info(
                "Tutor answer completed",
                extra={
                    "corpus_id": problem.id,
                    "context_chunks": len(context_chunks),
                    "deltas": deltas,
                    "latency_seconds": round(time.time() - start, 3),
                },
            )

        except Exception as e:

            logger.error(
                "Tutor answer failed",
                extra={
                    "corpus_id": problem.id,
                    "deltas": deltas,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )

            if isinstance(e, ThrottledError) and self.metrics is not None:
                self.metrics.record_throttled()

            yield StreamEvent.error(_user_message(e))

    async def stream_frames(
        self,
        problem: ProblemContext,
        query: str,
        context_chunks: Optional[List[str]] = None,
    ) -> AsyncIterator[str]:

        # stream_events converts every Exception into an error event, so the
        # sentinel is only skipped when the consumer itself went away.
        async for event in self.stream_events(problem, query, context_chunks):
            yield encode_event(event)

        yield done_frame()

    # ============================================================
    # LECTURE CONTEXT
    # ============================================================

    async def lecture_context(
        self,
        corpus_id: str,
        query: str = LECTURE_QUERY,
        top_k: int = LECTURE_TOP_K,
        min_similarity: float = LECTURE_MIN_SIMILARITY,
    ) -> List[str]:
        """Recall-oriented retrieval over a class's lecture notes."""
        return await retrieve(
            question=query,
            embedder=self.embedder,
            store=self.store,
            corpus_id=corpus_id,
            top_k=top_k,
            min_similarity=min_similarity,
        )


def _user_message(error: Exception) -> str:

    if isinstance(error, CourseTutorError):
        return error.message

    if isinstance(error, ValueError):
        return str(error)

    return GENERIC_ERROR_MESSAGE

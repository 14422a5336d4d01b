# coursetutor/llm/client.py
import asyncio
import logging
import os
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from openai import AsyncOpenAI

from coursetutor.config import (
    BACKOFF_BASE_SECONDS,
    BACKOFF_MAX_SECONDS,
    GENERATION_MAX_ATTEMPTS,
    LLM_MAX_TOKENS,
    LLM_MODEL,
    LLM_REQUEST_TIMEOUT_SECONDS,
    LLM_TEMPERATURE,
)
from coursetutor.errors import GenerationError, ThrottledError
from coursetutor.llm.retry import call_with_throttle_retry
from coursetutor.prompts.system_prompts import DEFAULT_SYSTEM_PROMPT

logger = logging.getLogger(__name__)


def build_openai_client() -> AsyncOpenAI:
    """Shared AsyncOpenAI client; the SDK's own retries are disabled."""

    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise ValueError(
            "OPENAI_API_KEY environment variable not set. "
            "Please set it before running the application."
        )

    return AsyncOpenAI(
        api_key=api_key,
        timeout=LLM_REQUEST_TIMEOUT_SECONDS,
        max_retries=0,
    )


class GenerationClient:
    """
    Streaming chat-completion client.

    Each call to stream_answer issues a fresh upstream request. Opening the
    request is retried on throttling only; anything else fails fast.
    """

    def __init__(
        self,
        client: Optional[Any] = None,
        model: str = LLM_MODEL,
        max_attempts: int = GENERATION_MAX_ATTEMPTS,
        base_delay: float = BACKOFF_BASE_SECONDS,
        max_delay: float = BACKOFF_MAX_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_throttle: Optional[Callable[[int, float], None]] = None,
    ):
        self.client = client if client is not None else build_openai_client()
        self.model = model
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self._on_throttle = on_throttle

    async def stream_answer(
        self,
        prompt: str,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_tokens: int = LLM_MAX_TOKENS,
        temperature: float = LLM_TEMPERATURE,
    ) -> AsyncIterator[str]:
        """
        Yield text deltas as they arrive.

        Raises:
            ThrottledError: rate limited on every attempt
            GenerationError: any other upstream failure
        """

        async def _open_stream():
            return await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
                stream=True,
            )

        try:
            stream = await call_with_throttle_retry(
                _open_stream,
                operation="generation",
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
                max_delay=self.max_delay,
                sleep=self._sleep,
                on_throttle=self._on_throttle,
                log_extra={"model": self.model, "prompt_length": len(prompt)},
            )

        except ThrottledError:
            raise

        except Exception as e:
            logger.error(
                "Generation request failed",
                extra={"model": self.model, "error": str(e), "error_type": type(e).__name__},
            )
            raise GenerationError(f"Failed to stream response: {e}") from e

        deltas = 0

        try:
            async for chunk in stream:

                # Usage and role-only events carry no text
                if not chunk.choices:
                    continue

                text = chunk.choices[0].delta.content

                if text:
                    deltas += 1
                    yield text

        except Exception as e:
            logger.error(
                "Generation stream interrupted",
                extra={"model": self.model, "deltas": deltas, "error": str(e)},
            )
            raise GenerationError(f"Failed to stream response: {e}") from e

        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                await close()

        logger.info(
            "Generation stream completed",
            extra={"model": self.model, "deltas": deltas},
        )

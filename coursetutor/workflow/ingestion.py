# coursetutor/workflow/ingestion.py
"""
Ingestion path: raw text → chunker → embedder (per chunk) → store.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional, Sequence

from coursetutor.errors import NoTextExtractedError, ThrottledError
from coursetutor.memory.chunker import chunk_text
from coursetutor.memory.loader import extract_text
from coursetutor.memory.store import Chunk, validate_corpus_id

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    corpus_id: str
    source: Optional[str]
    chunks_created: int
    chunks_stored: int
    latency_seconds: float


async def ingest_chunks(
    corpus_id: str,
    raw_chunks: Sequence[str],
    embedder,
    store,
    source: Optional[str] = None,
) -> int:
    """
    Embed and append chunks to a corpus. Returns the number stored.

    A chunk whose embedding fails is skipped; if none succeed, the last
    failure is raised. Throttling exhaustion aborts the whole batch.
    """

    validate_corpus_id(corpus_id)

    texts = [c for c in raw_chunks if c and c.strip()]

    if not texts:
        raise NoTextExtractedError(source)

    chunks = []
    last_error: Optional[Exception] = None

    for index, text in enumerate(texts):

        try:
            embedding = await embedder.embed(text)

        except ThrottledError:
            raise

        except Exception as e:
            last_error = e
            logger.warning(
                "Embedding failed for chunk, skipping",
                extra={
                    "corpus_id": corpus_id,
                    "chunk_index": index,
                    "error": str(e),
                },
            )
            continue

        chunks.append(Chunk(
            content=text,
            embedding=embedding,
            metadata={"source": source, "chunk_index": index},
        ))

    if not chunks:
        logger.error(
            "No chunks could be embedded",
            extra={"corpus_id": corpus_id, "chunk_count": len(texts)},
        )
        raise last_error

    await store.append(corpus_id, chunks)

    logger.info(
        "Chunks ingested",
        extra={
            "corpus_id": corpus_id,
            "chunk_count": len(texts),
            "chunks_stored": len(chunks),
            "source": source,
        },
    )

    return len(chunks)


async def ingest_text(
    corpus_id: str,
    text: str,
    embedder,
    store,
    source: Optional[str] = None,
) -> int:

    chunks = chunk_text(text)

    if not chunks:
        raise NoTextExtractedError(source)

    return await ingest_chunks(corpus_id, chunks, embedder, store, source=source)


async def ingest_document(
    corpus_id: str,
    filename: str,
    content: bytes,
    embedder,
    store,
) -> IngestionResult:

    start = time.time()

    validate_corpus_id(corpus_id)

    text = await asyncio.to_thread(extract_text, filename, content)
    chunks = chunk_text(text)

    if not chunks:
        raise NoTextExtractedError(filename)

    stored = await ingest_chunks(corpus_id, chunks, embedder, store, source=filename)

    return IngestionResult(
        corpus_id=corpus_id,
        source=filename,
        chunks_created=len(chunks),
        chunks_stored=stored,
        latency_seconds=round(time.time() - start, 3),
    )

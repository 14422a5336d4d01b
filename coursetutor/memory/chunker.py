# coursetutor/memory/chunker.py

import logging
from typing import List, Sequence

from langchain_text_splitters import RecursiveCharacterTextSplitter

from coursetutor.config import (
    CHUNK_SIZE,
    CHUNK_OVERLAP,
    MIN_CHUNK_LENGTH,
    MAX_DOCUMENT_CHARACTERS,
    SEPARATORS,
)

logger = logging.getLogger(__name__)


def chunk_text(
    text: str,
    size: int = CHUNK_SIZE,
    overlap: int = CHUNK_OVERLAP,
    min_length: int = MIN_CHUNK_LENGTH,
    separators: Sequence[str] = SEPARATORS,
) -> List[str]:
    """
    Recursive separator chunker.

    Pipeline contract:
    loader → chunker → embedder → store

    Guarantees:
    • every split chunk is at most `size` characters
    • consecutive chunks share up to `overlap` characters
    • no chunk shorter than `min_length`, unless filtering would leave
      nothing, in which case the whole text is the single chunk
    • a non-empty document never yields zero chunks
    """

    # ============================================================
    # SAFETY CHECKS
    # ============================================================

    if size <= 0:
        raise ValueError(f"Invalid chunk size: {size}")

    if overlap < 0:
        raise ValueError(f"Invalid chunk overlap: {overlap}")

    if overlap >= size:
        raise ValueError(
            f"Overlap must be smaller than chunk size "
            f"(overlap={overlap}, size={size})"
        )

    if not text or not text.strip():
        logger.warning("Chunking skipped: empty text")
        return []

    text = text.strip()

    if len(text) > MAX_DOCUMENT_CHARACTERS:
        logger.warning(
            "Text exceeds max character limit, truncating",
            extra={
                "original_length": len(text),
                "max_allowed": MAX_DOCUMENT_CHARACTERS,
            },
        )
        text = text[:MAX_DOCUMENT_CHARACTERS]

    if len(text) <= size:
        return [text]

    # ============================================================
    # RECURSIVE SPLIT + FILTER
    # ============================================================

    splitter = RecursiveCharacterTextSplitter(
        chunk_size=size,
        chunk_overlap=overlap,
        separators=list(separators),
        length_function=len,
    )

    raw_chunks = splitter.split_text(text)

    chunks = [c.strip() for c in raw_chunks]
    chunks = [c for c in chunks if len(c) >= min_length]

    if not chunks:
        logger.info(
            "All chunks below minimum length, returning text as one chunk",
            extra={"text_length": len(text), "min_length": min_length},
        )
        chunks = [text]

    logger.info(
        "Chunking completed",
        extra={
            "text_length": len(text),
            "chunk_size": size,
            "overlap": overlap,
            "chunks_created": len(chunks),
            "chunks_dropped": len(raw_chunks) - len(chunks),
        },
    )

    return chunks

# coursetutor/memory/retriever.py
import logging
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from coursetutor.errors import EmbeddingDimensionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoredChunk:
    content: str
    similarity: float
    index: int


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    dot(a, b) / (|a| * |b|), defined as 0.0 when either vector is all zeros.
    """
    a = np.asarray(a, dtype="float64")
    b = np.asarray(b, dtype="float64")

    if a.shape != b.shape:
        raise ValueError(f"Vector length mismatch: {a.shape[0]} vs {b.shape[0]}")

    denominator = np.linalg.norm(a) * np.linalg.norm(b)

    if denominator == 0:
        return 0.0

    return float(np.dot(a, b) / denominator)


def _similarities(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:

    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query

    # Zero-norm rows score 0 instead of NaN
    return np.divide(dots, norms, out=np.zeros_like(dots), where=norms != 0)


async def search_with_scores(
    store,
    corpus_id: str,
    query_embedding: Sequence[float],
    top_k: int,
    min_similarity: float = 0.0,
) -> List[ScoredChunk]:
    """
    Brute-force linear scan of one corpus.

    Ranked by descending cosine similarity; ties keep insertion order.
    """
    if top_k <= 0:
        return []

    corpus = await store.load(corpus_id)

    if corpus is None or not corpus.documents:
        return []

    query = np.asarray(query_embedding, dtype="float64")
    matrix = np.asarray([doc.embedding for doc in corpus.documents], dtype="float64")

    if matrix.shape[1] != query.shape[0]:
        raise EmbeddingDimensionError(corpus_id, matrix.shape[1], query.shape[0])

    scores = _similarities(query, matrix)

    order = np.argsort(-scores, kind="stable")

    results = []

    for idx in order:

        score = float(scores[idx])

        if score < min_similarity:
            # Sorted descending, nothing further can qualify
            break

        results.append(ScoredChunk(
            content=corpus.documents[idx].content,
            similarity=score,
            index=int(idx),
        ))

        if len(results) == top_k:
            break

    logger.info(
        "Similarity search completed",
        extra={
            "corpus_id": corpus_id,
            "corpus_chunks": len(corpus.documents),
            "top_k": top_k,
            "min_similarity": min_similarity,
            "results": len(results),
            "top_score": results[0].similarity if results else None,
        },
    )

    return results


async def search(
    store,
    corpus_id: str,
    query_embedding: Sequence[float],
    top_k: int,
    min_similarity: float = 0.0,
) -> List[str]:

    scored = await search_with_scores(
        store, corpus_id, query_embedding, top_k, min_similarity
    )

    return [chunk.content for chunk in scored]


async def retrieve(
    question: str,
    embedder,
    store,
    corpus_id: str,
    top_k: int = 5,
    min_similarity: float = 0.0,
) -> List[str]:
    """
    Embed the question and return the top-k chunk texts for the corpus.

    Skips the embedding call entirely when nothing has been ingested.
    """
    if not await store.exists(corpus_id):
        logger.info("No corpus store found", extra={"corpus_id": corpus_id})
        return []

    query_embedding = await embedder.embed(question)

    return await search(store, corpus_id, query_embedding, top_k, min_similarity)

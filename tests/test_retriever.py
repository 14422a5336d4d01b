# tests/test_retriever.py
import math

import pytest

from coursetutor.memory.retriever import (
    cosine_similarity,
    retrieve,
    search,
    search_with_scores,
)
from coursetutor.errors import EmbeddingDimensionError
from coursetutor.memory.store import Chunk
from coursetutor.workflow.ingestion import ingest_chunks


async def _seed(store, corpus_id, items):
    await store.append(corpus_id, [
        Chunk(content=text, embedding=embedding) for text, embedding in items
    ])


class TestCosineSimilarity:

    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 1.0], [-1.0, -1.0]) == pytest.approx(-1.0)

    def test_scale_invariant(self):
        assert cosine_similarity([1.0, 2.0], [10.0, 20.0]) == pytest.approx(1.0)

    def test_zero_vector_scores_zero(self):
        """A zero-norm vector scores 0 rather than NaN."""
        score = cosine_similarity([0.0, 0.0], [1.0, 1.0])

        assert score == 0.0
        assert not math.isnan(score)

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


class TestSearch:

    @pytest.mark.asyncio
    async def test_ranked_by_similarity(self, store):
        await _seed(store, "cs201", [
            ("far", [0.0, 1.0]),
            ("near", [1.0, 0.1]),
            ("middle", [1.0, 1.0]),
        ])

        results = await search(store, "cs201", [1.0, 0.0], top_k=3)

        assert results == ["near", "middle", "far"]

    @pytest.mark.asyncio
    async def test_top_k_limits_results(self, store):
        await _seed(store, "cs201", [(f"chunk {i}", [1.0, float(i)]) for i in range(10)])

        assert len(await search(store, "cs201", [1.0, 0.0], top_k=3)) == 3

    @pytest.mark.asyncio
    async def test_fewer_chunks_than_top_k(self, store):
        await _seed(store, "cs201", [("only", [1.0, 0.0])])

        assert await search(store, "cs201", [1.0, 0.0], top_k=5) == ["only"]

    @pytest.mark.asyncio
    async def test_ties_keep_insertion_order(self, store):
        await _seed(store, "cs201", [
            ("first", [1.0, 0.0]),
            ("second", [2.0, 0.0]),
            ("third", [3.0, 0.0]),
        ])

        assert await search(store, "cs201", [1.0, 0.0], top_k=3) == [
            "first", "second", "third"
        ]

    @pytest.mark.asyncio
    async def test_min_similarity_filters(self, store):
        await _seed(store, "cs201", [
            ("aligned", [1.0, 0.0]),
            ("orthogonal", [0.0, 1.0]),
            ("opposed", [-1.0, 0.0]),
        ])

        assert await search(store, "cs201", [1.0, 0.0], top_k=5, min_similarity=0.5) == ["aligned"]

    @pytest.mark.asyncio
    async def test_default_threshold_drops_negative_scores(self, store):
        await _seed(store, "cs201", [("aligned", [1.0, 0.0]), ("opposed", [-1.0, 0.0])])

        assert await search(store, "cs201", [1.0, 0.0], top_k=5) == ["aligned"]

    @pytest.mark.asyncio
    async def test_scores_are_reported(self, store):
        await _seed(store, "cs201", [("a", [1.0, 0.0]), ("b", [1.0, 1.0])])

        scored = await search_with_scores(store, "cs201", [1.0, 0.0], top_k=2)

        assert [s.index for s in scored] == [0, 1]
        assert scored[0].similarity == pytest.approx(1.0)
        assert scored[1].similarity == pytest.approx(1 / math.sqrt(2))

    @pytest.mark.asyncio
    async def test_nonexistent_corpus_returns_empty(self, store):
        assert await search(store, "nonexistent-corpus", [0.3, 0.4], top_k=5) == []

    @pytest.mark.asyncio
    async def test_zero_top_k_returns_empty(self, store):
        await _seed(store, "cs201", [("a", [1.0, 0.0])])

        assert await search(store, "cs201", [1.0, 0.0], top_k=0) == []

    @pytest.mark.asyncio
    async def test_query_dimension_mismatch(self, store):
        await _seed(store, "cs201", [("a", [1.0, 0.0])])

        with pytest.raises(EmbeddingDimensionError) as exc_info:
            await search(store, "cs201", [1.0, 0.0, 0.0], top_k=1)

        assert exc_info.value.details == {"corpus_id": "cs201", "expected": 2, "actual": 3}


class TestRetrieve:

    @pytest.mark.asyncio
    async def test_semantic_lookup_end_to_end(self, store, embedder):
        await ingest_chunks(
            "cs201",
            ["Binary search requires sorted input.", "Hash maps give O(1) average lookup."],
            embedder,
            store,
        )

        results = await retrieve("lookup time complexity", embedder, store, "cs201", top_k=1)

        assert results == ["Hash maps give O(1) average lookup."]

    @pytest.mark.asyncio
    async def test_missing_corpus_skips_embedding(self, store, embedder):
        """No embedding call is made when nothing has been ingested."""
        results = await retrieve("anything", embedder, store, "nonexistent-corpus")

        assert results == []
        assert embedder.calls == []

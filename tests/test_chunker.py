# tests/test_chunker.py
import pytest
from langchain_text_splitters import RecursiveCharacterTextSplitter

from coursetutor.memory.chunker import chunk_text


def _lecture_text(words=400):
    return " ".join(f"word{i}" for i in range(words))


class TestChunkBounds:
    """Every chunk respects the size bound."""

    def test_short_text_is_single_chunk(self):
        """Text within the size limit comes back unchanged."""
        assert chunk_text("Binary search halves the range.", size=512) == [
            "Binary search halves the range."
        ]

    def test_short_text_below_min_length_is_kept(self):
        """A whole document shorter than min_length is still returned."""
        assert chunk_text("tiny", size=100, min_length=20) == ["tiny"]

    def test_long_text_respects_size(self):
        chunks = chunk_text(_lecture_text(), size=100, overlap=20)

        assert len(chunks) > 1
        assert all(len(c) <= 100 for c in chunks)

    def test_unbroken_text_falls_back_to_characters(self):
        """No separators at all still yields bounded chunks."""
        chunks = chunk_text("x" * 1000, size=100, overlap=10, min_length=1)

        assert len(chunks) >= 10
        assert all(len(c) <= 100 for c in chunks)

    def test_paragraphs_preferred_over_words(self):
        """Paragraph boundaries are used when each paragraph fits."""
        first = "Arrays store elements contiguously in memory for fast access."
        second = "Linked lists trade random access for cheap insertion anywhere."
        chunks = chunk_text(f"{first}\n\n{second}", size=70, overlap=0)

        assert chunks == [first, second]


class TestOverlap:
    """Consecutive chunks share a tail."""

    def test_consecutive_chunks_share_words(self):
        chunks = chunk_text(_lecture_text(), size=100, overlap=30)

        for previous, current in zip(chunks, chunks[1:]):
            first_word = current.split()[0]
            assert first_word in previous.split()

    def test_zero_overlap_does_not_repeat_words(self):
        chunks = chunk_text(_lecture_text(200), size=100, overlap=0)

        words = [w for c in chunks for w in c.split()]
        assert len(words) == len(set(words))


class TestEdgeCases:

    def test_empty_text(self):
        assert chunk_text("") == []

    def test_whitespace_only(self):
        assert chunk_text("   \n\n  \t ") == []

    def test_overlap_must_be_smaller_than_size(self):
        with pytest.raises(ValueError):
            chunk_text("some text", size=50, overlap=50)

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            chunk_text("some text", size=0, overlap=0)

    def test_negative_overlap(self):
        with pytest.raises(ValueError):
            chunk_text("some text", size=50, overlap=-1)

    def test_tiny_fragments_are_dropped(self):
        """Chunks under min_length are filtered out of a long document."""
        text = "A" * 90 + "\n\n" + "ok"
        chunks = chunk_text(text, size=80, overlap=0, min_length=20)

        assert chunks
        assert all(len(c) >= 20 for c in chunks)

    def test_all_fragments_short_returns_whole_text(self):
        """If filtering drops every chunk, the whole text comes back as one."""
        text = " ".join(["tree"] * 30)

        assert chunk_text(text, size=20, overlap=5, min_length=50) == [text]


class TestSplitterParity:
    """Chunk boundaries come from LangChain's recursive splitter."""

    def test_matches_recursive_character_splitter(self):
        text = "\n\n".join(
            f"Week {i}: recursion breaks problem {i} into smaller subproblems. "
            f"Each call moves toward a base case, and the results combine on the way back up."
            for i in range(12)
        )
        splitter = RecursiveCharacterTextSplitter(
            chunk_size=200,
            chunk_overlap=40,
            separators=["\n\n", "\n", ". ", " ", ""],
        )

        expected = [c.strip() for c in splitter.split_text(text) if c.strip()]

        assert chunk_text(text, size=200, overlap=40, min_length=1) == expected

"""Unit tests for text chunking."""

import pytest

from groundwork.core.chunking import chunk_text, normalize_whitespace

SENTENCE = "The cat sat on the mat."


class TestChunkText:
    """Test passage splitting."""

    def test_empty_text_yields_nothing(self):
        assert list(chunk_text("")) == []
        assert list(chunk_text(" \n\t ")) == []

    def test_short_text_is_one_chunk(self):
        assert list(chunk_text("Hello world.")) == [("Hello world.", 0, 12)]

    def test_whitespace_is_normalized(self):
        assert normalize_whitespace("Hello\n\n  world.\tBye. ") == "Hello world. Bye."
        assert [c for c, _, _ in chunk_text("Hello\n\n  world.\tBye.")] == ["Hello world. Bye."]

    def test_breaks_at_sentence_ends_with_overlap(self):
        text = " ".join([SENTENCE] * 4)

        chunks = list(chunk_text(text, chunk_size=50, chunk_overlap=10, min_chunk_size=10))

        assert [(start, end) for _, start, end in chunks] == [(0, 48), (38, 72), (62, 95)]
        assert chunks[0][0] == f"{SENTENCE} {SENTENCE}"
        assert chunks[1][0] == f"the mat. {SENTENCE}"
        assert chunks[0][0].endswith("the mat.")
        for chunk, start, end in chunks:
            assert chunk == text[start:end].strip()

    def test_breaks_at_word_boundaries_without_punctuation(self):
        text = " ".join(["word"] * 30)

        chunks = list(chunk_text(text, chunk_size=50, chunk_overlap=10, min_chunk_size=10))

        assert len(chunks) > 1
        for chunk, _, _ in chunks:
            assert len(chunk) <= 50
            assert set(chunk.split(" ")) == {"word"}
        assert chunks[-1][2] == len(text)

    def test_hard_cut_without_boundaries(self):
        chunks = list(chunk_text("x" * 250, chunk_size=100, chunk_overlap=20, min_chunk_size=10))

        assert [(start, end) for _, start, end in chunks] == [(0, 100), (80, 180), (160, 250)]

    def test_short_tail_is_kept(self):
        chunks = list(chunk_text("x" * 205, chunk_size=100, chunk_overlap=0, min_chunk_size=50))

        assert [len(chunk) for chunk, _, _ in chunks] == [100, 100, 5]

    def test_overlap_longer_than_cut_still_advances(self):
        text = "Short one here. " + "z" * 100

        chunks = list(chunk_text(text, chunk_size=50, chunk_overlap=40, min_chunk_size=10))

        assert chunks[0] == ("Short one here.", 0, 16)
        assert chunks[1] == ("z" * 50, 16, 66)
        starts = [start for _, start, _ in chunks]
        assert starts == sorted(set(starts))
        assert chunks[-1][2] == len(text)

    def test_default_sizes(self):
        text = " ".join([SENTENCE] * 200)

        chunks = list(chunk_text(text))

        assert all(len(chunk) <= 1000 for chunk, _, _ in chunks)
        assert all(chunk.endswith(".") for chunk, _, _ in chunks)
        for (_, _, previous_end), (_, start, _) in zip(chunks, chunks[1:]):
            assert start < previous_end

    @pytest.mark.parametrize(
        "sizes",
        [
            {"chunk_size": 0},
            {"chunk_size": 100, "chunk_overlap": 100},
            {"chunk_size": 100, "chunk_overlap": -1},
            {"chunk_size": 100, "chunk_overlap": 10, "min_chunk_size": 101},
        ],
    )
    def test_invalid_sizes_raise(self, sizes):
        with pytest.raises(ValueError):
            list(chunk_text("Some text.", **sizes))

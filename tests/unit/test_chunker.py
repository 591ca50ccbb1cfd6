"""Unit tests for the TextChunker -- overlapping character windows with sentence snapping."""

from __future__ import annotations

import random
import string

import pytest

from docvault.models.options import ChunkingOptions
from docvault.services.ingestion.chunker import TextChunker, chunk_text

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _words_without_punctuation(length: int, seed: int = 7) -> str:
    """Space-separated lowercase words, exactly *length* characters, no sentence ends."""
    rng = random.Random(seed)
    parts: list[str] = []
    total = 0
    while total < length:
        word = "".join(rng.choice(string.ascii_lowercase) for _ in range(rng.randint(2, 9)))
        parts.append(word)
        total += len(word) + 1
    return " ".join(parts)[:length]


def _rebuild(text: str, spans: list[tuple[int, int]]) -> str:
    """Stitch spans back together, dropping the overlapped prefix of each."""
    rebuilt = ""
    for start, end in spans:
        assert start <= len(rebuilt), "spans must not leave gaps"
        rebuilt += text[len(rebuilt) : end]
    return rebuilt


# ---------------------------------------------------------------------------
# Basic behaviour
# ---------------------------------------------------------------------------


class TestBasicChunking:
    def test_empty_text_returns_no_chunks(self) -> None:
        assert TextChunker().chunk("") == []

    def test_whitespace_only_returns_no_chunks(self) -> None:
        assert TextChunker().chunk("   \n\t  ") == []

    def test_short_text_is_one_trimmed_chunk(self) -> None:
        assert TextChunker().chunk("  hello docvault world  ") == ["hello docvault world"]

    def test_fifty_characters_is_one_chunk(self) -> None:
        text = "Fifty characters of text make exactly one chunk..."
        assert len(text) == 50
        assert TextChunker().chunk(text) == [text]

    def test_chunk_text_helper_matches_class(self, sample_text: str) -> None:
        chunker = TextChunker(max_chunk_size=120, overlap=20)
        assert chunk_text(sample_text, max_chunk_size=120, overlap=20) == chunker.chunk(sample_text)

    def test_is_deterministic(self, sample_text: str) -> None:
        chunker = TextChunker(max_chunk_size=90, overlap=15)
        assert chunker.chunk(sample_text) == chunker.chunk(sample_text)


# ---------------------------------------------------------------------------
# Window layout
# ---------------------------------------------------------------------------


class TestWindows:
    def test_five_thousand_characters_make_three_chunks(self) -> None:
        text = _words_without_punctuation(5000)
        chunker = TextChunker()  # 2000 / 200

        spans = chunker.spans(text)
        chunks = chunker.chunk(text)

        assert spans == [(0, 2000), (1800, 3800), (3600, 5000)]
        assert len(chunks) == 3
        # Second chunk starts at least `overlap` characters before the first ends.
        assert spans[1][0] <= spans[0][1] - 200

    def test_overlap_is_shared_between_neighbours(self) -> None:
        text = "abcdefghij" * 30  # 300 chars, no spaces or punctuation
        chunks = TextChunker(max_chunk_size=100, overlap=25).chunk(text)

        for previous, current in zip(chunks, chunks[1:]):
            assert previous[-25:] == current[:25]

    def test_zero_overlap_tiles_the_text(self) -> None:
        text = "x" * 250
        spans = TextChunker(max_chunk_size=100, overlap=0).spans(text)
        assert spans == [(0, 100), (100, 200), (200, 250)]

    def test_per_call_options_override_instance_defaults(self) -> None:
        text = "y" * 500
        chunker = TextChunker(max_chunk_size=2000, overlap=200)

        chunks = chunker.chunk(text, ChunkingOptions(max_chunk_size=200, overlap=50))

        assert len(chunks) == 3
        assert all(len(c) <= 200 for c in chunks)


# ---------------------------------------------------------------------------
# Sentence snapping
# ---------------------------------------------------------------------------


class TestSentenceBoundaries:
    def test_window_end_snaps_to_sentence_in_last_hundred_characters(self) -> None:
        text = "x" * 1950 + ". " + "y" * 100
        chunks = TextChunker().chunk(text)

        assert chunks[0] == "x" * 1950 + "."
        assert chunks[-1].endswith("y" * 100)

    def test_boundary_at_start_of_tail_is_ignored(self) -> None:
        text = "x" * 1900 + ". " + "y" * 200
        spans = TextChunker().spans(text)
        assert spans[0] == (0, 2000)

    def test_boundary_further_back_is_not_used(self) -> None:
        text = "x" * 1000 + ". " + "y" * 1500
        spans = TextChunker().spans(text)
        assert spans[0] == (0, 2000)

    @pytest.mark.parametrize("mark", [".", "!", "?"])
    def test_all_sentence_marks_are_boundaries(self, mark: str) -> None:
        text = "a" * 150 + mark + " " + "b" * 100
        chunks = TextChunker(max_chunk_size=200, overlap=20).chunk(text)
        assert chunks[0] == "a" * 150 + mark

    def test_punctuation_without_whitespace_is_not_a_boundary(self) -> None:
        text = "a" * 150 + ".b" + "c" * 100
        spans = TextChunker(max_chunk_size=200, overlap=20).spans(text)
        assert spans[0] == (0, 200)

    def test_last_window_is_never_snapped(self) -> None:
        text = "First sentence. Second sentence. Tail without a stop"
        assert TextChunker(max_chunk_size=200, overlap=20).chunk(text) == [text]


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


class TestProperties:
    @pytest.mark.parametrize(
        ("max_size", "overlap"),
        [(10, 1), (10, 9), (50, 0), (120, 60), (200, 199), (2000, 200)],
    )
    def test_terminates_and_reconstructs_input(
        self, sample_text: str, max_size: int, overlap: int
    ) -> None:
        text = sample_text * 8
        chunker = TextChunker(max_chunk_size=max_size, overlap=overlap)

        spans = chunker.spans(text)

        starts = [s for s, _ in spans]
        assert starts == sorted(set(starts)), "starts must strictly increase"
        assert spans[0][0] == 0
        assert spans[-1][1] == len(text)
        assert _rebuild(text, spans) == text

    @pytest.mark.parametrize(("max_size", "overlap"), [(10, 3), (64, 16), (300, 100)])
    def test_no_chunk_exceeds_max_size(self, sample_text: str, max_size: int, overlap: int) -> None:
        chunks = TextChunker(max_chunk_size=max_size, overlap=overlap).chunk(sample_text * 4)
        assert chunks
        assert all(0 < len(c) <= max_size for c in chunks)

    def test_snapping_right_after_overlap_still_advances(self) -> None:
        # Every window snaps to a boundary close to its start; the next start
        # must still move forward.
        text = ("ab. " * 200).strip()
        spans = TextChunker(max_chunk_size=12, overlap=11).spans(text)
        starts = [s for s, _ in spans]
        assert starts == sorted(set(starts))
        assert spans[-1][1] == len(text)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    def test_overlap_equal_to_size_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="overlap"):
            TextChunker(max_chunk_size=100, overlap=100)

    def test_overlap_larger_than_size_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            TextChunker(max_chunk_size=100, overlap=150)

    def test_non_positive_size_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            TextChunker(max_chunk_size=0, overlap=0)

    def test_from_options(self) -> None:
        chunker = TextChunker.from_options(ChunkingOptions(max_chunk_size=300, overlap=30))
        assert chunker.options == ChunkingOptions(max_chunk_size=300, overlap=30)

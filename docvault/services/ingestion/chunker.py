"""Character-window text chunking with overlap and sentence snapping.

Splits extracted text into retrieval-sized pieces for the embedding
model.  Windows are measured in characters (default 2000 with 200 of
overlap) so the output is deterministic and independent of any
tokenizer.

The strategy has two goals:

1. **Sentence-aware ends** -- when a window would cut the text, its end
   is pulled back to just after the last ``.``, ``!`` or ``?`` that is
   followed by whitespace within the final 100 characters.  This is a
   best-effort heuristic; windows without such a boundary are cut hard.

2. **Overlapping windows** -- consecutive chunks share ``overlap``
   characters so a sentence straddling a boundary is captured whole in
   at least one chunk.

Forward progress is guaranteed: ``overlap`` must be strictly less than
``max_chunk_size``, and if the next start would not advance past the
current one the window simply continues from the current end.
"""

from __future__ import annotations

import re

import structlog

from docvault.models.options import ChunkingOptions

logger = structlog.get_logger(logger_name=__name__)

# How far back from a window's end a sentence boundary is searched for.
_BOUNDARY_LOOKBACK = 100

_SENTENCE_END = re.compile(r"[.!?]\s+")


class TextChunker:
    """Splits text into overlapping, sentence-snapped character windows.

    Parameters
    ----------
    max_chunk_size:
        Maximum characters per chunk (default 2000).
    overlap:
        Characters shared between consecutive chunks (default 200).
        Must be strictly less than ``max_chunk_size``.
    """

    def __init__(self, max_chunk_size: int = 2000, overlap: int = 200) -> None:
        # Validation lives on ChunkingOptions; raises ValueError.
        self._options = ChunkingOptions(max_chunk_size=max_chunk_size, overlap=overlap)

    @classmethod
    def from_options(cls, options: ChunkingOptions) -> TextChunker:
        return cls(max_chunk_size=options.max_chunk_size, overlap=options.overlap)

    @property
    def options(self) -> ChunkingOptions:
        return self._options

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, text: str, options: ChunkingOptions | None = None) -> list[str]:
        """Split *text* into trimmed, non-empty chunks in document order.

        Parameters
        ----------
        text:
            The full extracted text.
        options:
            Per-call override of the chunker's window size and overlap.

        Returns
        -------
        list[str]
            Empty input yields ``[]``; input shorter than one window yields
            exactly one chunk equal to the trimmed input.
        """
        chunks: list[str] = []
        for start, end in self.spans(text, options):
            piece = text[start:end].strip()
            if piece:
                chunks.append(piece)
        logger.debug("text_chunked", characters=len(text), chunks=len(chunks))
        return chunks

    def spans(
        self,
        text: str,
        options: ChunkingOptions | None = None,
    ) -> list[tuple[int, int]]:
        """Return the untrimmed ``(start, end)`` windows :meth:`chunk` uses."""
        opts = options or self._options
        max_size = opts.max_chunk_size
        overlap = opts.overlap
        length = len(text)

        spans: list[tuple[int, int]] = []
        start = 0
        while start < length:
            end = min(start + max_size, length)
            if end < length:
                end = self._snap_to_sentence(text, start, end)
            spans.append((start, end))
            if end >= length:
                break

            next_start = end - overlap
            start = next_start if next_start > start else end
        return spans

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _snap_to_sentence(text: str, start: int, end: int) -> int:
        """Pull *end* back to just after the last sentence break near it."""
        tail_start = max(start, end - _BOUNDARY_LOOKBACK)
        tail = text[tail_start:end]
        last = None
        for last in _SENTENCE_END.finditer(tail):  # noqa: B007
            pass
        if last is None or last.start() == 0:
            return end
        return tail_start + last.start() + 1


def chunk_text(text: str, max_chunk_size: int = 2000, overlap: int = 200) -> list[str]:
    """Split *text* with a one-off :class:`TextChunker`."""
    return TextChunker(max_chunk_size=max_chunk_size, overlap=overlap).chunk(text)

"""Plain-text extraction from uploaded bytes (PDF, Word, text)."""

from docvault.services.extraction.text_extractor import TextExtractor, extract_text

__all__ = ["TextExtractor", "extract_text"]

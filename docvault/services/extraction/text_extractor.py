"""Plain-text extraction from uploaded document bytes.

Converts raw bytes plus the uploader's declared MIME type into one plain
text string for the chunker.  Formats, in dispatch order:

    PDF       → text layer via PyMuPDF (fitz), pages joined by a blank line
    DOCX/DOC  → raw paragraph text via python-docx
    text/*, JSON → UTF-8 decode (BOM stripped, bad bytes replaced)
    anything else → strict UTF-8 decode, or UnsupportedFormatError

Layout fidelity is not a goal: tables, headers and images are dropped.
Extraction is pure and CPU bound; the pipeline runs it in a worker thread.
"""

from __future__ import annotations

import codecs
import io
from collections.abc import Callable

import docx
import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from docvault.utils.errors import ExtractionError, UnsupportedFormatError

logger = structlog.get_logger(logger_name=__name__)

_PROVIDER_NAME = "text_extractor"

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
MSWORD_MIME = "application/msword"

# Non text/* types that are known to be UTF-8 text.
_TEXT_LIKE_MIMES = frozenset(
    {
        "application/json",
        "application/xml",
        "application/x-yaml",
        "application/yaml",
        "application/javascript",
    }
)


def _split_mime(mime_type: str) -> tuple[str, str | None]:
    """Return ``(normalized_type, charset)`` for a Content-Type style string."""
    parts = [p.strip() for p in (mime_type or "").split(";")]
    base = parts[0].lower()
    charset: str | None = None
    for param in parts[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset" and value:
            charset = value.strip().strip('"').lower()
    return base, charset


class TextExtractor:
    """Dispatches on MIME type to a format-specific reader."""

    def __init__(self) -> None:
        self._readers: dict[str, Callable[[bytes], str]] = {
            PDF_MIME: self._extract_pdf,
            DOCX_MIME: self._extract_docx,
            MSWORD_MIME: self._extract_docx,
        }

    def supports(self, mime_type: str) -> bool:
        """Return ``True`` if *mime_type* has a dedicated reader or is text."""
        base, _ = _split_mime(mime_type)
        return base in self._readers or self._is_text(base)

    def extract(self, data: bytes, mime_type: str) -> str:
        """Return the plain text of *data*.

        Raises
        ------
        UnsupportedFormatError
            If the type is unknown and the bytes are not valid UTF-8 text.
        ExtractionError
            If a PDF or Word document is malformed.
        """
        base, charset = _split_mime(mime_type)

        reader = self._readers.get(base)
        if reader is not None:
            text = reader(data)
        elif self._is_text(base):
            text = self._decode_text(data, charset)
        else:
            text = self._decode_unknown(data, base)

        logger.debug("text_extracted", mime_type=base, bytes=len(data), characters=len(text))
        return text

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_pdf(data: bytes) -> str:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise ExtractionError(
                message=f"Failed to open PDF: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

        try:
            pages = [doc[page_num].get_text("text") for page_num in range(len(doc))]
        except Exception as exc:
            raise ExtractionError(
                message=f"Failed to extract text from PDF: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc
        finally:
            doc.close()

        return "\n\n".join(page.strip() for page in pages if page.strip())

    @staticmethod
    def _extract_docx(data: bytes) -> str:
        """python-docx reads the XML inside the DOCX zip archive."""
        try:
            document = docx.Document(io.BytesIO(data))
        except Exception as exc:
            raise ExtractionError(
                message=f"Failed to extract text from Word document: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc
        return "\n\n".join(p.text for p in document.paragraphs if p.text.strip())

    # ------------------------------------------------------------------
    # Text decoding
    # ------------------------------------------------------------------

    @staticmethod
    def _is_text(base: str) -> bool:
        return base.startswith("text/") or base in _TEXT_LIKE_MIMES

    @staticmethod
    def _decode_text(data: bytes, charset: str | None) -> str:
        encoding = "utf-8-sig"
        if charset and charset not in ("utf-8", "utf8"):
            try:
                encoding = codecs.lookup(charset).name
            except LookupError:
                logger.warning("unknown_charset_ignored", charset=charset)
        return data.decode(encoding, errors="replace")

    @staticmethod
    def _decode_unknown(data: bytes, base: str) -> str:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise UnsupportedFormatError(
                message=f"Unsupported file type: {base or 'unknown'}",
                provider_name=_PROVIDER_NAME,
            ) from exc
        if "\x00" in text:
            raise UnsupportedFormatError(
                message=f"Unsupported file type: {base or 'unknown'} (binary content)",
                provider_name=_PROVIDER_NAME,
            )
        return text


def extract_text(data: bytes, mime_type: str) -> str:
    """Module-level shortcut for :meth:`TextExtractor.extract`."""
    return TextExtractor().extract(data, mime_type)

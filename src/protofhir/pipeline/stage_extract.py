"""Extraction Stage - Normalize uploaded documents into plain text.

Supported inputs:
- Word-processor (.docx): read structurally with python-docx, formatting dropped
- Typesetting markup (.tex/.latex): commands and braces stripped
- Plain text / unknown: decoded verbatim as UTF-8
- PDF: NOT parsed. Yields a fixed illustrative placeholder naming the file;
  callers must not rely on it for real PDF content.
"""

import io
import logging
import re
from typing import Callable, Optional

import docx

from protofhir.exceptions import ExtractionError
from protofhir.models import Document, ExtractedText, MediaKind, TextProvenance

logger = logging.getLogger(__name__)

# Commands whose braced argument is markup, not reading text
LATEX_DROP_WITH_ARGUMENT = (
    "documentclass",
    "usepackage",
    "begin",
    "end",
    "label",
    "ref",
    "cite",
    "includegraphics",
    "bibliography",
    "bibliographystyle",
    "input",
    "include",
    "newcommand",
    "renewcommand",
    "pagestyle",
    "thispagestyle",
    "vspace",
    "hspace",
)

_LATEX_COMMENT_RE = re.compile(r"(?<!\\)%.*$", re.MULTILINE)
_LATEX_DROP_RE = re.compile(
    r"\\(?:%s)\*?(?:\[[^\]]*\])?\{[^}]*\}" % "|".join(LATEX_DROP_WITH_ARGUMENT)
)
_LATEX_LINEBREAK_RE = re.compile(r"\\\\")
_LATEX_ESCAPE_RE = re.compile(r"\\([%&$#_])")
_LATEX_COMMAND_RE = re.compile(r"\\[a-zA-Z]+\*?")
_BRACES_RE = re.compile(r"[{}]")
_WHITESPACE_RE = re.compile(r"\s+")

PDF_PLACEHOLDER_TEMPLATE = """PDF content extraction would happen here. File: {filename}

Clinical Protocol Example:
Patient presenting with acute chest pain
Diagnosis: Acute myocardial infarction
Treatment: Aspirin 300mg, Clopidogrel 600mg, Atorvastatin 80mg
Follow-up: Cardiology consultation within 24 hours"""


def decode_text(content: bytes) -> str:
    """Decode document bytes as UTF-8.

    Raises:
        ExtractionError: If the bytes are not valid UTF-8.
    """
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ExtractionError(f"Document is not valid UTF-8 text: {exc}", cause=exc) from exc


def strip_latex(source: str) -> str:
    """Reduce LaTeX markup to its reading text.

    Args:
        source: LaTeX source.

    Returns:
        Single-line text with commands, braces and extra whitespace removed.
    """
    text = _LATEX_COMMENT_RE.sub("", source)
    text = _LATEX_DROP_RE.sub(" ", text)
    text = _LATEX_LINEBREAK_RE.sub(" ", text)
    text = _LATEX_ESCAPE_RE.sub(r"\1", text)
    text = _LATEX_COMMAND_RE.sub("", text)
    text = _BRACES_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def extract_docx_text(content: bytes) -> str:
    """Extract raw text from a .docx document.

    Paragraphs come first in document order, followed by table cell text.

    Raises:
        ExtractionError: If the bytes are not a readable .docx package.
    """
    try:
        word_doc = docx.Document(io.BytesIO(content))
        lines = [paragraph.text for paragraph in word_doc.paragraphs]
        for table in word_doc.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells]
                lines.append("\t".join(cell for cell in cells if cell))
    except Exception as exc:
        raise ExtractionError(f"Could not read word-processor document: {exc}", cause=exc) from exc

    return "\n".join(lines).strip()


def pdf_placeholder(filename: Optional[str]) -> str:
    """Illustrative stand-in text for PDF uploads."""
    return PDF_PLACEHOLDER_TEMPLATE.format(filename=filename or "document.pdf")


class TextExtractor:
    """Converts a Document into ExtractedText.

    Deterministic: the same bytes and kind always produce the same text.
    """

    def __init__(self) -> None:
        self._handlers: dict[MediaKind, Callable[[Document], str]] = {
            MediaKind.WORD_PROCESSOR: self._extract_word,
            MediaKind.TYPESETTING: self._extract_typesetting,
            MediaKind.PDF: self._extract_pdf,
            MediaKind.PLAIN: self._extract_plain,
            MediaKind.UNKNOWN: self._extract_plain,
        }

    def extract(self, document: Document) -> ExtractedText:
        """Extract normalized text from a document.

        Args:
            document: Raw document with declared media kind.

        Returns:
            ExtractedText tagged as uploaded.

        Raises:
            ExtractionError: On any decode or structural parse failure.
        """
        handler = self._handlers[document.kind]
        text = handler(document)

        logger.info(
            "Extracted %d characters from %s document %s",
            len(text),
            document.kind.value,
            document.filename or "<unnamed>",
        )
        return ExtractedText(
            text=text,
            provenance=TextProvenance.UPLOADED,
            source_filename=document.filename,
        )

    def _extract_word(self, document: Document) -> str:
        return extract_docx_text(document.content)

    def _extract_typesetting(self, document: Document) -> str:
        return strip_latex(decode_text(document.content))

    def _extract_pdf(self, document: Document) -> str:
        logger.warning("PDF text extraction is not supported; using placeholder text")
        return pdf_placeholder(document.filename)

    def _extract_plain(self, document: Document) -> str:
        return decode_text(document.content)

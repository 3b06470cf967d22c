"""Extract linear text from invoice PDFs: pypdf first, pdfplumber layout reconstruction as fallback."""
from io import BytesIO
from loguru import logger
import pdfplumber
from pypdf import PdfReader

from .exceptions import TextExtractionError
from .invoice_types import ExtractedText, ExtractionStrategy

PAGE_SEPARATOR = "\n\n"

# Words whose tops differ by less than this (in PDF points) share a line
LINE_TOLERANCE = 3.0


def extract_text(buffer: bytes) -> ExtractedText:
    """
    Extract the text of a PDF held in memory.

    Tries pypdf's text extraction first. If it raises or returns only
    whitespace, falls back to rebuilding reading order from pdfplumber's
    positioned words.

    Raises:
        TextExtractionError: when both strategies fail or yield empty text
    """
    errors = {}

    try:
        text, pages = _extract_with_pypdf(buffer)
        if text.strip():
            logger.info("Text extracted", strategy="primary", pages=pages, chars=len(text))
            return ExtractedText(text=text, strategy=ExtractionStrategy.PRIMARY, page_count=pages)
        errors["primary"] = "empty text"
    except Exception as e:
        errors["primary"] = str(e) or type(e).__name__

    logger.warning(f"Primary PDF extraction unusable ({errors['primary']}), trying layout fallback")

    try:
        text, pages = _extract_with_pdfplumber(buffer)
        if text.strip():
            logger.info("Text extracted", strategy="fallback", pages=pages, chars=len(text))
            return ExtractedText(text=text, strategy=ExtractionStrategy.FALLBACK, page_count=pages)
        errors["fallback"] = "empty text"
    except Exception as e:
        errors["fallback"] = str(e) or type(e).__name__

    logger.error("Both PDF extraction strategies failed", **errors)
    raise TextExtractionError(details=errors)


def _extract_with_pypdf(buffer: bytes) -> tuple[str, int]:
    reader = PdfReader(BytesIO(buffer))
    pages = [page.extract_text() or "" for page in reader.pages]
    return PAGE_SEPARATOR.join(pages), len(pages)


def _extract_with_pdfplumber(buffer: bytes) -> tuple[str, int]:
    pages = []
    with pdfplumber.open(BytesIO(buffer)) as pdf:
        for page in pdf.pages:
            words = page.extract_words(x_tolerance=1.5, y_tolerance=LINE_TOLERANCE)
            pages.append("\n".join(words_to_lines(words)))
    return PAGE_SEPARATOR.join(pages), len(pages)


def words_to_lines(words: list[dict], tolerance: float = LINE_TOLERANCE) -> list[str]:
    """
    Rebuild reading order from positioned words.

    Words are sorted top-to-bottom, then left-to-right; words whose
    ``top`` lies within ``tolerance`` of the current line's first word
    are joined into that line.
    """
    ordered = sorted(words, key=lambda w: (round(float(w["top"]), 1), float(w["x0"])))

    lines: list[list[dict]] = []
    line_top = None
    for word in ordered:
        top = float(word["top"])
        if line_top is None or abs(top - line_top) > tolerance:
            lines.append([])
            line_top = top
        lines[-1].append(word)

    return [
        " ".join(w["text"] for w in sorted(line, key=lambda w: float(w["x0"])))
        for line in lines
    ]

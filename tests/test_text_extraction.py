import pytest

from invoice_intake.services import text_extraction
from invoice_intake.services.exceptions import TextExtractionError
from invoice_intake.services.invoice_types import ExtractionStrategy
from invoice_intake.services.text_extraction import extract_text, words_to_lines


def test_primary_strategy_reads_generated_pdf(sample_invoice_pdf):
    extracted = extract_text(sample_invoice_pdf)

    assert extracted.strategy == ExtractionStrategy.PRIMARY
    assert extracted.page_count == 1
    assert "MONTO NETO$150.000" in extracted.text
    assert "TOTAL$178.500" in extracted.text


def test_pages_are_joined_in_order(make_pdf):
    extracted = extract_text(make_pdf([["PAGINA UNO"], ["PAGINA DOS"]]))

    assert extracted.page_count == 2
    assert extracted.text.index("PAGINA UNO") < extracted.text.index("PAGINA DOS")


def test_fallback_rebuilds_reading_order(make_pdf, monkeypatch):
    def broken_primary(buffer):
        raise ValueError("primary parser exploded")

    monkeypatch.setattr(text_extraction, "_extract_with_pypdf", broken_primary)

    # Written bottom line first; reading order must follow the page layout
    pdf = make_pdf([[(50, 600, "TOTAL$178.500"), (50, 700, "MONTO NETO$150.000")]])
    extracted = extract_text(pdf)

    assert extracted.strategy == ExtractionStrategy.FALLBACK
    lines = extracted.text.splitlines()
    assert lines.index("MONTO NETO$150.000") < lines.index("TOTAL$178.500")


def test_empty_primary_text_triggers_fallback(sample_invoice_pdf, monkeypatch):
    monkeypatch.setattr(text_extraction, "_extract_with_pypdf", lambda buffer: ("   \n", 1))

    extracted = extract_text(sample_invoice_pdf)

    assert extracted.strategy == ExtractionStrategy.FALLBACK
    assert "TOTAL$178.500" in extracted.text


def test_both_strategies_failing_raises():
    with pytest.raises(TextExtractionError) as exc_info:
        extract_text(b"not a pdf at all")

    err = exc_info.value
    assert err.status_code == 500
    assert err.error == "No se pudo extraer texto del PDF"
    assert set(err.details) == {"primary", "fallback"}


def test_pdf_without_text_is_an_error_not_placeholder(make_pdf):
    with pytest.raises(TextExtractionError):
        extract_text(make_pdf([[]]))


def test_words_to_lines_groups_by_top_and_sorts_by_x():
    words = [
        {"text": "$178.500", "x0": 120.0, "top": 201.0},
        {"text": "TOTAL", "x0": 50.0, "top": 200.0},
        {"text": "NETO", "x0": 100.0, "top": 100.4},
        {"text": "MONTO", "x0": 50.0, "top": 100.0},
    ]
    assert words_to_lines(words) == ["MONTO NETO", "TOTAL $178.500"]


def test_words_to_lines_tolerance():
    words = [
        {"text": "A", "x0": 10.0, "top": 10.0},
        {"text": "B", "x0": 20.0, "top": 15.0},
    ]
    assert words_to_lines(words, tolerance=3.0) == ["A", "B"]
    assert words_to_lines(words, tolerance=6.0) == ["A B"]

from datetime import datetime

import pytest

from invoice_intake.services.normalizer import (
    BASELINE_AMOUNT_CEILING,
    EXTENDED_AMOUNT_CEILING,
    is_reasonable_amount,
    normalize_amount,
    normalize_date,
    parse_locale_number,
    today_iso,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("150.000", 150000.0),
        ("1.234.567", 1234567.0),
        ("1.234,56", 1234.56),
        ("1.234.56", 1234.56),
        ("$ 178.500", 178500.0),
        ("28500", 28500.0),
    ],
)
def test_normalize_amount_chilean_formats(raw, expected):
    assert normalize_amount(raw) == expected


@pytest.mark.parametrize("raw", ["-150.000", "abc", "", None, "12a34"])
def test_normalize_amount_negative_or_non_numeric_is_zero(raw):
    assert normalize_amount(raw) == 0


def test_normalize_amount_clamps_to_ceiling():
    assert normalize_amount("5.000.000.000") == BASELINE_AMOUNT_CEILING
    assert normalize_amount("5.000.000.000", ceiling=EXTENDED_AMOUNT_CEILING) == 5_000_000_000
    assert normalize_amount("50.000.000.000", ceiling=EXTENDED_AMOUNT_CEILING) == EXTENDED_AMOUNT_CEILING


def test_normalize_amount_accepts_numbers():
    assert normalize_amount(178500) == 178500
    assert normalize_amount(1234.5) == 1234.5
    assert normalize_amount(float("inf")) == 0


def test_parse_locale_number_keeps_sign():
    assert parse_locale_number("-1.000") == -1000
    assert parse_locale_number("CLP 1.000") == 1000
    assert parse_locale_number("  ") is None


def test_is_reasonable_amount():
    assert is_reasonable_amount("150000") is True
    assert is_reasonable_amount("500000000") is False
    assert is_reasonable_amount("") is False
    assert is_reasonable_amount("-5") is False
    assert is_reasonable_amount("100.000.000") is True


def test_is_reasonable_amount_custom_maximum():
    assert is_reasonable_amount("2.000", maximum=1000) is False
    assert is_reasonable_amount("999", maximum=1000) is True


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("15 de marzo del 2024", "2024-03-15"),
        ("1 de Enero de 2023", "2023-01-01"),
        ("7 de setiembre del 2022", "2022-09-07"),
        ("3 de SEPTIEMBRE de 2021", "2021-09-03"),
        ("2024-03-15", "2024-03-15"),
        ("15/03/2024", "2024-03-15"),
        ("05-11-2023", "2023-11-05"),
        ("Santiago, 20 de diciembre del 2024", "2024-12-20"),
    ],
)
def test_normalize_date_formats(raw, expected):
    assert normalize_date(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "sin fecha", "31 de febrero del 2024", "15 de brumario del 2024"])
def test_normalize_date_unrecognized_returns_none(raw):
    assert normalize_date(raw) is None


def test_today_iso_uses_given_clock():
    assert today_iso(datetime(2024, 5, 2, 23, 59)) == "2024-05-02"

"""
Chilean-locale amount and Spanish date normalization.

Amounts on Chilean invoices use "." as thousands separator and "," (or,
from some PDF producers, ".") before a two-digit cents part:

    "150.000"    -> 150000.0
    "1.234.567"  -> 1234567.0
    "1.234,56"   -> 1234.56
    "1.234.56"   -> 1234.56

Dates are printed as prose, e.g. "15 de marzo del 2024".
"""

import math
import re
import unicodedata
from datetime import date, datetime
from loguru import logger

BASELINE_AMOUNT_CEILING = 999_999_999.99
EXTENDED_AMOUNT_CEILING = 9_999_999_999.99
MAX_REASONABLE_AMOUNT = 100_000_000

MONTHS = {
    "enero": 1,
    "febrero": 2,
    "marzo": 3,
    "abril": 4,
    "mayo": 5,
    "junio": 6,
    "julio": 7,
    "agosto": 8,
    "septiembre": 9,
    "setiembre": 9,
    "octubre": 10,
    "noviembre": 11,
    "diciembre": 12,
}

_CURRENCY_NOISE = re.compile(r"\$|CLP|\s", re.IGNORECASE)
_DIGITS = re.compile(r"^\d+(?:\.\d+)?$")
_SPANISH_DATE = re.compile(r"(\d{1,2})\s+de\s+([a-z]+)\s+(?:del?\s+)?(\d{4})")
_ISO_DATE = re.compile(r"(\d{4})-(\d{1,2})-(\d{1,2})")
_NUMERIC_DATE = re.compile(r"(\d{1,2})[/-](\d{1,2})[/-](\d{4})")


def parse_locale_number(raw) -> float | None:
    """
    Parse a Chilean-formatted amount string.

    Returns None when the string is empty or not numeric. The sign is
    preserved so callers can reject negatives.
    """
    if raw is None:
        return None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return float(raw)

    cleaned = _CURRENCY_NOISE.sub("", str(raw))
    negative = cleaned.startswith("-")
    cleaned = cleaned.lstrip("-")
    if not cleaned:
        return None

    if "," in cleaned:
        head, _, tail = cleaned.rpartition(",")
        if tail.isdigit() and 1 <= len(tail) <= 2 and "," not in head:
            # Decimal comma; any periods before it group thousands
            cleaned = head.replace(".", "") + "." + tail
        else:
            cleaned = cleaned.replace(",", "").replace(".", "")
    elif "." in cleaned:
        groups = cleaned.split(".")
        if len(groups[-1]) == 2:
            cleaned = "".join(groups[:-1]) + "." + groups[-1]
        else:
            cleaned = "".join(groups)

    if not _DIGITS.match(cleaned):
        return None

    value = float(cleaned)
    return -value if negative else value


def is_reasonable_amount(raw, maximum: float = MAX_REASONABLE_AMOUNT) -> bool:
    """Whether an extracted amount candidate looks like a real invoice amount"""
    value = parse_locale_number(raw)
    if value is None or not math.isfinite(value):
        return False
    if value > maximum:
        logger.warning("Excessive amount candidate rejected", raw=str(raw), value=value)
        return False
    if value < 0:
        logger.warning("Negative amount candidate rejected", raw=str(raw))
        return False
    return True


def normalize_amount(raw, ceiling: float = BASELINE_AMOUNT_CEILING) -> float:
    """
    Convert an amount string to a number in [0, ceiling], rounded to cents.

    Non-numeric, infinite and negative inputs normalize to 0. Values above
    the ceiling are clamped to it.
    """
    value = parse_locale_number(raw)
    if value is None or not math.isfinite(value):
        if raw not in (None, ""):
            logger.warning("Non-numeric amount normalized to 0", raw=str(raw))
        return 0.0
    if value < 0:
        logger.warning("Negative amount normalized to 0", raw=str(raw))
        return 0.0
    if value > ceiling:
        logger.warning("Amount clamped to ceiling", raw=str(raw), ceiling=ceiling)
        return ceiling
    return round(value, 2)


def fold_accents(text: str) -> str:
    text = unicodedata.normalize("NFKD", text.lower())
    return "".join(c for c in text if not unicodedata.combining(c))


def _iso(year: int, month: int, day: int) -> str | None:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def normalize_date(raw: str | None) -> str | None:
    """
    Convert an invoice date to ISO ``YYYY-MM-DD``.

    Recognizes "15 de marzo del 2024" (also "de 2024"), ISO dates and
    DD/MM/YYYY or DD-MM-YYYY. Returns None for anything else, including
    calendar-invalid dates, so the caller decides what an unknown date means.
    """
    if not raw:
        return None

    text = fold_accents(str(raw))

    match = _SPANISH_DATE.search(text)
    if match:
        month = MONTHS.get(match.group(2))
        if month:
            result = _iso(int(match.group(3)), month, int(match.group(1)))
            if result:
                return result

    match = _ISO_DATE.search(text)
    if match:
        result = _iso(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        if result:
            return result

    match = _NUMERIC_DATE.search(text)
    if match:
        result = _iso(int(match.group(3)), int(match.group(2)), int(match.group(1)))
        if result:
            return result

    logger.warning("Unrecognized invoice date", raw=str(raw))
    return None


def today_iso(now: datetime | None = None) -> str:
    return (now or datetime.now()).date().isoformat()

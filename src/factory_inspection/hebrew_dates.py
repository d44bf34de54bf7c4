"""
Gregorian to Hebrew calendar conversion.

The calendrical arithmetic is delegated to pyluach; this module only parses
the input and renders the result. The transliterated rendering uses the
month spellings the inspection forms have always shown ("20 Tevet 5784").
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Union

from pyluach import dates, hebrewcal

from .errors import ConversionError

logger = logging.getLogger(__name__)

HEBREW_FORMATS = ("transliterated", "hebrew")

# pyluach numbers months from Nisan (1); Adar II is 13 in leap years
MONTH_NAMES = {
    1: "Nisan",
    2: "Iyyar",
    3: "Sivan",
    4: "Tamuz",
    5: "Av",
    6: "Elul",
    7: "Tishrei",
    8: "Cheshvan",
    9: "Kislev",
    10: "Tevet",
    11: "Sh'vat",
    12: "Adar",
    13: "Adar II",
}

DateInput = Union[date, datetime, str]


def _parse(value: DateInput) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            text = value.strip()
            if len(text) == 10:
                return date.fromisoformat(text)
            return datetime.fromisoformat(text).date()
        except ValueError as exc:
            raise ConversionError(f"Unparsable Gregorian date: {value!r}") from exc
    raise ConversionError(f"Unsupported date value: {value!r}")


def month_name(year: int, month: int) -> str:
    if month == 12 and hebrewcal.Year(year).leap:
        return "Adar I"
    return MONTH_NAMES[month]


def to_hebrew_date(value: DateInput, fmt: str = "transliterated") -> str:
    """
    Convert a Gregorian date to its Hebrew calendar rendering.

    Args:
        value: A date, datetime or ISO ``YYYY-MM-DD`` string
        fmt: ``transliterated`` or ``hebrew``

    Returns:
        The Hebrew date string, e.g. ``"20 Tevet 5784"`` for 2024-01-01

    Raises:
        ConversionError: If the value cannot be parsed or converted
    """
    if fmt not in HEBREW_FORMATS:
        raise ValueError(f"Unknown Hebrew date format: {fmt}")

    gregorian = _parse(value)
    try:
        hebrew = dates.GregorianDate(gregorian.year, gregorian.month, gregorian.day).to_heb()
    except ValueError as exc:
        raise ConversionError(f"Cannot convert {gregorian.isoformat()} to a Hebrew date") from exc

    if fmt == "hebrew":
        return hebrew.hebrew_date_string()
    return f"{hebrew.day} {month_name(hebrew.year, hebrew.month)} {hebrew.year}"


def safe_hebrew_date(value: DateInput, fmt: str = "transliterated") -> str:
    """Like to_hebrew_date, but logs conversion failures and returns ""."""
    try:
        return to_hebrew_date(value, fmt)
    except ConversionError as exc:
        logger.warning(f"Error converting to Hebrew date: {exc}")
        return ""

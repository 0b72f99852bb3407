"""
Date Parsing Module
Normalize scraped and user-supplied date text to YYYY-MM-DD.
"""

import re
from datetime import date
from typing import Optional

from dateutil import parser as date_parser


MONTHS = {
    "jan": 1, "january": 1,
    "feb": 2, "february": 2,
    "mar": 3, "march": 3,
    "apr": 4, "april": 4,
    "may": 5,
    "jun": 6, "june": 6,
    "jul": 7, "july": 7,
    "aug": 8, "august": 8,
    "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10,
    "nov": 11, "november": 11,
    "dec": 12, "december": 12,
}

CANONICAL_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
# "Fri 31 May 2024", "31st May 2024"
DAY_MONTH_YEAR = re.compile(r"\b(\d{1,2})(?:st|nd|rd|th)?\s+([A-Za-z]+)\.?,?\s+(\d{4})\b")
# "31/05/2024", "31-05-2024"
NUMERIC_DATE = re.compile(r"\b(\d{1,2})[/-](\d{1,2})[/-](\d{4}|\d{2})\b")
# "May 31, 2024"
MONTH_DAY_YEAR = re.compile(r"\b([A-Za-z]+)\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})\b")


def to_date(canonical: str) -> Optional[date]:
    """Parse a YYYY-MM-DD string, None if it isn't one."""
    try:
        return date.fromisoformat(canonical)
    except (TypeError, ValueError):
        return None


def _build(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def _expand_year(year: str) -> int:
    value = int(year)
    return value + 2000 if len(year) == 2 else value


def _parse_numeric(text: str) -> Optional[str]:
    """D/M/Y first, then M/D/Y when the UK reading is not a real date."""
    match = NUMERIC_DATE.search(text)
    if not match:
        return None
    first, second, year = int(match.group(1)), int(match.group(2)), _expand_year(match.group(3))
    return _build(year, second, first) or _build(year, first, second)


def _parse_day_month(text: str) -> Optional[str]:
    match = DAY_MONTH_YEAR.search(text)
    if match and match.group(2).lower() in MONTHS:
        return _build(int(match.group(3)), MONTHS[match.group(2).lower()], int(match.group(1)))
    return None


def _parse_month_day(text: str) -> Optional[str]:
    match = MONTH_DAY_YEAR.search(text)
    if match and match.group(1).lower() in MONTHS:
        return _build(int(match.group(3)), MONTHS[match.group(1).lower()], int(match.group(2)))
    return None


def _parse_unconstrained(text: str) -> Optional[str]:
    try:
        parsed = date_parser.parse(text, dayfirst=True)
    except (ValueError, OverflowError, TypeError):
        return None
    # three-digit years
    if parsed.year < 1000:
        return None
    return parsed.date().isoformat()


def parse_calendar_date(text: str) -> str:
    """
    Normalize a date as scraped from the calendar page.

    Tries "D Month YYYY", then "D/M/YYYY" or "D-M-YYYY", then
    "Month D, YYYY", then a free-form parse.

    Returns:
        YYYY-MM-DD, or an empty string when the text is not a date
    """
    text = (text or "").strip()
    if not text:
        return ""

    if CANONICAL_PATTERN.match(text):
        return text if to_date(text) else ""

    return (
        _parse_day_month(text)
        or _parse_numeric(text)
        or _parse_month_day(text)
        or _parse_unconstrained(text)
        or ""
    )


def normalize_query_date(text: str) -> Optional[str]:
    """
    Normalize a date typed by a user.

    Canonical input passes through. Slash and dash forms are read day-first,
    falling back to month-first only if the day-first reading is invalid.

    Returns:
        YYYY-MM-DD, or None if the text can't be read as a date
    """
    text = (text or "").strip()
    if not text:
        return None

    if CANONICAL_PATTERN.match(text):
        return text if to_date(text) else None

    if NUMERIC_DATE.fullmatch(text):
        return _parse_numeric(text)

    return _parse_day_month(text) or _parse_month_day(text) or _parse_unconstrained(text)

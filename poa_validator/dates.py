"""
Date-token recognition for OCR'd legal text.

Documents write dates every which way ("2025-01-15", "01/15/2025",
"January 15, 2025", "DECEMBER 31, 2024"). We recognise a fixed set of
shapes and parse them strictly. A token that looks like a date but does not
parse (e.g. "02/30/2025") is dropped, never guessed at.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Iterator, Optional

_MONTHS = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|"
    r"aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\.?"
)

DATE_TOKEN = re.compile(
    r"(?P<iso>\b\d{4}-\d{1,2}-\d{1,2}\b)"
    r"|(?P<numeric>\b\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}\b)"
    rf"|(?P<month_first>\b{_MONTHS}\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s+\d{{4}}\b)"
    rf"|(?P<day_first>\b\d{{1,2}}(?:st|nd|rd|th)?\s+(?:day\s+of\s+)?{_MONTHS},?\s+\d{{4}}\b)",
    re.IGNORECASE,
)

_NUMERIC_FORMATS = ("%m/%d/%Y", "%m/%d/%y")
_MONTH_FORMATS = ("%B %d %Y", "%b %d %Y")


def parse_date(token: str) -> Optional[date]:
    """Parse a single date token. Returns None if it is not a real calendar date."""
    token = token.strip()
    match = DATE_TOKEN.fullmatch(token) or DATE_TOKEN.search(token)
    if not match:
        return None

    if match.group("iso"):
        return _parse_iso(match.group("iso"))
    if match.group("numeric"):
        return _parse_numeric(match.group("numeric"))
    if match.group("month_first"):
        return _parse_month_words(match.group("month_first"), day_first=False)
    return _parse_month_words(match.group("day_first"), day_first=True)


def find_dates(text: str) -> Iterator[tuple[int, date]]:
    """Yield ``(offset, date)`` for every parseable date token in ``text``."""
    for match in DATE_TOKEN.finditer(text):
        parsed = parse_date(match.group(0))
        if parsed is not None:
            yield match.start(), parsed


def first_date(text: str) -> Optional[date]:
    """The first parseable date in ``text``, or None."""
    for _, parsed in find_dates(text):
        return parsed
    return None


# ─── Internal Helpers ────────────────────────────────────────────────


def _parse_iso(token: str) -> Optional[date]:
    try:
        year, month, day = (int(part) for part in token.split("-"))
        return date(year, month, day)
    except ValueError:
        return None


def _parse_numeric(token: str) -> Optional[date]:
    normalized = re.sub(r"[\-.]", "/", token)
    for fmt in _NUMERIC_FORMATS:
        try:
            return datetime.strptime(normalized, fmt).date()
        except ValueError:
            continue
    return None


def _parse_month_words(token: str, day_first: bool) -> Optional[date]:
    cleaned = re.sub(r"(?<=\d)(st|nd|rd|th)\b", "", token, flags=re.IGNORECASE)
    cleaned = re.sub(r"\bday\s+of\b", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"[,.]", " ", cleaned)
    parts = cleaned.split()
    if len(parts) != 3:
        return None
    if day_first:
        parts = [parts[1], parts[0], parts[2]]
    month = parts[0].capitalize()
    if month.lower().startswith("sept"):
        month = "Sep"
    candidate = f"{month} {parts[1]} {parts[2]}"
    for fmt in _MONTH_FORMATS:
        try:
            return datetime.strptime(candidate, fmt).date()
        except ValueError:
            continue
    return None

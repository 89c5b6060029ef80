"""
Turkish Text Helpers.

Provides:
- Turkish-aware lowercasing (dotted/dotless I handled explicitly)
- Procedure code normalization
- Billing date normalization and period bucketing
"""

import re
from datetime import date
from typing import Optional

_UPPER_TO_LOWER = str.maketrans(
    {"İ": "i", "I": "ı", "Ğ": "ğ", "Ü": "ü", "Ş": "ş", "Ö": "ö", "Ç": "ç"}
)

_CODE_SEPARATORS = re.compile(r"[.\-\s]")
_DOTTED_DATE = re.compile(r"^(\d{1,2})[./](\d{1,2})[./](\d{4})")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})")


def turkish_lower(text: str) -> str:
    """Lowercase Turkish text without turning "I" into "i" or "İ" into "i̇"."""
    return text.translate(_UPPER_TO_LOWER).lower()


def normalize_code(code: str) -> str:
    """
    Normalize a procedure code for lookups.

    Separators are stripped and a letter prefix is kept upper-cased:
    ``"700.600"`` -> ``"700600"``, ``"r100-040"`` -> ``"R100040"``.
    Idempotent.
    """
    return _CODE_SEPARATORS.sub("", code or "").upper()


def normalize_date(raw: str) -> str:
    """
    Normalize ``dd.mm.yyyy`` / ``dd/mm/yyyy`` / ISO dates to ``yyyy-mm-dd``.

    Anything else is returned stripped but otherwise unchanged so a bad
    date never raises; such rows simply group with nothing else.
    """
    text = (raw or "").strip()
    match = _DOTTED_DATE.match(text)
    if match:
        day, month, year = match.groups()
        return f"{year}-{int(month):02d}-{int(day):02d}"
    match = _ISO_DATE.match(text)
    if match:
        year, month, day = match.groups()
        return f"{year}-{int(month):02d}-{int(day):02d}"
    return text


def parse_date(raw: str) -> Optional[date]:
    """Parse a billing date, returning None when it is not a real date."""
    normalized = normalize_date(raw)
    try:
        return date.fromisoformat(normalized)
    except ValueError:
        return None


def period_bucket(raw_date: str, period: str) -> str:
    """
    Bucket key of a date for count-style frequency limits.

    ``period`` is one of day, week, month, year; anything else (the
    all-time period) puts every row in one bucket.
    """
    normalized = normalize_date(raw_date)
    if period == "day":
        return normalized
    if period == "week":
        parsed = parse_date(raw_date)
        if parsed is None:
            return normalized
        iso_year, iso_week, _ = parsed.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if period == "month":
        return normalized[:7]
    if period == "year":
        return normalized[:4]
    return "all"


def title_case_tr(text: str) -> str:
    """Capitalize each word for display ("kadın doğum" -> "Kadın Doğum")."""
    words = []
    for word in text.split(" "):
        if not word:
            continue
        head = word[0]
        head = "İ" if head == "i" else "I" if head == "ı" else head.upper()
        words.append(head + word[1:])
    return " ".join(words)

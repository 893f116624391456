from __future__ import annotations
import re
from datetime import date
from typing import Dict, Iterable, List, Optional

# Separator for row identity keys; does not occur in ordinary text.
KEY_SEPARATOR = "\x1f"

_YMD = re.compile(r"(\d{4})[-/](\d{1,2})[-/](\d{1,2})", re.ASCII)
_MDY = re.compile(r"(\d{1,2})[-/](\d{1,2})[-/](\d{2,4})", re.ASCII)

MIN_YEAR = 1900
MAX_YEAR = 2100


def clean_cell_value(value: Optional[str]) -> str:
    if value is None:
        return ""
    return str(value).replace("\u00a0", " ").strip()


def parse_date_like(value: str) -> Optional[date]:
    """Parse ``YYYY-M-D`` or ``M-D-YY(YY)`` (``/`` also accepted) into a real calendar date.

    Two-digit years pivot at 50: ``49`` is 2049, ``50`` is 1950.
    Returns None for anything else, impossible dates, or years outside 1900..2100.
    """
    m = _YMD.fullmatch(value)
    if m:
        year, month, day = (int(g) for g in m.groups())
    else:
        m = _MDY.fullmatch(value)
        if not m:
            return None
        month, day, year = (int(g) for g in m.groups())
        if len(m.group(3)) == 2:
            year += 2000 if year < 50 else 1900
    if not MIN_YEAR <= year <= MAX_YEAR:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def is_date_like(value: str) -> bool:
    return parse_date_like(value) is not None


def normalize_date_safe(value: str) -> str:
    parsed = parse_date_like(value)
    return parsed.isoformat() if parsed else value


def row_key(row: Dict[str, str], headers: Iterable[str]) -> str:
    return KEY_SEPARATOR.join(clean_cell_value(row.get(h, "")) for h in headers)


def clean_rows(headers: List[str], rows: List[Dict[str, str]], date_columns: Iterable[str] = ()) -> List[Dict[str, str]]:
    """Trim every cell; rewrite cells of date columns to YYYY-MM-DD."""
    date_columns = set(date_columns)
    cleaned: List[Dict[str, str]] = []
    for row in rows:
        out: Dict[str, str] = {}
        for h in headers:
            value = clean_cell_value(row.get(h, ""))
            out[h] = normalize_date_safe(value) if h in date_columns else value
        cleaned.append(out)
    return cleaned

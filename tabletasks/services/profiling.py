"""
Column profiling for tabular inputs.

Every cell is treated as a string. Types are inferred per cell, then a dominant
type is chosen per column; statistics follow the dominant type.
"""
from __future__ import annotations
import logging
import re
from typing import Dict, List, Optional, Tuple

import pandas as pd

from tabletasks.io.schemas import (
    ColumnProfile,
    CsvProfilerOptions,
    ProfileReport,
    ReportSummary,
    TypeBreakdown,
    utcnow,
)
from tabletasks.services.cleaning import clean_cell_value, clean_rows, is_date_like, normalize_date_safe
from tabletasks.services.dedupe import count_duplicate_rows, dedupe_rows

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"

_NUMBER = re.compile(r"-?\d+(\.\d+)?", re.ASCII)
_BOOLEAN = re.compile(r"true|false|yes|no|0|1", re.IGNORECASE)

# Tie-break order for the dominant type: string wins every tie, then number, then date.
DOMINANCE_ORDER = ("string", "number", "date", "boolean")

HIGH_MISSING_PERCENT = 30
HIGH_CARDINALITY_RATIO = 0.95
HIGH_CARDINALITY_MIN_VALUES = 100
DATE_COLUMN_RATIO = 0.8
SAMPLE_SIZE = 5


def infer_primitive_type(raw_value: str) -> str:
    value = raw_value.strip()
    if value == "":
        return "string"
    if _NUMBER.fullmatch(value):
        return "number"
    if _BOOLEAN.fullmatch(value):
        return "boolean"
    if is_date_like(value):
        return "date"
    return "string"


def choose_dominant_type(breakdown: TypeBreakdown) -> str:
    counts = breakdown.model_dump()
    best = "string"
    for candidate in DOMINANCE_ORDER:
        if counts[candidate] > counts[best]:
            best = candidate
    return best


def _min_max(values: pd.Series, inferred_type: str) -> Tuple[Optional[float | str], Optional[float | str]]:
    if values.empty:
        return None, None
    if inferred_type == "number":
        numbers = pd.to_numeric(values, errors="coerce")
        numbers = numbers[numbers.abs() != float("inf")].dropna()
        if numbers.empty:
            return None, None
        return float(numbers.min()), float(numbers.max())
    if inferred_type == "date":
        normalized = sorted(normalize_date_safe(v) for v in values)
        return normalized[0], normalized[-1]
    ordered = sorted(values, key=lambda v: (v.casefold(), v))
    return ordered[0], ordered[-1]


def profile_column(name: str, raw_values: List[str], total_rows: int) -> ColumnProfile:
    cleaned = pd.Series([clean_cell_value(v) for v in raw_values], dtype=object)
    non_missing = cleaned[cleaned != ""]
    missing_count = len(cleaned) - len(non_missing)

    tallies = non_missing.map(infer_primitive_type).value_counts()
    breakdown = TypeBreakdown(**{t: int(tallies.get(t, 0)) for t in DOMINANCE_ORDER})
    inferred_type = choose_dominant_type(breakdown)

    unique_values = list(pd.unique(non_missing)) if len(non_missing) else []
    col_min, col_max = _min_max(non_missing, inferred_type)
    missing_percent = 0.0 if total_rows == 0 else round(missing_count / total_rows * 100, 2)

    warnings: List[str] = []
    if missing_percent >= HIGH_MISSING_PERCENT:
        warnings.append("High missing value rate (>= 30%).")
    if breakdown.string > 0 and (breakdown.number > 0 or breakdown.date > 0 or breakdown.boolean > 0):
        warnings.append("Mixed data types detected.")
    if (
        len(non_missing) > HIGH_CARDINALITY_MIN_VALUES
        and len(unique_values) / len(non_missing) > HIGH_CARDINALITY_RATIO
    ):
        warnings.append("Very high cardinality column.")

    return ColumnProfile(
        name=name,
        inferred_type=inferred_type,
        type_breakdown=breakdown,
        missing_count=missing_count,
        missing_percent=missing_percent,
        unique_count=len(unique_values),
        duplicate_value_count=max(len(non_missing) - len(unique_values), 0),
        min=col_min,
        max=col_max,
        sample_values=[str(v) for v in unique_values[:SAMPLE_SIZE]],
        warnings=warnings,
    )


def is_date_column(column: ColumnProfile, total_rows: int) -> bool:
    non_missing = total_rows - column.missing_count
    if non_missing <= 0:
        return False
    return column.inferred_type == "date" and column.type_breakdown.date / non_missing >= DATE_COLUMN_RATIO


def profile(
    headers: List[str],
    rows: List[Dict[str, str]],
    options: Optional[CsvProfilerOptions] = None,
) -> Tuple[ProfileReport, List[Dict[str, str]]]:
    """Profile a parsed table and produce its cleaned rows.

    Returns ``(report, cleaned_rows)``. Cleaning trims every cell and rewrites
    date columns to ``YYYY-MM-DD``; with ``removeDuplicateRows`` rows whose
    cleaned identity key was already seen are dropped (first occurrence kept).
    """
    options = options or CsvProfilerOptions()
    total_rows = len(rows)
    duplicate_row_count = count_duplicate_rows(headers, rows)

    columns = [profile_column(h, [row.get(h, "") for row in rows], total_rows) for h in headers]
    date_columns = {c.name for c in columns if is_date_column(c, total_rows)}

    cleaned_rows = clean_rows(headers, rows, date_columns)
    if options.removeDuplicateRows:
        cleaned_rows = dedupe_rows(headers, cleaned_rows)

    warnings: List[str] = []
    if duplicate_row_count > 0:
        warnings.append(f"{duplicate_row_count} duplicate row(s) detected.")
    if total_rows == 0:
        warnings.append("Input has no data rows.")

    report = ProfileReport(
        schema_version=SCHEMA_VERSION,
        generated_at=utcnow().isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        summary=ReportSummary(
            row_count=total_rows,
            cleaned_row_count=len(cleaned_rows),
            column_count=len(headers),
            duplicate_row_count=duplicate_row_count,
            duplicate_row_percent=0.0 if total_rows == 0 else round(duplicate_row_count / total_rows * 100, 2),
            remove_duplicate_rows_applied=options.removeDuplicateRows,
        ),
        columns=columns,
        warnings=warnings,
    )
    logger.info(
        f"profiled {total_rows} rows x {len(headers)} columns "
        f"({duplicate_row_count} duplicates, {len(date_columns)} date columns)"
    )
    return report, cleaned_rows

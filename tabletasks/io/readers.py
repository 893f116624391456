from __future__ import annotations
import csv
import io
import logging
import math
import re
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime
from itertools import islice
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from tabletasks.core.errors import InputFormatInvalid

logger = logging.getLogger(__name__)

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLSX_EXTENSIONS = {".xlsx", ".xlsm"}

CSV_DELIMITERS = ",\t|;"
SNIFF_LINES = 20

_WHITESPACE_RUN = re.compile(r"\s+")
_NON_WORD = re.compile(r"[^a-zA-Z0-9_]")


@dataclass
class ParsedTable:
    headers: List[str]
    rows: List[Dict[str, str]] = field(default_factory=list)


def normalize_header(raw_header: str, index: int) -> str:
    """Trim, underscore whitespace runs, drop anything outside [A-Za-z0-9_].

    Falls back to ``column_<index + 1>``. Duplicate results are not renamed.
    """
    cleaned = _NON_WORD.sub("", _WHITESPACE_RUN.sub("_", raw_header.strip()))
    return cleaned or f"column_{index + 1}"


def is_spreadsheet(filename: str, content_type: str | None) -> bool:
    return Path(filename).suffix.lower() in XLSX_EXTENSIONS or content_type == XLSX_CONTENT_TYPE


def sniff_delimiter(text: str) -> str:
    """Guess the field separator from the first lines, defaulting to a comma."""
    head = islice(io.StringIO(text), SNIFF_LINES)
    sample = "\n".join(line.rstrip("\r\n") for line in head if line.strip())
    try:
        return csv.Sniffer().sniff(sample, delimiters=CSV_DELIMITERS).delimiter
    except csv.Error:
        return ","


def excel_cell_to_string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value)


class FileReader:
    @staticmethod
    def read_table(data: bytes, filename: str, content_type: str | None = None) -> ParsedTable:
        if is_spreadsheet(filename, content_type):
            return FileReader.read_xlsx(data)
        return FileReader.read_csv(data)

    @staticmethod
    def read_csv(data: bytes) -> ParsedTable:
        text = data.decode("utf-8", errors="replace").removeprefix("\ufeff")
        delimiter = sniff_delimiter(text)
        try:
            frame = pd.read_csv(
                io.StringIO(text),
                sep=delimiter,
                header=None,
                dtype=str,
                keep_default_na=False,
                na_filter=False,
                skip_blank_lines=True,
            )
        except pd.errors.EmptyDataError:
            raise InputFormatInvalid("Header row is empty.", title="Invalid CSV") from None
        except (pd.errors.ParserError, ValueError) as e:
            raise InputFormatInvalid(str(e).strip(), title="Invalid CSV") from e

        if frame.empty:
            raise InputFormatInvalid("Header row is empty.", title="Invalid CSV")
        FileReader._check_field_counts(text, delimiter, frame.shape[1])
        frame = frame.fillna("")

        headers = [normalize_header(str(h), i) for i, h in enumerate(frame.iloc[0].tolist())]
        rows = [
            # later duplicate headers overwrite earlier ones
            dict(zip(headers, (str(v) for v in values)))
            for values in frame.iloc[1:].itertuples(index=False, name=None)
        ]
        logger.debug(f"parsed csv: {len(headers)} columns, {len(rows)} rows (sep={delimiter!r})")
        return ParsedTable(headers=headers, rows=rows)

    @staticmethod
    def _check_field_counts(text: str, delimiter: str, width: int):
        # pandas pads short rows, so count fields on the raw records
        reader = csv.reader(io.StringIO(text), delimiter=delimiter)
        try:
            for fields in reader:
                if fields and len(fields) < width:
                    raise InputFormatInvalid(
                        f"Too few fields: expected {width} fields but parsed {len(fields)} (line {reader.line_num}).",
                        title="Invalid CSV",
                    )
        except csv.Error as e:
            raise InputFormatInvalid(str(e), title="Invalid CSV") from e

    @staticmethod
    def read_xlsx(data: bytes) -> ParsedTable:
        try:
            frame = pd.read_excel(io.BytesIO(data), sheet_name=0, header=None, dtype=object, engine="openpyxl")
        except (ValueError, KeyError, OSError, zipfile.BadZipFile) as e:
            raise InputFormatInvalid(f"No readable worksheet found: {e}", title="Invalid XLSX") from e

        if frame.empty:
            raise InputFormatInvalid("Header row is empty.", title="Invalid XLSX")

        header_cells = [excel_cell_to_string(v) for v in frame.iloc[0].tolist()]
        width = max((i + 1 for i, v in enumerate(header_cells) if v != ""), default=0)
        if width == 0:
            raise InputFormatInvalid("Header row is empty.", title="Invalid XLSX")
        headers = [normalize_header(h, i) for i, h in enumerate(header_cells[:width])]

        rows: List[Dict[str, str]] = []
        for values in frame.iloc[1:, :width].itertuples(index=False, name=None):
            cells = [excel_cell_to_string(v) for v in values]
            if all(c.strip() == "" for c in cells):
                continue
            rows.append(dict(zip(headers, cells)))
        logger.debug(f"parsed xlsx: {len(headers)} columns, {len(rows)} rows")
        return ParsedTable(headers=headers, rows=rows)

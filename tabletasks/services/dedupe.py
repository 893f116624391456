from typing import Dict, List

import pandas as pd

from tabletasks.services.cleaning import row_key

def identity_keys(headers: List[str], rows: List[Dict[str, str]]) -> pd.Series:
    return pd.Series([row_key(row, headers) for row in rows], dtype=object)

def count_duplicate_rows(headers: List[str], rows: List[Dict[str, str]]) -> int:
    # sum over key groups of (size - 1) == rows whose key was already seen
    return int(identity_keys(headers, rows).duplicated(keep="first").sum())

def dedupe_rows(headers: List[str], rows: List[Dict[str, str]]) -> List[Dict[str, str]]:
    """Drop rows whose identity key was already seen, keeping the first one in place."""
    keep = ~identity_keys(headers, rows).duplicated(keep="first")
    return [row for row, kept in zip(rows, keep) if kept]

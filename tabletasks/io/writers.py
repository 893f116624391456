from __future__ import annotations
import json
from pathlib import Path
from typing import Dict, List

import pandas as pd

class FileWriter:
    @staticmethod
    def to_csv_bytes(headers: List[str], rows: List[Dict[str, str]]) -> bytes:
        """Serialize rows in header order; the header line is always written."""
        df = pd.DataFrame([[row.get(h, "") for h in headers] for row in rows], columns=headers, dtype=object)
        return df.to_csv(index=False, lineterminator="\r\n").encode("utf-8")

    @staticmethod
    def write_bytes(data: bytes, path: str | Path):
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        Path(path).write_bytes(data)

    @staticmethod
    def write_json(obj: dict, path: str | Path):
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(obj, f, ensure_ascii=False, indent=2)

"""
Static app registry.

Entries come from APP_SEED and are bound to their implementation by id. The set
is closed: adding an app means adding a seed record and an implementation here.
"""
from __future__ import annotations
from typing import Callable, Dict, List, Tuple, Type

from pydantic import BaseModel

from tabletasks.apps.csv_profiler import run_csv_profiler
from tabletasks.apps.types import AppContext, AppEntry, AppRunResult
from tabletasks.core.errors import UnknownApp
from tabletasks.io.readers import XLSX_CONTENT_TYPE
from tabletasks.io.schemas import CsvProfilerOptions

APP_SEED: List[dict] = [
    {
        "id": "csv_profiler",
        "name": "CSV Profiler & Cleaner",
        "slug": "csv-profiler",
        "description": (
            "Profiles a CSV or XLSX file (types, missing values, duplicates) "
            "and returns a cleaned CSV."
        ),
        "accepted_content_types": ["text/csv", XLSX_CONTENT_TYPE],
    },
]

_IMPLEMENTATIONS: Dict[str, Tuple[Type[BaseModel], Callable[[AppContext], AppRunResult]]] = {
    "csv_profiler": (CsvProfilerOptions, run_csv_profiler),
}


class AppRegistry:
    def __init__(self, entries: List[AppEntry]):
        self._entries = {entry.id: entry for entry in entries}

    @classmethod
    def from_seed(cls, seed: List[dict] = APP_SEED) -> "AppRegistry":
        entries = []
        for record in seed:
            if record["id"] not in _IMPLEMENTATIONS:
                raise RuntimeError(f"App seed entry '{record['id']}' has no implementation")
            options_model, run = _IMPLEMENTATIONS[record["id"]]
            entries.append(AppEntry(
                id=record["id"],
                name=record["name"],
                slug=record["slug"],
                description=record["description"],
                accepted_content_types=frozenset(record["accepted_content_types"]),
                options_model=options_model,
                run=run,
            ))
        return cls(entries)

    def lookup(self, app_id: str) -> AppEntry:
        entry = self._entries.get(app_id)
        if entry is None:
            raise UnknownApp(app_id)
        return entry

    def list_apps(self) -> List[AppEntry]:
        return list(self._entries.values())


registry = AppRegistry.from_seed()

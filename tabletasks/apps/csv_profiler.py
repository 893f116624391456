"""The ``csv_profiler`` app: profile a CSV/XLSX upload and emit a cleaned CSV."""
from __future__ import annotations
import logging
from pathlib import Path

from tabletasks.apps.types import AppContext, AppRunResult
from tabletasks.core.metrics import set_gauge
from tabletasks.io.readers import FileReader
from tabletasks.io.schemas import CsvProfilerOptions
from tabletasks.io.writers import FileWriter
from tabletasks.services.profiling import profile

logger = logging.getLogger(__name__)

OUTPUT_CONTENT_TYPE = "text/csv"


def cleaned_filename(source_filename: str) -> str:
    return f"{Path(source_filename).stem}-cleaned.csv"


def run_csv_profiler(context: AppContext) -> AppRunResult:
    table = FileReader.read_table(
        context.input_bytes,
        context.input_file.filename,
        context.input_file.content_type,
    )
    options = CsvProfilerOptions.model_validate(context.options or {})

    report, cleaned_rows = profile(table.headers, table.rows, options)
    set_gauge("data_rows", float(len(table.rows)))
    logger.info(f"job {context.job_id}: {len(table.rows)} rows in, {len(cleaned_rows)} rows out")

    return AppRunResult(
        report=report.model_dump(by_alias=True),
        output_bytes=FileWriter.to_csv_bytes(table.headers, cleaned_rows),
        output_filename=cleaned_filename(context.input_file.filename),
        output_content_type=OUTPUT_CONTENT_TYPE,
    )

"""Command line entry points: batch runner, polling worker and local profiler."""

import argparse
import json
import logging
import mimetypes
import sys
import time
from pathlib import Path
from typing import List, Optional

from tabletasks.apps.csv_profiler import cleaned_filename
from tabletasks.core.config import settings
from tabletasks.core.logging import setup_logging
from tabletasks.core.metrics import set_gauge
from tabletasks.core.runtime import build_runtime
from tabletasks.io.readers import FileReader
from tabletasks.io.schemas import CsvProfilerOptions
from tabletasks.io.writers import FileWriter
from tabletasks.services.profiling import profile

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tabletasks",
        description="TableTasks job runner and CSV/XLSX profiler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run one batch of queued jobs against DATABASE_URL
  python -m tabletasks.cli run-batch --limit 5

  # Poll for queued jobs every 10 seconds
  python -m tabletasks.cli worker --interval 10

  # Profile a file locally, no stores involved
  python -m tabletasks.cli profile input.csv --out cleaned.csv --report report.json --remove-duplicates
        """,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    batch = sub.add_parser("run-batch", help="Claim and run up to --limit queued jobs, then exit")
    batch.add_argument("--limit", type=int, default=settings.WORKER_BATCH_LIMIT, help="Max jobs to claim")

    worker = sub.add_parser("worker", help="Poll for queued jobs until interrupted")
    worker.add_argument("--once", action="store_true", help="Run a single tick and exit")
    worker.add_argument("--interval", type=float, default=settings.WORKER_POLL_INTERVAL_SECONDS,
                        help="Seconds to sleep between ticks")
    worker.add_argument("--limit", type=int, default=settings.WORKER_BATCH_LIMIT, help="Max jobs per tick")

    prof = sub.add_parser("profile", help="Profile a CSV/XLSX file and write a cleaned CSV")
    prof.add_argument("input_file", help="Input CSV/XLSX file")
    prof.add_argument("--out", "-o", help="Cleaned CSV output path")
    prof.add_argument("--report", help="JSON report output path (printed to stdout when omitted)")
    prof.add_argument("--remove-duplicates", action="store_true", help="Drop duplicate rows from the output")

    return parser


def run_batch(limit: int) -> int:
    runtime = build_runtime(settings)
    outcomes = runtime.runner.run_batch(limit)
    for outcome in outcomes:
        logger.info(f"{outcome.jobId}: {outcome.status}" + (f" ({outcome.error})" if outcome.error else ""))
    if not outcomes:
        logger.info("No queued jobs")
    return len(outcomes)


def run_worker(interval: float, limit: int, once: bool = False):
    runtime = build_runtime(settings)
    logger.info(f"Worker started (interval={interval}s, limit={limit}, once={once})")
    while True:
        try:
            outcomes = runtime.runner.run_batch(limit)
            if outcomes:
                logger.info(f"processed={len(outcomes)} outcomes={[o.model_dump() for o in outcomes]}")
            else:
                logger.debug("idle")
        except Exception as e:
            if once:
                raise
            logger.error(f"Worker tick failed: {e}")
        if once:
            return
        time.sleep(interval)


def run_profile(input_path: Path, out: Optional[str], report_path: Optional[str], remove_duplicates: bool) -> dict:
    data = input_path.read_bytes()
    content_type = mimetypes.guess_type(input_path.name)[0]
    table = FileReader.read_table(data, input_path.name, content_type)

    report, cleaned_rows = profile(
        table.headers, table.rows, CsvProfilerOptions(removeDuplicateRows=remove_duplicates)
    )
    set_gauge("data_rows", float(len(table.rows)))

    out_path = Path(out) if out else input_path.with_name(cleaned_filename(input_path.name))
    FileWriter.write_bytes(FileWriter.to_csv_bytes(table.headers, cleaned_rows), out_path)
    logger.info(f"Cleaned CSV written to {out_path}")

    report_dict = report.model_dump(by_alias=True)
    if report_path:
        FileWriter.write_json(report_dict, report_path)
        logger.info(f"Report written to {report_path}")
    else:
        print(json.dumps(report_dict, indent=2, ensure_ascii=False))
    return report_dict


def main(argv: Optional[List[str]] = None):
    parser = create_parser()
    args = parser.parse_args(argv)

    # stdout is reserved for the profile report
    setup_logging("DEBUG" if args.verbose else settings.LOG_LEVEL, stream=sys.stderr)

    if args.command == "run-batch":
        if args.limit < 1:
            parser.error("--limit must be >= 1")
        run_batch(args.limit)
    elif args.command == "worker":
        if args.limit < 1:
            parser.error("--limit must be >= 1")
        try:
            run_worker(args.interval, args.limit, once=args.once)
        except KeyboardInterrupt:
            logger.info("Worker stopped")
    elif args.command == "profile":
        input_path = Path(args.input_file)
        if not input_path.exists():
            parser.error(f"Input file not found: {input_path}")
        run_profile(input_path, args.out, args.report, args.remove_duplicates)


if __name__ == "__main__":
    main()

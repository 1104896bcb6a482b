"""
Command Line Entry Point

Runs the pipeline stages one at a time:
    retail-sales clean [INPUT] [--output PATH]
    retail-sales init-db
    retail-sales load [CLEANED] [--no-truncate]
    retail-sales analyze [--query NAME] [--customer ID]
    retail-sales export [--output-dir DIR]
    retail-sales run [INPUT]
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import polars as pl
import structlog
from sqlalchemy.exc import SQLAlchemyError

from retail_sales.analytics.queries import QUERY_CATALOG, CustomerOrder, customer_orders, run_query
from retail_sales.analytics.reports import export_reports, rows_to_frame
from retail_sales.config import get_settings
from retail_sales.config.logging import configure_logging
from retail_sales.database.connection import close_database, create_schema, get_db, init_database
from retail_sales.ingestion.bulk_loader import LoadConfig, LoadStatus, create_bulk_loader
from retail_sales.transformation.cleaners import DataCleaner

logger = structlog.get_logger(__name__)


def _default_raw_file() -> Path:
    settings = get_settings()
    return Path(settings.data_lake.raw_path) / settings.data_lake.raw_file


def _default_cleaned_file() -> Path:
    settings = get_settings()
    return Path(settings.data_lake.staging_path) / settings.data_lake.cleaned_file


def cmd_clean(args: argparse.Namespace) -> int:
    """Clean a raw export into the staging zone"""
    result = DataCleaner().clean_file(
        args.input or _default_raw_file(),
        args.output or _default_cleaned_file(),
    )
    print(
        f"Cleaned {result.stats.rows_cleaned}/{result.stats.total_rows} rows "
        f"({result.stats.rows_quarantined} quarantined, {result.stats.dates_unparsed} dates unparsed) "
        f"-> {result.output_path}"
    )
    return 0


async def _init_db(args: argparse.Namespace) -> int:
    await init_database(args.database_url)
    try:
        await create_schema()
    finally:
        await close_database()
    return 0


async def _load(args: argparse.Namespace) -> int:
    await init_database(args.database_url)
    try:
        await create_schema()
        result = await create_bulk_loader().load(
            LoadConfig(
                file_path=args.input or _default_cleaned_file(),
                truncate=not args.no_truncate,
            )
        )
    finally:
        await close_database()

    print(
        f"Load {result.status.value}: {result.rows_loaded}/{result.rows_attempted} rows loaded, "
        f"{result.rows_rejected} rejected"
    )
    if result.status == LoadStatus.FAILED:
        print(f"Error: {result.error_message}", file=sys.stderr)
        return 1
    return 0


async def _analyze(args: argparse.Namespace) -> int:
    await init_database(args.database_url)
    try:
        async with get_db() as db:
            if args.customer is not None:
                rows = await customer_orders(db, args.customer)
                print(f"\n== orders for customer {args.customer} ==")
                print(rows_to_frame(rows, CustomerOrder))
                return 0

            names = [args.query] if args.query else list(QUERY_CATALOG)
            for name in names:
                rows = await run_query(db, name)
                print(f"\n== {name}: {QUERY_CATALOG[name].description} ==")
                print(rows_to_frame(rows, QUERY_CATALOG[name].model))
    finally:
        await close_database()
    return 0


async def _export(args: argparse.Namespace) -> int:
    await init_database(args.database_url)
    try:
        async with get_db() as db:
            written = await export_reports(db, args.output_dir)
    finally:
        await close_database()

    for name, path in written.items():
        print(f"{name}: {path}")
    return 0


async def _run(args: argparse.Namespace) -> int:
    cleaned = DataCleaner().clean_file(args.input or _default_raw_file(), _default_cleaned_file())

    await init_database(args.database_url)
    try:
        await create_schema()
        result = await create_bulk_loader().load(LoadConfig(file_path=cleaned.output_path))
        if result.status == LoadStatus.FAILED:
            print(f"Load failed: {result.error_message}", file=sys.stderr)
            return 1
        async with get_db() as db:
            written = await export_reports(db)
    finally:
        await close_database()

    print(
        f"Cleaned {cleaned.stats.rows_cleaned}/{cleaned.stats.total_rows}, "
        f"loaded {result.rows_loaded}/{result.rows_attempted}, "
        f"exported {len(written)} reports"
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="retail-sales",
        description="Retail sales analytics pipeline: clean, load, analyze",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    sub = parser.add_subparsers(dest="command", required=True)

    clean = sub.add_parser("clean", help="Clean a raw CSV export")
    clean.add_argument("input", nargs="?", help="Raw CSV (default: raw zone)")
    clean.add_argument("--output", help="Cleaned CSV (default: staging zone)")
    clean.set_defaults(handler=cmd_clean)

    init_db = sub.add_parser("init-db", help="Create table, view and routines")
    init_db.set_defaults(handler=_init_db)

    load = sub.add_parser("load", help="Bulk-load a cleaned CSV")
    load.add_argument("input", nargs="?", help="Cleaned CSV (default: staging zone)")
    load.add_argument("--no-truncate", action="store_true", help="Append instead of reloading")
    load.set_defaults(handler=_load)

    analyze = sub.add_parser("analyze", help="Run catalog queries")
    analyze.add_argument("--query", choices=sorted(QUERY_CATALOG), help="Run a single query")
    analyze.add_argument("--customer", help="Show the orders of one customer")
    analyze.set_defaults(handler=_analyze)

    export = sub.add_parser("export", help="Export every query as CSV")
    export.add_argument("--output-dir", help="Target directory (default: curated zone)")
    export.set_defaults(handler=_export)

    run = sub.add_parser("run", help="Clean, load and export in one go")
    run.add_argument("input", nargs="?", help="Raw CSV (default: raw zone)")
    run.set_defaults(handler=_run)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        outcome = args.handler(args)
        if asyncio.iscoroutine(outcome):
            outcome = asyncio.run(outcome)
    except (FileNotFoundError, ValueError, pl.exceptions.PolarsError, SQLAlchemyError) as e:
        logger.error("Command failed", command=args.command, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return outcome


if __name__ == "__main__":
    sys.exit(main())

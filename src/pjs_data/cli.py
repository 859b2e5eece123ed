"""Command line entry points.

Maps argparse commands onto the retrieval pipeline and the lookup table
downloads.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

from pjs_data.config import APP_NAME, APP_VERSION, LOG_LEVEL, OUTPUT_DIR
from pjs_data.core.data_loader import DataLoaderError, build_engine
from pjs_data.core.lookup_loader import (
    PJS_LEVELS,
    LookupLoaderError,
    copy_column_standards,
    copy_pjs_codes_2_text,
)
from pjs_data.core.pipeline import (
    DEFAULT_LEVELS,
    PipelineError,
    PipelineParameters,
    run_hensikt_pipeline,
)
from pjs_data.core.sql_builder import SqlBuilderError
from pjs_data.core.summary import build_pipeline_summary, format_summary

logger = logging.getLogger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser."""
    parser = argparse.ArgumentParser(prog="pjs-data", description=APP_NAME)
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default=LOG_LEVEL if LOG_LEVEL in LOG_LEVELS else "INFO",
        choices=LOG_LEVELS,
        help="Logging level (default from PJS_LOG_LEVEL)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_retrieve_command(subparsers)
    _add_copy_lookups_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and return the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    try:
        if args.command == "retrieve":
            return _run_retrieve_command(args)
        if args.command == "copy-lookups":
            return _run_copy_lookups_command(args)
    except (DataLoaderError, LookupLoaderError, PipelineError, SqlBuilderError, FileNotFoundError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _add_retrieve_command(subparsers: argparse._SubParsersAction) -> None:
    parser = subparsers.add_parser(
        "retrieve",
        help="Retrieve, standardise and save PJS data for one or more purposes (hensikt)",
    )
    parser.add_argument("--year", type=int, action="append", required=True, help="Year; repeat for several")
    parser.add_argument(
        "--hensikt",
        action="append",
        required=True,
        help="Hensikt code; end with %% to include sub-codes; repeat for several",
    )
    parser.add_argument(
        "--levels",
        nargs="+",
        default=list(DEFAULT_LEVELS),
        choices=PJS_LEVELS,
        help="Record levels to keep",
    )
    parser.add_argument("--keep-col", nargs="*", default=[], help="Extra columns to keep")
    parser.add_argument("--include-abroad", action="store_true", help="Keep samples from abroad")
    parser.add_argument("--include-quality", action="store_true", help="Keep quality assurance samples")
    parser.add_argument("--database-url", help="Override PJS_DATABASE_URL for this command")
    parser.add_argument(
        "--output",
        default=str(OUTPUT_DIR / "PJSdata.pkl"),
        help="Where to save the result (pickle)",
    )


def _add_copy_lookups_command(subparsers: argparse._SubParsersAction) -> None:
    parser = subparsers.add_parser("copy-lookups", help="Download the lookup tables into the lookup directory")
    parser.add_argument("--timeout", type=int, default=60, help="Download timeout in seconds")


def _run_retrieve_command(args: argparse.Namespace) -> int:
    params = PipelineParameters(
        years=list(args.year),
        hensikt=list(args.hensikt),
        levels=list(args.levels),
        keep_col=list(args.keep_col),
        abroad="include" if args.include_abroad else "exclude",
        quality="include" if args.include_quality else "exclude",
        output_path=args.output,
    )
    engine = build_engine(args.database_url)
    result = run_hensikt_pipeline(params, engine=engine)
    print(format_summary(build_pipeline_summary(result)))
    return 0


def _run_copy_lookups_command(args: argparse.Namespace) -> int:
    for path in (copy_pjs_codes_2_text(args.timeout), copy_column_standards(args.timeout)):
        print(f"Copied {path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

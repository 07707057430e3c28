#!/usr/bin/env python3
"""Generate monthly book metrics snapshots for one or more client companies."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG_PATH = BASE_DIR / "config" / "config.yaml"
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from book_metrics.config import ConfigError
from book_metrics.repository import RepositoryError
from book_metrics.workflow import BookOptions, generate_books


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compute volumetry, SLA, backlog and consumption snapshots for monthly books."
    )
    parser.add_argument("--month", type=int, required=True, help="Reference month (1-12).")
    parser.add_argument("--year", type=int, required=True, help="Reference year, e.g. 2025.")
    parser.add_argument(
        "--company",
        action="append",
        dest="companies",
        help="Company id to build. Can be supplied multiple times; defaults to every company in the store.",
    )
    parser.add_argument(
        "--config",
        help=(
            "Path to configuration YAML file. Defaults to "
            f"{DEFAULT_CONFIG_PATH} or config/config.yaml if present."
        ),
    )
    parser.add_argument(
        "--output-directory",
        help="Directory where snapshot JSON files are written. Overrides configuration defaults.",
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        help="Number of companies built concurrently. Overrides engine.max_workers.",
    )
    parser.add_argument(
        "--show-console-log",
        action="store_true",
        help="Show detailed log output instead of the default progress display.",
    )
    parser.add_argument(
        "--simple-console",
        action="store_true",
        help="Use a simple console log format instead of Rich formatting.",
    )
    parser.add_argument(
        "--console-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the console logging level.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not 1 <= args.month <= 12:
        parser.error("--month must be between 1 and 12")
    options = BookOptions(
        config_path=args.config,
        month=args.month,
        year=args.year,
        company_ids=args.companies,
        output_directory=args.output_directory,
        max_workers=args.max_workers,
        disable_console=not args.show_console_log,
        simple_console=args.simple_console,
        console_level=args.console_level,
        show_console_log=args.show_console_log,
    )
    try:
        summary = generate_books(options, base_dir=BASE_DIR)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    except RepositoryError as exc:
        print(f"Store error: {exc}", file=sys.stderr)
        return 3
    print(f"{len(summary.written)} snapshot(s) written to {summary.output_directory}")
    if summary.failures:
        print(f"{len(summary.failures)} company(ies) failed; see {summary.summary_path}")
    if summary.cancelled:
        print(f"Cancelled: {len(summary.skipped)} company(ies) skipped")
    return 1 if summary.failures else 0


if __name__ == "__main__":
    sys.exit(main())

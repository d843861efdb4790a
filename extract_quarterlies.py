#!/usr/bin/env python3
"""
Quarterly Statement Extractor CLI

Extracts quarterly income statement, balance sheet, cash flow and segment data
from already-fetched company documents laid out as ``<filings>/FY2024/Q1/<file>``.

Usage Examples:
    # Extract with a bundled company profile
    python extract_quarterlies.py --profile intel --filings ./data/intel

    # Use a custom profile and write to another directory
    python extract_quarterlies.py --profile ./profiles/acme.json --filings ./acme --out ./output

    # List bundled profiles
    python extract_quarterlies.py --list-profiles
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent / "src"))

from statement_extractor import (
    ExtractionConfig,
    ExtractionError,
    ExtractionPipeline,
    TimeseriesWriter,
    available_profiles,
    discover_documents,
    load_company_profile,
)

logger = logging.getLogger(__name__)


def create_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Extract standardized quarterly financials from fetched documents",
    )
    parser.add_argument("--profile", help="Bundled profile name or path to a profile JSON")
    parser.add_argument("--filings", type=Path, help="Directory holding FY*/Q*/ document folders")
    parser.add_argument(
        "--out",
        type=Path,
        default=Path("output"),
        help="Output root directory (default: output)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=4,
        help="Number of documents processed in parallel (default: 4)",
    )
    parser.add_argument(
        "--min-score",
        type=float,
        default=1.0,
        help="Minimum anchor score for a table to count as located (default: 1.0)",
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable the progress bar",
    )
    parser.add_argument(
        "--list-profiles",
        action="store_true",
        help="List bundled company profiles and exit",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )


def validate_arguments(args: argparse.Namespace) -> None:
    if args.list_profiles:
        return
    if not args.profile or not args.filings:
        raise ValueError("--profile and --filings are required")
    if not args.filings.is_dir():
        raise ValueError(f"Filings directory not found: {args.filings}")
    if args.workers < 1:
        raise ValueError("--workers must be at least 1")


def extract_quarterlies(args: argparse.Namespace) -> int:
    profile = load_company_profile(args.profile)
    config = ExtractionConfig(
        max_workers=args.workers,
        min_score=args.min_score,
        show_progress=not args.no_progress,
    )

    documents = discover_documents(args.filings, profile)
    if not documents:
        logger.warning(f"No documents found under {args.filings}")
        return 1

    pipeline = ExtractionPipeline(profile, config)
    results = pipeline.run(documents)
    records = pipeline.build_records(results)

    writer = TimeseriesWriter(base_dir=args.out)
    written = writer.write(profile.company, records)

    failed = [result for result in results if not result.success]
    for result in failed:
        logger.warning(f"Failed: {result.unit} ({result.error})")

    logger.info(
        f"Wrote {len(records)} quarterly records for {profile.company} to {written.base_path}"
    )
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = create_argument_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        validate_arguments(args)
        if args.list_profiles:
            for name in available_profiles():
                print(name)
            return 0
        return extract_quarterlies(args)
    except (ExtractionError, ValueError, OSError) as exc:
        logger.error("Extraction failed: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())

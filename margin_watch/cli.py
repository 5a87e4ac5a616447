"""Command-line report of Manifold positions returning less than the margin rate."""

import argparse
import sys
from typing import List, Optional

import pandas as pd

from margin_watch.config import load_settings
from margin_watch.manifold_client import ManifoldAPIError, ManifoldClient
from margin_watch.portfolio_service import PortfolioService
from margin_watch.presentation import (
    format_mana,
    format_percentage,
    summarize,
    valuations_to_csv,
    valuations_to_frame,
)
from margin_watch.ranking import SORTABLE_COLUMNS, sort_valuations
from margin_watch.structured_logger import EventType, get_logger, setup_structured_logging

logger = get_logger(__name__)


def print_header(title: str):
    """Print a section header."""
    print(f"\n{'='*60}")
    print(f" {title}")
    print('='*60)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='margin-watch',
        description='Find Manifold positions whose return if correct is below the margin rate'
    )
    parser.add_argument('username', help='Manifold username or profile URL')
    parser.add_argument('--all', action='store_true', dest='show_all',
                        help='Show every position, below-margin first (default: below-margin only)')
    parser.add_argument('--sort', choices=sorted(SORTABLE_COLUMNS),
                        help='Sort the table by this column instead of by ranking')
    parser.add_argument('--desc', action='store_true', help='Sort descending (with --sort)')
    parser.add_argument('--csv', metavar='PATH', help='Also write the positions to a CSV file')
    parser.add_argument('--env-file', metavar='PATH', help='Load settings from this .env file')
    parser.add_argument('--log-level', help='Override LOG_LEVEL')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.env_file)
        if args.log_level:
            settings.log_level = args.log_level
        level = settings.log_level_value
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_structured_logging(
        service=settings.service_name,
        level=level,
        json_format=settings.log_format == "json",
    )
    logger.info("Starting analysis", extra={
        "event_type": EventType.STARTUP,
        "margin_rate_annual": settings.margin_rate_annual,
    })

    client = ManifoldClient(
        api_base=settings.api_base,
        page_size=settings.page_size,
        timeout=settings.timeout,
    )
    service = PortfolioService(client, margin_rate_annual=settings.margin_rate_annual)

    try:
        result = service.analyze_user(
            args.username,
            show_all=args.show_all,
            on_progress=lambda msg: print(msg, file=sys.stderr),
        )
    except (ManifoldAPIError, ValueError) as e:
        logger.error("Analysis failed", extra={
            "event_type": EventType.ERROR,
            "error_type": type(e).__name__,
            "error_msg": str(e),
        })
        print(f"Error: {e}", file=sys.stderr)
        return 1

    positions = result["positions"]
    if args.sort:
        positions = sort_valuations(positions, args.sort, descending=args.desc)

    summary = result["summary"]
    totals = summarize(positions)

    print_header(f"POSITIONS FOR {result['username']}")
    print(f"  Margin rate: {format_percentage(summary['margin_rate_annual'], 2)} annually")
    print(f"  Found {summary['flagged_positions']} of {summary['total_positions']} "
          f"positions with return below margin rate.")
    print(f"  Showing: {totals['positions']} | Recoverable: {format_mana(totals['recoverable'], 0)} "
          f"| Payout if correct: {format_mana(totals['payout'], 0)}")

    if not positions:
        print("\n  No positions to show")
    else:
        df = valuations_to_frame(positions).drop(columns=["URL"])
        with pd.option_context('display.max_rows', None, 'display.width', 200):
            print()
            print(df.to_string(index=False))

    if args.csv:
        with open(args.csv, "w", newline="") as f:
            f.write(valuations_to_csv(positions))
        print(f"\nWrote {len(positions)} positions to {args.csv}")

    return 0


if __name__ == '__main__':
    sys.exit(main())

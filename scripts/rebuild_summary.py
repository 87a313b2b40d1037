#!/usr/bin/env python3
"""
Monthly Summary Rebuild Script

Recomputes a period's revenue from the leads paid in that month. Use it to
repair a summary after manual edits to leads or a lost webhook. Ad spend is
left as stored.

Usage:
    python rebuild_summary.py 2025-03
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import get_settings
from domain.errors import ConfigurationError, UpstreamError
from domain.summary import parse_period_key
from repositories.client import create_record_store
from services.rollup_service import rebuild_summary


def _parse_period(value: str) -> str:
    try:
        year, month = parse_period_key(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))
    return f"{year}-{month:02d}"


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Rebuild a monthly summary from paid leads",
    )
    parser.add_argument("period", type=_parse_period, help="Period to rebuild (YYYY-MM)")
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    try:
        store = create_record_store(settings)
        summary = rebuild_summary(store, args.period)
    except ConfigurationError as e:
        print(f"\nCONFIGURATION ERROR: {e}", file=sys.stderr)
        return 1
    except UpstreamError as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        return 1

    print("=" * 60)
    print(f"SUMMARY {summary.period}")
    print("=" * 60)
    print(f"Total revenue:   {summary.total_revenue}")
    print(f"Customers:       {summary.customer_count}")
    for source, revenue in sorted(summary.revenue_by_source.items()):
        print(f"  {source:<24} {revenue.total} ({revenue.count})")
    print(f"Ad spend:        {summary.total_ad_spend}")
    print(f"Net revenue:     {summary.net_revenue}")
    print(f"ROI:             {summary.roi_display}")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())

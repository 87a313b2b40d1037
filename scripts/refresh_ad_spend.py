#!/usr/bin/env python3
"""
Ad Spend Refresh Script

Pulls last month's marketing expenses from QuickBooks and replaces the
monthly summary's ad spend. Meant to run daily from a scheduler: it only does
work on the configured refresh day (AD_SPEND_REFRESH_DAY, default 3) unless
--force is given.

Usage:
    python refresh_ad_spend.py
    python refresh_ad_spend.py --force
    python refresh_ad_spend.py --date 2025-04-03
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date, datetime, timezone
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import get_settings
from connectors.quickbooks import QuickBooksClient
from domain.errors import ConfigurationError, UpstreamError
from repositories.client import create_record_store
from services.ad_spend_service import refresh_ad_spend


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date {value!r}, expected YYYY-MM-DD")


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Refresh last month's ad spend from QuickBooks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scheduled run (no-op unless today is the refresh day)
  python refresh_ad_spend.py

  # Run now regardless of the day
  python refresh_ad_spend.py --force

  # Re-run as if it were April 3rd (refreshes March)
  python refresh_ad_spend.py --date 2025-04-03
        """
    )
    parser.add_argument(
        "--force",
        "-f",
        action="store_true",
        help="Run even when today is not the refresh day"
    )
    parser.add_argument(
        "--date",
        type=_parse_date,
        help="Treat this date (YYYY-MM-DD) as today"
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    today = args.date or datetime.now(timezone.utc).date()

    try:
        store = create_record_store(settings)
        accounting = QuickBooksClient.from_settings(settings, store)
        result = refresh_ad_spend(
            store,
            accounting,
            today=today,
            force=args.force,
            refresh_day=settings.ad_spend_refresh_day,
        )
    except ConfigurationError as e:
        print(f"\nCONFIGURATION ERROR: {e}", file=sys.stderr)
        return 1
    except UpstreamError as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n\nRefresh interrupted by user")
        return 130

    print("=" * 60)
    print("AD SPEND REFRESH")
    print("=" * 60)
    print(result.message)
    if not result.ran:
        print(f"Next run: {result.next_run}")
        return 0

    print(f"Period:          {result.period}")
    print(f"Expense lines:   {result.expense_count}")
    for category, amount in sorted(result.spend_by_category.items()):
        print(f"  {category:<24} {amount}")
    print(f"Total ad spend:  {result.total_ad_spend}")
    print(f"Promo spend:     {result.promo_spend}")
    if result.summary is not None:
        print(f"ROI:             {result.summary.roi_display}")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())

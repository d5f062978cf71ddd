#!/usr/bin/env python3
"""
Recalculate daily inventory movement aggregates from the movement ledger.

Rows are always rebuilt from the ledger and the stock cache, so the
command is safe to re-run.  Without a date option it rebuilds today.

Usage:
    python3 scripts/fix_daily_aggregation.py [options]

Examples:
    # Rebuild one day
    python3 scripts/fix_daily_aggregation.py --date 2024-03-01

    # Rebuild a range and show what changed, without writing
    python3 scripts/fix_daily_aggregation.py --from 2024-03-01 --to 2024-03-31 --dry-run --verbose-report

    # Rebuild every day since the first movement, including zero-movement days
    python3 scripts/fix_daily_aggregation.py --all --create-missing

Exit codes:
    0  success
    1  invalid range, unknown product, configuration or database error
    2  invalid command line
"""

from __future__ import annotations

import argparse
import sys
from datetime import date, timedelta
from pathlib import Path
from typing import Sequence
from uuid import UUID

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

W = 78


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Recalculate inventory_item_movements_daily rows from the movement ledger.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    days = parser.add_mutually_exclusive_group()
    days.add_argument(
        "--date",
        type=date.fromisoformat,
        help="Single day to rebuild (YYYY-MM-DD).",
    )
    days.add_argument(
        "--from",
        dest="start",
        type=date.fromisoformat,
        help="First day of a range (YYYY-MM-DD). Use with --to.",
    )
    days.add_argument(
        "--all",
        action="store_true",
        help="Rebuild every day from the first ledger movement to today.",
    )
    parser.add_argument(
        "--to",
        dest="end",
        type=date.fromisoformat,
        help="Last day of a range (YYYY-MM-DD). Default: today.",
    )
    parser.add_argument(
        "--product",
        dest="products",
        action="append",
        type=UUID,
        default=None,
        help="Only rebuild this product (repeatable).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report differences without writing.",
    )
    parser.add_argument(
        "--create-missing",
        action="store_true",
        help="Write zero-movement rows for products with earlier stock history.",
    )
    parser.add_argument(
        "--verbose-report",
        action="store_true",
        help="Print every stored row that differs from the ledger.",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL (default: from configuration / DATABASE_URL).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration YAML (default: stock_config/sets/default.yaml).",
    )
    args = parser.parse_args(argv)
    if args.end is not None and args.start is None:
        parser.error("--to requires --from")
    return args


def _days(args: argparse.Namespace, session, today: date) -> list[date]:
    from stock_kernel.exceptions import InvalidDateRangeError
    from stock_kernel.selectors.movement_selector import MovementSelector

    if args.date:
        return [args.date]
    if args.all:
        first = MovementSelector(session).first_movement_date()
        if first is None:
            return []
        start, end = first, today
    elif args.start:
        start, end = args.start, args.end or today
    else:
        return [today]

    if start > end:
        raise InvalidDateRangeError(start.isoformat(), end.isoformat())
    return [start + timedelta(days=n) for n in range((end - start).days + 1)]


def _print_difference(diff) -> None:
    stored = diff.stored
    recomputed = diff.recomputed
    if stored is None:
        print(f"    + {diff.product_id}  missing, closing={recomputed.closing_quantity}")
        return
    flag = " (stale)" if stored.is_stale else ""
    print(
        f"    ~ {diff.product_id}{flag}  "
        f"start {stored.start_quantity} -> {recomputed.start_quantity}, "
        f"closing {stored.closing_quantity} -> {recomputed.closing_quantity}, "
        f"movements {stored.movement_count} -> {recomputed.movement_count}"
    )


def main(argv: Sequence[str] | None = None, clock=None) -> int:
    args = _parse_args(argv)

    # Lazy imports so we fail fast on args first
    from stock_config import get_active_config
    from stock_kernel.db.engine import get_session, init_engine_from_url, reset_engine
    from stock_kernel.domain.clock import SystemClock
    from stock_kernel.exceptions import StockLedgerError
    from stock_kernel.logging_config import configure_logging
    from stock_kernel.services.aggregation_service import AggregationService

    clock = clock or SystemClock()

    database_url = args.database_url
    if database_url is not None:
        configure_logging()
    else:
        try:
            config = get_active_config(args.config)
        except (OSError, StockLedgerError) as exc:
            print(f"ERROR: Failed to load config: {exc}", file=sys.stderr)
            return 1
        configure_logging(level=config.logging.level)
        database_url = config.database.url

    try:
        init_engine_from_url(database_url)
    except Exception as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    session = get_session()
    try:
        days = _days(args, session, clock.today())
        if not days:
            print("No days to process.")
            return 0

        mode = "DRY RUN" if args.dry_run else "WRITE"
        print("=" * W)
        print(f"  DAILY AGGREGATION REPAIR  [{mode}]  {days[0]} .. {days[-1]}  ({len(days)} day(s))")
        print("=" * W)

        summaries = AggregationService(session, clock=clock).recalculate_range(
            days[0],
            days[-1],
            product_ids=args.products,
            dry_run=args.dry_run,
            create_missing=args.create_missing,
        )

        for summary in summaries:
            print(
                f"  {summary.day}  products={len(summary.products):>4}  "
                f"differences={len(summary.differences):>4}  written={summary.rows_written:>4}"
            )
            if args.verbose_report:
                for diff in summary.differences:
                    _print_difference(diff)

        if args.dry_run:
            session.rollback()
        else:
            session.commit()

        print("-" * W)
        print(
            f"  days={len(summaries)}  "
            f"differences={sum(len(s.differences) for s in summaries)}  "
            f"rows_written={sum(s.rows_written for s in summaries)}"
        )
        return 0
    except StockLedgerError as exc:
        session.rollback()
        print(f"ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 1
    except Exception as exc:
        session.rollback()
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        session.close()
        reset_engine()


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
Print the stock reconciliation report or current stock levels.

Usage:
    python3 scripts/stock_report.py [--from YYYY-MM-DD] [--to YYYY-MM-DD] [options]
    python3 scripts/stock_report.py --levels [--low-only]

Examples:
    # Reconcile March, reading daily aggregates for closed days
    python3 scripts/stock_report.py --from 2024-03-01 --to 2024-03-31

    # Same, scanning the ledger only
    python3 scripts/stock_report.py --from 2024-03-01 --to 2024-03-31 --no-aggregates

    # Products at or below their minimum stock
    python3 scripts/stock_report.py --levels --low-only
"""

from __future__ import annotations

import argparse
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Sequence
from uuid import UUID

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

W = 110


def _qty(v: Decimal) -> str:
    from stock_kernel.db.types import normalize_quantity

    return f"{normalize_quantity(v):f}"


def _money(v: Decimal) -> str:
    return f"{v:,.2f}"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Stock reconciliation report and stock levels.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--from", dest="start", type=date.fromisoformat, default=None,
                        help="First day (YYYY-MM-DD). Default: --to.")
    parser.add_argument("--to", dest="end", type=date.fromisoformat, default=None,
                        help="Last day (YYYY-MM-DD). Default: today.")
    parser.add_argument("--product", dest="products", action="append", type=UUID, default=None,
                        help="Only this product (repeatable).")
    parser.add_argument("--no-aggregates", action="store_true",
                        help="Ignore daily aggregates and scan the ledger.")
    parser.add_argument("--deviations-only", action="store_true",
                        help="Only print products with a non-zero deviation.")
    parser.add_argument("--levels", action="store_true",
                        help="Print current stock levels instead of the reconciliation report.")
    parser.add_argument("--low-only", action="store_true",
                        help="With --levels: only products at or below min stock.")
    parser.add_argument("--database-url", default=None,
                        help="Database URL (default: from configuration / DATABASE_URL).")
    parser.add_argument("--config", type=Path, default=None,
                        help="Configuration YAML (default: stock_config/sets/default.yaml).")
    return parser.parse_args(argv)


def _print_report(report, deviations_only: bool) -> None:
    source = "daily aggregates + ledger" if report.used_aggregates else "ledger"
    print("=" * W)
    print(f"  STOCK RECONCILIATION  {report.start} .. {report.end}  (source: {source})")
    print("=" * W)
    print(
        f"  {'Product':<24} {'Unit':<6} {'Start':>10} {'In':>10} {'Sales':>10} {'Ret':>8} "
        f"{'Waste':>9} {'Ideal':>10} {'Actual':>10} {'Dev':>9} {'Dev %':>7}"
    )
    print("-" * W)
    for row in report.rows:
        if deviations_only and not row.has_deviation:
            continue
        print(
            f"  {row.product_name[:24]:<24} {row.unit[:6]:<6} {_qty(row.start_quantity):>10} "
            f"{_qty(row.incoming):>10} {_qty(row.sales):>10} {_qty(row.sales_returns):>8} "
            f"{_qty(row.return_waste):>9} {_qty(row.ideal_remaining):>10} "
            f"{_qty(row.actual_remaining_quantity):>10} {_qty(row.deviation):>9} "
            f"{row.deviation_percentage:>6}%"
        )
    print("-" * W)
    print(
        f"  products={len(report.rows)}  with deviation={report.products_with_deviation}  "
        f"deviation value={_money(report.total_deviation_value)}"
    )


def _print_levels(levels) -> None:
    print("=" * 72)
    print(f"  {'Product':<30} {'Unit':<8} {'Quantity':>12} {'Min':>10}  Status")
    print("-" * 72)
    for level in levels:
        status = "OUT" if level.is_out else ("LOW" if level.is_low else "")
        print(
            f"  {level.name[:30]:<30} {level.unit[:8]:<8} {_qty(level.quantity):>12} "
            f"{_qty(level.min_stock):>10}  {status}"
        )
    print("-" * 72)
    print(f"  products={len(levels)}")


def main(argv: Sequence[str] | None = None, clock=None) -> int:
    args = _parse_args(argv)

    from stock_config import get_active_config
    from stock_kernel.db.engine import get_session, init_engine_from_url, reset_engine
    from stock_kernel.domain.clock import SystemClock
    from stock_kernel.exceptions import StockLedgerError
    from stock_kernel.logging_config import configure_logging
    from stock_kernel.selectors.stock_selector import StockSelector
    from stock_services.reconciliation_service import ReconciliationService

    clock = clock or SystemClock()

    try:
        config = get_active_config(args.config)
    except (OSError, StockLedgerError) as exc:
        print(f"ERROR: Failed to load config: {exc}", file=sys.stderr)
        return 1
    configure_logging(level=config.logging.level)

    try:
        init_engine_from_url(
            args.database_url or config.database.url,
            echo=config.database.echo,
            pool_size=config.database.pool_size,
        )
    except Exception as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    session = get_session()
    try:
        if args.levels:
            selector = StockSelector(session, policy=config.stock_policy.out_of_stock_policy)
            levels = selector.stock_levels(product_ids=args.products)
            if args.low_only:
                levels = tuple(level for level in levels if level.is_low)
            _print_levels(levels)
            return 0

        end = args.end or clock.today()
        start = args.start or end
        report = ReconciliationService(
            session,
            clock=clock,
            use_aggregates=config.aggregation.enabled and not args.no_aggregates,
        ).report(start, end, product_ids=args.products)
        _print_report(report, args.deviations_only)
        return 0
    except StockLedgerError as exc:
        print(f"ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 1
    finally:
        session.rollback()
        session.close()
        reset_engine()


if __name__ == "__main__":
    sys.exit(main())

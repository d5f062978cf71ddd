#!/usr/bin/env python3
"""
Run the batch scheduler that keeps daily inventory aggregates current.

On start the "daily-aggregation" schedule is created (or updated to match
the configuration): it fires once a day and rebuilds the last
``aggregation.lookback_days`` days, then repairs any rows marked stale.
The scheduler polls every ``scheduler.interval_seconds``.

Usage:
    python3 scripts/run_scheduler.py [--config PATH] [--database-url URL] [--once]

Examples:
    # Poll until interrupted
    python3 scripts/run_scheduler.py

    # Fire whatever is due right now and exit (for cron)
    python3 scripts/run_scheduler.py --once

Exit codes:
    0  success
    1  configuration or database error
    2  invalid command line
"""

from __future__ import annotations

import argparse
import os
import sys
import time
from pathlib import Path
from typing import Sequence
from uuid import UUID, uuid4

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

SCHEDULE_NAME = "daily-aggregation"
ACTOR_ENV = "STOCK_SCHEDULER_ACTOR_ID"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run scheduled inventory batch jobs.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", default=None, help="Configuration YAML (default: shipped default.yaml).")
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL (default: from configuration / DATABASE_URL).",
    )
    parser.add_argument("--once", action="store_true", help="Run a single tick and exit.")
    parser.add_argument(
        "--actor-id",
        type=UUID,
        default=None,
        help=f"Actor UUID recorded on jobs (default: {ACTOR_ENV} env or a new UUID).",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None, clock=None) -> int:
    args = _parse_args(argv)

    from stock_batch.domain.types import ScheduleFrequency
    from stock_batch.services.executor import BatchExecutor
    from stock_batch.services.scheduler import BatchScheduler, ensure_schedule
    from stock_batch.tasks import DAILY_AGGREGATION, default_task_registry
    from stock_config import get_active_config
    from stock_kernel.db.engine import get_session, init_engine_from_url, reset_engine
    from stock_kernel.domain.clock import SystemClock
    from stock_kernel.exceptions import StockLedgerError
    from stock_kernel.logging_config import configure_logging, get_logger

    logger = get_logger("scripts.run_scheduler")
    clock = clock or SystemClock()
    actor_id = args.actor_id or UUID(os.environ.get(ACTOR_ENV) or str(uuid4()))

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
        with get_session() as session:
            ensure_schedule(
                session,
                job_name=SCHEDULE_NAME,
                task_type=DAILY_AGGREGATION,
                frequency=ScheduleFrequency.DAILY,
                actor_id=actor_id,
                parameters={"days_back": config.aggregation.lookback_days},
            )
            session.commit()
    except Exception as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        reset_engine()
        return 1

    registry = default_task_registry(clock)
    scheduler = BatchScheduler(
        session_factory=get_session,
        executor_factory=lambda session: BatchExecutor(session, registry, clock),
        clock=clock,
        actor_id=actor_id,
        tick_interval_seconds=config.scheduler.interval_seconds,
    )

    try:
        if args.once:
            print(f"fired={scheduler.tick()}")
            return 0

        scheduler.start()
        print(f"Scheduler running every {config.scheduler.interval_seconds}s; Ctrl-C to stop.")
        try:
            while scheduler.is_running:
                time.sleep(1)
        except KeyboardInterrupt:
            logger.info("scheduler_interrupted")
        finally:
            scheduler.stop()
        return 0
    finally:
        reset_engine()


if __name__ == "__main__":
    sys.exit(main())

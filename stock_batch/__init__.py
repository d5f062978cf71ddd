"""
stock_batch -- Batch jobs and scheduling for stock maintenance work.

Hosts the daily movement aggregation as a batch task: each day is one item
run inside its own SAVEPOINT, so one failing day never discards the days
that succeeded, and a failed day is simply picked up again on the next run.

Architecture:
    stock_batch/ is a top-level package.  Nothing in stock_kernel/ or
    stock_services/ imports from stock_batch.  Callers that create the schema
    import stock_batch.models first so its tables are registered.

Guarantees:
    - SAVEPOINT isolation per item.
    - Job idempotency through a UNIQUE idempotency_key.
    - All timestamps come from an injected Clock.
    - Schedule evaluation is pure.
    - One running instance per job (job row locked while executing).
"""

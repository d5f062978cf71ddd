"""
Engine construction and the process-wide session factory.

Two backends are supported:

- PostgreSQL in production.  Connections run at READ COMMITTED; closing a
  document locks its header row with FOR UPDATE and stock cache rows are
  changed with single atomic UPDATE statements.
- SQLite for tests and local tooling.  An in-memory URL shares one
  connection between all sessions so they see the same schema.

Services never call into this module.  They are handed a Session by
whoever owns the transaction (a CLI, the scheduler, a test fixture).
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from stock_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_sessions: sessionmaker[Session] | None = None

POSTGRES_POOL = {
    "pool_size": 20,
    "max_overflow": 10,
    "pool_pre_ping": True,
    "pool_timeout": 30,
    "pool_recycle": 1800,
}


def make_engine(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """
    Build an engine for ``database_url`` without installing it globally.

    ``pool_options`` override POSTGRES_POOL and are ignored for SQLite.
    """
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(
            url,
            echo=echo,
            poolclass=QueuePool,
            isolation_level="READ COMMITTED",
            **{**POSTGRES_POOL, **pool_options},
        )

    in_memory = url.database in (None, "", ":memory:")
    engine = create_engine(
        url,
        echo=echo,
        connect_args={"check_same_thread": False},
        **({"poolclass": StaticPool} if in_memory else {}),
    )

    # pysqlite opens its transaction lazily on the first write, so a
    # SAVEPOINT issued before that would act as the outer transaction and
    # its RELEASE would commit.  Take over BEGIN ourselves.
    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, _record):
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _sqlite_begin(connection):
        connection.exec_driver_sql("BEGIN")

    return engine


def create_schema(engine: Engine) -> None:
    """
    Create every registered table and arm the ledger immutability guards.

    Packages with tables of their own (stock_batch.models) must already be
    imported.
    """
    from stock_kernel.db.base import Base
    from stock_kernel.db.immutability import register_immutability_listeners
    from stock_kernel.models import import_all_models

    import_all_models()
    Base.metadata.create_all(engine)
    register_immutability_listeners()


def init_engine_from_url(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """Install the engine and session factory used by ``get_session``."""
    global _engine, _sessions

    reset_engine()
    _engine = make_engine(database_url, echo=echo, **pool_options)
    _sessions = sessionmaker(bind=_engine, expire_on_commit=False)
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )
    return _engine


def get_session() -> Session:
    if _sessions is None:
        raise RuntimeError("No engine installed; call init_engine_from_url() first")
    return _sessions()


def reset_engine() -> None:
    """Dispose the installed engine, if any."""
    global _engine, _sessions

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _sessions = None

"""
Module: inventory_kernel.db.engine
Responsibility: Own the process-wide SQLAlchemy engine and session factory,
    and the transactional scope that services run inside.
Architecture position: Kernel > DB.  Imports db/base.py, and models/ only
    inside create_tables() so every table is registered first.

Invariants enforced:
    - One engine per process; calling init_engine_from_url() again replaces it.
    - In-memory SQLite shares a single connection (StaticPool), so every
      session in a test sees the same database.
    - SQLite connections enforce foreign keys.
    - session_scope() commits on success and rolls back on any exception.
    - Sessions keep loaded objects usable after commit (expire_on_commit=False).

Failure modes:
    - RuntimeError from get_engine / get_session / get_session_factory
      before init_engine_from_url().
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from inventory_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _sqlite_options(url: str) -> dict[str, Any]:
    options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if make_url(url).database in (None, "", ":memory:"):
        options["poolclass"] = StaticPool
    return options


def _enforce_sqlite_foreign_keys(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
) -> Engine:
    """
    Create the engine and session factory for ``database_url``.

    SQLite (file or ``sqlite://`` in memory) and PostgreSQL URLs are
    accepted; pool sizing applies to server databases only.
    """
    global _engine, _session_factory

    backend = make_url(database_url).get_backend_name()
    if backend == "sqlite":
        engine = create_engine(database_url, echo=echo, **_sqlite_options(database_url))
        _enforce_sqlite_foreign_keys(engine)
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            isolation_level="READ COMMITTED",
        )

    if _engine is not None:
        _engine.dispose()
    _engine = engine
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": engine.dialect.name})
    return engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _session_factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _session_factory


def get_session() -> Session:
    """A new session from the process-wide factory."""
    return get_session_factory()()


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """
    One transaction: commit on normal exit, roll back and re-raise otherwise.

    Usage::

        with session_scope() as session:
            SaleService(session).update_sale(user_id, sale_id, draft)
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception as exc:
        session.rollback()
        logger.warning("transaction_rolled_back", extra={"error": type(exc).__name__})
        raise
    finally:
        session.close()


def create_tables() -> None:
    from inventory_kernel.db.base import Base
    import inventory_kernel.models  # noqa: F401  (registers tables on Base.metadata)

    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})


def drop_tables() -> None:
    """Drop every table.  Tests and local resets only."""
    from inventory_kernel.db.base import Base

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None

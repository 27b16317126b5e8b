"""Database infrastructure for Social Tracker Core."""

from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, sessionmaker

from tracker_core.config import get_settings


def get_sync_engine():
    """Get synchronous database engine."""
    settings = get_settings()
    return create_engine(
        settings.mysql_url,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=False,
    )


# Session factories
_sync_engine = None
_sync_session_factory = None


def get_sync_session_factory() -> sessionmaker[Session]:
    """Get synchronous session factory (singleton)."""
    global _sync_engine, _sync_session_factory
    if _sync_session_factory is None:
        _sync_engine = get_sync_engine()
        _sync_session_factory = sessionmaker(
            bind=_sync_engine,
            autocommit=False,
            autoflush=False,
        )
    return _sync_session_factory


# =============================================================================
# INSERT-OR-IGNORE
# =============================================================================


def insert_ignore(session: Session, model: Any, values: dict[str, Any]) -> bool:
    """Insert a row unless it collides with an existing unique key.

    The statement is rendered per dialect (MySQL ``INSERT IGNORE``,
    PostgreSQL and SQLite ``ON CONFLICT DO NOTHING``) so the check and
    the write happen in one round trip.

    Args:
        session: Database session.
        model: Mapped model class whose table receives the row.
        values: Column values for the new row.

    Returns:
        True if this call inserted the row, False if it already existed.
    """
    # Core statements bypass autoflush, so pending ORM rows go out first
    session.flush()

    table = model.__table__
    dialect = session.get_bind().dialect.name

    if dialect == "mysql":
        stmt = mysql_insert(table).values(**values).prefix_with("IGNORE")
    elif dialect == "postgresql":
        stmt = pg_insert(table).values(**values).on_conflict_do_nothing()
    elif dialect == "sqlite":
        stmt = sqlite_insert(table).values(**values).on_conflict_do_nothing()
    else:
        raise NotImplementedError(f"insert_ignore is not supported for {dialect}")

    result = session.execute(stmt)
    return result.rowcount == 1

"""
Database Helper Utilities for Concurrency Control

Provides:
- Database dialect detection (PostgreSQL vs SQLite)
- Row locking helpers
- Commit wrapper that maps driver failures to IntegrationError
"""

import logging
from typing import Optional, TypeVar, Type
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from .exceptions import ConflictError, IntegrationError

logger = logging.getLogger(__name__)

T = TypeVar('T')


def is_postgres(db: Session) -> bool:
    """Check if the database is PostgreSQL"""
    try:
        dialect = db.bind.dialect.name
        return dialect == 'postgresql'
    except Exception:
        return False


def acquire_row_lock(
    db: Session,
    model: Type[T],
    filter_condition
) -> Optional[T]:
    """
    Acquire a row-level lock on a database record.

    Args:
        db: Database session
        model: SQLAlchemy model class
        filter_condition: Filter to find the row

    Returns:
        The locked model instance, or None if not found

    Example:
        room = acquire_row_lock(db, RoomType, RoomType.name == "standard")
    """
    query = db.query(model).filter(filter_condition)

    # Only PostgreSQL gets FOR UPDATE. SQLite has no row locks and pysqlite
    # opens the write transaction at the first INSERT/UPDATE, after the
    # availability SELECT, so two concurrent creates on a development
    # SQLite database can both pass the check.
    if is_postgres(db):
        query = query.with_for_update()

    return query.first()


def commit_or_raise(db: Session, operation: str) -> None:
    """
    Commit the session; on failure roll back and raise IntegrationError.

    Nothing from the failed unit of work survives, so callers never see
    partial state.
    """
    try:
        db.commit()
    except StaleDataError as e:
        db.rollback()
        logger.warning(f"Concurrent modification during {operation}: {e}")
        raise ConflictError(
            "Booking was modified concurrently, retry the operation",
            details={"operation": operation},
        ) from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database commit failed during {operation}: {e}")
        raise IntegrationError(
            f"Storage failure during {operation}",
            details={"operation": operation},
        ) from e

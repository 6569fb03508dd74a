"""Storage primitives for prompt records.

Every lookup here skips retired records unless told otherwise. Mutations only
flush; committing is left to the caller's unit of work.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from promptshelf.logging_config import get_logger
from promptshelf.models import PromptRecord
from promptshelf.services.alert_service import alert_error
from promptshelf.services.errors import (
    InvalidPromptStateError,
    PromptConflictError,
    PromptServiceError,
    PromptStorageError,
)
from promptshelf.services.query_engine import PagedResult, PromptQuery, apply_filters, apply_sort, paginate

logger = get_logger("prompt_store")

ACTIVE_INDEX = "uq_prompts_key_active"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@contextmanager
def unit_of_work(db: Session, operation: str, context: Optional[dict[str, Any]] = None) -> Iterator[None]:
    """Commit on success, roll back on any error.

    Service errors pass through untouched. Any other storage failure is
    logged with full context, alerted, and re-raised as an opaque
    PromptStorageError.
    """
    context = {"operation": operation, **(context or {})}
    try:
        yield
        db.commit()
    except PromptServiceError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Storage failure during {operation}", exc_info=True, extra={"context": context})
        alert_error(f"Storage failure during {operation}: {type(e).__name__}", context)
        raise PromptStorageError(context) from e


def _is_active_index_violation(error: IntegrityError) -> bool:
    message = str(error.orig)
    # PostgreSQL names the index; SQLite lists the indexed columns.
    return ACTIVE_INDEX in message or message.rstrip().endswith("prompts.prompt_key")


def _flush(db: Session, record: PromptRecord) -> None:
    try:
        db.flush()
    except IntegrityError as e:
        context = {"prompt_key": record.prompt_key, "version": record.version}
        if _is_active_index_violation(e):
            raise PromptConflictError(
                f"Another version of prompt '{record.prompt_key}' is already active", context
            ) from e
        raise PromptConflictError(
            f"Version '{record.version}' already exists for prompt '{record.prompt_key}'", context
        ) from e


def _live():
    return PromptRecord.deleted_at.is_(None)


def insert(db: Session, record: PromptRecord) -> PromptRecord:
    """Persist a new record. Raises PromptConflictError on a uniqueness violation."""
    if record.created_at is None:
        record.created_at = utcnow()
    db.add(record)
    _flush(db, record)
    return record


def find_by_id(db: Session, record_id: UUID, include_retired: bool = False) -> Optional[PromptRecord]:
    query = db.query(PromptRecord).filter(PromptRecord.id == record_id)
    if not include_retired:
        query = query.filter(_live())
    return query.first()


def find_by_key_version(db: Session, prompt_key: str, version: str) -> Optional[PromptRecord]:
    return (
        db.query(PromptRecord)
        .filter(PromptRecord.prompt_key == prompt_key, PromptRecord.version == version, _live())
        .first()
    )


def find_active_by_key(db: Session, prompt_key: str) -> Optional[PromptRecord]:
    return (
        db.query(PromptRecord)
        .filter(PromptRecord.prompt_key == prompt_key, PromptRecord.is_active.is_(True), _live())
        .first()
    )


def list_active_by_key(db: Session, prompt_key: str) -> list[PromptRecord]:
    """All live active records for a key, reloaded from the database."""
    return (
        db.query(PromptRecord)
        .populate_existing()
        .filter(PromptRecord.prompt_key == prompt_key, PromptRecord.is_active.is_(True), _live())
        .all()
    )


def list_by_key(db: Session, prompt_key: str, page: Optional[int] = 1, limit: Optional[int] = None) -> PagedResult:
    query = db.query(PromptRecord).filter(PromptRecord.prompt_key == prompt_key, _live())
    query = query.order_by(PromptRecord.created_at.desc(), PromptRecord.id.desc())
    return paginate(query, page, limit)


def list_filtered(
    db: Session,
    prompt_query: PromptQuery,
    page: Optional[int] = 1,
    limit: Optional[int] = None,
) -> PagedResult:
    dialect_name = db.get_bind().dialect.name
    query = apply_filters(db.query(PromptRecord).filter(_live()), prompt_query, dialect_name)
    query = apply_sort(query, prompt_query.sort_by, prompt_query.sort_order)
    return paginate(query, page, limit)


def set_active(db: Session, record: PromptRecord, value: bool) -> PromptRecord:
    if value and record.is_retired:
        raise InvalidPromptStateError(
            f"Retired prompt '{record.prompt_key}' version '{record.version}' cannot be activated",
            {"id": str(record.id), "prompt_key": record.prompt_key, "version": record.version},
        )
    record.is_active = value
    record.updated_at = utcnow()
    _flush(db, record)
    return record


def set_retired(db: Session, record: PromptRecord, timestamp: Optional[datetime] = None) -> PromptRecord:
    if record.is_retired:
        raise InvalidPromptStateError(
            f"Prompt '{record.id}' is already retired",
            {"id": str(record.id), "prompt_key": record.prompt_key, "version": record.version},
        )
    record.deleted_at = timestamp or utcnow()
    record.updated_at = record.deleted_at
    _flush(db, record)
    return record

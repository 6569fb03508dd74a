"""Public prompt operations: families, versions, activation and retirement.

Every function here is one unit of work: it commits on success and rolls
back before re-raising on failure.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from promptshelf.logging_config import get_logger
from promptshelf.models import PromptRecord
from promptshelf.services import activation, key_registry, prompt_store
from promptshelf.services.errors import InvalidPromptStateError, PromptConflictError, PromptNotFoundError
from promptshelf.services.prompt_store import unit_of_work, utcnow
from promptshelf.services.query_engine import PagedResult, PromptQuery

logger = get_logger("lifecycle_service")

VERSION_FORMAT = "%Y-%m-%d-%H-%M-%S"


@dataclass
class PromptPayload:
    model_name: str
    content: str
    created_by: str
    description: Optional[str] = None
    tags: list[str] = field(default_factory=list)


def generate_version(now: Optional[datetime] = None) -> str:
    """Timestamp version label, e.g. 2025-07-17-10-30-00 (UTC).

    Two calls in the same second produce the same label; for one key the
    second insert then fails as an ordinary version conflict.
    """
    return (now or utcnow()).strftime(VERSION_FORMAT)


def _build_record(prompt_key: str, version: str, payload: PromptPayload, is_active: bool) -> PromptRecord:
    return PromptRecord(
        prompt_key=prompt_key,
        version=version,
        is_active=is_active,
        created_at=utcnow(),
        model_name=payload.model_name,
        content=payload.content,
        description=payload.description,
        tags=list(payload.tags),
        created_by=payload.created_by,
    )


def create_family(
    db: Session,
    prompt_key: str,
    payload: PromptPayload,
    version: Optional[str] = None,
) -> PromptRecord:
    """Create the first revision of a new prompt key. It is always active."""
    version = version or generate_version()
    context = {"prompt_key": prompt_key, "version": version}
    exists_message = f"Prompt with key '{prompt_key}' already exists. Use create_version to add new versions."

    with unit_of_work(db, "create_family", context):
        if key_registry.exists_any(db, prompt_key):
            raise PromptConflictError(exists_message, context)
        try:
            record = prompt_store.insert(db, _build_record(prompt_key, version, payload, is_active=True))
        except PromptConflictError as e:
            # Lost the race against a concurrent create_family for the same key.
            raise PromptConflictError(exists_message, context) from e

    logger.info("Prompt family created", extra={"context": {**context, "id": str(record.id)}})
    return record


def create_version(
    db: Session,
    prompt_key: str,
    payload: PromptPayload,
    version: Optional[str] = None,
    activate: bool = False,
) -> PromptRecord:
    """Append a revision to an existing key, optionally making it active."""
    version = version or generate_version()
    context = {"prompt_key": prompt_key, "version": version}

    with unit_of_work(db, "create_version", context):
        if not key_registry.exists_any(db, prompt_key):
            raise PromptNotFoundError(f"Prompt with key '{prompt_key}' not found", context)
        if key_registry.exists_version(db, prompt_key, version):
            raise PromptConflictError(
                f"Version '{version}' already exists for prompt '{prompt_key}'", context
            )

        record = prompt_store.insert(db, _build_record(prompt_key, version, payload, is_active=False))
        if activate:
            activation.swap_active(db, record)

    logger.info(
        "Prompt version created",
        extra={"context": {**context, "id": str(record.id), "activated": activate}},
    )
    return record


def activate_version(db: Session, prompt_key: str, version: str) -> PromptRecord:
    return activation.activate(db, prompt_key, version)


def retire(db: Session, record_id: UUID) -> None:
    """Soft-delete an inactive revision.

    Raises PromptNotFoundError if the record is absent or already retired,
    InvalidPromptStateError if it is the active revision of its key.
    """
    context = {"id": str(record_id)}

    with unit_of_work(db, "retire", context):
        record = prompt_store.find_by_id(db, record_id)
        if record is None:
            raise PromptNotFoundError(f"Prompt with id '{record_id}' not found", context)

        # Serialize with activations so a record cannot be activated and retired at once.
        activation.acquire_key_lock(db, record.prompt_key)
        db.refresh(record)
        if record.is_retired:
            raise PromptNotFoundError(f"Prompt with id '{record_id}' not found", context)
        if record.is_active:
            raise InvalidPromptStateError(
                f"Cannot retire the active version '{record.version}' of prompt '{record.prompt_key}'. "
                "Activate another version first.",
                {**context, "prompt_key": record.prompt_key, "version": record.version},
            )

        prompt_store.set_retired(db, record)

    logger.info(
        "Prompt version retired",
        extra={"context": {**context, "prompt_key": record.prompt_key, "version": record.version}},
    )


def list_versions(
    db: Session,
    prompt_key: str,
    page: Optional[int] = 1,
    limit: Optional[int] = None,
) -> PagedResult:
    """All live revisions of a key, newest first."""
    with unit_of_work(db, "list_versions", {"prompt_key": prompt_key}):
        if not key_registry.exists_any(db, prompt_key):
            raise PromptNotFoundError(f"Prompt with key '{prompt_key}' not found", {"prompt_key": prompt_key})
        result = prompt_store.list_by_key(db, prompt_key, page, limit)
    return result


def query(
    db: Session,
    prompt_query: Optional[PromptQuery] = None,
    page: Optional[int] = 1,
    limit: Optional[int] = None,
) -> PagedResult:
    with unit_of_work(db, "query"):
        result = prompt_store.list_filtered(db, prompt_query or PromptQuery(), page, limit)
    return result


def get_active(db: Session, prompt_key: str) -> PromptRecord:
    with unit_of_work(db, "get_active", {"prompt_key": prompt_key}):
        record = prompt_store.find_active_by_key(db, prompt_key)
        if record is None:
            raise PromptNotFoundError(
                f"No active prompt found with key: {prompt_key}", {"prompt_key": prompt_key}
            )
    return record


def get_version(db: Session, prompt_key: str, version: str) -> PromptRecord:
    context = {"prompt_key": prompt_key, "version": version}
    with unit_of_work(db, "get_version", context):
        record = prompt_store.find_by_key_version(db, prompt_key, version)
        if record is None:
            raise PromptNotFoundError(
                f"Prompt with key '{prompt_key}' and version '{version}' not found", context
            )
    return record


def get_by_id(db: Session, record_id: UUID) -> PromptRecord:
    with unit_of_work(db, "get_by_id", {"id": str(record_id)}):
        record = prompt_store.find_by_id(db, record_id)
        if record is None:
            raise PromptNotFoundError(f"Prompt with id '{record_id}' not found", {"id": str(record_id)})
    return record

"""Active-revision swap for a prompt key.

Deactivating the old revision and activating the new one are two row
updates. They only look atomic because both run in one transaction that
holds a per-key lock:

- PostgreSQL: ``pg_advisory_xact_lock`` on a 64-bit hash of the key,
  released automatically at commit or rollback.
- SQLite: every transaction starts with ``BEGIN IMMEDIATE`` (see
  ``promptshelf.database``), so the database write lock already serializes
  all writers.

Two activations racing on the same key are applied one after the other; the
last to commit wins and exactly one revision ends up active.
"""

import hashlib

from sqlalchemy import text
from sqlalchemy.orm import Session

from promptshelf.config import settings
from promptshelf.logging_config import get_logger
from promptshelf.models import PromptRecord
from promptshelf.services import prompt_store
from promptshelf.services.errors import PromptNotFoundError

logger = get_logger("activation")


def key_lock_id(prompt_key: str) -> int:
    """Stable signed 64-bit advisory lock id for a prompt key."""
    digest = hashlib.sha256(prompt_key.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


def acquire_key_lock(db: Session, prompt_key: str) -> None:
    """Block until the current transaction is the only writer for prompt_key."""
    connection = db.connection()  # begins the transaction if it has not started yet
    if connection.dialect.name != "postgresql":
        return

    db.execute(
        text("SELECT set_config('lock_timeout', :timeout, true)"),
        {"timeout": f"{settings.activation_lock_timeout_ms}ms"},
    )
    db.execute(text("SELECT pg_advisory_xact_lock(:lock_id)"), {"lock_id": key_lock_id(prompt_key)})


def swap_active(db: Session, target: PromptRecord) -> tuple[bool, list[PromptRecord]]:
    """Make target the only active revision of its key.

    Must run inside the caller's transaction; nothing is committed here.
    Returns whether anything was written and the records that were
    deactivated. A target that is already the only active revision is left
    untouched.
    """
    acquire_key_lock(db, target.prompt_key)

    # State read before the lock may be stale, including the session's own copy.
    db.refresh(target)
    if target.is_retired:
        raise PromptNotFoundError(
            f"Prompt with key '{target.prompt_key}' and version '{target.version}' not found",
            {"prompt_key": target.prompt_key, "version": target.version},
        )

    deactivated = []
    for record in prompt_store.list_active_by_key(db, target.prompt_key):
        if record.id != target.id:
            prompt_store.set_active(db, record, False)
            deactivated.append(record)

    if target.is_active:
        return bool(deactivated), deactivated
    prompt_store.set_active(db, target, True)
    return True, deactivated


def activate(db: Session, prompt_key: str, version: str) -> PromptRecord:
    """Make (prompt_key, version) the active revision and commit.

    Activating the revision that is already active is a no-op. That is
    decided under the key lock against the stored state.
    """
    context = {"prompt_key": prompt_key, "version": version}

    with prompt_store.unit_of_work(db, "activate_version", context):
        target = prompt_store.find_by_key_version(db, prompt_key, version)
        if target is None:
            raise PromptNotFoundError(
                f"Prompt with key '{prompt_key}' and version '{version}' not found", context
            )
        changed, deactivated = swap_active(db, target)

    if not changed:
        logger.debug("Version already active", extra={"context": context})
        return target

    logger.info(
        "Prompt version activated",
        extra={"context": {**context, "deactivated": [r.version for r in deactivated]}},
    )
    return target

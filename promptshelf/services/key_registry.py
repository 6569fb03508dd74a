from sqlalchemy.orm import Session

from promptshelf.models import PromptRecord


def _live_key_query(db: Session, prompt_key: str):
    return db.query(PromptRecord.id).filter(
        PromptRecord.prompt_key == prompt_key,
        PromptRecord.deleted_at.is_(None),
    )


def exists_any(db: Session, prompt_key: str) -> bool:
    """True if the key has at least one non-retired revision."""
    return bool(db.query(_live_key_query(db, prompt_key).exists()).scalar())


def exists_active(db: Session, prompt_key: str) -> bool:
    """True if a non-retired revision of the key is active."""
    query = _live_key_query(db, prompt_key).filter(PromptRecord.is_active.is_(True))
    return bool(db.query(query.exists()).scalar())


def exists_version(db: Session, prompt_key: str, version: str) -> bool:
    query = _live_key_query(db, prompt_key).filter(PromptRecord.version == version)
    return bool(db.query(query.exists()).scalar())

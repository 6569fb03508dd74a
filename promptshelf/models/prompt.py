import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, String, Text, Uuid, text
from sqlalchemy.dialects.postgresql import JSONB

from promptshelf.database import Base

LIVE_ROWS = "deleted_at IS NULL"
LIVE_ACTIVE_ROWS = "is_active AND deleted_at IS NULL"


class PromptRecord(Base):
    __tablename__ = "prompts"
    __table_args__ = (
        # (prompt_key, version) unique among non-retired revisions
        Index(
            "uq_prompts_key_version_live",
            "prompt_key",
            "version",
            unique=True,
            postgresql_where=text(LIVE_ROWS),
            sqlite_where=text(LIVE_ROWS),
        ),
        # at most one active, non-retired revision per key
        Index(
            "uq_prompts_key_active",
            "prompt_key",
            unique=True,
            postgresql_where=text(LIVE_ACTIVE_ROWS),
            sqlite_where=text(LIVE_ACTIVE_ROWS),
        ),
        Index("idx_prompts_key", "prompt_key"),
        Index("idx_prompts_model", "model_name"),
        Index("idx_prompts_created_at", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    prompt_key = Column(String(255), nullable=False)
    version = Column(String(50), nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    model_name = Column(String(100), nullable=False)
    content = Column(Text, nullable=False)
    description = Column(Text)
    tags = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=list)
    created_by = Column(String(255), nullable=False)

    updated_at = Column(DateTime(timezone=True))
    deleted_at = Column(DateTime(timezone=True))  # set once on retirement, never cleared

    @property
    def is_retired(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<PromptRecord {self.prompt_key}@{self.version} active={self.is_active}>"

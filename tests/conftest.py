import os
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

# Must be set before promptshelf.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ALERT_WEBHOOK_URL", "")

from sqlalchemy.orm import sessionmaker

from promptshelf.database import create_db_engine, init_db
from promptshelf.models import PromptRecord
from promptshelf.services.lifecycle_service import PromptPayload

BASE_TIME = datetime(2025, 7, 17, 10, 30, tzinfo=timezone.utc)


@pytest.fixture
def mock_db():
    """Mock database session."""
    return Mock()


@pytest.fixture
def engine(tmp_path):
    """SQLite database file with the prompts schema, one per test."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'prompts.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def payload():
    return PromptPayload(
        model_name="GPT-4o",
        content="Hello",
        created_by="test@example.com",
        description="Support agent prompt",
        tags=["support", "customer-service"],
    )


@pytest.fixture
def make_record():
    """Build (not persist) a record; minutes offsets created_at from BASE_TIME."""

    def _make(prompt_key="AGENT", version="1.0.0", is_active=False, minutes=0, **fields):
        values = {
            "model_name": "GPT-4o",
            "content": f"{prompt_key} {version}",
            "created_by": "test@example.com",
            "tags": [],
        }
        values.update(fields)
        return PromptRecord(
            prompt_key=prompt_key,
            version=version,
            is_active=is_active,
            created_at=BASE_TIME + timedelta(minutes=minutes),
            **values,
        )

    return _make

import random
import threading
from functools import partial
from unittest.mock import Mock, patch

import pytest
from sqlalchemy.exc import OperationalError

from promptshelf.models import PromptRecord
from promptshelf.services import activation, lifecycle_service, prompt_store
from promptshelf.services.errors import PromptNotFoundError, PromptStorageError


@pytest.fixture
def family(db_session, make_record):
    """AGENT with 1.0.0 active and 2.0.0 / 3.0.0 inactive, committed."""
    records = {
        "1.0.0": prompt_store.insert(db_session, make_record(version="1.0.0", is_active=True, minutes=0)),
        "2.0.0": prompt_store.insert(db_session, make_record(version="2.0.0", minutes=1)),
        "3.0.0": prompt_store.insert(db_session, make_record(version="3.0.0", minutes=2)),
    }
    db_session.commit()
    return records


def _active_versions(session_factory, prompt_key="AGENT"):
    session = session_factory()
    try:
        rows = (
            session.query(PromptRecord)
            .filter(
                PromptRecord.prompt_key == prompt_key,
                PromptRecord.is_active.is_(True),
                PromptRecord.deleted_at.is_(None),
            )
            .all()
        )
        return [r.version for r in rows]
    finally:
        session.close()


class TestKeyLock:
    def test_lock_id_is_stable_signed_64_bit(self):
        lock_id = activation.key_lock_id("AGENT")

        assert lock_id == activation.key_lock_id("AGENT")
        assert -(2**63) <= lock_id < 2**63
        assert lock_id != activation.key_lock_id("AGENT_2")

    def test_postgres_takes_advisory_lock_with_timeout(self):
        db = Mock()
        db.connection.return_value.dialect.name = "postgresql"

        activation.acquire_key_lock(db, "AGENT")

        timeout_call, lock_call = db.execute.call_args_list
        assert "lock_timeout" in str(timeout_call.args[0])
        assert "pg_advisory_xact_lock" in str(lock_call.args[0])
        assert lock_call.args[1] == {"lock_id": activation.key_lock_id("AGENT")}

    def test_sqlite_relies_on_immediate_transaction(self):
        db = Mock()
        db.connection.return_value.dialect.name = "sqlite"

        activation.acquire_key_lock(db, "AGENT")

        db.connection.assert_called_once()
        db.execute.assert_not_called()


class TestActivate:
    def test_swaps_active_version(self, db_session, session_factory, family):
        record = activation.activate(db_session, "AGENT", "2.0.0")

        assert record.id == family["2.0.0"].id
        assert record.is_active is True
        assert _active_versions(session_factory) == ["2.0.0"]

    def test_already_active_is_noop(self, db_session, session_factory, family):
        record = activation.activate(db_session, "AGENT", "1.0.0")

        assert record.id == family["1.0.0"].id
        assert record.updated_at is None
        assert _active_versions(session_factory) == ["1.0.0"]

    def test_unknown_version_not_found(self, db_session, session_factory, family):
        with pytest.raises(PromptNotFoundError) as exc:
            activation.activate(db_session, "AGENT", "9.9.9")

        assert "'9.9.9'" in str(exc.value)
        assert _active_versions(session_factory) == ["1.0.0"]

    def test_unknown_key_not_found(self, db_session, family):
        with pytest.raises(PromptNotFoundError):
            activation.activate(db_session, "MISSING", "1.0.0")

    def test_retired_version_not_found(self, db_session, session_factory, family):
        prompt_store.set_retired(db_session, family["2.0.0"])
        db_session.commit()

        with pytest.raises(PromptNotFoundError):
            activation.activate(db_session, "AGENT", "2.0.0")
        assert _active_versions(session_factory) == ["1.0.0"]

    def test_version_retired_after_lookup_not_found(self, session_factory, family):
        first = session_factory()
        second = session_factory()
        try:
            target = prompt_store.find_by_key_version(first, "AGENT", "2.0.0")
            first.commit()

            stale = prompt_store.find_by_id(second, target.id)
            prompt_store.set_retired(second, stale)
            second.commit()

            with pytest.raises(PromptNotFoundError):
                activation.swap_active(first, target)
            first.rollback()
        finally:
            first.close()
            second.close()

        assert _active_versions(session_factory) == ["1.0.0"]

    def test_session_copy_still_active_after_another_activation(self, session_factory, payload):
        caller = session_factory()
        other = session_factory()
        try:
            lifecycle_service.create_family(caller, "AGENT", payload, version="1")
            lifecycle_service.create_version(caller, "AGENT", payload, version="2")
            lifecycle_service.activate_version(other, "AGENT", "2")

            # caller still holds version 1 loaded as active
            record = activation.activate(caller, "AGENT", "1")
        finally:
            caller.close()
            other.close()

        assert record.is_active is True
        assert record.updated_at is not None
        assert _active_versions(session_factory) == ["1"]

    @patch("promptshelf.services.prompt_store.alert_error")
    def test_failure_mid_swap_rolls_back(self, mock_alert, db_session, session_factory, family):
        real_set_active = prompt_store.set_active

        def fail_on_activate(db, record, value):
            if value:
                raise OperationalError("UPDATE prompts", {}, Exception("lock timeout"))
            return real_set_active(db, record, value)

        with patch("promptshelf.services.prompt_store.set_active", side_effect=fail_on_activate):
            with pytest.raises(PromptStorageError):
                activation.activate(db_session, "AGENT", "2.0.0")

        # The deactivation of 1.0.0 was flushed but never committed.
        assert _active_versions(session_factory) == ["1.0.0"]
        mock_alert.assert_called_once()


class TestConcurrentActivation:
    def _run_round(self, session_factory, calls):
        barrier = threading.Barrier(len(calls))
        errors = []

        def worker(call):
            session = session_factory()
            try:
                barrier.wait()
                call(session)
            except Exception as e:
                errors.append(e)
            finally:
                session.close()

        threads = [threading.Thread(target=worker, args=(call,)) for call in calls]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)
        return errors

    def _activations(self, session_factory, versions):
        calls = [partial(activation.activate, prompt_key="AGENT", version=v) for v in versions]
        return self._run_round(session_factory, calls)

    def test_two_concurrent_activations_leave_exactly_one_active(self, session_factory, family):
        errors = self._activations(session_factory, ["1.0.0", "2.0.0"])

        assert errors == []
        active = _active_versions(session_factory)
        assert len(active) == 1
        assert active[0] in {"1.0.0", "2.0.0"}

    def test_many_rounds_never_break_single_active(self, session_factory, family):
        rng = random.Random(7)
        for _ in range(5):
            requested = [rng.choice(["1.0.0", "2.0.0", "3.0.0"]) for _ in range(4)]

            errors = self._activations(session_factory, requested)

            assert errors == []
            active = _active_versions(session_factory)
            assert len(active) == 1
            assert active[0] in set(requested)

    def test_create_and_activate_races_with_activation(self, session_factory, family, payload):
        calls = [
            partial(lifecycle_service.create_version, prompt_key="AGENT", payload=payload,
                    version="4.0.0", activate=True),
            partial(activation.activate, prompt_key="AGENT", version="2.0.0"),
        ]

        errors = self._run_round(session_factory, calls)

        assert errors == []
        active = _active_versions(session_factory)
        assert len(active) == 1
        assert active[0] in {"2.0.0", "4.0.0"}

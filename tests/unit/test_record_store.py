"""
Unit tests for session record persistence

These tests run against a temporary SQLite database and cover the
lookup window, in-place updates and bulk expiry.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import inspect

from sessionstore.core.exceptions import RecordNotFoundError, StorageError
from sessionstore.db.base import Base
from sessionstore.db.models.session_record import SessionRecord

pytestmark = pytest.mark.unit

NOW = datetime(2026, 1, 1, 12, 0, 0)


def make_record(session_id: str, expires_in: int = 3600, data: str = "payload") -> SessionRecord:
    return SessionRecord(
        session_id=session_id,
        data=data,
        created_at=NOW,
        updated_at=NOW,
        expires_at=NOW + timedelta(seconds=expires_in),
    )


class TestSchema:
    """Test table creation"""

    def test_table_and_indexes_created(self, engine, record_store):
        inspector = inspect(engine)
        assert "sessionrecord" in inspector.get_table_names()

        index_names = {index["name"] for index in inspector.get_indexes("sessionrecord")}
        assert "ix_sessionrecord_session_id" in index_names
        assert "ix_sessionrecord_expires_at" in index_names

    def test_ensure_schema_is_idempotent(self, record_store):
        record_store.ensure_schema()
        record_store.ensure_schema()


class TestInsertAndLookup:
    """Test insert and lookup by identifier"""

    def test_insert_assigns_increasing_keys(self, record_store):
        first = record_store.insert(make_record("AAAA"))
        second = record_store.insert(make_record("BBBB"))
        assert second > first

    def test_keys_are_never_reused(self, record_store):
        first = record_store.insert(make_record("AAAA"))
        record_store.delete(first)
        second = record_store.insert(make_record("BBBB"))
        assert second > first

    def test_find_live_record(self, record_store):
        record_store.insert(make_record("AAAA", data="alice"))

        found = record_store.find_by_identifier_not_expired("AAAA", NOW)
        assert found is not None
        assert found.session_id == "AAAA"
        assert found.data == "alice"

    def test_find_unknown_identifier(self, record_store):
        assert record_store.find_by_identifier_not_expired("missing", NOW) is None

    def test_expired_record_not_returned(self, record_store):
        record_store.insert(make_record("AAAA", expires_in=60))

        assert record_store.find_by_identifier_not_expired("AAAA", NOW + timedelta(seconds=59)) is not None
        # Dead at the deadline itself
        assert record_store.find_by_identifier_not_expired("AAAA", NOW + timedelta(seconds=60)) is None
        # Still physically present until swept
        assert record_store.count_by_identifier("AAAA") == 1


class TestUpdateAndDelete:
    """Test in-place update and removal"""

    def test_update_overwrites_payload_and_timestamps(self, record_store):
        key = record_store.insert(make_record("AAAA", data="old"))
        later = NOW + timedelta(minutes=5)

        record_store.update(key, SessionRecord(
            data="new", updated_at=later, expires_at=later + timedelta(hours=1)
        ))

        found = record_store.find_by_identifier_not_expired("AAAA", later)
        assert found.id == key
        assert found.data == "new"
        assert found.created_at == NOW
        assert found.updated_at == later
        assert found.expires_at == later + timedelta(hours=1)

    def test_update_missing_record(self, record_store):
        with pytest.raises(RecordNotFoundError):
            record_store.update(999, make_record("AAAA"))

    def test_delete(self, record_store):
        key = record_store.insert(make_record("AAAA"))
        record_store.delete(key)
        assert record_store.count_by_identifier("AAAA") == 0

    def test_delete_missing_record(self, record_store):
        with pytest.raises(RecordNotFoundError):
            record_store.delete(999)


class TestDeleteExpired:
    """Test bulk removal of expired records"""

    def test_removes_only_expired(self, record_store):
        record_store.insert(make_record("OLD1", expires_in=-10))
        record_store.insert(make_record("OLD2", expires_in=0))
        record_store.insert(make_record("LIVE", expires_in=3600))

        assert record_store.delete_expired(NOW) == 2
        assert record_store.count_by_identifier("OLD1") == 0
        assert record_store.count_by_identifier("OLD2") == 0
        assert record_store.count_by_identifier("LIVE") == 1

    def test_second_sweep_removes_nothing(self, record_store):
        record_store.insert(make_record("OLD1", expires_in=-10))

        assert record_store.delete_expired(NOW) == 1
        assert record_store.delete_expired(NOW) == 0


class TestStorageFailures:
    """Test that database errors surface as StorageError"""

    def test_missing_table_raises_storage_error(self, engine, record_store):
        Base.metadata.drop_all(bind=engine)

        with pytest.raises(StorageError):
            record_store.insert(make_record("AAAA"))
        with pytest.raises(StorageError):
            record_store.find_by_identifier_not_expired("AAAA", NOW)
        with pytest.raises(StorageError):
            record_store.delete_expired(NOW)

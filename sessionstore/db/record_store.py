"""Persistence of session records.

Maps the internal sequence key to a SessionRecord and offers the lookups the
lifecycle manager needs. Every call runs in its own transaction; atomicity of
single-record writes is left to the database engine.
"""
from __future__ import annotations

from datetime import datetime
from threading import Lock
from typing import Optional
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from sessionstore.core.exceptions import RecordNotFoundError, StorageError
from sessionstore.db.base import Base
from sessionstore.db.models.session_record import SessionRecord
from sessionstore.db.session import create_session_factory, get_db_sync

logger = logging.getLogger(__name__)


class SessionRecordStore:
    """CRUD for SessionRecord rows on a single engine."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._factory = create_session_factory(engine)
        self._schema_ready = False
        self._schema_lock = Lock()

    def ensure_schema(self) -> None:
        """Ensure the sessionrecord table exists in a thread-safe manner."""
        # Fast path
        if self._schema_ready:
            return

        with self._schema_lock:
            # Double-check after acquiring lock
            if self._schema_ready:
                return
            try:
                Base.metadata.create_all(
                    bind=self._engine,
                    tables=[SessionRecord.__table__],
                    checkfirst=True,
                )
            except SQLAlchemyError as e:
                logger.error(f"Failed to initialize session record table: {e}")
                raise StorageError(f"Failed to initialize session record table: {e}") from e
            self._schema_ready = True
            logger.debug("Session record table initialized successfully")

    def insert(self, record: SessionRecord) -> int:
        """
        Persist a new record.

        Args:
            record: Transient record; its sequence key is assigned here

        Returns:
            The sequence key of the stored record

        Raises:
            StorageError: If the database write fails
        """
        self.ensure_schema()
        with get_db_sync(self._factory) as db:
            try:
                db.add(record)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to insert session record: {e}")
                raise StorageError(f"Failed to insert session record: {e}") from e
            return record.id

    def update(self, key: int, record: SessionRecord) -> None:
        """
        Overwrite the payload and timestamps of an existing record.

        The identifier and creation time of the stored row are left untouched.

        Raises:
            RecordNotFoundError: If no record has this key
            StorageError: If the database write fails
        """
        self.ensure_schema()
        with get_db_sync(self._factory) as db:
            try:
                row = db.get(SessionRecord, key)
                if row is None:
                    raise RecordNotFoundError(f"No session record with key {key}")
                row.data = record.data
                row.updated_at = record.updated_at
                row.expires_at = record.expires_at
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to update session record {key}: {e}")
                raise StorageError(f"Failed to update session record {key}: {e}") from e

    def delete(self, key: int) -> None:
        """
        Remove a record.

        Raises:
            RecordNotFoundError: If no record has this key
            StorageError: If the database write fails
        """
        self.ensure_schema()
        with get_db_sync(self._factory) as db:
            try:
                row = db.get(SessionRecord, key)
                if row is None:
                    raise RecordNotFoundError(f"No session record with key {key}")
                db.delete(row)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to delete session record {key}: {e}")
                raise StorageError(f"Failed to delete session record {key}: {e}") from e

    def find_by_identifier_not_expired(
        self, identifier: str, now: datetime
    ) -> Optional[SessionRecord]:
        """
        Return the live record for an identifier.

        Returns:
            The record, or None if it is absent or its deadline has passed

        Raises:
            StorageError: If the database read fails
        """
        self.ensure_schema()
        with get_db_sync(self._factory) as db:
            try:
                return db.scalar(
                    select(SessionRecord)
                    .where(SessionRecord.session_id == identifier)
                    .where(SessionRecord.expires_at > now)
                    .order_by(SessionRecord.id.desc())
                    .limit(1)
                )
            except SQLAlchemyError as e:
                logger.error(f"Session record lookup failed: {e}")
                raise StorageError(f"Session record lookup failed: {e}") from e

    def count_by_identifier(self, identifier: str) -> int:
        """Count records for an identifier, expired or not."""
        self.ensure_schema()
        with get_db_sync(self._factory) as db:
            try:
                return db.scalar(
                    select(func.count())
                    .select_from(SessionRecord)
                    .where(SessionRecord.session_id == identifier)
                ) or 0
            except SQLAlchemyError as e:
                raise StorageError(f"Session record count failed: {e}") from e

    def delete_expired(self, now: datetime) -> int:
        """
        Bulk-remove every record whose deadline is at or before now.

        Returns:
            Number of records removed

        Raises:
            StorageError: If the database write fails
        """
        self.ensure_schema()
        with get_db_sync(self._factory) as db:
            try:
                result = db.execute(
                    delete(SessionRecord).where(SessionRecord.expires_at <= now)
                )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to delete expired session records: {e}")
                raise StorageError(f"Failed to delete expired session records: {e}") from e
            return result.rowcount or 0

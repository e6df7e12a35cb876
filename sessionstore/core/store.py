"""Server-side session store backed by the session record table.

The cookie only ever carries an authenticated, random session identifier. The
session values live in the database, encoded with the same keys, and are
looked up by that identifier on every request.
"""
from __future__ import annotations

import base64
import logging
import secrets
import threading
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from sqlalchemy.engine import Engine
from starlette.requests import Request
from starlette.responses import Response

from sessionstore.core.config import DEFAULT_MAX_AGE
from sessionstore.core.exceptions import DecodeError, InvalidStateError, RecordNotFoundError, StorageError
from sessionstore.core.sessions import CookieOptions, Session, get_registry
from sessionstore.core.sweeper import SessionSweeper, run_periodic_sweep
from sessionstore.core.utils.encryption import (
    DEFAULT_KDF_ITERATIONS,
    DEFAULT_SALT,
    KeyMaterial,
    codecs_from_pairs,
    decode_multi,
    encode_multi,
)
from sessionstore.core.utils.logging_config import log_security_event
from sessionstore.db.models.session_record import SessionRecord
from sessionstore.db.record_store import SessionRecordStore
from sessionstore.db.session import create_db_engine

if TYPE_CHECKING:  # pragma: no cover
    from sessionstore.core.config import Settings

logger = logging.getLogger(__name__)

# Reserved session value overriding the record's update time
MODIFIED_KEY = "modified"

SESSION_ID_BYTES = 32

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    """Current time as naive UTC, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_session_id(length: int = SESSION_ID_BYTES) -> str:
    """Random identifier in unpadded base-32, safe for cookies and URLs."""
    return base64.b32encode(secrets.token_bytes(length)).decode("ascii").rstrip("=")


class DatabaseSessionStore:
    """Session store keeping session values in the database."""

    def __init__(
        self,
        engine: Engine,
        *key_pairs: Optional[KeyMaterial],
        max_age: int = DEFAULT_MAX_AGE,
        options: Optional[CookieOptions] = None,
        salt: KeyMaterial = DEFAULT_SALT,
        iterations: int = DEFAULT_KDF_ITERATIONS,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the store.

        Args:
            engine: Engine of the database holding the session records
            key_pairs: hash_key, block_key, hash_key, block_key... The first
                pair encodes, all pairs are tried when decoding. A block key
                of None signs without encrypting.
            max_age: Default cookie and record lifetime in seconds
            options: Store-wide cookie options, copied into every session
            salt: PBKDF2 salt for key derivation
            iterations: PBKDF2 iteration count
            clock: Source of naive UTC timestamps for records
        """
        if not key_pairs or not key_pairs[0]:
            raise ValueError("at least one hash key is required")

        self.codecs = codecs_from_pairs(*key_pairs, salt=salt, iterations=iterations)
        # Payload tokens never leave the server, the record deadline bounds them
        self._payload_codecs = codecs_from_pairs(*key_pairs, salt=salt, iterations=iterations)
        for codec in self._payload_codecs:
            codec.set_max_age(0)
            codec.set_max_length(0)

        self.options = options.model_copy() if options is not None else CookieOptions()
        self.records = SessionRecordStore(engine)
        self._clock = clock
        self.set_default_max_age(max_age)

    @classmethod
    def from_settings(cls, settings: "Settings", engine: Optional[Engine] = None) -> "DatabaseSessionStore":
        """Build a store from application settings."""
        if settings.uses_insecure_secret():
            logger.warning(
                "Session cookies are signed with the default SECRET_KEY; "
                "set SESSION_KEYS or SECRET_KEY in production"
            )
        if engine is None:
            engine = create_db_engine(settings.DATABASE_URL)

        store = cls(
            engine,
            *settings.key_pairs(),
            max_age=settings.SESSION_MAX_AGE,
            options=CookieOptions(**settings.cookie_options()),
            salt=settings.SESSION_KEY_SALT,
            iterations=settings.ENCRYPTION_KDF_ITERATIONS,
        )
        store.set_max_length(settings.SESSION_MAX_LENGTH)
        return store

    def get(self, request: Request, name: str) -> Session:
        """
        Register and return the session for the given name.

        Calling it again during the same request returns the same object.
        """
        return get_registry(request).get(self, name)

    def new(self, request: Request, name: str) -> Session:
        """
        Return a session for the given name without registering it.

        A missing, forged or expired cookie, or a missing or expired record,
        yields a fresh session with is_new set. Only storage failures raise.

        Raises:
            StorageError: If the record lookup fails
        """
        session = Session(self, name, self.options.model_copy())

        token = request.cookies.get(name)
        if not token:
            return session

        session_id = self._decode_identifier(name, token)
        if session_id is None:
            return session

        values = self._load(name, session_id)
        if values is None:
            return session

        session.id = session_id
        session.values = values
        session.is_new = False
        return session

    def save(self, request: Request, response: Response, session: Session) -> None:
        """
        Persist the session and set its cookie on the response.

        A negative max_age deletes the record and expires the cookie.

        Raises:
            EncodingError: If the values or identifier cannot be encoded
            InvalidStateError: If the reserved modified value is not a datetime
            StorageError: If the database write fails
        """
        if session.options.max_age < 0:
            self._destroy(session)
            self._set_cookie(response, session, "")
            return

        payload = encode_multi(session.name, session.values, self._payload_codecs)

        now = self._clock()
        updated_at = self._modified_time(session, now)
        expires_at = updated_at + timedelta(seconds=self._lifetime(session))

        record = None
        if session.id:
            record = self.records.find_by_identifier_not_expired(session.id, now)

        if record is not None:
            cookie_value = encode_multi(session.name, record.session_id, self.codecs)
            try:
                self.records.update(
                    record.id,
                    SessionRecord(data=payload, updated_at=updated_at, expires_at=expires_at),
                )
            except RecordNotFoundError:
                logger.info(f"Session record for cookie {session.name} vanished before update")
                record = None

        if record is None:
            session_id = generate_session_id()
            cookie_value = encode_multi(session.name, session_id, self.codecs)
            self.records.insert(
                SessionRecord(
                    session_id=session_id,
                    data=payload,
                    created_at=now,
                    updated_at=updated_at,
                    expires_at=expires_at,
                )
            )
            session.id = session_id
            logger.debug(f"Created session record for cookie {session.name}")

        self._set_cookie(response, session, cookie_value)

    def save_all(self, request: Request, response: Response) -> None:
        """Save every session registered on the request."""
        get_registry(request).save_all(response)

    def set_default_max_age(self, age: int) -> None:
        """
        Set the default lifetime of new sessions and of cookie tokens.

        Individual sessions can be deleted by setting options.max_age = -1
        for that session.
        """
        self.options.max_age = age
        for codec in self.codecs:
            codec.set_max_age(age)

    def set_max_length(self, length: int) -> None:
        """Limit the length of encoded cookie values. 0 disables the limit."""
        for codec in self.codecs:
            codec.set_max_length(length)

    def sweep(self) -> int:
        """Remove expired records once, returning how many were removed."""
        try:
            removed = self.records.delete_expired(self._clock())
        except StorageError:
            logger.exception("Failed to sweep expired session records")
            return 0
        if removed:
            logger.info(f"Removed {removed} expired session records", extra={"removed": removed})
        return removed

    def run_periodic_sweep(self, interval: float, stop_event: threading.Event) -> None:
        """Sweep every interval seconds until stop_event is set. Blocks."""
        run_periodic_sweep(self.sweep, interval, stop_event)

    def start_sweeper(self, interval: float) -> SessionSweeper:
        """Start sweeping on a background thread."""
        sweeper = SessionSweeper(self.sweep, interval)
        sweeper.start()
        return sweeper

    def _decode_identifier(self, name: str, token: str) -> Optional[str]:
        try:
            session_id = decode_multi(name, token, self.codecs)
        except DecodeError as e:
            log_security_event(
                "session_cookie_rejected",
                f"Session cookie {name} failed validation",
                level=logging.WARNING,
                extra_data={"session_name": name, "reason": str(e)},
            )
            return None

        if not isinstance(session_id, str) or not session_id:
            logger.warning(f"Session cookie {name} carried an invalid identifier")
            return None
        return session_id

    def _load(self, name: str, session_id: str) -> Optional[Dict[str, Any]]:
        record = self.records.find_by_identifier_not_expired(session_id, self._clock())
        if record is None:
            logger.debug(f"No live session record for cookie {name}")
            return None

        try:
            values = decode_multi(name, record.data, self._payload_codecs)
        except DecodeError:
            logger.warning(f"Stored payload for cookie {name} could not be decoded")
            return None

        if not isinstance(values, dict):
            logger.warning(f"Stored payload for cookie {name} is not a mapping")
            return None
        return values

    def _destroy(self, session: Session) -> None:
        if not session.id:
            return

        record = self.records.find_by_identifier_not_expired(session.id, self._clock())
        if record is None:
            return
        try:
            self.records.delete(record.id)
        except RecordNotFoundError:
            return
        log_security_event(
            "session_destroyed",
            f"Session record for cookie {session.name} deleted",
            extra_data={"session_name": session.name},
        )

    def _modified_time(self, session: Session, now: datetime) -> datetime:
        if MODIFIED_KEY not in session.values:
            return now

        modified = session.values[MODIFIED_KEY]
        if not isinstance(modified, datetime):
            raise InvalidStateError(
                f"Session value {MODIFIED_KEY!r} must be a datetime, got {type(modified).__name__}"
            )
        if modified.tzinfo is not None:
            modified = modified.astimezone(timezone.utc).replace(tzinfo=None)
        return modified

    def _lifetime(self, session: Session) -> int:
        if session.options.max_age > 0:
            return session.options.max_age
        if self.options.max_age > 0:
            return self.options.max_age
        return DEFAULT_MAX_AGE

    def _set_cookie(self, response: Response, session: Session, value: str) -> None:
        options = session.options
        max_age: Optional[int] = None
        expires: Any = None
        if options.max_age < 0:
            max_age = options.max_age
            expires = _EPOCH
        elif options.max_age > 0:
            max_age = options.max_age
            expires = options.max_age

        response.set_cookie(
            key=session.name,
            value=value,
            max_age=max_age,
            expires=expires,
            path=options.path,
            domain=options.domain,
            secure=options.secure,
            httponly=options.http_only,
            samesite=options.same_site,
        )

"""Server-side session store: session values in the database, only an
authenticated random identifier in the cookie."""

from sessionstore.core.exceptions import (
    DecodeError,
    EncodingError,
    InvalidStateError,
    RecordNotFoundError,
    SessionStoreError,
    StorageError,
)
from sessionstore.core.sessions import CookieOptions, Session
from sessionstore.core.store import DatabaseSessionStore, generate_session_id
from sessionstore.core.sweeper import SessionSweeper

__all__ = [
    "CookieOptions",
    "DatabaseSessionStore",
    "DecodeError",
    "EncodingError",
    "InvalidStateError",
    "RecordNotFoundError",
    "Session",
    "SessionStoreError",
    "SessionSweeper",
    "StorageError",
    "generate_session_id",
]

"""Exceptions raised by the session store."""


class SessionStoreError(Exception):
    """Base class for all session store errors"""
    pass


class DecodeError(SessionStoreError):
    """Raised when a token fails authentication, has expired or cannot be parsed"""
    pass


class EncodingError(SessionStoreError):
    """Raised when session values or identifiers cannot be encoded"""
    pass


class StorageError(SessionStoreError):
    """Raised when the underlying database operation fails"""
    pass


class RecordNotFoundError(SessionStoreError):
    """Raised when a session record does not exist"""
    pass


class InvalidStateError(SessionStoreError):
    """Raised when session values violate an internal invariant"""
    pass

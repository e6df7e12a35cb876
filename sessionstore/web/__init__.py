"""FastAPI integration for the database session store."""

from sessionstore.web.dependencies import session_dependency
from sessionstore.web.middleware import SessionMiddleware

__all__ = ["SessionMiddleware", "session_dependency"]

from typing import Callable, Optional

from fastapi import Request

from sessionstore.core.sessions import Session
from sessionstore.core.store import DatabaseSessionStore


def get_session_store(request: Request) -> DatabaseSessionStore:
    return request.app.state.session_store


def session_dependency(name: Optional[str] = None) -> Callable[[Request], Session]:
    """
    Build a FastAPI dependency returning the registered session.

    Args:
        name: Cookie name, defaults to the application's SESSION_COOKIE_NAME
    """

    def _get_session(request: Request) -> Session:
        store = get_session_store(request)
        return store.get(request, name or request.app.state.session_cookie_name)

    return _get_session

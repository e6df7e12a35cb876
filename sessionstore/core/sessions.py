"""Working sessions and the per-request session registry."""

from typing import TYPE_CHECKING, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict
from starlette.requests import Request
from starlette.responses import Response

from sessionstore.core.config import DEFAULT_MAX_AGE

if TYPE_CHECKING:  # pragma: no cover
    from sessionstore.core.store import DatabaseSessionStore

FLASHES_KEY = "_flash"

# Key of the registry in the ASGI scope, shared by every Request built on it
REGISTRY_SCOPE_KEY = "sessionstore.registry"


class CookieOptions(BaseModel):
    """Cookie attributes, store-wide and overridable per session."""

    model_config = ConfigDict(validate_assignment=True)

    path: str = "/"
    domain: Optional[str] = None
    # < 0 deletes the cookie now, 0 makes it a browser-session cookie
    max_age: int = DEFAULT_MAX_AGE
    secure: bool = False
    http_only: bool = True
    same_site: Literal["lax", "strict", "none"] = "lax"


class Session:
    """Session state for one cookie name during one request."""

    def __init__(self, store: "DatabaseSessionStore", name: str, options: CookieOptions):
        self.id: str = ""
        self.values: Dict[str, Any] = {}
        self.options = options
        self.is_new = True
        self._store = store
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @property
    def store(self) -> "DatabaseSessionStore":
        return self._store

    def save(self, request: Request, response: Response) -> None:
        self._store.save(request, response, self)

    def add_flash(self, value: Any, key: str = FLASHES_KEY) -> None:
        """Queue a message to be read by a later request."""
        self.values.setdefault(key, []).append(value)

    def flashes(self, key: str = FLASHES_KEY) -> List[Any]:
        """Return and clear the queued messages."""
        return self.values.pop(key, None) or []

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Session(name={self._name!r}, is_new={self.is_new!r})>"


class SessionRegistry:
    """Sessions registered during a single request, keyed by cookie name."""

    def __init__(self, request: Request):
        self.request = request
        self.sessions: Dict[str, Session] = {}

    def get(self, store: "DatabaseSessionStore", name: str) -> Session:
        """Return the registered session, loading it from the store once."""
        session = self.sessions.get(name)
        if session is None:
            session = store.new(self.request, name)
            self.sessions[name] = session
        return session

    def save_all(self, response: Response) -> None:
        for session in self.sessions.values():
            session.save(self.request, response)


def get_registry(request: Request) -> SessionRegistry:
    """Return the registry for this request, creating it on first use."""
    registry = request.scope.get(REGISTRY_SCOPE_KEY)
    if registry is None:
        registry = SessionRegistry(request)
        request.scope[REGISTRY_SCOPE_KEY] = registry
    return registry

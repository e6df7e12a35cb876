import logging
import uuid

from fastapi import Request
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from sessionstore.core.sessions import REGISTRY_SCOPE_KEY
from sessionstore.core.store import DatabaseSessionStore
from sessionstore.core.utils.logging_config import set_correlation_id

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Request-ID"


class SessionMiddleware(BaseHTTPMiddleware):
    """
    Saves every session registered during the request once the endpoint returns.

    Endpoints obtain sessions with store.get(request, name) or the
    session_dependency; saving is left to this middleware.
    """

    def __init__(self, app, store: DatabaseSessionStore):
        super().__init__(app)
        self.store = store

    async def dispatch(self, request: Request, call_next):
        set_correlation_id(request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4()))
        try:
            response = await call_next(request)

            registry = request.scope.get(REGISTRY_SCOPE_KEY)
            if registry is not None and registry.sessions:
                # Database writes are blocking
                await run_in_threadpool(registry.save_all, response)
            return response
        finally:
            set_correlation_id(None)

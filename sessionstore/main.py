"""Application factory wiring the database session store into FastAPI.

    from sessionstore.main import create_app
    app = create_app()

Routes obtain sessions through session_dependency(); the middleware saves
them and the lifespan runs the expired-record sweeper.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from sessionstore.core.config import Settings, settings
from sessionstore.core.store import DatabaseSessionStore
from sessionstore.core.utils.database_helpers import check_database_health, ensure_database_directory
from sessionstore.core.utils.logging_config import init_application_logging
from sessionstore.db.session import create_db_engine
from sessionstore.web.middleware import SessionMiddleware

logger = logging.getLogger("sessionstore.main")


def create_app(
    app_settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """Create and return a configured FastAPI application."""
    app_settings = app_settings or settings

    if configure_logging:
        init_application_logging(app_settings)

    if engine is None:
        ensure_database_directory(app_settings.DATABASE_URL)
        engine = create_db_engine(app_settings.DATABASE_URL)

    store = DatabaseSessionStore.from_settings(app_settings, engine=engine)
    store.records.ensure_schema()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = None
        if app_settings.SESSION_SWEEP_INTERVAL:
            sweeper = store.start_sweeper(app_settings.SESSION_SWEEP_INTERVAL)
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.stop()

    app = FastAPI(title=app_settings.APP_NAME, lifespan=lifespan)
    app.state.engine = engine
    app.state.session_store = store
    app.state.session_cookie_name = app_settings.SESSION_COOKIE_NAME
    app.add_middleware(SessionMiddleware, store=store)

    @app.get("/health")
    def health():
        """Report database connectivity and session table presence"""
        result = check_database_health(engine)
        status_code = 200 if result["status"] != "unhealthy" else 503
        return JSONResponse(result, status_code=status_code)

    logger.info(
        "Session store initialized",
        extra={
            "database_type": engine.url.get_backend_name(),
            "sweep_interval": app_settings.SESSION_SWEEP_INTERVAL,
            "max_age": app_settings.SESSION_MAX_AGE,
        },
    )
    return app

"""
Database helper utilities for the session store.

Provides database-agnostic inspection and health checks for SQLite and PostgreSQL.
"""

import logging
from pathlib import Path
from typing import Any, Dict

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


def get_database_type(database_url: str) -> str:
    """
    Get the database type from a database URL.

    Returns:
        str: Database type ('sqlite', 'postgresql', etc.)
    """
    url = database_url.lower()
    if url.startswith("sqlite"):
        return "sqlite"
    elif url.startswith("postgresql"):
        return "postgresql"
    else:
        # Extract from URL scheme
        return url.split("://")[0] if "://" in url else "unknown"


def ensure_database_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    if not database_url.startswith("sqlite:///"):
        return
    db_path = database_url[len("sqlite:///"):]
    if not db_path or db_path == ":memory:":
        return
    Path(db_path).resolve().parent.mkdir(parents=True, exist_ok=True)


def get_database_info(engine: Engine) -> Dict[str, Any]:
    """
    Get database connection information and metadata.

    Returns:
        Dict containing database type, connection status, and metadata
    """
    db_type = get_database_type(engine.url.drivername)
    info = {
        "type": db_type,
        "connected": False,
        "tables": [],
        "version": None,
        "error": None
    }

    try:
        with engine.connect() as conn:
            info["connected"] = True

            if db_type == "sqlite":
                result = conn.execute(text("SELECT sqlite_version()"))
                info["version"] = result.scalar()
            elif db_type == "postgresql":
                result = conn.execute(text("SELECT version()"))
                version_str = result.scalar()
                # Extract just the version number
                info["version"] = version_str.split()[1] if version_str else "unknown"

            info["tables"] = inspect(conn).get_table_names()

    except SQLAlchemyError as e:
        logger.error(f"Database connection error: {e}")
        info["error"] = str(e)

    return info


def check_database_health(engine: Engine) -> Dict[str, Any]:
    """
    Perform database health check.

    Returns:
        Dict containing health status and metrics
    """
    db_info = get_database_info(engine)
    health = {
        "status": "healthy",
        "database_type": db_info["type"],
        "connected": db_info["connected"],
        "table_count": len(db_info["tables"]),
        "last_error": None
    }

    if db_info["error"]:
        health["status"] = "unhealthy"
        health["last_error"] = db_info["error"]
    elif not db_info["connected"]:
        health["status"] = "unhealthy"
        health["last_error"] = "Unable to connect to database"
    elif "sessionrecord" not in db_info["tables"]:
        health["status"] = "warning"
        health["last_error"] = "Session table not found - database may need initialization"

    return health

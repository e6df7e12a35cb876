from contextlib import contextmanager
from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


# Determine database-specific connection arguments
def get_connect_args(database_url: str) -> Dict[str, Any]:
    """Get database-specific connection arguments"""
    if database_url.startswith("sqlite"):
        # Request handlers and the sweeper share connections across threads
        return {"check_same_thread": False}
    # PostgreSQL and other databases don't need special args
    return {}


def create_db_engine(database_url: str) -> Engine:
    """Create a database engine with appropriate connection args"""
    return create_engine(
        database_url,
        connect_args=get_connect_args(database_url),
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory whose objects stay readable after commit"""
    return sessionmaker(
        autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
    )


@contextmanager
def get_db_sync(factory: sessionmaker) -> Generator[Session, None, None]:
    """Get a synchronous DB session with proper resource management"""
    db = factory()
    try:
        yield db
    finally:
        db.close()

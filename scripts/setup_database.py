#!/usr/bin/env python3
"""
Database setup script for the session store.

Creates the session record table for SQLite or PostgreSQL.
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from sessionstore.core.config import settings
from sessionstore.core.exceptions import StorageError
from sessionstore.core.utils.database_helpers import (
    check_database_health,
    ensure_database_directory,
    get_database_info,
)
from sessionstore.db.record_store import SessionRecordStore
from sessionstore.db.session import create_db_engine


def main():
    """Initialize database based on configuration"""
    print("Session Store Database Setup")
    print("=" * 40)

    ensure_database_directory(settings.DATABASE_URL)
    engine = create_db_engine(settings.DATABASE_URL)

    db_info = get_database_info(engine)
    print(f"Database Type: {db_info['type']}")
    print(f"Connected: {db_info['connected']}")

    if db_info['error']:
        print(f"Connection Error: {db_info['error']}")
        return False

    if db_info['version']:
        print(f"Database Version: {db_info['version']}")

    print(f"Existing Tables: {len(db_info['tables'])}")
    for table in sorted(db_info['tables']):
        print(f"  - {table}")

    print("\nInitializing database...")

    try:
        SessionRecordStore(engine).ensure_schema()
    except StorageError as e:
        print(f"Database initialization failed: {e}")
        return False

    print("Database initialized successfully!")

    health = check_database_health(engine)
    print(f"Health Status: {health['status']}")
    print(f"Table Count: {health['table_count']}")

    if health['status'] != 'healthy':
        print(f"Warning: {health['last_error']}")

    return True


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)

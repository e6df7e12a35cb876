#!/usr/bin/env python3
"""
Remove expired session records once.

For deployments that sweep from cron instead of the in-process sweeper
(SESSION_SWEEP_INTERVAL=0). Exits 1 if the database cannot be swept.
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from sessionstore.core.config import settings
from sessionstore.core.exceptions import StorageError
from sessionstore.core.store import DatabaseSessionStore, utcnow
from sessionstore.core.utils.logging_config import init_application_logging


def main(app_settings=None, engine=None, configure_logging=True):
    """Sweep once, returning False when the database write fails"""
    app_settings = app_settings or settings
    if configure_logging:
        init_application_logging(app_settings)

    store = DatabaseSessionStore.from_settings(app_settings, engine=engine)
    try:
        removed = store.records.delete_expired(utcnow())
    except StorageError as e:
        print(f"Sweep failed: {e}")
        return False

    print(f"Removed {removed} expired session records")
    return True


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)

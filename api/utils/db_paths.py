"""
Database path utilities for Friends API services.
"""
from pathlib import Path

from config.settings import settings


def get_db_path() -> str:
    """
    Get the path to the Friends database.

    Creates the parent directory if it doesn't exist.

    Returns:
        Absolute path to the database file
    """
    db_path = Path(settings.db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return str(db_path.resolve())

# Friends API Utilities
"""
Shared utility functions for Friends API services.
"""

from api.utils.datetime_utils import make_aware, utc_now, to_iso, parse_iso
from api.utils.db_paths import get_db_path

__all__ = ["make_aware", "utc_now", "to_iso", "parse_iso", "get_db_path"]

"""DuckDB-backed local cache and master scorecard queries."""

from .local_cache import BACKUP_KEY, SCORECARDS_KEY, LocalCache
from .master_queries import MasterScorecardQueries
from .schema import create_schema, get_connection

__all__ = [
    "BACKUP_KEY",
    "LocalCache",
    "MasterScorecardQueries",
    "SCORECARDS_KEY",
    "create_schema",
    "get_connection",
]

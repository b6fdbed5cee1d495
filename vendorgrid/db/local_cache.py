"""Local key-value cache backed by DuckDB.

Holds the list of scorecards the user has touched and a single auto-save
backup slot. Last writer wins; nothing here is used to resolve conflicts.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any

import duckdb

from ..models import Scorecard, Template
from .schema import create_schema

logger = logging.getLogger(__name__)

SCORECARDS_KEY = "scorecards"
BACKUP_KEY = "auto-save-backup"
BACKUP_VERSION = "auto-save"
SUBGRID_TEMPLATES_KEY = "subgrid-templates"


class LocalCache:
    """Key-value persistence surviving restarts (not guaranteed durable)."""

    def __init__(self, conn: duckdb.DuckDBPyConnection):
        self.conn = conn
        self._lock = threading.Lock()
        create_schema(conn)

    def get(self, key: str) -> Any:
        """Get a stored value, or None if the key is absent."""
        with self._lock:
            result = self.conn.execute(
                "SELECT value FROM local_cache WHERE key = ?", [key]
            ).fetchone()
        if result is None or result[0] is None:
            return None
        value = result[0]
        if isinstance(value, str):
            value = json.loads(value)
        return value

    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value, replacing any previous one."""
        payload = json.dumps(value, default=str)
        with self._lock:
            self.conn.execute(
                """
                INSERT OR REPLACE INTO local_cache (key, value, updated_at)
                VALUES (?, ?, current_timestamp)
                """,
                [key, payload],
            )

    def delete(self, key: str) -> None:
        with self._lock:
            self.conn.execute("DELETE FROM local_cache WHERE key = ?", [key])

    def get_all(self, key: str = SCORECARDS_KEY) -> list[Any]:
        """Get a stored list, empty if absent."""
        value = self.get(key)
        return value if isinstance(value, list) else []

    def set_all(self, key: str, value: list[Any]) -> None:
        self.set(key, value)

    def load_scorecards(self) -> list[Scorecard]:
        """Load cached scorecards, skipping entries that no longer validate."""
        scorecards = []
        for item in self.get_all(SCORECARDS_KEY):
            try:
                scorecards.append(Scorecard.model_validate(item))
            except ValueError as e:
                logger.warning(f"Skipping invalid cached scorecard: {e}")
        return scorecards

    def save_scorecards(self, scorecards: list[Scorecard]) -> None:
        self.set_all(
            SCORECARDS_KEY,
            [s.model_dump(mode="json", by_alias=True) for s in scorecards],
        )

    def load_subgrid_templates(self) -> list[Template]:
        """Load sub-grid templates. They are kept on this machine only."""
        templates = []
        for item in self.get_all(SUBGRID_TEMPLATES_KEY):
            try:
                templates.append(Template.model_validate(item))
            except ValueError as e:
                logger.warning(f"Skipping invalid sub-grid template: {e}")
        return templates

    def save_subgrid_templates(self, templates: list[Template]) -> None:
        self.set_all(
            SUBGRID_TEMPLATES_KEY,
            [t.model_dump(mode="json", by_alias=True) for t in templates],
        )

    def get_backup(self) -> dict[str, Any] | None:
        """Get the value held in the backup slot, or None."""
        entry = self.get(BACKUP_KEY)
        if not isinstance(entry, dict):
            return None
        return entry.get("data")

    def get_backup_timestamp(self) -> datetime | None:
        entry = self.get(BACKUP_KEY)
        if not isinstance(entry, dict) or not entry.get("timestamp"):
            return None
        return datetime.fromisoformat(entry["timestamp"])

    def set_backup(self, value: dict[str, Any]) -> None:
        """Overwrite the backup slot with ``value``."""
        self.set(
            BACKUP_KEY,
            {
                "data": value,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "version": BACKUP_VERSION,
            },
        )

    def clear_backup(self) -> None:
        self.delete(BACKUP_KEY)

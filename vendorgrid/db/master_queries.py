"""SQL aggregation of scorecards into the master scorecard."""

from __future__ import annotations

import logging
from typing import Any

import duckdb

from ..grid.columns import is_retailer_column
from ..models import MasterCell, MasterScorecard, Scorecard, utc_now
from .schema import create_master_tables

logger = logging.getLogger(__name__)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


class MasterScorecardQueries:
    """Aggregate retailer x item authorization counts."""

    def __init__(self, conn: duckdb.DuckDBPyConnection):
        self.conn = conn

    def load(self, scorecards: list[Scorecard]) -> None:
        """Flatten scorecards into the scratch tables.

        The retailer column is "Retailer Name" (or key ``name``); every other
        non-default column is an item whose cell holds a product status.
        """
        create_master_tables(self.conn)
        entries: list[tuple[int, str, str | None, str]] = []
        items: list[tuple[int, str]] = []
        seq = 0

        for scorecard in scorecards:
            retailer_col = next((c for c in scorecard.columns if is_retailer_column(c)), None)
            if retailer_col is None:
                continue
            item_cols = [
                c for c in scorecard.columns
                if not c.is_default and c.key != retailer_col.key
            ]
            for col in item_cols:
                seq += 1
                items.append((seq, col.name))

            for row in scorecard.rows:
                retailer = _text(row.get(retailer_col.key))
                if not retailer:
                    continue
                if not item_cols:
                    seq += 1
                    entries.append((seq, retailer, None, ""))
                for col in item_cols:
                    seq += 1
                    entries.append((seq, retailer, col.name, _text(row.get(col.key))))

        if entries:
            self.conn.executemany("INSERT INTO master_entries VALUES (?, ?, ?, ?)", entries)
        if items:
            self.conn.executemany("INSERT INTO master_items VALUES (?, ?)", items)

    def get_retailers(self) -> list[str]:
        """Retailers in first-seen order."""
        result = self.conn.execute("""
            SELECT retailer
            FROM master_entries
            GROUP BY retailer
            ORDER BY MIN(seq)
        """).fetchall()
        return [row[0] for row in result]

    def get_items(self) -> list[str]:
        """Item names in first-seen order."""
        result = self.conn.execute("""
            SELECT item
            FROM master_items
            GROUP BY item
            ORDER BY MIN(seq)
        """).fetchall()
        return [row[0] for row in result]

    def get_cells(self) -> list[dict[str, Any]]:
        """Authorized/total counts per (retailer, item)."""
        result = self.conn.execute("""
            SELECT
                retailer,
                item,
                COUNT(*) FILTER (WHERE lower(status) = 'authorized') AS authorized,
                COUNT(*) FILTER (WHERE status <> '') AS total
            FROM master_entries
            WHERE item IS NOT NULL
            GROUP BY retailer, item
        """).fetchall()
        return [
            {
                "retailer": row[0],
                "item": row[1],
                "authorized": row[2],
                "total": row[3],
            }
            for row in result
        ]

    def aggregate(self, scorecards: list[Scorecard]) -> MasterScorecard:
        """Build the master scorecard for ``scorecards``."""
        self.load(scorecards)
        data: dict[str, dict[str, MasterCell]] = {}
        for cell in self.get_cells():
            data.setdefault(cell["retailer"], {})[cell["item"]] = MasterCell(
                authorized=cell["authorized"], total=cell["total"]
            )
        master = MasterScorecard(
            retailers=self.get_retailers(),
            items=self.get_items(),
            data=data,
            last_updated=utc_now(),
        )
        logger.debug(
            f"Master scorecard: {len(master.retailers)} retailers, {len(master.items)} items"
        )
        return master

"""Master scorecard aggregation result."""

from __future__ import annotations

import math
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class MasterCell(BaseModel):
    """Authorization counts for one (retailer, item) pair."""

    authorized: int = 0
    total: int = 0


class MasterScorecard(BaseModel):
    """Retailer x item authorization pivot across all scorecards."""

    model_config = ConfigDict(populate_by_name=True)

    retailers: list[str] = Field(default_factory=list)
    items: list[str] = Field(default_factory=list)
    data: dict[str, dict[str, MasterCell]] = Field(default_factory=dict)
    last_updated: datetime | None = Field(default=None, alias="lastUpdated")

    def cell(self, retailer: str, item: str) -> MasterCell | None:
        return self.data.get(retailer, {}).get(item)

    def penetration(self, retailer: str, item: str) -> int | None:
        """Authorized share of a cell as a rounded percentage.

        Returns:
            Percentage 0-100, or None when the cell has no statuses.
        """
        cell = self.cell(retailer, item)
        if cell is None or cell.total == 0:
            return None
        # Half rounds up, matching the portal's display
        return math.floor(cell.authorized / cell.total * 100 + 0.5)

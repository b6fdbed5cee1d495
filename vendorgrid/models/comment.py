"""Row comment models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class MigratedScorecard(BaseModel):
    """Identifier swap reported when a comment forced a scorecard migration."""

    old_id: str
    new_id: str
    title: str | None = None

    @field_validator("old_id", "new_id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> str:
        return str(v)


class Comment(BaseModel):
    """A comment attached to one row of a scorecard."""

    id: str
    scorecard_id: str
    row_id: str = Field(..., description="Row identifier, stringified")
    user_id: str | None = None
    author: str | None = None
    text: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    migrated_scorecard: MigratedScorecard | None = None

    @field_validator("id", "scorecard_id", "row_id", "user_id", mode="before")
    @classmethod
    def _coerce_str(cls, v: Any) -> str | None:
        return None if v is None else str(v)

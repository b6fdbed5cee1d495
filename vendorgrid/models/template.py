"""Column template model."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .scorecard import Column


class Template(BaseModel):
    """A reusable snapshot of columns and optionally rows."""

    id: str | None = None
    name: str
    columns: list[Column] = Field(default_factory=list)
    rows: list[dict[str, Any]] | None = None
    created_at: datetime | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> str | None:
        return None if v is None else str(v)

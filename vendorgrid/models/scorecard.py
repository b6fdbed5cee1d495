"""Scorecard models: columns, contacts, scorecards and remote records."""

from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Prefix marking scorecards that exist only in the local cache
LOCAL_ID_PREFIX = "scorecard_"
DEFAULT_TITLE = "Untitled Scorecard"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_local_id() -> str:
    """Generate a local-only scorecard identifier."""
    return f"{LOCAL_ID_PREFIX}{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


def is_local_id(scorecard_id: str | None) -> bool:
    """Check whether an identifier refers to a local-only scorecard."""
    return bool(scorecard_id) and str(scorecard_id).startswith(LOCAL_ID_PREFIX)


class Column(BaseModel):
    """A grid column. ``key`` is the stable identifier, ``name`` the label."""

    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(..., description="Stable key used in row dicts")
    name: str = Field(..., description="Display label")
    editable: bool = Field(default=True)
    sortable: bool = Field(default=True)
    is_default: bool = Field(default=False, alias="isDefault")


class Contact(BaseModel):
    """Contact reference stored in the Category Manager / Brand Lead cells."""

    name: str = ""
    telephone: str = ""
    address: str = ""
    notes: str = ""

    @classmethod
    def from_value(cls, value: Any) -> Contact:
        """Build a contact from a stored cell value.

        Args:
            value: A dict, a bare name string, or an empty value.

        Returns:
            Contact (empty when the cell is empty).
        """
        if isinstance(value, Contact):
            return value
        if isinstance(value, dict):
            return cls.model_validate({k: v or "" for k, v in value.items() if k in cls.model_fields})
        if value:
            return cls(name=str(value))
        return cls()

    @property
    def is_empty(self) -> bool:
        return not (self.name or self.telephone or self.address or self.notes)


class SubGrid(BaseModel):
    """Free-text grid nested in a single row."""

    columns: list[Column] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_value(cls, value: Any) -> SubGrid | None:
        """Read a stored ``subgrid`` cell. Anything without columns and rows is no grid."""
        if isinstance(value, SubGrid):
            return value
        if isinstance(value, dict) and "columns" in value and "rows" in value:
            return cls.model_validate(value)
        return None

    def to_cell(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def column(self, key: str) -> Column | None:
        return next((c for c in self.columns if c.key == key), None)

    def row(self, row_id: Any) -> dict[str, Any] | None:
        return next((r for r in self.rows if str(r.get("id")) == str(row_id)), None)


class Scorecard(BaseModel):
    """A named tabular document owned by a user."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str = Field(default=DEFAULT_TITLE)
    columns: list[Column] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    last_modified: datetime = Field(default_factory=utc_now, alias="lastModified")
    is_draft: bool = Field(default=True, alias="isDraft")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> str:
        return str(v)

    @field_validator("title", mode="before")
    @classmethod
    def _default_title(cls, v: Any) -> str:
        if v is None or not str(v).strip():
            return DEFAULT_TITLE
        return str(v)

    @property
    def is_local(self) -> bool:
        return is_local_id(self.id)

    def column(self, key: str) -> Column | None:
        for column in self.columns:
            if column.key == key:
                return column
        return None

    def row(self, row_id: Any) -> dict[str, Any] | None:
        for row in self.rows:
            if str(row.get("id")) == str(row_id):
                return row
        return None

    def to_payload(self) -> dict[str, Any]:
        """Serialize the columns and rows as sent to the remote store."""
        return {
            "columns": [c.model_dump(mode="json", by_alias=True) for c in self.columns],
            "rows": [dict(r) for r in self.rows],
        }

    def touched(self, **changes: Any) -> Scorecard:
        """Return a deep copy with ``changes`` applied and lastModified bumped."""
        changes.setdefault("last_modified", utc_now())
        return self.model_copy(update=changes, deep=True)


class ScorecardRecord(BaseModel):
    """A scorecard as stored by the remote store."""

    id: str
    title: str = DEFAULT_TITLE
    data: dict[str, Any] = Field(default_factory=dict)
    is_draft: bool = True
    created_at: datetime | None = None
    last_modified: datetime | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> str:
        return str(v)

    @field_validator("data", mode="before")
    @classmethod
    def _coerce_data(cls, v: Any) -> dict[str, Any]:
        return v or {}

    def to_scorecard(self) -> Scorecard:
        """Convert the remote shape into an editable scorecard."""
        created = self.created_at or utc_now()
        return Scorecard(
            id=self.id,
            title=self.title,
            columns=self.data.get("columns") or [],
            rows=self.data.get("rows") or [],
            created_at=created,
            last_modified=self.last_modified or created,
            is_draft=self.is_draft,
        )

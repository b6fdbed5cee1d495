"""Structural and cell edits on a scorecard.

Every operation validates first and returns a new Scorecard; the input
is never mutated, so a rejected edit leaves no trace.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..errors import ValidationError
from ..models import Column, Contact, Scorecard, Template, new_local_id
from .cells import coerce_cell
from .columns import (
    PRICE_KEY,
    PRIORITY_KEY,
    SUBGRID_KEY,
    EditorKind,
    column_key_for,
    default_columns,
    editor_for,
    is_reserved_key,
)

# Values seeded into new rows for known default columns
ROW_DEFAULTS: dict[str, Any] = {PRIORITY_KEY: "Medium"}

PLACEHOLDER_ROWS = ["Item 1", "Item 2"]


def blank_row(columns: list[Column], row_id: Any, **values: Any) -> dict[str, Any]:
    """Build a row holding a value for every column key."""
    row: dict[str, Any] = {"id": row_id}
    for column in columns:
        row[column.key] = values.get(column.key, "")
    return row


def conform_rows(columns: list[Column], rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Rewrite rows so they hold the id, every column key and any sub-grid."""
    keys = [c.key for c in columns]
    conformed = []
    for index, row in enumerate(rows, start=1):
        new_row: dict[str, Any] = {"id": row.get("id", index)}
        for key in keys:
            new_row[key] = row.get(key, "")
        if SUBGRID_KEY in row:
            new_row[SUBGRID_KEY] = row[SUBGRID_KEY]
        conformed.append(new_row)
    return conformed


def new_scorecard(title: str, scorecard_id: str | None = None) -> Scorecard:
    """Create a scorecard with the default columns and two placeholder rows.

    Args:
        title: Scorecard title.
        scorecard_id: Identifier to use. A local identifier is generated if None.
    """
    columns = default_columns()
    rows = [
        blank_row(columns, index, name=name)
        for index, name in enumerate(PLACEHOLDER_ROWS, start=1)
    ]
    return Scorecard(
        id=scorecard_id or new_local_id(),
        title=title,
        columns=columns,
        rows=rows,
    )


def _require_column(scorecard: Scorecard, key: str) -> Column:
    column = scorecard.column(key)
    if column is None:
        raise ValidationError(f"Unknown column: {key}")
    return column


def _require_row(scorecard: Scorecard, row_id: Any) -> dict[str, Any]:
    row = scorecard.row(row_id)
    if row is None:
        raise ValidationError(f"Unknown row: {row_id}")
    return row


def add_column(scorecard: Scorecard, name: str, editable: bool = True) -> Scorecard:
    """Add a user-defined status column.

    The column is inserted before the price column when there is one,
    and every existing row gets an empty value for the new key.

    Raises:
        ValidationError: If the name is empty, its key is reserved for row
            structure, or the key already exists.
    """
    if not name or not name.strip():
        raise ValidationError("Column name is required")
    key = column_key_for(name)
    if is_reserved_key(key):
        raise ValidationError(f"'{name.strip()}' is a reserved column name")
    if scorecard.column(key) is not None:
        raise ValidationError(f"A column with key '{key}' already exists")

    column = Column(key=key, name=name.strip(), editable=editable, is_default=False)
    columns = list(scorecard.columns)
    price_index = next((i for i, c in enumerate(columns) if c.key == PRICE_KEY), None)
    if price_index is None:
        columns.append(column)
    else:
        columns.insert(price_index, column)

    rows = [{**row, key: ""} for row in scorecard.rows]
    return scorecard.touched(columns=columns, rows=rows)


def rename_column(scorecard: Scorecard, key: str, name: str) -> Scorecard:
    """Change a column's display name. The key and row data are untouched.

    Raises:
        ValidationError: If the name is empty or the column is unknown.
    """
    if not name or not name.strip():
        raise ValidationError("Column name cannot be empty")
    _require_column(scorecard, key)
    columns = [
        c.model_copy(update={"name": name.strip()}) if c.key == key else c
        for c in scorecard.columns
    ]
    return scorecard.touched(columns=columns)


def delete_column(scorecard: Scorecard, key: str) -> Scorecard:
    """Remove a column and strip its key from every row."""
    _require_column(scorecard, key)
    columns = [c for c in scorecard.columns if c.key != key]
    rows = [{k: v for k, v in row.items() if k != key} for row in scorecard.rows]
    return scorecard.touched(columns=columns, rows=rows)


def next_row_id(scorecard: Scorecard) -> int:
    """Time-based row identifier, bumped until unique."""
    row_id = int(time.time() * 1000)
    existing = {str(r.get("id")) for r in scorecard.rows}
    while str(row_id) in existing:
        row_id += 1
    return row_id


def add_row(scorecard: Scorecard, **values: Any) -> Scorecard:
    """Append a row seeded with default values.

    Args:
        scorecard: Scorecard to extend.
        **values: Initial cell values by column key (validated).
    """
    seeded = {**ROW_DEFAULTS, **values}
    cells: dict[str, Any] = {}
    for column in scorecard.columns:
        if column.key not in seeded:
            continue
        if editor_for(column) == EditorKind.CONTACT:
            cells[column.key] = Contact.from_value(seeded[column.key]).model_dump()
        else:
            cells[column.key] = coerce_cell(column, seeded[column.key])
    row = blank_row(scorecard.columns, next_row_id(scorecard), **cells)
    return scorecard.touched(rows=[*scorecard.rows, row])


def delete_row(scorecard: Scorecard, row_id: Any) -> Scorecard:
    """Remove a row by id. Remaining ids are kept as they are."""
    _require_row(scorecard, row_id)
    rows = [r for r in scorecard.rows if str(r.get("id")) != str(row_id)]
    return scorecard.touched(rows=rows)


def set_cell(scorecard: Scorecard, row_id: Any, key: str, value: Any) -> Scorecard:
    """Store an edited cell value after validating it for the column."""
    column = _require_column(scorecard, key)
    _require_row(scorecard, row_id)
    stored = coerce_cell(column, value)
    rows = [
        {**row, key: stored} if str(row.get("id")) == str(row_id) else row
        for row in scorecard.rows
    ]
    return scorecard.touched(rows=rows)


def set_contact(scorecard: Scorecard, row_id: Any, key: str, contact: Contact | None) -> Scorecard:
    """Store a contact object in one of the contact-reference columns."""
    column = _require_column(scorecard, key)
    if editor_for(column) != EditorKind.CONTACT:
        raise ValidationError(f"{column.name} is not a contact column")
    _require_row(scorecard, row_id)
    stored = (contact or Contact()).model_dump()
    rows = [
        {**row, key: stored} if str(row.get("id")) == str(row_id) else row
        for row in scorecard.rows
    ]
    return scorecard.touched(rows=rows)


def apply_template(scorecard: Scorecard, template: Template, with_rows: bool = False) -> Scorecard:
    """Replace the column set with a template's, optionally its rows too.

    Raises:
        ValidationError: If the template has no columns.
    """
    if not template.columns:
        raise ValidationError(f"Template '{template.name}' has no columns")
    columns = [c.model_copy() for c in template.columns]
    source_rows = template.rows if with_rows and template.rows else scorecard.rows
    return scorecard.touched(columns=columns, rows=conform_rows(columns, source_rows))


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


@dataclass(frozen=True)
class SortState:
    """Single-column sort of the grid view."""

    column_key: str | None = None
    direction: SortDirection | None = None

    def cycle(self, key: str) -> SortState:
        """Advance the sort for a header click.

        unsorted -> ascending -> descending -> unsorted; clicking another
        column starts over at ascending.
        """
        if self.column_key != key or self.direction is None:
            return SortState(key, SortDirection.ASC)
        if self.direction == SortDirection.ASC:
            return SortState(key, SortDirection.DESC)
        return SortState()


def _is_blank(value: Any) -> bool:
    if value is None or value == "":
        return True
    if isinstance(value, dict):
        return Contact.from_value(value).is_empty
    return False


def _sort_key(value: Any) -> tuple[int, Any]:
    if isinstance(value, dict):
        return (1, Contact.from_value(value).name.lower())
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value)
    return (1, str(value).lower())


def sorted_rows(rows: list[dict[str, Any]], sort: SortState) -> list[dict[str, Any]]:
    """Return the rows in view order. Storage order is never changed.

    Blank values go last in both directions.
    """
    if sort.column_key is None or sort.direction is None:
        return list(rows)
    key = sort.column_key
    filled = [r for r in rows if not _is_blank(r.get(key))]
    blanks = [r for r in rows if _is_blank(r.get(key))]
    filled.sort(
        key=lambda r: _sort_key(r.get(key)),
        reverse=sort.direction == SortDirection.DESC,
    )
    return filled + blanks

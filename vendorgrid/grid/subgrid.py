"""Nested grids attached to single rows.

A row may carry a small free-text grid under the ``subgrid`` key. Like
the top-level edits, each function validates first and returns a new
Scorecard.
"""

from __future__ import annotations

import time
from typing import Any

from ..errors import ValidationError
from ..models import Column, Scorecard, SubGrid, Template
from .columns import SUBGRID_KEY

NEW_COLUMN_NAME = "New Column"


def new_subgrid() -> SubGrid:
    """Starter grid: a single Note column and no rows."""
    return SubGrid(columns=[Column(key="note", name="Note")], rows=[])


def subgrid_of(scorecard: Scorecard, row_id: Any) -> SubGrid | None:
    """Return the nested grid of a row, or None if it has none."""
    row = scorecard.row(row_id)
    if row is None:
        return None
    return SubGrid.from_value(row.get(SUBGRID_KEY))


def _require_row(scorecard: Scorecard, row_id: Any) -> None:
    if scorecard.row(row_id) is None:
        raise ValidationError(f"Unknown row: {row_id}")


def _require_subgrid(scorecard: Scorecard, row_id: Any) -> SubGrid:
    _require_row(scorecard, row_id)
    grid = subgrid_of(scorecard, row_id)
    if grid is None:
        raise ValidationError(f"Row {row_id} has no sub-grid")
    return grid


def _with_subgrid(scorecard: Scorecard, row_id: Any, grid: SubGrid | None) -> Scorecard:
    rows = []
    for row in scorecard.rows:
        if str(row.get("id")) == str(row_id):
            row = {k: v for k, v in row.items() if k != SUBGRID_KEY}
            if grid is not None:
                row[SUBGRID_KEY] = grid.to_cell()
        rows.append(row)
    return scorecard.touched(rows=rows)


def add_subgrid(scorecard: Scorecard, row_id: Any) -> Scorecard:
    """Attach a starter grid to a row.

    Raises:
        ValidationError: If the row is unknown or already has a grid.
    """
    _require_row(scorecard, row_id)
    if subgrid_of(scorecard, row_id) is not None:
        raise ValidationError(f"Row {row_id} already has a sub-grid")
    return _with_subgrid(scorecard, row_id, new_subgrid())


def delete_subgrid(scorecard: Scorecard, row_id: Any) -> Scorecard:
    _require_subgrid(scorecard, row_id)
    return _with_subgrid(scorecard, row_id, None)


def _next_column_key(grid: SubGrid) -> str:
    stamp = int(time.time() * 1000)
    while grid.column(f"col_{stamp}") is not None:
        stamp += 1
    return f"col_{stamp}"


def add_subgrid_column(scorecard: Scorecard, row_id: Any, name: str = NEW_COLUMN_NAME) -> Scorecard:
    """Append a column to a row's grid; existing sub-rows get an empty cell."""
    if not name or not name.strip():
        raise ValidationError("Column name is required")
    grid = _require_subgrid(scorecard, row_id)
    key = _next_column_key(grid)
    columns = [*grid.columns, Column(key=key, name=name.strip())]
    rows = [{**r, key: ""} for r in grid.rows]
    return _with_subgrid(scorecard, row_id, SubGrid(columns=columns, rows=rows))


def rename_subgrid_column(scorecard: Scorecard, row_id: Any, key: str, name: str) -> Scorecard:
    if not name or not name.strip():
        raise ValidationError("Column name cannot be empty")
    grid = _require_subgrid(scorecard, row_id)
    if grid.column(key) is None:
        raise ValidationError(f"Unknown sub-grid column: {key}")
    columns = [
        c.model_copy(update={"name": name.strip()}) if c.key == key else c
        for c in grid.columns
    ]
    return _with_subgrid(scorecard, row_id, SubGrid(columns=columns, rows=grid.rows))


def delete_subgrid_column(scorecard: Scorecard, row_id: Any, key: str) -> Scorecard:
    grid = _require_subgrid(scorecard, row_id)
    if grid.column(key) is None:
        raise ValidationError(f"Unknown sub-grid column: {key}")
    columns = [c for c in grid.columns if c.key != key]
    rows = [{k: v for k, v in r.items() if k != key} for r in grid.rows]
    return _with_subgrid(scorecard, row_id, SubGrid(columns=columns, rows=rows))


def add_subgrid_row(scorecard: Scorecard, row_id: Any) -> Scorecard:
    """Append an empty sub-row. Ids count up from the highest numeric id."""
    grid = _require_subgrid(scorecard, row_id)
    numeric = [r["id"] for r in grid.rows if isinstance(r.get("id"), int)]
    sub_row: dict[str, Any] = {"id": max(numeric, default=0) + 1}
    for column in grid.columns:
        sub_row[column.key] = ""
    return _with_subgrid(
        scorecard, row_id, SubGrid(columns=grid.columns, rows=[*grid.rows, sub_row])
    )


def delete_subgrid_row(scorecard: Scorecard, row_id: Any, sub_row_id: Any) -> Scorecard:
    grid = _require_subgrid(scorecard, row_id)
    if grid.row(sub_row_id) is None:
        raise ValidationError(f"Unknown sub-grid row: {sub_row_id}")
    rows = [r for r in grid.rows if str(r.get("id")) != str(sub_row_id)]
    return _with_subgrid(scorecard, row_id, SubGrid(columns=grid.columns, rows=rows))


def set_subgrid_cell(
    scorecard: Scorecard, row_id: Any, sub_row_id: Any, key: str, value: Any
) -> Scorecard:
    """Store a sub-grid cell. Sub-grid cells are free text."""
    grid = _require_subgrid(scorecard, row_id)
    if grid.column(key) is None:
        raise ValidationError(f"Unknown sub-grid column: {key}")
    if grid.row(sub_row_id) is None:
        raise ValidationError(f"Unknown sub-grid row: {sub_row_id}")
    stored = "" if value is None else str(value)
    rows = [
        {**r, key: stored} if str(r.get("id")) == str(sub_row_id) else r
        for r in grid.rows
    ]
    return _with_subgrid(scorecard, row_id, SubGrid(columns=grid.columns, rows=rows))


def apply_subgrid_template(
    scorecard: Scorecard, row_id: Any, template: Template, with_rows: bool = True
) -> Scorecard:
    """Give a row the grid described by a template.

    The template's rows are used when ``with_rows`` is set and it has any;
    otherwise the row's current sub-rows are kept under the new columns.
    A row without a grid gets one.

    Raises:
        ValidationError: If the row is unknown or the template has no columns.
    """
    _require_row(scorecard, row_id)
    if not template.columns:
        raise ValidationError(f"Template '{template.name}' has no columns")
    columns = [c.model_copy() for c in template.columns]
    if with_rows and template.rows:
        source = template.rows
    else:
        current = subgrid_of(scorecard, row_id)
        source = current.rows if current else []
    rows = []
    for index, row in enumerate(source, start=1):
        new_row: dict[str, Any] = {"id": row.get("id", index)}
        for column in columns:
            new_row[column.key] = row.get(column.key, "")
        rows.append(new_row)
    return _with_subgrid(scorecard, row_id, SubGrid(columns=columns, rows=rows))

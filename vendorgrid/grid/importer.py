"""Bulk row import from tabular files."""

from __future__ import annotations

import csv
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..errors import ImportMismatchError, ValidationError
from ..models import Column, Contact, Scorecard
from .cells import coerce_cell, parse_date
from .columns import EditorKind, editor_for, is_system_column

logger = logging.getLogger(__name__)


def normalize_column_name(name: Any) -> str:
    """Normalize a header for matching: case, whitespace and underscores ignored."""
    return re.sub(r"[\s_]+", "", str(name or "").lower())


@dataclass
class ImportCheck:
    """Outcome of matching import headers against the grid's columns."""

    missing: list[str] = field(default_factory=list)
    extra: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)
    # normalized header -> column key
    mapping: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not (self.missing or self.extra or self.duplicates)

    def message(self) -> str:
        if self.duplicates:
            return f"Duplicate columns in import: {', '.join(self.duplicates)}"
        parts = []
        if self.missing:
            parts.append(f"Missing columns: {', '.join(self.missing)}")
        if self.extra:
            parts.append(f"Extra columns: {', '.join(self.extra)}")
        return ". ".join(parts)


def check_headers(scorecard: Scorecard, headers: list[Any]) -> ImportCheck:
    """Compare import headers with the scorecard's visible columns.

    Duplicate normalized headers are reported before any mapping is built.
    """
    normalized = [normalize_column_name(h) for h in headers]
    counts = Counter(n for n in normalized if n)
    duplicates = [str(h) for h, n in zip(headers, normalized) if n and counts[n] > 1]
    if duplicates:
        return ImportCheck(duplicates=list(dict.fromkeys(duplicates)))

    visible = [c for c in scorecard.columns if not is_system_column(c)]
    grid_names = {normalize_column_name(c.name): c for c in visible}
    import_names = {n: h for h, n in zip(headers, normalized) if n}

    missing = [c.name for n, c in grid_names.items() if n not in import_names]
    extra = [str(h) for n, h in import_names.items() if n not in grid_names]
    mapping = {n: grid_names[n].key for n in import_names if n in grid_names}
    return ImportCheck(missing=missing, extra=extra, mapping=mapping)


def validate_import(scorecard: Scorecard, headers: list[Any]) -> ImportCheck:
    """Check headers and raise on any mismatch.

    Raises:
        ImportMismatchError: If there are duplicate, missing or extra columns.
    """
    check = check_headers(scorecard, headers)
    if not check.ok:
        raise ImportMismatchError(
            check.message(),
            missing=check.missing,
            extra=check.extra,
            duplicates=check.duplicates,
        )
    return check


def import_cell(column: Column, raw: Any) -> Any:
    """Convert one imported cell the way an edit of that column would.

    Dates are accepted as text here, since files carry no picker.

    Raises:
        ValidationError: If the value is not acceptable for the column.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return ""
    kind = editor_for(column)
    if kind == EditorKind.CONTACT:
        return Contact.from_value(raw.strip() if isinstance(raw, str) else raw).model_dump()
    if kind == EditorKind.DATE:
        parsed = parse_date(raw)
        if parsed is None:
            raise ValidationError(f"Invalid {column.name}: {raw!r}")
        return coerce_cell(column, parsed)
    if isinstance(raw, str):
        raw = raw.strip()
    return coerce_cell(column, raw)


def import_rows(scorecard: Scorecard, table: list[list[Any]]) -> Scorecard:
    """Replace every row of the scorecard with the rows of ``table``.

    Args:
        scorecard: Target scorecard.
        table: Header row followed by data rows.

    Returns:
        New scorecard with rows renumbered from 1. Blank lines are skipped.

    Raises:
        ValidationError: If the table is empty, the headers do not match
            or a cell is not valid for its column.
    """
    if not table:
        raise ValidationError("The file is empty")
    headers = table[0]
    check = validate_import(scorecard, headers)
    keys = [check.mapping.get(normalize_column_name(h)) for h in headers]

    data_rows = [
        line for line in table[1:]
        if any(cell is not None and str(cell).strip() for cell in line)
    ]
    columns = {c.key: c for c in scorecard.columns}
    rows = []
    for index, line in enumerate(data_rows, start=1):
        row: dict[str, Any] = {"id": index}
        for column in scorecard.columns:
            row[column.key] = ""
        for key, cell in zip(keys, line):
            if key is None:
                continue
            try:
                row[key] = import_cell(columns[key], cell)
            except ValidationError as e:
                raise ValidationError(f"Row {index}: {e}") from e
        rows.append(row)

    logger.info(f"Imported {len(rows)} rows into scorecard {scorecard.id}")
    return scorecard.touched(rows=rows)


def read_csv_table(path: Path | str) -> list[list[str]]:
    """Read a CSV file into a list of rows."""
    with open(path, newline="", encoding="utf-8-sig") as f:
        return [row for row in csv.reader(f)]

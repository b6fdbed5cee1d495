"""Per-cell parsing and display formatting."""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

from ..errors import ValidationError
from ..models import Column, Contact
from .columns import (
    CONTACT_PLACEHOLDERS,
    PRIORITY_OPTIONS,
    PRODUCT_STATUS_OPTIONS,
    EditorKind,
    editor_for,
)

PRICE_PATTERN = re.compile(r"^\d*\.?\d*$")
STORE_COUNT_PATTERN = re.compile(r"^\d*$")
DATE_FORMAT = "%m/%d/%Y"


def parse_price(raw: Any) -> float | str:
    """Parse a retail price.

    Empty input is the cleared state and stays an empty string.

    Raises:
        ValidationError: If the input is negative or not a number.
    """
    if isinstance(raw, bool):
        raise ValidationError(f"Invalid price: {raw!r}")
    if isinstance(raw, (int, float)):
        if raw < 0:
            raise ValidationError("Price cannot be negative")
        return float(raw)
    text = "" if raw is None else str(raw).strip()
    if text == "":
        return ""
    if not PRICE_PATTERN.match(text) or text == ".":
        raise ValidationError(f"Invalid price: {text!r}")
    return float(text)


def format_price(value: Any) -> str:
    """Render a price as ``$X.XX``; empty stays empty."""
    if value is None or value == "":
        return ""
    try:
        return f"${float(value):.2f}"
    except (TypeError, ValueError):
        return str(value)


def parse_store_count(raw: Any) -> int | str:
    """Parse a store count. Digits only, no decimal point.

    Raises:
        ValidationError: If the input contains anything but digits.
    """
    if isinstance(raw, bool):
        raise ValidationError(f"Invalid store count: {raw!r}")
    if isinstance(raw, int):
        if raw < 0:
            raise ValidationError("Store count cannot be negative")
        return raw
    text = "" if raw is None else str(raw).strip()
    if text == "":
        return ""
    if not STORE_COUNT_PATTERN.match(text):
        raise ValidationError(f"Store count must be a whole number: {text!r}")
    return int(text)


def parse_date(raw: Any) -> date | None:
    """Read a stored review date (``MM/DD/YYYY`` or ISO)."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    text = str(raw).strip()
    try:
        return datetime.strptime(text, DATE_FORMAT).date()
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def format_date(value: Any) -> str:
    parsed = parse_date(value)
    return parsed.strftime(DATE_FORMAT) if parsed else ""


def coerce_cell(column: Column, value: Any) -> Any:
    """Validate and convert an edited value for storage.

    Args:
        column: Column being edited.
        value: Raw value from the editor.

    Returns:
        The value to store in the row.

    Raises:
        ValidationError: If the value is not acceptable for the column.
    """
    kind = editor_for(column)
    if kind == EditorKind.PRIORITY:
        return _coerce_choice(value, PRIORITY_OPTIONS, column)
    if kind == EditorKind.STATUS:
        return _coerce_choice(value, PRODUCT_STATUS_OPTIONS, column)
    if kind == EditorKind.PRICE:
        return parse_price(value)
    if kind == EditorKind.STORE_COUNT:
        return parse_store_count(value)
    if kind == EditorKind.DATE:
        # Selection only: the picker hands over a date, never typed text
        if value is None or value == "":
            return ""
        if not isinstance(value, date):
            raise ValidationError(f"{column.name} must be picked from the calendar")
        return value.strftime(DATE_FORMAT)
    if kind == EditorKind.CONTACT:
        raise ValidationError(f"{column.name} is edited in the contact panel")
    return "" if value is None else str(value)


def _coerce_choice(value: Any, options: list[str], column: Column) -> str:
    if value is None or value == "":
        return ""
    if value not in options:
        raise ValidationError(f"{value!r} is not a valid {column.name} option")
    return value


def format_cell(column: Column, value: Any) -> str:
    """Render a stored value for display."""
    kind = editor_for(column)
    if kind == EditorKind.PRICE:
        return format_price(value)
    if kind == EditorKind.DATE:
        return format_date(value)
    if kind == EditorKind.CONTACT:
        contact = Contact.from_value(value)
        return contact.name or CONTACT_PLACEHOLDERS[column.key]
    if value is None:
        return ""
    return str(value)

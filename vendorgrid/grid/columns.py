"""Default columns, option vocabularies and editor routing."""

from __future__ import annotations

import re
from enum import Enum

from ..models import Column, CurrentUser

PRIORITY_OPTIONS = ["High", "Medium", "Low"]

PRODUCT_STATUS_OPTIONS = [
    "Authorized",
    "In Process",
    "In/Out",
    "Buyer Passed",
    "Presented",
    "Discontinued",
    "Meeting Secured",
    "On Hold",
    "Category Review",
    "Open Review",
]

PRIORITY_KEY = "priority"
PRICE_KEY = "retail_price"
STORE_COUNT_KEY = "store_count"
REVIEW_DATE_KEY = "category_review_date"
RETAILER_KEY = "name"
RETAILER_NAME = "Retailer Name"

# Contact column key -> placeholder shown when the cell is empty
CONTACT_PLACEHOLDERS = {
    "cmg": "Add Category Manager",
    "brand_lead": "Add Brand Lead",
}

# Row key holding the row's nested grid
SUBGRID_KEY = "subgrid"

# Keys that identify rows or drive structure; never editable
STRUCTURAL_KEYS = frozenset({"id", "delete", SUBGRID_KEY})

# Columns hidden from import/export matching
SYSTEM_KEYS = frozenset({"delete", "comments"})


class EditorKind(str, Enum):
    """Editing affordance of a cell."""

    PRIORITY = "priority"
    STATUS = "status"
    PRICE = "price"
    STORE_COUNT = "store_count"
    DATE = "date"
    CONTACT = "contact"
    TEXT = "text"


def default_columns() -> list[Column]:
    """Return the fixed starter columns of a new scorecard."""
    return [
        Column(key=RETAILER_KEY, name=RETAILER_NAME, is_default=True),
        Column(key=PRIORITY_KEY, name="Priority", is_default=True),
        Column(key=PRICE_KEY, name="Retail Price", is_default=True),
        Column(key=REVIEW_DATE_KEY, name="CategoryReviewDate", is_default=True),
        Column(key="buyer", name="Buyer", is_default=True),
        Column(key=STORE_COUNT_KEY, name="Store Count", is_default=True),
        Column(key="route_to_market", name="Route To Market", is_default=True),
        Column(key="hq_location", name="HQ Location", is_default=True),
        Column(key="cmg", name="Category Manager", is_default=True),
        Column(key="brand_lead", name="Brand Lead", is_default=True),
    ]


def column_key_for(name: str) -> str:
    """Derive a column key from a display name.

    Example: "Product A Status" -> "product_a_status"
    """
    return re.sub(r"\s+", "_", name.strip().lower())


def is_reserved_key(key: str) -> bool:
    """Keys a user-added column may not take."""
    return key.startswith("_") or key in STRUCTURAL_KEYS or key in SYSTEM_KEYS


def is_system_column(column: Column) -> bool:
    """Check whether a column is hidden from import matching."""
    return column.key.startswith("_") or column.key in SYSTEM_KEYS


def is_retailer_column(column: Column) -> bool:
    return column.name == RETAILER_NAME or column.key == RETAILER_KEY


def editor_for(column: Column) -> EditorKind:
    """Route a column to its editor, first match wins.

    Order: priority key, user-added status columns, price, store count,
    review date, contact references, then free text.
    """
    if column.key == PRIORITY_KEY:
        return EditorKind.PRIORITY
    if not column.is_default:
        return EditorKind.STATUS
    if column.key == PRICE_KEY:
        return EditorKind.PRICE
    if column.key == STORE_COUNT_KEY:
        return EditorKind.STORE_COUNT
    if column.key == REVIEW_DATE_KEY:
        return EditorKind.DATE
    if column.key in CONTACT_PLACEHOLDERS:
        return EditorKind.CONTACT
    return EditorKind.TEXT


def can_edit(column: Column, user: CurrentUser | None) -> bool:
    """Check whether ``user`` may edit cells of ``column``.

    Write access requires the ADMIN role and a non-structural column.
    """
    if user is None or not user.is_admin:
        return False
    if column.key in STRUCTURAL_KEYS:
        return False
    return column.editable

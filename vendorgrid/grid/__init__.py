"""Tabular edit model: columns, cells, structural edits and import."""

from .cells import coerce_cell, format_cell, format_price, parse_price, parse_store_count
from .columns import (
    PRIORITY_OPTIONS,
    PRODUCT_STATUS_OPTIONS,
    EditorKind,
    can_edit,
    column_key_for,
    default_columns,
    editor_for,
    is_reserved_key,
)
from .importer import (
    ImportCheck,
    check_headers,
    import_cell,
    import_rows,
    normalize_column_name,
    read_csv_table,
    validate_import,
)
from .operations import (
    SortDirection,
    SortState,
    add_column,
    add_row,
    apply_template,
    delete_column,
    delete_row,
    new_scorecard,
    rename_column,
    set_cell,
    set_contact,
    sorted_rows,
)
from .subgrid import (
    add_subgrid,
    add_subgrid_column,
    add_subgrid_row,
    apply_subgrid_template,
    delete_subgrid,
    delete_subgrid_column,
    delete_subgrid_row,
    rename_subgrid_column,
    set_subgrid_cell,
    subgrid_of,
)

__all__ = [
    "EditorKind",
    "ImportCheck",
    "PRIORITY_OPTIONS",
    "PRODUCT_STATUS_OPTIONS",
    "SortDirection",
    "SortState",
    "add_column",
    "add_row",
    "add_subgrid",
    "add_subgrid_column",
    "add_subgrid_row",
    "apply_subgrid_template",
    "apply_template",
    "can_edit",
    "check_headers",
    "coerce_cell",
    "column_key_for",
    "default_columns",
    "delete_column",
    "delete_row",
    "delete_subgrid",
    "delete_subgrid_column",
    "delete_subgrid_row",
    "editor_for",
    "format_cell",
    "format_price",
    "import_cell",
    "import_rows",
    "is_reserved_key",
    "new_scorecard",
    "normalize_column_name",
    "parse_price",
    "parse_store_count",
    "read_csv_table",
    "rename_column",
    "rename_subgrid_column",
    "set_cell",
    "set_contact",
    "set_subgrid_cell",
    "sorted_rows",
    "subgrid_of",
    "validate_import",
]

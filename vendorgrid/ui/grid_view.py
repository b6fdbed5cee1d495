"""Scorecard grid view with toolbar, sort headers and column management."""

from typing import Any, Callable

from castella import (
    Button,
    Column,
    ColumnConfig,
    Component,
    DataTable,
    DataTableState,
    Input,
    InputState,
    Row,
    Spacer,
    State,
    Text,
)
from castella.theme import ThemeManager

from ..errors import PortalError
from ..grid.cells import format_cell
from ..grid.operations import SortDirection
from ..state.session import EditorSession
from .row_editor import RowEditor


class GridInputs:
    """Input states owned by the app so they survive re-renders."""

    def __init__(self):
        self.column_name = InputState("")
        self.rename = InputState("")
        self.import_path = InputState("")
        self.template_name = InputState("")
        self.title = InputState("")


class ScorecardGrid(Component):
    """Tabular editor for the selected scorecard."""

    def __init__(
        self,
        session: EditorSession,
        inputs: GridInputs,
        selected_row: State,
        on_message: Callable[[str], None],
    ):
        super().__init__()
        self._session = session
        self._inputs = inputs
        self._selected_row = selected_row
        self._on_message = on_message

        self._panel = State("row")  # row, columns, templates
        self._panel.attach(self)
        self._render_trigger = State(0)
        self._render_trigger.attach(self)

        self._current_rows: list[dict[str, Any]] = []

    def view(self):
        theme = ThemeManager().current
        scorecard = self._session.selected
        if scorecard is None:
            return Column(
                Text("No scorecard selected", font_size=16),
                Text("Create one from the sidebar", font_size=12).text_color(theme.colors.fg),
                Spacer(),
            )

        self._current_rows = self._session.visible_rows()
        columns = [ColumnConfig(name=c.name, width=140) for c in scorecard.columns]
        rows = [
            [format_cell(c, row.get(c.key, "")) for c in scorecard.columns]
            for row in self._current_rows
        ]
        table_state = DataTableState(rows=rows, columns=columns)
        selected_row = self._selected_row()
        for i, row in enumerate(self._current_rows):
            if str(row.get("id")) == str(selected_row):
                table_state.select_row(i)
                break

        return Row(
            Column(
                self._build_header(scorecard),
                Spacer().fixed_height(8),
                self._build_toolbar(),
                Spacer().fixed_height(8),
                self._build_sort_headers(scorecard),
                DataTable(table_state).on_cell_click(self._on_row_click),
            ).flex(3),
            Spacer().fixed_width(8),
            Column(
                self._build_panel_tabs(),
                self._build_panel(),
            ).flex(2),
        )

    def _build_header(self, scorecard):
        draft_label = "Mark Final" if scorecard.is_draft else "Mark Draft"
        return Row(
            Text(scorecard.title, font_size=20),
            Spacer(),
            Input(self._inputs.title).fixed_width(200),
            Button("Rename").on_click(self._on_rename_scorecard).fixed_width(80),
            Spacer().fixed_width(8),
            Button(draft_label)
            .on_click(lambda _: self._run(lambda: self._session.set_draft(not scorecard.is_draft)))
            .fixed_width(100),
        ).fixed_height(40)

    def _build_toolbar(self):
        return Row(
            Button("+ Row").on_click(lambda _: self._run(self._session.add_row)).fixed_width(70),
            Spacer().fixed_width(16),
            Input(self._inputs.column_name).fixed_width(180),
            Button("+ Column").on_click(self._on_add_column).fixed_width(90),
            Spacer().fixed_width(16),
            Input(self._inputs.import_path).flex(1),
            Button("Import CSV").on_click(self._on_import).fixed_width(100),
        ).fixed_height(40)

    def _build_sort_headers(self, scorecard):
        theme = ThemeManager().current
        sort = self._session.sort
        buttons = []
        for column in scorecard.columns:
            label = column.name
            if sort.column_key == column.key and sort.direction is not None:
                label += " ^" if sort.direction == SortDirection.ASC else " v"
            buttons.append(
                Button(label)
                .on_click(lambda _, key=column.key: self._on_sort(key))
                .bg_color(
                    theme.colors.bg_selected if sort.column_key == column.key else theme.colors.bg_secondary
                )
                .fixed_width(140)
            )
        return Row(*buttons).fixed_height(32)

    def _build_panel_tabs(self):
        theme = ThemeManager().current
        active = self._panel()

        def tab(label: str, panel: str):
            return (
                Button(label)
                .on_click(lambda _: self._panel.set(panel))
                .bg_color(theme.colors.bg_selected if active == panel else theme.colors.bg_secondary)
            )

        return Row(
            tab("Row", "row"),
            tab("Columns", "columns"),
            tab("Templates", "templates"),
        ).fixed_height(36)

    def _build_panel(self):
        panel = self._panel()
        if panel == "columns":
            return self._build_columns_panel()
        if panel == "templates":
            return self._build_templates_panel()
        row_id = self._selected_row()
        if row_id in (None, ""):
            return Text("Click a row to edit it", font_size=13)
        return RowEditor(
            session=self._session,
            row_id=row_id,
            on_message=self._on_message,
            on_changed=self._refresh,
        )

    def _build_columns_panel(self):
        scorecard = self._session.selected
        items = []
        for column in scorecard.columns:
            items.append(
                Row(
                    Text(f"{column.name} ({column.key})", font_size=12).flex(1),
                    Button("Rename")
                    .on_click(lambda _, key=column.key: self._on_rename_column(key))
                    .fixed_width(70),
                    Button("Delete")
                    .on_click(lambda _, key=column.key: self._run(lambda: self._session.delete_column(key)))
                    .fixed_width(70),
                ).fixed_height(32)
            )
        return Column(
            Row(Text("New name", font_size=12).fixed_width(80), Input(self._inputs.rename)).fixed_height(36),
            Column(*items, scrollable=True).flex(1),
        )

    def _build_templates_panel(self):
        items = []
        for template in self._session.templates:
            items.append(
                Row(
                    Text(template.name, font_size=12).flex(1),
                    Button("Columns")
                    .on_click(lambda _, tid=template.id: self._apply_template(tid, False))
                    .fixed_width(80),
                    Button("+ Rows")
                    .on_click(lambda _, tid=template.id: self._apply_template(tid, True))
                    .fixed_width(70),
                    Button("x")
                    .on_click(lambda _, tid=template.id: self._run(lambda: self._session.delete_template(tid)))
                    .fixed_width(28),
                ).fixed_height(32)
            )
        return Column(
            Row(
                Input(self._inputs.template_name).flex(1),
                Button("Save").on_click(lambda _: self._save_template(False)).fixed_width(60),
                Button("Save + Rows").on_click(lambda _: self._save_template(True)).fixed_width(100),
            ).fixed_height(36),
            Button("Reload").on_click(lambda _: self._run(self._session.load_templates)).fixed_height(32),
            Column(*items, scrollable=True).flex(1),
        )

    def _on_row_click(self, event):
        if 0 <= event.row < len(self._current_rows):
            self._selected_row.set(self._current_rows[event.row].get("id"))
            self._panel.set("row")

    def _on_sort(self, key: str):
        self._run(lambda: self._session.toggle_sort(key))

    def _on_add_column(self, _):
        if self._run(lambda: self._session.add_column(self._inputs.column_name.value())):
            self._inputs.column_name.set("")

    def _on_rename_column(self, key: str):
        if self._run(lambda: self._session.rename_column(key, self._inputs.rename.value())):
            self._inputs.rename.set("")

    def _on_rename_scorecard(self, _):
        if self._run(lambda: self._session.rename_scorecard(self._inputs.title.value())):
            self._inputs.title.set("")

    def _on_import(self, _):
        path = self._inputs.import_path.value().strip()
        if not path:
            self._on_message("Enter the path of a CSV file")
            return
        try:
            self._session.import_csv(path)
        except OSError as e:
            self._on_message(f"Cannot read {path}: {e}")
            return
        except PortalError as e:
            self._on_message(str(e))
            return
        self._on_message(f"Imported rows from {path}")
        self._refresh()

    def _save_template(self, include_rows: bool):
        if self._run(lambda: self._session.save_template(self._inputs.template_name.value(), include_rows)):
            self._inputs.template_name.set("")

    def _apply_template(self, template_id: str, with_rows: bool):
        self._run(lambda: self._session.apply_template(template_id, with_rows))

    def _run(self, action: Callable[[], Any]) -> bool:
        try:
            action()
        except PortalError as e:
            self._on_message(str(e))
            return False
        self._refresh()
        return True

    def _refresh(self):
        self._render_trigger.set(self._render_trigger() + 1)

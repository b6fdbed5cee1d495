"""Sub-grid panel: the nested grid of one row and its local templates."""

from typing import Any, Callable

from castella import Button, Column, Component, Input, InputState, Row, Spacer, Text
from castella.theme import ThemeManager

from ..errors import PortalError
from ..models import SubGrid
from ..state.session import EditorSession
from .form_fields import CommitInput


class SubGridPanel(Component):
    """Show, edit and template the sub-grid of a row."""

    def __init__(
        self,
        session: EditorSession,
        row_id: Any,
        on_message: Callable[[str], None],
        on_changed: Callable[[], None],
    ):
        super().__init__()
        self._session = session
        self._row_id = row_id
        self._on_message = on_message
        self._on_changed = on_changed
        self._template_name = InputState("")

    def view(self):
        grid = self._session.subgrid(self._row_id)
        expanded = str(self._session.expanded_row_id) == str(self._row_id)
        label = "Sub-grid" if grid is None else ("Hide Sub-grid" if expanded else "Show Sub-grid")
        toggle = Button(label).on_click(self._on_toggle).fixed_width(120)
        if grid is None or not expanded:
            return Row(toggle, Spacer()).fixed_height(36)

        return Column(
            Row(
                toggle,
                Spacer(),
                Button("Add Column").on_click(self._on_add_column).fixed_width(100),
                Spacer().fixed_width(4),
                Button("Add Row").on_click(self._on_add_row).fixed_width(80),
                Spacer().fixed_width(4),
                Button("Delete Sub-grid").on_click(self._on_delete).fixed_width(120),
            ).fixed_height(36),
            self._build_header(grid),
            Column(*self._build_rows(grid), scrollable=True).flex(1),
            self._build_templates(),
        )

    def _build_header(self, grid: SubGrid):
        cells = []
        for column in grid.columns:
            cells.append(
                Row(
                    CommitInput(
                        InputState(column.name),
                        lambda v, key=column.key: self._run(
                            lambda: self._session.rename_subgrid_column(self._row_id, key, v)
                        ),
                        label="Rename",
                    ).flex(1),
                    Button("x").on_click(
                        lambda _, key=column.key: self._run(
                            lambda: self._session.delete_subgrid_column(self._row_id, key)
                        )
                    ).fixed_width(28),
                ).flex(1)
            )
        return Row(*cells, Spacer().fixed_width(32)).fixed_height(36)

    def _build_rows(self, grid: SubGrid):
        if not grid.rows:
            return [Text("No rows yet", font_size=12).fixed_height(24)]
        rows = []
        for sub_row in grid.rows:
            sub_row_id = sub_row.get("id")
            cells = [
                CommitInput(
                    InputState(str(sub_row.get(column.key, ""))),
                    lambda v, key=column.key, rid=sub_row_id: self._run(
                        lambda: self._session.set_subgrid_cell(self._row_id, rid, key, v)
                    ),
                ).flex(1)
                for column in grid.columns
            ]
            rows.append(
                Row(
                    *cells,
                    Button("x").on_click(
                        lambda _, rid=sub_row_id: self._run(
                            lambda: self._session.delete_subgrid_row(self._row_id, rid)
                        )
                    ).fixed_width(28),
                ).fixed_height(36)
            )
        return rows

    def _build_templates(self):
        theme = ThemeManager().current
        templates = self._session.subgrid_templates()
        apply_buttons = [
            Button(t.name).on_click(
                lambda _, tid=t.id: self._run(
                    lambda: self._session.apply_subgrid_template(self._row_id, tid)
                )
            ).fixed_height(28)
            for t in templates
        ]
        return Column(
            Text("Templates", font_size=13).text_color(theme.colors.text_primary).fixed_height(20),
            Row(
                Input(self._template_name).flex(1),
                Spacer().fixed_width(4),
                Button("Save as Template").on_click(self._on_save_template).fixed_width(140),
            ).fixed_height(36),
            Row(*apply_buttons, Spacer()).fixed_height(32)
            if apply_buttons
            else Text("No saved templates", font_size=12).fixed_height(24),
        ).fixed_height(100)

    def _on_toggle(self, _):
        self._run(lambda: self._session.toggle_subgrid(self._row_id))

    def _on_add_column(self, _):
        self._run(lambda: self._session.add_subgrid_column(self._row_id))

    def _on_add_row(self, _):
        self._run(lambda: self._session.add_subgrid_row(self._row_id))

    def _on_delete(self, _):
        self._run(lambda: self._session.delete_subgrid(self._row_id))

    def _on_save_template(self, _):
        name = self._template_name.value()
        if self._run(lambda: self._session.save_subgrid_template(self._row_id, name)):
            self._template_name.set("")
            self._on_message(f"Sub-grid template '{name.strip()}' saved")

    def _run(self, action: Callable[[], Any]) -> bool:
        try:
            action()
        except PortalError as e:
            self._on_message(str(e))
            return False
        self._on_changed()
        return True

"""Row editor panel: typed cell editors, contact panel, sub-grid and comments."""

from datetime import date, timedelta
from typing import Any, Callable

from castella import (
    Box,
    Button,
    Column,
    Component,
    Input,
    InputState,
    Modal,
    ModalState,
    MultilineInput,
    MultilineInputState,
    Row,
    Spacer,
    Text,
)
from castella.theme import ThemeManager

from ..errors import PortalError
from ..grid.cells import format_cell, parse_date
from ..grid.columns import PRIORITY_OPTIONS, PRODUCT_STATUS_OPTIONS, EditorKind, can_edit, editor_for
from ..models import Column as GridColumn
from ..models import Contact
from ..state.session import EditorSession
from .form_fields import ChoiceButtons, ChoiceState, CommitInput, FieldRow
from .subgrid_panel import SubGridPanel


class RowEditor(Component):
    """Edit one row of the selected scorecard."""

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

        self._contact_modal_state = ModalState()
        self._contact_modal_state.attach(self)
        self._contact_key: str | None = None
        self._contact_states: dict[str, InputState] = {}
        self._comment_state = MultilineInputState("")

    def view(self):
        theme = ThemeManager().current
        scorecard = self._session.selected
        row = scorecard.row(self._row_id) if scorecard else None
        if row is None:
            return Text("Select a row to edit it", font_size=13)

        fields = [self._build_field(column, row) for column in scorecard.columns]

        main_content = Column(
            Row(
                Text(f"Row {self._row_id}", font_size=16),
                Spacer(),
                Button("Delete Row").on_click(self._on_delete_row).fixed_width(100),
            ).fixed_height(40),
            Spacer().fixed_height(8),
            Column(*fields, scrollable=True).flex(2),
            Spacer().fixed_height(8),
            self._build_subgrid(),
            Spacer().fixed_height(8),
            Text("Comments", font_size=14).text_color(theme.colors.text_primary).fixed_height(24),
            self._build_comments().flex(1),
        )

        modal = Modal(
            content=self._build_contact_form(),
            state=self._contact_modal_state,
            title="Contact",
            width=420,
            height=360,
        )
        return Box(main_content, modal)

    def _build_subgrid(self):
        panel = SubGridPanel(
            session=self._session,
            row_id=self._row_id,
            on_message=self._on_message,
            on_changed=self._on_changed,
        )
        if str(self._session.expanded_row_id) == str(self._row_id):
            return panel.flex(2)
        return panel.fixed_height(36)

    def _build_field(self, column: GridColumn, row: dict[str, Any]):
        value = row.get(column.key, "")
        if not can_edit(column, self._session.user):
            return FieldRow(column.name, Text(format_cell(column, value), font_size=13))

        kind = editor_for(column)
        if kind in (EditorKind.PRIORITY, EditorKind.STATUS):
            options = PRIORITY_OPTIONS if kind == EditorKind.PRIORITY else PRODUCT_STATUS_OPTIONS
            state = ChoiceState(
                options,
                value=str(value or ""),
                on_change=lambda v, key=column.key: self._set_cell(key, v),
            )
            return FieldRow(column.name, ChoiceButtons(state))
        if kind == EditorKind.DATE:
            return FieldRow(column.name, self._build_date_picker(column.key, value))
        if kind == EditorKind.CONTACT:
            return FieldRow(
                column.name,
                Button(format_cell(column, value)).on_click(
                    lambda _, key=column.key: self._open_contact(key)
                ),
            )
        state = InputState("" if value is None else str(value))
        return FieldRow(
            column.name,
            CommitInput(state, lambda v, key=column.key: self._set_cell(key, v)),
        )

    def _build_date_picker(self, key: str, value: Any):
        current = parse_date(value)
        base = current or date.today()
        return Row(
            Text(current.strftime("%m/%d/%Y") if current else "No date", font_size=13).fixed_width(100),
            Button("-1d").on_click(lambda _: self._set_cell(key, base - timedelta(days=1))).fixed_width(44),
            Button("Today").on_click(lambda _: self._set_cell(key, date.today())).fixed_width(60),
            Button("+1d").on_click(lambda _: self._set_cell(key, base + timedelta(days=1))).fixed_width(44),
            Button("Clear").on_click(lambda _: self._set_cell(key, "")).fixed_width(60),
        )

    def _build_comments(self):
        comments = self._session.comments_for(self._row_id)
        items = []
        for comment in comments:
            author = comment.author or "Anonymous"
            when = comment.created_at.strftime("%Y-%m-%d %H:%M") if comment.created_at else ""
            items.append(
                Row(
                    Text(f"{author} {when}: {comment.text}", font_size=12),
                    Spacer(),
                    Button("x").on_click(lambda _, cid=comment.id: self._on_delete_comment(cid)).fixed_width(28),
                ).fixed_height(28)
            )
        if not items:
            items.append(Text("No comments yet", font_size=12).fixed_height(24))

        return Column(
            Column(*items, scrollable=True).flex(1),
            MultilineInput(self._comment_state, font_size=12).fixed_height(60),
            Button("Add Comment").on_click(self._on_add_comment).fixed_height(32),
        )

    def _build_contact_form(self):
        fields = [("name", "Name"), ("telephone", "Telephone"), ("address", "Address"), ("notes", "Notes")]
        return Column(
            *[
                FieldRow(label, Input(self._contact_states.setdefault(field, InputState(""))))
                for field, label in fields
            ],
            Row(
                Spacer(),
                Button("Cancel").on_click(lambda _: self._contact_modal_state.close()).fixed_width(80),
                Spacer().fixed_width(8),
                Button("Save").on_click(self._on_save_contact).fixed_width(80),
            ).fixed_height(40),
        )

    def _open_contact(self, key: str):
        scorecard = self._session.selected
        row = scorecard.row(self._row_id) if scorecard else None
        contact = Contact.from_value(row.get(key) if row else None)
        self._contact_key = key
        for field in ("name", "telephone", "address", "notes"):
            self._contact_states.setdefault(field, InputState("")).set(getattr(contact, field))
        self._contact_modal_state.open()

    def _on_save_contact(self, _):
        if self._contact_key is None:
            return
        contact = Contact(**{f: s.value() for f, s in self._contact_states.items()})
        if self._run(lambda: self._session.set_contact(self._row_id, self._contact_key, contact)):
            self._contact_modal_state.close()

    def _set_cell(self, key: str, value: Any):
        self._run(lambda: self._session.set_cell(self._row_id, key, value))

    def _on_delete_row(self, _):
        self._run(lambda: self._session.delete_row(self._row_id))

    def _on_add_comment(self, _):
        text = self._comment_state.value()
        if self._run(lambda: self._session.add_comment(self._row_id, text)):
            self._comment_state.set("")

    def _on_delete_comment(self, comment_id: str):
        self._run(lambda: self._session.delete_comment(comment_id))

    def _run(self, action: Callable[[], Any]) -> bool:
        try:
            action()
        except PortalError as e:
            self._on_message(str(e))
            return False
        self._on_changed()
        return True

"""Small editor widgets shared by the row editor."""

from typing import Callable

from castella import Button, Column, Component, Input, InputState, Row, Spacer, State, Text
from castella.theme import ThemeManager


class ChoiceState:
    """Selected value of a fixed vocabulary; "" means cleared."""

    def __init__(self, options: list[str], value: str = "", on_change: Callable[[str], None] | None = None):
        self.options = list(options)
        self._value = State(value if value in self.options else "")
        self._on_change = on_change

    def attach(self, component: Component):
        self._value.attach(component)

    def value(self) -> str:
        return self._value()

    def choose(self, value: str):
        if value == self._value():
            return
        # Notify first so the session holds the edit before the re-render
        if self._on_change:
            self._on_change(value)
        self._value.set(value)


class ChoiceButtons(Component):
    """One toggle button per option, plus "-" to clear the cell."""

    def __init__(self, state: ChoiceState):
        super().__init__()
        self._state = state
        self._state.attach(self)

    def view(self):
        colors = ThemeManager().current.colors
        current = self._state.value()
        items = []
        for option in self._state.options:
            items.append(
                Button(option)
                .on_click(lambda _, v=option: self._state.choose(v))
                .bg_color(colors.bg_selected if option == current else colors.bg_secondary)
                .fixed_height(28)
            )
            items.append(Spacer().fixed_width(4))
        items.append(Button("-").on_click(lambda _: self._state.choose("")).fixed_width(28))
        return Row(*items).fixed_height(32)


class FieldRow(Component):
    """Label on the left, editor on the right."""

    def __init__(self, label: str, editor, error: str = ""):
        super().__init__()
        self._label = label
        self._editor = editor
        self._error = error

    def view(self):
        theme = ThemeManager().current
        return Column(
            Row(
                Text(self._label, font_size=13).text_color(theme.colors.text_primary).fixed_width(150),
                self._editor,
            ).fixed_height(36),
            (
                Text(self._error, font_size=11).text_color(theme.colors.text_danger).fixed_height(16)
                if self._error
                else Spacer().fixed_height(4)
            ),
        ).fixed_height(56 if self._error else 44)


class CommitInput(Component):
    """Text input committed with a button (no re-render while typing)."""

    def __init__(self, state: InputState, on_commit: Callable[[str], None], label: str = "Set"):
        super().__init__()
        self._state = state
        self._on_commit = on_commit
        self._label = label

    def view(self):
        return Row(
            Input(self._state).flex(1),
            Spacer().fixed_width(4),
            Button(self._label).on_click(lambda _: self._on_commit(self._state.value())).fixed_width(60),
        ).fixed_height(36)

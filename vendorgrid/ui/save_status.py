"""Save status indicator bar."""

from typing import Callable

from castella import Button, Component, Row, Spacer, Text
from castella.theme import ThemeManager

from ..state.autosave import SaveSnapshot, SaveStatus, describe_status


class SaveStatusBar(Component):
    """Shows the auto-save status with a manual save / retry button."""

    def __init__(self, snapshot: SaveSnapshot, on_save_now: Callable[[], None], message: str = ""):
        super().__init__()
        self._snapshot = snapshot
        self._on_save_now = on_save_now
        self._message = message

    def view(self):
        theme = ThemeManager().current
        label, detail = describe_status(self._snapshot)
        colors = {
            SaveStatus.SAVED: theme.colors.text_success,
            SaveStatus.SAVING: theme.colors.text_info,
            SaveStatus.UNSAVED: theme.colors.text_warning,
            SaveStatus.ERROR: theme.colors.text_danger,
            SaveStatus.OFFLINE: theme.colors.text_warning,
        }
        button_label = "Retry" if self._snapshot.status == SaveStatus.ERROR else "Save Now"

        return Row(
            Spacer().fixed_width(8),
            Text(label, font_size=12).text_color(colors[self._snapshot.status]).fixed_width(140),
            Text(detail, font_size=12).fixed_width(220),
            Spacer().fixed_width(16),
            Text(self._message, font_size=12),
            Spacer(),
            Button(button_label).on_click(lambda _: self._on_save_now()).fixed_width(100),
            Spacer().fixed_width(8),
        ).fixed_height(32).bg_color(theme.colors.bg_primary)

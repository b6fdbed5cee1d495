"""Scorecard navigation sidebar."""

from typing import Callable

from castella import Button, Column, Component, Input, InputState, Row, Spacer, Text
from castella.theme import ThemeManager

from ..models import Scorecard
from ..state.session import MASTER_CATEGORY


class ScorecardSidebar(Component):
    """Lists scorecards and offers creation and the master view."""

    def __init__(
        self,
        scorecards: list[Scorecard],
        selected_category: str | None,
        on_select: Callable[[str], None],
        on_create: Callable[[str, bool], None],
        on_delete: Callable[[str], None],
        title_state: InputState,
    ):
        super().__init__()
        self._scorecards = scorecards
        self._selected_category = selected_category
        self._on_select = on_select
        self._on_create = on_create
        self._on_delete = on_delete
        self._title_state = title_state

    def view(self):
        theme = ThemeManager().current

        return Column(
            Text("vendorgrid", font_size=24).fixed_height(48),
            Text("Retailer scorecards", font_size=12).fixed_height(20),
            Spacer().fixed_height(16),
            self._nav_button("Master Scorecard", MASTER_CATEGORY),
            Spacer().fixed_height(12),
            Text("Scorecards", font_size=14).fixed_height(24),
            Column(
                *[self._scorecard_row(s) for s in self._scorecards],
                scrollable=True,
            ).flex(1),
            Spacer().fixed_height(8),
            Input(self._title_state).fixed_height(36),
            Spacer().fixed_height(4),
            Row(
                Button("Create").on_click(lambda _: self._create(local=False)).flex(1),
                Spacer().fixed_width(4),
                Button("Create Local").on_click(lambda _: self._create(local=True)).flex(1),
            ).fixed_height(36),
            Spacer().fixed_height(8),
        ).bg_color(theme.colors.bg_primary)

    def _nav_button(self, label: str, category: str):
        theme = ThemeManager().current
        is_active = self._selected_category == category

        return (
            Button(label)
            .on_click(lambda _: self._on_select(category))
            .bg_color(theme.colors.bg_selected if is_active else theme.colors.bg_secondary)
        ).fixed_height(40)

    def _scorecard_row(self, scorecard: Scorecard):
        theme = ThemeManager().current
        label = scorecard.title
        if scorecard.is_local:
            label = f"{label} (local)"
        if scorecard.is_draft:
            label = f"{label} [draft]"

        return Row(
            self._nav_button(label, scorecard.id).flex(1),
            Button("x")
            .on_click(lambda _, sid=scorecard.id: self._on_delete(sid))
            .fixed_width(32)
            .bg_color(theme.colors.bg_secondary),
        ).fixed_height(40)

    def _create(self, local: bool):
        self._on_create(self._title_state.value(), local)

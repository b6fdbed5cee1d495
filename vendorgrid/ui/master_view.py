"""Master scorecard view: authorization penetration per retailer and item."""

from castella import Button, Column, ColumnConfig, Component, DataTable, DataTableState, Row, Spacer, State, Text
from castella.theme import ThemeManager

from ..errors import PortalError
from ..models import MasterScorecard
from ..state.session import EditorSession


def format_master_cell(master: MasterScorecard, retailer: str, item: str) -> str:
    """Render a cell as "authorized/total (pct%)", or "-" without statuses."""
    cell = master.cell(retailer, item)
    percent = master.penetration(retailer, item)
    if cell is None or percent is None:
        return "-"
    return f"{cell.authorized}/{cell.total} ({percent}%)"


class MasterView(Component):
    """Retailer x item pivot across all scorecards."""

    def __init__(self, session: EditorSession):
        super().__init__()
        self._session = session
        self._source = State("local")  # local, remote
        self._source.attach(self)
        self._error = ""

    def view(self):
        theme = ThemeManager().current
        master = self._load()

        header = Row(
            Text("Master Scorecard", font_size=20),
            Spacer(),
            Button("Local").on_click(lambda _: self._source.set("local")).bg_color(
                theme.colors.bg_selected if self._source() == "local" else theme.colors.bg_secondary
            ).fixed_width(80),
            Button("Portal").on_click(lambda _: self._source.set("remote")).bg_color(
                theme.colors.bg_selected if self._source() == "remote" else theme.colors.bg_secondary
            ).fixed_width(80),
        ).fixed_height(40)

        if master is None or not master.retailers:
            message = self._error or "No retailer data yet"
            return Column(header, Text(message, font_size=13), Spacer())

        columns = [ColumnConfig(name="Retailer", width=180)] + [
            ColumnConfig(name=item, width=140) for item in master.items
        ]
        rows = [
            [retailer] + [format_master_cell(master, retailer, item) for item in master.items]
            for retailer in master.retailers
        ]
        updated = master.last_updated.strftime("%Y-%m-%d %H:%M:%S") if master.last_updated else ""

        return Column(
            header,
            Text(f"{len(master.retailers)} retailers, {len(master.items)} items", font_size=12).fixed_height(24),
            DataTable(DataTableState(rows=rows, columns=columns)),
            Text(f"Last updated: {updated}", font_size=11).fixed_height(20),
        )

    def _load(self) -> MasterScorecard | None:
        self._error = ""
        try:
            if self._source() == "remote":
                return self._session.remote_master_scorecard()
            return self._session.master_scorecard()
        except PortalError as e:
            self._error = str(e)
            return None

"""Main vendorgrid application component."""

from castella import Column, Component, InputState, Row, State

from ..errors import AuthError, NetworkError, PortalError
from ..state.autosave import SaveListener, SaveSnapshot
from ..state.session import MASTER_CATEGORY, EditorSession
from .grid_view import GridInputs, ScorecardGrid
from .master_view import MasterView
from .save_status import SaveStatusBar
from .sidebar import ScorecardSidebar


class _StatusRelay(SaveListener):
    """Re-render the app whenever the save status changes."""

    def __init__(self, app: "VendorGridApp"):
        self._app = app

    def on_status_changed(self, snapshot: SaveSnapshot) -> None:
        self._app.on_save_status(snapshot)


class VendorGridApp(Component):
    """Main vendorgrid application component."""

    def __init__(self, session: EditorSession):
        super().__init__()
        self._session = session

        self._snapshot = State(session.status())
        self._snapshot.attach(self)

        self._status_message = State("Ready")
        self._status_message.attach(self)

        self._selected_category = State(session.state.selected_category or "")
        self._selected_category.attach(self)

        # Row selection and inputs persist across re-renders
        self._selected_row = State("")
        self._selected_row.attach(self)
        self._new_title_state = InputState("")
        self._grid_inputs = GridInputs()

        session.add_listener(_StatusRelay(self))
        self._initial_load()

    def _initial_load(self):
        try:
            self._session.load()
        except AuthError as e:
            self._status_message.set(f"Sign in required ({e}); working from local cache")
            self._session.load_local()
        self._sync_selection()
        restored = self._session.recover_backup()
        if restored is not None:
            self._status_message.set(f"Restored unsaved changes to '{restored.title}'")
            self._sync_selection()
        try:
            self._session.load_templates()
        except PortalError as e:
            self._status_message.set(f"Templates unavailable: {e}")

    def view(self):
        category = self._selected_category()
        content = (
            MasterView(self._session)
            if category == MASTER_CATEGORY
            else ScorecardGrid(
                session=self._session,
                inputs=self._grid_inputs,
                selected_row=self._selected_row,
                on_message=self._status_message.set,
            )
        )

        return Column(
            Row(
                ScorecardSidebar(
                    scorecards=self._session.scorecards,
                    selected_category=category,
                    on_select=self._on_select,
                    on_create=self._on_create,
                    on_delete=self._on_delete,
                    title_state=self._new_title_state,
                ).fixed_width(260),
                Column(content).flex(1),
            ).flex(1),
            SaveStatusBar(
                snapshot=self._snapshot(),
                on_save_now=self._on_save_now,
                message=self._status_message(),
            ),
        )

    def on_save_status(self, snapshot: SaveSnapshot):
        self._snapshot.set(snapshot)
        # A migration can change the selected identifier
        self._sync_selection()

    def _sync_selection(self):
        category = self._session.state.selected_category or ""
        if category != self._selected_category():
            self._selected_category.set(category)

    def _on_select(self, category: str):
        try:
            if category == MASTER_CATEGORY:
                self._session.show_master()
            else:
                self._session.switch_document(category)
        except NetworkError as e:
            self._status_message.set(f"Offline: {e}")
        except PortalError as e:
            self._status_message.set(str(e))
        self._selected_row.set("")
        self._sync_selection()

    def _on_create(self, title: str, local: bool):
        try:
            if local:
                scorecard = self._session.create_local_scorecard(title)
            else:
                scorecard = self._session.create_scorecard(title)
        except PortalError as e:
            self._status_message.set(str(e))
            return
        self._new_title_state.set("")
        self._status_message.set(f"Created '{scorecard.title}'")
        self._sync_selection()

    def _on_delete(self, scorecard_id: str):
        try:
            self._session.delete_scorecard(scorecard_id)
        except PortalError as e:
            self._status_message.set(str(e))
            return
        self._status_message.set("Scorecard deleted")
        self._selected_row.set("")
        self._sync_selection()

    def _on_save_now(self):
        snapshot = self._session.force_save()
        self._snapshot.set(snapshot)
        self._sync_selection()

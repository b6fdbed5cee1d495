"""Editor session: the single owner of scorecard editing state.

The session holds the list of scorecards, the editing focus, comments and
templates in one EditorState, and its methods are the only write surface.
It also migrates local-only scorecards to the remote store the first time
persistence is required (auto-save or a comment) and swaps the identifier
everywhere it is held.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from ..config.models import AutoSaveSettings
from ..db import LocalCache, MasterScorecardQueries, get_connection
from ..errors import (
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    StoreError,
    ValidationError,
)
from ..grid import operations as ops
from ..grid import subgrid as subgrids
from ..grid.columns import can_edit
from ..grid.importer import import_rows, read_csv_table
from ..models import (
    DEFAULT_TITLE,
    Comment,
    Contact,
    CurrentUser,
    MasterScorecard,
    Scorecard,
    ScorecardRecord,
    SubGrid,
    Template,
    is_local_id,
    utc_now,
)
from ..store import ScorecardStore
from .autosave import AutoSaveEngine, BackupWriter, SaveListener, SaveSnapshot, TimerFactory

logger = logging.getLogger(__name__)

# Navigation pointer value for the master scorecard view
MASTER_CATEGORY = "master-scorecard"


def scorecard_fingerprint(scorecard: Scorecard) -> str:
    """Content fingerprint, ignoring the identifier and timestamps."""
    payload = scorecard.to_payload()
    payload["title"] = scorecard.title
    payload["is_draft"] = scorecard.is_draft
    return json.dumps(payload, sort_keys=True, default=str)


@dataclass
class EditorState:
    """Aggregate editor state. Written only by EditorSession."""

    scorecards: list[Scorecard] = field(default_factory=list)
    selected_id: str | None = None
    selected_category: str | None = None
    # scorecard id -> row id -> comments
    comments: dict[str, dict[str, list[Comment]]] = field(default_factory=dict)
    sort: ops.SortState = field(default_factory=ops.SortState)
    templates: list[Template] = field(default_factory=list)
    user: CurrentUser | None = None
    # row whose sub-grid is shown; one at a time
    expanded_row_id: Any = None


class _SaveReconciler(SaveListener):
    """Feeds finished saves back into the session by identifier."""

    def __init__(self, session: EditorSession):
        self._session = session

    def on_saved(self, value: Any, result: Any) -> None:
        self._session._on_saved(result)


class EditorSession:
    """Scorecard lifecycle manager and editing controller."""

    def __init__(
        self,
        store: ScorecardStore,
        cache: LocalCache,
        autosave: AutoSaveSettings | None = None,
        timer_factory: TimerFactory | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize the session.

        Args:
            store: Remote store client.
            cache: Local cache for the scorecard list and backup slot.
            autosave: Auto-save settings.
            timer_factory: Debounce timer factory (tests pass a fake).
            clock: Time source for the save indicator.
        """
        self._store = store
        self._cache = cache
        settings = autosave or AutoSaveSettings()

        self._lock = threading.RLock()
        self._migration_lock = threading.Lock()
        # local id -> remote id, kept so lagging references still resolve
        self._migrated: dict[str, str] = {}
        # scorecards that lost focus before their edits were saved
        self._unsaved_ids: set[str] = set()
        self._state = EditorState()
        self._master_queries: MasterScorecardQueries | None = None

        listeners: list[SaveListener] = [_SaveReconciler(self)]
        if settings.enable_offline_backup:
            listeners.append(BackupWriter(cache))
        self._engine = AutoSaveEngine(
            self.persist,
            debounce_ms=settings.debounce_ms,
            fingerprint=scorecard_fingerprint,
            listeners=listeners,
            timer_factory=timer_factory,
            clock=clock,
        )

    # State access

    @property
    def state(self) -> EditorState:
        return self._state

    @property
    def engine(self) -> AutoSaveEngine:
        return self._engine

    @property
    def user(self) -> CurrentUser | None:
        return self._state.user

    @property
    def scorecards(self) -> list[Scorecard]:
        return list(self._state.scorecards)

    @property
    def selected_id(self) -> str | None:
        return self._state.selected_id

    @property
    def selected(self) -> Scorecard | None:
        with self._lock:
            if self._state.selected_id is None:
                return None
            return self._find(self._state.selected_id)

    @property
    def templates(self) -> list[Template]:
        return list(self._state.templates)

    @property
    def sort(self) -> ops.SortState:
        return self._state.sort

    def get_scorecard(self, scorecard_id: str) -> Scorecard | None:
        with self._lock:
            return self._find(self.resolve_id(scorecard_id))

    def resolve_id(self, scorecard_id: str) -> str:
        """Follow migrations from a possibly stale identifier."""
        seen = set()
        while scorecard_id in self._migrated and scorecard_id not in seen:
            seen.add(scorecard_id)
            scorecard_id = self._migrated[scorecard_id]
        return scorecard_id

    def _find(self, scorecard_id: str) -> Scorecard | None:
        for scorecard in self._state.scorecards:
            if scorecard.id == scorecard_id:
                return scorecard
        return None

    def status(self) -> SaveSnapshot:
        return self._engine.snapshot()

    def add_listener(self, listener: SaveListener) -> None:
        self._engine.add_listener(listener)

    # Loading

    def load(self) -> None:
        """Load the user and scorecards, merging local-only scorecards.

        Falls back to the local cache when the remote store is unreachable.

        Raises:
            AuthError: If the session is missing or expired.
        """
        try:
            records = self._store.list_scorecards()
        except NetworkError as e:
            logger.warning(f"Remote store unavailable, using local cache: {e}")
            self._engine.set_online(False)
            self.load_local()
            return

        user = self._store.get_current_user()
        remote = [record.to_scorecard() for record in records]
        remote_titles = {s.title for s in remote}
        local_only = [
            s for s in self._cache.load_scorecards()
            if s.is_local and s.title not in remote_titles
        ]
        logger.info(f"Loaded {len(remote)} remote and {len(local_only)} local scorecards")
        self._set_loaded(remote + local_only, user)

    def load_local(self, user: CurrentUser | None = None) -> None:
        """Load scorecards from the local cache only."""
        scorecards = self._cache.load_scorecards()
        logger.info(f"Loaded {len(scorecards)} scorecards from local cache")
        self._set_loaded(scorecards, user)

    def _set_loaded(self, scorecards: list[Scorecard], user: CurrentUser | None) -> None:
        with self._lock:
            self._state = replace(self._state, scorecards=scorecards, user=user)
        self._write_cache()
        if scorecards:
            self._focus(scorecards[0].id)
        else:
            self._focus(None)

    def set_user(self, user: CurrentUser | None) -> None:
        with self._lock:
            self._state = replace(self._state, user=user)

    # Scorecard lifecycle

    def _check_new_title(self, title: str, exclude_id: str | None = None) -> str:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Scorecard name is required")
        for scorecard in self._state.scorecards:
            if scorecard.id != exclude_id and scorecard.title.strip().lower() == title.lower():
                raise ValidationError(f"A scorecard named '{title}' already exists")
        return title

    def create_scorecard(self, title: str) -> Scorecard:
        """Create a scorecard in the remote store and select it.

        Raises:
            ValidationError: If the title is empty or already used.
        """
        title = self._check_new_title(title)
        draft = ops.new_scorecard(title)
        record = self._store.create_scorecard(title, draft.to_payload(), is_draft=True)
        scorecard = draft.model_copy(
            update={
                "id": record.id,
                "created_at": record.created_at or draft.created_at,
                "last_modified": record.last_modified or draft.last_modified,
            }
        )
        with self._lock:
            self._state = replace(self._state, scorecards=[*self._state.scorecards, scorecard])
        self._write_cache()
        self.switch_document(scorecard.id)
        return scorecard

    def create_local_scorecard(self, title: str | None = None) -> Scorecard:
        """Create a local-only scorecard and select it.

        It reaches the remote store on the first save or comment.
        """
        title = self._check_new_title(title) if title else DEFAULT_TITLE
        scorecard = ops.new_scorecard(title)
        with self._lock:
            self._state = replace(self._state, scorecards=[*self._state.scorecards, scorecard])
        self._write_cache()
        self.switch_document(scorecard.id)
        return scorecard

    def delete_scorecard(self, scorecard_id: str) -> None:
        """Delete a scorecard remotely (if persisted) and locally."""
        target = self.resolve_id(scorecard_id)
        if self.get_scorecard(target) is None:
            raise NotFoundError(f"Scorecard {scorecard_id} not found")

        if not is_local_id(target):
            try:
                self._store.delete_scorecard(target)
            except NotFoundError:
                logger.warning(f"Scorecard {target} was already deleted remotely")

        with self._lock:
            remaining = [s for s in self._state.scorecards if s.id != target]
            comments = {k: v for k, v in self._state.comments.items() if k != target}
            refocus = self._state.selected_id == target
            self._unsaved_ids.discard(target)
            self._state = replace(self._state, scorecards=remaining, comments=comments)
            if refocus:
                self._focus(remaining[0].id if remaining else None)
        self._write_cache()
        self._drop_backup_for(target)
        logger.info(f"Deleted scorecard {target}")

    def rename_scorecard(self, title: str) -> Scorecard:
        selected = self._require_selected()
        title = self._check_new_title(title, exclude_id=selected.id) if title.strip() else DEFAULT_TITLE
        return self._apply(lambda s: s.touched(title=title))

    def set_draft(self, is_draft: bool) -> Scorecard:
        return self._apply(lambda s: s.touched(is_draft=is_draft))

    # Navigation

    def switch_document(self, scorecard_id: str) -> Scorecard:
        """Move the editing focus to another scorecard.

        Pending edits of the current scorecard are saved first. Switching
        itself never counts as an edit.

        Raises:
            NotFoundError: If the scorecard does not exist.
        """
        target = self.resolve_id(scorecard_id)
        scorecard = self.get_scorecard(target)
        if scorecard is None:
            raise NotFoundError(f"Scorecard {scorecard_id} not found")

        if self._state.selected_id != target:
            self._flush_before_leaving()

        self._focus(target)
        if not is_local_id(target):
            try:
                self.load_comments(target)
            except (NetworkError, StoreError, NotFoundError) as e:
                logger.warning(f"Could not load comments for {target}: {e}")
        return self.get_scorecard(target) or scorecard

    def _flush_before_leaving(self) -> None:
        """Save pending edits of the focused scorecard before focus moves.

        A scorecard whose save does not go through is remembered and is
        marked unsaved again when it regains focus.
        """
        current = self._state.selected_id
        if current is None or not self._engine.snapshot().has_unsaved_changes:
            return
        snapshot = self._engine.force_save()
        if snapshot.has_unsaved_changes:
            left = self.resolve_id(current)
            logger.warning(f"Leaving scorecard {left} with unsaved changes ({snapshot.status.value})")
            with self._lock:
                self._unsaved_ids.add(left)

    def show_master(self) -> None:
        """Switch to the master scorecard view. Auto-save is idle there."""
        self._flush_before_leaving()
        with self._lock:
            self._state = replace(
                self._state,
                selected_id=None,
                selected_category=MASTER_CATEGORY,
                sort=ops.SortState(),
            )
            self._engine.observe(None, reset_key=MASTER_CATEGORY)

    def _focus(self, scorecard_id: str | None) -> None:
        with self._lock:
            self._state = replace(
                self._state,
                selected_id=scorecard_id,
                selected_category=scorecard_id,
                sort=ops.SortState(),
                expanded_row_id=None,
            )
            value = self._find(scorecard_id) if scorecard_id else None
            self._engine.observe(value, reset_key=scorecard_id)
            resume = scorecard_id in self._unsaved_ids
            self._unsaved_ids.discard(scorecard_id)
        if resume:
            self._engine.mark_dirty()

    # Persistence and migration

    def ensure_persisted(self, scorecard_id: str) -> str:
        """Return the remote identifier, creating the remote record if needed.

        Idempotent: an already migrated scorecard is never created twice.
        On failure nothing is swapped and the scorecard stays local.

        Raises:
            NotFoundError: If the scorecard no longer exists.
            NetworkError: If the remote store is unreachable.
        """
        with self._migration_lock:
            target = self.resolve_id(scorecard_id)
            if not is_local_id(target):
                return target
            scorecard = self.get_scorecard(target)
            if scorecard is None:
                raise NotFoundError(f"Scorecard {scorecard_id} not found")
            record = self._store.create_scorecard(
                scorecard.title, scorecard.to_payload(), is_draft=scorecard.is_draft
            )
            self._reconcile_migration(target, record)
            return record.id

    def persist(self, value: Scorecard) -> ScorecardRecord:
        """Save function of the auto-save engine.

        Local-only scorecards are created (and migrated); everything else,
        including values still carrying a migrated local id, is updated.
        """
        with self._migration_lock:
            target = self.resolve_id(value.id)
            if is_local_id(target):
                if self.get_scorecard(target) is None:
                    raise NotFoundError(f"Scorecard {value.id} was deleted")
                record = self._store.create_scorecard(
                    value.title, value.to_payload(), is_draft=value.is_draft
                )
                self._reconcile_migration(target, record)
                return record
        return self._store.update_scorecard(
            target, value.title, value.to_payload(), is_draft=value.is_draft
        )

    def _reconcile_migration(self, old_id: str, record: ScorecardRecord) -> None:
        """Swap ``old_id`` for the remote id in every place it is held."""
        new_id = record.id
        with self._lock:
            state = self._state
            scorecards = []
            for scorecard in state.scorecards:
                if scorecard.id == old_id:
                    scorecard = scorecard.model_copy(
                        update={
                            "id": new_id,
                            "created_at": record.created_at or scorecard.created_at,
                        }
                    )
                scorecards.append(scorecard)

            comments = dict(state.comments)
            moved = comments.pop(old_id, None)
            if moved:
                merged = {row: list(items) for row, items in comments.get(new_id, {}).items()}
                for row_id, items in moved.items():
                    merged.setdefault(row_id, []).extend(
                        c.model_copy(update={"scorecard_id": new_id}) for c in items
                    )
                comments[new_id] = merged

            self._state = replace(
                state,
                scorecards=scorecards,
                comments=comments,
                selected_id=new_id if state.selected_id == old_id else state.selected_id,
                selected_category=(
                    new_id if state.selected_category == old_id else state.selected_category
                ),
            )
            self._migrated[old_id] = new_id
            if old_id in self._unsaved_ids:
                self._unsaved_ids.discard(old_id)
                self._unsaved_ids.add(new_id)
            if state.selected_id == old_id:
                self._engine.replace_value(self._find(new_id), reset_key=new_id)

        logger.info(f"Migrated local scorecard {old_id} to {new_id}")
        self._write_cache()
        self._rekey_backup(old_id, new_id)

    def _on_saved(self, record: Any) -> None:
        if not isinstance(record, ScorecardRecord):
            return
        with self._lock:
            target = self.resolve_id(record.id)
            if self._find(target) is None:
                # Deleted while the save was in flight
                logger.debug(f"Ignoring save result for removed scorecard {target}")
                return
            if record.last_modified is not None:
                self._state = replace(
                    self._state,
                    scorecards=[
                        s.model_copy(update={"last_modified": record.last_modified})
                        if s.id == target else s
                        for s in self._state.scorecards
                    ],
                )
        self._write_cache()

    def force_save(self) -> SaveSnapshot:
        return self._engine.force_save()

    def set_online(self, online: bool) -> None:
        self._engine.set_online(online)

    def _write_cache(self) -> None:
        try:
            self._cache.save_scorecards(self.scorecards)
        except Exception as e:
            logger.warning(f"Could not write local cache: {e}")

    def _rekey_backup(self, old_id: str, new_id: str) -> None:
        try:
            backup = self._cache.get_backup()
            if isinstance(backup, dict) and backup.get("id") == old_id:
                self._cache.set_backup({**backup, "id": new_id})
        except Exception as e:
            logger.warning(f"Could not update auto-save backup: {e}")

    def _drop_backup_for(self, scorecard_id: str) -> None:
        try:
            backup = self._cache.get_backup()
            if isinstance(backup, dict) and backup.get("id") == scorecard_id:
                self._cache.clear_backup()
        except Exception as e:
            logger.warning(f"Could not clear auto-save backup: {e}")

    def recover_backup(self) -> Scorecard | None:
        """Restore the scorecard held in the backup slot and mark it unsaved.

        Returns:
            The restored scorecard, or None if the slot is empty.
        """
        data = self._cache.get_backup()
        if not data:
            return None
        try:
            restored = Scorecard.model_validate(data)
        except ValueError as e:
            logger.warning(f"Discarding unreadable auto-save backup: {e}")
            return None

        target = self.resolve_id(restored.id)
        restored = restored.model_copy(update={"id": target})
        with self._lock:
            if self._find(target) is None:
                scorecards = [*self._state.scorecards, restored]
            else:
                scorecards = [restored if s.id == target else s for s in self._state.scorecards]
            self._state = replace(self._state, scorecards=scorecards)
            self._focus(target)
        self._engine.mark_dirty()
        self._write_cache()
        logger.info(f"Recovered scorecard {target} from auto-save backup")
        return restored

    # Edits

    def _require_selected(self) -> Scorecard:
        selected = self.selected
        if selected is None:
            raise ValidationError("No scorecard selected")
        return selected

    def _require_admin(self) -> None:
        user = self._state.user
        if user is None or not user.is_admin:
            raise PermissionDeniedError("Only administrators can change scorecards")

    def _apply(self, mutate: Callable[[Scorecard], Scorecard]) -> Scorecard:
        """Run an edit on the selected scorecard and hand it to auto-save."""
        with self._lock:
            current = self._require_selected()
            updated = mutate(current)
            self._state = replace(
                self._state,
                scorecards=[updated if s.id == current.id else s for s in self._state.scorecards],
            )
            self._engine.observe(updated, reset_key=updated.id)
        self._write_cache()
        return updated

    def add_column(self, name: str) -> Scorecard:
        self._require_admin()
        return self._apply(lambda s: ops.add_column(s, name, editable=True))

    def rename_column(self, key: str, name: str) -> Scorecard:
        self._require_admin()
        return self._apply(lambda s: ops.rename_column(s, key, name))

    def delete_column(self, key: str) -> Scorecard:
        self._require_admin()
        return self._apply(lambda s: ops.delete_column(s, key))

    def add_row(self, **values: Any) -> Scorecard:
        self._require_admin()
        return self._apply(lambda s: ops.add_row(s, **values))

    def delete_row(self, row_id: Any) -> Scorecard:
        self._require_admin()
        return self._apply(lambda s: ops.delete_row(s, row_id))

    def _require_editable(self, key: str) -> None:
        column = self._require_selected().column(key)
        if column is None:
            raise ValidationError(f"Unknown column: {key}")
        if not can_edit(column, self._state.user):
            raise PermissionDeniedError(f"{column.name} is read-only")

    def set_cell(self, row_id: Any, key: str, value: Any) -> Scorecard:
        self._require_editable(key)
        return self._apply(lambda s: ops.set_cell(s, row_id, key, value))

    def set_contact(self, row_id: Any, key: str, contact: Contact | None) -> Scorecard:
        self._require_editable(key)
        return self._apply(lambda s: ops.set_contact(s, row_id, key, contact))

    def toggle_sort(self, key: str) -> ops.SortState:
        """Advance the view sort for a column header click."""
        column = self._require_selected().column(key)
        if column is None or not column.sortable:
            raise ValidationError(f"Column {key} is not sortable")
        with self._lock:
            sort = self._state.sort.cycle(key)
            self._state = replace(self._state, sort=sort)
        return sort

    def visible_rows(self) -> list[dict[str, Any]]:
        """Rows of the selected scorecard in view order."""
        selected = self.selected
        if selected is None:
            return []
        return ops.sorted_rows(selected.rows, self._state.sort)

    def import_table(self, table: list[list[Any]]) -> Scorecard:
        """Replace all rows from an imported table, then save immediately.

        Raises:
            ImportMismatchError: If the headers do not match the columns.
        """
        self._require_admin()
        updated = self._apply(lambda s: import_rows(s, table))
        self._engine.force_save()
        return updated

    def import_csv(self, path: Path | str) -> Scorecard:
        return self.import_table(read_csv_table(path))

    # Sub-grids

    @property
    def expanded_row_id(self) -> Any:
        return self._state.expanded_row_id

    def subgrid(self, row_id: Any) -> SubGrid | None:
        selected = self.selected
        return subgrids.subgrid_of(selected, row_id) if selected else None

    def toggle_subgrid(self, row_id: Any) -> SubGrid:
        """Show or hide a row's sub-grid, creating it on first use.

        Only one sub-grid is expanded at a time.
        """
        grid = self.subgrid(row_id)
        if grid is None:
            self.add_subgrid(row_id)
            grid = self.subgrid(row_id)
            expanded = row_id
        else:
            current = self._state.expanded_row_id
            expanded = None if current is not None and str(current) == str(row_id) else row_id
        with self._lock:
            self._state = replace(self._state, expanded_row_id=expanded)
        return grid

    def add_subgrid(self, row_id: Any) -> Scorecard:
        self._require_admin()
        return self._apply(lambda s: subgrids.add_subgrid(s, row_id))

    def delete_subgrid(self, row_id: Any) -> Scorecard:
        self._require_admin()
        updated = self._apply(lambda s: subgrids.delete_subgrid(s, row_id))
        with self._lock:
            if str(self._state.expanded_row_id) == str(row_id):
                self._state = replace(self._state, expanded_row_id=None)
        return updated

    def add_subgrid_column(self, row_id: Any, name: str = subgrids.NEW_COLUMN_NAME) -> Scorecard:
        self._require_admin()
        return self._apply(lambda s: subgrids.add_subgrid_column(s, row_id, name))

    def rename_subgrid_column(self, row_id: Any, key: str, name: str) -> Scorecard:
        self._require_admin()
        return self._apply(lambda s: subgrids.rename_subgrid_column(s, row_id, key, name))

    def delete_subgrid_column(self, row_id: Any, key: str) -> Scorecard:
        self._require_admin()
        return self._apply(lambda s: subgrids.delete_subgrid_column(s, row_id, key))

    def add_subgrid_row(self, row_id: Any) -> Scorecard:
        self._require_admin()
        return self._apply(lambda s: subgrids.add_subgrid_row(s, row_id))

    def delete_subgrid_row(self, row_id: Any, sub_row_id: Any) -> Scorecard:
        self._require_admin()
        return self._apply(lambda s: subgrids.delete_subgrid_row(s, row_id, sub_row_id))

    def set_subgrid_cell(self, row_id: Any, sub_row_id: Any, key: str, value: Any) -> Scorecard:
        self._require_admin()
        return self._apply(lambda s: subgrids.set_subgrid_cell(s, row_id, sub_row_id, key, value))

    def subgrid_templates(self) -> list[Template]:
        """Sub-grid templates saved on this machine."""
        return self._cache.load_subgrid_templates()

    def save_subgrid_template(self, row_id: Any, name: str, include_rows: bool = True) -> Template:
        """Save a row's sub-grid columns (and rows) as a local template.

        Raises:
            ValidationError: If the name is empty or taken, or the row has no sub-grid.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Template name is required")
        templates = self.subgrid_templates()
        if any(t.name.strip().lower() == name.lower() for t in templates):
            raise ValidationError(f"A template named '{name}' already exists")
        grid = self.subgrid(row_id)
        if grid is None:
            raise ValidationError(f"Row {row_id} has no sub-grid")
        template = Template(
            id=uuid.uuid4().hex,
            name=name,
            columns=grid.columns,
            rows=[dict(r) for r in grid.rows] if include_rows else None,
            created_at=utc_now(),
        )
        self._cache.save_subgrid_templates([*templates, template])
        logger.info(f"Saved sub-grid template '{name}'")
        return template

    def apply_subgrid_template(self, row_id: Any, template_id: str, with_rows: bool = True) -> Scorecard:
        self._require_admin()
        template = next((t for t in self.subgrid_templates() if t.id == template_id), None)
        if template is None:
            raise NotFoundError(f"Sub-grid template {template_id} not found")
        return self._apply(lambda s: subgrids.apply_subgrid_template(s, row_id, template, with_rows))

    # Comments

    def load_comments(self, scorecard_id: str | None = None) -> dict[str, list[Comment]]:
        """Fetch the comments of a scorecard grouped by row id."""
        target = self.resolve_id(scorecard_id or self._state.selected_id or "")
        if not target:
            return {}
        grouped: dict[str, list[Comment]] = {}
        for comment in self._store.list_comments(target):
            grouped.setdefault(comment.row_id, []).append(comment)
        with self._lock:
            # The scorecard may have been migrated or removed meanwhile
            current = self.resolve_id(target)
            if self._find(current) is not None:
                self._state = replace(
                    self._state, comments={**self._state.comments, current: grouped}
                )
        return grouped

    def comments_for(self, row_id: Any, scorecard_id: str | None = None) -> list[Comment]:
        target = self.resolve_id(scorecard_id or self._state.selected_id or "")
        return list(self._state.comments.get(target, {}).get(str(row_id), []))

    def add_comment(self, row_id: Any, text: str) -> Comment:
        """Comment on a row of the selected scorecard.

        A local-only scorecard is migrated first, since comments need a
        remote scorecard. If that fails the scorecard stays local and the
        error propagates.
        """
        if not text or not text.strip():
            raise ValidationError("Comment text is required")
        scorecard = self._require_selected()
        if scorecard.row(row_id) is None:
            raise ValidationError(f"Unknown row: {row_id}")

        remote_id = self.ensure_persisted(scorecard.id)
        comment = self._store.create_comment(remote_id, row_id, text)
        migrated = comment.migrated_scorecard
        if migrated is not None:
            # The portal migrated the scorecard itself
            with self._migration_lock:
                old_id = self.resolve_id(migrated.old_id)
                if is_local_id(old_id) and self._find(old_id) is not None:
                    self._reconcile_migration(
                        old_id,
                        ScorecardRecord(id=migrated.new_id, title=migrated.title or scorecard.title),
                    )

        with self._lock:
            target = self.resolve_id(comment.scorecard_id)
            by_row = {k: list(v) for k, v in self._state.comments.get(target, {}).items()}
            by_row.setdefault(comment.row_id, []).append(comment)
            self._state = replace(self._state, comments={**self._state.comments, target: by_row})
        return comment

    def update_comment(self, comment_id: str, text: str) -> Comment:
        updated = self._store.update_comment(comment_id, text)
        self._replace_comment(comment_id, updated)
        return updated

    def delete_comment(self, comment_id: str) -> None:
        self._store.delete_comment(comment_id)
        self._replace_comment(comment_id, None)

    def _replace_comment(self, comment_id: str, replacement: Comment | None) -> None:
        with self._lock:
            comments = {}
            for scorecard_id, by_row in self._state.comments.items():
                comments[scorecard_id] = {
                    row_id: [
                        replacement if c.id == comment_id else c
                        for c in items
                        if c.id != comment_id or replacement is not None
                    ]
                    for row_id, items in by_row.items()
                }
            self._state = replace(self._state, comments=comments)

    # Templates

    def load_templates(self) -> list[Template]:
        templates = self._store.list_templates()
        with self._lock:
            self._state = replace(self._state, templates=templates)
        return templates

    def save_template(self, name: str, include_rows: bool = False) -> Template:
        """Save the selected scorecard's columns (and rows) as a template.

        Raises:
            ValidationError: If the name is empty or already used.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Template name is required")
        scorecard = self._require_selected()
        if any(t.name.strip().lower() == name.lower() for t in self._state.templates):
            raise ValidationError(f"A template named '{name}' already exists")
        template = self._store.create_template(
            name, scorecard.columns, scorecard.rows if include_rows else None
        )
        with self._lock:
            self._state = replace(self._state, templates=[*self._state.templates, template])
        return template

    def apply_template(self, template_id: str, with_rows: bool = False) -> Scorecard:
        """Replace the selected scorecard's columns with a template's."""
        self._require_admin()
        template = next((t for t in self._state.templates if t.id == template_id), None)
        if template is None:
            raise NotFoundError(f"Template {template_id} not found")
        return self._apply(lambda s: ops.apply_template(s, template, with_rows))

    def delete_template(self, template_id: str) -> None:
        self._store.delete_template(template_id)
        with self._lock:
            self._state = replace(
                self._state,
                templates=[t for t in self._state.templates if t.id != template_id],
            )

    # Master scorecard

    def master_scorecard(self) -> MasterScorecard:
        """Aggregate the loaded scorecards, local-only ones included."""
        if self._master_queries is None:
            self._master_queries = MasterScorecardQueries(get_connection())
        return self._master_queries.aggregate(self.scorecards)

    def remote_master_scorecard(self) -> MasterScorecard:
        """Fetch the master scorecard computed by the portal."""
        return self._store.get_master_scorecard()

    def close(self) -> SaveSnapshot:
        """Flush pending edits before the application exits."""
        if self._engine.snapshot().has_unsaved_changes:
            return self._engine.force_save()
        return self._engine.snapshot()

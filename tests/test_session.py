"""Tests for the editor session: lifecycle, migration and reconciliation."""

import pytest

from vendorgrid.config.models import AutoSaveSettings
from vendorgrid.errors import (
    AuthError,
    ImportMismatchError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    StoreError,
    ValidationError,
)
from vendorgrid.grid import operations as ops
from vendorgrid.models import Contact, CurrentUser, Role, ScorecardRecord, is_local_id
from vendorgrid.state.autosave import SaveStatus
from vendorgrid.state.session import MASTER_CATEGORY, EditorSession


def _ids_everywhere(session, cache):
    """Every scorecard id reachable from the session and the cache."""
    state = session.state
    ids = {s.id for s in state.scorecards}
    ids |= {state.selected_id, state.selected_category}
    ids |= set(state.comments)
    ids |= {s.id for s in cache.load_scorecards()}
    return ids


class TestCreate:
    def test_local_scorecard_has_placeholder_rows(self, session, store):
        scorecard = session.create_local_scorecard("Q3 Review")

        assert is_local_id(scorecard.id)
        assert session.selected_id == scorecard.id
        assert [r["name"] for r in scorecard.rows] == ["Item 1", "Item 2"]
        assert [r["id"] for r in scorecard.rows] == [1, 2]
        for row in scorecard.rows:
            assert all(c.key in row for c in scorecard.columns)
        assert store.calls_named("create_scorecard") == []

    def test_remote_create_uses_store_id(self, session, store):
        scorecard = session.create_scorecard("Q3 Review")

        assert scorecard.id.startswith("remote-")
        assert session.selected_id == scorecard.id
        assert len(store.calls_named("create_scorecard")) == 1

    def test_duplicate_title_rejected_case_insensitively(self, session, store):
        session.create_local_scorecard("Q3 Review")

        with pytest.raises(ValidationError):
            session.create_scorecard("  q3 review ")
        assert store.calls_named("create_scorecard") == []

    def test_empty_title_rejected(self, session):
        with pytest.raises(ValidationError):
            session.create_scorecard("   ")


class TestAutoSaveMigration:
    """A local scorecard is created remotely by its first save."""

    def test_first_save_creates_then_updates(self, session, store, timers, cache):
        local = session.create_local_scorecard("Q3")
        session.add_column("Product A")
        timers.fire_all()

        creates = store.calls_named("create_scorecard")
        assert len(creates) == 1
        new_id = session.selected_id
        assert new_id.startswith("remote-")
        assert local.id not in _ids_everywhere(session, cache)
        assert session.status().status == SaveStatus.SAVED

        session.set_cell(1, "product_a", "Authorized")
        timers.fire_all()

        assert len(store.calls_named("create_scorecard")) == 1
        updates = store.calls_named("update_scorecard")
        assert [u[0] for u in updates] == [new_id]
        assert store.records[new_id].data["rows"][0]["product_a"] == "Authorized"

    def test_persist_is_idempotent_for_stale_values(self, session, store):
        session.create_local_scorecard("Q3")
        stale = session.selected

        first = session.persist(stale)
        second = session.persist(stale)

        assert len(store.calls_named("create_scorecard")) == 1
        assert store.calls_named("update_scorecard")[0][0] == first.id
        assert second.id == first.id

    def test_failed_create_leaves_scorecard_local(self, session, store, timers, cache):
        local = session.create_local_scorecard("Q3")
        session.add_row(name="Target")
        store.fail_with = RuntimeError("server exploded")
        timers.fire_all()

        assert session.selected_id == local.id
        assert session.status().status == SaveStatus.ERROR
        assert cache.get_backup()["id"] == local.id
        assert session.selected.rows[-1]["name"] == "Target"

    def test_offline_save_writes_backup(self, session, store, timers, cache):
        local = session.create_local_scorecard("Q3")
        session.add_row(name="Target")
        store.offline = True
        timers.fire_all()

        assert session.status().status == SaveStatus.OFFLINE
        assert cache.get_backup()["id"] == local.id
        assert is_local_id(session.selected_id)

    def test_deleted_scorecard_is_not_resurrected(self, session, store):
        session.create_local_scorecard("Q3")
        value = session.selected
        session.delete_scorecard(value.id)

        with pytest.raises(NotFoundError):
            session.persist(value)
        assert store.calls_named("create_scorecard") == []


class TestCommentMigration:
    """Comments need a remote scorecard, so they migrate it first."""

    def test_comment_on_local_scorecard_migrates_it(self, session, store, cache):
        local = session.create_local_scorecard("Q3")

        comment = session.add_comment(1, "hello")

        creates = store.calls_named("create_scorecard")
        assert len(creates) == 1
        assert creates[0][1]["rows"][0]["name"] == "Item 1"
        new_id = session.selected_id
        assert not is_local_id(new_id)
        assert comment.scorecard_id == new_id
        assert store.calls_named("create_comment") == [(new_id, 1, "hello")]
        assert session.state.selected_category == new_id
        assert [c.text for c in session.comments_for(1)] == ["hello"]
        assert local.id not in _ids_everywhere(session, cache)

    def test_second_comment_does_not_create_again(self, session, store):
        session.create_local_scorecard("Q3")
        session.add_comment(1, "one")
        session.add_comment(2, "two")

        assert len(store.calls_named("create_scorecard")) == 1

    def test_pending_edit_after_comment_migration_updates(self, session, store, timers):
        session.create_local_scorecard("Q3")
        session.add_row(name="Target")
        session.add_comment(1, "hello")
        timers.fire_all()

        assert len(store.calls_named("create_scorecard")) == 1
        assert store.calls_named("update_scorecard")[0][0] == session.selected_id

    def test_failed_migration_keeps_everything_local(self, session, store):
        local = session.create_local_scorecard("Q3")
        store.offline = True

        with pytest.raises(NetworkError):
            session.add_comment(1, "hello")

        assert session.selected_id == local.id
        assert session.get_scorecard(local.id) is not None
        assert store.calls_named("create_comment") == []
        assert session.comments_for(1) == []

    def test_migration_rekeys_backup(self, session, store, timers, cache):
        session.create_local_scorecard("Q3")
        session.add_row(name="Target")
        store.offline = True
        timers.fire_all()
        store.offline = False

        session.add_comment(1, "hello")

        assert cache.get_backup()["id"] == session.selected_id

    def test_empty_comment_rejected_without_network(self, session, store):
        session.create_local_scorecard("Q3")

        with pytest.raises(ValidationError):
            session.add_comment(1, "  ")
        assert store.calls_named("create_scorecard") == []

    def test_update_and_delete_comment(self, session):
        session.create_scorecard("Q3")
        comment = session.add_comment(1, "hello")

        session.update_comment(comment.id, "hello again")
        assert [c.text for c in session.comments_for(1)] == ["hello again"]

        session.delete_comment(comment.id)
        assert session.comments_for(1) == []


class TestNavigation:
    def test_switch_saves_pending_edits_first(self, session, store, timers):
        first = session.create_local_scorecard("A")
        session.add_row(name="Target")

        session.create_local_scorecard("B")

        creates = store.calls_named("create_scorecard")
        assert [c[0] for c in creates] == ["A"]
        assert session.selected.title == "B"
        assert timers.active == []
        assert session.status().status == SaveStatus.SAVED
        assert session.get_scorecard(first.id).id.startswith("remote-")

    def test_switch_resets_sort(self, session):
        session.create_local_scorecard("A")
        session.toggle_sort("name")
        session.create_local_scorecard("B")

        assert session.sort == ops.SortState()

    def test_switch_to_unknown_raises(self, session):
        with pytest.raises(NotFoundError):
            session.switch_document("missing")

    def test_master_view_disables_autosave(self, session, timers):
        session.create_local_scorecard("A")
        session.show_master()

        assert session.selected is None
        assert session.state.selected_category == MASTER_CATEGORY
        assert timers.active == []

    def test_delete_selected_moves_focus(self, session, store):
        first = session.create_scorecard("A")
        second = session.create_scorecard("B")

        session.delete_scorecard(second.id)

        assert store.calls_named("delete_scorecard") == [second.id]
        assert session.selected_id == first.id
        assert [s.id for s in session.scorecards] == [first.id]

    def test_failed_save_before_switch_resumes_on_return(self, session, store, timers):
        first = session.create_scorecard("A")
        second = session.create_scorecard("B")
        session.switch_document(first.id)
        session.set_cell(session.selected.rows[0]["id"], "buyer", "Jo")

        store.fail_with = StoreError("server error", status_code=500)
        session.switch_document(second.id)
        assert session.selected_id == second.id

        store.fail_with = None
        session.switch_document(first.id)

        snapshot = session.status()
        assert snapshot.status == SaveStatus.UNSAVED
        assert snapshot.has_unsaved_changes is True
        assert len(timers.active) == 1

        timers.fire_all()
        assert store.records[first.id].data["rows"][0]["buyer"] == "Jo"
        assert session.status().status == SaveStatus.SAVED

    def test_saved_switch_does_not_resume(self, session, store, timers):
        first = session.create_scorecard("A")
        second = session.create_scorecard("B")
        session.switch_document(first.id)
        session.set_cell(session.selected.rows[0]["id"], "buyer", "Jo")

        session.switch_document(second.id)
        session.switch_document(first.id)

        assert session.status().status == SaveStatus.SAVED
        assert timers.active == []

    @pytest.mark.parametrize(
        "error", [StoreError("server error", status_code=500), NotFoundError("gone")]
    )
    def test_comment_load_failure_does_not_fail_switch(self, session, store, error):
        first = session.create_scorecard("A")
        session.create_scorecard("B")

        store.fail_with = error
        switched = session.switch_document(first.id)

        assert switched.id == first.id
        assert session.selected_id == first.id

    def test_comment_load_auth_error_propagates(self, session, store):
        first = session.create_scorecard("A")
        session.create_scorecard("B")

        store.fail_with = AuthError("session expired")
        with pytest.raises(AuthError):
            session.switch_document(first.id)


class TestLoad:
    def test_merges_local_only_scorecards(self, store, cache, timers):
        store.records["r1"] = ScorecardRecord(id="r1", title="Remote", data={"columns": [], "rows": []})
        local = ops.new_scorecard("Local")
        shadowed = ops.new_scorecard("Remote")
        cache.save_scorecards([local, shadowed])

        session = EditorSession(store, cache, timer_factory=timers)
        session.load()

        assert [s.id for s in session.scorecards] == ["r1", local.id]
        assert session.selected_id == "r1"
        assert session.user.role == Role.ADMIN

    def test_offline_load_uses_cache(self, store, cache, timers):
        local = ops.new_scorecard("Local")
        cache.save_scorecards([local])
        store.offline = True

        session = EditorSession(store, cache, timer_factory=timers)
        session.load()

        assert [s.id for s in session.scorecards] == [local.id]
        snapshot = session.status()
        assert snapshot.status == SaveStatus.OFFLINE
        assert snapshot.is_online is False

    def test_recover_backup_marks_unsaved(self, session, cache, timers):
        scorecard = session.create_local_scorecard("Q3")
        cache.set_backup(scorecard.touched(title="Recovered").model_dump(mode="json", by_alias=True))

        restored = session.recover_backup()

        assert restored.title == "Recovered"
        assert session.selected.title == "Recovered"
        assert session.status().status == SaveStatus.UNSAVED
        assert len(timers.active) == 1

    def test_recover_without_backup(self, session):
        assert session.recover_backup() is None


class TestEditing:
    def test_vendor_cannot_edit(self, store, cache, timers):
        store.user = CurrentUser(id="v1", role=Role.VENDOR, name="Vic")
        session = EditorSession(store, cache, timer_factory=timers)
        session.load()
        session.create_local_scorecard("Q3")

        with pytest.raises(PermissionDeniedError):
            session.set_cell(1, "buyer", "Jo")
        with pytest.raises(PermissionDeniedError):
            session.add_column("Product A")

    def test_rejected_edit_changes_nothing(self, session, timers):
        session.create_local_scorecard("Q3")
        before = session.selected

        with pytest.raises(ValidationError):
            session.set_cell(1, "retail_price", "-3")

        assert session.selected == before
        assert timers.active == []

    def test_contact_edit(self, session):
        session.create_local_scorecard("Q3")
        session.set_contact(1, "cmg", Contact(name="Pat", telephone="555"))

        assert session.selected.row(1)["cmg"]["name"] == "Pat"

    def test_visible_rows_do_not_reorder_storage(self, session):
        session.create_local_scorecard("Q3")
        session.set_cell(1, "name", "Zeta")
        session.set_cell(2, "name", "Alpha")

        session.toggle_sort("name")

        assert [r["name"] for r in session.visible_rows()] == ["Alpha", "Zeta"]
        assert [r["name"] for r in session.selected.rows] == ["Zeta", "Alpha"]

    def test_rename_blank_title_uses_default(self, session):
        session.create_local_scorecard("Q3")
        assert session.rename_scorecard("  ").title == "Untitled Scorecard"

    def test_import_replaces_rows_and_saves(self, session, store, tmp_path):
        scorecard = session.create_local_scorecard("Q3")
        headers = [c.name for c in scorecard.columns]
        path = tmp_path / "rows.csv"
        path.write_text(
            ",".join(headers) + "\n" + "Target,High" + "," * (len(headers) - 2) + "\n",
            encoding="utf-8",
        )

        updated = session.import_csv(path)

        assert [r["name"] for r in updated.rows] == ["Target"]
        assert len(store.calls_named("create_scorecard")) == 1
        assert session.status().status == SaveStatus.SAVED

    def test_import_mismatch_rejected(self, session, store):
        session.create_local_scorecard("Q3")

        with pytest.raises(ImportMismatchError):
            session.import_table([["Retailer Name"], ["Target"]])
        assert store.calls_named("create_scorecard") == []


class TestSubgrids:
    def test_toggle_creates_then_collapses(self, session):
        session.create_local_scorecard("Q3")

        grid = session.toggle_subgrid(1)
        assert [c.key for c in grid.columns] == ["note"]
        assert session.expanded_row_id == 1
        assert session.status().status == SaveStatus.UNSAVED

        session.toggle_subgrid(1)
        assert session.expanded_row_id is None
        session.toggle_subgrid(1)
        assert session.expanded_row_id == 1

    def test_one_expanded_at_a_time(self, session):
        session.create_local_scorecard("Q3")
        session.toggle_subgrid(1)
        session.toggle_subgrid(2)

        assert session.expanded_row_id == 2
        assert session.subgrid(1) is not None

    def test_edits_saved_with_parent_row(self, session, store, timers):
        session.create_scorecard("Q3")
        session.add_subgrid(1)
        session.add_subgrid_row(1)
        session.set_subgrid_cell(1, 1, "note", "Follow up")

        timers.fire_all()

        saved = store.records[session.selected_id].data["rows"][0]["subgrid"]
        assert saved["rows"] == [{"id": 1, "note": "Follow up"}]
        assert session.status().status == SaveStatus.SAVED

    def test_delete_collapses(self, session):
        session.create_local_scorecard("Q3")
        session.toggle_subgrid(1)
        session.delete_subgrid(1)

        assert session.subgrid(1) is None
        assert session.expanded_row_id is None

    def test_switch_collapses(self, session):
        session.create_local_scorecard("A")
        session.toggle_subgrid(1)
        session.create_local_scorecard("B")

        assert session.expanded_row_id is None

    def test_vendor_cannot_create(self, store, cache, timers):
        store.user = CurrentUser(id="v1", role=Role.VENDOR, name="Vic")
        session = EditorSession(store, cache, timer_factory=timers)
        session.load()
        session.create_local_scorecard("Q3")

        with pytest.raises(PermissionDeniedError):
            session.toggle_subgrid(1)

    def test_templates_kept_locally(self, session, store, cache):
        session.create_local_scorecard("Q3")
        session.add_subgrid(1)
        session.add_subgrid_row(1)

        template = session.save_subgrid_template(1, "Tasks")

        assert [t.name for t in cache.load_subgrid_templates()] == ["Tasks"]
        assert store.templates == []
        with pytest.raises(ValidationError):
            session.save_subgrid_template(1, " tasks ")
        with pytest.raises(ValidationError):
            session.save_subgrid_template(2, "Other")

        updated = session.apply_subgrid_template(2, template.id)
        assert updated.row(2)["subgrid"]["rows"] == [{"id": 1, "note": ""}]
        with pytest.raises(NotFoundError):
            session.apply_subgrid_template(2, "missing")


class TestTemplates:
    def test_save_and_apply_template(self, session):
        session.create_local_scorecard("Q3")
        session.add_column("Product A")
        template = session.save_template("Launch set")

        session.create_local_scorecard("Q4")
        updated = session.apply_template(template.id)

        assert [c.key for c in updated.columns] == [c.key for c in template.columns]
        assert all("product_a" in r for r in updated.rows)

    def test_duplicate_template_name_rejected(self, session):
        session.create_local_scorecard("Q3")
        session.save_template("Launch set")

        with pytest.raises(ValidationError):
            session.save_template(" launch SET ")

    def test_delete_template(self, session, store):
        session.create_local_scorecard("Q3")
        template = session.save_template("Launch set")

        session.delete_template(template.id)

        assert session.templates == []
        assert store.templates == []


class TestMaster:
    def test_master_includes_local_scorecards(self, session):
        session.create_local_scorecard("Q3")
        session.add_column("Product A")
        session.set_cell(1, "name", "Target")
        session.set_cell(1, "product_a", "Authorized")
        session.set_cell(2, "name", "Costco")
        session.set_cell(2, "product_a", "Presented")

        master = session.master_scorecard()

        assert master.retailers == ["Target", "Costco"]
        assert master.items == ["Product A"]
        assert master.penetration("Target", "Product A") == 100
        assert master.penetration("Costco", "Product A") == 0


def test_autosave_settings_are_applied(store, cache, timers):
    session = EditorSession(
        store, cache, autosave=AutoSaveSettings(debounce_ms=500), timer_factory=timers
    )
    session.load()
    session.create_local_scorecard("Q3")
    session.add_row()

    assert timers.active[0].delay == 0.5

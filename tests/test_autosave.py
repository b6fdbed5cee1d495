"""Tests for the debounced auto-save engine and backup writer."""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from vendorgrid.errors import NetworkError, StoreError
from vendorgrid.state.autosave import (
    AutoSaveEngine,
    BackupWriter,
    Debouncer,
    SaveListener,
    SaveSnapshot,
    SaveStatus,
    describe_status,
    format_last_saved,
)


class Recorder(SaveListener):
    def __init__(self):
        self.statuses = []
        self.saved = []
        self.failed = []
        self.offline = []

    def on_status_changed(self, snapshot):
        self.statuses.append(snapshot.status)

    def on_saved(self, value, result):
        self.saved.append(value)

    def on_save_failed(self, value, error):
        self.failed.append((value, error))

    def on_offline(self, value):
        self.offline.append(value)


@pytest.fixture
def saves():
    return []


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def engine(timers, saves, recorder, cache):
    def save(value):
        saves.append(value)
        return {"saved": value}

    return AutoSaveEngine(
        save,
        debounce_ms=3000,
        listeners=[recorder, BackupWriter(cache)],
        timer_factory=timers,
    )


class TestDebounce:
    """Edits inside the quiet period collapse into one save."""

    def test_initial_value_is_not_an_edit(self, engine, timers, saves):
        engine.observe({"n": 0}, "doc")

        assert timers.active == []
        assert saves == []
        assert engine.status == SaveStatus.SAVED
        assert engine.snapshot().has_unsaved_changes is False

    def test_rapid_edits_produce_one_save_with_final_value(self, engine, timers, saves):
        engine.observe({"n": 0}, "doc")
        for n in range(1, 6):
            engine.observe({"n": n}, "doc")

        assert len(timers.active) == 1
        assert timers.active[0].delay == 3.0
        assert engine.status == SaveStatus.UNSAVED

        timers.fire_all()

        assert saves == [{"n": 5}]
        snapshot = engine.snapshot()
        assert snapshot.status == SaveStatus.SAVED
        assert snapshot.last_saved is not None
        assert snapshot.has_unsaved_changes is False

    def test_structurally_equal_value_is_not_a_change(self, engine, timers, saves):
        engine.observe({"rows": [1, 2]}, "doc")
        engine.observe({"rows": [1, 2]}, "doc")

        assert timers.active == []
        assert engine.status == SaveStatus.SAVED

    def test_stale_timer_is_ignored(self, engine, timers, saves):
        engine.observe({"n": 0}, "doc")
        engine.observe({"n": 1}, "doc")
        first = timers.active[0]
        engine.observe({"n": 2}, "doc")

        # Simulate a timer whose cancel raced with its firing
        first.cancelled = False
        first.fire()

        assert saves == []


class TestResetKey:
    """Switching documents never counts as an edit."""

    def test_switch_with_unchanged_value_does_not_save(self, engine, timers, saves):
        engine.observe({"title": "A"}, "doc-1")
        engine.observe({"title": "A"}, "doc-2")

        timers.fire_all()
        assert saves == []

    def test_switch_cancels_pending_timer(self, engine, timers, saves):
        engine.observe({"title": "A"}, "doc-1")
        engine.observe({"title": "A2"}, "doc-1")
        engine.observe({"title": "B"}, "doc-2")

        timers.fire_all()

        assert saves == []
        assert engine.status == SaveStatus.SAVED
        assert engine.snapshot().has_unsaved_changes is False

    def test_edit_after_switch_saves_new_document(self, engine, timers, saves):
        engine.observe({"title": "A"}, "doc-1")
        engine.observe({"title": "B"}, "doc-2")
        engine.observe({"title": "B2"}, "doc-2")

        timers.fire_all()
        assert saves == [{"title": "B2"}]

    def test_replace_value_keeps_state(self, engine, timers, saves):
        engine.observe({"id": "local", "n": 1}, "local")
        engine.observe({"id": "local", "n": 2}, "local")

        engine.replace_value({"id": "local", "n": 2}, "remote")

        assert engine.status == SaveStatus.UNSAVED
        assert len(timers.active) == 1
        engine.observe({"id": "local", "n": 2}, "remote")
        timers.fire_all()
        assert saves == [{"id": "local", "n": 2}]


class TestForceSave:
    def test_force_save_bypasses_debounce(self, engine, timers, saves):
        engine.observe({"n": 0}, "doc")
        engine.observe({"n": 1}, "doc")

        snapshot = engine.force_save()

        assert saves == [{"n": 1}]
        assert snapshot.status == SaveStatus.SAVED
        timers.fire_all()
        assert saves == [{"n": 1}]

    def test_force_save_without_value_does_nothing(self, engine, saves):
        engine.force_save()
        assert saves == []


class TestFailures:
    def test_error_keeps_message_and_writes_backup(self, timers, recorder, cache):
        def save(value):
            raise RuntimeError("boom")

        engine = AutoSaveEngine(save, listeners=[recorder, BackupWriter(cache)], timer_factory=timers)
        engine.observe({"id": "s1", "n": 0}, "s1")
        engine.observe({"id": "s1", "n": 1}, "s1")
        timers.fire_all()

        snapshot = engine.snapshot()
        assert snapshot.status == SaveStatus.ERROR
        assert snapshot.error == "boom"
        assert snapshot.has_unsaved_changes is True
        assert cache.get_backup() == {"id": "s1", "n": 1}
        assert recorder.failed[0][0] == {"id": "s1", "n": 1}

    def test_network_error_reports_offline_not_error(self, timers, recorder, cache):
        def save(value):
            raise NetworkError("no route")

        engine = AutoSaveEngine(save, listeners=[recorder, BackupWriter(cache)], timer_factory=timers)
        engine.observe({"n": 0}, "doc")
        engine.observe({"n": 1}, "doc")
        timers.fire_all()

        snapshot = engine.snapshot()
        assert snapshot.status == SaveStatus.OFFLINE
        assert snapshot.error is None
        assert snapshot.is_online is False
        assert cache.get_backup() == {"n": 1}
        assert recorder.failed == []
        assert recorder.offline == [{"n": 1}]

    def test_success_clears_backup(self, engine, timers, cache):
        cache.set_backup({"n": "old"})
        engine.observe({"n": 0}, "doc")
        engine.observe({"n": 1}, "doc")
        timers.fire_all()

        assert cache.get_backup() is None

    def test_error_is_retried_by_next_edit(self, timers, cache):
        attempts = []

        def save(value):
            attempts.append(value)
            if len(attempts) == 1:
                raise RuntimeError("boom")
            return {}

        engine = AutoSaveEngine(save, listeners=[BackupWriter(cache)], timer_factory=timers)
        engine.observe({"n": 0}, "doc")
        engine.observe({"n": 1}, "doc")
        timers.fire_all()
        assert engine.status == SaveStatus.ERROR

        engine.observe({"n": 2}, "doc")
        timers.fire_all()

        assert attempts == [{"n": 1}, {"n": 2}]
        assert engine.status == SaveStatus.SAVED
        assert engine.snapshot().error is None


class TestConnectivity:
    def test_going_offline_writes_backup_without_saving(self, engine, timers, saves, cache):
        engine.observe({"n": 0}, "doc")
        engine.set_online(False)

        assert engine.status == SaveStatus.OFFLINE
        assert cache.get_backup() == {"n": 0}

        engine.observe({"n": 1}, "doc")
        timers.fire_all()

        assert saves == []
        assert engine.status == SaveStatus.OFFLINE
        assert cache.get_backup() == {"n": 1}

    def test_recovery_marks_unsaved_and_schedules_save(self, engine, timers, saves):
        engine.observe({"n": 0}, "doc")
        engine.set_online(False)
        engine.set_online(True)

        snapshot = engine.snapshot()
        assert snapshot.status == SaveStatus.UNSAVED
        assert snapshot.is_online is True
        assert len(timers.active) == 1

        timers.fire_all()
        assert saves == [{"n": 0}]
        assert engine.status == SaveStatus.SAVED


class TestSerialization:
    def test_edit_during_save_is_saved_afterwards(self, timers, saves):
        engine = None

        def save(value):
            saves.append(value)
            if len(saves) == 1:
                engine.observe({"n": 2}, "doc")
            return {}

        engine = AutoSaveEngine(save, timer_factory=timers)
        engine.observe({"n": 0}, "doc")
        engine.observe({"n": 1}, "doc")
        timers.fire_all()

        assert saves == [{"n": 1}]
        assert engine.status == SaveStatus.UNSAVED
        assert engine.snapshot().has_unsaved_changes is True

        timers.fire_all()
        assert saves == [{"n": 1}, {"n": 2}]
        assert engine.status == SaveStatus.SAVED

    def test_debounce_during_in_flight_save_is_deferred(self, timers):
        calls = []
        started = threading.Event()
        release = threading.Event()

        def save(value):
            calls.append(value)
            started.set()
            release.wait(5)
            return {}

        engine = AutoSaveEngine(save, timer_factory=timers)
        engine.observe({"n": 0}, "doc")
        engine.observe({"n": 1}, "doc")

        worker = threading.Thread(target=engine.force_save)
        worker.start()
        assert started.wait(5)

        engine.observe({"n": 2}, "doc")
        timers.active[-1].fire()
        assert calls == [{"n": 1}]

        release.set()
        worker.join(5)

        assert engine.status == SaveStatus.UNSAVED
        timers.fire_all()
        assert calls == [{"n": 1}, {"n": 2}]

    def test_debounce_during_failing_save_is_retried(self, timers):
        calls = []
        started = threading.Event()
        release = threading.Event()

        def save(value):
            calls.append(value)
            if len(calls) == 1:
                started.set()
                release.wait(5)
                raise RuntimeError("boom")
            return {}

        engine = AutoSaveEngine(save, timer_factory=timers)
        engine.observe({"n": 0}, "doc")
        engine.observe({"n": 1}, "doc")

        worker = threading.Thread(target=engine.force_save)
        worker.start()
        assert started.wait(5)

        engine.observe({"n": 2}, "doc")
        timers.active[-1].fire()
        assert calls == [{"n": 1}]

        release.set()
        worker.join(5)

        assert engine.status == SaveStatus.ERROR
        assert len(timers.active) == 1
        timers.fire_all()
        assert calls == [{"n": 1}, {"n": 2}]
        assert engine.status == SaveStatus.SAVED
        assert engine.snapshot().error is None

    def test_edit_during_failed_save_is_rescheduled(self, timers):
        calls = []
        engine = None

        def save(value):
            calls.append(value)
            if len(calls) == 1:
                engine.observe({"n": 2}, "doc")
                raise StoreError("server error", status_code=500)
            return {}

        engine = AutoSaveEngine(save, timer_factory=timers)
        engine.observe({"n": 0}, "doc")
        engine.observe({"n": 1}, "doc")
        timers.fire_all()

        snapshot = engine.snapshot()
        assert snapshot.status == SaveStatus.ERROR
        assert snapshot.has_unsaved_changes is True
        assert len(timers.active) == 1

        timers.fire_all()
        assert calls == [{"n": 1}, {"n": 2}]
        assert engine.status == SaveStatus.SAVED

    def test_failed_save_without_new_edit_waits_for_next_edit(self, timers):
        def save(value):
            raise RuntimeError("boom")

        engine = AutoSaveEngine(save, timer_factory=timers)
        engine.observe({"n": 0}, "doc")
        engine.observe({"n": 1}, "doc")
        timers.fire_all()

        assert engine.status == SaveStatus.ERROR
        assert timers.active == []

    def test_result_after_switch_does_not_touch_status(self, timers, recorder):
        engine = None

        def save(value):
            engine.observe({"title": "other"}, "doc-2")
            raise RuntimeError("late failure")

        engine = AutoSaveEngine(save, listeners=[recorder], timer_factory=timers)
        engine.observe({"title": "A"}, "doc-1")
        engine.observe({"title": "A2"}, "doc-1")
        engine.force_save()

        snapshot = engine.snapshot()
        assert snapshot.status == SaveStatus.SAVED
        assert snapshot.error is None
        # Listeners still hear about it
        assert recorder.failed[0][0] == {"title": "A2"}


class TestDebouncer:
    def test_cancel_prevents_callback(self, timers):
        fired = []
        debouncer = Debouncer(1.0, lambda: fired.append(True), timers)
        debouncer.schedule()
        assert debouncer.pending is True

        debouncer.cancel()
        timers.fire_all()

        assert fired == []
        assert debouncer.pending is False


class TestDescribeStatus:
    def _snapshot(self, status, last_saved=None, error=None):
        return SaveSnapshot(
            status=status,
            last_saved=last_saved,
            error=error,
            has_unsaved_changes=status != SaveStatus.SAVED,
            is_online=status != SaveStatus.OFFLINE,
        )

    def test_labels(self):
        assert describe_status(self._snapshot(SaveStatus.SAVING))[0] == "Saving..."
        assert describe_status(self._snapshot(SaveStatus.UNSAVED))[0] == "Unsaved changes"
        assert describe_status(self._snapshot(SaveStatus.OFFLINE))[0] == "Offline"
        assert describe_status(self._snapshot(SaveStatus.ERROR, error="boom")) == ("Save failed", "boom")

    def test_relative_last_saved(self):
        now = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
        assert format_last_saved(now - timedelta(seconds=2), now) == "just now"
        assert format_last_saved(now - timedelta(seconds=12), now) == "12s ago"
        assert format_last_saved(now - timedelta(minutes=3), now) == "3m ago"

        label, detail = describe_status(
            self._snapshot(SaveStatus.SAVED, last_saved=now - timedelta(seconds=30)), now
        )
        assert label == "All changes saved"
        assert detail == "30s ago"

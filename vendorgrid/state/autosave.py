"""Debounced auto-save engine.

The engine watches a changing value, collapses bursts of edits into one
save after a quiet period, and reports its status. Local backup of unsaved
work is a separate listener (BackupWriter) subscribed to the engine's
failure/offline events. The backup is best-effort recovery only: one slot,
overwritten each time, with no durability guarantee.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Protocol

from ..errors import NetworkError

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 3000

_UNSET = object()


class SaveStatus(str, Enum):
    """Status shown by the save indicator."""

    SAVED = "saved"
    UNSAVED = "unsaved"
    SAVING = "saving"
    ERROR = "error"
    OFFLINE = "offline"


@dataclass(frozen=True)
class SaveSnapshot:
    """Observable state of the engine."""

    status: SaveStatus
    last_saved: datetime | None
    error: str | None
    has_unsaved_changes: bool
    is_online: bool


class Timer(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], Timer]


def _thread_timer(delay: float, callback: Callable[[], None]) -> Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


class Debouncer:
    """Run a callback once after ``delay`` seconds without a new schedule."""

    def __init__(
        self,
        delay: float,
        callback: Callable[[], None],
        timer_factory: TimerFactory | None = None,
    ):
        self._delay = delay
        self._callback = callback
        self._timer_factory = timer_factory or _thread_timer
        self._lock = threading.Lock()
        self._timer: Timer | None = None
        self._seq = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def schedule(self) -> None:
        """Restart the quiet period."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._seq += 1
            seq = self._seq
            self._timer = self._timer_factory(self._delay, lambda: self._fire(seq))
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._seq += 1

    def _fire(self, seq: int) -> None:
        with self._lock:
            # A timer cancelled after it began firing is stale
            if seq != self._seq:
                return
            self._timer = None
        self._callback()


class SaveListener:
    """Receives engine events. Override the hooks you need."""

    def on_status_changed(self, snapshot: SaveSnapshot) -> None:
        pass

    def on_saved(self, value: Any, result: Any) -> None:
        pass

    def on_save_failed(self, value: Any, error: Exception) -> None:
        pass

    def on_offline(self, value: Any) -> None:
        pass


def default_fingerprint(value: Any) -> str:
    """Structural fingerprint used for change detection."""
    if hasattr(value, "model_dump"):
        value = value.model_dump(mode="json")
    return json.dumps(value, sort_keys=True, default=str)


class AutoSaveEngine:
    """Debounced save pipeline with status tracking.

    Status transitions:
        saved -> unsaved      observed change
        unsaved -> saving     debounce elapsed or force_save()
        saving -> saved       save succeeded
        saving -> error       save raised
        any -> offline        network unavailable
        offline -> unsaved    network recovered

    Saves never overlap. A debounce firing while a save is in flight is
    deferred and the value is re-evaluated when that save completes,
    whatever its outcome. The engine never raises to its caller.
    """

    def __init__(
        self,
        save: Callable[[Any], Any],
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        fingerprint: Callable[[Any], str] | None = None,
        listeners: list[SaveListener] | None = None,
        timer_factory: TimerFactory | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize the engine.

        Args:
            save: Persists a value and returns the saved record. Raise
                NetworkError when the remote is unreachable.
            debounce_ms: Quiet period before a save, in milliseconds.
            fingerprint: Structural equality key for values.
            listeners: Event listeners (e.g. BackupWriter).
            timer_factory: Creates debounce timers; threading.Timer by default.
            clock: Returns the current time for lastSaved.
        """
        self._save = save
        self._fingerprint = fingerprint or default_fingerprint
        self._listeners: list[SaveListener] = list(listeners or [])
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._debouncer = Debouncer(debounce_ms / 1000, self._on_quiet, timer_factory)

        self._lock = threading.RLock()
        self._save_lock = threading.Lock()

        self._value: Any = None
        self._baseline: str | None = None
        self._reset_key: Any = _UNSET
        self._generation = 0
        self._deferred = False

        self._status = SaveStatus.SAVED
        self._last_saved: datetime | None = None
        self._error: str | None = None
        self._has_unsaved = False
        self._is_online = True
        self._reported: SaveSnapshot | None = None

    # Observation

    def add_listener(self, listener: SaveListener) -> None:
        self._listeners.append(listener)

    @property
    def value(self) -> Any:
        return self._value

    @property
    def status(self) -> SaveStatus:
        return self._status

    @property
    def has_pending_save(self) -> bool:
        return self._debouncer.pending

    def snapshot(self) -> SaveSnapshot:
        with self._lock:
            return SaveSnapshot(
                status=self._status,
                last_saved=self._last_saved,
                error=self._error,
                has_unsaved_changes=self._has_unsaved,
                is_online=self._is_online,
            )

    def observe(self, value: Any, reset_key: Any = None) -> None:
        """Report the current value.

        The first value, and the first value after ``reset_key`` changes,
        only become the baseline; neither counts as an edit.

        Args:
            value: Current value. None disables saving.
            reset_key: Identity of the document being edited.
        """
        with self._lock:
            if reset_key != self._reset_key:
                self._reset(value, reset_key)
                changed = False
            else:
                self._value = value
                fingerprint = self._fingerprint(value) if value is not None else None
                changed = value is not None and fingerprint != self._baseline
                if changed:
                    self._baseline = fingerprint
                    self._has_unsaved = True
                    self._status = SaveStatus.UNSAVED
                    logger.debug(f"Change observed for {reset_key}, save scheduled")
        if changed:
            self._debouncer.schedule()
        self._report()

    def replace_value(self, value: Any, reset_key: Any = None) -> None:
        """Swap the held value and key without counting it as an edit.

        Used when the document's identity changes in place (e.g. a local
        record receives its remote identifier). Pending saves are kept.
        """
        with self._lock:
            self._value = value
            self._reset_key = reset_key
            if value is not None:
                self._baseline = self._fingerprint(value)

    def mark_dirty(self) -> None:
        """Treat the held value as unsaved (e.g. restored from a backup)."""
        with self._lock:
            if self._value is None:
                return
            self._has_unsaved = True
            self._status = SaveStatus.UNSAVED if self._is_online else SaveStatus.OFFLINE
        self._debouncer.schedule()
        self._report()

    def _reset(self, value: Any, reset_key: Any) -> None:
        first = self._reset_key is _UNSET
        self._debouncer.cancel()
        self._generation += 1
        self._reset_key = reset_key
        self._value = value
        self._baseline = self._fingerprint(value) if value is not None else None
        self._has_unsaved = False
        self._error = None
        if not first:
            logger.debug(f"Document switched to {reset_key}")
        self._status = SaveStatus.SAVED if self._is_online else SaveStatus.OFFLINE

    # Saving

    def force_save(self) -> SaveSnapshot:
        """Cancel the pending timer and save now, waiting for completion.

        Waits for an in-flight save to finish first.

        Returns:
            Snapshot after the save.
        """
        self._debouncer.cancel()
        self._run_save(blocking=True)
        return self.snapshot()

    def _on_quiet(self) -> None:
        self._run_save(blocking=False)

    def _run_save(self, blocking: bool) -> None:
        with self._lock:
            self._deferred = True
        if not self._save_lock.acquire(blocking=blocking):
            # The in-flight save re-evaluates the latest value when it ends
            logger.debug("Save in flight, deferring")
            return
        try:
            outcome = self._save_once()
        finally:
            self._save_lock.release()
        if self._needs_followup(outcome):
            self._debouncer.schedule()

    def _save_once(self) -> tuple[int, str] | None:
        """Save the held value once.

        Returns:
            The generation and fingerprint that were sent, or None when
            nothing reached the save function.
        """
        with self._lock:
            value = self._value
            generation = self._generation
            # The value read here covers every trigger received so far
            self._deferred = False
            if value is None:
                return None
            offline = not self._is_online
            if offline:
                self._status = SaveStatus.OFFLINE
            else:
                self._error = None
                self._status = SaveStatus.SAVING
        self._report()

        if offline:
            self._notify("on_offline", value)
            return None

        saved_fingerprint = self._fingerprint(value)
        try:
            result = self._save(value)
        except NetworkError as e:
            logger.warning(f"Save failed, network unavailable: {e}")
            with self._lock:
                self._is_online = False
                if generation == self._generation:
                    self._status = SaveStatus.OFFLINE
            self._report()
            self._notify("on_offline", value)
            return generation, saved_fingerprint
        except Exception as e:
            logger.warning(f"Save failed: {e}")
            with self._lock:
                if generation == self._generation:
                    self._error = str(e) or type(e).__name__
                    self._status = SaveStatus.ERROR
            self._report()
            self._notify("on_save_failed", value, e)
            return generation, saved_fingerprint

        with self._lock:
            if generation == self._generation:
                self._last_saved = self._clock()
                if self._value is not None and self._fingerprint(self._value) != saved_fingerprint:
                    # Edited while saving; the newer value still needs a save
                    self._has_unsaved = True
                    self._status = SaveStatus.UNSAVED
                else:
                    self._has_unsaved = False
                    self._status = SaveStatus.SAVED
            else:
                logger.debug("Save finished after a document switch")
        self._report()
        self._notify("on_saved", value, result)
        return generation, saved_fingerprint

    def _needs_followup(self, outcome: tuple[int, str] | None) -> bool:
        """Decide whether a finished save leaves work for another cycle.

        Applies to success and failure alike: a value edited while the
        save was running is saved again. After a document switch, a
        deferred trigger of the new document is replayed.
        """
        with self._lock:
            if outcome is None or self._value is None or not self._is_online:
                return False
            generation, saved_fingerprint = outcome
            if generation != self._generation:
                return self._deferred and self._has_unsaved
            return self._fingerprint(self._value) != saved_fingerprint

    # Connectivity

    def set_online(self, online: bool) -> None:
        """Report a network transition.

        Going offline writes the current value to the backup listeners.
        Coming back marks the document unsaved and schedules a save.
        """
        with self._lock:
            if online == self._is_online:
                return
            self._is_online = online
            value = self._value
            if not online:
                self._status = SaveStatus.OFFLINE
            elif value is not None:
                self._has_unsaved = True
                self._status = SaveStatus.UNSAVED
            else:
                self._status = SaveStatus.SAVED
        self._report()

        if online:
            logger.info("Network recovered")
            if value is not None:
                self._debouncer.schedule()
        else:
            logger.info("Network unavailable")
            if value is not None:
                self._notify("on_offline", value)

    # Internals

    def _report(self) -> None:
        """Notify listeners if the snapshot changed. Call without the lock held."""
        snapshot = self.snapshot()
        with self._lock:
            if snapshot == self._reported:
                return
            self._reported = snapshot
        self._notify("on_status_changed", snapshot)

    def _notify(self, hook: str, *args: Any) -> None:
        for listener in list(self._listeners):
            try:
                getattr(listener, hook)(*args)
            except Exception as e:
                logger.warning(f"Auto-save listener {hook} failed: {e}")


class BackupWriter(SaveListener):
    """Write unsaved values to the local backup slot.

    Failure and offline events overwrite the slot; a successful save
    clears it. Best-effort only: write errors are logged, not raised.
    """

    def __init__(self, cache: Any, serialize: Callable[[Any], Any] | None = None):
        """Initialize the writer.

        Args:
            cache: Object with set_backup/clear_backup (LocalCache).
            serialize: Converts a value to JSON-compatible data.
        """
        self._cache = cache
        self._serialize = serialize or _to_json

    def on_save_failed(self, value: Any, error: Exception) -> None:
        self._write(value)

    def on_offline(self, value: Any) -> None:
        self._write(value)

    def on_saved(self, value: Any, result: Any) -> None:
        try:
            self._cache.clear_backup()
        except Exception as e:
            logger.warning(f"Could not clear auto-save backup: {e}")

    def _write(self, value: Any) -> None:
        try:
            self._cache.set_backup(self._serialize(value))
            logger.debug("Wrote auto-save backup")
        except Exception as e:
            logger.warning(f"Could not write auto-save backup: {e}")


def _to_json(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json", by_alias=True)
    return value


def describe_status(snapshot: SaveSnapshot, now: datetime | None = None) -> tuple[str, str]:
    """Label and detail text for the save indicator.

    Returns:
        Tuple of (label, detail). Detail is empty when there is nothing to add.
    """
    if snapshot.status == SaveStatus.SAVING:
        return "Saving...", ""
    if snapshot.status == SaveStatus.UNSAVED:
        return "Unsaved changes", ""
    if snapshot.status == SaveStatus.ERROR:
        return "Save failed", snapshot.error or ""
    if snapshot.status == SaveStatus.OFFLINE:
        return "Offline", "Changes are kept locally"
    if snapshot.last_saved is None:
        return "All changes saved", ""
    return "All changes saved", format_last_saved(snapshot.last_saved, now)


def format_last_saved(last_saved: datetime, now: datetime | None = None) -> str:
    """Relative time since the last save ("just now", "12s ago", "3m ago", "14:05")."""
    now = now or datetime.now(timezone.utc)
    seconds = int((now - last_saved).total_seconds())
    if seconds < 5:
        return "just now"
    if seconds < 60:
        return f"{seconds}s ago"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    return last_saved.astimezone().strftime("%H:%M")

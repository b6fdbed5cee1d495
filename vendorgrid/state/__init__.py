"""Editing state: auto-save engine and editor session."""

from .autosave import (
    AutoSaveEngine,
    BackupWriter,
    Debouncer,
    SaveListener,
    SaveSnapshot,
    SaveStatus,
    describe_status,
)
from .session import MASTER_CATEGORY, EditorSession, EditorState

__all__ = [
    "AutoSaveEngine",
    "BackupWriter",
    "Debouncer",
    "EditorSession",
    "EditorState",
    "MASTER_CATEGORY",
    "SaveListener",
    "SaveSnapshot",
    "SaveStatus",
    "describe_status",
]

"""StickyBoard package."""

from .board import Board, HotkeyCommand
from .config import AppConfig, Hotkeys, UnknownSettingError, load_config, save_config
from .exporting import ExportError, ImportResult
from .folders import FolderEngine
from .notes import (
    Note,
    NoteType,
    NoteTypeError,
    ProtectedFieldError,
    TimerType,
    UnknownFieldError,
    create_note,
    display_title,
)
from .search import SearchFilters, SearchResult, search_notes
from .timers import TimerController, TimerState
from .workspace import (
    WORKSPACES,
    DuplicateNoteError,
    NoteNotFoundError,
    UnknownWorkspaceError,
    WorkspaceStore,
)

__all__ = [
    "WORKSPACES",
    "AppConfig",
    "Board",
    "DuplicateNoteError",
    "ExportError",
    "FolderEngine",
    "Hotkeys",
    "HotkeyCommand",
    "ImportResult",
    "Note",
    "NoteNotFoundError",
    "NoteType",
    "NoteTypeError",
    "ProtectedFieldError",
    "SearchFilters",
    "SearchResult",
    "TimerController",
    "TimerState",
    "TimerType",
    "UnknownFieldError",
    "UnknownSettingError",
    "UnknownWorkspaceError",
    "WorkspaceStore",
    "create_note",
    "display_title",
    "load_config",
    "save_config",
    "search_notes",
]

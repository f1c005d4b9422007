"""Workspace store: active and archived notes per named workspace."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from .notes import Note, TimerPayload, note_from_record, note_to_record
from .utils import (
    fs_exists,
    fs_join,
    fs_makedirs,
    fs_read_json,
    fs_write_json,
    get_fs_and_path,
    utc_now_iso,
)

if TYPE_CHECKING:
    from pathlib import Path

    import fsspec

logger = logging.getLogger(__name__)

WORKSPACES = ("home", "work")
DEFAULT_WORKSPACE = "home"
PREFERENCE_FILE = "workspace-preference.json"
LEGACY_NOTES_FILE = "notes.json"

SwitchListener = Callable[[str, str], None]


class NoteNotFoundError(KeyError):
    """Raised when a note id does not resolve in the current workspace."""


class DuplicateNoteError(ValueError):
    """Raised when adding a note whose id is already in use."""


class UnknownWorkspaceError(ValueError):
    """Raised when switching to a workspace that does not exist."""


def workspace_filename(name: str) -> str:
    """File name holding ``name``'s notes inside the data directory."""
    return f"{name}-notes.json"


@dataclass
class WorkspaceData:
    """The two note collections owned by one workspace."""

    notes: list[Note] = field(default_factory=list)
    archived_notes: list[Note] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.notes and not self.archived_notes


class WorkspaceStore:
    """Holds the current workspace's collections and persists them.

    ``notes`` and ``archived_notes`` always refer to the current workspace;
    the other workspace's collections are kept in a table and swapped in by
    ``switch_workspace``.
    """

    def __init__(
        self,
        data_path: str | Path,
        fs: fsspec.AbstractFileSystem | None = None,
    ) -> None:
        """Initialize an empty store rooted at ``data_path``.

        Args:
            data_path: Data directory (local path or fsspec URL).
            fs: Optional filesystem implementation. Defaults to the one
                inferred from ``data_path``.

        """
        self.fs, self.data_path = get_fs_and_path(data_path, fs)
        self.current = DEFAULT_WORKSPACE
        self._table: dict[str, WorkspaceData] = {
            name: WorkspaceData() for name in WORKSPACES
        }
        self.notes: list[Note] = self._table[self.current].notes
        self.archived_notes: list[Note] = self._table[self.current].archived_notes
        self._listeners: list[SwitchListener] = []

    # --- paths ---------------------------------------------------------------

    def workspace_path(self, name: str) -> str:
        return fs_join(self.data_path, workspace_filename(name))

    @property
    def preference_path(self) -> str:
        return fs_join(self.data_path, PREFERENCE_FILE)

    @property
    def legacy_path(self) -> str:
        return fs_join(self.data_path, LEGACY_NOTES_FILE)

    # --- loading -------------------------------------------------------------

    def load(self) -> list[Note]:
        """Load every workspace and make the preferred one current.

        Runs the one-time legacy migration and normalizes all notes: missing
        fields are back-filled and detached timers are re-attached.

        Returns:
            Timer notes of the current workspace that were persisted running;
            the caller restarts their countdown.

        """
        self.current = self._load_preference()
        for name in WORKSPACES:
            self._table[name] = self._read_workspace(name)
        self._migrate_legacy()

        data = self._table[self.current]
        self.notes = data.notes
        self.archived_notes = data.archived_notes
        logger.info(
            "Loaded workspace %s: %d notes, %d archived",
            self.current,
            len(self.notes),
            len(self.archived_notes),
        )
        return self.running_timers()

    def running_timers(self) -> list[Note]:
        """Active timer notes whose countdown is marked running."""
        return [
            note
            for note in self.notes
            if isinstance(note.payload, TimerPayload) and note.payload.timer_running
        ]

    def _load_preference(self) -> str:
        if not fs_exists(self.fs, self.preference_path):
            return DEFAULT_WORKSPACE
        try:
            data = fs_read_json(self.fs, self.preference_path)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read workspace preference: %s", e)
            return DEFAULT_WORKSPACE
        workspace = data.get("currentWorkspace") if isinstance(data, dict) else None
        return workspace if workspace in WORKSPACES else DEFAULT_WORKSPACE

    def _read_workspace(self, name: str) -> WorkspaceData:
        path = self.workspace_path(name)
        if not fs_exists(self.fs, path):
            return WorkspaceData()
        try:
            raw = fs_read_json(self.fs, path)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Could not read workspace %s from %s: %s", name, path, e)  # noqa: TRY400
            return WorkspaceData()
        return self._parse(raw, path)

    def _parse(self, raw: Any, source: str) -> WorkspaceData:  # noqa: ANN401
        if not isinstance(raw, dict):
            logger.error("Ignoring %s: expected a JSON object", source)
            return WorkspaceData()
        seen: set[str] = set()
        return WorkspaceData(
            notes=self._load_records(raw.get("notes"), seen, source),
            archived_notes=self._load_records(raw.get("archivedNotes"), seen, source),
        )

    @staticmethod
    def _load_records(records: Any, seen: set[str], source: str) -> list[Note]:  # noqa: ANN401
        if not isinstance(records, list):
            return []
        loaded: list[Note] = []
        for record in records:
            if not isinstance(record, Mapping):
                logger.warning("Skipping non-object note record in %s", source)
                continue
            try:
                note = note_from_record(record)
            except ValidationError as e:
                logger.warning("Skipping unreadable note in %s: %s", source, e)
                continue
            if note.id in seen:
                logger.warning("Skipping duplicate note id %s in %s", note.id, source)
                continue
            if isinstance(note.payload, TimerPayload) and note.payload.detached:
                note.payload.detached = False
            seen.add(note.id)
            loaded.append(note)
        return loaded

    def _migrate_legacy(self) -> bool:
        """Move a pre-workspace ``notes.json`` into an empty home workspace."""
        if not fs_exists(self.fs, self.legacy_path):
            return False
        try:
            raw = fs_read_json(self.fs, self.legacy_path)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Could not read legacy notes file: %s", e)  # noqa: TRY400
            return False
        if not isinstance(raw, dict) or not (raw.keys() & {"notes", "archivedNotes"}):
            return False
        if not self._table[DEFAULT_WORKSPACE].is_empty():
            logger.info("Home workspace already has notes; legacy file left in place")
            return False

        migrated = self._parse(raw, self.legacy_path)
        self._table[DEFAULT_WORKSPACE] = migrated
        if not self._write_workspace(DEFAULT_WORKSPACE, migrated):
            return False
        self.fs.rm(self.legacy_path)
        logger.info(
            "Migrated %d legacy notes into the %s workspace",
            len(migrated.notes) + len(migrated.archived_notes),
            DEFAULT_WORKSPACE,
        )
        return True

    # --- persistence ---------------------------------------------------------

    def save(self) -> bool:
        """Write the current workspace's collections to its file.

        Returns:
            ``True`` on success. Failures are logged, never raised.

        """
        data = WorkspaceData(self.notes, self.archived_notes)
        self._table[self.current] = data
        return self._write_workspace(self.current, data)

    def _write_workspace(self, name: str, data: WorkspaceData) -> bool:
        payload = {
            "notes": [note_to_record(note) for note in data.notes],
            "archivedNotes": [note_to_record(note) for note in data.archived_notes],
        }
        path = self.workspace_path(name)
        try:
            fs_write_json(self.fs, path, payload)
        except OSError:
            logger.exception("Could not save workspace %s to %s", name, path)
            return False
        return True

    def _save_preference(self) -> None:
        try:
            fs_write_json(self.fs, self.preference_path, {"currentWorkspace": self.current})
        except OSError:
            logger.exception("Could not save workspace preference")

    # --- switching -----------------------------------------------------------

    def on_switch(self, listener: SwitchListener) -> None:
        """Register ``listener(previous, current)`` for workspace switches."""
        self._listeners.append(listener)

    def switch_workspace(self, target: str) -> bool:
        """Make ``target`` the current workspace.

        Returns:
            ``False`` if ``target`` already is current, ``True`` otherwise.

        Raises:
            UnknownWorkspaceError: If ``target`` is not a known workspace.

        """
        if target not in WORKSPACES:
            msg = f"Unknown workspace: {target}. Expected one of {', '.join(WORKSPACES)}"
            raise UnknownWorkspaceError(msg)
        if target == self.current:
            return False

        previous = self.current
        self._table[previous] = WorkspaceData(self.notes, self.archived_notes)
        self.current = target
        data = self._table[target]
        self.notes = data.notes
        self.archived_notes = data.archived_notes
        self._save_preference()
        logger.info("Switched workspace %s -> %s", previous, target)

        for listener in list(self._listeners):
            listener(previous, target)
        return True

    def workspace_data(self, name: str) -> WorkspaceData:
        """Collections of ``name``; the live lists for the current workspace."""
        if name == self.current:
            return WorkspaceData(self.notes, self.archived_notes)
        return self._table[name]

    # --- lookup --------------------------------------------------------------

    def all_notes(self) -> Iterator[Note]:
        yield from self.notes
        yield from self.archived_notes

    def all_ids(self) -> set[str]:
        return {note.id for note in self.all_notes()}

    def resolve(self, note_id: str) -> Note | None:
        """Return the active or archived note with ``note_id``, if any."""
        for note in self.all_notes():
            if note.id == note_id:
                return note
        return None

    def get_note(self, note_id: str) -> Note:
        """Return the active note ``note_id``.

        Raises:
            NoteNotFoundError: If no active note has that id.

        """
        for note in self.notes:
            if note.id == note_id:
                return note
        msg = f"Note {note_id} not found in workspace {self.current}"
        raise NoteNotFoundError(msg)

    def get_archived(self, note_id: str) -> Note:
        for note in self.archived_notes:
            if note.id == note_id:
                return note
        msg = f"Archived note {note_id} not found in workspace {self.current}"
        raise NoteNotFoundError(msg)

    def find(self, note_id: str) -> tuple[Note, bool]:
        """Return ``(note, is_archived)`` for ``note_id``.

        Raises:
            NoteNotFoundError: If the id is unknown in this workspace.

        """
        for archived, notes in ((False, self.notes), (True, self.archived_notes)):
            for note in notes:
                if note.id == note_id:
                    return note, archived
        msg = f"Note {note_id} not found in workspace {self.current}"
        raise NoteNotFoundError(msg)

    # --- collection edits ----------------------------------------------------

    def add(self, note: Note) -> Note:
        """Append ``note`` to the active collection.

        Raises:
            DuplicateNoteError: If the id is already used in this workspace.

        """
        if self.resolve(note.id) is not None:
            msg = f"Note {note.id} already exists in workspace {self.current}"
            raise DuplicateNoteError(msg)
        self.notes.append(note)
        return note

    def remove(self, note_id: str) -> Note:
        """Remove and return the active note ``note_id``."""
        note = self.get_note(note_id)
        self.notes.remove(note)
        return note

    def remove_archived(self, note_id: str) -> Note:
        note = self.get_archived(note_id)
        self.archived_notes.remove(note)
        return note

    def move_to_archive(self, note_id: str, archived_at: str | None = None) -> Note:
        """Move an active note to the archive and stamp ``archived_at``."""
        note = self.remove(note_id)
        note.archived_at = archived_at or utc_now_iso()
        self.archived_notes.append(note)
        return note

    def move_to_active(self, note_id: str) -> Note:
        """Move an archived note back and clear ``archived_at``."""
        note = self.get_archived(note_id)
        self.archived_notes.remove(note)
        note.archived_at = None
        self.notes.append(note)
        return note

    # --- data directory ------------------------------------------------------

    def move_data(self, new_path: str | Path) -> list[Note]:
        """Copy the data files to ``new_path`` and reload from there.

        The old files are left untouched.

        Returns:
            Running timer notes after the reload (see ``load``).

        """
        _, target = get_fs_and_path(new_path, self.fs)
        fs_makedirs(self.fs, target)
        names = [workspace_filename(name) for name in WORKSPACES] + [PREFERENCE_FILE]
        for name in names:
            source = fs_join(self.data_path, name)
            if fs_exists(self.fs, source):
                self.fs.copy(source, fs_join(target, name))
        logger.info("Copied data from %s to %s", self.data_path, target)
        self.data_path = target
        return self.load()

    def reset(self) -> None:
        """Empty every workspace and persist the empty collections."""
        self._table = {name: WorkspaceData() for name in WORKSPACES}
        self.notes = self._table[self.current].notes
        self.archived_notes = self._table[self.current].archived_notes
        for name in WORKSPACES:
            self._write_workspace(name, self._table[name])
        logger.info("All workspace data reset")

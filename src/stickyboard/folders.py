"""Folder containment: folder notes listing member notes by id."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .notes import FolderPayload, Note, NoteType

if TYPE_CHECKING:
    from .workspace import WorkspaceStore

logger = logging.getLogger(__name__)


def _items(folder: Note) -> list[str]:
    assert isinstance(folder.payload, FolderPayload)  # noqa: S101
    return folder.payload.folder_items


class FolderEngine:
    """Maintains ``folder_items`` / ``parent_folder`` symmetry without cycles.

    Folders and members are resolved over the active and archived notes of
    the store's current workspace; only active folders accept new members.
    """

    def __init__(self, store: WorkspaceStore) -> None:
        self.store = store

    def folders(self) -> list[Note]:
        return [note for note in self.store.all_notes() if note.type is NoteType.FOLDER]

    def _active_folder(self, folder_id: str) -> Note | None:
        for note in self.store.notes:
            if note.id == folder_id and note.type is NoteType.FOLDER:
                return note
        return None

    def contains(self, ancestor_id: str, target_id: str) -> bool:
        """Return ``True`` if ``target_id`` is reachable from ``ancestor_id``.

        Depth-first over ``folder_items`` edges; folders already visited are
        not expanded again, so a corrupted cyclic structure still terminates.
        """
        stack = [ancestor_id]
        visited: set[str] = set()
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            folder = self.store.resolve(current)
            if folder is None or folder.type is not NoteType.FOLDER:
                continue
            for item_id in _items(folder):
                if item_id == target_id:
                    return True
                stack.append(item_id)
        return False

    def would_create_cycle(self, note_id: str, folder_id: str) -> bool:
        """Whether putting folder ``note_id`` into ``folder_id`` is refused."""
        return (
            note_id == folder_id
            or self.contains(folder_id, note_id)
            or self.contains(note_id, folder_id)
        )

    def add_to_folder(self, note_id: str, folder_id: str) -> bool:
        """Place ``note_id`` in ``folder_id``, leaving any previous folder.

        Returns:
            ``True`` if the note is now a member; ``False`` when the drop was
            refused (not a folder, same note, unknown note, or a cycle).

        """
        if note_id == folder_id:
            logger.debug("Refusing to put note %s into itself", note_id)
            return False
        folder = self._active_folder(folder_id)
        if folder is None:
            logger.debug("Refusing drop on %s: not an active folder", folder_id)
            return False
        note = next((n for n in self.store.notes if n.id == note_id), None)
        if note is None:
            logger.debug("Refusing drop of %s: not an active note", note_id)
            return False
        if note.type is NoteType.FOLDER and self.would_create_cycle(note_id, folder_id):
            logger.debug("Refusing drop of %s into %s: would nest a cycle", note_id, folder_id)
            return False

        for other in self.folders():
            if other is not folder and note_id in _items(other):
                self._unlink(other, note_id)
        self.prune(folder)
        if note_id not in _items(folder):
            _items(folder).append(note_id)
        note.parent_folder = folder_id
        return True

    def remove_from_folder(self, folder_id: str, note_id: str) -> bool:
        """Take ``note_id`` out of ``folder_id``; the inverse of ``add_to_folder``."""
        folder = self.store.resolve(folder_id)
        if folder is None or folder.type is not NoteType.FOLDER:
            return False
        changed = self._unlink(folder, note_id)
        note = self.store.resolve(note_id)
        if note is not None and note.parent_folder == folder_id:
            note.parent_folder = None
            changed = True
        self.prune(folder)
        return changed

    def release(self, note_id: str) -> list[str]:
        """Remove ``note_id`` from every folder that lists it.

        All folders are scanned, not only the note's own ``parent_folder``,
        so stale listings are repaired too.

        Returns:
            Ids of the folders that changed.

        """
        changed = [
            folder.id for folder in self.folders() if self._unlink(folder, note_id)
        ]
        note = self.store.resolve(note_id)
        if note is not None:
            note.parent_folder = None
        return changed

    def release_members(self, folder: Note) -> list[str]:
        """Empty ``folder``; its members return to the canvas."""
        released = []
        for item_id in _items(folder):
            member = self.store.resolve(item_id)
            if member is not None and member.parent_folder == folder.id:
                member.parent_folder = None
                released.append(item_id)
        folder.payload.folder_items = []
        return released

    def prune(self, folder: Note) -> list[str]:
        """Drop member ids that no longer resolve to any note."""
        items = _items(folder)
        dangling = [item_id for item_id in items if self.store.resolve(item_id) is None]
        if dangling:
            folder.payload.folder_items = [i for i in items if i not in dangling]
            logger.info("Dropped %d dangling items from folder %s", len(dangling), folder.id)
        return dangling

    def members(self, folder: Note) -> list[Note]:
        """Resolvable member notes of ``folder``, in folder order."""
        resolved = (self.store.resolve(item_id) for item_id in _items(folder))
        return [note for note in resolved if note is not None]

    def repair(self) -> int:
        """Restore parent/child symmetry after loading hand-edited data.

        Returns:
            Number of links that were fixed.

        """
        fixes = 0
        for folder in self.folders():
            kept: list[str] = []
            for item_id in _items(folder):
                if item_id in kept:
                    fixes += 1
                    continue
                member = self.store.resolve(item_id)
                if member is None:
                    kept.append(item_id)
                    continue
                owner = member.parent_folder
                if owner not in (None, folder.id) and self._lists(owner, item_id):
                    fixes += 1
                    continue
                if owner != folder.id:
                    member.parent_folder = folder.id
                    fixes += 1
                kept.append(item_id)
            folder.payload.folder_items = kept

        for note in self.store.all_notes():
            if note.parent_folder and not self._lists(note.parent_folder, note.id):
                note.parent_folder = None
                fixes += 1
        if fixes:
            logger.warning("Repaired %d folder links", fixes)
        return fixes

    def _lists(self, folder_id: str, note_id: str) -> bool:
        folder = self.store.resolve(folder_id)
        return (
            folder is not None
            and folder.type is NoteType.FOLDER
            and note_id in _items(folder)
        )

    @staticmethod
    def _unlink(folder: Note, note_id: str) -> bool:
        items = _items(folder)
        if note_id not in items:
            return False
        folder.payload.folder_items = [i for i in items if i != note_id]
        return True

"""Tests for folder containment and cycle prevention."""

import fsspec
import pytest

from stickyboard.folders import FolderEngine
from stickyboard.notes import Note, create_note
from stickyboard.utils import fs_join
from stickyboard.workspace import WorkspaceStore


@pytest.fixture
def store(fs_impl: tuple[fsspec.AbstractFileSystem, str]) -> WorkspaceStore:
    fs, root = fs_impl
    store = WorkspaceStore(fs_join(root, "data"), fs=fs)
    store.load()
    return store


@pytest.fixture
def engine(store: WorkspaceStore) -> FolderEngine:
    return FolderEngine(store)


def _add(store: WorkspaceStore, note_type: str, note_id: str) -> Note:
    return store.add(create_note(note_type, note_id=note_id))


def test_add_sets_both_sides(store: WorkspaceStore, engine: FolderEngine) -> None:
    folder = _add(store, "folder", "F")
    note = _add(store, "text", "T")

    assert engine.add_to_folder("T", "F") is True
    assert folder.payload.folder_items == ["T"]
    assert note.parent_folder == "F"

    assert engine.add_to_folder("T", "F") is True
    assert folder.payload.folder_items == ["T"]


def test_moving_between_folders_unlinks_old(
    store: WorkspaceStore,
    engine: FolderEngine,
) -> None:
    first = _add(store, "folder", "F1")
    second = _add(store, "folder", "F2")
    note = _add(store, "text", "T")

    engine.add_to_folder("T", "F1")
    engine.add_to_folder("T", "F2")

    assert first.payload.folder_items == []
    assert second.payload.folder_items == ["T"]
    assert note.parent_folder == "F2"


def _snapshot(store: WorkspaceStore) -> dict[str, tuple[list[str], str | None]]:
    return {
        note.id: (list(getattr(note.payload, "folder_items", [])), note.parent_folder)
        for note in store.notes + store.archived_notes
    }


def test_refused_drops(store: WorkspaceStore, engine: FolderEngine) -> None:
    _add(store, "folder", "F")
    _add(store, "text", "T")
    before = _snapshot(store)

    assert engine.add_to_folder("F", "F") is False
    assert engine.add_to_folder("T", "T") is False
    assert engine.add_to_folder("F", "T") is False
    assert engine.add_to_folder("missing", "F") is False
    assert _snapshot(store) == before


def test_nesting_cycles_are_refused(store: WorkspaceStore, engine: FolderEngine) -> None:
    _add(store, "folder", "A")
    _add(store, "folder", "B")
    _add(store, "folder", "C")

    assert engine.add_to_folder("B", "A") is True
    assert engine.add_to_folder("C", "B") is True
    assert engine.would_create_cycle("A", "C") is True
    before = _snapshot(store)
    assert engine.add_to_folder("A", "C") is False
    assert _snapshot(store) == before
    assert engine.contains("A", "C") is True
    assert engine.contains("C", "A") is False


def test_contains_terminates_on_corrupt_cycle(
    store: WorkspaceStore,
    engine: FolderEngine,
) -> None:
    a = _add(store, "folder", "A")
    b = _add(store, "folder", "B")
    a.payload.folder_items = ["B"]
    b.payload.folder_items = ["A"]

    assert engine.contains("A", "missing") is False


def test_archived_folder_accepts_nothing(
    store: WorkspaceStore,
    engine: FolderEngine,
) -> None:
    _add(store, "folder", "F")
    _add(store, "text", "T")
    store.move_to_archive("F")

    assert engine.add_to_folder("T", "F") is False


def test_remove_and_release(store: WorkspaceStore, engine: FolderEngine) -> None:
    folder = _add(store, "folder", "F")
    note = _add(store, "text", "T")
    engine.add_to_folder("T", "F")

    assert engine.remove_from_folder("F", "T") is True
    assert folder.payload.folder_items == []
    assert note.parent_folder is None
    assert engine.remove_from_folder("F", "T") is False

    engine.add_to_folder("T", "F")
    assert engine.release("T") == ["F"]
    assert note.parent_folder is None


def test_release_members(store: WorkspaceStore, engine: FolderEngine) -> None:
    folder = _add(store, "folder", "F")
    note = _add(store, "text", "T")
    engine.add_to_folder("T", "F")

    assert engine.release_members(folder) == ["T"]
    assert note.parent_folder is None
    assert folder.payload.folder_items == []


def test_prune_drops_dangling(store: WorkspaceStore, engine: FolderEngine) -> None:
    folder = _add(store, "folder", "F")
    folder.payload.folder_items = ["ghost"]
    _add(store, "text", "T")

    engine.add_to_folder("T", "F")
    assert folder.payload.folder_items == ["T"]
    assert [m.id for m in engine.members(folder)] == ["T"]


def test_repair_restores_symmetry(store: WorkspaceStore, engine: FolderEngine) -> None:
    folder = _add(store, "folder", "F")
    listed = _add(store, "text", "listed")
    orphan = _add(store, "text", "orphan")
    folder.payload.folder_items = ["listed", "listed"]
    orphan.parent_folder = "F-gone"

    assert engine.repair() == 3
    assert folder.payload.folder_items == ["listed"]
    assert listed.parent_folder == "F"
    assert orphan.parent_folder is None
    assert engine.repair() == 0

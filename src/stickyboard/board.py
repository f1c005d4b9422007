"""Board: the synchronous operation surface over the note state.

Every mutating operation changes memory first and then flushes the current
workspace to disk before returning.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Self, TypeVar

from . import editing, exporting
from .collaborators import (
    HeadlessSurface,
    HeadlessTimerWindowHost,
    LoggingNotifier,
    SilentSoundPlayer,
)
from .config import AppConfig, apply_config_changes, load_config, save_config
from .exporting import ExportError, ImportResult, import_json, import_markdown
from .folders import FolderEngine
from .notes import Note, NoteType, apply_changes, create_note
from .reminders import ReminderChecker
from .scheduling import AsyncioScheduler
from .search import SearchFilters, SearchResult, search_notes
from .timers import TimerController, TimerState, timer_state
from .workspace import WorkspaceStore

R = TypeVar("R")

if TYPE_CHECKING:
    from types import TracebackType

    import fsspec

    from .collaborators import (
        Notification,
        Notifier,
        OverlaySurface,
        SoundPlayer,
        TimerWindowHost,
    )
    from .scheduling import Scheduler

logger = logging.getLogger(__name__)

DEFAULT_CANVAS_CENTER = (640.0, 360.0)


class HotkeyCommand(StrEnum):
    NEW_NOTE = "new-note"
    FOCUS_SEARCH = "focus-search"
    TOGGLE_ARCHIVE = "toggle-archive"
    TOGGLE_OVERLAY = "toggle-overlay"


class Board:
    """Owns the store and every engine working on it.

    Collaborators default to the headless implementations, so a board can
    run without any window system.
    """

    def __init__(  # noqa: PLR0913
        self,
        config: AppConfig | None = None,
        *,
        config_path: str | Path | None = None,
        fs: fsspec.AbstractFileSystem | None = None,
        scheduler: Scheduler | None = None,
        notifier: Notifier | None = None,
        sound: SoundPlayer | None = None,
        surface: OverlaySurface | None = None,
        window_host: TimerWindowHost | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Wire the board; nothing is read from disk until ``open``.

        Args:
            config: Settings; loaded from ``config_path`` when omitted.
            config_path: Where settings are persisted.
            fs: Filesystem for config and data; inferred from paths otherwise.
            scheduler: Drives timer ticks and reminder scans.
            notifier: Desktop notification service.
            sound: Plays the timer completion cue.
            surface: The overlay window.
            window_host: Opens detached timer surfaces.
            clock: Local-time source for reminders.

        """
        self.fs = fs
        self.config_path = config_path
        self.config = config or load_config(config_path, fs)
        self.scheduler = scheduler or AsyncioScheduler()
        self.notifier = notifier or LoggingNotifier()
        self.sound = sound or SilentSoundPlayer()
        self.surface = surface or HeadlessSurface()
        self.window_host = window_host or HeadlessTimerWindowHost()
        self.overlay_visible = True
        self.canvas_center = DEFAULT_CANVAS_CENTER

        self.store = WorkspaceStore(self.config.data_path, fs)
        self.folders = FolderEngine(self.store)
        self.timers = TimerController(
            self.store,
            self.scheduler,
            self.notifier,
            self.sound,
            self.window_host,
            save=self.save,
            focus=self.focus_note,
        )
        self.reminders = ReminderChecker(
            self.store,
            self.notifier,
            save=self.save,
            focus=self.focus_note,
            clock=clock,
        )
        self.store.on_switch(self._on_switch)

    # --- lifecycle -----------------------------------------------------------

    def open(self, *, background: bool = True) -> Self:
        """Load the data and resume what was running.

        Args:
            background: Also start the periodic reminder scan.

        """
        running = self.store.load()
        if self.folders.repair():
            self.save()
        self.timers.resume_running(running)
        if background:
            self.reminders.start(self.scheduler)
        return self

    def close(self) -> None:
        """Cancel every timer driver and the reminder scan."""
        self.timers.stop_all()
        self.reminders.stop()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def save(self) -> bool:
        return self.store.save()

    # --- queries -------------------------------------------------------------

    @property
    def workspace(self) -> str:
        return self.store.current

    @property
    def notes(self) -> list[Note]:
        return self.store.notes

    @property
    def archived_notes(self) -> list[Note]:
        return self.store.archived_notes

    def get_note(self, note_id: str) -> Note:
        """Return the active or archived note ``note_id``.

        Raises:
            NoteNotFoundError: If the id is unknown in this workspace.

        """
        note, _ = self.store.find(note_id)
        return note

    def folder_members(self, folder_id: str) -> list[Note]:
        folder = self.get_note(folder_id)
        if folder.type is not NoteType.FOLDER:
            return []
        return self.folders.members(folder)

    def search(self, query: str, filters: SearchFilters | None = None) -> list[SearchResult]:
        return search_notes(
            self.store.notes,
            self.store.archived_notes,
            query,
            filters,
            resolve=self.store.resolve,
        )

    # --- note lifecycle ------------------------------------------------------

    def create_note(
        self,
        note_type: NoteType | str,
        x: float = 0,
        y: float = 0,
        **fields: Any,  # noqa: ANN401
    ) -> Note:
        """Create a note, apply optional initial ``fields`` and persist it."""
        note = create_note(note_type, x, y)
        if fields:
            apply_changes(note, **fields)
        self.store.add(note)
        self.save()
        logger.info("Created %s note %s", note.type, note.id)
        return note

    def update_note(self, note_id: str, **changes: Any) -> Note:  # noqa: ANN401
        """Apply a generic update to an active or archived note."""
        note = apply_changes(self.get_note(note_id), **changes)
        self.save()
        return note

    def delete_note(self, note_id: str, *, confirm: bool | None = None) -> bool:
        """Delete a note for good.

        Args:
            note_id: Active or archived note.
            confirm: Skip the confirmation when ``True``; ask the surface when
                ``None`` and ``confirmDelete`` is on.

        Returns:
            ``False`` if the user declined.

        """
        note, archived = self.store.find(note_id)
        if confirm is None and self.config.confirm_delete:
            confirm = self.surface.confirm_delete(note)
        if confirm is False:
            logger.info("Delete of %s cancelled", note_id)
            return False

        self.timers.retire(note_id)
        self.folders.release(note_id)
        if note.type is NoteType.FOLDER:
            self.folders.release_members(note)
        if archived:
            self.store.remove_archived(note_id)
        else:
            self.store.remove(note_id)
        self.save()
        logger.info("Deleted note %s", note_id)
        return True

    def archive_note(self, note_id: str) -> Note:
        """Move an active note into the archive.

        The note leaves its folder; a folder keeps its own members.
        """
        self.store.get_note(note_id)
        self.timers.retire(note_id)
        self.folders.release(note_id)
        note = self.store.move_to_archive(note_id)
        self.save()
        return note

    def restore_note(self, note_id: str) -> Note:
        note = self.store.move_to_active(note_id)
        self.timers.retire(note_id)
        self.save()
        return note

    # --- folders -------------------------------------------------------------

    def add_to_folder(self, note_id: str, folder_id: str) -> bool:
        added = self.folders.add_to_folder(note_id, folder_id)
        if added:
            self.save()
        return added

    def remove_from_folder(self, folder_id: str, note_id: str) -> bool:
        removed = self.folders.remove_from_folder(folder_id, note_id)
        if removed:
            self.save()
        return removed

    # --- timers --------------------------------------------------------------

    def _timer_op(self, operation: Callable[..., R], *args: Any) -> R:  # noqa: ANN401
        result = operation(*args)
        self.save()
        return result

    def start_timer(self, note_id: str) -> bool:
        return self._timer_op(self.timers.start, note_id)

    def pause_timer(self, note_id: str) -> bool:
        return self._timer_op(self.timers.pause, note_id)

    def toggle_timer(self, note_id: str) -> bool:
        return self._timer_op(self.timers.toggle, note_id)

    def reset_timer(self, note_id: str) -> None:
        self._timer_op(self.timers.reset, note_id)

    def set_timer_preset(self, note_id: str, timer_type: str) -> int:
        return self._timer_op(self.timers.set_preset, note_id, timer_type)

    def set_custom_timer(self, note_id: str, minutes: int | str) -> int:
        return self._timer_op(self.timers.set_custom, note_id, minutes)

    def detach_timer(self, note_id: str) -> bool:
        return self._timer_op(self.timers.detach, note_id)

    def reattach_timer(self, note_id: str) -> bool:
        return self._timer_op(self.timers.reattach, note_id)

    def timer_state(self, note_id: str) -> TimerState:
        return timer_state(self.store.get_note(note_id))

    # --- reminders -----------------------------------------------------------

    def set_reminder(
        self,
        note_id: str,
        when: datetime | str,
        message: str | None = None,
    ) -> Note:
        note = self.store.get_note(note_id)
        editing.set_reminder_datetime(note, when)
        if message is not None:
            editing.set_reminder_message(note, message)
        self.save()
        return note

    def check_reminders(self, now: datetime | None = None) -> list[Note]:
        return self.reminders.check(now)

    def trigger_reminder(self, note_id: str) -> Note:
        return self.reminders.trigger(note_id)

    def reset_reminder(self, note_id: str) -> Note:
        note = self.reminders.reset(note_id)
        self.save()
        return note

    def test_reminder(self, note_id: str) -> Notification:
        return self.reminders.test(note_id)

    # --- content edits -------------------------------------------------------

    def edit(self, note_id: str, operation: Callable[..., R], *args: Any) -> R:  # noqa: ANN401
        """Run an ``editing`` operation on an active note and persist."""
        result = operation(self.store.get_note(note_id), *args)
        self.save()
        return result

    def set_tags(self, note_id: str, tags: list[str] | str) -> list[str]:
        return self.edit(note_id, editing.set_tags, tags)

    def add_todo_item(self, note_id: str, text: str = "") -> editing.TodoItem:
        return self.edit(note_id, editing.add_todo_item, text)

    def update_todo_item(self, note_id: str, item_id: str, text: str) -> editing.TodoItem:
        return self.edit(note_id, editing.update_todo_text, item_id, text)

    def toggle_todo_item(self, note_id: str, item_id: str) -> bool:
        return self.edit(note_id, editing.toggle_todo, item_id)

    def delete_todo_item(self, note_id: str, item_id: str) -> None:
        self.edit(note_id, editing.delete_todo_item, item_id)

    def todo_progress(self, note_id: str) -> editing.TodoProgress:
        return editing.todo_progress(self.get_note(note_id))

    def update_table_cell(self, note_id: str, row: int, col: int, value: str) -> None:
        self.edit(note_id, editing.update_table_cell, row, col, value)

    def add_table_row(self, note_id: str) -> None:
        self.edit(note_id, editing.add_table_row)

    def add_table_column(self, note_id: str) -> None:
        self.edit(note_id, editing.add_table_column)

    def remove_table_row(self, note_id: str) -> bool:
        return self.edit(note_id, editing.remove_table_row)

    def remove_table_column(self, note_id: str) -> bool:
        return self.edit(note_id, editing.remove_table_column)

    def calculator_input(self, note_id: str, key: str) -> str:
        return self.edit(note_id, editing.calculator_input, key)

    def calculator_equals(self, note_id: str) -> str:
        return self.edit(note_id, editing.calculator_equals)

    def calculator_clear(self, note_id: str) -> str:
        return self.edit(note_id, editing.calculator_clear)

    def calculator_backspace(self, note_id: str) -> str:
        return self.edit(note_id, editing.calculator_backspace)

    # --- workspace and settings ----------------------------------------------

    def switch_workspace(self, target: str) -> bool:
        """Persist the outgoing workspace and make ``target`` current."""
        if target != self.store.current:
            self.save()
        return self.store.switch_workspace(target)

    def _on_switch(self, previous: str, current: str) -> None:
        self.timers.on_workspace_switch(previous, current)
        self.surface.refresh()

    def update_config(self, **changes: Any) -> AppConfig:  # noqa: ANN401
        """Validate and persist setting changes.

        A new ``data_path`` copies the data files there and reloads from it.

        Raises:
            UnknownSettingError: If a key is not a setting.
            pydantic.ValidationError: If a value is invalid.

        """
        updated = apply_config_changes(self.config, changes)
        moved = updated.data_path != self.config.data_path
        if moved:
            self.timers.stop_all()
            self.timers.reattach_all()
            self.save()
            running = self.store.move_data(updated.data_path)
            self.timers.resume_running(running)
        self.config = updated
        save_config(updated, self.config_path, self.fs)
        return updated

    def reset_data(self) -> None:
        """Delete every note in every workspace."""
        self.timers.stop_all()
        self.timers.reattach_all()
        self.store.reset()

    # --- overlay -------------------------------------------------------------

    def overlay_shown(self) -> list[str]:
        """The overlay became visible: detached timers come back."""
        self.overlay_visible = True
        reattached = self.timers.reattach_all()
        if reattached:
            self.save()
        return reattached

    def overlay_hidden(self) -> list[str]:
        """The overlay was hidden: running timers move to their own surfaces."""
        self.overlay_visible = False
        detached = self.timers.detach_running()
        if detached:
            self.save()
        return detached

    def show_overlay(self) -> None:
        if not self.overlay_visible:
            self.surface.show()
            self.overlay_shown()

    def hide_overlay(self) -> None:
        if self.overlay_visible:
            self.surface.hide()
            self.overlay_hidden()

    def focus_note(self, note_id: str) -> None:
        """Bring ``note_id`` into view, showing the overlay if needed."""
        self.surface.show()
        if not self.overlay_visible:
            self.overlay_shown()
        self.surface.focus_note(note_id)

    def handle_hotkey(self, command: HotkeyCommand | str) -> Note | None:
        """Dispatch a global shortcut.

        Returns:
            The note created by ``new-note``; ``None`` otherwise.

        """
        match HotkeyCommand(command):
            case HotkeyCommand.NEW_NOTE:
                self.show_overlay()
                return self.create_note(NoteType.TEXT, *self.canvas_center)
            case HotkeyCommand.FOCUS_SEARCH:
                if self.overlay_visible:
                    self.surface.focus_search()
            case HotkeyCommand.TOGGLE_ARCHIVE:
                self.show_overlay()
                self.surface.toggle_archive_view()
            case HotkeyCommand.TOGGLE_OVERLAY:
                if self.overlay_visible:
                    self.hide_overlay()
                else:
                    self.show_overlay()
        return None

    # --- export --------------------------------------------------------------

    @contextmanager
    def _reporting(self, action: str) -> Iterator[None]:
        """Show a failed export or import on the surface, then re-raise."""
        try:
            yield
        except (ExportError, OSError) as e:
            self.surface.report(f"{action} failed: {e}")
            raise

    def export_markdown(self, note_id: str) -> str:
        return exporting.export_markdown(self.get_note(note_id), self.store.resolve)

    def export_html(self, note_id: str) -> str:
        return exporting.export_html(self.get_note(note_id), self.store.resolve)

    def share_text(self, note_id: str) -> str:
        return exporting.share_text(self.get_note(note_id), self.store.resolve)

    def export_backup(self) -> dict[str, Any]:
        """Backup document of both collections of the current workspace."""
        return exporting.export_backup(self.store.notes, self.store.archived_notes)

    def export_png(self, note_id: str, path: str | None = None) -> str:
        """Write a paint, image or table note as PNG; returns the path written.

        Without ``path`` the file is named after the note in the working directory.
        """
        note = self.get_note(note_id)
        target = path or exporting.export_filename(note, "png", f"_{note.type}")
        with self._reporting("PNG export"):
            return exporting.export_png(note, target)

    # --- import --------------------------------------------------------------

    def import_json(self, payload: Any) -> ImportResult:  # noqa: ANN401
        """Add the notes of a JSON export, skipping ids already in use."""
        with self._reporting("Import"):
            result = import_json(payload, self.store.all_ids())
        for note in reversed(result.notes):
            self.store.notes.insert(0, note)
        self.store.archived_notes.extend(result.archived)
        self.timers.resume_running(result.notes)
        if result.imported:
            self.folders.repair()
            self.save()
        return result

    def import_markdown(self, name: str, content: str) -> Note:
        note = import_markdown(name, content, *self.canvas_center)
        self.store.notes.insert(0, note)
        self.save()
        return note

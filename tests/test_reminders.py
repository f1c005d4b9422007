"""Tests for the reminder checker."""

from datetime import datetime, timedelta

import fsspec
import pytest

from stickyboard.collaborators import LoggingNotifier
from stickyboard.editing import set_reminder_datetime, set_reminder_message
from stickyboard.notes import Note, NoteTypeError, create_note
from stickyboard.reminders import (
    NOTIFICATION_TITLE,
    TEST_NOTIFICATION_TITLE,
    ReminderChecker,
)
from stickyboard.scheduling import Scheduler
from stickyboard.utils import fs_join
from stickyboard.workspace import WorkspaceStore

NOW = datetime(2026, 3, 1, 9, 0)


@pytest.fixture
def store(fs_impl: tuple[fsspec.AbstractFileSystem, str]) -> WorkspaceStore:
    fs, root = fs_impl
    store = WorkspaceStore(fs_join(root, "data"), fs=fs)
    store.load()
    return store


@pytest.fixture
def checker(store: WorkspaceStore, notifier: LoggingNotifier) -> ReminderChecker:
    return ReminderChecker(store, notifier, save=store.save, clock=lambda: NOW)


def _reminder(store: WorkspaceStore, when: datetime | str, note_id: str = "r1") -> Note:
    note = store.add(create_note("reminder", note_id=note_id))
    set_reminder_datetime(note, when)
    return note


def test_due_reminder_fires_once(
    store: WorkspaceStore,
    checker: ReminderChecker,
    notifier: LoggingNotifier,
) -> None:
    note = _reminder(store, NOW)
    set_reminder_message(note, "Stand-up")

    assert checker.check(NOW + timedelta(seconds=30)) == [note]
    assert note.payload.reminder_triggered is True
    assert checker.check(NOW + timedelta(minutes=1)) == []

    assert len(notifier.sent) == 1
    sent = notifier.sent[0]
    assert sent.title == NOTIFICATION_TITLE
    assert sent.body == "Stand-up"
    assert sent.tag == "reminder-r1"
    assert sent.require_interaction is True


def test_fired_state_is_persisted_before_notifying(
    fs_impl: tuple[fsspec.AbstractFileSystem, str],
    store: WorkspaceStore,
    checker: ReminderChecker,
) -> None:
    _reminder(store, NOW)
    checker.check(NOW)

    again = WorkspaceStore(store.data_path, fs=fs_impl[0])
    again.load()
    assert again.get_note("r1").payload.reminder_triggered is True


@pytest.mark.parametrize(
    ("offset", "due"),
    [
        (timedelta(seconds=-1), False),
        (timedelta(0), True),
        (timedelta(minutes=1, seconds=59), True),
        (timedelta(minutes=2), False),
        (timedelta(hours=5), False),
    ],
)
def test_tolerance_window(
    store: WorkspaceStore,
    checker: ReminderChecker,
    offset: timedelta,
    *,
    due: bool,
) -> None:
    note = _reminder(store, NOW)
    assert checker.is_due(note, NOW + offset) is due


def test_unset_or_unreadable_time_is_skipped(
    store: WorkspaceStore,
    checker: ReminderChecker,
) -> None:
    empty = store.add(create_note("reminder", note_id="empty"))
    broken = store.add(create_note("reminder", note_id="broken"))
    broken.payload.reminder_date_time = "soon"

    assert checker.is_due(empty, NOW) is False
    assert checker.is_due(broken, NOW) is False


def test_archived_reminders_are_ignored(
    store: WorkspaceStore,
    checker: ReminderChecker,
) -> None:
    _reminder(store, NOW)
    store.move_to_archive("r1")
    assert checker.check(NOW) == []


def test_manual_trigger_and_reset(
    store: WorkspaceStore,
    checker: ReminderChecker,
    notifier: LoggingNotifier,
) -> None:
    note = _reminder(store, "2030-01-01T10:00")
    checker.trigger("r1")
    assert note.payload.reminder_triggered is True
    assert notifier.sent[0].body == "You have a reminder!"

    checker.reset("r1")
    assert note.payload.reminder_triggered is False


def test_test_notification_leaves_note_alone(
    store: WorkspaceStore,
    checker: ReminderChecker,
) -> None:
    note = _reminder(store, NOW)
    notification = checker.test("r1")

    assert notification.title == TEST_NOTIFICATION_TITLE
    assert notification.tag == "test-reminder-r1"
    assert note.payload.reminder_triggered is False


def test_non_reminder_rejected(store: WorkspaceStore, checker: ReminderChecker) -> None:
    store.add(create_note("text", note_id="t"))
    with pytest.raises(NoteTypeError):
        checker.trigger("t")


def test_start_checks_immediately(
    store: WorkspaceStore,
    checker: ReminderChecker,
    scheduler: Scheduler,
) -> None:
    note = _reminder(store, NOW)
    checker.start(scheduler)

    assert note.payload.reminder_triggered is True
    assert checker.running is True
    checker.stop()
    assert checker.running is False

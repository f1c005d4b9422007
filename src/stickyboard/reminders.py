"""Reminder checker: periodic scan firing each due reminder once."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from functools import partial
from typing import TYPE_CHECKING

from .collaborators import Notification
from .notes import Note, NoteType, ReminderPayload, parse_local_datetime, require_type

if TYPE_CHECKING:
    from .collaborators import Notifier
    from .scheduling import ScheduledHandle, Scheduler
    from .workspace import WorkspaceStore

logger = logging.getLogger(__name__)

REMINDER_TOLERANCE = timedelta(minutes=2)
CHECK_INTERVAL_SECONDS = 60.0
NOTIFICATION_TITLE = "StickyBoard Reminder"
TEST_NOTIFICATION_TITLE = "StickyBoard Test Reminder"
DEFAULT_REMINDER_BODY = "You have a reminder!"
TEST_REMINDER_BODY = "This is a test notification"


def _to_local(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


class ReminderChecker:
    """Scans the active reminder notes of the current workspace.

    A reminder fires when the clock has reached its scheduled time and is
    still within ``tolerance`` of it; one missed by more is left silent.
    Once fired, ``reminderTriggered`` keeps it quiet until ``reset``.
    """

    def __init__(  # noqa: PLR0913
        self,
        store: WorkspaceStore,
        notifier: Notifier,
        *,
        save: Callable[[], object],
        focus: Callable[[str], None] | None = None,
        clock: Callable[[], datetime] = datetime.now,
        tolerance: timedelta = REMINDER_TOLERANCE,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self._save = save
        self._focus = focus
        self.clock = clock
        self.tolerance = tolerance
        self._handle: ScheduledHandle | None = None

    def _reminder(self, note_id: str) -> tuple[Note, ReminderPayload]:
        note = self.store.get_note(note_id)
        require_type(note, NoteType.REMINDER)
        assert isinstance(note.payload, ReminderPayload)  # noqa: S101
        return note, note.payload

    def is_due(self, note: Note, now: datetime) -> bool:
        payload = note.payload
        if not isinstance(payload, ReminderPayload) or payload.reminder_triggered:
            return False
        if not payload.reminder_date_time:
            return False
        when = parse_local_datetime(payload.reminder_date_time)
        if when is None:
            logger.debug(
                "Skipping reminder %s: unreadable time %r",
                note.id,
                payload.reminder_date_time,
            )
            return False
        late = _to_local(now) - _to_local(when)
        return timedelta(0) <= late < self.tolerance

    def check(self, now: datetime | None = None) -> list[Note]:
        """Fire every due reminder.

        Args:
            now: Local time to check against; defaults to the clock.

        Returns:
            The notes that fired during this scan.

        """
        current = now or self.clock()
        fired = [note for note in list(self.store.notes) if self.is_due(note, current)]
        for note in fired:
            self._fire(note)
        return fired

    def _fire(self, note: Note) -> None:
        assert isinstance(note.payload, ReminderPayload)  # noqa: S101
        note.payload.reminder_triggered = True
        self._save()
        logger.info("Reminder %s fired", note.id)
        self._notify(
            Notification(
                title=NOTIFICATION_TITLE,
                body=note.payload.reminder_message or note.title or DEFAULT_REMINDER_BODY,
                tag=f"reminder-{note.id}",
                note_id=note.id,
                require_interaction=True,
                on_click=partial(self._request_focus, note.id),
            ),
        )

    def trigger(self, note_id: str) -> Note:
        """Fire ``note_id`` now, regardless of its scheduled time."""
        note, _ = self._reminder(note_id)
        self._fire(note)
        return note

    def reset(self, note_id: str) -> Note:
        """Re-arm a fired reminder. The caller persists."""
        note, payload = self._reminder(note_id)
        payload.reminder_triggered = False
        return note

    def test(self, note_id: str) -> Notification:
        """Send a test notification without touching the note."""
        note, payload = self._reminder(note_id)
        notification = Notification(
            title=TEST_NOTIFICATION_TITLE,
            body=payload.reminder_message or TEST_REMINDER_BODY,
            tag=f"test-reminder-{note.id}",
            note_id=note.id,
            on_click=partial(self._request_focus, note.id),
        )
        self._notify(notification)
        return notification

    def _notify(self, notification: Notification) -> None:
        try:
            self.notifier.notify(notification)
        except Exception:
            logger.exception("Could not deliver notification %s", notification.tag)

    def _request_focus(self, note_id: str) -> None:
        if self._focus is not None:
            self._focus(note_id)

    def start(
        self,
        scheduler: Scheduler,
        interval: float = CHECK_INTERVAL_SECONDS,
    ) -> ScheduledHandle:
        """Check once now, then every ``interval`` seconds until ``stop``."""
        self.stop()
        self.check()
        self._handle = scheduler.every(interval, self.check)
        return self._handle

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    @property
    def running(self) -> bool:
        return self._handle is not None and not self._handle.cancelled

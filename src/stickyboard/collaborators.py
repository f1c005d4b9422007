"""Services the board consumes from the OS and window layer.

Each collaborator is a narrow protocol. The headless implementations here
log what a desktop shell would do and are used by the CLI and by tests.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .notes import Note
    from .timers import TimerChannel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    """A desktop notification request.

    Attributes:
        title: Notification heading.
        body: Message text.
        tag: Stable tag; a newer notification with the same tag replaces it.
        note_id: Note the notification is about.
        require_interaction: Keep it on screen until the user acts.
        on_click: Called when the user clicks the notification.

    """

    title: str
    body: str
    tag: str
    note_id: str | None = None
    require_interaction: bool = False
    on_click: Callable[[], None] | None = None


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


class SoundPlayer(Protocol):
    def play_timer_cue(self) -> None: ...


class OverlaySurface(Protocol):
    """The main overlay window as seen from the board."""

    def show(self) -> None: ...

    def hide(self) -> None: ...

    def focus_note(self, note_id: str) -> None: ...

    def confirm_delete(self, note: Note) -> bool: ...

    def refresh(self) -> None: ...

    def report(self, message: str) -> None: ...

    def focus_search(self) -> None: ...

    def toggle_archive_view(self) -> None: ...


class TimerWindowHost(Protocol):
    """Opens and closes the always-on-top surfaces of detached timers."""

    def open(self, note: Note, channel: TimerChannel) -> None: ...

    def close(self, note_id: str) -> None: ...


class LoggingNotifier:
    """Notifier that records notifications in the log only."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.sent.append(notification)
        logger.info(
            "Notification [%s] %s: %s",
            notification.tag,
            notification.title,
            notification.body,
        )


class SilentSoundPlayer:
    def __init__(self) -> None:
        self.plays = 0

    def play_timer_cue(self) -> None:
        self.plays += 1
        logger.debug("Timer cue played")


class HeadlessSurface:
    """Overlay stand-in without a window.

    Args:
        assume_yes: Answer given to delete confirmations.

    """

    def __init__(self, *, assume_yes: bool = True) -> None:
        self.assume_yes = assume_yes
        self.visible = False
        self.focused: str | None = None
        self.messages: list[str] = []
        self.search_focused = False
        self.archive_open = False

    def show(self) -> None:
        self.visible = True

    def hide(self) -> None:
        self.visible = False

    def focus_note(self, note_id: str) -> None:
        self.focused = note_id
        logger.info("Focusing note %s", note_id)

    def confirm_delete(self, note: Note) -> bool:
        logger.debug("Delete of %s confirmed=%s", note.id, self.assume_yes)
        return self.assume_yes

    def refresh(self) -> None:
        logger.debug("Overlay refresh requested")

    def report(self, message: str) -> None:
        self.messages.append(message)
        logger.warning("%s", message)

    def focus_search(self) -> None:
        self.search_focused = True

    def toggle_archive_view(self) -> None:
        self.archive_open = not self.archive_open


class HeadlessTimerWindowHost:
    """Keeps the channels of detached timers without showing anything."""

    def __init__(self) -> None:
        self.windows: dict[str, TimerChannel] = {}

    def open(self, note: Note, channel: TimerChannel) -> None:
        self.windows[note.id] = channel
        logger.info("Detached timer window opened for %s", note.id)

    def close(self, note_id: str) -> None:
        if self.windows.pop(note_id, None) is not None:
            logger.info("Detached timer window closed for %s", note_id)

"""Timer subsystem: per-note countdown state machine and detached surfaces."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from functools import partial
from typing import TYPE_CHECKING

from .collaborators import Notification
from .notes import Note, NoteType, TimerPayload, TimerType, display_title, require_type

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .collaborators import Notifier, SoundPlayer, TimerWindowHost
    from .scheduling import ScheduledHandle, Scheduler
    from .workspace import WorkspaceStore

logger = logging.getLogger(__name__)

TICK_SECONDS = 1.0
CUSTOM_MINUTES_MIN = 1
CUSTOM_MINUTES_MAX = 999
NOTIFICATION_TITLE = "StickyBoard Timer"

TIMER_PRESETS: dict[TimerType, int] = {
    TimerType.POMODORO: 25 * 60,
    TimerType.SHORT_BREAK: 5 * 60,
    TimerType.LONG_BREAK: 15 * 60,
}

COMPLETION_MESSAGES: dict[TimerType, str] = {
    TimerType.POMODORO: "Pomodoro session completed! Time for a break.",
    TimerType.SHORT_BREAK: "Short break over! Ready to focus again?",
    TimerType.LONG_BREAK: "Long break finished! Feeling refreshed?",
}
DEFAULT_COMPLETION_MESSAGE = "Timer completed!"


class TimerState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    EXPIRED = "expired"


def _payload(note: Note) -> TimerPayload:
    require_type(note, NoteType.TIMER)
    assert isinstance(note.payload, TimerPayload)  # noqa: S101
    return note.payload


def timer_state(note: Note) -> TimerState:
    """Derive the state machine position from the persisted timer fields."""
    payload = _payload(note)
    if payload.timer_running:
        return TimerState.RUNNING
    if payload.timer_remaining == 0:
        return TimerState.EXPIRED
    if payload.timer_remaining == payload.timer_duration:
        return TimerState.IDLE
    return TimerState.PAUSED


def format_remaining(seconds: int) -> str:
    """Render seconds as ``MM:SS``."""
    minutes, secs = divmod(max(seconds, 0), 60)
    return f"{minutes:02d}:{secs:02d}"


# --- detached surface messages -----------------------------------------------


@dataclass(frozen=True)
class StatePush:
    """Snapshot sent to a detached surface after every state change."""

    note_id: str
    title: str
    timer_type: TimerType
    timer_duration: int
    timer_remaining: int
    timer_running: bool

    @classmethod
    def from_note(cls, note: Note) -> StatePush:
        payload = _payload(note)
        return cls(
            note_id=note.id,
            title=display_title(note),
            timer_type=payload.timer_type,
            timer_duration=payload.timer_duration,
            timer_remaining=payload.timer_remaining,
            timer_running=payload.timer_running,
        )


@dataclass(frozen=True)
class ToggleRequest:
    note_id: str


@dataclass(frozen=True)
class CompleteRequest:
    note_id: str


@dataclass(frozen=True)
class ReturnRequest:
    note_id: str


TimerRequest = ToggleRequest | CompleteRequest | ReturnRequest


class TimerChannel:
    """One-to-one link between a timer note and its detached surface.

    State flows out through ``push``; the surface sends requests back with
    ``send``. The surface only mirrors state and never owns the countdown.
    """

    def __init__(self, note_id: str, handler: Callable[[TimerRequest], None]) -> None:
        self.note_id = note_id
        self._handler = handler
        self._listeners: list[Callable[[StatePush], None]] = []
        self.last_state: StatePush | None = None
        self.closed = False

    def subscribe(self, listener: Callable[[StatePush], None]) -> None:
        """Register a surface-side listener; it receives the latest state at once."""
        self._listeners.append(listener)
        if self.last_state is not None:
            listener(self.last_state)

    def push(self, state: StatePush) -> None:
        if self.closed:
            return
        self.last_state = state
        for listener in list(self._listeners):
            listener(state)

    def send(self, request: TimerRequest) -> None:
        """Deliver a surface request to the owning controller.

        Raises:
            ValueError: If the request names a different note.

        """
        if request.note_id != self.note_id:
            msg = f"Channel for {self.note_id} cannot carry requests for {request.note_id}"
            raise ValueError(msg)
        if self.closed:
            logger.debug("Dropping %r on closed channel", request)
            return
        self._handler(request)

    def close(self) -> None:
        self.closed = True
        self._listeners.clear()


class TimerController:
    """Owns every countdown driver and detached timer surface.

    Explicit operations (``start``, ``pause``, ...) only change memory; the
    caller persists. Ticks and surface requests arrive on their own and are
    persisted here through ``save``.
    """

    def __init__(  # noqa: PLR0913
        self,
        store: WorkspaceStore,
        scheduler: Scheduler,
        notifier: Notifier,
        sound: SoundPlayer,
        window_host: TimerWindowHost,
        *,
        save: Callable[[], object],
        focus: Callable[[str], None] | None = None,
    ) -> None:
        self.store = store
        self.scheduler = scheduler
        self.notifier = notifier
        self.sound = sound
        self.window_host = window_host
        self._save = save
        self._focus = focus
        self._drivers: dict[str, ScheduledHandle] = {}
        self._channels: dict[str, TimerChannel] = {}

    def _timer(self, note_id: str) -> tuple[Note, TimerPayload]:
        note = self.store.get_note(note_id)
        return note, _payload(note)

    @property
    def active_drivers(self) -> set[str]:
        return set(self._drivers)

    # --- drivers -------------------------------------------------------------

    def _ensure_driver(self, note_id: str) -> None:
        handle = self._drivers.get(note_id)
        if handle is not None and not handle.cancelled:
            return
        self._drivers[note_id] = self.scheduler.every(
            TICK_SECONDS,
            partial(self.tick, note_id),
        )

    def stop_driver(self, note_id: str) -> bool:
        """Cancel the tick source of ``note_id``; ``False`` if it had none."""
        handle = self._drivers.pop(note_id, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def stop_all(self) -> None:
        for note_id in list(self._drivers):
            self.stop_driver(note_id)

    def resume_running(self, notes: Iterable[Note]) -> list[str]:
        """Restart drivers for timers persisted as running."""
        resumed = []
        for note in notes:
            if isinstance(note.payload, TimerPayload) and note.payload.timer_running:
                self._ensure_driver(note.id)
                resumed.append(note.id)
        if resumed:
            logger.info("Resumed %d running timers", len(resumed))
        return resumed

    # --- transitions ---------------------------------------------------------

    def start(self, note_id: str) -> bool:
        """Idle/Paused -> Running. Starting a running timer keeps its one driver.

        Returns:
            ``False`` if the timer is expired and must be reset first.

        """
        note, payload = self._timer(note_id)
        if payload.timer_remaining == 0:
            logger.debug("Timer %s is expired; reset before starting", note_id)
            return False
        payload.timer_running = True
        self._ensure_driver(note_id)
        self._push(note)
        return True

    def pause(self, note_id: str) -> bool:
        note, payload = self._timer(note_id)
        self.stop_driver(note_id)
        if not payload.timer_running:
            return False
        payload.timer_running = False
        self._push(note)
        return True

    def toggle(self, note_id: str) -> bool:
        """Start or pause; return whether the timer is running afterwards."""
        _, payload = self._timer(note_id)
        if payload.timer_running:
            self.pause(note_id)
            return False
        return self.start(note_id)

    def reset(self, note_id: str) -> None:
        """Any state -> Idle."""
        note, payload = self._timer(note_id)
        self.stop_driver(note_id)
        payload.timer_running = False
        payload.timer_remaining = payload.timer_duration
        self._push(note)

    def tick(self, note_id: str) -> None:
        """Advance a running timer by one second.

        A tick for a note that is gone, archived or no longer running cancels
        its own driver.
        """
        note = next((n for n in self.store.notes if n.id == note_id), None)
        if (
            note is None
            or not isinstance(note.payload, TimerPayload)
            or not note.payload.timer_running
        ):
            self.stop_driver(note_id)
            return
        payload = note.payload
        remaining = payload.timer_remaining - 1
        if remaining <= 0:
            payload.timer_running = False
            payload.timer_remaining = 0
            self.stop_driver(note_id)
            self._push(note)
            self._complete(note)
        else:
            payload.timer_remaining = remaining
            self._push(note)
        self._save()

    def _set_duration(self, note: Note, timer_type: TimerType, seconds: int) -> None:
        payload = _payload(note)
        self.stop_driver(note.id)
        payload.timer_running = False
        payload.timer_type = timer_type
        payload.timer_duration = seconds
        payload.timer_remaining = seconds
        self._push(note)

    def set_preset(self, note_id: str, timer_type: TimerType | str) -> int:
        """Switch to a preset duration and stop; return the new duration.

        Raises:
            ValueError: If ``timer_type`` is not one of the presets.

        """
        kind = TimerType(timer_type)
        if kind not in TIMER_PRESETS:
            msg = f"{kind} is not a preset; use a custom duration"
            raise ValueError(msg)
        note, _ = self._timer(note_id)
        self._set_duration(note, kind, TIMER_PRESETS[kind])
        return TIMER_PRESETS[kind]

    def set_custom(self, note_id: str, minutes: int | str) -> int:
        """Set a custom duration in minutes, clamped to 1..999."""
        try:
            value = int(minutes)
        except (TypeError, ValueError):
            value = CUSTOM_MINUTES_MIN
        value = max(CUSTOM_MINUTES_MIN, min(CUSTOM_MINUTES_MAX, value))
        note, _ = self._timer(note_id)
        self._set_duration(note, TimerType.CUSTOM, value * 60)
        return value * 60

    def retire(self, note_id: str) -> None:
        """Stop and re-attach a timer that is leaving the active collection."""
        self.stop_driver(note_id)
        note = self.store.resolve(note_id)
        if note is None or not isinstance(note.payload, TimerPayload):
            return
        self.reattach(note_id)
        note.payload.timer_running = False

    # --- completion ----------------------------------------------------------

    def _complete(self, note: Note) -> None:
        payload = _payload(note)
        message = COMPLETION_MESSAGES.get(payload.timer_type, DEFAULT_COMPLETION_MESSAGE)
        logger.info("Timer %s completed", note.id)
        try:
            self.sound.play_timer_cue()
        except Exception:
            logger.exception("Could not play timer sound")
        notification = Notification(
            title=NOTIFICATION_TITLE,
            body=message,
            tag=f"timer-{note.id}",
            note_id=note.id,
            on_click=partial(self._request_focus, note.id),
        )
        try:
            self.notifier.notify(notification)
        except Exception:
            logger.exception("Could not deliver timer notification for %s", note.id)

    def _request_focus(self, note_id: str) -> None:
        if self._focus is not None:
            self._focus(note_id)

    # --- detach / reattach ---------------------------------------------------

    def _push(self, note: Note) -> None:
        channel = self._channels.get(note.id)
        if channel is not None:
            channel.push(StatePush.from_note(note))

    def detach(self, note_id: str) -> bool:
        """Mirror a running timer in its own always-on-top surface.

        Returns:
            ``False`` if the timer is not running, already detached, or the
            surface could not be opened.

        """
        note, payload = self._timer(note_id)
        if not payload.timer_running or payload.detached:
            return False
        channel = TimerChannel(note_id, self.handle_message)
        try:
            self.window_host.open(note, channel)
        except Exception:
            logger.exception("Could not open detached timer window for %s", note_id)
            return False
        self._channels[note_id] = channel
        payload.detached = True
        self._push(note)
        return True

    def reattach(self, note_id: str) -> bool:
        """Return a detached timer to the overlay.

        Only the first call after ``detach`` has an effect, so a closing
        surface and the overlay reappearing cannot both re-apply state.
        """
        channel = self._channels.pop(note_id, None)
        if channel is not None:
            channel.close()
        note = self.store.resolve(note_id)
        if note is None or not isinstance(note.payload, TimerPayload):
            return False
        if not note.payload.detached:
            return False
        note.payload.detached = False
        try:
            self.window_host.close(note_id)
        except Exception:
            logger.exception("Could not close detached timer window for %s", note_id)
        return True

    def reattach_all(self) -> list[str]:
        """Re-attach every detached timer (the overlay became visible)."""
        reattached = [
            note.id
            for note in list(self.store.all_notes())
            if isinstance(note.payload, TimerPayload)
            and note.payload.detached
            and self.reattach(note.id)
        ]
        for note_id in list(self._channels):
            self._close_surface(note_id)
        return reattached

    def detach_running(self) -> list[str]:
        """Detach every running, attached timer (the overlay was hidden)."""
        return [
            note.id
            for note in list(self.store.notes)
            if isinstance(note.payload, TimerPayload)
            and note.payload.timer_running
            and not note.payload.detached
            and self.detach(note.id)
        ]

    def _close_surface(self, note_id: str) -> None:
        channel = self._channels.pop(note_id, None)
        if channel is None:
            return
        channel.close()
        try:
            self.window_host.close(note_id)
        except Exception:
            logger.exception("Could not close detached timer window for %s", note_id)

    def handle_message(self, request: TimerRequest) -> None:
        """Apply a request sent by a detached surface and persist."""
        note_id = request.note_id
        note = next((n for n in self.store.notes if n.id == note_id), None)
        if note is None or note.type is not NoteType.TIMER:
            logger.debug("Ignoring %r: no such active timer", request)
            self._close_surface(note_id)
            return
        match request:
            case ToggleRequest():
                self.toggle(note_id)
            case CompleteRequest():
                payload = _payload(note)
                self.stop_driver(note_id)
                payload.timer_running = False
                payload.timer_remaining = 0
                self.reattach(note_id)
                self._complete(note)
            case ReturnRequest():
                self.reattach(note_id)
                self._request_focus(note_id)
        self._save()

    def on_workspace_switch(self, previous: str, current: str) -> list[str]:
        """Hand the countdowns over from ``previous`` to ``current``.

        Drivers and surfaces of the outgoing workspace stop; its timers keep
        ``timerRunning`` and resume when it becomes current again.
        """
        self.stop_all()
        outgoing = self.store.workspace_data(previous)
        for note in [*outgoing.notes, *outgoing.archived_notes]:
            if isinstance(note.payload, TimerPayload) and note.payload.detached:
                note.payload.detached = False
        for note_id in list(self._channels):
            self._close_surface(note_id)
        logger.debug("Timers handed over from %s to %s", previous, current)
        return self.resume_running(self.store.running_timers())

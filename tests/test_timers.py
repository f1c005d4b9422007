"""Tests for the timer state machine, completion and detached surfaces."""

import fsspec
import pytest

from stickyboard.collaborators import (
    HeadlessTimerWindowHost,
    LoggingNotifier,
    SilentSoundPlayer,
)
from stickyboard.notes import Note, TimerType, create_note
from stickyboard.scheduling import Scheduler
from stickyboard.timers import (
    CompleteRequest,
    ReturnRequest,
    StatePush,
    TimerChannel,
    TimerController,
    TimerState,
    ToggleRequest,
    format_remaining,
    timer_state,
)
from stickyboard.utils import fs_join
from stickyboard.workspace import WorkspaceStore


class Harness:
    def __init__(self, store: WorkspaceStore, scheduler: Scheduler) -> None:
        self.store = store
        self.scheduler = scheduler
        self.notifier = LoggingNotifier()
        self.sound = SilentSoundPlayer()
        self.host = HeadlessTimerWindowHost()
        self.saves = 0
        self.focused: list[str] = []
        self.timers = TimerController(
            store,
            self.scheduler,
            self.notifier,
            self.sound,
            self.host,
            save=self._save,
            focus=self.focused.append,
        )

    def _save(self) -> bool:
        self.saves += 1
        return self.store.save()

    def timer(self, note_id: str = "t1", seconds: int | None = None) -> Note:
        note = self.store.add(create_note("timer", note_id=note_id))
        if seconds is not None:
            note.payload.timer_remaining = seconds
        return note


@pytest.fixture
def harness(
    fs_impl: tuple[fsspec.AbstractFileSystem, str],
    scheduler: Scheduler,
) -> Harness:
    fs, root = fs_impl
    store = WorkspaceStore(fs_join(root, "data"), fs=fs)
    store.load()
    return Harness(store, scheduler)


def test_state_machine(harness: Harness) -> None:
    note = harness.timer()
    assert timer_state(note) is TimerState.IDLE

    assert harness.timers.start("t1") is True
    assert timer_state(note) is TimerState.RUNNING
    harness.scheduler.fire(3)
    assert note.payload.timer_remaining == 1497

    assert harness.timers.pause("t1") is True
    assert timer_state(note) is TimerState.PAUSED
    harness.scheduler.fire(3)
    assert note.payload.timer_remaining == 1497

    harness.timers.reset("t1")
    assert timer_state(note) is TimerState.IDLE
    assert note.payload.timer_remaining == 1500


def test_starting_twice_keeps_one_driver(harness: Harness) -> None:
    note = harness.timer()
    harness.timers.start("t1")
    harness.timers.start("t1")

    assert len(harness.scheduler.live) == 1
    harness.scheduler.fire()
    assert note.payload.timer_remaining == 1499


def test_completion_notifies_once(harness: Harness) -> None:
    note = harness.timer(seconds=2)
    harness.timers.start("t1")
    harness.scheduler.fire(5)

    assert timer_state(note) is TimerState.EXPIRED
    assert note.payload.timer_running is False
    assert harness.sound.plays == 1
    assert len(harness.notifier.sent) == 1
    sent = harness.notifier.sent[0]
    assert sent.tag == "timer-t1"
    assert sent.body == "Pomodoro session completed! Time for a break."
    assert harness.scheduler.live == []

    sent.on_click()
    assert harness.focused == ["t1"]


def test_expired_timer_does_not_start(harness: Harness) -> None:
    harness.timer(seconds=0)
    assert harness.timers.start("t1") is False
    assert harness.scheduler.live == []


def test_tick_persists(harness: Harness) -> None:
    harness.timer()
    harness.timers.start("t1")
    harness.scheduler.fire(2)
    assert harness.saves == 2


def test_tick_for_removed_note_cancels_driver(harness: Harness) -> None:
    harness.timer()
    harness.timers.start("t1")
    harness.store.remove("t1")
    harness.scheduler.fire()
    assert harness.timers.active_drivers == set()


def test_presets_and_custom(harness: Harness) -> None:
    note = harness.timer()
    harness.timers.start("t1")

    assert harness.timers.set_preset("t1", TimerType.SHORT_BREAK) == 300
    assert note.payload.timer_running is False
    assert note.payload.timer_remaining == 300
    assert harness.timers.active_drivers == set()

    assert harness.timers.set_custom("t1", 5000) == 999 * 60
    assert harness.timers.set_custom("t1", "abc") == 60
    assert note.payload.timer_type is TimerType.CUSTOM

    with pytest.raises(ValueError, match="not a preset"):
        harness.timers.set_preset("t1", TimerType.CUSTOM)


def test_format_remaining() -> None:
    assert format_remaining(1500) == "25:00"
    assert format_remaining(61) == "01:01"
    assert format_remaining(-4) == "00:00"


def test_detach_requires_running(harness: Harness) -> None:
    harness.timer()
    assert harness.timers.detach("t1") is False

    harness.timers.start("t1")
    assert harness.timers.detach("t1") is True
    assert harness.timers.detach("t1") is False
    assert "t1" in harness.host.windows


def test_detached_surface_mirrors_state(harness: Harness) -> None:
    note = harness.timer()
    harness.timers.start("t1")
    harness.timers.detach("t1")
    channel = harness.host.windows["t1"]

    pushes: list[StatePush] = []
    channel.subscribe(pushes.append)
    assert pushes[-1].timer_running is True

    harness.scheduler.fire()
    assert pushes[-1].timer_remaining == note.payload.timer_remaining == 1499

    channel.send(ToggleRequest("t1"))
    assert note.payload.timer_running is False
    assert pushes[-1].timer_running is False


def test_reattach_happens_once(harness: Harness) -> None:
    note = harness.timer()
    harness.timers.start("t1")
    harness.timers.detach("t1")
    channel = harness.host.windows["t1"]

    assert harness.timers.reattach("t1") is True
    assert harness.timers.reattach("t1") is False
    assert note.payload.detached is False
    assert channel.closed is True
    assert "t1" not in harness.host.windows

    channel.send(ReturnRequest("t1"))
    assert harness.focused == []


def test_complete_request_from_surface(harness: Harness) -> None:
    note = harness.timer()
    harness.timers.start("t1")
    harness.timers.detach("t1")
    harness.host.windows["t1"].send(CompleteRequest("t1"))

    assert note.payload.timer_remaining == 0
    assert note.payload.timer_running is False
    assert note.payload.detached is False
    assert len(harness.notifier.sent) == 1
    assert harness.timers.active_drivers == set()


def test_return_request_focuses_note(harness: Harness) -> None:
    harness.timer()
    harness.timers.start("t1")
    harness.timers.detach("t1")
    harness.host.windows["t1"].send(ReturnRequest("t1"))

    assert harness.focused == ["t1"]
    assert harness.store.get_note("t1").payload.detached is False


def test_channel_rejects_foreign_requests() -> None:
    handled: list[object] = []
    channel = TimerChannel("t1", handled.append)
    with pytest.raises(ValueError, match="cannot carry"):
        channel.send(ToggleRequest("t2"))
    channel.close()
    channel.send(ToggleRequest("t1"))
    assert handled == []


def test_detach_and_reattach_running(harness: Harness) -> None:
    harness.timer("t1")
    harness.timer("t2")
    harness.timers.start("t1")

    assert harness.timers.detach_running() == ["t1"]
    assert harness.timers.reattach_all() == ["t1"]
    assert harness.host.windows == {}


def test_retire_stops_and_reattaches(harness: Harness) -> None:
    note = harness.timer()
    harness.timers.start("t1")
    harness.timers.detach("t1")
    harness.timers.retire("t1")

    assert note.payload.timer_running is False
    assert note.payload.detached is False
    assert harness.timers.active_drivers == set()


def test_workspace_switch_hands_over_timers(harness: Harness) -> None:
    home_timer = harness.timer("home-t")
    harness.timers.start("home-t")
    harness.timers.detach("home-t")
    harness.store.save()

    harness.store.on_switch(harness.timers.on_workspace_switch)
    harness.store.switch_workspace("work")

    assert harness.timers.active_drivers == set()
    assert home_timer.payload.timer_running is True
    assert home_timer.payload.detached is False
    assert harness.host.windows == {}

    harness.store.switch_workspace("home")
    assert harness.timers.active_drivers == {"home-t"}


def test_failing_sound_does_not_block_notification(harness: Harness) -> None:
    def boom() -> None:
        msg = "no audio device"
        raise RuntimeError(msg)

    harness.sound.play_timer_cue = boom  # type: ignore[method-assign]
    harness.timer(seconds=1)
    harness.timers.start("t1")
    harness.scheduler.fire()
    assert len(harness.notifier.sent) == 1

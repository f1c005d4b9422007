"""Test configuration and fixtures."""

import uuid
from collections.abc import Callable, Generator
from datetime import datetime
from pathlib import Path

import fsspec
import pytest

from stickyboard.board import Board
from stickyboard.collaborators import (
    HeadlessSurface,
    HeadlessTimerWindowHost,
    LoggingNotifier,
    SilentSoundPlayer,
)
from stickyboard.config import AppConfig
from stickyboard.utils import fs_join


@pytest.fixture(params=["file", "memory"])
def fs_impl(
    request: pytest.FixtureRequest,
    tmp_path: Path,
) -> Generator[tuple[fsspec.AbstractFileSystem, str]]:
    """Fixture to provide different fsspec filesystem implementations."""
    protocol = request.param
    if protocol == "file":
        fs = fsspec.filesystem("file")
        root = str(tmp_path / "test_root")
        yield fs, root
        # Cleanup handled by tmp_path
    else:
        fs = fsspec.filesystem("memory")
        root = f"/test_root_{uuid.uuid4().hex}"
        yield fs, root
        if fs.exists(root):
            fs.rm(root, recursive=True)


class ManualHandle:
    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self.interval = interval
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose periodic tasks only run when the test says so."""

    def __init__(self) -> None:
        self.handles: list[ManualHandle] = []

    def every(self, interval: float, callback: Callable[[], None]) -> ManualHandle:
        handle = ManualHandle(interval, callback)
        self.handles.append(handle)
        return handle

    @property
    def live(self) -> list[ManualHandle]:
        return [h for h in self.handles if not h.cancelled]

    def fire(self, times: int = 1, interval: float | None = None) -> None:
        """Run each live task ``times`` times, optionally only one interval."""
        for _ in range(times):
            for handle in self.live:
                if interval is None or handle.interval == interval:
                    handle.callback()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def notifier() -> LoggingNotifier:
    return LoggingNotifier()


@pytest.fixture
def surface() -> HeadlessSurface:
    return HeadlessSurface()


@pytest.fixture
def window_host() -> HeadlessTimerWindowHost:
    return HeadlessTimerWindowHost()


@pytest.fixture
def clock_value() -> dict[str, datetime]:
    """Mutable holder for the local time seen by the board."""
    return {"now": datetime(2026, 3, 1, 9, 0)}


@pytest.fixture
def make_board(  # noqa: PLR0913
    fs_impl: tuple[fsspec.AbstractFileSystem, str],
    scheduler: ManualScheduler,
    notifier: LoggingNotifier,
    surface: HeadlessSurface,
    window_host: HeadlessTimerWindowHost,
    clock_value: dict[str, datetime],
) -> Callable[..., Board]:
    """Factory building boards over the same data directory."""
    fs, root = fs_impl

    def _make(**overrides: object) -> Board:
        config = AppConfig(data_path=fs_join(root, "data"), **overrides)
        board = Board(
            config,
            config_path=fs_join(root, "config.json"),
            fs=fs,
            scheduler=scheduler,
            notifier=notifier,
            sound=SilentSoundPlayer(),
            surface=surface,
            window_host=window_host,
            clock=lambda: clock_value["now"],
        )
        return board.open(background=False)

    return _make


@pytest.fixture
def board(make_board: Callable[..., Board]) -> Board:
    return make_board()

"""Cancellable periodic tasks driving timer ticks and reminder scans."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)


class ScheduledHandle(Protocol):
    """Owned handle of a periodic task; ``cancel`` stops it for good."""

    def cancel(self) -> None: ...

    @property
    def cancelled(self) -> bool: ...


class Scheduler(Protocol):
    """Runs ``callback`` every ``interval`` seconds until its handle is cancelled."""

    def every(self, interval: float, callback: Callable[[], None]) -> ScheduledHandle: ...


class _LoopHandle:
    """Re-arms ``loop.call_later`` after each run until cancelled."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        interval: float,
        callback: Callable[[], None],
    ) -> None:
        self._loop = loop
        self._interval = interval
        self._callback = callback
        self._cancelled = False
        self._timer = loop.call_later(interval, self._run)

    def _run(self) -> None:
        if self._cancelled:
            return
        try:
            self._callback()
        except Exception:
            logger.exception("Scheduled callback %r failed", self._callback)
        if not self._cancelled:
            self._timer = self._loop.call_later(self._interval, self._run)

    def cancel(self) -> None:
        self._cancelled = True
        self._timer.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop.

    All callbacks run on the loop's thread, so note collections are only
    ever touched from one logical thread.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def every(self, interval: float, callback: Callable[[], None]) -> ScheduledHandle:
        """Schedule ``callback`` every ``interval`` seconds.

        Raises:
            ValueError: If ``interval`` is not positive.
            RuntimeError: If no loop was given and none is running.

        """
        if interval <= 0:
            msg = f"Interval must be positive, got {interval}"
            raise ValueError(msg)
        return _LoopHandle(self.loop, interval, callback)


class _InertHandle:
    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class NullScheduler:
    """Scheduler for one-shot processes such as the CLI.

    Nothing ever runs. A timer started here stays marked running on disk and
    its countdown resumes in the next long-lived process.
    """

    def every(self, interval: float, callback: Callable[[], None]) -> ScheduledHandle:  # noqa: ARG002
        return _InertHandle()

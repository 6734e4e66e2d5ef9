"""Safe Scroll - Task Scheduler
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Delayed callbacks on the asyncio event loop, which plays the role of the
single UI-affine context: overlay removal and auto-scroll always run there.
"""

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ScheduledCall:
    """Cancellation token for one delayed callback."""

    def __init__(self, scheduler: "TaskScheduler", delay: float):
        self._scheduler = scheduler
        self._handle: Optional[asyncio.TimerHandle] = None
        self.delay = delay
        self.fired = False
        self.cancelled = False

    @property
    def pending(self) -> bool:
        return not (self.fired or self.cancelled)

    def cancel(self) -> bool:
        """Cancel if still pending. Returns True if this call prevented the callback."""
        if not self.pending:
            return False
        self.cancelled = True
        if self._handle is not None:
            self._handle.cancel()
        self._scheduler._forget(self)
        return True


class TaskScheduler:
    """
    Schedules callbacks on the running event loop.

    The loop is resolved lazily on first use so the scheduler can be built
    before the server starts. After close() nothing new is scheduled and
    nothing pending fires.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._pending: set[ScheduledCall] = set()
        self._closed = False

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None or self._loop.is_closed():
            self._loop = asyncio.get_running_loop()
        return self._loop

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def call_later(self, delay: float, fn: Callable, *args) -> ScheduledCall:
        """Run fn(*args) on the loop after `delay` seconds."""
        if self._closed:
            raise RuntimeError("Scheduler is closed")

        call = ScheduledCall(self, delay)

        def _run():
            if not call.pending or self._closed:
                return
            call.fired = True
            self._forget(call)
            try:
                fn(*args)
            except Exception as e:
                logger.error(f"Scheduled callback failed: {e}")

        call._handle = self.loop.call_later(delay, _run)
        self._pending.add(call)
        return call

    def cancel_all(self) -> int:
        """Cancel every pending call. Returns how many were cancelled."""
        cancelled = 0
        for call in list(self._pending):
            if call.cancel():
                cancelled += 1
        return cancelled

    def close(self) -> int:
        cancelled = self.cancel_all()
        self._closed = True
        if self._pending:
            raise RuntimeError(f"{len(self._pending)} scheduled call(s) could not be cancelled")
        return cancelled

    def _forget(self, call: ScheduledCall) -> None:
        self._pending.discard(call)

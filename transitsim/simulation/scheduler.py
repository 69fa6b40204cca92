"""
Frame schedulers driving per-agent tick loops.

A scheduler repeatedly invokes every registered callback once per frame with
the current time in milliseconds. Registrations are cancelled through the
handle returned by ``schedule``; a cancelled callback is never invoked again,
including later in the frame that is currently being dispatched.

- ``AsyncioFrameScheduler`` runs one driver task on the event loop.
- ``ManualFrameScheduler`` advances synthetic time on demand, for tests.
"""

import asyncio
import itertools
import logging
from typing import Callable, Dict, Optional, Protocol

logger = logging.getLogger(__name__)

FrameCallback = Callable[[float], None]


class FrameHandle:
    """Cancellation handle for one scheduled callback."""

    def __init__(self, scheduler: "BaseFrameScheduler", key: int):
        self._scheduler = scheduler
        self._key = key

    @property
    def active(self) -> bool:
        return self._key in self._scheduler._callbacks

    def cancel(self) -> None:
        self._scheduler._unregister(self._key)


class FrameScheduler(Protocol):
    """What motion models need from a frame source."""

    def now(self) -> float:
        ...

    def schedule(self, callback: FrameCallback) -> FrameHandle:
        ...


class BaseFrameScheduler:
    """Registration bookkeeping shared by the concrete schedulers."""

    def __init__(self):
        self._callbacks: Dict[int, FrameCallback] = {}
        self._keys = itertools.count()

    def now(self) -> float:
        raise NotImplementedError

    @property
    def active_count(self) -> int:
        return len(self._callbacks)

    def schedule(self, callback: FrameCallback) -> FrameHandle:
        key = next(self._keys)
        self._callbacks[key] = callback
        self._on_registered()
        return FrameHandle(self, key)

    def _on_registered(self) -> None:
        pass

    def _unregister(self, key: int) -> None:
        self._callbacks.pop(key, None)

    def _dispatch(self, now_ms: float) -> None:
        """Run one frame: call each registered callback once."""
        for key in list(self._callbacks):
            callback = self._callbacks.get(key)
            if callback is None:
                continue
            try:
                callback(now_ms)
            except Exception as e:
                logger.error(f"Frame callback failed, unregistering it: {e}", exc_info=True)
                self._unregister(key)

    def clear(self) -> None:
        self._callbacks.clear()


class ManualFrameScheduler(BaseFrameScheduler):
    """
    Deterministic scheduler with synthetic time.

    Usage:
        scheduler = ManualFrameScheduler()
        motion.start(scheduler)
        scheduler.advance(16.0)  # one frame, 16ms later
    """

    def __init__(self, start_ms: float = 0.0):
        super().__init__()
        self._now_ms = start_ms

    def now(self) -> float:
        return self._now_ms

    def advance(self, ms: float, frames: int = 1) -> None:
        """Advance time by ``ms`` per frame and dispatch ``frames`` frames."""
        for _ in range(frames):
            self._now_ms += ms
            self._dispatch(self._now_ms)


class AsyncioFrameScheduler(BaseFrameScheduler):
    """
    Event-loop scheduler ticking at a fixed frame rate.

    The driver task starts lazily on the first registration and idles out
    when nothing is registered.
    """

    def __init__(self, frame_rate_hz: float = 60.0):
        super().__init__()
        self.frame_interval = 1.0 / frame_rate_hz
        self._task: Optional[asyncio.Task] = None

    def now(self) -> float:
        return asyncio.get_running_loop().time() * 1000.0

    def _on_registered(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while self._callbacks:
            await asyncio.sleep(self.frame_interval)
            self._dispatch(self.now())

    async def aclose(self) -> None:
        """Unregister everything and stop the driver task."""
        self.clear()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

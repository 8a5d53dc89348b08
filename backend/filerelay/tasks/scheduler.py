import asyncio
import logging
from typing import Any, Awaitable, Callable

from filerelay.core.config import get_settings

logger = logging.getLogger(__name__)


StartupHook = Callable[[], Awaitable[None]]
CoroFactory = Callable[[], Awaitable[None]]


class ScheduledCall:
    """Cancellable one-shot timer returned by :meth:`ExpiryScheduler.call_later`."""

    def __init__(self, scheduler: "ExpiryScheduler") -> None:
        self._scheduler = scheduler
        self._handle: asyncio.TimerHandle | None = None

    @property
    def cancelled(self) -> bool:
        return self._handle is None or self._handle.cancelled()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._scheduler._timers.discard(self)


class ExpiryScheduler:
    """Owns expiry timers and background cleanup tasks within the FastAPI process."""

    def __init__(self, max_parallel: int | None = None) -> None:
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: set[asyncio.Task] = set()
        self._timers: set[ScheduledCall] = set()
        self._running = False
        self._max_parallel = max_parallel
        self._semaphore: asyncio.Semaphore | None = None
        self._startup_hook: StartupHook | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    def set_startup_hook(self, hook: StartupHook) -> None:
        self._startup_hook = hook

    async def start(self) -> None:
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        max_parallel = self._max_parallel or get_settings().max_parallel_cleanups
        self._semaphore = asyncio.Semaphore(max_parallel)
        self._running = True
        if self._startup_hook:
            await self._startup_hook()

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        for timer in list(self._timers):
            timer.cancel()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self._semaphore = None
        self._loop = None

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ScheduledCall:
        if not self._running or self._loop is None:
            raise RuntimeError("ExpiryScheduler not running")

        delay = max(0.0, delay)
        scheduled = ScheduledCall(self)

        def fire() -> None:
            self._timers.discard(scheduled)
            try:
                callback(*args)
            except Exception:  # pragma: no cover - logged for observability
                logger.exception("Unhandled error in expiry timer")

        scheduled._handle = self._loop.call_later(delay, fire)
        self._timers.add(scheduled)
        return scheduled

    def submit(self, coro_factory: CoroFactory) -> None:
        if not self._running or self._loop is None or self._semaphore is None:
            raise RuntimeError("ExpiryScheduler not running")

        async def wrapper() -> None:
            async with self._semaphore:
                try:
                    await coro_factory()
                except asyncio.CancelledError:
                    raise
                except Exception:  # pragma: no cover - logged for observability
                    logger.exception("Unhandled error in cleanup task")

        task = self._loop.create_task(wrapper())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait until every submitted cleanup task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

"""Scheduler owning every periodic and one-shot timer."""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from .errors import ErrorSeverity, IErrorHandler
from .logging_config import get_logger

logger = get_logger(__name__)


TickFn = Callable[[], Awaitable[None]]


class IScheduler(Protocol):
    """Owner of all timers. Each scheduled task has its own stop token."""

    def every(
        self, name: str, interval: float, fn: TickFn, run_immediately: bool = False
    ) -> None:
        """Run fn every interval seconds until cancelled."""
        ...

    def call_later(self, name: str, delay: float, fn: TickFn) -> None:
        """Run fn once after delay seconds unless cancelled first."""
        ...

    def cancel(self, name: str) -> None:
        """Stop a scheduled task."""
        ...


@dataclass
class _Scheduled:
    task: asyncio.Task
    stop: asyncio.Event


class Scheduler:
    """Runs timers as asyncio tasks; stop() ends every loop deterministically."""

    def __init__(self, error_handler: IErrorHandler | None = None):
        self._error_handler = error_handler
        self._tasks: dict[str, _Scheduled] = {}

    @property
    def names(self) -> list[str]:
        return list(self._tasks)

    def is_scheduled(self, name: str) -> bool:
        return name in self._tasks

    def every(
        self, name: str, interval: float, fn: TickFn, run_immediately: bool = False
    ) -> None:
        """Run fn every interval seconds until cancelled. Replaces a task of the same name."""
        self.cancel(name)
        stop = asyncio.Event()
        task = asyncio.create_task(
            self._run_periodic(name, interval, fn, stop, run_immediately),
            name=f"scheduler:{name}",
        )
        self._tasks[name] = _Scheduled(task, stop)

    def call_later(self, name: str, delay: float, fn: TickFn) -> None:
        """Run fn once after delay seconds unless cancelled first."""
        self.cancel(name)
        stop = asyncio.Event()
        task = asyncio.create_task(
            self._run_once(name, delay, fn, stop),
            name=f"scheduler:{name}",
        )
        self._tasks[name] = _Scheduled(task, stop)

    def cancel(self, name: str) -> None:
        """Stop a scheduled task. Safe to call from inside the task itself."""
        scheduled = self._tasks.pop(name, None)
        if not scheduled:
            return
        scheduled.stop.set()
        if scheduled.task is not asyncio.current_task():
            scheduled.task.cancel()

    async def stop(self) -> None:
        """Cancel every task and wait for all of them to finish."""
        scheduled = list(self._tasks.values())
        self._tasks.clear()
        for item in scheduled:
            item.stop.set()
            item.task.cancel()
        if scheduled:
            await asyncio.gather(*[s.task for s in scheduled], return_exceptions=True)
        logger.info("Scheduler stopped (%s tasks)", len(scheduled))

    async def _run_periodic(
        self,
        name: str,
        interval: float,
        fn: TickFn,
        stop: asyncio.Event,
        run_immediately: bool,
    ) -> None:
        if run_immediately:
            await self._tick(name, fn)
        while not stop.is_set():
            if await self._wait(stop, interval):
                break
            await self._tick(name, fn)

    async def _run_once(
        self, name: str, delay: float, fn: TickFn, stop: asyncio.Event
    ) -> None:
        if await self._wait(stop, delay):
            return
        # Drop the entry before running so fn may reschedule under the same name
        current = self._tasks.get(name)
        if current and current.stop is stop:
            del self._tasks[name]
        await self._tick(name, fn)

    @staticmethod
    async def _wait(stop: asyncio.Event, timeout: float) -> bool:
        """Sleep up to timeout. True if the stop token was set."""
        try:
            await asyncio.wait_for(stop.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def _tick(self, name: str, fn: TickFn) -> None:
        """Run one tick; a failing tick is logged and reported, never fatal."""
        try:
            await fn()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Scheduled task %s failed: %s", name, e, exc_info=True)
            if self._error_handler:
                try:
                    await self._error_handler.handle_error(
                        e, ErrorSeverity.MEDIUM, {"operation": name}
                    )
                except Exception as report_error:
                    logger.error("Failed to report error from %s: %s", name, report_error)

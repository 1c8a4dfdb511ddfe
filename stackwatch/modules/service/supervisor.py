"""
Fail-fast supervision of the daemon's long-running tasks.

All tasks share one asyncio.TaskGroup: the first one to raise cancels the
others, and run() re-raises that first error once every task has exited.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Tuple

TaskFactory = Callable[[], Awaitable[None]]


class _Stopped(Exception):
    """Raised inside the group to tear it down on external shutdown."""


class Supervisor:
    """Runs named tasks under one cancellation scope."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._tasks: List[Tuple[str, TaskFactory]] = []
        self._running = 0
        self._stop_task: Optional[asyncio.Task] = None

    def add(self, name: str, factory: TaskFactory) -> None:
        """Register a task; factory is called once run() starts."""
        self._tasks.append((name, factory))

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self._tasks]

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        """
        Run every registered task until one fails or stop is set.

        Args:
            stop: Optional event requesting a clean shutdown

        Raises:
            Exception: The first error raised by any task
        """
        self.logger.debug(f"Starting supervised tasks: {', '.join(self.names)}")
        try:
            async with asyncio.TaskGroup() as group:
                self._running = len(self._tasks)
                for name, factory in self._tasks:
                    group.create_task(self._guard(name, factory), name=name)
                if stop is not None and self._tasks:
                    self._stop_task = group.create_task(self._wait_for_stop(stop), name="stop")
        except ExceptionGroup as group_error:
            # TaskGroup records errors in completion order.
            errors = [e for e in group_error.exceptions if not isinstance(e, _Stopped)]
            if not errors:
                self.logger.info("Shutdown requested, all tasks stopped")
                return
            first = errors[0]
            self.logger.error(f"Supervised task failed, all tasks stopped: {first}")
            raise first from None

    async def _guard(self, name: str, factory: TaskFactory) -> None:
        try:
            await factory()
        except asyncio.CancelledError:
            self.logger.debug(f"Task {name} cancelled")
            raise
        except Exception as e:
            self.logger.error(f"Task {name} failed: {e}")
            raise
        self.logger.debug(f"Task {name} exited")
        self._running -= 1
        if self._running == 0 and self._stop_task is not None:
            # Nothing left to stop.
            self._stop_task.cancel()

    @staticmethod
    async def _wait_for_stop(stop: asyncio.Event) -> None:
        await stop.wait()
        raise _Stopped()

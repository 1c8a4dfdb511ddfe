import asyncio
import logging
from typing import Optional

from .models import ExecutionTask

DEFAULT_CAPACITY = 100


class TaskBus:
    def __init__(self, capacity: int = DEFAULT_CAPACITY, logger: Optional[logging.Logger] = None):
        """
        Initialize the task bus.

        Args:
            capacity: Maximum number of queued tasks before push blocks
            logger: Optional logger, defaults to the module logger
        """
        if capacity < 1:
            raise ValueError(f"Bus capacity must be positive, got {capacity}")

        self.capacity = capacity
        self._queue: asyncio.Queue[ExecutionTask] = asyncio.Queue(maxsize=capacity)
        self.logger = logger or logging.getLogger(__name__)

    async def push(self, task: ExecutionTask) -> None:
        """
        Append a task to the bus.

        Blocks while the bus is full. Cancelling the caller aborts the wait
        without enqueueing the task.
        """
        if self._queue.full():
            self.logger.warning(
                f"Task bus full ({self.capacity}), waiting to queue {task.target.name}"
            )
        await self._queue.put(task)
        self.logger.debug(f"Queued {task.kind.value} task for {task.target.name} @ {task.revision}")

    async def pop(self) -> ExecutionTask:
        """
        Remove and return the oldest task.

        Blocks while the bus is empty. Cancelling the caller aborts the wait
        without consuming a task.
        """
        task = await self._queue.get()
        self._queue.task_done()
        return task

    def qsize(self) -> int:
        """Number of tasks waiting to be consumed."""
        return self._queue.qsize()

    def empty(self) -> bool:
        return self._queue.empty()

    def full(self) -> bool:
        return self._queue.full()

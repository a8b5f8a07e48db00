import asyncio
from collections.abc import Coroutine
from typing import Any

import structlog

from transfer_service.infrastructure.metrics import BACKGROUND_TASK_FAILURES


logger = structlog.get_logger()


class TaskSupervisor:
    """
    Owns fire-and-forget work spawned after a commit.

    Keeps a strong reference to every task until it finishes, logs failures
    that escape the task body and lets shutdown wait for in-flight work.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.debug("background_task_spawned", task=name)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("background_task_cancelled", task=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            BACKGROUND_TASK_FAILURES.labels(task=task.get_name().split(":")[0]).inc()
            logger.error(
                "background_task_failed",
                task=task.get_name(),
                error=str(exc),
                exc_info=exc,
            )

    async def drain(self) -> None:
        """Wait until every spawned task, including ones spawned meanwhile, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

"""background continuations scheduled by action handlers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Optional

from .errors import ErrorReporter, SchedulingError, get_reporter

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """keeps references to running continuations and reports their failures.

    nothing here cancels a task: hiding or discarding the panel leaves
    in-flight work to finish or fail on its own.
    """

    def __init__(self, reporter: Optional[ErrorReporter] = None):
        self.reporter = reporter or get_reporter()
        self._tasks: set[asyncio.Task] = set()

    def can_spawn(self) -> bool:
        """true when called from inside a running event loop."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True

    def spawn(self, coro: Coroutine[Any, Any, Any], label: str = "background task") -> Optional[asyncio.Task]:
        """schedule coro on the running loop.

        without a running loop the coroutine is closed unstarted, the
        failure is reported under label and None is returned.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            self.reporter.report(SchedulingError(f"{label}: no running event loop"), label)
            return None
        task = loop.create_task(self._guard(coro, label))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guard(self, coro: Coroutine[Any, Any, Any], label: str) -> Any:
        try:
            return await coro
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.reporter.report(e, label)
            return None

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """wait until every task, including ones spawned meanwhile, is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

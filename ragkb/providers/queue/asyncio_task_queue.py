"""In-process task queue built on asyncio tasks.

Each dispatch becomes one ``asyncio.Task`` that sleeps for the requested
delay, then runs the handler under a concurrency semaphore and the
configured processing timeout.  A failed run is retried after the
handler's backoff delay while attempts remain and the retry window is
still open; otherwise the handler's ``on_failure`` hook runs once.

State lives in the document store, not here: a process restart loses
pending tasks but no pipeline state.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from ragkb.interfaces.task_queue import ITaskQueue, TaskHandler

logger = structlog.get_logger(logger_name=__name__)


class AsyncioTaskQueue(ITaskQueue):
    """Runs registered task handlers as background asyncio tasks.

    Parameters
    ----------
    max_concurrency:
        Upper bound on handlers running at the same time.
    processing_timeout:
        Seconds one handler run may take before it counts as failed.
    sleep:
        Coroutine used for dispatch and backoff delays.  Tests pass a
        no-op to run schedules instantly.
    clock:
        Monotonic clock used to measure the retry window.
    """

    def __init__(
        self,
        max_concurrency: int = 8,
        processing_timeout: float = 600.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._handlers: dict[str, TaskHandler] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._timeout = processing_timeout
        self._sleep = sleep
        self._clock = clock
        self._closed = False

    def register(self, handler: TaskHandler) -> None:
        if not handler.name:
            raise ValueError(f"{type(handler).__name__} has no task name")
        self._handlers[handler.name] = handler
        logger.debug("task_handler_registered", task=handler.name)

    async def dispatch(
        self, task_name: str, payload: dict[str, Any], delay: float = 0.0
    ) -> str:
        if self._closed:
            raise RuntimeError("task queue has been shut down")
        handler = self._handlers[task_name]
        task_id = uuid.uuid4().hex
        task = asyncio.create_task(
            self._run(task_id, handler, dict(payload), delay),
            name=f"{task_name}:{task_id}",
        )
        self._tasks[task_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(task_id, None))
        logger.debug("task_dispatched", task=task_name, task_id=task_id, delay=delay)
        return task_id

    async def join(self) -> None:
        # Handlers may dispatch follow-up tasks, so drain until nothing is left.
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        self._closed = True
        pending = list(self._tasks.values())
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        logger.info("task_queue_shutdown", cancelled=len(pending))

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _run(
        self, task_id: str, handler: TaskHandler, payload: dict[str, Any], delay: float
    ) -> None:
        first_dispatch = self._clock()
        if delay > 0:
            await self._sleep(delay)

        policy = handler.policy
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self._semaphore:
                    await asyncio.wait_for(handler.handle(payload), timeout=self._timeout)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                backoff = policy.delay_for(attempt, exc)
                elapsed = self._clock() - first_dispatch
                if (
                    handler.should_retry(exc)
                    and attempt < policy.max_attempts
                    and elapsed + backoff <= policy.retry_window
                ):
                    logger.warning(
                        "task_retry_scheduled",
                        task=handler.name,
                        task_id=task_id,
                        attempt=attempt,
                        delay=backoff,
                        error=str(exc),
                    )
                    await self._sleep(backoff)
                    continue

                logger.error(
                    "task_failed",
                    task=handler.name,
                    task_id=task_id,
                    attempts=attempt,
                    error=str(exc),
                )
                await self._notify_failure(handler, payload, exc)
                return

            logger.debug("task_completed", task=handler.name, task_id=task_id, attempts=attempt)
            return

    @staticmethod
    async def _notify_failure(
        handler: TaskHandler, payload: dict[str, Any], exc: BaseException
    ) -> None:
        try:
            await handler.on_failure(payload, exc)
        except Exception:  # noqa: BLE001
            logger.exception("task_failure_hook_failed", task=handler.name)

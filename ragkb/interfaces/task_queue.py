"""Abstract task queue and task-handler contracts.

Each pipeline step (extraction dispatch, status polling, embedding
generation, vector sync) is an independently schedulable task.  Handlers
carry their own :class:`RetryPolicy`; the queue re-runs a failed task
after the policy's backoff delay until attempts or the retry window run
out, then calls :meth:`TaskHandler.on_failure` exactly once.

Cross-task coordination happens only through the document store, so an
in-process queue and a broker-backed queue are interchangeable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from ragkb.utils.errors import (
    ConfigurationMissingError,
    DocumentNotFoundError,
    InvalidInputError,
    RateLimitExceededError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry schedule for one task type.

    ``max_attempts`` counts the first run.  ``backoff`` lists the delay in
    seconds before attempt 2, 3, ...; the last entry repeats.
    ``retry_window`` is the wall-clock budget from first dispatch after
    which no further attempt is scheduled.
    """

    max_attempts: int = 3
    backoff: tuple[float, ...] = (30.0, 120.0, 300.0)
    retry_window: float = 3600.0
    rate_limit_multiplier: float = 2.0

    def delay_for(self, attempt: int, exc: BaseException | None = None) -> float:
        """Delay before re-running after failed *attempt* (1-based)."""
        if not self.backoff:
            return 0.0
        delay = self.backoff[min(attempt - 1, len(self.backoff) - 1)]
        if isinstance(exc, RateLimitExceededError):
            delay *= self.rate_limit_multiplier
        return delay


_NON_RETRYABLE: tuple[type[BaseException], ...] = (
    InvalidInputError,
    ConfigurationMissingError,
    DocumentNotFoundError,
)


class TaskHandler(ABC):
    """Executes one kind of task."""

    name: str = ""
    policy: RetryPolicy = RetryPolicy()

    @abstractmethod
    async def handle(self, payload: dict[str, Any]) -> None:
        """Run the task; raising schedules a retry per :attr:`policy`."""

    async def on_failure(self, payload: dict[str, Any], exc: BaseException) -> None:
        """Called once when the task is abandoned.  Default: nothing."""

    def should_retry(self, exc: BaseException) -> bool:
        return not isinstance(exc, _NON_RETRYABLE)


class ITaskQueue(ABC):
    """Contract for dispatching pipeline tasks."""

    @abstractmethod
    def register(self, handler: TaskHandler) -> None:
        """Register *handler* under ``handler.name``."""

    @abstractmethod
    async def dispatch(
        self, task_name: str, payload: dict[str, Any], delay: float = 0.0
    ) -> str:
        """Schedule a task after *delay* seconds and return its task id.

        Raises
        ------
        KeyError
            If no handler is registered for *task_name*.
        """

    @abstractmethod
    async def join(self) -> None:
        """Wait until no task is pending or running."""

    @abstractmethod
    async def shutdown(self) -> None:
        """Cancel pending tasks and stop accepting new ones."""

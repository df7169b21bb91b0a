"""In-process task queue running the asynchronous pipeline steps."""

from ragkb.providers.queue.asyncio_task_queue import AsyncioTaskQueue

__all__ = ["AsyncioTaskQueue"]

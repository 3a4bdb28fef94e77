"""Fire-and-forget asyncio tasks whose failures still get logged."""

import asyncio
import logging
from typing import Coroutine

log = logging.getLogger(__name__)

_running: set[asyncio.Task] = set()


def _done(task: asyncio.Task) -> None:
    _running.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        log.error("Background task %s failed", task.get_name(), exc_info=exc)


def spawn(coro: Coroutine, name: str | None = None) -> asyncio.Task:
    """Schedule `coro` on the running loop and keep a reference until it ends."""
    task = asyncio.create_task(coro, name=name)
    _running.add(task)
    task.add_done_callback(_done)
    return task

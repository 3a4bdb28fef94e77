"""Celery application for background game archiving."""

import asyncio
import os

from celery import Celery

REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

app = Celery("emojichess", broker=REDIS_URL, backend=REDIS_URL)
app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)


async def _archive(sender_id: str) -> bool:
    from emojichess.db import archive_game, get_connection

    async with get_connection() as conn:
        return await archive_game(conn, sender_id)


@app.task(bind=True, max_retries=3)
def archive_game_task(self, sender_id: str) -> bool:
    """Celery task: copy a finished game into games_archive."""
    try:
        return asyncio.run(_archive(sender_id))
    except Exception as exc:
        raise self.retry(exc=exc, countdown=5)

"""
Update sources.

A source delivers batches of SubjectUpdate to one registered handler and
hands back a teardown coroutine that stops delivery.

- QueueUpdateSource: push-based; callers `push()` batches (the HTTP API
  and tests use this)
- PollingUpdateSource: polls an HTTP feed on an APScheduler interval

Both deliver batches one at a time; the next batch waits for the handler.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence

import httpx
import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from pydantic import ValidationError

from riskwatch.schemas.subject import SubjectUpdate

logger = structlog.get_logger(__name__)

BatchHandler = Callable[[list[SubjectUpdate]], Awaitable[Any]]
Teardown = Callable[[], Awaitable[None]]


class UpdateSource(Protocol):
    async def subscribe(self, handler: BatchHandler) -> Teardown:
        ...


def parse_batch(items: Sequence[dict]) -> list[SubjectUpdate]:
    """Validate raw feed items, dropping the malformed ones."""
    updates: list[SubjectUpdate] = []
    for item in items:
        try:
            updates.append(SubjectUpdate.model_validate(item))
        except ValidationError as e:
            logger.warning(
                "feed_item_rejected",
                subject_id=item.get("subject_id") if isinstance(item, dict) else None,
                errors=e.error_count(),
            )
    return updates


class QueueUpdateSource:
    """In-process push source backed by an asyncio.Queue."""

    def __init__(self, maxsize: int = 100):
        self._queue: asyncio.Queue[list[SubjectUpdate]] = asyncio.Queue(maxsize=maxsize)
        self._task: Optional[asyncio.Task] = None

    async def push(self, batch: Sequence[SubjectUpdate]) -> None:
        await self._queue.put(list(batch))

    async def join(self) -> None:
        """Wait until every pushed batch has been handled."""
        await self._queue.join()

    async def subscribe(self, handler: BatchHandler) -> Teardown:
        if self._task is not None:
            raise RuntimeError("QueueUpdateSource already has a subscriber")
        self._task = asyncio.create_task(self._consume(handler), name="update-source-consumer")

        async def teardown() -> None:
            task, self._task = self._task, None
            if task is None:
                return
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("update_source_unsubscribed", source="queue")

        return teardown

    async def _consume(self, handler: BatchHandler) -> None:
        while True:
            batch = await self._queue.get()
            try:
                await handler(batch)
            except Exception as e:
                logger.error("batch_handler_failed", size=len(batch), error=str(e))
            finally:
                self._queue.task_done()


class PollingUpdateSource:
    """
    Polls a JSON feed of subject updates.

    The feed returns either a list of updates or {"subjects": [...]}.
    One poll runs at a time; a slow handler delays the next poll.
    """

    def __init__(
        self,
        url: str,
        interval_seconds: float = 5.0,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.interval_seconds = interval_seconds
        self.timeout = timeout
        self._transport = transport

    async def fetch(self) -> list[SubjectUpdate]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(self.url)
            response.raise_for_status()
            body = response.json()
        items = body.get("subjects", []) if isinstance(body, dict) else body
        return parse_batch(items)

    async def subscribe(self, handler: BatchHandler) -> Teardown:
        scheduler = AsyncIOScheduler()

        async def poll() -> None:
            try:
                batch = await self.fetch()
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("feed_poll_failed", url=self.url, error=str(e))
                return
            if batch:
                await handler(batch)

        scheduler.add_job(
            poll,
            IntervalTrigger(seconds=self.interval_seconds),
            id="poll_update_feed",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        scheduler.start()
        logger.info("update_feed_polling", url=self.url, interval_seconds=self.interval_seconds)

        async def teardown() -> None:
            scheduler.shutdown(wait=False)
            logger.info("update_source_unsubscribed", source="feed")

        return teardown

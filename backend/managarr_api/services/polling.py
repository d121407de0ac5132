"""Periodic polling on an APScheduler interval job."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
from typing import Awaitable, Callable, Generic, TypeVar

from apscheduler.events import EVENT_JOB_MAX_INSTANCES, JobSubmissionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

T = TypeVar("T")

POLL_JOB_ID = "managarr_poll"


class Poller(Generic[T]):
    """Call ``fetch`` every ``interval`` seconds until stopped.

    The first fetch runs as soon as the poller starts. A run that comes due
    while the previous fetch is still going is skipped (``max_instances=1``).
    Results go to ``on_result``; exceptions go to ``on_error`` and do not
    stop the poller.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[T]],
        interval: float,
        on_result: Callable[[T], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._fetch = fetch
        self._interval = interval
        self._on_result = on_result
        self._on_error = on_error
        self._scheduler: AsyncIOScheduler | None = None
        self._in_flight: asyncio.Task | None = None
        self.skipped = 0

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def busy(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    async def start(self) -> None:
        """Schedule the interval job on the running event loop."""

        if self.running:
            return
        # A fresh scheduler per start binds it to the loop that is running now.
        scheduler = AsyncIOScheduler()
        scheduler.add_listener(self._on_skipped, EVENT_JOB_MAX_INSTANCES)
        scheduler.add_job(
            self._run_once,
            IntervalTrigger(seconds=self._interval),
            id=POLL_JOB_ID,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.debug("Poller started (every %ss)", self._interval)

    async def stop(self) -> None:
        """Shut the scheduler down and wait for a cancelled fetch to unwind."""

        scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=False)
            logger.debug("Poller stopped")
        task, self._in_flight = self._in_flight, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _on_skipped(self, event: JobSubmissionEvent) -> None:
        self.skipped += 1
        logger.debug("Poll skipped; previous fetch still running")

    async def _run_once(self) -> None:
        self._in_flight = asyncio.current_task()
        try:
            result = await self._fetch()
        except asyncio.CancelledError:
            # Cancelled by stop(); nothing to report.
            return
        except Exception as exc:  # noqa: BLE001 - reported through on_error
            logger.warning("Poll failed: %s", exc)
            if self._on_error is not None:
                self._on_error(exc)
            return
        finally:
            if self._in_flight is asyncio.current_task():
                self._in_flight = None
        self._on_result(result)

"""Daily birthday trigger.

``birthday_tick`` is the unit of work (generate, then dispatch) and can be
called directly. ``BirthdayScheduler`` is the background asyncio task that
calls it once a day at the time given by the settings' schedule expression.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from shared.schedule import next_run_after, parse_schedule_time

from .birthday_dispatch_service import BirthdayDispatchService, DispatchSummary
from .birthday_generation_service import BirthdayGenerationService
from .birthday_settings_service import BirthdaySettingsService, local_today

logger = logging.getLogger(__name__)


@dataclass
class BirthdayJobs:
    settings_service: BirthdaySettingsService
    generation: BirthdayGenerationService
    dispatcher: BirthdayDispatchService


async def birthday_tick(jobs: BirthdayJobs, today: date | None = None) -> DispatchSummary:
    """Generate the year(s) the send window touches, then dispatch today's due records."""
    settings = await jobs.settings_service.get_settings()
    if not settings.enabled:
        logger.info("Birthday tick skipped: notifications disabled")
        return DispatchSummary(skipped_reason="disabled")

    if today is None:
        today = local_today(settings.timezone)

    # Lead days can push the occurrence into next year
    years = {today.year, (today + timedelta(days=settings.lead_days)).year}
    for year in sorted(years):
        await jobs.generation.generate_for_year(year)

    return await jobs.dispatcher.send_due_now(today)


class BirthdayScheduler:
    """Background loop firing :func:`birthday_tick` once per local day.

    Settings are re-read at least every *poll_interval* seconds, so schedule,
    timezone and enabled changes apply without a restart. If the process
    starts after today's fire time, today's tick runs immediately.
    """

    def __init__(
        self,
        jobs_factory: Callable[[], BirthdayJobs],
        *,
        poll_interval: float = 300.0,
    ) -> None:
        self._jobs_factory = jobs_factory
        self.poll_interval = poll_interval
        self._last_fired: date | None = None
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Birthday scheduler started (poll={self.poll_interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Birthday scheduler stopped")

    async def _run(self) -> None:
        while True:
            try:
                wait = await self.check()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Birthday scheduler check failed: {type(e).__name__}: {e}")
                wait = self.poll_interval
            await asyncio.sleep(max(wait, 1.0))

    async def check(self, now: datetime | None = None) -> float:
        """Fire the tick if it is due; return how many seconds to wait before the next check."""
        jobs = self._jobs_factory()
        settings = await jobs.settings_service.get_settings()
        if not settings.enabled:
            return self.poll_interval

        try:
            tz = ZoneInfo(settings.timezone)
            fire_time = parse_schedule_time(settings.schedule_expression)
        except (ValueError, KeyError) as e:
            logger.error(f"Birthday scheduler: invalid schedule settings: {e}")
            return self.poll_interval

        now = now.astimezone(tz) if now is not None else datetime.now(tz)
        today = now.date()
        fire_at = datetime.combine(today, fire_time, tzinfo=tz)

        if now >= fire_at and self._last_fired != today:
            logger.info(f"Birthday tick firing for {today}")
            # Not marked until it completes, so a failed tick is retried on the next check
            summary = await birthday_tick(jobs, today)
            self._last_fired = today
            logger.info(f"Birthday tick for {today}: {summary}")

        until_next = next_run_after(now, settings.schedule_expression, settings.timezone) - now
        return min(self.poll_interval, until_next.total_seconds())

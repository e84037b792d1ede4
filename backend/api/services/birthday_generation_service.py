"""Generation job: materializes one notification record per person per year."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime

from shared.repositories.birthday import BirthdayNotificationRepository
from shared.repositories.profile import ProfileRepository

logger = logging.getLogger(__name__)

MIN_YEAR = 1900
MAX_YEAR = 9999


@dataclass
class GenerationSummary:
    year: int
    created: int = 0
    existing: int = 0
    skipped: int = 0


def coerce_birth_date(value: object) -> date:
    """Accept a date (or ISO date string); raise ValueError for anything else."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip())
    raise ValueError(f"unusable birth date: {value!r}")


class BirthdayGenerationService:
    def __init__(
        self,
        notifications: BirthdayNotificationRepository,
        profiles: ProfileRepository,
    ) -> None:
        self.notifications = notifications
        self.profiles = profiles

    async def generate_for_year(self, year: int) -> GenerationSummary:
        """Create the missing records for *year*. Safe to re-run."""
        if not MIN_YEAR <= year <= MAX_YEAR:
            raise ValueError(f"year must be between {MIN_YEAR} and {MAX_YEAR}")

        summary = GenerationSummary(year=year)
        profiles = await self.profiles.list_active_with_birth_date()
        logger.info(f"Generating birthday notifications for {year} ({len(profiles)} profiles)")

        for profile in profiles:
            try:
                birth_date = coerce_birth_date(profile.birth_date)
                if birth_date.year > year:
                    raise ValueError(f"birth date {birth_date} is after {year}")
            except ValueError as e:
                summary.skipped += 1
                logger.warning(f"Skipping profile {profile.id}: {e}")
                continue

            created = await self.notifications.upsert(
                profile.id, year, birth_date, bool(profile.birthday_excluded)
            )
            if created:
                summary.created += 1
            else:
                summary.existing += 1

        logger.info(
            f"Generation for {year} done: created={summary.created}, "
            f"existing={summary.existing}, skipped={summary.skipped}"
        )
        return summary

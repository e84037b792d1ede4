"""Query & statistics layer for birthday notifications."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, timedelta

from shared.models.birthday import NotificationFilter, NotificationStatus, Page, PageRequest
from shared.models.profile import AlumniProfile
from shared.recurrence import age_at, next_occurrence, previous_occurrence
from shared.repositories.birthday import BirthdayNotificationRepository
from shared.repositories.profile import ProfileRepository

from .birthday_generation_service import coerce_birth_date
from .birthday_settings_service import BirthdaySettingsService, local_today

logger = logging.getLogger(__name__)

MAX_WINDOW_DAYS = 366


def _status_label(status: str | None) -> str | None:
    if status is None:
        return None
    return NotificationStatus(status).display_name


class BirthdayQueryService:
    def __init__(
        self,
        notifications: BirthdayNotificationRepository,
        profiles: ProfileRepository,
        settings_service: BirthdaySettingsService,
    ) -> None:
        self.notifications = notifications
        self.profiles = profiles
        self.settings_service = settings_service

    async def list_notifications(
        self,
        flt: NotificationFilter,
        page: PageRequest,
        *,
        start_notification_date: date | None = None,
        end_notification_date: date | None = None,
    ) -> Page:
        """Filtered page of records. The year defaults to the current year.

        Notification-date bounds are translated to occurrence-date bounds
        using the configured lead days.
        """
        if page.page < 0 or page.size <= 0:
            raise ValueError("page must be >= 0 and size must be positive")

        settings = await self.settings_service.get_settings()
        lead = timedelta(days=settings.lead_days)

        if flt.year is None:
            flt = replace(flt, year=local_today(settings.timezone).year)
        if start_notification_date is not None:
            start = start_notification_date + lead
            if flt.start_occurrence_date is None or start > flt.start_occurrence_date:
                flt = replace(flt, start_occurrence_date=start)
        if end_notification_date is not None:
            end = end_notification_date + lead
            if flt.end_occurrence_date is None or end < flt.end_occurrence_date:
                flt = replace(flt, end_occurrence_date=end)

        result = await self.notifications.query(flt, page)
        for item in result.items:
            item["notification_date"] = item["occurrence_date"] - lead
            item["age"] = age_at(item["birth_date"], item["year"])
            item["status_label"] = _status_label(item["status"])
        return result

    # ==================== Live windows from profile birth dates ====================

    async def upcoming(self, days_ahead: int, today: date | None = None) -> list[dict]:
        """People whose birthday falls within the next *days_ahead* days (today included)."""
        _check_window(days_ahead)
        today = today or await self._today()
        matches = []
        for profile in await self.profiles.list_active_with_birth_date():
            birth_date = _birth_date_or_none(profile)
            if birth_date is None:
                continue
            hit = next_occurrence(birth_date, today, days_ahead)
            if hit is not None:
                occurrence, days_until = hit
                matches.append((profile, birth_date, occurrence, days_until))

        items = await self._with_status(matches, "days_until")
        items.sort(key=lambda i: (i["days_until"], i["display_name"] or ""))
        return items

    async def past(self, days_back: int, today: date | None = None) -> list[dict]:
        """People whose birthday fell within the last *days_back* days (today excluded)."""
        _check_window(days_back)
        today = today or await self._today()
        matches = []
        for profile in await self.profiles.list_active_with_birth_date():
            birth_date = _birth_date_or_none(profile)
            if birth_date is None:
                continue
            hit = previous_occurrence(birth_date, today, days_back)
            if hit is not None:
                occurrence, days_since = hit
                matches.append((profile, birth_date, occurrence, days_since))

        items = await self._with_status(matches, "days_since")
        items.sort(key=lambda i: (i["days_since"], i["display_name"] or ""))
        return items

    async def _with_status(
        self,
        matches: list[tuple[AlumniProfile, date, date, int]],
        distance_key: str,
    ) -> list[dict]:
        """Build response items, attaching the record status for each occurrence year."""
        by_year: dict[int, list[int]] = {}
        for profile, _, occurrence, _ in matches:
            by_year.setdefault(occurrence.year, []).append(profile.id)

        records = {}
        for year, person_ids in by_year.items():
            for person_id, record in (
                await self.notifications.list_for_year(year, person_ids)
            ).items():
                records[(person_id, year)] = record

        items = []
        for profile, birth_date, occurrence, distance in matches:
            record = records.get((profile.id, occurrence.year))
            status = record.status.value if record else None
            items.append(
                {
                    "person_id": profile.id,
                    "display_name": profile.display_name,
                    "alumni_cohort": profile.alumni_cohort,
                    "birth_date": birth_date,
                    "occurrence_date": occurrence,
                    distance_key: distance,
                    "age": age_at(birth_date, occurrence.year),
                    "is_excluded": bool(profile.birthday_excluded),
                    "status": status,
                    "status_label": _status_label(status),
                }
            )
        return items

    # ==================== Statistics ====================

    async def statistics(self, year: int | None = None) -> dict:
        if year is None:
            year = (await self._today()).year

        counts = await self.notifications.count_by_status(year)
        by_status = {status.value: counts.get(status.value, 0) for status in NotificationStatus}
        return {
            "year": year,
            "by_status": by_status,
            "total_records": sum(by_status.values()),
            "total_profiles_with_birth_date": await self.profiles.count_with_birth_date(),
            "total_excluded": await self.profiles.count_excluded(),
        }

    async def _today(self) -> date:
        settings = await self.settings_service.get_settings()
        return local_today(settings.timezone)


def _check_window(days: int) -> None:
    if not 0 <= days <= MAX_WINDOW_DAYS:
        raise ValueError(f"days must be between 0 and {MAX_WINDOW_DAYS}")


def _birth_date_or_none(profile: AlumniProfile) -> date | None:
    try:
        return coerce_birth_date(profile.birth_date)
    except ValueError as e:
        logger.warning(f"Ignoring profile {profile.id} with bad birth date: {e}")
        return None

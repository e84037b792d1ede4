"""Birthday settings service: validation and defaults around the settings row."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from shared.birthday_message import validate_template
from shared.models.birthday import BirthdaySettings, default_birthday_settings
from shared.repositories.birthday_settings import BirthdaySettingsRepository
from shared.schedule import parse_schedule_time

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "enabled",
    "schedule_expression",
    "timezone",
    "lead_days",
    "include_age",
    "message_template",
    "attachment_image_url",
)


def local_today(timezone: str, now: datetime | None = None) -> date:
    """Calendar date of *now* (default: current instant) in *timezone*."""
    tz = ZoneInfo(timezone)
    if now is None:
        return datetime.now(tz).date()
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(tz).date()


def validate_settings(settings: BirthdaySettings) -> None:
    """Raise ValueError if any field would break generation or dispatch."""
    if settings.lead_days is None or settings.lead_days < 0:
        raise ValueError("lead_days must be non-negative")
    try:
        ZoneInfo(settings.timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {settings.timezone}") from e
    parse_schedule_time(settings.schedule_expression)
    validate_template(settings.message_template)


class BirthdaySettingsService:
    def __init__(self, repo: BirthdaySettingsRepository) -> None:
        self.repo = repo

    async def get_settings(self) -> BirthdaySettings:
        """Stored settings, or the built-in defaults when no row exists yet."""
        stored = await self.repo.get()
        return stored if stored is not None else default_birthday_settings()

    async def update_settings(
        self, *, updated_by: str | None = None, **changes
    ) -> BirthdaySettings:
        """Apply a partial update. ``None`` values leave the field unchanged.

        ``attachment_image_url`` can be cleared by passing an empty string.
        """
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown settings field(s): {', '.join(sorted(unknown))}")

        current = await self.get_settings()
        updates = {k: v for k, v in changes.items() if v is not None}
        if updates.get("attachment_image_url") == "":
            updates["attachment_image_url"] = None
        if "timezone" in updates:
            updates["timezone"] = updates["timezone"].strip()

        candidate = replace(current, **updates, updated_by=updated_by)
        validate_settings(candidate)

        saved = await self.repo.save(candidate)
        logger.info(f"Birthday settings updated by {updated_by or 'unknown'}: {sorted(updates)}")
        return saved

    async def reset_to_defaults(self, updated_by: str | None = None) -> BirthdaySettings:
        defaults = replace(default_birthday_settings(), updated_by=updated_by)
        saved = await self.repo.save(defaults)
        logger.info(f"Birthday settings reset to defaults by {updated_by or 'unknown'}")
        return saved

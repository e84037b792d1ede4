"""Operator overrides for birthday notifications.

Every operation here works on a single person or record and raises the
exceptions in :mod:`birthday_errors` instead of returning error flags.
"""

from __future__ import annotations

import logging

from shared.birthday_message import render_birthday_message
from shared.models.birthday import BirthdayNotification
from shared.models.profile import AlumniProfile
from shared.recurrence import age_at
from shared.repositories.birthday import BirthdayNotificationRepository
from shared.repositories.profile import ProfileRepository

from .birthday_dispatch_service import BirthdayDispatchService
from .birthday_errors import (
    DeliveryError,
    MissingPhoneNumberError,
    ProfileNotFoundError,
    RecordNotFoundError,
)
from .birthday_generation_service import coerce_birth_date
from .birthday_settings_service import BirthdaySettingsService, local_today

logger = logging.getLogger(__name__)


class BirthdayOverrideService:
    def __init__(
        self,
        notifications: BirthdayNotificationRepository,
        profiles: ProfileRepository,
        settings_service: BirthdaySettingsService,
        dispatcher: BirthdayDispatchService,
    ) -> None:
        self.notifications = notifications
        self.profiles = profiles
        self.settings_service = settings_service
        self.dispatcher = dispatcher

    async def _current_year(self) -> int:
        settings = await self.settings_service.get_settings()
        return local_today(settings.timezone).year

    async def _require_profile(self, person_id: int) -> AlumniProfile:
        profile = await self.profiles.get_profile(person_id)
        if profile is None:
            raise ProfileNotFoundError(f"Profile {person_id} not found")
        return profile

    async def _ensure_record(
        self, profile: AlumniProfile, year: int, *, excluded: bool
    ) -> BirthdayNotification:
        """Fetch the person's record for *year*, creating it if it is missing."""
        record = await self.notifications.get(profile.id, year)
        if record is not None:
            return record
        if profile.birth_date is None:
            raise RecordNotFoundError(
                f"No {year} record for person {profile.id} and no birth date on file"
            )
        try:
            birth_date = coerce_birth_date(profile.birth_date)
        except ValueError as e:
            raise RecordNotFoundError(
                f"No {year} record for person {profile.id}: {e}"
            ) from e
        await self.notifications.upsert(profile.id, year, birth_date, excluded)
        record = await self.notifications.get(profile.id, year)
        if record is None:
            raise RecordNotFoundError(f"Could not create {year} record for person {profile.id}")
        return record

    # ==================== Exclusion ====================

    async def exclude_person(self, person_id: int, excluded: bool) -> dict:
        """Set the permanent exclusion flag and propagate it to this and later years.

        Excluding moves still-PENDING records to EXCLUDED; including moves them
        back to PENDING, except records already delivered, which return to SENT.
        """
        profile = await self._require_profile(person_id)
        if not await self.profiles.set_exclusion_flag(person_id, excluded):
            raise ProfileNotFoundError(f"Profile {person_id} not found")

        year = await self._current_year()
        changed = await self.notifications.set_person_exclusion(person_id, year, excluded)

        created = False
        if excluded and profile.birth_date is not None:
            if await self.notifications.get(person_id, year) is None:
                try:
                    birth_date = coerce_birth_date(profile.birth_date)
                except ValueError as e:
                    logger.warning(f"Person {person_id}: not creating {year} record: {e}")
                else:
                    created = await self.notifications.upsert(person_id, year, birth_date, True)

        action = "excluded" if excluded else "included"
        logger.info(f"Person {person_id} {action}: {changed} record(s) updated")
        return {
            "person_id": person_id,
            "excluded": excluded,
            "records_updated": changed + (1 if created else 0),
        }

    async def exclude_record(self, record_id: int, excluded: bool) -> BirthdayNotification:
        record = await self.notifications.set_exclusion(record_id, excluded)
        if record is None:
            raise RecordNotFoundError(f"Notification record {record_id} not found")
        logger.info(f"Record {record_id} exclusion set to {excluded}")
        return record

    # ==================== Re-arming / sending ====================

    async def reset_to_pending(self, person_id: int) -> BirthdayNotification:
        """Force the person's current-year record back to PENDING, creating it if needed."""
        profile = await self._require_profile(person_id)
        year = await self._current_year()
        record = await self._ensure_record(profile, year, excluded=False)

        reset = await self.notifications.reset(record.id)
        if reset is None:
            raise RecordNotFoundError(f"Notification record {record.id} not found")
        logger.info(f"Record {record.id} (person {person_id}, {year}) reset to PENDING")
        return reset

    async def resend(self, record_id: int) -> BirthdayNotification:
        """Send one record immediately, bypassing the PENDING guard."""
        return await self.dispatcher.dispatch_record(record_id)

    async def send_now(self, person_id: int) -> BirthdayNotification:
        """Send the person's current-year message now, creating the record if needed."""
        profile = await self._require_profile(person_id)
        year = await self._current_year()
        excluded = bool(await self.profiles.get_exclusion_flag(person_id))
        record = await self._ensure_record(profile, year, excluded=excluded)
        return await self.dispatcher.dispatch_record(record.id)

    async def test_send(self, person_id: int, phone_number: str | None = None) -> dict:
        """Render with current settings and call the transport. No record is read or written."""
        profile = await self._require_profile(person_id)
        target = phone_number or profile.phone_number
        if not target:
            raise MissingPhoneNumberError(
                f"Cannot test-send to person {person_id}: no phone number given or on file"
            )

        settings = await self.settings_service.get_settings()
        today = local_today(settings.timezone)
        age = None
        if profile.birth_date is not None:
            try:
                age = age_at(coerce_birth_date(profile.birth_date), today.year)
            except ValueError:
                age = None

        message = render_birthday_message(
            settings.message_template,
            profile.display_name,
            age,
            settings.include_age,
        )
        result = await self.dispatcher.send_message(
            target, message, settings.attachment_image_url
        )
        if not result.success:
            logger.warning(f"Test send to person {person_id} failed: {result.error}")
            raise DeliveryError(result.error or "delivery failed")

        logger.info(f"Test send to person {person_id} succeeded")
        return {
            "person_id": person_id,
            "phone_number": target,
            "message": message,
            "message_id": result.message_id,
            "sent_on": today.isoformat(),
        }

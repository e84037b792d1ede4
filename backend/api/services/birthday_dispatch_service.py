"""Dispatch job: sends the birthday messages that are due today.

Each due row is claimed before the transport is called and completed with a
compare-and-set, so overlapping runs (scheduled tick, manual "send now")
call the transport at most once per record. Failed rows are never retried
automatically.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Protocol
from zoneinfo import ZoneInfoNotFoundError

from shared.birthday_message import TemplateError, render_birthday_message, validate_template
from shared.models.birthday import BirthdayNotification, BirthdaySettings, NotificationStatus
from shared.recurrence import age_at
from shared.repositories.birthday import BirthdayNotificationRepository
from shared.repositories.profile import ProfileRepository

from .birthday_errors import (
    DeliveryError,
    MissingPhoneNumberError,
    ProfileNotFoundError,
    RecordNotFoundError,
)
from .birthday_settings_service import BirthdaySettingsService, local_today
from .whatsapp_api import SendResult

logger = logging.getLogger(__name__)

# A claim older than the send timeout plus this margin belongs to a dead run
STALE_CLAIM_MARGIN = 300.0
INTERRUPTED_ERROR = "interrupted while sending"


class MessageTransport(Protocol):
    async def send(
        self, phone_number: str, message: str, attachment_url: str | None = None
    ) -> SendResult: ...


@dataclass
class DispatchSummary:
    attempted: int = 0
    sent: int = 0
    failed: int = 0
    # Outcome not stored: the row was excluded or reset while in flight
    unconfirmed: int = 0
    interrupted: int = 0
    skipped_reason: str | None = None
    as_of: date | None = None


class BirthdayDispatchService:
    def __init__(
        self,
        notifications: BirthdayNotificationRepository,
        profiles: ProfileRepository,
        settings_service: BirthdaySettingsService,
        transport: MessageTransport,
        *,
        send_timeout: float = 15.0,
    ) -> None:
        self.notifications = notifications
        self.profiles = profiles
        self.settings_service = settings_service
        self.transport = transport
        self.send_timeout = send_timeout

    # ==================== Scheduled / bulk path ====================

    async def send_due_now(self, today: date | None = None) -> DispatchSummary:
        """Send every record due on *today* (default: today in the configured timezone)."""
        settings = await self.settings_service.get_settings()

        if not settings.enabled:
            logger.info("Birthday notifications disabled, nothing dispatched")
            return DispatchSummary(skipped_reason="disabled")

        try:
            validate_template(settings.message_template)
            if today is None:
                today = local_today(settings.timezone)
        except (TemplateError, ValueError, ZoneInfoNotFoundError) as e:
            logger.error(f"Birthday dispatch skipped, invalid settings: {e}")
            return DispatchSummary(skipped_reason=f"invalid settings: {e}")

        summary = DispatchSummary(as_of=today)
        summary.interrupted = await self.fail_stale_claims()

        due = await self.notifications.list_due(today, settings.lead_days)
        logger.info(f"Dispatching birthday notifications for {today}: {len(due)} due")

        for record in due:
            if not await self.notifications.claim(record.id):
                # Picked up by a concurrent run
                continue

            summary.attempted += 1
            try:
                error = await self._attempt(record, settings)
            except Exception as e:
                logger.exception(f"Record {record.id}: dispatch raised: {e}")
                error = f"dispatch error: {type(e).__name__}: {e}"

            status = NotificationStatus.FAILED if error else NotificationStatus.SENT
            completed = await self.notifications.set_status(
                record.id,
                status,
                sent_at=None if error else datetime.now(UTC),
                error=error,
                expected=NotificationStatus.PENDING,
            )
            if completed is None:
                logger.warning(
                    f"Record {record.id} changed while sending; outcome {status.value} not stored"
                )
                summary.unconfirmed += 1
            elif error:
                summary.failed += 1
            else:
                summary.sent += 1

        logger.info(
            f"Birthday dispatch for {today} done: attempted={summary.attempted}, "
            f"sent={summary.sent}, failed={summary.failed}, "
            f"unconfirmed={summary.unconfirmed}, interrupted={summary.interrupted}"
        )
        return summary

    async def fail_stale_claims(self) -> int:
        """Mark rows left claimed by a run that never finished as FAILED. They are not re-sent."""
        stale_after = self.send_timeout + STALE_CLAIM_MARGIN
        failed = await self.notifications.fail_stale_claims(stale_after, INTERRUPTED_ERROR)
        if failed:
            logger.warning(
                f"{failed} birthday record(s) were claimed over {stale_after:g}s ago "
                f"without completing; marked FAILED"
            )
        return failed

    async def _attempt(
        self, record: BirthdayNotification, settings: BirthdaySettings
    ) -> str | None:
        """Render and send one claimed record. Returns the error text, or None on success."""
        profile = await self.profiles.get_profile(record.person_id)
        if profile is None:
            logger.warning(f"Record {record.id}: profile {record.person_id} not found")
            return "profile not found"
        if not profile.phone_number:
            logger.warning(f"Record {record.id}: no phone number for person {record.person_id}")
            return "no phone number on file"

        message = render_birthday_message(
            settings.message_template,
            profile.display_name,
            age_at(record.birth_date, record.year),
            settings.include_age,
        )
        result = await self.send_message(
            profile.phone_number, message, settings.attachment_image_url
        )
        if not result.success:
            logger.warning(f"Record {record.id}: delivery failed: {result.error}")
            return result.error or "delivery failed"
        return None

    async def send_message(
        self, phone_number: str, message: str, attachment_url: str | None = None
    ) -> SendResult:
        """One bounded transport call. A timeout or transport exception becomes a failed result."""
        try:
            return await asyncio.wait_for(
                self.transport.send(phone_number, message, attachment_url),
                timeout=self.send_timeout,
            )
        except TimeoutError:
            return SendResult(False, f"timeout after {self.send_timeout:g}s")
        except Exception as e:
            logger.exception(f"Transport raised while sending to {phone_number}: {e}")
            return SendResult(False, f"transport error: {type(e).__name__}: {e}")

    # ==================== Operator path ====================

    async def dispatch_record(self, record_id: int) -> BirthdayNotification:
        """Send one record now, whatever its status, and store the outcome.

        Raises DeliveryError (after recording FAILED) if the transport fails.
        """
        record = await self.notifications.get_by_id(record_id)
        if record is None:
            raise RecordNotFoundError(f"Notification record {record_id} not found")

        profile = await self.profiles.get_profile(record.person_id)
        if profile is None:
            raise ProfileNotFoundError(f"Profile {record.person_id} not found")
        if not profile.phone_number:
            raise MissingPhoneNumberError(
                f"Cannot send to person {record.person_id}: no phone number on file"
            )

        settings = await self.settings_service.get_settings()
        message = render_birthday_message(
            settings.message_template,
            profile.display_name,
            age_at(record.birth_date, record.year),
            settings.include_age,
        )

        result = await self.send_message(
            profile.phone_number, message, settings.attachment_image_url
        )
        if result.success:
            updated = await self.notifications.set_status(
                record.id, NotificationStatus.SENT, sent_at=datetime.now(UTC)
            )
            logger.info(f"Record {record.id} sent to person {record.person_id} (manual)")
            return updated or record

        error = result.error or "delivery failed"
        updated = await self.notifications.set_status(
            record.id, NotificationStatus.FAILED, error=error
        )
        logger.warning(f"Record {record.id} manual send failed: {error}")
        raise DeliveryError(error, record=updated)

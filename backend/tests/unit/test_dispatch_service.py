"""Unit tests for the dispatch job."""

import asyncio
from dataclasses import replace
from datetime import UTC, date, datetime, timedelta

import pytest

from api.services import (
    BirthdayDispatchService,
    DeliveryError,
    MissingPhoneNumberError,
    RecordNotFoundError,
)
from shared.models.birthday import NotificationStatus, default_birthday_settings
from tests.fixtures.fakes import FakeTransport
from tests.fixtures.profile_factory import create_test_profile

BIRTHDAY = date(2025, 6, 15)


def _seed(profiles, notifications, *people):
    for profile in people:
        profiles.add(profile)
        asyncio.run(notifications.upsert(profile.id, 2025, profile.birth_date, False))


def test_end_to_end_generate_then_send(generation, dispatcher, profiles, notifications, transport):
    profiles.add(create_test_profile(1, date(1990, 6, 15), name="Putri", phone="081211112222"))

    asyncio.run(generation.generate_for_year(2025))
    record = asyncio.run(notifications.get(1, 2025))
    assert record.occurrence_date == BIRTHDAY
    assert record.status is NotificationStatus.PENDING

    summary = asyncio.run(dispatcher.send_due_now(BIRTHDAY))

    assert (summary.attempted, summary.sent, summary.failed) == (1, 1, 0)
    record = asyncio.run(notifications.get(1, 2025))
    assert record.status is NotificationStatus.SENT
    assert record.sent_at is not None
    assert len(transport.calls) == 1
    phone, message, attachment = transport.calls[0]
    assert phone == "081211112222"
    assert "ke-35" in message
    assert message.startswith("Halo Putri,")
    assert attachment is None


def test_only_rows_due_today_are_sent(dispatcher, profiles, notifications, transport):
    _seed(
        profiles,
        notifications,
        create_test_profile(1, date(1990, 6, 15)),
        create_test_profile(2, date(1990, 6, 16)),
    )

    summary = asyncio.run(dispatcher.send_due_now(BIRTHDAY))

    assert summary.sent == 1
    assert asyncio.run(notifications.get(2, 2025)).status is NotificationStatus.PENDING


def test_lead_days_shift_send_day(dispatcher, settings_repo, profiles, notifications, transport):
    settings_repo.stored = replace(default_birthday_settings(), lead_days=3)
    _seed(profiles, notifications, create_test_profile(1, date(1990, 6, 15)))

    assert asyncio.run(dispatcher.send_due_now(BIRTHDAY)).attempted == 0
    summary = asyncio.run(dispatcher.send_due_now(date(2025, 6, 12)))

    assert summary.sent == 1
    assert len(transport.calls) == 1


def test_disabled_settings_is_noop(dispatcher, settings_repo, profiles, notifications, transport):
    settings_repo.stored = replace(default_birthday_settings(), enabled=False)
    _seed(profiles, notifications, create_test_profile(1, date(1990, 6, 15)))

    summary = asyncio.run(dispatcher.send_due_now(BIRTHDAY))

    assert summary.skipped_reason == "disabled"
    assert transport.calls == []
    assert asyncio.run(notifications.get(1, 2025)).status is NotificationStatus.PENDING


def test_broken_template_is_noop(dispatcher, settings_repo, profiles, notifications, transport):
    settings_repo.stored = replace(default_birthday_settings(), message_template="Hi {nama}")
    _seed(profiles, notifications, create_test_profile(1, date(1990, 6, 15)))

    summary = asyncio.run(dispatcher.send_due_now(BIRTHDAY))

    assert summary.skipped_reason.startswith("invalid settings")
    assert transport.calls == []


def test_partial_failure_does_not_block_others(notifications, profiles, settings_service):
    transport = FakeTransport(fail_for={"0800"})
    dispatcher = BirthdayDispatchService(notifications, profiles, settings_service, transport)
    _seed(
        profiles,
        notifications,
        create_test_profile(1, date(1990, 6, 15), phone="0800"),
        create_test_profile(2, date(1991, 6, 15)),
        create_test_profile(3, date(1992, 6, 15), phone=None),
    )

    summary = asyncio.run(dispatcher.send_due_now(BIRTHDAY))

    assert (summary.attempted, summary.sent, summary.failed) == (3, 1, 2)
    first = asyncio.run(notifications.get(1, 2025))
    assert first.status is NotificationStatus.FAILED
    assert first.last_error == "provider rejected"
    third = asyncio.run(notifications.get(3, 2025))
    assert third.status is NotificationStatus.FAILED
    assert third.last_error == "no phone number on file"
    assert asyncio.run(notifications.get(2, 2025)).status is NotificationStatus.SENT


def test_failed_rows_are_not_retried(dispatcher, notifications, profiles, transport):
    transport.success = False
    _seed(profiles, notifications, create_test_profile(1, date(1990, 6, 15)))

    asyncio.run(dispatcher.send_due_now(BIRTHDAY))
    transport.success = True
    summary = asyncio.run(dispatcher.send_due_now(BIRTHDAY))

    assert summary.attempted == 0
    assert len(transport.calls) == 1


def test_timeout_marks_failed(notifications, profiles, settings_service):
    transport = FakeTransport(delay=1.0)
    dispatcher = BirthdayDispatchService(
        notifications, profiles, settings_service, transport, send_timeout=0.05
    )
    _seed(profiles, notifications, create_test_profile(1, date(1990, 6, 15)))

    summary = asyncio.run(dispatcher.send_due_now(BIRTHDAY))

    assert summary.failed == 1
    record = asyncio.run(notifications.get(1, 2025))
    assert record.status is NotificationStatus.FAILED
    assert record.last_error == "timeout after 0.05s"
    assert record.claimed_at is None


def test_concurrent_runs_send_each_record_once(notifications, profiles, settings_service):
    transport = FakeTransport(delay=0.01)
    dispatcher = BirthdayDispatchService(notifications, profiles, settings_service, transport)
    _seed(
        profiles,
        notifications,
        *[create_test_profile(i, date(1980 + i, 6, 15), phone=f"08{i:04d}") for i in range(1, 6)],
    )

    async def run_concurrently():
        return await asyncio.gather(*[dispatcher.send_due_now(BIRTHDAY) for _ in range(4)])

    summaries = asyncio.run(run_concurrently())

    assert sum(s.attempted for s in summaries) == 5
    assert sum(s.sent for s in summaries) == 5
    assert len(transport.calls) == 5
    assert len({call[0] for call in transport.calls}) == 5
    assert all(r.status is NotificationStatus.SENT for r in notifications.rows.values())


def test_attachment_passed_to_transport(
    dispatcher, settings_repo, profiles, notifications, transport
):
    settings_repo.stored = replace(
        default_birthday_settings(), attachment_image_url="https://cdn.example.org/card.png"
    )
    _seed(profiles, notifications, create_test_profile(1, date(1990, 6, 15)))

    asyncio.run(dispatcher.send_due_now(BIRTHDAY))

    assert transport.calls[0][2] == "https://cdn.example.org/card.png"


def test_include_age_false_omits_age(dispatcher, settings_repo, profiles, notifications, transport):
    settings_repo.stored = replace(default_birthday_settings(), include_age=False)
    _seed(profiles, notifications, create_test_profile(1, date(1990, 6, 15)))

    asyncio.run(dispatcher.send_due_now(BIRTHDAY))

    assert "ke-35" not in transport.calls[0][1]


def test_row_that_raises_is_failed_and_batch_continues(
    dispatcher, profiles, notifications, transport
):
    _seed(
        profiles,
        notifications,
        create_test_profile(1, date(1990, 6, 15)),
        create_test_profile(2, date(1991, 6, 15)),
    )
    lookup = profiles.get_profile

    async def flaky_lookup(person_id):
        if person_id == 1:
            raise ConnectionError("profile store unreachable")
        return await lookup(person_id)

    profiles.get_profile = flaky_lookup

    summary = asyncio.run(dispatcher.send_due_now(BIRTHDAY))

    assert (summary.attempted, summary.sent, summary.failed) == (2, 1, 1)
    first = asyncio.run(notifications.get(1, 2025))
    assert first.status is NotificationStatus.FAILED
    assert first.last_error == "dispatch error: ConnectionError: profile store unreachable"
    assert first.claimed_at is None
    assert asyncio.run(notifications.get(2, 2025)).status is NotificationStatus.SENT
    assert len(transport.calls) == 1


def test_unrenderable_template_leaves_rows_unclaimed(
    dispatcher, settings_repo, profiles, notifications, transport
):
    settings_repo.stored = replace(
        default_birthday_settings(), message_template="Usia {age:d} tahun", include_age=False
    )
    _seed(
        profiles,
        notifications,
        create_test_profile(1, date(1990, 6, 15)),
        create_test_profile(2, date(1991, 6, 15)),
    )

    summary = asyncio.run(dispatcher.send_due_now(BIRTHDAY))

    assert summary.skipped_reason.startswith("invalid settings")
    assert transport.calls == []
    for row in notifications.rows.values():
        assert row.status is NotificationStatus.PENDING
        assert row.claimed_at is None


def test_unknown_timezone_is_noop(dispatcher, settings_repo, profiles, notifications, transport):
    settings_repo.stored = replace(default_birthday_settings(), timezone="Nowhere/Land")
    _seed(profiles, notifications, create_test_profile(1, date(1990, 6, 15)))

    summary = asyncio.run(dispatcher.send_due_now())

    assert summary.skipped_reason.startswith("invalid settings")
    assert transport.calls == []


def test_stale_claim_failed_without_resending(dispatcher, profiles, notifications, transport):
    _seed(
        profiles,
        notifications,
        create_test_profile(1, date(1990, 6, 15)),
        create_test_profile(2, date(1991, 6, 15)),
    )
    now = datetime.now(UTC)
    notifications.rows[1].claimed_at = now - timedelta(hours=1)
    notifications.rows[2].claimed_at = now

    summary = asyncio.run(dispatcher.send_due_now(BIRTHDAY))

    assert summary.interrupted == 1
    assert summary.attempted == 0
    assert transport.calls == []
    stale = asyncio.run(notifications.get(1, 2025))
    assert stale.status is NotificationStatus.FAILED
    assert stale.last_error == "interrupted while sending"
    assert stale.claimed_at is None
    in_flight = asyncio.run(notifications.get(2, 2025))
    assert in_flight.status is NotificationStatus.PENDING
    assert in_flight.claimed_at is not None


def test_outcome_not_counted_when_row_changes_mid_send(notifications, profiles, settings_service):
    class ExcludingTransport(FakeTransport):
        async def send(self, phone_number, message, attachment_url=None):
            await notifications.set_exclusion(1, True)
            return await super().send(phone_number, message, attachment_url)

    transport = ExcludingTransport()
    dispatcher = BirthdayDispatchService(notifications, profiles, settings_service, transport)
    _seed(profiles, notifications, create_test_profile(1, date(1990, 6, 15)))

    summary = asyncio.run(dispatcher.send_due_now(BIRTHDAY))

    assert (summary.attempted, summary.sent, summary.failed) == (1, 0, 0)
    assert summary.unconfirmed == 1
    assert asyncio.run(notifications.get(1, 2025)).status is NotificationStatus.EXCLUDED


class TestDispatchRecord:
    def test_resend_bypasses_status_guard(self, dispatcher, profiles, notifications, transport):
        _seed(profiles, notifications, create_test_profile(1, date(1990, 6, 15)))
        asyncio.run(dispatcher.send_due_now(BIRTHDAY))
        record = asyncio.run(notifications.get(1, 2025))

        resent = asyncio.run(dispatcher.dispatch_record(record.id))

        assert resent.status is NotificationStatus.SENT
        assert len(transport.calls) == 2

    def test_failure_recorded_and_raised(self, dispatcher, profiles, notifications, transport):
        transport.success = False
        _seed(profiles, notifications, create_test_profile(1, date(1990, 6, 15)))
        record = asyncio.run(notifications.get(1, 2025))

        with pytest.raises(DeliveryError) as exc_info:
            asyncio.run(dispatcher.dispatch_record(record.id))

        assert exc_info.value.reason == "provider rejected"
        stored = asyncio.run(notifications.get_by_id(record.id))
        assert stored.status is NotificationStatus.FAILED
        assert stored.last_error == "provider rejected"

    def test_missing_record(self, dispatcher):
        with pytest.raises(RecordNotFoundError):
            asyncio.run(dispatcher.dispatch_record(999))

    def test_missing_phone_number(self, dispatcher, profiles, notifications, transport):
        _seed(profiles, notifications, create_test_profile(1, date(1990, 6, 15), phone=None))
        record = asyncio.run(notifications.get(1, 2025))

        with pytest.raises(MissingPhoneNumberError):
            asyncio.run(dispatcher.dispatch_record(record.id))

        assert transport.calls == []
        assert asyncio.run(notifications.get(1, 2025)).status is NotificationStatus.PENDING

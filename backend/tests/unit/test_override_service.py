"""Unit tests for operator overrides."""

import asyncio
from datetime import date

import pytest

from api.services import (
    DeliveryError,
    MissingPhoneNumberError,
    ProfileNotFoundError,
    RecordNotFoundError,
)
from api.services.birthday_settings_service import local_today
from shared.models.birthday import DEFAULT_TIMEZONE, NotificationStatus
from tests.fixtures.profile_factory import create_test_profile


@pytest.fixture
def year() -> int:
    return local_today(DEFAULT_TIMEZONE).year


def _generate(generation, *years):
    for y in years:
        asyncio.run(generation.generate_for_year(y))


class TestExcludePerson:
    def test_exclusion_propagates_to_pending_rows(
        self, overrides, generation, profiles, notifications, year
    ):
        profiles.add(create_test_profile(1, date(1990, 6, 15)))
        _generate(generation, year, year + 1)

        result = asyncio.run(overrides.exclude_person(1, True))

        assert result["records_updated"] == 2
        assert profiles.profiles[1].birthday_excluded is True
        for y in (year, year + 1):
            record = asyncio.run(notifications.get(1, y))
            assert record.status is NotificationStatus.EXCLUDED
            assert record.is_excluded is True

    def test_excluded_row_absent_from_due_list(
        self, overrides, generation, profiles, notifications, year
    ):
        profiles.add(create_test_profile(1, date(1990, 6, 15)))
        _generate(generation, year)

        asyncio.run(overrides.exclude_person(1, True))

        due = asyncio.run(notifications.list_due(date(year, 6, 15), 0))
        assert due == []

    def test_include_restores_pending(self, overrides, generation, profiles, notifications, year):
        profiles.add(create_test_profile(1, date(1990, 6, 15)))
        _generate(generation, year)
        asyncio.run(overrides.exclude_person(1, True))

        asyncio.run(overrides.exclude_person(1, False))

        record = asyncio.run(notifications.get(1, year))
        assert record.status is NotificationStatus.PENDING
        assert record.is_excluded is False
        assert len(asyncio.run(notifications.list_due(date(year, 6, 15), 0))) == 1

    def test_sent_record_stays_sent(
        self, overrides, generation, dispatcher, profiles, notifications, year
    ):
        profiles.add(create_test_profile(1, date(1990, 6, 15)))
        _generate(generation, year)
        asyncio.run(dispatcher.send_due_now(date(year, 6, 15)))

        asyncio.run(overrides.exclude_person(1, True))
        assert asyncio.run(notifications.get(1, year)).status is NotificationStatus.SENT

        asyncio.run(overrides.exclude_person(1, False))
        assert asyncio.run(notifications.get(1, year)).status is NotificationStatus.SENT

    def test_past_years_untouched(self, overrides, generation, profiles, notifications, year):
        profiles.add(create_test_profile(1, date(1990, 6, 15)))
        _generate(generation, year - 1, year)

        asyncio.run(overrides.exclude_person(1, True))

        assert asyncio.run(notifications.get(1, year - 1)).status is NotificationStatus.PENDING

    def test_creates_excluded_record_when_missing(self, overrides, profiles, notifications, year):
        profiles.add(create_test_profile(1, date(1990, 6, 15)))

        result = asyncio.run(overrides.exclude_person(1, True))

        assert result["records_updated"] == 1
        assert asyncio.run(notifications.get(1, year)).status is NotificationStatus.EXCLUDED

    def test_unknown_person(self, overrides):
        with pytest.raises(ProfileNotFoundError):
            asyncio.run(overrides.exclude_person(42, True))


class TestExcludeRecord:
    def test_toggle_single_record(self, overrides, generation, profiles, notifications, year):
        profiles.add(create_test_profile(1, date(1990, 6, 15)))
        _generate(generation, year)
        record = asyncio.run(notifications.get(1, year))

        excluded = asyncio.run(overrides.exclude_record(record.id, True))
        assert excluded.status is NotificationStatus.EXCLUDED
        assert profiles.profiles[1].birthday_excluded is False

        included = asyncio.run(overrides.exclude_record(record.id, False))
        assert included.status is NotificationStatus.PENDING

    def test_unknown_record(self, overrides):
        with pytest.raises(RecordNotFoundError):
            asyncio.run(overrides.exclude_record(999, True))


class TestResetToPending:
    def test_rearms_sent_record(
        self, overrides, generation, dispatcher, profiles, notifications, year
    ):
        profiles.add(create_test_profile(1, date(1990, 6, 15)))
        _generate(generation, year)
        asyncio.run(dispatcher.send_due_now(date(year, 6, 15)))

        record = asyncio.run(overrides.reset_to_pending(1))

        assert record.status is NotificationStatus.PENDING
        assert record.sent_at is None
        assert record.last_error is None

    def test_creates_record_when_missing(self, overrides, profiles, notifications, year):
        profiles.add(create_test_profile(1, date(1990, 6, 15)))

        record = asyncio.run(overrides.reset_to_pending(1))

        assert record.year == year
        assert record.status is NotificationStatus.PENDING

    def test_person_without_birth_date(self, overrides, profiles):
        profiles.add(create_test_profile(1, None))
        with pytest.raises(RecordNotFoundError):
            asyncio.run(overrides.reset_to_pending(1))


class TestSendNow:
    def test_sends_current_year_record(self, overrides, profiles, notifications, transport, year):
        profiles.add(create_test_profile(1, date(1990, 6, 15)))

        record = asyncio.run(overrides.send_now(1))

        assert record.status is NotificationStatus.SENT
        assert f"ke-{year - 1990}" in transport.calls[0][1]

    def test_transport_failure_surfaces(self, overrides, profiles, transport):
        transport.success = False
        profiles.add(create_test_profile(1, date(1990, 6, 15)))

        with pytest.raises(DeliveryError):
            asyncio.run(overrides.send_now(1))

    def test_missing_record_mirrors_exclusion_flag(
        self, overrides, profiles, notifications, transport, year
    ):
        profiles.add(create_test_profile(1, date(1990, 6, 15), excluded=True))

        record = asyncio.run(overrides.send_now(1))

        assert record.is_excluded is True
        assert record.status is NotificationStatus.SENT
        assert len(transport.calls) == 1


class TestTestSend:
    def test_does_not_touch_records(
        self, overrides, generation, profiles, notifications, transport, year
    ):
        profiles.add(create_test_profile(1, date(1990, 6, 15)))
        _generate(generation, year)
        count_before = notifications.count()
        writes_before = notifications.writes

        result = asyncio.run(overrides.test_send(1, "+6281299998888"))

        assert notifications.count() == count_before
        assert notifications.writes == writes_before
        assert asyncio.run(notifications.get(1, year)).status is NotificationStatus.PENDING
        assert result["phone_number"] == "+6281299998888"
        assert transport.calls[0][0] == "+6281299998888"

    def test_falls_back_to_profile_phone(self, overrides, profiles, transport):
        profiles.add(create_test_profile(1, date(1990, 6, 15), phone="081200001111"))

        asyncio.run(overrides.test_send(1))

        assert transport.calls[0][0] == "081200001111"

    def test_no_phone_anywhere(self, overrides, profiles):
        profiles.add(create_test_profile(1, date(1990, 6, 15), phone=None))
        with pytest.raises(MissingPhoneNumberError):
            asyncio.run(overrides.test_send(1))

    def test_failed_test_send_raises(self, overrides, profiles, notifications, transport):
        transport.success = False
        profiles.add(create_test_profile(1, date(1990, 6, 15)))

        with pytest.raises(DeliveryError):
            asyncio.run(overrides.test_send(1))
        assert notifications.count() == 0

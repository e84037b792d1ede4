import pytest

from api.services import (
    BirthdayDispatchService,
    BirthdayGenerationService,
    BirthdayJobs,
    BirthdayOverrideService,
    BirthdayQueryService,
    BirthdaySettingsService,
)
from tests.fixtures.fakes import (
    FakeNotificationRepository,
    FakeProfileRepository,
    FakeSettingsRepository,
    FakeTransport,
)


@pytest.fixture
def profiles() -> FakeProfileRepository:
    return FakeProfileRepository()


@pytest.fixture
def notifications(profiles) -> FakeNotificationRepository:
    return FakeNotificationRepository(profiles)


@pytest.fixture
def settings_repo() -> FakeSettingsRepository:
    return FakeSettingsRepository()


@pytest.fixture
def settings_service(settings_repo) -> BirthdaySettingsService:
    return BirthdaySettingsService(settings_repo)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def generation(notifications, profiles) -> BirthdayGenerationService:
    return BirthdayGenerationService(notifications, profiles)


@pytest.fixture
def dispatcher(notifications, profiles, settings_service, transport) -> BirthdayDispatchService:
    return BirthdayDispatchService(
        notifications, profiles, settings_service, transport, send_timeout=0.5
    )


@pytest.fixture
def overrides(notifications, profiles, settings_service, dispatcher) -> BirthdayOverrideService:
    return BirthdayOverrideService(notifications, profiles, settings_service, dispatcher)


@pytest.fixture
def queries(notifications, profiles, settings_service) -> BirthdayQueryService:
    return BirthdayQueryService(notifications, profiles, settings_service)


@pytest.fixture
def jobs(settings_service, generation, dispatcher) -> BirthdayJobs:
    return BirthdayJobs(
        settings_service=settings_service, generation=generation, dispatcher=dispatcher
    )

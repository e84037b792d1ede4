"""Repository layer for the birthday notification engine."""

from .birthday import BirthdayNotificationRepository
from .birthday_settings import BirthdaySettingsRepository
from .profile import ProfileRepository

__all__ = [
    "BirthdayNotificationRepository",
    "BirthdaySettingsRepository",
    "ProfileRepository",
]

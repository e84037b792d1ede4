"""Data models for the birthday notification engine."""

from .birthday import (
    BirthdayNotification,
    BirthdaySettings,
    NotificationFilter,
    NotificationStatus,
    Page,
    PageRequest,
    default_birthday_settings,
)
from .profile import AlumniProfile

__all__ = [
    "AlumniProfile",
    "BirthdayNotification",
    "BirthdaySettings",
    "NotificationFilter",
    "NotificationStatus",
    "Page",
    "PageRequest",
    "default_birthday_settings",
]

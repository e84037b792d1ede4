"""Data models for the birthday notification tables."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

DEFAULT_MESSAGE_TEMPLATE = (
    "Selamat ulang tahun! Semoga panjang umur, sehat selalu, dan sukses dalam karir. "
    "Salam hangat dari Alumni Association."
)
DEFAULT_SCHEDULE_EXPRESSION = "0 0 8 * * *"
DEFAULT_TIMEZONE = "Asia/Jakarta"


class NotificationStatus(str, Enum):
    """Lifecycle of a yearly birthday notification."""

    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    EXCLUDED = "EXCLUDED"

    @property
    def display_name(self) -> str:
        return _STATUS_LABELS[self]


_STATUS_LABELS = {
    NotificationStatus.PENDING: "Menunggu",
    NotificationStatus.SENT: "Terkirim",
    NotificationStatus.FAILED: "Gagal",
    NotificationStatus.EXCLUDED: "Dikecualikan",
}


@dataclass
class BirthdayNotification:
    """One row per person per calendar year."""

    id: int
    person_id: int
    year: int
    birth_date: date
    occurrence_date: date
    status: NotificationStatus = NotificationStatus.PENDING
    is_excluded: bool = False
    sent_at: datetime | None = None
    last_error: str | None = None
    claimed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        # asyncpg hands back the status column as text
        if not isinstance(self.status, NotificationStatus):
            self.status = NotificationStatus(self.status)


@dataclass
class BirthdaySettings:
    """Process-wide birthday notification settings (singleton row)."""

    enabled: bool = True
    schedule_expression: str = DEFAULT_SCHEDULE_EXPRESSION
    timezone: str = DEFAULT_TIMEZONE
    lead_days: int = 0
    include_age: bool = True
    message_template: str = DEFAULT_MESSAGE_TEMPLATE
    attachment_image_url: str | None = None
    updated_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


def default_birthday_settings() -> BirthdaySettings:
    """Built-in settings used while no settings row has been stored."""
    return BirthdaySettings()


@dataclass
class NotificationFilter:
    """Filter for listing notification records. ``None`` fields are ignored."""

    year: int | None = None
    alumni_cohort: str | None = None
    status: NotificationStatus | None = None
    is_excluded: bool | None = None
    start_occurrence_date: date | None = None
    end_occurrence_date: date | None = None
    start_birth_date: date | None = None
    end_birth_date: date | None = None
    name: str | None = None


@dataclass
class PageRequest:
    page: int = 0
    size: int = 10
    sort_by: str = "occurrence_date"
    sort_direction: str = "ASC"


@dataclass
class Page:
    items: list[dict] = field(default_factory=list)
    total: int = 0
    page: int = 0
    size: int = 10

    @property
    def total_pages(self) -> int:
        if self.size <= 0:
            return 0
        return (self.total + self.size - 1) // self.size

"""Alumni profile model (owned by the profile store)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime


@dataclass
class AlumniProfile:
    id: int
    display_name: str
    birth_date: date | None = None
    alumni_cohort: str | None = None
    phone_number: str | None = None
    birthday_excluded: bool = False
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

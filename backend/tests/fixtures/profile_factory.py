"""Factory for alumni profiles used across the birthday tests."""

from datetime import date

from shared.models.profile import AlumniProfile


def create_test_profile(
    person_id: int,
    birth_date: date | None,
    *,
    name: str | None = None,
    phone: str | None = "081234567890",
    cohort: str | None = "2010",
    excluded: bool = False,
    active: bool = True,
) -> AlumniProfile:
    return AlumniProfile(
        id=person_id,
        display_name=name or f"Alumni {person_id}",
        birth_date=birth_date,
        alumni_cohort=cohort,
        phone_number=phone,
        birthday_excluded=excluded,
        is_active=active,
    )

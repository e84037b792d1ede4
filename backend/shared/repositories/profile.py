"""Repository for the alumni_profiles table (read side of the profile store).

The portal owns these rows; the birthday engine only reads birth data and
flips the birthday exclusion flag.
"""

from __future__ import annotations

import asyncpg

from shared.models.profile import AlumniProfile

_COLUMNS = (
    "id, display_name, birth_date, alumni_cohort, phone_number, "
    "birthday_excluded, is_active, created_at, updated_at"
)


class ProfileRepository:
    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def list_active_with_birth_date(self) -> list[AlumniProfile]:
        """Active profiles that have a birth date on file, ordered by id."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS} FROM alumni_profiles
                WHERE is_active AND birth_date IS NOT NULL
                ORDER BY id
                """
            )
            return [AlumniProfile(**dict(row)) for row in rows]

    async def get_profile(self, person_id: int) -> AlumniProfile | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM alumni_profiles WHERE id = $1",
                person_id,
            )
            return AlumniProfile(**dict(row)) if row else None

    async def get_exclusion_flag(self, person_id: int) -> bool | None:
        """The person's permanent exclusion flag, or None if no such profile."""
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                "SELECT birthday_excluded FROM alumni_profiles WHERE id = $1",
                person_id,
            )

    async def set_exclusion_flag(self, person_id: int, excluded: bool) -> bool:
        """Update the exclusion flag. Returns False if the profile does not exist."""
        async with self.pool.acquire() as conn:
            result: str = await conn.execute(
                """
                UPDATE alumni_profiles
                SET birthday_excluded = $2, updated_at = NOW()
                WHERE id = $1
                """,
                person_id,
                excluded,
            )
        return result == "UPDATE 1"

    async def count_with_birth_date(self) -> int:
        async with self.pool.acquire() as conn:
            return int(
                await conn.fetchval(
                    "SELECT COUNT(*) FROM alumni_profiles "
                    "WHERE is_active AND birth_date IS NOT NULL"
                )
            )

    async def count_excluded(self) -> int:
        async with self.pool.acquire() as conn:
            return int(
                await conn.fetchval(
                    "SELECT COUNT(*) FROM alumni_profiles WHERE is_active AND birthday_excluded"
                )
            )

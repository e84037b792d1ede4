"""Repository for the birthday_settings singleton row."""

from __future__ import annotations

import asyncpg

from shared.cache import AsyncTTLCache, cached
from shared.models.birthday import BirthdaySettings

_settings_cache = AsyncTTLCache(maxsize=1, ttl=120)
_CACHE_KEY = "birthday_settings"

_COLUMNS = (
    "enabled, schedule_expression, timezone, lead_days, include_age, "
    "message_template, attachment_image_url, updated_by, created_at, updated_at"
)


class BirthdaySettingsRepository:
    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    @cached(cache=_settings_cache, key_func=lambda self: _CACHE_KEY)
    async def get(self) -> BirthdaySettings | None:
        """Stored settings, or None while no row has been written."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(f"SELECT {_COLUMNS} FROM birthday_settings WHERE id = 1")
            return BirthdaySettings(**dict(row)) if row else None

    async def save(self, settings: BirthdaySettings) -> BirthdaySettings:
        """Insert or replace the singleton row."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO birthday_settings
                    (id, enabled, schedule_expression, timezone, lead_days, include_age,
                     message_template, attachment_image_url, updated_by)
                VALUES (1, $1, $2, $3, $4, $5, $6, $7, $8)
                ON CONFLICT (id) DO UPDATE SET
                    enabled              = EXCLUDED.enabled,
                    schedule_expression  = EXCLUDED.schedule_expression,
                    timezone             = EXCLUDED.timezone,
                    lead_days            = EXCLUDED.lead_days,
                    include_age          = EXCLUDED.include_age,
                    message_template     = EXCLUDED.message_template,
                    attachment_image_url = EXCLUDED.attachment_image_url,
                    updated_by           = EXCLUDED.updated_by,
                    updated_at           = NOW()
                RETURNING {_COLUMNS}
                """,
                settings.enabled,
                settings.schedule_expression,
                settings.timezone,
                settings.lead_days,
                settings.include_age,
                settings.message_template,
                settings.attachment_image_url,
                settings.updated_by,
            )
        _settings_cache.invalidate(_CACHE_KEY)
        return BirthdaySettings(**dict(row))

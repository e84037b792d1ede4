"""SQL migration runner for the birthday notification schema."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

import asyncpg

logger = logging.getLogger(__name__)

VERSIONS_DIR = Path(__file__).resolve().parent / "versions"

_FILENAME = re.compile(r"^(?P<number>\d{3})_(?P<slug>[a-z0-9_]+)\.sql$")

# pg_advisory_lock key; any constant shared by every runner works
_LOCK_KEY = 0x0B1D7DA7


@dataclass(frozen=True)
class Migration:
    version: str
    path: Path

    @property
    def name(self) -> str:
        return self.path.name

    def read(self) -> str:
        return self.path.read_text(encoding="utf-8")


class MigrationRunner:
    """Apply ``versions/NNN_description.sql`` files once each, in order.

    Applied versions are recorded in ``schema_migrations``. A session-level
    advisory lock keeps two processes from migrating at the same time.
    """

    TRACKING_TABLE = "schema_migrations"

    def __init__(self, pool: asyncpg.Pool, migrations_dir: Path | None = None) -> None:
        self.pool = pool
        self.migrations_dir = migrations_dir or VERSIONS_DIR

    def discover(self) -> list[Migration]:
        """Migration files ordered by number. Misnamed or duplicate numbers are an error."""
        found: dict[str, Migration] = {}
        for path in self.migrations_dir.glob("*.sql"):
            match = _FILENAME.match(path.name)
            if match is None:
                raise ValueError(f"Migration file name must look like 001_name.sql: {path.name}")
            number = match["number"]
            if number in found:
                raise ValueError(
                    f"Duplicate migration number {number}: {found[number].name}, {path.name}"
                )
            found[number] = Migration(version=path.stem, path=path)
        return [found[n] for n in sorted(found)]

    async def _ensure_table(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.TRACKING_TABLE} (
                version    TEXT PRIMARY KEY,
                name       TEXT NOT NULL,
                applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """
        )

    async def _applied(self, conn: asyncpg.Connection) -> set[str]:
        rows = await conn.fetch(f"SELECT version FROM {self.TRACKING_TABLE}")  # noqa: S608
        return {row["version"] for row in rows}

    async def get_applied(self) -> set[str]:
        async with self.pool.acquire() as conn:
            await self._ensure_table(conn)
            return await self._applied(conn)

    async def pending(self) -> list[str]:
        """Versions that :meth:`run_pending` would apply."""
        applied = await self.get_applied()
        return [m.version for m in self.discover() if m.version not in applied]

    async def run_pending(self) -> list[str]:
        """Apply every pending migration, each in its own transaction."""
        migrations = self.discover()
        if not migrations:
            logger.info(f"No migration files in {self.migrations_dir}")
            return []

        newly_applied: list[str] = []
        async with self.pool.acquire() as conn:
            await conn.execute("SELECT pg_advisory_lock($1)", _LOCK_KEY)
            try:
                await self._ensure_table(conn)
                applied = await self._applied(conn)
                for migration in migrations:
                    if migration.version in applied:
                        continue
                    logger.info(f"Applying migration {migration.version}")
                    async with conn.transaction():
                        await conn.execute(migration.read())
                        await conn.execute(
                            f"INSERT INTO {self.TRACKING_TABLE} (version, name) VALUES ($1, $2)",
                            migration.version,
                            migration.name,
                        )
                    newly_applied.append(migration.version)
            finally:
                await conn.execute("SELECT pg_advisory_unlock($1)", _LOCK_KEY)

        if newly_applied:
            logger.info(f"Applied {len(newly_applied)} migration(s): {', '.join(newly_applied)}")
        else:
            logger.info("Schema is up to date")
        return newly_applied

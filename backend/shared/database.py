"""asyncpg pool shared by the API server and the operator scripts."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any

import asyncpg

logger = logging.getLogger(__name__)

APPLICATION_NAME = "birthday-notifications"


@dataclass(frozen=True)
class PoolConfig:
    """Pool sizing, timeouts and connect-retry policy."""

    service: str = "api"
    min_size: int = 1
    max_size: int = 5
    acquire_timeout: float = 5.0
    command_timeout: float = 15.0
    idle_lifetime: float = 300.0
    connect_attempts: int = 3
    backoff_base: float = 3.0
    ssl: bool = False

    @classmethod
    def for_service(cls, service: str, **overrides: Any) -> PoolConfig:
        """Preset for *service* (``api`` or ``script``), with keyword overrides applied."""
        base = _PRESETS.get(service, cls(service=service))
        return replace(base, **overrides)

    @property
    def application_name(self) -> str:
        return f"{APPLICATION_NAME}-{self.service}"


# api: long-running server; the scheduler keeps one connection warm
# script: one-shot CLI run (migrations, manual jobs), fail fast
_PRESETS: dict[str, PoolConfig] = {
    "api": PoolConfig(service="api", min_size=1, max_size=10),
    "script": PoolConfig(service="script", min_size=1, max_size=2, connect_attempts=1),
}


class DatabaseManager:
    """Owns one asyncpg pool: open with retry, health probe, close."""

    def __init__(self, database_url: str, config: PoolConfig | None = None):
        self.database_url = database_url
        self.config = config or PoolConfig()
        self._pool: asyncpg.Pool | None = None

    async def _open_pool(self) -> asyncpg.Pool:
        cfg = self.config
        pool = await asyncpg.create_pool(
            dsn=self.database_url,
            min_size=cfg.min_size,
            max_size=cfg.max_size,
            timeout=cfg.acquire_timeout,
            command_timeout=cfg.command_timeout,
            max_inactive_connection_lifetime=cfg.idle_lifetime,
            ssl="require" if cfg.ssl else None,
            # TIMESTAMPTZ values come back in UTC
            server_settings={"application_name": cfg.application_name, "timezone": "UTC"},
        )
        try:
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
        except BaseException:
            await pool.close()
            raise
        return pool

    # ── Lifecycle ────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the pool, retrying with exponential backoff."""
        if self._pool is not None:
            logger.warning("Database pool already open")
            return

        cfg = self.config
        attempt = 0
        while True:
            attempt += 1
            try:
                self._pool = await self._open_pool()
            except Exception as e:
                if attempt >= cfg.connect_attempts:
                    logger.error(
                        f"Database unreachable after {attempt} attempt(s): "
                        f"{type(e).__name__}: {e or repr(e)}"
                    )
                    raise
                delay = cfg.backoff_base * 2 ** (attempt - 1)
                logger.warning(
                    f"Database connect attempt {attempt}/{cfg.connect_attempts} failed "
                    f"({type(e).__name__}), retrying in {delay:g}s"
                )
                await asyncio.sleep(delay)
            else:
                logger.info(
                    f"Database pool ready for {cfg.application_name} "
                    f"(size={cfg.min_size}-{cfg.max_size})"
                )
                return

    async def disconnect(self) -> None:
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.close()
        logger.info("Database pool closed")

    async def check_health(self) -> bool:
        """True if a connection can be acquired and answers a trivial query."""
        if self._pool is None:
            return False
        try:
            async with self._pool.acquire(timeout=2.0) as conn:
                return await conn.fetchval("SELECT 1") == 1
        except (asyncpg.PostgresError, OSError, TimeoutError) as e:
            logger.warning(f"Database health check failed: {type(e).__name__}: {e}")
            return False

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database pool is not open; call connect() first")
        return self._pool

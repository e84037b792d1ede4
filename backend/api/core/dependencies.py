"""Dependency injection utilities for FastAPI"""

import logging

import asyncpg
from fastapi import Depends, HTTPException

from api.core.config import get_settings
from api.core.database import get_database_manager
from api.services import (
    BirthdayDispatchService,
    BirthdayGenerationService,
    BirthdayJobs,
    BirthdayOverrideService,
    BirthdayQueryService,
    BirthdaySettingsService,
    WhatsAppAPIClient,
)
from shared.repositories import (
    BirthdayNotificationRepository,
    BirthdaySettingsRepository,
    ProfileRepository,
)

logger = logging.getLogger(__name__)


# ============================================
# Shared Clients
# ============================================

_whatsapp_api: WhatsAppAPIClient | None = None


def get_whatsapp_api() -> WhatsAppAPIClient:
    """Get shared WhatsAppAPIClient singleton (connection reuse)."""
    global _whatsapp_api
    if _whatsapp_api is None:
        settings = get_settings()
        _whatsapp_api = WhatsAppAPIClient(
            api_url=settings.whatsapp_api_url,
            api_token=settings.whatsapp_api_token,
            timeout=settings.whatsapp_timeout,
            default_country_code=settings.whatsapp_default_country_code,
        )
        if not _whatsapp_api.is_configured:
            logger.warning("WhatsApp gateway not configured, deliveries will fail")
    return _whatsapp_api


async def close_whatsapp_api() -> None:
    """Close the shared WhatsAppAPIClient. Call on app shutdown."""
    global _whatsapp_api
    if _whatsapp_api is not None:
        await _whatsapp_api.close()
        _whatsapp_api = None


def get_db_pool() -> asyncpg.Pool:
    db_manager = get_database_manager()
    if not db_manager.is_connected:
        raise HTTPException(status_code=503, detail="Database not ready")
    return db_manager.pool


# ============================================
# Service Builders
# ============================================


def build_birthday_jobs(pool: asyncpg.Pool) -> BirthdayJobs:
    """Wire the settings, generation and dispatch services on top of *pool*."""
    notifications = BirthdayNotificationRepository(pool)
    profiles = ProfileRepository(pool)
    settings_service = BirthdaySettingsService(BirthdaySettingsRepository(pool))
    dispatcher = BirthdayDispatchService(
        notifications,
        profiles,
        settings_service,
        get_whatsapp_api(),
        send_timeout=get_settings().whatsapp_timeout,
    )
    return BirthdayJobs(
        settings_service=settings_service,
        generation=BirthdayGenerationService(notifications, profiles),
        dispatcher=dispatcher,
    )


def scheduler_jobs() -> BirthdayJobs:
    """Jobs factory for the background scheduler; raises while the DB is not connected."""
    pool = get_database_manager().pool
    return build_birthday_jobs(pool)


# ============================================
# Service Dependencies
# ============================================


def get_birthday_jobs(pool: asyncpg.Pool = Depends(get_db_pool)) -> BirthdayJobs:
    return build_birthday_jobs(pool)


def get_birthday_settings_service(
    pool: asyncpg.Pool = Depends(get_db_pool),
) -> BirthdaySettingsService:
    return BirthdaySettingsService(BirthdaySettingsRepository(pool))


def get_birthday_generation_service(
    jobs: BirthdayJobs = Depends(get_birthday_jobs),
) -> BirthdayGenerationService:
    return jobs.generation


def get_birthday_dispatch_service(
    jobs: BirthdayJobs = Depends(get_birthday_jobs),
) -> BirthdayDispatchService:
    return jobs.dispatcher


def get_birthday_override_service(
    pool: asyncpg.Pool = Depends(get_db_pool),
    jobs: BirthdayJobs = Depends(get_birthday_jobs),
) -> BirthdayOverrideService:
    return BirthdayOverrideService(
        BirthdayNotificationRepository(pool),
        ProfileRepository(pool),
        jobs.settings_service,
        jobs.dispatcher,
    )


def get_birthday_query_service(
    pool: asyncpg.Pool = Depends(get_db_pool),
    settings_service: BirthdaySettingsService = Depends(get_birthday_settings_service),
) -> BirthdayQueryService:
    return BirthdayQueryService(
        BirthdayNotificationRepository(pool),
        ProfileRepository(pool),
        settings_service,
    )

"""Birthday notification settings API routes."""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel, Field

from api.core.dependencies import get_birthday_settings_service
from api.services import BirthdaySettingsService
from shared.models.birthday import BirthdaySettings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/birthday-settings", tags=["birthday-settings"])


# ============================================
# Request / Response Models
# ============================================


class BirthdaySettingsResponse(BaseModel):
    enabled: bool
    schedule_expression: str
    timezone: str
    lead_days: int
    include_age: bool
    message_template: str
    attachment_image_url: str | None = None
    updated_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class BirthdaySettingsUpdate(BaseModel):
    enabled: bool | None = None
    schedule_expression: str | None = None
    timezone: str | None = None
    lead_days: int | None = Field(default=None, ge=0)
    include_age: bool | None = None
    message_template: str | None = None
    attachment_image_url: str | None = None
    updated_by: str | None = None


class ResetDefaultsRequest(BaseModel):
    updated_by: str | None = None


def _settings_response(settings: BirthdaySettings) -> BirthdaySettingsResponse:
    return BirthdaySettingsResponse(**asdict(settings))


# ============================================
# Endpoints
# ============================================


@router.get("", response_model=BirthdaySettingsResponse)
async def get_birthday_settings(
    service: BirthdaySettingsService = Depends(get_birthday_settings_service),
) -> BirthdaySettingsResponse:
    """Current settings (built-in defaults until first saved)."""
    return _settings_response(await service.get_settings())


@router.put("", response_model=BirthdaySettingsResponse)
async def update_birthday_settings(
    body: BirthdaySettingsUpdate,
    service: BirthdaySettingsService = Depends(get_birthday_settings_service),
) -> BirthdaySettingsResponse:
    """Partially update settings. Omitted fields keep their current value."""
    changes = body.model_dump(exclude_unset=True)
    updated_by = changes.pop("updated_by", None)
    try:
        settings = await service.update_settings(updated_by=updated_by, **changes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return _settings_response(settings)


@router.post("/reset-defaults", response_model=BirthdaySettingsResponse)
async def reset_birthday_settings(
    body: ResetDefaultsRequest | None = Body(default=None),
    service: BirthdaySettingsService = Depends(get_birthday_settings_service),
) -> BirthdaySettingsResponse:
    settings = await service.reset_to_defaults(body.updated_by if body else None)
    return _settings_response(settings)

"""Birthday notification admin API routes."""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date, datetime

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel

from api.core.dependencies import (
    get_birthday_dispatch_service,
    get_birthday_generation_service,
    get_birthday_override_service,
    get_birthday_query_service,
)
from api.services import (
    BirthdayDispatchService,
    BirthdayGenerationService,
    BirthdayOverrideService,
    BirthdayQueryService,
    DeliveryError,
)
from shared.models.birthday import (
    BirthdayNotification,
    NotificationFilter,
    NotificationStatus,
    PageRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/birthday", tags=["birthday"])


# ============================================
# Request / Response Models
# ============================================


class NotificationRecordResponse(BaseModel):
    id: int
    person_id: int
    year: int
    birth_date: date
    occurrence_date: date
    status: NotificationStatus
    status_label: str
    is_excluded: bool
    sent_at: datetime | None = None
    last_error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class NotificationListItem(NotificationRecordResponse):
    display_name: str | None = None
    alumni_cohort: str | None = None
    phone_number: str | None = None
    notification_date: date
    age: int


class NotificationPageResponse(BaseModel):
    items: list[NotificationListItem]
    total: int
    page: int
    size: int
    total_pages: int


class BirthdayWindowItem(BaseModel):
    person_id: int
    display_name: str | None = None
    alumni_cohort: str | None = None
    birth_date: date
    occurrence_date: date
    age: int
    is_excluded: bool
    status: NotificationStatus | None = None
    status_label: str | None = None


class UpcomingBirthdayResponse(BirthdayWindowItem):
    days_until: int


class PastBirthdayResponse(BirthdayWindowItem):
    days_since: int


class StatisticsResponse(BaseModel):
    year: int
    by_status: dict[str, int]
    total_records: int
    total_profiles_with_birth_date: int
    total_excluded: int


class GenerationSummaryResponse(BaseModel):
    year: int
    created: int
    existing: int
    skipped: int


class DispatchSummaryResponse(BaseModel):
    attempted: int
    sent: int
    failed: int
    unconfirmed: int = 0
    interrupted: int = 0
    skipped_reason: str | None = None
    as_of: date | None = None


class ExclusionUpdate(BaseModel):
    excluded: bool


class PersonExclusionResponse(BaseModel):
    person_id: int
    excluded: bool
    records_updated: int


class SendTestRequest(BaseModel):
    phone_number: str | None = None


class SendTestResponse(BaseModel):
    person_id: int
    phone_number: str
    message: str
    message_id: str | None = None
    sent_on: date


# ============================================
# Helpers
# ============================================


def _record_response(record: BirthdayNotification) -> NotificationRecordResponse:
    data = asdict(record)
    data.pop("claimed_at", None)
    return NotificationRecordResponse(**data, status_label=record.status.display_name)


def _http_error(e: Exception) -> HTTPException:
    """Map service exceptions onto HTTP status codes."""
    if isinstance(e, LookupError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, DeliveryError):
        return HTTPException(status_code=502, detail=f"Delivery failed: {e.reason}")
    return HTTPException(status_code=400, detail=str(e))


# ============================================
# Query Endpoints
# ============================================


@router.get("/notifications", response_model=NotificationPageResponse)
async def list_notifications(
    year: int | None = None,
    alumni_cohort: str | None = None,
    status: NotificationStatus | None = None,
    is_excluded: bool | None = None,
    start_notification_date: date | None = None,
    end_notification_date: date | None = None,
    start_birth_date: date | None = None,
    end_birth_date: date | None = None,
    name: str | None = None,
    page: int = Query(default=0, ge=0),
    size: int = Query(default=10, ge=1, le=200),
    sort_by: str = "occurrence_date",
    sort_direction: str = "ASC",
    service: BirthdayQueryService = Depends(get_birthday_query_service),
) -> NotificationPageResponse:
    """List notification records with filters and pagination."""
    flt = NotificationFilter(
        year=year,
        alumni_cohort=alumni_cohort,
        status=status,
        is_excluded=is_excluded,
        start_birth_date=start_birth_date,
        end_birth_date=end_birth_date,
        name=name,
    )
    try:
        result = await service.list_notifications(
            flt,
            PageRequest(page=page, size=size, sort_by=sort_by, sort_direction=sort_direction),
            start_notification_date=start_notification_date,
            end_notification_date=end_notification_date,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return NotificationPageResponse(
        items=[NotificationListItem(**item) for item in result.items],
        total=result.total,
        page=result.page,
        size=result.size,
        total_pages=result.total_pages,
    )


@router.get("/upcoming", response_model=list[UpcomingBirthdayResponse])
async def get_upcoming_birthdays(
    days: int = Query(default=7, ge=0, le=366),
    service: BirthdayQueryService = Depends(get_birthday_query_service),
) -> list[UpcomingBirthdayResponse]:
    """Birthdays in the next N days, computed from profile birth dates."""
    items = await service.upcoming(days)
    return [UpcomingBirthdayResponse(**item) for item in items]


@router.get("/past", response_model=list[PastBirthdayResponse])
async def get_past_birthdays(
    days: int = Query(default=7, ge=0, le=366),
    service: BirthdayQueryService = Depends(get_birthday_query_service),
) -> list[PastBirthdayResponse]:
    """Birthdays in the last N days, computed from profile birth dates."""
    items = await service.past(days)
    return [PastBirthdayResponse(**item) for item in items]


@router.get("/statistics", response_model=StatisticsResponse)
async def get_statistics(
    year: int | None = None,
    service: BirthdayQueryService = Depends(get_birthday_query_service),
) -> StatisticsResponse:
    stats = await service.statistics(year)
    return StatisticsResponse(**stats)


# ============================================
# Job Endpoints
# ============================================


@router.post("/generate/{year}", response_model=GenerationSummaryResponse)
async def generate_notifications(
    year: int,
    service: BirthdayGenerationService = Depends(get_birthday_generation_service),
) -> GenerationSummaryResponse:
    """Create missing notification records for a year. Safe to call repeatedly."""
    try:
        summary = await service.generate_for_year(year)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return GenerationSummaryResponse(**asdict(summary))


@router.post("/send-today", response_model=DispatchSummaryResponse)
async def send_today(
    service: BirthdayDispatchService = Depends(get_birthday_dispatch_service),
) -> DispatchSummaryResponse:
    """Send today's due notifications now."""
    summary = await service.send_due_now()
    return DispatchSummaryResponse(**asdict(summary))


# ============================================
# Override Endpoints
# ============================================


@router.post("/resend/{record_id}", response_model=NotificationRecordResponse)
async def resend_notification(
    record_id: int,
    service: BirthdayOverrideService = Depends(get_birthday_override_service),
) -> NotificationRecordResponse:
    """Send a record again regardless of its status."""
    try:
        record = await service.resend(record_id)
    except (LookupError, ValueError, DeliveryError) as e:
        raise _http_error(e) from e
    return _record_response(record)


@router.post("/send/{person_id}", response_model=NotificationRecordResponse)
async def send_to_person(
    person_id: int,
    service: BirthdayOverrideService = Depends(get_birthday_override_service),
) -> NotificationRecordResponse:
    """Send this year's birthday message to one person now."""
    try:
        record = await service.send_now(person_id)
    except (LookupError, ValueError, DeliveryError) as e:
        raise _http_error(e) from e
    return _record_response(record)


@router.post("/test/{person_id}", response_model=SendTestResponse)
async def send_test_message(
    person_id: int,
    body: SendTestRequest | None = Body(default=None),
    service: BirthdayOverrideService = Depends(get_birthday_override_service),
) -> SendTestResponse:
    """Send a test message. Notification records are not touched."""
    phone_number = body.phone_number if body else None
    try:
        result = await service.test_send(person_id, phone_number)
    except (LookupError, ValueError, DeliveryError) as e:
        raise _http_error(e) from e
    return SendTestResponse(**result)


@router.put("/exclude/{person_id}", response_model=PersonExclusionResponse)
async def exclude_person(
    person_id: int,
    body: ExclusionUpdate,
    service: BirthdayOverrideService = Depends(get_birthday_override_service),
) -> PersonExclusionResponse:
    """Permanently exclude (or include) a person from birthday messages."""
    try:
        result = await service.exclude_person(person_id, body.excluded)
    except LookupError as e:
        raise _http_error(e) from e
    return PersonExclusionResponse(**result)


@router.put("/notifications/{record_id}/exclude", response_model=NotificationRecordResponse)
async def exclude_record(
    record_id: int,
    body: ExclusionUpdate,
    service: BirthdayOverrideService = Depends(get_birthday_override_service),
) -> NotificationRecordResponse:
    try:
        record = await service.exclude_record(record_id, body.excluded)
    except LookupError as e:
        raise _http_error(e) from e
    return _record_response(record)


@router.put("/reset-to-pending/{person_id}", response_model=NotificationRecordResponse)
async def reset_to_pending(
    person_id: int,
    service: BirthdayOverrideService = Depends(get_birthday_override_service),
) -> NotificationRecordResponse:
    """Re-arm the person's current-year notification."""
    try:
        record = await service.reset_to_pending(person_id)
    except LookupError as e:
        raise _http_error(e) from e
    return _record_response(record)

"""Services layer - Business logic

This module provides service classes for handling business logic.
Services are initialized with their dependencies and accessed through dependency injection.
"""

from .birthday_dispatch_service import BirthdayDispatchService, DispatchSummary
from .birthday_errors import (
    BirthdayError,
    DeliveryError,
    MissingPhoneNumberError,
    ProfileNotFoundError,
    RecordNotFoundError,
    TemplateError,
)
from .birthday_generation_service import BirthdayGenerationService, GenerationSummary
from .birthday_override_service import BirthdayOverrideService
from .birthday_query_service import BirthdayQueryService
from .birthday_scheduler import BirthdayJobs, BirthdayScheduler, birthday_tick
from .birthday_settings_service import BirthdaySettingsService
from .whatsapp_api import SendResult, WhatsAppAPIClient

__all__ = [
    "BirthdayDispatchService",
    "BirthdayError",
    "BirthdayGenerationService",
    "BirthdayJobs",
    "BirthdayOverrideService",
    "BirthdayQueryService",
    "BirthdayScheduler",
    "BirthdaySettingsService",
    "DeliveryError",
    "DispatchSummary",
    "GenerationSummary",
    "MissingPhoneNumberError",
    "ProfileNotFoundError",
    "RecordNotFoundError",
    "SendResult",
    "TemplateError",
    "WhatsAppAPIClient",
    "birthday_tick",
]

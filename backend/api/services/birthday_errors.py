"""Exceptions raised by the birthday services to single-record callers."""

from shared.birthday_message import TemplateError


class BirthdayError(Exception):
    """Base class for birthday notification errors."""


class RecordNotFoundError(BirthdayError, LookupError):
    pass


class ProfileNotFoundError(BirthdayError, LookupError):
    pass


class MissingPhoneNumberError(BirthdayError, ValueError):
    pass


class DeliveryError(BirthdayError, RuntimeError):
    """The transport reported a failure for an operator-triggered send."""

    def __init__(self, reason: str, record: object | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.record = record


__all__ = [
    "BirthdayError",
    "DeliveryError",
    "MissingPhoneNumberError",
    "ProfileNotFoundError",
    "RecordNotFoundError",
    "TemplateError",
]

"""WhatsApp gateway client (Wablas-compatible HTTP API).

Delivery is a single attempt: provider or network errors come back as a
failed :class:`SendResult`, never as an exception, and nothing is retried.
"""

import logging
import re
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

_NON_PHONE_CHARS = re.compile(r"[^+\d]")


@dataclass
class SendResult:
    """Outcome of one delivery attempt."""

    success: bool
    error: str | None = None
    message_id: str | None = None


def normalize_phone_number(phone_number: str, default_country_code: str = "62") -> str:
    """Format a stored phone number for WhatsApp delivery (``+<cc><number>``)."""
    cleaned = _NON_PHONE_CHARS.sub("", phone_number or "")
    if not cleaned.lstrip("+"):
        raise ValueError(f"Invalid phone number: {phone_number!r}")
    if cleaned.startswith("+"):
        return cleaned
    if cleaned.startswith(default_country_code) and len(cleaned) > len(default_country_code) + 6:
        return f"+{cleaned}"
    if cleaned.startswith("0"):
        cleaned = cleaned[1:]
    return f"+{default_country_code}{cleaned}"


class WhatsAppAPIClient:
    """Client for the WhatsApp gateway.

    Manages a shared httpx client for connection reuse.
    """

    def __init__(
        self,
        api_url: str,
        api_token: str,
        *,
        timeout: float = 15.0,
        default_country_code: str = "62",
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_token = api_token
        self.default_country_code = default_country_code

        # Shared HTTP client, reused across requests
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """Close the shared HTTP client. Call on app shutdown."""
        await self._http.aclose()

    @property
    def is_configured(self) -> bool:
        return bool(self.api_url and self.api_token)

    async def send(
        self,
        phone_number: str,
        message: str,
        attachment_url: str | None = None,
    ) -> SendResult:
        """Send a text message, or an image with caption when *attachment_url* is set."""
        if not self.is_configured:
            return SendResult(False, "whatsapp gateway not configured")

        try:
            phone = normalize_phone_number(phone_number, self.default_country_code)
        except ValueError as e:
            return SendResult(False, str(e))

        if attachment_url:
            url = f"{self.api_url}/api/send-image"
            data = {"phone": phone, "image": attachment_url, "caption": message}
        else:
            url = f"{self.api_url}/api/send-message"
            data = {"phone": phone, "message": message}

        logger.info(f"Sending WhatsApp message to {phone}")

        try:
            response = await self._http.post(
                url,
                data=data,
                headers={"Authorization": self.api_token},
            )
        except httpx.TimeoutException:
            logger.error(f"Timeout while sending WhatsApp message to {phone}")
            return SendResult(False, "timeout while contacting whatsapp gateway")
        except httpx.HTTPError as e:
            logger.error(f"WhatsApp gateway request failed: {type(e).__name__}: {e}")
            return SendResult(False, f"whatsapp gateway unreachable: {type(e).__name__}")

        if response.status_code != 200:
            logger.error(f"WhatsApp gateway returned {response.status_code} for {phone}")
            return SendResult(False, f"whatsapp gateway error: HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError:
            return SendResult(False, "whatsapp gateway returned a non-JSON response")

        if not body.get("status"):
            reason = body.get("message") or "unknown error"
            logger.warning(f"WhatsApp gateway rejected message to {phone}: {reason}")
            return SendResult(False, f"whatsapp gateway rejected message: {reason}")

        data_field = body.get("data")
        message_id = None
        if isinstance(data_field, dict):
            message_id = data_field.get("id")
            if message_id is None and isinstance(data_field.get("messages"), list):
                messages = data_field["messages"]
                message_id = messages[0].get("id") if messages else None
        return SendResult(True, message_id=str(message_id) if message_id is not None else None)

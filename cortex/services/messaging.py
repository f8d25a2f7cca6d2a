"""WhatsApp Cloud API sender."""

from __future__ import annotations

import logging
from typing import Any

import requests

from cortex.core.exceptions import MessagingError
from cortex.utils.validators import truncate_message

logger = logging.getLogger(__name__)

WHATSAPP_TEXT_LIMIT = 4096


class WhatsAppMessenger:
    """Outbound text sender; any failure surfaces as ``MessagingError``."""

    def __init__(
        self,
        api_url: str,
        phone_number_id: str | None,
        access_token: str | None,
        timeout_seconds: int = 15,
        http: requests.Session | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.phone_number_id = phone_number_id
        self.access_token = access_token
        self.timeout_seconds = timeout_seconds
        self.http = http or requests.Session()

    @classmethod
    def from_config(cls, config) -> "WhatsAppMessenger":
        return cls(
            api_url=config.WHATSAPP_API_URL,
            phone_number_id=config.WHATSAPP_PHONE_NUMBER_ID,
            access_token=config.WHATSAPP_ACCESS_TOKEN,
            timeout_seconds=config.WHATSAPP_TIMEOUT_SECONDS,
        )

    def send(self, to: str, text: str) -> dict[str, Any]:
        if not to:
            logger.warning("whatsapp.empty_recipient", extra={"event": "whatsapp.empty_recipient"})
            return {}
        if not self.phone_number_id or not self.access_token:
            raise MessagingError("WhatsApp credentials are not configured.")

        body = truncate_message(text, WHATSAPP_TEXT_LIMIT)
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "text",
            "text": {"preview_url": False, "body": body},
        }
        try:
            response = self.http.post(
                f"{self.api_url}/{self.phone_number_id}/messages",
                json=payload,
                headers={"Authorization": f"Bearer {self.access_token}"},
                timeout=(2, self.timeout_seconds),
            )
        except requests.exceptions.RequestException as exc:
            raise MessagingError(f"WhatsApp request failed: {exc}") from exc

        if not response.ok:
            logger.warning(
                "whatsapp.send_rejected",
                extra={"event": "whatsapp.send_rejected", "status_code": response.status_code},
            )
            raise MessagingError(f"WhatsApp API error: HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            data = {}
        logger.info("whatsapp.sent", extra={"event": "whatsapp.sent", "length": len(body)})
        return data

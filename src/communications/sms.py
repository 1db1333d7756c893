"""Pluggable SMS backends, selected with ``settings.SMS_BACKEND``.

Backends mirror Django's mail backends: the console backend logs messages, the
locmem backend collects them in ``outbox`` for tests, and the HTTP backend posts
them to the configured gateway.
"""

import typing as t
import uuid
from abc import ABC, abstractmethod

import httpx
import structlog
from django.conf import settings
from django.utils.module_loading import import_string

from common.models import SiteSettings

logger = structlog.get_logger(__name__)


class SmsMessage(t.NamedTuple):
    phone_number: str
    body: str


class SmsDeliveryError(Exception):
    """The gateway refused or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None, retryable: bool = True) -> None:
        """Store the gateway status and whether trying again could help."""
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class BaseSmsBackend(ABC):
    @abstractmethod
    def send(self, message: SmsMessage) -> str:
        """Send one message and return the gateway's message id.

        Raises:
            SmsDeliveryError: If the message was not accepted.
        """


class ConsoleSmsBackend(BaseSmsBackend):
    def send(self, message: SmsMessage) -> str:
        """Log the message instead of sending it."""
        message_id = f"console-{uuid.uuid4().hex}"
        logger.info("sms_console_send", message_id=message_id, body=message.body)
        return message_id


outbox: list[SmsMessage] = []


class LocMemSmsBackend(BaseSmsBackend):
    def send(self, message: SmsMessage) -> str:
        """Keep the message in ``outbox``."""
        outbox.append(message)
        return f"locmem-{len(outbox)}"


class HttpSmsBackend(BaseSmsBackend):
    """Posts ``{"to", "body"}`` as JSON to ``SMS_GATEWAY_URL``.

    Unless live SMS is switched on in the site settings, messages are only logged.
    Gateway 4xx responses are permanent failures; 5xx and transport errors can be retried.
    """

    def __init__(self, client: httpx.Client | None = None) -> None:
        """Optionally inject the HTTP client."""
        self._client = client

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=httpx.Timeout(settings.SMS_GATEWAY_TIMEOUT, connect=5.0),
                headers={"Authorization": f"Bearer {settings.SMS_GATEWAY_API_KEY}"},
            )
        return self._client

    def send(self, message: SmsMessage) -> str:
        """Hand the message to the gateway."""
        if not SiteSettings.get_solo().live_sms:
            return ConsoleSmsBackend().send(message)
        try:
            response = self._get_client().post(
                settings.SMS_GATEWAY_URL, json={"to": message.phone_number, "body": message.body}
            )
        except httpx.RequestError as e:
            logger.error("sms_gateway_request_error", error=str(e))
            raise SmsDeliveryError(f"Request failed: {e}") from e

        if response.is_success:
            message_id = str(response.json().get("message_id", ""))
            logger.info("sms_sent", message_id=message_id)
            return message_id

        logger.warning("sms_gateway_rejected", status=response.status_code, body=response.text[:200])
        raise SmsDeliveryError(
            f"SMS gateway returned status {response.status_code}",
            status_code=response.status_code,
            retryable=response.status_code >= 500,
        )


def get_sms_backend() -> BaseSmsBackend:
    """Instantiate the configured backend."""
    backend_class: type[BaseSmsBackend] = import_string(settings.SMS_BACKEND)
    return backend_class()

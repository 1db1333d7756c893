"""SMS communication channel."""

import structlog

from common.models import DeliveryLog
from communications.enums import CommunicationType
from communications.models import Communication, CommunicationRecord
from communications.sms import SmsDeliveryError, SmsMessage, get_sms_backend

from .base import CommunicationChannel

logger = structlog.get_logger(__name__)


class SmsChannel(CommunicationChannel):
    communication_type = CommunicationType.SMS

    def can_deliver(self, record: CommunicationRecord) -> bool:
        """Only records with a phone number."""
        return bool(record.recipient_phone)

    def deliver(self, communication: Communication, record: CommunicationRecord) -> str | None:
        """Send the subject and content as one text message."""
        assert record.recipient_phone
        body = f"{communication.subject}\n\n{communication.content}"
        message_id = get_sms_backend().send(SmsMessage(phone_number=record.recipient_phone, body=body))
        DeliveryLog.objects.create(
            channel=DeliveryLog.Channel.SMS, to=record.recipient_phone, body=body, external_id=message_id
        )
        logger.debug(
            "communication_sms_sent",
            communication_id=str(communication.id),
            record_id=str(record.id),
            external_message_id=message_id,
        )
        return message_id

    def should_retry(self, error: Exception) -> bool:
        """Gateway rejections carry their own verdict."""
        if isinstance(error, SmsDeliveryError):
            return error.retryable
        return super().should_retry(error)

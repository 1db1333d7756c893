"""Email communication channel."""

import structlog

from common.tasks import deliver_email
from communications.enums import CommunicationType
from communications.models import Communication, CommunicationRecord

from .base import CommunicationChannel

logger = structlog.get_logger(__name__)


class EmailChannel(CommunicationChannel):
    communication_type = CommunicationType.EMAIL

    def can_deliver(self, record: CommunicationRecord) -> bool:
        """Records without an address were filtered out at creation; guard anyway."""
        return bool(record.recipient_email)

    def deliver(self, communication: Communication, record: CommunicationRecord) -> str | None:
        assert record.recipient_email
        log = deliver_email(record.recipient_email, communication.subject, communication.content)
        logger.debug(
            "communication_email_sent",
            communication_id=str(communication.id),
            record_id=str(record.id),
            delivery_log_id=str(log.id),
        )
        return None

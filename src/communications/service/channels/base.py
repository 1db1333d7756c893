"""Delivery channels turn one communication record into one outbound message."""

from abc import ABC, abstractmethod
from smtplib import SMTPException

from communications.enums import CommunicationType
from communications.models import Communication, CommunicationRecord

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (SMTPException, OSError, TimeoutError, ConnectionError)


class CommunicationChannel(ABC):
    """One way of reaching a recipient, keyed by ``CommunicationType``.

    Channels only send. The delivery task owns the record's status and decides,
    through ``should_retry``, whether a failure is worth another attempt.
    """

    communication_type: CommunicationType

    @abstractmethod
    def can_deliver(self, record: CommunicationRecord) -> bool:
        """Whether the record carries an address this channel can use."""

    @abstractmethod
    def deliver(self, communication: Communication, record: CommunicationRecord) -> str | None:
        """Send ``communication`` to the record's recipient.

        Returns the provider's message id when it hands one out. Any exception
        is recorded on the record by the caller.
        """

    def should_retry(self, error: Exception) -> bool:
        return isinstance(error, TRANSIENT_ERRORS)

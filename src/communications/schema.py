from datetime import datetime

from ninja import ModelSchema, Schema
from pydantic import UUID4, Field

from accounts.schema import MinimalUserSchema
from common.schema import StrippedString

from .enums import CommunicationType
from .models import Communication, CommunicationRecord


class CommunicationQuotaSchema(Schema):
    can_send: bool
    remaining: int
    limit: int
    used: int


class CommunicationCreateSchema(Schema):
    type: CommunicationType
    subject: StrippedString = Field(..., min_length=1, max_length=200)
    content: StrippedString = Field(..., min_length=1, max_length=5000)
    scheduled_at: datetime | None = None


class CommunicationSchema(ModelSchema):
    id: UUID4
    event_id: UUID4
    sender: MinimalUserSchema | None = None

    class Meta:
        model = Communication
        fields = [
            "type",
            "subject",
            "content",
            "status",
            "scheduled_at",
            "sent_at",
            "total_recipients",
            "sent_count",
            "delivered_count",
            "failed_count",
            "created_at",
        ]


class CommunicationCreationResultSchema(Schema):
    communication: CommunicationSchema
    valid_recipients: int
    total_registrations: int
    unverified_users: int
    virtual_emails: int
    missing_contacts: int


class CommunicationRecordSchema(ModelSchema):
    id: UUID4
    recipient: MinimalUserSchema

    class Meta:
        model = CommunicationRecord
        fields = [
            "recipient_email",
            "recipient_phone",
            "status",
            "retry_count",
            "error_message",
            "sent_at",
            "delivered_at",
            "read_at",
        ]


class RetryResultSchema(Schema):
    retried: int


class ReceivedCommunicationSchema(Schema):
    id: UUID4
    communication_id: UUID4
    event_id: UUID4
    event_name: str
    type: CommunicationType
    subject: str
    content: str
    status: str
    received_at: datetime

    @staticmethod
    def resolve_event_id(obj: CommunicationRecord) -> UUID4:
        """The event the message was about."""
        return obj.communication.event_id

    @staticmethod
    def resolve_event_name(obj: CommunicationRecord) -> str:
        """The event's name."""
        return obj.communication.event.name

    @staticmethod
    def resolve_type(obj: CommunicationRecord) -> str:
        """Channel the message went through."""
        return obj.communication.type

    @staticmethod
    def resolve_subject(obj: CommunicationRecord) -> str:
        """Subject line."""
        return obj.communication.subject

    @staticmethod
    def resolve_content(obj: CommunicationRecord) -> str:
        """Message body."""
        return obj.communication.content

    @staticmethod
    def resolve_received_at(obj: CommunicationRecord) -> datetime:
        """When the message was addressed to the user."""
        return obj.created_at

"""Organizer-to-attendee communications: quota, recipients, delivery bookkeeping."""

import typing as t
from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

import structlog
from django.conf import settings
from django.db import transaction
from django.db.models import Count, F, QuerySet
from django.utils import timezone
from django.utils.translation import gettext as _

from accounts.models import GatherlyUser
from common.tasks import enqueue_on_commit
from common.transitions import InvalidTransitionError
from communications.enums import CommunicationStatus, CommunicationType, DeliveryStatus
from communications.exceptions import (
    CommunicationQuotaExceededError,
    NoRetryableRecordsError,
    NoValidRecipientsError,
)
from communications.models import (
    COMMUNICATION_TRANSITIONS,
    RECORD_TRANSITIONS,
    Communication,
    CommunicationRecord,
)
from events.models import Event, Registration

logger = structlog.get_logger(__name__)

RECIPIENT_STATUSES = (Registration.Status.APPROVED, Registration.Status.PENDING)


class CommunicationQuota(t.NamedTuple):
    can_send: bool
    remaining: int
    limit: int
    used: int


class CommunicationCreationResult(t.NamedTuple):
    communication: Communication
    valid_recipients: int
    total_registrations: int
    unverified_users: int
    virtual_emails: int
    missing_contacts: int


class RecordUpdate(t.NamedTuple):
    record_id: UUID
    status: DeliveryStatus
    error_message: str | None = None
    external_message_id: str | None = None


class BatchUpdateResult(t.NamedTuple):
    updated: int
    skipped: int


# ---- Quota ----


def can_send_communication(event: Event) -> CommunicationQuota:
    """How many communications the event may still send. Every communication counts, whatever its status."""
    limit = settings.COMMUNICATION_LIMIT_PER_EVENT
    used = Communication.objects.filter(event=event).count()
    return CommunicationQuota(can_send=used < limit, remaining=max(limit - used, 0), limit=limit, used=used)


# ---- Recipients ----


def is_virtual_email(email: str) -> bool:
    """Placeholder addresses handed out by login providers that cannot receive mail."""
    domain = email.rsplit("@", 1)[-1].lower()
    return domain in {d.lower() for d in settings.VIRTUAL_EMAIL_DOMAINS}


class _RecipientTally:
    def __init__(self) -> None:
        self.unverified_users = 0
        self.virtual_emails = 0
        self.missing_contacts = 0

    def accepts(self, user: GatherlyUser, communication_type: str) -> bool:
        if communication_type == CommunicationType.SMS:
            if not user.phone_number:
                self.missing_contacts += 1
                return False
            if not user.phone_number_verified:
                self.unverified_users += 1
                return False
            return True

        email = (user.email or "").strip()
        if not email:
            self.missing_contacts += 1
            return False
        if is_virtual_email(email):
            self.virtual_emails += 1
            return False
        if not user.email_verified:
            self.unverified_users += 1
            return False
        return True


# ---- Creation ----


def create_event_communication(
    event: Event,
    sender: GatherlyUser,
    communication_type: CommunicationType | str,
    subject: str,
    content: str,
    scheduled_at: datetime | None = None,
) -> CommunicationCreationResult:
    """Create a communication with one delivery record per reachable registrant.

    Approved and pending registrants are considered. Email needs a real, verified
    address; SMS needs a verified phone number. A communication scheduled for the
    future waits as PENDING; anything else is SENDING and delivered once committed.

    Raises:
        CommunicationQuotaExceededError: If the event has no communications left.
        NoValidRecipientsError: If nobody is registered, or nobody can be reached.
    """
    with transaction.atomic():
        # Serializes concurrent sends for the same event so the quota holds.
        Event.objects.select_for_update().filter(pk=event.pk).first()
        quota = can_send_communication(event)
        if not quota.can_send:
            raise CommunicationQuotaExceededError(quota.limit)

        registrations = list(
            Registration.objects.filter(event=event, status__in=RECIPIENT_STATUSES).select_related("user")
        )
        if not registrations:
            raise NoValidRecipientsError(_("Nobody is registered for this event yet."))

        tally = _RecipientTally()
        recipients = [r.user for r in registrations if tally.accepts(r.user, communication_type)]
        if not recipients:
            channel = CommunicationType(communication_type).label
            raise NoValidRecipientsError(_("No registrant can be reached by %(channel)s.") % {"channel": channel})

        now = timezone.now()
        is_scheduled = scheduled_at is not None and scheduled_at > now
        communication = Communication.objects.create(
            event=event,
            sender=sender,
            type=communication_type,
            subject=subject,
            content=content,
            scheduled_at=scheduled_at,
            status=CommunicationStatus.PENDING if is_scheduled else CommunicationStatus.SENDING,
            total_recipients=len(recipients),
        )
        CommunicationRecord.objects.bulk_create(
            [
                CommunicationRecord(
                    communication=communication,
                    recipient=user,
                    recipient_email=user.email if communication_type == CommunicationType.EMAIL else None,
                    recipient_phone=user.phone_number if communication_type == CommunicationType.SMS else None,
                )
                for user in recipients
            ]
        )
        if not is_scheduled:
            _queue_delivery(communication.id)

    logger.info(
        "event_communication_created",
        communication_id=str(communication.id),
        event_id=str(event.id),
        sender_id=str(sender.id),
        type=communication_type,
        total_recipients=len(recipients),
        total_registrations=len(registrations),
        scheduled=is_scheduled,
    )
    return CommunicationCreationResult(
        communication=communication,
        valid_recipients=len(recipients),
        total_registrations=len(registrations),
        unverified_users=tally.unverified_users,
        virtual_emails=tally.virtual_emails,
        missing_contacts=tally.missing_contacts,
    )


def _queue_delivery(communication_id: UUID) -> None:
    from communications.tasks import deliver_communication

    enqueue_on_commit(deliver_communication, str(communication_id))


def start_scheduled_communication(communication_id: UUID) -> bool:
    """Move a due PENDING communication to SENDING. Returns False if someone else already did."""
    started = Communication.objects.filter(pk=communication_id, status=CommunicationStatus.PENDING).update(
        status=CommunicationStatus.SENDING, updated_at=timezone.now()
    )
    if started:
        logger.info("scheduled_communication_started", communication_id=str(communication_id))
    return bool(started)


# ---- Stats ----


def update_communication_stats(communication_id: UUID) -> Communication:
    """Recount the delivery records and derive the communication's status.

    FAILED when every record failed, COMPLETED when no record is still pending,
    SENDING otherwise. ``sent_at`` is stamped when a finished status is reached.
    """
    with transaction.atomic():
        communication = Communication.objects.select_for_update().get(pk=communication_id)
        counts: dict[str, int] = dict(
            CommunicationRecord.objects.filter(communication_id=communication_id)
            .order_by()
            .values("status")
            .annotate(n=Count("id"))
            .values_list("status", "n")
        )
        total = sum(counts.values())
        sent = counts.get(DeliveryStatus.SENT, 0)
        delivered = counts.get(DeliveryStatus.DELIVERED, 0) + counts.get(DeliveryStatus.READ, 0)
        failed = counts.get(DeliveryStatus.FAILED, 0)

        if failed == total:
            status = CommunicationStatus.FAILED
        elif sent + delivered + failed == total:
            status = CommunicationStatus.COMPLETED
        else:
            status = CommunicationStatus.SENDING

        communication.sent_count = sent
        communication.delivered_count = delivered
        communication.failed_count = failed
        update_fields = ["sent_count", "delivered_count", "failed_count", "updated_at"]
        if status != communication.status:
            if COMMUNICATION_TRANSITIONS.can_transition(communication.status, status):
                communication.status = status
                update_fields.append("status")
                if status in (CommunicationStatus.COMPLETED, CommunicationStatus.FAILED):
                    communication.sent_at = timezone.now()
                    update_fields.append("sent_at")
            else:
                logger.warning(
                    "communication_status_not_updated",
                    communication_id=str(communication.id),
                    current=communication.status,
                    computed=status,
                )
        communication.save(update_fields=update_fields)

    logger.info(
        "communication_stats_updated",
        communication_id=str(communication.id),
        status=communication.status,
        sent_count=sent,
        delivered_count=delivered,
        failed_count=failed,
        total=total,
    )
    return communication


# ---- Retry ----


def retry_failed_communication_records(
    communication_id: UUID, *, record_ids: Iterable[UUID] | None = None, dispatch: bool = True
) -> int:
    """Send failed deliveries again, at most ``COMMUNICATION_MAX_RETRIES`` times each.

    The records go back to PENDING with their error cleared and ``retry_count``
    bumped; the communication goes back to SENDING.

    Args:
        communication_id: The communication whose records to retry.
        record_ids: Restrict the retry to these records.
        dispatch: Queue delivery once committed. The delivery task passes False
            because it reschedules itself.

    Returns:
        The number of records queued again.

    Raises:
        NoRetryableRecordsError: If no failed record has retries left.
    """
    with transaction.atomic():
        communication = Communication.objects.select_for_update().get(pk=communication_id)
        qs = CommunicationRecord.objects.filter(
            communication=communication,
            status=DeliveryStatus.FAILED,
            retry_count__lt=settings.COMMUNICATION_MAX_RETRIES,
        )
        if record_ids is not None:
            qs = qs.filter(pk__in=list(record_ids))
        retryable = list(qs.select_for_update().values_list("pk", flat=True))
        if not retryable:
            raise NoRetryableRecordsError()

        RECORD_TRANSITIONS.assert_can_transition(DeliveryStatus.FAILED, DeliveryStatus.PENDING)
        CommunicationRecord.objects.filter(pk__in=retryable).update(
            status=DeliveryStatus.PENDING,
            retry_count=F("retry_count") + 1,
            error_message=None,
            updated_at=timezone.now(),
        )
        if communication.status != CommunicationStatus.SENDING:
            COMMUNICATION_TRANSITIONS.assert_can_transition(communication.status, CommunicationStatus.SENDING)
            communication.status = CommunicationStatus.SENDING
            communication.save(update_fields=["status", "updated_at"])
        if dispatch:
            _queue_delivery(communication.id)

    logger.info("communication_records_retried", communication_id=str(communication_id), count=len(retryable))
    return len(retryable)


# ---- Record status ----


_STATUS_TIMESTAMPS = {
    DeliveryStatus.SENT: "sent_at",
    DeliveryStatus.DELIVERED: "delivered_at",
    DeliveryStatus.READ: "read_at",
}


def update_communication_record(
    record_id: UUID,
    status: DeliveryStatus | str,
    error_message: str | None = None,
    external_message_id: str | None = None,
) -> CommunicationRecord:
    """Move a delivery record to ``status``. Repeating the current status changes nothing.

    Raises:
        CommunicationRecord.DoesNotExist: If there is no such record.
        InvalidTransitionError: If the record cannot move to ``status``.
    """
    with transaction.atomic():
        record = CommunicationRecord.objects.select_for_update().get(pk=record_id)
        if record.status == status:
            return record
        RECORD_TRANSITIONS.assert_can_transition(record.status, status)

        record.status = status
        update_fields = ["status", "updated_at"]
        if timestamp_field := _STATUS_TIMESTAMPS.get(DeliveryStatus(status)):
            setattr(record, timestamp_field, timezone.now())
            update_fields.append(timestamp_field)
        if status == DeliveryStatus.FAILED:
            record.error_message = error_message
            update_fields.append("error_message")
        if external_message_id is not None:
            record.external_message_id = external_message_id
            update_fields.append("external_message_id")
        record.save(update_fields=update_fields)
    return record


def batch_update_communication_records(updates: Iterable[RecordUpdate]) -> BatchUpdateResult:
    """Apply delivery reports. Transitions that arrive out of order are logged and skipped."""
    updated = skipped = 0
    with transaction.atomic():
        for update in updates:
            try:
                update_communication_record(
                    update.record_id,
                    update.status,
                    error_message=update.error_message,
                    external_message_id=update.external_message_id,
                )
            except (InvalidTransitionError, CommunicationRecord.DoesNotExist) as e:
                logger.warning(
                    "communication_record_update_skipped",
                    record_id=str(update.record_id),
                    status=update.status,
                    error=str(e),
                )
                skipped += 1
            else:
                updated += 1
    return BatchUpdateResult(updated=updated, skipped=skipped)


# ---- Queries ----


def list_event_communications(event: Event) -> QuerySet[Communication]:
    """An event's communications, newest first."""
    return Communication.objects.filter(event=event).select_related("sender").order_by("-created_at")


def list_communication_records(
    communication: Communication, status: DeliveryStatus | str | None = None
) -> QuerySet[CommunicationRecord]:
    """Delivery records of a communication, grouped by status."""
    qs = communication.records.select_related("recipient")
    if status:
        qs = qs.filter(status=status)
    return qs.order_by("status", "created_at")


def list_user_communications(user: GatherlyUser, event_id: UUID | None = None) -> QuerySet[CommunicationRecord]:
    """Messages a user has been sent, newest first."""
    qs = CommunicationRecord.objects.filter(recipient=user).exclude(
        communication__status__in=[CommunicationStatus.PENDING, CommunicationStatus.CANCELLED]
    )
    if event_id:
        qs = qs.filter(communication__event_id=event_id)
    return qs.select_related("communication", "communication__event").order_by("-created_at")

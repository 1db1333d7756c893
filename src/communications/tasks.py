"""Celery tasks for communication delivery."""

import typing as t

import structlog
from celery import shared_task
from django.utils import timezone

from communications.enums import CommunicationStatus, DeliveryStatus
from communications.exceptions import NoRetryableRecordsError
from communications.models import COMMUNICATION_TRANSITIONS, Communication
from communications.service import dispatcher
from communications.service.channels import get_channel

logger = structlog.get_logger(__name__)


@shared_task(bind=True, max_retries=3)
def deliver_communication(self: t.Any, communication_id: str) -> dict[str, t.Any]:
    """Send every PENDING record of a SENDING communication through its channel.

    Outcomes are written back as delivery reports, then the counters are refreshed.
    Records that failed for a transient reason are queued again with exponential
    backoff (2^retries minutes) while their retry budget lasts.

    Args:
        self: Celery task instance (automatically passed when bind=True)
        communication_id: UUID of the communication

    Returns:
        Dict with delivery stats
    """
    communication = Communication.objects.get(pk=communication_id)
    if communication.status != CommunicationStatus.SENDING:
        logger.info("communication_delivery_skipped", communication_id=communication_id, status=communication.status)
        return {"status": "skipped"}

    try:
        channel = get_channel(communication.type)
        updates: list[dispatcher.RecordUpdate] = []
        retryable_ids = []
        for record in communication.records.filter(status=DeliveryStatus.PENDING).select_related("recipient"):
            if not channel.can_deliver(record):
                updates.append(
                    dispatcher.RecordUpdate(record.id, DeliveryStatus.FAILED, error_message="Missing address")
                )
                continue
            try:
                external_message_id = channel.deliver(communication, record)
            except Exception as e:
                logger.warning(
                    "communication_record_delivery_failed",
                    communication_id=communication_id,
                    record_id=str(record.id),
                    error=str(e),
                )
                updates.append(dispatcher.RecordUpdate(record.id, DeliveryStatus.FAILED, error_message=str(e)))
                if channel.should_retry(e):
                    retryable_ids.append(record.id)
            else:
                updates.append(
                    dispatcher.RecordUpdate(
                        record.id, DeliveryStatus.SENT, external_message_id=external_message_id
                    )
                )

        result = dispatcher.batch_update_communication_records(updates)
        communication = dispatcher.update_communication_stats(communication.id)
    except Exception:
        logger.exception("communication_delivery_crashed", communication_id=communication_id)
        communication.refresh_from_db()
        if COMMUNICATION_TRANSITIONS.can_transition(communication.status, CommunicationStatus.FAILED):
            Communication.objects.filter(pk=communication.pk).update(
                status=CommunicationStatus.FAILED, sent_at=timezone.now(), updated_at=timezone.now()
            )
        raise

    logger.info(
        "communication_delivered",
        communication_id=communication_id,
        updated=result.updated,
        skipped=result.skipped,
        status=communication.status,
    )

    if retryable_ids and self.request.retries < self.max_retries:
        try:
            requeued = dispatcher.retry_failed_communication_records(
                communication.id, record_ids=retryable_ids, dispatch=False
            )
        except NoRetryableRecordsError:
            requeued = 0
        if requeued:
            countdown = 2**self.request.retries * 60
            logger.info(
                "retrying_communication_delivery",
                communication_id=communication_id,
                countdown=countdown,
                records=requeued,
            )
            raise self.retry(countdown=countdown)

    return {"status": communication.status, "updated": result.updated, "skipped": result.skipped}


@shared_task
def dispatch_scheduled_communications() -> int:
    """Start scheduled communications that are due. Runs every minute via Celery beat."""
    due = Communication.objects.filter(
        status=CommunicationStatus.PENDING, scheduled_at__lte=timezone.now()
    ).values_list("pk", flat=True)
    started = 0
    for communication_id in due:
        if dispatcher.start_scheduled_communication(communication_id):
            deliver_communication.delay(str(communication_id))
            started += 1
    return started

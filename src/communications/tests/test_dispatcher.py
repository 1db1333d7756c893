"""Tests for communication creation, delivery bookkeeping and retries."""

import typing as t
from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest
from django.db.models import QuerySet
from django.utils import timezone
from kombu.exceptions import OperationalError

from accounts.models import GatherlyUser
from common.transitions import InvalidTransitionError
from communications.enums import CommunicationStatus, CommunicationType, DeliveryStatus
from communications.exceptions import (
    CommunicationQuotaExceededError,
    NoRetryableRecordsError,
    NoValidRecipientsError,
)
from communications.models import Communication, CommunicationRecord
from communications.service import dispatcher
from events.models import Event, Registration

from .conftest import RegisterAttendee

pytestmark = pytest.mark.django_db


def _set_statuses(records: QuerySet[CommunicationRecord], *statuses: DeliveryStatus) -> None:
    for record, status in zip(records.order_by("created_at"), statuses, strict=True):
        CommunicationRecord.objects.filter(pk=record.pk).update(status=status)


class TestQuota:
    def test_fresh_event(self, event: Event) -> None:
        """Test that a new event has its whole quota."""
        quota = dispatcher.can_send_communication(event)

        assert quota == dispatcher.CommunicationQuota(can_send=True, remaining=8, limit=8, used=0)

    def test_ninth_communication_is_refused(
        self, event: Event, organizer: GatherlyUser, attendee: GatherlyUser
    ) -> None:
        """Test that the quota is checked before any recipient is looked at."""
        for i in range(8):
            dispatcher.create_event_communication(event, organizer, CommunicationType.EMAIL, f"Update {i}", "Body")
        Registration.objects.filter(event=event).delete()

        with pytest.raises(CommunicationQuotaExceededError):
            dispatcher.create_event_communication(event, organizer, CommunicationType.EMAIL, "One more", "Body")

        assert dispatcher.can_send_communication(event).remaining == 0

    def test_every_status_counts(self, event: Event, organizer: GatherlyUser) -> None:
        """Test that cancelled and failed communications use up the quota too."""
        for status in (CommunicationStatus.CANCELLED, CommunicationStatus.FAILED):
            Communication.objects.create(
                event=event, sender=organizer, type=CommunicationType.EMAIL, subject="s", content="c", status=status
            )

        assert dispatcher.can_send_communication(event).used == 2


class TestRecipients:
    def test_only_verified_emails_are_addressed(
        self, event: Event, organizer: GatherlyUser, register_attendee: RegisterAttendee
    ) -> None:
        """Test that ten registrants with seven verified addresses give seven recipients."""
        for _ in range(7):
            register_attendee()
        for _ in range(3):
            register_attendee(email_verified=False)

        result = dispatcher.create_event_communication(event, organizer, CommunicationType.EMAIL, "Hello", "World")

        assert result.total_registrations == 10
        assert result.valid_recipients == 7
        assert result.unverified_users == 3
        assert result.communication.total_recipients == 7
        assert result.communication.records.count() == 7

    def test_virtual_emails_are_skipped(
        self, event: Event, organizer: GatherlyUser, register_attendee: RegisterAttendee
    ) -> None:
        """Test that placeholder login-provider addresses are counted and skipped."""
        register_attendee(username="real@user.test")
        register_attendee(username="wx_123", email="wx_123@wechat.app")

        result = dispatcher.create_event_communication(event, organizer, CommunicationType.EMAIL, "Hello", "World")

        assert result.valid_recipients == 1
        assert result.virtual_emails == 1

    def test_only_approved_and_pending_registrations(
        self, event: Event, organizer: GatherlyUser, register_attendee: RegisterAttendee
    ) -> None:
        """Test that waitlisted, rejected and cancelled registrants are not addressed."""
        register_attendee(status=Registration.Status.PENDING)
        for status in (Registration.Status.WAITLISTED, Registration.Status.REJECTED, Registration.Status.CANCELLED):
            register_attendee(status=status)

        result = dispatcher.create_event_communication(event, organizer, CommunicationType.EMAIL, "Hello", "World")

        assert result.total_registrations == 1
        assert result.valid_recipients == 1

    def test_sms_needs_verified_phone(
        self, event: Event, organizer: GatherlyUser, register_attendee: RegisterAttendee
    ) -> None:
        """Test that SMS goes only to verified phone numbers."""
        verified = register_attendee(phone_number="+8613800000001", phone_number_verified=True)
        register_attendee(phone_number="+8613800000002")
        register_attendee()

        result = dispatcher.create_event_communication(event, organizer, CommunicationType.SMS, "Hi", "Doors at 7")

        assert result.valid_recipients == 1
        assert result.unverified_users == 1
        assert result.missing_contacts == 1
        record = result.communication.records.get()
        assert record.recipient == verified
        assert record.recipient_phone == "+8613800000001"
        assert record.recipient_email is None

    def test_no_registrations(self, event: Event, organizer: GatherlyUser) -> None:
        """Test that an event with nobody registered cannot send."""
        with pytest.raises(NoValidRecipientsError, match="Nobody is registered for this event"):
            dispatcher.create_event_communication(event, organizer, CommunicationType.EMAIL, "Hello", "World")

        assert not Communication.objects.exists()

    def test_nobody_reachable(
        self, event: Event, organizer: GatherlyUser, register_attendee: RegisterAttendee
    ) -> None:
        """Test that registrants who cannot be reached leave nothing to send."""
        register_attendee(email_verified=False)

        with pytest.raises(NoValidRecipientsError, match="No registrant can be reached by Email"):
            dispatcher.create_event_communication(event, organizer, CommunicationType.EMAIL, "Hello", "World")

        assert not Communication.objects.exists()


class TestScheduling:
    def test_future_schedule_waits(self, event: Event, organizer: GatherlyUser, attendee: GatherlyUser) -> None:
        """Test that a future communication is created PENDING."""
        result = dispatcher.create_event_communication(
            event,
            organizer,
            CommunicationType.EMAIL,
            "Reminder",
            "Tomorrow!",
            scheduled_at=timezone.now() + timedelta(days=1),
        )

        assert result.communication.status == CommunicationStatus.PENDING

    def test_past_schedule_sends_now(self, event: Event, organizer: GatherlyUser, attendee: GatherlyUser) -> None:
        """Test that a schedule in the past is sent right away."""
        result = dispatcher.create_event_communication(
            event,
            organizer,
            CommunicationType.EMAIL,
            "Reminder",
            "Now!",
            scheduled_at=timezone.now() - timedelta(minutes=1),
        )

        assert result.communication.status == CommunicationStatus.SENDING

    @pytest.mark.django_db(transaction=True)
    def test_created_when_delivery_cannot_be_queued(
        self, event: Event, organizer: GatherlyUser, attendee: GatherlyUser
    ) -> None:
        """Test that a committed communication is returned even if its delivery cannot be queued."""
        with patch(
            "communications.tasks.deliver_communication.delay", side_effect=OperationalError("broker down")
        ) as delay:
            result = dispatcher.create_event_communication(event, organizer, CommunicationType.EMAIL, "Hi", "There")

        delay.assert_called_once_with(str(result.communication.id))
        communication = Communication.objects.get(pk=result.communication.pk)
        assert communication.status == CommunicationStatus.SENDING
        assert communication.records.get().status == DeliveryStatus.PENDING

    def test_start_scheduled_communication_only_once(
        self, event: Event, organizer: GatherlyUser, attendee: GatherlyUser
    ) -> None:
        """Test that a scheduled communication is started by one caller only."""
        communication = dispatcher.create_event_communication(
            event,
            organizer,
            CommunicationType.EMAIL,
            "Reminder",
            "Soon",
            scheduled_at=timezone.now() + timedelta(hours=1),
        ).communication

        assert dispatcher.start_scheduled_communication(communication.id) is True
        assert dispatcher.start_scheduled_communication(communication.id) is False
        communication.refresh_from_db()
        assert communication.status == CommunicationStatus.SENDING


class TestStats:
    def test_all_failed(
        self, event: Event, organizer: GatherlyUser, register_attendee: RegisterAttendee
    ) -> None:
        """Test that a communication whose every record failed is FAILED."""
        register_attendee()
        register_attendee()
        communication = dispatcher.create_event_communication(
            event, organizer, CommunicationType.EMAIL, "Hello", "World"
        ).communication
        _set_statuses(communication.records.all(), DeliveryStatus.FAILED, DeliveryStatus.FAILED)

        communication = dispatcher.update_communication_stats(communication.id)

        assert communication.status == CommunicationStatus.FAILED
        assert communication.failed_count == 2
        assert communication.sent_at is not None

    def test_all_settled(
        self, event: Event, organizer: GatherlyUser, register_attendee: RegisterAttendee
    ) -> None:
        """Test that a communication with nothing pending is COMPLETED and READ counts as delivered."""
        for _ in range(4):
            register_attendee()
        communication = dispatcher.create_event_communication(
            event, organizer, CommunicationType.EMAIL, "Hello", "World"
        ).communication
        _set_statuses(
            communication.records.all(),
            DeliveryStatus.SENT,
            DeliveryStatus.DELIVERED,
            DeliveryStatus.READ,
            DeliveryStatus.FAILED,
        )

        communication = dispatcher.update_communication_stats(communication.id)

        assert communication.status == CommunicationStatus.COMPLETED
        assert (communication.sent_count, communication.delivered_count, communication.failed_count) == (1, 2, 1)
        assert communication.sent_at is not None

    def test_still_sending(
        self, event: Event, organizer: GatherlyUser, register_attendee: RegisterAttendee
    ) -> None:
        """Test that a pending record keeps the communication SENDING."""
        register_attendee()
        register_attendee()
        communication = dispatcher.create_event_communication(
            event, organizer, CommunicationType.EMAIL, "Hello", "World"
        ).communication
        _set_statuses(communication.records.all(), DeliveryStatus.SENT, DeliveryStatus.PENDING)

        communication = dispatcher.update_communication_stats(communication.id)

        assert communication.status == CommunicationStatus.SENDING
        assert communication.sent_count == 1
        assert communication.sent_at is None

    def test_cancelled_communication_keeps_its_status(self, email_communication: Communication) -> None:
        """Test that counters refresh without forcing a disallowed status change."""
        Communication.objects.filter(pk=email_communication.pk).update(status=CommunicationStatus.CANCELLED)
        _set_statuses(email_communication.records.all(), DeliveryStatus.SENT)

        communication = dispatcher.update_communication_stats(email_communication.id)

        assert communication.status == CommunicationStatus.CANCELLED
        assert communication.sent_count == 1


class TestRetry:
    def test_failed_records_are_requeued(self, email_communication: Communication) -> None:
        """Test that failed records go back to PENDING with their retry count bumped."""
        record = email_communication.records.get()
        dispatcher.update_communication_record(record.id, DeliveryStatus.FAILED, error_message="mailbox full")
        dispatcher.update_communication_stats(email_communication.id)

        assert dispatcher.retry_failed_communication_records(email_communication.id, dispatch=False) == 1

        record.refresh_from_db()
        email_communication.refresh_from_db()
        assert record.status == DeliveryStatus.PENDING
        assert record.retry_count == 1
        assert record.error_message is None
        assert email_communication.status == CommunicationStatus.SENDING

    def test_retry_cap(self, email_communication: Communication) -> None:
        """Test that a record is retried at most three times."""
        record = email_communication.records.get()
        for _ in range(3):
            dispatcher.update_communication_record(record.id, DeliveryStatus.FAILED, error_message="timeout")
            dispatcher.retry_failed_communication_records(email_communication.id, dispatch=False)
        dispatcher.update_communication_record(record.id, DeliveryStatus.FAILED, error_message="timeout")

        with pytest.raises(NoRetryableRecordsError):
            dispatcher.retry_failed_communication_records(email_communication.id, dispatch=False)

        record.refresh_from_db()
        assert record.retry_count == 3
        assert record.status == DeliveryStatus.FAILED

    def test_nothing_failed(self, email_communication: Communication) -> None:
        """Test that a communication without failures has nothing to retry."""
        with pytest.raises(NoRetryableRecordsError):
            dispatcher.retry_failed_communication_records(email_communication.id)

    def test_retry_queues_delivery_after_commit(
        self, email_communication: Communication, django_capture_on_commit_callbacks: t.Any
    ) -> None:
        """Test that retrying dispatches delivery once the transaction commits."""
        record = email_communication.records.get()
        dispatcher.update_communication_record(record.id, DeliveryStatus.FAILED, error_message="timeout")

        with django_capture_on_commit_callbacks(execute=False) as callbacks:
            dispatcher.retry_failed_communication_records(email_communication.id)

        assert len(callbacks) == 1


class TestRecordUpdates:
    def test_repeating_status_is_a_no_op(self, email_communication: Communication) -> None:
        """Test that a duplicate delivery report changes nothing."""
        record = email_communication.records.get()
        first = dispatcher.update_communication_record(record.id, DeliveryStatus.SENT, external_message_id="m-1")

        again = dispatcher.update_communication_record(record.id, DeliveryStatus.SENT)

        assert again.sent_at == first.sent_at
        assert again.external_message_id == "m-1"

    def test_timestamps_follow_status(self, email_communication: Communication) -> None:
        """Test that sent_at is stamped on SENT and delivered_at on DELIVERED."""
        record = email_communication.records.get()

        record = dispatcher.update_communication_record(record.id, DeliveryStatus.SENT)
        assert record.sent_at is not None
        assert record.delivered_at is None

        record = dispatcher.update_communication_record(record.id, DeliveryStatus.DELIVERED)
        assert record.delivered_at is not None
        assert record.read_at is None

    def test_backwards_transition_is_rejected(self, email_communication: Communication) -> None:
        """Test that a delivered record cannot be reported as merely sent."""
        record = email_communication.records.get()
        dispatcher.update_communication_record(record.id, DeliveryStatus.DELIVERED)

        with pytest.raises(InvalidTransitionError):
            dispatcher.update_communication_record(record.id, DeliveryStatus.SENT)

    def test_batch_skips_out_of_order_reports(
        self, event: Event, organizer: GatherlyUser, register_attendee: RegisterAttendee
    ) -> None:
        """Test that a batch applies what it can and skips the rest."""
        register_attendee()
        register_attendee()
        communication = dispatcher.create_event_communication(
            event, organizer, CommunicationType.EMAIL, "Hello", "World"
        ).communication
        first, second = communication.records.order_by("created_at")
        CommunicationRecord.objects.filter(pk=second.pk).update(status=DeliveryStatus.READ)

        result = dispatcher.batch_update_communication_records(
            [
                dispatcher.RecordUpdate(first.id, DeliveryStatus.DELIVERED),
                dispatcher.RecordUpdate(second.id, DeliveryStatus.SENT),
                dispatcher.RecordUpdate(uuid4(), DeliveryStatus.SENT),
            ]
        )

        assert result == dispatcher.BatchUpdateResult(updated=1, skipped=2)
        first.refresh_from_db()
        second.refresh_from_db()
        assert first.status == DeliveryStatus.DELIVERED
        assert second.status == DeliveryStatus.READ


class TestQueries:
    def test_user_inbox_hides_unsent(
        self, event: Event, organizer: GatherlyUser, attendee: GatherlyUser, email_communication: Communication
    ) -> None:
        """Test that scheduled communications are not in the recipient's inbox yet."""
        dispatcher.create_event_communication(
            event, organizer, CommunicationType.EMAIL, "Later", "Soon", scheduled_at=timezone.now() + timedelta(days=1)
        )

        inbox = list(dispatcher.list_user_communications(attendee))

        assert [r.communication_id for r in inbox] == [email_communication.id]

    def test_records_filtered_by_status(self, email_communication: Communication) -> None:
        """Test that records can be narrowed to one delivery status."""
        assert dispatcher.list_communication_records(email_communication, status=DeliveryStatus.FAILED).count() == 0
        assert dispatcher.list_communication_records(email_communication, status=DeliveryStatus.PENDING).count() == 1

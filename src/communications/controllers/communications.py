from uuid import UUID

from django.db.models import QuerySet
from django.shortcuts import get_object_or_404
from ninja_extra import api_controller, route
from ninja_extra.pagination import PageNumberPaginationExtra, PaginatedResponseSchema, paginate

from common.authentication import I18nJWTAuth
from common.controllers import UserAwareController
from common.schema import ValidationErrorResponse
from common.throttling import CommunicationSendThrottle, UserDefaultThrottle, WriteThrottle
from communications import schema
from communications.enums import DeliveryStatus
from communications.models import Communication, CommunicationRecord
from communications.service import dispatcher
from events.controllers.permissions import EventPermission
from events.models import Event, EventStaffPermission


@api_controller(
    "/events",
    auth=I18nJWTAuth(),
    permissions=[EventPermission(EventStaffPermission.MANAGE_REGISTRATIONS)],
    tags=["Communications"],
    throttle=WriteThrottle(),
)
class EventCommunicationController(UserAwareController):
    """Messages from organizers to everyone registered for an event."""

    def get_event(self, event_id: UUID) -> Event:
        """The event, if the user may manage its registrations."""
        return self.get_object_or_exception(Event, pk=event_id)  # type: ignore[no-any-return]

    def get_communication(self, communication_id: UUID) -> Communication:
        """The communication, if the user may manage its event."""
        communication = get_object_or_404(Communication.objects.select_related("event"), pk=communication_id)
        self.get_event(communication.event_id)
        return communication

    @route.get(
        "/{event_id}/communications/limit",
        url_name="communication_limit",
        response=schema.CommunicationQuotaSchema,
        throttle=UserDefaultThrottle(),
    )
    def communication_limit(self, event_id: UUID) -> dispatcher.CommunicationQuota:
        """How many communications the event can still send."""
        return dispatcher.can_send_communication(self.get_event(event_id))

    @route.get(
        "/{event_id}/communications",
        url_name="list_communications",
        response=PaginatedResponseSchema[schema.CommunicationSchema],
        throttle=UserDefaultThrottle(),
    )
    @paginate(PageNumberPaginationExtra, page_size=20)
    def list_communications(self, event_id: UUID) -> QuerySet[Communication]:
        """The event's communication history."""
        return dispatcher.list_event_communications(self.get_event(event_id))

    @route.post(
        "/{event_id}/communications",
        url_name="send_communication",
        response={201: schema.CommunicationCreationResultSchema, 400: ValidationErrorResponse},
        throttle=CommunicationSendThrottle(),
    )
    def send_communication(
        self, event_id: UUID, payload: schema.CommunicationCreateSchema
    ) -> tuple[int, dispatcher.CommunicationCreationResult]:
        """Email or text everyone approved or awaiting approval.

        Sent right away unless ``scheduled_at`` lies in the future.
        """
        result = dispatcher.create_event_communication(
            self.get_event(event_id),
            self.user(),
            payload.type,
            payload.subject,
            payload.content,
            scheduled_at=payload.scheduled_at,
        )
        return 201, result

    @route.get(
        "/communications/{communication_id}/records",
        url_name="list_communication_records",
        response=PaginatedResponseSchema[schema.CommunicationRecordSchema],
        throttle=UserDefaultThrottle(),
    )
    @paginate(PageNumberPaginationExtra, page_size=50)
    def list_records(
        self, communication_id: UUID, status: DeliveryStatus | None = None
    ) -> QuerySet[CommunicationRecord]:
        """Per-recipient delivery status."""
        return dispatcher.list_communication_records(self.get_communication(communication_id), status=status)

    @route.post(
        "/communications/{communication_id}/retry",
        url_name="retry_communication",
        response={200: schema.RetryResultSchema, 400: ValidationErrorResponse},
        throttle=CommunicationSendThrottle(),
    )
    def retry(self, communication_id: UUID) -> dict[str, int]:
        """Send failed deliveries again."""
        communication = self.get_communication(communication_id)
        return {"retried": dispatcher.retry_failed_communication_records(communication.id)}

from uuid import UUID

from django.db.models import QuerySet
from django.shortcuts import get_object_or_404
from ninja_extra import api_controller, route
from ninja_extra.pagination import PageNumberPaginationExtra, PaginatedResponseSchema, paginate

from accounts.models import GatherlyUser
from common.authentication import EventsTokenAuth, I18nJWTAuth
from common.controllers import UserAwareController
from common.schema import RateLimitedResponse, ValidationErrorResponse
from common.throttling import UserDefaultThrottle, WriteThrottle
from events import models, schema
from events.models import EventStaffPermission
from events.service import check_in_service

from .permissions import EventPermission


@api_controller(
    "/events",
    auth=[I18nJWTAuth(), EventsTokenAuth()],
    tags=["Check-in"],
    throttle=WriteThrottle(),
)
class CheckInController(UserAwareController):
    """Event check-in, usable with a session JWT or an events token."""

    def resolve_target(self, payload: schema.CheckInRequestSchema) -> tuple[models.Event, GatherlyUser]:
        """The event and the attendee a check-in request is about."""
        event = get_object_or_404(models.Event, pk=payload.event_id)
        if payload.user_id is None:
            return event, self.user()
        return event, get_object_or_404(GatherlyUser, pk=payload.user_id)

    @route.post(
        "/checkin",
        url_name="check_in",
        response={200: schema.CheckInResponseSchema, 400: ValidationErrorResponse, 429: RateLimitedResponse},
    )
    def check_in(self, payload: schema.CheckInRequestSchema) -> dict[str, models.Registration]:
        """Check in yourself, or another attendee when you manage the event's registrations."""
        event, user = self.resolve_target(payload)
        registration = check_in_service.check_into_event(event, user, self.user())
        return {"check_in": registration}

    @route.delete(
        "/checkin",
        url_name="cancel_check_in",
        response={200: schema.CheckInResponseSchema, 400: ValidationErrorResponse, 429: RateLimitedResponse},
    )
    def cancel_check_in(self, payload: schema.CheckInRequestSchema) -> dict[str, models.Registration]:
        """Undo a check-in."""
        event, user = self.resolve_target(payload)
        registration = check_in_service.cancel_event_check_in(event, user, self.user())
        return {"check_in": registration}

    @route.get(
        "/{event_id}/checkin/status",
        url_name="check_in_status",
        response=schema.CheckInStatusSchema,
        throttle=UserDefaultThrottle(),
    )
    def check_in_status(self, event_id: UUID) -> check_in_service.CheckInStatus:
        """Whether the requesting user can check in right now, and why not."""
        event = get_object_or_404(models.Event, pk=event_id)
        return check_in_service.get_check_in_status(event, self.user())

    @route.get(
        "/{event_id}/checkins",
        url_name="list_check_ins",
        response=PaginatedResponseSchema[schema.CheckInListItemSchema],
        permissions=[EventPermission(EventStaffPermission.MANAGE_REGISTRATIONS)],
        throttle=UserDefaultThrottle(),
    )
    @paginate(PageNumberPaginationExtra, page_size=50)
    def list_check_ins(self, event_id: UUID) -> QuerySet[models.Registration]:
        """Everyone checked in to the event, latest first."""
        event = self.get_object_or_exception(models.Event, pk=event_id)
        return check_in_service.list_check_ins(event)

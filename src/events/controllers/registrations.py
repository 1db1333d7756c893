from uuid import UUID

from django.db.models import QuerySet
from django.shortcuts import get_object_or_404
from ninja_extra import api_controller, route
from ninja_extra.pagination import PageNumberPaginationExtra, PaginatedResponseSchema, paginate

from common.authentication import I18nJWTAuth
from common.controllers import UserAwareController
from common.schema import ValidationErrorResponse
from common.throttling import UserDefaultThrottle, WriteThrottle
from events import models, schema
from events.models import EventStaffPermission
from events.service import registration_service

from .permissions import EventPermission


@api_controller(
    "/events",
    auth=I18nJWTAuth(),
    permissions=[EventPermission(EventStaffPermission.MANAGE_REGISTRATIONS)],
    tags=["Registrations"],
    throttle=WriteThrottle(),
)
class RegistrationAdminController(UserAwareController):
    """Organizer-side registration management."""

    @route.get(
        "/{event_id}/registrations",
        url_name="list_registrations",
        response=PaginatedResponseSchema[schema.RegistrationSchema],
        throttle=UserDefaultThrottle(),
    )
    @paginate(PageNumberPaginationExtra, page_size=50)
    def list_registrations(
        self, event_id: UUID, status: models.Registration.Status | None = None
    ) -> QuerySet[models.Registration]:
        """Registrations for an event, optionally narrowed to one status."""
        event = self.get_object_or_exception(models.Event, pk=event_id)
        qs = models.Registration.objects.filter(event=event)
        if status:
            qs = qs.filter(status=status)
        return qs

    @route.post(
        "/registrations/{registration_id}/review",
        url_name="review_registration",
        response={200: schema.RegistrationSchema, 400: ValidationErrorResponse},
    )
    def review_registration(
        self, registration_id: UUID, payload: schema.RegistrationReviewSchema
    ) -> models.Registration:
        """Approve, reject or waitlist a registration."""
        registration = get_object_or_404(models.Registration.objects.select_related("event"), pk=registration_id)
        self.get_object_or_exception(models.Event, pk=registration.event_id)
        return registration_service.review_registration(
            registration, status=payload.status, reviewer=self.user(), note=payload.note
        )

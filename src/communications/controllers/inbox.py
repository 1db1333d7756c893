from uuid import UUID

from django.db.models import QuerySet
from ninja_extra import api_controller, route
from ninja_extra.pagination import PageNumberPaginationExtra, PaginatedResponseSchema, paginate

from common.authentication import I18nJWTAuth
from common.controllers import UserAwareController
from common.throttling import UserDefaultThrottle
from communications import schema
from communications.models import CommunicationRecord
from communications.service import dispatcher


@api_controller("/me", auth=I18nJWTAuth(), tags=["Communications"], throttle=UserDefaultThrottle())
class InboxController(UserAwareController):
    @route.get(
        "/communications",
        url_name="my_communications",
        response=PaginatedResponseSchema[schema.ReceivedCommunicationSchema],
    )
    @paginate(PageNumberPaginationExtra, page_size=20)
    def my_communications(self, event_id: UUID | None = None) -> QuerySet[CommunicationRecord]:
        """Messages organizers have sent you."""
        return dispatcher.list_user_communications(self.user(), event_id=event_id)

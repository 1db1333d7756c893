from django.http import HttpRequest
from ninja_extra import ControllerBase
from ninja_extra.permissions import BasePermission

from events.models import Event, EventStaffPermission


class EventPermission(BasePermission):
    """Grants access to an event's organizer and to staff holding ``permission``.

    Only checked against objects loaded through ``get_object_or_exception``;
    a denial surfaces as a 403.
    """

    def __init__(self, permission: EventStaffPermission) -> None:
        self.permission = permission

    def has_permission(self, request: HttpRequest, controller: ControllerBase) -> bool:
        # Routes are gated per event, once the event is known.
        return True

    def has_object_permission(self, request: HttpRequest, controller: ControllerBase, obj: Event) -> bool:
        return obj.has_staff_permission(request.user, self.permission)  # type: ignore[arg-type]

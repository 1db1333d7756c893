import typing as t

from django.contrib.auth.models import AnonymousUser
from ninja_extra import ControllerBase

from accounts.models import GatherlyUser


class UserAwareController(ControllerBase):
    def maybe_user(self) -> GatherlyUser | AnonymousUser:
        """Get the user for this request."""
        return t.cast(GatherlyUser | AnonymousUser, self.context.request.user)  # type: ignore[union-attr]

    def user(self) -> GatherlyUser:
        """Get the user for this request."""
        return t.cast(GatherlyUser, self.context.request.user)  # type: ignore[union-attr]

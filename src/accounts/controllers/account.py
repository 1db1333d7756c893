"""This module contains the controllers for the accounts app."""

from django.utils.translation import gettext_lazy as _
from ninja_extra import api_controller, route

from accounts import schema
from accounts.models import ApiToken, GatherlyUser
from accounts.service import api_tokens
from common.authentication import I18nJWTAuth
from common.controllers import UserAwareController
from common.schema import ResponseMessage
from common.throttling import TokenIssueThrottle, WriteThrottle


@api_controller("/account", tags=["Account"], auth=I18nJWTAuth())
class AccountController(UserAwareController):
    @route.get("/me", response=schema.GatherlyUserSchema, url_name="me")
    def me(self) -> GatherlyUser:
        """Retrieve the authenticated user's profile information."""
        return self.user()

    @route.get(
        "/events-token",
        response={200: schema.ApiTokenSchema, 404: ResponseMessage},
        url_name="events-token",
    )
    def get_events_token(self) -> ApiToken | tuple[int, ResponseMessage]:
        """Show the caller's EventsToken metadata.

        Only the last four characters of the token are ever shown again after issuance.
        """
        api_token = api_tokens.get_events_token(self.user())
        if api_token is None:
            return 404, ResponseMessage(message=str(_("You have not issued an events token yet.")))
        return api_token

    @route.post(
        "/events-token",
        response={201: schema.IssuedApiTokenSchema},
        url_name="issue-events-token",
        throttle=TokenIssueThrottle(),
    )
    def issue_events_token(self) -> tuple[int, schema.IssuedApiTokenSchema]:
        """Issue a new EventsToken for machine access, replacing any existing one.

        The plaintext token is returned in this response only. Send it as
        `Authorization: EventsToken <token>`. Any previously issued token stops working immediately.
        """
        issued = api_tokens.issue_events_token(self.user())
        return 201, schema.IssuedApiTokenSchema(
            token=issued.token,
            token_last_four=issued.api_token.token_last_four or "",
            issued_at=issued.api_token.issued_at,  # type: ignore[arg-type]
        )

    @route.delete(
        "/events-token",
        response={200: ResponseMessage},
        url_name="revoke-events-token",
        throttle=WriteThrottle(),
    )
    def revoke_events_token(self) -> ResponseMessage:
        """Revoke the caller's EventsToken. Safe to call when no token is active."""
        api_tokens.revoke_events_token(self.user())
        return ResponseMessage(message=str(_("Your events token has been revoked.")))

import typing as t
from datetime import datetime, timedelta

import pytest
from django.test.client import Client

from accounts.models import GatherlyUser
from communications.enums import CommunicationType
from communications.models import Communication
from communications.service import dispatcher
from conftest import GatherlyUserFactory
from events.models import Event, Registration

RegisterAttendee = t.Callable[..., GatherlyUser]


@pytest.fixture
def organizer(user_factory: GatherlyUserFactory) -> GatherlyUser:
    return user_factory(username="organizer@user.test")


@pytest.fixture
def organizer_client(organizer: GatherlyUser, jwt_client_for: t.Callable[[GatherlyUser], Client]) -> Client:
    return jwt_client_for(organizer)


@pytest.fixture
def event(organizer: GatherlyUser, next_week: datetime) -> Event:
    return Event.objects.create(
        name="Autumn Gathering", organizer=organizer, start=next_week, end=next_week + timedelta(hours=4)
    )


@pytest.fixture
def register_attendee(event: Event, user_factory: GatherlyUserFactory) -> RegisterAttendee:
    """Create a user registered for the event."""

    def _register(
        status: Registration.Status = Registration.Status.APPROVED, **user_kwargs: t.Any
    ) -> GatherlyUser:
        user_kwargs.setdefault("email_verified", True)
        user = user_factory(**user_kwargs)
        Registration.objects.create(event=event, user=user, status=status)
        return user

    return _register


@pytest.fixture
def attendee(register_attendee: RegisterAttendee) -> GatherlyUser:
    return register_attendee(username="attendee@user.test")


@pytest.fixture
def email_communication(event: Event, organizer: GatherlyUser, attendee: GatherlyUser) -> Communication:
    """A SENDING email communication with one PENDING record, not yet delivered."""
    return dispatcher.create_event_communication(
        event, organizer, CommunicationType.EMAIL, "Venue change", "We moved to the main hall."
    ).communication

import typing as t
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from django.test.client import Client

from accounts.models import GatherlyUser
from conftest import GatherlyUserFactory
from events.models import Event, EventStaff, Registration, TicketPriceTier, TicketType


@pytest.fixture
def organizer(user_factory: GatherlyUserFactory) -> GatherlyUser:
    return user_factory(username="organizer@user.test")


@pytest.fixture
def buyer(user_factory: GatherlyUserFactory) -> GatherlyUser:
    return user_factory(username="buyer@user.test", email_verified=True)


@pytest.fixture
def friend(user_factory: GatherlyUserFactory) -> GatherlyUser:
    return user_factory(username="friend@user.test", email_verified=True)


@pytest.fixture
def outsider(user_factory: GatherlyUserFactory) -> GatherlyUser:
    return user_factory(username="outsider@user.test")


@pytest.fixture
def event(organizer: GatherlyUser, next_week: datetime) -> Event:
    return Event.objects.create(
        name="Summer Meetup",
        organizer=organizer,
        start=next_week,
        end=next_week + timedelta(hours=3),
        max_attendees=100,
    )


@pytest.fixture
def approval_event(organizer: GatherlyUser, next_week: datetime) -> Event:
    return Event.objects.create(
        name="Invite-only Dinner",
        organizer=organizer,
        start=next_week,
        end=next_week + timedelta(hours=2),
        require_approval=True,
    )


@pytest.fixture
def ticket_type(event: Event) -> TicketType:
    return TicketType.objects.create(event=event, name="General", price=Decimal("100.00"), max_quantity=10)


@pytest.fixture
def group_ticket_type(event: Event) -> TicketType:
    """A ticket type sold singly or in a bundle of three."""
    ticket_type = TicketType.objects.create(event=event, name="Group", price=Decimal("120.00"), max_quantity=30)
    TicketPriceTier.objects.create(ticket_type=ticket_type, quantity=3, price=Decimal("300.00"))
    return ticket_type


@pytest.fixture
def staff_manager(event: Event, user_factory: GatherlyUserFactory) -> GatherlyUser:
    """A staff member who may manage registrations."""
    user = user_factory(username="staff@user.test")
    EventStaff.objects.create(event=event, user=user, can_manage_registrations=True)
    return user


@pytest.fixture
def approved_registration(event: Event, buyer: GatherlyUser, ticket_type: TicketType) -> Registration:
    return Registration.objects.create(
        event=event, user=buyer, ticket_type=ticket_type, status=Registration.Status.APPROVED
    )


@pytest.fixture
def organizer_client(organizer: GatherlyUser, jwt_client_for: t.Callable[[GatherlyUser], Client]) -> Client:
    """API client for the event organizer."""
    return jwt_client_for(organizer)


@pytest.fixture
def buyer_client(buyer: GatherlyUser, jwt_client_for: t.Callable[[GatherlyUser], Client]) -> Client:
    """API client for the buyer."""
    return jwt_client_for(buyer)


@pytest.fixture
def friend_client(friend: GatherlyUser, jwt_client_for: t.Callable[[GatherlyUser], Client]) -> Client:
    """API client for the buyer's friend."""
    return jwt_client_for(friend)


@pytest.fixture
def outsider_client(outsider: GatherlyUser, jwt_client_for: t.Callable[[GatherlyUser], Client]) -> Client:
    """API client for a user unrelated to the event."""
    return jwt_client_for(outsider)

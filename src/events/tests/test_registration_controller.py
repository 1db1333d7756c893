import typing as t

import orjson
import pytest
from django.test.client import Client
from django.urls import reverse

from accounts.models import GatherlyUser
from events.models import Event, Registration, TicketType

pytestmark = pytest.mark.django_db


@pytest.fixture
def pending_registration(approval_event: Event, friend: GatherlyUser) -> Registration:
    ticket_type = TicketType.objects.create(event=approval_event, name="Seat", price=50, max_quantity=5)
    return Registration.objects.create(
        event=approval_event, user=friend, ticket_type=ticket_type, status=Registration.Status.PENDING
    )


def _review(client: Client, registration: Registration, status: str, note: str = "") -> t.Any:
    return client.post(
        reverse("api:review_registration", kwargs={"registration_id": registration.id}),
        data=orjson.dumps({"status": status, "note": note}),
        content_type="application/json",
    )


def test_list_registrations_filtered_by_status(
    organizer_client: Client, approval_event: Event, pending_registration: Registration, buyer: GatherlyUser
) -> None:
    """Test that organizers can list registrations narrowed to a status."""
    Registration.objects.create(event=approval_event, user=buyer, status=Registration.Status.APPROVED)
    url = reverse("api:list_registrations", kwargs={"event_id": approval_event.id})

    response = organizer_client.get(url, {"status": Registration.Status.PENDING})

    assert response.status_code == 200
    assert response.json()["count"] == 1
    assert response.json()["results"][0]["id"] == str(pending_registration.id)


def test_outsider_cannot_list_registrations(outsider_client: Client, approval_event: Event) -> None:
    """Test that users without rights on the event get a 403."""
    response = outsider_client.get(reverse("api:list_registrations", kwargs={"event_id": approval_event.id}))

    assert response.status_code == 403


def test_organizer_approves_registration(organizer_client: Client, pending_registration: Registration) -> None:
    """Test that the organizer can approve a pending registration."""
    response = _review(organizer_client, pending_registration, Registration.Status.APPROVED, note="Welcome!")

    assert response.status_code == 200
    assert response.json()["status"] == Registration.Status.APPROVED
    assert response.json()["review_note"] == "Welcome!"


def test_invalid_review_transition(organizer_client: Client, pending_registration: Registration) -> None:
    """Test that an approved registration cannot be moved to rejected."""
    Registration.objects.filter(pk=pending_registration.pk).update(status=Registration.Status.APPROVED)

    response = _review(organizer_client, pending_registration, Registration.Status.REJECTED)

    assert response.status_code == 400
    pending_registration.refresh_from_db()
    assert pending_registration.status == Registration.Status.APPROVED


def test_outsider_cannot_review(outsider_client: Client, pending_registration: Registration) -> None:
    """Test that someone without rights on the event cannot review."""
    response = _review(outsider_client, pending_registration, Registration.Status.APPROVED)

    assert response.status_code == 403
    pending_registration.refresh_from_db()
    assert pending_registration.status == Registration.Status.PENDING

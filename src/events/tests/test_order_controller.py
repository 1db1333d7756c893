"""Tests for the order and invite endpoints."""

from decimal import Decimal

import orjson
import pytest
from django.test.client import Client
from django.urls import reverse

from accounts.models import GatherlyUser
from events.models import Event, Order, OrderInvite, Registration, TicketType
from events.service import order_service

pytestmark = pytest.mark.django_db


def _checkout(
    client: Client, event: Event, ticket_type: TicketType, quantity: int = 1
) -> tuple[int, dict]:  # type: ignore[type-arg]
    url = reverse("api:checkout", kwargs={"event_id": event.id})
    response = client.post(
        url,
        data=orjson.dumps({"ticket_type_id": str(ticket_type.id), "quantity": quantity}),
        content_type="application/json",
    )
    return response.status_code, response.json()


class TestCheckoutEndpoint:
    def test_checkout_creates_order(self, buyer_client: Client, event: Event, ticket_type: TicketType) -> None:
        """Test that POST /events/{event_id}/orders opens a pending order."""
        status_code, data = _checkout(buyer_client, event, ticket_type)

        assert status_code == 201
        assert data["is_existing"] is False
        assert data["order"]["status"] == Order.Status.PENDING
        assert data["order"]["quantity"] == 1
        assert data["registration"]["status"] == Registration.Status.PENDING_PAYMENT

    def test_repeat_checkout_returns_existing_order(
        self, buyer_client: Client, event: Event, ticket_type: TicketType
    ) -> None:
        """Test that a second checkout returns 200 with the same order."""
        _, first = _checkout(buyer_client, event, ticket_type)

        status_code, second = _checkout(buyer_client, event, ticket_type)

        assert status_code == 200
        assert second["is_existing"] is True
        assert second["order"]["id"] == first["order"]["id"]

    def test_unpurchasable_quantity(self, buyer_client: Client, event: Event, ticket_type: TicketType) -> None:
        """Test that a quantity without a price gives a 400 with a reason."""
        status_code, data = _checkout(buyer_client, event, ticket_type, quantity=2)

        assert status_code == 400
        assert "detail" in data

    def test_requires_authentication(self, client: Client, event: Event, ticket_type: TicketType) -> None:
        """Test that anonymous users cannot check out."""
        status_code, _ = _checkout(client, event, ticket_type)

        assert status_code == 401


def test_pricing_quote(user_client: Client, event: Event, group_ticket_type: TicketType) -> None:
    """Test that the pricing endpoint quotes a bundle."""
    url = reverse("api:ticket_pricing", kwargs={"event_id": event.id, "ticket_type_id": group_ticket_type.id})

    response = user_client.get(url, {"quantity": 3})

    assert response.status_code == 200
    assert Decimal(str(response.json()["unit_price"])) == Decimal("100.00")
    assert Decimal(str(response.json()["total_amount"])) == Decimal("300.00")
    assert response.json()["currency"] == "CNY"


class TestOrderOwnerEndpoints:
    def test_get_own_order(
        self, buyer_client: Client, buyer: GatherlyUser, event: Event, ticket_type: TicketType
    ) -> None:
        """Test that the buyer can read their order."""
        order = order_service.checkout(event, buyer, ticket_type_id=ticket_type.id, quantity=1).order

        response = buyer_client.get(reverse("api:get_order", kwargs={"order_id": order.id}))

        assert response.status_code == 200
        assert response.json()["order_no"] == order.order_no

    def test_other_users_cannot_see_the_order(
        self, outsider_client: Client, buyer: GatherlyUser, event: Event, ticket_type: TicketType
    ) -> None:
        """Test that someone else's order is not found."""
        order = order_service.checkout(event, buyer, ticket_type_id=ticket_type.id, quantity=1).order

        response = outsider_client.get(reverse("api:get_order", kwargs={"order_id": order.id}))

        assert response.status_code == 404

    def test_cancel_pending_order(
        self, buyer_client: Client, buyer: GatherlyUser, event: Event, ticket_type: TicketType
    ) -> None:
        """Test that the buyer can cancel a pending order."""
        order = order_service.checkout(event, buyer, ticket_type_id=ticket_type.id, quantity=1).order

        response = buyer_client.post(
            reverse("api:cancel_order", kwargs={"order_id": order.id}),
            data=orjson.dumps({}),
            content_type="application/json",
        )

        assert response.status_code == 200
        assert response.json()["status"] == Order.Status.CANCELLED
        ticket_type.refresh_from_db()
        assert ticket_type.current_quantity == 0

    def test_cannot_cancel_paid_order(
        self, buyer_client: Client, buyer: GatherlyUser, event: Event, ticket_type: TicketType
    ) -> None:
        """Test that a paid order cannot be cancelled by its buyer."""
        order = order_service.checkout(event, buyer, ticket_type_id=ticket_type.id, quantity=1).order
        order_service.mark_event_order_paid(order.order_no, "TXN-1")

        response = buyer_client.post(
            reverse("api:cancel_order", kwargs={"order_id": order.id}),
            data=orjson.dumps({}),
            content_type="application/json",
        )

        assert response.status_code == 400

    def test_list_invites(
        self, buyer_client: Client, buyer: GatherlyUser, event: Event, group_ticket_type: TicketType
    ) -> None:
        """Test that the buyer sees the invites for their extra seats."""
        order = order_service.checkout(event, buyer, ticket_type_id=group_ticket_type.id, quantity=3).order

        response = buyer_client.get(reverse("api:list_order_invites", kwargs={"order_id": order.id}))

        assert response.status_code == 200
        assert len(response.json()) == 2
        assert {i["status"] for i in response.json()} == {OrderInvite.Status.PENDING}


class TestPaymentEndpoints:
    def test_organizer_marks_order_paid(
        self, organizer_client: Client, buyer: GatherlyUser, event: Event, ticket_type: TicketType
    ) -> None:
        """Test that the organizer can record a manual payment."""
        order = order_service.checkout(event, buyer, ticket_type_id=ticket_type.id, quantity=1).order

        response = organizer_client.post(
            reverse("api:mark_order_paid", kwargs={"order_id": order.id}),
            data=orjson.dumps({}),
            content_type="application/json",
        )

        assert response.status_code == 200
        data = response.json()
        assert data["order"]["status"] == Order.Status.PAID
        assert data["order"]["transaction_id"] == f"MANUAL-{order.id}"
        assert data["registration_status"] == Registration.Status.APPROVED

    def test_staff_manager_marks_order_paid(
        self,
        staff_manager: GatherlyUser,
        jwt_client_for: object,
        buyer: GatherlyUser,
        event: Event,
        ticket_type: TicketType,
    ) -> None:
        """Test that staff with registration rights can record payments."""
        order = order_service.checkout(event, buyer, ticket_type_id=ticket_type.id, quantity=1).order
        client = jwt_client_for(staff_manager)  # type: ignore[operator]

        response = client.post(
            reverse("api:mark_order_paid", kwargs={"order_id": order.id}),
            data=orjson.dumps({"transaction_id": "BANK-42"}),
            content_type="application/json",
        )

        assert response.status_code == 200
        assert response.json()["order"]["transaction_id"] == "BANK-42"

    def test_buyer_cannot_mark_own_order_paid(
        self, buyer_client: Client, buyer: GatherlyUser, event: Event, ticket_type: TicketType
    ) -> None:
        """Test that buyers cannot confirm their own payment."""
        order = order_service.checkout(event, buyer, ticket_type_id=ticket_type.id, quantity=1).order

        response = buyer_client.post(
            reverse("api:mark_order_paid", kwargs={"order_id": order.id}),
            data=orjson.dumps({}),
            content_type="application/json",
        )

        assert response.status_code == 403
        order.refresh_from_db()
        assert order.status == Order.Status.PENDING

    def test_refund_unpaid_order_is_rejected(
        self, organizer_client: Client, buyer: GatherlyUser, event: Event, ticket_type: TicketType
    ) -> None:
        """Test that refunding a pending order gives a 400."""
        order = order_service.checkout(event, buyer, ticket_type_id=ticket_type.id, quantity=1).order

        response = organizer_client.post(
            reverse("api:refund_order", kwargs={"order_id": order.id}),
            data=orjson.dumps({"refund_id": "RF-1"}),
            content_type="application/json",
        )

        assert response.status_code == 400
        assert "detail" in response.json()

    def test_refund_paid_order(
        self, organizer_client: Client, buyer: GatherlyUser, event: Event, ticket_type: TicketType
    ) -> None:
        """Test that the organizer can refund a paid order."""
        order = order_service.checkout(event, buyer, ticket_type_id=ticket_type.id, quantity=1).order
        order_service.mark_event_order_paid(order.order_no, "TXN-1")

        response = organizer_client.post(
            reverse("api:refund_order", kwargs={"order_id": order.id}),
            data=orjson.dumps({"refund_id": "RF-1"}),
            content_type="application/json",
        )

        assert response.status_code == 200
        assert response.json()["status"] == Order.Status.REFUNDED


def test_redeem_invite_endpoint(
    friend_client: Client, friend: GatherlyUser, buyer: GatherlyUser, event: Event, group_ticket_type: TicketType
) -> None:
    """Test that an invitee can claim a seat through the API."""
    order = order_service.checkout(event, buyer, ticket_type_id=group_ticket_type.id, quantity=3).order
    order_service.mark_event_order_paid(order.order_no, "TXN-1")
    invite = order.invites.first()
    assert invite is not None
    url = reverse("api:redeem_invite", kwargs={"event_id": event.id, "code": invite.code})

    response = friend_client.post(url, data=orjson.dumps({}), content_type="application/json")

    assert response.status_code == 200
    assert response.json()["user_id"] == str(friend.id)
    assert response.json()["status"] == Registration.Status.APPROVED

import pytest
from django.test.client import Client
from django.urls import reverse

from accounts.models import GatherlyUser
from accounts.service import api_tokens

pytestmark = pytest.mark.django_db


def test_me(user_client: Client, user: GatherlyUser) -> None:
    """Test that GET /account/me returns the caller's profile."""
    response = user_client.get(reverse("api:me"))

    assert response.status_code == 200
    assert response.json()["id"] == str(user.id)
    assert response.json()["email_verified"] is True


def test_me_requires_authentication(client: Client) -> None:
    """Test that anonymous callers are rejected."""
    assert client.get(reverse("api:me")).status_code == 401


def test_events_token_lifecycle(user_client: Client, user: GatherlyUser) -> None:
    """Test that a token can be issued, inspected and revoked through the API."""
    url = reverse("api:events-token")
    assert user_client.get(url).status_code == 404

    response = user_client.post(reverse("api:issue-events-token"))

    assert response.status_code == 201
    token = response.json()["token"]
    assert response.json()["token_last_four"] == token[-4:]
    assert api_tokens.resolve_events_token(token) is not None

    response = user_client.get(url)
    assert response.status_code == 200
    assert response.json()["token_last_four"] == token[-4:]
    assert response.json()["is_active"] is True
    assert "token" not in response.json()

    response = user_client.delete(reverse("api:revoke-events-token"))
    assert response.status_code == 200
    assert api_tokens.resolve_events_token(token) is None
    assert user_client.get(url).json()["is_active"] is False


def test_events_token_cannot_manage_itself(user: GatherlyUser) -> None:
    """Test that the token endpoints only accept session JWTs."""
    token = api_tokens.issue_events_token(user).token
    client = Client(HTTP_AUTHORIZATION=f"EventsToken {token}")

    assert client.post(reverse("api:issue-events-token")).status_code == 401

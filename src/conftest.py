import secrets
import typing as t
from datetime import datetime, time, timedelta

import faker
import pytest
from django.core.cache import cache
from django.test.client import Client
from django.utils import timezone
from ninja_jwt.tokens import RefreshToken

from accounts.models import GatherlyUser
from gatherly.celery import app as celery_app


@pytest.fixture(autouse=True)
def run_tasks_inline(settings: t.Any) -> t.Iterator[None]:
    """Execute Celery tasks synchronously and let their exceptions reach the test."""
    settings.CELERY_TASK_ALWAYS_EAGER = True
    celery_app.conf.update(task_always_eager=True, task_eager_propagates=True)
    yield
    celery_app.conf.update(task_always_eager=False, task_eager_propagates=False)


@pytest.fixture(autouse=True)
def runtime_settings(settings: t.Any) -> None:
    """Keep outbound messages in memory."""
    from communications import sms

    sms.outbox.clear()
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
    settings.SMS_BACKEND = "communications.sms.LocMemSmsBackend"


@pytest.fixture(autouse=True)
def clear_cache() -> t.Iterator[None]:
    """Start every test with empty throttle and rate-limit counters."""
    cache.clear()
    yield
    cache.clear()


class GatherlyUserFactory:
    """Create users with unique usernames and realistic names.

    Usernames double as email addresses unless an ``email`` is passed.
    """

    fake = faker.Faker()

    def __call__(self, **kwargs: t.Any) -> GatherlyUser:
        first_name = kwargs.pop("first_name", self.fake.first_name())
        last_name = kwargs.pop("last_name", self.fake.last_name())
        username = kwargs.pop("username", None) or f"{secrets.token_hex(4)}@user.test"
        kwargs.setdefault("email", username)
        kwargs.setdefault("preferred_name", f"{first_name} {last_name}")
        return GatherlyUser.objects.create_user(
            username=username,
            password=kwargs.pop("password", "password"),
            first_name=first_name,
            last_name=last_name,
            **kwargs,
        )


@pytest.fixture
def user_factory() -> GatherlyUserFactory:
    return GatherlyUserFactory()


@pytest.fixture
def user(user_factory: GatherlyUserFactory) -> GatherlyUser:
    """A regular user with a verified email address."""
    return user_factory(email_verified=True)


@pytest.fixture
def jwt_client_for() -> t.Callable[[GatherlyUser], Client]:
    """Build an API client authenticated as the given user."""

    def _client(user: GatherlyUser) -> Client:
        refresh = RefreshToken.for_user(user)
        return Client(HTTP_AUTHORIZATION=f"Bearer {str(refresh.access_token)}")  # type: ignore[attr-defined]

    return _client


@pytest.fixture
def user_client(user: GatherlyUser, jwt_client_for: t.Callable[[GatherlyUser], Client]) -> Client:
    """API client for the regular user."""
    return jwt_client_for(user)


@pytest.fixture
def next_week() -> datetime:
    today = timezone.now()
    same_time_next_week = today + timedelta(days=7)
    noon = time(hour=12, minute=0)
    return timezone.make_aware(
        datetime.combine(same_time_next_week.date(), noon),
        timezone.get_current_timezone(),
    )

import secrets
import string
import typing as t
from datetime import datetime, timedelta

import faker
import pytest
from django.core.cache import cache
from django.test.client import Client
from django.utils import timezone
from ninja_jwt.tokens import RefreshToken
from pytest import MonkeyPatch

from accounts.models import FinishlineUser
from events.models import EventDistance, EventEdition, EventSeries, Organization, PricingTier


@pytest.fixture(autouse=True)
def increase_rate_limit(monkeypatch: MonkeyPatch) -> None:
    """Raise every throttle so controller tests never hit a 429."""
    for throttle in (
        "AnonDefaultThrottle",
        "UserDefaultThrottle",
        "WriteThrottle",
        "BillingCommandThrottle",
        "PromoRedemptionThrottle",
        "AuthThrottle",
    ):
        monkeypatch.setattr(f"common.throttling.{throttle}.rate", "10000/min")


@pytest.fixture(autouse=True)
def enable_celery_eager_mode(settings: t.Any) -> None:
    """Run Celery tasks synchronously so their side effects can be asserted."""
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True


@pytest.fixture(autouse=True)
def clear_cache() -> t.Iterator[None]:
    """Start every test with an empty cache (throttle history, feature config snapshot)."""
    cache.clear()
    yield
    cache.clear()


class FinishlineUserFactory:
    """Factory for creating FinishlineUser instances for testing."""

    fake = faker.Faker()

    def create_user(self, **kwargs: t.Any) -> FinishlineUser:
        username = kwargs.pop(
            "username", "".join(secrets.choice(string.ascii_lowercase) for _ in range(8)) + "@user.test"
        )
        email = kwargs.pop("email", username if "@" in username else f"{username}@test.com")
        return FinishlineUser.objects.create_user(
            username=username,
            email=email,
            password=kwargs.pop("password", "password"),
            first_name=kwargs.pop("first_name", self.fake.first_name()),
            last_name=kwargs.pop("last_name", self.fake.last_name()),
            **kwargs,
        )

    def __call__(self, **kwargs: t.Any) -> FinishlineUser:
        return self.create_user(**kwargs)


@pytest.fixture
def user_factory() -> FinishlineUserFactory:
    return FinishlineUserFactory()


@pytest.fixture
def user(user_factory: FinishlineUserFactory) -> FinishlineUser:
    """A verified participant."""
    return user_factory(username="runner@example.com", email_verified=True)


@pytest.fixture
def other_user(user_factory: FinishlineUserFactory) -> FinishlineUser:
    return user_factory(username="other@example.com", email_verified=True)


@pytest.fixture
def unverified_user(user_factory: FinishlineUserFactory) -> FinishlineUser:
    return user_factory(username="unverified@example.com", email_verified=False)


@pytest.fixture
def organizer(user_factory: FinishlineUserFactory) -> FinishlineUser:
    return user_factory(username="organizer@example.com", email_verified=True)


@pytest.fixture
def staff_user(user_factory: FinishlineUserFactory) -> FinishlineUser:
    return user_factory(username="staff@example.com", email_verified=True, is_staff=True)


def _client_for(user: FinishlineUser) -> Client:
    refresh = RefreshToken.for_user(user)
    return Client(HTTP_AUTHORIZATION=f"Bearer {str(refresh.access_token)}")  # type: ignore[attr-defined]


@pytest.fixture
def auth_client(user: FinishlineUser) -> Client:
    return _client_for(user)


@pytest.fixture
def organizer_client(organizer: FinishlineUser) -> Client:
    return _client_for(organizer)


@pytest.fixture
def unverified_client(unverified_user: FinishlineUser) -> Client:
    return _client_for(unverified_user)


@pytest.fixture
def now() -> datetime:
    return timezone.now()


@pytest.fixture
def organization(organizer: FinishlineUser) -> Organization:
    return Organization.objects.create(name="Trail Club", owner=organizer)


@pytest.fixture
def series(organization: Organization) -> EventSeries:
    return EventSeries.objects.create(organization=organization, name="Sierra Trail Run")


@pytest.fixture
def edition(series: EventSeries, now: datetime) -> EventEdition:
    """A published edition whose registration window is open."""
    return EventEdition.objects.create(
        series=series,
        edition_label="2026",
        slug="2026",
        visibility=EventEdition.Visibility.PUBLISHED,
        registration_opens_at=now - timedelta(days=1),
        registration_closes_at=now + timedelta(days=30),
    )


@pytest.fixture
def distance(edition: EventEdition) -> EventDistance:
    """A 10K with ten spots."""
    return EventDistance.objects.create(edition=edition, label="10K", capacity=10)


@pytest.fixture
def pricing_tier(distance: EventDistance) -> PricingTier:
    return PricingTier.objects.create(distance=distance, label="Regular", price_cents=10000)

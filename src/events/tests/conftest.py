import typing as t
from datetime import datetime, timedelta

import pytest

from accounts.models import FinishlineUser
from events.models import (
    AddOn,
    AddOnOption,
    EventDistance,
    EventEdition,
    GroupDiscountRule,
    Registrant,
    Registration,
)


class RegistrationFactory:
    """Create registrations directly in a given state, bypassing the lifecycle commands."""

    def __call__(
        self,
        distance: EventDistance,
        buyer: FinishlineUser | None,
        *,
        status: str = Registration.Status.STARTED,
        expires_at: datetime | None = None,
        now: datetime,
        **kwargs: t.Any,
    ) -> Registration:
        if expires_at is None and status != Registration.Status.CONFIRMED:
            expires_at = now + timedelta(minutes=30)
        return Registration.objects.create(
            edition=distance.edition,
            distance=distance,
            buyer_user=buyer,
            status=status,
            expires_at=expires_at,
            **kwargs,
        )


@pytest.fixture
def make_registration() -> RegistrationFactory:
    return RegistrationFactory()


@pytest.fixture
def submitted_registration(
    distance: EventDistance, user: FinishlineUser, now: datetime, make_registration: RegistrationFactory
) -> Registration:
    """A submitted registration with its registrant snapshot, ready to finalize."""
    registration = make_registration(
        distance,
        user,
        status=Registration.Status.SUBMITTED,
        now=now,
        base_price_cents=10000,
        fees_cents=500,
        total_cents=10500,
    )
    Registrant.objects.create(registration=registration, user=user, profile_snapshot={"first_name": "Ana"})
    return registration


@pytest.fixture
def shared_edition(edition: EventEdition) -> EventEdition:
    edition.shared_capacity = 3
    edition.save()
    return edition


@pytest.fixture
def pooled_distances(shared_edition: EventEdition) -> tuple[EventDistance, EventDistance]:
    """Two distances drawing from the edition's shared pool of three spots."""
    return (
        EventDistance.objects.create(
            edition=shared_edition, label="5K", capacity_scope=EventDistance.CapacityScope.SHARED_POOL
        ),
        EventDistance.objects.create(
            edition=shared_edition, label="21K", capacity_scope=EventDistance.CapacityScope.SHARED_POOL
        ),
    )


@pytest.fixture
def tshirt_option(edition: EventEdition) -> AddOnOption:
    add_on = AddOn.objects.create(edition=edition, title="T-shirt")
    return AddOnOption.objects.create(add_on=add_on, label="M", price_cents=2500, max_qty_per_order=2)


@pytest.fixture
def group_discount_rule(edition: EventEdition) -> GroupDiscountRule:
    """10% off from two participants up."""
    return GroupDiscountRule.objects.create(edition=edition, min_participants=2, percent_off=10)

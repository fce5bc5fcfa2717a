import typing as t
from datetime import datetime, timedelta

import pytest

from accounts.models import FinishlineUser
from billing.models import BillingSubscription, BillingTrialUse
from billing.service import promotion_service
from common.results import Ok


@pytest.fixture
def trialing_subscription(user: FinishlineUser, now: datetime) -> BillingSubscription:
    """A trial that started a day ago and has thirteen days left."""
    BillingTrialUse.objects.create(user=user, used_at=now - timedelta(days=1))
    return BillingSubscription.objects.create(
        user=user,
        status=BillingSubscription.Status.TRIALING,
        trial_starts_at=now - timedelta(days=1),
        trial_ends_at=now + timedelta(days=13),
    )


@pytest.fixture
def active_subscription(user: FinishlineUser, now: datetime) -> BillingSubscription:
    return BillingSubscription.objects.create(
        user=user,
        status=BillingSubscription.Status.ACTIVE,
        current_period_starts_at=now - timedelta(days=10),
        current_period_ends_at=now + timedelta(days=20),
    )


class PromotionFactory:
    """Create a promotion through the service and hand back its plaintext code."""

    def __init__(self, actor: FinishlineUser) -> None:
        self.actor = actor

    def __call__(self, **kwargs: t.Any) -> promotion_service.CreatedPromotion:
        if "grant_fixed_ends_at" not in kwargs:
            kwargs.setdefault("grant_duration_days", 30)
        result = promotion_service.create_promotion(self.actor, **kwargs)
        assert isinstance(result, Ok), result
        return result.data


@pytest.fixture
def promotion_factory(staff_user: FinishlineUser) -> PromotionFactory:
    return PromotionFactory(staff_user)

"""Tests for price arithmetic."""

import typing as t
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from events.models import EventDistance, PricingTier
from events.service import pricing


@pytest.mark.parametrize(
    ("value", "expected"),
    [(Decimal("0.5"), 1), (Decimal("1.49"), 1), (Decimal("2.5"), 3), (Decimal("-2.5"), -3), (7, 7)],
)
def test_round_half_up(value: Decimal, expected: int) -> None:
    assert pricing.round_half_up(value) == expected


def test_fees_use_configured_percent(settings: t.Any) -> None:
    settings.EVENTS_REGISTRATION_FEE_PERCENT = 5
    assert pricing.compute_fees_cents(10000) == 500
    assert pricing.compute_fees_cents(1010) == 51


def test_percent_amount() -> None:
    assert pricing.compute_percent_amount(10000, 10) == 1000
    assert pricing.compute_percent_amount(999, 15) == 150


def test_total_is_never_negative() -> None:
    assert pricing.compute_total_cents(base_price_cents=100, fees_cents=5, discount_cents=500) == 0
    assert (
        pricing.compute_total_cents(
            base_price_cents=10000, fees_cents=500, add_ons_cents=2500, group_discount_cents=1000
        )
        == 12000
    )


@pytest.mark.django_db
def test_active_tier_is_lowest_sort_order_in_window(distance: EventDistance, now: datetime) -> None:
    PricingTier.objects.create(
        distance=distance, label="Early", price_cents=8000, ends_at=now - timedelta(days=1), sort_order=0
    )
    PricingTier.objects.create(distance=distance, label="Regular", price_cents=10000, sort_order=1)
    PricingTier.objects.create(distance=distance, label="Late", price_cents=12000, sort_order=2)

    assert pricing.get_current_price_cents(distance, now) == 10000


@pytest.mark.django_db
def test_price_is_zero_without_tier(distance: EventDistance, now: datetime) -> None:
    assert pricing.get_current_price_cents(distance, now) == 0

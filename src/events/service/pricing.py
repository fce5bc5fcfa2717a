"""Price arithmetic for registrations. All amounts are integer cents."""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings

from events.models import EventDistance, PricingTier


def round_half_up(value: Decimal | float | int) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def get_fee_percent() -> int:
    """Platform fee percentage applied to the base price."""
    return int(getattr(settings, "EVENTS_REGISTRATION_FEE_PERCENT", 5))


def compute_fees_cents(base_price_cents: int) -> int:
    """Platform fee for a base price."""
    return round_half_up(Decimal(base_price_cents) * get_fee_percent() / 100)


def compute_percent_amount(base_price_cents: int, percent_off: int) -> int:
    """Amount taken off ``base_price_cents`` by a percentage discount."""
    return round_half_up(Decimal(base_price_cents) * percent_off / 100)


def get_active_pricing_tier(distance: EventDistance, now: datetime) -> PricingTier | None:
    """The tier on sale for ``distance`` at ``now``: the lowest sort order among open windows."""
    return PricingTier.objects.filter(distance=distance).active_at(now).first()


def get_current_price_cents(distance: EventDistance, now: datetime) -> int:
    """Base price of ``distance`` at ``now``; zero when no tier is on sale."""
    tier = get_active_pricing_tier(distance, now)
    return tier.price_cents if tier else 0


def compute_total_cents(
    *,
    base_price_cents: int,
    fees_cents: int,
    tax_cents: int = 0,
    add_ons_cents: int = 0,
    discount_cents: int = 0,
    group_discount_cents: int = 0,
) -> int:
    """Grand total, never negative."""
    return max(
        0, base_price_cents + fees_cents + tax_cents + add_ons_cents - discount_cents - group_discount_cents
    )

"""Registration, hold and group registration settings."""

import math

from decouple import config

from .base import DEBUG


def _positive_number(name: str, fallback: float) -> float:
    """Read a positive, finite number from the environment, falling back when misconfigured."""
    raw = config(name, default=str(fallback))
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(value) or value <= 0:
        return fallback
    return value


# Hold TTLs
EVENTS_REGISTRATION_STARTED_TTL_MINUTES = _positive_number("EVENTS_REGISTRATION_STARTED_TTL_MINUTES", 30)
EVENTS_REGISTRATION_SUBMITTED_TTL_MINUTES = _positive_number("EVENTS_REGISTRATION_SUBMITTED_TTL_MINUTES", 30)
EVENTS_REGISTRATION_PAYMENT_PENDING_TTL_HOURS = _positive_number("EVENTS_REGISTRATION_PAYMENT_PENDING_TTL_HOURS", 24)

# Pricing
EVENTS_REGISTRATION_FEE_PERCENT = config("EVENTS_REGISTRATION_FEE_PERCENT", default=5, cast=int)

# Payment modes
EVENTS_NO_PAYMENT_MODE = config("EVENTS_NO_PAYMENT_MODE", default=False, cast=bool)
EVENTS_DEMO_PAYMENTS_ENABLED = config("EVENTS_DEMO_PAYMENTS_ENABLED", default=DEBUG, cast=bool)
EVENTS_DEMO_PAYMENTS_ALLOW_PRODUCTION = config("EVENTS_DEMO_PAYMENTS_ALLOW_PRODUCTION", default=False, cast=bool)

# Group registrations
GROUP_REGISTRATION_SYSTEM_BUYER_EMAIL = config(
    "GROUP_REGISTRATION_SYSTEM_BUYER_EMAIL", default="group-registrations@system.finishline.local"
)
EVENTS_REGISTRATION_GROUP_DEFAULT_MAX_MEMBERS = config(
    "EVENTS_REGISTRATION_GROUP_DEFAULT_MAX_MEMBERS", default=10, cast=int
)
EVENTS_REGISTRATION_GROUP_MAX_MEMBERS = config("EVENTS_REGISTRATION_GROUP_MAX_MEMBERS", default=20, cast=int)

# Invites
EVENTS_INVITE_TTL_DAYS = config("EVENTS_INVITE_TTL_DAYS", default=14, cast=int)

# Account hygiene
UNVERIFIED_USER_RETENTION_HOURS = config("UNVERIFIED_USER_RETENTION_HOURS", default=72, cast=int)

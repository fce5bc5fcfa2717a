"""Hold TTL policy for in-progress registrations.

Expiry is logical: a hold is expired when its ``expires_at`` has passed,
whether or not a cleanup job has cancelled it yet.
"""

import math
from datetime import datetime, timedelta

from django.conf import settings

from events.models import Registration, reserved_registrations_q

DEFAULT_STARTED_TTL_MINUTES = 30
DEFAULT_SUBMITTED_TTL_MINUTES = 30
DEFAULT_PAYMENT_PENDING_TTL_HOURS = 24

Status = Registration.Status

__all__ = [
    "compute_expires_at",
    "get_hold_ttl",
    "is_expired_hold",
    "reserved_registrations_q",
]


def _resolve_ttl(value: object, fallback: float) -> float:
    """Return ``value`` as a positive finite number, or ``fallback`` when misconfigured."""
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(number) or number <= 0:
        return fallback
    return number


def get_hold_ttl(status: str) -> timedelta:
    """TTL applied when a registration enters ``status``.

    Raises:
        ValueError: If ``status`` is not a hold status.
    """
    if status == Status.STARTED:
        minutes = _resolve_ttl(
            getattr(settings, "EVENTS_REGISTRATION_STARTED_TTL_MINUTES", None), DEFAULT_STARTED_TTL_MINUTES
        )
        return timedelta(minutes=minutes)
    if status == Status.SUBMITTED:
        minutes = _resolve_ttl(
            getattr(settings, "EVENTS_REGISTRATION_SUBMITTED_TTL_MINUTES", None), DEFAULT_SUBMITTED_TTL_MINUTES
        )
        return timedelta(minutes=minutes)
    if status == Status.PAYMENT_PENDING:
        hours = _resolve_ttl(
            getattr(settings, "EVENTS_REGISTRATION_PAYMENT_PENDING_TTL_HOURS", None),
            DEFAULT_PAYMENT_PENDING_TTL_HOURS,
        )
        return timedelta(hours=hours)
    raise ValueError(f"Status {status!r} does not carry a hold TTL.")


def compute_expires_at(now: datetime, status: str) -> datetime:
    """Expiry timestamp for a registration entering ``status`` at ``now``."""
    return now + get_hold_ttl(status)


def is_expired_hold(status: str, expires_at: datetime | None, now: datetime) -> bool:
    """Whether a registration in ``status`` no longer holds its spot.

    Cancelled is always expired and confirmed never is. Hold statuses expire
    once ``expires_at`` is missing or not in the future. Unknown statuses are
    treated as expired.
    """
    if status == Status.CANCELLED:
        return True
    if status == Status.CONFIRMED:
        return False
    if status in (Status.STARTED, Status.SUBMITTED, Status.PAYMENT_PENDING):
        return expires_at is None or expires_at <= now
    return True

"""Housekeeping for lapsed holds.

Capacity never depends on this job: expired holds already stop counting as soon
as their ``expires_at`` passes. The sweep only makes statuses reflect reality.
"""

from datetime import datetime

import structlog
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from pydantic import BaseModel

from events.models import HOLD_STATUSES, Registration, RegistrationInvite

logger = structlog.get_logger(__name__)


class ExpiredRegistrationCleanupResult(BaseModel):
    cancelled_registrations: int
    expired_invites: int


def cleanup_expired_registrations(now: datetime | None = None) -> ExpiredRegistrationCleanupResult:
    """Cancel holds whose TTL lapsed and expire the invites pointing at them."""
    now = now or timezone.now()
    with transaction.atomic():
        expired_ids = list(
            Registration.objects.alive()
            .filter(Q(expires_at__isnull=True) | Q(expires_at__lte=now), status__in=HOLD_STATUSES)
            .values_list("id", flat=True)
        )
        cancelled = Registration.objects.filter(
            Q(expires_at__isnull=True) | Q(expires_at__lte=now), id__in=expired_ids, status__in=HOLD_STATUSES
        ).update(status=Registration.Status.CANCELLED, updated_at=now)
        expired_invites = RegistrationInvite.objects.filter(
            registration_id__in=expired_ids,
            status__in=[RegistrationInvite.Status.DRAFT, RegistrationInvite.Status.SENT],
        ).update(status=RegistrationInvite.Status.EXPIRED, updated_at=now)
        expired_invites += RegistrationInvite.objects.filter(
            status__in=[RegistrationInvite.Status.DRAFT, RegistrationInvite.Status.SENT],
            expires_at__lte=now,
        ).update(status=RegistrationInvite.Status.EXPIRED, updated_at=now)

    if cancelled or expired_invites:
        logger.info("expired_registrations_cleaned", cancelled=cancelled, expired_invites=expired_invites)
    return ExpiredRegistrationCleanupResult(cancelled_registrations=cancelled, expired_invites=expired_invites)

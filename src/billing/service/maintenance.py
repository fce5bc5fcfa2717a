"""Periodic billing housekeeping run by Celery beat.

Each step uses guarded updates, so overlapping runs never double-process a row.
"""

from datetime import datetime, timedelta

import structlog
from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from pydantic import BaseModel

from billing.models import BillingEvent, BillingPendingEntitlementGrant, BillingPromotion, BillingSubscription
from billing.service.emails import send_subscription_ended_email, send_trial_expiring_soon_email
from billing.service.events import append_billing_event

logger = structlog.get_logger(__name__)

Status = BillingSubscription.Status
SYSTEM_PROVIDER = "system"


class BillingMaintenanceResult(BaseModel):
    ended_subscriptions: int
    notified_trials: int
    disabled_promotions: int
    disabled_pending_grants: int


def finalize_expired_subscriptions(now: datetime | None = None) -> int:
    """Move trials and paid periods whose window is over to ``ended``."""
    now = now or timezone.now()
    expired = BillingSubscription.objects.select_related("user").filter(
        Q(status=Status.TRIALING, trial_ends_at__isnull=False, trial_ends_at__lte=now)
        | Q(status=Status.ACTIVE, current_period_ends_at__isnull=False, current_period_ends_at__lte=now)
    )
    ended = 0
    with transaction.atomic():
        for subscription in expired:
            was_trial = subscription.status == Status.TRIALING
            ended_at = (subscription.trial_ends_at if was_trial else subscription.current_period_ends_at) or now
            updated = BillingSubscription.objects.filter(
                pk=subscription.pk, status__in=[Status.TRIALING, Status.ACTIVE]
            ).update(status=Status.ENDED, ended_at=ended_at, updated_at=now)
            if not updated:
                continue
            ended += 1
            append_billing_event(
                source=BillingEvent.Source.SYSTEM,
                type=BillingEvent.Type.SUBSCRIPTION_ENDED,
                user_id=subscription.user_id,
                entity_type=BillingEvent.EntityType.SUBSCRIPTION,
                entity_id=subscription.id,
                payload={"ended_at": ended_at.isoformat()},
            )
            send_subscription_ended_email(subscription.user, was_trial=was_trial)
    if ended:
        logger.info("subscriptions_finalized", count=ended)
    return ended


def notify_expiring_trials(now: datetime | None = None) -> int:
    """Warn users whose trial ends within the configured window.

    Each trial is notified once: the ledger's (provider, external id) unique
    key makes the second attempt a no-op.
    """
    now = now or timezone.now()
    window_ends_at = now + timedelta(days=settings.BILLING_TRIAL_EXPIRING_SOON_DAYS)
    candidates = BillingSubscription.objects.select_related("user").filter(
        status=Status.TRIALING,
        trial_ends_at__gte=now,
        trial_ends_at__lte=window_ends_at,
        cancel_at_period_end=False,
    )
    notified = 0
    for subscription in candidates:
        assert subscription.trial_ends_at is not None
        with transaction.atomic():
            event = append_billing_event(
                source=BillingEvent.Source.SYSTEM,
                type=BillingEvent.Type.TRIAL_EXPIRING_SOON_NOTIFIED,
                provider=SYSTEM_PROVIDER,
                external_event_id=f"trial_expiring_soon_notified:{subscription.id}",
                user_id=subscription.user_id,
                entity_type=BillingEvent.EntityType.SUBSCRIPTION,
                entity_id=subscription.id,
                payload={"trial_ends_at": subscription.trial_ends_at.isoformat()},
            )
            if event is None:
                continue
            notified += 1
            send_trial_expiring_soon_email(subscription.user, subscription.trial_ends_at)
    if notified:
        logger.info("expiring_trials_notified", count=notified)
    return notified


def disable_expired_promotions(now: datetime | None = None) -> int:
    """Deactivate promotions past their ``valid_to``."""
    now = now or timezone.now()
    disabled = 0
    with transaction.atomic():
        expired = BillingPromotion.objects.filter(is_active=True, valid_to__isnull=False, valid_to__lte=now)
        for promotion_id in list(expired.values_list("id", flat=True)):
            if not BillingPromotion.objects.filter(pk=promotion_id, is_active=True).update(
                is_active=False, updated_at=now
            ):
                continue
            disabled += 1
            append_billing_event(
                source=BillingEvent.Source.SYSTEM,
                type=BillingEvent.Type.PROMOTION_DISABLED,
                entity_type=BillingEvent.EntityType.PROMOTION,
                entity_id=promotion_id,
            )
    return disabled


def disable_expired_pending_grants(now: datetime | None = None) -> int:
    """Deactivate pending grants whose claim window closed."""
    now = now or timezone.now()
    disabled = 0
    with transaction.atomic():
        expired = BillingPendingEntitlementGrant.objects.filter(
            is_active=True, claim_valid_to__isnull=False, claim_valid_to__lte=now
        )
        for grant_id in list(expired.values_list("id", flat=True)):
            if not BillingPendingEntitlementGrant.objects.filter(pk=grant_id, is_active=True).update(
                is_active=False, updated_at=now
            ):
                continue
            disabled += 1
            append_billing_event(
                source=BillingEvent.Source.SYSTEM,
                type=BillingEvent.Type.PENDING_GRANT_DISABLED,
                entity_type=BillingEvent.EntityType.PENDING_GRANT,
                entity_id=grant_id,
            )
    return disabled


def run_billing_maintenance(now: datetime | None = None) -> BillingMaintenanceResult:
    now = now or timezone.now()
    result = BillingMaintenanceResult(
        ended_subscriptions=finalize_expired_subscriptions(now),
        notified_trials=notify_expiring_trials(now),
        disabled_promotions=disable_expired_promotions(now),
        disabled_pending_grants=disable_expired_pending_grants(now),
    )
    logger.info("billing_maintenance_completed", **result.model_dump())
    return result

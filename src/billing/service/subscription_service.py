"""Trial start and cancel scheduling.

A user gets exactly one trial in their lifetime. The BillingTrialUse unique
constraint is the arbiter: concurrent attempts race on the insert and only
one of them commits.
"""

import uuid
from datetime import datetime, timedelta

import structlog
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from pydantic import BaseModel

from accounts.models import FinishlineUser
from billing.models import PRO_PLAN_KEY, BillingEvent, BillingSubscription, BillingTrialUse
from billing.service.emails import send_cancel_scheduled_email, send_trial_started_email
from billing.service.entitlements import get_pro_entitlement_for_user
from billing.service.events import append_billing_event
from common.results import Err, ErrorCode, Ok, err

logger = structlog.get_logger(__name__)

Status = BillingSubscription.Status


class TrialStarted(BaseModel):
    subscription_id: uuid.UUID
    trial_starts_at: datetime
    trial_ends_at: datetime


class CancelScheduled(BaseModel):
    subscription_id: uuid.UUID
    cancel_at_period_end: bool
    ends_at: datetime
    already_scheduled: bool


class SubscriptionResumed(BaseModel):
    subscription_id: uuid.UUID
    cancel_at_period_end: bool


def start_trial_for_user(
    user: FinishlineUser, now: datetime | None = None, trial_days: int | None = None
) -> Ok[TrialStarted] | Err:
    """Start the user's one-time Pro trial."""
    now = now or timezone.now()
    if trial_days is None:
        trial_days = settings.BILLING_TRIAL_DAYS
    if not user.email_verified:
        return err(ErrorCode.EMAIL_NOT_VERIFIED, "Verify your email before starting a trial.")
    if get_pro_entitlement_for_user(user, now=now).is_pro:
        return err(ErrorCode.ALREADY_PRO, "You already have Pro access.")

    trial_ends_at = now + timedelta(days=trial_days)
    with transaction.atomic():
        try:
            with transaction.atomic():
                BillingTrialUse.objects.create(user=user, used_at=now)
        except IntegrityError:
            logger.info("trial_already_used", user_id=str(user.id))
            return err(ErrorCode.TRIAL_ALREADY_USED, "Your trial was already used.")

        subscription, _ = BillingSubscription.objects.update_or_create(
            user=user,
            defaults={
                "plan_key": PRO_PLAN_KEY,
                "status": Status.TRIALING,
                "trial_starts_at": now,
                "trial_ends_at": trial_ends_at,
                "current_period_starts_at": None,
                "current_period_ends_at": None,
                "cancel_at_period_end": False,
                "canceled_at": None,
                "ended_at": None,
            },
        )
        append_billing_event(
            source=BillingEvent.Source.SYSTEM,
            type=BillingEvent.Type.TRIAL_STARTED,
            user_id=user.id,
            entity_type=BillingEvent.EntityType.SUBSCRIPTION,
            entity_id=subscription.id,
            payload={"trial_ends_at": trial_ends_at.isoformat()},
        )
        send_trial_started_email(user, trial_ends_at)

    logger.info("trial_started", user_id=str(user.id), trial_ends_at=trial_ends_at.isoformat())
    return Ok(data=TrialStarted(subscription_id=subscription.id, trial_starts_at=now, trial_ends_at=trial_ends_at))


def _lock_live_subscription(user: FinishlineUser, now: datetime) -> BillingSubscription | Err:
    subscription = BillingSubscription.objects.select_for_update().filter(user=user).first()
    if subscription is None:
        return err(ErrorCode.NOT_FOUND, "No subscription found.")
    if subscription.status == Status.ENDED:
        return err(ErrorCode.SUBSCRIPTION_ENDED, "The subscription has already ended.")
    ends_at = subscription.window_ends_at
    if ends_at is None or now >= ends_at:
        return err(ErrorCode.NOT_ACTIVE, "The subscription is not active.")
    return subscription


def schedule_cancel_at_period_end(user: FinishlineUser, now: datetime | None = None) -> Ok[CancelScheduled] | Err:
    """Stop the subscription from renewing. Pro access lasts until the window ends.

    Scheduling twice is a success with ``already_scheduled``; only the first
    call sends the confirmation email.
    """
    now = now or timezone.now()
    with transaction.atomic():
        locked = _lock_live_subscription(user, now)
        if isinstance(locked, Err):
            return locked
        subscription = locked
        ends_at = subscription.window_ends_at
        if ends_at is None:
            return err(ErrorCode.NOT_ACTIVE, "The subscription is not active.")
        result = CancelScheduled(
            subscription_id=subscription.id, cancel_at_period_end=True, ends_at=ends_at, already_scheduled=True
        )
        if subscription.cancel_at_period_end:
            return Ok(data=result)

        updated = BillingSubscription.objects.filter(pk=subscription.pk, cancel_at_period_end=False).update(
            cancel_at_period_end=True, canceled_at=subscription.canceled_at or now, updated_at=now
        )
        if updated == 0:
            return Ok(data=result)

        append_billing_event(
            source=BillingEvent.Source.SYSTEM,
            type=BillingEvent.Type.CANCEL_SCHEDULED,
            user_id=user.id,
            entity_type=BillingEvent.EntityType.SUBSCRIPTION,
            entity_id=subscription.id,
            payload={
                "window": "trial" if subscription.status == Status.TRIALING else "paid",
                "ends_at": ends_at.isoformat(),
            },
        )
        send_cancel_scheduled_email(user, ends_at)

    logger.info("subscription_cancel_scheduled", user_id=str(user.id), subscription_id=str(subscription.id))
    return Ok(data=result.model_copy(update={"already_scheduled": False}))


def resume_subscription(user: FinishlineUser, now: datetime | None = None) -> Ok[SubscriptionResumed] | Err:
    """Undo a scheduled cancellation. Resuming a subscription that renews anyway is a no-op."""
    now = now or timezone.now()
    with transaction.atomic():
        locked = _lock_live_subscription(user, now)
        if isinstance(locked, Err):
            return locked
        subscription = locked
        result = SubscriptionResumed(subscription_id=subscription.id, cancel_at_period_end=False)
        if not subscription.cancel_at_period_end:
            return Ok(data=result)

        updated = BillingSubscription.objects.filter(pk=subscription.pk, cancel_at_period_end=True).update(
            cancel_at_period_end=False, updated_at=now
        )
        if updated:
            append_billing_event(
                source=BillingEvent.Source.SYSTEM,
                type=BillingEvent.Type.CANCEL_REVERTED,
                user_id=user.id,
                entity_type=BillingEvent.EntityType.SUBSCRIPTION,
                entity_id=subscription.id,
            )
            logger.info("subscription_resumed", user_id=str(user.id), subscription_id=str(subscription.id))
    return Ok(data=result)

"""Pro entitlement evaluation.

Every way of being Pro (trial, paid period, promotion, pending grant, admin
override) is reduced to a time interval. Overlapping or touching intervals are
merged into runs, and a user is Pro while ``now`` falls inside a run.
"""

import typing as t
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from django.utils import timezone
from pydantic import BaseModel, ConfigDict, Field

from accounts.models import FinishlineUser
from billing.models import PRO_ENTITLEMENT_KEY, BillingEntitlementOverride, BillingSubscription, BillingTrialUse

EntitlementSource = t.Literal[
    "internal_bypass",
    "subscription",
    "trial",
    "admin_override",
    "pending_grant",
    "promotion",
    "system",
    "migration",
]

OVERRIDE_SOURCES: dict[str, EntitlementSource] = {
    BillingEntitlementOverride.SourceType.ADMIN: "admin_override",
    BillingEntitlementOverride.SourceType.PROMOTION: "promotion",
    BillingEntitlementOverride.SourceType.PENDING_GRANT: "pending_grant",
    BillingEntitlementOverride.SourceType.MIGRATION: "migration",
    BillingEntitlementOverride.SourceType.SYSTEM: "system",
}


class EntitlementInterval(BaseModel):
    source: EntitlementSource
    starts_at: datetime
    ends_at: datetime
    source_id: str | None = None
    created_at: datetime | None = None
    meta: dict[str, t.Any] = Field(default_factory=dict)


class EntitlementEvaluation(BaseModel):
    is_pro: bool
    pro_until: datetime | None
    effective_source: EntitlementSource | None
    sources: list[EntitlementInterval]
    next_pro_starts_at: datetime | None = None


class GrantWindow(BaseModel):
    starts_at: datetime
    ends_at: datetime
    no_extension: bool


@dataclass
class _Run:
    starts_at: datetime
    ends_at: datetime
    source: EntitlementSource


def _merge(intervals: list[EntitlementInterval]) -> list[_Run]:
    """Sweep intervals sorted by start into disjoint runs.

    A run's source is the interval that pushed its end furthest; on equal ends
    the one seen first keeps it.
    """
    runs: list[_Run] = []
    for interval in intervals:
        if runs and interval.starts_at <= runs[-1].ends_at:
            run = runs[-1]
            if interval.ends_at > run.ends_at:
                run.ends_at = interval.ends_at
                run.source = interval.source
            continue
        runs.append(_Run(starts_at=interval.starts_at, ends_at=interval.ends_at, source=interval.source))
    return runs


def evaluate_pro_entitlement(
    *, now: datetime, is_internal: bool, intervals: t.Iterable[EntitlementInterval]
) -> EntitlementEvaluation:
    """Decide whether a user is Pro at ``now`` and until when.

    Internal accounts are always Pro, without an end date. Intervals that ended
    at or before ``now`` are ignored.
    """
    if is_internal:
        return EntitlementEvaluation(
            is_pro=True, pro_until=None, effective_source="internal_bypass", sources=[], next_pro_starts_at=None
        )

    active = sorted((interval for interval in intervals if interval.ends_at > now), key=lambda i: i.starts_at)
    runs = _merge(active)
    current = next((run for run in runs if run.starts_at <= now < run.ends_at), None)
    if current is None:
        upcoming = next((run for run in runs if run.starts_at > now), None)
        return EntitlementEvaluation(
            is_pro=False,
            pro_until=None,
            effective_source=None,
            sources=active,
            next_pro_starts_at=upcoming.starts_at if upcoming else None,
        )
    return EntitlementEvaluation(
        is_pro=True, pro_until=current.ends_at, effective_source=current.source, sources=active
    )


def build_intervals(
    subscription: BillingSubscription | None, overrides: t.Iterable[BillingEntitlementOverride]
) -> list[EntitlementInterval]:
    """Turn the stored subscription and overrides into intervals."""
    intervals: list[EntitlementInterval] = []
    if subscription is not None:
        meta = {"subscription_id": str(subscription.id)}
        if (
            subscription.status == BillingSubscription.Status.TRIALING
            and subscription.trial_starts_at
            and subscription.trial_ends_at
        ):
            intervals.append(
                EntitlementInterval(
                    source="trial",
                    starts_at=subscription.trial_starts_at,
                    ends_at=subscription.trial_ends_at,
                    source_id=str(subscription.id),
                    meta=meta,
                )
            )
        if (
            subscription.status == BillingSubscription.Status.ACTIVE
            and subscription.current_period_starts_at
            and subscription.current_period_ends_at
        ):
            intervals.append(
                EntitlementInterval(
                    source="subscription",
                    starts_at=subscription.current_period_starts_at,
                    ends_at=subscription.current_period_ends_at,
                    source_id=str(subscription.id),
                    meta=meta,
                )
            )

    for override in overrides:
        intervals.append(
            EntitlementInterval(
                source=OVERRIDE_SOURCES.get(override.source_type, "system"),
                starts_at=override.starts_at,
                ends_at=override.ends_at,
                source_id=str(override.id),
                created_at=override.created_at,
                meta={
                    "override_id": str(override.id),
                    "source_type": override.source_type,
                    "source_id": str(override.source_id) if override.source_id else None,
                },
            )
        )
    return intervals


def get_pro_entitlement_for_user(
    user: FinishlineUser | uuid.UUID, *, is_internal: bool | None = None, now: datetime | None = None
) -> EntitlementEvaluation:
    """Load a user's subscription and live overrides and evaluate them.

    ``user`` may be a user id, in which case ``is_internal`` defaults to False.
    """
    now = now or timezone.now()
    if isinstance(user, FinishlineUser):
        user_id = user.id
        if is_internal is None:
            is_internal = user.is_internal
    else:
        user_id = user
    if is_internal:
        return evaluate_pro_entitlement(now=now, is_internal=True, intervals=[])

    subscription = BillingSubscription.objects.filter(user_id=user_id).first()
    overrides = BillingEntitlementOverride.objects.filter(
        user_id=user_id, entitlement_key=PRO_ENTITLEMENT_KEY, ends_at__gt=now
    )
    return evaluate_pro_entitlement(now=now, is_internal=False, intervals=build_intervals(subscription, overrides))


def compute_grant_window(
    *,
    now: datetime,
    current_pro_until: datetime | None,
    grant_duration_days: int | None,
    grant_fixed_ends_at: datetime | None,
) -> GrantWindow:
    """Window a new grant adds on top of the Pro time a user already has.

    The grant starts when current Pro access ends (or now) and lasts either a
    number of days or until a fixed date. A fixed date that is already covered
    yields ``no_extension``.
    """
    starts_at = max(now, current_pro_until) if current_pro_until else now
    if grant_fixed_ends_at is not None:
        ends_at = grant_fixed_ends_at
    elif grant_duration_days is not None:
        ends_at = starts_at + timedelta(days=grant_duration_days)
    else:
        raise ValueError("A grant needs either a duration or a fixed end.")
    return GrantWindow(starts_at=starts_at, ends_at=ends_at, no_extension=ends_at <= starts_at)


class BillingStatus(EntitlementEvaluation):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    subscription: BillingSubscription | None
    trial_eligible: bool


def get_billing_status_for_user(user: FinishlineUser, now: datetime | None = None) -> BillingStatus:
    """Entitlement plus the subscription row and whether a trial can still be started."""
    now = now or timezone.now()
    evaluation = get_pro_entitlement_for_user(user, now=now)
    return BillingStatus(
        **evaluation.model_dump(),
        subscription=BillingSubscription.objects.filter(user=user).first(),
        trial_eligible=not BillingTrialUse.objects.filter(user=user).exists(),
    )

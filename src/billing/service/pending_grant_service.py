"""Pro time reserved for an email address before its owner signs up.

Grants are stored against an HMAC of the normalized email. Claiming flips
``claimed_at`` with a conditional update, so a grant is consumed at most once
even when two sessions of the same user claim concurrently.
"""

import uuid
from datetime import datetime

import structlog
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from pydantic import BaseModel

from accounts.models import FinishlineUser
from billing.models import (
    PRO_ENTITLEMENT_KEY,
    BillingEntitlementOverride,
    BillingEvent,
    BillingPendingEntitlementGrant,
)
from billing.service import ActivationChange, set_active_flag
from billing.service.entitlements import compute_grant_window, get_pro_entitlement_for_user
from billing.service.events import append_billing_event
from billing.service.hashing import hash_email, hash_email_all_versions
from common.results import Err, ErrorCode, Ok, err

logger = structlog.get_logger(__name__)

ClaimSource = BillingPendingEntitlementGrant.ClaimSource


class PendingGrantClaimSummary(BaseModel):
    claimed_count: int = 0
    overrides_created: int = 0
    no_extension_count: int = 0


def claimable_grants_q(now: datetime) -> Q:
    """Active, unclaimed grants whose claim window contains ``now``."""
    return (
        Q(is_active=True, claimed_at__isnull=True, entitlement_key=PRO_ENTITLEMENT_KEY)
        & (Q(claim_valid_from__isnull=True) | Q(claim_valid_from__lte=now))
        & (Q(claim_valid_to__isnull=True) | Q(claim_valid_to__gt=now))
    )


def create_pending_entitlement_grant(
    email: str,
    actor: FinishlineUser,
    *,
    grant_duration_days: int | None = None,
    grant_fixed_ends_at: datetime | None = None,
    claim_valid_from: datetime | None = None,
    claim_valid_to: datetime | None = None,
    is_active: bool = True,
) -> Ok[BillingPendingEntitlementGrant] | Err:
    """Reserve Pro time for ``email``. The address itself is not stored."""
    if (grant_duration_days is None) == (grant_fixed_ends_at is None):
        return err(ErrorCode.VALIDATION_ERROR, "Set either a grant duration or a fixed end date.")
    hashed = hash_email(email)
    with transaction.atomic():
        grant = BillingPendingEntitlementGrant.objects.create(
            hash_version=hashed.version,
            email_hash=hashed.hash,
            grant_duration_days=grant_duration_days,
            grant_fixed_ends_at=grant_fixed_ends_at,
            claim_valid_from=claim_valid_from,
            claim_valid_to=claim_valid_to,
            is_active=is_active,
            created_by=actor,
        )
        append_billing_event(
            source=BillingEvent.Source.ADMIN,
            type=BillingEvent.Type.PENDING_GRANT_CREATED,
            user_id=actor.id,
            entity_type=BillingEvent.EntityType.PENDING_GRANT,
            entity_id=grant.id,
            payload={
                "hash_version": hashed.version,
                "grant_duration_days": grant_duration_days,
                "grant_fixed_ends_at": grant_fixed_ends_at.isoformat() if grant_fixed_ends_at else None,
                "claim_valid_from": claim_valid_from.isoformat() if claim_valid_from else None,
                "claim_valid_to": claim_valid_to.isoformat() if claim_valid_to else None,
                "is_active": is_active,
            },
        )
    logger.info("pending_grant_created", pending_grant_id=str(grant.id))
    return Ok(data=grant)


def claim_pending_entitlement_grants_for_user(
    user: FinishlineUser,
    email: str | None = None,
    claim_source: str = ClaimSource.MANUAL_CLAIM,
    now: datetime | None = None,
) -> Ok[PendingGrantClaimSummary] | Err:
    """Claim every grant reserved for the user's verified email.

    Grants are stacked in creation order: each one starts where the Pro time
    accumulated so far ends. Claiming again finds nothing and returns zeros.
    """
    now = now or timezone.now()
    if not user.email_verified:
        return err(ErrorCode.EMAIL_NOT_VERIFIED, "Verify your email before claiming grants.")
    hashes = [entry.hash for entry in hash_email_all_versions(email or user.email)]
    summary = PendingGrantClaimSummary()

    with transaction.atomic():
        grants = list(
            BillingPendingEntitlementGrant.objects.select_for_update()
            .filter(claimable_grants_q(now), email_hash__in=hashes)
            .order_by("created_at")
        )
        if not grants:
            return Ok(data=summary)

        pro_until = get_pro_entitlement_for_user(user.id, is_internal=False, now=now).pro_until
        for grant in grants:
            won = BillingPendingEntitlementGrant.objects.filter(pk=grant.pk, claimed_at__isnull=True).update(
                claimed_at=now, claimed_by=user, claim_source=claim_source, updated_at=now
            )
            if not won:
                continue
            summary.claimed_count += 1

            window = compute_grant_window(
                now=now,
                current_pro_until=pro_until,
                grant_duration_days=grant.grant_duration_days,
                grant_fixed_ends_at=grant.grant_fixed_ends_at,
            )
            if window.no_extension:
                summary.no_extension_count += 1
                append_billing_event(
                    source=BillingEvent.Source.SYSTEM,
                    type=BillingEvent.Type.PENDING_GRANT_CLAIMED,
                    user_id=user.id,
                    entity_type=BillingEvent.EntityType.PENDING_GRANT,
                    entity_id=grant.id,
                    payload={"no_extension": True},
                )
                continue

            override = BillingEntitlementOverride.objects.create(
                user=user,
                starts_at=window.starts_at,
                ends_at=window.ends_at,
                source_type=BillingEntitlementOverride.SourceType.PENDING_GRANT,
                source_id=grant.id,
                metadata={"pending_grant_id": str(grant.id)},
            )
            summary.overrides_created += 1
            if pro_until is None or window.ends_at > pro_until:
                pro_until = window.ends_at
            append_billing_event(
                source=BillingEvent.Source.SYSTEM,
                type=BillingEvent.Type.PENDING_GRANT_CLAIMED,
                user_id=user.id,
                entity_type=BillingEvent.EntityType.PENDING_GRANT,
                entity_id=grant.id,
                payload={
                    "override_id": str(override.id),
                    "starts_at": window.starts_at.isoformat(),
                    "ends_at": window.ends_at.isoformat(),
                },
            )

    if summary.claimed_count:
        logger.info("pending_grants_claimed", user_id=str(user.id), **summary.model_dump())
    return Ok(data=summary)


def disable_pending_entitlement_grant(
    grant_id: uuid.UUID, actor: FinishlineUser, now: datetime | None = None
) -> Ok[ActivationChange] | Err:
    return set_active_flag(
        BillingPendingEntitlementGrant,
        grant_id,
        is_active=False,
        actor=actor,
        event_type=BillingEvent.Type.PENDING_GRANT_DISABLED,
        entity_type=BillingEvent.EntityType.PENDING_GRANT,
        now=now or timezone.now(),
    )


def enable_pending_entitlement_grant(
    grant_id: uuid.UUID, actor: FinishlineUser, now: datetime | None = None
) -> Ok[ActivationChange] | Err:
    return set_active_flag(
        BillingPendingEntitlementGrant,
        grant_id,
        is_active=True,
        actor=actor,
        event_type=BillingEvent.Type.PENDING_GRANT_ENABLED,
        entity_type=BillingEvent.EntityType.PENDING_GRANT,
        now=now or timezone.now(),
    )

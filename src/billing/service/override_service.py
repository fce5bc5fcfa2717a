"""Admin-granted Pro windows."""

import uuid
from datetime import datetime

import structlog
from django.db import transaction
from django.utils import timezone
from pydantic import BaseModel

from accounts.models import FinishlineUser
from billing.models import BillingEntitlementOverride, BillingEvent
from billing.service.entitlements import compute_grant_window, get_pro_entitlement_for_user
from billing.service.events import append_billing_event
from common.results import Err, ErrorCode, Ok, err

logger = structlog.get_logger(__name__)


class OverrideGranted(BaseModel):
    override_id: uuid.UUID | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    no_extension: bool = False


class OverrideRevoked(BaseModel):
    override_id: uuid.UUID
    already_revoked: bool


def _add_admin_override(
    user: FinishlineUser,
    actor: FinishlineUser,
    *,
    grant_duration_days: int | None,
    grant_fixed_ends_at: datetime | None,
    reason: str,
    event_type: str,
    now: datetime,
) -> Ok[OverrideGranted] | Err:
    if (grant_duration_days is None) == (grant_fixed_ends_at is None):
        return err(ErrorCode.VALIDATION_ERROR, "Set either a grant duration or a fixed end date.")
    with transaction.atomic():
        current = get_pro_entitlement_for_user(user.id, is_internal=False, now=now)
        window = compute_grant_window(
            now=now,
            current_pro_until=current.pro_until,
            grant_duration_days=grant_duration_days,
            grant_fixed_ends_at=grant_fixed_ends_at,
        )
        payload = {
            "granted_by": str(actor.id),
            "reason": reason,
            "grant_duration_days": grant_duration_days,
            "grant_fixed_ends_at": grant_fixed_ends_at.isoformat() if grant_fixed_ends_at else None,
            "starts_at": window.starts_at.isoformat(),
            "ends_at": window.ends_at.isoformat(),
        }
        if window.no_extension:
            append_billing_event(
                source=BillingEvent.Source.ADMIN,
                type=event_type,
                user_id=user.id,
                entity_type=BillingEvent.EntityType.OVERRIDE,
                payload={**payload, "no_extension": True},
            )
            return Ok(data=OverrideGranted(no_extension=True))

        override = BillingEntitlementOverride.objects.create(
            user=user,
            starts_at=window.starts_at,
            ends_at=window.ends_at,
            source_type=BillingEntitlementOverride.SourceType.ADMIN,
            reason=reason,
            granted_by=actor,
            metadata={"reason": reason},
        )
        append_billing_event(
            source=BillingEvent.Source.ADMIN,
            type=event_type,
            user_id=user.id,
            entity_type=BillingEvent.EntityType.OVERRIDE,
            entity_id=override.id,
            payload={**payload, "override_id": str(override.id)},
        )
    logger.info("admin_override_added", user_id=str(user.id), override_id=str(override.id), event_type=event_type)
    return Ok(data=OverrideGranted(override_id=override.id, starts_at=window.starts_at, ends_at=window.ends_at))


def grant_admin_override(
    user: FinishlineUser,
    actor: FinishlineUser,
    *,
    reason: str,
    grant_duration_days: int | None = None,
    grant_fixed_ends_at: datetime | None = None,
    now: datetime | None = None,
) -> Ok[OverrideGranted] | Err:
    """Grant Pro time, stacked after any Pro time the user already has."""
    return _add_admin_override(
        user,
        actor,
        grant_duration_days=grant_duration_days,
        grant_fixed_ends_at=grant_fixed_ends_at,
        reason=reason,
        event_type=BillingEvent.Type.OVERRIDE_GRANTED,
        now=now or timezone.now(),
    )


def extend_admin_override(
    user: FinishlineUser,
    actor: FinishlineUser,
    *,
    reason: str,
    grant_duration_days: int | None = None,
    grant_fixed_ends_at: datetime | None = None,
    now: datetime | None = None,
) -> Ok[OverrideGranted] | Err:
    """Same as granting, recorded as an extension in the ledger."""
    return _add_admin_override(
        user,
        actor,
        grant_duration_days=grant_duration_days,
        grant_fixed_ends_at=grant_fixed_ends_at,
        reason=reason,
        event_type=BillingEvent.Type.OVERRIDE_EXTENDED,
        now=now or timezone.now(),
    )


def revoke_admin_override(
    override_id: uuid.UUID, actor: FinishlineUser, now: datetime | None = None
) -> Ok[OverrideRevoked] | Err:
    """End an override now. Overrides that already ended count as revoked."""
    now = now or timezone.now()
    with transaction.atomic():
        override = BillingEntitlementOverride.objects.select_for_update().filter(pk=override_id).first()
        if override is None:
            return err(ErrorCode.NOT_FOUND, "Override not found.")
        if override.ends_at <= now:
            return Ok(data=OverrideRevoked(override_id=override_id, already_revoked=True))
        if override.starts_at >= now:
            return err(ErrorCode.INVALID_STATE, "The override has not started yet.")

        previous_ends_at = override.ends_at
        BillingEntitlementOverride.objects.filter(pk=override.pk).update(ends_at=now, updated_at=now)
        append_billing_event(
            source=BillingEvent.Source.ADMIN,
            type=BillingEvent.Type.OVERRIDE_REVOKED,
            user_id=override.user_id,
            entity_type=BillingEvent.EntityType.OVERRIDE,
            entity_id=override.id,
            payload={
                "revoked_by": str(actor.id),
                "starts_at": override.starts_at.isoformat(),
                "previous_ends_at": previous_ends_at.isoformat(),
                "ends_at": now.isoformat(),
            },
        )
    logger.info("admin_override_revoked", override_id=str(override_id), user_id=str(override.user_id))
    return Ok(data=OverrideRevoked(override_id=override_id, already_revoked=False))

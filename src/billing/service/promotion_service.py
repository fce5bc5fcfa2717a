"""Promo codes: creation, redemption and activation.

Redemption is exactly-once per (promotion, user) through a unique constraint,
and the global cap is enforced by a guarded counter update rather than a
read-then-write.
"""

import secrets
import uuid
from datetime import datetime

import structlog
from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone
from pydantic import BaseModel

from accounts.models import FinishlineUser
from billing.exceptions import PromotionCapReachedError
from billing.models import (
    PRO_ENTITLEMENT_KEY,
    BillingEntitlementOverride,
    BillingEvent,
    BillingPromotion,
    BillingPromotionRedemption,
)
from billing.service import ActivationChange, set_active_flag
from billing.service.entitlements import compute_grant_window, get_pro_entitlement_for_user
from billing.service.events import append_billing_event
from billing.service.hashing import get_promo_code_prefix, hash_promo_code, hash_promo_code_all_versions
from common.results import Err, ErrorCode, Ok, err

logger = structlog.get_logger(__name__)

PROMO_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_GENERATION_ATTEMPTS = 5


class PromotionRedeemed(BaseModel):
    promotion_id: uuid.UUID
    redemption_id: uuid.UUID | None = None
    override_id: uuid.UUID | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    no_extension: bool = False
    already_redeemed: bool = False


class CreatedPromotion(BaseModel):
    promotion_id: uuid.UUID
    code: str


def generate_promo_code(length: int | None = None) -> str:
    """Random code from an alphabet without look-alike characters."""
    if length is None:
        length = settings.BILLING_PROMO_CODE_LENGTH
    return "".join(secrets.choice(PROMO_ALPHABET) for _ in range(length))


def _is_within_window(now: datetime, starts_at: datetime | None, ends_at: datetime | None) -> bool:
    if starts_at and now < starts_at:
        return False
    if ends_at and now >= ends_at:
        return False
    return True


def redeem_promotion_for_user(
    user: FinishlineUser, promo_code: str, now: datetime | None = None
) -> Ok[PromotionRedeemed] | Err:
    """Redeem a promo code for Pro time.

    Redeeming the same code twice succeeds with ``already_redeemed`` and grants
    nothing more. When the grant would not extend the user's current Pro time
    the redemption is recorded with ``no_extension`` and no override is created.
    """
    now = now or timezone.now()
    hashes = [entry.hash for entry in hash_promo_code_all_versions(promo_code)]

    with transaction.atomic():
        promotion = BillingPromotion.objects.select_for_update().filter(code_hash__in=hashes).first()
        if promotion is None:
            return err(ErrorCode.PROMO_NOT_FOUND, "Promotion not found.")
        if not promotion.is_active or not _is_within_window(now, promotion.valid_from, promotion.valid_to):
            return err(ErrorCode.PROMO_INACTIVE, "This promotion is not active.")

        try:
            with transaction.atomic():
                redemption = BillingPromotionRedemption.objects.create(
                    promotion=promotion, user=user, redeemed_at=now
                )
                counted = (
                    BillingPromotion.objects.filter(pk=promotion.pk)
                    .filter(Q(max_redemptions__isnull=True) | Q(redemption_count__lt=F("max_redemptions")))
                    .update(redemption_count=F("redemption_count") + 1, updated_at=now)
                )
                if counted == 0:
                    raise PromotionCapReachedError()
        except IntegrityError:
            logger.info("promotion_already_redeemed", promotion_id=str(promotion.id), user_id=str(user.id))
            return Ok(data=PromotionRedeemed(promotion_id=promotion.id, already_redeemed=True))
        except PromotionCapReachedError:
            return err(ErrorCode.PROMO_MAX_REDEMPTIONS, "This promotion has reached its redemption limit.")

        current = get_pro_entitlement_for_user(user.id, is_internal=False, now=now)
        window = compute_grant_window(
            now=now,
            current_pro_until=current.pro_until,
            grant_duration_days=promotion.grant_duration_days,
            grant_fixed_ends_at=promotion.grant_fixed_ends_at,
        )
        payload = {"promotion_id": str(promotion.id), "redemption_id": str(redemption.id)}
        if window.no_extension:
            append_billing_event(
                source=BillingEvent.Source.SYSTEM,
                type=BillingEvent.Type.PROMOTION_REDEEMED,
                user_id=user.id,
                entity_type=BillingEvent.EntityType.PROMOTION,
                entity_id=promotion.id,
                payload={**payload, "no_extension": True},
            )
            return Ok(
                data=PromotionRedeemed(promotion_id=promotion.id, redemption_id=redemption.id, no_extension=True)
            )

        override = BillingEntitlementOverride.objects.create(
            user=user,
            entitlement_key=PRO_ENTITLEMENT_KEY,
            starts_at=window.starts_at,
            ends_at=window.ends_at,
            source_type=BillingEntitlementOverride.SourceType.PROMOTION,
            source_id=promotion.id,
            metadata=payload,
        )
        append_billing_event(
            source=BillingEvent.Source.SYSTEM,
            type=BillingEvent.Type.PROMOTION_REDEEMED,
            user_id=user.id,
            entity_type=BillingEvent.EntityType.PROMOTION,
            entity_id=promotion.id,
            payload={
                **payload,
                "override_id": str(override.id),
                "starts_at": window.starts_at.isoformat(),
                "ends_at": window.ends_at.isoformat(),
            },
        )

    logger.info("promotion_redeemed", promotion_id=str(promotion.id), user_id=str(user.id))
    return Ok(
        data=PromotionRedeemed(
            promotion_id=promotion.id,
            redemption_id=redemption.id,
            override_id=override.id,
            starts_at=window.starts_at,
            ends_at=window.ends_at,
        )
    )


def create_promotion(
    actor: FinishlineUser,
    *,
    name: str = "",
    description: str = "",
    grant_duration_days: int | None = None,
    grant_fixed_ends_at: datetime | None = None,
    valid_from: datetime | None = None,
    valid_to: datetime | None = None,
    max_redemptions: int | None = None,
    per_user_max_redemptions: int = 1,
    is_active: bool = True,
) -> Ok[CreatedPromotion] | Err:
    """Create a promotion with a fresh random code.

    The plaintext code is returned once. A hash collision with an existing code
    is retried with a new code a few times before giving up.
    """
    if per_user_max_redemptions != 1:
        return err(ErrorCode.VALIDATION_ERROR, "Each user can redeem a promotion only once.")
    if (grant_duration_days is None) == (grant_fixed_ends_at is None):
        return err(ErrorCode.VALIDATION_ERROR, "Set either a grant duration or a fixed end date.")

    for attempt in range(CODE_GENERATION_ATTEMPTS):
        code = generate_promo_code()
        hashed = hash_promo_code(code)
        try:
            with transaction.atomic():
                promotion = BillingPromotion.objects.create(
                    hash_version=hashed.version,
                    code_hash=hashed.hash,
                    code_prefix=get_promo_code_prefix(code),
                    name=name,
                    description=description,
                    grant_duration_days=grant_duration_days,
                    grant_fixed_ends_at=grant_fixed_ends_at,
                    valid_from=valid_from,
                    valid_to=valid_to,
                    max_redemptions=max_redemptions,
                    per_user_max_redemptions=per_user_max_redemptions,
                    is_active=is_active,
                    created_by=actor,
                )
                append_billing_event(
                    source=BillingEvent.Source.ADMIN,
                    type=BillingEvent.Type.PROMOTION_CREATED,
                    user_id=actor.id,
                    entity_type=BillingEvent.EntityType.PROMOTION,
                    entity_id=promotion.id,
                    payload={
                        "code_prefix": promotion.code_prefix,
                        "hash_version": hashed.version,
                        "grant_duration_days": grant_duration_days,
                        "grant_fixed_ends_at": grant_fixed_ends_at.isoformat() if grant_fixed_ends_at else None,
                        "max_redemptions": max_redemptions,
                        "is_active": is_active,
                    },
                )
        except IntegrityError:
            logger.warning("promo_code_collision", attempt=attempt + 1)
            continue
        logger.info("promotion_created", promotion_id=str(promotion.id), code_prefix=promotion.code_prefix)
        return Ok(data=CreatedPromotion(promotion_id=promotion.id, code=code))

    return err(ErrorCode.CODE_GENERATION_FAILED, "Could not generate a unique promo code.")


def disable_promotion(
    promotion_id: uuid.UUID, actor: FinishlineUser, now: datetime | None = None
) -> Ok[ActivationChange] | Err:
    return set_active_flag(
        BillingPromotion,
        promotion_id,
        is_active=False,
        actor=actor,
        event_type=BillingEvent.Type.PROMOTION_DISABLED,
        entity_type=BillingEvent.EntityType.PROMOTION,
        now=now or timezone.now(),
    )


def enable_promotion(
    promotion_id: uuid.UUID, actor: FinishlineUser, now: datetime | None = None
) -> Ok[ActivationChange] | Err:
    return set_active_flag(
        BillingPromotion,
        promotion_id,
        is_active=True,
        actor=actor,
        event_type=BillingEvent.Type.PROMOTION_ENABLED,
        entity_type=BillingEvent.EntityType.PROMOTION,
        now=now or timezone.now(),
    )

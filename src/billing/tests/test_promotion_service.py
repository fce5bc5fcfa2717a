import typing as t
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from accounts.models import FinishlineUser
from billing.models import (
    BillingEntitlementOverride,
    BillingEvent,
    BillingPromotion,
    BillingPromotionRedemption,
    BillingSubscription,
)
from billing.service import promotion_service
from billing.service.entitlements import get_pro_entitlement_for_user
from common.results import Err, ErrorCode, Ok

pytestmark = pytest.mark.django_db


class TestCreatePromotion:
    def test_stores_only_digest(self, staff_user: FinishlineUser, settings: t.Any) -> None:
        settings.BILLING_PROMO_CODE_LENGTH = 10

        result = promotion_service.create_promotion(staff_user, name="Launch", grant_duration_days=30)

        assert isinstance(result, Ok)
        code = result.data.code
        assert len(code) == 10
        assert set(code) <= set(promotion_service.PROMO_ALPHABET)
        promotion = BillingPromotion.objects.get(pk=result.data.promotion_id)
        assert promotion.code_hash != code
        assert code.startswith(promotion.code_prefix)
        assert BillingEvent.objects.filter(type=BillingEvent.Type.PROMOTION_CREATED).count() == 1

    @pytest.mark.parametrize(
        "kwargs",
        [
            {},
            {"grant_duration_days": 30, "grant_fixed_ends_at": datetime(2030, 1, 1, tzinfo=timezone.utc)},
            {"grant_duration_days": 30, "per_user_max_redemptions": 2},
        ],
    )
    def test_rejects_invalid_shapes(self, staff_user: FinishlineUser, kwargs: dict[str, t.Any]) -> None:
        result = promotion_service.create_promotion(staff_user, **kwargs)

        assert isinstance(result, Err)
        assert result.code == ErrorCode.VALIDATION_ERROR

    def test_gives_up_after_repeated_collisions(
        self, staff_user: FinishlineUser, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(promotion_service, "generate_promo_code", lambda length=None: "SAMECODE42")
        promotion_service.create_promotion(staff_user, grant_duration_days=30)

        result = promotion_service.create_promotion(staff_user, grant_duration_days=30)

        assert isinstance(result, Err)
        assert result.code == ErrorCode.CODE_GENERATION_FAILED


class TestRedeemPromotion:
    def test_grants_pro_time(self, user: FinishlineUser, promotion_factory: t.Any, now: datetime) -> None:
        created = promotion_factory(grant_duration_days=30)

        result = promotion_service.redeem_promotion_for_user(user, f"  {created.code.lower()} ", now)

        assert isinstance(result, Ok)
        assert result.data.starts_at == now
        assert result.data.ends_at == now + timedelta(days=30)
        override = BillingEntitlementOverride.objects.get(pk=result.data.override_id)
        assert override.source_type == BillingEntitlementOverride.SourceType.PROMOTION
        evaluation = get_pro_entitlement_for_user(user, now=now)
        assert evaluation.is_pro is True
        assert evaluation.effective_source == "promotion"
        assert BillingPromotion.objects.get(pk=created.promotion_id).redemption_count == 1

    def test_stacks_after_trial(
        self,
        user: FinishlineUser,
        trialing_subscription: BillingSubscription,
        promotion_factory: t.Any,
        now: datetime,
    ) -> None:
        created = promotion_factory(grant_duration_days=30)

        result = promotion_service.redeem_promotion_for_user(user, created.code, now)

        assert isinstance(result, Ok)
        assert result.data.starts_at == trialing_subscription.trial_ends_at
        evaluation = get_pro_entitlement_for_user(user, now=now)
        assert trialing_subscription.trial_ends_at is not None
        assert evaluation.pro_until == trialing_subscription.trial_ends_at + timedelta(days=30)

    def test_redeeming_twice_grants_once(self, user: FinishlineUser, promotion_factory: t.Any, now: datetime) -> None:
        created = promotion_factory()
        promotion_service.redeem_promotion_for_user(user, created.code, now)

        result = promotion_service.redeem_promotion_for_user(user, created.code, now)

        assert isinstance(result, Ok)
        assert result.data.already_redeemed is True
        assert BillingEntitlementOverride.objects.filter(user=user).count() == 1
        assert BillingPromotion.objects.get(pk=created.promotion_id).redemption_count == 1

    def test_global_cap(
        self, user: FinishlineUser, other_user: FinishlineUser, promotion_factory: t.Any, now: datetime
    ) -> None:
        created = promotion_factory(max_redemptions=1)
        promotion_service.redeem_promotion_for_user(user, created.code, now)

        result = promotion_service.redeem_promotion_for_user(other_user, created.code, now)

        assert isinstance(result, Err)
        assert result.code == ErrorCode.PROMO_MAX_REDEMPTIONS
        assert not BillingPromotionRedemption.objects.filter(user=other_user).exists()
        assert BillingPromotion.objects.get(pk=created.promotion_id).redemption_count == 1

    def test_unknown_code(self, user: FinishlineUser, now: datetime) -> None:
        result = promotion_service.redeem_promotion_for_user(user, "NOSUCHCODE", now)

        assert isinstance(result, Err)
        assert result.code == ErrorCode.PROMO_NOT_FOUND

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"is_active": False},
            {"valid_from_days": 1},
            {"valid_to_days": -1},
        ],
    )
    def test_inactive(
        self, user: FinishlineUser, promotion_factory: t.Any, now: datetime, kwargs: dict[str, t.Any]
    ) -> None:
        if "valid_from_days" in kwargs:
            kwargs = {"valid_from": now + timedelta(days=kwargs["valid_from_days"])}
        elif "valid_to_days" in kwargs:
            kwargs = {"valid_to": now + timedelta(days=kwargs["valid_to_days"])}
        created = promotion_factory(**kwargs)

        result = promotion_service.redeem_promotion_for_user(user, created.code, now)

        assert isinstance(result, Err)
        assert result.code == ErrorCode.PROMO_INACTIVE

    def test_fixed_end_already_covered(
        self,
        user: FinishlineUser,
        active_subscription: BillingSubscription,
        promotion_factory: t.Any,
        now: datetime,
    ) -> None:
        created = promotion_factory(grant_fixed_ends_at=now + timedelta(days=5))

        result = promotion_service.redeem_promotion_for_user(user, created.code, now)

        assert isinstance(result, Ok)
        assert result.data.no_extension is True
        assert result.data.redemption_id is not None
        assert not BillingEntitlementOverride.objects.exists()

    def test_codes_hashed_with_an_older_secret_still_redeem(
        self, user: FinishlineUser, promotion_factory: t.Any, now: datetime, settings: t.Any
    ) -> None:
        settings.BILLING_HASH_SECRETS = {1: "old-secret"}
        created = promotion_factory()
        settings.BILLING_HASH_SECRETS = {1: "old-secret", 2: "new-secret"}

        result = promotion_service.redeem_promotion_for_user(user, created.code, now)

        assert isinstance(result, Ok)
        assert result.data.override_id is not None


class TestActivation:
    def test_disable_and_enable(self, staff_user: FinishlineUser, promotion_factory: t.Any) -> None:
        created = promotion_factory()

        disabled = promotion_service.disable_promotion(created.promotion_id, staff_user)
        again = promotion_service.disable_promotion(created.promotion_id, staff_user)
        enabled = promotion_service.enable_promotion(created.promotion_id, staff_user)

        assert isinstance(disabled, Ok) and disabled.data.already_in_state is False
        assert isinstance(again, Ok) and again.data.already_in_state is True
        assert isinstance(enabled, Ok) and enabled.data.is_active is True
        assert BillingEvent.objects.filter(type=BillingEvent.Type.PROMOTION_DISABLED).count() == 1
        assert BillingEvent.objects.filter(type=BillingEvent.Type.PROMOTION_ENABLED).count() == 1

    def test_unknown_promotion(self, staff_user: FinishlineUser) -> None:
        result = promotion_service.disable_promotion(uuid.uuid4(), staff_user)

        assert isinstance(result, Err)
        assert result.code == ErrorCode.NOT_FOUND

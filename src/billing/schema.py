from datetime import datetime
from uuid import UUID

from ninja import ModelSchema, Schema
from pydantic import Field

from billing.models import BillingSubscription
from billing.service.entitlements import EntitlementSource
from common.schema import StrippedString


class BillingSubscriptionSchema(ModelSchema):
    status: BillingSubscription.Status

    class Meta:
        model = BillingSubscription
        fields = [
            "id",
            "plan_key",
            "cancel_at_period_end",
            "trial_starts_at",
            "trial_ends_at",
            "current_period_starts_at",
            "current_period_ends_at",
            "canceled_at",
            "ended_at",
        ]


class EntitlementIntervalSchema(Schema):
    source: EntitlementSource
    starts_at: datetime
    ends_at: datetime
    source_id: str | None = None


class BillingStatusSchema(Schema):
    is_pro: bool
    pro_until: datetime | None = None
    effective_source: EntitlementSource | None = None
    next_pro_starts_at: datetime | None = None
    sources: list[EntitlementIntervalSchema]
    subscription: BillingSubscriptionSchema | None = None
    trial_eligible: bool


class PromoCodeRedeemSchema(Schema):
    code: StrippedString = Field(..., min_length=4, max_length=64)


class PromotionRedeemedSchema(Schema):
    promotion_id: UUID
    override_id: UUID | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    no_extension: bool
    already_redeemed: bool

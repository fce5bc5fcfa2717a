from ninja_extra import api_controller, route

from billing import schema
from billing.service import entitlements, pending_grant_service, promotion_service, subscription_service
from common.authentication import I18nJWTAuth
from common.controllers import UserAwareController
from common.results import unwrap
from common.throttling import BillingCommandThrottle, PromoRedemptionThrottle, UserDefaultThrottle


@api_controller("/billing", auth=I18nJWTAuth(), tags=["Billing"], throttle=BillingCommandThrottle())
class BillingController(UserAwareController):
    @route.get(
        "/status", url_name="billing_status", response=schema.BillingStatusSchema, throttle=UserDefaultThrottle()
    )
    def status(self) -> entitlements.BillingStatus:
        """Whether the current user is Pro, until when, and why."""
        return entitlements.get_billing_status_for_user(self.user())

    @route.post("/trial", url_name="start_trial", response=subscription_service.TrialStarted)
    def start_trial(self) -> subscription_service.TrialStarted:
        """Start the one-time Pro trial. Requires a verified email."""
        return unwrap(subscription_service.start_trial_for_user(self.user()))

    @route.post("/cancel", url_name="cancel_subscription", response=subscription_service.CancelScheduled)
    def cancel(self) -> subscription_service.CancelScheduled:
        """Cancel at the end of the current trial or period. Safe to call repeatedly."""
        return unwrap(subscription_service.schedule_cancel_at_period_end(self.user()))

    @route.post("/resume", url_name="resume_subscription", response=subscription_service.SubscriptionResumed)
    def resume(self) -> subscription_service.SubscriptionResumed:
        """Undo a scheduled cancellation."""
        return unwrap(subscription_service.resume_subscription(self.user()))

    @route.post(
        "/promotions/redeem",
        url_name="redeem_promotion",
        response=schema.PromotionRedeemedSchema,
        throttle=PromoRedemptionThrottle(),
    )
    def redeem_promotion(self, payload: schema.PromoCodeRedeemSchema) -> promotion_service.PromotionRedeemed:
        """Redeem a promo code for Pro time."""
        return unwrap(promotion_service.redeem_promotion_for_user(self.user(), payload.code))

    @route.post(
        "/pending-grants/claim",
        url_name="claim_pending_grants",
        response=pending_grant_service.PendingGrantClaimSummary,
    )
    def claim_pending_grants(self) -> pending_grant_service.PendingGrantClaimSummary:
        """Claim Pro time reserved for the current user's email address."""
        return unwrap(pending_grant_service.claim_pending_entitlement_grants_for_user(self.user()))

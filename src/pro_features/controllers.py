from ninja.errors import HttpError
from ninja_extra import api_controller, route

from common.authentication import OptionalAuth
from common.controllers import UserAwareController
from common.throttling import UserDefaultThrottle
from pro_features import schema
from pro_features.catalog import PRO_FEATURE_CATALOG
from pro_features.service import get_pro_feature_decision_for_user


@api_controller("/pro-features", auth=OptionalAuth(), tags=["Pro Features"], throttle=UserDefaultThrottle())
class ProFeatureController(UserAwareController):
    @route.get("/{feature_key}", url_name="pro_feature_decision", response=schema.ProFeatureDecisionSchema)
    def get_decision(self, feature_key: str) -> schema.ProFeatureDecisionSchema:
        """How a Pro feature should be presented to the current user.

        ``locked`` features are shown with an upsell link, ``hidden`` ones are not shown.
        """
        if feature_key not in PRO_FEATURE_CATALOG:
            raise HttpError(404, f"Unknown feature: {feature_key}")
        decision = get_pro_feature_decision_for_user(feature_key, self.maybe_user())
        gated = decision.status in ("locked", "hidden")
        return schema.ProFeatureDecisionSchema(
            feature_key=feature_key,
            status=decision.status,
            reason=decision.reason,
            visibility=decision.status if gated else None,
            upsell_href=decision.config.upsell_href if decision.status == "locked" else None,
        )

import typing as t

from pydantic import BaseModel

from pro_features.catalog import Enforcement, Visibility

DecisionStatus = t.Literal["enabled", "disabled", "locked", "hidden"]
DecisionReason = t.Literal[
    "internal_bypass",
    "config_disabled",
    "pro_member",
    "visibility_override_locked",
    "default_locked",
    "visibility_override_hidden",
    "default_hidden",
]


class ResolvedProFeatureConfig(BaseModel):
    feature_key: str
    enabled: bool
    visibility_override: Visibility | None
    default_visibility: Visibility
    enforcement: Enforcement
    upsell_href: str
    notes: str = ""


class ProFeatureDecision(BaseModel):
    feature_key: str
    status: DecisionStatus
    reason: DecisionReason
    config: ResolvedProFeatureConfig


def evaluate_pro_feature_decision(
    feature_key: str, config: ResolvedProFeatureConfig, *, is_pro: bool, is_internal: bool
) -> ProFeatureDecision:
    """Decide how a feature presents to a user.

    Internal accounts always get the feature, then a disabled config turns it
    off for everyone else, then Pro members get it. Non-members see it locked
    (with an upsell) or not at all, per the override or the catalog default.
    """
    if is_internal:
        return ProFeatureDecision(feature_key=feature_key, status="enabled", reason="internal_bypass", config=config)
    if not config.enabled:
        return ProFeatureDecision(feature_key=feature_key, status="disabled", reason="config_disabled", config=config)
    if is_pro:
        return ProFeatureDecision(feature_key=feature_key, status="enabled", reason="pro_member", config=config)

    overridden = config.visibility_override is not None
    visibility = config.visibility_override or config.default_visibility
    if visibility == "locked":
        reason: DecisionReason = "visibility_override_locked" if overridden else "default_locked"
        return ProFeatureDecision(feature_key=feature_key, status="locked", reason=reason, config=config)
    reason = "visibility_override_hidden" if overridden else "default_hidden"
    return ProFeatureDecision(feature_key=feature_key, status="hidden", reason=reason, config=config)

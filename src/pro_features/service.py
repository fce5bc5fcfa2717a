"""Pro feature gating for the current user."""

import structlog
from django.contrib.auth.models import AnonymousUser
from django.core.cache import cache
from ninja.errors import HttpError

from accounts.models import FinishlineUser
from billing.service.entitlements import get_pro_entitlement_for_user
from pro_features.catalog import PRO_FEATURE_CATALOG, get_all_pro_feature_keys, get_pro_feature_meta
from pro_features.evaluator import ProFeatureDecision, ResolvedProFeatureConfig, evaluate_pro_feature_decision
from pro_features.models import ProFeatureConfig

logger = structlog.get_logger(__name__)

CONFIG_CACHE_KEY = "pro_features:config_snapshot"
CONFIG_CACHE_TIMEOUT = 60


def _load_config_snapshot() -> dict[str, ResolvedProFeatureConfig]:
    rows: dict[str, ProFeatureConfig] = {}
    for row in ProFeatureConfig.objects.all():
        if row.feature_key not in PRO_FEATURE_CATALOG:
            logger.warning("unknown_pro_feature_config", feature_key=row.feature_key)
            continue
        rows[row.feature_key] = row

    snapshot: dict[str, ResolvedProFeatureConfig] = {}
    for key in get_all_pro_feature_keys():
        meta = get_pro_feature_meta(key)
        row = rows.get(key)
        snapshot[key] = ResolvedProFeatureConfig(
            feature_key=key,
            enabled=row.enabled if row else True,
            visibility_override=row.visibility_override if row and row.visibility_override else None,
            default_visibility=meta.default_visibility,
            enforcement=meta.enforcement,
            upsell_href=meta.upsell_href,
            notes=row.notes if row else "",
        )
    return snapshot


def get_pro_feature_config_snapshot() -> dict[str, ResolvedProFeatureConfig]:
    """Resolved config of every catalog feature, cached briefly."""
    snapshot: dict[str, ResolvedProFeatureConfig] | None = cache.get(CONFIG_CACHE_KEY)
    if snapshot is None:
        snapshot = _load_config_snapshot()
        cache.set(CONFIG_CACHE_KEY, snapshot, CONFIG_CACHE_TIMEOUT)
    return snapshot


def invalidate_pro_feature_config_cache() -> None:
    cache.delete(CONFIG_CACHE_KEY)


def resolve_pro_feature_config(feature_key: str) -> ResolvedProFeatureConfig:
    """Catalog defaults merged with the stored config row.

    Raises:
        KeyError: If the key is not in the catalog.
    """
    get_pro_feature_meta(feature_key)
    return get_pro_feature_config_snapshot()[feature_key]


def get_pro_feature_decision_for_user(
    feature_key: str, user: FinishlineUser | AnonymousUser
) -> ProFeatureDecision:
    """Decision for ``user``. Anonymous users are never Pro."""
    config = resolve_pro_feature_config(feature_key)
    if not user.is_authenticated:
        return evaluate_pro_feature_decision(feature_key, config, is_pro=False, is_internal=False)
    entitlement = get_pro_entitlement_for_user(user)
    return evaluate_pro_feature_decision(
        feature_key, config, is_pro=entitlement.is_pro, is_internal=user.is_internal
    )


def require_pro_feature(feature_key: str, user: FinishlineUser | AnonymousUser) -> ProFeatureDecision:
    """Server-side guard for endpoints behind a Pro feature.

    Raises:
        HttpError: 403 when the feature is not enabled for the user and the
            catalog requires server enforcement.
    """
    decision = get_pro_feature_decision_for_user(feature_key, user)
    if decision.status != "enabled" and decision.config.enforcement == "server_required":
        logger.info("pro_feature_denied", feature_key=feature_key, status=decision.status, reason=decision.reason)
        raise HttpError(403, f"PRO_REQUIRED: {feature_key} is {decision.status} ({decision.reason}).")
    return decision

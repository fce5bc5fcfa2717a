"""Features reserved for Pro members."""

import typing as t

from pydantic import BaseModel

ProFeatureKey = t.Literal["event_clone", "coupons"]
Visibility = t.Literal["locked", "hidden"]
Enforcement = t.Literal["server_required", "client_only"]


class ProFeatureMeta(BaseModel):
    key: ProFeatureKey
    default_visibility: Visibility
    enforcement: Enforcement
    upsell_href: str = "/settings/billing"
    notes: str = ""


PRO_FEATURE_CATALOG: dict[str, ProFeatureMeta] = {
    "event_clone": ProFeatureMeta(
        key="event_clone",
        default_visibility="locked",
        enforcement="server_required",
        notes="Clone an event edition",
    ),
    "coupons": ProFeatureMeta(
        key="coupons",
        default_visibility="hidden",
        enforcement="server_required",
        notes="Coupon management",
    ),
}


def get_pro_feature_meta(key: str) -> ProFeatureMeta:
    """Catalog entry for ``key``.

    Raises:
        KeyError: If the key is not in the catalog.
    """
    return PRO_FEATURE_CATALOG[key]


def get_all_pro_feature_keys() -> list[str]:
    return list(PRO_FEATURE_CATALOG)

import typing as t
from datetime import datetime, timedelta

import pytest
from django.contrib.auth.models import AnonymousUser
from ninja.errors import HttpError

from accounts.models import FinishlineUser
from billing.models import BillingEntitlementOverride
from pro_features import service
from pro_features.models import ProFeatureConfig

pytestmark = pytest.mark.django_db


@pytest.fixture
def pro_user(user: FinishlineUser, now: datetime) -> FinishlineUser:
    BillingEntitlementOverride.objects.create(
        user=user,
        starts_at=now - timedelta(days=1),
        ends_at=now + timedelta(days=30),
        source_type=BillingEntitlementOverride.SourceType.ADMIN,
    )
    return user


class TestResolveConfig:
    def test_catalog_defaults_without_row(self) -> None:
        config = service.resolve_pro_feature_config("coupons")

        assert config.enabled is True
        assert config.visibility_override is None
        assert config.default_visibility == "hidden"

    def test_row_overrides_defaults(self) -> None:
        ProFeatureConfig.objects.create(feature_key="coupons", enabled=False, visibility_override="locked")

        config = service.resolve_pro_feature_config("coupons")

        assert config.enabled is False
        assert config.visibility_override == "locked"

    def test_unknown_key(self) -> None:
        with pytest.raises(KeyError):
            service.resolve_pro_feature_config("teleport")

    def test_rows_for_unknown_keys_are_ignored(self) -> None:
        ProFeatureConfig.objects.create(feature_key="retired_feature", enabled=False)

        assert "retired_feature" not in service.get_pro_feature_config_snapshot()

    def test_snapshot_is_refreshed_when_a_row_changes(self) -> None:
        assert service.resolve_pro_feature_config("event_clone").enabled is True

        row = ProFeatureConfig.objects.create(feature_key="event_clone", enabled=False)
        assert service.resolve_pro_feature_config("event_clone").enabled is False

        row.delete()
        assert service.resolve_pro_feature_config("event_clone").enabled is True


class TestDecisionForUser:
    def test_anonymous_is_never_pro(self) -> None:
        decision = service.get_pro_feature_decision_for_user("event_clone", AnonymousUser())

        assert (decision.status, decision.reason) == ("locked", "default_locked")

    def test_free_user(self, user: FinishlineUser) -> None:
        assert service.get_pro_feature_decision_for_user("coupons", user).status == "hidden"

    def test_pro_user(self, pro_user: FinishlineUser) -> None:
        assert service.get_pro_feature_decision_for_user("coupons", pro_user).reason == "pro_member"

    def test_internal_user(self, user_factory: t.Any) -> None:
        internal = user_factory(username="ops@example.com", is_internal=True)

        assert service.get_pro_feature_decision_for_user("coupons", internal).reason == "internal_bypass"


class TestRequireProFeature:
    def test_denies_free_user(self, user: FinishlineUser) -> None:
        with pytest.raises(HttpError) as exc_info:
            service.require_pro_feature("event_clone", user)

        assert exc_info.value.status_code == 403
        assert str(exc_info.value).startswith("PRO_REQUIRED")

    def test_allows_pro_user(self, pro_user: FinishlineUser) -> None:
        assert service.require_pro_feature("event_clone", pro_user).status == "enabled"

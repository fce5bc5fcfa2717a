from datetime import datetime, timedelta

import pytest
from django.shortcuts import reverse  # type: ignore[attr-defined]
from django.test.client import Client

from accounts.models import FinishlineUser
from billing.models import BillingEntitlementOverride

pytestmark = pytest.mark.django_db


def test_anonymous_sees_locked_feature_with_upsell(client: Client) -> None:
    response = client.get(reverse("api:pro_feature_decision", kwargs={"feature_key": "event_clone"}))

    assert response.status_code == 200
    assert response.json() == {
        "feature_key": "event_clone",
        "status": "locked",
        "reason": "default_locked",
        "visibility": "locked",
        "upsell_href": "/settings/billing",
    }


def test_hidden_feature_has_no_upsell(auth_client: Client) -> None:
    response = auth_client.get(reverse("api:pro_feature_decision", kwargs={"feature_key": "coupons"}))

    assert response.json()["status"] == "hidden"
    assert response.json()["upsell_href"] is None


def test_pro_member_gets_feature(auth_client: Client, user: FinishlineUser, now: datetime) -> None:
    BillingEntitlementOverride.objects.create(
        user=user,
        starts_at=now - timedelta(days=1),
        ends_at=now + timedelta(days=1),
        source_type=BillingEntitlementOverride.SourceType.ADMIN,
    )

    response = auth_client.get(reverse("api:pro_feature_decision", kwargs={"feature_key": "event_clone"}))

    assert response.json()["status"] == "enabled"
    assert response.json()["visibility"] is None


def test_unknown_feature(client: Client) -> None:
    response = client.get(reverse("api:pro_feature_decision", kwargs={"feature_key": "teleport"}))

    assert response.status_code == 404

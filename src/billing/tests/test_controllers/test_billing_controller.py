import typing as t

import orjson
import pytest
from django.shortcuts import reverse  # type: ignore[attr-defined]
from django.test.client import Client

from accounts.models import FinishlineUser
from billing.models import BillingSubscription
from billing.service import pending_grant_service
from billing.tests.conftest import PromotionFactory

pytestmark = pytest.mark.django_db


def _post(client: Client, url: str, payload: dict[str, t.Any] | None = None) -> t.Any:
    return client.post(url, data=orjson.dumps(payload or {}), content_type="application/json")


class TestBillingStatus:
    def test_free_user(self, auth_client: Client) -> None:
        response = auth_client.get(reverse("api:billing_status"))

        assert response.status_code == 200
        data = response.json()
        assert data["is_pro"] is False
        assert data["trial_eligible"] is True
        assert data["subscription"] is None
        assert data["sources"] == []

    def test_requires_authentication(self, client: Client) -> None:
        assert client.get(reverse("api:billing_status")).status_code == 401


class TestTrialLifecycle:
    def test_start_cancel_resume(self, auth_client: Client, user: FinishlineUser) -> None:
        started = _post(auth_client, reverse("api:start_trial"))
        assert started.status_code == 200, started.content

        status = auth_client.get(reverse("api:billing_status")).json()
        assert status["is_pro"] is True
        assert status["effective_source"] == "trial"
        assert status["trial_eligible"] is False

        cancelled = _post(auth_client, reverse("api:cancel_subscription"))
        assert cancelled.status_code == 200
        assert cancelled.json()["already_scheduled"] is False
        assert _post(auth_client, reverse("api:cancel_subscription")).json()["already_scheduled"] is True

        resumed = _post(auth_client, reverse("api:resume_subscription"))
        assert resumed.status_code == 200
        assert resumed.json()["cancel_at_period_end"] is False
        assert BillingSubscription.objects.get(user=user).cancel_at_period_end is False

    def test_second_trial_conflicts(self, auth_client: Client) -> None:
        _post(auth_client, reverse("api:start_trial"))

        response = _post(auth_client, reverse("api:start_trial"))

        assert response.status_code == 409

    def test_unverified_user_is_forbidden(self, unverified_client: Client) -> None:
        response = _post(unverified_client, reverse("api:start_trial"))

        assert response.status_code == 403
        assert response.json()["detail"].startswith("EMAIL_NOT_VERIFIED")

    def test_cancel_without_subscription(self, auth_client: Client) -> None:
        assert _post(auth_client, reverse("api:cancel_subscription")).status_code == 404


class TestRedeemPromotion:
    def test_redeem(self, auth_client: Client, promotion_factory: PromotionFactory) -> None:
        created = promotion_factory(name="Launch")

        response = _post(auth_client, reverse("api:redeem_promotion"), {"code": f"  {created.code.lower()} "})

        assert response.status_code == 200, response.content
        assert response.json()["promotion_id"] == str(created.promotion_id)
        assert response.json()["already_redeemed"] is False
        assert auth_client.get(reverse("api:billing_status")).json()["effective_source"] == "promotion"

    def test_unknown_code(self, auth_client: Client) -> None:
        response = _post(auth_client, reverse("api:redeem_promotion"), {"code": "NOPE-NOPE"})

        assert response.status_code == 404
        assert response.json()["detail"].startswith("PROMO_NOT_FOUND")

    def test_too_short_code_is_rejected(self, auth_client: Client) -> None:
        assert _post(auth_client, reverse("api:redeem_promotion"), {"code": "ab"}).status_code == 422


def test_claim_pending_grants(auth_client: Client, user: FinishlineUser, staff_user: FinishlineUser) -> None:
    pending_grant_service.create_pending_entitlement_grant(user.email, staff_user, grant_duration_days=30)

    response = _post(auth_client, reverse("api:claim_pending_grants"))

    assert response.status_code == 200
    assert response.json() == {"claimed_count": 1, "overrides_created": 1, "no_extension_count": 0}
    assert _post(auth_client, reverse("api:claim_pending_grants")).json()["claimed_count"] == 0

import typing as t

import orjson
import pytest
from django.shortcuts import reverse  # type: ignore[attr-defined]
from django.test.client import Client

from accounts.models import FinishlineUser
from billing.models import BillingEntitlementOverride, BillingPendingEntitlementGrant
from billing.service.pending_grant_service import create_pending_entitlement_grant

pytestmark = pytest.mark.django_db


def _login(client: Client, user: FinishlineUser, password: str = "password") -> t.Any:
    payload = {"username": user.username, "password": password}
    return client.post(reverse("api:token_obtain_pair"), data=orjson.dumps(payload), content_type="application/json")


def test_obtain_token_pair(client: Client, user: FinishlineUser) -> None:
    response = _login(client, user)

    assert response.status_code == 200
    assert "access" in response.json()
    assert "refresh" in response.json()


def test_invalid_credentials(client: Client, user: FinishlineUser) -> None:
    assert _login(client, user, password="wrong-password").status_code == 401


def test_login_claims_pending_grants(client: Client, user: FinishlineUser, staff_user: FinishlineUser) -> None:
    create_pending_entitlement_grant(user.email.upper(), staff_user, grant_duration_days=30)

    assert _login(client, user).status_code == 200

    grant = BillingPendingEntitlementGrant.objects.get()
    assert grant.claimed_by == user
    assert grant.claim_source == BillingPendingEntitlementGrant.ClaimSource.AUTO_ON_VERIFIED_SESSION
    assert BillingEntitlementOverride.objects.filter(user=user).count() == 1


def test_unverified_login_leaves_grants_pending(
    client: Client, unverified_user: FinishlineUser, staff_user: FinishlineUser
) -> None:
    create_pending_entitlement_grant(unverified_user.email, staff_user, grant_duration_days=30)

    assert _login(client, unverified_user).status_code == 200

    assert BillingPendingEntitlementGrant.objects.get().claimed_at is None


def test_me(auth_client: Client, user: FinishlineUser) -> None:
    response = auth_client.get(reverse("api:me"))

    assert response.status_code == 200
    assert response.json()["email"] == "runner@example.com"
    assert response.json()["id"] == str(user.id)
    assert response.json()["email_verified"] is True


def test_me_requires_authentication(client: Client) -> None:
    assert client.get(reverse("api:me")).status_code == 401

import typing as t
from datetime import datetime, timedelta

import orjson
import pytest
from django.shortcuts import reverse  # type: ignore[attr-defined]
from django.test.client import Client

from accounts.models import FinishlineUser
from billing.models import BillingEntitlementOverride
from events.models import EventDistance, EventEdition, EventSeries, Organization
from pro_features.models import ProFeatureConfig

pytestmark = pytest.mark.django_db


def _post(client: Client, url: str, payload: dict[str, t.Any]) -> t.Any:
    return client.post(url, data=orjson.dumps(payload), content_type="application/json")


def _make_pro(user: FinishlineUser, now: datetime) -> None:
    BillingEntitlementOverride.objects.create(
        user=user,
        starts_at=now - timedelta(days=1),
        ends_at=now + timedelta(days=30),
        source_type=BillingEntitlementOverride.SourceType.ADMIN,
    )


def test_create_series_and_edition(organizer_client: Client, organization: Organization) -> None:
    series = _post(
        organizer_client, reverse("api:create_event_series", kwargs={"slug": organization.slug}), {"name": "Ultra"}
    )
    assert series.status_code == 200, series.content

    edition = _post(
        organizer_client,
        reverse("api:create_event_edition", kwargs={"series_id": series.json()["id"]}),
        {"edition_label": "2027", "slug": "2027"},
    )

    assert edition.status_code == 200, edition.content
    assert edition.json()["visibility"] == "draft"
    assert EventSeries.objects.get(pk=series.json()["id"]).editions.count() == 1


def test_inverted_window_is_rejected(organizer_client: Client, series: EventSeries, now: datetime) -> None:
    response = _post(
        organizer_client,
        reverse("api:create_event_edition", kwargs={"series_id": series.id}),
        {
            "edition_label": "2027",
            "slug": "2027",
            "registration_opens_at": now.isoformat(),
            "registration_closes_at": (now - timedelta(days=1)).isoformat(),
        },
    )

    assert response.status_code == 422


def test_update_edition_requires_organizer(auth_client: Client, edition: EventEdition) -> None:
    response = auth_client.patch(
        reverse("api:update_event_edition", kwargs={"edition_id": edition.id}),
        data=orjson.dumps({"is_registration_paused": True}),
        content_type="application/json",
    )

    assert response.status_code == 403


def test_update_edition(organizer_client: Client, edition: EventEdition) -> None:
    response = organizer_client.patch(
        reverse("api:update_event_edition", kwargs={"edition_id": edition.id}),
        data=orjson.dumps({"is_registration_paused": True}),
        content_type="application/json",
    )

    assert response.status_code == 200
    assert response.json()["is_registration_paused"] is True


class TestCloneEdition:
    def test_requires_pro(self, organizer_client: Client, edition: EventEdition) -> None:
        response = _post(
            organizer_client,
            reverse("api:clone_event_edition", kwargs={"edition_id": edition.id}),
            {"edition_label": "2027", "slug": "2027"},
        )

        assert response.status_code == 403
        assert response.json()["detail"].startswith("PRO_REQUIRED")

    def test_pro_organizer_can_clone(
        self,
        organizer_client: Client,
        organizer: FinishlineUser,
        edition: EventEdition,
        distance: EventDistance,
        now: datetime,
    ) -> None:
        _make_pro(organizer, now)

        response = _post(
            organizer_client,
            reverse("api:clone_event_edition", kwargs={"edition_id": edition.id}),
            {"edition_label": "2027", "slug": "2027"},
        )

        assert response.status_code == 200, response.content
        assert response.json()["slug"] == "2027"
        assert [d["label"] for d in response.json()["distances"]] == ["10K"]

    def test_disabled_feature_blocks_pro_members(
        self, organizer_client: Client, organizer: FinishlineUser, edition: EventEdition, now: datetime
    ) -> None:
        _make_pro(organizer, now)
        ProFeatureConfig.objects.create(feature_key="event_clone", enabled=False)

        response = _post(
            organizer_client,
            reverse("api:clone_event_edition", kwargs={"edition_id": edition.id}),
            {"edition_label": "2027", "slug": "2027"},
        )

        assert response.status_code == 403

    def test_other_users_cannot_clone(
        self, auth_client: Client, user: FinishlineUser, edition: EventEdition, now: datetime
    ) -> None:
        _make_pro(user, now)

        response = _post(
            auth_client,
            reverse("api:clone_event_edition", kwargs={"edition_id": edition.id}),
            {"edition_label": "2027", "slug": "2027"},
        )

        assert response.status_code == 403
        assert not EventEdition.objects.filter(slug="2027").exists()

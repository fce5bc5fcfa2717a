import typing as t
from datetime import datetime, timedelta

import pytest

from accounts.models import FinishlineUser

pytestmark = pytest.mark.django_db


def test_normalized_email() -> None:
    user = FinishlineUser(username="u", email="  Ana.Perez@Example.COM ")

    assert user.normalized_email == "ana.perez@example.com"


@pytest.mark.parametrize(
    "first_name,last_name,username,expected",
    [
        ("Ana", "Perez", "ana@example.com", "Ana Perez"),
        ("", "", "trail_runner.99@example.com", "Trail Runner 99"),
    ],
)
def test_display_name(first_name: str, last_name: str, username: str, expected: str) -> None:
    user = FinishlineUser(username=username, first_name=first_name, last_name=last_name)

    assert user.display_name == expected


def test_new_users_start_unverified_and_external() -> None:
    user = FinishlineUser.objects.create_user(username="new@example.com", password="password")

    assert user.email_verified is False
    assert user.is_internal is False
    assert FinishlineUser.objects.alive().filter(pk=user.pk).exists()


def test_unverified_created_before_filters_eligible_accounts(user_factory: t.Any, now: datetime) -> None:
    old = now - timedelta(days=5)
    stale = user_factory(username="stale@example.com", email_verified=False)
    fresh = user_factory(username="fresh@example.com", email_verified=False)
    verified = user_factory(username="verified@example.com", email_verified=True)
    internal = user_factory(username="ops@example.com", email_verified=False, is_internal=True)
    FinishlineUser.objects.filter(pk__in=[stale.pk, verified.pk, internal.pk]).update(date_joined=old)

    cutoff = now - timedelta(days=3)
    matched = set(FinishlineUser.objects.unverified_created_before(cutoff).values_list("pk", flat=True))

    assert matched == {stale.pk}
    assert fresh.pk not in matched

"""Tests for the hold TTL policy."""

import typing as t
from datetime import datetime, timedelta, timezone

import pytest

from events.models import Registration
from events.service.holds import compute_expires_at, get_hold_ttl, is_expired_hold

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
Status = Registration.Status


class TestGetHoldTtl:
    def test_defaults(self, settings: t.Any) -> None:
        settings.EVENTS_REGISTRATION_STARTED_TTL_MINUTES = 30
        settings.EVENTS_REGISTRATION_SUBMITTED_TTL_MINUTES = 30
        settings.EVENTS_REGISTRATION_PAYMENT_PENDING_TTL_HOURS = 24

        assert get_hold_ttl(Status.STARTED) == timedelta(minutes=30)
        assert get_hold_ttl(Status.SUBMITTED) == timedelta(minutes=30)
        assert get_hold_ttl(Status.PAYMENT_PENDING) == timedelta(hours=24)

    def test_configured_values_are_used(self, settings: t.Any) -> None:
        settings.EVENTS_REGISTRATION_STARTED_TTL_MINUTES = 5
        settings.EVENTS_REGISTRATION_PAYMENT_PENDING_TTL_HOURS = 2.5

        assert get_hold_ttl(Status.STARTED) == timedelta(minutes=5)
        assert get_hold_ttl(Status.PAYMENT_PENDING) == timedelta(hours=2.5)

    @pytest.mark.parametrize("bad", [0, -10, float("inf"), float("nan"), "abc", None])
    def test_misconfigured_values_fall_back(self, settings: t.Any, bad: object) -> None:
        settings.EVENTS_REGISTRATION_STARTED_TTL_MINUTES = bad
        settings.EVENTS_REGISTRATION_PAYMENT_PENDING_TTL_HOURS = bad

        assert get_hold_ttl(Status.STARTED) == timedelta(minutes=30)
        assert get_hold_ttl(Status.PAYMENT_PENDING) == timedelta(hours=24)

    @pytest.mark.parametrize("status", [Status.CONFIRMED, Status.CANCELLED, "bogus"])
    def test_non_hold_status_raises(self, status: str) -> None:
        with pytest.raises(ValueError):
            get_hold_ttl(status)


def test_compute_expires_at_adds_ttl(settings: t.Any) -> None:
    settings.EVENTS_REGISTRATION_SUBMITTED_TTL_MINUTES = 30
    assert compute_expires_at(NOW, Status.SUBMITTED) == NOW + timedelta(minutes=30)


class TestIsExpiredHold:
    @pytest.mark.parametrize("status", [Status.STARTED, Status.SUBMITTED, Status.PAYMENT_PENDING])
    def test_hold_with_future_expiry_is_live(self, status: str) -> None:
        assert is_expired_hold(status, NOW + timedelta(seconds=1), NOW) is False

    @pytest.mark.parametrize("status", [Status.STARTED, Status.SUBMITTED, Status.PAYMENT_PENDING])
    def test_hold_expiring_exactly_now_is_expired(self, status: str) -> None:
        assert is_expired_hold(status, NOW, NOW) is True

    @pytest.mark.parametrize("status", [Status.STARTED, Status.SUBMITTED, Status.PAYMENT_PENDING])
    def test_hold_without_expiry_is_expired(self, status: str) -> None:
        assert is_expired_hold(status, None, NOW) is True

    def test_confirmed_never_expires(self) -> None:
        assert is_expired_hold(Status.CONFIRMED, NOW - timedelta(days=365), NOW) is False
        assert is_expired_hold(Status.CONFIRMED, None, NOW) is False

    def test_cancelled_is_always_expired(self) -> None:
        assert is_expired_hold(Status.CANCELLED, NOW + timedelta(days=1), NOW) is True

    def test_unknown_status_is_expired(self) -> None:
        assert is_expired_hold("mystery", NOW + timedelta(days=1), NOW) is True

from datetime import datetime, timedelta, timezone

import pytest

from billing.service.entitlements import (
    EntitlementInterval,
    EntitlementSource,
    compute_grant_window,
    evaluate_pro_entitlement,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _interval(source: EntitlementSource, start_days: float, end_days: float) -> EntitlementInterval:
    return EntitlementInterval(
        source=source, starts_at=NOW + timedelta(days=start_days), ends_at=NOW + timedelta(days=end_days)
    )


class TestEvaluateProEntitlement:
    def test_internal_accounts_are_always_pro(self) -> None:
        evaluation = evaluate_pro_entitlement(now=NOW, is_internal=True, intervals=[_interval("trial", -20, -10)])

        assert evaluation.is_pro is True
        assert evaluation.pro_until is None
        assert evaluation.effective_source == "internal_bypass"
        assert evaluation.sources == []

    def test_no_intervals(self) -> None:
        evaluation = evaluate_pro_entitlement(now=NOW, is_internal=False, intervals=[])

        assert evaluation.is_pro is False
        assert evaluation.pro_until is None
        assert evaluation.effective_source is None

    def test_touching_intervals_merge(self) -> None:
        evaluation = evaluate_pro_entitlement(
            now=NOW, is_internal=False, intervals=[_interval("trial", -1, 5), _interval("promotion", 5, 35)]
        )

        assert evaluation.is_pro is True
        assert evaluation.pro_until == NOW + timedelta(days=35)
        assert evaluation.effective_source == "promotion"

    def test_gap_splits_runs(self) -> None:
        intervals = [_interval("trial", -1, 5), _interval("promotion", 6, 36)]

        evaluation = evaluate_pro_entitlement(now=NOW, is_internal=False, intervals=intervals)

        assert evaluation.pro_until == NOW + timedelta(days=5)
        assert evaluation.effective_source == "trial"

    def test_not_pro_inside_a_gap(self) -> None:
        intervals = [_interval("trial", -10, -1), _interval("admin_override", 2, 10)]

        evaluation = evaluate_pro_entitlement(now=NOW, is_internal=False, intervals=intervals)

        assert evaluation.is_pro is False
        assert evaluation.next_pro_starts_at == NOW + timedelta(days=2)
        assert [i.source for i in evaluation.sources] == ["admin_override"]

    def test_furthest_end_owns_the_run(self) -> None:
        intervals = [_interval("admin_override", -5, 40), _interval("subscription", -1, 20)]

        evaluation = evaluate_pro_entitlement(now=NOW, is_internal=False, intervals=intervals)

        assert evaluation.pro_until == NOW + timedelta(days=40)
        assert evaluation.effective_source == "admin_override"

    def test_equal_ends_keep_the_earlier_interval(self) -> None:
        intervals = [_interval("subscription", -3, 10), _interval("promotion", -1, 10)]

        evaluation = evaluate_pro_entitlement(now=NOW, is_internal=False, intervals=intervals)

        assert evaluation.effective_source == "subscription"

    def test_interval_ending_now_is_ignored(self) -> None:
        evaluation = evaluate_pro_entitlement(now=NOW, is_internal=False, intervals=[_interval("trial", -14, 0)])

        assert evaluation.is_pro is False
        assert evaluation.sources == []

    def test_input_order_does_not_matter(self) -> None:
        intervals = [_interval("promotion", 10, 20), _interval("trial", -1, 10)]

        evaluation = evaluate_pro_entitlement(now=NOW, is_internal=False, intervals=intervals)

        assert evaluation.pro_until == NOW + timedelta(days=20)


class TestComputeGrantWindow:
    def test_starts_now_without_pro(self) -> None:
        window = compute_grant_window(now=NOW, current_pro_until=None, grant_duration_days=30, grant_fixed_ends_at=None)

        assert window.starts_at == NOW
        assert window.ends_at == NOW + timedelta(days=30)
        assert window.no_extension is False

    def test_stacks_after_current_pro(self) -> None:
        until = NOW + timedelta(days=10)

        window = compute_grant_window(
            now=NOW, current_pro_until=until, grant_duration_days=30, grant_fixed_ends_at=None
        )

        assert window.starts_at == until
        assert window.ends_at == until + timedelta(days=30)

    def test_past_pro_until_is_ignored(self) -> None:
        window = compute_grant_window(
            now=NOW, current_pro_until=NOW - timedelta(days=1), grant_duration_days=1, grant_fixed_ends_at=None
        )

        assert window.starts_at == NOW

    def test_fixed_end_already_covered(self) -> None:
        window = compute_grant_window(
            now=NOW,
            current_pro_until=NOW + timedelta(days=60),
            grant_duration_days=None,
            grant_fixed_ends_at=NOW + timedelta(days=30),
        )

        assert window.no_extension is True

    def test_requires_duration_or_fixed_end(self) -> None:
        with pytest.raises(ValueError):
            compute_grant_window(now=NOW, current_pro_until=None, grant_duration_days=None, grant_fixed_ends_at=None)

import pytest

from pro_features.evaluator import ResolvedProFeatureConfig, evaluate_pro_feature_decision


def _config(
    *, enabled: bool = True, visibility_override: str | None = None, default_visibility: str = "locked"
) -> ResolvedProFeatureConfig:
    return ResolvedProFeatureConfig(
        feature_key="event_clone",
        enabled=enabled,
        visibility_override=visibility_override,  # type: ignore[arg-type]
        default_visibility=default_visibility,  # type: ignore[arg-type]
        enforcement="server_required",
        upsell_href="/settings/billing",
    )


def test_internal_users_bypass_disabled_config() -> None:
    decision = evaluate_pro_feature_decision("event_clone", _config(enabled=False), is_pro=False, is_internal=True)

    assert (decision.status, decision.reason) == ("enabled", "internal_bypass")


def test_disabled_config_wins_over_pro() -> None:
    decision = evaluate_pro_feature_decision("event_clone", _config(enabled=False), is_pro=True, is_internal=False)

    assert (decision.status, decision.reason) == ("disabled", "config_disabled")


def test_pro_member() -> None:
    decision = evaluate_pro_feature_decision(
        "event_clone", _config(visibility_override="hidden"), is_pro=True, is_internal=False
    )

    assert (decision.status, decision.reason) == ("enabled", "pro_member")


@pytest.mark.parametrize(
    "override,default,expected",
    [
        (None, "locked", ("locked", "default_locked")),
        (None, "hidden", ("hidden", "default_hidden")),
        ("locked", "hidden", ("locked", "visibility_override_locked")),
        ("hidden", "locked", ("hidden", "visibility_override_hidden")),
    ],
)
def test_non_members(override: str | None, default: str, expected: tuple[str, str]) -> None:
    decision = evaluate_pro_feature_decision(
        "event_clone",
        _config(visibility_override=override, default_visibility=default),
        is_pro=False,
        is_internal=False,
    )

    assert (decision.status, decision.reason) == expected
    assert decision.feature_key == "event_clone"

"""Unit tests for feature evaluation logic."""
from datetime import datetime, timezone
from uuid import uuid4

import pytest
from prometheus_client import REGISTRY

from control_plane.schemas.feature import FeatureRecord
from control_plane.services.rollout import bucket_for, explain, is_enabled, stable_hash

KEYS = [f"member-{i}" for i in range(500)]


class _FixedRandom:
    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


def _feature(enabled=True, rollout=0, platforms=("web",), retired=False, name="rollout_test"):
    now = datetime.now(timezone.utc)
    return FeatureRecord(
        id=uuid4(),
        name=name,
        display_name="Rollout Test",
        category="other",
        platforms=list(platforms),
        status="active",
        enabled=enabled,
        rollout_percentage=rollout,
        retired=retired,
        created_by="t",
        updated_by="t",
        created_at=now,
        updated_at=now,
    )


def test_stable_hash_is_fnv1a():
    assert stable_hash("") == 0x811C9DC5
    assert stable_hash("a") == 0xE40C292C
    assert stable_hash("foobar") == 0xBF9CF968


def test_bucket_is_name_and_key_scoped():
    assert bucket_for("new_loan_ui", "member-42") == 54
    assert 0 <= bucket_for("x", "y") < 100


def test_bucket_boundary_for_known_identity():
    assert is_enabled(_feature(rollout=54, name="new_loan_ui"), "web", "member-42") is False
    assert is_enabled(_feature(rollout=55, name="new_loan_ui"), "web", "member-42") is True


def test_flag_disabled():
    feature = _feature(enabled=False, rollout=100)
    assert all(is_enabled(feature, "web", k) is False for k in KEYS)
    assert explain(feature, "web", "member-1").reason == "disabled"


def test_platform_scope_blocks():
    feature = _feature(rollout=100, platforms=["mobile"])
    assert is_enabled(feature, "web", "member-1") is False
    assert explain(feature, "web", "member-1").reason == "platform"


def test_retired_is_always_off():
    feature = _feature(rollout=100, retired=True)
    assert explain(feature, "web", "member-1") == (False, "retired")


def test_rollout_full():
    feature = _feature(rollout=100)
    assert all(is_enabled(feature, "web", k) for k in KEYS)


def test_rollout_zero():
    feature = _feature(rollout=0)
    assert not any(is_enabled(feature, "web", k) for k in KEYS)
    assert explain(feature, "web", "member-1").reason == "zero_rollout"


def test_rollout_is_deterministic():
    feature = _feature(rollout=37)
    first = [is_enabled(feature, "web", k) for k in KEYS]
    second = [is_enabled(feature, "web", k) for k in KEYS]
    assert first == second


def test_rollout_is_monotonic():
    previous = set()
    for pct in range(0, 101, 5):
        feature = _feature(rollout=pct)
        on = {k for k in KEYS if is_enabled(feature, "web", k)}
        assert previous <= on
        previous = on
    assert previous == set(KEYS)


def test_rollout_roughly_matches_percentage():
    feature = _feature(rollout=50)
    on = sum(is_enabled(feature, "web", f"member-{i}") for i in range(1000))
    assert 400 <= on <= 600


@pytest.mark.parametrize("target_key", [None, ""])
def test_anonymous_uses_probability(target_key):
    feature = _feature(rollout=30)
    assert explain(feature, "web", target_key, rng=_FixedRandom(0.2)) == (True, "anonymous")
    assert explain(feature, "web", target_key, rng=_FixedRandom(0.5)) == (False, "anonymous")


def test_anonymous_still_respects_master_switch():
    feature = _feature(enabled=False, rollout=30)
    assert is_enabled(feature, "web", None, rng=_FixedRandom(0.0)) is False


def _evaluations(result):
    return REGISTRY.get_sample_value("feature_evaluations_total", {"result": result}) or 0


def test_evaluation_has_no_side_effects():
    feature = _feature(rollout=100)
    before = (_evaluations("on"), _evaluations("off"))
    for key in KEYS[:50]:
        assert is_enabled(feature, "web", key) is True
    assert (_evaluations("on"), _evaluations("off")) == before

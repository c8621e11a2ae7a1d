"""Feature evaluation logic.

Pure functions over a ``FeatureRecord`` snapshot: no I/O, no locks, no
side effects. The HTTP check endpoint counts outcomes.
"""
import random
from typing import NamedTuple, Optional

from control_plane.schemas.feature import FeatureRecord

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193

_anonymous_rng = random.Random()


def stable_hash(key: str) -> int:
    """32-bit FNV-1a over the UTF-8 bytes of ``key``.

    Unseeded, so the value is identical across calls and process restarts
    (unlike the built-in ``hash``).
    """
    h = FNV_OFFSET_BASIS
    for byte in key.encode("utf-8"):
        h ^= byte
        h = (h * FNV_PRIME) & 0xFFFFFFFF
    return h


def bucket_for(name: str, target_key: str) -> int:
    """Deterministic 0-99 bucket for a feature name + target key.

    The same identity always lands in the same bucket, so raising the
    rollout percentage only ever adds identities to the "on" set.
    """
    return stable_hash(f"{name}:{target_key}") % 100


class Evaluation(NamedTuple):
    enabled: bool
    reason: str     # disabled, retired, platform, full_rollout, zero_rollout, bucket, anonymous


def explain(
    feature: FeatureRecord,
    platform: str,
    target_key: Optional[str],
    rng: Optional[random.Random] = None,
) -> Evaluation:
    """Evaluate ``feature`` for one identity and say why.

    Order:
    1. Retired features are off
    2. Master switch off means off for everyone
    3. Platform must be in scope
    4. 100 / 0 percent short-circuit without hashing
    5. Deterministic bucket when a target key is given

    Without a target key the result is a plain probability draw and is
    NOT stable between calls.
    """
    if feature.retired:
        return Evaluation(False, "retired")
    if not feature.enabled:
        return Evaluation(False, "disabled")
    if platform not in feature.platforms:
        return Evaluation(False, "platform")
    if feature.rollout_percentage >= 100:
        return Evaluation(True, "full_rollout")
    if feature.rollout_percentage <= 0:
        return Evaluation(False, "zero_rollout")
    if not target_key:
        draw = (rng or _anonymous_rng).random() * 100
        return Evaluation(draw < feature.rollout_percentage, "anonymous")
    return Evaluation(bucket_for(feature.name, target_key) < feature.rollout_percentage, "bucket")


def is_enabled(
    feature: FeatureRecord,
    platform: str,
    target_key: Optional[str],
    rng: Optional[random.Random] = None,
) -> bool:
    return explain(feature, platform, target_key, rng).enabled

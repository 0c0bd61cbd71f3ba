"""Liquidation threshold policy keyed by the liquidator's tier."""
from __future__ import annotations

BASE_THRESHOLD = 125.00
MIN_THRESHOLD = 110.00
THRESHOLD_STEP = 0.50


def threshold_for(tier_id: int) -> float:
    """Minimum collateralization percentage below which a tier may liquidate.

    Tier 0 has no special standing and gets the floor. Tier 1 gets the base
    threshold, and every later tier loses ``THRESHOLD_STEP`` points down to
    the floor.
    """
    if tier_id < 0:
        raise ValueError(f"Tier id must be >= 0, got {tier_id}")
    if tier_id == 0:
        return MIN_THRESHOLD
    return max(BASE_THRESHOLD - (tier_id - 1) * THRESHOLD_STEP, MIN_THRESHOLD)

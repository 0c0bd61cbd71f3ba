"""Collateralization evaluation of a single position."""
from __future__ import annotations

import time
from dataclasses import replace

from ..models import Position

RATIO_SCALE = 100  # on-chain ratios use 10000 = 100%


def ratio_to_percent(raw_ratio: int) -> float:
    return raw_ratio / RATIO_SCALE


def is_liquidatable(ratio: float, threshold: float, backed_shares: int) -> bool:
    """A position is eligible only when under threshold and still backing shares."""
    return backed_shares > 0 and ratio < threshold


def apply_ratio(position: Position, raw_ratio: int, now: float | None = None) -> Position:
    """Return a new snapshot of ``position`` evaluated at ``raw_ratio``."""
    ratio = ratio_to_percent(raw_ratio)
    return replace(
        position,
        collateralization_ratio=ratio,
        is_liquidatable=is_liquidatable(
            ratio, position.liquidation_threshold, position.backed_shares
        ),
        last_updated=time.time() if now is None else now,
    )


def apply_holdings(
    position: Position,
    collateral_amount: int,
    backed_shares: int,
    debt_amount: int,
    now: float | None = None,
) -> Position:
    """Return a new snapshot with re-read holdings, re-deriving eligibility."""
    return replace(
        position,
        collateral_amount=collateral_amount,
        backed_shares=backed_shares,
        debt_amount=debt_amount,
        is_liquidatable=is_liquidatable(
            position.collateralization_ratio,
            position.liquidation_threshold,
            backed_shares,
        ),
        last_updated=time.time() if now is None else now,
    )

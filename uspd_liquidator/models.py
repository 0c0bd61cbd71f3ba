"""Data models — all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class PriceQuote:
    """Signed ETH/USD price attestation.

    ``price`` is an integer scaled by ``10 ** decimals``. Timestamps are
    milliseconds since the epoch, as served by the price API.
    """

    price: int
    decimals: int
    data_timestamp: int
    request_timestamp: int
    asset_pair: str
    signature: str


@dataclass(frozen=True)
class Position:
    """A Stabilizer NFT position and its last evaluated state."""

    position_id: int
    owner: str
    escrow_address: str
    collateral_amount: int
    backed_shares: int
    debt_amount: int
    liquidation_threshold: float
    collateralization_ratio: float = 0.0
    is_liquidatable: bool = False
    last_updated: float = 0.0

    @property
    def is_active(self) -> bool:
        return self.backed_shares > 0


@dataclass(frozen=True)
class PositionStats:
    total: int
    active: int
    eligible: int
    average_ratio: float


@dataclass(frozen=True)
class PositionCreated:
    """A ``StabilizerPositionCreated`` notification."""

    position_id: int
    owner: str
    block_number: int = 0


@dataclass(frozen=True)
class ProfitEstimate:
    """Every intermediate of a profit estimate, for after-the-fact audit."""

    price: float
    collateral_value_usd: float
    debt_value_usd: float
    bonus_usd: float
    gas_cost_usd: float
    gross_profit_usd: float
    net_profit_usd: float
    net_profit: float  # base asset units, never negative

    @property
    def is_profitable(self) -> bool:
        return self.net_profit > 0


class LiquidationState(str, Enum):
    PENDING = "PENDING"
    BALANCE_CHECKED = "BALANCE_CHECKED"
    PROFIT_CHECKED = "PROFIT_CHECKED"
    EXECUTED = "EXECUTED"
    DECLINED = "DECLINED"
    FAILED = "FAILED"


class DeclineReason(str, Enum):
    INSUFFICIENT_BALANCE = "InsufficientBalance"
    PROFIT_BELOW_THRESHOLD = "ProfitBelowThreshold"
    DRY_RUN = "DryRun"


@dataclass(frozen=True)
class LiquidationResult:
    """Outcome of one liquidation attempt."""

    position_id: int
    state: LiquidationState
    reason: DeclineReason | None = None
    tx_hash: str | None = None
    profit: float = 0.0
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.state is LiquidationState.EXECUTED

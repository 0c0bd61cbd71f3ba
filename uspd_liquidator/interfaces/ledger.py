"""Ledger capability protocols — one per logical remote call group."""
from typing import Protocol

from ..models import PositionCreated, PriceQuote


class PositionReader(Protocol):
    """Reads raw position data from the Stabilizer NFT and its escrows."""

    async def total_positions(self) -> int: ...

    async def position_escrow(self, position_id: int) -> str: ...

    async def owner_of(self, position_id: int) -> str: ...

    async def collateral_amount(self, escrow_address: str) -> int: ...

    async def backed_shares(self, escrow_address: str) -> int: ...

    async def debt_for_shares(self, shares: int) -> int: ...


class RatioReader(Protocol):
    """Computes a position's collateralization ratio on-chain (10000 = 100%)."""

    async def collateralization_ratio(
        self, escrow_address: str, quote: PriceQuote
    ) -> int: ...


class BalanceReader(Protocol):
    """ERC-20 balance lookups."""

    async def balance_of(self, token_address: str, holder: str) -> int: ...


class LiquidationSubmitter(Protocol):
    """Submits liquidation transactions on behalf of the liquidator."""

    @property
    def liquidator_address(self) -> str: ...

    async def submit_liquidation(
        self, liquidator_tier_id: int, position_id: int, quote: PriceQuote
    ) -> str: ...


class PositionEventSource(Protocol):
    """Position-creation notifications between block numbers."""

    async def latest_block(self) -> int: ...

    async def position_created_events(
        self, from_block: int, to_block: int
    ) -> list[PositionCreated]: ...

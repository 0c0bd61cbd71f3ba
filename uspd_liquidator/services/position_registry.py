"""In-memory registry of Stabilizer positions — the single writer of Position records."""
from __future__ import annotations

import asyncio
import logging
import time

from ..exceptions import DiscoveryPartialFailure, RefreshFailure
from ..interfaces.ledger import PositionReader, RatioReader
from ..models import Position, PositionStats, PriceQuote
from .batching import gather_in_batches
from .evaluator import apply_holdings, apply_ratio

logger = logging.getLogger(__name__)


class PositionRegistry:
    """Track every discovered position keyed by its NFT id.

    Records are frozen snapshots: each write replaces the whole record in a
    single step after all remote reads for it have finished, so concurrent
    updates of different ids never interfere and no record is ever
    half-updated. A ratio refresh already running for an id makes further
    refreshes of that id a no-op until it finishes.
    """

    def __init__(
        self,
        reader: PositionReader,
        ratio_reader: RatioReader,
        liquidation_threshold: float,
        *,
        discovery_batch_size: int = 10,
        refresh_batch_size: int = 5,
        call_timeout: float = 30.0,
    ) -> None:
        self._reader = reader
        self._ratio_reader = ratio_reader
        self._threshold = liquidation_threshold
        self._discovery_batch_size = discovery_batch_size
        self._refresh_batch_size = refresh_batch_size
        self._call_timeout = call_timeout
        self._positions: dict[int, Position] = {}
        self._vacant: set[int] = set()
        self._refreshing: set[int] = set()

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, position_id: int) -> bool:
        return position_id in self._positions

    @property
    def liquidation_threshold(self) -> float:
        return self._threshold

    def get(self, position_id: int) -> Position | None:
        return self._positions.get(position_id)

    def positions(self) -> list[Position]:
        return list(self._positions.values())

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def _read_position(self, position_id: int) -> Position | None:
        escrow = await self._reader.position_escrow(position_id)
        if not escrow:
            return None

        owner, collateral, shares = await asyncio.gather(
            self._reader.owner_of(position_id),
            self._reader.collateral_amount(escrow),
            self._reader.backed_shares(escrow),
        )
        debt = await self._reader.debt_for_shares(shares)

        return Position(
            position_id=position_id,
            owner=owner,
            escrow_address=escrow,
            collateral_amount=collateral,
            backed_shares=shares,
            debt_amount=debt,
            liquidation_threshold=self._threshold,
            last_updated=time.time(),
        )

    async def initialize_one(self, position_id: int) -> Position | None:
        """Read a position from the ledger and store it with ratio 0.

        Returns None when the id has no escrow.

        Raises:
            DiscoveryPartialFailure: if any read fails or times out.
        """
        try:
            position = await asyncio.wait_for(
                self._read_position(position_id), timeout=self._call_timeout
            )
        except Exception as e:
            raise DiscoveryPartialFailure(position_id, str(e) or type(e).__name__) from e

        if position is None:
            logger.debug("Position %d has no escrow, skipping", position_id)
            self._vacant.add(position_id)
            return None

        self._positions[position_id] = position
        self._vacant.discard(position_id)
        return position

    async def _initialize_many(self, position_ids: list[int]) -> int:
        outcomes = await gather_in_batches(
            position_ids, self._discovery_batch_size, self.initialize_one
        )
        failures = 0
        for position_id, outcome in outcomes:
            if isinstance(outcome, BaseException):
                failures += 1
                logger.warning("Discovery skipped position %d: %s", position_id, outcome)
        return failures

    async def discover_all(self) -> int:
        """Initialize every id from 1 to the NFT total supply.

        Individual failures are logged and skipped. Returns the number of
        failed ids.
        """
        total = await asyncio.wait_for(
            self._reader.total_positions(), timeout=self._call_timeout
        )
        logger.info("Found %d total Stabilizer NFTs", total)

        failures = await self._initialize_many(list(range(1, total + 1)))

        stats = self.stats()
        logger.info(
            "Initialized %d total positions, %d active (%d failed)",
            stats.total,
            stats.active,
            failures,
        )
        return failures

    async def discover_missing(self) -> int:
        """Initialize ids up to the current total supply that are not stored yet."""
        total = await asyncio.wait_for(
            self._reader.total_positions(), timeout=self._call_timeout
        )
        missing = [
            i
            for i in range(1, total + 1)
            if i not in self._positions and i not in self._vacant
        ]
        if not missing:
            return 0

        logger.info("Discovering %d positions not yet tracked", len(missing))
        failures = await self._initialize_many(missing)
        return len(missing) - failures

    async def add_one(self, position_id: int) -> bool:
        """Track a newly created position. Idempotent for known ids.

        A known id only has its holdings re-read; its ratio and threshold
        are kept.
        """
        if position_id in self._positions:
            logger.debug("Position %d already tracked, re-reading holdings", position_id)
            try:
                await self.resync_one(position_id)
            except RefreshFailure as e:
                logger.error("Could not re-read position: %s", e)
                return False
            return True

        logger.info("Adding new position %d to monitoring", position_id)
        try:
            await self.initialize_one(position_id)
        except DiscoveryPartialFailure as e:
            logger.error("Failed to add position: %s", e)
            return False
        return True

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def _refresh(self, position_id: int, quote: PriceQuote) -> bool:
        position = self._positions.get(position_id)
        if position is None:
            raise RefreshFailure(position_id, "not tracked")
        if position_id in self._refreshing:
            logger.debug("Refresh of position %d already in flight", position_id)
            return False

        self._refreshing.add(position_id)
        try:
            raw_ratio = await asyncio.wait_for(
                self._ratio_reader.collateralization_ratio(position.escrow_address, quote),
                timeout=self._call_timeout,
            )
        except Exception as e:
            raise RefreshFailure(position_id, str(e) or type(e).__name__) from e
        finally:
            self._refreshing.discard(position_id)

        # Re-read after the await so holdings written meanwhile are kept
        updated = apply_ratio(self._positions.get(position_id, position), raw_ratio)
        self._positions[position_id] = updated

        if updated.is_liquidatable:
            logger.info(
                "Position %d is liquidatable: %.2f%% < %.2f%%",
                position_id,
                updated.collateralization_ratio,
                updated.liquidation_threshold,
            )
        return True

    async def refresh_one(self, position_id: int, quote: PriceQuote) -> bool:
        """Recompute one position's ratio. Failures keep the prior state."""
        try:
            return await self._refresh(position_id, quote)
        except RefreshFailure as e:
            logger.error("Failed to refresh position, keeping stale state: %s", e)
            return False

    async def refresh_all(self, quote: PriceQuote) -> int:
        """Refresh every active position. Returns how many were updated."""
        active = [p.position_id for p in self._positions.values() if p.is_active]
        logger.info("Updating %d active positions...", len(active))

        outcomes = await gather_in_batches(
            active, self._refresh_batch_size, lambda pid: self._refresh(pid, quote)
        )
        refreshed = 0
        for position_id, outcome in outcomes:
            if isinstance(outcome, BaseException):
                logger.error("Failed to refresh position, keeping stale state: %s", outcome)
            elif outcome:
                refreshed += 1
        return refreshed

    async def resync_one(self, position_id: int) -> Position:
        """Re-read collateral, shares and debt of a tracked position.

        Raises:
            RefreshFailure: if the position is unknown or a read fails.
        """
        position = self._positions.get(position_id)
        if position is None:
            raise RefreshFailure(position_id, "not tracked")

        async def _read() -> tuple[int, int, int]:
            collateral, shares = await asyncio.gather(
                self._reader.collateral_amount(position.escrow_address),
                self._reader.backed_shares(position.escrow_address),
            )
            debt = await self._reader.debt_for_shares(shares)
            return collateral, shares, debt

        try:
            collateral, shares, debt = await asyncio.wait_for(
                _read(), timeout=self._call_timeout
            )
        except Exception as e:
            raise RefreshFailure(position_id, str(e) or type(e).__name__) from e

        updated = apply_holdings(
            self._positions.get(position_id, position), collateral, shares, debt
        )
        self._positions[position_id] = updated
        return updated

    async def resync_all(self) -> int:
        """Re-read holdings of every tracked position. Returns the failure count."""
        ids = list(self._positions)
        outcomes = await gather_in_batches(ids, self._discovery_batch_size, self.resync_one)
        failures = 0
        for _, outcome in outcomes:
            if isinstance(outcome, BaseException):
                failures += 1
                logger.error("Resync failed: %s", outcome)
        logger.info("Resynced %d positions (%d failed)", len(ids) - failures, failures)
        return failures

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def eligible_for_liquidation(self) -> list[Position]:
        """Positions currently flagged liquidatable, in insertion order."""
        return [p for p in self._positions.values() if p.is_liquidatable]

    def stats(self) -> PositionStats:
        positions = list(self._positions.values())
        active = [p for p in positions if p.is_active]
        eligible = sum(1 for p in positions if p.is_liquidatable)
        average = (
            sum(p.collateralization_ratio for p in active) / len(active) if active else 0.0
        )
        return PositionStats(
            total=len(positions),
            active=len(active),
            eligible=eligible,
            average_ratio=average,
        )

"""Liquidation orchestration — balance check, profit gate, execution."""
from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from ..interfaces.ledger import BalanceReader, LiquidationSubmitter
from ..models import (
    DeclineReason,
    LiquidationResult,
    LiquidationState,
    Position,
    PriceQuote,
)
from .profit import ProfitEstimator

logger = logging.getLogger(__name__)


class LiquidationOrchestrator:
    """Drive liquidation attempts through
    PENDING → BALANCE_CHECKED → PROFIT_CHECKED → EXECUTED | DECLINED | FAILED.
    """

    def __init__(
        self,
        balances: BalanceReader,
        submitter: LiquidationSubmitter,
        estimator: ProfitEstimator,
        debt_token: str,
        *,
        tier_id: int = 0,
        min_profit: float = 0.01,
        max_concurrent: int = 3,
        debt_decimals: int = 18,
        call_timeout: float = 30.0,
        dry_run: bool = False,
    ) -> None:
        self._balances = balances
        self._submitter = submitter
        self._estimator = estimator
        self._debt_token = debt_token
        self.tier_id = tier_id
        self.min_profit = min_profit
        self.max_concurrent = max_concurrent
        self._debt_decimals = debt_decimals
        self._call_timeout = call_timeout
        self.dry_run = dry_run
        self._in_flight: set[int] = set()

    def _declined(
        self, position: Position, reason: DeclineReason, profit: float = 0.0
    ) -> LiquidationResult:
        logger.info("Position %d declined: %s", position.position_id, reason.value)
        return LiquidationResult(
            position_id=position.position_id,
            state=LiquidationState.DECLINED,
            reason=reason,
            profit=profit,
        )

    async def liquidate(self, position: Position, quote: PriceQuote) -> LiquidationResult:
        """Attempt one liquidation. Never raises; errors become FAILED results."""
        state = LiquidationState.PENDING
        logger.info("Attempting to liquidate position %d", position.position_id)

        try:
            balance = await asyncio.wait_for(
                self._balances.balance_of(
                    self._debt_token, self._submitter.liquidator_address
                ),
                timeout=self._call_timeout,
            )
            if balance < position.debt_amount:
                logger.info(
                    "Need %.4f USPD for position %d, holding %.4f",
                    position.debt_amount / 10**self._debt_decimals,
                    position.position_id,
                    balance / 10**self._debt_decimals,
                )
                return self._declined(position, DeclineReason.INSUFFICIENT_BALANCE)
            state = LiquidationState.BALANCE_CHECKED

            estimate = self._estimator.estimate(position, quote)
            if estimate.net_profit < self.min_profit:
                logger.info(
                    "Liquidation profit too low for position %d: %.8f ETH < %.8f ETH",
                    position.position_id,
                    estimate.net_profit,
                    self.min_profit,
                )
                return self._declined(
                    position, DeclineReason.PROFIT_BELOW_THRESHOLD, estimate.net_profit
                )
            state = LiquidationState.PROFIT_CHECKED

            if self.dry_run:
                return self._declined(position, DeclineReason.DRY_RUN, estimate.net_profit)

            tx_hash = await self._submitter.submit_liquidation(
                self.tier_id, position.position_id, quote
            )
        except Exception as e:
            logger.error(
                "Liquidation failed for position %d after %s: %s",
                position.position_id,
                state.value,
                e,
            )
            return LiquidationResult(
                position_id=position.position_id,
                state=LiquidationState.FAILED,
                error=str(e) or type(e).__name__,
            )

        logger.info(
            "Liquidated position %d: tx %s, expected profit %.8f ETH",
            position.position_id,
            tx_hash,
            estimate.net_profit,
        )
        return LiquidationResult(
            position_id=position.position_id,
            state=LiquidationState.EXECUTED,
            tx_hash=tx_hash,
            profit=estimate.net_profit,
        )

    async def process(
        self, candidates: Sequence[Position], quote: PriceQuote
    ) -> list[LiquidationResult]:
        """Attempt at most ``max_concurrent`` candidates, in order, concurrently.

        Candidates beyond the cap, and positions whose previous attempt is
        still running, wait for the next tick.
        """
        selected = [p for p in candidates if p.position_id not in self._in_flight]
        deferred = len(selected) - self.max_concurrent
        selected = selected[: self.max_concurrent]
        if deferred > 0:
            logger.info("Deferring %d eligible positions to the next tick", deferred)
        if not selected:
            return []

        ids = [p.position_id for p in selected]
        self._in_flight.update(ids)
        try:
            outcomes = await asyncio.gather(
                *(self.liquidate(p, quote) for p in selected), return_exceptions=True
            )
        finally:
            self._in_flight.difference_update(ids)

        results: list[LiquidationResult] = []
        for position, outcome in zip(selected, outcomes):
            if isinstance(outcome, BaseException):
                results.append(
                    LiquidationResult(
                        position_id=position.position_id,
                        state=LiquidationState.FAILED,
                        error=str(outcome) or type(outcome).__name__,
                    )
                )
            else:
                results.append(outcome)
        return results

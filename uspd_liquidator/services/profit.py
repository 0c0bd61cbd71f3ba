"""Liquidation profit estimation."""
from __future__ import annotations

import logging

from ..models import Position, PriceQuote, ProfitEstimate
from ..oracles.uspd import to_numeric

logger = logging.getLogger(__name__)


class ProfitEstimator:
    """Estimate the net profit of liquidating a position.

    The debt token is treated as pegged 1:1 to USD and gas is a fixed
    conservative estimate in ETH, not a live gas price.
    """

    def __init__(
        self,
        bonus_percent: float = 5.0,
        gas_estimate: float = 0.01,
        collateral_decimals: int = 18,
        debt_decimals: int = 18,
    ) -> None:
        self.bonus_percent = bonus_percent
        self.gas_estimate = gas_estimate
        self.collateral_decimals = collateral_decimals
        self.debt_decimals = debt_decimals

    def estimate(self, position: Position, quote: PriceQuote) -> ProfitEstimate:
        """Return the estimate; ``net_profit`` is zero when not profitable.

        Raises:
            ValueError: if the quote price is not positive.
        """
        price = to_numeric(quote)
        if price <= 0:
            raise ValueError(f"Non-positive price in quote: {price}")

        collateral = position.collateral_amount / 10**self.collateral_decimals
        collateral_value = collateral * price
        debt_value = position.debt_amount / 10**self.debt_decimals
        bonus = debt_value * self.bonus_percent / 100
        gas_cost = self.gas_estimate * price

        gross = bonus
        net_usd = gross - gas_cost
        net = net_usd / price

        logger.info(
            "Position %d profit estimate: ETH price $%.2f | collateral %.6f ETH ($%.2f) "
            "| debt $%.2f | bonus (%.1f%%) $%.2f | gas %.4f ETH ($%.2f) "
            "| gross $%.2f | net $%.2f (%.8f ETH)",
            position.position_id,
            price,
            collateral,
            collateral_value,
            debt_value,
            self.bonus_percent,
            bonus,
            self.gas_estimate,
            gas_cost,
            gross,
            net_usd,
            net,
        )

        if net <= 0:
            logger.info("Position %d: non-positive profit, using 0", position.position_id)
            net = 0.0

        return ProfitEstimate(
            price=price,
            collateral_value_usd=collateral_value,
            debt_value_usd=debt_value,
            bonus_usd=bonus,
            gas_cost_usd=gas_cost,
            gross_profit_usd=gross,
            net_profit_usd=net_usd,
            net_profit=net,
        )

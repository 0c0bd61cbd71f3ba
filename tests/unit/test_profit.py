"""Unit tests for liquidation profit estimation."""
from __future__ import annotations

import pytest

from uspd_liquidator.models import Position
from uspd_liquidator.services.profit import ProfitEstimator

from conftest import make_position, make_quote


@pytest.fixture()
def estimator() -> ProfitEstimator:
    return ProfitEstimator(bonus_percent=5.0, gas_estimate=0.01)


class TestProfitEstimator:
    def test_reference_position(self, estimator: ProfitEstimator) -> None:
        position = make_position(collateral=0.65, debt=2400.0)
        estimate = estimator.estimate(position, make_quote(4503.27))

        assert estimate.price == pytest.approx(4503.27)
        assert estimate.collateral_value_usd == pytest.approx(0.65 * 4503.27)
        assert estimate.debt_value_usd == pytest.approx(2400.0)
        assert estimate.bonus_usd == pytest.approx(120.0, abs=0.1)
        assert estimate.gas_cost_usd == pytest.approx(45.03, abs=0.01)
        assert estimate.net_profit_usd == pytest.approx(75.0, abs=0.1)
        assert estimate.net_profit == pytest.approx(0.01667, abs=5e-5)
        assert estimate.is_profitable is True

    def test_zero_when_gas_exceeds_bonus(self, estimator: ProfitEstimator) -> None:
        position = make_position(collateral=0.1, debt=100.0)
        estimate = estimator.estimate(position, make_quote(3000.0))

        # bonus $5 < gas $30
        assert estimate.net_profit_usd < 0
        assert estimate.net_profit == 0.0
        assert estimate.is_profitable is False

    def test_zero_when_bonus_equals_gas(self) -> None:
        estimator = ProfitEstimator(bonus_percent=5.0, gas_estimate=0.01)
        position = make_position(debt=600.0)
        estimate = estimator.estimate(position, make_quote(3000.0))
        assert estimate.net_profit == 0.0

    def test_respects_decimals(self) -> None:
        estimator = ProfitEstimator(
            bonus_percent=10.0, gas_estimate=0.0, collateral_decimals=18, debt_decimals=6
        )
        position = Position(
            position_id=9,
            owner="0xowner",
            escrow_address="0xescrow9",
            collateral_amount=10**18,
            backed_shares=1,
            debt_amount=1000 * 10**6,
            liquidation_threshold=125.0,
        )
        estimate = estimator.estimate(position, make_quote(2000.0, decimals=8))
        assert estimate.debt_value_usd == pytest.approx(1000.0)
        assert estimate.net_profit == pytest.approx(100.0 / 2000.0)

    def test_non_positive_price_rejected(self, estimator: ProfitEstimator) -> None:
        quote = make_quote(0.0)
        with pytest.raises(ValueError):
            estimator.estimate(make_position(), quote)

"""Unit tests for data models."""
from __future__ import annotations

import dataclasses

import pytest

from uspd_liquidator.models import (
    DeclineReason,
    LiquidationResult,
    LiquidationState,
    ProfitEstimate,
)

from conftest import make_position


class TestPosition:
    def test_frozen(self) -> None:
        position = make_position()
        with pytest.raises(dataclasses.FrozenInstanceError):
            position.collateralization_ratio = 99.0  # type: ignore[misc]

    def test_active_when_backing_shares(self) -> None:
        assert make_position(shares=1).is_active is True

    def test_inactive_without_shares(self) -> None:
        assert make_position(shares=0).is_active is False

    def test_defaults(self) -> None:
        position = make_position()
        assert position.collateralization_ratio == 0.0
        assert position.is_liquidatable is False


class TestLiquidationResult:
    def test_executed_is_success(self) -> None:
        result = LiquidationResult(
            position_id=1, state=LiquidationState.EXECUTED, tx_hash="0xabc", profit=0.02
        )
        assert result.success is True

    @pytest.mark.parametrize(
        "state", [LiquidationState.DECLINED, LiquidationState.FAILED]
    )
    def test_other_terminal_states_are_not_success(self, state: LiquidationState) -> None:
        assert LiquidationResult(position_id=1, state=state).success is False

    def test_decline_reason_values(self) -> None:
        assert DeclineReason.INSUFFICIENT_BALANCE.value == "InsufficientBalance"
        assert DeclineReason.PROFIT_BELOW_THRESHOLD.value == "ProfitBelowThreshold"


class TestProfitEstimate:
    def test_is_profitable(self) -> None:
        estimate = ProfitEstimate(
            price=3000.0,
            collateral_value_usd=3000.0,
            debt_value_usd=2000.0,
            bonus_usd=100.0,
            gas_cost_usd=30.0,
            gross_profit_usd=100.0,
            net_profit_usd=70.0,
            net_profit=70.0 / 3000.0,
        )
        assert estimate.is_profitable is True
        assert dataclasses.replace(estimate, net_profit=0.0).is_profitable is False

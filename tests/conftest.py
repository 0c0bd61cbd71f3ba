"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
import time
from pathlib import Path

import pytest

from uspd_liquidator.config import (
    AppConfig,
    ChainConfig,
    DeploymentsConfig,
    LiquidatorConfig,
    MonitorConfig,
    NotificationsConfig,
    PriceFeedConfig,
    TelegramConfig,
)
from uspd_liquidator.exceptions import LedgerError
from uspd_liquidator.models import Position, PositionCreated, PriceQuote

LIQUIDATOR = "0x1111111111111111111111111111111111111111"
USPD_TOKEN = "0x2222222222222222222222222222222222222222"
ETH = 10**18


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_chain_config() -> ChainConfig:
    return ChainConfig(
        chain_id=1,
        rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"),
        rpc_timeout=10,
    )


@pytest.fixture()
def sample_app_config(sample_chain_config: ChainConfig) -> AppConfig:
    return AppConfig(
        chain=sample_chain_config,
        deployments=DeploymentsConfig(url="https://deployments.example.com"),
        price_feed=PriceFeedConfig(url="https://price.example.com", max_age_seconds=60),
        liquidator=LiquidatorConfig(
            address=LIQUIDATOR,
            tier_id=1,
            min_profit_eth=0.01,
            max_concurrent_liquidations=3,
            dry_run=True,
        ),
        monitor=MonitorConfig(
            price_interval_seconds=1,
            refresh_interval_seconds=5,
            event_poll_interval_seconds=1,
            call_timeout=5,
        ),
        notifications=NotificationsConfig(
            telegram=TelegramConfig(
                enabled=True,
                alert_bot_token="fake-alert-token",
                log_bot_token="fake-log-token",
                chat_id="12345",
            ),
        ),
    )


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


def make_quote(price: float = 4503.27, decimals: int = 18, age_ms: int = 0) -> PriceQuote:
    now_ms = int(time.time() * 1000)
    return PriceQuote(
        price=int(round(price * 100)) * 10 ** (decimals - 2),
        decimals=decimals,
        data_timestamp=now_ms - age_ms,
        request_timestamp=now_ms,
        asset_pair="ETH/USD",
        signature="0x" + "ab" * 65,
    )


def make_position(
    position_id: int = 1,
    collateral: float = 0.65,
    debt: float = 2400.0,
    shares: int = 2400 * ETH,
    ratio: float = 0.0,
    threshold: float = 125.0,
    liquidatable: bool = False,
) -> Position:
    return Position(
        position_id=position_id,
        owner=f"0xowner{position_id}",
        escrow_address=f"0xescrow{position_id}",
        collateral_amount=int(collateral * ETH),
        backed_shares=shares,
        debt_amount=int(debt * ETH),
        liquidation_threshold=threshold,
        collateralization_ratio=ratio,
        is_liquidatable=liquidatable,
    )


@pytest.fixture()
def sample_quote() -> PriceQuote:
    return make_quote()


@pytest.fixture()
def sample_position() -> Position:
    return make_position()


# ---------------------------------------------------------------------------
# Fake ledger
# ---------------------------------------------------------------------------


class FakeLedger:
    """In-memory stand-in for the EVM ledger client.

    ``holdings`` maps position id -> (collateral, shares); debt equals shares
    (yield factor 1). ``ratios`` maps position id -> raw ratio (10000 = 100%).
    """

    liquidator_address = LIQUIDATOR

    def __init__(
        self,
        holdings: dict[int, tuple[int, int]] | None = None,
        ratios: dict[int, int] | None = None,
        failing_ids: set[int] | None = None,
        failing_ratio_ids: set[int] | None = None,
        vacant_ids: set[int] | None = None,
        balance: int = 0,
    ) -> None:
        self.holdings = dict(holdings or {})
        self.ratios = dict(ratios or {})
        self.failing_ids = set(failing_ids or ())
        self.failing_ratio_ids = set(failing_ratio_ids or ())
        self.vacant_ids = set(vacant_ids or ())
        self.balance = balance
        self.block = 100
        self.events: list[PositionCreated] = []
        self.escrow_calls: list[int] = []
        self.submitted: list[tuple[int, int]] = []
        self.event_queries: list[tuple[int, int]] = []

    @staticmethod
    def _id(escrow: str) -> int:
        return int(escrow.removeprefix("0xescrow"))

    async def total_positions(self) -> int:
        return max(self.holdings, default=0)

    async def position_escrow(self, position_id: int) -> str:
        self.escrow_calls.append(position_id)
        if position_id in self.failing_ids:
            raise LedgerError(f"positionEscrows({position_id}) failed")
        if position_id in self.vacant_ids:
            return ""
        return f"0xescrow{position_id}"

    async def owner_of(self, position_id: int) -> str:
        return f"0xowner{position_id}"

    async def collateral_amount(self, escrow_address: str) -> int:
        return self.holdings[self._id(escrow_address)][0]

    async def backed_shares(self, escrow_address: str) -> int:
        return self.holdings[self._id(escrow_address)][1]

    async def debt_for_shares(self, shares: int) -> int:
        return shares

    async def collateralization_ratio(self, escrow_address: str, quote: PriceQuote) -> int:
        position_id = self._id(escrow_address)
        if position_id in self.failing_ratio_ids:
            raise LedgerError("getCollateralizationRatio reverted")
        return self.ratios[position_id]

    async def balance_of(self, token_address: str, holder: str) -> int:
        return self.balance

    async def submit_liquidation(
        self, liquidator_tier_id: int, position_id: int, quote: PriceQuote
    ) -> str:
        self.submitted.append((liquidator_tier_id, position_id))
        return f"0xtx{position_id}"

    async def latest_block(self) -> int:
        return self.block

    async def position_created_events(
        self, from_block: int, to_block: int
    ) -> list[PositionCreated]:
        self.event_queries.append((from_block, to_block))
        return [e for e in self.events if from_block <= e.block_number <= to_block]


@pytest.fixture()
def fake_ledger() -> FakeLedger:
    return FakeLedger(
        holdings={
            1: (ETH, 2000 * ETH),
            2: (2 * ETH, 3000 * ETH),
            3: (ETH, 0),
        },
        ratios={1: 11500, 2: 20000, 3: 5000},
        balance=10_000 * ETH,
    )


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    chain:
      chain_id: 1
      rpc_endpoints: ["https://rpc.example.com"]
      rpc_timeout: 10
    deployments:
      url: "https://deployments.example.com"
    price_feed:
      url: "https://price.example.com"
      max_age_seconds: 45
    liquidator:
      address: "0x1111111111111111111111111111111111111111"
      tier_id: 3
      min_profit_eth: 0.02
      dry_run: true
    monitor:
      price_interval_seconds: 12
      refresh_interval_seconds: 120
    notifications:
      telegram:
        enabled: true
        alert_bot_token: "tok1"
        log_bot_token: "tok2"
        chat_id: "999"
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file

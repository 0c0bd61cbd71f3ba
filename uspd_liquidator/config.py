"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChainConfig:
    chain_id: int = 1
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30


@dataclass(frozen=True)
class DeploymentsConfig:
    url: str = "https://uspd.io/api/deployments"
    timeout: int = 30


@dataclass(frozen=True)
class PriceFeedConfig:
    url: str = "https://uspd.io/api/v1/price/eth-usd"
    timeout: int = 10
    max_age_seconds: int = 60
    asset_pair: str = "ETH/USD"


@dataclass(frozen=True)
class LiquidatorConfig:
    private_key: str = ""
    address: str = ""
    tier_id: int = 0
    min_profit_eth: float = 0.01
    bonus_percent: float = 5.0
    gas_estimate_eth: float = 0.01
    max_concurrent_liquidations: int = 3
    collateral_decimals: int = 18
    debt_decimals: int = 18
    receipt_timeout: int = 120
    dry_run: bool = False


@dataclass(frozen=True)
class MonitorConfig:
    price_interval_seconds: int = 30
    refresh_interval_seconds: int = 300
    event_poll_interval_seconds: int = 15
    event_block_range: int = 1000
    discovery_batch_size: int = 10
    refresh_batch_size: int = 5
    call_timeout: int = 30


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    alert_bot_token: str = ""
    log_bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)


@dataclass(frozen=True)
class AppConfig:
    chain: ChainConfig = field(default_factory=ChainConfig)
    deployments: DeploymentsConfig = field(default_factory=DeploymentsConfig)
    price_feed: PriceFeedConfig = field(default_factory=PriceFeedConfig)
    liquidator: LiquidatorConfig = field(default_factory=LiquidatorConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


def _as_bool(value: Any) -> bool:
    # Interpolated env values arrive as strings
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_chain(raw: dict[str, Any]) -> ChainConfig:
    return ChainConfig(
        chain_id=int(raw.get("chain_id", 1)),
        rpc_endpoints=tuple(e for e in raw.get("rpc_endpoints", []) if e),
        rpc_timeout=int(raw.get("rpc_timeout", 30)),
    )


def _build_deployments(raw: dict[str, Any]) -> DeploymentsConfig:
    return DeploymentsConfig(
        url=raw.get("url", DeploymentsConfig.url),
        timeout=int(raw.get("timeout", 30)),
    )


def _build_price_feed(raw: dict[str, Any]) -> PriceFeedConfig:
    return PriceFeedConfig(
        url=raw.get("url", PriceFeedConfig.url),
        timeout=int(raw.get("timeout", 10)),
        max_age_seconds=int(raw.get("max_age_seconds", 60)),
        asset_pair=raw.get("asset_pair", "ETH/USD"),
    )


def _build_liquidator(raw: dict[str, Any]) -> LiquidatorConfig:
    return LiquidatorConfig(
        private_key=raw.get("private_key", "") or "",
        address=raw.get("address", "") or "",
        tier_id=int(raw.get("tier_id", 0) or 0),
        min_profit_eth=float(raw.get("min_profit_eth", 0.01)),
        bonus_percent=float(raw.get("bonus_percent", 5.0)),
        gas_estimate_eth=float(raw.get("gas_estimate_eth", 0.01)),
        max_concurrent_liquidations=int(raw.get("max_concurrent_liquidations", 3)),
        collateral_decimals=int(raw.get("collateral_decimals", 18)),
        debt_decimals=int(raw.get("debt_decimals", 18)),
        receipt_timeout=int(raw.get("receipt_timeout", 120)),
        dry_run=_as_bool(raw.get("dry_run", False)),
    )


def _build_monitor(raw: dict[str, Any]) -> MonitorConfig:
    return MonitorConfig(
        price_interval_seconds=int(raw.get("price_interval_seconds", 30)),
        refresh_interval_seconds=int(raw.get("refresh_interval_seconds", 300)),
        event_poll_interval_seconds=int(raw.get("event_poll_interval_seconds", 15)),
        event_block_range=int(raw.get("event_block_range", 1000)),
        discovery_batch_size=int(raw.get("discovery_batch_size", 10)),
        refresh_batch_size=int(raw.get("refresh_batch_size", 5)),
        call_timeout=int(raw.get("call_timeout", 30)),
    )


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=_as_bool(tg.get("enabled", False)),
            alert_bot_token=tg.get("alert_bot_token", ""),
            log_bot_token=tg.get("log_bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from the package directory).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        chain=_build_chain(raw.get("chain", {})),
        deployments=_build_deployments(raw.get("deployments", {})),
        price_feed=_build_price_feed(raw.get("price_feed", {})),
        liquidator=_build_liquidator(raw.get("liquidator", {})),
        monitor=_build_monitor(raw.get("monitor", {})),
        notifications=_build_notifications(raw.get("notifications", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.chain.rpc_endpoints:
        raise ValueError("At least one RPC endpoint must be configured")

    liq = cfg.liquidator
    if liq.tier_id < 0:
        raise ValueError(f"Liquidator tier id must be >= 0, got {liq.tier_id}")
    if liq.max_concurrent_liquidations < 1:
        raise ValueError("max_concurrent_liquidations must be at least 1")
    if not liq.private_key and not liq.address:
        raise ValueError("Liquidator needs either a private_key or an address")

    mon = cfg.monitor
    if mon.discovery_batch_size < 1 or mon.refresh_batch_size < 1:
        raise ValueError("Batch sizes must be at least 1")
    for name in (
        "price_interval_seconds",
        "refresh_interval_seconds",
        "event_poll_interval_seconds",
        "event_block_range",
        "call_timeout",
    ):
        if getattr(mon, name) <= 0:
            raise ValueError(f"monitor.{name} must be positive")

"""Protocol interfaces for the USPD liquidator."""
from .deployments import DeploymentSource
from .ledger import (
    BalanceReader,
    LiquidationSubmitter,
    PositionEventSource,
    PositionReader,
    RatioReader,
)
from .notifier import Notifier
from .price_feed import PriceFeed

__all__ = [
    "BalanceReader",
    "DeploymentSource",
    "LiquidationSubmitter",
    "Notifier",
    "PositionEventSource",
    "PositionReader",
    "PriceFeed",
    "RatioReader",
]

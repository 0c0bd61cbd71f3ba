"""Service modules"""
from .liquidation import LiquidationOrchestrator
from .monitor import Monitor
from .position_registry import PositionRegistry
from .profit import ProfitEstimator
from .threshold import threshold_for

__all__ = [
    "LiquidationOrchestrator",
    "Monitor",
    "PositionRegistry",
    "ProfitEstimator",
    "threshold_for",
]

"""Error taxonomy for the liquidator."""
from __future__ import annotations


class LiquidatorError(Exception):
    """Base class for all liquidator errors."""


class FeedUnavailable(LiquidatorError):
    """A remote HTTP source was unreachable or returned a malformed payload."""


class DeploymentUnavailable(FeedUnavailable):
    """The deployment registry could not supply contract addresses."""


class LedgerError(LiquidatorError):
    """A read against the remote ledger failed."""


class DiscoveryPartialFailure(LiquidatorError):
    """A single position could not be resolved during discovery."""

    def __init__(self, position_id: int, reason: str) -> None:
        super().__init__(f"Position {position_id}: {reason}")
        self.position_id = position_id
        self.reason = reason


class RefreshFailure(LiquidatorError):
    """A position's ratio could not be recomputed; prior state is kept."""

    def __init__(self, position_id: int, reason: str) -> None:
        super().__init__(f"Position {position_id}: {reason}")
        self.position_id = position_id
        self.reason = reason


class ExecutionFailure(LiquidatorError):
    """The ledger rejected or errored a liquidation submission."""

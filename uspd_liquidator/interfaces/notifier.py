"""Notifier protocol — outbound channel for liquidation outcomes and status."""
from typing import Protocol


class Notifier(Protocol):
    """A channel that can push liquidation alerts and periodic status logs.

    Both methods return False instead of raising when the channel is not
    configured or the remote end refuses the message.
    """

    async def send_alert(self, message: str, subject: str = "") -> bool:
        """Push an unmuted message about an executed or failed liquidation."""
        ...

    async def send_log(self, message: str, silent: bool = True) -> bool: ...

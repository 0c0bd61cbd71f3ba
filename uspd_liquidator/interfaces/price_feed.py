"""Price feed protocol — signed price quote abstraction."""
from typing import Protocol

from ..models import PriceQuote


class PriceFeed(Protocol):
    """Abstract interface for fetching signed price quotes."""

    async def fetch_quote(self) -> PriceQuote: ...

    def is_fresh(self, quote: PriceQuote, max_age_ms: int | None = None) -> bool: ...

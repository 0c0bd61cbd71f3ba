"""USPD signed price feed client."""
from __future__ import annotations

import logging
import ssl
import time
from typing import Any

import aiohttp
import certifi

from ..config import PriceFeedConfig
from ..exceptions import FeedUnavailable
from ..models import PriceQuote

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("price", "signature", "decimals")


def to_numeric(quote: PriceQuote) -> float:
    """Convert a quote's integer price to a float using its own decimals."""
    return quote.price / (10**quote.decimals)


def parse_quote(payload: Any) -> PriceQuote:
    """Validate a price API payload and build a :class:`PriceQuote`.

    Raises:
        FeedUnavailable: if the payload is not an object or misses ``price``,
            ``signature`` or ``decimals``.
    """
    if not isinstance(payload, dict):
        raise FeedUnavailable("Price payload is not a JSON object")

    missing = [k for k in _REQUIRED_FIELDS if payload.get(k) in (None, "")]
    if missing:
        raise FeedUnavailable(
            f"Invalid price data received, missing: {', '.join(missing)}"
        )

    try:
        return PriceQuote(
            price=int(payload["price"]),
            decimals=int(payload["decimals"]),
            data_timestamp=int(payload.get("dataTimestamp", 0)),
            request_timestamp=int(payload.get("requestTimestamp", 0)),
            asset_pair=str(payload.get("assetPair", "")),
            signature=str(payload["signature"]),
        )
    except (TypeError, ValueError) as e:
        raise FeedUnavailable(f"Malformed price data: {e}") from e


class UspdPriceFeed:
    """Fetch signed ETH/USD quotes from the USPD price API.

    Every call hits the remote API; only the last returned quote is kept.
    """

    def __init__(self, config: PriceFeedConfig) -> None:
        self.url = config.url
        self.timeout = config.timeout
        self.max_age_ms = config.max_age_seconds * 1000
        self.last_quote: PriceQuote | None = None

    async def fetch_quote(self) -> PriceQuote:
        """Fetch the current signed quote.

        Raises:
            FeedUnavailable: on HTTP errors, timeouts or malformed payloads.
        """
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    self.url, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as response:
                    if response.status != 200:
                        raise FeedUnavailable(
                            f"Price API request failed: HTTP {response.status}"
                        )
                    data = await response.json()
        except FeedUnavailable:
            raise
        except Exception as e:
            raise FeedUnavailable(f"Error fetching price: {e}") from e

        quote = parse_quote(data)
        self.last_quote = quote
        logger.info(
            "Fetched %s price: $%.2f (decimals=%d)",
            quote.asset_pair or "ETH/USD",
            to_numeric(quote),
            quote.decimals,
        )
        return quote

    @staticmethod
    def to_numeric(quote: PriceQuote) -> float:
        return to_numeric(quote)

    def is_fresh(
        self,
        quote: PriceQuote,
        max_age_ms: int | None = None,
        now_ms: int | None = None,
    ) -> bool:
        """Return True when the quote's data timestamp is within the window."""
        if max_age_ms is None:
            max_age_ms = self.max_age_ms
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        return now_ms - quote.data_timestamp <= max_age_ms

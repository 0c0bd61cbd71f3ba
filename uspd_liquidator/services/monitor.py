"""Monitoring loop — price-driven scans, slow resyncs and creation events."""
from __future__ import annotations

import asyncio
import html
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable

from ..chains.evm import EvmLedgerClient
from ..config import AppConfig
from ..deployments import DeploymentRegistry
from ..exceptions import FeedUnavailable
from ..interfaces import DeploymentSource, Notifier, PositionEventSource, PriceFeed
from ..models import (
    LiquidationResult,
    LiquidationState,
    Position,
    PositionStats,
    PriceQuote,
)
from ..notifications import TelegramNotifier
from ..oracles import UspdPriceFeed, to_numeric
from .liquidation import LiquidationOrchestrator
from .position_registry import PositionRegistry
from .profit import ProfitEstimator
from .threshold import threshold_for

logger = logging.getLogger(__name__)


class Monitor:
    """Wires the price feed, registry and orchestrator and runs their timers."""

    def __init__(self, config: AppConfig, *, dry_run: bool | None = None) -> None:
        self._config = config
        liq = config.liquidator
        self._dry_run = liq.dry_run if dry_run is None else dry_run

        self._price_feed: PriceFeed = UspdPriceFeed(config.price_feed)
        self._deployments: DeploymentSource = DeploymentRegistry(config.deployments)
        self._threshold = threshold_for(liq.tier_id)
        self._estimator = ProfitEstimator(
            bonus_percent=liq.bonus_percent,
            gas_estimate=liq.gas_estimate_eth,
            collateral_decimals=liq.collateral_decimals,
            debt_decimals=liq.debt_decimals,
        )

        self._events: PositionEventSource | None = None
        self._registry: PositionRegistry | None = None
        self._orchestrator: LiquidationOrchestrator | None = None
        self._last_event_block: int | None = None

        self._stopping = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

        # Build notifiers
        self._notifiers: list[Notifier] = []
        if config.notifications.telegram.enabled:
            self._notifiers.append(TelegramNotifier(config.notifications.telegram))

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def setup(self) -> None:
        """Resolve contract addresses and build the ledger-backed services.

        Deployment lookup failures propagate: nothing can run without them.

        Raises:
            ValueError: if live mode is requested without a private key.
        """
        if self._registry is not None:
            return

        chain = self._config.chain
        liq = self._config.liquidator
        if not liq.private_key and not self._dry_run:
            raise ValueError("Liquidator private_key is required unless dry_run is set")
        contracts = await self._deployments.contract_addresses(chain.chain_id)
        ledger = EvmLedgerClient(
            chain,
            contracts,
            private_key=liq.private_key,
            address=liq.address,
            asset_pair=self._config.price_feed.asset_pair,
            receipt_timeout=liq.receipt_timeout,
        )
        logger.info(
            "Liquidator %s, tier %d, threshold %.2f%%%s",
            ledger.liquidator_address,
            liq.tier_id,
            self._threshold,
            " (dry run)" if self._dry_run else "",
        )
        self._wire(ledger, contracts.uspd_token)

    def _wire(self, ledger: EvmLedgerClient, debt_token: str) -> None:
        mon = self._config.monitor
        liq = self._config.liquidator
        self._events = ledger
        self._registry = PositionRegistry(
            ledger,
            ledger,
            self._threshold,
            discovery_batch_size=mon.discovery_batch_size,
            refresh_batch_size=mon.refresh_batch_size,
            call_timeout=mon.call_timeout,
        )
        self._orchestrator = LiquidationOrchestrator(
            ledger,
            ledger,
            self._estimator,
            debt_token,
            tier_id=liq.tier_id,
            min_profit=liq.min_profit_eth,
            max_concurrent=liq.max_concurrent_liquidations,
            debt_decimals=liq.debt_decimals,
            call_timeout=mon.call_timeout,
            dry_run=self._dry_run,
        )

    @property
    def registry(self) -> PositionRegistry:
        if self._registry is None:
            raise RuntimeError("Monitor.setup() has not been called")
        return self._registry

    @property
    def orchestrator(self) -> LiquidationOrchestrator:
        if self._orchestrator is None:
            raise RuntimeError("Monitor.setup() has not been called")
        return self._orchestrator

    # ------------------------------------------------------------------
    # Formatting helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _format_address(address: str) -> str:
        if len(address) > 16:
            return f"{address[:10]}...{address[-6:]}"
        return address

    @staticmethod
    def _now_str() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    def _build_stats_message(self, stats: PositionStats) -> str:
        return (
            f"📊 USPD positions\n"
            f"\n"
            f"Tracked: {stats.total} · Active: {stats.active}\n"
            f"Liquidatable: {stats.eligible}\n"
            f"Average ratio: {stats.average_ratio:.2f}%\n"
            f"Threshold: {self._threshold:.2f}%\n"
            f"\n"
            f"{self._now_str()} UTC"
        )

    def _build_result_message(
        self, result: LiquidationResult, position: Position | None
    ) -> str:
        lines = [f"Position #{result.position_id}"]
        if position is not None:
            lines.append(f"Owner: {self._format_address(position.owner)}")
            lines.append(f"Ratio: {position.collateralization_ratio:.2f}%")
        if result.success:
            lines.append(f"Expected profit: {result.profit:.6f} ETH")
            lines.append(f"Tx: {result.tx_hash}")
        else:
            lines.append(f"Error: {html.escape(result.error or '')}")
        lines.append("")
        lines.append(f"{self._now_str()} UTC")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Notification dispatch
    # ------------------------------------------------------------------

    async def _send_log(self, message: str, silent: bool = True) -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_log(message, silent=silent)
            except Exception as e:
                logger.error("Notifier send_log failed: %s", e)

    async def _send_alert(self, message: str, subject: str = "") -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_alert(message, subject=subject)
            except Exception as e:
                logger.error("Notifier send_alert failed: %s", e)

    async def _report(self, result: LiquidationResult) -> None:
        position = self.registry.get(result.position_id)
        if result.state is LiquidationState.EXECUTED:
            await self._send_alert(
                self._build_result_message(result, position),
                subject="✅ Liquidation executed",
            )
        elif result.state is LiquidationState.FAILED:
            await self._send_alert(
                self._build_result_message(result, position),
                subject="❌ Liquidation failed",
            )

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    async def discover_all(self) -> int:
        return await self.registry.discover_all()

    async def refresh_all(self, quote: PriceQuote) -> int:
        return await self.registry.refresh_all(quote)

    def eligible_for_liquidation(self) -> list[Position]:
        return self.registry.eligible_for_liquidation()

    def stats(self) -> PositionStats:
        return self.registry.stats()

    async def liquidate(self, position: Position, quote: PriceQuote) -> LiquidationResult:
        result = await self.orchestrator.liquidate(position, quote)
        await self._report(result)
        return result

    # ------------------------------------------------------------------
    # Core workflows
    # ------------------------------------------------------------------

    async def fetch_fresh_quote(self) -> PriceQuote | None:
        """Fetch a quote, or None when the feed fails or the quote is stale."""
        try:
            quote = await self._price_feed.fetch_quote()
        except FeedUnavailable as e:
            logger.error("Price feed unavailable, skipping tick: %s", e)
            return None

        if not self._price_feed.is_fresh(quote):
            logger.warning(
                "Stale price quote (data timestamp %d), skipping tick",
                quote.data_timestamp,
            )
            return None
        return quote

    async def check_opportunities(self) -> list[LiquidationResult]:
        """One price tick: refresh ratios and attempt eligible liquidations."""
        quote = await self.fetch_fresh_quote()
        if quote is None:
            return []

        await self.registry.refresh_all(quote)
        eligible = self.registry.eligible_for_liquidation()

        results: list[LiquidationResult] = []
        if eligible:
            logger.info(
                "Checking %d liquidatable positions at ETH $%.2f",
                len(eligible),
                to_numeric(quote),
            )
            results = await self.orchestrator.process(eligible, quote)
            for result in results:
                await self._report(result)

        stats = self.registry.stats()
        logger.info(
            "Positions: %d total, %d active, %d liquidatable, avg ratio %.2f%%",
            stats.total,
            stats.active,
            stats.eligible,
            stats.average_ratio,
        )
        return results

    async def full_resync(self) -> None:
        """Slow tick: re-read holdings and pick up positions missed by events."""
        await self.registry.resync_all()
        try:
            added = await self.registry.discover_missing()
            if added:
                logger.info("Resync discovered %d new positions", added)
        except Exception as e:
            logger.error("Could not check for missing positions: %s", e)

        await self._send_log(self._build_stats_message(self.registry.stats()))

    async def poll_events(self) -> int:
        """Add positions created since the last polled block.

        Logs are requested in windows of at most ``event_block_range``
        blocks. The cursor advances after each window, so a failure part
        way through resumes from the last completed window.
        """
        if self._events is None:
            raise RuntimeError("Monitor.setup() has not been called")

        head = await self._events.latest_block()
        if self._last_event_block is None:
            self._last_event_block = head
            return 0

        window = self._config.monitor.event_block_range
        seen = 0
        while self._last_event_block < head:
            start = self._last_event_block + 1
            end = min(start + window - 1, head)
            events = await self._events.position_created_events(start, end)
            for event in events:
                logger.info(
                    "New position %d created by %s", event.position_id, event.owner
                )
                await self.registry.add_one(event.position_id)
            self._last_event_block = end
            seen += len(events)
        return seen

    async def _run_periodic(
        self,
        name: str,
        interval: float,
        fn: Callable[[], Awaitable[object]],
        initial_delay: bool = False,
    ) -> None:
        if initial_delay and await self._wait_or_stop(interval):
            return
        while not self._stopping.is_set():
            try:
                await fn()
            except Exception as e:
                logger.error("Error in %s loop: %s", name, e)
            if await self._wait_or_stop(interval):
                return

    async def _wait_or_stop(self, interval: float) -> bool:
        """Sleep for ``interval``; return True if stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=interval)
        except asyncio.TimeoutError:
            return False
        return True

    async def check_once(self) -> list[LiquidationResult]:
        """Discover everything once and run a single opportunity scan."""
        await self.setup()
        await self.discover_all()
        return await self.check_opportunities()

    async def run_continuous(self) -> None:
        """Run until :meth:`stop` or :meth:`request_stop` is called.

        A stop requested while startup discovery is still running is honored
        once discovery returns; the loops are then never started.
        """
        mon = self._config.monitor
        self._stopping.clear()
        await self.setup()
        await self.discover_all()
        if self._stopping.is_set():
            logger.info("Stop requested during startup, not starting loops")
            return

        try:
            await self.poll_events()
        except Exception as e:
            logger.error("Could not read the current block: %s", e)

        self._tasks = [
            asyncio.create_task(
                self._run_periodic(
                    "opportunity scan", mon.price_interval_seconds, self.check_opportunities
                )
            ),
            asyncio.create_task(
                self._run_periodic(
                    "position resync",
                    mon.refresh_interval_seconds,
                    self.full_resync,
                    initial_delay=True,
                )
            ),
            asyncio.create_task(
                self._run_periodic(
                    "event watcher",
                    mon.event_poll_interval_seconds,
                    self.poll_events,
                    initial_delay=True,
                )
            ),
        ]
        logger.info(
            "Monitoring started: price every %ds, resync every %ds, events every %ds",
            mon.price_interval_seconds,
            mon.refresh_interval_seconds,
            mon.event_poll_interval_seconds,
        )
        await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Monitoring stopped")

    async def stop(self, timeout: float = 30.0) -> None:
        """Stop all loops, letting in-flight work finish up to ``timeout``."""
        logger.info("Stopping bot...")
        self._stopping.set()
        if not self._tasks:
            return
        _, pending = await asyncio.wait(self._tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        self._tasks = []

    def request_stop(self) -> None:
        """Ask every loop to exit after its current iteration.

        Safe to call from a signal handler; :meth:`run_continuous` returns
        once the loops have finished.
        """
        logger.info("Stop requested")
        self._stopping.set()

"""Command-line interface for the USPD liquidator."""
from __future__ import annotations

import argparse
import asyncio
import signal
import sys
import time

from .config import load_config
from .logging_setup import configure_logging
from .oracles import UspdPriceFeed, to_numeric
from .services import Monitor


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="uspd-liquidator",
        description="USPD stabilizer position liquidator",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    run_parser = sub.add_parser("run", help="Continuous monitoring and liquidation")
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Evaluate opportunities without sending transactions",
    )
    sub.add_parser("check", help="Single discovery and opportunity scan (dry run)")
    sub.add_parser("price", help="Fetch and show the current signed price")

    return parser


async def _run_forever(monitor: Monitor) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, monitor.request_stop)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops
            pass
    await monitor.run_continuous()


async def _check(monitor: Monitor) -> None:
    await monitor.check_once()
    stats = monitor.stats()
    print(
        f"Positions: {stats.total} total, {stats.active} active, "
        f"{stats.eligible} liquidatable, avg ratio {stats.average_ratio:.2f}%"
    )
    for position in monitor.eligible_for_liquidation():
        print(
            f"  #{position.position_id}  ratio {position.collateralization_ratio:.2f}%"
            f"  < {position.liquidation_threshold:.2f}%  owner {position.owner}"
        )


async def _price(feed: UspdPriceFeed) -> None:
    quote = await feed.fetch_quote()
    age = time.time() - quote.data_timestamp / 1000
    print(f"{quote.asset_pair or 'ETH/USD'}: ${to_numeric(quote):,.2f}")
    print(f"Age: {age:.1f}s ({'fresh' if feed.is_fresh(quote) else 'STALE'})")


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)

    if args.command == "run":
        await _run_forever(Monitor(config, dry_run=True if args.dry_run else None))
    elif args.command == "check":
        await _check(Monitor(config, dry_run=True))
    elif args.command == "price":
        await _price(UspdPriceFeed(config.price_feed))
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    asyncio.run(_run(args))

#!/usr/bin/env python3
"""Token Price Oracle.

Resolves liquid-staking token exchange rates from on-chain and HTTP
providers, falls back to secondary sources or the last known rate, and pushes
fresh rates to the LiquidTokenManager ledger once they go stale.

Configure via CLI arguments or env vars. Asset sources are read from a JSON
file (see SourceConfigLoader).
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from .src.AssetPriceConfig import DEFAULT_UPDATE_INTERVAL
from .src.BatchScheduler import DEFAULT_MAX_CONCURRENCY
from .src.ContractUtility import ContractUtility
from .src.GasTracker import GasTracker
from .src.Ledger import ContractLedger, Ledger, LocalLedger
from .src.PriceEngine import PriceEngine
from .src.RemoteCaller import HttpRemoteCaller, RoutingRemoteCaller, Web3RemoteCaller
from .src.SourceConfigLoader import SourceEntry, load_sources
from .src.SourceRegistry import ConfigurationError
from .src.providers import get_available_providers

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def parse_bool(value: str | None) -> bool:
    """Parse a boolean env var value ("1", "true", "yes", "on")."""
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI parser. Every option falls back to an env var."""
    kinds = ", ".join(k.value for k in get_available_providers())

    parser = argparse.ArgumentParser(
        description="Token Price Oracle: liquid-staking rate resolution and ledger updates",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Supported source kinds:
  {kinds}

Examples:
  # Dry run against a local node with the in-memory ledger
  python -m token_oracle.main --sources-file sources.json --once

  # Push rates to a deployed LiquidTokenManager every 12 hours
  python -m token_oracle.main --network mainnet \\
      --sources-file sources.json --ledger-address 0x...

Environment variables (CLI args take precedence):
  NETWORK, RPC_URL, PRIVATE_KEY, SOURCES_FILE, LEDGER_ADDRESS,
  UPDATE_INTERVAL_HOURS, CHECK_PERIOD, FETCH_TIMEOUT, MAX_CONCURRENCY,
  VOLATILITY_THRESHOLD_BYPASS, GAS_TRACKER_PATH, UPDATER_ADDRESS
""",
    )

    parser.add_argument(
        "--network",
        type=str,
        help="Network to connect to (mainnet, holesky, local)",
        default=os.environ.get("NETWORK") or "local",
    )

    parser.add_argument(
        "--rpc-url",
        dest="rpc_url",
        type=str,
        help="RPC URL, overriding the network default",
        default=os.environ.get("RPC_URL"),
    )

    parser.add_argument(
        "--sources-file",
        dest="sources_file",
        type=str,
        help="JSON file with per-asset source definitions",
        default=os.environ.get("SOURCES_FILE"),
    )

    parser.add_argument(
        "--ledger-address",
        dest="ledger_address",
        type=str,
        help="LiquidTokenManager address (in-memory ledger if omitted)",
        default=os.environ.get("LEDGER_ADDRESS"),
    )

    parser.add_argument(
        "--update-interval-hours",
        dest="update_interval_hours",
        type=float,
        help="Hours before prices are considered stale (default: 12)",
        default=float(
            os.environ.get("UPDATE_INTERVAL_HOURS") or DEFAULT_UPDATE_INTERVAL / 3600
        ),
    )

    parser.add_argument(
        "--check-period",
        dest="check_period",
        type=float,
        help="Seconds between staleness checks (default: 60)",
        default=float(os.environ.get("CHECK_PERIOD") or "60"),
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Timeout for individual provider lookups in seconds (default: 10.0)",
        default=float(os.environ.get("FETCH_TIMEOUT") or "10.0"),
    )

    parser.add_argument(
        "--max-concurrency",
        dest="max_concurrency",
        type=int,
        help=f"Concurrent lookups per batch (default: {DEFAULT_MAX_CONCURRENCY})",
        default=int(os.environ.get("MAX_CONCURRENCY") or DEFAULT_MAX_CONCURRENCY),
    )

    parser.add_argument(
        "--volatility-bypass",
        dest="volatility_bypass",
        action="store_true",
        help="Skip the volatility pre-check before submitting rates",
        default=parse_bool(os.environ.get("VOLATILITY_THRESHOLD_BYPASS")),
    )

    parser.add_argument(
        "--gas-tracker-path",
        dest="gas_tracker_path",
        type=str,
        help="JSON file to persist gas usage statistics to",
        default=os.environ.get("GAS_TRACKER_PATH"),
    )

    parser.add_argument(
        "--updater-address",
        dest="updater_address",
        type=str,
        help="Operator account (defaults to the signing account)",
        default=os.environ.get("UPDATER_ADDRESS"),
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single update cycle and exit",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    return parser


def build_ledger(
    args: argparse.Namespace,
    utility: ContractUtility,
    entries: list[SourceEntry],
    gas_tracker: GasTracker | None,
) -> Ledger:
    """Create the contract ledger, or an in-memory one seeded from ``entries``."""
    if args.ledger_address:
        return ContractLedger(
            utility.w3,
            args.ledger_address,
            gas_tracker=gas_tracker,
            volatility_threshold_bypass=args.volatility_bypass,
        )

    ledger = LocalLedger(volatility_threshold_bypass=args.volatility_bypass)
    for entry in entries:
        ledger.register_asset(
            entry.asset_id,
            decimals=entry.decimals,
            volatility_threshold=entry.volatility_threshold,
        )
    return ledger


async def run_oracle(args: argparse.Namespace, entries: list[SourceEntry]) -> None:
    """Build the engine, configure every asset and run the update loop."""
    utility = ContractUtility(args.network, rpc_url=args.rpc_url)
    caller = RoutingRemoteCaller(
        web3_caller=Web3RemoteCaller(utility.w3),
        http_caller=HttpRemoteCaller(timeout=args.fetch_timeout),
    )

    gas_tracker = None
    if args.gas_tracker_path:
        gas_tracker = GasTracker.load_from_file(Path(args.gas_tracker_path))

    operator = args.updater_address or (utility.account.address if utility.account else None)
    if not operator:
        raise ConfigurationError("No operator account: set UPDATER_ADDRESS or PRIVATE_KEY")

    engine = PriceEngine(
        caller,
        build_ledger(args, utility, entries, gas_tracker),
        admin=operator,
        update_interval=args.update_interval_hours * 3600,
        call_timeout=args.fetch_timeout,
        max_concurrency=args.max_concurrency,
        check_period=args.check_period,
    )

    for entry in entries:
        await engine.configure(entry.asset_id, entry.config, caller=operator)

    try:
        if args.once:
            await engine.run_once(operator)
        else:
            await engine.run(operator)
    finally:
        await HttpRemoteCaller.close_shared_client()
        if gas_tracker is not None:
            gas_tracker.log_stats()


def main() -> None:
    """Main entry point for the Token Price Oracle CLI."""
    parser = build_parser()
    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Validate arguments
    if not args.sources_file:
        parser.error("--sources-file (or SOURCES_FILE) is required")

    if args.update_interval_hours <= 0:
        parser.error("--update-interval-hours must be positive")

    if args.check_period < 1:
        parser.error("--check-period must be at least 1 second")

    if args.max_concurrency < 1:
        parser.error("--max-concurrency must be at least 1")

    try:
        entries = load_sources(args.sources_file)
    except ConfigurationError as e:
        parser.error(str(e))

    # Log configuration
    logger.info("=" * 60)
    logger.info("Token Price Oracle")
    logger.info("=" * 60)
    logger.info(f"Network:           {args.network}")
    logger.info(f"Ledger:            {args.ledger_address or 'in-memory'}")
    logger.info(f"Assets:            {len(entries)}")
    logger.info(f"Update Interval:   {args.update_interval_hours}h")
    logger.info(f"Check Period:      {args.check_period}s")
    logger.info(f"Fetch Timeout:     {args.fetch_timeout}s")
    logger.info(f"Max Concurrency:   {args.max_concurrency}")
    logger.info(f"Volatility Check:  {'bypassed' if args.volatility_bypass else 'enabled'}")
    logger.info("=" * 60)

    try:
        asyncio.run(run_oracle(args, entries))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

"""Command-line interface for the collateralized-debt engine."""
from __future__ import annotations

import argparse
import asyncio
import sys
from decimal import Decimal

from .config import AppConfig, load_config
from .constants import NO_DEBT_HEALTH_FACTOR
from .engine import Valuation, max_total_debt
from .errors import EngineError, PriceUnavailableError
from .logging_setup import configure_logging
from .models import ScenarioReport
from .registry import AssetRegistry
from .services import ScenarioRunner, build_price_source, load_scenario, to_base_units


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="cdp-engine",
        description="Collateralized-debt engine tools",
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

    sub.add_parser("prices", help="Show current prices of registered collateral")

    quote_parser = sub.add_parser(
        "quote", help="Value a hypothetical deposit and its max mintable debt"
    )
    quote_parser.add_argument("asset", help="Collateral asset id, e.g. WETH")
    quote_parser.add_argument("amount", help="Quantity in whole units, e.g. 1.5")

    replay_parser = sub.add_parser(
        "replay", help="Replay a YAML scenario against an in-memory engine"
    )
    replay_parser.add_argument("scenario", help="Path to the scenario YAML file")

    return parser


def format_units(value: int, decimals: int = 18, places: int = 4) -> str:
    """Render an integer amount in base units as a grouped decimal string."""
    if value == NO_DEBT_HEALTH_FACTOR:
        return "∞"
    scaled = Decimal(value).scaleb(-decimals)
    return f"{scaled:,.{places}f}"


def _build_valuation(config: AppConfig) -> Valuation:
    registry = AssetRegistry.from_mapping(config.price_feeds)
    return Valuation(
        registry,
        build_price_source(config.price_oracle),
        config.engine.max_price_age_seconds,
    )


async def _show_prices(config: AppConfig) -> int:
    valuation = _build_valuation(config)
    status = 0
    for asset_id, collateral in config.collateral.items():
        try:
            price = await valuation.price_of(asset_id)
        except PriceUnavailableError as e:
            print(f"{asset_id:<10} unavailable ({e})")
            status = 1
            continue
        print(f"{asset_id:<10} ${format_units(price)}  feed {collateral.price_feed}")
    return status


async def _quote(config: AppConfig, asset_id: str, amount: str) -> int:
    valuation = _build_valuation(config)
    quantity = to_base_units(amount)
    value = await valuation.value_of(asset_id, quantity)
    ceiling = max_total_debt(
        value, config.engine.liquidation_threshold, config.engine.min_health_factor
    )
    print(f"Collateral: {format_units(quantity)} {asset_id}")
    print(f"Value:      ${format_units(value, places=2)}")
    print(f"Max debt:   {format_units(ceiling, places=2)}")
    return 0


def print_report(report: ScenarioReport) -> None:
    for result in report.results:
        outcome = "ok" if result.ok else f"FAILED {result.error}"
        marker = "" if result.matched else f"  (expected {result.expected})"
        print(f"[{result.step:>3}] {result.action:<18} {outcome}{marker}")

    if report.accounts:
        print()
    for account in report.accounts:
        hf = format_units(account.health_factor, places=4)
        print(
            f"{account.account}: debt {format_units(account.total_debt, places=2)}"
            f" · collateral ${format_units(account.collateral_value, places=2)}"
            f" · HF {hf}"
            f" · mintable {format_units(account.max_mintable, places=2)}"
        )
        for asset_id, quantity in account.collateral:
            print(f"    {asset_id}: {format_units(quantity)}")


async def _replay(config: AppConfig, path: str) -> int:
    scenario = load_scenario(path)
    report = await ScenarioRunner(config).run(scenario)
    print_report(report)
    return 0 if report.all_matched else 1


async def _run(args: argparse.Namespace) -> int:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)

    if args.command == "prices":
        return await _show_prices(config)
    if args.command == "quote":
        return await _quote(config, args.asset, args.amount)
    if args.command == "replay":
        return await _replay(config, args.scenario)

    build_parser().print_help()
    return 1


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        status = asyncio.run(_run(args))
    except EngineError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(status)


if __name__ == "__main__":
    main()

"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from cdp_engine.config import (
    AppConfig,
    CollateralConfig,
    EngineConfig,
    FixedPriceConfig,
    PriceOracleConfig,
    PythConfig,
)
from cdp_engine.engine import CdpEngine
from cdp_engine.oracles import FixedPriceSource
from cdp_engine.registry import AssetRegistry
from cdp_engine.tokens import InMemoryCollateralToken, InMemoryDebtToken

NOW = 1_700_000_000.0

ETH_FEED = "eth-usd"
BTC_FEED = "btc-usd"
ETH_PRICE = 2000 * 10**8  # $2000, 8-decimal feed
BTC_PRICE = 1000 * 10**8  # $1000, 8-decimal feed

USER = "alice"
LIQUIDATOR = "bob"


def units(amount: int | float) -> int:
    """Whole tokens to 18-decimal base units."""
    if isinstance(amount, int):
        return amount * 10**18
    return int(round(amount * 10**6)) * 10**12


COLLATERAL_AMOUNT = units(10)
AMOUNT_TO_MINT = units(100)
COLLATERAL_TO_COVER = units(20)


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock():
    return lambda: NOW


@pytest.fixture()
def registry() -> AssetRegistry:
    return AssetRegistry.from_mapping({"WETH": ETH_FEED, "WBTC": BTC_FEED})


@pytest.fixture()
def price_source(clock) -> FixedPriceSource:
    source = FixedPriceSource(clock=clock)
    source.set_price(ETH_FEED, ETH_PRICE)
    source.set_price(BTC_FEED, BTC_PRICE)
    return source


@pytest.fixture()
def weth() -> InMemoryCollateralToken:
    token = InMemoryCollateralToken("WETH")
    token.mint(USER, COLLATERAL_AMOUNT)
    token.mint(LIQUIDATOR, COLLATERAL_TO_COVER)
    return token


@pytest.fixture()
def wbtc() -> InMemoryCollateralToken:
    token = InMemoryCollateralToken("WBTC")
    token.mint(USER, COLLATERAL_AMOUNT)
    return token


@pytest.fixture()
def debt_token() -> InMemoryDebtToken:
    return InMemoryDebtToken()


@pytest.fixture()
def engine(
    registry: AssetRegistry,
    price_source: FixedPriceSource,
    weth: InMemoryCollateralToken,
    wbtc: InMemoryCollateralToken,
    debt_token: InMemoryDebtToken,
    clock,
) -> CdpEngine:
    return CdpEngine(
        registry,
        price_source,
        {"WETH": weth, "WBTC": wbtc},
        debt_token,
        config=EngineConfig(),
        clock=clock,
    )


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_app_config() -> AppConfig:
    return AppConfig(
        engine=EngineConfig(),
        collateral={
            "WETH": CollateralConfig(price_feed=ETH_FEED),
            "WBTC": CollateralConfig(price_feed=BTC_FEED),
        },
        price_oracle=PriceOracleConfig(
            provider="fixed",
            pyth=PythConfig(hermes_url="https://hermes.example.com"),
            fixed_prices={
                ETH_FEED: FixedPriceConfig(price=ETH_PRICE, decimals=8),
                BTC_FEED: FixedPriceConfig(price=BTC_PRICE, decimals=8),
            },
        ),
    )


SAMPLE_YAML = textwrap.dedent("""\
    engine:
      liquidation_threshold: 50
      liquidation_bonus: 10
      max_price_age_seconds: 3600
    collateral:
      WETH:
        price_feed: eth-usd
      WBTC:
        price_feed: btc-usd
    price_oracle:
      provider: fixed
      pyth:
        hermes_url: "https://hermes.example.com"
        timeout: 5
      fixed_prices:
        eth-usd: {price: 200000000000, decimals: 8}
        btc-usd: {price: 100000000000, decimals: 8}
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file

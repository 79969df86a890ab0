"""Builds engines and price sources from configuration."""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ..config import AppConfig, PriceOracleConfig
from ..engine import CdpEngine
from ..interfaces.price_source import PriceSource
from ..oracles import FixedPriceSource, PythPriceSource
from ..registry import AssetRegistry
from ..tokens import InMemoryCollateralToken, InMemoryDebtToken

logger = logging.getLogger(__name__)

# Registry of price source factories keyed by provider name.
_PRICE_SOURCE_FACTORIES: dict[str, Any] = {
    "pyth": lambda cfg: PythPriceSource(cfg.pyth),
    "fixed": lambda cfg: FixedPriceSource(cfg.fixed_prices),
}


def build_price_source(config: PriceOracleConfig) -> PriceSource:
    factory = _PRICE_SOURCE_FACTORIES.get(config.provider)
    if factory is None:
        raise ValueError(f"No price source factory for provider '{config.provider}'")
    return factory(config)


@dataclass
class InMemoryDeployment:
    """An engine wired to in-memory token collaborators."""

    engine: CdpEngine
    collateral_tokens: dict[str, InMemoryCollateralToken]
    debt_token: InMemoryDebtToken
    price_source: PriceSource


def deploy_in_memory(
    config: AppConfig,
    price_source: PriceSource | None = None,
    clock: Callable[[], float] = time.time,
) -> InMemoryDeployment:
    """Build an engine over ``config``'s collateral with in-memory tokens."""
    registry = AssetRegistry.from_mapping(config.price_feeds)
    if price_source is None:
        price_source = build_price_source(config.price_oracle)

    collateral_tokens = {
        asset_id: InMemoryCollateralToken(asset_id) for asset_id in registry.assets
    }
    debt_token = InMemoryDebtToken()
    engine = CdpEngine(
        registry,
        price_source,
        collateral_tokens,
        debt_token,
        config=config.engine,
        clock=clock,
    )
    logger.info(
        "Deployed in-memory engine with %d collateral asset(s)", len(registry)
    )
    return InMemoryDeployment(
        engine=engine,
        collateral_tokens=collateral_tokens,
        debt_token=debt_token,
        price_source=price_source,
    )

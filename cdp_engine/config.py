"""Configuration loader: reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .constants import (
    DEFAULT_FEED_DECIMALS,
    DEFAULT_MAX_PRICE_AGE_SECONDS,
    LIQUIDATION_BONUS,
    LIQUIDATION_PRECISION,
    LIQUIDATION_THRESHOLD,
    MIN_HEALTH_FACTOR,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineConfig:
    liquidation_threshold: int = LIQUIDATION_THRESHOLD
    liquidation_bonus: int = LIQUIDATION_BONUS
    min_health_factor: int = MIN_HEALTH_FACTOR
    max_price_age_seconds: int = DEFAULT_MAX_PRICE_AGE_SECONDS


@dataclass(frozen=True)
class CollateralConfig:
    price_feed: str = ""


@dataclass(frozen=True)
class FixedPriceConfig:
    price: int = 0
    decimals: int = DEFAULT_FEED_DECIMALS


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    timeout: int = 10


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "pyth"
    pyth: PythConfig = field(default_factory=PythConfig)
    fixed_prices: dict[str, FixedPriceConfig] = field(default_factory=dict)


@dataclass(frozen=True)
class AppConfig:
    engine: EngineConfig = field(default_factory=EngineConfig)
    collateral: dict[str, CollateralConfig] = field(default_factory=dict)
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)

    @property
    def price_feeds(self) -> dict[str, str]:
        """Asset id to price feed id, in configuration order."""
        return {asset: cfg.price_feed for asset, cfg in self.collateral.items()}


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML to dataclass builders
# ---------------------------------------------------------------------------


def _build_engine(raw: dict[str, Any]) -> EngineConfig:
    return EngineConfig(
        liquidation_threshold=int(raw.get("liquidation_threshold", LIQUIDATION_THRESHOLD)),
        liquidation_bonus=int(raw.get("liquidation_bonus", LIQUIDATION_BONUS)),
        min_health_factor=int(raw.get("min_health_factor", MIN_HEALTH_FACTOR)),
        max_price_age_seconds=int(
            raw.get("max_price_age_seconds", DEFAULT_MAX_PRICE_AGE_SECONDS)
        ),
    )


def _build_collateral(raw: dict[str, Any]) -> dict[str, CollateralConfig]:
    collateral: dict[str, CollateralConfig] = {}
    for asset_id, cfg in raw.items():
        if isinstance(cfg, str):
            collateral[asset_id] = CollateralConfig(price_feed=cfg)
        else:
            collateral[asset_id] = CollateralConfig(
                price_feed=str((cfg or {}).get("price_feed", ""))
            )
    return collateral


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    pyth_raw = raw.get("pyth", {}) or {}
    fixed_raw = raw.get("fixed_prices", {}) or {}
    fixed_prices: dict[str, FixedPriceConfig] = {}
    for feed_id, cfg in fixed_raw.items():
        fixed_prices[feed_id] = FixedPriceConfig(
            price=int(cfg.get("price", 0)),
            decimals=int(cfg.get("decimals", DEFAULT_FEED_DECIMALS)),
        )
    return PriceOracleConfig(
        provider=raw.get("provider", "pyth"),
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            timeout=int(pyth_raw.get("timeout", PythConfig.timeout)),
        ),
        fixed_prices=fixed_prices,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        engine=_build_engine(raw.get("engine", {}) or {}),
        collateral=_build_collateral(raw.get("collateral", {}) or {}),
        price_oracle=_build_price_oracle(raw.get("price_oracle", {}) or {}),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.collateral:
        raise ValueError("At least one collateral asset must be configured")

    engine = cfg.engine
    if not 0 < engine.liquidation_threshold <= LIQUIDATION_PRECISION:
        raise ValueError(
            f"liquidation_threshold must be in (0, {LIQUIDATION_PRECISION}]"
        )
    if not 0 <= engine.liquidation_bonus < LIQUIDATION_PRECISION:
        raise ValueError(
            f"liquidation_bonus must be in [0, {LIQUIDATION_PRECISION})"
        )
    if engine.min_health_factor <= 0:
        raise ValueError("min_health_factor must be positive")
    if engine.max_price_age_seconds <= 0:
        raise ValueError("max_price_age_seconds must be positive")

    for asset_id, collateral in cfg.collateral.items():
        if not collateral.price_feed:
            raise ValueError(f"Collateral '{asset_id}' has no price feed")

    provider = cfg.price_oracle.provider
    if provider not in ("pyth", "fixed"):
        raise ValueError(f"Unknown price oracle provider '{provider}'")

    if provider == "fixed":
        for asset_id, collateral in cfg.collateral.items():
            if collateral.price_feed not in cfg.price_oracle.fixed_prices:
                raise ValueError(
                    f"Collateral '{asset_id}' references unpriced feed "
                    f"'{collateral.price_feed}'"
                )

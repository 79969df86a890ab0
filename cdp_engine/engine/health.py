"""Health factor derivation."""
from __future__ import annotations

from ..constants import (
    LIQUIDATION_PRECISION,
    LIQUIDATION_THRESHOLD,
    MIN_HEALTH_FACTOR,
    NO_DEBT_HEALTH_FACTOR,
    PRECISION,
)
from ..models import PositionSnapshot
from .valuation import Valuation


def calculate_health_factor(
    total_debt: int,
    collateral_value: int,
    liquidation_threshold: int = LIQUIDATION_THRESHOLD,
) -> int:
    """Calculate health factor at 18 decimals.

    health_factor = (collateral * threshold% ) * PRECISION / debt

    A position without debt is maximally healthy.
    """
    if total_debt == 0:
        return NO_DEBT_HEALTH_FACTOR
    adjusted = collateral_value * liquidation_threshold // LIQUIDATION_PRECISION
    return adjusted * PRECISION // total_debt


def max_total_debt(
    collateral_value: int,
    liquidation_threshold: int = LIQUIDATION_THRESHOLD,
    min_health_factor: int = MIN_HEALTH_FACTOR,
) -> int:
    """Largest debt ``collateral_value`` can back at ``min_health_factor``."""
    adjusted = collateral_value * liquidation_threshold // LIQUIDATION_PRECISION
    return adjusted * PRECISION // min_health_factor


class HealthFactorCalculator:
    """Health factor of ledger positions, priced through a ``Valuation``."""

    def __init__(
        self,
        valuation: Valuation,
        liquidation_threshold: int = LIQUIDATION_THRESHOLD,
        min_health_factor: int = MIN_HEALTH_FACTOR,
    ) -> None:
        self._valuation = valuation
        self.liquidation_threshold = liquidation_threshold
        self.min_health_factor = min_health_factor

    async def health_factor(self, position: PositionSnapshot) -> int:
        # No debt needs no prices
        if position.debt == 0:
            return NO_DEBT_HEALTH_FACTOR
        collateral_value = await self._valuation.total_collateral_value(position)
        return calculate_health_factor(
            position.debt, collateral_value, self.liquidation_threshold
        )

    async def is_healthy(self, position: PositionSnapshot) -> bool:
        return await self.health_factor(position) >= self.min_health_factor

    def max_mintable(self, collateral_value: int, debt: int) -> int:
        """Additional debt that keeps the position at or above the minimum."""
        ceiling = max_total_debt(
            collateral_value, self.liquidation_threshold, self.min_health_factor
        )
        return max(0, ceiling - debt)

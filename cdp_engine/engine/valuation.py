"""Conversion between asset quantities and unit-of-account values."""
from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..constants import PRECISION
from ..errors import PriceUnavailableError
from ..interfaces.price_source import PriceSource
from ..models import PositionSnapshot, PriceQuote
from ..registry import AssetRegistry

logger = logging.getLogger(__name__)


def scale_price(quote: PriceQuote) -> int:
    """Lift a feed price to ``PRECISION`` (18 decimals).

    Feeds with fewer decimals are multiplied up, feeds with more are divided
    down (truncating).
    """
    if quote.decimals <= 18:
        return quote.price * 10 ** (18 - quote.decimals)
    return quote.price // 10 ** (quote.decimals - 18)


class Valuation:
    """Converts collateral quantities to and from 18-decimal USD values.

    All quantities and values are integers scaled by ``PRECISION``:

        value    = price18 * quantity // PRECISION
        quantity = value * PRECISION // price18

    A quote older than ``max_price_age_seconds`` (or dated that far in the
    future) is treated as unavailable.
    """

    def __init__(
        self,
        registry: AssetRegistry,
        price_source: PriceSource,
        max_price_age_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._source = price_source
        self._max_age = max_price_age_seconds
        self._clock = clock

    async def price_of(self, asset_id: str) -> int:
        """Current price of one whole unit of ``asset_id`` at 18 decimals."""
        feed_id = self._registry.price_feed_of(asset_id)
        try:
            quote = await self._source.get_price(feed_id)
        except PriceUnavailableError:
            raise
        except Exception as e:
            raise PriceUnavailableError(
                f"Price source failed for {asset_id} ({feed_id}): {e}"
            ) from e

        if quote.price <= 0 or quote.decimals < 0:
            raise PriceUnavailableError(
                f"Invalid price for {asset_id}: {quote.price} (1e{quote.decimals})"
            )

        age = self._clock() - quote.published_at
        if abs(age) > self._max_age:
            logger.warning(
                "Stale price for %s: %.0fs old (max %ds)", asset_id, age, self._max_age
            )
            raise PriceUnavailableError(
                f"Stale price for {asset_id}: {age:.0f}s old (max {self._max_age}s)"
            )

        return scale_price(quote)

    async def value_of(self, asset_id: str, quantity: int) -> int:
        price = await self.price_of(asset_id)
        return price * quantity // PRECISION

    async def quantity_from_value(self, asset_id: str, value: int) -> int:
        price = await self.price_of(asset_id)
        return value * PRECISION // price

    async def total_collateral_value(self, position: PositionSnapshot) -> int:
        """Sum of ``value_of`` over every registered asset.

        Every registered asset is priced, including ones the account does not
        hold; a zero balance contributes zero.
        """
        total = 0
        for asset_id in self._registry.assets:
            total += await self.value_of(asset_id, position.collateral_of(asset_id))
        return total

"""In-memory price source with manually set quotes."""
from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping

from ..config import FixedPriceConfig
from ..constants import DEFAULT_FEED_DECIMALS
from ..errors import PriceUnavailableError
from ..models import PriceQuote

logger = logging.getLogger(__name__)


class FixedPriceSource:
    """Price table keyed by feed id, updated explicitly.

    Quotes set without a timestamp are stamped with the current clock time.
    """

    def __init__(
        self,
        prices: Mapping[str, FixedPriceConfig] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._clock = clock
        self._quotes: dict[str, PriceQuote] = {}
        for feed_id, cfg in (prices or {}).items():
            self.set_price(feed_id, cfg.price, decimals=cfg.decimals)

    def set_price(
        self,
        feed_id: str,
        price: int,
        decimals: int = DEFAULT_FEED_DECIMALS,
        published_at: float | None = None,
    ) -> PriceQuote:
        quote = PriceQuote(
            price=price,
            decimals=decimals,
            published_at=self._clock() if published_at is None else published_at,
        )
        self._quotes[feed_id] = quote
        logger.debug("Price for %s set to %d (1e%d)", feed_id, price, decimals)
        return quote

    def remove_price(self, feed_id: str) -> None:
        self._quotes.pop(feed_id, None)

    async def get_price(self, feed_id: str) -> PriceQuote:
        try:
            return self._quotes[feed_id]
        except KeyError:
            raise PriceUnavailableError(f"No price for feed {feed_id!r}") from None

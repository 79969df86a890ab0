"""Price source protocol: price feed abstraction."""
from typing import Protocol

from ..models import PriceQuote


class PriceSource(Protocol):
    """Abstract interface for fetching the latest price of a feed.

    Implementations raise ``PriceUnavailableError`` when no price exists.
    """

    async def get_price(self, feed_id: str) -> PriceQuote: ...

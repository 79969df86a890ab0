"""Pyth Network price source."""
from __future__ import annotations

import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ..config import PythConfig
from ..errors import PriceUnavailableError
from ..models import PriceQuote

logger = logging.getLogger(__name__)


def _normalize_feed_id(feed_id: str) -> str:
    """Hermes returns feed ids lower-case and without the ``0x`` prefix."""
    feed_id = feed_id.lower()
    return feed_id[2:] if feed_id.startswith("0x") else feed_id


def parse_price_item(item: dict[str, Any]) -> PriceQuote:
    """Convert one entry of a Hermes ``parsed`` list into a quote.

    Hermes reports ``price`` as an integer string scaled by ``10**expo``
    (``expo`` is negative for fractional prices).
    """
    price_data = item.get("price") or {}
    try:
        price_raw = int(price_data["price"])
        expo = int(price_data["expo"])
        published_at = float(price_data["publish_time"])
    except (KeyError, TypeError, ValueError) as e:
        raise PriceUnavailableError(
            f"Malformed Pyth price for feed {item.get('id')!r}: {e}"
        ) from e

    if expo > 0:
        return PriceQuote(
            price=price_raw * 10**expo, decimals=0, published_at=published_at
        )
    return PriceQuote(price=price_raw, decimals=-expo, published_at=published_at)


class PythPriceSource:
    """Fetch latest prices from the Pyth Hermes REST API."""

    def __init__(self, config: PythConfig) -> None:
        self.hermes_url = config.hermes_url
        self.timeout = config.timeout

    async def _fetch_parsed(self, feed_ids: list[str]) -> list[dict[str, Any]]:
        query_params = "&".join([f"ids[]={fid}" for fid in feed_ids])
        url = f"{self.hermes_url}?{query_params}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    url, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as response:
                    if response.status != 200:
                        logger.error(
                            "Error fetching prices from Pyth: HTTP %s", response.status
                        )
                        raise PriceUnavailableError(
                            f"Pyth returned HTTP {response.status}"
                        )
                    data = await response.json()
        except PriceUnavailableError:
            raise
        except Exception as e:
            logger.error("Error fetching prices from Pyth: %s", e)
            raise PriceUnavailableError(f"Pyth request failed: {e}") from e

        return data.get("parsed", []) if isinstance(data, dict) else []

    async def fetch_prices(self, feed_ids: list[str]) -> dict[str, PriceQuote]:
        """Fetch quotes for several feeds in one request.

        Feeds missing from the response are omitted from the result.
        """
        unique = list(dict.fromkeys(feed_ids))
        if not unique:
            return {}

        parsed = await self._fetch_parsed(unique)
        by_id = {_normalize_feed_id(str(item.get("id", ""))): item for item in parsed}

        quotes: dict[str, PriceQuote] = {}
        for feed_id in unique:
            item = by_id.get(_normalize_feed_id(feed_id))
            if item is not None:
                quotes[feed_id] = parse_price_item(item)

        logger.info("Fetched %d/%d prices from Pyth Network", len(quotes), len(unique))
        return quotes

    async def get_price(self, feed_id: str) -> PriceQuote:
        """Fetch the latest quote for one feed, failing if Pyth has none."""
        quotes = await self.fetch_prices([feed_id])
        if feed_id not in quotes:
            raise PriceUnavailableError(f"No Pyth price for feed {feed_id!r}")
        return quotes[feed_id]

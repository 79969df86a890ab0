"""Collateral asset registry: immutable asset to price feed binding."""
from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from types import MappingProxyType

from .errors import RegistryError, UnsupportedAssetError
from .models import CollateralAsset

logger = logging.getLogger(__name__)


class AssetRegistry:
    """Fixed set of accepted collateral assets, each bound to one price feed.

    The registry is built once and never mutated afterward; the order of
    ``assets`` is the order given at construction.
    """

    def __init__(self, entries: Sequence[CollateralAsset]) -> None:
        by_id: dict[str, CollateralAsset] = {}
        for entry in entries:
            if not entry.asset_id:
                raise RegistryError("Collateral asset id must not be empty")
            if not entry.price_feed:
                raise RegistryError(
                    f"Collateral '{entry.asset_id}' has no price feed"
                )
            if entry.asset_id in by_id:
                raise RegistryError(
                    f"Collateral '{entry.asset_id}' registered more than once"
                )
            by_id[entry.asset_id] = entry

        if not by_id:
            raise RegistryError("At least one collateral asset is required")

        self._entries: Mapping[str, CollateralAsset] = MappingProxyType(by_id)
        self._assets = tuple(by_id)
        logger.debug("Registered collateral assets: %s", ", ".join(self._assets))

    @classmethod
    def from_lists(
        cls, asset_ids: Sequence[str], price_feeds: Sequence[str]
    ) -> AssetRegistry:
        """Build a registry from parallel lists of asset ids and feed ids."""
        if len(asset_ids) != len(price_feeds):
            raise RegistryError(
                "Asset and price feed lists must have the same length "
                f"({len(asset_ids)} != {len(price_feeds)})"
            )
        return cls(
            [
                CollateralAsset(asset_id=asset_id, price_feed=feed)
                for asset_id, feed in zip(asset_ids, price_feeds)
            ]
        )

    @classmethod
    def from_mapping(cls, feeds: Mapping[str, str]) -> AssetRegistry:
        """Build a registry from an ``{asset_id: price_feed}`` mapping."""
        return cls(
            [
                CollateralAsset(asset_id=asset_id, price_feed=feed)
                for asset_id, feed in feeds.items()
            ]
        )

    @property
    def assets(self) -> tuple[str, ...]:
        return self._assets

    def entry(self, asset_id: str) -> CollateralAsset:
        try:
            return self._entries[asset_id]
        except KeyError:
            raise UnsupportedAssetError(asset_id) from None

    def price_feed_of(self, asset_id: str) -> str:
        return self.entry(asset_id).price_feed

    def is_registered(self, asset_id: str) -> bool:
        return asset_id in self._entries

    def __contains__(self, asset_id: object) -> bool:
        return asset_id in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._assets)

    def __len__(self) -> int:
        return len(self._assets)

    def __repr__(self) -> str:
        return f"AssetRegistry({', '.join(self._assets)})"

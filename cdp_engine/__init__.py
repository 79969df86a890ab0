"""Collateralized-debt engine: lock collateral, mint a synthetic unit of account."""
from .engine import CdpEngine
from .registry import AssetRegistry

__version__ = "0.1.0"

__all__ = ["AssetRegistry", "CdpEngine", "__version__"]

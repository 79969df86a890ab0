"""Collateral custody protocol: value transfer abstraction."""
from typing import Protocol


class CollateralCustody(Protocol):
    """Moves one collateral asset between accounts and the engine's vault."""

    async def transfer_in(self, sender: str, amount: int) -> bool: ...

    async def transfer_out(self, recipient: str, amount: int) -> bool: ...

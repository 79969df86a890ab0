"""Debt token protocol: synthetic token issuance abstraction."""
from typing import Protocol


class DebtToken(Protocol):
    """Issues and destroys the synthetic unit-of-account token."""

    async def issue(self, recipient: str, amount: int) -> bool: ...

    async def destroy(self, holder: str, amount: int) -> bool: ...

"""In-memory token collaborators used by scenario replay and tests."""
from __future__ import annotations

import logging
from collections import defaultdict

logger = logging.getLogger(__name__)


class InMemoryCollateralToken:
    """Balance table for one collateral asset plus the engine's vault."""

    def __init__(self, symbol: str) -> None:
        self.symbol = symbol
        self._balances: dict[str, int] = defaultdict(int)
        self.vault_balance = 0

    def mint(self, account: str, amount: int) -> None:
        """Credit ``amount`` to ``account`` outside the engine (faucet)."""
        self._balances[account] += amount

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    async def transfer_in(self, sender: str, amount: int) -> bool:
        if self._balances.get(sender, 0) < amount:
            logger.warning(
                "%s: %s cannot transfer %d (balance %d)",
                self.symbol,
                sender,
                amount,
                self._balances.get(sender, 0),
            )
            return False
        self._balances[sender] -= amount
        self.vault_balance += amount
        return True

    async def transfer_out(self, recipient: str, amount: int) -> bool:
        if self.vault_balance < amount:
            logger.warning(
                "%s: vault cannot release %d (holds %d)",
                self.symbol,
                amount,
                self.vault_balance,
            )
            return False
        self.vault_balance -= amount
        self._balances[recipient] += amount
        return True


class InMemoryDebtToken:
    """Synthetic unit-of-account token with issue/destroy and transfers."""

    def __init__(self, symbol: str = "DSC") -> None:
        self.symbol = symbol
        self._balances: dict[str, int] = defaultdict(int)
        self.total_supply = 0

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        if self._balances.get(sender, 0) < amount:
            return False
        self._balances[sender] -= amount
        self._balances[recipient] += amount
        return True

    async def issue(self, recipient: str, amount: int) -> bool:
        self._balances[recipient] += amount
        self.total_supply += amount
        return True

    async def destroy(self, holder: str, amount: int) -> bool:
        if self._balances.get(holder, 0) < amount:
            logger.warning(
                "%s: %s cannot burn %d (balance %d)",
                self.symbol,
                holder,
                amount,
                self._balances.get(holder, 0),
            )
            return False
        self._balances[holder] -= amount
        self.total_supply -= amount
        return True

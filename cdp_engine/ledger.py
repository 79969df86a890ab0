"""Position ledger: per-account collateral balances and debt."""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from .errors import (
    InsufficientCollateralError,
    InsufficientDebtError,
    LedgerTransactionError,
)
from .models import PositionSnapshot

logger = logging.getLogger(__name__)

# Journal keys: (account, asset_id) for collateral, (account, None) for debt
_DEBT = None


@dataclass
class Position:
    """Mutable position record owned by the ledger."""

    collateral: dict[str, int] = field(default_factory=dict)
    debt: int = 0


@dataclass
class _Journal:
    """Prior values of everything written since ``begin()``."""

    positions: dict[tuple[str, str | None], int] = field(default_factory=dict)
    custody: dict[str, int] = field(default_factory=dict)
    created: set[str] = field(default_factory=set)


class PositionLedger:
    """Keyed store of positions plus per-asset vault custody totals.

    Writes made between ``begin()`` and ``commit()`` are journaled; the first
    write to each slot records its prior value so ``rollback()`` can restore
    the exact pre-transaction state.
    """

    def __init__(self) -> None:
        self._positions: dict[str, Position] = {}
        self._custody: dict[str, int] = {}
        self._journal: _Journal | None = None

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @property
    def in_transaction(self) -> bool:
        return self._journal is not None

    def begin(self) -> None:
        if self._journal is not None:
            raise LedgerTransactionError("Ledger transaction already open")
        self._journal = _Journal()

    def commit(self) -> None:
        if self._journal is None:
            raise LedgerTransactionError("No ledger transaction to commit")
        self._journal = None

    def rollback(self) -> None:
        journal = self._journal
        if journal is None:
            raise LedgerTransactionError("No ledger transaction to roll back")
        self._journal = None

        for (account, asset_id), previous in reversed(list(journal.positions.items())):
            position = self._positions.get(account)
            if position is None:
                continue
            if asset_id is _DEBT:
                position.debt = previous
            elif previous == 0:
                position.collateral.pop(asset_id, None)
            else:
                position.collateral[asset_id] = previous

        for asset_id, previous in journal.custody.items():
            self._custody[asset_id] = previous

        for account in journal.created:
            self._positions.pop(account, None)

        logger.debug(
            "Ledger rolled back (%d position slots, %d custody slots)",
            len(journal.positions),
            len(journal.custody),
        )

    @contextmanager
    def transaction(self) -> Iterator[PositionLedger]:
        """Commit on clean exit, roll back if the block raises."""
        self.begin()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        self.commit()

    def _position_for_write(self, account: str) -> Position:
        position = self._positions.get(account)
        if position is None:
            position = Position()
            self._positions[account] = position
            if self._journal is not None:
                self._journal.created.add(account)
        return position

    def _remember(self, account: str, asset_id: str | None, previous: int) -> None:
        if self._journal is not None:
            self._journal.positions.setdefault((account, asset_id), previous)

    def _set_custody(self, asset_id: str, value: int) -> None:
        if self._journal is not None:
            self._journal.custody.setdefault(asset_id, self._custody.get(asset_id, 0))
        self._custody[asset_id] = value

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def credit_collateral(self, account: str, asset_id: str, amount: int) -> int:
        position = self._position_for_write(account)
        previous = position.collateral.get(asset_id, 0)
        self._remember(account, asset_id, previous)
        position.collateral[asset_id] = previous + amount
        self._set_custody(asset_id, self._custody.get(asset_id, 0) + amount)
        return position.collateral[asset_id]

    def debit_collateral(self, account: str, asset_id: str, amount: int) -> int:
        previous = self.collateral_of(account, asset_id)
        if amount > previous:
            raise InsufficientCollateralError(
                f"{account!r} holds {previous} of {asset_id!r}, cannot debit {amount}"
            )
        position = self._position_for_write(account)
        self._remember(account, asset_id, previous)
        position.collateral[asset_id] = previous - amount
        self._set_custody(asset_id, self._custody.get(asset_id, 0) - amount)
        return position.collateral[asset_id]

    def increase_debt(self, account: str, amount: int) -> int:
        position = self._position_for_write(account)
        self._remember(account, _DEBT, position.debt)
        position.debt += amount
        return position.debt

    def decrease_debt(self, account: str, amount: int) -> int:
        previous = self.debt_of(account)
        if amount > previous:
            raise InsufficientDebtError(
                f"{account!r} owes {previous}, cannot repay {amount}"
            )
        position = self._position_for_write(account)
        self._remember(account, _DEBT, previous)
        position.debt = previous - amount
        return position.debt

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    # With ``committed=True`` a query answers as of the last commit, ignoring
    # writes staged by the open transaction.

    def _visible_position(self, account: str, committed: bool) -> Position | None:
        position = self._positions.get(account)
        journal = self._journal
        if position is None or not committed or journal is None:
            return position
        if account in journal.created:
            return None

        collateral = dict(position.collateral)
        debt = position.debt
        for (owner, asset_id), previous in journal.positions.items():
            if owner != account:
                continue
            if asset_id is _DEBT:
                debt = previous
            elif previous == 0:
                collateral.pop(asset_id, None)
            else:
                collateral[asset_id] = previous
        return Position(collateral=collateral, debt=debt)

    def collateral_of(self, account: str, asset_id: str, committed: bool = False) -> int:
        position = self._visible_position(account, committed)
        if position is None:
            return 0
        return position.collateral.get(asset_id, 0)

    def debt_of(self, account: str, committed: bool = False) -> int:
        position = self._visible_position(account, committed)
        return position.debt if position is not None else 0

    def total_collateral(self, asset_id: str, committed: bool = False) -> int:
        """Total quantity of ``asset_id`` held in vault custody."""
        if committed and self._journal is not None and asset_id in self._journal.custody:
            return self._journal.custody[asset_id]
        return self._custody.get(asset_id, 0)

    def snapshot(self, account: str, committed: bool = False) -> PositionSnapshot:
        position = self._visible_position(account, committed)
        if position is None:
            return PositionSnapshot(account=account)
        return PositionSnapshot(
            account=account,
            collateral=tuple(sorted(position.collateral.items())),
            debt=position.debt,
        )

    def accounts(self) -> tuple[str, ...]:
        return tuple(self._positions)

    def __contains__(self, account: object) -> bool:
        return account in self._positions

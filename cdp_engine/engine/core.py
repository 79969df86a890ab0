"""Collateralized-debt engine: deposit, mint, burn, redeem and liquidate."""
from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from contextlib import asynccontextmanager

from ..config import EngineConfig
from ..constants import LIQUIDATION_PRECISION, MAX_AMOUNT, PRECISION
from ..errors import (
    BurnFailedError,
    CollaboratorError,
    HealthFactorBrokenError,
    HealthFactorNotImprovedError,
    HealthFactorOkError,
    InvalidAmountError,
    IssuanceFailedError,
    RegistryError,
    TransferFailedError,
)
from ..interfaces.custody import CollateralCustody
from ..interfaces.debt_token import DebtToken
from ..interfaces.price_source import PriceSource
from ..ledger import PositionLedger
from ..models import (
    AccountInformation,
    AccountReport,
    CollateralDeposited,
    CollateralRedeemed,
    DebtBurned,
    DebtMinted,
    EngineEvent,
    PositionLiquidated,
)
from ..registry import AssetRegistry
from .health import HealthFactorCalculator, calculate_health_factor
from .transaction import ReentrancyGuard, Transaction
from .valuation import Valuation

logger = logging.getLogger(__name__)


class CdpEngine:
    """Orchestrates the position ledger, valuation and external collaborators.

    Every mutating operation is atomic: ledger writes are journaled, each
    successful collaborator call registers a compensating call, and any
    failure (including a broken health factor) restores the ledger and undoes
    the side effects before the error propagates. Only one mutating operation
    may run at a time; a nested or concurrent call raises ``ReentrancyError``.
    """

    def __init__(
        self,
        registry: AssetRegistry,
        price_source: PriceSource,
        custody: Mapping[str, CollateralCustody],
        debt_token: DebtToken,
        config: EngineConfig | None = None,
        ledger: PositionLedger | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        config = config or EngineConfig()

        missing = [a for a in registry.assets if a not in custody]
        extra = [a for a in custody if a not in registry]
        if missing or extra:
            raise RegistryError(
                f"Custody does not match registry (missing={missing}, unregistered={extra})"
            )

        self._registry = registry
        self._custody = dict(custody)
        self._debt_token = debt_token
        self._config = config
        self._ledger = ledger or PositionLedger()
        self._valuation = Valuation(
            registry, price_source, config.max_price_age_seconds, clock=clock
        )
        self._health = HealthFactorCalculator(
            self._valuation, config.liquidation_threshold, config.min_health_factor
        )
        self._guard = ReentrancyGuard()
        self._events: list[EngineEvent] = []

    # ------------------------------------------------------------------
    # Atomic boundary
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _atomic(self, operation: str) -> AsyncIterator[Transaction]:
        self._guard.acquire(operation)
        try:
            tx = Transaction(operation)
            self._ledger.begin()
            try:
                yield tx
            except BaseException as e:
                try:
                    failed = await tx.compensate()
                finally:
                    self._ledger.rollback()
                    logger.warning(
                        "%s rolled back: %s: %s", operation, type(e).__name__, e
                    )
                if failed:
                    logger.error(
                        "%s left %d side effect(s) uncompensated: %s",
                        operation,
                        len(failed),
                        "; ".join(failed),
                    )
                raise
            self._ledger.commit()
            self._events.extend(tx.events)
            for event in tx.events:
                logger.info("%s: %s", operation, event)
        finally:
            self._guard.release()

    @staticmethod
    async def _call(
        action: Callable[[], Awaitable[bool]],
        error_cls: type[CollaboratorError],
        description: str,
    ) -> None:
        """Run a collaborator call; ``False`` and exceptions both fail."""
        try:
            ok = await action()
        except Exception as e:
            raise error_cls(f"{description} failed: {e}") from e
        if not ok:
            raise error_cls(f"{description} reported failure")

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def _require_amount(amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidAmountError(f"Amount must be an integer, got {amount!r}")
        if amount <= 0:
            raise InvalidAmountError(f"Amount must be more than zero, got {amount}")
        if amount > MAX_AMOUNT:
            raise InvalidAmountError(f"Amount exceeds uint256: {amount}")

    def _custody_of(self, asset_id: str) -> CollateralCustody:
        # Raises UnsupportedAssetError for unregistered assets
        self._registry.entry(asset_id)
        return self._custody[asset_id]

    async def _revert_if_health_factor_is_broken(self, account: str) -> None:
        snapshot = self._ledger.snapshot(account)
        if not await self._health.is_healthy(snapshot):
            health_factor = await self._health.health_factor(snapshot)
            raise HealthFactorBrokenError(account, health_factor)

    # ------------------------------------------------------------------
    # Building blocks (run inside an open transaction)
    # ------------------------------------------------------------------

    async def _deposit(
        self, tx: Transaction, account: str, asset_id: str, amount: int
    ) -> None:
        self._require_amount(amount)
        custody = self._custody_of(asset_id)

        self._ledger.credit_collateral(account, asset_id, amount)
        await self._call(
            lambda: custody.transfer_in(account, amount),
            TransferFailedError,
            f"Transfer of {amount} {asset_id} from {account}",
        )
        tx.on_rollback(
            f"return {amount} {asset_id} to {account}",
            lambda: custody.transfer_out(account, amount),
        )
        tx.emit(CollateralDeposited(account=account, asset_id=asset_id, amount=amount))

    async def _mint(self, tx: Transaction, account: str, amount: int) -> None:
        self._require_amount(amount)

        self._ledger.increase_debt(account, amount)
        await self._revert_if_health_factor_is_broken(account)
        await self._call(
            lambda: self._debt_token.issue(account, amount),
            IssuanceFailedError,
            f"Issuance of {amount} to {account}",
        )
        tx.on_rollback(
            f"destroy {amount} issued to {account}",
            lambda: self._debt_token.destroy(account, amount),
        )
        tx.emit(DebtMinted(account=account, amount=amount))

    async def _burn(
        self, tx: Transaction, amount: int, on_behalf_of: str, payer: str
    ) -> None:
        self._require_amount(amount)

        self._ledger.decrease_debt(on_behalf_of, amount)
        await self._call(
            lambda: self._debt_token.destroy(payer, amount),
            BurnFailedError,
            f"Destruction of {amount} from {payer}",
        )
        tx.on_rollback(
            f"reissue {amount} to {payer}",
            lambda: self._debt_token.issue(payer, amount),
        )
        tx.emit(DebtBurned(account=on_behalf_of, payer=payer, amount=amount))

    def _withdraw(self, account: str, asset_id: str, amount: int) -> None:
        """Debit collateral from the ledger; the transfer happens later."""
        self._require_amount(amount)
        self._custody_of(asset_id)
        self._ledger.debit_collateral(account, asset_id, amount)

    async def _send_collateral(
        self,
        tx: Transaction,
        from_account: str,
        recipient: str,
        asset_id: str,
        amount: int,
    ) -> None:
        custody = self._custody[asset_id]
        await self._call(
            lambda: custody.transfer_out(recipient, amount),
            TransferFailedError,
            f"Transfer of {amount} {asset_id} to {recipient}",
        )
        tx.on_rollback(
            f"reclaim {amount} {asset_id} from {recipient}",
            lambda: custody.transfer_in(recipient, amount),
        )
        tx.emit(
            CollateralRedeemed(
                account=from_account,
                recipient=recipient,
                asset_id=asset_id,
                amount=amount,
            )
        )

    # ------------------------------------------------------------------
    # Mutating operations
    # ------------------------------------------------------------------

    async def deposit_collateral(self, caller: str, asset_id: str, amount: int) -> None:
        """Lock ``amount`` of ``asset_id`` from ``caller`` into the vault."""
        async with self._atomic("deposit_collateral") as tx:
            await self._deposit(tx, caller, asset_id, amount)

    async def mint_debt(self, caller: str, amount: int) -> None:
        """Issue ``amount`` of debt token to ``caller`` against its collateral."""
        async with self._atomic("mint_debt") as tx:
            await self._mint(tx, caller, amount)

    async def burn_debt(self, caller: str, amount: int) -> None:
        """Repay ``amount`` of the caller's debt with the caller's tokens."""
        async with self._atomic("burn_debt") as tx:
            await self._burn(tx, amount, caller, caller)
            await self._revert_if_health_factor_is_broken(caller)

    async def redeem_collateral(self, caller: str, asset_id: str, amount: int) -> None:
        """Withdraw ``amount`` of ``asset_id`` back to the caller."""
        async with self._atomic("redeem_collateral") as tx:
            self._withdraw(caller, asset_id, amount)
            await self._revert_if_health_factor_is_broken(caller)
            await self._send_collateral(tx, caller, caller, asset_id, amount)

    async def deposit_and_mint(
        self, caller: str, asset_id: str, collateral_amount: int, debt_amount: int
    ) -> None:
        """Deposit collateral and mint debt in one atomic step."""
        self._require_amount(collateral_amount)
        self._require_amount(debt_amount)
        async with self._atomic("deposit_and_mint") as tx:
            await self._deposit(tx, caller, asset_id, collateral_amount)
            await self._mint(tx, caller, debt_amount)

    async def redeem_for_burn(
        self, caller: str, asset_id: str, collateral_amount: int, debt_amount: int
    ) -> None:
        """Burn debt, then redeem collateral, in one atomic step."""
        self._require_amount(collateral_amount)
        self._require_amount(debt_amount)
        async with self._atomic("redeem_for_burn") as tx:
            await self._burn(tx, debt_amount, caller, caller)
            self._withdraw(caller, asset_id, collateral_amount)
            await self._revert_if_health_factor_is_broken(caller)
            await self._send_collateral(tx, caller, caller, asset_id, collateral_amount)

    async def liquidate(
        self, liquidator: str, asset_id: str, target: str, debt_to_cover: int
    ) -> int:
        """Repay part of an unhealthy position's debt and seize its collateral.

        The liquidator supplies ``debt_to_cover`` of debt token and receives
        the equivalent quantity of ``asset_id`` plus the liquidation bonus.
        Partial liquidation is allowed. Returns the quantity seized.
        """
        self._require_amount(debt_to_cover)
        self._custody_of(asset_id)

        async with self._atomic("liquidate") as tx:
            starting = await self._health.health_factor(self._ledger.snapshot(target))
            if starting >= self._health.min_health_factor:
                raise HealthFactorOkError(target, starting)

            covered = await self._valuation.quantity_from_value(asset_id, debt_to_cover)
            bonus = covered * self._config.liquidation_bonus // LIQUIDATION_PRECISION
            seized = covered + bonus

            self._withdraw(target, asset_id, seized)
            await self._burn(tx, debt_to_cover, target, liquidator)

            ending = await self._health.health_factor(self._ledger.snapshot(target))
            if ending <= starting:
                raise HealthFactorNotImprovedError(target, starting, ending)
            await self._revert_if_health_factor_is_broken(liquidator)

            await self._send_collateral(tx, target, liquidator, asset_id, seized)
            tx.emit(
                PositionLiquidated(
                    account=target,
                    liquidator=liquidator,
                    asset_id=asset_id,
                    debt_covered=debt_to_cover,
                    collateral_seized=seized,
                    health_factor_before=starting,
                    health_factor_after=ending,
                )
            )
        return seized

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    # Queries answer from committed state; writes staged by an in-flight
    # operation stay invisible until it commits.

    async def get_account_information(self, account: str) -> AccountInformation:
        snapshot = self._ledger.snapshot(account, committed=True)
        collateral_value = await self._valuation.total_collateral_value(snapshot)
        return AccountInformation(total_debt=snapshot.debt, collateral_value=collateral_value)

    async def get_account_collateral_value(self, account: str) -> int:
        return await self._valuation.total_collateral_value(
            self._ledger.snapshot(account, committed=True)
        )

    async def get_health_factor(self, account: str) -> int:
        return await self._health.health_factor(
            self._ledger.snapshot(account, committed=True)
        )

    async def get_usd_value(self, asset_id: str, amount: int) -> int:
        return await self._valuation.value_of(asset_id, amount)

    async def get_token_amount_from_usd(self, asset_id: str, usd_value: int) -> int:
        return await self._valuation.quantity_from_value(asset_id, usd_value)

    async def get_account_report(self, account: str) -> AccountReport:
        snapshot = self._ledger.snapshot(account, committed=True)
        collateral_value = await self._valuation.total_collateral_value(snapshot)
        return AccountReport(
            account=account,
            total_debt=snapshot.debt,
            collateral_value=collateral_value,
            health_factor=self.calculate_health_factor(snapshot.debt, collateral_value),
            max_mintable=self._health.max_mintable(collateral_value, snapshot.debt),
            collateral=snapshot.collateral,
        )

    def calculate_health_factor(self, total_debt: int, collateral_value: int) -> int:
        return calculate_health_factor(
            total_debt, collateral_value, self._config.liquidation_threshold
        )

    def max_mintable(self, collateral_value: int, debt: int = 0) -> int:
        return self._health.max_mintable(collateral_value, debt)

    def get_collateral_balance(self, account: str, asset_id: str) -> int:
        return self._ledger.collateral_of(account, asset_id, committed=True)

    def get_debt(self, account: str) -> int:
        return self._ledger.debt_of(account, committed=True)

    def total_collateral(self, asset_id: str) -> int:
        return self._ledger.total_collateral(asset_id, committed=True)

    def price_feed_of(self, asset_id: str) -> str:
        return self._registry.price_feed_of(asset_id)

    @property
    def collateral_assets(self) -> tuple[str, ...]:
        return self._registry.assets

    @property
    def events(self) -> tuple[EngineEvent, ...]:
        return tuple(self._events)

    @property
    def is_busy(self) -> bool:
        return self._guard.locked

    @property
    def precision(self) -> int:
        return PRECISION

    @property
    def liquidation_threshold(self) -> int:
        return self._config.liquidation_threshold

    @property
    def liquidation_bonus(self) -> int:
        return self._config.liquidation_bonus

    @property
    def liquidation_precision(self) -> int:
        return LIQUIDATION_PRECISION

    @property
    def min_health_factor(self) -> int:
        return self._config.min_health_factor

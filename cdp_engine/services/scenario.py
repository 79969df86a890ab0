"""Scenario replay: runs a YAML list of operations against an in-memory engine."""
from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ..config import AppConfig
from ..constants import DEFAULT_FEED_DECIMALS
from ..errors import EngineError, PriceUnavailableError, TransferFailedError
from ..models import OperationResult, ScenarioReport
from ..oracles import FixedPriceSource
from .factory import InMemoryDeployment, deploy_in_memory

logger = logging.getLogger(__name__)


def to_base_units(value: Any, decimals: int = 18) -> int:
    """Convert a human amount (``"1.5"``) to integer base units.

    Decimal strings are exact; digits beyond ``decimals`` are truncated.
    """
    try:
        amount = Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {value!r}") from e
    return int(amount.scaleb(decimals))


def load_scenario(path: str | Path) -> dict[str, Any]:
    """Read a scenario file; it must contain a ``steps`` list."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Scenario file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw.get("steps"), list):
        raise ValueError(f"Scenario {path} has no 'steps' list")
    return raw


class ScenarioRunner:
    """Replays scenario steps and records each outcome.

    Engine errors are recorded on the step result and do not stop the
    replay; malformed steps raise ``ValueError``.
    """

    def __init__(
        self, config: AppConfig, clock: Callable[[], float] = time.time
    ) -> None:
        self._clock = clock
        self._prices = FixedPriceSource(config.price_oracle.fixed_prices, clock=clock)
        self._deployment = deploy_in_memory(config, price_source=self._prices, clock=clock)
        self._accounts: list[str] = []
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[None]]] = {
            "fund": self._fund,
            "transfer_debt": self._transfer_debt,
            "set_price": self._set_price_step,
            "deposit": self._deposit,
            "mint": self._mint,
            "burn": self._burn,
            "redeem": self._redeem,
            "deposit_and_mint": self._deposit_and_mint,
            "redeem_for_burn": self._redeem_for_burn,
            "liquidate": self._liquidate,
        }

    @property
    def deployment(self) -> InMemoryDeployment:
        return self._deployment

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _touch(self, account: str) -> str:
        if account not in self._accounts:
            self._accounts.append(account)
        return account

    @staticmethod
    def _field(step: dict[str, Any], name: str) -> Any:
        if name not in step:
            raise ValueError(f"Step '{step.get('action')}' is missing '{name}'")
        return step[name]

    def _account(self, step: dict[str, Any], name: str = "account") -> str:
        return self._touch(str(self._field(step, name)))

    def _amount(self, step: dict[str, Any], name: str = "amount") -> int:
        return to_base_units(self._field(step, name))

    def set_price(self, asset_id: str, price: Any, age_seconds: float = 0) -> None:
        """Set ``asset_id``'s feed to ``price`` whole USD, optionally backdated."""
        feed_id = self._deployment.engine.price_feed_of(asset_id)
        self._prices.set_price(
            feed_id,
            to_base_units(price, DEFAULT_FEED_DECIMALS),
            decimals=DEFAULT_FEED_DECIMALS,
            published_at=self._clock() - age_seconds,
        )

    # ------------------------------------------------------------------
    # Step handlers
    # ------------------------------------------------------------------

    async def _fund(self, step: dict[str, Any]) -> None:
        asset_id = str(self._field(step, "asset"))
        self._deployment.engine.price_feed_of(asset_id)
        token = self._deployment.collateral_tokens[asset_id]
        token.mint(self._account(step), self._amount(step))

    async def _transfer_debt(self, step: dict[str, Any]) -> None:
        sender = self._account(step)
        recipient = self._account(step, "to")
        amount = self._amount(step)
        if not self._deployment.debt_token.transfer(sender, recipient, amount):
            raise TransferFailedError(
                f"{sender} cannot transfer {amount} debt token to {recipient}"
            )

    async def _set_price_step(self, step: dict[str, Any]) -> None:
        self.set_price(
            str(self._field(step, "asset")),
            self._field(step, "price"),
            float(step.get("age", 0)),
        )

    async def _deposit(self, step: dict[str, Any]) -> None:
        await self._deployment.engine.deposit_collateral(
            self._account(step), str(self._field(step, "asset")), self._amount(step)
        )

    async def _mint(self, step: dict[str, Any]) -> None:
        await self._deployment.engine.mint_debt(self._account(step), self._amount(step))

    async def _burn(self, step: dict[str, Any]) -> None:
        await self._deployment.engine.burn_debt(self._account(step), self._amount(step))

    async def _redeem(self, step: dict[str, Any]) -> None:
        await self._deployment.engine.redeem_collateral(
            self._account(step), str(self._field(step, "asset")), self._amount(step)
        )

    async def _deposit_and_mint(self, step: dict[str, Any]) -> None:
        await self._deployment.engine.deposit_and_mint(
            self._account(step),
            str(self._field(step, "asset")),
            self._amount(step, "collateral"),
            self._amount(step, "debt"),
        )

    async def _redeem_for_burn(self, step: dict[str, Any]) -> None:
        await self._deployment.engine.redeem_for_burn(
            self._account(step),
            str(self._field(step, "asset")),
            self._amount(step, "collateral"),
            self._amount(step, "debt"),
        )

    async def _liquidate(self, step: dict[str, Any]) -> None:
        await self._deployment.engine.liquidate(
            self._account(step),
            str(self._field(step, "asset")),
            self._account(step, "target"),
            self._amount(step, "debt"),
        )

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    async def _run_step(self, index: int, step: dict[str, Any]) -> OperationResult:
        action = str(step.get("action", ""))
        handler = self._handlers.get(action)
        if handler is None:
            raise ValueError(f"Step {index}: unknown action '{action}'")

        expected = str(step.get("expect", ""))
        engine = self._deployment.engine
        events_before = len(engine.events)

        try:
            await handler(step)
        except EngineError as e:
            logger.info("Step %d (%s) failed: %s: %s", index, action, type(e).__name__, e)
            return OperationResult(
                step=index,
                action=action,
                ok=False,
                error=type(e).__name__,
                expected=expected,
            )

        return OperationResult(
            step=index,
            action=action,
            ok=True,
            expected=expected,
            events=engine.events[events_before:],
        )

    async def run(self, scenario: dict[str, Any]) -> ScenarioReport:
        for asset_id, price in (scenario.get("prices") or {}).items():
            self.set_price(str(asset_id), price)

        results: list[OperationResult] = []
        for index, step in enumerate(scenario.get("steps", []), start=1):
            if not isinstance(step, dict):
                raise ValueError(f"Step {index} must be a mapping")
            result = await self._run_step(index, step)
            if not result.matched:
                logger.warning(
                    "Step %d (%s): expected %s, got %s",
                    index,
                    result.action,
                    result.expected,
                    "ok" if result.ok else result.error,
                )
            results.append(result)

        engine = self._deployment.engine
        accounts = []
        for account in self._accounts:
            try:
                accounts.append(await engine.get_account_report(account))
            except PriceUnavailableError as e:
                logger.warning("No final report for %s: %s", account, e)
        return ScenarioReport(results=tuple(results), accounts=tuple(accounts))

"""Data models, all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class PriceQuote:
    """Single price observation from a price source.

    ``price`` is an integer scaled by ``10**decimals``; ``published_at`` is a
    unix timestamp in seconds.
    """

    price: int
    decimals: int
    published_at: float


@dataclass(frozen=True)
class CollateralAsset:
    """Registry entry binding a collateral asset to its price feed."""

    asset_id: str
    price_feed: str


@dataclass(frozen=True)
class PositionSnapshot:
    """Read-only copy of an account's position."""

    account: str
    collateral: tuple[tuple[str, int], ...] = ()
    debt: int = 0

    def collateral_of(self, asset_id: str) -> int:
        for held_asset, quantity in self.collateral:
            if held_asset == asset_id:
                return quantity
        return 0

    @property
    def is_empty(self) -> bool:
        return self.debt == 0 and all(q == 0 for _, q in self.collateral)


@dataclass(frozen=True)
class AccountInformation:
    """Debt and collateral value of an account, both at 18 decimals."""

    total_debt: int
    collateral_value: int


@dataclass(frozen=True)
class AccountReport:
    """Aggregated account view used by the CLI and scenario replay."""

    account: str
    total_debt: int
    collateral_value: int
    health_factor: int
    max_mintable: int
    collateral: tuple[tuple[str, int], ...] = ()


# ---------------------------------------------------------------------------
# Engine events, appended only when an operation commits
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineEvent:
    """Base class for committed engine events."""

    account: str


@dataclass(frozen=True)
class CollateralDeposited(EngineEvent):
    asset_id: str = ""
    amount: int = 0


@dataclass(frozen=True)
class CollateralRedeemed(EngineEvent):
    """Collateral left ``account``'s position and was sent to ``recipient``."""

    recipient: str = ""
    asset_id: str = ""
    amount: int = 0


@dataclass(frozen=True)
class DebtMinted(EngineEvent):
    amount: int = 0


@dataclass(frozen=True)
class DebtBurned(EngineEvent):
    """Debt of ``account`` repaid with tokens destroyed from ``payer``."""

    payer: str = ""
    amount: int = 0


@dataclass(frozen=True)
class PositionLiquidated(EngineEvent):
    liquidator: str = ""
    asset_id: str = ""
    debt_covered: int = 0
    collateral_seized: int = 0
    health_factor_before: int = 0
    health_factor_after: int = 0


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a single replayed scenario step."""

    step: int
    action: str
    ok: bool
    error: str = ""
    expected: str = ""
    events: tuple[EngineEvent, ...] = field(default_factory=tuple)

    @property
    def matched(self) -> bool:
        """Whether the outcome agrees with the step's ``expect`` field."""
        if not self.expected:
            return True
        if self.expected == "ok":
            return self.ok
        return not self.ok and self.error == self.expected


@dataclass(frozen=True)
class ScenarioReport:
    """All step outcomes plus the final state of every touched account."""

    results: tuple[OperationResult, ...] = ()
    accounts: tuple[AccountReport, ...] = ()

    @property
    def all_matched(self) -> bool:
        return all(r.matched for r in self.results)

"""Error hierarchy for the collateralized-debt engine."""


class EngineError(Exception):
    """Base error class for engine errors"""


# ---------------------------------------------------------------------------
# Input validation: caller fault, raised before any state mutation
# ---------------------------------------------------------------------------


class ValidationError(EngineError):
    """Error for rejected caller input"""


class InvalidAmountError(ValidationError):
    """Error for zero, negative or out-of-range amounts"""


class UnsupportedAssetError(ValidationError):
    """Error for assets missing from the collateral registry"""

    def __init__(self, asset_id: str) -> None:
        super().__init__(f"Unsupported collateral asset: {asset_id!r}")
        self.asset_id = asset_id


class InsufficientCollateralError(ValidationError):
    """Error for collateral debits exceeding the recorded balance"""


class InsufficientDebtError(ValidationError):
    """Error for debt reductions exceeding the outstanding debt"""


# ---------------------------------------------------------------------------
# Invariant violations: detected after tentative mutation, cause rollback
# ---------------------------------------------------------------------------


class InvariantError(EngineError):
    """Error for operations that would break a solvency invariant"""


class HealthFactorBrokenError(InvariantError):
    """Error for a position left below the minimum health factor"""

    def __init__(self, account: str, health_factor: int) -> None:
        super().__init__(
            f"Health factor broken for {account!r}: {health_factor}"
        )
        self.account = account
        self.health_factor = health_factor


class HealthFactorOkError(InvariantError):
    """Error for liquidating a position that is still healthy"""

    def __init__(self, account: str, health_factor: int) -> None:
        super().__init__(f"Health factor is good for {account!r}: {health_factor}")
        self.account = account
        self.health_factor = health_factor


class HealthFactorNotImprovedError(InvariantError):
    """Error for a liquidation that did not raise the target's health factor"""

    def __init__(self, account: str, before: int, after: int) -> None:
        super().__init__(
            f"Health factor not improved for {account!r}: {before} -> {after}"
        )
        self.account = account
        self.before = before
        self.after = after


# ---------------------------------------------------------------------------
# Collaborator failures: hard failures, never retried here
# ---------------------------------------------------------------------------


class CollaboratorError(EngineError):
    """Error for failures reported by an external collaborator"""


class PriceUnavailableError(CollaboratorError):
    """Error for missing, invalid or stale price data"""


class TransferFailedError(CollaboratorError):
    """Error for a failed collateral transfer"""


class IssuanceFailedError(CollaboratorError):
    """Error for a failed debt-token issuance"""


class BurnFailedError(CollaboratorError):
    """Error for a failed debt-token destruction"""


# ---------------------------------------------------------------------------
# Engine construction and execution
# ---------------------------------------------------------------------------


class RegistryError(EngineError):
    """Error for an invalid collateral registry"""


class ReentrancyError(EngineError):
    """Error for a mutating call made while another one is in progress"""


class LedgerTransactionError(EngineError):
    """Error for misuse of the ledger journal"""

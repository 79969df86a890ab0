"""Fixed-point scale factors and liquidation parameters."""

# Canonical scale for values, debt and collateral quantities (18 decimals)
PRECISION = 10**18

# Default decimals of a price feed (e.g. Chainlink/Pyth USD pairs)
DEFAULT_FEED_DECIMALS = 8

# Liquidation parameters, as percentages of LIQUIDATION_PRECISION
LIQUIDATION_THRESHOLD = 50       # 200% overcollateralized
LIQUIDATION_BONUS = 10           # 10% paid to the liquidator
LIQUIDATION_PRECISION = 100

MIN_HEALTH_FACTOR = 1 * PRECISION

# uint256 bounds
MAX_AMOUNT = 2**256 - 1
NO_DEBT_HEALTH_FACTOR = MAX_AMOUNT

# Price staleness
DEFAULT_MAX_PRICE_AGE_SECONDS = 3 * 60 * 60

"""Protocol constants for the multi-pool staking contract."""

# Token metadata
DEFAULT_TOKEN_SYMBOL = "W3E"
TOKEN_DECIMALS = 18
WEI = 10**TOKEN_DECIMALS

# Basis points (1e4 scale); fees are quoted in bps on-chain
BPS_DIVISOR = 10_000
DEFAULT_EMERGENCY_FEE_BPS = 500  # 5%

# Time
SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86_400
SECONDS_PER_YEAR = 365.25 * 24 * 3600

# APY plausibility thresholds (percent); flagged, never capped
HIGH_APY_PERCENT = 100.0
UNREALISTIC_APY_PERCENT = 1000.0

# Receipt polling defaults (seconds)
DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_CONFIRM_TIMEOUT = 180.0

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
MAX_UINT256 = 2**256 - 1

"""
Application constants.

Centralized constants that are not deployment knobs.
"""

# ========================================================================
# BLOCKCHAIN CONSTANTS
# ========================================================================

# Blockchain operation timeouts (in seconds)
BLOCKCHAIN_TIMEOUT = 30.0  # Standard RPC operations (get_transaction, etc.)
BLOCKCHAIN_RPC_TIMEOUT = 30  # RPC provider HTTP timeout

# Reward token decimal exponent
TOKEN_DECIMALS = 18

# Delay before checking a just-submitted transaction is visible
POST_SUBMIT_VISIBILITY_DELAY = 0.5

# Legacy gas price multiplier (suggested price * 12 / 10)
LEGACY_GAS_PRICE_NUMERATOR = 12
LEGACY_GAS_PRICE_DENOMINATOR = 10

# ========================================================================
# PAYMENT GATEWAY CONSTANTS
# ========================================================================

GATEWAY_CHECKIN_PATH = "/api/business/daily-checkin"
GATEWAY_PAYMENT_PATH = "/v2/api/x402/payment"
GATEWAY_VERIFY_PATH = "/v2/api/x402/verify"
GATEWAY_SETTLE_PATH = "/v2/api/x402/settle"
GATEWAY_NETWORKS_PATH = "/networks"

# Verify rate limits documented by the gateway
VERIFY_WINDOW_SECONDS = 30
VERIFY_MAX_PER_ORDER = 1
VERIFY_MAX_PER_USER = 3

# Payment window used when the challenge carries no parseable expiry
DEFAULT_PAYMENT_WINDOW_MINUTES = 30

# ========================================================================
# CHECK-IN CONSTANTS
# ========================================================================

MAX_FAILURE_REASON_LENGTH = 500
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
DAILY_STATS_DAYS = 30

GAS_BUFFER_MULTIPLIER = 1.1
SUGGESTED_PRIORITY_FEE_MULTIPLIER = 1.5
MAX_BASE_FEE_GROWTH_MULTIPLIER = 2

# Timeout constants (seconds)
# A confirmation timeout does not void the submission; it may still be mined later.
DEFAULT_TRANSACTION_TIMEOUT = 180
DEFAULT_RECEIPT_POLL_INTERVAL = 0.1
DEFAULT_DEADLINE_SECONDS = 600

MAX_BPS = 10_000

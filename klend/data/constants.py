"""Chain timing and protocol constants."""

from decimal import Decimal

# Slot timing (nominal 500ms slots)
SLOTS_PER_SECOND = 2
SLOTS_PER_MINUTE = SLOTS_PER_SECOND * 60
SLOTS_PER_HOUR = SLOTS_PER_MINUTE * 60
SLOTS_PER_DAY = SLOTS_PER_HOUR * 24
SLOTS_PER_YEAR = SLOTS_PER_DAY * 365

# Observed average slot duration used to rescale slot-indexed rates
DEFAULT_RECENT_SLOT_DURATION_MS = 450

ONE_HUNDRED_PCT_IN_BPS = 10_000

U64_MAX = 2**64 - 1

# cToken / liquidity rate of an empty reserve
INITIAL_COLLATERAL_RATE = Decimal(1)

# All-zero public key in base58; marks unused deposit/borrow slots
NULL_PUBKEY = "11111111111111111111111111111111"


def is_not_null_pubkey(address: str) -> bool:
    return bool(address) and address != NULL_PUBKEY

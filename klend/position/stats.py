"""Position and aggregate statistic records for obligations."""

from dataclasses import dataclass, field
from decimal import Decimal

from klend.protocol.fraction import lending_math


@dataclass(frozen=True)
class Position:
    """One obligation's exposure to one reserve.

    ``amount`` is in the reserve's underlying token base units (supplied
    liquidity for deposits, accrued debt for borrows).
    """

    reserve_address: str
    mint_address: str
    amount: Decimal
    market_value_refreshed: Decimal  # USD at the oracle price


@dataclass(frozen=True)
class ObligationStats:
    """Aggregate risk metrics over all positions of an obligation (USD)."""

    user_total_deposit: Decimal
    user_total_borrow: Decimal
    user_total_borrow_borrow_factor_adjusted: Decimal
    borrow_limit: Decimal
    borrow_liquidation_limit: Decimal
    borrow_utilization: Decimal
    net_account_value: Decimal
    loan_to_value: Decimal
    liquidation_ltv: Decimal
    leverage: Decimal
    potential_elevation_group_update: tuple[int, ...] = ()


@dataclass(frozen=True)
class DepositStats:
    deposits: dict[str, Position] = field(default_factory=dict)
    user_total_deposit: Decimal = Decimal(0)
    user_total_collateral_deposit: Decimal = Decimal(0)
    borrow_limit: Decimal = Decimal(0)
    liquidation_ltv: Decimal = Decimal(0)
    borrow_liquidation_limit: Decimal = Decimal(0)


@dataclass(frozen=True)
class BorrowStats:
    borrows: dict[str, Position] = field(default_factory=dict)
    user_total_borrow: Decimal = Decimal(0)
    user_total_borrow_borrow_factor_adjusted: Decimal = Decimal(0)
    positions: int = 0


@dataclass(frozen=True)
class SimulatedObligation:
    """Stats and positions after a hypothetical action."""

    stats: ObligationStats
    deposits: dict[str, Position]
    borrows: dict[str, Position]


@lending_math
def ratio_or_zero(numerator: Decimal, denominator: Decimal) -> Decimal:
    """``numerator / denominator``, or 0 when the denominator is 0."""
    if denominator == 0:
        return Decimal(0)
    return numerator / denominator


def positive_or_zero(value: Decimal) -> Decimal:
    return max(value, Decimal(0))

"""What-if simulation of user actions against an obligation.

Every function returns new stats/positions; the obligation and the market
are never modified and nothing is read from the network.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import TYPE_CHECKING

from klend.errors import (
    ElevationGroupError,
    ReserveNotFoundError,
    UnsupportedActionError,
)
from klend.position.stats import (
    ObligationStats,
    Position,
    SimulatedObligation,
    positive_or_zero,
    ratio_or_zero,
)
from klend.protocol.action import ActionType
from klend.protocol.fraction import lending_math

if TYPE_CHECKING:
    from klend.position.obligation import KaminoObligation
    from klend.protocol.market import KaminoMarket
    from klend.protocol.reserve import KaminoReserve


def _reserve_for_mint(market: KaminoMarket, mint: str) -> KaminoReserve:
    reserve = market.get_reserve_by_mint(mint)
    if reserve is None:
        raise ReserveNotFoundError(f"No reserve found for mint {mint}")
    return reserve


def _check_elevation_group(
    obligation: KaminoObligation, reserve: KaminoReserve, verb: str
) -> None:
    group = obligation.state.elevation_group
    if group != 0 and group not in reserve.elevation_groups:
        raise ElevationGroupError(
            "User would have to downgrade the elevation group in order to be able "
            f"to {verb} this reserve"
        )


def _find_by_mint(positions: dict[str, Position], mint: str) -> Position | None:
    found = None
    for position in positions.values():
        if position.mint_address == mint:
            found = position
    return found


def _usd_value(amount: Decimal, reserve: KaminoReserve) -> Decimal:
    return amount * reserve.get_oracle_market_price() / reserve.get_mint_factor()


@lending_math
def calculate_simulated_borrow(
    obligation: KaminoObligation,
    old_stats: ObligationStats,
    old_borrows: dict[str, Position],
    borrow_amount: Decimal,
    mint: str,
    market: KaminoMarket,
) -> tuple[ObligationStats, dict[str, Position]]:
    """Apply a borrow (positive) or repay (negative) of ``borrow_amount``."""
    reserve = _reserve_for_mint(market, mint)
    borrow_position = _find_by_mint(old_borrows, mint) or Position(
        reserve_address=reserve.address,
        mint_address=mint,
        amount=Decimal(0),
        market_value_refreshed=Decimal(0),
    )
    _check_elevation_group(obligation, reserve, "borrow from")

    borrow_factor = borrow_factor_for_reserve(reserve, obligation.state.elevation_group)
    borrow_value_usd = _usd_value(borrow_amount, reserve)
    borrow_value_bf_adjusted_usd = borrow_value_usd * borrow_factor

    new_stats = replace(
        old_stats,
        user_total_borrow=positive_or_zero(
            old_stats.user_total_borrow + borrow_value_usd
        ),
        user_total_borrow_borrow_factor_adjusted=positive_or_zero(
            old_stats.user_total_borrow_borrow_factor_adjusted
            + borrow_value_bf_adjusted_usd
        ),
    )

    new_borrows = dict(old_borrows)
    new_borrows[borrow_position.reserve_address] = replace(
        borrow_position,
        mint_address=mint,
        amount=positive_or_zero(borrow_position.amount + borrow_amount),
        market_value_refreshed=positive_or_zero(
            borrow_position.market_value_refreshed + borrow_value_usd
        ),
    )
    return new_stats, new_borrows


@lending_math
def calculate_simulated_deposit(
    obligation: KaminoObligation,
    old_stats: ObligationStats,
    old_deposits: dict[str, Position],
    amount: Decimal,
    mint: str,
    market: KaminoMarket,
) -> tuple[ObligationStats, dict[str, Position]]:
    """Apply a deposit (positive) or withdrawal (negative) of ``amount``.

    ``amount`` is in underlying liquidity units, not cTokens.
    """
    reserve = _reserve_for_mint(market, mint)
    deposit_position = _find_by_mint(old_deposits, mint) or Position(
        reserve_address=reserve.address,
        mint_address=mint,
        amount=Decimal(0),
        market_value_refreshed=Decimal(0),
    )

    group = obligation.state.elevation_group
    loan_to_value = reserve.stats.loan_to_value
    liquidation_threshold = reserve.stats.liquidation_threshold
    if group != 0:
        elevation_group = market.get_elevation_group(group)
        loan_to_value = elevation_group.ltv
        liquidation_threshold = elevation_group.liquidation_threshold

    _check_elevation_group(obligation, reserve, "deposit in")

    supply_value_usd = _usd_value(amount, reserve)

    user_total_deposit = positive_or_zero(
        old_stats.user_total_deposit + supply_value_usd
    )
    borrow_liquidation_limit = positive_or_zero(
        old_stats.borrow_liquidation_limit + supply_value_usd * liquidation_threshold
    )
    new_stats = replace(
        old_stats,
        user_total_deposit=user_total_deposit,
        borrow_limit=positive_or_zero(
            old_stats.borrow_limit + supply_value_usd * loan_to_value
        ),
        borrow_liquidation_limit=borrow_liquidation_limit,
        liquidation_ltv=ratio_or_zero(borrow_liquidation_limit, user_total_deposit),
    )

    new_deposits = dict(old_deposits)
    new_deposits[deposit_position.reserve_address] = replace(
        deposit_position,
        mint_address=mint,
        amount=positive_or_zero(deposit_position.amount + amount),
        market_value_refreshed=positive_or_zero(
            deposit_position.market_value_refreshed + supply_value_usd
        ),
    )
    return new_stats, new_deposits


@lending_math
def get_simulated_obligation_stats(
    obligation: KaminoObligation,
    amount: Decimal,
    action: ActionType | str,
    mint: str,
    market: KaminoMarket,
    outflow_amount: Decimal | None = None,
    outflow_mint: str | None = None,
) -> SimulatedObligation:
    """Stats and positions of ``obligation`` after ``action``.

    For composite actions ``amount``/``mint`` describe the first leg and
    ``outflow_amount``/``outflow_mint`` the second (defaulting to the first
    leg's values). Withdrawals and repayments are given as positive amounts.
    """
    action = ActionType.parse(action)
    amount = Decimal(amount)
    second_amount = Decimal(outflow_amount) if outflow_amount is not None else amount
    second_mint = outflow_mint if outflow_mint is not None else mint

    stats = obligation.stats
    deposits = dict(obligation.deposits)
    borrows = dict(obligation.borrows)

    if action == ActionType.DEPOSIT:
        stats, deposits = calculate_simulated_deposit(
            obligation, stats, deposits, amount, mint, market
        )
    elif action == ActionType.WITHDRAW:
        stats, deposits = calculate_simulated_deposit(
            obligation, stats, deposits, -amount, mint, market
        )
    elif action == ActionType.BORROW:
        stats, borrows = calculate_simulated_borrow(
            obligation, stats, borrows, amount, mint, market
        )
    elif action == ActionType.REPAY:
        stats, borrows = calculate_simulated_borrow(
            obligation, stats, borrows, -amount, mint, market
        )
    elif action == ActionType.DEPOSIT_AND_BORROW:
        stats, deposits = calculate_simulated_deposit(
            obligation, stats, deposits, amount, mint, market
        )
        stats, borrows = calculate_simulated_borrow(
            obligation, stats, borrows, second_amount, second_mint, market
        )
    elif action == ActionType.REPAY_AND_WITHDRAW:
        stats, borrows = calculate_simulated_borrow(
            obligation, stats, borrows, -amount, mint, market
        )
        stats, deposits = calculate_simulated_deposit(
            obligation, stats, deposits, -second_amount, second_mint, market
        )
    elif action in (ActionType.MINT, ActionType.REDEEM):
        raise UnsupportedActionError(
            f"Invalid action type {action.value} for obligation simulation"
        )
    else:
        raise UnsupportedActionError(f"Unhandled action type {action!r}")

    return SimulatedObligation(
        stats=refresh_derived_stats(stats), deposits=deposits, borrows=borrows
    )


@lending_math
def refresh_derived_stats(stats: ObligationStats) -> ObligationStats:
    """Recompute the ratios that depend on the aggregate totals."""
    net_account_value = stats.user_total_deposit - stats.user_total_borrow
    bf_adjusted_borrow = stats.user_total_borrow_borrow_factor_adjusted
    return replace(
        stats,
        net_account_value=net_account_value,
        loan_to_value=ratio_or_zero(bf_adjusted_borrow, stats.user_total_deposit),
        leverage=ratio_or_zero(stats.user_total_deposit, net_account_value),
        borrow_utilization=ratio_or_zero(bf_adjusted_borrow, stats.borrow_limit),
    )


@lending_math
def borrow_factor_for_reserve(reserve: KaminoReserve, elevation_group: int) -> Decimal:
    """Debt weight of ``reserve``; borrows inside an elevation group are unweighted."""
    if elevation_group != 0:
        return Decimal(1)
    return Decimal(reserve.stats.borrow_factor) / 100

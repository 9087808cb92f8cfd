"""Obligation model: one user's deposits and borrows across a market's reserves."""

from __future__ import annotations

from decimal import Decimal

import pandas as pd

from klend.data.constants import is_not_null_pubkey
from klend.data.interfaces import (
    ObligationCollateral,
    ObligationLiquidity,
    ObligationState,
)
from klend.errors import PositionNotFoundError, ReserveNotFoundError
from klend.position import simulation
from klend.position.stats import (
    BorrowStats,
    DepositStats,
    ObligationStats,
    Position,
    SimulatedObligation,
    ratio_or_zero,
)
from klend.protocol.action import ActionType
from klend.protocol.elevation_group import elevation_groups_for_reserves
from klend.protocol.fraction import bsf_to_decimal, lending_math, sf_to_decimal
from klend.protocol.market import KaminoMarket
from klend.protocol.reserve import KaminoReserve

# Haircut on the theoretical max withdrawal so the result stays under max LTV
WITHDRAW_SAFETY_FACTOR = Decimal("0.995")


def _reserve_or_raise(
    market: KaminoMarket, address: str, kind: str, amount: Decimal
) -> KaminoReserve:
    reserve = market.get_reserve_by_address(address)
    if reserve is None:
        raise ReserveNotFoundError(
            f"Obligation contains a {kind} belonging to reserve {address} but the "
            f"reserve was not found on market {market.address}. "
            f"{kind.capitalize()} amount: {amount}"
        )
    return reserve


@lending_math
def calculate_obligation_deposits(
    market: KaminoMarket,
    state: ObligationState,
    collateral_exchange_rates: dict[str, Decimal] | None = None,
) -> DepositStats:
    """Value every deposit at the oracle price.

    ``collateral_exchange_rates`` maps reserve address to cToken rate; when
    omitted the reserves' last refreshed rates are used.
    """
    user_total_deposit = Decimal(0)
    user_total_collateral_deposit = Decimal(0)
    borrow_limit = Decimal(0)
    borrow_liquidation_limit = Decimal(0)
    deposits: dict[str, Position] = {}

    for deposit in state.deposits:
        if not is_not_null_pubkey(deposit.deposit_reserve):
            continue
        reserve = _reserve_or_raise(
            market,
            deposit.deposit_reserve,
            "deposit",
            Decimal(deposit.deposited_amount),
        )

        loan_to_value = reserve.stats.loan_to_value
        liquidation_threshold = reserve.stats.liquidation_threshold
        if state.elevation_group != 0:
            group = market.get_elevation_group(state.elevation_group)
            loan_to_value = group.ltv
            liquidation_threshold = group.liquidation_threshold

        if collateral_exchange_rates is not None:
            exchange_rate = collateral_exchange_rates[reserve.address]
        else:
            exchange_rate = reserve.get_collateral_exchange_rate()

        supply_amount = Decimal(deposit.deposited_amount) / exchange_rate
        deposit_value_usd = (
            supply_amount
            * reserve.get_oracle_market_price()
            / reserve.get_mint_factor()
        )

        user_total_deposit += deposit_value_usd
        if loan_to_value != 0:
            user_total_collateral_deposit += deposit_value_usd
        borrow_limit += deposit_value_usd * loan_to_value
        borrow_liquidation_limit += deposit_value_usd * liquidation_threshold

        deposits[reserve.address] = Position(
            reserve_address=reserve.address,
            mint_address=reserve.get_liquidity_mint(),
            amount=supply_amount,
            market_value_refreshed=deposit_value_usd,
        )

    return DepositStats(
        deposits=deposits,
        user_total_deposit=user_total_deposit,
        user_total_collateral_deposit=user_total_collateral_deposit,
        borrow_limit=borrow_limit,
        liquidation_ltv=ratio_or_zero(borrow_liquidation_limit, user_total_deposit),
        borrow_liquidation_limit=borrow_liquidation_limit,
    )


@lending_math
def calculate_obligation_borrows(
    market: KaminoMarket,
    state: ObligationState,
    cumulative_borrow_rates: dict[str, Decimal] | None = None,
) -> BorrowStats:
    """Accrue every borrow to the given cumulative borrow rates and value it.

    The recorded debt is scaled by ``reserve_rate / obligation_rate``.
    """
    user_total_borrow = Decimal(0)
    user_total_borrow_bf_adjusted = Decimal(0)
    positions = 0
    borrows: dict[str, Position] = {}

    for borrow in state.borrows:
        if not is_not_null_pubkey(borrow.borrow_reserve):
            continue
        reserve = _reserve_or_raise(
            market,
            borrow.borrow_reserve,
            "borrow",
            KaminoObligation.get_borrow_amount(borrow),
        )

        obligation_cumulative_borrow_rate = KaminoObligation.get_cumulative_borrow_rate(
            borrow
        )
        if cumulative_borrow_rates is not None:
            cumulative_borrow_rate = cumulative_borrow_rates[reserve.address]
        else:
            cumulative_borrow_rate = reserve.get_cumulative_borrow_rate()

        borrow_amount = (
            KaminoObligation.get_borrow_amount(borrow)
            * cumulative_borrow_rate
            / obligation_cumulative_borrow_rate
        )
        borrow_value_usd = (
            borrow_amount
            * reserve.get_oracle_market_price()
            / reserve.get_mint_factor()
        )
        borrow_factor = KaminoObligation.get_borrow_factor_for_reserve(
            reserve, state.elevation_group
        )

        if borrow_amount != 0:
            positions += 1
        user_total_borrow += borrow_value_usd
        user_total_borrow_bf_adjusted += borrow_value_usd * borrow_factor

        borrows[reserve.address] = Position(
            reserve_address=reserve.address,
            mint_address=reserve.get_liquidity_mint(),
            amount=borrow_amount,
            market_value_refreshed=borrow_value_usd,
        )

    return BorrowStats(
        borrows=borrows,
        user_total_borrow=user_total_borrow,
        user_total_borrow_borrow_factor_adjusted=user_total_borrow_bf_adjusted,
        positions=positions,
    )


class KaminoObligation:
    """Snapshot of an obligation valued against a market.

    Positions and aggregate stats are computed once in the constructor.

    Parameters
    ----------
    market : KaminoMarket
        Market holding every reserve the obligation references.
    obligation_address : str
        Obligation account address.
    state : ObligationState
        Decoded obligation account.
    collateral_exchange_rates, cumulative_borrow_rates : dict[str, Decimal], optional
        Per-reserve rates, usually projected to the current slot by
        :func:`klend.position.loader.get_rates_for_obligation`. Reserves'
        last refreshed figures are used when omitted.
    """

    @lending_math
    def __init__(
        self,
        market: KaminoMarket,
        obligation_address: str,
        state: ObligationState,
        collateral_exchange_rates: dict[str, Decimal] | None = None,
        cumulative_borrow_rates: dict[str, Decimal] | None = None,
    ) -> None:
        self._address = obligation_address
        self._state = state

        potential_groups = self.get_elevation_groups(market)
        deposit_stats = calculate_obligation_deposits(
            market, state, collateral_exchange_rates
        )
        borrow_stats = calculate_obligation_borrows(
            market, state, cumulative_borrow_rates
        )

        self._deposits = deposit_stats.deposits
        self._borrows = borrow_stats.borrows

        total_deposit = deposit_stats.user_total_deposit
        bf_adjusted_borrow = borrow_stats.user_total_borrow_borrow_factor_adjusted
        net_account_value = total_deposit - borrow_stats.user_total_borrow
        self._stats = ObligationStats(
            user_total_deposit=total_deposit,
            user_total_borrow=borrow_stats.user_total_borrow,
            user_total_borrow_borrow_factor_adjusted=bf_adjusted_borrow,
            borrow_limit=deposit_stats.borrow_limit,
            borrow_liquidation_limit=deposit_stats.borrow_liquidation_limit,
            borrow_utilization=ratio_or_zero(
                bf_adjusted_borrow, deposit_stats.borrow_limit
            ),
            net_account_value=net_account_value,
            loan_to_value=ratio_or_zero(bf_adjusted_borrow, total_deposit),
            liquidation_ltv=deposit_stats.liquidation_ltv,
            leverage=ratio_or_zero(total_deposit, net_account_value),
            potential_elevation_group_update=tuple(potential_groups),
        )

    @property
    def address(self) -> str:
        return self._address

    @property
    def state(self) -> ObligationState:
        return self._state

    @property
    def stats(self) -> ObligationStats:
        return self._stats

    @property
    def deposits(self) -> dict[str, Position]:
        """Deposits keyed by reserve address."""
        return dict(self._deposits)

    @property
    def borrows(self) -> dict[str, Position]:
        """Borrows keyed by reserve address."""
        return dict(self._borrows)

    @property
    def obligation_tag(self) -> int:
        return self._state.tag

    def __repr__(self) -> str:
        return (
            f"KaminoObligation({self._address}, deposits={len(self._deposits)}, "
            f"borrows={len(self._borrows)})"
        )

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    def get_deposits(self) -> list[Position]:
        return list(self._deposits.values())

    def get_borrows(self) -> list[Position]:
        return list(self._borrows.values())

    def get_deposit_by_reserve(self, reserve: str) -> Position | None:
        return self._deposits.get(reserve)

    def get_borrow_by_reserve(self, reserve: str) -> Position | None:
        return self._borrows.get(reserve)

    def get_deposit_by_mint(self, mint: str) -> Position | None:
        for position in self._deposits.values():
            if position.mint_address == mint:
                return position
        return None

    def get_borrow_by_mint(self, mint: str) -> Position | None:
        for position in self._borrows.values():
            if position.mint_address == mint:
                return position
        return None

    def get_number_of_positions(self) -> int:
        return len(self._deposits) + len(self._borrows)

    def positions_frame(self) -> pd.DataFrame:
        """One row per deposit and borrow."""
        rows = []
        for side, positions in (("deposit", self._deposits), ("borrow", self._borrows)):
            for position in positions.values():
                rows.append(
                    {
                        "side": side,
                        "reserve": position.reserve_address,
                        "mint": position.mint_address,
                        "amount": float(position.amount),
                        "market_value": float(position.market_value_refreshed),
                    }
                )
        return pd.DataFrame(
            rows, columns=["side", "reserve", "mint", "amount", "market_value"]
        )

    # ------------------------------------------------------------------
    # Values cached on-chain at the last refresh (USD)
    # ------------------------------------------------------------------

    def get_deposited_value(self) -> Decimal:
        return sf_to_decimal(self._state.deposited_value_sf)

    def get_borrowed_market_value(self) -> Decimal:
        """Total debt value, no borrow factor."""
        return sf_to_decimal(self._state.borrowed_assets_market_value_sf)

    def get_borrowed_market_value_bf_adjusted(self) -> Decimal:
        return sf_to_decimal(self._state.borrow_factor_adjusted_debt_value_sf)

    def get_allowed_borrow_value(self) -> Decimal:
        """Borrow power relative to each deposit reserve's max LTV."""
        return sf_to_decimal(self._state.allowed_borrow_value_sf)

    def get_unhealthy_borrow_value(self) -> Decimal:
        """Debt value at which the obligation becomes liquidatable."""
        return sf_to_decimal(self._state.unhealthy_borrow_value_sf)

    @staticmethod
    def get_deposit_market_value(deposit: ObligationCollateral) -> Decimal:
        return sf_to_decimal(deposit.market_value_sf)

    @staticmethod
    def get_borrow_market_value(borrow: ObligationLiquidity) -> Decimal:
        return sf_to_decimal(borrow.market_value_sf)

    @staticmethod
    def get_borrow_market_value_bf_adjusted(borrow: ObligationLiquidity) -> Decimal:
        return sf_to_decimal(borrow.borrow_factor_adjusted_market_value_sf)

    @staticmethod
    def get_borrow_amount(borrow: ObligationLiquidity) -> Decimal:
        """Recorded debt in token base units, not accrued."""
        return sf_to_decimal(borrow.borrowed_amount_sf)

    @staticmethod
    def get_cumulative_borrow_rate(borrow: ObligationLiquidity) -> Decimal:
        """Reserve cumulative borrow rate when the borrow was last refreshed."""
        return bsf_to_decimal(borrow.cumulative_borrow_rate_bsf)

    @staticmethod
    def get_borrow_factor_for_reserve(
        reserve: KaminoReserve, elevation_group: int
    ) -> Decimal:
        return simulation.borrow_factor_for_reserve(reserve, elevation_group)

    # ------------------------------------------------------------------
    # Ratios
    # ------------------------------------------------------------------

    def loan_to_value(self) -> Decimal:
        """Borrow-factor adjusted debt over deposits."""
        return ratio_or_zero(
            self._stats.user_total_borrow_borrow_factor_adjusted,
            self._stats.user_total_deposit,
        )

    def get_net_account_value(self) -> Decimal:
        return self._stats.net_account_value

    def get_elevation_groups(self, market: KaminoMarket) -> list[int]:
        """Elevation groups every referenced reserve belongs to."""
        reserves: dict[str, KaminoReserve] = {}
        referenced = [d.deposit_reserve for d in self._state.deposits] + [
            b.borrow_reserve for b in self._state.borrows
        ]
        for address in referenced:
            if not is_not_null_pubkey(address) or address in reserves:
                continue
            reserve = market.get_reserve_by_address(address)
            if reserve is None:
                raise ReserveNotFoundError(
                    f"Reserve {address} not found on market {market.address}"
                )
            reserves[address] = reserve
        return elevation_groups_for_reserves(reserves.values())

    @lending_math
    def estimate_obligation_interest_rate(
        self, reserve: KaminoReserve, borrow: ObligationLiquidity, current_slot: int
    ) -> Decimal:
        """Debt growth factor of ``borrow`` since its last refresh, 0 if none."""
        estimated_rate = reserve.get_estimated_cumulative_borrow_rate(current_slot)
        current_rate = self.get_cumulative_borrow_rate(borrow)
        if estimated_rate > current_rate:
            return estimated_rate / current_rate
        return Decimal(0)

    # ------------------------------------------------------------------
    # Limits
    # ------------------------------------------------------------------

    def _elevation_group_activated(self, reserve: KaminoReserve) -> bool:
        group = self._state.elevation_group
        return group != 0 and group in reserve.elevation_groups

    @lending_math
    def get_max_borrow_amount(
        self, market: KaminoMarket, mint: str, slot: int
    ) -> Decimal:
        """Largest amount of ``mint`` this obligation can borrow at ``slot``."""
        reserve = market.get_reserve_by_mint(mint)
        if reserve is None:
            raise ReserveNotFoundError(f"No reserve found for mint {mint}")

        elevation_group_activated = self._elevation_group_activated(reserve)
        if elevation_group_activated:
            borrow_factor = Decimal(1)
        else:
            borrow_factor = reserve.get_borrow_factor()

        remaining_borrow_value = (
            self._stats.borrow_limit
            - self._stats.user_total_borrow_borrow_factor_adjusted
        )
        max_obligation_borrow_power = (
            remaining_borrow_value
            / borrow_factor
            / reserve.get_oracle_market_price()
            * reserve.get_mint_factor()
        )
        reserve_borrow_cap_remained = (
            reserve.stats.reserve_borrow_limit - reserve.get_borrowed_amount()
        )
        emode_only = reserve.state.config.disable_usage_as_coll_outside_emode == 1
        if emode_only and not elevation_group_activated:
            reserve_borrow_cap_remained = Decimal(0)

        max_borrow_amount = min(
            max_obligation_borrow_power,
            reserve.get_liquidity_available_amount(),
            reserve_borrow_cap_remained,
        )
        max_borrow_amount = reserve.cap_by_debt_withdrawal_cap(max_borrow_amount, slot)
        max_borrow_amount = reserve.net_of_origination_fee(max_borrow_amount)
        return max(Decimal(0), max_borrow_amount)

    @lending_math
    def get_max_withdraw_amount(
        self, market: KaminoMarket, mint: str, slot: int
    ) -> Decimal:
        """Largest amount of ``mint`` withdrawable without exceeding max LTV."""
        reserve = market.get_reserve_by_mint(mint)
        if reserve is None:
            raise ReserveNotFoundError(f"No reserve found for mint {mint}")

        deposit_position = self.get_deposit_by_reserve(reserve.address)
        if deposit_position is None:
            raise PositionNotFoundError(
                f"Obligation {self._address} has no deposit in reserve "
                f"{reserve.address}"
            )
        deposit_amount = deposit_position.amount

        bf_adjusted_debt = self._stats.user_total_borrow_borrow_factor_adjusted
        borrow_limit = self._stats.borrow_limit
        if bf_adjusted_debt == 0:
            return deposit_amount

        if self._elevation_group_activated(reserve):
            group = market.get_elevation_group(self._state.elevation_group)
            reserve_max_ltv = group.ltv
        else:
            reserve_max_ltv = reserve.stats.loan_to_value

        if bf_adjusted_debt >= borrow_limit:
            return Decimal(0)

        if reserve_max_ltv == 0:
            max_withdraw_amount = deposit_amount
        else:
            max_withdraw_value = (
                (borrow_limit - bf_adjusted_debt)
                / reserve_max_ltv
                * WITHDRAW_SAFETY_FACTOR
            )
            max_withdraw_amount = (
                max_withdraw_value
                / reserve.get_oracle_market_price()
                * reserve.get_mint_factor()
            )

        amount = min(
            deposit_amount,
            max_withdraw_amount,
            reserve.get_liquidity_available_amount(),
        )
        capacity = reserve.get_deposit_withdrawal_cap_capacity()
        if capacity > 0:
            remaining = capacity - reserve.get_deposit_withdrawal_cap_current(slot)
            amount = min(amount, remaining)
        return max(Decimal(0), amount)

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    def calculate_simulated_deposit(
        self,
        old_stats: ObligationStats,
        old_deposits: dict[str, Position],
        amount: Decimal,
        mint: str,
        market: KaminoMarket,
    ) -> tuple[ObligationStats, dict[str, Position]]:
        return simulation.calculate_simulated_deposit(
            self, old_stats, old_deposits, amount, mint, market
        )

    def calculate_simulated_borrow(
        self,
        old_stats: ObligationStats,
        old_borrows: dict[str, Position],
        borrow_amount: Decimal,
        mint: str,
        market: KaminoMarket,
    ) -> tuple[ObligationStats, dict[str, Position]]:
        return simulation.calculate_simulated_borrow(
            self, old_stats, old_borrows, borrow_amount, mint, market
        )

    def get_simulated_obligation_stats(
        self,
        amount: Decimal,
        action: ActionType | str,
        mint: str,
        market: KaminoMarket,
        outflow_amount: Decimal | None = None,
        outflow_mint: str | None = None,
    ) -> SimulatedObligation:
        return simulation.get_simulated_obligation_stats(
            self, amount, action, mint, market, outflow_amount, outflow_mint
        )

"""Reserve model: one pooled-asset market at a given slot.

Wraps a decoded :class:`ReserveState` together with an oracle price and derives
supply, debt, fee and rate figures from it. Figures prefixed ``estimated`` are
projected forward to a caller-supplied slot using the same compounding the
on-chain program applies on refresh.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import IntEnum
from typing import TYPE_CHECKING

import pandas as pd

from klend.data.constants import (
    DEFAULT_RECENT_SLOT_DURATION_MS,
    INITIAL_COLLATERAL_RATE,
    SLOTS_PER_DAY,
    SLOTS_PER_SECOND,
    SLOTS_PER_YEAR,
    U64_MAX,
)
from klend.data.interfaces import OraclePrice, ReserveState
from klend.errors import ReserveStatusError, UnsupportedActionError
from klend.protocol.action import ActionType
from klend.protocol.fraction import bsf_to_decimal, lending_math, sf_to_decimal
from klend.protocol.interest_rate import (
    RatePoint,
    calculate_apy_from_apr,
    get_borrow_rate,
    rate_curve_frame,
    truncate_borrow_curve,
)

if TYPE_CHECKING:
    from klend.protocol.market import KaminoMarket


class ReserveStatus(IntEnum):
    ACTIVE = 0
    OBSOLETE = 1
    HIDDEN = 2


def parse_reserve_status(code: int) -> ReserveStatus:
    try:
        return ReserveStatus(code)
    except ValueError:
        raise ReserveStatusError(f"Unknown reserve status code {code}") from None


def parse_token_symbol(name: bytes) -> str:
    """Token name from the fixed-size, NUL-padded config field."""
    return name.split(b"\x00", 1)[0].decode("utf-8", errors="replace")


@lending_math
def approximate_compounded_interest(rate: Decimal, elapsed_slots: int) -> Decimal:
    """Compounding factor for ``rate`` (annual) over ``elapsed_slots``.

    Matches the program's approximation: exact powers up to four slots, then a
    third-order Taylor expansion of ``(1 + base) ** n``. This is deliberately
    not the true power.
    """
    base = rate / SLOTS_PER_YEAR
    if elapsed_slots == 0:
        return Decimal(1)
    if elapsed_slots == 1:
        return base + 1
    if elapsed_slots == 2:
        return (base + 1) * (base + 1)
    if elapsed_slots == 3:
        return (base + 1) * (base + 1) * (base + 1)
    if elapsed_slots == 4:
        pow2 = (base + 1) * (base + 1)
        return pow2 * pow2

    exp = elapsed_slots
    exp_minus_1 = exp - 1
    exp_minus_2 = exp - 2

    base_pow2 = base * base
    base_pow3 = base_pow2 * base

    first_term = base * exp
    second_term = base_pow2 * exp * exp_minus_1 / 2
    third_term = base_pow3 * exp * exp_minus_1 * exp_minus_2 / 6

    return Decimal(1) + first_term + second_term + third_term


@dataclass(frozen=True)
class ReserveStats:
    """Figures derived once from a reserve snapshot."""

    status: ReserveStatus
    mint_address: str
    borrow_curve: tuple[RatePoint, ...]
    loan_to_value: Decimal
    max_liquidation_bonus: Decimal
    min_liquidation_bonus: Decimal
    liquidation_threshold: Decimal
    protocol_take_rate: Decimal
    reserve_deposit_limit: Decimal
    reserve_borrow_limit: Decimal
    symbol: str
    decimals: int
    supply_interest_apy: Decimal
    borrow_interest_apy: Decimal
    accumulated_protocol_fees: Decimal  # token units
    mint_total_supply: Decimal  # cTokens, token units
    deposit_limit_crossed_slot: int
    borrow_limit_crossed_slot: int
    borrow_factor: int  # pct, 100 = no weighting


@dataclass(frozen=True)
class CompoundedInterest:
    """Debt and fee figures after compounding over elapsed slots."""

    new_debt: Decimal
    net_new_debt: Decimal
    variable_protocol_fee: Decimal
    fixed_host_fee: Decimal
    absolute_referral_rate: Decimal
    max_referral_fees: Decimal
    new_acc_protocol_fees: Decimal
    pending_referral_fees: Decimal


@dataclass(frozen=True)
class DebtAndSupply:
    total_borrow: Decimal
    total_supply: Decimal


@dataclass(frozen=True)
class ProtocolFees:
    accumulated_protocol_fees: Decimal
    compounded_variable_protocol_fee: Decimal
    compounded_fixed_host_fee: Decimal


@dataclass(frozen=True)
class ReserveApy:
    interest_apy: Decimal
    total_apy: Decimal


class KaminoReserve:
    """Immutable view over a reserve snapshot and its oracle price.

    A newer snapshot is obtained with :meth:`with_state`; existing instances
    are never modified.
    """

    @lending_math
    def __init__(
        self,
        address: str,
        state: ReserveState,
        oracle_price: OraclePrice,
        recent_slot_duration_ms: int = DEFAULT_RECENT_SLOT_DURATION_MS,
    ) -> None:
        self._address = address
        self._state = state
        self._oracle_price = oracle_price
        self._recent_slot_duration_ms = recent_slot_duration_ms
        self._symbol = parse_token_symbol(state.config.token_name)
        self._stats = self._format_reserve_data()

    def with_state(
        self, state: ReserveState, oracle_price: OraclePrice | None = None
    ) -> KaminoReserve:
        """A new reserve for a fresher snapshot of the same account."""
        return KaminoReserve(
            self._address,
            state,
            oracle_price if oracle_price is not None else self._oracle_price,
            self._recent_slot_duration_ms,
        )

    @property
    def address(self) -> str:
        return self._address

    @property
    def state(self) -> ReserveState:
        return self._state

    @property
    def oracle_price(self) -> OraclePrice:
        return self._oracle_price

    @property
    def stats(self) -> ReserveStats:
        return self._stats

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def recent_slot_duration_ms(self) -> int:
        return self._recent_slot_duration_ms

    @property
    def elevation_groups(self) -> tuple[int, ...]:
        return self._state.config.elevation_groups

    def __repr__(self) -> str:
        return f"KaminoReserve({self._symbol!r}, {self._address})"

    # ------------------------------------------------------------------
    # Getters
    # ------------------------------------------------------------------

    def get_token_symbol(self) -> str:
        return self._symbol

    def get_borrowed_amount(self) -> Decimal:
        return sf_to_decimal(self._state.liquidity.borrowed_amount_sf)

    def get_liquidity_available_amount(self) -> Decimal:
        return Decimal(self._state.liquidity.available_amount)

    def get_reserve_market_price(self) -> Decimal:
        """Last price cached in the reserve on refresh (USD)."""
        return sf_to_decimal(self._state.liquidity.market_price_sf)

    def get_oracle_market_price(self) -> Decimal:
        """Current oracle price (USD)."""
        return self._oracle_price.price

    def get_accumulated_protocol_fees(self) -> Decimal:
        return sf_to_decimal(self._state.liquidity.accumulated_protocol_fees_sf)

    def get_accumulated_referrer_fees(self) -> Decimal:
        return sf_to_decimal(self._state.liquidity.accumulated_referrer_fees_sf)

    def get_pending_referrer_fees(self) -> Decimal:
        return sf_to_decimal(self._state.liquidity.pending_referrer_fees_sf)

    def get_flash_loan_fee(self) -> Decimal:
        fee_sf = self._state.config.fees.flash_loan_fee_sf
        # u64::MAX disables flash loans
        if fee_sf == U64_MAX:
            return Decimal(0)
        return sf_to_decimal(fee_sf)

    def get_borrow_fee(self) -> Decimal:
        """Origination fee rate."""
        return sf_to_decimal(self._state.config.fees.borrow_fee_sf)

    @lending_math
    def get_fixed_host_interest_rate(self) -> Decimal:
        return Decimal(self._state.config.host_fixed_interest_rate_bps) / 10_000

    @lending_math
    def get_total_supply(self) -> Decimal:
        """Total liquidity supply as of the last refresh.

        Use :meth:`get_estimated_total_supply` for a figure at a later slot.
        """
        return (
            self.get_liquidity_available_amount()
            + self.get_borrowed_amount()
            - self.get_accumulated_protocol_fees()
            - self.get_accumulated_referrer_fees()
            - self.get_pending_referrer_fees()
        )

    @lending_math
    def get_estimated_total_supply(self, slot: int, referral_fee_bps: int) -> Decimal:
        return self.get_estimated_debt_and_supply(slot, referral_fee_bps).total_supply

    def get_cumulative_borrow_rate(self) -> Decimal:
        """Cumulative borrow rate as of the last refresh."""
        return bsf_to_decimal(self._state.liquidity.cumulative_borrow_rate_bsf)

    @lending_math
    def get_estimated_cumulative_borrow_rate(self, current_slot: int) -> Decimal:
        current_borrow_rate = self.calculate_borrow_apr()
        compound = approximate_compounded_interest(
            current_borrow_rate, self._slots_elapsed(current_slot)
        )
        return self.get_cumulative_borrow_rate() * compound

    @lending_math
    def get_collateral_exchange_rate(self) -> Decimal:
        """cTokens per unit of liquidity as of the last refresh."""
        return self._collateral_exchange_rate(self.get_total_supply())

    @lending_math
    def get_estimated_collateral_exchange_rate(
        self, slot: int, referral_fee_bps: int
    ) -> Decimal:
        return self._collateral_exchange_rate(
            self.get_estimated_total_supply(slot, referral_fee_bps)
        )

    def _collateral_exchange_rate(self, total_supply: Decimal) -> Decimal:
        mint_total_supply = self._state.collateral.mint_total_supply
        if mint_total_supply == 0 or total_supply == 0:
            return INITIAL_COLLATERAL_RATE
        return Decimal(mint_total_supply) / total_supply

    @lending_math
    def get_deposit_tvl(self) -> Decimal:
        """USD value of all liquidity supplied to the reserve."""
        return (
            self.get_total_supply()
            * self.get_oracle_market_price()
            / self.get_mint_factor()
        )

    @lending_math
    def get_borrow_tvl(self) -> Decimal:
        """USD value of all liquidity borrowed from the reserve."""
        return (
            self.get_borrowed_amount()
            * self.get_oracle_market_price()
            / self.get_mint_factor()
        )

    @lending_math
    def get_mint_factor(self) -> Decimal:
        return Decimal(10) ** self._state.liquidity.mint_decimals

    @lending_math
    def deposit_limit_crossed(self) -> bool:
        return self.get_total_supply() > Decimal(self._state.config.deposit_limit)

    @lending_math
    def borrow_limit_crossed(self) -> bool:
        return self.get_borrowed_amount() > Decimal(self._state.config.borrow_limit)

    def get_deposit_withdrawal_cap_capacity(self) -> Decimal:
        return Decimal(self._state.config.deposit_withdrawal_cap.config_capacity)

    def get_deposit_withdrawal_cap_current(self, slot: int) -> Decimal:
        if self._slots_elapsed(slot) > SLOTS_PER_DAY:
            return Decimal(0)
        return Decimal(self._state.config.deposit_withdrawal_cap.current_total)

    def get_debt_withdrawal_cap_capacity(self) -> Decimal:
        return Decimal(self._state.config.debt_withdrawal_cap.config_capacity)

    def get_debt_withdrawal_cap_current(self, slot: int) -> Decimal:
        if self._slots_elapsed(slot) > SLOTS_PER_DAY:
            return Decimal(0)
        return Decimal(self._state.config.debt_withdrawal_cap.current_total)

    def get_borrow_limit_outside_elevation_group(self) -> Decimal:
        return Decimal(self._state.config.borrow_limit_outside_elevation_group)

    def get_borrowed_amount_outside_elevation_group(self) -> Decimal:
        return Decimal(self._state.borrowed_amount_outside_elevation_group)

    def get_borrow_limit_against_collateral_in_elevation_group(
        self, group_index: int
    ) -> Decimal:
        """Debt limit against this collateral in group ``group_index + 1``."""
        config = self._state.config
        limits = config.borrow_limit_against_this_collateral_in_elevation_group
        return Decimal(limits[group_index])

    def get_borrowed_amount_against_collateral_in_elevation_group(
        self, group_index: int
    ) -> Decimal:
        amounts = self._state.borrowed_amounts_against_this_reserve_in_elevation_groups
        return Decimal(amounts[group_index])

    @lending_math
    def get_borrow_factor(self) -> Decimal:
        return Decimal(self._state.config.borrow_factor_pct) / 100

    def get_liquidity_mint(self) -> str:
        return self._state.liquidity.mint_pubkey

    def get_liquidity_token_program(self) -> str:
        return self._state.liquidity.token_program

    def get_ctoken_mint(self) -> str:
        """Mint of the collateral token issued for deposits."""
        return self._state.collateral.mint_pubkey

    # ------------------------------------------------------------------
    # Rates
    # ------------------------------------------------------------------

    @lending_math
    def slot_adjustment_factor(self) -> Decimal:
        """Rescales slot-indexed rates to wall-clock time."""
        return Decimal(1000) / SLOTS_PER_SECOND / Decimal(self._recent_slot_duration_ms)

    @lending_math
    def calculate_utilization_ratio(self) -> Decimal:
        total_supply = self.get_total_supply()
        if total_supply == 0:
            return Decimal(0)
        return self.get_borrowed_amount() / total_supply

    @lending_math
    def calculate_borrow_apr(self) -> Decimal:
        curve = truncate_borrow_curve(self._state.config.borrow_rate_curve)
        rate = get_borrow_rate(self.calculate_utilization_ratio(), curve)
        return rate * self.slot_adjustment_factor()

    @lending_math
    def calculate_supply_apr(self) -> Decimal:
        protocol_take = 1 - Decimal(self._state.config.protocol_take_rate_pct) / 100
        utilization = self.calculate_utilization_ratio()
        return utilization * self.calculate_borrow_apr() * protocol_take

    def total_supply_apy(self) -> ReserveApy:
        return ReserveApy(
            interest_apy=self._stats.supply_interest_apy,
            total_apy=self._stats.supply_interest_apy,
        )

    def total_borrow_apy(self) -> ReserveApy:
        return ReserveApy(
            interest_apy=self._stats.borrow_interest_apy,
            total_apy=self._stats.borrow_interest_apy,
        )

    @lending_math
    def rate_curve(self, n_points: int = 101) -> pd.DataFrame:
        """Borrow/supply APR across utilization, for plotting."""
        return rate_curve_frame(
            self._stats.borrow_curve,
            slot_adjustment_factor=self.slot_adjustment_factor(),
            protocol_take_rate=self._stats.protocol_take_rate,
            n_points=n_points,
        )

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def _slots_elapsed(self, slot: int) -> int:
        return max(slot - self._state.last_update.slot, 0)

    @lending_math
    def compound_interest(
        self, slots_elapsed: int, referral_fee_bps: int
    ) -> CompoundedInterest:
        """Compound the current borrow rate over ``slots_elapsed``.

        Also splits the accrued interest into protocol fees (variable take plus
        fixed host rate) and referral fees, which accrue as pending.
        """
        current_borrow_rate = self.calculate_borrow_apr()
        protocol_take_rate = Decimal(self._state.config.protocol_take_rate_pct) / 100
        referral_rate = Decimal(referral_fee_bps) / 10_000
        fixed_host_interest_rate = self.get_fixed_host_interest_rate()

        compounded_interest_rate = approximate_compounded_interest(
            current_borrow_rate + fixed_host_interest_rate, slots_elapsed
        )
        compounded_fixed_rate = approximate_compounded_interest(
            fixed_host_interest_rate, slots_elapsed
        )

        previous_debt = self.get_borrowed_amount()
        new_debt = previous_debt * compounded_interest_rate
        fixed_host_fee = previous_debt * compounded_fixed_rate - previous_debt

        net_new_debt = new_debt - previous_debt - fixed_host_fee

        variable_protocol_fee = net_new_debt * protocol_take_rate
        absolute_referral_rate = protocol_take_rate * referral_rate
        max_referral_fees = net_new_debt * absolute_referral_rate

        new_acc_protocol_fees = (
            variable_protocol_fee
            + fixed_host_fee
            - max_referral_fees
            + self.get_accumulated_protocol_fees()
        )
        pending_referral_fees = self.get_pending_referrer_fees() + max_referral_fees

        return CompoundedInterest(
            new_debt=new_debt,
            net_new_debt=net_new_debt,
            variable_protocol_fee=variable_protocol_fee,
            fixed_host_fee=fixed_host_fee,
            absolute_referral_rate=absolute_referral_rate,
            max_referral_fees=max_referral_fees,
            new_acc_protocol_fees=new_acc_protocol_fees,
            pending_referral_fees=pending_referral_fees,
        )

    @lending_math
    def get_estimated_debt_and_supply(
        self, slot: int, referral_fee_bps: int
    ) -> DebtAndSupply:
        slots_elapsed = self._slots_elapsed(slot)
        if slots_elapsed == 0:
            return DebtAndSupply(
                total_borrow=self.get_borrowed_amount(),
                total_supply=self.get_total_supply(),
            )

        interest = self.compound_interest(slots_elapsed, referral_fee_bps)
        new_total_supply = (
            self.get_liquidity_available_amount()
            + interest.new_debt
            - interest.new_acc_protocol_fees
            - self.get_accumulated_referrer_fees()
            - interest.pending_referral_fees
        )
        return DebtAndSupply(
            total_borrow=interest.new_debt, total_supply=new_total_supply
        )

    @lending_math
    def get_estimated_accumulated_protocol_fees(
        self, slot: int, referral_fee_bps: int
    ) -> ProtocolFees:
        slots_elapsed = self._slots_elapsed(slot)
        if slots_elapsed == 0:
            return ProtocolFees(
                accumulated_protocol_fees=self.get_accumulated_protocol_fees(),
                compounded_variable_protocol_fee=Decimal(0),
                compounded_fixed_host_fee=Decimal(0),
            )

        interest = self.compound_interest(slots_elapsed, referral_fee_bps)
        return ProtocolFees(
            accumulated_protocol_fees=interest.new_acc_protocol_fees,
            compounded_variable_protocol_fee=interest.variable_protocol_fee,
            compounded_fixed_host_fee=interest.fixed_host_fee,
        )

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    @lending_math
    def calc_simulated_utilization_ratio(
        self,
        amount: Decimal,
        action: ActionType | str,
        slot: int,
        referral_fee_bps: int,
        outflow_amount: Decimal | None = None,
    ) -> Decimal:
        """Utilization after ``action`` is applied at ``slot``."""
        action = ActionType.parse(action)
        estimate = self.get_estimated_debt_and_supply(slot, referral_fee_bps)
        borrowed = estimate.total_borrow
        supply = estimate.total_supply

        if action in (ActionType.DEPOSIT, ActionType.MINT):
            return _utilization(borrowed, supply + amount)
        if action in (ActionType.WITHDRAW, ActionType.REDEEM):
            return _utilization(borrowed, supply - amount)
        if action == ActionType.BORROW:
            return _utilization(borrowed + amount, supply)
        if action == ActionType.REPAY:
            return _utilization(borrowed - amount, supply)
        if action == ActionType.DEPOSIT_AND_BORROW:
            return _utilization(
                borrowed + _require_outflow(action, outflow_amount), supply + amount
            )
        if action == ActionType.REPAY_AND_WITHDRAW:
            return _utilization(
                borrowed - amount, supply - _require_outflow(action, outflow_amount)
            )
        raise UnsupportedActionError(
            f"Invalid action type {action.value} for simulated utilization ratio"
        )

    @lending_math
    def calc_simulated_borrow_apr(
        self,
        amount: Decimal,
        action: ActionType | str,
        slot: int,
        referral_fee_bps: int,
        outflow_amount: Decimal | None = None,
    ) -> Decimal:
        new_utilization = self.calc_simulated_utilization_ratio(
            amount, action, slot, referral_fee_bps, outflow_amount
        )
        rate = get_borrow_rate(new_utilization, self._stats.borrow_curve)
        return rate * self.slot_adjustment_factor()

    @lending_math
    def calc_simulated_supply_apr(
        self,
        amount: Decimal,
        action: ActionType | str,
        slot: int,
        referral_fee_bps: int,
        outflow_amount: Decimal | None = None,
    ) -> Decimal:
        new_utilization = self.calc_simulated_utilization_ratio(
            amount, action, slot, referral_fee_bps, outflow_amount
        )
        simulated_borrow_apr = self.calc_simulated_borrow_apr(
            amount, action, slot, referral_fee_bps, outflow_amount
        )
        protocol_take = 1 - self._stats.protocol_take_rate
        return new_utilization * simulated_borrow_apr * protocol_take

    @lending_math
    def get_max_borrow_amount_with_coll_reserve(
        self, market: KaminoMarket, coll_reserve: KaminoReserve, slot: int
    ) -> Decimal:
        """Largest amount borrowable from this reserve against ``coll_reserve``.

        Applies, in order: available liquidity, remaining borrow cap, remaining
        daily debt cap, inclusive origination fee, utilization ceiling and the
        elevation-group scoped debt limit.
        """
        debt_groups = self.elevation_groups
        common_groups = [
            group
            for group in coll_reserve.elevation_groups
            if group != 0
            and group in debt_groups
            and market.get_elevation_group(group).debt_reserve == self._address
        ]

        emode_group = 0
        if common_groups:
            best = market.get_elevation_group(common_groups[0])
            for group_id in common_groups[1:]:
                candidate = market.get_elevation_group(group_id)
                if candidate.ltv_pct >= best.ltv_pct:
                    best = candidate
            emode_group = best.id

        elevation_group_activated = emode_group != 0 and emode_group in debt_groups

        reserve_borrow_cap_remained = (
            self._stats.reserve_borrow_limit - self.get_borrowed_amount()
        )
        max_borrow_amount = min(
            self.get_liquidity_available_amount(), reserve_borrow_cap_remained
        )

        max_borrow_amount = self.cap_by_debt_withdrawal_cap(max_borrow_amount, slot)
        max_borrow_amount = self.net_of_origination_fee(max_borrow_amount)

        config = self._state.config
        utilization_limit = (
            Decimal(config.utilization_limit_block_borrowing_above) / 100
        )
        if utilization_limit > 0:
            current_utilization = self.calculate_utilization_ratio()
            if current_utilization > utilization_limit:
                return Decimal(0)
            max_borrow_based_on_utilization = (
                utilization_limit - current_utilization
            ) * self.get_total_supply()
            max_borrow_amount = min(max_borrow_amount, max_borrow_based_on_utilization)

        if not elevation_group_activated:
            group_limit = (
                self.get_borrow_limit_outside_elevation_group()
                - self.get_borrowed_amount_outside_elevation_group()
            )
        else:
            group_index = emode_group - 1
            limit = self.get_borrow_limit_against_collateral_in_elevation_group(
                group_index
            )
            borrowed = self.get_borrowed_amount_against_collateral_in_elevation_group(
                group_index
            )
            max_debt_allowed_against_collateral = limit - borrowed
            group_limit = max(
                Decimal(0), min(max_debt_allowed_against_collateral, Decimal(U64_MAX))
            )

        max_borrow_amount = min(max_borrow_amount, group_limit)
        return max(Decimal(0), max_borrow_amount)

    @lending_math
    def cap_by_debt_withdrawal_cap(self, amount: Decimal, slot: int) -> Decimal:
        capacity = self.get_debt_withdrawal_cap_capacity()
        if capacity > 0:
            return min(amount, capacity - self.get_debt_withdrawal_cap_current(slot))
        return amount

    @lending_math
    def net_of_origination_fee(self, amount: Decimal) -> Decimal:
        # Inclusive fee: amount + amount * fee must fit in ``amount``
        fee_rate = self.get_borrow_fee()
        inclusive_rate = fee_rate / (fee_rate + 1)
        return amount - amount * inclusive_rate

    # ------------------------------------------------------------------
    # Derived stats
    # ------------------------------------------------------------------

    def _format_reserve_data(self) -> ReserveStats:
        state = self._state
        config = state.config
        mint_factor = self.get_mint_factor()
        return ReserveStats(
            status=parse_reserve_status(config.status),
            mint_address=state.liquidity.mint_pubkey,
            borrow_curve=truncate_borrow_curve(config.borrow_rate_curve),
            loan_to_value=Decimal(config.loan_to_value_pct) / 100,
            max_liquidation_bonus=Decimal(config.max_liquidation_bonus_bps) / 10_000,
            min_liquidation_bonus=Decimal(config.min_liquidation_bonus_bps) / 10_000,
            liquidation_threshold=Decimal(config.liquidation_threshold_pct) / 100,
            protocol_take_rate=Decimal(config.protocol_take_rate_pct) / 100,
            reserve_deposit_limit=Decimal(config.deposit_limit),
            reserve_borrow_limit=Decimal(config.borrow_limit),
            symbol=self._symbol,
            decimals=state.liquidity.mint_decimals,
            supply_interest_apy=calculate_apy_from_apr(self.calculate_supply_apr()),
            borrow_interest_apy=calculate_apy_from_apr(self.calculate_borrow_apr()),
            accumulated_protocol_fees=(
                self.get_accumulated_protocol_fees() / mint_factor
            ),
            mint_total_supply=Decimal(state.collateral.mint_total_supply) / mint_factor,
            deposit_limit_crossed_slot=state.liquidity.deposit_limit_crossed_slot,
            borrow_limit_crossed_slot=state.liquidity.borrow_limit_crossed_slot,
            borrow_factor=config.borrow_factor_pct,
        )


def _utilization(borrowed: Decimal, supply: Decimal) -> Decimal:
    if supply == 0:
        return Decimal(0)
    return borrowed / supply


def _require_outflow(action: ActionType, outflow_amount: Decimal | None) -> Decimal:
    if outflow_amount is None:
        raise UnsupportedActionError(
            f"Action {action.value} requires an outflow amount"
        )
    return outflow_amount

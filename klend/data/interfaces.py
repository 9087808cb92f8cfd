"""Decoded account records and the abstract data provider interface.

Records mirror the on-chain account layouts after decoding. Integer fields hold
raw on-chain values (token base units, ``*_sf`` scaled fractions, ``*_bsf``
little-endian u64 limbs); conversion to decimals happens in the models.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal

from klend.data.constants import NULL_PUBKEY, U64_MAX
from klend.protocol.elevation_group import ElevationGroup

ELEVATION_GROUP_SLOTS = 32
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"


def _zero_bsf() -> tuple[int, ...]:
    return (0, 0, 0, 0)


def _zero_group_limits() -> tuple[int, ...]:
    return (0,) * ELEVATION_GROUP_SLOTS


# ---------------------------------------------------------------------------
# Reserve
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CurvePoint:
    """One control point of the borrow rate curve, both axes in bps."""

    utilization_rate_bps: int
    borrow_rate_bps: int


@dataclass(frozen=True)
class WithdrawalCap:
    """Rolling daily outflow cap."""

    config_capacity: int = 0
    current_total: int = 0
    last_interval_start_timestamp: int = 0
    config_interval_length_seconds: int = 0


@dataclass(frozen=True)
class ReserveFees:
    borrow_fee_sf: int = 0
    flash_loan_fee_sf: int = 0


@dataclass(frozen=True)
class ReserveConfig:
    """Risk and fee configuration of a reserve."""

    status: int = 0
    loan_to_value_pct: int = 0
    liquidation_threshold_pct: int = 0
    min_liquidation_bonus_bps: int = 0
    max_liquidation_bonus_bps: int = 0
    protocol_take_rate_pct: int = 0
    borrow_factor_pct: int = 100
    deposit_limit: int = 0
    borrow_limit: int = 0
    borrow_rate_curve: tuple[CurvePoint, ...] = ()
    fees: ReserveFees = field(default_factory=ReserveFees)
    host_fixed_interest_rate_bps: int = 0
    elevation_groups: tuple[int, ...] = ()
    disable_usage_as_coll_outside_emode: int = 0
    utilization_limit_block_borrowing_above: int = 0  # pct, 0 = disabled
    borrow_limit_outside_elevation_group: int = U64_MAX
    borrow_limit_against_this_collateral_in_elevation_group: tuple[int, ...] = field(
        default_factory=_zero_group_limits
    )
    deposit_withdrawal_cap: WithdrawalCap = field(default_factory=WithdrawalCap)
    debt_withdrawal_cap: WithdrawalCap = field(default_factory=WithdrawalCap)
    token_name: bytes = b""


@dataclass(frozen=True)
class ReserveLiquidity:
    mint_pubkey: str
    mint_decimals: int
    available_amount: int = 0
    borrowed_amount_sf: int = 0
    market_price_sf: int = 0
    cumulative_borrow_rate_bsf: tuple[int, ...] = field(default_factory=_zero_bsf)
    accumulated_protocol_fees_sf: int = 0
    accumulated_referrer_fees_sf: int = 0
    pending_referrer_fees_sf: int = 0
    token_program: str = TOKEN_PROGRAM_ID
    deposit_limit_crossed_slot: int = 0
    borrow_limit_crossed_slot: int = 0


@dataclass(frozen=True)
class ReserveCollateral:
    mint_pubkey: str
    mint_total_supply: int = 0


@dataclass(frozen=True)
class LastUpdate:
    slot: int = 0
    stale: bool = False


@dataclass(frozen=True)
class ReserveState:
    """Decoded reserve account."""

    lending_market: str
    liquidity: ReserveLiquidity
    collateral: ReserveCollateral
    config: ReserveConfig = field(default_factory=ReserveConfig)
    last_update: LastUpdate = field(default_factory=LastUpdate)
    borrowed_amount_outside_elevation_group: int = 0
    borrowed_amounts_against_this_reserve_in_elevation_groups: tuple[int, ...] = field(
        default_factory=_zero_group_limits
    )


# ---------------------------------------------------------------------------
# Obligation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ObligationCollateral:
    """One deposit slot of an obligation (amount in cTokens)."""

    deposit_reserve: str = NULL_PUBKEY
    deposited_amount: int = 0
    market_value_sf: int = 0


@dataclass(frozen=True)
class ObligationLiquidity:
    """One borrow slot of an obligation."""

    borrow_reserve: str = NULL_PUBKEY
    cumulative_borrow_rate_bsf: tuple[int, ...] = field(default_factory=_zero_bsf)
    borrowed_amount_sf: int = 0
    market_value_sf: int = 0
    borrow_factor_adjusted_market_value_sf: int = 0


@dataclass(frozen=True)
class ObligationState:
    """Decoded obligation account."""

    lending_market: str
    owner: str
    tag: int = 0
    last_update: LastUpdate = field(default_factory=LastUpdate)
    deposits: tuple[ObligationCollateral, ...] = ()
    borrows: tuple[ObligationLiquidity, ...] = ()
    deposited_value_sf: int = 0
    borrow_factor_adjusted_debt_value_sf: int = 0
    borrowed_assets_market_value_sf: int = 0
    allowed_borrow_value_sf: int = 0
    unhealthy_borrow_value_sf: int = 0
    elevation_group: int = 0


# ---------------------------------------------------------------------------
# Market / oracle
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LendingMarketState:
    """Decoded lending market account (only the fields the models read)."""

    referral_fee_bps: int = 0
    elevation_groups: tuple[ElevationGroup, ...] = ()


@dataclass(frozen=True)
class OraclePrice:
    """Token price in USD as reported by the oracle layer."""

    mint: str
    price: Decimal
    timestamp: int = 0
    decimals: int = 0
    valid: bool = True


class MarketDataProvider(ABC):
    """Abstract interface for account reads.

    Implementations own networking, retries and decoding; models only consume
    the typed records.
    """

    @abstractmethod
    def get_slot(self) -> int:
        """Current chain slot."""

    @abstractmethod
    def get_lending_market(self, address: str) -> LendingMarketState:
        """Decoded lending market account."""

    @abstractmethod
    def get_reserves(self, market_address: str) -> dict[str, ReserveState]:
        """All reserves of a market keyed by reserve address."""

    @abstractmethod
    def get_oracle_prices(
        self, reserves: dict[str, ReserveState]
    ) -> dict[str, OraclePrice]:
        """Oracle prices keyed by reserve address."""

    @abstractmethod
    def get_obligation(self, address: str) -> ObligationState | None:
        """Decoded obligation, or None if the account does not exist."""

    @abstractmethod
    def get_obligations(self, addresses: list[str]) -> list[ObligationState | None]:
        """Batched obligation read, order preserved."""

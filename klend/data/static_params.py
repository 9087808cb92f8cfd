"""In-memory data provider with a representative sample market.

The sample market holds SOL, USDC and JitoSOL reserves, one elevation group
(SOL-correlated collateral borrowing SOL) and two obligations. Any part of it
can be replaced through the constructor, which is how the tests build their
own markets.
"""

from decimal import Decimal

from klend.data.interfaces import (
    CurvePoint,
    LastUpdate,
    LendingMarketState,
    MarketDataProvider,
    ObligationCollateral,
    ObligationLiquidity,
    ObligationState,
    OraclePrice,
    ReserveCollateral,
    ReserveConfig,
    ReserveFees,
    ReserveLiquidity,
    ReserveState,
)
from klend.errors import KlendError
from klend.protocol.elevation_group import ElevationGroup
from klend.protocol.fraction import Fraction, int_to_bsf

SAMPLE_SLOT = 290_000_000
SAMPLE_MARKET = "7u3HeHxYDLhnCoErrtycNokbQYbWGzLs6JSDqGAv5PfF"

SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
JITOSOL_MINT = "J1toso1uCk3RLmjorhTtrVwY9HJ7X8V9yYac6Y7kGCPn"

SOL_RESERVE = "d4A2prbA2whesmvHaL88BH6Ewn5N4bTSU2Ze8P6Bc4Q"
USDC_RESERVE = "D6q6wuQSrifJKZYpR1M8R4YawnLDtDsMmWM1NbBmgJ59"
JITOSOL_RESERVE = "EVbyPKrHG6WBfm4dLxLMJpUDY43cCAcHSpV3KYjKsktW"

OWNER = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
VANILLA_OBLIGATION = "HvWQhWxtzKNFk7M6HKA2KTS8FukHLDXVRH7Nv3QXs3Mk"
SOL_EMODE_OBLIGATION = "5zb8XwSS3hHPAyY2xwnDnqzqT4Am6ymDXbRzHbhjxbTR"

SOL_CORRELATED_GROUP = 1


def _sf(value: str | int) -> int:
    return Fraction.from_decimal(Decimal(value)).value_sf


def _bsf(value: str | int) -> tuple[int, ...]:
    return int_to_bsf(_sf(value))


def _name(symbol: str) -> bytes:
    return symbol.encode().ljust(32, b"\x00")


# --- Sample market configuration ---

_ELEVATION_GROUPS = (
    ElevationGroup(
        id=SOL_CORRELATED_GROUP,
        ltv_pct=90,
        liquidation_threshold_pct=92,
        max_liquidation_bonus_bps=200,
        allow_new_loans=True,
        debt_reserve=SOL_RESERVE,
    ),
)

_MARKET_STATE = LendingMarketState(
    referral_fee_bps=0, elevation_groups=_ELEVATION_GROUPS
)

_SOL_CURVE = (
    CurvePoint(0, 0),
    CurvePoint(8_000, 800),
    CurvePoint(9_000, 2_000),
    CurvePoint(10_000, 15_000),
)

_USDC_CURVE = (
    CurvePoint(0, 0),
    CurvePoint(9_000, 1_200),
    CurvePoint(10_000, 10_000),
)

_LAST_UPDATE = LastUpdate(slot=SAMPLE_SLOT - 150)

_RESERVES: dict[str, ReserveState] = {
    SOL_RESERVE: ReserveState(
        lending_market=SAMPLE_MARKET,
        liquidity=ReserveLiquidity(
            mint_pubkey=SOL_MINT,
            mint_decimals=9,
            available_amount=1_800_000 * 10**9,
            borrowed_amount_sf=_sf(1_450_000 * 10**9),
            market_price_sf=_sf("145.2"),
            cumulative_borrow_rate_bsf=_bsf("1.087"),
            accumulated_protocol_fees_sf=_sf(1_200 * 10**9),
        ),
        collateral=ReserveCollateral(
            mint_pubkey="2UywZrUdyqs5vDchy7fKQJKau2RVyuzBev2XKGPDSiX1",
            mint_total_supply=3_080_000 * 10**9,
        ),
        config=ReserveConfig(
            loan_to_value_pct=74,
            liquidation_threshold_pct=75,
            min_liquidation_bonus_bps=200,
            max_liquidation_bonus_bps=1_000,
            protocol_take_rate_pct=15,
            borrow_factor_pct=100,
            deposit_limit=5_000_000 * 10**9,
            borrow_limit=3_000_000 * 10**9,
            borrow_rate_curve=_SOL_CURVE,
            fees=ReserveFees(borrow_fee_sf=_sf("0.001")),
            elevation_groups=(SOL_CORRELATED_GROUP,),
            utilization_limit_block_borrowing_above=95,
            token_name=_name("SOL"),
        ),
        last_update=_LAST_UPDATE,
    ),
    USDC_RESERVE: ReserveState(
        lending_market=SAMPLE_MARKET,
        liquidity=ReserveLiquidity(
            mint_pubkey=USDC_MINT,
            mint_decimals=6,
            available_amount=95_000_000 * 10**6,
            borrowed_amount_sf=_sf(160_000_000 * 10**6),
            market_price_sf=_sf(1),
            cumulative_borrow_rate_bsf=_bsf("1.142"),
        ),
        collateral=ReserveCollateral(
            mint_pubkey="B8V6WVjPxW1UGwVDfxH2d2r8SyT4cqn7dQRK6XneVa7D",
            mint_total_supply=236_000_000 * 10**6,
        ),
        config=ReserveConfig(
            loan_to_value_pct=80,
            liquidation_threshold_pct=85,
            min_liquidation_bonus_bps=200,
            max_liquidation_bonus_bps=500,
            protocol_take_rate_pct=10,
            borrow_factor_pct=100,
            deposit_limit=300_000_000 * 10**6,
            borrow_limit=250_000_000 * 10**6,
            borrow_rate_curve=_USDC_CURVE,
            fees=ReserveFees(borrow_fee_sf=_sf("0.0005")),
            token_name=_name("USDC"),
        ),
        last_update=_LAST_UPDATE,
    ),
    JITOSOL_RESERVE: ReserveState(
        lending_market=SAMPLE_MARKET,
        liquidity=ReserveLiquidity(
            mint_pubkey=JITOSOL_MINT,
            mint_decimals=9,
            available_amount=900_000 * 10**9,
            borrowed_amount_sf=_sf(12_000 * 10**9),
            market_price_sf=_sf("168.9"),
            cumulative_borrow_rate_bsf=_bsf("1.003"),
        ),
        collateral=ReserveCollateral(
            mint_pubkey="6sga2ts9ALPo2cAqSRzqB3Dfc1eYBTazkEthE4RZBwbZ",
            mint_total_supply=911_000 * 10**9,
        ),
        config=ReserveConfig(
            loan_to_value_pct=65,
            liquidation_threshold_pct=70,
            min_liquidation_bonus_bps=200,
            max_liquidation_bonus_bps=1_000,
            protocol_take_rate_pct=15,
            borrow_factor_pct=150,
            deposit_limit=2_000_000 * 10**9,
            borrow_limit=100_000 * 10**9,
            borrow_rate_curve=_SOL_CURVE,
            elevation_groups=(SOL_CORRELATED_GROUP,),
            token_name=_name("JITOSOL"),
        ),
        last_update=_LAST_UPDATE,
    ),
}

# USD prices by mint
_ORACLE_PRICES: dict[str, Decimal] = {
    SOL_MINT: Decimal("145.37"),
    USDC_MINT: Decimal("0.99995"),
    JITOSOL_MINT: Decimal("169.12"),
}

_OBLIGATIONS: dict[str, ObligationState] = {
    VANILLA_OBLIGATION: ObligationState(
        lending_market=SAMPLE_MARKET,
        owner=OWNER,
        last_update=_LAST_UPDATE,
        deposits=(
            ObligationCollateral(
                deposit_reserve=SOL_RESERVE, deposited_amount=95 * 10**9
            ),
            ObligationCollateral(),
        ),
        borrows=(
            ObligationLiquidity(
                borrow_reserve=USDC_RESERVE,
                cumulative_borrow_rate_bsf=_bsf("1.141"),
                borrowed_amount_sf=_sf(4_000 * 10**6),
            ),
        ),
    ),
    SOL_EMODE_OBLIGATION: ObligationState(
        lending_market=SAMPLE_MARKET,
        owner=OWNER,
        last_update=_LAST_UPDATE,
        deposits=(
            ObligationCollateral(
                deposit_reserve=JITOSOL_RESERVE, deposited_amount=500 * 10**9
            ),
        ),
        borrows=(
            ObligationLiquidity(
                borrow_reserve=SOL_RESERVE,
                cumulative_borrow_rate_bsf=_bsf("1.080"),
                borrowed_amount_sf=_sf(300 * 10**9),
            ),
        ),
        elevation_group=SOL_CORRELATED_GROUP,
    ),
}


class StaticDataProvider(MarketDataProvider):
    """Data provider serving a fixed market snapshot from memory."""

    def __init__(
        self,
        market_address: str = SAMPLE_MARKET,
        market_state: LendingMarketState | None = None,
        reserves: dict[str, ReserveState] | None = None,
        prices: dict[str, Decimal] | None = None,
        obligations: dict[str, ObligationState] | None = None,
        slot: int = SAMPLE_SLOT,
    ) -> None:
        self._market_address = market_address
        self._market_state = market_state if market_state is not None else _MARKET_STATE
        self._reserves = dict(reserves if reserves is not None else _RESERVES)
        self._prices = dict(prices if prices is not None else _ORACLE_PRICES)
        self._obligations = dict(
            obligations if obligations is not None else _OBLIGATIONS
        )
        self._slot = slot

    def get_slot(self) -> int:
        return self._slot

    def get_lending_market(self, address: str) -> LendingMarketState:
        if address != self._market_address:
            raise KlendError(f"Unknown lending market {address}")
        return self._market_state

    def get_reserves(self, market_address: str) -> dict[str, ReserveState]:
        return {
            address: state
            for address, state in self._reserves.items()
            if state.lending_market == market_address
        }

    def get_oracle_prices(
        self, reserves: dict[str, ReserveState]
    ) -> dict[str, OraclePrice]:
        prices = {}
        for address, state in reserves.items():
            mint = state.liquidity.mint_pubkey
            if mint in self._prices:
                prices[address] = OraclePrice(
                    mint=mint,
                    price=self._prices[mint],
                    decimals=state.liquidity.mint_decimals,
                )
        return prices

    def get_obligation(self, address: str) -> ObligationState | None:
        return self._obligations.get(address)

    def get_obligations(self, addresses: list[str]) -> list[ObligationState | None]:
        return [self._obligations.get(address) for address in addresses]

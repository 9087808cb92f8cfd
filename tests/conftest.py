"""Builders for reserves, markets and obligations used across the test suite."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable

import pytest

from klend.data.interfaces import (
    CurvePoint,
    LastUpdate,
    LendingMarketState,
    ObligationCollateral,
    ObligationLiquidity,
    ObligationState,
    OraclePrice,
    ReserveCollateral,
    ReserveConfig,
    ReserveLiquidity,
    ReserveState,
)
from klend.position.obligation import KaminoObligation
from klend.protocol.elevation_group import ElevationGroup
from klend.protocol.fraction import Fraction, int_to_bsf
from klend.protocol.market import KaminoMarket
from klend.protocol.reserve import KaminoReserve

MARKET = "TestMarket1111111111111111111111111111111111"
OWNER = "TestOwner11111111111111111111111111111111111"

# 1 bps at every utilization
FLAT_CURVE = (CurvePoint(0, 1), CurvePoint(10_000, 1))

NO_CAP = 10**30


def sf(value: Decimal | int | str) -> int:
    return Fraction.from_decimal(Decimal(value)).value_sf


def bsf(value: Decimal | int | str) -> tuple[int, ...]:
    return int_to_bsf(sf(value))


@pytest.fixture
def make_reserve() -> Callable[..., KaminoReserve]:
    """Build a reserve from token-unit figures.

    Keyword arguments not listed below are forwarded to ``ReserveConfig``.
    """

    def _make(
        address: str = "Reserve",
        mint: str = "Mint",
        decimals: int = 6,
        available: int = 1_000_000,
        borrowed: Decimal | int = 0,
        borrowed_amount_sf: int | None = None,
        ctoken_supply: int | None = None,
        price: Decimal | int | str = 1,
        cumulative_borrow_rate: Decimal | int | str = 1,
        last_update_slot: int = 0,
        recent_slot_duration_ms: int = 450,
        symbol: str | None = None,
        state_overrides: dict[str, Any] | None = None,
        **config_overrides: Any,
    ) -> KaminoReserve:
        config_kwargs: dict[str, Any] = {
            "loan_to_value_pct": 80,
            "liquidation_threshold_pct": 85,
            "deposit_limit": NO_CAP,
            "borrow_limit": NO_CAP,
            "borrow_rate_curve": FLAT_CURVE,
            "token_name": (symbol or address).encode(),
        }
        config_kwargs.update(config_overrides)
        if borrowed_amount_sf is None:
            borrowed_amount_sf = sf(borrowed)
        if ctoken_supply is None:
            ctoken_supply = available + int(borrowed)

        state = ReserveState(
            lending_market=MARKET,
            liquidity=ReserveLiquidity(
                mint_pubkey=mint,
                mint_decimals=decimals,
                available_amount=available,
                borrowed_amount_sf=borrowed_amount_sf,
                market_price_sf=sf(price),
                cumulative_borrow_rate_bsf=bsf(cumulative_borrow_rate),
            ),
            collateral=ReserveCollateral(
                mint_pubkey=f"{mint}Collateral", mint_total_supply=ctoken_supply
            ),
            config=ReserveConfig(**config_kwargs),
            last_update=LastUpdate(slot=last_update_slot),
            **(state_overrides or {}),
        )
        oracle_price = OraclePrice(mint=mint, price=Decimal(price), decimals=decimals)
        return KaminoReserve(address, state, oracle_price, recent_slot_duration_ms)

    return _make


@pytest.fixture
def make_market() -> Callable[..., KaminoMarket]:
    def _make(
        reserves: list[KaminoReserve],
        elevation_groups: tuple[ElevationGroup, ...] = (),
        referral_fee_bps: int = 0,
    ) -> KaminoMarket:
        state = LendingMarketState(
            referral_fee_bps=referral_fee_bps, elevation_groups=elevation_groups
        )
        return KaminoMarket(
            MARKET, state, {reserve.address: reserve for reserve in reserves}
        )

    return _make


@pytest.fixture
def make_obligation_state() -> Callable[..., ObligationState]:
    """Obligation builder.

    Deposits are ``(reserve, cTokens)``; borrows are ``(reserve, tokens[, rate])``.
    """

    def _make(
        deposits: list[tuple[str, int]] = (),
        borrows: list[tuple] = (),
        elevation_group: int = 0,
        **overrides: Any,
    ) -> ObligationState:
        collaterals = tuple(
            ObligationCollateral(deposit_reserve=reserve, deposited_amount=amount)
            for reserve, amount in deposits
        )
        liquidities = []
        for borrow in borrows:
            reserve, amount = borrow[0], borrow[1]
            rate = borrow[2] if len(borrow) > 2 else 1
            liquidities.append(
                ObligationLiquidity(
                    borrow_reserve=reserve,
                    cumulative_borrow_rate_bsf=bsf(rate),
                    borrowed_amount_sf=sf(amount),
                )
            )
        return ObligationState(
            lending_market=MARKET,
            owner=OWNER,
            deposits=collaterals,
            borrows=tuple(liquidities),
            elevation_group=elevation_group,
            **overrides,
        )

    return _make


@pytest.fixture
def usdc_reserve(make_reserve) -> KaminoReserve:
    """USDC-like: 6 decimals, $1, 80% LTV, nothing borrowed (cToken rate 1)."""
    return make_reserve(
        address="UsdcReserve",
        mint="UsdcMint",
        symbol="USDC",
        decimals=6,
        available=1_000_000 * 10**6,
        price=1,
        loan_to_value_pct=80,
        liquidation_threshold_pct=85,
    )


@pytest.fixture
def sol_reserve(make_reserve) -> KaminoReserve:
    """SOL-like: 9 decimals, $100, 70% LTV, nothing borrowed."""
    return make_reserve(
        address="SolReserve",
        mint="SolMint",
        symbol="SOL",
        decimals=9,
        available=1_000_000 * 10**9,
        price=100,
        loan_to_value_pct=70,
        liquidation_threshold_pct=75,
    )


@pytest.fixture
def market(make_market, usdc_reserve, sol_reserve) -> KaminoMarket:
    return make_market([usdc_reserve, sol_reserve])


@pytest.fixture
def obligation(market, make_obligation_state) -> KaminoObligation:
    """1000 USDC deposited, 2 SOL ($200) borrowed."""
    state = make_obligation_state(
        deposits=[("UsdcReserve", 1_000 * 10**6)],
        borrows=[("SolReserve", 2 * 10**9)],
    )
    return KaminoObligation(market, "Obligation", state)

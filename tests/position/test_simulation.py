"""Tests for what-if simulation of obligation actions."""

from decimal import Decimal

import pytest

from klend.errors import (
    ElevationGroupError,
    ReserveNotFoundError,
    UnsupportedActionError,
)
from klend.position.obligation import KaminoObligation
from klend.position.simulation import (
    calculate_simulated_borrow,
    calculate_simulated_deposit,
    refresh_derived_stats,
)
from klend.protocol.action import ActionType
from klend.protocol.elevation_group import ElevationGroup


class TestSimulatedDeposit:
    def test_deposit(self, obligation: KaminoObligation, market) -> None:
        result = obligation.get_simulated_obligation_stats(
            Decimal(500 * 10**6), "deposit", "UsdcMint", market
        )
        assert result.stats.user_total_deposit == 1_500
        assert result.stats.borrow_limit == 1_200
        assert result.stats.borrow_liquidation_limit == 1_275
        assert result.stats.liquidation_ltv == Decimal("0.85")
        assert result.deposits["UsdcReserve"].amount == 1_500 * 10**6

    def test_deposit_into_new_reserve(
        self, obligation: KaminoObligation, market
    ) -> None:
        result = obligation.get_simulated_obligation_stats(
            Decimal(10**9), ActionType.DEPOSIT, "SolMint", market
        )
        assert set(result.deposits) == {"UsdcReserve", "SolReserve"}
        assert result.deposits["SolReserve"].market_value_refreshed == 100
        assert result.stats.borrow_limit == 870

    def test_deposit_then_withdraw_restores_ltv(
        self, obligation: KaminoObligation, market
    ) -> None:
        amount = Decimal(500 * 10**6)
        stats, deposits = calculate_simulated_deposit(
            obligation,
            obligation.stats,
            obligation.deposits,
            amount,
            "UsdcMint",
            market,
        )
        original_ltv = obligation.stats.loan_to_value
        assert refresh_derived_stats(stats).loan_to_value != original_ltv
        stats, deposits = calculate_simulated_deposit(
            obligation, stats, deposits, -amount, "UsdcMint", market
        )
        assert refresh_derived_stats(stats).loan_to_value == original_ltv
        original_amount = obligation.deposits["UsdcReserve"].amount
        assert deposits["UsdcReserve"].amount == original_amount

    def test_withdraw_is_floored_at_zero(
        self, obligation: KaminoObligation, market
    ) -> None:
        result = obligation.get_simulated_obligation_stats(
            Decimal(5_000 * 10**6), "withdraw", "UsdcMint", market
        )
        assert result.stats.user_total_deposit == 0
        assert result.deposits["UsdcReserve"].amount == 0
        assert result.stats.loan_to_value == 0


class TestSimulatedBorrow:
    def test_borrow(self, obligation: KaminoObligation, market) -> None:
        result = obligation.get_simulated_obligation_stats(
            Decimal(10**9), "borrow", "SolMint", market
        )
        assert result.stats.user_total_borrow == 300
        assert result.stats.loan_to_value == Decimal("0.3")
        assert result.stats.borrow_utilization == Decimal("0.375")
        assert result.stats.net_account_value == 700
        assert result.borrows["SolReserve"].amount == 3 * 10**9

    def test_repay_more_than_owed(self, obligation: KaminoObligation, market) -> None:
        result = obligation.get_simulated_obligation_stats(
            Decimal(5 * 10**9), "repay", "SolMint", market
        )
        assert result.stats.user_total_borrow == 0
        assert result.borrows["SolReserve"].amount == 0
        assert result.stats.leverage == 1

    def test_borrow_factor_applies_outside_group(
        self, make_reserve, make_market, usdc_reserve, make_obligation_state
    ) -> None:
        sol = make_reserve(
            address="SolReserve",
            mint="SolMint",
            decimals=9,
            price=100,
            borrow_factor_pct=200,
        )
        market = make_market([usdc_reserve, sol])
        state = make_obligation_state(deposits=[("UsdcReserve", 1_000 * 10**6)])
        obligation = KaminoObligation(market, "Obligation", state)
        stats, _ = calculate_simulated_borrow(
            obligation,
            obligation.stats,
            obligation.borrows,
            Decimal(10**9),
            "SolMint",
            market,
        )
        assert stats.user_total_borrow == 100
        assert stats.user_total_borrow_borrow_factor_adjusted == 200


class TestCompositeActions:
    def test_deposit_and_borrow(self, obligation: KaminoObligation, market) -> None:
        result = obligation.get_simulated_obligation_stats(
            Decimal(1_000 * 10**6),
            ActionType.DEPOSIT_AND_BORROW,
            "UsdcMint",
            market,
            outflow_amount=Decimal(10**9),
            outflow_mint="SolMint",
        )
        assert result.stats.user_total_deposit == 2_000
        assert result.stats.user_total_borrow == 300
        assert result.stats.loan_to_value == Decimal("0.15")

    def test_repay_and_withdraw(self, obligation: KaminoObligation, market) -> None:
        result = obligation.get_simulated_obligation_stats(
            Decimal(2 * 10**9),
            ActionType.REPAY_AND_WITHDRAW,
            "SolMint",
            market,
            outflow_amount=Decimal(100 * 10**6),
            outflow_mint="UsdcMint",
        )
        assert result.stats.user_total_borrow == 0
        assert result.stats.user_total_deposit == 900
        assert result.stats.loan_to_value == 0
        assert result.stats.leverage == 1

    def test_second_leg_defaults_to_first(
        self, obligation: KaminoObligation, market
    ) -> None:
        result = obligation.get_simulated_obligation_stats(
            Decimal(100 * 10**6), ActionType.DEPOSIT_AND_BORROW, "UsdcMint", market
        )
        assert result.stats.user_total_deposit == 1_100
        assert result.borrows["UsdcReserve"].market_value_refreshed == 100


class TestErrors:
    @pytest.mark.parametrize(
        "action", [ActionType.MINT, ActionType.REDEEM, "liquidate"]
    )
    def test_unsupported_actions(
        self, obligation: KaminoObligation, market, action
    ) -> None:
        with pytest.raises(UnsupportedActionError):
            obligation.get_simulated_obligation_stats(
                Decimal(1), action, "UsdcMint", market
            )

    def test_unknown_mint(self, obligation: KaminoObligation, market) -> None:
        with pytest.raises(ReserveNotFoundError):
            obligation.get_simulated_obligation_stats(
                Decimal(1), "deposit", "GhostMint", market
            )

    def test_reserve_outside_obligation_group(
        self, make_reserve, make_market, make_obligation_state
    ) -> None:
        usdc = make_reserve(
            address="UsdcReserve", mint="UsdcMint", elevation_groups=(1,)
        )
        sol = make_reserve(
            address="SolReserve",
            mint="SolMint",
            decimals=9,
            price=100,
            elevation_groups=(1,),
        )
        other = make_reserve(address="OtherReserve", mint="OtherMint")
        market = make_market(
            [usdc, sol, other],
            elevation_groups=(ElevationGroup(1, 90, 92, debt_reserve="SolReserve"),),
        )
        state = make_obligation_state(
            deposits=[("UsdcReserve", 1_000 * 10**6)], elevation_group=1
        )
        obligation = KaminoObligation(market, "Obligation", state)

        with pytest.raises(ElevationGroupError):
            obligation.get_simulated_obligation_stats(
                Decimal(1), "deposit", "OtherMint", market
            )
        with pytest.raises(ElevationGroupError):
            obligation.get_simulated_obligation_stats(
                Decimal(1), "borrow", "OtherMint", market
            )
        result = obligation.get_simulated_obligation_stats(
            Decimal(10**9), "borrow", "SolMint", market
        )
        assert result.stats.user_total_borrow == 100


class TestImmutability:
    def test_obligation_is_unchanged(
        self, obligation: KaminoObligation, market
    ) -> None:
        before = obligation.stats
        deposits_before = obligation.deposits
        obligation.get_simulated_obligation_stats(
            Decimal(10**9), "borrow", "SolMint", market
        )
        obligation.get_simulated_obligation_stats(
            Decimal(10**9), "withdraw", "UsdcMint", market
        )
        assert obligation.stats == before
        assert obligation.deposits == deposits_before

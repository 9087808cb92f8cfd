"""Tests for obligation loading and shared rate maps."""

import logging
from decimal import Decimal

import pytest

from klend.data.static_params import (
    SAMPLE_MARKET,
    SOL_EMODE_OBLIGATION,
    SOL_RESERVE,
    USDC_RESERVE,
    VANILLA_OBLIGATION,
    StaticDataProvider,
)
from klend.position.loader import (
    add_rates_for_obligation,
    get_rates_for_obligation,
    load_all_obligations,
    load_obligation,
)
from klend.position.obligation import KaminoObligation
from klend.protocol.market import KaminoMarket
from klend.protocol.reserve import KaminoReserve


@pytest.fixture
def provider() -> StaticDataProvider:
    return StaticDataProvider()


@pytest.fixture
def sample_market(provider: StaticDataProvider) -> KaminoMarket:
    return KaminoMarket.load(provider, SAMPLE_MARKET)


class TestRates:
    def test_rates_cover_referenced_reserves(
        self, sample_market: KaminoMarket, provider: StaticDataProvider
    ) -> None:
        state = provider.get_obligation(VANILLA_OBLIGATION)
        exchange_rates, borrow_rates = get_rates_for_obligation(
            sample_market, state, provider.get_slot()
        )
        assert set(exchange_rates) == {SOL_RESERVE}
        assert set(borrow_rates) == {USDC_RESERVE}

    def test_borrow_rate_is_projected(
        self, sample_market: KaminoMarket, provider: StaticDataProvider
    ) -> None:
        state = provider.get_obligation(VANILLA_OBLIGATION)
        _, borrow_rates = get_rates_for_obligation(
            sample_market, state, provider.get_slot()
        )
        reserve = sample_market.get_reserve_by_address(USDC_RESERVE)
        assert borrow_rates[USDC_RESERVE] > reserve.get_cumulative_borrow_rate()

    def test_existing_entries_are_kept(
        self, sample_market: KaminoMarket, provider: StaticDataProvider
    ) -> None:
        state = provider.get_obligation(VANILLA_OBLIGATION)
        exchange_rates = {SOL_RESERVE: Decimal(42)}
        borrow_rates: dict[str, Decimal] = {}
        add_rates_for_obligation(
            sample_market, state, exchange_rates, borrow_rates, provider.get_slot()
        )
        assert exchange_rates[SOL_RESERVE] == 42
        assert USDC_RESERVE in borrow_rates


class TestLoadObligation:
    def test_load(
        self, sample_market: KaminoMarket, provider: StaticDataProvider
    ) -> None:
        obligation = load_obligation(sample_market, provider, VANILLA_OBLIGATION)
        assert obligation.address == VANILLA_OBLIGATION
        assert set(obligation.deposits) == {SOL_RESERVE}
        assert set(obligation.borrows) == {USDC_RESERVE}
        assert 0 < obligation.stats.loan_to_value < 1

    def test_accrues_debt_to_current_slot(
        self, sample_market: KaminoMarket, provider: StaticDataProvider
    ) -> None:
        state = provider.get_obligation(VANILLA_OBLIGATION)
        stale = KaminoObligation(sample_market, VANILLA_OBLIGATION, state)
        loaded = load_obligation(sample_market, provider, VANILLA_OBLIGATION)
        assert loaded.get_borrows()[0].amount > stale.get_borrows()[0].amount

    def test_missing_account(
        self,
        sample_market: KaminoMarket,
        provider: StaticDataProvider,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="klend.position.loader"):
            assert load_obligation(sample_market, provider, "Missing") is None
        assert "Missing" in caplog.text

    def test_market_shortcut(
        self, sample_market: KaminoMarket, provider: StaticDataProvider
    ) -> None:
        obligation = sample_market.get_obligation_by_address(
            provider, SOL_EMODE_OBLIGATION
        )
        assert obligation.state.elevation_group == 1
        assert obligation.stats.potential_elevation_group_update == (1,)


class TestLoadAll:
    def test_order_and_missing_accounts(
        self, sample_market: KaminoMarket, provider: StaticDataProvider
    ) -> None:
        addresses = [SOL_EMODE_OBLIGATION, "Missing", VANILLA_OBLIGATION]
        obligations = load_all_obligations(sample_market, provider, addresses)
        loaded = [o.address if o else None for o in obligations]
        assert loaded == [SOL_EMODE_OBLIGATION, None, VANILLA_OBLIGATION]

    def test_matches_single_load(
        self, sample_market: KaminoMarket, provider: StaticDataProvider
    ) -> None:
        [batched] = load_all_obligations(sample_market, provider, [VANILLA_OBLIGATION])
        single = load_obligation(sample_market, provider, VANILLA_OBLIGATION)
        assert batched.stats == single.stats

    def test_each_reserve_projected_once(
        self,
        sample_market: KaminoMarket,
        provider: StaticDataProvider,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        calls: list[str] = []
        original = KaminoReserve.get_estimated_cumulative_borrow_rate

        def spy(self: KaminoReserve, current_slot: int) -> Decimal:
            calls.append(self.address)
            return original(self, current_slot)

        monkeypatch.setattr(KaminoReserve, "get_estimated_cumulative_borrow_rate", spy)
        addresses = [VANILLA_OBLIGATION, VANILLA_OBLIGATION, SOL_EMODE_OBLIGATION]
        load_all_obligations(sample_market, provider, addresses)
        assert sorted(calls) == sorted([USDC_RESERVE, SOL_RESERVE])

    def test_explicit_slot_skips_slot_read(self, sample_market: KaminoMarket) -> None:
        class _NoSlotProvider(StaticDataProvider):
            def get_slot(self) -> int:
                raise AssertionError("slot should not be read")

        obligations = load_all_obligations(
            sample_market, _NoSlotProvider(), [VANILLA_OBLIGATION], slot=290_000_000
        )
        assert obligations[0] is not None

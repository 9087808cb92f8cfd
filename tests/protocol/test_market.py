"""Tests for market loading and reserve lookup."""

import logging
from dataclasses import replace
from decimal import Decimal

import pytest

from klend.data.interfaces import OraclePrice, ReserveState
from klend.data.static_params import (
    JITOSOL_RESERVE,
    SAMPLE_MARKET,
    SOL_MINT,
    SOL_RESERVE,
    USDC_MINT,
    USDC_RESERVE,
    StaticDataProvider,
)
from klend.errors import ElevationGroupError, KlendError
from klend.protocol.market import KaminoMarket


class _InvalidPriceProvider(StaticDataProvider):
    def get_oracle_prices(
        self, reserves: dict[str, ReserveState]
    ) -> dict[str, OraclePrice]:
        prices = super().get_oracle_prices(reserves)
        prices[USDC_RESERVE] = replace(prices[USDC_RESERVE], valid=False)
        return prices


@pytest.fixture
def provider() -> StaticDataProvider:
    return StaticDataProvider()


@pytest.fixture
def sample_market(provider: StaticDataProvider) -> KaminoMarket:
    return KaminoMarket.load(provider, SAMPLE_MARKET)


class TestLoad:
    def test_loads_all_reserves(self, sample_market: KaminoMarket) -> None:
        addresses = {r.address for r in sample_market.get_reserves()}
        assert addresses == {SOL_RESERVE, USDC_RESERVE, JITOSOL_RESERVE}
        assert sample_market.address == SAMPLE_MARKET
        assert sample_market.referral_fee_bps == 0

    def test_oracle_price_attached(self, sample_market: KaminoMarket) -> None:
        reserve = sample_market.get_reserve_by_address(SOL_RESERVE)
        assert reserve.get_oracle_market_price() == Decimal("145.37")

    def test_missing_price_raises(self) -> None:
        provider = StaticDataProvider(prices={SOL_MINT: Decimal(150)})
        with pytest.raises(KlendError, match="oracle price"):
            KaminoMarket.load(provider, SAMPLE_MARKET)

    def test_invalid_price_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="klend.protocol.market"):
            market = KaminoMarket.load(_InvalidPriceProvider(), SAMPLE_MARKET)
        assert market.get_reserve_by_address(USDC_RESERVE) is not None
        assert any(USDC_RESERVE in record.getMessage() for record in caplog.records)

    def test_unknown_market_raises(self, provider: StaticDataProvider) -> None:
        with pytest.raises(KlendError):
            KaminoMarket.load(provider, "NotAMarket")

    def test_reload_builds_new_reserves(
        self, sample_market: KaminoMarket, provider: StaticDataProvider
    ) -> None:
        reloaded = sample_market.reload(provider)
        assert reloaded is not sample_market
        old_sol = sample_market.get_reserve_by_address(SOL_RESERVE)
        assert reloaded.get_reserve_by_address(SOL_RESERVE) is not old_sol
        assert reloaded.recent_slot_duration_ms == sample_market.recent_slot_duration_ms


class TestLookup:
    def test_by_mint(self, sample_market: KaminoMarket) -> None:
        assert sample_market.get_reserve_by_mint(USDC_MINT).address == USDC_RESERVE

    def test_by_symbol(self, sample_market: KaminoMarket) -> None:
        assert sample_market.get_reserve_by_symbol("SOL").address == SOL_RESERVE

    def test_absent_reserve_is_none(self, sample_market: KaminoMarket) -> None:
        assert sample_market.get_reserve_by_address("Nope") is None
        assert sample_market.get_reserve_by_mint("Nope") is None
        assert sample_market.get_reserve_by_symbol("NOPE") is None

    def test_elevation_group(self, sample_market: KaminoMarket) -> None:
        group = sample_market.get_elevation_group(1)
        assert group.ltv == Decimal("0.9")
        assert group.debt_reserve == SOL_RESERVE

    @pytest.mark.parametrize("group_id", [0, 2, -1])
    def test_unconfigured_elevation_group(
        self, sample_market: KaminoMarket, group_id: int
    ) -> None:
        with pytest.raises(ElevationGroupError):
            sample_market.get_elevation_group(group_id)


class TestReservesFrame:
    def test_one_row_per_reserve(
        self, sample_market: KaminoMarket, provider: StaticDataProvider
    ) -> None:
        df = sample_market.reserves_frame(provider.get_slot())
        assert len(df) == 3
        assert set(df["symbol"]) == {"SOL", "USDC", "JITOSOL"}
        assert (df["utilization"].between(0, 1)).all()
        assert (df["total_supply"] > 0).all()

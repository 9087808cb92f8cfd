"""Lending market context: reserve lookup and elevation group configuration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pandas as pd

from klend.data.constants import DEFAULT_RECENT_SLOT_DURATION_MS
from klend.data.interfaces import LendingMarketState, MarketDataProvider
from klend.errors import ElevationGroupError, KlendError
from klend.protocol.elevation_group import ElevationGroup
from klend.protocol.reserve import KaminoReserve

if TYPE_CHECKING:
    from klend.position.obligation import KaminoObligation

logger = logging.getLogger(__name__)


class KaminoMarket:
    """A lending market with its reserves at one point in time.

    Parameters
    ----------
    address : str
        Lending market account address.
    state : LendingMarketState
        Decoded market account.
    reserves : dict[str, KaminoReserve]
        Reserves keyed by reserve address.
    """

    def __init__(
        self,
        address: str,
        state: LendingMarketState,
        reserves: dict[str, KaminoReserve],
        recent_slot_duration_ms: int = DEFAULT_RECENT_SLOT_DURATION_MS,
    ) -> None:
        self._address = address
        self._state = state
        self._reserves = dict(reserves)
        self._recent_slot_duration_ms = recent_slot_duration_ms

    @classmethod
    def load(
        cls,
        provider: MarketDataProvider,
        address: str,
        recent_slot_duration_ms: int = DEFAULT_RECENT_SLOT_DURATION_MS,
    ) -> KaminoMarket:
        """Read the market, its reserves and their oracle prices."""
        state = provider.get_lending_market(address)
        reserves = _load_reserves(provider, address, recent_slot_duration_ms)
        logger.debug("Loaded market %s with %d reserves", address, len(reserves))
        return cls(address, state, reserves, recent_slot_duration_ms)

    def reload(self, provider: MarketDataProvider) -> KaminoMarket:
        """A new market built from fresh reads; this instance is left as is."""
        return KaminoMarket.load(provider, self._address, self._recent_slot_duration_ms)

    @property
    def address(self) -> str:
        return self._address

    @property
    def state(self) -> LendingMarketState:
        return self._state

    @property
    def referral_fee_bps(self) -> int:
        return self._state.referral_fee_bps

    @property
    def recent_slot_duration_ms(self) -> int:
        return self._recent_slot_duration_ms

    def get_reserves(self) -> list[KaminoReserve]:
        return list(self._reserves.values())

    def get_reserve_by_address(self, address: str) -> KaminoReserve | None:
        return self._reserves.get(address)

    def get_reserve_by_mint(self, mint: str) -> KaminoReserve | None:
        for reserve in self._reserves.values():
            if reserve.get_liquidity_mint() == mint:
                return reserve
        return None

    def get_reserve_by_symbol(self, symbol: str) -> KaminoReserve | None:
        for reserve in self._reserves.values():
            if reserve.symbol == symbol:
                return reserve
        return None

    def get_elevation_group(self, group_id: int) -> ElevationGroup:
        """Elevation group ``group_id`` (1-based; 0 means no group)."""
        groups = self._state.elevation_groups
        if group_id < 1 or group_id > len(groups):
            raise ElevationGroupError(
                f"Elevation group {group_id} is not configured on market "
                f"{self._address}"
            )
        return groups[group_id - 1]

    def get_obligation_by_address(
        self, provider: MarketDataProvider, address: str, slot: int | None = None
    ) -> KaminoObligation | None:
        from klend.position.loader import load_obligation

        return load_obligation(self, provider, address, slot)

    def reserves_frame(self, slot: int) -> pd.DataFrame:
        """One row per reserve with supply, debt, utilization and APYs at ``slot``."""
        rows = []
        for reserve in self._reserves.values():
            estimate = reserve.get_estimated_debt_and_supply(
                slot, self.referral_fee_bps
            )
            rows.append(
                {
                    "symbol": reserve.symbol,
                    "address": reserve.address,
                    "mint": reserve.get_liquidity_mint(),
                    "status": reserve.stats.status.name,
                    "utilization": float(reserve.calculate_utilization_ratio()),
                    "supply_apy": float(reserve.stats.supply_interest_apy),
                    "borrow_apy": float(reserve.stats.borrow_interest_apy),
                    "total_supply": float(estimate.total_supply),
                    "total_borrow": float(estimate.total_borrow),
                    "deposit_tvl": float(reserve.get_deposit_tvl()),
                    "borrow_tvl": float(reserve.get_borrow_tvl()),
                }
            )
        return pd.DataFrame(
            rows,
            columns=[
                "symbol",
                "address",
                "mint",
                "status",
                "utilization",
                "supply_apy",
                "borrow_apy",
                "total_supply",
                "total_borrow",
                "deposit_tvl",
                "borrow_tvl",
            ],
        )


def _load_reserves(
    provider: MarketDataProvider, market_address: str, recent_slot_duration_ms: int
) -> dict[str, KaminoReserve]:
    reserve_states = provider.get_reserves(market_address)
    prices = provider.get_oracle_prices(reserve_states)

    reserves: dict[str, KaminoReserve] = {}
    for reserve_address, reserve_state in reserve_states.items():
        price = prices.get(reserve_address)
        if price is None:
            raise KlendError(
                f"Could not find oracle price for reserve {reserve_address}"
            )
        if not price.valid:
            logger.warning(
                "Oracle price for reserve %s (%s) is flagged invalid",
                reserve_address,
                price.mint,
            )
        reserves[reserve_address] = KaminoReserve(
            reserve_address, reserve_state, price, recent_slot_duration_ms
        )
    return reserves

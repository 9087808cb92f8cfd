"""Obligation loading and per-reserve rate maps.

Rate maps hold, per reserve address, the collateral exchange rate and the
cumulative borrow rate projected to a slot. Batch loads share one pair of maps
so each distinct reserve is projected once however many obligations use it.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from klend.data.constants import is_not_null_pubkey
from klend.data.interfaces import MarketDataProvider, ObligationState
from klend.errors import ReserveNotFoundError
from klend.position.obligation import KaminoObligation
from klend.protocol.market import KaminoMarket
from klend.protocol.reserve import KaminoReserve

logger = logging.getLogger(__name__)


def _reserve(market: KaminoMarket, address: str) -> KaminoReserve:
    reserve = market.get_reserve_by_address(address)
    if reserve is None:
        raise ReserveNotFoundError(
            f"Reserve {address} not found on market {market.address}"
        )
    return reserve


def add_collateral_exchange_rates_for_obligation(
    market: KaminoMarket,
    collateral_exchange_rates: dict[str, Decimal],
    state: ObligationState,
    slot: int,
) -> None:
    for deposit in state.deposits:
        address = deposit.deposit_reserve
        if is_not_null_pubkey(address) and address not in collateral_exchange_rates:
            reserve = _reserve(market, address)
            collateral_exchange_rates[address] = (
                reserve.get_estimated_collateral_exchange_rate(
                    slot, market.referral_fee_bps
                )
            )


def add_cumulative_borrow_rates_for_obligation(
    market: KaminoMarket,
    cumulative_borrow_rates: dict[str, Decimal],
    state: ObligationState,
    slot: int,
) -> None:
    for borrow in state.borrows:
        address = borrow.borrow_reserve
        if is_not_null_pubkey(address) and address not in cumulative_borrow_rates:
            reserve = _reserve(market, address)
            cumulative_borrow_rates[address] = (
                reserve.get_estimated_cumulative_borrow_rate(slot)
            )


def add_rates_for_obligation(
    market: KaminoMarket,
    state: ObligationState,
    collateral_exchange_rates: dict[str, Decimal],
    cumulative_borrow_rates: dict[str, Decimal],
    slot: int,
) -> None:
    """Fill the caller's maps with rates for reserves not yet present."""
    add_collateral_exchange_rates_for_obligation(
        market, collateral_exchange_rates, state, slot
    )
    add_cumulative_borrow_rates_for_obligation(
        market, cumulative_borrow_rates, state, slot
    )


def get_rates_for_obligation(
    market: KaminoMarket, state: ObligationState, slot: int
) -> tuple[dict[str, Decimal], dict[str, Decimal]]:
    """(collateral_exchange_rates, cumulative_borrow_rates) for one obligation."""
    collateral_exchange_rates: dict[str, Decimal] = {}
    cumulative_borrow_rates: dict[str, Decimal] = {}
    add_rates_for_obligation(
        market, state, collateral_exchange_rates, cumulative_borrow_rates, slot
    )
    return collateral_exchange_rates, cumulative_borrow_rates


def load_obligation(
    market: KaminoMarket,
    provider: MarketDataProvider,
    address: str,
    slot: int | None = None,
) -> KaminoObligation | None:
    """Read one obligation and value it at ``slot`` (current slot by default).

    Returns None if the account does not exist.
    """
    state = provider.get_obligation(address)
    if state is None:
        logger.warning("Obligation %s not found", address)
        return None
    if slot is None:
        slot = provider.get_slot()

    collateral_exchange_rates, cumulative_borrow_rates = get_rates_for_obligation(
        market, state, slot
    )
    return KaminoObligation(
        market, address, state, collateral_exchange_rates, cumulative_borrow_rates
    )


def load_all_obligations(
    market: KaminoMarket,
    provider: MarketDataProvider,
    addresses: list[str],
    slot: int | None = None,
) -> list[KaminoObligation | None]:
    """Read and value a batch of obligations, preserving input order.

    Missing accounts come back as None.
    """
    if slot is None:
        slot = provider.get_slot()
    states = provider.get_obligations(addresses)

    collateral_exchange_rates: dict[str, Decimal] = {}
    cumulative_borrow_rates: dict[str, Decimal] = {}
    for state in states:
        if state is not None:
            add_rates_for_obligation(
                market, state, collateral_exchange_rates, cumulative_borrow_rates, slot
            )

    logger.debug(
        "Loaded %d/%d obligations at slot %d (%d deposit reserves, %d borrow reserves)",
        sum(state is not None for state in states),
        len(addresses),
        slot,
        len(collateral_exchange_rates),
        len(cumulative_borrow_rates),
    )

    obligations: list[KaminoObligation | None] = []
    for address, state in zip(addresses, states):
        if state is None:
            obligations.append(None)
            continue
        obligations.append(
            KaminoObligation(
                market,
                address,
                state,
                collateral_exchange_rates,
                cumulative_borrow_rates,
            )
        )
    return obligations

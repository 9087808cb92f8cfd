"""Factory for creating a MarketDataProvider and a market loaded from it."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from klend.data.constants import DEFAULT_RECENT_SLOT_DURATION_MS
from klend.data.interfaces import MarketDataProvider
from klend.data.static_params import SAMPLE_MARKET, StaticDataProvider

if TYPE_CHECKING:
    from klend.protocol.market import KaminoMarket

logger = logging.getLogger(__name__)

RECENT_SLOT_DURATION_ENV = "KLEND_RECENT_SLOT_DURATION_MS"


def resolve_recent_slot_duration_ms(value: int | None = None) -> int:
    """Slot duration used to rescale rates.

    Falls back to the ``KLEND_RECENT_SLOT_DURATION_MS`` environment variable,
    then to the default. Unusable environment values are ignored with a
    warning.
    """
    if value is not None:
        if value <= 0:
            raise ValueError(f"recent slot duration must be positive, got {value}")
        return value

    raw = os.environ.get(RECENT_SLOT_DURATION_ENV)
    if not raw:
        return DEFAULT_RECENT_SLOT_DURATION_MS
    try:
        parsed = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", RECENT_SLOT_DURATION_ENV, raw)
        return DEFAULT_RECENT_SLOT_DURATION_MS
    if parsed <= 0:
        logger.warning("Ignoring non-positive %s=%r", RECENT_SLOT_DURATION_ENV, raw)
        return DEFAULT_RECENT_SLOT_DURATION_MS
    return parsed


def create_provider(slot: int | None = None) -> MarketDataProvider:
    """Create a data provider.

    Parameters
    ----------
    slot : int | None
        Slot the provider reports as current. Defaults to the sample
        snapshot's slot.

    Returns
    -------
    MarketDataProvider
        ``StaticDataProvider`` serving the sample market.
    """
    if slot is None:
        return StaticDataProvider()
    return StaticDataProvider(slot=slot)


def load_market(
    provider: MarketDataProvider | None = None,
    address: str = SAMPLE_MARKET,
    recent_slot_duration_ms: int | None = None,
) -> KaminoMarket:
    """Load ``address`` from ``provider`` (the sample provider by default)."""
    from klend.protocol.market import KaminoMarket

    provider = provider if provider is not None else create_provider()
    duration = resolve_recent_slot_duration_ms(recent_slot_duration_ms)
    logger.debug("Loading market %s (slot duration %d ms)", address, duration)
    return KaminoMarket.load(provider, address, duration)

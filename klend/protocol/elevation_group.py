"""Elevation group dataclass and eligibility."""

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from klend.data.constants import NULL_PUBKEY


@dataclass(frozen=True)
class ElevationGroup:
    """Risk tier granting preferential LTV terms to a correlated reserve set."""

    id: int
    ltv_pct: int  # e.g. 90
    liquidation_threshold_pct: int  # e.g. 92
    max_liquidation_bonus_bps: int = 0
    allow_new_loans: bool = True
    debt_reserve: str = NULL_PUBKEY

    @property
    def ltv(self) -> Decimal:
        return Decimal(self.ltv_pct) / 100

    @property
    def liquidation_threshold(self) -> Decimal:
        return Decimal(self.liquidation_threshold_pct) / 100


class _HasElevationGroups(Protocol):
    @property
    def elevation_groups(self) -> tuple[int, ...]: ...


def elevation_groups_for_reserves(reserves: Iterable[_HasElevationGroups]) -> list[int]:
    """Groups configured on every one of ``reserves``.

    Group 0 means "no group" and is never returned. Order follows first
    appearance.
    """
    reserves = list(reserves)
    counts: Counter[int] = Counter()
    for reserve in reserves:
        for group in dict.fromkeys(reserve.elevation_groups):
            if group != 0:
                counts[group] += 1
    return [group for group, count in counts.items() if count == len(reserves)]

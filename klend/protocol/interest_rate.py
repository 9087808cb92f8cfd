"""Piecewise linear borrow rate curve and APR/APY helpers.

Replicates the on-chain borrow rate curve: a list of (utilization, rate)
control points in basis points, interpolated linearly.
"""

from collections.abc import Iterable, Sequence
from decimal import Decimal

import numpy as np
import pandas as pd

from klend.data.constants import ONE_HUNDRED_PCT_IN_BPS, SLOTS_PER_YEAR
from klend.data.interfaces import CurvePoint
from klend.errors import InvalidCurveError
from klend.protocol.fraction import lending_math

# (utilization, borrow_rate) as ratios
RatePoint = tuple[Decimal, Decimal]


@lending_math
def truncate_borrow_curve(points: Iterable[CurvePoint]) -> tuple[RatePoint, ...]:
    """Convert bps control points to ratios, stopping at 100% utilization.

    On-chain curves are fixed-size arrays padded after the 100% point; the
    padding is dropped.
    """
    curve: list[RatePoint] = []
    for point in points:
        curve.append(
            (
                Decimal(point.utilization_rate_bps) / ONE_HUNDRED_PCT_IN_BPS,
                Decimal(point.borrow_rate_bps) / ONE_HUNDRED_PCT_IN_BPS,
            )
        )
        if point.utilization_rate_bps == ONE_HUNDRED_PCT_IN_BPS:
            break
    return tuple(curve)


@lending_math
def get_borrow_rate(utilization: Decimal, curve: Sequence[RatePoint]) -> Decimal:
    """Borrow rate for ``utilization`` on ``curve``.

    Args:
        utilization: Reserve utilization ratio, normally in [0, 1]. Values
            outside the curve's range take the boundary rate.
        curve: Control points ordered by utilization.

    Returns:
        Annual borrow rate as a decimal ratio (e.g. 0.05 = 5%).
    """
    if not curve:
        raise InvalidCurveError("borrow rate curve has no points")

    first_util, first_rate = curve[0]
    if utilization <= first_util:
        return first_rate
    last_util, last_rate = curve[-1]
    if utilization >= last_util:
        return last_rate

    for (u0, r0), (u1, r1) in zip(curve, curve[1:]):
        if u0 <= utilization <= u1:
            if u1 == u0:
                return r0
            return r0 + (r1 - r0) * (utilization - u0) / (u1 - u0)

    # Unreachable for a curve sorted by utilization
    return last_rate


@lending_math
def calculate_apy_from_apr(apr: Decimal) -> Decimal:
    """Compound an APR once per slot over a year."""
    return (1 + Decimal(apr) / SLOTS_PER_YEAR) ** SLOTS_PER_YEAR - 1


@lending_math
def rate_curve_frame(
    curve: Sequence[RatePoint],
    slot_adjustment_factor: Decimal = Decimal(1),
    protocol_take_rate: Decimal = Decimal(0),
    n_points: int = 101,
) -> pd.DataFrame:
    """Sample the full rate curve for plotting.

    Returns:
        DataFrame with columns: utilization, borrow_rate, supply_rate
    """
    utilizations = np.linspace(0, 1, n_points)
    borrow_rates = []
    supply_rates = []
    for u in utilizations:
        utilization = Decimal(repr(float(u)))
        borrow = get_borrow_rate(utilization, curve) * slot_adjustment_factor
        borrow_rates.append(float(borrow))
        supply_rates.append(float(utilization * borrow * (1 - protocol_take_rate)))

    return pd.DataFrame(
        {
            "utilization": utilizations,
            "borrow_rate": borrow_rates,
            "supply_rate": supply_rates,
        }
    )

"""
Linear cliff vesting.

Nothing vests before the cliff has elapsed; after the cliff the grant vests
linearly over the vesting period. Amounts are whole option units and every
division floors, so a fractional unit never vests early and the result
never exceeds the grant.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import GrantRecord


def calculate_vested_amount(
    options_granted: int,
    start_time: int | None,
    cliff_period: int,
    vesting_period: int,
    now: int,
) -> int:
    """
    Calculate how many options have vested at ``now``.

    Args:
        options_granted: Total options in the grant
        start_time: Schedule start, or None if no schedule is assigned
        cliff_period: Interval after start during which nothing vests
        vesting_period: Interval after the cliff over which the grant vests
        now: Evaluation time, in the same unit as start_time

    Returns:
        Vested option count, 0 <= result <= options_granted
    """
    if start_time is None:
        return 0

    cliff_end = start_time + cliff_period
    if now < cliff_end:
        return 0

    if vesting_period == 0:
        return options_granted

    elapsed = now - cliff_end
    if elapsed >= vesting_period:
        return options_granted

    return options_granted * elapsed // vesting_period


class VestingCalculator:
    """Applies the vesting curve to grant records."""

    def vested_amount(self, grant: "GrantRecord", now: int) -> int:
        return calculate_vested_amount(
            grant.options_granted,
            grant.start_time,
            grant.cliff_period,
            grant.vesting_period,
            now,
        )

    def unvested_amount(self, grant: "GrantRecord", now: int) -> int:
        return grant.options_granted - self.vested_amount(grant, now)

"""Uniswap v3 tick helpers used when building mint requests."""

from __future__ import annotations

import time

from fork_lp.core.constants.base import DEFAULT_DEADLINE_SECONDS, MAX_BPS

MIN_TICK = -887272
MAX_TICK = 887272

TICK_SPACING: dict[int, int] = {100: 1, 500: 10, 3000: 60, 10000: 200}


def tick_spacing_for_fee(fee: int) -> int:
    spacing = TICK_SPACING.get(int(fee))
    if spacing is None:
        raise ValueError(
            f"Unknown fee tier {fee}; expected one of {list(TICK_SPACING)}"
        )
    return spacing


def round_tick_to_spacing(tick: int, spacing: int) -> int:
    if spacing <= 0:
        return tick
    return tick - (tick % spacing)


def full_range_ticks(fee: int) -> tuple[int, int]:
    """Widest usable (tick_lower, tick_upper) for a fee tier.

    Both bounds are pulled inward onto the spacing grid so they stay within
    [MIN_TICK, MAX_TICK]; fee 3000 gives (-887220, 887220).
    """
    spacing = tick_spacing_for_fee(fee)
    tick_lower = -round_tick_to_spacing(-MIN_TICK, spacing)
    tick_upper = round_tick_to_spacing(MAX_TICK, spacing)
    return tick_lower, tick_upper


def slippage_min(amount: int, slippage_bps: int) -> int:
    if not 0 <= int(slippage_bps) <= MAX_BPS:
        raise ValueError(f"slippage_bps must be within [0, {MAX_BPS}]")
    return int(amount) * (MAX_BPS - int(slippage_bps)) // MAX_BPS


def deadline(seconds: int = DEFAULT_DEADLINE_SECONDS) -> int:
    return int(time.time()) + int(seconds)

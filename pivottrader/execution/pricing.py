"""Tick arithmetic shared by entry and exit rules."""
from __future__ import annotations

import math

from pivottrader.core.types import Direction

TICK_SIZE = 0.05

# Prices are quoted to two decimals; keeps 0.05 multiples free of float noise
_PRICE_DECIMALS = 2

# Absorbs float error like 104.35 / 0.05 == 2086.9999999999998
_TICK_EPSILON = 1e-9


def price_to_ticks(price: float) -> int:
    return int(round(price / TICK_SIZE))


def round_to_tick(price: float) -> float:
    return round(price_to_ticks(price) * TICK_SIZE, _PRICE_DECIMALS)


def floor_to_tick(price: float) -> float:
    return round(math.floor(price / TICK_SIZE + _TICK_EPSILON) * TICK_SIZE, _PRICE_DECIMALS)


def ceil_to_tick(price: float) -> float:
    return round(math.ceil(price / TICK_SIZE - _TICK_EPSILON) * TICK_SIZE, _PRICE_DECIMALS)


def percent_level(base: float, percent: float, direction: Direction, favourable: bool) -> float:
    """Price ``percent`` away from ``base``, snapped to the tick grid.

    ``favourable`` picks the profit side (above for longs, below for
    shorts); otherwise the loss side. Long levels round down, short levels
    round up, so levels are never tighter than requested on the loss side.
    """
    offset = base * percent / 100.0
    towards_profit = direction is Direction.LONG
    if not favourable:
        towards_profit = not towards_profit
    raw = base + offset if towards_profit else base - offset
    if direction is Direction.LONG:
        return floor_to_tick(raw)
    return ceil_to_tick(raw)


def stop_loss_level(entry_price: float, percent: float, direction: Direction) -> float:
    return percent_level(entry_price, percent, direction, favourable=False)


def pnl_points(direction: Direction, entry_price: float, price: float) -> float:
    return (price - entry_price) * direction.sign


def pnl_percent(direction: Direction, entry_price: float, price: float) -> float:
    if entry_price == 0:
        return 0.0
    return pnl_points(direction, entry_price, price) / entry_price * 100.0

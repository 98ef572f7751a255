"""Per-level trading availability.

Each pivot price that can be traded gets a LevelState keyed by its price in
ticks plus its kind. A level moves Available -> Traded when an entry uses
it. A traded level that price later crosses back through is Invalidated,
and becomes Available again once price breaks through it a second time in
the breakout direction.
"""
from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from enum import Enum
from types import MappingProxyType
from typing import NamedTuple

from pivottrader.core.types import Bar, PivotKind, PivotResult
from pivottrader.execution.pricing import TICK_SIZE, price_to_ticks

logger = logging.getLogger(__name__)


class LevelStatus(str, Enum):
    AVAILABLE = "available"
    TRADED = "traded"
    INVALIDATED = "invalidated"


class LevelKey(NamedTuple):
    """Structured level identity: price in whole ticks plus pivot kind."""

    ticks: int
    kind: PivotKind

    @classmethod
    def from_price(cls, price: float, kind: PivotKind) -> LevelKey:
        return cls(price_to_ticks(price), kind)

    @property
    def price(self) -> float:
        return round(self.ticks * TICK_SIZE, 2)


@dataclass
class LevelState:
    """Mutable trading state of one price level."""

    level: float
    kind: PivotKind
    status: LevelStatus = LevelStatus.AVAILABLE
    needs_revalidation: bool = False
    last_trade_bar: int | None = None
    last_trade_day: date | None = None


class LevelStateTracker:
    """Owns every LevelState for a single backtest run.

    The engine always runs with rollover on. With ``daily_reset`` enabled
    it also calls ``reset_daily`` at each day change, which empties the
    tracker before the first update of the day, so rollover only changes
    outcomes for runs without daily reset.

    Args:
        cross_day_reset: When True, levels traded on an earlier day become
            Available again on the first update of a new day. The
            revalidation flag survives that rollover.
    """

    def __init__(self, cross_day_reset: bool = True):
        self._cross_day_reset = cross_day_reset
        self._states: dict[LevelKey, LevelState] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def update(self, bar: Bar, pivots: PivotResult, bars: Sequence[Bar]) -> None:
        """Advance every level with the price action of ``bar``.

        Day rollover runs first, then invalidation and revalidation as two
        independent checks, so a bar that dips back through a traded level
        and breaks it again leaves the level Available.
        """
        self._register_large_pivots(bar.index, pivots, bars)

        for key, state in self._states.items():
            if self._cross_day_reset and self._rolls_over(state, bar.day):
                state.status = LevelStatus.AVAILABLE
                logger.debug("Level %s %.2f available again on %s", key.kind.value, state.level, bar.day)

            if not key.kind.is_large:
                continue

            if state.status is LevelStatus.TRADED and state.needs_revalidation and _crossed_back(state, bar):
                state.status = LevelStatus.INVALIDATED
                state.needs_revalidation = False
                logger.debug(
                    "Level %s %.2f invalidated at bar %d",
                    key.kind.value, state.level, bar.index,
                )

            if state.status is LevelStatus.INVALIDATED and _broke_through(state, bar):
                state.status = LevelStatus.AVAILABLE
                logger.debug(
                    "Level %s %.2f revalidated at bar %d",
                    key.kind.value, state.level, bar.index,
                )

    def mark_traded(
        self, key: LevelKey, bar_index: int, day: date, level: float | None = None,
    ) -> LevelState:
        """Record an entry on ``key``; creates the state for untracked levels."""
        state = self._states.get(key)
        if state is None:
            state = LevelState(level=key.price if level is None else level, kind=key.kind)
            self._states[key] = state
        state.status = LevelStatus.TRADED
        state.needs_revalidation = True
        state.last_trade_bar = bar_index
        state.last_trade_day = day
        return state

    def reset_daily(self) -> None:
        if self._states:
            logger.debug("Daily reset: clearing %d level states", len(self._states))
        self._states.clear()

    def get(self, key: LevelKey) -> LevelState | None:
        return self._states.get(key)

    def is_available(self, key: LevelKey) -> bool:
        """Absent levels have never been traded and count as available."""
        state = self._states.get(key)
        return state is None or state.status is LevelStatus.AVAILABLE

    def snapshot(self) -> Mapping[LevelKey, LevelStatus]:
        return MappingProxyType({key: state.status for key, state in self._states.items()})

    def summary(self) -> dict[str, int]:
        counts = Counter(state.status.value for state in self._states.values())
        return {status.value: counts.get(status.value, 0) for status in LevelStatus}

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, key: object) -> bool:
        return key in self._states

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _register_large_pivots(self, bar_index: int, pivots: PivotResult, bars: Sequence[Bar]) -> None:
        for idx in pivots.lph:
            if idx > bar_index:
                break
            self._ensure(LevelKey.from_price(bars[idx].high, PivotKind.LPH), bars[idx].high)
        for idx in pivots.lpl:
            if idx > bar_index:
                break
            self._ensure(LevelKey.from_price(bars[idx].low, PivotKind.LPL), bars[idx].low)

    def _ensure(self, key: LevelKey, price: float) -> None:
        if key not in self._states:
            self._states[key] = LevelState(level=price, kind=key.kind)

    @staticmethod
    def _rolls_over(state: LevelState, day: date) -> bool:
        return (
            state.status is LevelStatus.TRADED
            and state.last_trade_day is not None
            and state.last_trade_day != day
        )


def _crossed_back(state: LevelState, bar: Bar) -> bool:
    if state.kind is PivotKind.LPH:
        return bar.low <= state.level
    return bar.high >= state.level


def _broke_through(state: LevelState, bar: Bar) -> bool:
    if state.kind is PivotKind.LPH:
        return bar.high > state.level
    return bar.low < state.level

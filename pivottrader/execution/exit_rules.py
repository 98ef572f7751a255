"""Exit rules for the open position.

Every enabled rule is evaluated on each bar; the executor keeps the
fired signal with the best price for the position (see RuleExecutor).

Rules:
  - StopLossExit: fixed percent stop, tick-rounded away from entry.
  - EndOfDayExit: flat at the close of the last bar of each day.
  - TrailingPivotExit: trails the most recent SPL (long) / SPH (short)
    confirmed after entry.
  - AggressiveProfitExit: once a minimum profit is reached, trails the
    best recent low (long) / high (short) that still locks in that profit.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pivottrader.core.types import Bar, ExitRuleId, PivotResult
from pivottrader.execution.pricing import (
    percent_level,
    pnl_percent,
    round_to_tick,
    stop_loss_level,
)

if TYPE_CHECKING:
    from pivottrader.backtest.position_manager import Position

logger = logging.getLogger("pivottrader.execution.exit_rules")

# Bars scanned backwards for the aggressive profit trail
_PROFIT_LOOKBACK_BARS: int = 10


@dataclass(frozen=True, slots=True)
class ExitSignal:
    rule_id: ExitRuleId
    price: float
    label: str


@dataclass(frozen=True, slots=True)
class ExitParams:
    """Rule parameters prepared once per run by the executor."""

    pivots: PivotResult
    stop_loss_percent: float | None = None
    aggressive_profit_percent: float | None = None


class ExitRule(ABC):
    """Base class for exit rules."""

    rule_id: ExitRuleId

    @abstractmethod
    def evaluate(
        self,
        position: Position,
        bar_index: int,
        bar: Bar,
        bars: Sequence[Bar],
        params: ExitParams,
    ) -> ExitSignal | None:
        ...


class StopLossExit(ExitRule):
    """Fixed percent stop with an intrabar ordering guess on the entry bar.

    A bar only reports its extremes, not their order. On the entry bar the
    rule assumes the path open -> low -> high -> close for bullish bars and
    open -> high -> low -> close otherwise. Under that path a long entered
    on a bullish bar saw the low before the entry, so the stop cannot have
    been hit on that bar (shorts mirror this with bearish bars). Gap
    entries fill at the open, so the whole bar follows the entry and the
    plain check applies. This is an approximation; tick data would be
    needed to know the real order.
    """

    rule_id = ExitRuleId.STOP_LOSS

    def evaluate(self, position, bar_index, bar, bars, params):
        percent = params.stop_loss_percent
        if percent is None:
            return None

        level = position.stop_loss
        if level is None:
            level = stop_loss_level(position.entry_price, percent, position.direction)

        if bar_index == position.entry_bar and not position.gap_entry:
            if position.is_long and bar.is_bullish:
                return None
            if not position.is_long and bar.is_bearish:
                return None

        if position.is_long:
            hit = bar.low <= level
        else:
            hit = bar.high >= level
        if not hit:
            return None

        side = "LONG" if position.is_long else "SHORT"
        return ExitSignal(self.rule_id, level, f"Stop Loss {side} ({percent}% @ {level:.2f})")


class EndOfDayExit(ExitRule):
    rule_id = ExitRuleId.EOD_EXIT

    def evaluate(self, position, bar_index, bar, bars, params):
        is_last = bar_index >= len(bars) - 1
        if is_last or bars[bar_index + 1].day != bar.day:
            return ExitSignal(self.rule_id, bar.close, "EOD Exit")
        return None


class TrailingPivotExit(ExitRule):
    """Trailing stop on small pivots confirmed after the entry bar."""

    rule_id = ExitRuleId.TRAILING_SPL

    def evaluate(self, position, bar_index, bar, bars, params):
        if position.is_long:
            trail_index = _latest_between(params.pivots.spl, position.entry_bar, bar_index)
            if trail_index is None:
                return None
            trail = bars[trail_index].low
            if bar.low <= trail:
                return ExitSignal(self.rule_id, trail, f"Trailing SPL stop ({trail:.2f})")
            return None

        trail_index = _latest_between(params.pivots.sph, position.entry_bar, bar_index)
        if trail_index is None:
            return None
        trail = bars[trail_index].high
        if bar.high >= trail:
            return ExitSignal(self.rule_id, trail, f"Trailing SPH stop ({trail:.2f})")
        return None


class AggressiveProfitExit(ExitRule):
    """Profit-locking trail armed by a minimum unrealized gain.

    The trail is stored on ``position.trailing_stop`` and only ever moves
    in the position's favour. The gain is checked on every bar: while it
    sits under the threshold the rule neither moves nor fires the trail,
    which stays stored for when the gain recovers.
    """

    rule_id = ExitRuleId.AGGRESSIVE_PROFIT

    def evaluate(self, position, bar_index, bar, bars, params):
        percent = params.aggressive_profit_percent
        if percent is None:
            return None

        gain = pnl_percent(position.direction, position.entry_price, bar.close)
        if gain < percent:
            return None

        min_profit = percent_level(position.entry_price, percent, position.direction, favourable=True)
        self._ratchet(position, bar_index, bars, min_profit)

        trail = position.trailing_stop
        if trail is None:
            return None
        if position.is_long and bar.low <= trail:
            return ExitSignal(self.rule_id, trail, f"Aggressive Profit LONG trail ({trail:.2f})")
        if not position.is_long and bar.high >= trail:
            return ExitSignal(self.rule_id, trail, f"Aggressive Profit SHORT trail ({trail:.2f})")
        return None

    @staticmethod
    def _ratchet(position: Position, bar_index: int, bars: Sequence[Bar], min_profit: float) -> None:
        best = position.trailing_stop
        for idx in range(max(0, bar_index - _PROFIT_LOOKBACK_BARS), bar_index):
            if position.is_long:
                candidate = round_to_tick(bars[idx].low)
                if candidate >= min_profit and (best is None or candidate > best):
                    best = candidate
            else:
                candidate = round_to_tick(bars[idx].high)
                if candidate <= min_profit and (best is None or candidate < best):
                    best = candidate
        if best != position.trailing_stop:
            logger.debug(
                "Aggressive trail for position %d moved %s -> %.2f",
                position.id, position.trailing_stop, best,
            )
            position.trailing_stop = best


def _latest_between(indices: Sequence[int], after: int, before: int) -> int | None:
    latest = None
    for idx in indices:
        if idx >= before:
            break
        if idx > after:
            latest = idx
    return latest


EXIT_RULES: dict[ExitRuleId, type[ExitRule]] = {
    ExitRuleId.STOP_LOSS: StopLossExit,
    ExitRuleId.EOD_EXIT: EndOfDayExit,
    ExitRuleId.TRAILING_SPL: TrailingPivotExit,
    ExitRuleId.AGGRESSIVE_PROFIT: AggressiveProfitExit,
}

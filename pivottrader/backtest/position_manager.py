"""Open-position lifecycle: entry, excursion tracking and exit."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from pivottrader.backtest.trade_collector import Trade, TradeCollector
from pivottrader.core.exceptions import InvariantViolation
from pivottrader.core.types import Bar, Direction, EntryRuleId, ExitRuleId, PivotKind
from pivottrader.execution.entry_rules import EntrySignal
from pivottrader.execution.pricing import pnl_points, stop_loss_level

logger = logging.getLogger("pivottrader.backtest.position_manager")


@dataclass
class Position:
    """State of the single open position.

    Mutable because excursion and trailing-stop fields are updated
    bar-by-bar while the position is open.

    Attributes:
        id: Monotonically increasing position id, shared with its Trade.
        direction: Long or short.
        entry_price: Fill price of the entry signal.
        entry_bar: Index of the entry bar.
        entry_time: Timestamp of the entry bar.
        entry_rule: Human-readable entry label.
        stop_loss: Tick-rounded stop level, None when stop loss is off.
        traded_level: Pivot price the entry broke through.
        level_type: Kind of pivot behind ``traded_level``.
        gap_entry: True when the entry filled at the bar's open on a gap.
        highest_price: Highest high seen since entry.
        lowest_price: Lowest low seen since entry.
        max_favorable_excursion: Best unrealized move in points (>= 0).
        max_adverse_excursion: Worst unrealized move in points (>= 0).
        trailing_stop: Ratcheted profit-protection stop, None until armed.
    """

    id: int
    direction: Direction
    entry_price: float
    entry_bar: int
    entry_time: datetime
    entry_rule: str
    traded_level: float
    level_type: PivotKind
    entry_rule_id: EntryRuleId | None = None
    stop_loss: float | None = None
    gap_entry: bool = False
    highest_price: float = 0.0
    lowest_price: float = 0.0
    max_favorable_excursion: float = 0.0
    max_adverse_excursion: float = 0.0
    trailing_stop: float | None = None

    @property
    def is_long(self) -> bool:
        return self.direction is Direction.LONG


class PositionManager:
    """Opens and closes positions and records finished trades.

    Args:
        stop_loss_percent: Percent used for the stop level of new
            positions; None disables it.
        collector: Destination of closed trades.
    """

    def __init__(self, stop_loss_percent: float | None, collector: TradeCollector | None = None):
        self._stop_loss_percent = stop_loss_percent
        self._collector = collector if collector is not None else TradeCollector()
        self._position: Position | None = None
        self._next_id: int = 1

    @property
    def open_position(self) -> Position | None:
        return self._position

    @property
    def collector(self) -> TradeCollector:
        return self._collector

    def enter(self, signal: EntrySignal, bar_index: int, bar: Bar) -> Position:
        if self._position is not None:
            raise InvariantViolation(
                f"Entry at bar {bar_index} while position {self._position.id} is open"
            )

        stop = None
        if self._stop_loss_percent is not None:
            stop = stop_loss_level(signal.price, self._stop_loss_percent, signal.direction)

        position = Position(
            id=self._next_id,
            direction=signal.direction,
            entry_price=signal.price,
            entry_bar=bar_index,
            entry_time=bar.timestamp,
            entry_rule=signal.label,
            traded_level=signal.traded_level,
            level_type=signal.level_type,
            entry_rule_id=signal.rule_id,
            stop_loss=stop,
            gap_entry=signal.gap_entry,
            highest_price=signal.price,
            lowest_price=signal.price,
        )
        self._next_id += 1
        self._position = position

        logger.info(
            "ENTRY #%d %s @ %.2f bar %d (%s)",
            position.id, position.direction.value.upper(), position.entry_price,
            bar_index, signal.label,
        )
        return position

    def exit(
        self,
        bar_index: int,
        bar: Bar,
        price: float,
        reason: str,
        rule_id: ExitRuleId | None = None,
    ) -> Trade:
        position = self._position
        if position is None:
            raise InvariantViolation(f"Exit at bar {bar_index} without an open position")
        if bar_index < position.entry_bar:
            raise InvariantViolation(
                f"Exit bar {bar_index} precedes entry bar {position.entry_bar} "
                f"for position {position.id}"
            )

        points = pnl_points(position.direction, position.entry_price, price)
        trade = Trade(
            trade_id=position.id,
            direction=position.direction,
            entry_bar=position.entry_bar,
            entry_price=position.entry_price,
            entry_time=position.entry_time,
            entry_rule=position.entry_rule,
            exit_bar=bar_index,
            exit_price=price,
            exit_time=bar.timestamp,
            exit_rule=reason,
            points=points,
            duration_bars=bar_index - position.entry_bar,
            is_win=points > 0,
            traded_level=position.traded_level,
            level_type=position.level_type,
            entry_rule_id=position.entry_rule_id,
            exit_rule_id=rule_id,
            stop_loss=position.stop_loss,
            max_favorable_excursion=position.max_favorable_excursion,
            max_adverse_excursion=position.max_adverse_excursion,
        )
        self._position = None
        self._collector.record(trade)

        logger.info(
            "EXIT #%d %s @ %.2f bar %d (%s) points=%.2f",
            trade.trade_id, trade.direction.value.upper(), price, bar_index, reason, points,
        )
        return trade

    def update_excursion(self, bar: Bar) -> None:
        position = self._position
        if position is None:
            return
        position.highest_price = max(position.highest_price, bar.high)
        position.lowest_price = min(position.lowest_price, bar.low)
        if position.is_long:
            favorable = bar.high - position.entry_price
            adverse = position.entry_price - bar.low
        else:
            favorable = position.entry_price - bar.low
            adverse = bar.high - position.entry_price
        position.max_favorable_excursion = max(position.max_favorable_excursion, favorable)
        position.max_adverse_excursion = max(position.max_adverse_excursion, adverse)

"""Closed-trade collection for backtest analysis.

Trades are appended in exit order and never modified afterwards, which
keeps them safe to hand to reporting and export code.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime

from pivottrader.core.types import Direction, EntryRuleId, ExitRuleId, PivotKind


@dataclass(frozen=True, slots=True)
class Trade:
    trade_id: int
    direction: Direction
    entry_bar: int
    entry_price: float
    entry_time: datetime
    entry_rule: str
    exit_bar: int
    exit_price: float
    exit_time: datetime
    exit_rule: str
    points: float
    duration_bars: int
    is_win: bool
    traded_level: float
    level_type: PivotKind
    entry_rule_id: EntryRuleId | None = None
    exit_rule_id: ExitRuleId | None = None
    stop_loss: float | None = None
    max_favorable_excursion: float = 0.0
    max_adverse_excursion: float = 0.0

    @property
    def stopped_out(self) -> bool:
        return self.exit_rule_id is ExitRuleId.STOP_LOSS

    def to_dict(self) -> dict:
        data = asdict(self)
        data["direction"] = self.direction.value
        data["level_type"] = self.level_type.value
        data["entry_rule_id"] = self.entry_rule_id.value if self.entry_rule_id else None
        data["exit_rule_id"] = self.exit_rule_id.value if self.exit_rule_id else None
        data["entry_time"] = self.entry_time.isoformat()
        data["exit_time"] = self.exit_time.isoformat()
        return data


class TradeCollector:
    def __init__(self) -> None:
        self._trades: list[Trade] = []

    def record(self, trade: Trade) -> Trade:
        self._trades.append(trade)
        return trade

    @property
    def trades(self) -> list[Trade]:
        return list(self._trades)

    @property
    def last_trade(self) -> Trade | None:
        return self._trades[-1] if self._trades else None

    def __len__(self) -> int:
        return len(self._trades)

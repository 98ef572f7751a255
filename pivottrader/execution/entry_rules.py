"""Entry rules.

Each rule looks at the current bar, the pivots confirmed so far and the
level states, and either returns an EntrySignal or None. Rules never
mutate state; the executor marks the traded level once an entry is taken.

Rules:
  - BreakoutEntry (entry_lph_lpl): break of the most recent LPH (long) or
    LPL (short), filled one tick through the level or at the open on a gap.
  - ReentryAfterStopEntry (entry_sph_above_lph): after a stop-out on a
    large pivot, re-enter on the break of an SPH above that LPH (long) or
    an SPL below that LPL (short).
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pivottrader.core.types import Bar, Direction, EntryRuleId, PivotKind, PivotResult
from pivottrader.execution.levels import LevelKey, LevelStateTracker
from pivottrader.execution.pricing import TICK_SIZE

if TYPE_CHECKING:
    from pivottrader.backtest.trade_collector import Trade

logger = logging.getLogger("pivottrader.execution.entry_rules")


@dataclass(frozen=True, slots=True)
class EntrySignal:
    rule_id: EntryRuleId
    direction: Direction
    price: float
    traded_level: float
    level_type: PivotKind
    label: str
    gap_entry: bool = False

    @property
    def level_key(self) -> LevelKey:
        return LevelKey.from_price(self.traded_level, self.level_type)


class EntryRule(ABC):
    """Base class for entry rules."""

    rule_id: EntryRuleId

    def __init__(self, gap_handling: bool = True):
        self.gap_handling = gap_handling

    @abstractmethod
    def evaluate(
        self,
        bar_index: int,
        bar: Bar,
        bars: Sequence[Bar],
        pivots: PivotResult,
        levels: LevelStateTracker,
        last_trade: Trade | None = None,
    ) -> EntrySignal | None:
        ...

    def _fill(self, bar: Bar, level: float, direction: Direction) -> tuple[float, bool]:
        """Fill price for a break of ``level``; a gap through it fills at the open."""
        if direction is Direction.LONG:
            if self.gap_handling and bar.open > level:
                return bar.open, True
            return level + TICK_SIZE, False
        if self.gap_handling and bar.open < level:
            return bar.open, True
        return level - TICK_SIZE, False


def most_recent_before(indices: Sequence[int], bar_index: int) -> int | None:
    """Latest pivot index strictly before ``bar_index``."""
    latest = None
    for idx in indices:
        if idx >= bar_index:
            break
        latest = idx
    return latest


class BreakoutEntry(EntryRule):
    rule_id = EntryRuleId.ENTRY_LPH_LPL

    def evaluate(self, bar_index, bar, bars, pivots, levels, last_trade=None):
        lph_index = most_recent_before(pivots.lph, bar_index)
        if lph_index is not None:
            level = bars[lph_index].high
            key = LevelKey.from_price(level, PivotKind.LPH)
            if levels.is_available(key) and bar.high > level:
                price, gap = self._fill(bar, level, Direction.LONG)
                label = (
                    f"LONG LPH GAP entry @ open {price:.2f} (LPH {level:.2f})" if gap
                    else f"LONG LPH breakout entry ({level:.2f} + 1 tick)"
                )
                return EntrySignal(
                    self.rule_id, Direction.LONG, price, level, PivotKind.LPH, label, gap,
                )

        lpl_index = most_recent_before(pivots.lpl, bar_index)
        if lpl_index is not None:
            level = bars[lpl_index].low
            key = LevelKey.from_price(level, PivotKind.LPL)
            if levels.is_available(key) and bar.low < level:
                price, gap = self._fill(bar, level, Direction.SHORT)
                label = (
                    f"SHORT LPL GAP entry @ open {price:.2f} (LPL {level:.2f})" if gap
                    else f"SHORT LPL breakdown entry ({level:.2f} - 1 tick)"
                )
                return EntrySignal(
                    self.rule_id, Direction.SHORT, price, level, PivotKind.LPL, label, gap,
                )

        return None


class ReentryAfterStopEntry(EntryRule):
    """Re-entry on small pivots beyond a large pivot that stopped us out.

    Only fires while the most recent closed trade was stopped out on an
    LPH (long) or LPL (short) level. Candidate small pivots are checked
    oldest first; the first available one the bar breaks is taken.
    """

    rule_id = EntryRuleId.ENTRY_SPH_ABOVE_LPH

    def evaluate(self, bar_index, bar, bars, pivots, levels, last_trade=None):
        if last_trade is None or not last_trade.stopped_out:
            return None

        stopped_level = last_trade.traded_level
        if last_trade.level_type is PivotKind.LPH:
            for idx in pivots.sph:
                if idx >= bar_index:
                    break
                sph = bars[idx].high
                if sph <= stopped_level:
                    continue
                if levels.is_available(LevelKey.from_price(sph, PivotKind.SPH)) and bar.high > sph:
                    price, gap = self._fill(bar, sph, Direction.LONG)
                    label = (
                        f"LONG SPH re-entry GAP @ open {price:.2f} (SPH {sph:.2f} above LPH {stopped_level:.2f})"
                        if gap
                        else f"LONG SPH re-entry ({sph:.2f} + 1 tick, above LPH {stopped_level:.2f})"
                    )
                    return EntrySignal(
                        self.rule_id, Direction.LONG, price, sph, PivotKind.SPH, label, gap,
                    )

        elif last_trade.level_type is PivotKind.LPL:
            for idx in pivots.spl:
                if idx >= bar_index:
                    break
                spl = bars[idx].low
                if spl >= stopped_level:
                    continue
                if levels.is_available(LevelKey.from_price(spl, PivotKind.SPL)) and bar.low < spl:
                    price, gap = self._fill(bar, spl, Direction.SHORT)
                    label = (
                        f"SHORT SPL re-entry GAP @ open {price:.2f} (SPL {spl:.2f} below LPL {stopped_level:.2f})"
                        if gap
                        else f"SHORT SPL re-entry ({spl:.2f} - 1 tick, below LPL {stopped_level:.2f})"
                    )
                    return EntrySignal(
                        self.rule_id, Direction.SHORT, price, spl, PivotKind.SPL, label, gap,
                    )

        return None


ENTRY_RULES: dict[EntryRuleId, type[EntryRule]] = {
    EntryRuleId.ENTRY_LPH_LPL: BreakoutEntry,
    EntryRuleId.ENTRY_SPH_ABOVE_LPH: ReentryAfterStopEntry,
}

"""RuleExecutor: runs the enabled rules for one backtest.

Entry rules are tried in declared order and the first signal wins. Exit
rules are all evaluated; when several fire on the same bar the one with the
best price for the position is taken (highest for longs, lowest for
shorts), the earlier rule winning exact ties.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from pivottrader.core.config import RuleConfig
from pivottrader.core.exceptions import PivotTraderError, RuleError
from pivottrader.core.types import Bar, PivotResult
from pivottrader.execution.entry_rules import ENTRY_RULES, EntryRule, EntrySignal
from pivottrader.execution.exit_rules import EXIT_RULES, ExitParams, ExitRule, ExitSignal
from pivottrader.execution.levels import LevelState, LevelStateTracker

if TYPE_CHECKING:
    from pivottrader.backtest.position_manager import Position
    from pivottrader.backtest.trade_collector import Trade

logger = logging.getLogger("pivottrader.execution.rule_executor")


class RuleExecutor:
    """Evaluates the rules enabled in ``config`` against ``pivots``."""

    def __init__(self, config: RuleConfig, pivots: PivotResult):
        self.config = config
        self.pivots = pivots
        self.entry_rules: list[EntryRule] = [
            ENTRY_RULES[rule_id](gap_handling=config.gap_handling)
            for rule_id in config.enabled_entry_rules()
        ]
        self.exit_rules: list[ExitRule] = [
            EXIT_RULES[rule_id]() for rule_id in config.enabled_exit_rules()
        ]
        self.exit_params = ExitParams(
            pivots=pivots,
            stop_loss_percent=config.stop_loss_percent if config.stop_loss else None,
            aggressive_profit_percent=(
                config.aggressive_profit_percent if config.aggressive_profit else None
            ),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def process_entries(
        self,
        bar_index: int,
        bar: Bar,
        bars: Sequence[Bar],
        levels: LevelStateTracker,
        last_trade: Trade | None = None,
    ) -> EntrySignal | None:
        for rule in self.entry_rules:
            try:
                signal = rule.evaluate(bar_index, bar, bars, self.pivots, levels, last_trade)
            except PivotTraderError:
                raise
            except Exception as exc:
                raise RuleError(rule.rule_id.value, bar_index, str(exc)) from exc
            if signal is not None:
                logger.debug("Entry rule %s fired at bar %d: %s", rule.rule_id.value, bar_index, signal.label)
                return signal
        return None

    def process_exits(
        self,
        position: Position,
        bar_index: int,
        bar: Bar,
        bars: Sequence[Bar],
    ) -> ExitSignal | None:
        fired: list[ExitSignal] = []
        for rule in self.exit_rules:
            try:
                signal = rule.evaluate(position, bar_index, bar, bars, self.exit_params)
            except PivotTraderError:
                raise
            except Exception as exc:
                raise RuleError(rule.rule_id.value, bar_index, str(exc)) from exc
            if signal is not None:
                fired.append(signal)

        if not fired:
            return None

        best = fired[0]
        for signal in fired[1:]:
            if position.is_long and signal.price > best.price:
                best = signal
            elif not position.is_long and signal.price < best.price:
                best = signal

        if len(fired) > 1:
            logger.info(
                "Bar %d: %d exits fired (%s), taking %s @ %.2f",
                bar_index,
                len(fired),
                ", ".join(f"{s.rule_id.value}={s.price:.2f}" for s in fired),
                best.rule_id.value,
                best.price,
            )
        return best

    def confirm_entry(self, signal: EntrySignal, bar: Bar, levels: LevelStateTracker) -> LevelState:
        """Mark the level behind ``signal`` as traded."""
        return levels.mark_traded(signal.level_key, bar.index, bar.day, level=signal.traded_level)

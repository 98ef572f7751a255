"""Bar-by-bar backtest driver.

Per bar, in order:
  1. On a new trading day: close a carried position at the open (EOD
     exit enabled) and clear level states (daily reset enabled).
  2. Evaluate exits for the open position.
  3. Update level states with the bar; levels traded on an earlier day
     become available again, keeping their revalidation flag.
  4. Without a position, evaluate entries; an entry marks its level traded
     and exits are re-evaluated on the same bar.
  5. Update excursion of the open position.

After the last bar an open position is closed at the last close when EOD
exit is enabled, otherwise it is reported as ``open_position``.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

import pandas as pd

from pivottrader.backtest.performance import calculate_metrics
from pivottrader.backtest.position_manager import Position, PositionManager
from pivottrader.backtest.trade_collector import Trade, TradeCollector
from pivottrader.core.config import RuleConfig
from pivottrader.core.exceptions import ConfigWarning
from pivottrader.core.types import Bar, BarSeries, PivotResult
from pivottrader.execution.levels import LevelKey, LevelStateTracker, LevelStatus
from pivottrader.execution.rule_executor import RuleExecutor
from pivottrader.execution.rule_validator import (
    validate_data_requirements,
    validate_rule_config,
)
from pivottrader.pivots.detector import PivotDetector

logger = logging.getLogger("pivottrader.backtest.engine")


class BacktestState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"


@dataclass
class BacktestContext:
    """All mutable state of one run; nothing outlives the run."""

    bars: BarSeries
    pivots: PivotResult
    config: RuleConfig
    levels: LevelStateTracker
    positions: PositionManager
    executor: RuleExecutor
    current_day: date | None = None

    @property
    def trades(self) -> TradeCollector:
        return self.positions.collector


@dataclass
class BacktestResult:
    trades: list[Trade]
    open_position: Position | None
    pivots: PivotResult
    config: RuleConfig
    level_states: Mapping[LevelKey, LevelStatus] = field(default_factory=dict)
    warnings: list[ConfigWarning] = field(default_factory=list)
    metrics: dict = field(default_factory=dict)
    data_stats: dict = field(default_factory=dict)
    state: BacktestState = BacktestState.COMPLETED

    @property
    def total_trades(self) -> int:
        return len(self.trades)

    def trades_frame(self) -> pd.DataFrame:
        return pd.DataFrame([t.to_dict() for t in self.trades])

    def to_dict(self) -> dict:
        """Export of trades, configuration and performance."""
        return {
            "trades": [t.to_dict() for t in self.trades],
            "configuration": self.config.model_dump(),
            "performance": dict(self.metrics),
            "pivots": self.pivots.to_dict(),
            "data": dict(self.data_stats),
            "warnings": [str(w) for w in self.warnings],
            "export_time": datetime.now(timezone.utc).isoformat(),
        }


class BacktestEngine:
    """Replays a rule configuration over a bar series.

    The engine holds only the configuration; every ``run`` builds its own
    context, so one engine can be reused across datasets.
    """

    def __init__(self, config: RuleConfig | None = None, detector: PivotDetector | None = None) -> None:
        self._config = config or RuleConfig()
        self._detector = detector or PivotDetector()
        self._state = BacktestState.IDLE

    @property
    def config(self) -> RuleConfig:
        return self._config

    @property
    def state(self) -> BacktestState:
        return self._state

    def run(
        self,
        bars: BarSeries | Iterable[Bar],
        pivots: PivotResult | Mapping[str, Any] | None = None,
    ) -> BacktestResult:
        warnings = validate_rule_config(self._config)
        series = bars if isinstance(bars, BarSeries) else BarSeries(bars)
        if pivots is None:
            pivot_result = self._detector.detect(series)
        else:
            pivot_result = PivotResult.from_mapping(pivots, bar_count=len(series))
        warnings.extend(validate_data_requirements(self._config, pivot_result))

        ctx = self._new_context(series, pivot_result)
        self._state = BacktestState.RUNNING
        logger.info(
            "Backtest start: %d bars, entries=%s exits=%s",
            len(series),
            [r.value for r in self._config.enabled_entry_rules()],
            [r.value for r in self._config.enabled_exit_rules()],
        )

        for bar in series:
            self._process_bar(ctx, bar)

        self._close_final(ctx)
        self._state = BacktestState.COMPLETED

        trades = ctx.trades.trades
        metrics = calculate_metrics(trades)
        logger.info(
            "Backtest complete: %d trades, %.2f points, win rate %.1f%%",
            metrics["total_trades"], metrics["total_points"], metrics["win_rate"] * 100,
        )
        logger.info("Level states: %s", ctx.levels.summary())

        return BacktestResult(
            trades=trades,
            open_position=ctx.positions.open_position,
            pivots=pivot_result,
            config=self._config,
            level_states=ctx.levels.snapshot(),
            warnings=warnings,
            metrics=metrics,
            data_stats=series.stats(),
            state=self._state,
        )

    # ------------------------------------------------------------------
    # Per-bar processing
    # ------------------------------------------------------------------

    def _new_context(self, bars: BarSeries, pivots: PivotResult) -> BacktestContext:
        config = self._config
        return BacktestContext(
            bars=bars,
            pivots=pivots,
            config=config,
            levels=LevelStateTracker(cross_day_reset=True),
            positions=PositionManager(config.stop_loss_percent if config.stop_loss else None),
            executor=RuleExecutor(config, pivots),
        )

    def _process_bar(self, ctx: BacktestContext, bar: Bar) -> None:
        idx = bar.index

        if bar.day != ctx.current_day:
            self._on_new_day(ctx, bar)

        if ctx.positions.open_position is not None:
            self._check_exits(ctx, bar)

        ctx.levels.update(bar, ctx.pivots, ctx.bars)

        if ctx.positions.open_position is None:
            signal = ctx.executor.process_entries(
                idx, bar, ctx.bars, ctx.levels, ctx.trades.last_trade,
            )
            if signal is not None:
                ctx.positions.enter(signal, idx, bar)
                ctx.executor.confirm_entry(signal, bar, ctx.levels)
                self._check_exits(ctx, bar)

        ctx.positions.update_excursion(bar)

    def _on_new_day(self, ctx: BacktestContext, bar: Bar) -> None:
        if ctx.current_day is not None:
            if ctx.config.eod_exit and ctx.positions.open_position is not None:
                ctx.positions.exit(bar.index, bar, bar.open, "EOD Exit - Previous Day")
            if ctx.config.daily_reset:
                ctx.levels.reset_daily()
        ctx.current_day = bar.day

    def _check_exits(self, ctx: BacktestContext, bar: Bar) -> None:
        position = ctx.positions.open_position
        signal = ctx.executor.process_exits(position, bar.index, bar, ctx.bars)
        if signal is not None:
            ctx.positions.exit(bar.index, bar, signal.price, signal.label, signal.rule_id)

    def _close_final(self, ctx: BacktestContext) -> None:
        if ctx.positions.open_position is None or not ctx.config.eod_exit:
            return
        last = ctx.bars[-1]
        ctx.positions.exit(last.index, last, last.close, "EOD Exit - Final")


def run_backtest(
    bars: Sequence[Bar] | BarSeries,
    config: RuleConfig | None = None,
    pivots: PivotResult | Mapping[str, Any] | None = None,
) -> BacktestResult:
    return BacktestEngine(config).run(bars, pivots)

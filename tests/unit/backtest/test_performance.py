"""Tests for backtest performance metrics."""
from __future__ import annotations

from datetime import datetime

import pytest

from pivottrader.backtest.performance import calculate_metrics
from pivottrader.backtest.trade_collector import Trade
from pivottrader.core.types import Direction, PivotKind


def _make_trade(points: float, trade_id: int = 1) -> Trade:
    ts = datetime(2024, 3, 4, 10, 0)
    return Trade(
        trade_id=trade_id,
        direction=Direction.LONG,
        entry_bar=0,
        entry_price=100.0,
        entry_time=ts,
        entry_rule="entry",
        exit_bar=1,
        exit_price=100.0 + points,
        exit_time=ts,
        exit_rule="exit",
        points=points,
        duration_bars=1,
        is_win=points > 0,
        traded_level=100.0,
        level_type=PivotKind.LPH,
    )


class TestCalculateMetrics:
    def test_empty(self):
        metrics = calculate_metrics([])
        assert metrics["total_trades"] == 0
        assert metrics["win_rate"] == 0.0
        assert metrics["max_drawdown_points"] == 0.0

    def test_mixed_trades(self):
        trades = [_make_trade(p, i) for i, p in enumerate([1.0, -0.5, 0.0, 2.0, -1.0], start=1)]
        metrics = calculate_metrics(trades)
        assert metrics["total_trades"] == 5
        assert metrics["winning_trades"] == 2
        # Flat trades count as losses
        assert metrics["losing_trades"] == 3
        assert metrics["win_rate"] == pytest.approx(0.4)
        assert metrics["profit_factor"] == pytest.approx(3.0 / 1.5)
        assert metrics["total_points"] == pytest.approx(1.5)
        assert metrics["avg_points"] == pytest.approx(0.3)

    def test_drawdown_from_peak(self):
        # Curve: 1.0, 0.5, 2.5, 1.0, 0.7
        trades = [_make_trade(p) for p in [1.0, -0.5, 2.0, -1.5, -0.3]]
        assert calculate_metrics(trades)["max_drawdown_points"] == pytest.approx(1.8)

    def test_no_losses_profit_factor_infinite(self):
        metrics = calculate_metrics([_make_trade(1.0), _make_trade(0.5)])
        assert metrics["profit_factor"] == float("inf")
        assert metrics["max_drawdown_points"] == 0.0

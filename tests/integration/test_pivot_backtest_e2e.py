"""End-to-end pivot backtest integration test.

Verifies that detection, level tracking, rule execution and position
management work together on generated multi-day data, and that the
command-line runner loads bars and settings from disk.
"""
from __future__ import annotations

import importlib.util
import json
from pathlib import Path

import pytest

from conftest import random_walk
from pivottrader.backtest.engine import BacktestEngine
from pivottrader.core.config import RuleConfig, load_settings
from pivottrader.core.types import Direction, ExitRuleId
from pivottrader.execution.pricing import pnl_points

_ROOT = Path(__file__).resolve().parents[2]

_CONFIGS = {
    "default": RuleConfig(),
    "reentry": RuleConfig(entry_sph_above_lph=True),
    "trailing": RuleConfig(stop_loss=False, trailing_spl=True),
    "aggressive": RuleConfig(aggressive_profit=True, aggressive_profit_percent=0.2),
    "no_gap": RuleConfig(gap_handling=False, daily_reset=False),
    "everything": RuleConfig(
        entry_sph_above_lph=True,
        trailing_spl=True,
        aggressive_profit=True,
        aggressive_profit_percent=0.3,
    ),
}


def _load_runner():
    spec = importlib.util.spec_from_file_location(
        "run_pivot_backtest", _ROOT / "scripts" / "run_pivot_backtest.py"
    )
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestBacktestInvariants:
    @pytest.mark.parametrize("seed", [3, 17, 29])
    @pytest.mark.parametrize("name", sorted(_CONFIGS))
    def test_trade_invariants(self, seed, name):
        config = _CONFIGS[name]
        bars = random_walk(seed=seed, count=600, days=3)
        result = BacktestEngine(config).run(bars)

        previous_exit = -1
        for trade in result.trades:
            # One position at a time
            assert trade.entry_bar >= previous_exit
            assert trade.exit_bar >= trade.entry_bar
            assert trade.duration_bars == trade.exit_bar - trade.entry_bar
            assert trade.points == pytest.approx(
                pnl_points(trade.direction, trade.entry_price, trade.exit_price)
            )
            assert trade.is_win == (trade.points > 0)
            assert trade.max_favorable_excursion >= 0
            assert trade.max_adverse_excursion >= 0
            if trade.exit_rule_id is ExitRuleId.STOP_LOSS:
                assert trade.exit_price == trade.stop_loss
            previous_exit = trade.exit_bar

        # EOD exit keeps every trade inside one session
        assert result.open_position is None
        for trade in result.trades:
            assert trade.entry_time.date() == trade.exit_time.date()

        assert result.metrics["total_trades"] == len(result.trades)

    def test_pivot_lists_valid(self):
        bars = random_walk(seed=5, count=500, days=2)
        pivots = BacktestEngine().run(bars).pivots
        for kind in ("sph", "spl", "lph", "lpl"):
            indices = getattr(pivots, kind)
            assert list(indices) == sorted(set(indices))
            assert all(0 <= i < len(bars) for i in indices)
        assert set(pivots.lph) <= set(pivots.sph)
        assert set(pivots.lpl) <= set(pivots.spl)

    def test_runs_are_deterministic(self):
        bars = random_walk(seed=11, count=400, days=2)
        engine = BacktestEngine(_CONFIGS["everything"])
        first = [t.to_dict() for t in engine.run(bars).trades]
        second = [t.to_dict() for t in engine.run(bars).trades]
        assert first == second

    def test_both_directions_traded(self):
        directions = set()
        for seed in range(1, 9):
            result = BacktestEngine().run(random_walk(seed=seed, count=600, days=3))
            directions.update(t.direction for t in result.trades)
        assert directions == {Direction.LONG, Direction.SHORT}


class TestRunnerScript:
    def test_default_settings_file_loads(self):
        settings = load_settings(_ROOT / "config" / "default.yaml")
        assert settings.rules == RuleConfig()

    def test_main_runs_and_exports(self, tmp_path, capsys):
        bars_path = tmp_path / "bars.pkl"
        random_walk(seed=3, count=300, days=2).to_dataframe().to_pickle(bars_path)
        export_path = tmp_path / "result.json"

        runner = _load_runner()
        code = runner.main([
            str(bars_path),
            "--config", str(_ROOT / "config" / "default.yaml"),
            "--export", str(export_path),
        ])

        assert code == 0
        assert "pivot backtest" in capsys.readouterr().out
        exported = json.loads(export_path.read_text(encoding="utf-8"))
        assert exported["data"]["total_bars"] == 300
        assert exported["configuration"]["stop_loss_percent"] == 0.3

    def test_main_reports_bad_data(self, tmp_path):
        bars_path = tmp_path / "bars.pkl"
        random_walk(seed=3, count=300).to_dataframe().head(2).to_pickle(bars_path)
        assert _load_runner().main([str(bars_path)]) == 1

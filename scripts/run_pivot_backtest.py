"""Backtest runner: loads bars saved by pandas and replays a rule config.

Usage:
    python scripts/run_pivot_backtest.py bars.json [--config config.yaml] [--export out.json]

The bar file may be a pickled DataFrame or JSON records (``DataFrame.to_json(orient="records")``)
with timestamp/open/high/low/close columns.
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import pandas as pd

# Ensure project root is on sys.path
_PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(_PROJECT_ROOT))

from pivottrader.backtest.engine import BacktestEngine  # noqa: E402
from pivottrader.core.config import Settings, load_settings  # noqa: E402
from pivottrader.core.exceptions import PivotTraderError  # noqa: E402
from pivottrader.core.logger import setup_logging  # noqa: E402
from pivottrader.core.types import BarSeries  # noqa: E402


def _load_frame(path: Path) -> pd.DataFrame:
    if path.suffix in (".pkl", ".pickle"):
        return pd.read_pickle(path)
    return pd.read_json(path, orient="records")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run a pivot breakout backtest")
    parser.add_argument("bars", type=Path, help="Pickled DataFrame or JSON-records bar file")
    parser.add_argument("--config", type=Path, default=None, help="YAML settings file")
    parser.add_argument("--export", type=Path, default=None, help="Write results as JSON")
    args = parser.parse_args(argv)

    settings = load_settings(args.config) if args.config else Settings()
    log = setup_logging(settings.system)

    try:
        bars = BarSeries.from_dataframe(_load_frame(args.bars))
        result = BacktestEngine(settings.rules).run(bars)
    except PivotTraderError as exc:
        log.error("Backtest failed: %s", exc)
        return 1

    metrics = result.metrics
    print("=" * 60)
    print(f"  {settings.system.name} -- pivot backtest")
    print("=" * 60)
    print(f"  Bars         : {result.data_stats['total_bars']} "
          f"({result.data_stats['start_date']} -> {result.data_stats['end_date']})")
    print(f"  Pivots       : {len(result.pivots.lph)} LPH / {len(result.pivots.lpl)} LPL")
    print(f"  Trades       : {metrics['total_trades']}")
    print(f"  Win rate     : {metrics['win_rate'] * 100:.1f}%")
    print(f"  Total points : {metrics['total_points']:.2f}")
    print(f"  Avg points   : {metrics['avg_points']:.2f}")
    for warning in result.warnings:
        print(f"  [WARN] {warning}")

    if args.export:
        args.export.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
        print(f"  Exported     : {args.export}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

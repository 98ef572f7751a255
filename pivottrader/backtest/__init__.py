from pivottrader.backtest.engine import BacktestEngine, BacktestResult, run_backtest
from pivottrader.backtest.trade_collector import Trade, TradeCollector

__all__ = ["BacktestEngine", "BacktestResult", "Trade", "TradeCollector", "run_backtest"]

"""Rule evaluation for pivot backtests.

This package contains:
- LevelStateTracker: availability of traded pivot levels
- Entry rules: LPH/LPL breakout and SPH/SPL re-entry after a stop
- Exit rules: stop loss, end of day, trailing pivot and aggressive profit
- RuleExecutor: first-match entries and best-price exit arbitration
"""
from pivottrader.execution.levels import LevelKey, LevelStateTracker, LevelStatus
from pivottrader.execution.rule_executor import RuleExecutor

__all__ = [
    "LevelKey",
    "LevelStateTracker",
    "LevelStatus",
    "RuleExecutor",
]

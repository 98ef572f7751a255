"""Core exception hierarchy for pivottrader.

This module defines the exceptions raised by pivot detection and the
backtest engine. Fatal errors abort a run before any state is mutated;
configuration warnings are collected and returned with the result.
"""


class PivotTraderError(Exception):
    """Base exception class for all pivottrader errors.

    All pivottrader-specific exceptions inherit from this class,
    allowing callers to catch all framework errors with a single except clause.
    """


class ConfigError(PivotTraderError):
    """Configuration-related errors.

    Raised when a rule configuration is unusable: no entry rule enabled,
    a stop-loss or profit rule enabled without a valid percentage, or a
    configuration file that fails validation.
    """


class ConfigWarning(UserWarning):
    """Non-fatal configuration issue.

    Instances are collected by the rule validator and attached to the
    backtest result. They are logged, never raised.
    """


class DataError(PivotTraderError):
    """Bar or pivot input errors.

    Raised when the bar series is too short, a bar is missing OHLC fields
    or carries non-numeric prices, or externally supplied pivot data is
    malformed.
    """


class InvariantViolation(PivotTraderError):
    """Internal consistency check failed.

    Raised when the engine detects a state that can only come from a bug,
    such as opening a second position or closing a trade before it opened.
    """


class RuleError(PivotTraderError):
    """Rule evaluation failure.

    Raised when an entry or exit rule fails while evaluating a bar. The
    backtest aborts and no partial result is produced.

    Attributes:
        rule: Identifier of the rule that failed.
        bar_index: Index of the bar being evaluated.
        reason: Description of the underlying failure.
    """

    def __init__(self, rule: str, bar_index: int, reason: str):
        """Initialize RuleError with rule, bar and reason details.

        Args:
            rule: Rule identifier (e.g., "stop_loss", "entry_lph_lpl").
            bar_index: Index of the bar being evaluated when the rule failed.
            reason: Description of why evaluation failed.
        """
        super().__init__(f"Rule [{rule}] failed at bar {bar_index}: {reason}")
        self.rule = rule
        self.bar_index = bar_index
        self.reason = reason

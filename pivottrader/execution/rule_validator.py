"""Pre-run validation of rule configurations.

Errors raise ConfigError before anything runs; everything else comes back
as a list of ConfigWarning for the caller to log or display.
"""
from __future__ import annotations

import logging

from pivottrader.core.config import RuleConfig
from pivottrader.core.exceptions import ConfigError, ConfigWarning
from pivottrader.core.types import PivotResult

logger = logging.getLogger(__name__)

STOP_LOSS_PERCENT_RANGE: tuple[float, float] = (0.1, 5.0)
AGGRESSIVE_PROFIT_PERCENT_RANGE: tuple[float, float] = (0.1, 2.0)


def _in_range(value: float | None, bounds: tuple[float, float]) -> bool:
    return value is not None and bounds[0] <= value <= bounds[1]


def validate_rule_config(config: RuleConfig) -> list[ConfigWarning]:
    """Check a rule configuration before a run.

    Raises:
        ConfigError: If no entry rule is enabled, or an enabled stop-loss /
            aggressive-profit rule lacks a percent inside its allowed range.
    """
    if not config.enabled_entry_rules():
        raise ConfigError("At least one entry rule must be enabled")

    if config.stop_loss and not _in_range(config.stop_loss_percent, STOP_LOSS_PERCENT_RANGE):
        low, high = STOP_LOSS_PERCENT_RANGE
        raise ConfigError(
            f"Stop loss is enabled but stop_loss_percent={config.stop_loss_percent} "
            f"is not between {low} and {high}"
        )

    if config.aggressive_profit and not _in_range(
        config.aggressive_profit_percent, AGGRESSIVE_PROFIT_PERCENT_RANGE
    ):
        low, high = AGGRESSIVE_PROFIT_PERCENT_RANGE
        raise ConfigError(
            f"Aggressive profit is enabled but aggressive_profit_percent="
            f"{config.aggressive_profit_percent} is not between {low} and {high}"
        )

    warnings: list[ConfigWarning] = []
    if not config.enabled_exit_rules():
        warnings.append(ConfigWarning(
            "No exit rule is enabled - positions stay open until the data ends"
        ))
    if config.stop_loss and config.trailing_spl:
        warnings.append(ConfigWarning(
            "Both fixed stop loss and trailing stop are enabled - the exit with "
            "the better price is taken on each bar"
        ))
    if config.aggressive_profit and config.trailing_spl:
        warnings.append(ConfigWarning(
            "Aggressive profit and trailing SPL stop are both enabled - "
            "conflicting trailing exits"
        ))
    if config.entry_sph_above_lph and not config.entry_lph_lpl:
        warnings.append(ConfigWarning(
            "SPH re-entry is enabled without LPH/LPL breakout entry - re-entry "
            "only follows a stopped-out breakout trade"
        ))

    for warning in warnings:
        logger.warning("Config warning: %s", warning)
    return warnings


def validate_data_requirements(config: RuleConfig, pivots: PivotResult) -> list[ConfigWarning]:
    """Warn when enabled rules depend on pivots the data does not contain."""
    warnings: list[ConfigWarning] = []
    if (config.entry_lph_lpl or config.entry_sph_above_lph) and not (pivots.lph or pivots.lpl):
        warnings.append(ConfigWarning(
            "Entry rules need LPH/LPL pivots but none were found in the data"
        ))
    if config.trailing_spl and not (pivots.sph or pivots.spl):
        warnings.append(ConfigWarning(
            "Trailing SPL stop is enabled but no small pivots were found"
        ))
    for warning in warnings:
        logger.warning("Data warning: %s", warning)
    return warnings

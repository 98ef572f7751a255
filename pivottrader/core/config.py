"""Core configuration management module."""
from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from pivottrader.core.exceptions import ConfigError
from pivottrader.core.types import EntryRuleId, ExitRuleId


class SystemConfig(BaseModel):
    """System-level configuration."""

    model_config = ConfigDict(use_enum_values=True)

    name: str = "pivottrader"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_dir: str | None = None
    log_backup_days: int = 30

    @field_validator("log_backup_days")
    @classmethod
    def validate_backup_days(cls, v: int) -> int:
        if v < 0:
            raise ValueError("log_backup_days must not be negative")
        return v


class RuleConfig(BaseModel):
    """Flat snapshot of enabled rules and their parameters.

    Field names follow the rule identifiers. camelCase keys
    (``entryLphLpl``, ``stopLossPercent``, ...) are accepted as well.
    Cross-field checks (at least one entry rule, percent ranges) live in
    ``pivottrader.execution.rule_validator`` so they can produce warnings
    alongside errors.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    # Entry rules
    entry_lph_lpl: bool = True
    entry_sph_above_lph: bool = False

    # Entry modifiers
    gap_handling: bool = True
    daily_reset: bool = True

    # Exit rules
    stop_loss: bool = True
    stop_loss_percent: float | None = 0.3
    eod_exit: bool = True
    trailing_spl: bool = False
    aggressive_profit: bool = False
    aggressive_profit_percent: float | None = 0.5

    @field_validator("stop_loss_percent", "aggressive_profit_percent")
    @classmethod
    def validate_percent(cls, v: float | None) -> float | None:
        """Reject negative percentages; range checks happen per rule."""
        if v is not None and v < 0:
            raise ValueError("percent values must not be negative")
        return v

    def enabled_entry_rules(self) -> list[EntryRuleId]:
        """Enabled entry rules in evaluation order."""
        enabled = []
        if self.entry_lph_lpl:
            enabled.append(EntryRuleId.ENTRY_LPH_LPL)
        if self.entry_sph_above_lph:
            enabled.append(EntryRuleId.ENTRY_SPH_ABOVE_LPH)
        return enabled

    def enabled_exit_rules(self) -> list[ExitRuleId]:
        """Enabled exit rules in declared order (earlier wins price ties)."""
        enabled = []
        if self.stop_loss:
            enabled.append(ExitRuleId.STOP_LOSS)
        if self.eod_exit:
            enabled.append(ExitRuleId.EOD_EXIT)
        if self.trailing_spl:
            enabled.append(ExitRuleId.TRAILING_SPL)
        if self.aggressive_profit:
            enabled.append(ExitRuleId.AGGRESSIVE_PROFIT)
        return enabled


class Settings(BaseModel):
    """Root settings configuration."""

    model_config = ConfigDict(use_enum_values=True)

    system: SystemConfig = SystemConfig()
    rules: RuleConfig = RuleConfig()


def load_rule_config(data: Mapping[str, Any] | None) -> RuleConfig:
    """Validate a plain mapping into a RuleConfig.

    Raises:
        ConfigError: If the mapping has unknown keys or invalid values.
    """
    try:
        return RuleConfig.model_validate(dict(data or {}))
    except ValidationError as exc:
        raise ConfigError(f"Invalid rule configuration: {exc}") from exc


def load_settings(path: Path | str) -> Settings:
    """Load settings from a YAML configuration file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Settings instance with loaded configuration.

    Raises:
        FileNotFoundError: If configuration file does not exist.
        yaml.YAMLError: If YAML is invalid.
        ConfigError: If configuration is invalid.
    """
    config_path = Path(path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, encoding="utf-8") as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        raw_config = {}

    try:
        return Settings.model_validate(raw_config)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {config_path}: {exc}") from exc

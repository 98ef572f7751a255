"""Logging setup for backtest runs."""
from __future__ import annotations

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from pivottrader.core.config import SystemConfig

PACKAGE_LOGGER = "pivottrader"

_LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
_CONSOLE_HANDLER = "pivottrader.console"
_FILE_HANDLER = "pivottrader.file"


def setup_logging(system: SystemConfig | None = None) -> logging.Logger:
    """Configure the ``pivottrader`` package logger from ``system``.

    Every module logger (``pivottrader.pivots.detector``,
    ``pivottrader.backtest.engine`` and so on) propagates here, so one call
    covers a whole run. A file handler is added only when ``log_dir`` is
    set; it writes ``<log_dir>/<name>.log`` and rotates at midnight.

    Handlers installed by an earlier call are closed and replaced, so a
    second call with a different ``SystemConfig`` takes effect instead of
    stacking output.
    """
    system = system or SystemConfig()
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(getattr(logging, system.log_level))

    for handler in list(logger.handlers):
        if handler.get_name() in (_CONSOLE_HANDLER, _FILE_HANDLER):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(_LOG_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.set_name(_CONSOLE_HANDLER)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if system.log_dir:
        log_path = Path(system.log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            filename=log_path / f"{system.name}.log",
            when="midnight",
            backupCount=system.log_backup_days,
            encoding="utf-8",
        )
        file_handler.suffix = "%Y-%m-%d"
        file_handler.set_name(_FILE_HANDLER)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.debug("Logging configured for %s at %s", system.name, system.log_level)
    return logger

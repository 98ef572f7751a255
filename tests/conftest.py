"""
Pytest configuration and shared fixtures for pivottrader tests.
Provides bar builders and a seeded random-walk bar generator.
"""
from __future__ import annotations

import random
from datetime import datetime, timedelta

import pytest

from pivottrader.core.config import RuleConfig
from pivottrader.core.types import Bar, BarSeries


SESSION_START = datetime(2024, 3, 4, 9, 30)


def make_bar(index: int, o: float, h: float, l: float, c: float, day: int = 0) -> Bar:
    """One-minute bar ``index`` minutes into session ``day``."""
    return Bar(
        index=index,
        timestamp=SESSION_START + timedelta(days=day, minutes=index),
        open=o,
        high=h,
        low=l,
        close=c,
        volume=1000.0,
    )


def make_series(rows: list[tuple], day: int = 0) -> BarSeries:
    """Series from ``(o, h, l, c)`` rows, or ``(o, h, l, c, day)`` rows."""
    bars = []
    for i, row in enumerate(rows):
        o, h, l, c, *rest = row
        bars.append(make_bar(i, o, h, l, c, day=rest[0] if rest else day))
    return BarSeries(bars)


def random_walk(seed: int, count: int = 300, days: int = 1, start: float = 100.0) -> BarSeries:
    """Deterministic random-walk bars split evenly across ``days`` sessions."""
    rng = random.Random(seed)
    per_day = max(1, count // days)
    bars = []
    price = start
    for i in range(count):
        o = price
        c = round(o + rng.uniform(-0.6, 0.6), 2)
        h = round(max(o, c) + rng.uniform(0.0, 0.4), 2)
        l = round(min(o, c) - rng.uniform(0.0, 0.4), 2)
        day = min(i // per_day, days - 1)
        bars.append(make_bar(i, o, h, l, c, day=day))
        price = c
    return BarSeries(bars)


@pytest.fixture
def default_config() -> RuleConfig:
    return RuleConfig()


@pytest.fixture
def walk_bars() -> BarSeries:
    return random_walk(seed=7, count=400, days=4)

"""Core data types: bars, pivots and rule identifiers."""
from __future__ import annotations

import math
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, overload

import pandas as pd

from pivottrader.core.exceptions import DataError

# Fewer bars than this cannot form an anchor/B1/B2 pattern
MIN_BARS = 3

_PRICE_FIELDS = ("open", "high", "low", "close")


class Direction(str, Enum):
    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> int:
        return 1 if self is Direction.LONG else -1


class PivotKind(str, Enum):
    SPH = "SPH"
    SPL = "SPL"
    LPH = "LPH"
    LPL = "LPL"

    @property
    def is_high(self) -> bool:
        return self in (PivotKind.SPH, PivotKind.LPH)

    @property
    def is_large(self) -> bool:
        return self in (PivotKind.LPH, PivotKind.LPL)


class EntryRuleId(str, Enum):
    ENTRY_LPH_LPL = "entry_lph_lpl"
    ENTRY_SPH_ABOVE_LPH = "entry_sph_above_lph"


class ExitRuleId(str, Enum):
    STOP_LOSS = "stop_loss"
    EOD_EXIT = "eod_exit"
    TRAILING_SPL = "trailing_spl"
    AGGRESSIVE_PROFIT = "aggressive_profit"


@dataclass(frozen=True, slots=True)
class Bar:
    """Single OHLCV bar. ``index`` is the bar's position in its series."""

    index: int
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def day(self) -> date:
        return self.timestamp.date()

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open


def _as_price(value: Any, name: str, position: int) -> float:
    if isinstance(value, bool) or value is None:
        raise DataError(f"Bar {position}: field '{name}' is not numeric ({value!r})")
    try:
        price = float(value)
    except (TypeError, ValueError) as exc:
        raise DataError(f"Bar {position}: field '{name}' is not numeric ({value!r})") from exc
    if math.isnan(price) or math.isinf(price):
        raise DataError(f"Bar {position}: field '{name}' is not a finite number")
    return price


def _as_volume(value: Any, position: int) -> float:
    """Missing volume (None or NaN) reads as 0; anything else must be numeric."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return 0.0
    return _as_price(value, "volume", position)


def _as_timestamp(value: Any, position: int) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError as exc:
            raise DataError(f"Bar {position}: invalid timestamp {value!r}") from exc
    raise DataError(f"Bar {position}: missing or invalid timestamp ({value!r})")


class BarSeries(Sequence[Bar]):
    """Immutable, validated sequence of bars.

    Bars are re-indexed on construction so that ``series[i].index == i``.
    All construction paths raise DataError for series shorter than
    ``MIN_BARS`` or bars with missing/non-numeric OHLC values.
    """

    __slots__ = ("_bars",)

    def __init__(self, bars: Iterable[Bar]):
        checked: list[Bar] = []
        for position, bar in enumerate(bars):
            if not isinstance(bar, Bar):
                raise DataError(f"Bar {position}: expected Bar, got {type(bar).__name__}")
            for name in _PRICE_FIELDS:
                _as_price(getattr(bar, name), name, position)
            if bar.index != position:
                bar = replace(bar, index=position)
            checked.append(bar)

        if len(checked) < MIN_BARS:
            raise DataError(
                f"At least {MIN_BARS} bars are required, got {len(checked)}"
            )
        self._bars: tuple[Bar, ...] = tuple(checked)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> BarSeries:
        """Build a series from plain mappings (parsed CSV rows, JSON, ...).

        Each record needs ``timestamp`` (or ``datetime``) and the four OHLC
        keys; ``volume`` is optional.
        """
        bars = []
        for position, record in enumerate(records):
            if not isinstance(record, Mapping):
                raise DataError(f"Bar {position}: expected a mapping, got {type(record).__name__}")
            missing = [name for name in _PRICE_FIELDS if name not in record]
            if missing:
                raise DataError(f"Bar {position}: missing fields {missing}")
            raw_ts = record.get("timestamp", record.get("datetime"))
            bars.append(Bar(
                index=position,
                timestamp=_as_timestamp(raw_ts, position),
                open=_as_price(record["open"], "open", position),
                high=_as_price(record["high"], "high", position),
                low=_as_price(record["low"], "low", position),
                close=_as_price(record["close"], "close", position),
                volume=_as_volume(record.get("volume"), position),
            ))
        return cls(bars)

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> BarSeries:
        """Build a series from a DataFrame of OHLC(V) columns.

        Timestamps come from a ``timestamp`` column when present, otherwise
        from a DatetimeIndex.
        """
        frame = df.rename(columns=str.lower)
        missing = [name for name in _PRICE_FIELDS if name not in frame.columns]
        if missing:
            raise DataError(f"DataFrame is missing columns {missing}")

        if "timestamp" in frame.columns:
            timestamps = pd.to_datetime(frame["timestamp"])
        elif isinstance(frame.index, pd.DatetimeIndex):
            timestamps = frame.index.to_series()
        else:
            raise DataError("DataFrame needs a 'timestamp' column or a DatetimeIndex")

        volumes = frame["volume"] if "volume" in frame.columns else [0.0] * len(frame)
        records = [
            {
                "timestamp": ts.to_pydatetime(),
                "open": o,
                "high": h,
                "low": l,
                "close": c,
                "volume": v,
            }
            for ts, o, h, l, c, v in zip(
                timestamps, frame["open"], frame["high"], frame["low"],
                frame["close"], volumes,
            )
        ]
        return cls.from_records(records)

    # ------------------------------------------------------------------
    # Sequence protocol
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._bars)

    @overload
    def __getitem__(self, item: int) -> Bar: ...

    @overload
    def __getitem__(self, item: slice) -> tuple[Bar, ...]: ...

    def __getitem__(self, item):
        return self._bars[item]

    def __iter__(self) -> Iterator[Bar]:
        return iter(self._bars)

    def __repr__(self) -> str:
        return f"BarSeries({len(self._bars)} bars)"

    # ------------------------------------------------------------------
    # Calendar helpers
    # ------------------------------------------------------------------

    def day_of(self, index: int) -> date:
        return self._bars[index].day

    def is_end_of_day(self, index: int) -> bool:
        """True when ``index`` is the last bar or the next bar is another day."""
        if index >= len(self._bars) - 1:
            return True
        return self._bars[index + 1].day != self._bars[index].day

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "timestamp": [b.timestamp for b in self._bars],
                "open": [b.open for b in self._bars],
                "high": [b.high for b in self._bars],
                "low": [b.low for b in self._bars],
                "close": [b.close for b in self._bars],
                "volume": [b.volume for b in self._bars],
            }
        )

    def stats(self) -> dict:
        """Bar count, covered days and overall price range."""
        return {
            "total_bars": len(self._bars),
            "start_date": self._bars[0].day.isoformat(),
            "end_date": self._bars[-1].day.isoformat(),
            "trading_days": len({b.day for b in self._bars}),
            "price_high": max(b.high for b in self._bars),
            "price_low": min(b.low for b in self._bars),
        }


@dataclass(frozen=True, slots=True)
class Pivot:
    kind: PivotKind
    bar_index: int
    price: float


def _check_indices(name: str, values: Any, bar_count: int | None) -> tuple[int, ...]:
    if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
        raise DataError(f"Pivot list '{name}' must be a sequence of bar indices")
    indices = []
    for value in values:
        if isinstance(value, bool) or not isinstance(value, int):
            raise DataError(f"Pivot list '{name}' contains non-integer index {value!r}")
        if value < 0 or (bar_count is not None and value >= bar_count):
            raise DataError(f"Pivot list '{name}' index {value} is out of range")
        indices.append(value)
    if any(b <= a for a, b in zip(indices, indices[1:])):
        raise DataError(f"Pivot list '{name}' must be strictly increasing")
    return tuple(indices)


@dataclass(frozen=True, slots=True)
class PivotResult:
    """Bar indices of the four pivot kinds, each strictly increasing."""

    sph: tuple[int, ...] = ()
    spl: tuple[int, ...] = ()
    lph: tuple[int, ...] = ()
    lpl: tuple[int, ...] = ()

    @classmethod
    def from_mapping(cls, data: Any, bar_count: int | None = None) -> PivotResult:
        """Validate externally supplied pivot lists.

        Raises:
            DataError: If ``data`` is not a mapping with sph/spl/lph/lpl
                lists of in-range, strictly increasing integer indices.
        """
        if isinstance(data, PivotResult):
            data = data.to_dict()
        if not isinstance(data, Mapping):
            raise DataError(f"Pivot data must be a mapping, got {type(data).__name__}")
        lists = {}
        for kind in PivotKind:
            key = kind.value.lower()
            if key not in data:
                raise DataError(f"Pivot data is missing '{key}'")
            lists[key] = _check_indices(key, data[key], bar_count)
        return cls(**lists)

    def indices(self, kind: PivotKind) -> tuple[int, ...]:
        return getattr(self, kind.value.lower())

    def to_pivots(self, bars: Sequence[Bar]) -> list[Pivot]:
        pivots = []
        for kind in PivotKind:
            for idx in self.indices(kind):
                price = bars[idx].high if kind.is_high else bars[idx].low
                pivots.append(Pivot(kind, idx, price))
        pivots.sort(key=lambda p: p.bar_index)
        return pivots

    def to_dict(self) -> dict[str, list[int]]:
        return {
            "sph": list(self.sph),
            "spl": list(self.spl),
            "lph": list(self.lph),
            "lpl": list(self.lpl),
        }

    def is_empty(self) -> bool:
        return not (self.sph or self.spl or self.lph or self.lpl)

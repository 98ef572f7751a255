"""Tests for PivotDetector.

Tests cover:
- Short inputs and inputs without any pattern
- SPH/SPL confirmation from anchor/B1/B2 and extreme-bar selection
- Parallel anchors: a later anchor completing first wins
- Range relocation of the previous opposite pivot
- Large pivot marking from SPH/SPL breaks
- Properties on random-walk data: alternation, monotonic indices,
  extremity, idempotence and large-pivot alternation
"""
from __future__ import annotations

import pytest

from conftest import make_bar, make_series, random_walk
from pivottrader.core.types import PivotKind, PivotResult
from pivottrader.pivots.detector import PivotDetector, detect_pivots


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

# SPH at 1 (B1=2, B2=3), SPL at 3 (B2=5), SPH at 7 whose confirmation moves
# the SPL from bar 3 to the lower low at bar 6.
_RELOCATION_ROWS = [
    (100.0, 101.0, 99.0, 100.5),   # 0 anchor
    (100.5, 102.0, 100.0, 101.5),  # 1 highest high -> SPH
    (101.0, 101.2, 98.5, 98.8),    # 2 B1
    (98.8, 99.0, 98.0, 98.2),      # 3 B2 / SPL anchor
    (98.2, 99.5, 98.1, 99.3),      # 4 SPL B1
    (98.3, 100.8, 98.2, 100.5),    # 5 SPL B2 / SPH anchor
    (100.5, 100.6, 97.0, 97.5),    # 6 SPH B1, lowest low
    (97.5, 101.0, 97.5, 97.6),     # 7 SPH B2, highest high
]


def _hl_series(rows: list[tuple[float, float]]):
    """Bars from (high, low) pairs; open/close sit mid-range."""
    return make_series([(((h + l) / 2), h, l, ((h + l) / 2)) for h, l in rows])


def _alternates(pivots) -> bool:
    kinds = [p.kind for p in pivots]
    return all(a is not b for a, b in zip(kinds, kinds[1:]))


# ---------------------------------------------------------------------------
# Degenerate input
# ---------------------------------------------------------------------------

class TestShortInput:
    def test_fewer_than_three_bars_returns_empty(self):
        """Plain bar lists shorter than three bars give an empty result."""
        bars = [make_bar(0, 1, 2, 0.5, 1.5), make_bar(1, 1, 2, 0.5, 1.5)]
        assert PivotDetector().detect(bars) == PivotResult()

    def test_steadily_rising_bars_have_no_sph(self):
        """No bar ever undercuts an anchor, so nothing is confirmed."""
        rows = [(100 + i, 101 + i, 99.5 + i, 100.8 + i) for i in range(20)]
        result = detect_pivots(make_series(rows))
        assert result.is_empty()


# ---------------------------------------------------------------------------
# Stage 1 and 2
# ---------------------------------------------------------------------------

class TestSmallPivots:
    def test_first_pivot_is_sph_at_highest_high(self):
        """SPH sits on the highest-high bar between anchor and B2."""
        small = PivotDetector().detect_small_pivots(make_series(_RELOCATION_ROWS[:6]))
        assert small[0].kind is PivotKind.SPH
        assert small[0].bar_index == 1
        assert small[0].price == 102.0

    def test_spl_follows_sph(self):
        result = detect_pivots(make_series(_RELOCATION_ROWS[:6]))
        assert result.sph == (1,)
        assert result.spl == (3,)

    def test_later_anchor_completing_first_wins(self):
        """Anchor 0 never completes; anchor 2 completes at bar 4."""
        rows = [
            (10.0, 11.0, 9.0, 10.0),    # 0
            (10.0, 12.0, 9.5, 11.5),    # 1
            (11.5, 13.0, 10.5, 12.5),   # 2 anchor, highest high
            (12.5, 12.6, 10.0, 10.2),   # 3 B1 for anchor 2
            (10.2, 10.4, 9.8, 10.0),    # 4 B2 for anchor 2
            (10.0, 10.1, 9.7, 9.8),     # 5
            (9.8, 9.9, 9.6, 9.7),       # 6
        ]
        result = detect_pivots(make_series(rows))
        assert result.sph == (2,)
        assert result.spl == ()

    def test_equal_highs_pick_earliest_bar(self):
        rows = [
            (100.0, 101.0, 99.0, 100.5),
            (100.5, 102.0, 100.0, 101.5),
            (101.5, 102.0, 98.5, 98.8),
            (98.8, 99.0, 98.0, 98.2),
            (98.2, 98.5, 97.5, 97.8),
        ]
        result = detect_pivots(make_series(rows))
        assert result.sph == (1,)

    def test_relocation_moves_previous_spl_to_lowest_low(self):
        """Confirming the second SPH moves the SPL to bar 6."""
        result = detect_pivots(make_series(_RELOCATION_ROWS))
        assert result.sph == (1, 7)
        assert result.spl == (6,)

    def test_small_pivots_in_confirmation_order(self):
        small = PivotDetector().detect_small_pivots(make_series(_RELOCATION_ROWS))
        assert [(p.kind, p.bar_index) for p in small] == [
            (PivotKind.SPH, 1),
            (PivotKind.SPL, 6),
            (PivotKind.SPH, 7),
        ]
        assert small[1].price == 97.0


# ---------------------------------------------------------------------------
# Stage 3
# ---------------------------------------------------------------------------

class TestLargePivots:
    _ROWS = [
        (10.0, 9.0),    # 0
        (12.0, 10.0),   # 1 SPH
        (11.0, 9.5),    # 2
        (10.5, 8.0),    # 3 SPL
        (11.5, 9.0),    # 4
        (13.0, 10.5),   # 5 SPH, breaks SPH 1
        (12.0, 9.5),    # 6
        (11.0, 7.5),    # 7 SPL, breaks SPL 3
        (11.5, 8.0),    # 8
        (14.0, 10.0),   # 9 breaks SPH 5
    ]

    def test_lpl_then_lph_then_lpl(self):
        bars = _hl_series(self._ROWS)
        lph, lpl = PivotDetector()._detect_large_pivots(bars, (1, 5), (3, 7))
        assert lpl == [3, 7]
        assert lph == [5]

    def test_no_small_pivots_means_no_large_pivots(self):
        bars = _hl_series(self._ROWS)
        assert PivotDetector()._detect_large_pivots(bars, (1, 5), ()) == ([], [])
        assert PivotDetector()._detect_large_pivots(bars, (), (3,)) == ([], [])

    def test_no_break_no_large_pivot(self):
        """Highs never exceed the first SPH, so no LPL is marked."""
        rows = [(10.0, 9.0), (12.0, 10.0), (11.0, 9.5), (10.5, 8.0), (11.5, 9.0), (11.8, 9.2)]
        lph, lpl = PivotDetector()._detect_large_pivots(_hl_series(rows), (1,), (3,))
        assert (lph, lpl) == ([], [])

    def test_lowest_spl_is_chosen(self):
        """Among SPLs before the break, the lowest low becomes LPL."""
        rows = [
            (10.0, 9.0),   # 0
            (12.0, 10.0),  # 1 SPH
            (11.0, 8.5),   # 2 SPL
            (11.5, 9.5),   # 3
            (11.0, 7.9),   # 4 SPL (lowest)
            (11.8, 9.0),   # 5
            (12.5, 9.8),   # 6 breaks SPH 1
        ]
        lph, lpl = PivotDetector()._detect_large_pivots(_hl_series(rows), (1,), (2, 4))
        assert lpl == [4]
        assert lph == []


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("seed", [1, 2, 3, 11, 42])
class TestDetectorProperties:
    def test_small_pivots_alternate_starting_with_sph(self, seed):
        small = PivotDetector().detect_small_pivots(random_walk(seed))
        assert small, "random walk should produce pivots"
        assert small[0].kind is PivotKind.SPH
        assert _alternates(small)

    def test_indices_strictly_increasing(self, seed):
        result = detect_pivots(random_walk(seed))
        for kind in PivotKind:
            indices = result.indices(kind)
            assert all(b > a for a, b in zip(indices, indices[1:]))

    def test_relocated_pivots_are_range_extremes(self, seed):
        """Each pivot but the last is the extreme since the previous pivot."""
        bars = random_walk(seed)
        small = PivotDetector().detect_small_pivots(bars)
        for k, pivot in enumerate(small[:-1]):
            start = small[k - 1].bar_index + 1 if k > 0 else 0
            window = bars[start:pivot.bar_index + 1]
            if pivot.kind is PivotKind.SPH:
                assert pivot.price == max(b.high for b in window)
            else:
                assert pivot.price == min(b.low for b in window)

    def test_detection_is_idempotent(self, seed):
        bars = random_walk(seed)
        assert detect_pivots(bars) == detect_pivots(bars)

    def test_large_pivots_are_small_pivots(self, seed):
        result = detect_pivots(random_walk(seed))
        assert set(result.lph) <= set(result.sph)
        assert set(result.lpl) <= set(result.spl)

    def test_large_pivots_alternate_starting_with_lpl(self, seed):
        result = detect_pivots(random_walk(seed))
        merged = sorted(
            [(i, PivotKind.LPL) for i in result.lpl] + [(i, PivotKind.LPH) for i in result.lph]
        )
        kinds = [k for _, k in merged]
        if kinds:
            assert kinds[0] is PivotKind.LPL
        assert all(a is not b for a, b in zip(kinds, kinds[1:]))

"""Small and large pivot detection.

Detection runs in three stages over a finite bar sequence:

1. **Small pivots.** Starting from a search index, every scanned bar
   becomes a candidate anchor. A small pivot high (SPH) is confirmed once
   two bars after an anchor (B1, B2) print both a lower low and a lower
   close than the anchor; the pivot is the highest-high bar between the
   anchor and B2. Small pivot lows (SPL) mirror this. Types strictly
   alternate, beginning with SPH, and the next search starts at B2.
2. **Range relocation.** When pivot N is confirmed, the opposite-type
   pivot N-1 moves to the most extreme bar between the previous
   same-type-as-N pivot and N.
3. **Large pivots.** A break above a reference SPH marks the lowest SPL
   since the last LPH as a large pivot low (LPL); a break below a
   reference SPL marks the highest SPH since the last LPL as a large pivot
   high (LPH). LPL and LPH alternate, beginning with LPL.

The detector is a pure function of its input.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence

from pivottrader.core.types import MIN_BARS, Bar, Pivot, PivotKind, PivotResult

logger = logging.getLogger(__name__)


class PivotDetector:
    """Detects SPH/SPL/LPH/LPL pivots over a bar sequence."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def detect(self, bars: Sequence[Bar]) -> PivotResult:
        """Run all three stages and return the pivot index lists."""
        if len(bars) < MIN_BARS:
            return PivotResult()

        small = self.detect_small_pivots(bars)
        sph = tuple(p.bar_index for p in small if p.kind is PivotKind.SPH)
        spl = tuple(p.bar_index for p in small if p.kind is PivotKind.SPL)
        lph, lpl = self._detect_large_pivots(bars, sph, spl)

        logger.info(
            "Pivot detection over %d bars: %d SPH, %d SPL, %d LPH, %d LPL",
            len(bars), len(sph), len(spl), len(lph), len(lpl),
        )
        return PivotResult(sph=sph, spl=spl, lph=tuple(lph), lpl=tuple(lpl))

    def detect_small_pivots(self, bars: Sequence[Bar]) -> list[Pivot]:
        """Stages 1 and 2: small pivots in confirmation order."""
        n = len(bars)
        confirmed: list[Pivot] = []
        search_index = 0

        while search_index < n - 2:
            if not confirmed or confirmed[-1].kind is PivotKind.SPL:
                looking_for = PivotKind.SPH
            else:
                looking_for = PivotKind.SPL

            not_before = 0
            for earlier in reversed(confirmed):
                if earlier.kind is looking_for:
                    not_before = earlier.bar_index + 1
                    break

            found = self._scan_from(bars, search_index, looking_for, not_before)
            if found is None:
                break

            pivot_index, b2_index = found
            confirmed.append(_make_pivot(bars, looking_for, pivot_index))
            logger.debug(
                "%s confirmed at bar %d (B2=%d, search from %d)",
                looking_for.value, pivot_index, b2_index, search_index,
            )
            self._relocate_previous(bars, confirmed)
            search_index = b2_index

        return confirmed

    # ------------------------------------------------------------------
    # Stage 1: anchor scan
    # ------------------------------------------------------------------

    def _scan_from(
        self, bars: Sequence[Bar], start: int, kind: PivotKind, not_before: int = 0,
    ) -> tuple[int, int] | None:
        """Find the first pattern of ``kind`` starting at ``start``.

        All anchors are tested in parallel as bars are scanned; the pattern
        whose B2 arrives first wins, lower anchors winning ties. The pivot
        index is at least ``not_before`` (one past the last pivot of the
        same kind).

        Returns:
            ``(pivot_index, b2_index)`` or None when no pattern completes.
        """
        n = len(bars)
        anchors: list[int] = [start]
        hits: list[int] = [0]

        for current in range(start + 1, n):
            bar = bars[current]
            for slot, anchor in enumerate(anchors):
                if not _breaks_anchor(bars[anchor], bar, kind):
                    continue
                hits[slot] += 1
                if hits[slot] == 2:
                    first = max(anchor, not_before)
                    return _extreme_index(bars, first, current, kind), current
            # Anchors too close to the end cannot complete a pattern
            if current < n - 2:
                anchors.append(current)
                hits.append(0)

        return None

    # ------------------------------------------------------------------
    # Stage 2: relocation
    # ------------------------------------------------------------------

    def _relocate_previous(self, bars: Sequence[Bar], confirmed: list[Pivot]) -> None:
        if len(confirmed) < 2:
            return
        current = confirmed[-1]
        previous = confirmed[-2]
        if previous.kind is current.kind:
            return

        start = 0
        for earlier in reversed(confirmed[:-2]):
            if earlier.kind is current.kind:
                start = earlier.bar_index + 1
                break
        if start > current.bar_index:
            return

        target = _extreme_index(bars, start, current.bar_index, previous.kind)
        if target != previous.bar_index:
            logger.debug(
                "%s relocated from bar %d to bar %d",
                previous.kind.value, previous.bar_index, target,
            )
            confirmed[-2] = _make_pivot(bars, previous.kind, target)

    # ------------------------------------------------------------------
    # Stage 3: large pivots
    # ------------------------------------------------------------------

    def _detect_large_pivots(
        self,
        bars: Sequence[Bar],
        sph: tuple[int, ...],
        spl: tuple[int, ...],
    ) -> tuple[list[int], list[int]]:
        lph: list[int] = []
        lpl: list[int] = []
        if not sph or not spl:
            return lph, lpl

        expecting_lpl = True
        sph_ref = 0
        spl_ref = 0

        for bar_index, bar in enumerate(bars):
            if expecting_lpl:
                if sph_ref >= len(sph):
                    break
                ref = sph[sph_ref]
                if bar_index > ref and bar.high > bars[ref].high:
                    after = max(lph) if lph else -1
                    candidate = _lowest_low(bars, spl, after, bar_index)
                    if candidate is not None and candidate not in lpl:
                        lpl.append(candidate)
                        expecting_lpl = False
                        logger.debug(
                            "LPL marked at bar %d (SPH %d broken at bar %d)",
                            candidate, ref, bar_index,
                        )
                    sph_ref += 1
                # Reference follows the SPH sequence when no break happened
                if sph_ref < len(sph) - 1 and bar_index >= sph[sph_ref + 1]:
                    sph_ref += 1
            else:
                if spl_ref >= len(spl):
                    break
                ref = spl[spl_ref]
                if bar_index > ref and bar.low < bars[ref].low:
                    after = max(lpl) if lpl else -1
                    candidate = _highest_high(bars, sph, after, bar_index)
                    if candidate is not None and candidate not in lph:
                        lph.append(candidate)
                        expecting_lpl = True
                        logger.debug(
                            "LPH marked at bar %d (SPL %d broken at bar %d)",
                            candidate, ref, bar_index,
                        )
                    spl_ref += 1
                if spl_ref < len(spl) - 1 and bar_index >= spl[spl_ref + 1]:
                    spl_ref += 1

        return sorted(lph), sorted(lpl)


# ----------------------------------------------------------------------
# Module-level helpers
# ----------------------------------------------------------------------


def _breaks_anchor(anchor: Bar, bar: Bar, kind: PivotKind) -> bool:
    if kind is PivotKind.SPH:
        return bar.low < anchor.low and bar.close < anchor.close
    return bar.high > anchor.high and bar.close > anchor.close


def _extreme_index(bars: Sequence[Bar], start: int, end: int, kind: PivotKind) -> int:
    """Index of the highest high (SPH) or lowest low (SPL) in ``[start, end]``.

    The earliest bar wins ties.
    """
    best = start
    if kind.is_high:
        for idx in range(start + 1, end + 1):
            if bars[idx].high > bars[best].high:
                best = idx
    else:
        for idx in range(start + 1, end + 1):
            if bars[idx].low < bars[best].low:
                best = idx
    return best


def _lowest_low(bars: Sequence[Bar], candidates: tuple[int, ...], after: int, before: int) -> int | None:
    best = None
    for idx in candidates:
        if after < idx < before and (best is None or bars[idx].low < bars[best].low):
            best = idx
    return best


def _highest_high(bars: Sequence[Bar], candidates: tuple[int, ...], after: int, before: int) -> int | None:
    best = None
    for idx in candidates:
        if after < idx < before and (best is None or bars[idx].high > bars[best].high):
            best = idx
    return best


def _make_pivot(bars: Sequence[Bar], kind: PivotKind, index: int) -> Pivot:
    price = bars[index].high if kind.is_high else bars[index].low
    return Pivot(kind=kind, bar_index=index, price=price)


def detect_pivots(bars: Sequence[Bar]) -> PivotResult:
    """Convenience wrapper around ``PivotDetector().detect``."""
    return PivotDetector().detect(bars)

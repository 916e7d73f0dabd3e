"""
Plateau-aware peak picking.

A peak is a run of adjacent values that stay within ``margin`` of each
other, stand out by more than ``margin`` from both neighbors, and reach
``threshold``. Flat-topped peaks are common in power spectra, so a whole
run counts as one peak.
"""

import functools
from dataclasses import dataclass
from typing import List, Sequence


@functools.total_ordering
@dataclass(frozen=True)
class IndexAndValue:
    """
    An array index and the value found there.

    Sorts by value descending, then index ascending, so sorted() puts the
    strongest peak first.
    """

    index: int
    value: float

    def sort_key(self):
        return (-self.value, self.index)

    def __lt__(self, other):
        if not isinstance(other, IndexAndValue):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __str__(self) -> str:
        return f"{self.index}:{self.value:g}"


def _runs(values: Sequence[float], margin: float):
    """
    Yield (start, end, max) for maximal runs with max - min <= margin.

    Runs grow left to right. When a value breaks the current run, the next
    run starts at that value and reaches back over every preceding value
    still within margin of it, so [10, 12, 13, 5] with margin 2 gives
    [10, 12] then [12, 13] then [5]. Neighbouring runs may share indices.
    """
    start = 0
    low = high = values[0]
    for i in range(1, len(values)):
        v = values[i]
        new_low = min(low, v)
        new_high = max(high, v)
        if new_high - new_low <= margin:
            low, high = new_low, new_high
            continue

        yield start, i - 1, high
        first = i
        low = high = v
        while first > start:
            prev = values[first - 1]
            if max(high, prev) - min(low, prev) > margin:
                break
            low, high = min(low, prev), max(high, prev)
            first -= 1
        start = first
    yield start, len(values) - 1, high


def peaks(
    values: Sequence[float],
    margin: float,
    threshold: float,
    plateau_center_only: bool = False,
) -> List[IndexAndValue]:
    """
    Find peaks in index order.

    Args:
        values: Values to search
        margin: Largest spread inside a plateau, and the amount a peak must
            exceed each neighbor by
        threshold: Smallest peak value reported
        plateau_center_only: Report one entry per plateau, at its middle
            index (lower middle for even lengths) with the plateau maximum

    Returns:
        Peaks ordered by index
    """
    if margin < 0:
        raise ValueError(f"margin must be >= 0, got {margin}")
    if len(values) == 0:
        return []

    found: List[IndexAndValue] = []
    last = len(values) - 1
    for start, end, top in _runs(values, margin):
        if top < threshold:
            continue
        # Array ends count as lower neighbors
        if start > 0 and not values[start - 1] < top - margin:
            continue
        if end < last and not values[end + 1] < top - margin:
            continue

        if plateau_center_only:
            found.append(IndexAndValue(start + (end - start) // 2, float(top)))
        else:
            found.extend(IndexAndValue(i, float(values[i])) for i in range(start, end + 1))
    return found


def top_n_peaks(
    n: int,
    values: Sequence[float],
    margin: float,
    threshold: float,
    plateau_center_only: bool = False,
) -> List[IndexAndValue]:
    """The ``n`` strongest peaks, strongest first (ties by lower index)."""
    if n < 0:
        raise ValueError(f"n must be >= 0, got {n}")
    return sorted(peaks(values, margin, threshold, plateau_center_only))[:n]

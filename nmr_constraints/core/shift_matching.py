"""
Nearest-shift matching between two shift lists, with one round of
systematic bias correction.
"""

import logging
from collections import Counter
from typing import List, Optional, Sequence

import numpy as np

from ..utils.nmr_utils import get_median

logger = logging.getLogger(__name__)


def find_single_match(shifts_a: Sequence[Optional[float]], shift: Optional[float], tol: float) -> int:
    """
    Index in `shifts_a` closest to `shift` within `tol`.

    Ties resolve to the lowest index. Returns -1 if no value lies within
    the tolerance or the query shift is unknown.
    """
    if shift is None or len(shifts_a) == 0:
        return -1
    diffs = np.array([abs(a - shift) if a is not None else np.inf for a in shifts_a], dtype=float)
    # np.argmin returns the first occurrence of the minimum
    best = int(np.argmin(diffs))
    if diffs[best] <= tol:
        return best
    return -1


def find_matches(shifts_a: Sequence[Optional[float]], shifts_b: Sequence[Optional[float]],
                 tol: float) -> List[int]:
    """
    For every shift in `shifts_b`, the index of the closest shift in
    `shifts_a` within `tol`, else -1.

    Matching is not bijective: several B entries may claim the same A index.

    Parameters
    ----------
    shifts_a : sequence of float
        Reference shifts.
    shifts_b : sequence of float
        Query shifts.
    tol : float
        Maximum absolute difference (inclusive).

    Returns
    -------
    list of int
        One A index (or -1) per B entry.
    """
    return [find_single_match(shifts_a, shift, tol) for shift in shifts_b]


def get_unique_matches(matches: Sequence[int]) -> List[int]:
    """Positions in `matches` whose A index is claimed exactly once."""
    frequencies = Counter(matches)
    return [i for i, match in enumerate(matches) if match >= 0 and frequencies[match] == 1]


def correct_matches(shifts_a: Sequence[Optional[float]], shifts_b: Sequence[Optional[float]],
                    matches: List[int], tol: float) -> List[int]:
    """
    One corrective rematch after removing the systematic offset of B.

    The signed differences B[i] - A[matches[i]] of all unique matches are
    collected; their median is subtracted from a copy of every B value
    and `find_matches` is run once more against the unchanged A. Without
    any unique match the given matches are returned as they are.

    This performs a single pass only; calling it again on its own result
    is not guaranteed to be stable.
    """
    diffs = []
    for i in get_unique_matches(matches):
        if shifts_b[i] is None or shifts_a[matches[i]] is None:
            continue
        diffs.append(shifts_b[i] - shifts_a[matches[i]])

    median = get_median(diffs)
    if median is None:
        return matches

    logger.debug(f"Correcting {len(shifts_b)} shifts by median deviation {median:.4f}")
    corrected_b = [shift - median if shift is not None else None for shift in shifts_b]

    return find_matches(shifts_a, corrected_b, tol)

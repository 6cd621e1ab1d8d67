"""
Robust statistics helpers shared by the feature extractors.

Every helper accepts a plain sequence and returns 0.0 for empty input so the
extractors can stay branch-free. Deviations are population deviations and
percentiles interpolate linearly between order statistics.
"""

import math
from typing import Sequence

import numpy as np


# Scales MAD to approximate a standard deviation under normality
MAD_SCALE = 1.4826


def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))


def std(values: Sequence[float]) -> float:
    """Population standard deviation."""
    if len(values) == 0:
        return 0.0
    return float(np.std(values))


def median(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.median(values))


def mad(values: Sequence[float]) -> float:
    """Median absolute deviation, scaled by 1.4826."""
    if len(values) == 0:
        return 0.0
    arr = np.asarray(values, dtype=np.float64)
    return float(np.median(np.abs(arr - np.median(arr))) * MAD_SCALE)


def percentile(values: Sequence[float], p: float) -> float:
    """p-th percentile (0-100) with linear interpolation."""
    if len(values) == 0:
        return 0.0
    return float(np.percentile(np.asarray(values, dtype=np.float64), p))


def iqr(values: Sequence[float]) -> float:
    """Interquartile range (75th - 25th percentile)."""
    return percentile(values, 75) - percentile(values, 25)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 rounding up (display rounding)."""
    return int(math.floor(value + 0.5))

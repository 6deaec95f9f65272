"""
Robust statistics for the comparable pricing engine.

Order-statistic primitives over finite numeric sequences. An empty input
returns 0 (or an empty list) rather than raising.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np


# Scale factor turning MAD into a normal-consistent standard deviation
MAD_SCALE = 1.4826

# Band width limits (fraction of median)
BAND_PCT_MIN = 0.03
BAND_PCT_MAX = 0.30
BAND_PCT_DEFAULT = 0.05


@dataclass(frozen=True)
class RobustStats:
    """Summary statistics for a set of values."""
    median: float
    p25: float
    p75: float
    mad: float
    iqr: float
    mean: float
    std: float
    cv: float


def median(values: Sequence[float]) -> float:
    """Median of values (0 for empty input)."""
    if len(values) == 0:
        return 0.0
    return float(np.median(np.asarray(values, dtype=float)))


def percentile(values: Sequence[float], p: float) -> float:
    """
    Percentile with linear interpolation between closest ranks.

    Args:
        values: Input values
        p: Percentile in [0, 100]

    Returns:
        Interpolated percentile (0 for empty input)

    Raises:
        ValueError: If p is outside [0, 100]
    """
    if p < 0 or p > 100:
        raise ValueError(f"Percentile must be between 0 and 100, got {p}")
    if len(values) == 0:
        return 0.0
    return float(np.percentile(np.asarray(values, dtype=float), p))


def winsorize(
    values: Sequence[float],
    lower_pct: float = 10,
    upper_pct: float = 90,
) -> list:
    """
    Clip values to the [lower_pct, upper_pct] percentile bounds.

    Preserves length and order.

    Raises:
        ValueError: If lower_pct >= upper_pct
    """
    if lower_pct >= upper_pct:
        raise ValueError("Lower percentile must be less than upper percentile")
    if len(values) == 0:
        return []

    arr = np.asarray(values, dtype=float)
    lower_bound = percentile(arr, lower_pct)
    upper_bound = percentile(arr, upper_pct)
    return np.clip(arr, lower_bound, upper_bound).tolist()


def mad(values: Sequence[float]) -> float:
    """Median absolute deviation from the median."""
    if len(values) == 0:
        return 0.0
    arr = np.asarray(values, dtype=float)
    return float(np.median(np.abs(arr - np.median(arr))))


def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(np.asarray(values, dtype=float)))


def standard_deviation(values: Sequence[float]) -> float:
    """Population standard deviation."""
    if len(values) == 0:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float)))


def iqr(values: Sequence[float]) -> float:
    return percentile(values, 75) - percentile(values, 25)


def coeff_variation(values: Sequence[float]) -> float:
    """Coefficient of variation (std / mean), 0 when the mean is 0."""
    return safe_divide(standard_deviation(values), mean(values))


def robust_band_pct(values: Sequence[float], median_value: Optional[float] = None) -> float:
    """
    Estimate the fair-price band width as a fraction of the median.

    Uses 1.4826 * MAD / median, falling back to 0.5 * IQR / median when the
    MAD is zero. Result is clamped to [0.03, 0.30]; 0.05 when neither
    estimate is usable.
    """
    if len(values) == 0:
        return BAND_PCT_DEFAULT

    med = median_value if median_value is not None else median(values)
    if med == 0:
        return BAND_PCT_DEFAULT

    mad_value = mad(values)
    if mad_value > 0:
        return clamp((MAD_SCALE * mad_value) / med, BAND_PCT_MIN, BAND_PCT_MAX)

    spread = iqr(values)
    if spread > 0:
        return clamp((0.5 * spread) / med, BAND_PCT_MIN, BAND_PCT_MAX)

    return BAND_PCT_DEFAULT


def robust_stats(values: Sequence[float]) -> RobustStats:
    return RobustStats(
        median=median(values),
        p25=percentile(values, 25),
        p75=percentile(values, 75),
        mad=mad(values),
        iqr=iqr(values),
        mean=mean(values),
        std=standard_deviation(values),
        cv=coeff_variation(values),
    )


def safe_divide(numerator: float, denominator: float, fallback: float = 0.0) -> float:
    if denominator == 0:
        return fallback
    return numerator / denominator


def clamp(value: float, lower: float, upper: float) -> float:
    return min(max(value, lower), upper)

"""
Distribution statistics for utilization samples.

Percentiles use continuous (linearly interpolated) estimation, matching
PostgreSQL's PERCENTILE_CONT; the standard deviation is the sample standard
deviation, matching PostgreSQL's STDDEV.
"""

import statistics
from dataclasses import dataclass
from fractions import Fraction
from typing import Sequence


@dataclass(frozen=True)
class SampleStatistics:
    """Summary of a set of samples."""
    p50: float
    p95: float
    p99: float
    max: float
    mean: float
    stddev: float
    count: int


def percentile(values: Sequence[float], fraction: float) -> float:
    """
    Continuous percentile of ``values``.

    Args:
        values: Samples, in any order.
        fraction: Percentile as a fraction in [0, 1] (0.95 for P95).

    Returns:
        The interpolated value.

    Raises:
        ValueError: If there are no samples or the fraction is out of range.
    """
    if not values:
        raise ValueError("values must not be empty")
    if not 0.0 <= fraction <= 1.0:
        raise ValueError(f"fraction must be within [0, 1], got {fraction}")

    # Fraction resolved to the nearest 1/1000
    share = Fraction(fraction).limit_denominator(1000)
    if share.numerator == 0:
        return float(min(values))
    if share.numerator == share.denominator:
        return float(max(values))
    if len(values) == 1:
        return float(values[0])

    cut_points = statistics.quantiles(values, n=share.denominator, method="inclusive")
    return float(cut_points[share.numerator - 1])


def summarize_samples(values: Sequence[float]) -> SampleStatistics:
    """
    Compute the percentile/mean/stddev summary of a sample set.

    Raises:
        ValueError: If there are no samples.
    """
    if not values:
        raise ValueError("values must not be empty")

    if len(values) == 1:
        p50 = p95 = p99 = float(values[0])
    else:
        cut_points = statistics.quantiles(values, n=100, method="inclusive")
        p50, p95, p99 = (float(cut_points[k - 1]) for k in (50, 95, 99))

    return SampleStatistics(
        p50=p50,
        p95=p95,
        p99=p99,
        max=float(max(values)),
        mean=float(statistics.mean(values)),
        stddev=float(statistics.stdev(values)) if len(values) > 1 else 0.0,
        count=len(values),
    )

"""Statistical helpers for offset analysis.

Pure functions over sequences of millisecond offsets. numpy handles the
vector arithmetic; every function returns plain Python floats or lists so
callers never leak numpy scalars into dataclasses or JSON logs.
"""

from collections.abc import Sequence

import numpy as np


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp01(value: float) -> float:
    return clamp(value, 0.0, 1.0)


def lerp(a: float, b: float, t: float) -> float:
    """Linear interpolation from a towards b by fraction t."""
    return a + (b - a) * t


def temporal_weights(ages_ms: Sequence[float], decay_ms: float = 30_000.0) -> list[float]:
    """Exponential recency weights exp(-age / decay) for each sample age."""
    ages = np.asarray(ages_ms, dtype=np.float64)
    return np.exp(-ages / decay_ms).tolist()


def weighted_mean(values: Sequence[float], weights: Sequence[float]) -> float:
    """Weighted mean, or the plain mean when all weights underflow to zero."""
    if len(values) == 0:
        return 0.0
    vals = np.asarray(values, dtype=np.float64)
    w = np.asarray(weights, dtype=np.float64)
    total = float(w.sum())
    if total <= 0.0:
        return float(vals.mean())
    return float((vals * w).sum() / total)


def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(np.asarray(values, dtype=np.float64)))


def linear_trend(values: Sequence[float]) -> float:
    """Least-squares slope of values against their index. 0 when n < 3."""
    n = len(values)
    if n < 3:
        return 0.0
    x = np.arange(n, dtype=np.float64)
    y = np.asarray(values, dtype=np.float64)
    denominator = n * float((x * x).sum()) - float(x.sum()) ** 2
    if denominator == 0.0:
        return 0.0
    return (n * float((x * y).sum()) - float(x.sum()) * float(y.sum())) / denominator


def autocorrelation_peak(values: Sequence[float], max_lag: int = 10) -> float:
    """Largest absolute autocorrelation of the mean-centred series.

    Lags run over 1 <= lag < min(n / 2, max_lag). Returns 0 when n < 5.
    """
    n = len(values)
    if n < 5:
        return 0.0
    centred = np.asarray(values, dtype=np.float64)
    centred = centred - centred.mean()
    peak = 0.0
    lag = 1
    while lag < min(n / 2, max_lag):
        correlation = float((centred[: n - lag] * centred[lag:]).sum()) / (n - lag)
        peak = max(peak, abs(correlation))
        lag += 1
    return peak


def iqr_outliers(values: Sequence[float]) -> list[bool]:
    """Flag values outside [Q1 - 1.5 IQR, Q3 + 1.5 IQR].

    Quartiles are read at floor(0.25 n) and floor(0.75 n) of the sorted
    values. Fewer than 4 values never produce outliers.
    """
    n = len(values)
    if n < 4:
        return [False] * n
    ordered = np.sort(np.asarray(values, dtype=np.float64))
    q1 = float(ordered[int(n * 0.25)])
    q3 = float(ordered[int(n * 0.75)])
    iqr = q3 - q1
    lower = q1 - 1.5 * iqr
    upper = q3 + 1.5 * iqr
    return [bool(v < lower or v > upper) for v in values]


def variance(values: Sequence[float]) -> float:
    """Population variance. 0 for an empty sequence."""
    if len(values) == 0:
        return 0.0
    return float(np.var(np.asarray(values, dtype=np.float64)))


def stability(values: Sequence[float]) -> float:
    """1 - mean absolute consecutive change / 500, floored at 0."""
    if len(values) < 2:
        return 0.0
    changes = np.abs(np.diff(np.asarray(values, dtype=np.float64)))
    return max(0.0, 1.0 - float(changes.mean()) / 500.0)


def consistency(values: Sequence[float], trend: float) -> float:
    """Stability damped by the magnitude of the trend. 0 when n < 3."""
    if len(values) < 3:
        return 0.0
    return max(0.0, stability(values) * (1.0 - min(1.0, abs(trend) / 100.0)))

"""Shared numeric helpers for the risk calculators.

Mean, sample standard deviation, simple returns, percentile-based loss
lookup, Box-Muller normal draws and maximum drawdown.

All functions are pure computation -- no I/O or database access.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

import numpy as np

# u1 is floored here so log(u1) stays finite
_BOX_MULLER_FLOOR = 1e-10


def mean(xs: Sequence[float] | np.ndarray) -> float:
    """Arithmetic mean; 0.0 for an empty input."""
    if len(xs) == 0:
        return 0.0
    return float(np.mean(np.asarray(xs, dtype=float)))


def std_dev(xs: Sequence[float] | np.ndarray, mu: float | None = None) -> float:
    """Sample standard deviation (divisor n-1); 0.0 when n < 2.

    Args:
        xs: Observations.
        mu: Precomputed mean of *xs*; computed when omitted.
    """
    n = len(xs)
    if n < 2:
        return 0.0
    arr = np.asarray(xs, dtype=float)
    if mu is None:
        mu = float(arr.mean())
    return float(math.sqrt(float(np.sum((arr - mu) ** 2)) / (n - 1)))


def returns_from_prices(prices: Sequence[float] | np.ndarray) -> np.ndarray:
    """Simple returns between consecutive prices.

    Returns an empty array for fewer than 2 prices. A zero previous price
    yields a 0.0 return for that step.
    """
    arr = np.asarray(prices, dtype=float)
    if arr.size < 2:
        return np.empty(0, dtype=float)
    prev = arr[:-1]
    diff = arr[1:] - prev
    with np.errstate(divide="ignore", invalid="ignore"):
        out = np.where(prev != 0.0, diff / np.where(prev != 0.0, prev, 1.0), 0.0)
    return out


def percentile_index(n: int, confidence: float) -> int:
    """Index of the VaR observation in an ascending series of length *n*.

    ``floor((1 - confidence) * n)`` clamped to ``[0, n - 1]``.
    """
    if n <= 0:
        return 0
    idx = int(math.floor((1.0 - confidence) * n))
    return min(max(idx, 0), n - 1)


def percentile_loss(sorted_returns: Sequence[float] | np.ndarray, confidence: float) -> float:
    """Return at the VaR percentile of an ascending series; 0.0 when empty."""
    n = len(sorted_returns)
    if n == 0:
        return 0.0
    return float(sorted_returns[percentile_index(n, confidence)])


def normal_random(
    mu: float,
    sigma: float,
    rng: np.random.Generator | None = None,
) -> float:
    """Single normal draw via the Box-Muller transform."""
    if rng is None:
        rng = np.random.default_rng()
    u1 = max(_BOX_MULLER_FLOOR, float(rng.random()))
    u2 = float(rng.random())
    z = math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)
    return mu + sigma * z


def normal_samples(
    mu: float,
    sigma: float,
    size: int,
    rng: np.random.Generator | None = None,
) -> np.ndarray:
    """Vectorized Box-Muller draws, identical in distribution to ``normal_random``."""
    if rng is None:
        rng = np.random.default_rng()
    u1 = np.maximum(_BOX_MULLER_FLOOR, rng.random(size))
    u2 = rng.random(size)
    z = np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)
    return mu + sigma * z


def max_drawdown(returns: Sequence[float] | np.ndarray) -> float:
    """Largest peak-to-trough decline of the compounded return path.

    Returns a fraction in [0, 1]; 0.0 for an empty series.
    """
    arr = np.asarray(returns, dtype=float)
    if arr.size == 0:
        return 0.0
    cumulative = np.cumprod(1.0 + arr)
    # Path starts at 1.0 before the first return
    peaks = np.maximum.accumulate(np.concatenate(([1.0], cumulative)))[1:]
    with np.errstate(divide="ignore", invalid="ignore"):
        drawdowns = np.where(peaks > 0, (peaks - cumulative) / peaks, 0.0)
    return float(max(0.0, drawdowns.max()))

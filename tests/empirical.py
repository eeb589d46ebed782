"""
Empirical-distribution helpers shared by the statistical tests.
"""

import jax
import jax.numpy as jnp
import jax.scipy.stats
import numpy as np


def ks_statistic(samples, cdf):
    """Kolmogorov-Smirnov distance between `samples` and the CDF `cdf`."""
    xs = np.sort(np.asarray(samples, dtype=np.float64))
    n = xs.size
    fx = cdf(xs)
    upper = np.max(np.arange(1, n + 1) / n - fx)
    lower = np.max(fx - np.arange(0, n) / n)
    return float(max(upper, lower))


def triangular_cdf(x):
    """CDF of the density 2x on [0, 1)."""
    return np.clip(x, 0.0, 1.0) ** 2


def normal_cdf(x):
    """CDF of the standard normal."""
    return np.asarray(jax.scipy.stats.norm.cdf(jnp.asarray(x)))

"""Standard probability distributions as `Prob` programs.

Every distribution here is built from `uniform` alone: a single uniform label
is pushed through an inverse CDF computed by TensorFlow Probability, and
compound distributions (`iid`, `poisson_pp`, `splice`, `wiener`) are
composed from those with `draw` and the generator syntax. Nothing in this
module touches a PRNG key.
"""

import itertools as it

import jax
import jax.numpy as jnp
import numpy as np

from ._compat import ensure_jax_tfp_compat

ensure_jax_tfp_compat()

from tensorflow_probability.substrates import jax as tfp  # noqa: E402

from .core import (  # noqa: E402
    Any,
    ArrayLike,
    Callable,
    Prob,
    Sequence,
    draw,
    prob,
    uniform,
)
from .sequences import LazySequence  # noqa: E402
from .tree import Tree  # noqa: E402

tfd = tfp.distributions

_POISSON_CHUNK = 64

#####################
# Jitted transforms #
#####################


@jax.jit
def _normal_quantile(u, loc, scale):
    return tfd.Normal(loc, scale).quantile(u)


@jax.jit
def _exponential_quantile(u, rate):
    return tfd.Exponential(rate).quantile(u)


@jax.jit
def _cauchy_quantile(u, loc, scale):
    return tfd.Cauchy(loc, scale).quantile(u)


@jax.jit
def _laplace_quantile(u, loc, scale):
    return tfd.Laplace(loc, scale).quantile(u)


@jax.jit
def _poisson_cdf_chunk(start, rate):
    ks = start + jnp.arange(_POISSON_CHUNK)
    return tfd.Poisson(rate=rate).cdf(ks)


@jax.jit
def _normal_logpdf(x, loc, scale):
    return tfd.Normal(loc, scale).log_prob(x)


def normal_logpdf(x: ArrayLike, loc: ArrayLike, scale: ArrayLike) -> float:
    """Log-density of Normal(loc, scale) at `x`, for use with `score_log`."""
    return float(_normal_logpdf(x, loc, scale))


def _check_positive(name, value):
    if not value > 0:
        raise ValueError(f"{name} must be positive, got {value}")


########################
# Scalar distributions #
########################


def uniform_range(low: float, high: float) -> Prob:
    """Uniform distribution on [low, high)."""
    if not high > low:
        raise ValueError(f"uniform_range needs low < high, got [{low}, {high})")
    width = high - low
    return uniform.map(lambda u: low + width * u)


def bernoulli(p: float) -> Prob:
    """`True` with probability `p`."""
    if not 0.0 <= p <= 1.0:
        raise ValueError(f"bernoulli probability must lie in [0, 1], got {p}")
    return uniform.map(lambda u: u < p)


def categorical(probs: Sequence[float] | ArrayLike) -> Prob:
    """Index `i` with probability proportional to `probs[i]`."""
    weights = np.asarray(probs, dtype=np.float64)
    if weights.ndim != 1 or weights.size == 0:
        raise ValueError("categorical needs a non-empty 1-D vector of weights")
    if np.any(weights < 0) or not weights.sum() > 0:
        raise ValueError("categorical weights must be non-negative with a positive sum")
    cdf = np.cumsum(weights)
    total = cdf[-1]
    last = weights.size - 1

    def invert(u):
        return min(int(np.searchsorted(cdf, u * total, side="right")), last)

    return uniform.map(invert)


def uniform_discrete(items: Sequence) -> Prob:
    """One of `items`, each with equal probability."""
    if len(items) == 0:
        raise ValueError("uniform_discrete needs at least one item")
    n = len(items)
    return uniform.map(lambda u: items[min(int(u * n), n - 1)])


def normal(loc: float, scale: float) -> Prob:
    """Normal distribution with mean `loc` and standard deviation `scale`."""
    _check_positive("normal scale", scale)
    return uniform.map(lambda u: float(_normal_quantile(u, loc, scale)))


def log_normal(loc: float, scale: float) -> Prob:
    """exp(X) for X ~ Normal(loc, scale)."""
    return normal(loc, scale).map(lambda x: float(np.exp(x)))


def exponential(rate: float) -> Prob:
    """Exponential distribution with the given rate."""
    _check_positive("exponential rate", rate)
    return uniform.map(lambda u: float(_exponential_quantile(u, rate)))


def cauchy(loc: float, scale: float) -> Prob:
    _check_positive("cauchy scale", scale)
    return uniform.map(lambda u: float(_cauchy_quantile(u, loc, scale)))


def laplace(loc: float, scale: float) -> Prob:
    _check_positive("laplace scale", scale)
    return uniform.map(lambda u: float(_laplace_quantile(u, loc, scale)))


def _poisson_quantile(u, rate):
    # Search fixed-size windows of the CDF, starting a few standard
    # deviations below the mean, for the first count whose CDF exceeds u.
    start = max(0, int(rate - 8.0 * np.sqrt(rate)))
    start -= start % _POISSON_CHUNK
    while True:
        cdf = np.asarray(_poisson_cdf_chunk(start, rate))
        if start > 0 and cdf[0] > u:
            start = max(0, start - _POISSON_CHUNK)
            continue
        index = int(np.searchsorted(cdf, u, side="right"))
        if index < _POISSON_CHUNK:
            return start + index
        start += _POISSON_CHUNK


def poisson(rate: float) -> Prob:
    """Poisson-distributed count with mean `rate`."""
    _check_positive("poisson rate", rate)
    return uniform.map(lambda u: _poisson_quantile(u, rate))


########################
# Infinite-dimensional #
########################


def iid(p: Prob) -> Prob:
    """An infinite lazy sequence of independent draws from `p`.

    Element `k` is drawn on child `k` of the sequence's own subtree, so only
    the elements that are actually inspected are ever computed.
    """

    def stream(tree):
        return LazySequence(p.run(tree.child(k)) for k in it.count())

    return draw(Prob(lambda tree: (stream(tree), tree)))


def poisson_pp(lower: float, rate: float) -> Prob:
    """Poisson point process on (lower, inf) with the given rate.

    Returns an infinite, increasing `LazySequence` of points; gaps between
    consecutive points are exponential.

    Examples:
        >>> @prob
        ... def points_below_20():
        ...     points = yield poisson_pp(0.0, 0.1)
        ...     return points.take_while(lambda x: x < 20.0)
    """
    _check_positive("poisson_pp rate", rate)

    def points(gaps):
        return LazySequence(it.islice(it.accumulate(gaps, initial=lower), 1, None))

    return iid(exponential(rate)).map(points)


def splice(point_process: Prob, random_fun: Prob) -> Prob:
    """A random piecewise function that switches pieces at random points.

    Between consecutive points of `point_process` the result behaves like an
    independent draw from `random_fun`.
    """

    @prob
    def spliced():
        points = yield point_process
        pieces = yield iid(random_fun)
        default = yield random_fun

        def f(x):
            for boundary, piece in zip(points, pieces):
                if x <= boundary:
                    return piece(x)
            return default(x)

        return f

    return spliced()


class WienerPath:
    """One sample path of standard Brownian motion on [0, inf).

    Values at integer times come from independent normal increments; values
    at dyadic times `n + k / 2**j` come from Brownian-bridge midpoint
    refinements, down to `2**-depth`, and are linearly interpolated in
    between. Every dyadic value is a deterministic function of the tree and
    its address, so the path does not depend on the order of queries; the
    cache only avoids recomputation.
    """

    def __init__(self, tree: Tree, depth: int):
        self._increments = tree.child(0)
        self._bridges = tree.child(1)
        self._depth = depth
        self._integers = [0.0]
        self._cache = {}

    def _at_integer(self, n):
        while len(self._integers) <= n:
            k = len(self._integers) - 1
            z = float(_normal_quantile(self._increments.child(k).value, 0.0, 1.0))
            self._integers.append(self._integers[k] + z)
        return self._integers[n]

    def _point(self, n, level, k):
        while level > 0 and k % 2 == 0:
            level -= 1
            k //= 2
        if level == 0:
            return self._at_integer(n + k)
        value = self._cache.get((n, level, k))
        if value is None:
            left = self._point(n, level, k - 1)
            right = self._point(n, level, k + 1)
            u = self._bridges.child(n).child(level).child(k).value
            z = float(_normal_quantile(u, 0.0, 1.0))
            value = 0.5 * (left + right) + float(np.sqrt(2.0 ** -(level + 1))) * z
            self._cache[(n, level, k)] = value
        return value

    def __call__(self, t: float) -> float:
        if t < 0:
            raise ValueError(f"Brownian motion is only defined for t >= 0, got {t}")
        n = int(np.floor(t))
        scaled = (t - n) * 2.0**self._depth
        k = int(np.floor(scaled))
        weight = scaled - k
        left = self._point(n, self._depth, k)
        if weight == 0.0:
            return left
        right = self._point(n, self._depth, k + 1)
        return left + weight * (right - left)


def wiener(depth: int = 16) -> Prob:
    """Standard Brownian motion on [0, inf), as a random function of time."""
    if depth < 0:
        raise ValueError(f"wiener resolution depth must be non-negative, got {depth}")
    return draw(Prob(lambda tree: (WienerPath(tree, depth), tree)))


def brownian_bridge(
    t0: float, x0: float, t1: float, x1: float, depth: int = 16
) -> Prob:
    """Brownian motion on [t0, t1] pinned to `x0` at `t0` and `x1` at `t1`."""
    if not t1 > t0:
        raise ValueError(f"brownian_bridge needs t0 < t1, got {t0}, {t1}")
    span = t1 - t0

    def pinned(path: WienerPath) -> Callable[[float], Any]:
        end = path(span)

        def f(t: float) -> float:
            if not t0 <= t <= t1:
                raise ValueError(f"brownian_bridge is defined on [{t0}, {t1}], got {t}")
            s = t - t0
            return x0 + (x1 - x0) * s / span + path(s) - s / span * end

        return f

    return wiener(depth).map(pinned)

"""
Likelihood-weighted importance sampling.

Independent runs of a model on disjoint parts of one probability tree give
weighted samples with no Markov dependency. `lwis` turns a finite batch of
them into an infinite stream by resampling with replacement in proportion to
weight, which makes it a simple reference method that needs no proposal
kernel.
"""

import logging
import warnings

import jax
import jax.numpy as jnp
import jax.random as jrand
import jax.scipy.special
import numpy as np

from .config import LOG_SCORE_FLOOR
from .core import Any, Iterator, Meas, PRNGKey, Pytree, Weighted
from .mcmc import _stack
from .sequences import take
from .tree import random_tree

logger = logging.getLogger(__name__)

_RESAMPLE_BATCH = 1024


@Pytree.dataclass
class ParticleCollection(Pytree):
    """`n` independent weighted samples and summary statistics."""

    values: Any
    log_weights: jnp.ndarray
    normalized_weights: jnp.ndarray
    log_marginal_likelihood: jnp.ndarray
    effective_sample_size: jnp.ndarray


def effective_sample_size(log_weights: jnp.ndarray) -> jnp.ndarray:
    """
    Compute the effective sample size from log importance weights.

    Args:
        log_weights: Array of log importance weights

    Returns:
        Effective sample size in [1, num_samples]
    """
    log_weights_normalized = log_weights - jax.scipy.special.logsumexp(log_weights)
    weights_normalized = jnp.exp(log_weights_normalized)
    return 1.0 / jnp.sum(weights_normalized**2)


def _weighted_samples(m, key):
    tree = random_tree(key)
    while True:
        head, tree = tree.split()
        yield m.run(head)


def weighted_samples(m: Meas, key: PRNGKey) -> Iterator[Weighted]:
    """Infinite stream of independent runs of `m`, with their log-weights.

    Run `k` uses child `k` of a single random tree built from `key`.
    """
    return _weighted_samples(m, key)


def _check_count(n):
    if n < 1:
        raise ValueError(f"Number of weighted samples must be positive, got {n}")


def _draw_particles(n, m, key):
    particles = take(n, weighted_samples(m, key))
    log_weights = jnp.array([w.log_weight for w in particles])
    if bool(jnp.all(log_weights <= LOG_SCORE_FLOOR)):
        warnings.warn(
            f"All {n} weighted samples have weight at or below the score floor; "
            "resampling is uniform over them."
        )
    return [w.value for w in particles], log_weights


def importance(n: int, m: Meas, key: PRNGKey) -> ParticleCollection:
    """Draw `n` weighted samples of `m` and summarize them.

    Returns:
        `ParticleCollection` with the values, their log-weights and normalized
        weights, an estimate of the log normalizing constant of `m`, and the
        effective sample size.
    """
    _check_count(n)
    values, log_weights = _draw_particles(n, m, key)
    log_total = jax.scipy.special.logsumexp(log_weights)
    return ParticleCollection(
        values=_stack(values),
        log_weights=log_weights,
        normalized_weights=jnp.exp(log_weights - log_total),
        log_marginal_likelihood=log_total - jnp.log(n),
        effective_sample_size=effective_sample_size(log_weights),
    )


@jax.jit
def _resample_indices(key, cumulative):
    next_key, draw_key = jrand.split(key)
    thresholds = jrand.uniform(draw_key, (_RESAMPLE_BATCH,)) * cumulative[-1]
    return next_key, jnp.searchsorted(cumulative, thresholds, side="left")


def _resample(values, cumulative, key):
    while True:
        key, indices = _resample_indices(key, cumulative)
        for index in np.asarray(indices).tolist():
            yield values[index]


def lwis(n: int, m: Meas, key: PRNGKey) -> Iterator[Any]:
    """Likelihood-weighted importance sampling.

    Draws `n` weighted samples of `m`, regards them as an empirical
    distribution, and returns an infinite stream of values resampled from it
    with replacement: for each output a uniform `r` is drawn and the first
    sample whose cumulative weight reaches `r` times the total is returned.

    Args:
        n: Number of weighted samples to draw before resampling.
        m: Unnormalized measure to sample from.
        key: Randomness for the samples and for resampling.

    Returns:
        An infinite iterator of values of `m`.
    """
    _check_count(n)
    logger.info("Starting likelihood-weighted importance sampling (n=%d)", n)
    samples_key, resample_key = jrand.split(key)
    values, log_weights = _draw_particles(n, m, samples_key)
    # Cumulative weights, rescaled by the largest weight to stay finite.
    cumulative = jnp.cumsum(jnp.exp(log_weights - jnp.max(log_weights)))
    return _resample(values, cumulative, resample_key)

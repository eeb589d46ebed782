"""
Shared fixtures and configuration for the lazyppl test suite.

Keys are fixed so that statistical tests are reproducible; tolerances are
grouped here so that every stochastic assertion states how loose it is.
"""

import jax

jax.config.update("jax_enable_x64", True)

import jax.random as jrand
import pytest

from lazyppl import meas, normal, normal_logpdf, random_tree, score, score_log, uniform


# ============================================================================
# Random Key Fixtures
# ============================================================================


@pytest.fixture
def base_key():
    """Base random key for reproducible tests."""
    return jrand.key(42)


@pytest.fixture
def key_sequence(base_key):
    """Sequence of 10 split random keys."""
    return jrand.split(base_key, 10)


@pytest.fixture
def tree(base_key):
    """A fresh probability tree."""
    return random_tree(base_key)


# ============================================================================
# Test Tolerance Fixtures
# ============================================================================


@pytest.fixture
def standard_tolerance():
    """Standard tolerance for deterministic numerical tests."""
    return 1e-9


@pytest.fixture
def convergence_tolerance():
    """Tolerance for sample means with inherent Monte Carlo variance."""
    return 0.05


@pytest.fixture
def ks_tolerance():
    """Bound on the Kolmogorov-Smirnov statistic for long chains."""
    return 0.05


# ============================================================================
# Common Model Fixtures
# ============================================================================


@pytest.fixture
def triangular_model():
    """`uniform` reweighted by `x`: normalized density 2x on [0, 1)."""

    @meas
    def model():
        x = yield uniform
        yield score(x)
        return x

    return model()


@pytest.fixture
def normal_normal_model():
    """Normal(0, 1) prior, one Normal(x, 1) observation at 1.0.

    The posterior is Normal(0.5, sqrt(0.5)).
    """

    @meas
    def model(y):
        x = yield normal(0.0, 1.0)
        yield score_log(normal_logpdf(y, x, 1.0))
        return x

    return model(1.0)


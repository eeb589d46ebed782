"""
Test cases for the distribution library.

Distributions are inverse-CDF transforms of tree labels, so each one is
checked on its support and on sample moments over many independent subtrees
of one tree.
"""

import numpy as np
import pytest

from empirical import ks_statistic, normal_cdf
from lazyppl import (
    LazySequence,
    bernoulli,
    brownian_bridge,
    categorical,
    cauchy,
    exponential,
    iid,
    laplace,
    log_normal,
    normal,
    normal_logpdf,
    poisson,
    poisson_pp,
    prob,
    random_tree,
    run_prob,
    splice,
    uniform_discrete,
    uniform_range,
    wiener,
)


def draws(p, tree, n=4000):
    """`n` independent draws of `p`, one per child of `tree`."""
    return [run_prob(p, tree.child(i)) for i in range(n)]


@pytest.mark.distributions
@pytest.mark.statistical
class TestContinuous:
    def test_uniform_range(self, tree, convergence_tolerance):
        xs = np.array(draws(uniform_range(-2.0, 6.0), tree))
        assert np.all((xs >= -2.0) & (xs < 6.0))
        assert abs(xs.mean() - 2.0) < 4 * convergence_tolerance

    def test_normal_moments(self, tree, convergence_tolerance):
        xs = np.array(draws(normal(3.0, 2.0), tree))
        assert abs(xs.mean() - 3.0) < 2 * convergence_tolerance * 2.0
        assert abs(xs.std() - 2.0) < 2 * convergence_tolerance * 2.0

    def test_normal_ks(self, tree, ks_tolerance):
        xs = draws(normal(0.0, 1.0), tree)
        assert ks_statistic(xs, normal_cdf) < ks_tolerance

    def test_log_normal_is_positive(self, tree):
        xs = np.array(draws(log_normal(0.0, 0.5), tree, n=1000))
        assert np.all(xs > 0.0)
        assert abs(np.median(xs) - 1.0) < 0.1

    def test_exponential(self, tree, ks_tolerance):
        xs = draws(exponential(2.0), tree)
        assert min(xs) >= 0.0
        assert ks_statistic(xs, lambda x: 1.0 - np.exp(-2.0 * x)) < ks_tolerance

    def test_cauchy_median(self, tree):
        xs = np.array(draws(cauchy(1.0, 0.5), tree))
        assert abs(np.median(xs) - 1.0) < 0.1

    def test_laplace(self, tree, convergence_tolerance):
        xs = np.array(draws(laplace(-1.0, 1.0), tree))
        assert abs(np.median(xs) + 1.0) < 2 * convergence_tolerance
        assert abs(np.mean(np.abs(xs + 1.0)) - 1.0) < 2 * convergence_tolerance

    def test_results_are_python_floats(self, tree):
        for p in [normal(0.0, 1.0), exponential(1.0), cauchy(0.0, 1.0), laplace(0.0, 1.0)]:
            assert isinstance(run_prob(p, tree), float)

    def test_normal_logpdf(self):
        assert np.isclose(normal_logpdf(0.0, 0.0, 1.0), -0.5 * np.log(2 * np.pi))
        assert np.isclose(
            normal_logpdf(3.0, 1.0, 2.0), -0.5 * np.log(2 * np.pi * 4.0) - 0.5
        )


@pytest.mark.distributions
@pytest.mark.statistical
class TestDiscrete:
    def test_bernoulli(self, tree, convergence_tolerance):
        xs = draws(bernoulli(0.3), tree)
        assert set(xs) <= {True, False}
        assert abs(np.mean(xs) - 0.3) < convergence_tolerance

    def test_bernoulli_extremes(self, tree):
        assert not any(draws(bernoulli(0.0), tree, n=200))
        assert all(draws(bernoulli(1.0), tree, n=200))

    def test_categorical_frequencies(self, tree, convergence_tolerance):
        xs = np.array(draws(categorical([1.0, 2.0, 0.0, 7.0]), tree))
        counts = np.bincount(xs, minlength=4) / xs.size
        assert counts[2] == 0.0
        assert np.allclose(counts, [0.1, 0.2, 0.0, 0.7], atol=convergence_tolerance)

    def test_uniform_discrete(self, tree, convergence_tolerance):
        items = ["a", "b", "c", "d"]
        xs = draws(uniform_discrete(items), tree)
        assert set(xs) == set(items)
        for item in items:
            assert abs(xs.count(item) / len(xs) - 0.25) < convergence_tolerance

    @pytest.mark.parametrize("rate", [0.5, 4.0, 150.0])
    def test_poisson_mean_and_variance(self, tree, rate):
        xs = np.array(draws(poisson(rate), tree))
        assert xs.dtype.kind == "i"
        assert np.all(xs >= 0)
        assert abs(xs.mean() - rate) < 0.1 * max(1.0, np.sqrt(rate))
        assert abs(xs.var() / rate - 1.0) < 0.15


@pytest.mark.distributions
class TestLazyStructures:
    def test_iid_is_lazy_and_memoized(self, tree):
        seq = run_prob(iid(normal(0.0, 1.0)), tree)
        assert isinstance(seq, LazySequence)
        first = seq.take(5)
        assert seq.take(5) == first
        assert len(set(first)) == 5

    def test_iid_is_deterministic(self, tree):
        a = run_prob(iid(normal(0.0, 1.0)), tree)
        b = run_prob(iid(normal(0.0, 1.0)), tree)
        assert a.take(10) == b.take(10)

    def test_iid_does_not_consume_later_randomness(self, tree):
        @prob
        def program():
            xs = yield iid(normal(0.0, 1.0))
            y = yield normal(0.0, 1.0)
            return xs, y

        xs, y = run_prob(program(), tree)
        xs.take(100)
        _, y_again = run_prob(program(), tree)
        assert y == y_again
        assert y == run_prob(normal(0.0, 1.0), tree.child(1))

    def test_poisson_pp_is_increasing(self, tree):
        points = run_prob(poisson_pp(5.0, 0.5), tree).take(200)
        assert points[0] > 5.0
        assert all(b > a for a, b in zip(points, points[1:]))

    def test_poisson_pp_rate(self, tree):
        counts = [
            len(run_prob(poisson_pp(0.0, 2.0), tree.child(i)).take_while(lambda x: x < 10.0))
            for i in range(300)
        ]
        assert abs(np.mean(counts) - 20.0) < 1.0

    def test_splice_is_piecewise(self, tree):
        @prob
        def constant():
            c = yield normal(0.0, 1.0)
            return lambda x: c

        f = run_prob(splice(poisson_pp(0.0, 1.0), constant()), tree)
        grid = np.linspace(0.0, 20.0, 400)
        levels = [f(x) for x in grid]
        # Constant pieces with a handful of jumps, about one per unit time.
        jumps = sum(a != b for a, b in zip(levels, levels[1:]))
        assert 5 <= jumps <= 40
        assert len(set(levels)) == jumps + 1
        assert f(3.0) == f(3.0)


@pytest.mark.distributions
class TestBrownianMotion:
    def test_starts_at_zero(self, tree):
        path = run_prob(wiener(), tree)
        assert path(0.0) == 0.0

    def test_query_order_does_not_matter(self, tree):
        times = [2.7, 0.3, 5.125, 0.3001, 1.0, 4.9]
        forwards = run_prob(wiener(), tree)
        backwards = run_prob(wiener(), tree)
        a = [forwards(t) for t in times]
        b = [backwards(t) for t in reversed(times)][::-1]
        assert a == b

    def test_increment_variance(self, tree):
        paths = [run_prob(wiener(depth=8), tree.child(i)) for i in range(800)]
        ones = np.array([path(1.0) for path in paths])
        halves = np.array([path(2.5) - path(2.0) for path in paths])
        assert abs(ones.var() - 1.0) < 0.15
        assert abs(halves.var() - 0.5) < 0.1

    def test_negative_time_raises(self, tree):
        path = run_prob(wiener(), tree)
        with pytest.raises(ValueError):
            path(-1.0)

    def test_bridge_hits_endpoints(self, tree):
        f = run_prob(brownian_bridge(1.0, 2.0, 3.0, -1.0), tree)
        assert np.isclose(f(1.0), 2.0)
        assert np.isclose(f(3.0), -1.0)
        assert np.isfinite(f(2.0))
        with pytest.raises(ValueError):
            f(3.5)


@pytest.mark.distributions
@pytest.mark.unit
@pytest.mark.fast
class TestParameterValidation:
    @pytest.mark.parametrize(
        "make",
        [
            lambda: uniform_range(1.0, 1.0),
            lambda: bernoulli(1.5),
            lambda: categorical([]),
            lambda: categorical([0.0, 0.0]),
            lambda: categorical([1.0, -1.0]),
            lambda: uniform_discrete([]),
            lambda: normal(0.0, 0.0),
            lambda: exponential(-1.0),
            lambda: cauchy(0.0, -1.0),
            lambda: laplace(0.0, 0.0),
            lambda: poisson(0.0),
            lambda: poisson_pp(0.0, 0.0),
            lambda: wiener(depth=-1),
            lambda: brownian_bridge(1.0, 0.0, 1.0, 0.0),
        ],
    )
    def test_invalid_parameters_raise(self, make):
        with pytest.raises(ValueError):
            make()

    def test_same_tree_same_draw(self, base_key):
        t1, t2 = random_tree(base_key), random_tree(base_key)
        assert run_prob(poisson(3.0), t1) == run_prob(poisson(3.0), t2)

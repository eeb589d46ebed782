import jax.random as jrand
import numpy as np

from lazyppl import (
    every,
    meas,
    mh,
    mh_irreducible,
    normal,
    normal_logpdf,
    poisson_pp,
    prob,
    score_log,
    splice,
    take,
)

dataset = [(0.0, 0.6), (1.0, 0.7), (2.0, 1.2), (3.0, 3.2), (4.0, 6.8), (5.0, 8.2), (6.0, 8.4)]


@prob
def linear():
    a = yield normal(0.0, 3.0)
    b = yield normal(0.0, 3.0)
    return lambda x: a * x + b


@prob
def constant():
    b = yield normal(0.0, 3.0)
    return lambda x: b


@meas
def regress(sigma, prior, data):
    f = yield prior
    for x, y in data:
        yield score_log(normal_logpdf(y, f(x), sigma))
    return f


def summarize(name, fs):
    grid = np.linspace(0.0, 6.0, 7)
    values = np.array([[f(x) for x in grid] for f in fs])
    print(name)
    for x, mean, std in zip(grid, values.mean(axis=0), values.std(axis=0)):
        print(f"  f({x:.1f}) = {mean:7.3f} +/- {std:.3f}")


# A linear regression, with single-site proposals.
key_linear, key_piecewise = jrand.split(jrand.key(0))
samples = take(500, every(50, mh(0.5, regress(0.5, linear(), dataset), key_linear)))
summarize("linear", [w.value for w in samples[100:]])

# A piecewise-constant regression: change points from a Poisson process,
# with occasional fresh-tree restarts so the number of pieces can change.
piecewise = splice(poisson_pp(0.0, 0.2), constant())
samples = take(
    500,
    every(50, mh_irreducible(0.2, 0.1, regress(0.5, piecewise, dataset), key_piecewise)),
)
summarize("piecewise constant", [w.value for w in samples[100:]])

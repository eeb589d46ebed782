import logging

from beartype import BeartypeConf
from beartype.claw import beartype_this_package

conf = BeartypeConf(
    is_color=True,
    is_debug=False,
    is_pep484_tower=True,
    violation_type=TypeError,
)

beartype_this_package(conf=conf)

logging.getLogger(__name__).addHandler(logging.NullHandler())

from .config import LOG_SCORE_FLOOR, SCORE_FLOOR, apply_jax_config, check_x64

apply_jax_config()
check_x64()

from .core import (
    Meas,
    Prob,
    Pytree,
    Weighted,
    bind,
    draw,
    meas,
    prob,
    replicate,
    run_meas,
    run_prob,
    sample,
    score,
    score_log,
    uniform,
    unit,
)
from .distributions import (
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
    splice,
    uniform_discrete,
    uniform_range,
    wiener,
)
from .importance import (
    ParticleCollection,
    importance,
    lwis,
    weighted_samples,
)
from .mcmc import (
    ChainState,
    MCMCResult,
    collect,
    mh,
    mh_chain,
    mh_irreducible,
    mh_irreducible_chain,
)
from .sequences import LazySequence, drop, every, take
from .tree import Tree, mutate_tree, random_tree, split_tree

__all__ = [
    "LOG_SCORE_FLOOR",
    "SCORE_FLOOR",
    "ChainState",
    "LazySequence",
    "MCMCResult",
    "Meas",
    "ParticleCollection",
    "Prob",
    "Pytree",
    "Tree",
    "Weighted",
    "bernoulli",
    "bind",
    "brownian_bridge",
    "categorical",
    "cauchy",
    "collect",
    "draw",
    "drop",
    "every",
    "exponential",
    "iid",
    "importance",
    "laplace",
    "log_normal",
    "lwis",
    "meas",
    "mh",
    "mh_chain",
    "mh_irreducible",
    "mh_irreducible_chain",
    "mutate_tree",
    "normal",
    "normal_logpdf",
    "poisson",
    "poisson_pp",
    "prob",
    "random_tree",
    "replicate",
    "run_meas",
    "run_prob",
    "sample",
    "score",
    "score_log",
    "splice",
    "split_tree",
    "take",
    "uniform",
    "uniform_discrete",
    "uniform_range",
    "unit",
    "weighted_samples",
    "wiener",
]

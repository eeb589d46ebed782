"""
Metropolis-Hastings over probability trees.

The state of a chain is a probability tree together with the result and
log-weight of the model run on that tree. A step proposes a new tree by
mutating the current one (`mutate_tree`), re-runs the model on it, and
accepts the proposal with probability `min(1, w' / w)`.

There are three kinds of randomness in a step, all split off the chain key:

1. the current tree, the point in the state space;
2. the randomness used to propose a new tree;
3. the uniform that decides acceptance.

Chains are infinite, pull-based iterators that emit the initial state and
then one state per step; a rejected proposal re-emits the previous state.
Callers bound consumption with `take`, `every` and friends from
`lazyppl.sequences`.

Only the current tree and the one before it are kept as linked node graphs.
Older trees are detached once replaced, so a long chain holds one small
generation record per accepted step rather than every tree it visited.

With `p = 1 / dimension` the mutation kernel behaves like single-site
lightweight MH (Wingate, Stuhlmuller, Goodman, AISTATS 2011); with `p = 1` it
is an independence sampler from the prior.
"""

import logging

import jax
import jax.numpy as jnp
import jax.random as jrand
import numpy as np

from .config import LOG_EVERY
from .core import (
    Any,
    Iterable,
    Iterator,
    Meas,
    NamedTuple,
    PRNGKey,
    Pytree,
    Weighted,
)
from .tree import Tree, mutate_tree, random_tree, to_unit_interval

logger = logging.getLogger(__name__)


class ChainState(NamedTuple):
    """One step of a chain: the tree and the model's result and log-weight on it."""

    tree: Tree
    value: Any
    log_weight: float
    accepted: bool


@Pytree.dataclass
class MCMCResult(Pytree):
    """A finite stretch of a chain, after burn-in and thinning."""

    values: Any  # Stacked when the values are numeric, else a tuple
    log_weights: jnp.ndarray
    accepts: jnp.ndarray  # Individual acceptance decisions (boolean)
    acceptance_rate: jnp.ndarray
    n_samples: int = Pytree.static()


@jax.jit
def _step_randomness(key):
    next_key, proposal_key, coin_key, accept_key = jrand.split(key, 4)
    bits = jnp.concatenate(
        [
            jrand.bits(coin_key, (2,), jnp.uint32),
            jrand.bits(accept_key, (2,), jnp.uint32),
        ]
    )
    return next_key, proposal_key, bits


def _check_probability(name, value):
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must lie in [0, 1], got {value}")


def _run_chain(m, key, p, q):
    tree_key, key = jrand.split(key)
    tree = random_tree(tree_key)
    value, log_weight = m.run(tree)
    n_accepted = 0
    step = 0
    yield ChainState(tree, value, log_weight, True)
    while True:
        key, proposal_key, bits = _step_randomness(key)
        coin_hi, coin_lo, accept_hi, accept_lo = bits.tolist()
        if q > 0.0 and to_unit_interval(coin_hi, coin_lo) < q:
            proposal = random_tree(proposal_key)
        else:
            proposal = mutate_tree(p, proposal_key, tree)
        value_, log_weight_ = m.run(proposal)
        log_ratio = log_weight_ - log_weight
        accepted = bool(to_unit_interval(accept_hi, accept_lo) < np.exp(min(0.0, log_ratio)))
        if accepted:
            # Only the newest tree may link to the nodes of the one before it.
            tree.detach()
            tree, value, log_weight = proposal, value_, log_weight_
            n_accepted += 1
        step += 1
        if LOG_EVERY and step % LOG_EVERY == 0:
            logger.debug(
                "step %d: acceptance rate %.3f, log-weight %.4g",
                step,
                n_accepted / step,
                log_weight,
            )
        yield ChainState(tree, value, log_weight, accepted)


def mh_chain(p: float, m: Meas, key: PRNGKey) -> Iterator[ChainState]:
    """Infinite Metropolis-Hastings chain with the `mutate_tree(p)` kernel.

    Args:
        p: Per-site re-draw probability used to propose new trees.
        m: Unnormalized measure to sample from.
        key: Randomness for the initial tree, the proposals and acceptance.

    Returns:
        An iterator over `ChainState`s: the initial state (marked accepted),
        then one per step.
    """
    _check_probability("mh site probability p", p)
    logger.info("Starting MH chain (p=%s)", p)
    return _run_chain(m, key, p, 0.0)


def mh_irreducible_chain(
    p: float, q: float, m: Meas, key: PRNGKey
) -> Iterator[ChainState]:
    """Like `mh_chain`, but with probability `q` a step proposes a fresh tree.

    Mutation alone may fail to connect the whole state space when `p` is
    tuned small; fresh-tree proposals restore irreducibility.
    """
    _check_probability("mh site probability p", p)
    _check_probability("mh restart probability q", q)
    logger.info("Starting irreducible MH chain (p=%s, q=%s)", p, q)
    return _run_chain(m, key, p, q)


def _weighted(states):
    for state in states:
        yield Weighted(state.value, state.log_weight)


def mh(p: float, m: Meas, key: PRNGKey) -> Iterator[Weighted]:
    """Stream of `(value, log_weight)` samples from a Metropolis-Hastings chain.

    The stream is infinite: the initial sample, then one element per step,
    rejected steps included, so averages over it converge to expectations
    under the normalized measure.

    Examples:
        >>> import jax.random as jrand
        >>> from lazyppl import meas, score, uniform, take
        >>> @meas
        ... def model():
        ...     x = yield uniform
        ...     yield score(x)
        ...     return x
        >>> samples = take(1000, mh(0.5, model(), jrand.key(0)))
    """
    return _weighted(mh_chain(p, m, key))


def mh_irreducible(p: float, q: float, m: Meas, key: PRNGKey) -> Iterator[Weighted]:
    """`mh` with fresh-tree restarts proposed with probability `q`."""
    return _weighted(mh_irreducible_chain(p, q, m, key))


def _stack(values):
    if all(isinstance(v, (int, float, np.number, np.ndarray, jax.Array)) for v in values):
        return jnp.stack([jnp.asarray(v) for v in values])
    return tuple(values)


def collect(
    states: Iterable[ChainState],
    n_steps: int,
    *,
    burn_in: int = 0,
    thin: int = 1,
) -> MCMCResult:
    """Run `n_steps` steps of a chain and keep a thinned stretch of it.

    Args:
        states: A chain, as returned by `mh_chain` or `mh_irreducible_chain`.
        n_steps: Total number of states to pull from the chain, the initial
            state included.
        burn_in: Number of initial steps to discard.
        thin: Keep every `thin`-th step after burn-in.

    Returns:
        `MCMCResult` with the kept values, log-weights and accept flags.
    """
    if n_steps < 1:
        raise ValueError(f"n_steps must be positive, got {n_steps}")
    if not 0 <= burn_in < n_steps:
        raise ValueError(f"burn_in must lie in [0, n_steps), got {burn_in}")
    if thin < 1:
        raise ValueError(f"thin must be positive, got {thin}")

    # Trees are not kept, so the chain can release them as it goes.
    values, log_weights, accepted = [], [], []
    for step, state in zip(range(n_steps), states):
        if step >= burn_in and (step - burn_in) % thin == 0:
            values.append(state.value)
            log_weights.append(state.log_weight)
            accepted.append(state.accepted)

    accepts = jnp.array(accepted, dtype=bool)
    return MCMCResult(
        values=_stack(values),
        log_weights=jnp.array(log_weights),
        accepts=accepts,
        acceptance_rate=jnp.mean(accepts),
        n_samples=len(values),
    )

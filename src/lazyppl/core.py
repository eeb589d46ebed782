"""
Probabilistic programs over lazy probability trees.

Two monads live here:

- `Prob[A]`: a random computation producing an `A`. It is a pure state
  transition `Tree -> (A, Tree)`: it reads labels off the tree it is given
  and hands back the tree of children it did not use.
- `Meas[A]`: an unnormalized measure. Like `Prob`, but it also threads a
  running log-weight that `score` adds to.

Every primitive draw splits the tree it receives and keeps only the first
child for itself, so two sequenced draws never see the same randomness.
Programs are usually written with the `prob` / `meas` decorators, where each
`yield` runs the yielded program on its own child subtree:

    @meas
    def model():
        x = yield uniform
        yield score(x)
        return x
"""

import inspect
from dataclasses import field
from functools import wraps
from typing import overload

import beartype.typing as btyping
import jaxtyping as jtyping
import numpy as np
import penzai.pz as pz
from typing_extensions import dataclass_transform

from .config import LOG_SCORE_FLOOR
from .tree import Tree

##########
# Typing #
##########

Any = btyping.Any
PRNGKey = jtyping.PRNGKeyArray
Array = jtyping.Array
ArrayLike = jtyping.ArrayLike
FloatArray = jtyping.Float[jtyping.Array, "..."]
BoolArray = jtyping.Bool[jtyping.Array, "..."]
Callable = btyping.Callable
Sequence = btyping.Sequence
Iterable = btyping.Iterable
Iterator = btyping.Iterator
Generator = btyping.Generator
Generic = btyping.Generic
NamedTuple = btyping.NamedTuple
TypeVar = btyping.TypeVar

A = TypeVar("A")
B = TypeVar("B")
R = TypeVar("R")

LogWeight = float

##########
# Pytree #
##########


class Pytree(pz.Struct):
    """`Pytree` registers a class with JAX's pytree system, so instances can
    cross `jax.tree_util` and JAX transformation boundaries.

    Fields of a `Pytree.dataclass` are dynamic (JAX leaves) by default;
    `Pytree.static(...)` fields are embedded in the `PyTreeDef` instead and
    must hold Python literals or constants.
    """

    @staticmethod
    @overload
    def dataclass(
        incoming: None = None,
        /,
        **kwargs,
    ) -> Callable[[type[R]], type[R]]: ...

    @staticmethod
    @overload
    def dataclass(
        incoming: type[R],
        /,
        **kwargs,
    ) -> type[R]: ...

    @dataclass_transform(
        frozen_default=True,
    )
    @staticmethod
    def dataclass(
        incoming: type[R] | None = None,
        /,
        **kwargs,
    ) -> type[R] | Callable[[type[R]], type[R]]:
        """Declare a `Pytree` subclass as a frozen dataclass whose fields are
        flattened and unflattened by JAX.

        Examples
        --------

        ```{python}
        @Pytree.dataclass
        class Summary(Pytree):
            log_weights: ArrayLike
            n_samples: int = Pytree.static()
        ```
        """

        return pz.pytree_dataclass(
            incoming,
            overwrite_parent_init=True,
            **kwargs,
        )

    @staticmethod
    def static(**kwargs):
        """Declare a field of a `Pytree` dataclass to be static."""
        return field(metadata={"pytree_node": False}, **kwargs)


############
# Weighted #
############


class Weighted(NamedTuple):
    """A result paired with its weight, kept in the log domain."""

    value: Any
    log_weight: LogWeight

    @property
    def weight(self) -> float:
        return float(np.exp(self.log_weight))


########
# Prob #
########


class Prob(Generic[A]):
    """A random computation: a pure function of a probability tree.

    `step(tree)` returns the result together with the remaining tree, i.e.
    the part of `tree` the computation did not consume. Running the same
    `Prob` on the same tree always gives the same result.
    """

    __slots__ = ("_step",)

    def __init__(self, step: Callable[[Tree], tuple[Any, Tree]]):
        self._step = step

    def step(self, tree: Tree) -> tuple[Any, Tree]:
        return self._step(tree)

    def run(self, tree: Tree) -> Any:
        value, _ = self._step(tree)
        return value

    @staticmethod
    def unit(value: Any) -> "Prob":
        return Prob(lambda tree: (value, tree))

    def bind(self, f: Callable[[Any], "Prob"]) -> "Prob":
        """Run `self`, then run `f(result)` on the tree `self` left over."""
        step = self._step

        def bound(tree):
            value, rest = step(tree)
            return f(value)._step(rest)

        return Prob(bound)

    def map(self, f: Callable[[Any], Any]) -> "Prob":
        step = self._step

        def mapped(tree):
            value, rest = step(tree)
            return f(value), rest

        return Prob(mapped)

    def __repr__(self) -> str:
        return f"Prob({getattr(self._step, '__qualname__', self._step)!r})"


def unit(value: Any) -> Prob:
    return Prob.unit(value)


def bind(p: Prob, f: Callable[[Any], Prob]) -> Prob:
    return p.bind(f)


def run_prob(p: Prob, tree: Tree) -> Any:
    """Run `p` deterministically against `tree`."""
    return p.run(tree)


def draw(p: Prob) -> Prob:
    """Run `p` on a subtree of its own: the first child of the tree.

    Whatever `p` consumes stays inside that child, so a change in how much
    randomness `p` uses never shifts the randomness seen by later draws.
    """
    run = p.run

    def isolated(tree):
        head, rest = tree.split()
        return run(head), rest

    return Prob(isolated)


# Read the label of the current node and ignore its children.
label = Prob(lambda tree: (tree.value, tree))

uniform = draw(label)
"""Uniform draw on [0, 1): the label of the next child subtree."""


def replicate(n: int, p: Prob) -> Prob:
    """`n` independent draws of `p`, each on its own child subtree."""

    def replicated(tree):
        values = []
        for _ in range(n):
            head, tree = tree.split()
            values.append(p.run(head))
        return values, tree

    return Prob(replicated)


########
# Meas #
########


class Meas(Generic[A]):
    """An unnormalized measure: a random computation with a running log-weight.

    `step(tree, log_weight)` returns `(value, remaining_tree, log_weight')`.
    Scores are added to the running log-weight in execution order.
    """

    __slots__ = ("_step",)

    def __init__(self, step: Callable[[Tree, float], tuple[Any, Tree, float]]):
        self._step = step

    def step(self, tree: Tree, log_weight: float) -> tuple[Any, Tree, float]:
        return self._step(tree, log_weight)

    def run(self, tree: Tree) -> Weighted:
        value, _, log_weight = self._step(tree, 0.0)
        return Weighted(value, log_weight)

    @staticmethod
    def unit(value: Any) -> "Meas":
        return Meas(lambda tree, log_weight: (value, tree, log_weight))

    def bind(self, f: Callable[[Any], "Meas"]) -> "Meas":
        step = self._step

        def bound(tree, log_weight):
            value, rest, log_weight = step(tree, log_weight)
            return f(value)._step(rest, log_weight)

        return Meas(bound)

    def map(self, f: Callable[[Any], Any]) -> "Meas":
        step = self._step

        def mapped(tree, log_weight):
            value, rest, log_weight = step(tree, log_weight)
            return f(value), rest, log_weight

        return Meas(mapped)


def sample(p: Prob) -> Meas:
    """Lift a probability distribution to a measure with weight 1."""
    step = p._step

    def lifted(tree, log_weight):
        value, rest = step(tree)
        return value, rest, log_weight

    return Meas(lifted)


def score_log(log_weight: ArrayLike) -> Meas:
    """Multiply the weight by `exp(log_weight)`, without leaving the log domain."""
    increment = float(log_weight)
    return Meas(lambda tree, acc: (None, tree, acc + increment))


def score(weight: ArrayLike) -> Meas:
    """Multiply the weight of the measure by `weight`.

    A weight of exactly 0 is replaced by `exp(LOG_SCORE_FLOOR)` so that
    log-weights stay finite and MH acceptance ratios stay defined.

    `weight` must be non-negative. This is not checked: a negative weight is
    a bug in the model and makes every downstream result meaningless.
    """
    weight = float(weight)
    if weight == 0.0:
        return score_log(LOG_SCORE_FLOOR)
    return score_log(np.log(weight))


def run_meas(m: Meas, tree: Tree) -> Weighted:
    """Run `m` against `tree`, returning its result and total log-weight."""
    return m.run(tree)


####################
# Generator syntax #
####################


def _check_generator_function(fn):
    if not inspect.isgeneratorfunction(fn):
        raise TypeError(
            f"{getattr(fn, '__qualname__', fn)!r} must be a generator function "
            "(use `yield` to draw from sub-programs)"
        )


def prob(fn: Callable[..., Generator]) -> Callable[..., Prob]:
    """Build `Prob` programs from a generator function.

    Inside `fn`, `x = yield p` draws from the `Prob` `p` on the next child
    subtree. The generator's return value is the program's result.

    Examples:
        >>> @prob
        ... def two_uniforms():
        ...     x = yield uniform
        ...     y = yield uniform
        ...     return x + y
    """
    _check_generator_function(fn)

    @wraps(fn)
    def program(*args, **kwargs) -> Prob:
        def stepped(tree):
            routine = fn(*args, **kwargs)
            value = None
            while True:
                try:
                    request = routine.send(value)
                except StopIteration as stop:
                    return stop.value, tree
                if not isinstance(request, Prob):
                    raise TypeError(
                        f"@prob programs can only yield Prob values, got {request!r}"
                    )
                head, tree = tree.split()
                value = request.run(head)

        return Prob(stepped)

    return program


def meas(fn: Callable[..., Generator]) -> Callable[..., Meas]:
    """Build `Meas` programs from a generator function.

    Inside `fn`, `x = yield p` draws from a `Prob` (as `sample(p)` would) and
    `yield score(w)` reweights the run. Yielded `Meas` values run on their
    own child subtree and contribute their weight.

    Examples:
        >>> @meas
        ... def model():
        ...     x = yield uniform
        ...     yield score(x)
        ...     return x
    """
    _check_generator_function(fn)

    @wraps(fn)
    def model(*args, **kwargs) -> Meas:
        def stepped(tree, log_weight):
            routine = fn(*args, **kwargs)
            value = None
            while True:
                try:
                    request = routine.send(value)
                except StopIteration as stop:
                    return stop.value, tree, log_weight
                head, tree = tree.split()
                if isinstance(request, Prob):
                    value = request.run(head)
                elif isinstance(request, Meas):
                    value, _, log_weight = request._step(head, log_weight)
                else:
                    raise TypeError(
                        f"@meas programs can only yield Prob or Meas values, got {request!r}"
                    )

        return Meas(stepped)

    return model

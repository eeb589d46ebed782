"""
Helpers for the infinite streams produced by samplers and lazy distributions.

Samplers return unbounded iterators; callers decide how much to consume.
These helpers thin, truncate and memoize such streams without forcing more
elements than requested.
"""

import itertools as it

from .core import Any, Callable, Iterable, Iterator


def every(n: int, xs: Iterable, *, keep_last: bool = False) -> Iterator:
    """Keep every `n`-th element of `xs`: `xs[0], xs[n], xs[2n], ...`.

    With `keep_last=True`, `n - 1` elements are dropped before each kept
    element instead: `xs[n-1], xs[2n-1], ...`. An infinite input gives an
    infinite output.

    Examples:
        >>> list(every(3, range(7)))
        [0, 3, 6]
        >>> list(every(3, range(7), keep_last=True))
        [2, 5]
    """
    if n < 1:
        raise ValueError(f"every() needs a positive step, got {n}")
    start = n - 1 if keep_last else 0
    return it.islice(xs, start, None, n)


def take(n: int, xs: Iterable) -> list:
    """The first `n` elements of `xs`, as a list."""
    return list(it.islice(xs, n))


def drop(n: int, xs: Iterable) -> Iterator:
    """Skip the first `n` elements of `xs` (burn-in)."""
    return it.islice(xs, n, None)


class LazySequence:
    """A memoized, index-addressable view of a (possibly infinite) iterator.

    Elements are forced on demand and cached, so indexing and repeated
    iteration always see the same values.
    """

    __slots__ = ("_source", "_cache")

    def __init__(self, source: Iterable):
        self._source = iter(source)
        self._cache = []

    def _force(self, index: int) -> bool:
        while len(self._cache) <= index:
            try:
                self._cache.append(next(self._source))
            except StopIteration:
                return False
        return True

    def __getitem__(self, index: int) -> Any:
        if index < 0:
            raise IndexError("LazySequence does not support negative indices")
        if not self._force(index):
            raise IndexError(index)
        return self._cache[index]

    def __iter__(self) -> Iterator[Any]:
        index = 0
        while self._force(index):
            yield self._cache[index]
            index += 1

    def take(self, n: int) -> list:
        return take(n, self)

    def take_while(self, predicate: Callable[[Any], bool]) -> list:
        return list(it.takewhile(predicate, self))

    def map(self, f: Callable[[Any], Any]) -> "LazySequence":
        return LazySequence(map(f, self))

    def __repr__(self) -> str:
        forced = [repr(x) for x in self._cache[:5]]
        return f"LazySequence([{', '.join(forced + ['...'])}])"

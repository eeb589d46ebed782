"""
Lazy probability trees: the source of randomness for every program.

A probability tree is an infinitely wide and infinitely deep rose tree whose
nodes are labelled by independent uniform draws on [0, 1). Nothing is
materialized up front: a node is created the first time it is visited, its
label is computed the first time it is read, and both are cached, so
re-running a program on the same tree is deterministic and cheap.

Labels are pseudorandom functions of a JAX key and the path to the node:
the label of a node with key ``k`` comes from ``fold_in(k, 0)``, and its
``i``-th child has key ``fold_in(k, i + 1)``. Node keys are stored as plain
tuples of ints, not as device arrays.

Mutation (`mutate_tree`) builds a new tree on top of an existing one. Each
node of the new tree keeps the label of the corresponding base node, or with
probability ``p`` takes a fresh label. Every tree belongs to a *generation*:
a small record of the mutation probability and key that made it, and of the
generation it was mutated from. Generations are all that is needed to
recompute any label, so a tree can drop its links to the node objects of
older trees (`Tree.detach`) without changing a single label.
"""

import jax
import jax.numpy as jnp
import jax.random as jrand
import jaxtyping as jtyping
import numpy as np

PRNGKey = jtyping.PRNGKeyArray

_TWO_POW_26 = 67108864.0
_TWO_POW_53 = 9007199254740992.0


@jax.jit
def _node_bits(data):
    # Two 32-bit pairs: the (fresh) label, then the mutation coin.
    key = jrand.fold_in(jrand.wrap_key_data(data), 0)
    return jrand.bits(key, (4,), jnp.uint32)


@jax.jit
def _child_key_data(data, index):
    return jrand.key_data(jrand.fold_in(jrand.wrap_key_data(data), index + 1))


def _key_tuple(key) -> tuple:
    return tuple(np.asarray(jrand.key_data(key), dtype=np.uint32).tolist())


def _bits(key):
    return _node_bits(np.asarray(key, dtype=np.uint32)).tolist()


def _child_key(key, index):
    return tuple(_child_key_data(np.asarray(key, dtype=np.uint32), index).tolist())


def to_unit_interval(hi: int, lo: int) -> float:
    """53 random bits, given as two 32-bit words, as a double in [0, 1)."""
    return ((hi >> 5) * _TWO_POW_26 + (lo >> 6)) / _TWO_POW_53


class _Generation:
    """How one tree was made: a seed key, or a mutation of an older generation.

    `prefix` is the path, in the previous generation, of the node this
    generation's root was mutated from.
    """

    __slots__ = ("p", "key", "previous", "prefix")

    def __init__(self, p, key, previous=None, prefix=()):
        self.p = p
        self.key = key
        self.previous = previous
        self.prefix = prefix

    def propose(self, key):
        """The label this generation gives a node with `key`, or None to inherit."""
        if self.p is None:
            hi, lo, _, _ = _bits(key)
            return to_unit_interval(hi, lo)
        if self.p <= 0.0:
            return None
        hi, lo, coin_hi, coin_lo = _bits(key)
        if to_unit_interval(coin_hi, coin_lo) < self.p:
            return to_unit_interval(hi, lo)
        return None

    def label_at(self, path):
        """Recompute the label at `path` from the generation records alone."""
        generation = self
        while True:
            key = generation.key
            for index in path:
                key = _child_key(key, index)
            label = generation.propose(key)
            if label is not None:
                return label
            path = generation.prefix + path
            generation = generation.previous


class _Node:
    """Memoized storage for one tree node, shared by every view of it."""

    __slots__ = (
        "_generation",
        "_key",
        "_parent",
        "_index",
        "_base",
        "_detached",
        "_label",
        "_children",
    )

    def __init__(self, generation, key=None, parent=None, index=0, base=None):
        self._generation = generation
        self._key = key
        self._parent = parent
        self._index = index
        self._base = base
        self._detached = False
        self._label = None
        self._children = {}

    def key(self):
        if self._key is None:
            self._key = _child_key(self._parent.key(), self._index)
        return self._key

    def child(self, index):
        node = self._children.get(index)
        if node is None:
            node = self._children[index] = _Node(self._generation, parent=self, index=index)
        return node

    def path(self):
        indices = []
        node = self
        while node._parent is not None:
            indices.append(node._index)
            node = node._parent
        return tuple(reversed(indices))

    def base(self):
        """The node at the same path in the tree this one was mutated from.

        None for seeded trees and for detached nodes, whose inherited labels
        come from the generation records instead.
        """
        if self._base is None and not self._detached:
            parent_base = None if self._parent is None else self._parent.base()
            if parent_base is None:
                self._detached = True
            else:
                self._base = parent_base.child(self._index)
        return self._base

    def label(self):
        if self._label is None:
            # Walk down the chain of base trees until some node decides its
            # own label, then share it with every node passed on the way.
            pending = []
            node = self
            while node._label is None:
                generation = node._generation
                fresh = generation.propose(node.key())
                if fresh is not None:
                    node._label = fresh
                    break
                pending.append(node)
                base = node.base()
                if base is None:
                    node._label = generation.previous.label_at(
                        generation.prefix + node.path()
                    )
                    break
                node = base
            for visited in pending:
                visited._label = node._label
        return self._label

    def detach(self):
        stack = [self]
        while stack:
            node = stack.pop()
            node._base = None
            node._detached = True
            stack.extend(node._children.values())


class Tree:
    """A view of a probability tree node, starting at child `offset`.

    Views are immutable. `split` returns the first child together with a
    view of the same node that skips it, so sequenced computations get
    disjoint randomness without any counter or cursor.

    Examples:
        >>> import jax.random as jrand
        >>> t = random_tree(jrand.key(0))
        >>> head, rest = t.split()
        >>> head.value == t.child(0).value
        True
        >>> rest.child(0).value == t.child(1).value
        True
    """

    __slots__ = ("_node", "_offset")

    def __init__(self, node: _Node, offset: int = 0):
        self._node = node
        self._offset = offset

    @property
    def value(self) -> float:
        """The label of this node, a double in [0, 1)."""
        return self._node.label()

    def child(self, index: int) -> "Tree":
        return Tree(self._node.child(self._offset + index))

    def split(self) -> tuple["Tree", "Tree"]:
        return (
            Tree(self._node.child(self._offset)),
            Tree(self._node, self._offset + 1),
        )

    def detach(self) -> None:
        """Drop the links from this tree's nodes to the trees it was mutated from.

        Labels do not change: anything not yet read is recomputed from the
        generation records. Samplers call this on a tree once a newer tree
        has replaced it, so a long chain only keeps its last two trees.
        """
        self._node.detach()

    def __repr__(self) -> str:
        label = self._node._label
        shown = "?" if label is None else f"{label:.6f}"
        return f"Tree(value={shown}, offset={self._offset})"


def random_tree(key: PRNGKey) -> Tree:
    """Create a fresh probability tree whose labels derive from `key`."""
    data = _key_tuple(key)
    return Tree(_Node(_Generation(None, data), key=data))


def split_tree(tree: Tree) -> tuple[Tree, Tree]:
    """Split `tree` into its first child and the tree of remaining children."""
    return tree.split()


def mutate_tree(p: float, key: PRNGKey, tree: Tree) -> Tree:
    """Return a tree where each label is independently re-drawn with probability `p`.

    Small `p` gives local moves that touch few sites; `p = 1` re-draws every
    label, i.e. an independent tree. The re-draw decisions and fresh labels
    are pseudorandom functions of `key` and the node path, so each child gets
    its own independent substream.

    Args:
        p: Per-node re-draw probability, in [0, 1].
        key: Randomness for the mutation.
        tree: Tree to mutate. It is not modified.

    Returns:
        The mutated tree. Unvisited nodes are shared with `tree`.
    """
    if not 0.0 <= p <= 1.0:
        raise ValueError(f"Mutation probability must lie in [0, 1], got {p}")
    if p == 0.0:
        return Tree(tree._node, tree._offset)
    base = tree._node
    data = _key_tuple(key)
    generation = _Generation(float(p), data, base._generation, base.path())
    return Tree(_Node(generation, key=data, base=base), tree._offset)

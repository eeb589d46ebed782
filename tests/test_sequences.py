"""
Tests for the stream helpers used to consume infinite sampler output.
"""

import itertools as it

import pytest

from lazyppl import LazySequence, drop, every, take


@pytest.mark.unit
@pytest.mark.fast
class TestEvery:
    def test_keeps_every_nth_from_the_start(self):
        assert list(every(3, range(7))) == [0, 3, 6]

    def test_keep_last_drops_before_each_element(self):
        assert list(every(3, range(7), keep_last=True)) == [2, 5]

    def test_step_one_is_identity(self):
        assert list(every(1, "abc")) == ["a", "b", "c"]

    def test_infinite_input_stays_infinite(self):
        assert take(4, every(10, it.count())) == [0, 10, 20, 30]

    def test_is_lazy(self):
        def explode_after(n):
            yield from range(n)
            raise AssertionError("forced too far")

        assert take(2, every(2, explode_after(3))) == [0, 2]

    @pytest.mark.parametrize("n", [0, -2])
    def test_non_positive_step_raises(self, n):
        with pytest.raises(ValueError):
            every(n, range(5))


@pytest.mark.unit
@pytest.mark.fast
class TestTakeDrop:
    def test_take(self):
        assert take(3, it.count(5)) == [5, 6, 7]
        assert take(10, range(2)) == [0, 1]

    def test_drop(self):
        assert take(2, drop(100, it.count())) == [100, 101]
        assert list(drop(5, range(3))) == []


@pytest.mark.unit
@pytest.mark.fast
class TestLazySequence:
    def test_forces_on_demand(self):
        calls = []

        def source():
            for i in it.count():
                calls.append(i)
                yield i * i

        seq = LazySequence(source())
        assert seq[3] == 9
        assert calls == [0, 1, 2, 3]
        assert seq[1] == 1
        assert calls == [0, 1, 2, 3]

    def test_iteration_is_repeatable(self):
        seq = LazySequence(iter([1, 2, 3]))
        assert list(seq) == [1, 2, 3]
        assert list(seq) == [1, 2, 3]

    def test_take_and_take_while(self):
        seq = LazySequence(it.count())
        assert seq.take(3) == [0, 1, 2]
        assert seq.take_while(lambda x: x < 5) == [0, 1, 2, 3, 4]

    def test_map(self):
        seq = LazySequence(it.count()).map(lambda x: -x)
        assert seq.take(3) == [0, -1, -2]

    def test_index_errors(self):
        seq = LazySequence(range(2))
        with pytest.raises(IndexError):
            seq[2]
        with pytest.raises(IndexError):
            seq[-1]

    def test_repr_shows_forced_prefix(self):
        seq = LazySequence(it.count())
        seq[1]
        assert repr(seq) == "LazySequence([0, 1, ...])"

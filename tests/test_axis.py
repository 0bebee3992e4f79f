from __future__ import annotations

import math

import numpy as np
import pytest

from nhist.axis import Category, Integer, Polar, Regular, Variable, escape


def test_regular_index():
    ax = Regular(4, 0, 2)
    assert ax.bins == 4
    assert ax.shape == 6
    assert ax.index(-0.1) == -1
    assert ax.index(0) == 0
    assert ax.index(0.6) == 1
    assert ax.index(1.99) == 3
    assert ax.index(2.0) == 4
    assert ax.index(float("nan")) == 4
    np.testing.assert_allclose(ax.edges, [0, 0.5, 1, 1.5, 2])


def test_regular_indices_match_index():
    ax = Regular(7, -3, 3)
    x = np.array([-5, -3, -0.1, 0, 1.5, 2.999, 3, 10, np.nan, -np.inf, np.inf])
    np.testing.assert_array_equal(ax.indices(x), [ax.index(v) for v in x])


def test_regular_without_flow():
    ax = Regular(3, 0, 1, uoflow=False)
    assert not ax.uoflow
    assert ax.shape == 3
    assert ax.index(5) == 3


@pytest.mark.parametrize(
    "args",
    [(0, 0, 1), (2, 1, 1), (2, 1, 0), (2, 0, math.inf)],
)
def test_regular_invalid(args):
    with pytest.raises(ValueError):
        Regular(*args)


def test_variable_index():
    ax = Variable([0, 1, 3, 6])
    assert ax.bins == 3
    assert ax.index(-1) == -1
    assert ax.index(0) == 0
    assert ax.index(2.9) == 1
    assert ax.index(3) == 2
    assert ax.index(6) == 3
    x = np.array([-1, 0, 0.5, 1, 5.9, 6, 7, np.nan])
    np.testing.assert_array_equal(ax.indices(x), [ax.index(v) for v in x])


def test_variable_edges_read_only():
    ax = Variable([0, 1, 2])
    with pytest.raises(ValueError):
        ax.edges[0] = 5


@pytest.mark.parametrize("edges", [[1], [0, 0], [2, 1], [0, np.nan]])
def test_variable_invalid(edges):
    with pytest.raises(ValueError):
        Variable(edges)


def test_integer_index():
    ax = Integer(-1, 2)
    assert ax.bins == 4
    assert ax.shape == 6
    assert [ax.index(v) for v in (-2, -1, 0, 1.5, 2, 3)] == [-1, 0, 1, 2, 3, 4]
    np.testing.assert_array_equal(ax.indices([-2, -1, 0, 1.5, 2, 3]), [-1, 0, 1, 2, 3, 4])
    np.testing.assert_array_equal(ax.edges, [-1, 0, 1, 2, 3])


def test_integer_index_exact_for_large_values():
    big = 2**60
    ax = Integer(big, big + 2)
    assert ax.index(big + 1) == 1
    assert ax.index(big + 2) == 2
    assert ax.index(big + 3) == 3
    assert ax.index(big - 1) == -1
    assert ax.index(np.int64(big + 1)) == 1
    x = np.array([big - 1, big, big + 1, big + 2, big + 3], dtype=np.int64)
    np.testing.assert_array_equal(ax.indices(x), [-1, 0, 1, 2, 3])
    np.testing.assert_array_equal(
        ax.indices(x.astype(np.uint64)), [-1, 0, 1, 2, 3]
    )


def test_integer_index_beyond_int64():
    big = 2**70
    ax = Integer(big, big + 1)
    assert ax.index(big + 1) == 1
    np.testing.assert_array_equal(ax.indices(np.array([0, 5])), [-1, -1])


def test_integer_indices_unsigned_input():
    ax = Integer(-2, 3)
    x = np.array([0, 3, 4, 255], dtype=np.uint8)
    np.testing.assert_array_equal(ax.indices(x), [2, 5, 6, 6])
    assert [ax.index(v) for v in x] == [2, 5, 6, 6]


def test_polar_wraps():
    ax = Polar(4)
    assert not ax.uoflow
    assert ax.shape == 4
    assert ax.index(0.1) == 0
    assert ax.index(2 * math.pi + 0.1) == 0
    assert ax.index(-0.1) == 3
    assert ax.index(math.pi) == 2
    assert ax.index(float("nan")) == 4
    x = np.array([0.1, 2 * math.pi + 0.1, -0.1, math.pi, np.nan, -7.0])
    np.testing.assert_array_equal(ax.indices(x), [ax.index(v) for v in x])


def test_polar_offset_start():
    ax = Polar(2, start=1.0)
    assert ax.index(1.0) == 0
    assert ax.index(0.5) == 1


def test_category_index():
    ax = Category(["red", "green"])
    assert ax.bins == 2
    assert ax.shape == 2
    assert ax.kind is str
    assert ax.index("red") == 0
    assert ax.index("green") == 1
    assert ax.index("blue") == 2
    np.testing.assert_array_equal(
        ax.indices(np.array(["green", "blue", "red"])), [1, 2, 0]
    )


def test_category_int():
    ax = Category([3, 1, 7])
    assert ax.kind is int
    assert ax.index(np.int64(7)) == 2
    np.testing.assert_array_equal(ax.indices([1, 2, 3]), [1, 3, 0])


@pytest.mark.parametrize(
    "cats, exc",
    [([], ValueError), (["a", "a"], ValueError), (["a", 1], TypeError)],
)
def test_category_invalid(cats, exc):
    with pytest.raises(exc):
        Category(cats)


def test_label_must_be_string():
    with pytest.raises(TypeError):
        Regular(2, 0, 1, label=3)


def test_escape():
    assert escape("abc") == "'abc'"
    assert escape("it's") == "'it\\'s'"
    assert escape("a\\b") == "'a\\\\b'"


def test_repr():
    assert repr(Regular(10, -3, 3)) == "Regular(10, -3, 3)"
    assert repr(Regular(2, 0, 0.5, label="x")) == "Regular(2, 0, 0.5, label='x')"
    assert repr(Regular(2, 0, 1, uoflow=False)) == "Regular(2, 0, 1, uoflow=False)"
    assert repr(Variable([0, 1.5, 3])) == "Variable([0, 1.5, 3])"
    assert repr(Integer(1, 4, label="n")) == "Integer(1, 4, label='n')"
    assert repr(Polar(8)) == "Polar(8)"
    assert repr(Polar(8, start=0.5)) == "Polar(8, 0.5)"
    assert repr(Category(["a", "it's"])) == "Category(['a', 'it\\'s'])"
    assert repr(Category([1, 2], label="q")) == "Category([1, 2], label='q')"


def test_equality():
    assert Regular(4, 0, 1) == Regular(4, 0, 1)
    assert Regular(4, 0, 1) != Regular(4, 0, 2)
    assert Regular(4, 0, 1) != Regular(4, 0, 1, label="x")
    assert Regular(4, 0, 1) != Regular(4, 0, 1, uoflow=False)
    assert Regular(1, 0, 1) != Variable([0, 1])
    assert Integer(0, 3) != Regular(4, 0, 4)
    assert Category(["a"]) == Category(["a"])
    assert hash(Variable([0, 1, 2])) == hash(Variable([0, 1, 2]))

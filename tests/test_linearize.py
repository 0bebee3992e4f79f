from __future__ import annotations

import numpy as np
import pytest

from nhist.axis import Category, Integer, Regular
from nhist.linearize import (
    IndexMapper,
    linearize,
    linearize_fill,
    linearize_fill_many,
    strides,
)


def test_strides():
    assert strides([3, 4, 5]) == [1, 3, 12]
    assert strides([]) == []


def test_linearize_strict():
    axes = (Regular(2, 0, 1), Category(["a", "b", "c"]))
    # shapes are (4, 3)
    assert linearize(axes, (0, 0)) == (0, True)
    assert linearize(axes, (3, 2)) == (11, True)
    assert linearize(axes, (1, 1)) == (5, True)
    assert linearize(axes, (4, 0))[1] is False
    assert linearize(axes, (0, 3))[1] is False
    assert linearize(axes, (-1, 0))[1] is False


def test_linearize_strict_rejects_floats():
    with pytest.raises(TypeError):
        linearize((Regular(2, 0, 1),), (0.5,))


def test_linearize_fill_flow_slots():
    axes = (Regular(2, 0, 1), Integer(0, 1))
    # overflow is slot `bins`, underflow slot `bins + 1`
    assert linearize_fill(axes, (0.2, 0)) == (0, True)
    assert linearize_fill(axes, (5.0, 0)) == (2, True)
    assert linearize_fill(axes, (-5.0, 0)) == (3, True)
    assert linearize_fill(axes, (0.7, -3)) == (1 + 3 * 4, True)


def test_linearize_fill_discards_without_flow():
    axes = (Regular(2, 0, 1), Category(["a"]))
    assert linearize_fill(axes, (0.2, "a")) == (0, True)
    assert linearize_fill(axes, (0.2, "b"))[1] is False
    axes = (Regular(2, 0, 1, uoflow=False),)
    assert linearize_fill(axes, (-1,))[1] is False
    assert linearize_fill(axes, (1,))[1] is False


def test_linearize_fill_many_matches_scalar():
    axes = (Regular(3, -1, 1), Integer(0, 2, uoflow=False), Category(["x", "y"]))
    rng = np.random.default_rng(42)
    n = 200
    a = rng.uniform(-2, 2, size=n)
    b = rng.integers(-1, 4, size=n)
    c = rng.choice(["x", "y", "z"], size=n)
    offsets, valid = linearize_fill_many(axes, (a, b, c))
    for i in range(n):
        off, ok = linearize_fill(axes, (a[i], b[i], c[i]))
        assert ok == valid[i]
        if ok:
            assert off == offsets[i]


def test_linearize_fill_many_needs_axes():
    with pytest.raises(ValueError):
        linearize_fill_many((), ())


def test_index_mapper_docstring_case():
    assert list(IndexMapper((2, 3), keep=(1,))) == [
        (0, 0),
        (1, 0),
        (2, 1),
        (3, 1),
        (4, 2),
        (5, 2),
    ]


def test_index_mapper_visits_every_slot_once():
    shape = (3, 2, 4)
    keep = (2, 0)
    pairs = list(IndexMapper(shape, keep))
    assert sorted(i for i, _ in pairs) == list(range(24))
    for i, j in pairs:
        k0 = i % 3
        k2 = i // 6
        assert j == k2 + 4 * k0


def test_index_mapper_keep_all_is_identity():
    assert list(IndexMapper((2, 2), keep=(0, 1))) == [(0, 0), (1, 1), (2, 2), (3, 3)]


def test_index_mapper_empty():
    assert list(IndexMapper((0, 3), keep=(1,))) == []

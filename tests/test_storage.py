from __future__ import annotations

import copy

import numpy as np
import pytest

from nhist.errors import CapabilityUnsupported
from nhist.storage import Double, Int64, Weight


@pytest.mark.parametrize("kind", [Int64, Double])
def test_plain_counters(kind):
    s = kind(2)
    assert s.size == 2
    s.increase(0)
    assert s.value(0) == 1
    assert s.value(1) == 0
    s.add(1, 5)
    assert s.value(1) == 5
    s.scale(3)
    assert s.value(0) == 3
    assert s.value(1) == 15


def test_weighted_counter():
    s = Weight(1)
    s.increase(0)
    s.add(0, 1)
    s.add(0, 1, 0)
    assert s.value(0) == 3
    assert s.variance(0) == 2
    s.increase_by_weight(0, 2)
    assert s.value(0) == 5
    assert s.variance(0) == 6


def test_weighted_scale_squares_variance():
    s = Weight(1)
    s.increase_by_weight(0, 2)
    s.scale(3)
    assert s.value(0) == 6
    assert s.variance(0) == 36


@pytest.mark.parametrize("kind", [Int64, Double, Weight])
def test_move(kind):
    s = kind(1)
    s.increase(0)
    d = s.move()
    assert s.size == 0
    assert len(s) == 0
    assert d.size == 1
    assert d.value(0) == 1


@pytest.mark.parametrize("kind", [Int64, Double, Weight])
def test_copy_is_independent(kind):
    s = kind(3)
    s.increase(2)
    c = s.copy()
    assert c == s
    c.increase(2)
    assert s.value(2) == 1
    assert c.value(2) == 2
    d = copy.deepcopy(s)
    assert d == s
    assert d is not s


@pytest.mark.parametrize("kind", [Int64, Double])
def test_variance_unsupported(kind):
    s = kind(1)
    assert not s.has_variance
    with pytest.raises(CapabilityUnsupported):
        s.variance(0)
    with pytest.raises(CapabilityUnsupported):
        s.variances()
    with pytest.raises(CapabilityUnsupported):
        s.add(0, 1, 1)
    assert s.value(0) == 0


def test_capability_error_is_type_error():
    with pytest.raises(TypeError):
        Double(1).variance(0)


def test_bulk_operations_accumulate_repeats():
    s = Weight(4)
    offsets = np.array([0, 1, 1, 3])
    s.increase_many(offsets)
    s.increase_by_weight_many(offsets, np.array([1.0, 2.0, 3.0, 0.5]))
    s.add_many(np.array([2, 2]), [4.0, 1.0], [0.0, 0.0])
    np.testing.assert_allclose(s.values(), [2.0, 7.0, 5.0, 1.5])
    np.testing.assert_allclose(s.variances(), [2.0, 15.0, 0.0, 1.25])


def test_int64_truncates_weights():
    s = Int64(1)
    s.increase_by_weight(0, 2.7)
    assert s.value(0) == 2
    assert isinstance(s.value(0), int)
    s.increase_by_weight_many(np.array([0, 0]), [0.5, 1.9])
    assert s.value(0) == 3


@pytest.mark.parametrize("w", [-0.5, 0.5, -1.5, 2.9])
def test_int64_weight_rule_same_for_scalar_and_bulk(w):
    one = Int64(1)
    one.increase(0)
    one.increase_by_weight(0, w)
    many = Int64(1)
    many.increase(0)
    many.increase_by_weight_many(np.array([0]), [w])
    assert one.value(0) == many.value(0) == 1 + int(w)
    one.add(0, w)
    many.add_many(np.array([0]), [w])
    assert one.value(0) == many.value(0) == 1 + 2 * int(w)


def test_combine():
    a = Double(3)
    b = Double(3)
    a.add_many(np.arange(3), [1.0, 2.0, 3.0])
    b.add_many(np.arange(3), [0.5, 0.5, 0.5])
    a.combine(b)
    np.testing.assert_allclose(a.values(), [1.5, 2.5, 3.5])
    np.testing.assert_allclose(b.values(), [0.5, 0.5, 0.5])


def test_weight_combine_with_plain_counts():
    w = Weight(2)
    w.increase_by_weight(0, 3.0)
    d = Double(2)
    d.add(0, 2.0)
    w.combine(d)
    assert w.value(0) == 5.0
    assert w.variance(0) == 11.0


def test_allocate_and_reset():
    template = Weight()
    assert template.size == 0
    s = template.allocate(5)
    assert isinstance(s, Weight)
    assert s.size == 5
    s.increase(4)
    s.reset()
    assert list(s) == [0.0] * 5
    np.testing.assert_array_equal(s.variances(), np.zeros(5))


def test_equality_compares_values():
    a = Double(2)
    b = Double(2)
    assert a == b
    b.increase(1)
    assert a != b
    assert Double(2) != Double(3)


def test_negative_size():
    with pytest.raises(ValueError):
        Double(-1)


def test_repr():
    assert repr(Double()) == "Double()"
    assert repr(Weight(4)) == "Weight()"


def test_convert_plain_to_weight_uses_counts_as_variance():
    a = Int64(3)
    a.add_many(np.arange(3), [1, 0, 4])
    w = Weight.convert(a)
    assert isinstance(w, Weight)
    np.testing.assert_allclose(w.values(), [1.0, 0.0, 4.0])
    np.testing.assert_allclose(w.variances(), [1.0, 0.0, 4.0])
    assert a.values().tolist() == [1, 0, 4]


def test_convert_keeps_variances():
    w = Weight(2)
    w.increase_by_weight(0, 2.0)
    c = Weight.convert(w)
    assert c.variance(0) == 4.0
    assert c is not w
    d = Double.convert(w)
    assert not d.has_variance
    np.testing.assert_allclose(d.values(), [2.0, 0.0])


def test_convert_to_narrower_counter():
    d = Double(2)
    d.add_many(np.arange(2), [2.5, -1.5])
    i = Int64.convert(d)
    assert i.values().tolist() == [2, -1]
    assert i.values().dtype == np.int64

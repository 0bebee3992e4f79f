"""Conversion of per-axis indices into flat storage offsets.

Axes are processed in order, axis 0 varying fastest::

    offset += j * stride
    stride *= axis.shape

Within one axis the storage slots are laid out as the regular bins
``0 .. bins - 1``, then the overflow slot ``bins``, then the underflow
slot ``bins + 1`` (the last two only if the axis has flow bins).

A stride of zero marks the result as invalid.
"""

from __future__ import annotations

import operator
from typing import TYPE_CHECKING, Any, Iterator, Sequence

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

    from nhist.axis import Axis

__all__ = (
    "IndexMapper",
    "linearize",
    "linearize_fill",
    "linearize_fill_many",
    "strides",
)


def strides(shape: Sequence[int]) -> list[int]:
    """Flat offset increment of each axis for a storage of `shape`."""
    out = []
    stride = 1
    for n in shape:
        out.append(stride)
        stride *= n
    return out


def linearize(axes: Sequence[Axis], indices: Sequence[Any]) -> tuple[int, bool]:
    """Flat offset of exact slot indices (read mode).

    Every index must already lie in ``[0, axis.shape)``.

    Returns
    -------
    int
        The flat offset (meaningless if not valid).
    bool
        ``False`` if any index was out of range.

    """
    offset, stride = 0, 1
    for ax, j in zip(axes, indices):
        j = operator.index(j)
        n = ax.shape
        if not 0 <= j < n:
            stride = 0
        offset += j * stride
        stride *= n
    return offset, stride != 0


def _slot(ax: Axis, j: int) -> int:
    """Storage slot of bin index `j`, or -1 if it has none."""
    if 0 <= j < ax.bins:
        return j
    if not ax.uoflow:
        return -1
    return ax.bins if j >= ax.bins else ax.bins + 1


def linearize_fill(axes: Sequence[Axis], coords: Sequence[Any]) -> tuple[int, bool]:
    """Flat offset of raw coordinates (fill mode).

    Underflow and overflow land in the flow slots of axes that have
    them; on any other axis they make the whole fill invalid.

    """
    offset, stride = 0, 1
    for ax, x in zip(axes, coords):
        j = _slot(ax, ax.index(x))
        if j < 0:
            return 0, False
        offset += j * stride
        stride *= ax.shape
    return offset, True


def linearize_fill_many(
    axes: Sequence[Axis], coords: Sequence[ArrayLike]
) -> tuple[NDArray[np.intp], NDArray[np.bool_]]:
    """Vectorized :py:func:`linearize_fill` over arrays of coordinates.

    Returns
    -------
    numpy.ndarray
        Flat offsets (entries where the mask is ``False`` are
        meaningless).
    numpy.ndarray
        Boolean mask of valid fills.

    """
    offsets: NDArray[np.intp] | None = None
    valid: NDArray[np.bool_] | None = None
    stride = 1
    for ax, x in zip(axes, coords):
        j = ax.indices(x)
        if ax.uoflow:
            j = np.where(j < 0, ax.bins + 1, j)
            ok = np.ones(j.shape, dtype=bool)
        else:
            ok = (j >= 0) & (j < ax.bins)
        term = j.astype(np.intp) * stride
        offsets = term if offsets is None else offsets + term
        valid = ok if valid is None else valid & ok
        stride *= ax.shape
    if offsets is None or valid is None:
        raise ValueError("At least one axis is required.")
    return offsets, valid


class IndexMapper:
    """Mixed-radix ("odometer") enumeration of a reduction.

    Walks every slot of a storage of the given `shape` exactly once and
    yields ``(source_offset, destination_offset)`` pairs, where the
    destination is the storage of the histogram keeping only the axes
    in `keep` (in that order). The digits of the dropped axes turn
    fastest, so all source slots accumulating into one destination slot
    are visited consecutively.

    Parameters
    ----------
    shape : sequence of int
        Slot counts of the source axes.
    keep : sequence of int
        Positions of the retained axes.

    Examples
    --------
    >>> list(IndexMapper((2, 3), keep=(1,)))
    [(0, 0), (1, 0), (2, 1), (3, 1), (4, 2), (5, 2)]

    """

    def __init__(self, shape: Sequence[int], keep: Sequence[int]) -> None:
        self._shape = tuple(shape)
        src = strides(self._shape)
        dst = [0] * len(self._shape)
        for stride, pos in zip(strides([self._shape[k] for k in keep]), keep):
            dst[pos] = stride
        dropped = [k for k in range(len(self._shape)) if k not in keep]
        order = dropped + list(keep)
        self._radix = [self._shape[k] for k in order]
        self._src = [src[k] for k in order]
        self._dst = [dst[k] for k in order]
        self._digits = [0] * len(order)
        self._first = 0
        self._second = 0
        self._done = any(n == 0 for n in self._shape)

    def __iter__(self) -> Iterator[tuple[int, int]]:
        return self

    def __next__(self) -> tuple[int, int]:
        if self._done:
            raise StopIteration
        pair = (self._first, self._second)
        self._advance()
        return pair

    def _advance(self) -> None:
        for d in range(len(self._digits)):
            self._digits[d] += 1
            self._first += self._src[d]
            self._second += self._dst[d]
            if self._digits[d] < self._radix[d]:
                return
            # carry into the next digit
            self._digits[d] = 0
            self._first -= self._src[d] * self._radix[d]
            self._second -= self._dst[d] * self._radix[d]
        self._done = True

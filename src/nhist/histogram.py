"""The histogram engine: axes plus storage."""

from __future__ import annotations

import math
import numbers
import operator
from typing import TYPE_CHECKING, Any, Callable, Iterable, Iterator, NamedTuple, Sequence

import numpy as np

from nhist.axis import Axis
from nhist.errors import (
    AxesMismatch,
    CapabilityUnsupported,
    DimensionMismatch,
    IndexOutOfRange,
)
from nhist.linearize import IndexMapper, linearize, linearize_fill, linearize_fill_many
from nhist.storage import Double, Storage

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

    from nhist.typing import Coordinate

__all__ = ("Histogram", "count", "weight")


class _Qualifier(NamedTuple):
    kind: str
    value: Any


def weight(w: float) -> _Qualifier:
    """Tag `w` as the weight of a :py:meth:`Histogram.fill` call."""
    return _Qualifier("weight", w)


def count(n: int) -> _Qualifier:
    """Tag `n` as the count of a :py:meth:`Histogram.fill` call."""
    return _Qualifier("count", n)


class Histogram:
    """Histogram over a fixed tuple of axes.

    Parameters
    ----------
    *axes : nhist.axis.Axis
        Provide one or more Axis objects. Their number is the dimension
        of the histogram and never changes.
    storage : nhist.storage.Storage, optional
        Storage template; the histogram allocates a zero-filled storage
        of the same kind. The default is
        :py:class:`nhist.storage.Double`.

    Notes
    -----
    A histogram is not safe for concurrent mutation; callers sharing
    one between threads must lock around it.

    Examples
    --------
    A two dimensional histogram with a regular and a category axis,
    tracking variances:

    >>> import nhist
    >>> h = nhist.Histogram(
    ...     nhist.axis.Regular(10, -3, 3),
    ...     nhist.axis.Category(["a", "b"]),
    ...     storage=nhist.storage.Weight(),
    ... )
    >>> h.fill(0.1, "a", weight=2.0).fill(0.1, "c")
    Histogram(
      Regular(10, -3, 3),
      Category(['a', 'b']),
      storage=Weight()) # Sum: 2.0
    >>> h.value(5, 0), h.variance(5, 0)
    (2.0, 4.0)

    """

    def __init__(self, *axes: Axis, storage: Storage = Double()) -> None:
        self._axes = self._checked_axes(axes)
        if not isinstance(storage, Storage):
            raise TypeError(f"Expected a Storage, got {storage!r}.")
        self._storage: Storage = storage.allocate(self._bincount_from_axes())

    @staticmethod
    def _checked_axes(axes: Iterable[Axis]) -> tuple[Axis, ...]:
        axes = tuple(axes)
        if not axes:
            raise ValueError("At least one axis is required.")
        for ax in axes:
            if not isinstance(ax, Axis):
                raise TypeError(f"Expected an Axis, got {ax!r}.")
        return axes

    @classmethod
    def from_storage(cls, axes: Sequence[Axis], storage: Storage) -> Histogram:
        """Rebuild a histogram from its axes and a filled storage.

        The storage is copied, so the caller keeps ownership of the
        argument.

        Raises
        ------
        ValueError
            If the storage size does not match the axes.

        """
        self = cls.__new__(cls)
        self._axes = cls._checked_axes(axes)
        expected = self._bincount_from_axes()
        if storage.size != expected:
            raise ValueError(
                f"Storage of size {storage.size} does not match axes "
                f"requiring {expected} bins."
            )
        self._storage = storage.copy()
        return self

    def astype(self, storage: Storage | type[Storage]) -> Histogram:
        """Copy of this histogram with another storage kind.

        Parameters
        ----------
        storage : nhist.storage.Storage or type
            Target storage kind, as a class or a template instance.

        Examples
        --------
        >>> import nhist
        >>> h = nhist.Histogram(nhist.axis.Integer(0, 2), storage=nhist.storage.Int64())
        >>> w = h.fill(1, count=4).astype(nhist.storage.Weight)
        >>> w.value(1), w.variance(1)
        (4.0, 4.0)

        """
        kind = storage if isinstance(storage, type) else type(storage)
        if not issubclass(kind, Storage):
            raise TypeError(f"Expected a Storage, got {storage!r}.")
        new = type(self).__new__(type(self))
        new._axes = self._axes
        new._storage = kind.convert(self._storage)
        return new

    def _bincount_from_axes(self) -> int:
        return math.prod(ax.shape for ax in self._axes)

    @property
    def ndim(self) -> int:
        """Total number of dimensions."""
        return len(self._axes)

    @property
    def axes(self) -> tuple[Axis, ...]:
        return self._axes

    def axis(self, n: int = 0) -> Axis:
        """The `n`-th axis."""
        return self._axes[n]

    @property
    def shape(self) -> tuple[int, ...]:
        """Slot count of each axis, flow bins included."""
        return tuple(ax.shape for ax in self._axes)

    @property
    def size(self) -> int:
        """Total number of bins, flow bins included."""
        return self._storage.size

    bincount = size

    @property
    def storage_type(self) -> type[Storage]:
        return type(self._storage)

    @property
    def storage(self) -> Storage:
        """Copy of the storage (raw counters in linearized order)."""
        return self._storage.copy()

    def for_each_axis(self, func: Callable[[Axis], Any]) -> None:
        """Call `func` on every axis, in order."""
        for ax in self._axes:
            func(ax)

    def fill(
        self,
        *args: Coordinate | _Qualifier,
        weight: float | None = None,
        count: int | None = None,
    ) -> Histogram:
        """Fill the histogram with one entry.

        Coordinates outside an axis land in its flow bins. If that axis
        has no flow bins, the entry is dropped without touching any
        counter.

        Parameters
        ----------
        *args : Any
            One coordinate per axis. A value tagged with
            :py:func:`nhist.weight` or :py:func:`nhist.count` may be
            given instead of the keyword arguments; it is accepted at any
            position among the coordinates.
        weight : float, optional
            Weight of the entry.
        count : int, optional
            Number of identical entries.

        Returns
        -------
        Histogram
            The histogram itself.

        Raises
        ------
        TypeError
            If more than one weight or count is given.
        nhist.errors.DimensionMismatch
            If the number of coordinates does not equal :py:attr:`ndim`.

        """
        coords = []
        qualifiers = []
        for arg in args:
            if isinstance(arg, _Qualifier):
                qualifiers.append(arg)
            else:
                coords.append(arg)
        if weight is not None:
            qualifiers.append(_Qualifier("weight", weight))
        if count is not None:
            qualifiers.append(_Qualifier("count", count))
        if len(qualifiers) > 1:
            raise TypeError("At most one weight or count may be given.")
        if len(coords) != self.ndim:
            raise DimensionMismatch(
                f"Expected {self.ndim} coordinates, got {len(coords)}."
            )

        offset, valid = linearize_fill(self._axes, coords)
        if not valid:
            return self
        if not qualifiers:
            self._storage.increase(offset)
        elif qualifiers[0].kind == "weight":
            self._storage.increase_by_weight(offset, qualifiers[0].value)
        else:
            self._storage.add(offset, qualifiers[0].value)
        return self

    def fill_many(
        self,
        *args: ArrayLike,
        weight: ArrayLike | None = None,
        count: ArrayLike | None = None,
    ) -> Histogram:
        """Fill the histogram with arrays of entries.

        Parameters
        ----------
        *args : array_like
            One array of coordinates per axis, or a single two
            dimensional array with one column per axis.
        weight : array_like, optional
            Weight of each entry (or a scalar applied to all).
        count : array_like, optional
            Count of each entry (or a scalar applied to all).

        Returns
        -------
        Histogram
            The histogram itself.

        """
        if weight is not None and count is not None:
            raise TypeError("At most one of weight and count may be given.")
        if len(args) == 1 and np.ndim(args[0]) == 2:
            data: Sequence[Any] = tuple(np.asarray(args[0]).T)
        else:
            data = tuple(np.ravel(np.asarray(a)) for a in args)
        if len(data) != self.ndim:
            raise DimensionMismatch(
                f"Expected {self.ndim} coordinate arrays, got {len(data)}."
            )
        lengths = {len(d) for d in data}
        if len(lengths) != 1:
            raise ValueError("All coordinate arrays must have the same length.")

        offsets, valid = linearize_fill_many(self._axes, data)
        selected = offsets[valid]
        if weight is not None:
            w = np.broadcast_to(np.asarray(weight), valid.shape)[valid]
            self._storage.increase_by_weight_many(selected, w)
        elif count is not None:
            n = np.broadcast_to(np.asarray(count), valid.shape)[valid]
            self._storage.add_many(selected, n)
        else:
            self._storage.increase_many(selected)
        return self

    def _offset(self, indices: Sequence[int]) -> int:
        if len(indices) != self.ndim:
            raise DimensionMismatch(
                f"Expected {self.ndim} indices, got {len(indices)}."
            )
        offset, valid = linearize(self._axes, indices)
        if not valid:
            raise IndexOutOfRange(
                f"Index {tuple(indices)} is out of range for shape {self.shape}."
            )
        return offset

    def value(self, *indices: int) -> Any:
        """Value of the bin at exact slot `indices`."""
        return self._storage.value(self._offset(indices))

    def variance(self, *indices: int) -> float:
        """Variance of the bin at exact slot `indices`.

        Raises
        ------
        nhist.errors.CapabilityUnsupported
            If the storage does not track variances.

        """
        offset = self._offset(indices)
        if not self._storage.has_variance:
            raise CapabilityUnsupported(
                f"{self.storage_type.__name__} storage does not track variances."
            )
        return self._storage.variance(offset)

    def _inner(self) -> tuple[slice, ...]:
        return tuple(slice(0, ax.bins) for ax in self._axes)

    def values(self, flow: bool = False) -> NDArray[Any]:
        """Bin values as an array with one dimension per axis.

        The flow bins of an axis follow its regular bins (overflow,
        then underflow) and are only included if `flow` is ``True``.

        """
        arr = self._storage.values().reshape(self.shape, order="F")
        return arr if flow else arr[self._inner()]

    def variances(self, flow: bool = False) -> NDArray[np.float64]:
        """Bin variances, laid out like :py:meth:`values`."""
        arr = self._storage.variances().reshape(self.shape, order="F")
        return arr if flow else arr[self._inner()]

    def sum(self, flow: bool = False) -> Any:
        """Sum of all bin values."""
        return self.values(flow=flow).sum().item()

    def reset(self) -> None:
        """Set every bin to zero."""
        self._storage.reset()

    def __iter__(self) -> Iterator[Any]:
        return iter(self._storage)

    def copy(self) -> Histogram:
        """Independent deep copy."""
        new = type(self).__new__(type(self))
        new._axes = self._axes
        new._storage = self._storage.copy()
        return new

    def move(self) -> Histogram:
        """Transfer the contents into a new histogram.

        This histogram is left with an empty storage and must not be
        used afterwards.

        """
        new = type(self).__new__(type(self))
        new._axes = self._axes
        new._storage = self._storage.move()
        return new

    def __copy__(self) -> Histogram:
        return self.copy()

    def __deepcopy__(self, memo: dict[int, Any]) -> Histogram:
        return self.copy()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Histogram):
            return NotImplemented
        if self.ndim != other.ndim:
            return False
        if any(type(a) is not type(b) for a, b in zip(self._axes, other._axes)):
            return False
        return self._axes == other._axes and self._storage == other._storage

    __hash__ = None  # type: ignore[assignment]

    def __iadd__(self, other: Any) -> Histogram:
        if not isinstance(other, Histogram):
            return NotImplemented
        if self._axes != other._axes or self.size != other.size:
            raise AxesMismatch("Axes of histograms differ.")
        self._storage.combine(other._storage)
        return self

    def __add__(self, other: Any) -> Histogram:
        if not isinstance(other, Histogram):
            return NotImplemented
        out = self.copy()
        out += other
        return out

    def __radd__(self, other: Any) -> Histogram:
        # the start value of builtin sum
        if isinstance(other, numbers.Number) and other == 0:
            return self.copy()
        return NotImplemented

    def __imul__(self, other: Any) -> Histogram:
        if not isinstance(other, numbers.Real):
            return NotImplemented
        self._storage.scale(other)
        return self

    def __mul__(self, other: Any) -> Histogram:
        if not isinstance(other, numbers.Real):
            return NotImplemented
        out = self.copy()
        out *= other
        return out

    __rmul__ = __mul__

    def __itruediv__(self, other: Any) -> Histogram:
        if not isinstance(other, numbers.Real):
            return NotImplemented
        self._storage.scale(1.0 / other)
        return self

    def __truediv__(self, other: Any) -> Histogram:
        if not isinstance(other, numbers.Real):
            return NotImplemented
        out = self.copy()
        out /= other
        return out

    def reduce_to(self, *positions: int) -> Histogram:
        """Project onto a subset of the axes.

        Every bin of the result is the sum of all source bins sharing
        its indices on the kept axes. The flow bins of the dropped axes
        are summed in; those of the kept axes stay separate.

        Parameters
        ----------
        *positions : int
            Positions of the axes to keep. The result has its axes in
            this order.

        Returns
        -------
        Histogram
            New histogram with the same storage kind.

        Notes
        -----
        The order in which source bins are added is not part of the
        contract; floating point results may differ in the last digits
        from a different summation order.

        """
        keep = [operator.index(p) for p in positions]
        if not keep:
            raise ValueError("At least one axis must be kept.")
        if len(set(keep)) != len(keep):
            raise ValueError("Axis positions must be unique.")
        for p in keep:
            if not 0 <= p < self.ndim:
                raise ValueError(
                    f"Axis position {p} is out of range for {self.ndim} dimensions."
                )

        out = type(self)(*(self._axes[p] for p in keep), storage=self._storage)
        src, dst = self._storage, out._storage
        mapper = IndexMapper(self.shape, keep)
        if src.has_variance:
            for i, j in mapper:
                dst.add(j, src.value(i), src.variance(i))
        else:
            for i, j in mapper:
                dst.add(j, src.value(i))
        return out

    def __repr__(self) -> str:
        newline = "\n  "
        ret = "{name}({newline}".format(
            name=type(self).__name__,
            newline=newline if self.ndim > 1 else "",
        )
        ret += f",{newline}".join(repr(ax) for ax in self._axes)
        ret += ",{newline}storage={storage})".format(
            storage=self._storage,
            newline=newline if self.ndim > 1 else " ",
        )
        if self._storage.size:
            outer = self.sum(flow=True)
            if outer:
                inner = self.sum(flow=False)
                ret += f" # Sum: {inner}"
                if inner != outer:
                    ret += f" ({outer} with flow)"
        return ret

"""Linear counter storages addressed by flat offset."""

from __future__ import annotations

import operator
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Iterator

import numpy as np

from nhist.errors import CapabilityUnsupported

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

__all__ = ("ArrayStorage", "Double", "Int64", "Storage", "Weight")


def _checked_size(size: int) -> int:
    size = operator.index(size)
    if size < 0:
        raise ValueError("Storage size must be non-negative.")
    return size


class Storage(ABC):
    """Base class of histogram storages.

    A storage is a flat sequence of counters. Offsets passed to the
    mutating methods are trusted: range checks are the job of the
    owning histogram.

    Storages that track the variance of each counter set
    ``has_variance``; on the others :py:meth:`variance`,
    :py:meth:`variances` and the three argument form of
    :py:meth:`add` raise :py:exc:`~nhist.errors.CapabilityUnsupported`.

    A storage instance constructed without a size is an empty template;
    histograms use :py:meth:`allocate` to obtain a zero-filled storage
    of the same kind with the size they need.

    """

    has_variance: bool = False

    @property
    @abstractmethod
    def size(self) -> int:
        """Number of counters."""

    def __len__(self) -> int:
        return self.size

    def allocate(self, size: int) -> Storage:
        """Create a new zero-filled storage of the same kind."""
        return type(self)(size)  # type: ignore[call-arg]

    @classmethod
    def convert(cls, other: Storage) -> Storage:
        """Create a storage of this kind holding the counters of `other`.

        Values are cast to the counter type of this kind. A storage
        tracking variances takes them from `other` if it has them,
        otherwise it assumes Poisson counts (variance equal to value).

        """
        new = cls(other.size)  # type: ignore[call-arg]
        variances = None
        if cls.has_variance and other.has_variance:
            variances = other.variances()
        new.add_many(np.arange(other.size), other.values(), variances)
        return new

    @abstractmethod
    def increase(self, i: int) -> None:
        """Add one unit to counter `i`."""

    @abstractmethod
    def add(self, i: int, value: Any, variance: Any | None = None) -> None:
        """Add a count (or a value and variance pair) to counter `i`."""

    @abstractmethod
    def increase_by_weight(self, i: int, w: float) -> None:
        """Add a weighted entry to counter `i`."""

    @abstractmethod
    def value(self, i: int) -> Any:
        """Value of counter `i`."""

    @abstractmethod
    def values(self) -> NDArray[Any]:
        """Copy of all counter values."""

    def variance(self, i: int) -> float:
        """Variance of counter `i`."""
        raise CapabilityUnsupported(
            f"{type(self).__name__} storage does not track variances."
        )

    def variances(self) -> NDArray[np.float64]:
        """Copy of all counter variances."""
        raise CapabilityUnsupported(
            f"{type(self).__name__} storage does not track variances."
        )

    @abstractmethod
    def increase_many(self, offsets: NDArray[np.intp]) -> None:
        """Add one unit at every offset (repeated offsets accumulate)."""

    @abstractmethod
    def add_many(
        self,
        offsets: NDArray[np.intp],
        n: ArrayLike,
        variances: ArrayLike | None = None,
    ) -> None:
        """Add counts (or value and variance pairs) at every offset."""

    @abstractmethod
    def increase_by_weight_many(self, offsets: NDArray[np.intp], w: ArrayLike) -> None:
        """Add weighted entries at every offset."""

    @abstractmethod
    def combine(self, other: Storage) -> None:
        """Add `other` elementwise; both storages must have equal size."""

    @abstractmethod
    def scale(self, k: float) -> None:
        """Multiply every counter by `k`."""

    @abstractmethod
    def reset(self) -> None:
        """Set every counter to zero."""

    @abstractmethod
    def copy(self) -> Storage:
        """Independent deep duplicate."""

    @abstractmethod
    def move(self) -> Storage:
        """Transfer the buffer to a new storage, leaving this one empty."""

    def __copy__(self) -> Storage:
        return self.copy()

    def __deepcopy__(self, memo: dict[int, Any]) -> Storage:
        return self.copy()

    def __iter__(self) -> Iterator[Any]:
        return iter(self.values().tolist())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Storage):
            return NotImplemented
        return self.size == other.size and bool(
            np.array_equal(self.values(), other.values())
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class ArrayStorage(Storage):
    """Storage of plain numeric counters in a NumPy array.

    Subclasses pick the counter type through the ``dtype`` class
    attribute.

    """

    dtype: type[np.generic] = np.float64

    def __init__(self, size: int = 0) -> None:
        self._array = np.zeros(_checked_size(size), dtype=self.dtype)

    @property
    def size(self) -> int:
        return len(self._array)

    def increase(self, i: int) -> None:
        self._array[i] += 1

    def add(self, i: int, value: Any, variance: Any | None = None) -> None:
        if variance is not None:
            raise CapabilityUnsupported(
                f"{type(self).__name__} storage does not track variances."
            )
        self._array[i] += self.dtype(value)

    def increase_by_weight(self, i: int, w: float) -> None:
        self._array[i] += self.dtype(w)

    def value(self, i: int) -> Any:
        return self._array[i].item()

    def values(self) -> NDArray[Any]:
        return self._array.copy()

    def increase_many(self, offsets: NDArray[np.intp]) -> None:
        np.add.at(self._array, offsets, 1)

    def add_many(
        self,
        offsets: NDArray[np.intp],
        n: ArrayLike,
        variances: ArrayLike | None = None,
    ) -> None:
        if variances is not None:
            raise CapabilityUnsupported(
                f"{type(self).__name__} storage does not track variances."
            )
        np.add.at(self._array, offsets, np.asarray(n, dtype=self.dtype))

    def increase_by_weight_many(self, offsets: NDArray[np.intp], w: ArrayLike) -> None:
        np.add.at(self._array, offsets, np.asarray(w, dtype=self.dtype))

    def combine(self, other: Storage) -> None:
        np.add(self._array, other.values(), out=self._array, casting="unsafe")

    def scale(self, k: float) -> None:
        np.multiply(self._array, k, out=self._array, casting="unsafe")

    def reset(self) -> None:
        self._array[...] = 0

    def copy(self) -> ArrayStorage:
        new = type(self)()
        new._array = self._array.copy()
        return new

    def move(self) -> ArrayStorage:
        new = type(self)()
        new._array, self._array = self._array, new._array
        return new


class Int64(ArrayStorage):
    """Integer counters.

    Each weight is truncated towards zero before it is added, so
    ``increase_by_weight(i, -0.5)`` leaves the counter unchanged. Scaled
    counters are truncated as well, so scaling is not reversible.

    """

    dtype = np.int64


class Double(ArrayStorage):
    """Floating point counters (the default storage)."""

    dtype = np.float64


class Weight(Storage):
    """Counters tracking a sum of weights and its variance.

    Update rules:

    * ``increase(i)``: value += 1, variance += 1
    * ``add(i, n)``: value += n, variance += n
    * ``add(i, value, variance)``: both added as given
    * ``increase_by_weight(i, w)``: value += w, variance += w**2
    * ``scale(k)``: value *= k, variance *= k**2

    """

    has_variance = True

    def __init__(self, size: int = 0) -> None:
        size = _checked_size(size)
        self._value = np.zeros(size, dtype=np.float64)
        self._variance = np.zeros(size, dtype=np.float64)

    @property
    def size(self) -> int:
        return len(self._value)

    def increase(self, i: int) -> None:
        self._value[i] += 1.0
        self._variance[i] += 1.0

    def add(self, i: int, value: Any, variance: Any | None = None) -> None:
        self._value[i] += value
        self._variance[i] += value if variance is None else variance

    def increase_by_weight(self, i: int, w: float) -> None:
        self._value[i] += w
        self._variance[i] += w * w

    def value(self, i: int) -> float:
        return self._value[i].item()

    def variance(self, i: int) -> float:
        return self._variance[i].item()

    def values(self) -> NDArray[np.float64]:
        return self._value.copy()

    def variances(self) -> NDArray[np.float64]:
        return self._variance.copy()

    def increase_many(self, offsets: NDArray[np.intp]) -> None:
        np.add.at(self._value, offsets, 1.0)
        np.add.at(self._variance, offsets, 1.0)

    def add_many(
        self,
        offsets: NDArray[np.intp],
        n: ArrayLike,
        variances: ArrayLike | None = None,
    ) -> None:
        n = np.asarray(n, dtype=np.float64)
        np.add.at(self._value, offsets, n)
        if variances is None:
            np.add.at(self._variance, offsets, n)
        else:
            np.add.at(self._variance, offsets, np.asarray(variances, dtype=np.float64))

    def increase_by_weight_many(self, offsets: NDArray[np.intp], w: ArrayLike) -> None:
        w = np.asarray(w, dtype=np.float64)
        np.add.at(self._value, offsets, w)
        np.add.at(self._variance, offsets, w * w)

    def combine(self, other: Storage) -> None:
        self._value += other.values()
        if other.has_variance:
            self._variance += other.variances()
        else:
            self._variance += other.values()

    def scale(self, k: float) -> None:
        self._value *= k
        self._variance *= k * k

    def reset(self) -> None:
        self._value[...] = 0.0
        self._variance[...] = 0.0

    def copy(self) -> Weight:
        new = type(self)()
        new._value = self._value.copy()
        new._variance = self._variance.copy()
        return new

    def move(self) -> Weight:
        new = type(self)()
        new._value, self._value = self._value, new._value
        new._variance, self._variance = self._variance, new._variance
        return new

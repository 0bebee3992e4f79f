"""Axis types converting coordinates into bin indices."""

from __future__ import annotations

import bisect
import math
import operator
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Hashable, Sequence

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

__all__ = ("Axis", "Category", "Integer", "Polar", "Regular", "Variable")

_TURN = 2.0 * math.pi
_INT64_MIN = int(np.iinfo(np.int64).min)
_INT64_MAX = int(np.iinfo(np.int64).max)


def escape(text: str) -> str:
    """Single-quote `text`, escaping embedded backslashes and quotes."""
    return "'" + text.replace("\\", "\\\\").replace("'", "\\'") + "'"


def _fmt(x: float) -> str:
    return f"{x:g}"


class Axis(ABC):
    """Base class of all axis types.

    An axis maps a coordinate to a signed bin index in ``{-1} ∪ [0,
    bins) ∪ {bins}``, where ``-1`` denotes underflow and ``bins``
    denotes overflow. Axes with flow bins enabled reserve two extra
    storage slots for those values; the total slot count is
    :py:attr:`shape`.

    Axes are immutable once constructed.

    """

    _flow_capable = True

    def __init__(self, label: str = "", uoflow: bool = True) -> None:
        if not isinstance(label, str):
            raise TypeError("label must be a string.")
        self._label = label
        self._uoflow = bool(uoflow) and self._flow_capable
        self._bins = 0

    @property
    def label(self) -> str:
        """Axis label (may be empty)."""
        return self._label

    @property
    def bins(self) -> int:
        """Number of regular bins (flow bins excluded)."""
        return self._bins

    @property
    def uoflow(self) -> bool:
        """Whether underflow and overflow bins are enabled."""
        return self._uoflow

    @property
    def shape(self) -> int:
        """Total number of storage slots, flow bins included."""
        return self._bins + 2 * self._uoflow

    @abstractmethod
    def index(self, x: Any) -> int:
        """Bin index of a single coordinate."""

    @abstractmethod
    def indices(self, values: ArrayLike) -> NDArray[np.int64]:
        """Bin indices of an array of coordinates."""

    @abstractmethod
    def _params(self) -> tuple[Hashable, ...]:
        ...

    @abstractmethod
    def _repr_args(self) -> list[str]:
        ...

    def _key(self) -> tuple[Hashable, ...]:
        return (type(self).__name__, self._params(), self._label, self._uoflow)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Axis):
            return NotImplemented
        return type(self) is type(other) and self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __repr__(self) -> str:
        args = self._repr_args()
        if self._label:
            args.append(f"label={escape(self._label)}")
        if self._flow_capable and not self._uoflow:
            args.append("uoflow=False")
        return f"{type(self).__name__}({', '.join(args)})"


class Regular(Axis):
    """Axis with equal width bins.

    Parameters
    ----------
    bins : int
        Number of bins between `start` and `stop`.
    start : float
        Lower edge of the first bin (inclusive).
    stop : float
        Upper edge of the last bin (exclusive, a coordinate equal to
        `stop` lands in the overflow bin).
    label : str
        Optional axis label.
    uoflow : bool
        Enable underflow and overflow bins.

    Examples
    --------
    >>> ax = Regular(4, 0, 2)
    >>> ax.index(0.6), ax.index(2.0), ax.index(-1)
    (1, 4, -1)

    """

    def __init__(
        self,
        bins: int,
        start: float,
        stop: float,
        label: str = "",
        uoflow: bool = True,
    ) -> None:
        super().__init__(label, uoflow)
        bins = operator.index(bins)
        if bins < 1:
            raise ValueError("bins must be at least 1.")
        start, stop = float(start), float(stop)
        if not (math.isfinite(start) and math.isfinite(stop)):
            raise ValueError("start and stop must be finite.")
        if not start < stop:
            raise ValueError("start must be smaller than stop.")
        self._bins = bins
        self._start = start
        self._stop = stop

    @property
    def start(self) -> float:
        return self._start

    @property
    def stop(self) -> float:
        return self._stop

    @property
    def edges(self) -> NDArray[np.float64]:
        return np.linspace(self._start, self._stop, self._bins + 1)

    def index(self, x: Any) -> int:
        z = (float(x) - self._start) / (self._stop - self._start)
        if z < 0:
            return -1
        if z < 1:
            return min(int(math.floor(z * self._bins)), self._bins - 1)
        # beyond the last edge, or NaN
        return self._bins

    def indices(self, values: ArrayLike) -> NDArray[np.int64]:
        z = (np.asarray(values, dtype=float) - self._start) / (self._stop - self._start)
        j = np.minimum(np.floor(z * self._bins), self._bins - 1)
        j = np.where(z < 0, -1, np.where(z < 1, j, self._bins))
        return j.astype(np.int64)

    def _params(self) -> tuple[Hashable, ...]:
        return (self._bins, self._start, self._stop)

    def _repr_args(self) -> list[str]:
        return [str(self._bins), _fmt(self._start), _fmt(self._stop)]


class Variable(Axis):
    """Axis with bins of arbitrary width.

    Parameters
    ----------
    edges : sequence of float
        Strictly increasing bin edges, at least two.
    label : str
        Optional axis label.
    uoflow : bool
        Enable underflow and overflow bins.

    """

    def __init__(
        self,
        edges: Sequence[float] | ArrayLike,
        label: str = "",
        uoflow: bool = True,
    ) -> None:
        super().__init__(label, uoflow)
        arr = np.array(edges, dtype=float)
        if arr.ndim != 1 or len(arr) < 2:
            raise ValueError("At least two bin edges are required.")
        if not np.all(np.isfinite(arr)):
            raise ValueError("Bin edges must be finite.")
        if not np.all(np.diff(arr) > 0):
            raise ValueError("Bin edges must be strictly increasing.")
        arr.flags.writeable = False
        self._edges = arr
        self._edge_list = tuple(arr.tolist())
        self._bins = len(arr) - 1

    @property
    def edges(self) -> NDArray[np.float64]:
        return self._edges

    def index(self, x: Any) -> int:
        return bisect.bisect_right(self._edge_list, float(x)) - 1

    def indices(self, values: ArrayLike) -> NDArray[np.int64]:
        x = np.asarray(values, dtype=float)
        return (np.searchsorted(self._edges, x, side="right") - 1).astype(np.int64)

    def _params(self) -> tuple[Hashable, ...]:
        return self._edge_list

    def _repr_args(self) -> list[str]:
        return ["[" + ", ".join(_fmt(e) for e in self._edge_list) + "]"]


class Integer(Axis):
    """Axis with one bin per integer in ``[start, stop]``.

    Both ends are inclusive, so the axis has ``stop - start + 1``
    bins. Non-integral coordinates are floored.

    """

    def __init__(
        self,
        start: int,
        stop: int,
        label: str = "",
        uoflow: bool = True,
    ) -> None:
        super().__init__(label, uoflow)
        start, stop = operator.index(start), operator.index(stop)
        if stop < start:
            raise ValueError("stop must not be smaller than start.")
        self._start = start
        self._stop = stop
        self._bins = stop - start + 1

    @property
    def start(self) -> int:
        return self._start

    @property
    def stop(self) -> int:
        return self._stop

    @property
    def edges(self) -> NDArray[np.float64]:
        return np.arange(self._start, self._stop + 2, dtype=float)

    def index(self, x: Any) -> int:
        try:
            n = operator.index(x)
        except TypeError:
            n = None
        if n is not None:
            # exact for integers beyond float precision
            if n < self._start:
                return -1
            return n - self._start if n <= self._stop else self._bins
        x = float(x)
        if x < self._start:
            return -1
        if not x < self._stop + 1:
            return self._bins
        return int(math.floor(x)) - self._start

    def indices(self, values: ArrayLike) -> NDArray[np.int64]:
        x = np.asarray(values)
        if x.dtype.kind in "iu":
            in_range = _INT64_MIN <= self._start <= self._stop <= _INT64_MAX
            if not in_range or x.dtype == np.uint64:
                items = x.ravel().tolist()
                return np.fromiter(
                    (self.index(v) for v in items), dtype=np.int64, count=len(items)
                )
            n = x.astype(np.int64)
            j = np.where(n <= self._stop, n - self._start, self._bins)
            return np.where(n < self._start, -1, j).astype(np.int64)
        x = np.asarray(x, dtype=float)
        j = np.floor(x) - self._start
        j = np.where(x < self._start, -1, np.where(x < self._stop + 1, j, self._bins))
        return j.astype(np.int64)

    def _params(self) -> tuple[Hashable, ...]:
        return (self._start, self._stop)

    def _repr_args(self) -> list[str]:
        return [str(self._start), str(self._stop)]


class Polar(Axis):
    """Wrap-around axis covering one full turn (2π) from `start`.

    Coordinates are taken modulo one turn before bucketing, so finite
    values never fall outside the axis. The axis has no flow bins;
    non-finite coordinates cannot be placed and are reported as
    overflow.

    """

    _flow_capable = False

    def __init__(self, bins: int, start: float = 0.0, label: str = "") -> None:
        super().__init__(label, uoflow=False)
        bins = operator.index(bins)
        if bins < 1:
            raise ValueError("bins must be at least 1.")
        start = float(start)
        if not math.isfinite(start):
            raise ValueError("start must be finite.")
        self._bins = bins
        self._start = start

    @property
    def start(self) -> float:
        return self._start

    @property
    def edges(self) -> NDArray[np.float64]:
        return self._start + np.linspace(0.0, _TURN, self._bins + 1)

    def index(self, x: Any) -> int:
        x = float(x)
        if not math.isfinite(x):
            return self._bins
        z = (x - self._start) / _TURN
        z -= math.floor(z)
        return min(int(z * self._bins), self._bins - 1)

    def indices(self, values: ArrayLike) -> NDArray[np.int64]:
        x = np.asarray(values, dtype=float)
        with np.errstate(invalid="ignore"):
            z = (x - self._start) / _TURN
            z = z - np.floor(z)
            j = np.minimum(np.floor(z * self._bins), self._bins - 1)
        j = np.where(np.isfinite(x), j, self._bins)
        return j.astype(np.int64)

    def _params(self) -> tuple[Hashable, ...]:
        return (self._bins, self._start)

    def _repr_args(self) -> list[str]:
        args = [str(self._bins)]
        if self._start != 0.0:
            args.append(_fmt(self._start))
        return args


class Category(Axis):
    """Axis of unordered labels matched exactly.

    Parameters
    ----------
    categories : sequence of str or sequence of int
        Unique categories; bin ``i`` holds values equal to
        ``categories[i]``.
    label : str
        Optional axis label.

    A category axis has no flow bins: values that are not one of the
    categories cannot be filled.

    """

    _flow_capable = False

    def __init__(self, categories: Sequence[str] | Sequence[int], label: str = "") -> None:
        super().__init__(label, uoflow=False)
        cats = tuple(categories)
        if not cats:
            raise ValueError("At least one category is required.")
        if all(isinstance(c, str) for c in cats):
            self._kind = str
        elif all(isinstance(c, (int, np.integer)) and not isinstance(c, bool) for c in cats):
            self._kind = int
            cats = tuple(int(c) for c in cats)
        else:
            raise TypeError("Categories must be all strings or all integers.")
        lookup: dict[Hashable, int] = {}
        for i, c in enumerate(cats):
            if c in lookup:
                raise ValueError(f"Duplicate category {c!r}.")
            lookup[c] = i
        self._categories = cats
        self._lookup = lookup
        self._bins = len(cats)

    @property
    def categories(self) -> tuple[Hashable, ...]:
        return self._categories

    @property
    def kind(self) -> type:
        """Type of the categories, ``str`` or ``int``."""
        return self._kind

    def index(self, x: Any) -> int:
        if isinstance(x, np.generic):
            x = x.item()
        return self._lookup.get(x, self._bins)

    def indices(self, values: ArrayLike) -> NDArray[np.int64]:
        items = np.asarray(values).ravel().tolist()
        return np.fromiter(
            (self._lookup.get(v, self._bins) for v in items),
            dtype=np.int64,
            count=len(items),
        )

    def _params(self) -> tuple[Hashable, ...]:
        return self._categories

    def _repr_args(self) -> list[str]:
        if self._kind is str:
            inner = ", ".join(escape(c) for c in self._categories)  # type: ignore[arg-type]
        else:
            inner = ", ".join(str(c) for c in self._categories)
        return [f"[{inner}]"]

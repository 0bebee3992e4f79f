"""Filling histograms from Dask collections."""

from __future__ import annotations

import logging
import numbers
import operator
import warnings
from functools import partial, reduce
from typing import TYPE_CHECKING, Any, Callable, Hashable, Literal, Mapping, Sequence

import dask.config
from dask.array.core import Array
from dask.base import DaskMethodsMixin, tokenize
from dask.core import flatten
from dask.delayed import Delayed
from dask.highlevelgraph import HighLevelGraph
from dask.threaded import get as tget
from dask.utils import key_split

from nhist.histogram import Histogram
from nhist.storage import Double, Int64

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from nhist.axis import Axis
    from nhist.storage import Storage
    from nhist.typing import DaskCollection

__all__ = (
    "AggHistogram",
    "PartitionedHistogram",
    "clone",
    "factory",
    "partitioned_factory",
)

logger = logging.getLogger(__name__)


def hist_sum(items: Sequence[Histogram]) -> Histogram:
    return reduce(operator.add, items)


def clone(histref: Histogram) -> Histogram:
    """Create an empty Histogram based on another.

    The axes and storage kind of `histref` are used to create a new
    Histogram object.

    Parameters
    ----------
    histref : nhist.Histogram
        The reference Histogram.

    Returns
    -------
    nhist.Histogram
        New Histogram with identical axes and storage kind.

    """
    return Histogram(*histref.axes, storage=histref.storage_type())


def _blocked_fill(
    *data: Any,
    histref: Histogram,
    weighted: bool,
) -> Histogram:
    """Blocked calculation; one block of every input, weights last."""
    weights = None
    if weighted:
        weights = data[-1]
        data = data[:-1]
    return clone(histref).fill_many(*data, weight=weights)


def optimize(
    dsk: Mapping,
    keys: Hashable | list[Hashable] | set[Hashable],
    **kwargs: Any,
) -> Mapping:
    keys = tuple(flatten(keys))
    if not isinstance(dsk, HighLevelGraph):
        dsk = HighLevelGraph.from_collections(str(id(dsk)), dsk, dependencies=())
    return dsk.cull(set(keys))


def _finalize_partitioned_histogram(results: Any) -> Any:
    return results


def _finalize_agg_histogram(results: Any) -> Any:
    return results[0]


class AggHistogram(DaskMethodsMixin):
    """Aggregated Histogram collection.

    The class constructor is typically used internally;
    :py:func:`nhist.factory` is recommended for users.

    See Also
    --------
    nhist.factory

    """

    def __init__(
        self,
        dsk: HighLevelGraph,
        name: str,
        histref: Histogram,
    ) -> None:
        self._dask: HighLevelGraph = dsk
        self._name: str = name
        self._meta: Histogram = histref

    def __dask_graph__(self) -> HighLevelGraph:
        return self._dask

    def __dask_keys__(self) -> list[tuple[str, int]]:
        return [self.key]

    def __dask_layers__(self) -> tuple[str, ...]:
        return (self.name,)

    def __dask_tokenize__(self) -> Any:
        return self.key

    def __dask_postcompute__(self) -> Any:
        return _finalize_agg_histogram, ()

    def __dask_postpersist__(self) -> Any:
        return self._rebuild, ()

    __dask_optimize__ = staticmethod(optimize)

    __dask_scheduler__ = staticmethod(tget)

    def _rebuild(
        self,
        dsk: HighLevelGraph,
        *,
        rename: Mapping[str, str] | None = None,
    ) -> Any:
        name = self._name
        if rename:
            name = rename.get(name, name)
        return type(self)(dsk, name, self.histref)

    @property
    def name(self) -> str:
        return self._name

    @property
    def dask(self) -> HighLevelGraph:
        return self._dask

    @property
    def key(self) -> tuple[str, Literal[0]]:
        return (self.name, 0)

    @property
    def histref(self) -> Histogram:
        """Empty reference histogram object."""
        return self._meta

    @property
    def storage_type(self) -> type[Storage]:
        """Storage type of the histogram."""
        return self.histref.storage_type

    @property
    def ndim(self) -> int:
        """Total number of dimensions."""
        return self.histref.ndim

    @property
    def shape(self) -> tuple[int, ...]:
        """Slot count of each axis, flow bins included."""
        return self.histref.shape

    @property
    def size(self) -> int:
        """Size of the histogram."""
        return self.histref.size

    def __str__(self) -> str:
        return (
            "nhist.AggHistogram<"
            f"{key_split(self.name)}, "
            f"ndim={self.ndim}, "
            f"storage={self.storage_type()}"
            ">"
        )

    __repr__ = __str__

    def __reduce__(self):
        return (AggHistogram, (self._dask, self._name, self._meta))

    def to_histogram(self) -> Histogram:
        """Convert to a concrete Histogram via computation.

        This is an alias of `.compute()`.

        """
        return self.compute()

    def to_delayed(self, optimize_graph: bool = True) -> Delayed:
        keys = self.__dask_keys__()
        graph = self.__dask_graph__()
        layer = self.__dask_layers__()[0]
        if optimize_graph:
            graph = self.__dask_optimize__(graph, keys)
            layer = f"delayed-{self.name}"
            graph = HighLevelGraph.from_collections(layer, graph, dependencies=())
        return Delayed(keys[0], graph, layer=layer)

    def values(self, flow: bool = False) -> NDArray[Any]:
        return self.to_histogram().values(flow=flow)

    def variances(self, flow: bool = False) -> NDArray[Any]:
        return self.to_histogram().variances(flow=flow)

    def __add__(self, other: Any) -> AggHistogram:
        if not isinstance(other, (AggHistogram, Delayed)):
            return NotImplemented
        return _add(self, other)

    def __radd__(self, other: Any) -> AggHistogram:
        # the start value of builtin sum
        if isinstance(other, numbers.Number) and other == 0:
            return self
        if not isinstance(other, (AggHistogram, Delayed)):
            return NotImplemented
        return _add(other, self)

    def __mul__(self, other: Any) -> AggHistogram:
        return _mul(self, other)

    def __rmul__(self, other: Any) -> AggHistogram:
        return _mul(self, other)

    def __truediv__(self, other: Any) -> AggHistogram:
        return _truediv(self, other)


class PartitionedHistogram(DaskMethodsMixin):
    """Partitioned Histogram collection.

    Holds one concrete histogram per partition of the input data. The
    class constructor is typically used internally;
    :py:func:`nhist.partitioned_factory` is recommended for users.

    See Also
    --------
    nhist.partitioned_factory
    nhist.AggHistogram

    """

    def __init__(
        self,
        dsk: HighLevelGraph,
        name: str,
        npartitions: int,
        histref: Histogram,
    ) -> None:
        self._dask: HighLevelGraph = dsk
        self._name: str = name
        self._npartitions: int = npartitions
        self._meta: Histogram = histref

    @property
    def name(self) -> str:
        return self._name

    @property
    def dask(self) -> HighLevelGraph:
        return self._dask

    @property
    def npartitions(self) -> int:
        return self._npartitions

    @property
    def histref(self) -> Histogram:
        """Empty reference histogram object."""
        return self._meta

    def __dask_graph__(self) -> HighLevelGraph:
        return self.dask

    def __dask_keys__(self) -> list[tuple[str, int]]:
        return [(self.name, i) for i in range(self.npartitions)]

    def __dask_layers__(self) -> tuple[str]:
        return (self.name,)

    def __dask_tokenize__(self) -> str:
        return self.name

    def __dask_postcompute__(self) -> Any:
        return _finalize_partitioned_histogram, ()

    def __dask_postpersist__(self) -> Any:
        return self._rebuild, ()

    def _rebuild(self, dsk: Any, *, rename: Any = None) -> Any:
        name = self.name
        if rename:
            name = rename.get(name, name)
        return type(self)(dsk, name, self.npartitions, self.histref)

    __dask_optimize__ = staticmethod(optimize)

    __dask_scheduler__ = staticmethod(tget)

    def __str__(self) -> str:
        return "nhist.PartitionedHistogram<%s, npartitions=%d>" % (
            key_split(self.name),
            self.npartitions,
        )

    __repr__ = __str__

    def __reduce__(self):
        return (
            PartitionedHistogram,
            (self._dask, self._name, self._npartitions, self._meta),
        )

    def collapse(self, split_every: int | bool | None = None) -> AggHistogram:
        """Translate into a reduced aggregated histogram."""
        return _reduction(self, split_every=split_every)

    def to_delayed(self, optimize_graph: bool = True) -> list[Delayed]:
        keys = self.__dask_keys__()
        graph = self.__dask_graph__()
        layer = self.__dask_layers__()[0]
        if optimize_graph:
            graph = self.__dask_optimize__(graph, keys)
            layer = f"delayed-{self.name}"
            graph = HighLevelGraph.from_collections(layer, graph, dependencies=())
        return [Delayed(k, graph, layer=layer) for k in keys]


def _reduction(
    ph: PartitionedHistogram,
    split_every: int | bool | None = None,
) -> AggHistogram:
    if split_every is None:
        split_every = dask.config.get("nhist.aggregation.split-every", 8)
    if split_every is False:
        split_every = ph.npartitions
    split_every = max(int(split_every), 2)

    token = tokenize(ph, hist_sum, split_every)

    label = "histreduce"

    name_comb = f"{label}-combine-{token}"
    name_agg = f"{label}-agg-{token}"

    dsk: dict[tuple, Any] = {}
    keys: list[tuple] = ph.__dask_keys__()
    depth = 0
    while len(keys) > split_every:
        level = []
        for i, start in enumerate(range(0, len(keys), split_every)):
            key = (name_comb, depth, i)
            dsk[key] = (hist_sum, keys[start : start + split_every])
            level.append(key)
        keys = level
        depth += 1
    dsk[(name_agg, 0)] = (hist_sum, keys)
    logger.debug(
        "tree reduction %s over %d partitions (split_every=%d, depth=%d)",
        name_agg,
        ph.npartitions,
        split_every,
        depth,
    )

    graph = HighLevelGraph.from_collections(name_agg, dsk, dependencies=(ph,))
    return AggHistogram(graph, name_agg, histref=ph.histref)


def _block_keys(arr: Array) -> list[tuple]:
    if arr.ndim == 2 and len(arr.chunks[1]) != 1:
        raise ValueError(
            "Two dimensional data can only be chunked along the 0th (row) axis."
        )
    if arr.ndim not in (1, 2):
        raise ValueError("Data must be one or two dimensional.")
    return list(flatten(arr.__dask_keys__()))


def _weight_check(*data: Array, weights: Array | None = None) -> None:
    if weights is None:
        return
    if not isinstance(weights, Array):
        raise TypeError("weights must be a dask array.")
    if weights.ndim != 1:
        raise ValueError("weights must be one dimensional.")
    if data[0].numblocks[0] != weights.numblocks[0]:
        raise ValueError("weights must have as many partitions as the data.")


def _partitioned_histogram(
    *data: Array,
    histref: Histogram,
    weights: Array | None = None,
) -> PartitionedHistogram:
    for datum in data:
        if not isinstance(datum, Array):
            raise TypeError(
                f"Only dask arrays are supported as input data, got {type(datum)}."
            )
    if len(data) > 1 and any(d.ndim != 1 for d in data):
        raise ValueError("Multiple data arrays must each be one dimensional.")
    if any(d.chunks[0] != data[0].chunks[0] for d in data[1:]):
        raise ValueError("All data must be chunked identically along the 0th axis.")
    _weight_check(*data, weights=weights)
    if weights is not None and issubclass(histref.storage_type, Int64):
        warnings.warn("Int64 storage truncates weights to integers")

    ref = clone(histref)
    name = f"hist-on-block-{tokenize(data, repr(ref), weights)}"
    blocks = [_block_keys(d) for d in data]
    if weights is not None:
        blocks.append(_block_keys(weights))
    npartitions = len(blocks[0])

    fill: Callable = partial(_blocked_fill, histref=ref, weighted=weights is not None)
    dsk = {(name, i): (fill, *(b[i] for b in blocks)) for i in range(npartitions)}
    dependencies = (*data, weights) if weights is not None else data
    logger.debug("staged %s with %d partitions", name, npartitions)

    hlg = HighLevelGraph.from_collections(name, dsk, dependencies=dependencies)
    return PartitionedHistogram(hlg, name, npartitions, histref=ref)


class BinaryOpAgg:
    def __init__(
        self,
        func: Callable[[Any, Any], Any],
        name: str | None = None,
    ) -> None:
        self.func = func
        self.__name__ = func.__name__ if name is None else name

    def __call__(self, a: Any, b: Any) -> AggHistogram:
        name = f"{self.__name__}-hist-{tokenize(a, b)}"
        deps = [x for x in (a, b) if isinstance(x, (AggHistogram, Delayed))]
        k1 = a.key if isinstance(a, (AggHistogram, Delayed)) else a
        k2 = b.key if isinstance(b, (AggHistogram, Delayed)) else b
        llg = {(name, 0): (self.func, k1, k2)}
        g = HighLevelGraph.from_collections(name, llg, dependencies=deps)
        ref = a.histref if isinstance(a, AggHistogram) else b.histref
        return AggHistogram(g, name, histref=ref)


_add = BinaryOpAgg(operator.add, name="add")
_mul = BinaryOpAgg(operator.mul, name="mul")
_truediv = BinaryOpAgg(operator.truediv, name="div")


def factory(
    *data: DaskCollection,
    histref: Histogram | None = None,
    axes: Sequence[Axis] | None = None,
    storage: Storage | None = None,
    weights: Array | None = None,
    split_every: int | bool | None = None,
) -> AggHistogram:
    """Histogram collection factory function.

    Given some data represented by dask arrays and the characteristics
    of a histogram (either a reference :py:obj:`nhist.Histogram` object
    or a set of axes), this routine will create an
    :py:obj:`AggHistogram` collection. Every partition of the data is
    filled into its own histogram and the partial histograms are summed
    with a tree reduction.

    Parameters
    ----------
    *data : dask.array.Array
        The data to histogram. The supported forms of input data:

        * Single one dimensional dask array: for creating a 1D
          histogram.
        * Single two dimensional dask array, one column per axis and
          chunked only along the rows: for creating multidimensional
          histograms.
        * Multiple one dimensional dask arrays with identical chunks:
          for creating multidimensional histograms.
    histref : nhist.Histogram, optional
        A reference histogram object, required if `axes` is not used.
        Only its axes and storage kind are used.
    axes : Sequence[nhist.axis.Axis], optional
        The axes of the histogram, required if `histref` is not used.
    storage : nhist.storage.Storage, optional
        Storage of the histogram, only compatible with use of the
        `axes` argument.
    weights : dask.array.Array, optional
        Weights associated with the `data`. The chunking of the weights
        must be compatible with the input data.
    split_every : int, optional
        How many partial histograms to sum in each task of the
        aggregation. Defaults to the ``nhist.aggregation.split-every``
        configuration value (8); ``False`` sums everything in one task.

    Returns
    -------
    AggHistogram
        The resulting histogram collection.

    Raises
    ------
    ValueError
        If `histref` and `axes` are both (or neither) defined, or if
        `storage` is used with `histref`.

    Examples
    --------
    >>> import dask.array as da
    >>> import nhist
    >>> x = da.random.uniform(size=(10000,), chunks=(2000,))
    >>> y = da.random.uniform(size=(10000,), chunks=(2000,))
    >>> axes = [nhist.axis.Regular(4, 0, 1), nhist.axis.Variable([0, 0.5, 1])]
    >>> h = nhist.factory(x, y, axes=axes)
    >>> h.shape
    (6, 4)
    >>> h.compute().sum(flow=True)
    10000.0

    """
    ph = partitioned_factory(
        *data,
        histref=histref,
        axes=axes,
        storage=storage,
        weights=weights,
    )
    return ph.collapse(split_every=split_every)


def partitioned_factory(
    *data: DaskCollection,
    histref: Histogram | None = None,
    axes: Sequence[Axis] | None = None,
    storage: Storage | None = None,
    weights: Array | None = None,
) -> PartitionedHistogram:
    """Histogram collection factory function; keep partitioned.

    This is a version of the :py:func:`factory` function that **remains
    partitioned**. The :py:func:`factory` function includes a step in
    the task graph that aggregates all partitions into a single final
    histogram.

    See Also
    --------
    nhist.factory

    """
    if histref is None and axes is None:
        raise ValueError("Either histref or axes must be defined.")
    if histref is not None and axes is not None:
        raise ValueError("Only one of histref and axes may be defined.")
    if histref is not None and storage is not None:
        raise ValueError("Storage cannot be defined along with histref.")
    elif histref is None:
        if storage is None:
            storage = Double()
        histref = Histogram(*axes, storage=storage)  # type: ignore[misc]

    return _partitioned_histogram(*data, histref=histref, weights=weights)

"""Multi-dimensional histograms with pluggable axes and storages."""

from nhist import axis, errors, storage
from nhist.convert import from_boost, to_boost
from nhist.core import (
    AggHistogram,
    PartitionedHistogram,
    factory,
    partitioned_factory,
)
from nhist.histogram import Histogram, count, weight
from nhist.version import __version__

__all__ = (
    "__version__",
    "AggHistogram",
    "Histogram",
    "PartitionedHistogram",
    "axis",
    "count",
    "errors",
    "factory",
    "from_boost",
    "partitioned_factory",
    "storage",
    "to_boost",
    "weight",
)

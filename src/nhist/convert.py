"""Conversion to and from boost-histogram objects."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any

import boost_histogram as bh
import numpy as np

from nhist import axis, storage
from nhist.histogram import Histogram

if TYPE_CHECKING:
    from numpy.typing import NDArray

__all__ = ("from_boost", "to_boost")

logger = logging.getLogger(__name__)

_STORAGES: tuple[tuple[type[storage.Storage], type[bh.storage.Storage]], ...] = (
    (storage.Int64, bh.storage.Int64),
    (storage.Double, bh.storage.Double),
    (storage.Weight, bh.storage.Weight),
)


def _axis_to_boost(ax: axis.Axis) -> bh.axis.Axis:
    flow = {"underflow": ax.uoflow, "overflow": ax.uoflow}
    if isinstance(ax, axis.Regular):
        out = bh.axis.Regular(ax.bins, ax.start, ax.stop, **flow)
    elif isinstance(ax, axis.Variable):
        out = bh.axis.Variable(ax.edges, **flow)
    elif isinstance(ax, axis.Integer):
        out = bh.axis.Integer(ax.start, ax.stop + 1, **flow)
    elif isinstance(ax, axis.Polar):
        # circular axes always carry an overflow bin
        out = bh.axis.Regular(
            ax.bins,
            ax.start,
            ax.start + 2 * math.pi,
            underflow=False,
            overflow=True,
            circular=True,
        )
    elif isinstance(ax, axis.Category):
        cls = bh.axis.StrCategory if ax.kind is str else bh.axis.IntCategory
        out = cls(list(ax.categories), overflow=False)
    else:
        raise TypeError(f"No boost-histogram equivalent of {ax!r}.")
    if ax.label:
        out.label = ax.label
    return out


def to_boost(h: Histogram) -> bh.Histogram:
    """Convert a histogram into a :py:class:`boost_histogram.Histogram`.

    Bin contents (flow bins included), variances and axis labels are
    carried over.

    Parameters
    ----------
    h : nhist.Histogram
        The histogram to convert.

    Returns
    -------
    boost_histogram.Histogram
        An independent copy in boost-histogram form.

    Raises
    ------
    TypeError
        If an axis or the storage has no boost-histogram equivalent.

    Examples
    --------
    >>> import nhist
    >>> h = nhist.Histogram(nhist.axis.Regular(4, 0, 1)).fill(0.3)
    >>> nhist.to_boost(h).values()
    array([0., 1., 0., 0.])

    """
    for ours, theirs in _STORAGES:
        if h.storage_type is ours:
            bh_storage = theirs()
            break
    else:
        raise TypeError(f"No boost-histogram equivalent of {h.storage_type()!r}.")

    out = bh.Histogram(*(_axis_to_boost(ax) for ax in h.axes), storage=bh_storage)
    values = _to_boost_layout(h, h.values(flow=True))
    view = out.view(flow=True)
    if h.storage_type.has_variance:
        view.value = values
        view.variance = _to_boost_layout(h, h.variances(flow=True))
    else:
        view[...] = values
    logger.debug("converted %d dimensional histogram to boost-histogram", h.ndim)
    return out


def _to_boost_layout(h: Histogram, arr: NDArray[Any]) -> NDArray[Any]:
    for k, ax in enumerate(h.axes):
        if ax.uoflow:
            # overflow, underflow -> underflow first, overflow last
            arr = np.roll(arr, 1, axis=k)
        elif isinstance(ax, axis.Polar):
            pad = [(0, 0)] * arr.ndim
            pad[k] = (0, 1)
            arr = np.pad(arr, pad)
    return arr


def _axis_from_boost(bax: bh.axis.Axis) -> axis.Axis:
    traits = bax.traits
    label = getattr(bax, "label", "") or ""
    if traits.underflow != traits.overflow and not (
        traits.circular or isinstance(bax, (bh.axis.StrCategory, bh.axis.IntCategory))
    ):
        raise TypeError(f"Axes with a single flow bin are not supported: {bax!r}.")
    uoflow = bool(traits.underflow and traits.overflow)
    if isinstance(bax, bh.axis.Regular):
        if bax.transform is not None:
            raise TypeError(f"Transformed axes are not supported: {bax!r}.")
        edges = bax.edges
        if traits.circular:
            if not math.isclose(edges[-1] - edges[0], 2 * math.pi):
                raise TypeError(f"Circular axes must span 2π: {bax!r}.")
            return axis.Polar(len(bax), edges[0], label=label)
        return axis.Regular(len(bax), edges[0], edges[-1], label=label, uoflow=uoflow)
    if isinstance(bax, bh.axis.Variable):
        if traits.circular:
            raise TypeError(f"Circular variable axes are not supported: {bax!r}.")
        return axis.Variable(bax.edges, label=label, uoflow=uoflow)
    if isinstance(bax, bh.axis.Integer):
        if traits.circular:
            raise TypeError(f"Circular integer axes are not supported: {bax!r}.")
        edges = bax.edges
        return axis.Integer(
            int(edges[0]), int(edges[-1]) - 1, label=label, uoflow=uoflow
        )
    if isinstance(bax, (bh.axis.StrCategory, bh.axis.IntCategory)):
        return axis.Category([bax.value(i) for i in range(len(bax))], label=label)
    raise TypeError(f"No nhist equivalent of {bax!r}.")


def _from_boost_layout(
    bh_hist: bh.Histogram, axes: list[axis.Axis], arr: NDArray[Any]
) -> NDArray[Any]:
    for k, (bax, ax) in enumerate(zip(bh_hist.axes, axes)):
        if ax.uoflow:
            arr = np.roll(arr, -1, axis=k)
        elif bax.traits.overflow:
            extra = np.take(arr, [-1], axis=k)
            if np.any(extra != 0):
                raise ValueError(
                    f"Overflow bin of {bax!r} is not empty and cannot be represented."
                )
            arr = np.take(arr, range(ax.bins), axis=k)
    return arr


def from_boost(bh_hist: bh.Histogram) -> Histogram:
    """Convert a :py:class:`boost_histogram.Histogram` into a histogram.

    Parameters
    ----------
    bh_hist : boost_histogram.Histogram
        Histogram with ``Regular``, ``Variable``, ``Integer``,
        ``StrCategory`` or ``IntCategory`` axes and ``Int64``,
        ``Double`` or ``Weight`` storage. A circular regular axis
        spanning one turn becomes a :py:class:`nhist.axis.Polar` axis.

    Returns
    -------
    nhist.Histogram
        An independent copy.

    Raises
    ------
    TypeError
        If an axis or the storage has no equivalent.
    ValueError
        If a flow bin without an equivalent holds a non-zero value.

    """
    bh_storage = bh_hist.storage_type
    for ours, theirs in _STORAGES:
        if bh_storage is theirs:
            kind = ours
            break
    else:
        raise TypeError(f"No nhist equivalent of {bh_storage.__name__} storage.")

    axes = [_axis_from_boost(bax) for bax in bh_hist.axes]
    view = bh_hist.view(flow=True)
    variances = None
    if kind.has_variance:
        values = _from_boost_layout(bh_hist, axes, np.asarray(view.value))
        variances = _from_boost_layout(bh_hist, axes, np.asarray(view.variance))
        variances = variances.ravel(order="F")
    else:
        values = _from_boost_layout(bh_hist, axes, np.asarray(view))

    flat = values.ravel(order="F")
    store = kind(flat.size)
    store.add_many(np.arange(flat.size), flat, variances)
    logger.debug("converted %d dimensional boost-histogram", len(axes))
    return Histogram.from_storage(axes, store)

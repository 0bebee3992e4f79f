"""Exceptions raised by histogram operations."""

from __future__ import annotations

__all__ = (
    "AxesMismatch",
    "CapabilityUnsupported",
    "DimensionMismatch",
    "HistogramError",
    "IndexOutOfRange",
)


class HistogramError(Exception):
    """Base class for errors raised by nhist."""


class DimensionMismatch(HistogramError, ValueError):
    """Number of arguments does not match the histogram dimension."""


class IndexOutOfRange(HistogramError, IndexError):
    """A bin index lies outside the valid span of its axis."""


class AxesMismatch(HistogramError, ValueError):
    """Two histograms were combined while their axes differ."""


class CapabilityUnsupported(HistogramError, TypeError):
    """The storage does not support the requested operation."""

from __future__ import annotations

from typing import Union

from dask.array.core import Array

Coordinate = Union[float, int, str]

DaskCollection = Array

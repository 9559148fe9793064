"""
Footprint grid definition.

A grid is a regular longitude/latitude raster described by its extent and
resolution. Cells are indexed (row, col) with rows running south to north.
"""

import math
from dataclasses import dataclass
from typing import Tuple, Union

import numpy as np

from .errors import InputError


@dataclass(frozen=True)
class GridSpec:
    """Regular longitude/latitude grid."""

    xmin: float
    xmax: float
    xres: float
    ymin: float
    ymax: float
    yres: float

    def __post_init__(self):
        for name in ("xmin", "xmax", "xres", "ymin", "ymax", "yres"):
            value = getattr(self, name)
            try:
                value = float(value)
            except (TypeError, ValueError):
                raise InputError(f"Grid {name} must be a number, got {value!r}")
            if not math.isfinite(value):
                raise InputError(f"Grid {name} must be finite, got {value!r}")
            object.__setattr__(self, name, value)

        if self.xres <= 0 or self.yres <= 0:
            raise InputError(f"Grid resolution must be positive, got xres={self.xres}, yres={self.yres}")
        if self.xmax <= self.xmin:
            raise InputError(f"Grid xmax ({self.xmax}) must be greater than xmin ({self.xmin})")
        if self.ymax <= self.ymin:
            raise InputError(f"Grid ymax ({self.ymax}) must be greater than ymin ({self.ymin})")
        if self.nx < 1 or self.ny < 1:
            raise InputError(
                f"Grid resolution ({self.xres}, {self.yres}) is coarser than its extent "
                f"({self.xmax - self.xmin}, {self.ymax - self.ymin})"
            )

    @classmethod
    def from_value(cls, value: Union["GridSpec", tuple, list, dict]) -> "GridSpec":
        """
        Coerce a grid description into a GridSpec.

        Args:
            value: GridSpec, (xmin, xmax, xres, ymin, ymax, yres) sequence,
                or a mapping with those keys

        Returns:
            GridSpec instance
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, dict):
            try:
                return cls(**value)
            except TypeError as e:
                raise InputError(f"Invalid grid specification {value!r}: {e}")
        if isinstance(value, (tuple, list, np.ndarray)) and len(value) == 6:
            return cls(*value)
        raise InputError(
            f"Grid specification must be (xmin, xmax, xres, ymin, ymax, yres), got {value!r}"
        )

    @property
    def nx(self) -> int:
        return _cell_count(self.xmax - self.xmin, self.xres)

    @property
    def ny(self) -> int:
        return _cell_count(self.ymax - self.ymin, self.yres)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.ny, self.nx

    @property
    def lon_edges(self) -> np.ndarray:
        return self.xmin + self.xres * np.arange(self.nx + 1)

    @property
    def lat_edges(self) -> np.ndarray:
        return self.ymin + self.yres * np.arange(self.ny + 1)

    @property
    def lon_centers(self) -> np.ndarray:
        return self.xmin + (np.arange(self.nx) + 0.5) * self.xres

    @property
    def lat_centers(self) -> np.ndarray:
        return self.ymin + (np.arange(self.ny) + 0.5) * self.yres

    def contains(self, lon: np.ndarray, lat: np.ndarray) -> np.ndarray:
        """Boolean mask of positions inside the grid extent, edges included."""
        lon = np.asarray(lon, dtype=float)
        lat = np.asarray(lat, dtype=float)
        return (
            (lon >= self.xmin) & (lon <= self.xmax) &
            (lat >= self.ymin) & (lat <= self.ymax)
        )

    def padded_edges(self, xbuf: int, ybuf: int) -> Tuple[np.ndarray, np.ndarray]:
        """
        Cell edges of the grid extended by a halo of xbuf/ybuf cells.

        Edge xbuf (ybuf) of the padded arrays coincides exactly with xmin (ymin).
        """
        lon_edges = self.xmin + self.xres * (np.arange(self.nx + 2 * xbuf + 1) - xbuf)
        lat_edges = self.ymin + self.yres * (np.arange(self.ny + 2 * ybuf + 1) - ybuf)
        return lon_edges, lat_edges

    def cell_index(
        self,
        lon: np.ndarray,
        lat: np.ndarray,
        xbuf: int = 0,
        ybuf: int = 0
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Map in-bounds positions to (row, col) indices of the halo-padded grid.

        Positions on the upper grid boundary belong to the last interior cell.

        Args:
            lon: Longitudes inside the grid extent
            lat: Latitudes inside the grid extent
            xbuf: Halo width in columns
            ybuf: Halo height in rows

        Returns:
            Tuple of (rows, cols) integer arrays
        """
        lon_edges, lat_edges = self.padded_edges(xbuf, ybuf)
        cols = np.searchsorted(lon_edges, lon, side='right') - 1
        rows = np.searchsorted(lat_edges, lat, side='right') - 1
        cols = np.clip(cols, xbuf, xbuf + self.nx - 1)
        rows = np.clip(rows, ybuf, ybuf + self.ny - 1)
        return rows.astype(np.int64), cols.astype(np.int64)


def _cell_count(span: float, res: float) -> int:
    # Tolerate floating error when the span is an exact multiple of res
    return int(math.floor(span / res + 1e-9))

"""
GridDefinition and BoundingBox classes.
"""

from dataclasses import dataclass
from typing import Iterable, Tuple

import numpy as np
from affine import Affine

from .exceptions import InvalidArgument


@dataclass(frozen=True)
class GridDefinition:
    """
    A regular 2D grid of cells.

    Attributes
    ----------
    cellcentre_offset : tuple of float
        (x, y) centre of the first (lower-left) cell, in projection units
    cellsize : tuple of float
        (dx, dy) cell size, in projection units
    cells_dim : tuple of int
        (nx, ny) number of cells along x and y

    Notes
    -----
    Arrays on this grid have shape (ny, nx). Row 0 holds the cells with
    the smallest y (southernmost), column 0 those with the smallest x.
    The centre of cell (row, col) is:
        (x0 + col * dx, y0 + row * dy)
    """

    cellcentre_offset: Tuple[float, float]
    cellsize: Tuple[float, float]
    cells_dim: Tuple[int, int]

    def __post_init__(self):
        x0, y0 = (float(v) for v in self.cellcentre_offset)
        dx, dy = (float(v) for v in self.cellsize)
        nx, ny = (int(v) for v in self.cells_dim)
        if not (np.isfinite(x0) and np.isfinite(y0)):
            raise InvalidArgument(f"Grid offset must be finite, got {self.cellcentre_offset}")
        if not (np.isfinite(dx) and np.isfinite(dy)) or dx <= 0 or dy <= 0:
            raise InvalidArgument(f"Cell size must be strictly positive, got {self.cellsize}")
        if nx < 1 or ny < 1:
            raise InvalidArgument(f"Grid must have at least one cell per axis, got {self.cells_dim}")
        object.__setattr__(self, "cellcentre_offset", (x0, y0))
        object.__setattr__(self, "cellsize", (dx, dy))
        object.__setattr__(self, "cells_dim", (nx, ny))

    @property
    def nx(self) -> int:
        return self.cells_dim[0]

    @property
    def ny(self) -> int:
        return self.cells_dim[1]

    @property
    def shape(self) -> Tuple[int, int]:
        """Array shape (ny, nx)."""
        return (self.ny, self.nx)

    def n_cells(self) -> int:
        """Return total number of cells."""
        return self.nx * self.ny

    def x_centers(self) -> np.ndarray:
        return self.cellcentre_offset[0] + np.arange(self.nx) * self.cellsize[0]

    def y_centers(self) -> np.ndarray:
        return self.cellcentre_offset[1] + np.arange(self.ny) * self.cellsize[1]

    def coordinates(self) -> Tuple[np.ndarray, np.ndarray]:
        """Cell centre coordinates, two arrays of shape (ny, nx)."""
        return np.meshgrid(self.x_centers(), self.y_centers(), indexing='xy')

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """Outer cell edges (x_min, x_max, y_min, y_max)."""
        (x0, y0), (dx, dy) = self.cellcentre_offset, self.cellsize
        return (
            x0 - dx / 2,
            x0 + (self.nx - 0.5) * dx,
            y0 - dy / 2,
            y0 + (self.ny - 0.5) * dy,
        )

    def corners(self) -> Tuple[np.ndarray, np.ndarray]:
        """The four outer corners as (xs, ys)."""
        x_min, x_max, y_min, y_max = self.bounds
        return np.array([x_min, x_max, x_max, x_min]), np.array([y_min, y_min, y_max, y_max])

    @property
    def transform(self) -> Affine:
        """Affine map from (col, row) fractional indices to (x, y) edges."""
        x_min, _, y_min, _ = self.bounds
        return Affine.translation(x_min, y_min) @ Affine.scale(*self.cellsize)

    def cell_index(self, x, y) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Locate the cells containing points.

        Returns
        -------
        row, col : np.ndarray
            0-based indices (meaningless where ``inside`` is False)
        inside : np.ndarray
            True where the point falls within the grid
        """
        col_f, row_f = ~self.transform * (np.asarray(x, dtype=np.float64), np.asarray(y, dtype=np.float64))
        col_f = np.floor(col_f)
        row_f = np.floor(row_f)
        finite = np.isfinite(col_f) & np.isfinite(row_f)
        col = np.where(finite, col_f, -1).astype(np.int64)
        row = np.where(finite, row_f, -1).astype(np.int64)
        inside = finite & (col >= 0) & (col < self.nx) & (row >= 0) & (row < self.ny)
        return row, col, inside

    def __repr__(self) -> str:
        return (
            f"GridDefinition(\n"
            f"  cellcentre_offset={self.cellcentre_offset},\n"
            f"  cellsize={self.cellsize},\n"
            f"  cells_dim={self.cells_dim}\n"
            f")"
        )


@dataclass(frozen=True)
class BoundingBox:
    """Geographic bounding box in decimal degrees (WGS84)."""

    lon_min: float
    lon_max: float
    lat_min: float
    lat_max: float

    @classmethod
    def from_points(cls, lons, lats) -> "BoundingBox":
        lons = np.asarray(lons, dtype=np.float64)
        lats = np.asarray(lats, dtype=np.float64)
        return cls(float(lons.min()), float(lons.max()), float(lats.min()), float(lats.max()))

    @classmethod
    def union(cls, boxes: Iterable["BoundingBox"]) -> "BoundingBox":
        boxes = list(boxes)
        if not boxes:
            raise InvalidArgument("Cannot take the union of zero bounding boxes")
        return cls(
            min(b.lon_min for b in boxes),
            max(b.lon_max for b in boxes),
            min(b.lat_min for b in boxes),
            max(b.lat_max for b in boxes),
        )

    def as_dict(self) -> dict:
        return {
            "lon_min": self.lon_min,
            "lon_max": self.lon_max,
            "lat_min": self.lat_min,
            "lat_max": self.lat_max,
        }

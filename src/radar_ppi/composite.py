"""
Compositing of single-radar PPIs onto a common WGS84 grid.
"""

import logging
from dataclasses import dataclass
from multiprocessing import Pool
from types import MappingProxyType
from typing import Dict, Sequence, Tuple

import numpy as np

from .constants import DEFAULT_CELLS_DIM, DEFAULT_COMPOSITE_PARAM, MAX_GRID_CELLS, WGS84
from .exceptions import DataAbsent, InvalidArgument
from .geometry import BoundingBox, GridDefinition
from .layer import Layer
from .polar import CellState
from .ppi import PPI
from .projection import geographic_to_projected

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RadarRef:
    """Position and elevation of one radar contributing to a composite."""

    lat: float
    lon: float
    elangle: float


@dataclass(frozen=True, eq=False, repr=False)
class Composite:
    """
    Multi-radar composite of one parameter.

    Attributes
    ----------
    grid : GridDefinition
        Regular longitude/latitude grid (degrees)
    layers : mapping
        Exactly one entry: the composited parameter
    radars : tuple of RadarRef
        Contributing radars, in input order
    bbox : BoundingBox
        Union of the inputs' bounding boxes
    """

    grid: GridDefinition
    layers: Dict[str, Layer]
    radars: Tuple[RadarRef, ...]
    bbox: BoundingBox

    projection = WGS84
    merged = True

    def __post_init__(self):
        object.__setattr__(self, "layers", MappingProxyType(dict(self.layers)))
        object.__setattr__(self, "radars", tuple(self.radars))

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self.layers)

    @property
    def dims(self) -> Tuple[int, int, int]:
        return (len(self.layers), self.grid.nx, self.grid.ny)

    @property
    def lats(self) -> Tuple[float, ...]:
        return tuple(r.lat for r in self.radars)

    @property
    def lons(self) -> Tuple[float, ...]:
        return tuple(r.lon for r in self.radars)

    @property
    def elangles(self) -> Tuple[float, ...]:
        return tuple(r.elangle for r in self.radars)

    def layer(self, name: str) -> Layer:
        try:
            return self.layers[name]
        except KeyError:
            raise DataAbsent(f"parameter '{name}' not present in composite") from None

    def __repr__(self) -> str:
        return (
            f"Composite(\n"
            f"  quantities={' '.join(self.layers)},\n"
            f"  dims={self.grid.nx} x {self.grid.ny} pixels,\n"
            f"  radars={len(self.radars)},\n"
            f"  bbox=({self.bbox.lon_min:.4f}, {self.bbox.lat_min:.4f}, "
            f"{self.bbox.lon_max:.4f}, {self.bbox.lat_max:.4f}),\n"
            f"  merged={self.merged}\n"
            f")"
        )


def merge_max(layers: Sequence[Layer]) -> Layer:
    """
    Element-wise maximum of layers on the same grid.

    A cell takes the largest present value; with none present it is
    UNDETECT if any input is UNDETECT, otherwise NODATA. NODATA never
    contributes, so the merge is order independent and an all-NODATA
    layer leaves the result unchanged.
    """
    if not layers:
        raise InvalidArgument("Nothing to merge")
    shape = layers[0].shape
    if any(layer.shape != shape for layer in layers):
        raise InvalidArgument("Cannot merge layers of different shapes")

    stacked = np.stack([np.where(layer.present, layer.values, -np.inf) for layer in layers])
    best = stacked.max(axis=0)
    any_present = np.any(np.stack([layer.present for layer in layers]), axis=0)
    any_undetect = np.any(np.stack([layer.undetect for layer in layers]), axis=0)

    state = np.full(shape, CellState.NODATA, dtype=np.int8)
    state[any_undetect] = CellState.UNDETECT
    state[any_present] = CellState.PRESENT
    return Layer(np.where(any_present, best, np.nan), state)


def _composite_grid(bbox: BoundingBox, cells_dim: Tuple[int, int]) -> GridDefinition:
    nx, ny = cells_dim
    dx = (bbox.lon_max - bbox.lon_min) / nx
    dy = (bbox.lat_max - bbox.lat_min) / ny
    return GridDefinition((bbox.lon_min + dx / 2, bbox.lat_min + dy / 2), (dx, dy), cells_dim)


def _reproject_layer(args) -> Tuple[int, Layer]:
    """
    Worker: look up one PPI layer at the composite's cell centres.

    Called directly or through multiprocessing.Pool.
    """
    i, lons, lats, grid, projection, values, state = args
    x, y = geographic_to_projected(lons, lats, projection)
    row, col, inside = grid.cell_index(x, y)

    out_values = np.full(lons.shape, np.nan)
    out_state = np.full(lons.shape, CellState.NODATA, dtype=np.int8)
    out_values[inside] = values[row[inside], col[inside]]
    out_state[inside] = state[row[inside], col[inside]]
    return i, Layer(out_values, out_state)


def _check_cells_dim(cells_dim, max_cells: int) -> Tuple[int, int]:
    try:
        nx, ny = cells_dim
    except (TypeError, ValueError):
        raise InvalidArgument(f"'cells_dim' must be a pair of integers, got {cells_dim!r}") from None
    for n in (nx, ny):
        if isinstance(n, (bool, np.bool_)) or not isinstance(n, (int, np.integer)) or n < 1:
            raise InvalidArgument(f"'cells_dim' must hold two positive integers, got {cells_dim!r}")
    if nx * ny > max_cells:
        raise InvalidArgument(f"Composite grid of {nx} x {ny} cells exceeds the limit of {max_cells:,} cells")
    return int(nx), int(ny)


def composite(
    ppis: Sequence[PPI],
    param: str = DEFAULT_COMPOSITE_PARAM,
    cells_dim: Tuple[int, int] = DEFAULT_CELLS_DIM,
    n_workers: int = 1,
    max_cells: int = MAX_GRID_CELLS,
) -> Composite:
    """
    Merge single-radar PPIs into one longitude/latitude composite.

    Parameters
    ----------
    ppis : sequence of PPI
        Single-radar PPIs, typically one per radar
    param : str, optional
        Parameter to composite (default: 'DBZH')
    cells_dim : tuple of int, optional
        (nx, ny) number of composite cells (default: (100, 100))
    n_workers : int, optional
        Worker processes for reprojecting the inputs; 1 runs sequentially
    max_cells : int, optional
        Maximum number of composite cells

    Returns
    -------
    Composite

    Raises
    ------
    TypeError
        ``ppis`` is empty, or holds something other than single-radar PPIs
    DataAbsent
        A PPI lacks ``param``
    InvalidArgument
        Bad ``cells_dim`` or ``n_workers``

    Notes
    -----
    The composite grid spans the union of the inputs' bounding boxes, split
    into nx x ny equal cells. Each composite cell centre is located in each
    input's own grid; the values found there are merged with ``merge_max``.
    """
    if not isinstance(ppis, (list, tuple)) or len(ppis) == 0:
        raise TypeError("'composite' expects a non-empty sequence of PPIs")
    for ppi in ppis:
        if not isinstance(ppi, PPI) or ppi.merged:
            raise TypeError(f"'composite' expects objects of class PPI only, got {type(ppi).__name__}")
    for k, ppi in enumerate(ppis):
        if param not in ppi:
            raise DataAbsent(f"parameter '{param}' not present in PPI {k} (available: {', '.join(ppi.names)})")
    cells_dim = _check_cells_dim(cells_dim, max_cells)
    if isinstance(n_workers, bool) or not isinstance(n_workers, int) or n_workers < 1:
        raise InvalidArgument(f"'n_workers' must be a positive integer, got {n_workers!r}")

    bbox = BoundingBox.union(ppi.bbox for ppi in ppis)
    grid = _composite_grid(bbox, cells_dim)
    lons, lats = grid.coordinates()

    logger.info(
        f"Compositing '{param}' from {len(ppis)} PPI(s) onto {grid.nx}x{grid.ny} grid "
        f"with {n_workers} worker(s)"
    )

    args_list = [
        (i, lons, lats, ppi.grid, ppi.projection, ppi.layer(param).values, ppi.layer(param).state)
        for i, ppi in enumerate(ppis)
    ]
    if n_workers == 1:
        results = [_reproject_layer(args) for args in args_list]
    else:
        with Pool(n_workers) as pool:
            results = list(pool.imap_unordered(_reproject_layer, args_list))
    results.sort(key=lambda r: r[0])

    for i, layer in results:
        logger.debug(f"  PPI {i}: {layer.count()['present']:,} present cells")

    merged = merge_max([layer for _, layer in results])
    radars = tuple(RadarRef(ppi.geo.lat, ppi.geo.lon, ppi.geo.elangle) for ppi in ppis)
    return Composite(grid, {param: merged}, radars, bbox)

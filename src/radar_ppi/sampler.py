"""
Nearest-bin sampling of polar parameters onto a Cartesian grid.

The work is split in two steps, as for any radar gridding with a fixed
geometry:

1. ``compute_sampling_index`` maps every grid cell centre to a polar bin.
   It only depends on the scan geometry and the grid, so it is shared by
   all parameters of a scan and cached.
2. ``apply_index`` fetches the parameter values at those bins.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from .cache import INDEX_CACHE
from .constants import DEFAULT_CELLSIZE, DEFAULT_RANGE_MAX, MAX_GRID_CELLS
from .exceptions import InvalidArgument
from .geometry import BoundingBox, GridDefinition
from .layer import Layer
from .polar import PolarParam, ScanGeo
from .projection import (
    aeqd_projection,
    cartesian_to_polar,
    geographic_to_projected,
    polar_to_bin_index,
    projected_to_geographic,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class SamplingIndex:
    """
    1-based polar bin index of every grid cell.

    Attributes
    ----------
    range_bin : np.ndarray
        Range bin per cell, shape (ny, nx)
    azim_bin : np.ndarray
        Azimuth bin per cell, shape (ny, nx)
    """

    range_bin: np.ndarray
    azim_bin: np.ndarray

    def __post_init__(self):
        for name in ("range_bin", "azim_bin"):
            arr = np.array(getattr(self, name), dtype=np.int64, copy=True)
            arr.flags.writeable = False
            object.__setattr__(self, name, arr)


@dataclass(frozen=True, eq=False)
class SampledGrid:
    """Result of sampling: a grid, its layers and its geographic extent."""

    grid: GridDefinition
    layers: Dict[str, Layer]
    bbox: BoundingBox
    projection: str

    @property
    def layer(self) -> Layer:
        """The first (for a single parameter, the only) layer."""
        return next(iter(self.layers.values()))


# -------------------------------------------------------------------------
# Argument checks
# -------------------------------------------------------------------------

def _check_positive(name: str, value) -> float:
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, (int, float, np.integer, np.floating)):
        raise InvalidArgument(f"'{name}' must be a number, got {value!r}")
    if not np.isfinite(value) or value <= 0:
        raise InvalidArgument(f"'{name}' must be strictly positive, got {value}")
    return float(value)


def _check_flag(name: str, value) -> bool:
    if not isinstance(value, (bool, np.bool_)):
        raise InvalidArgument(f"'{name}' should be logical, got {value!r}")
    return bool(value)


def _check_limits(name: str, limits, lo: float, hi: float) -> Optional[Tuple[float, float]]:
    if limits is None:
        return None
    try:
        low, high = (float(v) for v in limits)
    except (TypeError, ValueError):
        raise InvalidArgument(f"'{name}' must be a pair of numbers, got {limits!r}") from None
    if not (np.isfinite(low) and np.isfinite(high)) or low < lo or high > hi or low >= high:
        raise InvalidArgument(f"'{name}' must satisfy {lo:g} <= min < max <= {hi:g}, got {limits!r}")
    return low, high


def _check_cells(cells_dim: Tuple[int, int], max_cells: int) -> None:
    nx, ny = cells_dim
    if nx < 1 or ny < 1:
        raise InvalidArgument(f"Grid would have no cells ({nx} x {ny})")
    if nx * ny > max_cells:
        raise InvalidArgument(
            f"Grid of {nx} x {ny} = {nx * ny:,} cells exceeds the limit of {max_cells:,} cells; "
            f"use a larger cell size or a smaller extent"
        )


# -------------------------------------------------------------------------
# Grid construction
# -------------------------------------------------------------------------

def build_grid(
    geo: ScanGeo,
    cellsize: float = DEFAULT_CELLSIZE,
    range_max: float = DEFAULT_RANGE_MAX,
    latlim: Optional[Sequence[float]] = None,
    lonlim: Optional[Sequence[float]] = None,
    max_cells: int = MAX_GRID_CELLS,
) -> GridDefinition:
    """
    Build the Cartesian grid, in the radar's aeqd projection, to sample onto.

    Parameters
    ----------
    geo : ScanGeo
        Scan geometry; its lat/lon is the projection centre
    cellsize : float, optional
        Cell size in meters (default: 500)
    range_max : float, optional
        Half-width of the square sampled around the radar, in meters
        (default: 50000). Also sets the default for a missing limit.
    latlim, lonlim : pair of float, optional
        Geographic extent (min, max) in decimal degrees. When only one is
        given, the other comes from the ``range_max`` square.
    max_cells : int, optional
        Maximum number of cells in the grid

    Returns
    -------
    GridDefinition

    Notes
    -----
    Without limits the first cell centre is at (-range_max, -range_max) and
    each axis holds ceil(2 * range_max / cellsize) cells. With limits, the
    four corners of the geographic box are projected; the first cell
    centre is at their minimum x/y and each axis holds
    ceil(extent / cellsize) cells, so the grid may overshoot by one cell.
    """
    cellsize = _check_positive("cellsize", cellsize)
    range_max = _check_positive("range_max", range_max)
    latlim = _check_limits("latlim", latlim, -90.0, 90.0)
    lonlim = _check_limits("lonlim", lonlim, -360.0, 360.0)
    projection = aeqd_projection(geo.lat, geo.lon)

    if latlim is None and lonlim is None:
        offset = (-range_max, -range_max)
        n = math.ceil(2 * range_max / cellsize)
        cells_dim = (n, n)
    else:
        if latlim is None or lonlim is None:
            square = np.array([-range_max, range_max, range_max, -range_max])
            sq_lon, sq_lat = projected_to_geographic(square, np.roll(square, 1), projection)
            latlim = latlim or (float(np.min(sq_lat)), float(np.max(sq_lat)))
            lonlim = lonlim or (float(np.min(sq_lon)), float(np.max(sq_lon)))
        lons = np.array([lonlim[0], lonlim[1], lonlim[1], lonlim[0]])
        lats = np.array([latlim[0], latlim[0], latlim[1], latlim[1]])
        xs, ys = geographic_to_projected(lons, lats, projection)
        offset = (float(np.min(xs)), float(np.min(ys)))
        cells_dim = (
            math.ceil((np.max(xs) - np.min(xs)) / cellsize),
            math.ceil((np.max(ys) - np.min(ys)) / cellsize),
        )

    _check_cells(cells_dim, max_cells)
    return GridDefinition(offset, (cellsize, cellsize), cells_dim)


def grid_bbox(grid: GridDefinition, projection: str) -> BoundingBox:
    """Geographic bounding box of the grid's four outer corners."""
    xs, ys = grid.corners()
    lons, lats = projected_to_geographic(xs, ys, projection)
    return BoundingBox.from_points(lons, lats)


# -------------------------------------------------------------------------
# Sampling
# -------------------------------------------------------------------------

def _index_key(geo: ScanGeo, grid: GridDefinition, project: bool) -> tuple:
    return (
        geo.lat, geo.lon, geo.rscale, geo.ascale,
        geo.elangle if project else 0.0,
        grid.cellcentre_offset, grid.cellsize, grid.cells_dim,
    )


def compute_sampling_index(geo: ScanGeo, grid: GridDefinition, project: bool = False) -> SamplingIndex:
    """
    Map every cell centre of ``grid`` to its polar bin.

    Parameters
    ----------
    geo : ScanGeo
        Scan geometry (rscale, ascale, elangle)
    grid : GridDefinition
        Grid in the radar's aeqd projection
    project : bool, optional
        Correct ranges for the beam elevation (slant range = ground
        distance / cos(elangle)). No earth-curvature correction.

    Returns
    -------
    SamplingIndex
    """
    key = _index_key(geo, grid, project)
    cached = INDEX_CACHE.get(key)
    if cached is not None:
        logger.debug(f"Sampling index cache hit for {grid.nx}x{grid.ny} grid")
        return cached

    elevation = np.radians(geo.elangle) if project else 0.0
    xx, yy = grid.coordinates()
    ranges, azimuths = cartesian_to_polar(xx, yy, elevation)
    range_bin, azim_bin = polar_to_bin_index(ranges, azimuths, geo.rscale, geo.ascale)
    index = SamplingIndex(range_bin, azim_bin)

    if index.range_bin.nbytes + index.azim_bin.nbytes <= INDEX_CACHE.maxsize:
        INDEX_CACHE[key] = index
    return index


def apply_index(index: SamplingIndex, param: PolarParam) -> Layer:
    """
    Fetch a parameter at precomputed bins.

    Cells whose bin falls outside the parameter's grid are NODATA.
    """
    values, state = param.take(index.range_bin, index.azim_bin)
    return Layer(values, state)


def sample_layers(
    geo: ScanGeo,
    params: Mapping[str, PolarParam],
    cellsize: float = DEFAULT_CELLSIZE,
    range_max: float = DEFAULT_RANGE_MAX,
    project: bool = False,
    latlim: Optional[Sequence[float]] = None,
    lonlim: Optional[Sequence[float]] = None,
    max_cells: int = MAX_GRID_CELLS,
) -> SampledGrid:
    """
    Sample several parameters sharing one scan geometry onto one grid.

    The grid and the sampling index are computed once and applied to every
    parameter; each keeps its own NODATA/UNDETECT pattern.

    Parameters
    ----------
    geo : ScanGeo
        Geometry shared by all ``params``
    params : mapping
        Parameter name to PolarParam
    cellsize, range_max, latlim, lonlim, max_cells
        See ``build_grid``
    project : bool, optional
        Correct for the elevation angle (default: False)

    Returns
    -------
    SampledGrid
        One layer per parameter, in the parameters' order

    Raises
    ------
    InvalidArgument
        Bad cell size, range, limits or flag, or grid too large
    ProjectionError
        Projection centred on the radar cannot be built
    """
    project = _check_flag("project", project)
    if not params:
        raise InvalidArgument("Nothing to sample: no parameters given")

    grid = build_grid(geo, cellsize, range_max, latlim, lonlim, max_cells)
    projection = aeqd_projection(geo.lat, geo.lon)
    index = compute_sampling_index(geo, grid, project)
    layers = {name: apply_index(index, param) for name, param in params.items()}
    bbox = grid_bbox(grid, projection)

    logger.info(
        f"Sampled {', '.join(layers)} onto {grid.nx}x{grid.ny} grid "
        f"({grid.cellsize[0]:g} m cells, project={project})"
    )
    return SampledGrid(grid, layers, bbox, projection)


def sample_polar(
    param: PolarParam,
    cellsize: float = DEFAULT_CELLSIZE,
    range_max: float = DEFAULT_RANGE_MAX,
    project: bool = False,
    latlim: Optional[Sequence[float]] = None,
    lonlim: Optional[Sequence[float]] = None,
    max_cells: int = MAX_GRID_CELLS,
) -> SampledGrid:
    """
    Sample one polar parameter onto a Cartesian grid.

    Nearest-bin sampling: every cell takes the value of the polar bin its
    centre falls in, or NODATA when that bin lies outside the scan.
    """
    return sample_layers(
        param.geo, {param.name: param}, cellsize, range_max, project, latlim, lonlim, max_cells
    )

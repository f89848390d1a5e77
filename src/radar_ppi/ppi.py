"""
Plan position indicators (PPIs): georeferenced Cartesian rasters sampled
from one polar scan.
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, Optional, Sequence, Tuple, Union

from .constants import DEFAULT_CELLSIZE, DEFAULT_RANGE_MAX, MAX_GRID_CELLS
from .exceptions import DataAbsent, InvalidArgument
from .geometry import BoundingBox, GridDefinition
from .layer import Layer
from .polar import SampleKind, ScanGeo
from .sampler import SampledGrid, sample_layers, sample_polar

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False, repr=False)
class PPI:
    """
    Single-radar plan position indicator.

    Attributes
    ----------
    grid : GridDefinition
        Grid in the radar's azimuthal equidistant projection (meters)
    layers : mapping
        Read-only ordered mapping of parameter name to Layer, each of shape grid.shape
    geo : ScanGeo
        Metadata of the originating scan (lat, lon, height, elangle,
        rscale, ascale)
    bbox : BoundingBox
        Geographic extent of the grid
    projection : str
        PROJ definition of the grid's projection
    """

    grid: GridDefinition
    layers: Dict[str, Layer]
    geo: ScanGeo
    bbox: BoundingBox
    projection: str

    merged = False

    def __post_init__(self):
        layers = dict(self.layers)
        for name, layer in layers.items():
            if layer.shape != self.grid.shape:
                raise InvalidArgument(f"Layer '{name}' shape {layer.shape} does not match grid shape {self.grid.shape}")
        object.__setattr__(self, "layers", MappingProxyType(layers))

    @classmethod
    def from_sampled(cls, sampled: SampledGrid, geo: ScanGeo) -> "PPI":
        return cls(sampled.grid, sampled.layers, geo, sampled.bbox, sampled.projection)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self.layers)

    @property
    def dims(self) -> Tuple[int, int, int]:
        """(nlayers, nx, ny)"""
        return (len(self.layers), self.grid.nx, self.grid.ny)

    def layer(self, name: str) -> Layer:
        try:
            return self.layers[name]
        except KeyError:
            raise DataAbsent(f"parameter '{name}' not present in PPI (available: {', '.join(self.layers)})") from None

    def select(self, *names: str) -> "PPI":
        """
        New PPI holding only the named layers, sharing grid and geo.

        Names not present are skipped; selecting only absent names gives a
        PPI without layers.
        """
        if len(names) == 1 and not isinstance(names[0], str):
            names = tuple(names[0])
        missing = [n for n in names if n not in self.layers]
        if missing:
            logger.debug(f"Parameters not present in PPI: {', '.join(missing)}")
        layers = {n: self.layers[n] for n in names if n in self.layers}
        return PPI(self.grid, layers, self.geo, self.bbox, self.projection)

    def __getitem__(self, key: Union[str, Sequence[str]]) -> "PPI":
        if isinstance(key, str):
            return self.select(key)
        return self.select(*key)

    def __contains__(self, name) -> bool:
        return name in self.layers

    def __repr__(self) -> str:
        return (
            f"PPI(\n"
            f"  quantities={' '.join(self.layers)},\n"
            f"  dims={self.grid.nx} x {self.grid.ny} pixels,\n"
            f"  cellsize={self.grid.cellsize[0]:g}m,\n"
            f"  radar=({self.geo.lat}, {self.geo.lon}), elangle={self.geo.elangle},\n"
            f"  merged={self.merged}\n"
            f")"
        )


def make_ppi(
    x,
    cellsize: float = DEFAULT_CELLSIZE,
    range_max: float = DEFAULT_RANGE_MAX,
    project: bool = False,
    latlim: Optional[Sequence[float]] = None,
    lonlim: Optional[Sequence[float]] = None,
    max_cells: int = MAX_GRID_CELLS,
) -> PPI:
    """
    Make a plan position indicator from a scan parameter or a whole scan.

    Parameters
    ----------
    x : PolarParam or PolarScan
        Dispatched on ``x.kind``: a parameter yields a one-layer PPI, a
        scan one layer per parameter on a shared grid
    cellsize : float, optional
        Cartesian cell size in meters (default: 500)
    range_max : float, optional
        Maximum range in meters (default: 50000)
    project : bool, optional
        Vertically project onto the earth's surface using the elevation
        angle (default: False)
    latlim, lonlim : pair of float, optional
        Geographic extent to sample instead of the range_max square
    max_cells : int, optional
        Maximum number of grid cells

    Returns
    -------
    PPI
        In the radar's azimuthal equidistant projection

    Raises
    ------
    TypeError
        ``x`` is neither a parameter nor a scan
    """
    kind = getattr(x, "kind", None)
    options = dict(
        cellsize=cellsize, range_max=range_max, project=project,
        latlim=latlim, lonlim=lonlim, max_cells=max_cells,
    )
    if kind is SampleKind.PARAM:
        sampled = sample_polar(x, **options)
    elif kind is SampleKind.SCAN:
        if len(x.params) == 1:
            sampled = sample_polar(next(iter(x.params.values())), **options)
        else:
            sampled = sample_layers(x.geo, x.params, **options)
    else:
        raise TypeError(f"'make_ppi' expects a PolarParam or PolarScan, got {type(x).__name__}")
    return PPI.from_sampled(sampled, x.geo)


def make_ppis(scans: Iterable, **kwargs) -> list:
    """Make one PPI per scan (or parameter), e.g. for every scan of a volume."""
    return [make_ppi(scan, **kwargs) for scan in scans]

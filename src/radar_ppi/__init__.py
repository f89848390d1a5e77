"""
radar_ppi - Plan position indicators and composites from polar radar scans
"""

from .exceptions import RadarPPIError, InvalidArgument, ProjectionError, DataAbsent
from .polar import (
    CellState,
    SampleKind,
    SiteGeo,
    ScanGeo,
    PolarParam,
    PolarScan,
    PolarVolume,
    decode_quantity,
    volume_from_odim,
)
from .geometry import GridDefinition, BoundingBox
from .layer import Layer
from .projection import (
    aeqd_projection,
    geographic_to_projected,
    projected_to_geographic,
    cartesian_to_polar,
    polar_to_bin_index,
)
from .sampler import (
    SamplingIndex,
    SampledGrid,
    build_grid,
    compute_sampling_index,
    apply_index,
    sample_polar,
    sample_layers,
)
from .ppi import PPI, make_ppi, make_ppis
from .composite import Composite, RadarRef, composite, merge_max
from .cache import clear_caches
from .utils import volume_from_radar, get_radar_info

__version__ = "0.1.0"

__all__ = [
    # Errors
    "RadarPPIError",
    "InvalidArgument",
    "ProjectionError",
    "DataAbsent",
    # Polar data model
    "CellState",
    "SampleKind",
    "SiteGeo",
    "ScanGeo",
    "PolarParam",
    "PolarScan",
    "PolarVolume",
    "decode_quantity",
    "volume_from_odim",
    # Grids
    "GridDefinition",
    "BoundingBox",
    "Layer",
    # Projections
    "aeqd_projection",
    "geographic_to_projected",
    "projected_to_geographic",
    "cartesian_to_polar",
    "polar_to_bin_index",
    # Sampling
    "SamplingIndex",
    "SampledGrid",
    "build_grid",
    "compute_sampling_index",
    "apply_index",
    "sample_polar",
    "sample_layers",
    # Products
    "PPI",
    "make_ppi",
    "make_ppis",
    "Composite",
    "RadarRef",
    "composite",
    "merge_max",
    # Utilities
    "clear_caches",
    "volume_from_radar",
    "get_radar_info",
]

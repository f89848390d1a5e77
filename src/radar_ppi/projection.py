"""
Coordinate transforms between WGS84, radar-centred azimuthal equidistant
planes, and polar (range, azimuth) bins.
"""

import logging
from typing import Tuple, Union

import numpy as np
import pyproj
from pyproj.exceptions import CRSError, ProjError

from .cache import TRANSFORMER_CACHE
from .constants import WGS84
from .exceptions import InvalidArgument, ProjectionError

logger = logging.getLogger(__name__)

ProjectionLike = Union[str, pyproj.CRS]


def _maybe_scalar(arr: np.ndarray):
    """Return a Python float for 0-d results, the array otherwise."""
    arr = np.asarray(arr)
    return arr.item() if arr.ndim == 0 else arr


def aeqd_projection(lat: float, lon: float) -> str:
    """
    Azimuthal equidistant projection centred on a radar, in meters.

    Parameters
    ----------
    lat, lon : float
        Radar position in decimal degrees (projection centre)

    Returns
    -------
    str
        PROJ definition string
    """
    if not (np.isfinite(lat) and np.isfinite(lon)) or abs(lat) > 90.0:
        raise ProjectionError(f"Invalid projection centre lat={lat}, lon={lon}")
    return f"+proj=aeqd +lat_0={float(lat)} +lon_0={float(lon)} +units=m +datum=WGS84 +no_defs"


def to_crs(projection: ProjectionLike) -> pyproj.CRS:
    """Parse a projection definition, raising ProjectionError when malformed."""
    if isinstance(projection, pyproj.CRS):
        return projection
    if not isinstance(projection, str) or not projection.strip():
        raise ProjectionError(f"Projection must be a PROJ/EPSG string or pyproj.CRS, got {projection!r}")
    try:
        return pyproj.CRS.from_user_input(projection)
    except CRSError as exc:
        raise ProjectionError(f"Malformed projection definition '{projection}': {exc}") from exc


def _crs_key(projection: ProjectionLike) -> str:
    if isinstance(projection, pyproj.CRS):
        return projection.to_wkt()
    return projection


def get_transformer(source: ProjectionLike, target: ProjectionLike) -> pyproj.Transformer:
    """
    Get a cached lon/lat-ordered (always_xy) transformer between two CRSs.
    """
    key = (_crs_key(source), _crs_key(target))
    transformer = TRANSFORMER_CACHE.get(key)
    if transformer is None:
        src_crs = to_crs(source)
        dst_crs = to_crs(target)
        try:
            transformer = pyproj.Transformer.from_crs(src_crs, dst_crs, always_xy=True)
        except (CRSError, ProjError) as exc:
            raise ProjectionError(f"Cannot transform from '{source}' to '{target}': {exc}") from exc
        TRANSFORMER_CACHE[key] = transformer
        logger.debug(f"Built transformer {key[0]} -> {key[1]}")
    return transformer


def _transform(transformer: pyproj.Transformer, a, b) -> Tuple[np.ndarray, np.ndarray]:
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    try:
        out_a, out_b = transformer.transform(a, b)
    except ProjError as exc:
        raise ProjectionError(f"Coordinate transform failed: {exc}") from exc
    return _maybe_scalar(out_a), _maybe_scalar(out_b)


def geographic_to_projected(lon, lat, projection: ProjectionLike):
    """
    Transform WGS84 longitude/latitude to projected x/y.

    Parameters
    ----------
    lon, lat : float or np.ndarray
        Geographic coordinates in decimal degrees
    projection : str or pyproj.CRS
        Target projection, typically from ``aeqd_projection``

    Returns
    -------
    x, y : float or np.ndarray
        Projected coordinates (meters for an aeqd projection)
    """
    return _transform(get_transformer(WGS84, projection), lon, lat)


def projected_to_geographic(x, y, projection: ProjectionLike):
    """
    Transform projected x/y back to WGS84 longitude/latitude.

    Inverse of ``geographic_to_projected``.
    """
    return _transform(get_transformer(projection, WGS84), x, y)


def cartesian_to_polar(x, y, elevation_rad: float = 0.0):
    """
    Convert planar offsets from the radar to slant range and azimuth.

    Parameters
    ----------
    x, y : float or np.ndarray
        East and north offsets in meters
    elevation_rad : float, optional
        Beam elevation in radians; the ground distance is divided by its
        cosine. No earth-curvature correction is applied.

    Returns
    -------
    range : float or np.ndarray
        Slant range in meters
    azimuth : float or np.ndarray
        Compass bearing in degrees, clockwise from north, in [0, 360).
        The bearing of the origin itself is reported as 0.
    """
    cos_elev = np.cos(elevation_rad)
    if not np.isfinite(cos_elev) or cos_elev <= 0:
        raise InvalidArgument(f"Elevation must be within (-pi/2, pi/2) radians, got {elevation_rad}")

    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    ground = np.hypot(x, y)
    slant = ground / cos_elev

    # same as (90 - atan2(y, x)) mod 360, exact for due north
    azimuth = np.mod(np.degrees(np.arctan2(x, y)), 360.0)
    # np.mod may round tiny negative angles up to exactly 360
    azimuth = np.where(azimuth >= 360.0, azimuth - 360.0, azimuth)
    azimuth = np.where(ground == 0.0, 0.0, azimuth)
    return _maybe_scalar(slant), _maybe_scalar(azimuth)


def polar_to_bin_index(
    range_m,
    azimuth_deg,
    range_bin_size: float,
    azim_bin_size: float,
):
    """
    Convert polar coordinates to 1-based (range_bin, azimuth_bin) indices.

    ``floor(1 + range / range_bin_size)`` and ``floor(1 + azimuth /
    azim_bin_size)``, so bin k covers [(k-1)*size, k*size).
    Non-finite coordinates map to index 0, which is outside every grid.
    """
    for name, size in (("range_bin_size", range_bin_size), ("azim_bin_size", azim_bin_size)):
        if not np.isfinite(size) or size <= 0:
            raise InvalidArgument(f"'{name}' must be strictly positive, got {size}")

    range_m, azimuth_deg = np.broadcast_arrays(
        np.asarray(range_m, dtype=np.float64), np.asarray(azimuth_deg, dtype=np.float64)
    )
    rb = np.floor(1.0 + range_m / range_bin_size)
    ab = np.floor(1.0 + azimuth_deg / azim_bin_size)
    rb = np.where(np.isfinite(rb), rb, 0).astype(np.int64)
    ab = np.where(np.isfinite(ab), ab, 0).astype(np.int64)
    if rb.ndim == 0:
        return int(rb), int(ab)
    return rb, ab

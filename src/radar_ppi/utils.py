"""
Utility functions for PyART integration.

The functions only rely on the attributes of ``pyart.core.Radar`` used
below, so Py-ART itself is not needed to import this module.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from .constants import FIELD_ALIASES
from .exceptions import DataAbsent, InvalidArgument
from .polar import CellState, PolarParam, PolarScan, PolarVolume, SiteGeo

logger = logging.getLogger(__name__)


def get_available_fields(radar) -> list:
    """
    Get list of available field names in a radar object.

    Parameters
    ----------
    radar : pyart.core.Radar
        PyART radar object

    Returns
    -------
    list
        List of field names
    """
    return list(radar.fields.keys())


def resolve_field_names(radar, fields: Optional[Sequence[str]] = None) -> Dict[str, str]:
    """
    Map ODIM quantity names to the field names used in a radar object.

    Parameters
    ----------
    radar : pyart.core.Radar
        PyART radar object
    fields : sequence of str, optional
        ODIM quantities wanted. By default every field of the radar is
        kept, under its ODIM name when it has a known alias.

    Returns
    -------
    dict
        ODIM name -> radar field name, only for fields that exist
    """
    available = get_available_fields(radar)
    if fields is None:
        mapping = {}
        for name in available:
            odim = next((k for k, aliases in FIELD_ALIASES.items() if name in aliases), name)
            mapping.setdefault(odim, name)
        return mapping

    mapping = {}
    for odim in fields:
        for alias in FIELD_ALIASES.get(odim, [odim]):
            if alias in available:
                mapping[odim] = alias
                break
    return mapping


def get_radar_site(radar) -> SiteGeo:
    """Radar position (lat, lon, altitude) as a SiteGeo."""
    return SiteGeo(
        float(radar.latitude['data'][0]),
        float(radar.longitude['data'][0]),
        float(radar.altitude['data'][0]),
    )


def get_radar_datetime(radar) -> Optional[datetime]:
    """
    Time of the first ray as an aware UTC datetime.

    Returns None when the CF time units cannot be parsed.
    """
    units = str(radar.time.get('units', ''))
    if not units.startswith('seconds since '):
        return None
    reference = units[len('seconds since '):].strip().replace('Z', '+00:00')
    try:
        start = datetime.fromisoformat(reference)
    except ValueError:
        logger.warning(f"Cannot parse radar time units '{units}'")
        return None
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    return start + timedelta(seconds=float(radar.time['data'][0]))


def _range_layout(radar) -> Tuple[float, int]:
    """
    Gate spacing and the number of empty bins in front of the first gate.

    PyART ranges are gate centres; bin k of a PolarParam covers
    [(k-1)*rscale, k*rscale), so the first gate goes to the bin holding
    its centre and the bins before it are padded.
    """
    ranges = np.asarray(radar.range['data'], dtype=np.float64)
    if ranges.size < 2:
        raise InvalidArgument("radar must have at least two gates to derive the range resolution")
    spacing = np.diff(ranges)
    rscale = float(spacing[0])
    if rscale <= 0 or not np.allclose(spacing, rscale, rtol=1e-6, atol=1e-3):
        raise InvalidArgument("radar gates must be evenly spaced with increasing range")
    if ranges[0] < 0:
        raise InvalidArgument(f"first gate at negative range {ranges[0]} m")
    pad = int(np.floor(ranges[0] / rscale + 1e-9))
    if pad:
        logger.debug(f"First gate at {ranges[0]:g} m, padding {pad} near-range bin(s) with NODATA")
    return rscale, pad


def _sweep_param(radar, sweep: int, odim: str, field_name: str, geo, order: np.ndarray, pad: int = 0) -> PolarParam:
    start = int(radar.sweep_start_ray_index['data'][sweep])
    end = int(radar.sweep_end_ray_index['data'][sweep])
    data = np.ma.masked_invalid(radar.fields[field_name]['data'][start:end + 1])
    data = data[order]

    state = np.where(np.ma.getmaskarray(data), CellState.NODATA, CellState.PRESENT).astype(np.int8)
    values = np.ma.getdata(data).astype(np.float64)
    # (nrays, ngates) -> (nbins, nrays) with the near-range bins in front
    values = np.pad(values.T, ((pad, 0), (0, 0)), constant_values=np.nan)
    state = np.pad(state.T, ((pad, 0), (0, 0)), constant_values=CellState.NODATA)
    attributes = {k: v for k, v in radar.fields[field_name].items() if k != 'data'}
    return PolarParam(odim, values, state, geo, attributes)


def volume_from_radar(radar, fields: Optional[Sequence[str]] = None) -> PolarVolume:
    """
    Convert a PyART radar object to a PolarVolume.

    Parameters
    ----------
    radar : pyart.core.Radar
        PyART radar object with PPI sweeps
    fields : sequence of str, optional
        ODIM quantities to keep (e.g. ['DBZH', 'VRADH']); all fields by
        default. Py-ART names are resolved through FIELD_ALIASES.

    Returns
    -------
    PolarVolume
        One scan per sweep, in sweep order

    Raises
    ------
    DataAbsent
        None of the requested fields is present
    InvalidArgument
        Fewer than two gates, unevenly spaced gates or a negative first
        gate range

    Notes
    -----
    Masked and non-finite gates become NODATA; PyART has no separate
    undetect marker. ``rscale`` is the gate spacing and each gate lands in
    the range bin holding its centre; bins in front of the first gate are
    NODATA. Rays of every sweep are sorted by azimuth and
    ``ascale = 360 / nrays``.
    """
    mapping = resolve_field_names(radar, fields)
    if not mapping:
        raise DataAbsent(f"none of the requested fields {list(fields or [])} present in radar")

    rscale, pad = _range_layout(radar)

    site = get_radar_site(radar)
    scans = []
    for sweep in range(int(radar.nsweeps)):
        start = int(radar.sweep_start_ray_index['data'][sweep])
        end = int(radar.sweep_end_ray_index['data'][sweep])
        azimuths = np.asarray(radar.azimuth['data'][start:end + 1], dtype=np.float64)
        order = np.argsort(np.mod(azimuths, 360.0), kind='stable')
        geo = site.with_scan(float(radar.fixed_angle['data'][sweep]), rscale, 360.0 / azimuths.size)

        params = {
            odim: _sweep_param(radar, sweep, odim, name, geo, order, pad)
            for odim, name in mapping.items()
        }
        scans.append(PolarScan(params, geo))
        logger.debug(f"Sweep {sweep}: elangle {geo.elangle}, {azimuths.size} rays, {', '.join(params)}")

    info = get_radar_info(radar)
    logger.info(f"Converted {info['radar_name']} with {len(scans)} sweep(s): {', '.join(mapping)}")
    return PolarVolume(
        info['radar_name'],
        get_radar_datetime(radar),
        site,
        tuple(scans),
        {'metadata': dict(radar.metadata)},
    )


def get_radar_info(radar) -> dict:
    """
    Get basic information about a radar object.

    Parameters
    ----------
    radar : pyart.core.Radar
        PyART radar object

    Returns
    -------
    dict
        Dictionary with radar metadata
    """
    return {
        'radar_name': radar.metadata.get('instrument_name', 'UNKNOWN'),
        'strategy': radar.metadata.get('scan_id', 'UNKNOWN'),
        'nrays': radar.nrays,
        'ngates': radar.ngates,
        'nsweeps': radar.nsweeps,
        'fields': list(radar.fields.keys()),
        'range_min': float(radar.range['data'][0]),
        'range_max': float(radar.range['data'][-1]),
        'latitude': float(radar.latitude['data'][0]),
        'longitude': float(radar.longitude['data'][0]),
        'altitude': float(radar.altitude['data'][0]),
    }

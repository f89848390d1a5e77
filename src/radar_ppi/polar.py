"""
Polar radar data model: volumes, scans and scan parameters.

Physical values are decoded once, when a parameter is built, and every grid
carries an explicit per-cell state next to its values:

- ``CellState.PRESENT``: a measured value
- ``CellState.NODATA``: no reading at all (never takes part in a max merge)
- ``CellState.UNDETECT``: measured, below the detection threshold

Parameter grids are indexed ``[range_bin, azimuth_bin]`` with shape
``(nbins, nrays)``.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .constants import DEFAULT_PARAMS, VARIABLE_UNITS
from .exceptions import DataAbsent, InvalidArgument

logger = logging.getLogger(__name__)


class CellState(IntEnum):
    """State tag stored per cell alongside the physical value."""
    PRESENT = 0
    NODATA = 1
    UNDETECT = 2


class SampleKind(Enum):
    """Discriminant of objects that can be sampled onto a Cartesian grid."""
    PARAM = "param"
    SCAN = "scan"


def _readonly(arr: np.ndarray, dtype) -> np.ndarray:
    out = np.array(arr, dtype=dtype, copy=True)
    out.flags.writeable = False
    return out


def _is_number(value) -> bool:
    return (
        isinstance(value, (int, float, np.integer, np.floating))
        and not isinstance(value, (bool, np.bool_))
        and bool(np.isfinite(value))
    )


def _check_range(name: str, value, lo: float, hi: float, unit: str) -> float:
    if not _is_number(value) or value < lo or value > hi:
        raise InvalidArgument(f"'{name}' should be numeric between {lo:g} and {hi:g} {unit}")
    return float(value)


# -------------------------------------------------------------------------
# Geo metadata
# -------------------------------------------------------------------------

@dataclass(frozen=True)
class SiteGeo:
    """
    Geographic origin of a radar.

    Attributes
    ----------
    lat : float
        Latitude in decimal degrees, within [-90, 90]
    lon : float
        Longitude in decimal degrees, within [-360, 360]
    height : float
        Height of the antenna in meters above sea level (>= 0)
    """

    lat: float
    lon: float
    height: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "lat", _check_range("lat", self.lat, -90.0, 90.0, "degrees"))
        object.__setattr__(self, "lon", _check_range("lon", self.lon, -360.0, 360.0, "degrees"))
        if not _is_number(self.height) or self.height < 0:
            raise InvalidArgument("'height' should be a positive number of meters above sea level")
        object.__setattr__(self, "height", float(self.height))

    def with_scan(self, elangle: float, rscale: float, ascale: float) -> "ScanGeo":
        """Attach the sweep geometry of one scan to this origin."""
        return ScanGeo(self.lat, self.lon, self.height, elangle, rscale, ascale)


@dataclass(frozen=True)
class ScanGeo:
    """
    Origin plus sweep geometry shared by all parameters of a scan.

    Attributes
    ----------
    lat, lon, height : float
        Radar origin (see SiteGeo)
    elangle : float
        Elevation angle of the sweep in degrees
    rscale : float
        Range bin size in meters
    ascale : float
        Azimuth bin size in degrees (360 / nrays)
    """

    lat: float
    lon: float
    height: float
    elangle: float
    rscale: float
    ascale: float

    def __post_init__(self):
        site = SiteGeo(self.lat, self.lon, self.height)
        object.__setattr__(self, "lat", site.lat)
        object.__setattr__(self, "lon", site.lon)
        object.__setattr__(self, "height", site.height)
        object.__setattr__(self, "elangle", _check_range("elangle", self.elangle, -90.0, 90.0, "degrees"))
        for name in ("rscale", "ascale"):
            value = getattr(self, name)
            if not _is_number(value) or value <= 0:
                raise InvalidArgument(f"'{name}' should be a strictly positive number, got {value!r}")
            object.__setattr__(self, name, float(value))

    @property
    def site(self) -> SiteGeo:
        return SiteGeo(self.lat, self.lon, self.height)

    def as_dict(self) -> Dict[str, float]:
        return {
            "lat": self.lat,
            "lon": self.lon,
            "height": self.height,
            "elangle": self.elangle,
            "rscale": self.rscale,
            "ascale": self.ascale,
        }


# -------------------------------------------------------------------------
# Decoding
# -------------------------------------------------------------------------

def decode_quantity(
    raw: np.ndarray,
    gain: float = 1.0,
    offset: float = 0.0,
    nodata: Optional[float] = None,
    undetect: Optional[float] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Decode raw samples into physical values and per-cell states.

    Parameters
    ----------
    raw : np.ndarray
        Raw integer or float samples, 2D
    gain, offset : float
        Physical value is ``offset + gain * raw``
    nodata : float, optional
        Raw value marking cells without a reading
    undetect : float, optional
        Raw value marking cells below the detection threshold

    Returns
    -------
    values : np.ndarray
        float64 physical values, NaN where the state is not PRESENT
    state : np.ndarray
        int8 array of CellState codes

    Notes
    -----
    When ``nodata == undetect`` the cell is NODATA. Raw NaN is NODATA.
    """
    raw = np.asarray(raw)
    if raw.ndim != 2:
        raise InvalidArgument(f"raw quantity must be 2D, got shape {raw.shape}")

    state = np.full(raw.shape, CellState.PRESENT, dtype=np.int8)
    if undetect is not None:
        state[raw == undetect] = CellState.UNDETECT
    if nodata is not None:
        state[raw == nodata] = CellState.NODATA
    if np.issubdtype(raw.dtype, np.floating):
        state[np.isnan(raw)] = CellState.NODATA

    values = float(offset) + float(gain) * raw.astype(np.float64)
    values[state != CellState.PRESENT] = np.nan
    return values, state


def _as_str(value) -> str:
    if isinstance(value, np.ndarray):
        value = value.ravel()[0] if value.size else ""
    if isinstance(value, (bytes, np.bytes_)):
        return value.decode("utf-8")
    return str(value)


def _optional_float(what: Mapping[str, Any], key: str) -> Optional[float]:
    value = what.get(key)
    if value is None:
        return None
    return float(np.asarray(value).ravel()[0])


# -------------------------------------------------------------------------
# Parameters, scans, volumes
# -------------------------------------------------------------------------

@dataclass(frozen=True, eq=False, repr=False)
class PolarParam:
    """
    One decoded scan parameter (e.g. DBZH) on a polar grid.

    Attributes
    ----------
    name : str
        ODIM quantity name
    values : np.ndarray
        Physical values, shape (nbins, nrays), read-only
    state : np.ndarray
        CellState codes, shape (nbins, nrays), read-only
    geo : ScanGeo
        Radar origin and sweep geometry
    attributes : mapping
        Opaque ``what``/``how`` metadata of the quantity
    """

    name: str
    values: np.ndarray
    state: np.ndarray
    geo: ScanGeo
    attributes: Mapping[str, Any] = field(default_factory=dict)

    kind = SampleKind.PARAM

    def __post_init__(self):
        values = _readonly(self.values, np.float64)
        state = _readonly(self.state, np.int8)
        if values.ndim != 2 or values.shape != state.shape:
            raise InvalidArgument(
                f"values {values.shape} and state {state.shape} must be 2D arrays of equal shape"
            )
        if not isinstance(self.geo, ScanGeo):
            raise InvalidArgument("geo must be a ScanGeo")
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "state", state)
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    @classmethod
    def from_raw(
        cls,
        name: str,
        raw: np.ndarray,
        geo: ScanGeo,
        gain: float = 1.0,
        offset: float = 0.0,
        nodata: Optional[float] = None,
        undetect: Optional[float] = None,
        attributes: Optional[Mapping[str, Any]] = None,
    ) -> "PolarParam":
        """Build a parameter from raw samples indexed [range_bin, azimuth_bin]."""
        values, state = decode_quantity(raw, gain, offset, nodata, undetect)
        return cls(name, values, state, geo, attributes or {})

    @classmethod
    def from_odim(cls, what: Mapping[str, Any], data: np.ndarray, geo: ScanGeo) -> "PolarParam":
        """
        Build a parameter from an ODIM ``dataN`` group.

        ODIM stores the data as (nrays, nbins); it is transposed here.
        """
        if "quantity" not in what:
            raise InvalidArgument("ODIM 'what' group has no 'quantity' attribute")
        gain = _optional_float(what, "gain")
        offset = _optional_float(what, "offset")
        return cls.from_raw(
            _as_str(what["quantity"]),
            np.asarray(data).T,
            geo,
            gain=1.0 if gain is None else gain,
            offset=0.0 if offset is None else offset,
            nodata=_optional_float(what, "nodata"),
            undetect=_optional_float(what, "undetect"),
            attributes={"what": dict(what)},
        )

    @property
    def shape(self) -> Tuple[int, int]:
        return self.values.shape

    @property
    def nbins(self) -> int:
        return self.values.shape[0]

    @property
    def nrays(self) -> int:
        return self.values.shape[1]

    @property
    def units(self) -> str:
        """Units from the attributes, else the usual units of the quantity."""
        return str(self.attributes.get("units", VARIABLE_UNITS.get(self.name, "")))

    def take(self, range_bin: np.ndarray, azim_bin: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Fetch values and states at 1-based bin indices.

        Indices outside [1, nbins] x [1, nrays] yield NODATA.
        """
        rb = np.asarray(range_bin, dtype=np.int64)
        ab = np.asarray(azim_bin, dtype=np.int64)
        inside = (rb >= 1) & (rb <= self.nbins) & (ab >= 1) & (ab <= self.nrays)

        values = np.full(rb.shape, np.nan, dtype=np.float64)
        state = np.full(rb.shape, CellState.NODATA, dtype=np.int8)
        rows = rb[inside] - 1
        cols = ab[inside] - 1
        values[inside] = self.values[rows, cols]
        state[inside] = self.state[rows, cols]
        return values, state

    def masked(self) -> np.ma.MaskedArray:
        """Values as a masked array, masking every non-present cell."""
        return np.ma.masked_array(self.values, mask=self.state != CellState.PRESENT)

    def __repr__(self) -> str:
        return (
            f"PolarParam(\n"
            f"  name={self.name},\n"
            f"  dims={self.nbins} bins x {self.nrays} rays,\n"
            f"  elangle={self.geo.elangle},\n"
            f"  rscale={self.geo.rscale}m, ascale={self.geo.ascale}deg\n"
            f")"
        )


@dataclass(frozen=True, eq=False, repr=False)
class PolarScan:
    """
    One elevation sweep: parameters sharing bin geometry and geo metadata.

    Attributes
    ----------
    params : mapping
        Ordered mapping of parameter name to PolarParam
    geo : ScanGeo
        Radar origin and sweep geometry
    attributes : mapping
        Opaque ``how``/``what``/``where`` groups of the scan
    """

    params: Mapping[str, PolarParam]
    geo: ScanGeo
    attributes: Mapping[str, Any] = field(default_factory=dict)

    kind = SampleKind.SCAN

    def __post_init__(self):
        params = dict(self.params)
        if not params:
            raise InvalidArgument("a scan needs at least one parameter")
        shapes = {p.shape for p in params.values()}
        if len(shapes) != 1:
            raise InvalidArgument(f"all parameters of a scan must share bin dimensions, got {sorted(shapes)}")
        for name, param in params.items():
            if param.geo != self.geo:
                raise InvalidArgument(f"parameter '{name}' geo {param.geo} differs from scan geo {self.geo}")
        object.__setattr__(self, "params", MappingProxyType(params))
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self.params)

    @property
    def elangle(self) -> float:
        return self.geo.elangle

    @property
    def rscale(self) -> float:
        return self.geo.rscale

    @property
    def ascale(self) -> float:
        return self.geo.ascale

    @property
    def shape(self) -> Tuple[int, int]:
        return next(iter(self.params.values())).shape

    @property
    def nbins(self) -> int:
        return self.shape[0]

    @property
    def nrays(self) -> int:
        return self.shape[1]

    @property
    def dims(self) -> Tuple[int, int, int]:
        """(nparams, nbins, nrays)"""
        return (len(self.params), self.nbins, self.nrays)

    def __getitem__(self, name: str) -> PolarParam:
        try:
            return self.params[name]
        except KeyError:
            raise DataAbsent(f"parameter '{name}' not present in scan (available: {', '.join(self.params)})") from None

    def __contains__(self, name) -> bool:
        return name in self.params

    def __repr__(self) -> str:
        return (
            f"PolarScan(\n"
            f"  parameters={' '.join(self.params)},\n"
            f"  elangle={self.elangle},\n"
            f"  dims={self.nbins} bins x {self.nrays} rays\n"
            f")"
        )


@dataclass(frozen=True, eq=False, repr=False)
class PolarVolume:
    """
    All scans of one radar at one nominal time.

    Attributes
    ----------
    radar : str
        Radar identifier
    datetime : datetime or None
        Nominal time (UTC)
    geo : SiteGeo
        Radar origin shared by every scan
    scans : tuple of PolarScan
        Sweeps, ascending elevation when sorted at assembly
    attributes : mapping
        Opaque ``how``/``what``/``where`` groups of the volume
    """

    radar: str
    datetime: Optional[datetime]
    geo: SiteGeo
    scans: Tuple[PolarScan, ...]
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        scans = tuple(self.scans)
        for i, scan in enumerate(scans):
            if scan.geo.site != self.geo:
                raise InvalidArgument(f"scan {i} origin {scan.geo.site} differs from volume origin {self.geo}")
        object.__setattr__(self, "scans", scans)
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    def __len__(self) -> int:
        return len(self.scans)

    def __iter__(self) -> Iterator[PolarScan]:
        return iter(self.scans)

    def elangles(self) -> np.ndarray:
        """Elevation angle of every scan, in volume order."""
        return np.array([s.elangle for s in self.scans], dtype=float)

    def get_scan(self, angle: float) -> PolarScan:
        """Return the scan with elevation closest to ``angle``."""
        if not self.scans:
            raise DataAbsent("volume contains no scans")
        return self.scans[int(np.argmin(np.abs(self.elangles() - angle)))]

    @property
    def dims(self) -> Tuple[int]:
        return (len(self.scans),)

    def __repr__(self) -> str:
        elevs = " ".join(f"{e:g}" for e in self.elangles())
        return (
            f"PolarVolume(\n"
            f"  radar={self.radar},\n"
            f"  datetime={self.datetime},\n"
            f"  n_scans={len(self.scans)},\n"
            f"  elangles=[{elevs}]\n"
            f")"
        )


# -------------------------------------------------------------------------
# Assembly from ODIM-style attribute trees
# -------------------------------------------------------------------------

def radar_from_source(source: str) -> str:
    """Extract the ``RAD:`` identifier from an ODIM source string."""
    for token in _as_str(source).split(","):
        token = token.strip()
        if token.startswith("RAD:"):
            return token[len("RAD:"):]
    return ""


def datetime_from_odim(date: str, time: str) -> datetime:
    """Parse ODIM ``date`` (YYYYmmdd) and ``time`` (HHMMSS) as UTC."""
    return datetime.strptime(f"{_as_str(date)} {_as_str(time)}", "%Y%m%d %H%M%S").replace(tzinfo=timezone.utc)


def _group_number(name: str) -> int:
    match = re.search(r"(\d+)$", name)
    return int(match.group(1)) if match else 0


def _groups(tree: Mapping[str, Any], prefix: str):
    keys = [k for k in tree if re.fullmatch(rf"{prefix}\d+", k)]
    return sorted(keys, key=_group_number)


def _scan_from_odim(
    name: str,
    group: Mapping[str, Any],
    site: SiteGeo,
    params: Optional[Sequence[str]],
) -> PolarScan:
    where = dict(group.get("where", {}))
    data_keys = _groups(group, "data")
    if not data_keys:
        raise DataAbsent(f"no data groups in {name}")

    if "nrays" in where:
        nrays = int(np.asarray(where["nrays"]).ravel()[0])
    else:
        nrays = int(np.asarray(group[data_keys[0]]["data"]).shape[0])
    geo = site.with_scan(
        float(np.asarray(where["elangle"]).ravel()[0]),
        float(np.asarray(where["rscale"]).ravel()[0]),
        360.0 / nrays,
    )

    quantities = {}
    for key in data_keys:
        what = dict(group[key].get("what", {}))
        if params is not None and _as_str(what.get("quantity", "")) not in params:
            continue
        param = PolarParam.from_odim(what, group[key]["data"], geo)
        quantities[param.name] = param

    if not quantities:
        raise DataAbsent(f"none of the requested scan parameters present in {name}")

    attributes = {k: dict(group[k]) for k in ("how", "what", "where") if k in group}
    return PolarScan(quantities, geo, attributes)


def volume_from_odim(
    tree: Mapping[str, Any],
    params: Union[str, Sequence[str]] = DEFAULT_PARAMS,
    sort: bool = True,
    lat: Optional[float] = None,
    lon: Optional[float] = None,
    height: Optional[float] = None,
    elangle_min: float = 0.0,
    elangle_max: float = 90.0,
) -> PolarVolume:
    """
    Assemble a PolarVolume from an ODIM-style nested mapping.

    Parameters
    ----------
    tree : mapping
        Root group as read by a file decoder: ``what``/``where``/``how``
        attribute dicts and ``datasetN`` groups, each with ``where``
        (elangle, rscale, nrays) and ``dataN`` groups holding ``what``
        (quantity, gain, offset, nodata, undetect) and ``data`` (nrays, nbins)
    params : str or sequence of str, optional
        Quantities to keep, or ``"all"``
    sort : bool, optional
        Sort scans by ascending elevation (default: True)
    lat, lon, height : float, optional
        Radar origin overriding the values stored in ``where``
    elangle_min, elangle_max : float, optional
        Elevation window of the scans to keep, in degrees

    Returns
    -------
    PolarVolume

    Raises
    ------
    InvalidArgument
        Non-logical ``sort``, out-of-range overrides, or missing origin
    DataAbsent
        A kept scan has none of the requested quantities
    """
    if not isinstance(sort, bool):
        raise InvalidArgument("'sort' should be logical")

    root_where = dict(tree.get("where", {}))
    root_what = dict(tree.get("what", {}))

    origin = {}
    for key, override, label in (
        ("lat", lat, "latitude"),
        ("lon", lon, "longitude"),
        ("height", height, "antenna height"),
    ):
        if override is not None:
            origin[key] = override
        elif key in root_where:
            origin[key] = float(np.asarray(root_where[key]).ravel()[0])
        else:
            raise InvalidArgument(f"{label} not found in volume, provide '{key}' argument")
    site = SiteGeo(**origin)

    if isinstance(params, str):
        selected = None if params == "all" else (params,)
    else:
        selected = tuple(params)

    scans = []
    for key in _groups(tree, "dataset"):
        group = tree[key]
        elangle = float(np.asarray(group["where"]["elangle"]).ravel()[0])
        if elangle < elangle_min or elangle > elangle_max:
            logger.debug(f"Skipping {key}: elangle {elangle} outside [{elangle_min}, {elangle_max}]")
            continue
        scans.append(_scan_from_odim(key, group, site, selected))

    if sort:
        scans.sort(key=lambda s: s.elangle)

    radar = radar_from_source(root_what.get("source", ""))
    nominal = None
    if "date" in root_what and "time" in root_what:
        nominal = datetime_from_odim(root_what["date"], root_what["time"])

    attributes = {k: dict(tree[k]) for k in ("how", "what", "where") if k in tree}
    logger.info(f"Assembled volume {radar or '?'}: {len(scans)} scans")
    return PolarVolume(radar, nominal, site, tuple(scans), attributes)

"""
Pytest configuration and fixtures.
"""
import pytest
import numpy as np

from radar_ppi.polar import PolarParam, PolarScan, SiteGeo

NBINS = 400
NRAYS = 360
RSCALE = 250.0

# Raw DBZH encoding: value = -32 + 0.5 * raw
RAW_PRESENT = 100          # 18 dBZ
RAW_UNDETECT = 0
RAW_NODATA = 255


@pytest.fixture
def site():
    """Radar origin in the Netherlands."""
    return SiteGeo(52.0, 5.0, 10.0)


@pytest.fixture
def scan_geo(site):
    """0.5 degree sweep, 250 m bins, 1 degree rays."""
    return site.with_scan(0.5, RSCALE, 360.0 / NRAYS)


@pytest.fixture
def raw_dbzh():
    """
    Raw DBZH samples (nbins, nrays): 18 dBZ everywhere, undetect in the
    first 10 rays (azimuth 0-10 deg) and no data beyond 37.5 km.
    """
    raw = np.full((NBINS, NRAYS), RAW_PRESENT, dtype=np.uint8)
    raw[:, :10] = RAW_UNDETECT
    raw[150:, :] = RAW_NODATA
    return raw


@pytest.fixture
def dbzh(raw_dbzh, scan_geo):
    return PolarParam.from_raw(
        "DBZH", raw_dbzh, scan_geo, gain=0.5, offset=-32.0, nodata=RAW_NODATA, undetect=RAW_UNDETECT
    )


@pytest.fixture
def vradh(scan_geo):
    """Radial velocity equal to the azimuth bin number minus 180."""
    raw = np.tile(np.arange(NRAYS, dtype=np.float64), (NBINS, 1))
    return PolarParam.from_raw("VRADH", raw, scan_geo, offset=-180.0)


@pytest.fixture
def scan(dbzh, vradh, scan_geo):
    return PolarScan({"DBZH": dbzh, "VRADH": vradh}, scan_geo)


def make_constant_param(lat, lon, value, valid_bins=NBINS, name="DBZH", elangle=0.5):
    """Parameter with one value out to ``valid_bins`` and no data beyond."""
    geo = SiteGeo(lat, lon).with_scan(elangle, RSCALE, 360.0 / NRAYS)
    raw = np.full((NBINS, NRAYS), value, dtype=np.float64)
    raw[valid_bins:, :] = np.nan
    return PolarParam.from_raw(name, raw, geo)


@pytest.fixture
def constant_param():
    """Factory for parameters with a constant value around a given origin."""
    return make_constant_param


def make_odim_dataset(elangle, quantities=("DBZH", "VRADH"), nrays=NRAYS, nbins=NBINS):
    """ODIM ``datasetN`` group holding (nrays, nbins) uint8 data."""
    group = {
        "what": {"product": "SCAN"},
        "where": {"elangle": elangle, "rscale": RSCALE, "nrays": nrays, "nbins": nbins},
    }
    for i, quantity in enumerate(quantities, start=1):
        data = np.full((nrays, nbins), RAW_PRESENT, dtype=np.uint8)
        data[:, -1] = RAW_NODATA
        data[0, :] = RAW_UNDETECT
        group[f"data{i}"] = {
            "what": {
                "quantity": quantity,
                "gain": 0.5,
                "offset": -32.0,
                "nodata": RAW_NODATA,
                "undetect": RAW_UNDETECT,
            },
            "data": data,
        }
    return group


@pytest.fixture
def odim_tree():
    """ODIM-style volume with three scans stored out of elevation order."""
    return {
        "what": {"source": "WMO:06260,RAD:NL50,PLC:De Bilt", "date": "20240315", "time": "120500"},
        "where": {"lat": 52.1, "lon": 5.18, "height": 44.0},
        "how": {"beamwidth": 1.0},
        "dataset1": make_odim_dataset(1.5),
        "dataset2": make_odim_dataset(0.5, quantities=("DBZH", "VRADH", "TH")),
        "dataset3": make_odim_dataset(12.0, quantities=("DBZH",)),
    }


@pytest.fixture(autouse=True)
def clear_caches():
    """Clear caches before and after each test."""
    from radar_ppi.cache import clear_caches as _clear
    _clear()
    yield
    _clear()

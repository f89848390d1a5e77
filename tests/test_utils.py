"""
Unit tests for radar_ppi.utils module.
"""
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest
import numpy as np

from radar_ppi.exceptions import DataAbsent, InvalidArgument
from radar_ppi.polar import CellState, PolarVolume
from radar_ppi.ppi import make_ppi
from radar_ppi.utils import (
    get_radar_datetime,
    get_radar_info,
    resolve_field_names,
    volume_from_radar,
)

NGATES = 100


def make_radar(fields=None):
    """Two-sweep PyART-like radar; rays of every sweep start at azimuth 90."""
    azimuths = np.roll(np.arange(360.0) + 0.5, -90)
    nrays = 720

    radar = Mock()
    radar.nsweeps = 2
    radar.nrays = nrays
    radar.ngates = NGATES
    radar.sweep_start_ray_index = {"data": np.array([0, 360])}
    radar.sweep_end_ray_index = {"data": np.array([359, 719])}
    radar.fixed_angle = {"data": np.array([0.5, 1.5])}
    radar.azimuth = {"data": np.concatenate([azimuths, azimuths])}
    radar.range = {"data": np.arange(NGATES) * 250.0}
    radar.latitude = {"data": np.array([52.0])}
    radar.longitude = {"data": np.array([5.0])}
    radar.altitude = {"data": np.array([10.0])}
    radar.metadata = {"instrument_name": "nlhrw", "scan_id": "PPI"}
    radar.time = {"units": "seconds since 2024-03-15T12:05:00Z", "data": np.array([7.0])}

    if fields is None:
        # reflectivity equal to the ray azimuth, so ray order is visible
        refl = np.ma.masked_array(np.tile(np.concatenate([azimuths, azimuths])[:, None], (1, NGATES)))
        refl[0, 5] = np.ma.masked
        refl[1, 5] = np.nan
        fields = {
            "reflectivity": {"data": refl, "units": "dBZ"},
            "velocity": {"data": np.ma.zeros((nrays, NGATES)), "units": "m/s"},
            "signal_quality": {"data": np.ma.ones((nrays, NGATES))},
        }
    radar.fields = fields
    return radar


class TestResolveFieldNames:
    """Test mapping ODIM names to PyART field names."""

    def test_default_keeps_all_fields(self):
        mapping = resolve_field_names(make_radar())
        assert mapping == {"DBZH": "reflectivity", "VRADH": "velocity", "signal_quality": "signal_quality"}

    def test_requested_fields(self):
        radar = make_radar()
        assert resolve_field_names(radar, ["DBZH"]) == {"DBZH": "reflectivity"}
        assert resolve_field_names(radar, ["ZDR", "VRADH"]) == {"VRADH": "velocity"}

    def test_odim_names_pass_through(self):
        radar = make_radar(fields={"DBZH": {"data": np.ma.zeros((720, NGATES))}})
        assert resolve_field_names(radar, ["DBZH"]) == {"DBZH": "DBZH"}


class TestVolumeFromRadar:
    """Test conversion of PyART-like radars."""

    def test_volume(self):
        volume = volume_from_radar(make_radar(), fields=["DBZH", "VRADH"])
        assert isinstance(volume, PolarVolume)
        assert volume.radar == "nlhrw"
        assert volume.datetime == datetime(2024, 3, 15, 12, 5, 7, tzinfo=timezone.utc)
        assert len(volume) == 2
        np.testing.assert_array_equal(volume.elangles(), [0.5, 1.5])

    def test_scan_geometry(self):
        scan = volume_from_radar(make_radar(), fields=["DBZH"]).get_scan(0.5)
        assert scan.dims == (1, NGATES, 360)
        assert scan.rscale == 250.0
        assert scan.ascale == 1.0
        assert scan.geo.lat == 52.0
        assert scan.geo.height == 10.0

    def test_rays_sorted_by_azimuth(self):
        scan = volume_from_radar(make_radar(), fields=["DBZH"]).get_scan(0.5)
        values = scan["DBZH"].values
        np.testing.assert_array_equal(values[50, :], np.arange(360.0) + 0.5)

    def test_masked_and_nan_gates_are_nodata(self):
        scan = volume_from_radar(make_radar(), fields=["DBZH"]).get_scan(0.5)
        state = scan["DBZH"].state
        # the first two rays of the sweep point at azimuth 90.5 and 91.5
        assert state[5, 90] == CellState.NODATA
        assert state[5, 91] == CellState.NODATA
        assert state[6, 90] == CellState.PRESENT
        assert np.count_nonzero(state == CellState.NODATA) == 2

    def test_attributes_copied(self):
        scan = volume_from_radar(make_radar(), fields=["DBZH"]).get_scan(0.5)
        assert scan["DBZH"].attributes == {"units": "dBZ"}

    def test_missing_fields(self):
        with pytest.raises(DataAbsent):
            volume_from_radar(make_radar(), fields=["ZDR"])

    def test_single_gate(self):
        radar = make_radar()
        radar.range = {"data": np.array([125.0])}
        with pytest.raises(InvalidArgument):
            volume_from_radar(radar)

    def test_first_gate_away_from_radar(self):
        # value equals the gate number; first gate centred 2 km out
        gates = np.tile(np.arange(NGATES, dtype=np.float64), (720, 1))
        radar = make_radar(fields={"reflectivity": {"data": np.ma.masked_array(gates)}})
        radar.range = {"data": 2000.0 + np.arange(NGATES) * 250.0}

        param = volume_from_radar(radar, fields=["DBZH"]).get_scan(0.5)["DBZH"]
        assert param.nbins == NGATES + 8
        assert np.all(param.state[:8] == CellState.NODATA)
        np.testing.assert_array_equal(param.values[8], 0.0)

        ppi = make_ppi(param, cellsize=500.0, range_max=20000.0)
        layer = ppi.layer("DBZH")
        for distance, gate in [(2000.0, 0), (2500.0, 2), (4500.0, 10)]:
            row, col, _ = ppi.grid.cell_index(0.0, distance)
            assert layer.state[int(row), int(col)] == CellState.PRESENT
            assert layer.values[int(row), int(col)] == gate
        row, col, _ = ppi.grid.cell_index(0.0, 1000.0)
        assert layer.state[int(row), int(col)] == CellState.NODATA

    @pytest.mark.parametrize(
        "ranges",
        [np.array([0.0, 250.0, 600.0]), np.array([500.0, 250.0, 0.0]), np.array([-250.0, 0.0, 250.0])],
    )
    def test_invalid_gate_layout(self, ranges):
        radar = make_radar()
        radar.range = {"data": ranges}
        with pytest.raises(InvalidArgument):
            volume_from_radar(radar)

    def test_ppi_from_radar(self):
        scan = volume_from_radar(make_radar(), fields=["DBZH"]).get_scan(1.5)
        ppi = make_ppi(scan, cellsize=1000.0, range_max=20000.0)
        layer = ppi.layer("DBZH")
        # due east, 10 km out
        row, col, _ = ppi.grid.cell_index(10000.0, 0.0)
        assert layer.values[int(row), int(col)] == 90.5


class TestRadarInfo:
    """Test metadata helpers."""

    def test_get_radar_info(self):
        info = get_radar_info(make_radar())
        assert info["radar_name"] == "nlhrw"
        assert info["strategy"] == "PPI"
        assert info["nsweeps"] == 2
        assert info["fields"] == ["reflectivity", "velocity", "signal_quality"]
        assert info["range_max"] == 99 * 250.0
        assert info["latitude"] == 52.0

    def test_unparseable_time(self):
        radar = make_radar()
        radar.time = {"units": "days since whenever", "data": np.array([0.0])}
        assert get_radar_datetime(radar) is None

    def test_naive_reference_is_utc(self):
        radar = make_radar()
        radar.time = {"units": "seconds since 2024-03-15 00:00:00", "data": np.array([60.0])}
        assert get_radar_datetime(radar) == datetime(2024, 3, 15, 0, 1, tzinfo=timezone.utc)

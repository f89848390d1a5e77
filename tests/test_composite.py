"""
Unit tests for radar_ppi.composite module.

Two synthetic radars 0.2 deg of longitude (about 14 km) apart, each with
data out to 10 km and a 20 km PPI: radar A reports 10 dBZ, radar B 25 dBZ.
"""

import pytest
import numpy as np

from radar_ppi.composite import Composite, RadarRef, composite, merge_max
from radar_ppi.exceptions import DataAbsent, InvalidArgument
from radar_ppi.layer import Layer
from radar_ppi.polar import CellState
from radar_ppi.ppi import make_ppi

P = CellState.PRESENT
N = CellState.NODATA
U = CellState.UNDETECT


@pytest.fixture
def ppi_a(constant_param):
    return make_ppi(constant_param(52.0, 5.0, 10.0, valid_bins=40), range_max=20000.0)


@pytest.fixture
def ppi_b(constant_param):
    return make_ppi(constant_param(52.0, 5.2, 25.0, valid_bins=40, elangle=1.5), range_max=20000.0)


def value_at(result, lon, lat):
    layer = result.layer("DBZH")
    row, col, inside = result.grid.cell_index(lon, lat)
    assert inside
    return layer.state[int(row), int(col)], layer.values[int(row), int(col)]


class TestMergeMax:
    """Test the element-wise maximum merge."""

    def test_present_values(self):
        a = Layer(np.array([[10.0, 30.0]]), np.array([[P, P]]))
        b = Layer(np.array([[25.0, 5.0]]), np.array([[P, P]]))
        merged = merge_max([a, b])
        np.testing.assert_array_equal(merged.values, [[25.0, 30.0]])

    def test_state_precedence(self):
        a = Layer(np.array([[np.nan, np.nan, np.nan, 1.0]]), np.array([[N, U, N, U]]))
        b = Layer(np.array([[np.nan, np.nan, 7.0, -3.0]]), np.array([[N, N, P, P]]))
        merged = merge_max([a, b])
        assert merged.state.tolist() == [[N, U, P, P]]
        np.testing.assert_array_equal(merged.values[0, 2:], [7.0, -3.0])
        assert np.isnan(merged.values[0, 0]) and np.isnan(merged.values[0, 1])

    def test_nodata_is_identity(self):
        a = Layer(np.array([[1.0, np.nan]]), np.array([[P, U]]))
        assert merge_max([a, Layer.absent((1, 2))]).equals(a)
        assert merge_max([Layer.absent((1, 2)), a]).equals(a)

    def test_commutative_and_idempotent(self):
        rng = np.random.default_rng(0)
        layers = [
            Layer(rng.normal(size=(5, 5)), rng.integers(0, 3, size=(5, 5)))
            for _ in range(3)
        ]
        forward = merge_max(layers)
        assert forward.equals(merge_max(layers[::-1]))
        assert forward.equals(merge_max([forward, forward]))
        assert forward.equals(merge_max([merge_max(layers[:2]), layers[2]]))

    def test_shape_mismatch(self):
        with pytest.raises(InvalidArgument):
            merge_max([Layer.absent((2, 2)), Layer.absent((3, 3))])

    def test_empty(self):
        with pytest.raises(InvalidArgument):
            merge_max([])


class TestComposite:
    """Test compositing PPIs onto a longitude/latitude grid."""

    def test_result(self, ppi_a, ppi_b):
        result = composite([ppi_a, ppi_b])
        assert isinstance(result, Composite)
        assert result.merged is True
        assert result.projection == "EPSG:4326"
        assert result.names == ("DBZH",)
        assert result.dims == (1, 100, 100)
        assert result.grid.cells_dim == (100, 100)

    def test_layer_mapping_is_read_only(self, ppi_a, ppi_b):
        result = composite([ppi_a, ppi_b])
        with pytest.raises(TypeError):
            result.layers.pop("DBZH")
        assert result.names == ("DBZH",)

    def test_radars(self, ppi_a, ppi_b):
        result = composite([ppi_a, ppi_b])
        assert result.radars == (RadarRef(52.0, 5.0, 0.5), RadarRef(52.0, 5.2, 1.5))
        assert result.lats == (52.0, 52.0)
        assert result.lons == (5.0, 5.2)
        assert result.elangles == (0.5, 1.5)

    def test_bbox_is_union(self, ppi_a, ppi_b):
        result = composite([ppi_a, ppi_b])
        assert result.bbox.lon_min == ppi_a.bbox.lon_min
        assert result.bbox.lon_max == ppi_b.bbox.lon_max
        assert result.bbox.lat_min == min(ppi_a.bbox.lat_min, ppi_b.bbox.lat_min)

    def test_grid_spans_bbox(self, ppi_a, ppi_b):
        result = composite([ppi_a, ppi_b], cells_dim=(50, 20))
        lon_min, lon_max, lat_min, lat_max = result.grid.bounds
        assert lon_min == pytest.approx(result.bbox.lon_min)
        assert lon_max == pytest.approx(result.bbox.lon_max)
        assert lat_min == pytest.approx(result.bbox.lat_min)
        assert lat_max == pytest.approx(result.bbox.lat_max)
        assert result.layer("DBZH").shape == (20, 50)

    def test_max_policy(self, ppi_a, ppi_b):
        result = composite([ppi_a, ppi_b])
        # covered by both radars
        assert value_at(result, 5.1, 52.0) == (P, 25.0)
        # covered by radar A only
        assert value_at(result, 4.95, 52.0) == (P, 10.0)
        # covered by radar B only
        assert value_at(result, 5.25, 52.0) == (P, 25.0)

    def test_absent_propagation(self, ppi_a, ppi_b):
        result = composite([ppi_a, ppi_b])
        state, value = value_at(result, 5.1, 52.15)
        assert state == N
        assert np.isnan(value)

    def test_order_does_not_matter(self, ppi_a, ppi_b):
        ab = composite([ppi_a, ppi_b])
        ba = composite([ppi_b, ppi_a])
        assert ab.layer("DBZH").equals(ba.layer("DBZH"))

    def test_identity(self, ppi_a):
        once = composite([ppi_a])
        twice = composite([ppi_a, ppi_a])
        assert once.layer("DBZH").equals(twice.layer("DBZH"))
        assert len(twice.radars) == 2

    def test_single_ppi_resamples_input(self, ppi_a):
        result = composite([ppi_a])
        assert value_at(result, 5.0, 52.0) == (P, 10.0)
        counts = result.layer("DBZH").count()
        assert counts["present"] > 0
        assert counts["undetect"] == 0

    def test_undetect_survives(self, site):
        from radar_ppi.polar import PolarParam
        geo = site.with_scan(0.5, 250.0, 1.0)
        raw = np.zeros((400, 360))
        ppi = make_ppi(PolarParam.from_raw("DBZH", raw, geo, undetect=0.0), range_max=10000.0)
        counts = composite([ppi], cells_dim=(10, 10)).layer("DBZH").count()
        assert counts == {"present": 0, "nodata": 0, "undetect": 100}

    def test_parallel_matches_sequential(self, ppi_a, ppi_b):
        sequential = composite([ppi_a, ppi_b], cells_dim=(40, 40))
        parallel = composite([ppi_a, ppi_b], cells_dim=(40, 40), n_workers=2)
        assert sequential.layer("DBZH").equals(parallel.layer("DBZH"))

    def test_other_parameter(self, scan):
        ppi = make_ppi(scan, cellsize=2000.0)
        result = composite([ppi], param="VRADH", cells_dim=(20, 20))
        assert result.names == ("VRADH",)

    def test_repr(self, ppi_a, ppi_b):
        text = repr(composite([ppi_a, ppi_b]))
        assert text.startswith("Composite(")
        assert "radars=2" in text
        assert "merged=True" in text


class TestCompositeValidation:
    """Test argument checks, which all run before any merging."""

    def test_empty(self):
        with pytest.raises(TypeError):
            composite([])

    def test_not_a_sequence(self, ppi_a):
        with pytest.raises(TypeError):
            composite(ppi_a)

    def test_wrong_objects(self, ppi_a, dbzh):
        with pytest.raises(TypeError, match="PPI"):
            composite([ppi_a, dbzh])

    def test_composite_of_composite(self, ppi_a, ppi_b):
        merged = composite([ppi_a, ppi_b])
        with pytest.raises(TypeError):
            composite([merged, ppi_a])

    def test_missing_parameter(self, ppi_a, scan):
        other = make_ppi(scan, cellsize=2000.0).select("VRADH")
        with pytest.raises(DataAbsent, match="PPI 1"):
            composite([ppi_a, other])

    @pytest.mark.parametrize("cells_dim", [(0, 10), (10,), (10.5, 10), (True, 10), "big"])
    def test_invalid_cells_dim(self, ppi_a, cells_dim):
        with pytest.raises(InvalidArgument):
            composite([ppi_a], cells_dim=cells_dim)

    def test_cell_cap(self, ppi_a):
        with pytest.raises(InvalidArgument, match="exceeds the limit"):
            composite([ppi_a], cells_dim=(100, 100), max_cells=5000)

    def test_invalid_workers(self, ppi_a):
        with pytest.raises(InvalidArgument):
            composite([ppi_a], n_workers=0)

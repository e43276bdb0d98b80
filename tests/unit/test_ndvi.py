"""Unit tests for NDVI computation."""

import logging

import numpy as np
import pytest

from ndvi_qamask.errors import ShapeMismatchError
from ndvi_qamask.logic.ndvi import compute_ndvi
from ndvi_qamask.raster import RasterBand


def _cell(value, nodata=None, dtype=np.int16):
    return RasterBand(np.array([[value]], dtype=dtype), nodata=nodata)


class TestComputeNdvi:
    """Tests for compute_ndvi()."""

    def test_single_cell(self):
        """NIR 50 and red 30 give (50 - 30) / (50 + 30) = 0.25."""
        ndvi = compute_ndvi(_cell(50), _cell(30))
        assert ndvi.data[0, 0] == pytest.approx(0.25)

    def test_zero_denominator_is_nodata(self):
        """NIR 0 and red 0 yield NoData, not an error."""
        ndvi = compute_ndvi(_cell(0), _cell(0))
        assert np.isnan(ndvi.data[0, 0])
        assert not ndvi.valid_mask().any()

    def test_nodata_in_either_band_propagates(self):
        """A NoData cell in NIR or red gives NoData."""
        nir = RasterBand(np.array([[-9999, 50, 50]], dtype=np.int16), nodata=-9999)
        red = RasterBand(np.array([[30, -9999, 30]], dtype=np.int16), nodata=-9999)
        ndvi = compute_ndvi(nir, red)
        assert np.isnan(ndvi.data[0, 0])
        assert np.isnan(ndvi.data[0, 1])
        assert ndvi.data[0, 2] == pytest.approx(0.25)

    def test_nan_inputs_propagate(self):
        """NaN cells of float bands are NoData."""
        nir = RasterBand(np.array([[np.nan, 0.4]], dtype=np.float32))
        red = RasterBand(np.array([[0.1, 0.1]], dtype=np.float32))
        ndvi = compute_ndvi(nir, red)
        assert np.isnan(ndvi.data[0, 0])
        assert ndvi.data[0, 1] == pytest.approx(0.6)

    def test_no_unsigned_overflow(self):
        """Large uint16 reflectances are summed in floating point."""
        ndvi = compute_ndvi(_cell(60000, dtype=np.uint16), _cell(40000, dtype=np.uint16))
        assert ndvi.data[0, 0] == pytest.approx(0.2)

    def test_output_is_float_with_nan_nodata(self):
        """The NDVI raster is float32 with NaN as NoData."""
        ndvi = compute_ndvi(_cell(50), _cell(30))
        assert ndvi.data.dtype == np.float32
        assert np.isnan(ndvi.nodata)

    def test_float64_inputs_keep_precision(self):
        """Double-precision reflectances are not rounded to float32."""
        ndvi = compute_ndvi(_cell(1.0000001, dtype=np.float64), _cell(1.0, dtype=np.float64))
        assert ndvi.data.dtype == np.float64
        assert ndvi.data[0, 0] > 0
        assert ndvi.data[0, 0] == pytest.approx(5e-8, rel=1e-3)

    def test_out_of_range_kept_and_reported(self, caplog):
        """Values outside [-1, 1] are not corrected, only reported."""
        caplog.set_level(logging.WARNING)
        ndvi = compute_ndvi(_cell(10), _cell(-30))
        assert ndvi.data[0, 0] == pytest.approx(-2.0)
        assert "outside [-1, 1]" in caplog.text

    def test_shape_mismatch(self):
        """Bands on different grids are rejected."""
        nir = RasterBand(np.zeros((2, 2)))
        red = RasterBand(np.zeros((2, 3)))
        with pytest.raises(ShapeMismatchError):
            compute_ndvi(nir, red)

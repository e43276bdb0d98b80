"""Shared test fixtures for ndvi_qamask tests."""

from pathlib import Path

import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin

from ndvi_qamask.logic.table import build_lookup_table
from ndvi_qamask.raster import RasterBand, RasterStack

# QA codes used throughout the tests
CLEAR = 2            # bit 1 only
CLEAR_LOW_CLOUD = 66  # clear + cloud confidence LOW (bit 6), still kept
CLOUD = 34           # clear + cloud (bit 5)
WATER = 4            # water (bit 2)
FILL = 1             # fill (bit 0)

REFLECTANCE_NODATA = -9999


@pytest.fixture(scope="session")
def default_table():
    """Lookup table for the default keep predicate, built once per session."""
    return build_lookup_table()


@pytest.fixture
def qa_band() -> RasterBand:
    """A 4x4 QA band mixing clear, cloudy, water and fill codes.

    Layout (K = kept by the default predicate):

        CLEAR  CLEAR  CLOUD  CLOUD          K K . .
        CLEAR  LOWCL  WATER  FILL     ->    K K . .
        CLEAR  CLEAR  CLEAR  CLEAR          K K K K
        CLEAR  CLEAR  CLEAR  CLEAR          K K K K
    """
    data = np.array([
        [CLEAR, CLEAR, CLOUD, CLOUD],
        [CLEAR, CLEAR_LOW_CLOUD, WATER, FILL],
        [CLEAR, CLEAR, CLEAR, CLEAR],
        [CLEAR, CLEAR, CLEAR, CLEAR],
    ], dtype=np.uint16)
    return RasterBand(data, nodata=None)


@pytest.fixture
def expected_keep() -> np.ndarray:
    """Keep grid matching the qa_band fixture."""
    return np.array([
        [True, True, False, False],
        [True, True, False, False],
        [True, True, True, True],
        [True, True, True, True],
    ])


@pytest.fixture
def reflectance_stack() -> RasterStack:
    """A 5-band int16 reflectance stack on the qa_band grid.

    Band 3 is red (constant 1000), band 4 is NIR (a gradient from 1500
    to 3000), the other bands are arbitrary.
    """
    height, width = 4, 4
    data = np.zeros((5, height, width), dtype=np.int16)
    data[0] = 400
    data[1] = 600
    data[2] = 800
    data[3] = 1000
    data[4] = np.linspace(1500, 3000, height * width).reshape(height, width).astype(np.int16)
    return RasterStack.from_array(
        data, nodata=REFLECTANCE_NODATA, names=("b1", "b2", "b3", "red", "nir")
    )


@pytest.fixture
def geotiff_pair(tmp_path: Path, qa_band, reflectance_stack):
    """Write the reflectance stack and QA band to GeoTIFFs.

    Returns:
        (reflectance_path, qa_path)
    """
    transform = from_origin(500000.0, 4500000.0, 30.0, 30.0)
    base_profile = {
        "driver": "GTiff",
        "width": 4,
        "height": 4,
        "crs": "EPSG:32616",
        "transform": transform,
    }

    reflectance_path = tmp_path / "reflectance.tif"
    stack = reflectance_stack.to_array()
    with rasterio.open(
        reflectance_path, "w", dtype="int16", count=stack.shape[0],
        nodata=REFLECTANCE_NODATA, **base_profile,
    ) as dst:
        dst.write(stack)

    qa_path = tmp_path / "qa.tif"
    with rasterio.open(qa_path, "w", dtype="uint16", count=1, **base_profile) as dst:
        dst.write(qa_band.data, 1)

    return reflectance_path, qa_path

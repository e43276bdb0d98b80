"""
Core logic for computing the normalized difference vegetation index.
"""
from __future__ import annotations

import logging

import numpy as np

from ..errors import ShapeMismatchError
from ..raster import RasterBand

# --- Set up a logger for this module ---
logger = logging.getLogger(__name__)

NDVI_NODATA = np.nan


def _calculate_index(band1: RasterBand, band2: RasterBand) -> np.ndarray:
    """
    Calculates a normalized difference index: (b1 - b2) / (b1 + b2).
    Cells that are NoData in either band, or whose sum is zero, become NaN.
    Computed in float32 unless an input already carries more precision.
    """
    dtype = np.result_type(band1.data.dtype, band2.data.dtype, np.float32)
    b1 = band1.data.astype(dtype)
    b2 = band2.data.astype(dtype)
    denominator = b1 + b2
    valid = band1.valid_mask() & band2.valid_mask() & (denominator != 0)

    index = np.full(b1.shape, NDVI_NODATA, dtype=dtype)
    index[valid] = (b1[valid] - b2[valid]) / denominator[valid]
    return index


def compute_ndvi(nir: RasterBand, red: RasterBand) -> RasterBand:
    """
    Computes NDVI = (NIR - Red) / (NIR + Red) per cell.

    NoData in either band and a zero denominator both yield NaN, which is
    the NoData value of the returned raster. Results outside [-1, 1] are
    left as they are: they point at residual cloud, shadow or saturation
    the QA mask missed and are reported with a warning.

    Raises:
        ShapeMismatchError: If the two bands differ in shape.
    """
    if nir.shape != red.shape:
        raise ShapeMismatchError(f"NIR band {nir.shape} and red band {red.shape} differ in shape")

    ndvi = _calculate_index(nir, red)

    valid = ~np.isnan(ndvi)
    out_of_range = np.count_nonzero(valid & ((ndvi < -1) | (ndvi > 1)))
    if out_of_range:
        logger.warning(
            f"{out_of_range} NDVI cell(s) fall outside [-1, 1]; "
            "check for residual cloud, shadow or sensor saturation."
        )
    logger.info(f"Computed NDVI for {ndvi.shape}: {np.count_nonzero(valid)} valid cells.")
    return RasterBand(ndvi, nodata=NDVI_NODATA)

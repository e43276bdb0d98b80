"""
Core logic for reclassifying a QA band and masking a reflectance stack.

`reclassify` gathers the lookup table at every QA cell to produce a
keep/NoData mask raster; `apply_mask` sets every discarded cell of every
reflectance band to that band's NoData value.
"""
from __future__ import annotations

import logging

import numpy as np
from joblib import Parallel, delayed

from ..bitdefs import QA_CODE_MAX
from ..errors import ConfigurationError, ShapeMismatchError
from ..raster import MASK_KEEP, MASK_NODATA, RasterBand, RasterStack
from .table import NODATA_INDEX, LookupTable

# --- Set up a logger for this module ---
logger = logging.getLogger(__name__)


def _table_index(block: np.ndarray, nodata) -> np.ndarray:
    """Maps QA cells to table indices; anything not a valid code maps to NoData."""
    valid = RasterBand(block, nodata).valid_mask()
    valid &= (block >= 0) & (block <= QA_CODE_MAX)
    if np.issubdtype(block.dtype, np.floating):
        with np.errstate(invalid='ignore'):
            valid &= block == np.floor(block)

    index = np.full(block.shape, NODATA_INDEX, dtype=np.int64)
    index[valid] = block[valid].astype(np.int64)
    return index


def _gather_rows(block: np.ndarray, nodata, keep: np.ndarray) -> np.ndarray:
    kept = keep[_table_index(block, nodata)]
    return np.where(kept, MASK_KEEP, MASK_NODATA).astype(np.uint8)


def reclassify(qa: RasterBand, table: LookupTable, n_jobs: int = 1) -> RasterBand:
    """
    Applies the lookup table to every cell of a QA band.

    Cells holding NoData, NaN, non-integral or out-of-domain values are
    classified as discard; no cell value ever raises. With ``n_jobs`` other
    than 1 the band is split into disjoint row tiles gathered on joblib
    worker threads.

    Returns:
        A uint8 mask raster with ``MASK_KEEP`` for kept cells and
        ``MASK_NODATA`` (its NoData value) everywhere else.
    """
    data = qa.data
    if n_jobs == 1 or data.shape[0] < 2:
        mask = _gather_rows(data, qa.nodata, table.keep)
    else:
        n_tiles = min(data.shape[0], 4 * max(1, abs(n_jobs)))
        row_tiles = np.array_split(np.arange(data.shape[0]), n_tiles)
        tiles = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(_gather_rows)(data[rows[0]:rows[-1] + 1], qa.nodata, table.keep)
            for rows in row_tiles
            if len(rows)
        )
        mask = np.concatenate(tiles, axis=0)

    result = RasterBand(mask, nodata=MASK_NODATA)
    coverage = mask_coverage(result)
    logger.info(f"Reclassified QA band {data.shape}: {coverage:.1%} of cells kept.")
    if coverage == 0.0:
        logger.warning("QA mask keeps no cells; every masked band will be entirely NoData.")
    return result


def mask_coverage(mask: RasterBand) -> float:
    """Fraction of mask cells classified as keep."""
    if mask.data.size == 0:
        return 0.0
    return float(np.count_nonzero(mask.data == MASK_KEEP) / mask.data.size)


def _fill_value(band: RasterBand, index: int):
    """NoData value written into discarded cells of a band, and the output dtype."""
    dtype = band.data.dtype
    if band.nodata is None:
        if np.issubdtype(dtype, np.floating):
            return np.nan, dtype
        return np.nan, np.dtype(np.float32)

    if np.issubdtype(dtype, np.integer):
        info = np.iinfo(dtype)
        nodata = float(band.nodata)
        if not (nodata.is_integer() and info.min <= nodata <= info.max):
            raise ConfigurationError(
                f"NoData value {band.nodata!r} of band {index} cannot be stored as {dtype}"
            )
    return band.nodata, dtype


def apply_mask(stack: RasterStack, mask: RasterBand) -> RasterStack:
    """
    Sets every cell not kept by ``mask`` to NoData in every band.

    Shapes are checked once before any band is touched. Bands without a
    NoData value receive NaN (integer bands are promoted to float32).
    The input stack is not modified.

    Raises:
        ShapeMismatchError: If the bands differ in shape or the mask does
            not match them.
        ConfigurationError: If a band's NoData value does not fit its dtype.
    """
    shapes = stack.shapes()
    if len(shapes) > 1:
        raise ShapeMismatchError(f"Reflectance bands have differing shapes: {sorted(shapes)}")
    if shapes and mask.shape not in shapes:
        raise ShapeMismatchError(
            f"Mask shape {mask.shape} does not match band shape {next(iter(shapes))}"
        )
    fills = [_fill_value(band, i) for i, band in enumerate(stack.bands)]

    keep = mask.valid_mask() & (mask.data == MASK_KEEP)
    masked = []
    for band, (fill, dtype) in zip(stack.bands, fills):
        out = band.data.astype(dtype, copy=True)
        out[~keep] = fill
        masked.append(RasterBand(out, nodata=fill))

    logger.info(f"Applied mask to {len(masked)} band(s); {np.count_nonzero(~keep)} cells set to NoData.")
    return RasterStack(masked, stack.names)

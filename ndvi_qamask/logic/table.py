"""
Core logic for precomputing the pixel-code lookup table.

Every one of the 65536 possible QA codes is decoded and classified once,
so that masking a raster becomes a single array gather per cell instead of
repeating the same bit tests for every occurrence of a code.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from joblib import Parallel, delayed

from ..bitdefs import (
    DEFAULT_KEEP_PREDICATE,
    PREDICATE_BITS,
    QA_CODE_MAX,
    Classification,
)
from ..errors import ConfigurationError, DomainError
from .bits import as_pixel_code, decode_array, is_nodata_code

# --- Set up a logger for this module ---
logger = logging.getLogger(__name__)

# Index of the NoData entry, one past the last pixel code.
NODATA_INDEX = QA_CODE_MAX + 1
TABLE_SIZE = NODATA_INDEX + 1


def normalize_predicate(predicate: Sequence[int]) -> tuple[int, ...]:
    """
    Validates a keep predicate and returns it as a tuple of six 0/1 ints.

    Raises:
        ConfigurationError: If the predicate does not hold exactly six
            values, each 0 or 1.
    """
    try:
        values = tuple(int(v) for v in predicate)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Keep predicate must be a sequence of 0/1 values: {e}") from e

    if len(values) != len(PREDICATE_BITS):
        raise ConfigurationError(
            f"Keep predicate needs exactly {len(PREDICATE_BITS)} values "
            f"(bits {PREDICATE_BITS[0].value}-{PREDICATE_BITS[-1].value}), got {len(values)}"
        )
    if any(v not in (0, 1) for v in values):
        raise ConfigurationError(f"Keep predicate values must be 0 or 1, got {list(values)}")
    return values


@dataclass(frozen=True, eq=False)
class LookupTable:
    """
    Total, read-only mapping from pixel code (or NoData) to keep/discard.

    ``keep[code]`` is True for codes to keep; ``keep[NODATA_INDEX]`` is
    always False.
    """
    keep: np.ndarray
    predicate: tuple[int, ...]

    def __len__(self) -> int:
        return len(self.keep)

    def __getitem__(self, code) -> Classification:
        if is_nodata_code(code):
            index = NODATA_INDEX
        else:
            try:
                index = as_pixel_code(code)
            except DomainError:
                index = NODATA_INDEX
        return Classification.KEEP if self.keep[index] else Classification.DISCARD

    def kept_codes(self) -> np.ndarray:
        """All pixel codes classified as keep, ascending."""
        return np.flatnonzero(self.keep[:NODATA_INDEX])

    def keep_fraction(self) -> float:
        """Share of the 65536 pixel codes classified as keep."""
        return float(self.keep[:NODATA_INDEX].mean())


def _classify_chunk(codes: np.ndarray, predicate: np.ndarray) -> np.ndarray:
    """Keep flags for a contiguous run of codes."""
    bits = decode_array(codes)
    positions = [bit.value for bit in PREDICATE_BITS]
    return np.all(bits[:, positions] == predicate, axis=1)


def build_lookup_table(
    predicate: Sequence[int] = DEFAULT_KEEP_PREDICATE,
    n_jobs: int = -1,
    n_chunks: int = 16,
) -> LookupTable:
    """
    Builds the complete lookup table for a keep predicate.

    A code is kept iff its bits 0–5 (fill, clear, water, cloud shadow,
    snow, cloud) equal ``predicate`` elementwise. The codes are split into
    ``n_chunks`` independent runs classified in parallel on ``n_jobs``
    worker threads.

    Args:
        predicate: Six expected bit values for bits 0–5.
        n_jobs: Number of joblib workers (-1 = all cores).
        n_chunks: Number of independent code runs to dispatch.

    Returns:
        An immutable LookupTable of 65537 entries.
    """
    values = normalize_predicate(predicate)
    expected = np.asarray(values, dtype=np.uint8)

    codes = np.arange(NODATA_INDEX, dtype=np.int64)
    chunks = np.array_split(codes, max(1, n_chunks))
    results = Parallel(n_jobs=n_jobs, prefer="threads")(
        delayed(_classify_chunk)(chunk, expected) for chunk in chunks
    )

    keep = np.zeros(TABLE_SIZE, dtype=bool)
    keep[:NODATA_INDEX] = np.concatenate(results)
    # A missing QA code is never treated as verified clear.
    keep[NODATA_INDEX] = False
    keep.setflags(write=False)

    table = LookupTable(keep=keep, predicate=values)
    logger.info(
        f"Built lookup table for predicate {list(values)}: "
        f"{len(table.kept_codes())} of {NODATA_INDEX} codes kept."
    )
    return table

"""In-memory raster containers passed between the masking stages."""
from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from .errors import ShapeMismatchError

# Mask raster cell values.
MASK_KEEP = 1
MASK_NODATA = 0


@dataclass
class RasterBand:
    """A dense 2-D grid plus its NoData sentinel (None = no sentinel)."""
    data: np.ndarray
    nodata: float | int | None = None

    def __post_init__(self):
        self.data = np.asarray(self.data)
        if self.data.ndim != 2:
            raise ShapeMismatchError(
                f"RasterBand data must be 2-D, got shape {self.data.shape}"
            )

    @property
    def shape(self) -> tuple[int, int]:
        return self.data.shape

    def valid_mask(self) -> np.ndarray:
        """Boolean grid, True where the cell holds data."""
        valid = np.ones(self.data.shape, dtype=bool)
        if np.issubdtype(self.data.dtype, np.floating):
            valid &= ~np.isnan(self.data)
        if self.nodata is not None and not _is_nan(self.nodata):
            valid &= self.data != self.nodata
        return valid

    def valid_values(self) -> np.ndarray:
        """1-D array of all non-NoData cell values."""
        return self.data[self.valid_mask()]


@dataclass
class RasterStack:
    """Ordered co-registered bands, e.g. the reflectance bands of a scene."""
    bands: list[RasterBand]
    names: tuple[str, ...] | None = field(default=None)

    def __post_init__(self):
        self.bands = list(self.bands)
        if self.names is not None:
            self.names = tuple(self.names)
            if len(self.names) != len(self.bands):
                raise ShapeMismatchError(
                    f"Got {len(self.names)} band names for {len(self.bands)} bands"
                )

    @classmethod
    def from_array(cls, data: np.ndarray, nodata=None, names=None) -> "RasterStack":
        """Build a stack from a (bands, rows, cols) array sharing one sentinel."""
        data = np.asarray(data)
        if data.ndim != 3:
            raise ShapeMismatchError(
                f"Stack array must be 3-D (bands, rows, cols), got shape {data.shape}"
            )
        return cls([RasterBand(band, nodata) for band in data], names)

    def __len__(self) -> int:
        return len(self.bands)

    def __getitem__(self, index: int) -> RasterBand:
        return self.bands[index]

    def shapes(self) -> set[tuple[int, int]]:
        return {band.shape for band in self.bands}

    def to_array(self) -> np.ndarray:
        """Stack the bands into one (bands, rows, cols) array."""
        if len(self.shapes()) > 1:
            raise ShapeMismatchError(f"Bands have differing shapes: {sorted(self.shapes())}")
        return np.stack([band.data for band in self.bands], axis=0)


def _is_nan(value) -> bool:
    try:
        return bool(np.isnan(value))
    except TypeError:
        return False

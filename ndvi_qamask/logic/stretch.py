"""
Core logic for the quantile-driven contrast stretch of an NDVI raster.

The breaks put most of the colour resolution between the 2nd and 98th
percentiles while the first and last breaks still bound the extremes, so
a handful of outlier cells cannot compress the usable colour range.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from matplotlib import colormaps
from matplotlib.colors import LinearSegmentedColormap, ListedColormap, to_hex, to_rgba_array

from ..errors import ConfigurationError, InsufficientDataError
from ..raster import RasterBand

# --- Set up a logger for this module ---
logger = logging.getLogger(__name__)

DEFAULT_PERCENTILES = (0.0, 0.02, 0.98, 1.0)
DEFAULT_N_BREAKS = 256
DEFAULT_N_TICKS = 7
DEFAULT_DIGITS = 0


def _check_percentiles(percentiles: Sequence[float]) -> np.ndarray:
    probs = np.asarray(percentiles, dtype=np.float64)
    if probs.shape != (4,):
        raise ConfigurationError(
            f"Stretch needs exactly 4 percentiles (low, inner low, inner high, high), got {list(percentiles)}"
        )
    if np.any((probs < 0) | (probs > 1)) or np.any(np.diff(probs) < 0):
        raise ConfigurationError(
            f"Stretch percentiles must be non-decreasing values in [0, 1], got {probs.tolist()}"
        )
    return probs


def compute_breaks(
    ndvi: RasterBand,
    percentiles: Sequence[float] = DEFAULT_PERCENTILES,
    n_breaks: int = DEFAULT_N_BREAKS,
) -> np.ndarray:
    """
    Computes colour breakpoints from the quantiles of the valid NDVI cells.

    The first break is the ``percentiles[0]`` quantile, the last the
    ``percentiles[3]`` quantile, and the ``n_breaks - 2`` breaks between
    them are evenly spaced from the ``percentiles[1]`` to the
    ``percentiles[2]`` quantile inclusive. Quantiles use linear
    interpolation between order statistics.

    Raises:
        InsufficientDataError: If the raster has no valid cells.
        ConfigurationError: If the percentiles or break count are invalid.
    """
    probs = _check_percentiles(percentiles)
    if n_breaks < 3:
        raise ConfigurationError(f"n_breaks must be at least 3, got {n_breaks}")

    values = ndvi.valid_values().astype(np.float64)
    if values.size == 0:
        raise InsufficientDataError("NDVI raster has no valid cells; cannot compute a stretch.")

    q_low, q_inner_low, q_inner_high, q_high = np.quantile(values, probs, method="linear")
    breaks = np.concatenate([
        [q_low],
        np.linspace(q_inner_low, q_inner_high, n_breaks - 2),
        [q_high],
    ])
    logger.info(
        f"Computed {n_breaks} stretch breaks from {values.size} cells: "
        f"[{q_low:.4f}, {q_inner_low:.4f} .. {q_inner_high:.4f}, {q_high:.4f}]"
    )
    return breaks


@dataclass(frozen=True, eq=False)
class ColorMapping:
    """Breaks plus one colour per interval, ready for a renderer."""
    breaks: np.ndarray
    colors: tuple[str, ...]

    def color_index(self, values) -> np.ndarray:
        """
        Index into ``colors`` for each value.

        Values below ``breaks[0]`` take the first colour, values at or above
        ``breaks[-1]`` the last; NaN maps to -1.
        """
        values = np.asarray(values, dtype=np.float64)
        index = np.searchsorted(self.breaks, values, side="right") - 1
        index = np.clip(index, 0, len(self.colors) - 1)
        return np.where(np.isnan(values), -1, index)

    def to_rgba(self, values) -> np.ndarray:
        """RGBA floats for each value, fully transparent where NaN."""
        index = self.color_index(values)
        rgba = to_rgba_array(self.colors)[np.maximum(index, 0)]
        return np.where((index < 0)[..., np.newaxis], 0.0, rgba)

    @property
    def cmap(self) -> ListedColormap:
        return ListedColormap(list(self.colors), name="ndvi_stretch")


def _resample_palette(palette, n_colors: int) -> list[str]:
    if isinstance(palette, str):
        try:
            cmap = colormaps[palette]
        except KeyError:
            raise ConfigurationError(f"Unknown colormap name: {palette!r}") from None
        return [to_hex(c) for c in cmap.resampled(n_colors)(np.arange(n_colors))]

    palette = list(palette)
    if not palette:
        raise ConfigurationError("Palette must contain at least one colour.")
    try:
        rgba = to_rgba_array(palette)
    except ValueError as e:
        raise ConfigurationError(f"Invalid colour in palette: {e}") from e

    if len(rgba) == n_colors:
        return [to_hex(c) for c in rgba]
    if len(rgba) == 1:
        return [to_hex(rgba[0])] * n_colors

    logger.info(f"Interpolating {len(rgba)} palette colours to {n_colors}.")
    cmap = LinearSegmentedColormap.from_list("stretch", rgba, N=n_colors)
    return [to_hex(c) for c in cmap(np.arange(n_colors))]


def map_to_palette(breaks: Sequence[float], palette) -> ColorMapping:
    """
    Assigns one colour to each interval between consecutive breaks.

    Args:
        breaks: Non-decreasing breakpoints.
        palette: Colour specs understood by matplotlib, or a colormap
            name. If the count differs from ``len(breaks) - 1`` the palette
            is linearly interpolated to that count.

    Raises:
        ConfigurationError: If fewer than 2 breaks are given or the
            palette cannot be resolved.
    """
    breaks = np.asarray(breaks, dtype=np.float64)
    if breaks.ndim != 1 or len(breaks) < 2:
        raise ConfigurationError(f"At least 2 breaks are required, got {breaks.size}")
    colors = _resample_palette(palette, len(breaks) - 1)
    return ColorMapping(breaks=breaks, colors=tuple(colors))


def _format_tick(value: float, digits: int) -> str:
    # + 0.0 turns -0.0 into 0.0
    return f"{value + 0.0:.{max(digits, 0)}f}"


def build_legend(
    breaks: Sequence[float],
    n_ticks: int = DEFAULT_N_TICKS,
    digits: int = DEFAULT_DIGITS,
) -> list[tuple[float, str]]:
    """
    Builds legend ticks between the inner breaks.

    ``n_ticks`` values evenly spaced from ``breaks[1]`` to ``breaks[-2]``
    are rounded to ``digits``; the first is labelled ``"< v"`` and the
    last ``"> v"`` because the end colours cover clamped ranges.

    Raises:
        ConfigurationError: If fewer than 3 breaks or 2 ticks are requested.
    """
    breaks = np.asarray(breaks, dtype=np.float64)
    if breaks.ndim != 1 or len(breaks) < 3:
        raise ConfigurationError(f"A legend needs at least 3 breaks, got {breaks.size}")
    if n_ticks < 2:
        raise ConfigurationError(f"n_ticks must be at least 2, got {n_ticks}")

    ticks = np.round(np.linspace(breaks[1], breaks[-2], n_ticks), digits)
    legend = []
    for i, value in enumerate(ticks):
        label = _format_tick(float(value), digits)
        if i == 0:
            label = f"< {label}"
        elif i == n_ticks - 1:
            label = f"> {label}"
        legend.append((float(value) + 0.0, label))
    return legend

"""
Main API for the ndvi_qamask library.

`process` runs the whole in-memory pipeline (lookup table, QA mask, masked
reflectance stack, NDVI, contrast stretch, legend). `apply` wraps it with
GeoTIFF input/output through rasterio for command-line use.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import rasterio
import yaml

from .config import PipelineConfig, load_config
from .errors import ConfigurationError
from .logic.ndvi import compute_ndvi
from .logic.reclassify import apply_mask, mask_coverage, reclassify
from .logic.stretch import ColorMapping, build_legend, compute_breaks, map_to_palette
from .logic.table import LookupTable, build_lookup_table
from .raster import RasterBand, RasterStack

# --- Set up a logger for professional-grade output ---
logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class PipelineResult:
    """Every artifact of one pipeline run, handed to a renderer."""
    table: LookupTable
    mask: RasterBand
    masked: RasterStack
    ndvi: RasterBand
    breaks: np.ndarray
    color_mapping: ColorMapping
    legend: list[tuple[float, str]]

    def stretch_summary(self) -> dict:
        """Plain-Python view of the stretch, suitable for YAML output."""
        return {
            'breaks': [float(b) for b in self.breaks],
            'colors': list(self.color_mapping.colors),
            'legend': [{'value': value, 'label': label} for value, label in self.legend],
            'mask_coverage': mask_coverage(self.mask),
            'keep_predicate': list(self.table.predicate),
        }


def process(
    qa: RasterBand,
    stack: RasterStack,
    config: PipelineConfig | None = None,
    table: LookupTable | None = None,
) -> PipelineResult:
    """
    Runs masking, NDVI and stretch on in-memory rasters.

    Args:
        qa: QA band whose cells hold 16-bit pixel codes.
        stack: Co-registered reflectance bands.
        config: Pipeline configuration; band roles must be set.
        table: A prebuilt lookup table to reuse. It must have been built
            from ``config.keep_predicate``; None builds one.

    Returns:
        A PipelineResult bundling every intermediate and output.
    """
    config = config or PipelineConfig()
    nir_index, red_index = config.band_roles()
    for name, index in (('nir', nir_index), ('red', red_index)):
        if index >= len(stack):
            raise ConfigurationError(
                f"{name} band index {index} is out of range for a stack of {len(stack)} band(s)"
            )

    if table is None:
        table = build_lookup_table(config.keep_predicate, n_jobs=config.n_jobs)
    elif table.predicate != config.keep_predicate:
        raise ConfigurationError(
            f"Lookup table was built for predicate {list(table.predicate)}, "
            f"configuration asks for {list(config.keep_predicate)}"
        )

    mask = reclassify(qa, table, n_jobs=config.n_jobs)
    masked = apply_mask(stack, mask)
    ndvi = compute_ndvi(masked[nir_index], masked[red_index])

    breaks = compute_breaks(ndvi, config.percentiles, config.n_breaks)
    color_mapping = map_to_palette(breaks, config.palette)
    legend = build_legend(breaks, config.n_ticks, config.digits)

    return PipelineResult(
        table=table,
        mask=mask,
        masked=masked,
        ndvi=ndvi,
        breaks=breaks,
        color_mapping=color_mapping,
        legend=legend,
    )


def _read_stack(path: Path, nodata_override) -> tuple[RasterStack, dict]:
    with rasterio.open(path) as src:
        if src.width * src.height > 100_000_000:  # ~100MP threshold
            logger.warning("Large image detected. Consider processing in blocks for memory efficiency.")
        data = src.read()
        profile = src.profile
        names = src.descriptions
    nodata = nodata_override if nodata_override is not None else profile.get('nodata')
    if any(names):
        names = tuple(name or f"band_{i + 1}" for i, name in enumerate(names))
    else:
        names = None
    return RasterStack.from_array(data, nodata=nodata, names=names), profile


def _write_raster(path: Path, profile: dict, data: np.ndarray, nodata) -> None:
    if data.ndim == 2:
        data = data[np.newaxis]
    output_profile = profile.copy()
    output_profile.update(
        dtype=data.dtype.name, count=data.shape[0], compress='lzw', nodata=nodata
    )
    logger.info(f"Saving raster to: {path}")
    with rasterio.open(path, 'w', **output_profile) as dst:
        dst.write(data)


def apply(
    reflectance_path: str | Path,
    qa_path: str | Path,
    config_path: str | Path | None = None,
    output_dir: str | Path | None = None,
    **overrides,
) -> PipelineResult:
    """
    Masks a reflectance GeoTIFF with its QA band and computes NDVI.

    Args:
        reflectance_path: Multi-band reflectance GeoTIFF.
        qa_path: Single-band QA GeoTIFF on the same grid.
        config_path: Optional YAML configuration file.
        output_dir: If provided, ``mask.tif``, ``masked_stack.tif``,
            ``ndvi.tif`` and ``stretch.yaml`` are written there.
        **overrides: PipelineConfig fields overriding the file, such as
            ``nir_band=4``.

    Returns:
        The PipelineResult of the run.
    """
    reflectance_path = Path(reflectance_path)
    qa_path = Path(qa_path)

    if not reflectance_path.exists():
        raise FileNotFoundError(f"Input reflectance image not found: {reflectance_path}")
    if not qa_path.exists():
        raise FileNotFoundError(f"Input QA image not found: {qa_path}")

    config = load_config(config_path, **overrides)

    stack, profile = _read_stack(reflectance_path, config.reflectance_nodata)
    qa_stack, _ = _read_stack(qa_path, config.qa_nodata)
    if len(qa_stack) != 1:
        logger.warning(f"QA image has {len(qa_stack)} bands; using the first.")
    qa = qa_stack[0]
    logger.info(f"Read {len(stack)} reflectance band(s) of shape {stack[0].shape} and QA band {qa.shape}")

    result = process(qa, stack, config)

    if output_dir:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        _write_raster(output_dir / 'mask.tif', profile, result.mask.data, result.mask.nodata)
        _write_raster(
            output_dir / 'masked_stack.tif', profile,
            result.masked.to_array(), result.masked[0].nodata,
        )
        _write_raster(output_dir / 'ndvi.tif', profile, result.ndvi.data, result.ndvi.nodata)

        stretch_path = output_dir / 'stretch.yaml'
        logger.info(f"Saving stretch breaks and legend to: {stretch_path}")
        with stretch_path.open('w', encoding='utf-8') as f:
            yaml.safe_dump(result.stretch_summary(), f, sort_keys=False)

    return result

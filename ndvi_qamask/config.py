"""
Configuration loading for the ndvi_qamask pipeline.

A configuration is a YAML file whose keys are all optional; anything not
given falls back to the defaults of `PipelineConfig`. Runtime keyword
overrides are applied on top of the file.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from .bitdefs import DEFAULT_KEEP_PREDICATE
from .errors import ConfigurationError
from .logic.stretch import DEFAULT_DIGITS, DEFAULT_N_BREAKS, DEFAULT_N_TICKS, DEFAULT_PERCENTILES
from .logic.table import normalize_predicate

# --- Set up a logger for this module ---
logger = logging.getLogger(__name__)

DEFAULT_PALETTE = "RdYlGn"

# YAML section -> {YAML key: PipelineConfig field}
_SECTIONS = {
    'bands': {'nir': 'nir_band', 'red': 'red_band'},
    'nodata': {'qa': 'qa_nodata', 'reflectance': 'reflectance_nodata'},
    'stretch': {'percentiles': 'percentiles', 'n_breaks': 'n_breaks', 'palette': 'palette'},
    'legend': {'n_ticks': 'n_ticks', 'digits': 'digits'},
}
_TOP_LEVEL = {'keep_predicate': 'keep_predicate', 'n_jobs': 'n_jobs'}


@dataclass(frozen=True)
class PipelineConfig:
    """All tunable values of the masking / NDVI / stretch pipeline."""
    keep_predicate: tuple[int, ...] = DEFAULT_KEEP_PREDICATE
    nir_band: int | None = None
    red_band: int | None = None
    qa_nodata: float | None = None
    reflectance_nodata: float | None = None
    percentiles: tuple[float, ...] = DEFAULT_PERCENTILES
    n_breaks: int = DEFAULT_N_BREAKS
    palette: Any = DEFAULT_PALETTE
    n_ticks: int = DEFAULT_N_TICKS
    digits: int = DEFAULT_DIGITS
    n_jobs: int = -1
    source: str | None = field(default=None, compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'keep_predicate', normalize_predicate(self.keep_predicate))
        try:
            percentiles = tuple(float(p) for p in self.percentiles)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"'percentiles' must be a list of numbers, got {self.percentiles!r}"
            ) from e
        object.__setattr__(self, 'percentiles', percentiles)
        for name in ('n_breaks', 'n_ticks', 'digits', 'n_jobs'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"'{name}' must be an integer, got {value!r}")
        if self.n_jobs == 0:
            raise ConfigurationError("'n_jobs' must be a positive worker count or negative (-1 = all cores), got 0")
        for name in ('nir_band', 'red_band'):
            value = getattr(self, name)
            if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
                raise ConfigurationError(f"'{name}' must be a non-negative band index, got {value!r}")
        if isinstance(self.palette, list):
            object.__setattr__(self, 'palette', tuple(self.palette))

    def band_roles(self) -> tuple[int, int]:
        """Returns (nir, red) band indices, failing if either is unset."""
        if self.nir_band is None or self.red_band is None:
            raise ConfigurationError(
                "NDVI band roles are not configured; set 'bands: {nir: ..., red: ...}' "
                "or pass nir_band/red_band."
            )
        return self.nir_band, self.red_band

    def with_overrides(self, **overrides) -> "PipelineConfig":
        """Returns a copy with runtime overrides applied (None values are ignored)."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration override(s): {sorted(unknown)}")
        changes = {k: v for k, v in overrides.items() if v is not None}
        for key, value in changes.items():
            logger.info(f"Runtime override: Set {key} to {value!r}")
        return replace(self, **changes)


def config_from_dict(raw: dict | None, source: str | None = None) -> PipelineConfig:
    """Flattens a parsed YAML mapping into a PipelineConfig."""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration must be a mapping, got {type(raw).__name__}")

    values: dict[str, Any] = {}
    for key, section in raw.items():
        if key in _TOP_LEVEL:
            values[_TOP_LEVEL[key]] = section
        elif key in _SECTIONS:
            if section is None:
                continue
            if not isinstance(section, dict):
                raise ConfigurationError(f"Section '{key}' must be a mapping")
            for sub_key, value in section.items():
                if sub_key not in _SECTIONS[key]:
                    raise ConfigurationError(f"Unknown key '{key}.{sub_key}' in configuration")
                values[_SECTIONS[key][sub_key]] = value
        else:
            raise ConfigurationError(f"Unknown key '{key}' in configuration")

    return PipelineConfig(source=source, **values)


def load_config(config_path: str | Path | None = None, **overrides) -> PipelineConfig:
    """
    Loads a YAML configuration file and applies runtime overrides.

    Args:
        config_path: YAML file to read. None uses the built-in defaults.
        **overrides: PipelineConfig fields to override, e.g. ``nir_band=4``.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
        ConfigurationError: If the file cannot be parsed or holds invalid values.
    """
    if config_path is None:
        config = PipelineConfig()
        logger.info("Using default pipeline configuration.")
    else:
        config_path = Path(config_path)
        try:
            with config_path.open('r', encoding='utf-8') as f:
                raw = yaml.safe_load(f)
            logger.info(f"Loaded config file: {config_path}")
        except FileNotFoundError:
            raise FileNotFoundError(f"Could not find config file at: {config_path}") from None
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Error parsing YAML config file {config_path}: {e}") from e
        config = config_from_dict(raw, source=str(config_path))

    return config.with_overrides(**overrides)

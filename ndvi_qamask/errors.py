"""Exceptions raised by the ndvi_qamask library."""
from __future__ import annotations


class QAMaskError(Exception):
    """Base class for all ndvi_qamask errors."""


class DomainError(QAMaskError, ValueError):
    """A pixel code lies outside [0, 65535] and is not the NoData sentinel."""


class ShapeMismatchError(QAMaskError, ValueError):
    """Rasters that must be co-registered have different dimensions."""


class InsufficientDataError(QAMaskError, ValueError):
    """A raster has no valid (non-NoData) cells to compute statistics from."""


class ConfigurationError(QAMaskError, ValueError):
    """A configuration value is missing, malformed, or cannot be reconciled."""

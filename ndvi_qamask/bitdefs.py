"""
Standardized bit definitions for the ndvi_qamask library.

This module defines the bit layout of the 16-bit packed QA code attached
to each cell of a QA band, the confidence levels carried by its two-bit
fields, and the default keep predicate used to build cloud masks.
"""
from __future__ import annotations

from enum import Enum, IntEnum

# Number of bits in a QA pixel code and the size of its domain.
QA_CODE_BITS = 16
QA_CODE_MAX = (1 << QA_CODE_BITS) - 1

# Distinguished NoData sentinel for scalar pixel codes (outside [0, 65535]).
QA_NODATA = -1


class QABits(Enum):
    """
    Bit positions of the 16-bit QA code, 0 = least-significant bit.

    Single-bit flags (0–5, 10):

      0: FILL
      1: CLEAR
      2: WATER
      3: CLOUD_SHADOW
      4: SNOW
      5: CLOUD
     10: TERRAIN_OCCLUSION

    Two-bit fields store their low bit at the listed position:

      6–7: CLOUD_CONFIDENCE
      8–9: CIRRUS_CONFIDENCE

    Bits 11–15 are reserved and carry no interpreted meaning.
    """
    FILL              = 0
    CLEAR             = 1
    WATER             = 2
    CLOUD_SHADOW      = 3
    SNOW              = 4
    CLOUD             = 5
    CLOUD_CONFIDENCE  = 6
    CIRRUS_CONFIDENCE = 8
    TERRAIN_OCCLUSION = 10
    RESERVED          = 11


class Confidence(IntEnum):
    """Levels encoded by a two-bit confidence field."""
    NONE   = 0
    LOW    = 1
    MEDIUM = 2
    HIGH   = 3


class Classification(Enum):
    """Outcome of classifying a pixel code against a keep predicate."""
    DISCARD = 0
    KEEP    = 1


# Bits 0–5 are compared against the keep predicate, in this order.
PREDICATE_BITS = (
    QABits.FILL,
    QABits.CLEAR,
    QABits.WATER,
    QABits.CLOUD_SHADOW,
    QABits.SNOW,
    QABits.CLOUD,
)

# not-fill, clear, no-water, no-shadow, no-snow, no-cloud
DEFAULT_KEEP_PREDICATE = (0, 1, 0, 0, 0, 0)

# Width of the reserved tail (bits 11–15).
RESERVED_WIDTH = QA_CODE_BITS - QABits.RESERVED.value

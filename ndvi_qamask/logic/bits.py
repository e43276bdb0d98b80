"""
Bit-level decoding of 16-bit QA pixel codes.

`decode` turns a pixel code into an explicit, LSB-first `BitVector` and
`interpret` reads the named QA flags out of it. `decode_array` is the
vectorised form used when a whole range of codes is classified at once.
"""
from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from ..bitdefs import (
    QA_CODE_BITS,
    QA_CODE_MAX,
    QA_NODATA,
    RESERVED_WIDTH,
    Confidence,
    QABits,
)
from ..errors import DomainError


@dataclass(frozen=True)
class BitVector:
    """
    Exactly 16 bits of a pixel code, index 0 = least-significant bit.

    ``bits[i]`` always holds ``(code >> i) & 1``, so reading the code's
    binary string "right to left" gives the tuple order. ``bits is None``
    marks the NoData vector, for which every flag is undefined.
    """
    bits: tuple[bool, ...] | None

    def __post_init__(self):
        if self.bits is None:
            return
        bits = tuple(self.bits)
        if len(bits) != QA_CODE_BITS:
            raise DomainError(
                f"BitVector needs exactly {QA_CODE_BITS} bits, got {len(bits)}"
            )
        if any(isinstance(b, str) or b not in (0, 1) for b in bits):
            raise DomainError(f"BitVector bits must be 0/1 or booleans, got {list(bits)}")
        object.__setattr__(self, 'bits', tuple(bool(b) for b in bits))

    @property
    def is_nodata(self) -> bool:
        return self.bits is None

    def __len__(self) -> int:
        return QA_CODE_BITS

    def __getitem__(self, position: int) -> bool | None:
        if self.bits is None:
            return None
        return self.bits[position]

    def field(self, position: int, width: int) -> int | None:
        """Unsigned integer stored in ``width`` bits starting at ``position``."""
        if self.bits is None:
            return None
        return sum(int(self.bits[position + i]) << i for i in range(width))

    def as_list(self) -> list[int] | None:
        """The bits as 0/1 integers, LSB first."""
        if self.bits is None:
            return None
        return [int(b) for b in self.bits]


NODATA_BITS = BitVector(None)


@dataclass(frozen=True)
class QAFlags:
    """Named, read-only view over a decoded QA code."""
    fill: bool | None
    clear: bool | None
    water: bool | None
    cloud_shadow: bool | None
    snow: bool | None
    cloud: bool | None
    cloud_confidence: Confidence | None
    cirrus_confidence: Confidence | None
    terrain_occluded: bool | None
    reserved: tuple[bool, ...] | None
    is_nodata: bool = False

    def low_bits(self) -> tuple[int, ...] | None:
        """Bits 0–5 as 0/1 integers, in keep-predicate order."""
        if self.is_nodata:
            return None
        return (
            int(self.fill),
            int(self.clear),
            int(self.water),
            int(self.cloud_shadow),
            int(self.snow),
            int(self.cloud),
        )


NODATA_FLAGS = QAFlags(
    fill=None,
    clear=None,
    water=None,
    cloud_shadow=None,
    snow=None,
    cloud=None,
    cloud_confidence=None,
    cirrus_confidence=None,
    terrain_occluded=None,
    reserved=None,
    is_nodata=True,
)


def is_nodata_code(code) -> bool:
    if code is None:
        return True
    if isinstance(code, (float, np.floating)) and math.isnan(code):
        return True
    return code == QA_NODATA


def as_pixel_code(code) -> int:
    """Validate a scalar code and return it as a plain int."""
    if isinstance(code, (bool, np.bool_)):
        raise DomainError(f"Pixel code must be an integer, got boolean {code!r}")
    if isinstance(code, (float, np.floating)):
        if not float(code).is_integer():
            raise DomainError(f"Pixel code {code!r} is not an integer value")
        code = int(code)
    elif isinstance(code, (int, np.integer)):
        code = int(code)
    else:
        raise DomainError(f"Pixel code must be numeric, got {type(code).__name__}")

    if not 0 <= code <= QA_CODE_MAX:
        raise DomainError(f"Pixel code {code} is outside [0, {QA_CODE_MAX}]")
    return code


def decode(code) -> BitVector:
    """
    Decodes a pixel code into its 16 bits, least-significant first.

    NoData (``QA_NODATA``, ``None`` or NaN) yields ``NODATA_BITS`` instead
    of failing, since QA rasters legitimately contain missing cells.

    Raises:
        DomainError: If the code is neither NoData nor an integer in
            [0, 65535].
    """
    if is_nodata_code(code):
        return NODATA_BITS
    value = as_pixel_code(code)
    return BitVector(tuple(bool((value >> i) & 1) for i in range(QA_CODE_BITS)))


def encode(bits: BitVector) -> int:
    """Exact inverse of `decode`; the NoData vector encodes to ``QA_NODATA``."""
    if bits.is_nodata:
        return QA_NODATA
    return sum(int(b) << i for i, b in enumerate(bits.bits))


def decode_array(codes) -> np.ndarray:
    """
    Vectorised `decode` for an array of in-domain codes.

    Returns:
        A uint8 array of shape ``codes.shape + (16,)`` where ``[..., i]``
        is bit ``i`` of each code.

    Raises:
        DomainError: If any code is non-integral or outside [0, 65535].
    """
    arr = np.asarray(codes)
    if not np.issubdtype(arr.dtype, np.integer):
        if arr.size and not np.all(np.isfinite(arr) & (arr == np.floor(arr))):
            raise DomainError("decode_array requires integral pixel codes")
    arr = arr.astype(np.int64)
    if arr.size and (arr.min() < 0 or arr.max() > QA_CODE_MAX):
        raise DomainError(
            f"Pixel codes must lie in [0, {QA_CODE_MAX}], got range "
            f"[{arr.min()}, {arr.max()}]"
        )
    shifts = np.arange(QA_CODE_BITS, dtype=np.int64)
    return ((arr[..., np.newaxis] >> shifts) & 1).astype(np.uint8)


def interpret(bits: BitVector) -> QAFlags:
    """
    Reads the named QA flags out of a decoded code.

    Total over every 16-bit vector. Confidence fields are read as unsigned
    two-bit integers; reserved bits 11–15 are passed through verbatim.
    """
    if bits.is_nodata:
        return NODATA_FLAGS

    reserved_start = QABits.RESERVED.value
    return QAFlags(
        fill=bits[QABits.FILL.value],
        clear=bits[QABits.CLEAR.value],
        water=bits[QABits.WATER.value],
        cloud_shadow=bits[QABits.CLOUD_SHADOW.value],
        snow=bits[QABits.SNOW.value],
        cloud=bits[QABits.CLOUD.value],
        cloud_confidence=Confidence(bits.field(QABits.CLOUD_CONFIDENCE.value, 2)),
        cirrus_confidence=Confidence(bits.field(QABits.CIRRUS_CONFIDENCE.value, 2)),
        terrain_occluded=bits[QABits.TERRAIN_OCCLUSION.value],
        reserved=tuple(bits.bits[reserved_start:reserved_start + RESERVED_WIDTH]),
    )

"""
float32 <-> float16 conversion on raw IEEE-754 bit patterns.

Used as the dtype bridge for fp16 model builds: blobs are encoded to uint16 bit
patterns before inference and fp16 outputs are decoded back to float32 before
post-processing.

Encoding truncates the mantissa (no round-to-nearest), so it differs from
`ndarray.astype(np.float16)` in the last bit for most inputs. Every NaN collapses
to the canonical pattern 0x7E00 (sign and payload are dropped).
"""

from __future__ import annotations

from typing import Union

import numpy as np


HALF_POS_INF = 0x7C00
HALF_NEG_INF = 0xFC00
HALF_NAN = 0x7E00

_FLOAT_NAN_BITS = 0x7FC00000
_FLOAT_INF_BITS = 0x7F800000

ArrayLike = Union[np.ndarray, float, int, list, tuple]


def float32_to_float16_bits(values: ArrayLike) -> np.ndarray:
    """
    Encode float32 values as float16 bit patterns (uint16), element-wise.
    """

    f = np.ascontiguousarray(values, dtype=np.float32)
    bits = f.view(np.uint32).astype(np.int64)

    sign = (bits >> 31) & 0x1
    exponent = (bits >> 23) & 0xFF
    mantissa = bits & 0x7FFFFF

    half_exp = exponent - 127 + 15
    sign_bits = sign << 15

    # Normal range: truncate the mantissa to 10 bits.
    normal = sign_bits | (np.clip(half_exp, 0, 0x1F) << 10) | (mantissa >> 13)

    # Subnormal range: restore the implicit bit, then shift it below the exponent.
    # Shifts of 24+ leave nothing, i.e. underflow to signed zero.
    shift = np.clip(14 - half_exp, 0, 31)
    subnormal = sign_bits | ((mantissa | 0x800000) >> shift)

    out = np.where(half_exp <= 0, subnormal, normal)
    out = np.where(half_exp >= 0x1F, sign_bits | HALF_POS_INF, out)

    special = exponent == 0xFF
    out = np.where(special & (mantissa != 0), HALF_NAN, out)
    out = np.where(special & (mantissa == 0), sign_bits | HALF_POS_INF, out)

    return out.astype(np.uint16)


def float16_bits_to_float32(bits: ArrayLike) -> np.ndarray:
    """
    Decode float16 bit patterns (uint16, or a float16 array viewed as such) to float32.
    """

    h = np.asarray(bits)
    if h.dtype == np.float16:
        h = np.ascontiguousarray(h).view(np.uint16)
    h = h.astype(np.int64)

    sign = (h >> 15) & 0x1
    exponent = (h >> 10) & 0x1F
    mantissa = h & 0x3FF
    sign_bits = sign << 31

    normal = sign_bits | ((exponent - 15 + 127) << 23) | (mantissa << 13)

    # Subnormal: shift left until the implicit bit shows up, adjusting the exponent.
    sub_exp = np.full(h.shape, -14, dtype=np.int64)
    sub_man = mantissa.copy()
    for _ in range(10):
        pending = (sub_man != 0) & ((sub_man & 0x400) == 0)
        if not pending.any():
            break
        sub_man = np.where(pending, sub_man << 1, sub_man)
        sub_exp = np.where(pending, sub_exp - 1, sub_exp)
    subnormal = sign_bits | ((sub_exp + 127) << 23) | ((sub_man & 0x3FF) << 13)

    out = np.where(exponent == 0, np.where(mantissa == 0, sign_bits, subnormal), normal)
    out = np.where(
        exponent == 0x1F,
        np.where(mantissa != 0, _FLOAT_NAN_BITS, sign_bits | _FLOAT_INF_BITS),
        out,
    )

    return out.astype(np.uint32).view(np.float32)


def to_half(value: float) -> int:
    """Encode a single float as a float16 bit pattern."""
    return int(float32_to_float16_bits(np.array([value], dtype=np.float32))[0])


def to_full(bits: int) -> float:
    """Decode a single float16 bit pattern."""
    return float(float16_bits_to_float32(np.array([bits], dtype=np.uint16))[0])


def encode_float16(values: ArrayLike) -> np.ndarray:
    """
    Encode to a NumPy float16 array carrying the truncated bit patterns.

    This is what an fp16 ONNX model input expects.
    """

    return float32_to_float16_bits(values).view(np.float16)

"""
Compensated double-float arithmetic for deep fractal zooms.

A float64 value is carried as an unevaluated sum of two float32 words
(high, low). Additions and multiplications track the rounding error of the
float32 operations so that chained arithmetic keeps roughly twice the
float32 mantissa, which is what lets the 2D evaluators zoom far beyond what
float32 alone can resolve.

The nopython kernels (``dd_*``) are used directly by the per-pixel
evaluators; the Python wrappers take and return :class:`ExtendedScalar`.
"""

import numpy as np
from numba import njit
from typing import NamedTuple, Union
import logging

logger = logging.getLogger(__name__)

# Dekker splitter for a 24-bit float32 mantissa (2^12 + 1)
DEKKER_SPLITTER = 4097.0


class ExtendedScalar(NamedTuple):
    """One higher-precision value stored as two float32 words."""

    high: np.float32
    low: np.float32

    def to_float(self) -> float:
        """Reconstruct the value as a float64."""
        return float(np.float64(self.high) + np.float64(self.low))

    def __neg__(self) -> 'ExtendedScalar':
        return ExtendedScalar(np.float32(-self.high), np.float32(-self.low))

    def __repr__(self) -> str:
        return f"ExtendedScalar(high={float(self.high)!r}, low={float(self.low)!r})"


@njit(cache=True, nogil=True)
def fma32(a, b, c):
    """
    Fused multiply-add rounded once to float32.

    Two float32 operands multiply exactly in float64 (48 significant bits),
    so only the final addition is rounded before narrowing.
    """
    return np.float32(np.float64(a) * np.float64(b) + np.float64(c))


@njit(cache=True, nogil=True)
def dd_split(value):
    """Split a float64 into (high, low) float32 words."""
    high = np.float32(value)
    low = np.float32(value - np.float64(high))
    return high, low


@njit(cache=True, nogil=True)
def dd_add(a_hi, a_lo, b_hi, b_lo):
    """
    Compensated addition of two double-float values.

    Knuth two-sum on the high words, the low words folded into the error
    term, then renormalised so that the result's low word is below half an
    ulp of its high word.
    """
    a_hi = np.float32(a_hi)
    a_lo = np.float32(a_lo)
    b_hi = np.float32(b_hi)
    b_lo = np.float32(b_lo)

    s = np.float32(a_hi + b_hi)
    v = np.float32(s - a_hi)
    e = np.float32(np.float32(a_hi - np.float32(s - v)) + np.float32(b_hi - v))
    t = np.float32(np.float32(e + a_lo) + b_lo)
    z = np.float32(s + t)
    return z, np.float32(t - np.float32(z - s))


@njit(cache=True, nogil=True)
def dd_mul(a_hi, a_lo, b_hi, b_lo):
    """Compensated multiplication of two double-float values."""
    a_hi = np.float32(a_hi)
    a_lo = np.float32(a_lo)
    b_hi = np.float32(b_hi)
    b_lo = np.float32(b_lo)

    p = np.float32(a_hi * b_hi)
    e = fma32(a_hi, b_hi, -p)
    e = fma32(a_hi, b_lo, e)
    e = fma32(a_lo, b_hi, e)
    z = np.float32(p + e)
    lo = np.float32(np.float32(e - np.float32(z - p)) + np.float32(a_lo * b_lo))
    return z, lo


@njit(cache=True, nogil=True)
def dd_sqr(a_hi, a_lo):
    """Square of a double-float value."""
    return dd_mul(a_hi, a_lo, a_hi, a_lo)


def _as_extended(value: Union['ExtendedScalar', float]) -> ExtendedScalar:
    if isinstance(value, ExtendedScalar):
        return value
    return split(value)


def split(value: float) -> ExtendedScalar:
    """
    Split a float64 into high and low float32 words.

    Args:
        value: Value to split

    Returns:
        ExtendedScalar whose words sum back to ``value``
    """
    high, low = dd_split(float(value))
    return ExtendedScalar(np.float32(high), np.float32(low))


def split_accurate(value: float) -> ExtendedScalar:
    """
    Split a float64 using Dekker's splitting constant.

    The splitter first cuts the float64 mantissa roughly in half before the
    narrowing to float32, which keeps the high word free of the rounding
    carry that a plain cast may introduce.
    """
    value = float(value)
    c = DEKKER_SPLITTER * value
    high = np.float32(c - (c - value))
    low = np.float32(value - np.float64(high))
    return ExtendedScalar(high, low)


def add(a: Union[ExtendedScalar, float], b: Union[ExtendedScalar, float]) -> ExtendedScalar:
    """Error-compensated sum of two extended scalars."""
    a = _as_extended(a)
    b = _as_extended(b)
    high, low = dd_add(a.high, a.low, b.high, b.low)
    return ExtendedScalar(np.float32(high), np.float32(low))


def multiply(a: Union[ExtendedScalar, float], b: Union[ExtendedScalar, float]) -> ExtendedScalar:
    """Error-compensated product of two extended scalars."""
    a = _as_extended(a)
    b = _as_extended(b)
    high, low = dd_mul(a.high, a.low, b.high, b.low)
    return ExtendedScalar(np.float32(high), np.float32(low))


def subtract(a: Union[ExtendedScalar, float], b: Union[ExtendedScalar, float]) -> ExtendedScalar:
    """Error-compensated difference ``a - b``."""
    return add(a, -_as_extended(b))


def to_float(value: ExtendedScalar) -> float:
    """Reconstruct a float64 from an extended scalar."""
    return value.to_float()


def detect_precision_need(zoom: float, width: int) -> str:
    """
    Classify how much precision a viewport needs to resolve adjacent pixels.

    Args:
        zoom: Viewport zoom factor (higher = more zoomed in)
        width: Image width in pixels

    Returns:
        'single' if float32 resolves the pixel pitch, 'extended' if the
        double-float pair is required, 'exhausted' if even the pair cannot
    """
    eps32 = float(np.finfo(np.float32).eps)
    pixel_pitch = 4.0 / zoom / max(1, width)

    if pixel_pitch > eps32 * 2.0:
        return 'single'
    elif pixel_pitch > eps32 * eps32 * 4.0:
        return 'extended'
    else:
        return 'exhausted'

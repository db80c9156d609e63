# patchinfer - Patchwise inference on large volumes
#
# Copyright (c) 2026 - now
# patchinfer contributors

"""Element type conversion with saturating narrowing."""

from typing import Tuple, Union

import torch

DTypeLike = Union[torch.dtype, str]

SUPPORTED_DTYPES = (
    torch.int8, torch.uint8, torch.int16, torch.int32, torch.int64,
    torch.float16, torch.float32, torch.float64,
)

# Aliases accepted for string dtype specifications
_DTYPE_NAMES = {
    'int8': torch.int8,
    'uint8': torch.uint8,
    'int16': torch.int16,
    'short': torch.int16,
    'int32': torch.int32,
    'int': torch.int32,
    'int64': torch.int64,
    'long': torch.int64,
    'float16': torch.float16,
    'half': torch.float16,
    'float32': torch.float32,
    'float': torch.float32,
    'float64': torch.float64,
    'double': torch.float64,
}

# Floating point types that can't be computed on the host are widened to this
HOST_FLOAT = torch.float32


def as_dtype(dtype: DTypeLike) -> torch.dtype:
    """Resolve ``dtype`` (a ``torch.dtype`` or its name) to a supported ``torch.dtype``."""
    if isinstance(dtype, str):
        name = dtype.lower()
        if name.startswith('torch.'):
            name = name[len('torch.'):]
        if name not in _DTYPE_NAMES:
            raise ValueError(f'Unknown element type {dtype!r}.')
        dtype = _DTYPE_NAMES[name]
    if dtype not in SUPPORTED_DTYPES:
        raise ValueError(
            f'Element type {dtype} is not supported. '
            f'Supported types: {", ".join(str(d) for d in SUPPORTED_DTYPES)}.'
        )
    return dtype


def dtype_bounds(dtype: torch.dtype) -> Tuple[float, float]:
    """Representable ``(min, max)`` values of ``dtype``."""
    if dtype.is_floating_point:
        info = torch.finfo(dtype)
    else:
        info = torch.iinfo(dtype)
    return info.min, info.max


def clamp_cast(tensor: torch.Tensor, dtype: DTypeLike) -> torch.Tensor:
    """Cast ``tensor`` to ``dtype``, saturating values that ``dtype`` can't represent.

    - floating -> floating: plain cast.
    - any -> wider or equally ranged type: plain cast.
    - floating -> integer: values are rounded to the nearest integer
      (ties to even) and clamped to the integer range. NaN becomes 0.
    - integer -> narrower integer: values are clamped to the target range.

    Never raises on out-of-range values."""
    dtype = as_dtype(dtype)
    src_dtype = tensor.dtype
    if src_dtype == dtype:
        return tensor
    if dtype.is_floating_point:
        return tensor.to(dtype)

    lo, hi = dtype_bounds(dtype)
    if src_dtype.is_floating_point:
        # Compare in float64 so that the bounds of int8..int32 are exact.
        #  int64 bounds are not exactly representable, so values at or
        #  beyond them are set explicitly after the cast.
        values = tensor.to(torch.float64)
        nan = torch.isnan(values)
        above = values >= hi
        below = values <= lo
        values = torch.round(values.clamp(lo, hi))
        values = values.masked_fill(nan, 0)
        out = values.to(dtype)
        out = out.masked_fill(above, hi).masked_fill(below, lo)
        return out

    src_lo, src_hi = dtype_bounds(src_dtype)
    lo, hi = max(lo, src_lo), min(hi, src_hi)
    if (lo, hi) != (src_lo, src_hi):
        tensor = tensor.clamp(lo, hi)
    return tensor.to(dtype)


def convert_dtype(tensor: torch.Tensor, dtype: DTypeLike) -> torch.Tensor:
    """Convert ``tensor`` to the element type ``dtype`` (saturating if narrowing)."""
    return clamp_cast(tensor, dtype)


def to_host(tensor: torch.Tensor) -> torch.Tensor:
    """Move ``tensor`` to host memory.

    ``float16`` is not natively computable on the host, so it is
    widened to ``float32`` before leaving the device."""
    if tensor.dtype == torch.float16:
        tensor = tensor.to(HOST_FLOAT)
    return tensor.cpu()

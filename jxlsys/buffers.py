"""Buffer descriptors passed across the native boundary.

Every buffer handed to libjxl is converted to a ``numpy`` view so the
address (``arr.ctypes.data``) and the byte size are explicit, and so the
view itself can be retained as the keep-alive reference for as long as the
native side may touch the memory.

Accepted inputs: ``bytes``, ``bytearray``, ``memoryview``, ctypes arrays and
C-contiguous ``numpy`` arrays. Output buffers must be writable.
"""

from __future__ import annotations

from typing import Any, NamedTuple

import numpy as np

from jxlsys.enums import JxlDataType
from jxlsys.structs import JxlPixelFormat

__all__ = [
    "NativeBuffer",
    "readable_buffer",
    "writable_buffer",
    "bytes_per_sample",
    "numpy_dtype",
    "image_buffer_size",
    "empty_image_buffer",
]

_DTYPES = {
    JxlDataType.UINT8: np.uint8,
    JxlDataType.UINT16: np.uint16,
    JxlDataType.FLOAT16: np.float16,
    JxlDataType.FLOAT: np.float32,
}


class NativeBuffer(NamedTuple):
    """Address and size of a buffer, plus the object keeping it alive."""

    address: int
    size: int
    keepalive: Any


def _as_array(obj: Any) -> np.ndarray:
    if isinstance(obj, np.ndarray):
        arr = obj
    else:
        try:
            arr = np.frombuffer(obj, dtype=np.uint8)
        except TypeError as e:
            raise TypeError(
                f"Expected a bytes-like object or numpy array, got {type(obj).__name__}"
            ) from e
    if not arr.flags.c_contiguous:
        raise ValueError("Buffer must be C-contiguous")
    return arr


def readable_buffer(obj: Any) -> NativeBuffer:
    arr = _as_array(obj)
    return NativeBuffer(arr.ctypes.data, arr.nbytes, arr)


def writable_buffer(obj: Any) -> NativeBuffer:
    arr = _as_array(obj)
    if not arr.flags.writeable:
        raise ValueError("Output buffer must be writable (got a read-only buffer)")
    return NativeBuffer(arr.ctypes.data, arr.nbytes, arr)


def bytes_per_sample(data_type: int) -> int:
    return np.dtype(numpy_dtype(data_type)).itemsize


def numpy_dtype(data_type: int) -> type:
    try:
        return _DTYPES[JxlDataType(data_type)]
    except (KeyError, ValueError) as e:
        raise ValueError(f"Unsupported JxlDataType: {data_type}") from e


def image_buffer_size(xsize: int, ysize: int, pixel_format: JxlPixelFormat) -> int:
    """Byte size libjxl expects for an interleaved image buffer.

    Rows are padded to ``align`` bytes except the last one, matching
    ``JxlDecoderImageOutBufferSize``.
    """
    if xsize == 0 or ysize == 0:
        return 0
    row = xsize * pixel_format.num_channels * bytes_per_sample(pixel_format.data_type)
    last_row = row
    if pixel_format.align > 1:
        row = -(-row // pixel_format.align) * pixel_format.align
    return row * (ysize - 1) + last_row


def empty_image_buffer(xsize: int, ysize: int, pixel_format: JxlPixelFormat) -> np.ndarray:
    """Allocate a caller-owned output buffer for ``pixel_format``.

    Returns an ``(ysize, xsize, num_channels)`` array for unpadded formats
    and a flat ``uint8`` array of ``image_buffer_size`` bytes otherwise.
    """
    dtype = numpy_dtype(pixel_format.data_type)
    row = xsize * pixel_format.num_channels * np.dtype(dtype).itemsize
    if pixel_format.align <= 1 or row % pixel_format.align == 0:
        return np.empty((ysize, xsize, pixel_format.num_channels), dtype=dtype)
    return np.empty(image_buffer_size(xsize, ysize, pixel_format), dtype=np.uint8)

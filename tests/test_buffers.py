"""Buffer descriptors and image buffer sizing."""

import ctypes

import numpy as np
import pytest

from jxlsys.buffers import (
    bytes_per_sample,
    empty_image_buffer,
    image_buffer_size,
    numpy_dtype,
    readable_buffer,
    writable_buffer,
)
from jxlsys.enums import JxlDataType
from jxlsys.structs import JxlPixelFormat


class TestDescriptors:

    @pytest.mark.parametrize("obj", [
        b"\x00" * 10,
        bytearray(10),
        memoryview(bytearray(10)),
        (ctypes.c_uint8 * 10)(),
        np.zeros(10, dtype=np.uint8),
    ])
    def test_readable_sizes(self, obj):
        assert readable_buffer(obj).size == 10

    def test_numpy_size_in_bytes(self):
        arr = np.zeros((2, 3), dtype=np.float32)
        buf = readable_buffer(arr)
        assert buf.size == 24
        assert buf.address == arr.ctypes.data
        assert buf.keepalive is arr

    def test_non_contiguous_rejected(self):
        arr = np.zeros((4, 4), dtype=np.uint8)[:, ::2]
        with pytest.raises(ValueError, match="contiguous"):
            readable_buffer(arr)

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            readable_buffer(12)

    def test_writable_rejects_bytes(self):
        with pytest.raises(ValueError, match="writable"):
            writable_buffer(b"abc")

    def test_writable_shares_memory(self):
        out = bytearray(4)
        buf = writable_buffer(out)
        ctypes.memmove(buf.address, b"\x01\x02\x03\x04", 4)
        assert out == bytearray(b"\x01\x02\x03\x04")


class TestImageSizes:

    def test_dtypes(self):
        assert numpy_dtype(JxlDataType.UINT16) is np.uint16
        assert bytes_per_sample(JxlDataType.FLOAT) == 4
        with pytest.raises(ValueError):
            numpy_dtype(1)

    def test_unpadded(self):
        assert image_buffer_size(3, 2, JxlPixelFormat.make(3)) == 18

    def test_last_row_not_padded(self):
        fmt = JxlPixelFormat.make(3, align=4)
        assert image_buffer_size(3, 2, fmt) == 12 + 9

    def test_empty_image(self):
        assert image_buffer_size(0, 5, JxlPixelFormat.make(4)) == 0

    def test_empty_image_buffer_shape(self):
        fmt = JxlPixelFormat.make(4, JxlDataType.UINT16)
        out = empty_image_buffer(5, 3, fmt)
        assert out.shape == (3, 5, 4)
        assert out.dtype == np.uint16

    def test_empty_image_buffer_padded(self):
        fmt = JxlPixelFormat.make(3, align=8)
        out = empty_image_buffer(3, 2, fmt)
        assert out.dtype == np.uint8
        assert out.nbytes == image_buffer_size(3, 2, fmt)

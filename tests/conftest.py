"""Shared fixtures: a scripted stand-in for the loaded libjxl.

``FakeJxl`` answers the subset of libjxl the handle classes call. Every call
is recorded by name so tests can assert that guarded operations never
reached native code. ``JxlDecoderProcessInput`` / ``JxlEncoderProcessOutput``
replay scripted statuses.
"""

import ctypes
from collections import deque

import pytest


class FakeJxl:
    """Records calls; unknown ``Jxl*`` functions return 0 (success)."""

    def __init__(self):
        self.calls = []
        self.destroyed = []
        self.decoder_script = deque()
        self.encoder_script = deque()
        self.output_chunks = deque()
        self.create_result = 0x1000
        self.runner_status = 0
        self.release_input_remaining = 0
        self.basic_info_xsize = 4
        self.basic_info_ysize = 2
        self.image_buffer_size = 24
        self._next_settings = 0x2000

    def __getattr__(self, name):
        if not name.startswith("Jxl"):
            raise AttributeError(name)

        def record(*args):
            self.calls.append((name, args))
            return 0

        return record

    def names(self):
        return [name for name, _ in self.calls]

    def _record(self, name, args):
        self.calls.append((name, args))

    # Decoder -----------------------------------------------------------

    def JxlDecoderCreate(self, memory_manager):
        self._record("JxlDecoderCreate", (memory_manager,))
        return self.create_result

    def JxlDecoderDestroy(self, handle):
        self._record("JxlDecoderDestroy", (handle,))
        self.destroyed.append(handle)

    def JxlDecoderSetParallelRunner(self, handle, runner, opaque):
        self._record("JxlDecoderSetParallelRunner", (handle, runner, opaque))
        return self.runner_status

    def JxlDecoderProcessInput(self, handle):
        self._record("JxlDecoderProcessInput", (handle,))
        return int(self.decoder_script.popleft())

    def JxlDecoderReleaseInput(self, handle):
        self._record("JxlDecoderReleaseInput", (handle,))
        return self.release_input_remaining

    def JxlDecoderGetBasicInfo(self, handle, info_ref):
        self._record("JxlDecoderGetBasicInfo", (handle, info_ref))
        info = info_ref._obj
        info.xsize = self.basic_info_xsize
        info.ysize = self.basic_info_ysize
        info.num_color_channels = 3
        return 0

    def JxlDecoderImageOutBufferSize(self, handle, format_ref, size_ref):
        self._record("JxlDecoderImageOutBufferSize", (handle, format_ref, size_ref))
        size_ref._obj.value = self.image_buffer_size
        return 0

    def JxlDecoderSizeHintBasicInfo(self, handle):
        self._record("JxlDecoderSizeHintBasicInfo", (handle,))
        return 98

    # Encoder -----------------------------------------------------------

    def JxlEncoderCreate(self, memory_manager):
        self._record("JxlEncoderCreate", (memory_manager,))
        return self.create_result

    def JxlEncoderDestroy(self, handle):
        self._record("JxlEncoderDestroy", (handle,))
        self.destroyed.append(handle)

    def JxlEncoderSetParallelRunner(self, handle, runner, opaque):
        self._record("JxlEncoderSetParallelRunner", (handle, runner, opaque))
        return self.runner_status

    def JxlEncoderFrameSettingsCreate(self, handle, source):
        self._record("JxlEncoderFrameSettingsCreate", (handle, source))
        self._next_settings += 1
        return self._next_settings

    def JxlEncoderProcessOutput(self, handle, next_out_ref, avail_out_ref):
        self._record("JxlEncoderProcessOutput", (handle,))
        status = self.encoder_script.popleft()
        chunk = self.output_chunks.popleft() if self.output_chunks else b""
        ctypes.memmove(next_out_ref._obj.value, chunk, len(chunk))
        next_out_ref._obj.value += len(chunk)
        avail_out_ref._obj.value -= len(chunk)
        return int(status)

    def JxlEncoderGetError(self, handle):
        self._record("JxlEncoderGetError", (handle,))
        return 4

    def JxlEncoderDistanceFromQuality(self, quality):
        self._record("JxlEncoderDistanceFromQuality", (quality,))
        return 1.0 if quality >= 90 else 2.5


@pytest.fixture
def fake_lib():
    return FakeJxl()


@pytest.fixture
def native_lib():
    """The real libjxl, or skip."""
    from jxlsys._native import load_library
    from jxlsys.errors import JxlSysError

    try:
        return load_library()
    except JxlSysError as e:
        pytest.skip(f"libjxl not available: {e}")


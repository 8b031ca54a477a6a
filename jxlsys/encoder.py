"""Owned ``JxlEncoder`` handle and its frame settings.

The encoder is push-based: configure basic info and color encoding, add
frames through a ``FrameSettings`` object, close the input, then drain
compressed bytes with ``process_output`` until it stops returning
``NEED_MORE_OUTPUT``.

Frame pixel data is copied by libjxl during ``add_image_frame`` /
``add_jpeg_frame``, so input buffers are only borrowed for the call.
``FrameSettings`` are owned by the encoder: they are freed when the encoder
is destroyed or reset and become unusable at that point.

Example:
    with Encoder() as enc:
        info = init_basic_info()
        info.xsize, info.ysize = width, height
        info.bits_per_sample = 8
        info.num_color_channels = 3
        info.uses_original_profile = JXL_FALSE
        enc.set_basic_info(info)
        enc.set_color_encoding(color_encoding_srgb())
        settings = enc.frame_settings()
        settings.set_distance(1.0)
        settings.add_image_frame(JxlPixelFormat.make(3), pixels)
        enc.close_input()
        data = enc.encode_all()
"""

from __future__ import annotations

import weakref
from ctypes import byref, c_size_t, c_void_p
from typing import Any, Callable, List, Optional, Tuple, Union

from jxlsys.buffers import readable_buffer, writable_buffer
from jxlsys.callbacks import CallbackTable
from jxlsys.enums import (
    JXL_FALSE,
    JXL_TRUE,
    JxlEncoderError,
    JxlEncoderFrameSettingId,
    JxlEncoderStatus,
    JxlExtraChannelType,
)
from jxlsys.errors import HandleClosedError
from jxlsys.structs import (
    JxlBasicInfo,
    JxlBitDepth,
    JxlBlendInfo,
    JxlColorEncoding,
    JxlExtraChannelInfo,
    JxlFrameHeader,
    JxlPixelFormat,
)

__all__ = [
    "Encoder",
    "FrameSettings",
    "init_basic_info",
    "init_frame_header",
    "init_blend_info",
    "init_extra_channel_info",
    "color_encoding_srgb",
    "distance_from_quality",
]

Status = JxlEncoderStatus

# Output chunk size used by encode_all
_CHUNK_SIZE = 1 << 16


def _default_lib(lib: Any) -> Any:
    if lib is None:
        from jxlsys._native import load_library
        lib = load_library()
    return lib


# ----------------------------------------------------------------------
# Struct initialisers (infallible native helpers)
# ----------------------------------------------------------------------


def init_basic_info(lib: Any = None) -> JxlBasicInfo:
    """``JxlBasicInfo`` with libjxl's defaults filled in."""
    info = JxlBasicInfo()
    _default_lib(lib).JxlEncoderInitBasicInfo(byref(info))
    return info


def init_frame_header(lib: Any = None) -> JxlFrameHeader:
    header = JxlFrameHeader()
    _default_lib(lib).JxlEncoderInitFrameHeader(byref(header))
    return header


def init_blend_info(lib: Any = None) -> JxlBlendInfo:
    info = JxlBlendInfo()
    _default_lib(lib).JxlEncoderInitBlendInfo(byref(info))
    return info


def init_extra_channel_info(channel_type: JxlExtraChannelType, lib: Any = None) -> JxlExtraChannelInfo:
    info = JxlExtraChannelInfo()
    _default_lib(lib).JxlEncoderInitExtraChannelInfo(int(channel_type), byref(info))
    return info


def color_encoding_srgb(is_gray: bool = False, linear: bool = False, lib: Any = None) -> JxlColorEncoding:
    """sRGB (or linear sRGB) color encoding, gray or RGB."""
    lib = _default_lib(lib)
    encoding = JxlColorEncoding()
    func = lib.JxlColorEncodingSetToLinearSRGB if linear else lib.JxlColorEncodingSetToSRGB
    func(byref(encoding), JXL_TRUE if is_gray else JXL_FALSE)
    return encoding


def distance_from_quality(quality: float, lib: Any = None) -> float:
    """Map a libjpeg-style quality (0-100) to a butteraugli distance."""
    return float(_default_lib(lib).JxlEncoderDistanceFromQuality(quality))


# ----------------------------------------------------------------------
# Frame settings
# ----------------------------------------------------------------------


class FrameSettings:
    """``JxlEncoderFrameSettings*`` owned by an ``Encoder``.

    Do not construct directly; use ``Encoder.frame_settings()``.
    """

    def __init__(self, encoder: "Encoder", handle: int) -> None:
        self._encoder = encoder
        self._handle = handle
        self._generation = encoder._generation

    @property
    def valid(self) -> bool:
        return (
            not self._encoder.closed
            and self._generation == self._encoder._generation
        )

    def _require(self) -> int:
        if not self.valid:
            raise HandleClosedError("FrameSettings belong to an encoder that was closed or reset")
        return self._handle

    @property
    def _lib(self) -> Any:
        return self._encoder._lib

    def set_option(self, option: JxlEncoderFrameSettingId, value: Union[int, float]) -> JxlEncoderStatus:
        """Set an integer option, or a float option when ``value`` is a float."""
        if isinstance(value, float):
            return Status(self._lib.JxlEncoderFrameSettingsSetFloatOption(self._require(), int(option), value))
        return Status(self._lib.JxlEncoderFrameSettingsSetOption(self._require(), int(option), int(value)))

    def set_distance(self, distance: float) -> JxlEncoderStatus:
        """Butteraugli distance: 0 is mathematically lossless, 1 visually lossless."""
        return Status(self._lib.JxlEncoderSetFrameDistance(self._require(), distance))

    def set_lossless(self, lossless: bool) -> JxlEncoderStatus:
        return Status(self._lib.JxlEncoderSetFrameLossless(self._require(), JXL_TRUE if lossless else JXL_FALSE))

    def set_extra_channel_distance(self, index: int, distance: float) -> JxlEncoderStatus:
        return Status(self._lib.JxlEncoderSetExtraChannelDistance(self._require(), index, distance))

    def set_frame_header(self, header: JxlFrameHeader) -> JxlEncoderStatus:
        return Status(self._lib.JxlEncoderSetFrameHeader(self._require(), byref(header)))

    def set_frame_name(self, name: str) -> JxlEncoderStatus:
        return Status(self._lib.JxlEncoderSetFrameName(self._require(), name.encode("utf-8")))

    def set_bit_depth(self, bit_depth: JxlBitDepth) -> JxlEncoderStatus:
        return Status(self._lib.JxlEncoderSetFrameBitDepth(self._require(), byref(bit_depth)))

    def set_extra_channel_blend_info(self, index: int, blend_info: JxlBlendInfo) -> JxlEncoderStatus:
        return Status(self._lib.JxlEncoderSetExtraChannelBlendInfo(self._require(), index, byref(blend_info)))

    def add_image_frame(self, pixel_format: JxlPixelFormat, pixels: Any) -> JxlEncoderStatus:
        """Add a frame of interleaved pixels; libjxl copies them before returning."""
        buf = readable_buffer(pixels)
        return Status(
            self._lib.JxlEncoderAddImageFrame(self._require(), byref(pixel_format), buf.address, buf.size)
        )

    def add_jpeg_frame(self, jpeg: Any) -> JxlEncoderStatus:
        """Add a JPEG file for lossless recompression."""
        buf = readable_buffer(jpeg)
        return Status(self._lib.JxlEncoderAddJPEGFrame(self._require(), buf.address, buf.size))

    def set_extra_channel_buffer(self, pixel_format: JxlPixelFormat, pixels: Any, index: int) -> JxlEncoderStatus:
        buf = readable_buffer(pixels)
        return Status(
            self._lib.JxlEncoderSetExtraChannelBuffer(
                self._require(), byref(pixel_format), buf.address, buf.size, index
            )
        )


# ----------------------------------------------------------------------
# Encoder
# ----------------------------------------------------------------------


def _destroy(destroy: Callable[[int], None], handle: int, callbacks: CallbackTable) -> None:
    # ``callbacks`` is an argument only so the table outlives the handle
    destroy(handle)


class Encoder:
    """Owned ``JxlEncoder*``.

    Args:
        callbacks: Optional allocator / parallel runner. Kept alive for the
            lifetime of the native handle.
        lib: Loaded libjxl (defaults to ``load_library()``).

    Raises:
        MemoryError: If ``JxlEncoderCreate`` returns NULL.
        RuntimeError: If the callback table's runner is rejected.
    """

    def __init__(self, callbacks: Optional[CallbackTable] = None, lib: Any = None) -> None:
        lib = _default_lib(lib)
        self._lib = lib
        self._callbacks = callbacks or CallbackTable()

        handle = lib.JxlEncoderCreate(self._callbacks.memory_manager_parameter())
        if not handle:
            raise MemoryError("JxlEncoderCreate returned NULL")
        self._handle: Optional[int] = handle
        self._finalizer = weakref.finalize(self, _destroy, lib.JxlEncoderDestroy, handle, self._callbacks)
        # Bumped on reset/close; invalidates outstanding FrameSettings
        self._generation = 0
        self._apply_runner()

    def _apply_runner(self) -> None:
        runner = self._callbacks.parallel_runner
        if runner is None:
            return
        status = self.set_parallel_runner(runner.runner, runner.opaque)
        if status != Status.SUCCESS:
            self.close()
            raise RuntimeError(f"JxlEncoderSetParallelRunner failed: {status.name}")
        runner.attach(self)

    @property
    def closed(self) -> bool:
        return self._handle is None

    def _require(self) -> int:
        if self._handle is None:
            raise HandleClosedError("Encoder has been closed")
        return self._handle

    def close(self) -> None:
        """Destroy the native encoder and its frame settings. Idempotent."""
        if self._handle is None:
            return
        self._finalizer()
        self._handle = None
        self._generation += 1

    def __enter__(self) -> "Encoder":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        return "<Encoder closed>" if self.closed else "<Encoder>"

    def reset(self) -> None:
        """``JxlEncoderReset``; frame settings are freed, the runner is re-applied."""
        self._lib.JxlEncoderReset(self._require())
        self._generation += 1
        self._apply_runner()

    def set_parallel_runner(self, runner: Any, opaque: Optional[int]) -> JxlEncoderStatus:
        return Status(self._lib.JxlEncoderSetParallelRunner(self._require(), runner, opaque))

    def get_error(self) -> JxlEncoderError:
        return JxlEncoderError(self._lib.JxlEncoderGetError(self._require()))

    # ------------------------------------------------------------------
    # Image-level settings
    # ------------------------------------------------------------------

    def frame_settings(self, source: Optional[FrameSettings] = None) -> FrameSettings:
        """Create frame settings, optionally copying ``source``."""
        source_handle = source._require() if source is not None else None
        handle = self._lib.JxlEncoderFrameSettingsCreate(self._require(), source_handle)
        if not handle:
            raise MemoryError("JxlEncoderFrameSettingsCreate returned NULL")
        return FrameSettings(self, handle)

    def set_basic_info(self, info: JxlBasicInfo) -> JxlEncoderStatus:
        return Status(self._lib.JxlEncoderSetBasicInfo(self._require(), byref(info)))

    def set_upsampling_mode(self, factor: int, mode: int) -> JxlEncoderStatus:
        return Status(self._lib.JxlEncoderSetUpsamplingMode(self._require(), factor, mode))

    def set_extra_channel_info(self, index: int, info: JxlExtraChannelInfo) -> JxlEncoderStatus:
        return Status(self._lib.JxlEncoderSetExtraChannelInfo(self._require(), index, byref(info)))

    def set_extra_channel_name(self, index: int, name: str) -> JxlEncoderStatus:
        raw = name.encode("utf-8")
        return Status(self._lib.JxlEncoderSetExtraChannelName(self._require(), index, raw, len(raw)))

    def set_color_encoding(self, encoding: JxlColorEncoding) -> JxlEncoderStatus:
        return Status(self._lib.JxlEncoderSetColorEncoding(self._require(), byref(encoding)))

    def set_icc_profile(self, icc: Any) -> JxlEncoderStatus:
        buf = readable_buffer(icc)
        return Status(self._lib.JxlEncoderSetICCProfile(self._require(), buf.address, buf.size))

    def use_container(self, use: bool) -> JxlEncoderStatus:
        return Status(self._lib.JxlEncoderUseContainer(self._require(), JXL_TRUE if use else JXL_FALSE))

    def store_jpeg_metadata(self, store: bool) -> JxlEncoderStatus:
        return Status(self._lib.JxlEncoderStoreJPEGMetadata(self._require(), JXL_TRUE if store else JXL_FALSE))

    def set_codestream_level(self, level: int) -> JxlEncoderStatus:
        """Codestream level 5 or 10; -1 picks the lowest level that fits."""
        return Status(self._lib.JxlEncoderSetCodestreamLevel(self._require(), level))

    def required_codestream_level(self) -> int:
        return int(self._lib.JxlEncoderGetRequiredCodestreamLevel(self._require()))

    def allow_expert_options(self) -> None:
        self._lib.JxlEncoderAllowExpertOptions(self._require())

    # ------------------------------------------------------------------
    # Container boxes
    # ------------------------------------------------------------------

    def use_boxes(self) -> JxlEncoderStatus:
        return Status(self._lib.JxlEncoderUseBoxes(self._require()))

    def add_box(self, box_type: bytes, contents: Any, compress: bool = False) -> JxlEncoderStatus:
        """Add a metadata box; ``box_type`` is a 4-byte tag such as ``b"Exif"``."""
        if len(box_type) != 4:
            raise ValueError(f"Box type must be exactly 4 bytes, got {box_type!r}")
        buf = readable_buffer(contents)
        return Status(
            self._lib.JxlEncoderAddBox(
                self._require(), box_type, buf.address, buf.size, JXL_TRUE if compress else JXL_FALSE
            )
        )

    def close_boxes(self) -> None:
        self._lib.JxlEncoderCloseBoxes(self._require())

    def close_frames(self) -> None:
        self._lib.JxlEncoderCloseFrames(self._require())

    def close_input(self) -> None:
        """Declare that no more frames or boxes will be added."""
        self._lib.JxlEncoderCloseInput(self._require())

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def process_output(self, buffer: Any) -> Tuple[JxlEncoderStatus, int]:
        """Write compressed bytes into the caller-owned ``buffer``.

        Returns:
            ``(status, written)``. ``NEED_MORE_OUTPUT`` means ``buffer`` is
            full and the call must be repeated with fresh space.
        """
        buf = writable_buffer(buffer)
        next_out = c_void_p(buf.address)
        avail_out = c_size_t(buf.size)
        status = Status(self._lib.JxlEncoderProcessOutput(self._require(), byref(next_out), byref(avail_out)))
        return status, buf.size - avail_out.value

    def encode_all(self, chunk_size: int = _CHUNK_SIZE) -> bytes:
        """Drain the encoder after ``close_input()`` and return the codestream.

        Raises:
            RuntimeError: If the encoder reports an error.
            ValueError: If ``chunk_size`` is not positive.
        """
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        chunks: List[bytes] = []
        while True:
            chunk = bytearray(chunk_size)
            status, written = self.process_output(chunk)
            chunks.append(bytes(chunk[:written]))
            if status == Status.SUCCESS:
                return b"".join(chunks)
            if status == Status.ERROR:
                raise RuntimeError(f"JxlEncoderProcessOutput failed: {self.get_error().name}")

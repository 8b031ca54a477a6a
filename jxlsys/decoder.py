"""Owned ``JxlDecoder`` handle and its pull-based state machine.

``Decoder.process_input()`` is the only transition. Each call forwards to
``JxlDecoderProcessInput`` and records the reported status as the new
``DecoderState``; nothing is collapsed or reordered, so callers can inspect
basic info and color encoding before committing an output buffer.

Ownership rules encoded here:

- Input passed to ``set_input`` is retained until ``release_input`` (libjxl
  keeps reading the pointer until then).
- Output buffers (image, preview, extra channels, JPEG, box) are
  caller-owned; the decoder keeps a reference while libjxl may write them.
- The native handle is destroyed exactly once, by ``close()``, by leaving a
  ``with`` block, or when the object is garbage collected. A closed decoder
  holds no pointer; every further call raises ``HandleClosedError``.

Status conventions:

- Calls that need basic info return ``JxlDecoderStatus.ERROR`` without
  calling native code until ``BASIC_INFO`` has been reported.
- After ``ERROR`` the decoder is terminal: every status-returning call
  returns ``ERROR`` without calling native code. Close it.
- After ``close_input()``, ``NEED_MORE_INPUT`` is reported as ``ERROR``
  since no more input can arrive.

A single decoder must not be used from several threads at once.

Example:
    with Decoder() as dec:
        dec.subscribe_events(JxlDecoderStatus.BASIC_INFO, JxlDecoderStatus.FULL_IMAGE)
        dec.set_input(data)
        dec.close_input()
        while True:
            status = dec.process_input()
            if status == JxlDecoderStatus.BASIC_INFO:
                _, info = dec.basic_info()
            elif status == JxlDecoderStatus.NEED_IMAGE_OUT_BUFFER:
                out = empty_image_buffer(info.xsize, info.ysize, fmt)
                dec.set_image_out_buffer(fmt, out)
            elif status in (JxlDecoderStatus.SUCCESS, JxlDecoderStatus.ERROR):
                break
"""

from __future__ import annotations

import weakref
from ctypes import byref, c_size_t, c_uint64, create_string_buffer
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from jxlsys.buffers import readable_buffer, writable_buffer
from jxlsys.callbacks import CallbackTable
from jxlsys.enums import (
    JXL_FALSE,
    JXL_TRUE,
    JxlColorProfileTarget,
    JxlDecoderStatus,
    JxlProgressiveDetail,
    JxlSignature,
)
from jxlsys.errors import HandleClosedError
from jxlsys.structs import (
    JxlBasicInfo,
    JxlBitDepth,
    JxlBlendInfo,
    JxlColorEncoding,
    JxlExtraChannelInfo,
    JxlFrameHeader,
    JxlImageOutCallback,
    JxlPixelFormat,
)

__all__ = ["Decoder", "DecoderState", "signature_check"]

Status = JxlDecoderStatus


class DecoderState(Enum):
    """Where the decoder's state machine last stopped."""

    CREATED = "created"
    NEED_MORE_INPUT = "need_more_input"
    BASIC_INFO = "basic_info"
    COLOR_ENCODING = "color_encoding"
    PREVIEW_IMAGE = "preview_image"
    NEED_PREVIEW_OUT_BUFFER = "need_preview_out_buffer"
    FRAME = "frame"
    NEED_IMAGE_OUT_BUFFER = "need_image_out_buffer"
    FRAME_PROGRESSION = "frame_progression"
    FULL_IMAGE = "full_image"
    JPEG_RECONSTRUCTION = "jpeg_reconstruction"
    JPEG_NEED_MORE_OUTPUT = "jpeg_need_more_output"
    BOX = "box"
    BOX_NEED_MORE_OUTPUT = "box_need_more_output"
    FINISHED = "finished"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (DecoderState.FINISHED, DecoderState.ERROR)


_STATE_FOR_STATUS: Dict[JxlDecoderStatus, DecoderState] = {
    Status.SUCCESS: DecoderState.FINISHED,
    Status.ERROR: DecoderState.ERROR,
    Status.NEED_MORE_INPUT: DecoderState.NEED_MORE_INPUT,
    Status.NEED_PREVIEW_OUT_BUFFER: DecoderState.NEED_PREVIEW_OUT_BUFFER,
    Status.NEED_IMAGE_OUT_BUFFER: DecoderState.NEED_IMAGE_OUT_BUFFER,
    Status.JPEG_NEED_MORE_OUTPUT: DecoderState.JPEG_NEED_MORE_OUTPUT,
    Status.BOX_NEED_MORE_OUTPUT: DecoderState.BOX_NEED_MORE_OUTPUT,
    Status.BASIC_INFO: DecoderState.BASIC_INFO,
    Status.COLOR_ENCODING: DecoderState.COLOR_ENCODING,
    Status.PREVIEW_IMAGE: DecoderState.PREVIEW_IMAGE,
    Status.FRAME: DecoderState.FRAME,
    Status.FULL_IMAGE: DecoderState.FULL_IMAGE,
    Status.JPEG_RECONSTRUCTION: DecoderState.JPEG_RECONSTRUCTION,
    Status.BOX: DecoderState.BOX,
    Status.FRAME_PROGRESSION: DecoderState.FRAME_PROGRESSION,
}


def signature_check(data: Any, lib: Any = None) -> JxlSignature:
    """Check whether ``data`` starts like a JPEG XL codestream or container."""
    if lib is None:
        from jxlsys._native import load_library
        lib = load_library()
    buf = readable_buffer(data)
    return JxlSignature(lib.JxlSignatureCheck(buf.address, buf.size))


def _destroy(destroy: Callable[[int], None], handle: int, callbacks: CallbackTable) -> None:
    # ``callbacks`` is an argument only so the table outlives the handle
    destroy(handle)


class Decoder:
    """Owned ``JxlDecoder*`` with an explicit state machine.

    Args:
        callbacks: Optional allocator / parallel runner. Kept alive for the
            lifetime of the native handle.
        lib: Loaded libjxl (defaults to ``load_library()``).

    Raises:
        MemoryError: If ``JxlDecoderCreate`` returns NULL.
        RuntimeError: If the callback table's runner is rejected.
    """

    def __init__(self, callbacks: Optional[CallbackTable] = None, lib: Any = None) -> None:
        if lib is None:
            from jxlsys._native import load_library
            lib = load_library()
        self._lib = lib
        self._callbacks = callbacks or CallbackTable()

        handle = lib.JxlDecoderCreate(self._callbacks.memory_manager_parameter())
        if not handle:
            raise MemoryError("JxlDecoderCreate returned NULL")
        self._handle: Optional[int] = handle
        self._finalizer = weakref.finalize(self, _destroy, lib.JxlDecoderDestroy, handle, self._callbacks)

        self._reset_tracking()
        self._apply_runner()

    def _apply_runner(self) -> None:
        runner = self._callbacks.parallel_runner
        if runner is None:
            return
        status = self.set_parallel_runner(runner.runner, runner.opaque)
        if status != Status.SUCCESS:
            self.close()
            raise RuntimeError(f"JxlDecoderSetParallelRunner failed: {status.name}")
        runner.attach(self)

    def _reset_tracking(self) -> None:
        self._state = DecoderState.CREATED
        self._basic_info_seen = False
        self._input_closed = False
        self._input: Any = None
        self._outputs: Dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Lifetime
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._handle is None

    @property
    def state(self) -> DecoderState:
        return self._state

    @property
    def basic_info_available(self) -> bool:
        return self._basic_info_seen

    def _require(self) -> int:
        if self._handle is None:
            raise HandleClosedError("Decoder has been closed")
        return self._handle

    def _guard(self, needs_basic_info: bool = False) -> Optional[JxlDecoderStatus]:
        """Status to return instead of calling native code, or None to proceed."""
        self._require()
        if self._state is DecoderState.ERROR:
            return Status.ERROR
        if needs_basic_info and not self._basic_info_seen:
            return Status.ERROR
        return None

    def close(self) -> None:
        """Destroy the native decoder. Safe to call more than once.

        Buffers that were handed to the decoder stay valid; they are owned by
        the caller.
        """
        if self._handle is None:
            return
        self._finalizer()
        self._handle = None
        self._input = None
        self._outputs = {}

    def __enter__(self) -> "Decoder":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        if self.closed:
            return "<Decoder closed>"
        return f"<Decoder state={self._state.value}>"

    def reset(self) -> None:
        """``JxlDecoderReset``: back to a freshly created decoder.

        Subscriptions and settings are cleared; the parallel runner and
        memory manager stay attached.

        Raises:
            RuntimeError: If the runner is rejected; the decoder is closed.
        """
        self._lib.JxlDecoderReset(self._require())
        self._reset_tracking()
        self._apply_runner()

    def rewind(self) -> None:
        """``JxlDecoderRewind``: restart decoding, keeping settings and subscriptions."""
        self._lib.JxlDecoderRewind(self._require())
        self._reset_tracking()

    # ------------------------------------------------------------------
    # Configuration (before the first process_input)
    # ------------------------------------------------------------------

    def set_parallel_runner(self, runner: Any, opaque: Optional[int]) -> JxlDecoderStatus:
        return Status(self._lib.JxlDecoderSetParallelRunner(self._require(), runner, opaque))

    def subscribe_events(self, *events: JxlDecoderStatus) -> JxlDecoderStatus:
        """Subscribe to informational events (``BASIC_INFO``, ``FULL_IMAGE``...)."""
        invalid = [e for e in events if e not in Status.events()]
        if invalid:
            raise ValueError(f"Not subscribable events: {invalid}")
        mask = 0
        for event in events:
            mask |= int(event)
        return Status(self._lib.JxlDecoderSubscribeEvents(self._require(), mask))

    def _set_bool(self, func: Callable[..., int], value: bool) -> JxlDecoderStatus:
        return Status(func(self._require(), JXL_TRUE if value else JXL_FALSE))

    def set_keep_orientation(self, keep: bool) -> JxlDecoderStatus:
        return self._set_bool(self._lib.JxlDecoderSetKeepOrientation, keep)

    def set_unpremultiply_alpha(self, unpremultiply: bool) -> JxlDecoderStatus:
        return self._set_bool(self._lib.JxlDecoderSetUnpremultiplyAlpha, unpremultiply)

    def set_render_spotcolors(self, render: bool) -> JxlDecoderStatus:
        return self._set_bool(self._lib.JxlDecoderSetRenderSpotcolors, render)

    def set_coalescing(self, coalescing: bool) -> JxlDecoderStatus:
        return self._set_bool(self._lib.JxlDecoderSetCoalescing, coalescing)

    def set_decompress_boxes(self, decompress: bool) -> JxlDecoderStatus:
        return self._set_bool(self._lib.JxlDecoderSetDecompressBoxes, decompress)

    def set_progressive_detail(self, detail: JxlProgressiveDetail) -> JxlDecoderStatus:
        return Status(self._lib.JxlDecoderSetProgressiveDetail(self._require(), int(detail)))

    def set_desired_intensity_target(self, nits: float) -> JxlDecoderStatus:
        return Status(self._lib.JxlDecoderSetDesiredIntensityTarget(self._require(), nits))

    def size_hint_basic_info(self) -> int:
        """Bytes of input likely needed to reach ``BASIC_INFO``."""
        return int(self._lib.JxlDecoderSizeHintBasicInfo(self._require()))

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def set_input(self, data: Any) -> JxlDecoderStatus:
        """Hand the next input chunk to the decoder.

        The chunk is retained until ``release_input()``. Setting new input
        without releasing the previous chunk is an error reported by libjxl.
        """
        guarded = self._guard()
        if guarded is not None:
            return guarded
        buf = readable_buffer(data)
        status = Status(self._lib.JxlDecoderSetInput(self._handle, buf.address, buf.size))
        if status == Status.SUCCESS:
            self._input = buf.keepalive
        return status

    def release_input(self) -> int:
        """Release the current input; returns the number of unconsumed bytes.

        Those bytes must be passed again (followed by new data) in the next
        ``set_input`` call.
        """
        remaining = int(self._lib.JxlDecoderReleaseInput(self._require()))
        self._input = None
        return remaining

    def close_input(self) -> None:
        """Declare the current input to be the last."""
        self._lib.JxlDecoderCloseInput(self._require())
        self._input_closed = True

    # ------------------------------------------------------------------
    # The transition
    # ------------------------------------------------------------------

    def process_input(self) -> JxlDecoderStatus:
        """Advance the state machine until the next event, request or error."""
        guarded = self._guard()
        if guarded is not None:
            return guarded
        status = Status(self._lib.JxlDecoderProcessInput(self._handle))
        if status == Status.NEED_MORE_INPUT and self._input_closed:
            status = Status.ERROR
        if status == Status.BASIC_INFO:
            self._basic_info_seen = True
        self._state = _STATE_FOR_STATUS[status]
        return status

    def skip_frames(self, amount: int) -> None:
        self._lib.JxlDecoderSkipFrames(self._require(), amount)

    def skip_current_frame(self) -> JxlDecoderStatus:
        guarded = self._guard()
        if guarded is not None:
            return guarded
        return Status(self._lib.JxlDecoderSkipCurrentFrame(self._handle))

    def flush_image(self) -> JxlDecoderStatus:
        """Write the progressively decoded pixels so far into the image buffer."""
        guarded = self._guard(needs_basic_info=True)
        if guarded is not None:
            return guarded
        return Status(self._lib.JxlDecoderFlushImage(self._handle))

    def intended_downsampling_ratio(self) -> int:
        return int(self._lib.JxlDecoderGetIntendedDownsamplingRatio(self._require()))

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def basic_info(self) -> Tuple[JxlDecoderStatus, Optional[JxlBasicInfo]]:
        guarded = self._guard(needs_basic_info=True)
        if guarded is not None:
            return guarded, None
        info = JxlBasicInfo()
        status = Status(self._lib.JxlDecoderGetBasicInfo(self._handle, byref(info)))
        return status, info if status == Status.SUCCESS else None

    def extra_channel_info(self, index: int) -> Tuple[JxlDecoderStatus, Optional[JxlExtraChannelInfo]]:
        guarded = self._guard(needs_basic_info=True)
        if guarded is not None:
            return guarded, None
        info = JxlExtraChannelInfo()
        status = Status(self._lib.JxlDecoderGetExtraChannelInfo(self._handle, index, byref(info)))
        return status, info if status == Status.SUCCESS else None

    def extra_channel_name(self, index: int) -> Tuple[JxlDecoderStatus, Optional[str]]:
        status, info = self.extra_channel_info(index)
        if info is None:
            return status, None
        name = create_string_buffer(info.name_length + 1)
        status = Status(self._lib.JxlDecoderGetExtraChannelName(self._handle, index, name, len(name)))
        return status, name.value.decode("utf-8") if status == Status.SUCCESS else None

    def extra_channel_blend_info(self, index: int) -> Tuple[JxlDecoderStatus, Optional[JxlBlendInfo]]:
        guarded = self._guard(needs_basic_info=True)
        if guarded is not None:
            return guarded, None
        info = JxlBlendInfo()
        status = Status(self._lib.JxlDecoderGetExtraChannelBlendInfo(self._handle, index, byref(info)))
        return status, info if status == Status.SUCCESS else None

    def color_as_encoded_profile(
        self, target: JxlColorProfileTarget = JxlColorProfileTarget.DATA
    ) -> Tuple[JxlDecoderStatus, Optional[JxlColorEncoding]]:
        """Structured color encoding; ERROR when only an ICC profile describes it."""
        guarded = self._guard(needs_basic_info=True)
        if guarded is not None:
            return guarded, None
        encoding = JxlColorEncoding()
        status = Status(self._lib.JxlDecoderGetColorAsEncodedProfile(self._handle, int(target), byref(encoding)))
        return status, encoding if status == Status.SUCCESS else None

    def icc_profile(
        self, target: JxlColorProfileTarget = JxlColorProfileTarget.DATA
    ) -> Tuple[JxlDecoderStatus, Optional[bytes]]:
        guarded = self._guard(needs_basic_info=True)
        if guarded is not None:
            return guarded, None
        size = c_size_t(0)
        status = Status(self._lib.JxlDecoderGetICCProfileSize(self._handle, int(target), byref(size)))
        if status != Status.SUCCESS:
            return status, None
        icc = create_string_buffer(size.value)
        status = Status(self._lib.JxlDecoderGetColorAsICCProfile(self._handle, int(target), icc, size.value))
        return status, icc.raw if status == Status.SUCCESS else None

    def set_preferred_color_profile(self, encoding: JxlColorEncoding) -> JxlDecoderStatus:
        guarded = self._guard(needs_basic_info=True)
        if guarded is not None:
            return guarded
        return Status(self._lib.JxlDecoderSetPreferredColorProfile(self._handle, byref(encoding)))

    def set_output_color_profile(
        self, encoding: Optional[JxlColorEncoding] = None, icc: Optional[bytes] = None
    ) -> JxlDecoderStatus:
        """Request output in ``encoding`` or ``icc`` (exactly one)."""
        if (encoding is None) == (icc is None):
            raise ValueError("Pass exactly one of encoding or icc")
        guarded = self._guard(needs_basic_info=True)
        if guarded is not None:
            return guarded
        if encoding is not None:
            return Status(self._lib.JxlDecoderSetOutputColorProfile(self._handle, byref(encoding), None, 0))
        buf = readable_buffer(icc)
        return Status(self._lib.JxlDecoderSetOutputColorProfile(self._handle, None, buf.address, buf.size))

    def frame_header(self) -> Tuple[JxlDecoderStatus, Optional[JxlFrameHeader]]:
        guarded = self._guard(needs_basic_info=True)
        if guarded is not None:
            return guarded, None
        header = JxlFrameHeader()
        status = Status(self._lib.JxlDecoderGetFrameHeader(self._handle, byref(header)))
        return status, header if status == Status.SUCCESS else None

    def frame_name(self) -> Tuple[JxlDecoderStatus, Optional[str]]:
        status, header = self.frame_header()
        if header is None:
            return status, None
        name = create_string_buffer(header.name_length + 1)
        status = Status(self._lib.JxlDecoderGetFrameName(self._handle, name, len(name)))
        return status, name.value.decode("utf-8") if status == Status.SUCCESS else None

    # ------------------------------------------------------------------
    # Output buffers (caller-owned)
    # ------------------------------------------------------------------

    def _buffer_size(self, func: Callable[..., int], pixel_format: JxlPixelFormat, *extra: Any) -> Tuple[JxlDecoderStatus, int]:
        guarded = self._guard(needs_basic_info=True)
        if guarded is not None:
            return guarded, 0
        size = c_size_t(0)
        status = Status(func(self._handle, byref(pixel_format), byref(size), *extra))
        return status, size.value

    def _set_buffer(self, key: str, func: Callable[..., int], pixel_format: JxlPixelFormat, buffer: Any, *extra: Any) -> JxlDecoderStatus:
        guarded = self._guard(needs_basic_info=True)
        if guarded is not None:
            return guarded
        buf = writable_buffer(buffer)
        status = Status(func(self._handle, byref(pixel_format), buf.address, buf.size, *extra))
        if status == Status.SUCCESS:
            self._outputs[key] = buf.keepalive
        return status

    def image_out_buffer_size(self, pixel_format: JxlPixelFormat) -> Tuple[JxlDecoderStatus, int]:
        return self._buffer_size(self._lib.JxlDecoderImageOutBufferSize, pixel_format)

    def set_image_out_buffer(self, pixel_format: JxlPixelFormat, buffer: Any) -> JxlDecoderStatus:
        """Give the decoder a caller-owned buffer for the full image.

        Returns ERROR without touching native code before basic info is
        available.
        """
        return self._set_buffer("image", self._lib.JxlDecoderSetImageOutBuffer, pixel_format, buffer)

    def set_image_out_callback(
        self,
        pixel_format: JxlPixelFormat,
        callback: Callable[[int, int, int, int], None],
    ) -> JxlDecoderStatus:
        """Receive pixels row-segment by row-segment instead of in a buffer.

        ``callback(x, y, num_pixels, pixels_address)`` is invoked from the
        decoding thread(s); ``pixels_address`` is only valid during the call.
        """
        guarded = self._guard(needs_basic_info=True)
        if guarded is not None:
            return guarded

        def trampoline(opaque, x, y, num_pixels, pixels):
            callback(x, y, num_pixels, pixels)

        c_callback = JxlImageOutCallback(trampoline)
        status = Status(self._lib.JxlDecoderSetImageOutCallback(self._handle, byref(pixel_format), c_callback, None))
        if status == Status.SUCCESS:
            self._outputs["image"] = c_callback
        return status

    def set_image_out_bit_depth(self, bit_depth: JxlBitDepth) -> JxlDecoderStatus:
        guarded = self._guard(needs_basic_info=True)
        if guarded is not None:
            return guarded
        return Status(self._lib.JxlDecoderSetImageOutBitDepth(self._handle, byref(bit_depth)))

    def preview_out_buffer_size(self, pixel_format: JxlPixelFormat) -> Tuple[JxlDecoderStatus, int]:
        return self._buffer_size(self._lib.JxlDecoderPreviewOutBufferSize, pixel_format)

    def set_preview_out_buffer(self, pixel_format: JxlPixelFormat, buffer: Any) -> JxlDecoderStatus:
        return self._set_buffer("preview", self._lib.JxlDecoderSetPreviewOutBuffer, pixel_format, buffer)

    def extra_channel_buffer_size(self, pixel_format: JxlPixelFormat, index: int) -> Tuple[JxlDecoderStatus, int]:
        return self._buffer_size(self._lib.JxlDecoderExtraChannelBufferSize, pixel_format, index)

    def set_extra_channel_buffer(self, pixel_format: JxlPixelFormat, buffer: Any, index: int) -> JxlDecoderStatus:
        return self._set_buffer(
            f"extra{index}", self._lib.JxlDecoderSetExtraChannelBuffer, pixel_format, buffer, index
        )

    # ------------------------------------------------------------------
    # JPEG reconstruction and container boxes
    # ------------------------------------------------------------------

    def set_jpeg_buffer(self, buffer: Any) -> JxlDecoderStatus:
        guarded = self._guard()
        if guarded is not None:
            return guarded
        buf = writable_buffer(buffer)
        status = Status(self._lib.JxlDecoderSetJPEGBuffer(self._handle, buf.address, buf.size))
        if status == Status.SUCCESS:
            self._outputs["jpeg"] = buf.keepalive
        return status

    def release_jpeg_buffer(self) -> int:
        """Release the JPEG buffer; returns the number of unused bytes at its end."""
        remaining = int(self._lib.JxlDecoderReleaseJPEGBuffer(self._require()))
        self._outputs.pop("jpeg", None)
        return remaining

    def set_box_buffer(self, buffer: Any) -> JxlDecoderStatus:
        guarded = self._guard()
        if guarded is not None:
            return guarded
        buf = writable_buffer(buffer)
        status = Status(self._lib.JxlDecoderSetBoxBuffer(self._handle, buf.address, buf.size))
        if status == Status.SUCCESS:
            self._outputs["box"] = buf.keepalive
        return status

    def release_box_buffer(self) -> int:
        """Release the box buffer; returns the number of unused bytes at its end."""
        remaining = int(self._lib.JxlDecoderReleaseBoxBuffer(self._require()))
        self._outputs.pop("box", None)
        return remaining

    def box_type(self, decompressed: bool = True) -> Tuple[JxlDecoderStatus, Optional[bytes]]:
        guarded = self._guard()
        if guarded is not None:
            return guarded, None
        box = create_string_buffer(4)
        status = Status(self._lib.JxlDecoderGetBoxType(self._handle, box, JXL_TRUE if decompressed else JXL_FALSE))
        return status, box.raw if status == Status.SUCCESS else None

    def box_size_raw(self) -> Tuple[JxlDecoderStatus, int]:
        guarded = self._guard()
        if guarded is not None:
            return guarded, 0
        size = c_uint64(0)
        status = Status(self._lib.JxlDecoderGetBoxSizeRaw(self._handle, byref(size)))
        return status, size.value

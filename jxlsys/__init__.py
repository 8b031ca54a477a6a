"""jxlsys: ctypes bindings to libjxl (JPEG XL) with build-time library resolution.

Two halves:

- The library resolver (``jxlsys.resolver``) runs when the package is built.
  It finds a compatible libjxl through ``pkg-config`` or ``JXLSYS_LIB_DIR``,
  or builds the vendored sources when allowed, and records the result in
  ``jxlsys/_link.json``.
- The binding surface (``Decoder``, ``Encoder``, runners, enums and structs)
  loads that library lazily on first use. Importing ``jxlsys`` never
  requires libjxl to be present.

Example:
    from jxlsys import Decoder, JxlDecoderStatus, JxlPixelFormat, empty_image_buffer

    fmt = JxlPixelFormat.make(num_channels=3)
    with Decoder() as dec:
        dec.subscribe_events(JxlDecoderStatus.BASIC_INFO, JxlDecoderStatus.FULL_IMAGE)
        dec.set_input(data)
        dec.close_input()
        while True:
            status = dec.process_input()
            if status == JxlDecoderStatus.BASIC_INFO:
                _, info = dec.basic_info()
            elif status == JxlDecoderStatus.NEED_IMAGE_OUT_BUFFER:
                image = empty_image_buffer(info.xsize, info.ysize, fmt)
                dec.set_image_out_buffer(fmt, image)
            elif status in (JxlDecoderStatus.SUCCESS, JxlDecoderStatus.ERROR):
                break

Multi-threaded decoding:
    from jxlsys import CallbackTable, ThreadParallelRunner

    with ThreadParallelRunner() as runner:
        with Decoder(CallbackTable(parallel_runner=runner)) as dec:
            ...
"""

__version__ = "0.10.4"

# Loader
from jxlsys._native import (
    check_library_available,
    check_threads_available,
    library_version,
    load_library,
    load_threads_library,
)

# Buffers and callbacks
from jxlsys.buffers import (
    NativeBuffer,
    bytes_per_sample,
    empty_image_buffer,
    image_buffer_size,
    numpy_dtype,
    readable_buffer,
    writable_buffer,
)
from jxlsys.callbacks import CallbackTable, MemoryManager, PythonMemoryManager

# Handles
from jxlsys.decoder import Decoder, DecoderState, signature_check
from jxlsys.encoder import (
    Encoder,
    FrameSettings,
    color_encoding_srgb,
    distance_from_quality,
    init_basic_info,
    init_blend_info,
    init_extra_channel_info,
    init_frame_header,
)

# Enums and structs
from jxlsys.enums import (
    JXL_FALSE,
    JXL_TRUE,
    JxlBitDepthType,
    JxlBlendMode,
    JxlColorProfileTarget,
    JxlColorSpace,
    JxlDataType,
    JxlDecoderStatus,
    JxlEncoderError,
    JxlEncoderFrameSettingId,
    JxlEncoderStatus,
    JxlEndianness,
    JxlExtraChannelType,
    JxlOrientation,
    JxlParallelRetCode,
    JxlPrimaries,
    JxlProgressiveDetail,
    JxlRenderingIntent,
    JxlSignature,
    JxlTransferFunction,
    JxlWhitePoint,
)

# Errors
from jxlsys.errors import (
    AbiVersionError,
    HandleClosedError,
    JxlSysError,
    LibraryNotFoundError,
    ResolutionError,
    VendorBuildError,
)

# Library resolution (build time)
from jxlsys.features import BOUND_VERSION, LibrarySpecification
from jxlsys.linkage import LinkDirectives, read_link_directives

# Runners
from jxlsys.parallel import (
    ParallelRunner,
    PythonParallelRunner,
    ResizableParallelRunner,
    ThreadParallelRunner,
    default_num_worker_threads,
)
from jxlsys.resolver import SystemLibrary, VendoredBuild, resolve
from jxlsys.structs import (
    JxlBasicInfo,
    JxlBitDepth,
    JxlBlendInfo,
    JxlColorEncoding,
    JxlExtraChannelInfo,
    JxlFrameHeader,
    JxlLayerInfo,
    JxlPixelFormat,
)

__all__ = [
    # Loader
    "load_library",
    "load_threads_library",
    "library_version",
    "check_library_available",
    "check_threads_available",
    # Handles
    "Decoder",
    "DecoderState",
    "signature_check",
    "Encoder",
    "FrameSettings",
    "init_basic_info",
    "init_frame_header",
    "init_blend_info",
    "init_extra_channel_info",
    "color_encoding_srgb",
    "distance_from_quality",
    # Buffers and callbacks
    "NativeBuffer",
    "readable_buffer",
    "writable_buffer",
    "bytes_per_sample",
    "numpy_dtype",
    "image_buffer_size",
    "empty_image_buffer",
    "CallbackTable",
    "MemoryManager",
    "PythonMemoryManager",
    # Runners
    "ParallelRunner",
    "ThreadParallelRunner",
    "ResizableParallelRunner",
    "PythonParallelRunner",
    "default_num_worker_threads",
    # Enums
    "JXL_TRUE",
    "JXL_FALSE",
    "JxlDecoderStatus",
    "JxlEncoderStatus",
    "JxlEncoderError",
    "JxlSignature",
    "JxlDataType",
    "JxlEndianness",
    "JxlColorSpace",
    "JxlWhitePoint",
    "JxlPrimaries",
    "JxlTransferFunction",
    "JxlRenderingIntent",
    "JxlOrientation",
    "JxlExtraChannelType",
    "JxlColorProfileTarget",
    "JxlBlendMode",
    "JxlBitDepthType",
    "JxlProgressiveDetail",
    "JxlEncoderFrameSettingId",
    "JxlParallelRetCode",
    # Structs
    "JxlPixelFormat",
    "JxlBasicInfo",
    "JxlColorEncoding",
    "JxlExtraChannelInfo",
    "JxlBlendInfo",
    "JxlLayerInfo",
    "JxlFrameHeader",
    "JxlBitDepth",
    # Resolution
    "BOUND_VERSION",
    "LibrarySpecification",
    "LinkDirectives",
    "read_link_directives",
    "SystemLibrary",
    "VendoredBuild",
    "resolve",
    # Errors
    "JxlSysError",
    "ResolutionError",
    "VendorBuildError",
    "LibraryNotFoundError",
    "AbiVersionError",
    "HandleClosedError",
]

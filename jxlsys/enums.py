"""Enumerations of the libjxl 0.10 C API.

Discriminants match the native headers (``jxl/decode.h``, ``jxl/encode.h``,
``jxl/types.h``, ``jxl/codestream_header.h``, ``jxl/color_encoding.h``,
``jxl/parallel_runner.h``). All enums are passed across the boundary as
``c_int``.
"""

from __future__ import annotations

from enum import IntEnum

__all__ = [
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
    "JXL_TRUE",
    "JXL_FALSE",
]

JXL_TRUE = 1
JXL_FALSE = 0


class JxlDecoderStatus(IntEnum):
    """Return value of decoder calls; informational events are bit flags."""

    SUCCESS = 0
    ERROR = 1
    NEED_MORE_INPUT = 2
    NEED_PREVIEW_OUT_BUFFER = 3
    NEED_IMAGE_OUT_BUFFER = 5
    JPEG_NEED_MORE_OUTPUT = 6
    BOX_NEED_MORE_OUTPUT = 7
    BASIC_INFO = 0x40
    COLOR_ENCODING = 0x100
    PREVIEW_IMAGE = 0x200
    FRAME = 0x400
    FULL_IMAGE = 0x1000
    JPEG_RECONSTRUCTION = 0x2000
    BOX = 0x4000
    FRAME_PROGRESSION = 0x8000

    @classmethod
    def events(cls) -> frozenset:
        """Statuses that can be subscribed to with ``JxlDecoderSubscribeEvents``."""
        return frozenset({
            cls.BASIC_INFO, cls.COLOR_ENCODING, cls.PREVIEW_IMAGE, cls.FRAME,
            cls.FULL_IMAGE, cls.JPEG_RECONSTRUCTION, cls.BOX, cls.FRAME_PROGRESSION,
        })


class JxlEncoderStatus(IntEnum):
    SUCCESS = 0
    ERROR = 1
    NEED_MORE_OUTPUT = 2


class JxlEncoderError(IntEnum):
    OK = 0
    GENERIC = 1
    OOM = 2
    JBRD = 3
    BAD_INPUT = 4
    NOT_SUPPORTED = 0x80
    API_USAGE = 0x81


class JxlSignature(IntEnum):
    NOT_ENOUGH_BYTES = 0
    INVALID = 1
    CODESTREAM = 2
    CONTAINER = 3


class JxlDataType(IntEnum):
    FLOAT = 0
    UINT8 = 2
    UINT16 = 3
    FLOAT16 = 5


class JxlEndianness(IntEnum):
    NATIVE = 0
    LITTLE = 1
    BIG = 2


class JxlColorSpace(IntEnum):
    RGB = 0
    GRAY = 1
    XYB = 2
    UNKNOWN = 3


class JxlWhitePoint(IntEnum):
    D65 = 1
    CUSTOM = 2
    E = 10
    DCI = 11


class JxlPrimaries(IntEnum):
    SRGB = 1
    CUSTOM = 2
    P2100 = 9
    P3 = 11


class JxlTransferFunction(IntEnum):
    BT709 = 1
    UNKNOWN = 2
    LINEAR = 8
    SRGB = 13
    PQ = 16
    DCI = 17
    HLG = 18
    GAMMA = 65535


class JxlRenderingIntent(IntEnum):
    PERCEPTUAL = 0
    RELATIVE = 1
    SATURATION = 2
    ABSOLUTE = 3


class JxlOrientation(IntEnum):
    IDENTITY = 1
    FLIP_HORIZONTAL = 2
    ROTATE_180 = 3
    FLIP_VERTICAL = 4
    TRANSPOSE = 5
    ROTATE_90_CW = 6
    ANTI_TRANSPOSE = 7
    ROTATE_90_CCW = 8


class JxlExtraChannelType(IntEnum):
    ALPHA = 0
    DEPTH = 1
    SPOT_COLOR = 2
    SELECTION_MASK = 3
    BLACK = 4
    CFA = 5
    THERMAL = 6
    RESERVED0 = 7
    RESERVED1 = 8
    RESERVED2 = 9
    RESERVED3 = 10
    RESERVED4 = 11
    RESERVED5 = 12
    RESERVED6 = 13
    RESERVED7 = 14
    UNKNOWN = 15
    OPTIONAL = 16


class JxlColorProfileTarget(IntEnum):
    ORIGINAL = 0
    DATA = 1


class JxlBlendMode(IntEnum):
    REPLACE = 0
    ADD = 1
    BLEND = 2
    MULADD = 3
    MUL = 4


class JxlBitDepthType(IntEnum):
    FROM_PIXEL_FORMAT = 0
    FROM_CODESTREAM = 1
    CUSTOM = 2


class JxlProgressiveDetail(IntEnum):
    FRAMES = 0
    DC = 1
    LAST_PASSES = 2
    PASSES = 3
    DC_PROGRESSIVE = 4
    DC_GROUPS = 5
    GROUPS = 6


class JxlEncoderFrameSettingId(IntEnum):
    EFFORT = 0
    DECODING_SPEED = 1
    RESAMPLING = 2
    EXTRA_CHANNEL_RESAMPLING = 3
    ALREADY_DOWNSAMPLED = 4
    PHOTON_NOISE = 5
    NOISE = 6
    DOTS = 7
    PATCHES = 8
    EPF = 9
    GABORISH = 10
    MODULAR = 11
    KEEP_INVISIBLE = 12
    GROUP_ORDER = 13
    GROUP_ORDER_CENTER_X = 14
    GROUP_ORDER_CENTER_Y = 15
    RESPONSIVE = 16
    PROGRESSIVE_AC = 17
    QPROGRESSIVE_AC = 18
    PROGRESSIVE_DC = 19
    CHANNEL_COLORS_GLOBAL_PERCENT = 20
    CHANNEL_COLORS_GROUP_PERCENT = 21
    PALETTE_COLORS = 22
    LOSSY_PALETTE = 23
    COLOR_TRANSFORM = 24
    MODULAR_COLOR_SPACE = 25
    MODULAR_GROUP_SIZE = 26
    MODULAR_PREDICTOR = 27
    MODULAR_MA_TREE_LEARNING_PERCENT = 28
    MODULAR_NB_PREV_CHANNELS = 29
    JPEG_RECON_CFL = 30
    INDEX_BOX = 31
    BROTLI_EFFORT = 32
    JPEG_COMPRESS_BOXES = 33
    BUFFERING = 34
    JPEG_KEEP_EXIF = 35
    JPEG_KEEP_XMP = 36
    JPEG_KEEP_JUMBF = 37
    USE_FULL_IMAGE_HEURISTICS = 38
    DISABLE_PERCEPTUAL_HEURISTICS = 39
    FILL_ENUM = 65535


class JxlParallelRetCode(IntEnum):
    """``JxlParallelRetCode`` values; any nonzero init return is also an error."""

    SUCCESS = 0
    RUNNER_ERROR = -1

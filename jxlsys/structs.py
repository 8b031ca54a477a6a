"""ctypes declarations of libjxl 0.10 structs and function-pointer types.

Field order, widths and padding follow the native headers exactly; enum
fields are ``c_int`` and ``JXL_BOOL`` is ``c_int``. On LP64 platforms:

    JxlBasicInfo        204 bytes
    JxlPixelFormat       24 bytes
    JxlColorEncoding    104 bytes
    JxlExtraChannelInfo  44 bytes
    JxlFrameHeader       56 bytes
    JxlMemoryManager     24 bytes
"""

from __future__ import annotations

from ctypes import (
    CFUNCTYPE,
    Structure,
    c_char,
    c_double,
    c_float,
    c_int,
    c_int32,
    c_size_t,
    c_uint8,
    c_uint32,
    c_void_p,
)

from jxlsys.enums import JxlDataType, JxlEndianness

__all__ = [
    "JXL_BOOL",
    "JxlBoxType",
    "JxlPixelFormat",
    "JxlBitDepth",
    "JxlPreviewHeader",
    "JxlAnimationHeader",
    "JxlBasicInfo",
    "JxlExtraChannelInfo",
    "JxlColorEncoding",
    "JxlBlendInfo",
    "JxlLayerInfo",
    "JxlFrameHeader",
    "JxlMemoryManager",
    "jpegxl_alloc_func",
    "jpegxl_free_func",
    "JxlParallelRunInit",
    "JxlParallelRunFunction",
    "JxlParallelRunner",
    "JxlImageOutCallback",
]

JXL_BOOL = c_int
JxlBoxType = c_char * 4

_enum = c_int


class JxlPixelFormat(Structure):
    """Describes a caller-owned pixel buffer."""

    _fields_ = [
        ("num_channels", c_uint32),
        ("data_type", _enum),
        ("endianness", _enum),
        ("align", c_size_t),
    ]

    @classmethod
    def make(
        cls,
        num_channels: int,
        data_type: JxlDataType = JxlDataType.UINT8,
        endianness: JxlEndianness = JxlEndianness.NATIVE,
        align: int = 0,
    ) -> "JxlPixelFormat":
        return cls(num_channels, int(data_type), int(endianness), align)


class JxlBitDepth(Structure):
    _fields_ = [
        ("type", _enum),
        ("bits_per_sample", c_uint32),
        ("exponent_bits_per_sample", c_uint32),
    ]


class JxlPreviewHeader(Structure):
    _fields_ = [
        ("xsize", c_uint32),
        ("ysize", c_uint32),
    ]


class JxlAnimationHeader(Structure):
    _fields_ = [
        ("tps_numerator", c_uint32),
        ("tps_denominator", c_uint32),
        ("num_loops", c_uint32),
        ("have_timecodes", JXL_BOOL),
    ]


class JxlBasicInfo(Structure):
    """Image-level metadata, available after ``JXL_DEC_BASIC_INFO``."""

    _fields_ = [
        ("have_container", JXL_BOOL),
        ("xsize", c_uint32),
        ("ysize", c_uint32),
        ("bits_per_sample", c_uint32),
        ("exponent_bits_per_sample", c_uint32),
        ("intensity_target", c_float),
        ("min_nits", c_float),
        ("relative_to_max_display", JXL_BOOL),
        ("linear_below", c_float),
        ("uses_original_profile", JXL_BOOL),
        ("have_preview", JXL_BOOL),
        ("have_animation", JXL_BOOL),
        ("orientation", _enum),
        ("num_color_channels", c_uint32),
        ("num_extra_channels", c_uint32),
        ("alpha_bits", c_uint32),
        ("alpha_exponent_bits", c_uint32),
        ("alpha_premultiplied", JXL_BOOL),
        ("preview", JxlPreviewHeader),
        ("animation", JxlAnimationHeader),
        ("intrinsic_xsize", c_uint32),
        ("intrinsic_ysize", c_uint32),
        ("padding", c_uint8 * 100),
    ]


class JxlExtraChannelInfo(Structure):
    _fields_ = [
        ("type", _enum),
        ("bits_per_sample", c_uint32),
        ("exponent_bits_per_sample", c_uint32),
        ("dim_shift", c_uint32),
        ("name_length", c_uint32),
        ("alpha_premultiplied", JXL_BOOL),
        ("spot_color", c_float * 4),
        ("cfa_channel", c_uint32),
    ]


class JxlColorEncoding(Structure):
    _fields_ = [
        ("color_space", _enum),
        ("white_point", _enum),
        ("white_point_xy", c_double * 2),
        ("primaries", _enum),
        ("primaries_red_xy", c_double * 2),
        ("primaries_green_xy", c_double * 2),
        ("primaries_blue_xy", c_double * 2),
        ("transfer_function", _enum),
        ("gamma", c_double),
        ("rendering_intent", _enum),
    ]


class JxlBlendInfo(Structure):
    _fields_ = [
        ("blendmode", _enum),
        ("source", c_uint32),
        ("alpha", c_uint32),
        ("clamp", JXL_BOOL),
    ]


class JxlLayerInfo(Structure):
    _fields_ = [
        ("have_crop", JXL_BOOL),
        ("crop_x0", c_int32),
        ("crop_y0", c_int32),
        ("xsize", c_uint32),
        ("ysize", c_uint32),
        ("blend_info", JxlBlendInfo),
        ("save_as_reference", c_uint32),
    ]


class JxlFrameHeader(Structure):
    _fields_ = [
        ("duration", c_uint32),
        ("timecode", c_uint32),
        ("name_length", c_uint32),
        ("is_last", JXL_BOOL),
        ("layer_info", JxlLayerInfo),
    ]


# void* (*jpegxl_alloc_func)(void* opaque, size_t size)
jpegxl_alloc_func = CFUNCTYPE(c_void_p, c_void_p, c_size_t)

# void (*jpegxl_free_func)(void* opaque, void* address)
jpegxl_free_func = CFUNCTYPE(None, c_void_p, c_void_p)


class JxlMemoryManager(Structure):
    _fields_ = [
        ("opaque", c_void_p),
        ("alloc", jpegxl_alloc_func),
        ("free", jpegxl_free_func),
    ]


# JxlParallelRetCode (*JxlParallelRunInit)(void* jpegxl_opaque, size_t num_threads)
JxlParallelRunInit = CFUNCTYPE(c_int, c_void_p, c_size_t)

# void (*JxlParallelRunFunction)(void* jpegxl_opaque, uint32_t value, size_t thread_id)
JxlParallelRunFunction = CFUNCTYPE(None, c_void_p, c_uint32, c_size_t)

# JxlParallelRetCode (*JxlParallelRunner)(void* runner_opaque, void* jpegxl_opaque,
#     JxlParallelRunInit init, JxlParallelRunFunction func,
#     uint32_t start_range, uint32_t end_range)
JxlParallelRunner = CFUNCTYPE(
    c_int, c_void_p, c_void_p, JxlParallelRunInit, JxlParallelRunFunction, c_uint32, c_uint32
)

# void (*JxlImageOutCallback)(void* opaque, size_t x, size_t y,
#     size_t num_pixels, const void* pixels)
JxlImageOutCallback = CFUNCTYPE(None, c_void_p, c_size_t, c_size_t, c_size_t, c_void_p)
